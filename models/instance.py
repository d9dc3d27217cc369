import uuid
from datetime import datetime
from models import db

COMPOSE_PROJECT_PREFIX = 'ctfwl_'


def compose_project_for(instance_id):
    """Engine-side project name; unique per instance"""
    return f"{COMPOSE_PROJECT_PREFIX}{instance_id.replace('-', '')}"


class ChallengeInstance(db.Model):
    """Model for tracking the deployed instance of a challenge"""
    __tablename__ = 'instances'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # At most one instance row per challenge
    challenge_id = db.Column(db.String(36), db.ForeignKey('challenges.id'), nullable=False, unique=True)

    # State tracking
    status = db.Column(db.String(20), nullable=False)  # running, stopped, error

    # Network details
    host_port = db.Column(db.Integer, nullable=False)
    container_port = db.Column(db.Integer, nullable=False)

    # Engine project namespace
    compose_project = db.Column(db.String(64), nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    challenge = db.relationship(
        'Challenge',
        backref=db.backref('instances', lazy='dynamic', cascade='all, delete-orphan')
    )

    def __repr__(self):
        return f'<ChallengeInstance {self.id} (challenge={self.challenge_id}, {self.status}:{self.host_port})>'

    @staticmethod
    def for_challenge(challenge_id):
        """Latest (and only) instance of a challenge, if any"""
        return ChallengeInstance.query.filter_by(
            challenge_id=challenge_id
        ).order_by(ChallengeInstance.created_at.desc()).first()

    @staticmethod
    def reserved_ports(exclude_id=None):
        """Host ports held by running instances, read fresh from the store"""
        query = db.session.query(ChallengeInstance.host_port).filter(
            ChallengeInstance.status == 'running'
        )
        if exclude_id:
            query = query.filter(ChallengeInstance.id != exclude_id)
        return {port for (port,) in query.all()}

    def is_running(self):
        return self.status == 'running'

    def build_url(self, settings=None):
        """Externally usable URL of the instance"""
        scheme = settings.host_scheme if settings and settings.host_scheme else 'http'
        host = settings.host if settings and settings.host else 'localhost'
        return f"{scheme}://{host}:{self.host_port}"

    def to_dict(self, settings=None):
        """Convert instance to dictionary"""
        return {
            'id': self.id,
            'challenge_id': self.challenge_id,
            'status': self.status,
            'host_port': self.host_port,
            'container_port': self.container_port,
            'compose_project': self.compose_project,
            'url': self.build_url(settings),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
