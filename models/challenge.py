import os
import uuid
from datetime import datetime
from models import db
from services.validators import CONTAINER_PORTS


class Challenge(db.Model):
    """Registered challenge pack (web app source + optional DB seed)"""
    __tablename__ = 'challenges'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(255), nullable=False)

    # Runtime
    runtime = db.Column(db.String(20), nullable=False)  # php, flask
    runtime_version = db.Column(db.String(50), nullable=False)
    db_type = db.Column(db.String(20), nullable=False, default='none')  # none, mysql

    # Canonical file tree
    files_hash = db.Column(db.String(80), nullable=False)
    storage_path = db.Column(db.String(1024), nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def files_dir(self):
        """Directory holding the canonical file tree"""
        return os.path.join(self.storage_path, 'files')

    @property
    def container_port(self):
        return CONTAINER_PORTS[self.runtime]

    @staticmethod
    def list_all():
        return Challenge.query.order_by(Challenge.created_at.desc()).all()

    def to_dict(self):
        """Convert challenge to dictionary"""
        return {
            'id': self.id,
            'name': self.name,
            'runtime': self.runtime,
            'runtime_version': self.runtime_version,
            'db_type': self.db_type,
            'files_hash': self.files_hash,
            'storage_path': self.storage_path,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_manifest(self):
        """Manifest written into exported packs"""
        return {
            'schema_version': 1,
            'challenge': {
                'name': self.name,
                'runtime': self.runtime,
                'runtime_version': self.runtime_version,
                'db_type': self.db_type,
            },
            'files': {
                'hash': self.files_hash,
            },
        }

    def __repr__(self):
        return f'<Challenge {self.name} ({self.runtime}/{self.db_type})>'
