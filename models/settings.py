import secrets
from datetime import datetime
from sqlalchemy.exc import IntegrityError
from models import db
from services.ports import PortRange, parse_port_ranges, serialize_port_ranges
from services.validators import validate_host_scheme, validate_mysql_credentials

DEFAULT_PORT_RANGES = [PortRange(43000, 43100)]
DEFAULT_MYSQL_DATABASE = 'ctf'
DEFAULT_MYSQL_USER = 'root'
DEFAULT_HOST_SCHEME = 'http'


def generate_password():
    return secrets.token_urlsafe(12)


class Settings(db.Model):
    """Launcher settings (singleton row, id is always 1)"""
    __tablename__ = 'settings'

    SINGLETON_ID = 1

    id = db.Column(db.Integer, primary_key=True)

    # Port ranges for instance host ports, JSON list of {start, end}
    port_ranges_json = db.Column(db.Text, nullable=False)

    # Externally visible address used to build instance URLs
    host = db.Column(db.String(255))
    host_scheme = db.Column(db.String(10))

    # MySQL credentials handed to new instances
    mysql_root_password = db.Column(db.String(255))
    mysql_database = db.Column(db.String(255))
    mysql_user = db.Column(db.String(255))
    mysql_password = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @staticmethod
    def get_config():
        """Get launcher settings (singleton pattern), backfilling missing fields"""
        config = db.session.get(Settings, Settings.SINGLETON_ID)
        if not config:
            root_password = generate_password()
            config = Settings(
                id=Settings.SINGLETON_ID,
                port_ranges_json=serialize_port_ranges(DEFAULT_PORT_RANGES),
                host='',
                host_scheme=DEFAULT_HOST_SCHEME,
                mysql_root_password=root_password,
                mysql_database=DEFAULT_MYSQL_DATABASE,
                mysql_user=DEFAULT_MYSQL_USER,
                mysql_password=root_password,
            )
            db.session.add(config)
            try:
                db.session.commit()
            except IntegrityError:
                # Created concurrently by another request
                db.session.rollback()
                config = db.session.get(Settings, Settings.SINGLETON_ID)

        if config.backfill_defaults():
            db.session.commit()
        return config

    def backfill_defaults(self):
        """Fill missing fields with defaults; returns True when anything changed"""
        changed = False
        if not self.port_ranges_json:
            self.port_ranges_json = serialize_port_ranges(DEFAULT_PORT_RANGES)
            changed = True
        if self.host is None:
            self.host = ''
            changed = True
        if self.host_scheme not in ('http', 'https'):
            self.host_scheme = DEFAULT_HOST_SCHEME
            changed = True
        if not self.mysql_root_password:
            self.mysql_root_password = generate_password()
            changed = True
        if not self.mysql_database:
            self.mysql_database = DEFAULT_MYSQL_DATABASE
            changed = True
        if not self.mysql_user:
            self.mysql_user = DEFAULT_MYSQL_USER
            changed = True
        if not self.mysql_password:
            self.mysql_password = (
                self.mysql_root_password if self.mysql_user == 'root' else generate_password()
            )
            changed = True
        return changed

    @property
    def port_ranges(self):
        return parse_port_ranges(self.port_ranges_json)

    def apply_update(self, data):
        """
        Validate and apply a settings update.

        Args:
            data: mapping with port_ranges and the mysql_* credentials;
                host and host_scheme are optional and keep their current
                value when absent

        Raises:
            ValidationError: nothing is changed when any field is invalid
        """
        ranges = parse_port_ranges(data.get('port_ranges'))
        credentials = validate_mysql_credentials(
            data.get('mysql_root_password'),
            data.get('mysql_database'),
            data.get('mysql_user'),
            data.get('mysql_password'),
        )
        host = self.host
        if data.get('host') is not None:
            host = str(data['host']).strip()
        host_scheme = self.host_scheme
        if data.get('host_scheme') is not None:
            host_scheme = validate_host_scheme(str(data['host_scheme']).strip())

        self.port_ranges_json = serialize_port_ranges(ranges)
        self.host = host
        self.host_scheme = host_scheme
        for key, value in credentials.items():
            setattr(self, key, value)
        self.updated_at = datetime.utcnow()
        db.session.commit()
        return self

    def to_dict(self):
        """Convert settings to dictionary"""
        return {
            'port_ranges': [{'start': r.start, 'end': r.end} for r in self.port_ranges],
            'host': self.host,
            'host_scheme': self.host_scheme,
            'mysql_root_password': self.mysql_root_password,
            'mysql_database': self.mysql_database,
            'mysql_user': self.mysql_user,
            'mysql_password': self.mysql_password,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<Settings ports={self.port_ranges_json} host={self.host_scheme}://{self.host}>'
