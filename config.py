import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


class Config:
    """Base configuration"""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    FLASK_APP = os.getenv('FLASK_APP', 'app.py')
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')
    DEBUG = os.getenv('DEBUG', 'true').lower() == 'true'
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Storage root (database file, challenge packs, instance workdirs)
    DATA_DIR = os.getenv(
        'DATA_DIR',
        os.path.join(BASE_DIR, '.appdata', 'ctf-web-launcher')
    )

    # Database
    DATABASE_URL = os.getenv('DATABASE_URL')
    if DATABASE_URL:
        SQLALCHEMY_DATABASE_URI = DATABASE_URL
    else:
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{os.path.join(DATA_DIR, 'db.sqlite')}"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,       # Test connection before use
    }

    # Server
    AGENT_HOST = os.getenv('AGENT_HOST', '127.0.0.1')
    AGENT_PORT = int(os.getenv('AGENT_PORT', 43765))

    # Browser origins allowed to call the agent (comma separated)
    WEB_ORIGIN = os.getenv('WEB_ORIGIN', 'http://localhost:3000,http://127.0.0.1:3000')

    # Container engine
    COMPOSE_COMMAND = os.getenv('COMPOSE_COMMAND', 'docker compose')

    # Port allocation
    PORT_PROBE_HOST = os.getenv('PORT_PROBE_HOST', '127.0.0.1')
    PORT_SUMMARY_CONCURRENCY = int(os.getenv('PORT_SUMMARY_CONCURRENCY', 40))

    # Logs endpoint
    DEFAULT_LOG_TAIL = int(os.getenv('DEFAULT_LOG_TAIL', 200))
    MAX_LOG_TAIL = int(os.getenv('MAX_LOG_TAIL', 10000))

    # File Upload
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_UPLOAD_SIZE', 200 * 1024 * 1024))  # 200MB default


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
