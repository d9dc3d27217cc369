import logging
import os
from datetime import datetime

from flask import Flask, jsonify
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from config import config
from models import db
from models.settings import Settings
from services.errors import LauncherError
from services.instance_manager import instance_manager
from services.storage import storage
from security_utils import init_security
from utils.db_optimizations import init_db_optimizations


def create_app(config_name=None, test_config=None):
    """Create and configure the Flask application"""

    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config.get(config_name, config['default']))
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Storage first: the SQLite file lives inside DATA_DIR
    storage.init_app(app)

    # Initialize extensions
    init_db_optimizations(app, db)
    db.init_app(app)
    instance_manager.init_app(app, storage)

    # Initialize security features (CORS, security headers)
    init_security(app)

    # Register blueprints
    from routes.challenges import challenges_bp
    from routes.instances import instances_bp
    from routes.settings import settings_bp

    app.register_blueprint(challenges_bp)
    app.register_blueprint(instances_bp)
    app.register_blueprint(settings_bp)

    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Remove database session at end of request"""
        try:
            if exception:
                db.session.rollback()
            db.session.remove()
        except Exception as e:
            app.logger.error(f"Error during session cleanup: {e}")

    @app.errorhandler(LauncherError)
    def handle_launcher_error(error):
        db.session.rollback()
        if error.status_code >= 500:
            app.logger.error(f"{type(error).__name__}: {error.message}")
        # Instance urls follow the configured public host
        settings = Settings.get_config() if getattr(error, 'instance', None) is not None else None
        return jsonify(error.to_dict(settings)), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'success': False, 'error': error.description}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        db.session.rollback()
        app.logger.exception(f"Unhandled error: {error}")
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    @app.route('/health')
    def health_check():
        """Health check endpoint for the launcher UI"""
        try:
            db.session.execute(text('SELECT 1'))
            db.session.commit()
            db_status = 'healthy'
        except Exception as e:
            app.logger.error(f"Database health check failed: {e}")
            db.session.rollback()
            db_status = f'unhealthy: {str(e)[:100]}'

        is_healthy = db_status == 'healthy'
        health_data = {
            'success': is_healthy,
            'status': 'healthy' if is_healthy else 'unhealthy',
            'timestamp': datetime.utcnow().isoformat(),
            'checks': {
                'database': db_status,
            },
        }
        return jsonify(health_data), 200 if is_healthy else 503

    with app.app_context():
        from scripts.db_schema import ensure_settings_schema

        db.create_all()
        added = ensure_settings_schema()
        if added:
            app.logger.info(f"Upgraded settings schema ({', '.join(added)})")

    return app


def main():
    """Main entry point"""
    import eventlet
    import eventlet.wsgi
    eventlet.monkey_patch()

    app = create_app()
    host = app.config.get('AGENT_HOST', '127.0.0.1')
    port = app.config.get('AGENT_PORT', 43765)

    app.logger.info(f"CTF Web Launcher agent listening on http://{host}:{port}")
    eventlet.wsgi.server(eventlet.listen((host, port)), app, log_output=app.debug)


if __name__ == '__main__':
    main()
