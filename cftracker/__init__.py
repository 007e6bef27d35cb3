import logging
import os

from logging.handlers import RotatingFileHandler

from dotenv import load_dotenv
from flask import Flask, jsonify

from cftracker.config import config_map
from cftracker.extensions import db, login_manager, migrate, csrf, mail

__version__ = '0.3.0'

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Application factory for creating the Flask app instance.

    Args:
        config_name: Configuration name ('development', 'production' or
                     'testing'). Defaults to the FLASK_ENV environment
                     variable or 'development'.

    Returns:
        Configured Flask application instance.
    """
    # Load environment variables from the appropriate .env file
    env = config_name or os.environ.get('FLASK_ENV', 'development')
    project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    env_file = os.path.join(project_root, f'.env.{env}')
    if os.path.exists(env_file):
        load_dotenv(env_file)

    # Also load a local .env if it exists (overrides the environment-specific one)
    dotenv_path = os.path.join(project_root, '.env')
    if os.path.exists(dotenv_path):
        load_dotenv(dotenv_path, override=True)

    # Determine final config name after env files are loaded
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)

    config_class = config_map.get(config_name, config_map['development'])
    app.config.from_object(config_class)

    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    mail.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        from cftracker.models.user import User
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Authentication required'}), 401

    _register_blueprints(app)

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok', 'version': __version__})

    with app.app_context():
        db.create_all()

    _check_codeforces_credentials(app)
    _init_scheduler(app)

    return app


def _configure_logging(app):
    """Set up RotatingFileHandler on the root logger."""
    max_bytes = app.config.get('LOG_FILE_MAX_BYTES', 0)
    if not max_bytes:
        return

    log_dir = os.path.join(app.instance_path, 'logs')
    os.makedirs(log_dir, exist_ok=True)

    log_file = os.path.join(log_dir, 'app.log')
    handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=app.config.get('LOG_FILE_BACKUP_COUNT', 3),
    )
    handler.setFormatter(logging.Formatter(
        app.config.get('LOG_FORMAT', '%(asctime)s [%(levelname)s] %(name)s: %(message)s')
    ))
    handler.setLevel(logging.DEBUG)

    root = logging.getLogger()
    root.addHandler(handler)
    if root.level == logging.WARNING:
        root.setLevel(logging.DEBUG)


def _mask(value):
    if len(value) <= 8:
        return '****'
    return f'{value[:4]}...{value[-4:]}'


def _check_codeforces_credentials(app):
    """Log whether signed Codeforces calls are possible. Never fatal."""
    missing = [
        name for name in ('CODEFORCES_API_KEY', 'CODEFORCES_API_SECRET')
        if not app.config.get(name)
    ]
    if missing:
        logger.warning(
            f"Codeforces API credentials incomplete (missing: {', '.join(missing)}); "
            f"syncs will use unsigned requests"
        )
        return
    logger.info(
        f"Codeforces API key configured: {_mask(app.config['CODEFORCES_API_KEY'])}"
    )


def _register_blueprints(app):
    """Register all application blueprints."""
    from cftracker.views.auth import auth_bp
    from cftracker.views.student import student_bp
    from cftracker.views.sync import sync_bp
    from cftracker.views.inactivity import inactivity_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(sync_bp)
    app.register_blueprint(inactivity_bp)


def _init_scheduler(app):
    """Create the batch scheduler; start its cron job when enabled."""
    from cftracker.tasks.scheduler import init_scheduler
    init_scheduler(app)
