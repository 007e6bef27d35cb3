import os


def _env_bool(name, default):
    return os.environ.get(name, default).lower() in ('true', '1', 'yes')


class BaseConfig:
    """Base configuration shared across all environments."""

    # Flask core
    SECRET_KEY = os.environ.get('SECRET_KEY', 'fallback-secret-key-change-me')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = True

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'SQLALCHEMY_DATABASE_URI', 'sqlite:///dev.db'
    )

    # Codeforces API credentials (signed mode); unsigned calls work without them
    CODEFORCES_API_KEY = os.environ.get('CODEFORCES_API_KEY', '')
    CODEFORCES_API_SECRET = os.environ.get('CODEFORCES_API_SECRET', '')
    CODEFORCES_API_BASE_URL = os.environ.get(
        'CODEFORCES_API_BASE_URL', 'https://codeforces.com/api'
    )
    CODEFORCES_TIMEOUT = float(os.environ.get('CODEFORCES_TIMEOUT', '10'))
    # Minimum seconds between two upstream requests
    CODEFORCES_RATE_LIMIT = float(os.environ.get('CODEFORCES_RATE_LIMIT', '0.5'))

    # Batch sync
    SYNC_SCHEDULE = os.environ.get('SYNC_SCHEDULE', '0 2 * * *')
    SYNC_STUDENT_DELAY = float(os.environ.get('SYNC_STUDENT_DELAY', '0.5'))

    # Inactivity reminders
    INACTIVITY_DAYS = int(os.environ.get('INACTIVITY_DAYS', '7'))

    # Mail
    MAIL_SERVER = os.environ.get('MAIL_SERVER', 'smtp.gmail.com')
    MAIL_PORT = int(os.environ.get('MAIL_PORT', '587'))
    MAIL_USE_TLS = _env_bool('MAIL_USE_TLS', 'true')
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME', '')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD', '')
    MAIL_DEFAULT_SENDER = os.environ.get(
        'MAIL_DEFAULT_SENDER', os.environ.get('MAIL_USERNAME', '')
    )

    # Logging
    LOG_FILE_MAX_BYTES = int(os.environ.get('LOG_FILE_MAX_BYTES', '0'))
    LOG_FILE_BACKUP_COUNT = int(os.environ.get('LOG_FILE_BACKUP_COUNT', '3'))

    # Scheduler
    SCHEDULER_ENABLED = _env_bool('SCHEDULER_ENABLED', 'false')


class DevelopmentConfig(BaseConfig):
    """Development environment configuration."""

    DEBUG = True
    SCHEDULER_ENABLED = False


class ProductionConfig(BaseConfig):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'SQLALCHEMY_DATABASE_URI', 'sqlite:///prod.db'
    )
    SCHEDULER_ENABLED = _env_bool('SCHEDULER_ENABLED', 'true')
    LOG_FILE_MAX_BYTES = int(os.environ.get('LOG_FILE_MAX_BYTES', str(5 * 1024 * 1024)))


class TestingConfig(BaseConfig):
    """Testing environment configuration."""

    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    WTF_CSRF_ENABLED = False
    SECRET_KEY = 'test-secret-key'
    SCHEDULER_ENABLED = False
    SERVER_NAME = 'localhost'
    CODEFORCES_API_KEY = 'test-key'
    CODEFORCES_API_SECRET = 'test-secret'
    CODEFORCES_RATE_LIMIT = 0.0
    SYNC_STUDENT_DELAY = 0.0
    MAIL_SUPPRESS_SEND = True
    MAIL_DEFAULT_SENDER = 'tracker@test.com'
    LOG_FILE_MAX_BYTES = 0


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
}
