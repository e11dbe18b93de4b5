import os
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, '.env'))


def _env_flag(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'results_portal.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Create missing tables on startup (deployments without migration history)
    AUTO_CREATE_TABLES = _env_flag('AUTO_CREATE_TABLES', True)

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024  # bulk result uploads

    # --- Used only by the seed-db command ---
    DEFAULT_ADMIN_USERNAME = os.environ.get('DEFAULT_ADMIN_USERNAME', 'admin')
    DEFAULT_ADMIN_PASSWORD = os.environ.get('DEFAULT_ADMIN_PASSWORD', 'admin123')
