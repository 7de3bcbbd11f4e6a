import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Application configuration"""

    # Database
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///blobvault.db')

    # Storage settings file (YAML); environment variables below are used when it is not set
    STORAGE_CONFIG_FILE = os.getenv('STORAGE_CONFIG_FILE')

    # Storage backend: 'local' or 's3'
    STORAGE_BACKEND = os.getenv('STORAGE_BACKEND', 'local')
    STORAGE_LOCAL_DIR = os.getenv('STORAGE_LOCAL_DIR', './data/blobs')

    # S3
    S3_ENDPOINT = os.getenv('S3_ENDPOINT')
    S3_PORT = int(os.getenv('S3_PORT')) if os.getenv('S3_PORT') else None
    S3_ACCESS_KEY = os.getenv('S3_ACCESS_KEY', os.getenv('AWS_ACCESS_KEY_ID'))
    S3_SECRET_KEY = os.getenv('S3_SECRET_KEY', os.getenv('AWS_SECRET_ACCESS_KEY'))
    S3_BUCKET = os.getenv('S3_BUCKET')
    S3_REGION = os.getenv('S3_REGION', os.getenv('AWS_REGION', 'us-east-1'))
    S3_PUBLIC_URL = os.getenv('S3_PUBLIC_URL')
    S3_USE_SSL = _env_bool('S3_USE_SSL', True)
    S3_PATH_STYLE = _env_bool('S3_PATH_STYLE', True)
    S3_USE_ACCELERATE_ENDPOINT = _env_bool('S3_USE_ACCELERATE_ENDPOINT', False)

    # Retention
    REMOVE_WHEN_NO_OWNERS = _env_bool('REMOVE_WHEN_NO_OWNERS', False)

    # Server
    PORT = int(os.getenv('PORT', '3000'))
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    DEBUG = os.getenv('FLASK_ENV') == 'development'
