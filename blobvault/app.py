import logging

from flask import Flask, current_app

from blobvault.config import Config
from blobvault.core import BlobIndex, StorageService
from blobvault.core.storage_config import StorageSettings, load_storage_settings
from blobvault.models.base import create_session
from blobvault.routes import admin_bp, blobs_bp
from blobvault.storage import FilesystemStorage, S3Storage, StorageBackend

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config.from_object(Config)

# Register blueprints
app.register_blueprint(admin_bp)
app.register_blueprint(blobs_bp)


def create_storage(settings: StorageSettings) -> StorageBackend:
    """Create the storage backend selected by the settings (not yet set up)"""
    if settings.backend == 'local':
        return FilesystemStorage(base_path=settings.local.dir)
    elif settings.backend == 's3':
        return S3Storage(settings.s3)
    raise ValueError(f"Unknown storage backend {settings.backend}")


def init_storage(flask_app: Flask, settings: StorageSettings = None, backend: StorageBackend = None) -> StorageBackend:
    """
    Construct and set up the storage backend for an app.

    Args:
        flask_app: Flask application to attach the backend to
        settings: Storage settings (loaded from config/environment if None)
        backend: Preconstructed backend (created from settings if None)

    Returns:
        The ready backend

    Raises:
        BackendUnreachableError: If the backend cannot be set up
    """
    settings = settings or load_storage_settings()
    backend = backend or create_storage(settings)

    logger.info("Setting up storage")
    backend.setup()

    flask_app.extensions['blob_storage'] = backend
    flask_app.extensions['storage_settings'] = settings
    return backend


def close_storage(flask_app: Flask):
    """Close the storage backend attached to an app"""
    backend = flask_app.extensions.pop('blob_storage', None)
    flask_app.extensions.pop('storage_settings', None)
    if backend is not None:
        backend.close()


def get_storage() -> StorageBackend:
    """Get the storage backend of the current app"""
    backend = current_app.extensions.get('blob_storage')
    if backend is None:
        raise RuntimeError("Storage is not initialized; call init_storage() first")
    return backend


def get_db():
    """Get a database session for the current app"""
    database_url = current_app.config.get('DATABASE_URL', Config.DATABASE_URL)
    debug = current_app.config.get('DEBUG', Config.DEBUG)
    return create_session(database_url, echo=debug)


def get_storage_service(db) -> StorageService:
    """Get a storage service bound to a database session"""
    settings = current_app.extensions.get('storage_settings')
    return StorageService(BlobIndex(db), get_storage(), settings)
