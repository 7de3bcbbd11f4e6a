"""Routes package for blobvault"""
from .admin import admin_bp
from .blobs import blobs_bp

__all__ = ['admin_bp', 'blobs_bp']
