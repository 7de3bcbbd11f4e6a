"""Blob retrieval routes: GET/HEAD /<sha256>[.ext]"""
import logging
from flask import Blueprint, Response, jsonify, redirect, request

from blobvault.errors import BlobNotFoundError
from blobvault.models import ErrorResponse
from blobvault.utils.mime import is_sha256

logger = logging.getLogger(__name__)

blobs_bp = Blueprint('blobs', __name__)

CHUNK_SIZE = 64 * 1024


def _stream(source):
    try:
        for chunk in iter(lambda: source.read(CHUNK_SIZE), b''):
            yield chunk
    finally:
        source.close()


@blobs_bp.route('/<string:name>', methods=['GET'])
def get_blob(name):
    """
    Serve a blob by hash. An extension after the hash is ignored.

    Redirects to the public URL when the backend has one, otherwise streams
    the bytes. Every successful lookup refreshes the blob's access time.
    """
    from blobvault.app import get_db, get_storage_service

    sha256 = name.split('.', 1)[0]
    if not is_sha256(sha256):
        error = ErrorResponse(error=f'Invalid hash: {sha256}')
        return jsonify(error.model_dump()), 400

    db = get_db()
    try:
        service = get_storage_service(db)
        pointer = service.search_storage(sha256)
        if not pointer:
            error = ErrorResponse(error='Blob not found')
            return jsonify(error.model_dump()), 404

        service.index.update_access(sha256)

        redirect_url = service.get_storage_redirect(pointer)
        if redirect_url:
            return redirect(redirect_url, code=307)

        headers = {'Content-Length': str(pointer.size), 'Cache-Control': 'public, max-age=31536000, immutable'}
        mimetype = pointer.type or 'application/octet-stream'
        if request.method == 'HEAD':
            return Response(status=200, headers=headers, mimetype=mimetype)

        try:
            source = service.read_storage_pointer(pointer)
        except BlobNotFoundError:
            logger.warning(f"Blob {sha256} disappeared from storage while being served")
            error = ErrorResponse(error='Blob not found')
            return jsonify(error.model_dump()), 404
    finally:
        db.close()

    return Response(_stream(source), headers=headers, mimetype=mimetype)
