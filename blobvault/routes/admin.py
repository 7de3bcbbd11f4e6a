"""Admin API routes: list, inspect and delete blobs; list users"""
import logging
from flask import Blueprint, jsonify, request

from blobvault.errors import InvalidQueryError
from blobvault.models import BlobInfo, ErrorResponse
from blobvault.utils.mime import object_name
from blobvault.utils.query import content_range, parse_get_list_query

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin_api', __name__, url_prefix='/api/admin')


def _list_response(resource, items, range, total):
    response = jsonify([item.model_dump(mode='json') for item in items])
    response.headers['Content-Range'] = content_range(resource, range, len(items), total)
    response.headers['Access-Control-Expose-Headers'] = 'Content-Range'
    return response


def _with_url(blob: BlobInfo) -> BlobInfo:
    blob.url = request.host_url + object_name(blob.sha256, blob.type)
    return blob


def _bad_request(e: Exception):
    error = ErrorResponse(error=str(e))
    return jsonify(error.model_dump()), 400


@admin_bp.route('/blobs', methods=['GET'])
def list_blobs():
    """
    List blobs.

    Query parameters (JSON encoded):
        filter: {"q": "...", "type": "image/png", "sha256": [...]}
        sort: ["uploaded", "DESC"]
        range: [0, 24]
    """
    from blobvault.app import get_db
    from blobvault.core import BlobIndex

    try:
        filter, sort, range = parse_get_list_query(request.args)
    except InvalidQueryError as e:
        return _bad_request(e)

    db = get_db()
    try:
        blobs, total = BlobIndex(db).list_blobs(filter, sort, range)
        return _list_response('blobs', [_with_url(b) for b in blobs], range, total)
    except InvalidQueryError as e:
        return _bad_request(e)
    finally:
        db.close()


@admin_bp.route('/blobs/<string:sha256>', methods=['GET'])
def get_blob(sha256):
    """Get a blob with its owners"""
    from blobvault.app import get_db
    from blobvault.core import BlobIndex

    db = get_db()
    try:
        blob = BlobIndex(db).get_blob_info(sha256)
        if not blob:
            error = ErrorResponse(error='Blob not found')
            return jsonify(error.model_dump()), 404
        return jsonify(_with_url(blob).model_dump(mode='json')), 200
    finally:
        db.close()


@admin_bp.route('/blobs/<string:sha256>', methods=['DELETE'])
def delete_blob(sha256):
    """Delete a blob from the index and the storage backend"""
    from blobvault.app import get_db, get_storage_service

    db = get_db()
    try:
        removed = get_storage_service(db).delete_blob(sha256)
        logger.info(f"Deleted blob {sha256} via admin API (removed={removed})")
        return jsonify({'success': True, 'removed': removed}), 200
    except Exception as e:
        logger.error(f'Error deleting blob {sha256}: {e}', exc_info=True)
        error = ErrorResponse(error=f'Failed to delete blob: {e}')
        return jsonify(error.model_dump()), 500
    finally:
        db.close()


@admin_bp.route('/users', methods=['GET'])
def list_users():
    """
    List owners and the blobs they own.

    Accepts filter keys "q" and "pubkey" and sorting by "pubkey".
    """
    from blobvault.app import get_db
    from blobvault.core import BlobIndex

    try:
        filter, sort, range = parse_get_list_query(request.args)
    except InvalidQueryError as e:
        return _bad_request(e)

    db = get_db()
    try:
        users, total = BlobIndex(db).list_users(filter, sort, range)
        return _list_response('users', users, range, total)
    except InvalidQueryError as e:
        return _bad_request(e)
    finally:
        db.close()
