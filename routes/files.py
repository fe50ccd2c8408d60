"""Downloads of stored documents through time-limited signed tokens."""

from flask import Blueprint, jsonify, send_file

from document_storage import (
    BadSignature,
    DocumentStorageError,
    SignatureExpired,
    get_document_storage,
)

bp = Blueprint("files", __name__, url_prefix="/api/files")


@bp.get("/<path:token>")
def download(token):
    storage = get_document_storage()
    try:
        bucket, storage_path = storage.resolve(token)
        path = storage.path_for(bucket, storage_path)
    except SignatureExpired:
        return jsonify({"msg": "This link has expired."}), 410
    except (BadSignature, DocumentStorageError):
        return jsonify({"msg": "Invalid file link."}), 400

    if not storage.exists(bucket, storage_path):
        return jsonify({"msg": "File not found."}), 404
    return send_file(path, download_name=storage_path.rsplit("/", 1)[-1])
