# backend/rims/routes/collections.py
"""
Generic collection routes: near-1:1 CRUD over the store tables.

GET    /api/<collection>        -> all records (JSON sub-fields decoded)
POST   /api/<collection>        -> upsert by id (insert-or-replace, idempotent)
DELETE /api/<collection>/<id>   -> delete by id

transactions is append-only (DELETE answers 405).
"""
from flask import Blueprint, request, jsonify, current_app

from ..services import store_service
from ..services.store_service import UnknownCollectionError, AppendOnlyError
from ..validation import ValidationError, ConflictError


collections_bp = Blueprint("collections", __name__, url_prefix="/api")


@collections_bp.get("/<string:collection>")
def list_collection_route(collection: str):
    # Full log unless the caller asks for the newest N
    limit = request.args.get("limit", type=int) if collection == "transactions" else None

    try:
        records = store_service.list_records(collection, limit=limit)
    except UnknownCollectionError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list %s", collection)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(records)


@collections_bp.post("/<string:collection>")
def upsert_collection_route(collection: str):
    payload = request.get_json(silent=True)

    try:
        row = store_service.upsert_record(collection, payload)
    except UnknownCollectionError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to save %s record", collection)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Record saved", "id": row.id})


@collections_bp.delete("/<string:collection>/<string:record_id>")
def delete_collection_route(collection: str, record_id: str):
    try:
        deleted = store_service.delete_record(collection, record_id)
    except UnknownCollectionError as e:
        return jsonify({"error": str(e)}), 404
    except AppendOnlyError as e:
        return jsonify({"error": str(e)}), 405
    except Exception:
        current_app.logger.exception("Failed to delete %s/%s", collection, record_id)
        return jsonify({"error": "Internal server error"}), 500

    if not deleted:
        return jsonify({"message": "Record not found", "id": record_id}), 404
    return jsonify({"message": "Record deleted", "id": record_id})
