# backend/rims/routes/sales.py
"""
Composite sale batch.

POST /api/sales
{
    "transactions": [...],          // line transactions (shared master id)
    "inventory_updates": [...],     // full item snapshots after the sale
    "customer_update": {...}|null,  // loyalty / total spent
    "shift_update": {...}|null      // open cash shift accumulators
}

All parts commit together or not at all. Refunds and bulk adjustments reuse
this endpoint with customer_update/shift_update as needed.
"""
from flask import Blueprint, request, jsonify, current_app

from ..services import store_service
from ..validation import ValidationError, ConflictError


sales_bp = Blueprint("sales", __name__, url_prefix="/api")


@sales_bp.post("/sales")
def apply_sale_batch_route():
    payload = request.get_json(silent=True) or {}

    try:
        result = store_service.apply_batch(
            transactions=payload.get("transactions"),
            inventory_updates=payload.get("inventory_updates"),
            customer_update=payload.get("customer_update"),
            shift_update=payload.get("shift_update"),
        )
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Sale batch failed")
        return jsonify({"error": "Transaction failed"}), 500

    return jsonify(result)
