# backend/clothpos/routes/stock.py
"""
Stock ledger routes.

- restock: RESTOCK entry against a supplier invoice (allowed on locked products)
- adjust: ADJUSTMENT entry (signed quantity, costed at current buying price)
- history: newest-first ledger view, bounded by ?limit=
- initial-stock: INITIAL_STOCK entries plus lock status, for the edit form
"""
from flask import Blueprint, request, current_app

from ..models import StockEntry
from ..validation import ModelValidationPolicy, validate_payload
from ..errors import DOMAIN_ERRORS, error_response

stock_bp = Blueprint("stock", __name__, url_prefix="/api/products")

RESTOCK_POLICY = ModelValidationPolicy(
    writable_fields={
        "quantity",
        "buying_price",
        "unit",
        "supplier_id",
        "invoice_number",
        "purchase_date",
        "notes",
        "component_name",
    },
    required_on_create={"quantity", "buying_price"},
)

ADJUST_POLICY = ModelValidationPolicy(
    writable_fields={"quantity", "notes", "component_name"},
    required_on_create={"quantity"},
)


@stock_bp.post("/<int:product_id>/restock")
def restock_route(product_id: int):
    from ..services.stock_ledger_service import restock
    from ..services.inventory_service import get_inventory_summary

    payload = request.get_json(silent=True) or {}
    store_id = request.args.get("store_id", type=int)

    try:
        patch = validate_payload(model=StockEntry, payload=payload, policy=RESTOCK_POLICY, partial=False)
        entry = restock(product_id=product_id, store_id=store_id, **patch)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to restock product %s", product_id)
        return {"error": "Failed to restock product"}, 500

    summary = get_inventory_summary(product_id=product_id)
    return {"entry": entry.to_dict(), "summary": summary}, 201


@stock_bp.post("/<int:product_id>/adjust")
def adjust_route(product_id: int):
    from ..services.stock_ledger_service import adjust
    from ..services.inventory_service import get_inventory_summary

    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=StockEntry, payload=payload, policy=ADJUST_POLICY, partial=False)
        entry = adjust(product_id=product_id, store_id=request.args.get("store_id", type=int), **patch)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust product %s", product_id)
        return {"error": "Failed to adjust stock"}, 500

    summary = get_inventory_summary(product_id=product_id)
    return {"entry": entry.to_dict(), "summary": summary}, 201


@stock_bp.get("/<int:product_id>/history")
def history_route(product_id: int):
    from ..services.inventory_service import load_product
    from ..services.stock_ledger_service import history

    try:
        product = load_product(product_id, store_id=request.args.get("store_id", type=int))
        entries = [e.to_dict() for e in history(product, request.args.get("limit", type=int))]
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return {"items": entries, "count": len(entries)}


@stock_bp.get("/<int:product_id>/summary")
def summary_route(product_id: int):
    from ..services.inventory_service import get_inventory_summary

    try:
        return get_inventory_summary(product_id=product_id, store_id=request.args.get("store_id", type=int))
    except DOMAIN_ERRORS as e:
        return error_response(e)


@stock_bp.get("/<int:product_id>/initial-stock")
def initial_stock_route(product_id: int):
    from ..services.inventory_service import load_product
    from ..services.stock_ledger_service import get_initial_stock_entries
    from ..services.sale_lock_service import lock_status, initial_stock_total

    try:
        product = load_product(product_id, store_id=request.args.get("store_id", type=int))
    except DOMAIN_ERRORS as e:
        return error_response(e)

    entries = get_initial_stock_entries(product)
    return {
        "items": [e.to_dict() for e in entries],
        "total_cost": str(initial_stock_total(product)),
        "lock": lock_status(product),
    }
