# Overview: Flask API routes for sales, payments and refunds; parses input and returns JSON responses.

# backend/clothpos/routes/sales.py
"""
Sales and refund routes.

Refund status codes:
- 400: empty request, unknown product, quantity above what is still refundable
- 404: sale not found
- 409: concurrent modification (retry from a fresh read)
- 422: refund total above the refundable ceiling (paid - refunded)
"""
from flask import Blueprint, request, current_app

from ..errors import DOMAIN_ERRORS, error_response

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """
    Finalize a sale.

    Body:
    - store_id: int (required)
    - items: [{product_id, quantity, unit_price?, components?}] (required)
    - paid_amount: amount collected at checkout (default 0)
    - customer_id: required when paid_amount < total
    - customer_name, invoice_number, sale_date, payment_method: optional
    """
    from ..services.sales_service import create_sale

    payload = request.get_json(silent=True) or {}
    store_id = payload.get("store_id")
    if not isinstance(store_id, int) or isinstance(store_id, bool):
        return {"error": "store_id is required"}, 400

    try:
        sale = create_sale(
            store_id=store_id,
            items=payload.get("items"),
            paid_amount=payload.get("paid_amount", 0),
            customer_id=payload.get("customer_id"),
            customer_name=payload.get("customer_name"),
            invoice_number=payload.get("invoice_number"),
            sale_date=payload.get("sale_date"),
            payment_method=payload.get("payment_method") or "CASH",
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return {"error": "Failed to create sale"}, 500

    return {"sale": sale.to_dict()}, 201


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    from ..services.sales_service import load_sale
    from ..services.refund_service import refund_state

    try:
        sale = load_sale(sale_id, store_id=request.args.get("store_id", type=int))
    except DOMAIN_ERRORS as e:
        return error_response(e)

    data = sale.to_dict()
    data["refund_state"] = refund_state(sale)
    return {"sale": data}


@sales_bp.post("/<int:sale_id>/payments")
def record_payment_route(sale_id: int):
    from ..services.sales_service import record_payment

    payload = request.get_json(silent=True) or {}

    try:
        sale = record_payment(
            sale_id=sale_id,
            amount=payload.get("amount"),
            method=payload.get("method"),
            notes=payload.get("notes"),
            store_id=request.args.get("store_id", type=int),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment on sale %s", sale_id)
        return {"error": "Failed to record payment"}, 500

    return {"sale": sale.to_dict()}, 201


@sales_bp.get("/<int:sale_id>/refundable")
def refundable_route(sale_id: int):
    from ..services.sales_service import load_sale
    from ..services.refund_service import refundable_summary

    try:
        sale = load_sale(sale_id, store_id=request.args.get("store_id", type=int))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return refundable_summary(sale)


@sales_bp.post("/<int:sale_id>/refund-preview")
def refund_preview_route(sale_id: int):
    """Breakdown (refund total, debt reduction, cash payout) without writing anything."""
    from ..services.refund_service import refund_preview

    payload = request.get_json(silent=True) or {}

    try:
        return refund_preview(
            sale_id=sale_id,
            items=payload.get("items"),
            store_id=request.args.get("store_id", type=int),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)


@sales_bp.post("/<int:sale_id>/refunds")
def refund_route(sale_id: int):
    """
    Refund items from a sale.

    Body: {items: [{product_id, quantity}], method, reason?}
    Returns the updated sale and the refund record just written.
    """
    from ..services.refund_service import refund, refund_state

    payload = request.get_json(silent=True) or {}

    try:
        sale = refund(
            sale_id=sale_id,
            items=payload.get("items"),
            method=payload.get("method"),
            reason=payload.get("reason"),
            store_id=request.args.get("store_id", type=int),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to refund sale %s", sale_id)
        return {"error": "Failed to process refund"}, 500

    latest = max(sale.refunds, key=lambda r: r.id)
    data = sale.to_dict()
    data["refund_state"] = refund_state(sale)
    return {"sale": data, "refund": latest.to_dict()}, 201
