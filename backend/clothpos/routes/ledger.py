# Overview: Flask API routes for the audit ledger; read-only access to ledger events.

from flask import Blueprint, request

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("")
def list_ledger_events_route():
    """
    Newest-first audit events for one store.

    Query params:
    - store_id: int (required)
    - entity_type / entity_id: narrow to one record (e.g. stock_entry, 12)
    - category: product | inventory | sale | payment | refund | balance
    - limit: 1..500 (default 100)
    """
    from ..services.ledger_service import list_ledger_events

    store_id = request.args.get("store_id", type=int)
    if store_id is None:
        return {"error": "store_id is required"}, 400

    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, 500))

    rows = list_ledger_events(
        store_id=store_id,
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id", type=int),
        event_category=request.args.get("category"),
        limit=limit,
    )
    return {"items": [r.to_dict() for r in rows], "limit": limit}
