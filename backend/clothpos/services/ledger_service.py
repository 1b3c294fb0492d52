# Overview: Service-layer operations for the audit ledger; encapsulates database work.

from __future__ import annotations

import json
from decimal import Decimal
from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import LedgerEvent, Store
from ..time_utils import utcnow
"""
Audit Ledger Invariants (authoritative)

- Append-only audit log for balance changes, stock entries and refunds.
- No domain/business logic in the ledger itself.
- Events are written inside the same DB transaction as the domain change they
  record, after the balance field is already updated.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_ledger_event(
    *,
    store_id: int,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    amount: Decimal | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    """
    Append-only audit event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - payload is serialized as JSON (Decimals become strings).
    """
    store = db.session.get(Store, store_id)
    if not store:
        raise ValueError(f"Store {store_id} not found for ledger event")

    ev = LedgerEvent(
        store_id=store_id,
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        amount=amount,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else note,
        payload=json.dumps(payload, default=str, sort_keys=True) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_ledger_events(
    *,
    store_id: int,
    entity_type: str | None = None,
    entity_id: int | None = None,
    event_category: str | None = None,
    limit: int = 200,
) -> list[LedgerEvent]:
    q = db.session.query(LedgerEvent).filter(LedgerEvent.store_id == store_id)
    if entity_type is not None:
        q = q.filter(LedgerEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(LedgerEvent.entity_id == entity_id)
    if event_category is not None:
        q = q.filter(LedgerEvent.event_category == event_category)
    return q.order_by(LedgerEvent.id.desc()).limit(limit).all()
