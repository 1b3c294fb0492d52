from __future__ import annotations

from ..extensions import db
from clothpos.time_utils import to_utc_z
from .columns import AMOUNT, decimal_str


class LedgerEvent(db.Model):
    """
    Append-only audit event, written in the same DB transaction as the change
    it records. The accounting module reads these to post its own
    transactions; by the time an event is visible the balance field it
    describes is already updated.
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_store_occurred", "store_id", "occurred_at"),
        db.Index("ix_ledger_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    # What happened
    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g. stock.restock, sale.refunded
    event_category = db.Column(db.String(32), nullable=False, index=True)  # product, inventory, sale, payment, refund, balance

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    # Signed money delta for balance events
    amount = db.Column(AMOUNT, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "amount": decimal_str(self.amount),
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }
