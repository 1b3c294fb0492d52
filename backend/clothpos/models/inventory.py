from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from clothpos.time_utils import to_utc_z
from .columns import AMOUNT, MONEY, QUANTITY, decimal_str


class StockEntry(db.Model):
    """
    Append-only stock ledger row.

    One row per stock-affecting event (initial stock, restock against a
    supplier invoice, manual adjustment, customer return). quantity is in the
    product kind's unit (pcs / meter / set); for COMBO_SET products
    component_name routes the quantity to a single garment piece.

    total_cost = quantity * buying_price is frozen at write time and never
    recalculated when the product's price changes later.

    The only permitted in-place change is the correction of an INITIAL_STOCK
    row on a product that has not been sold yet (see sale_lock_service).
    Rows are never deleted.
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.Index("ix_stock_entries_store_product_created", "store_id", "product_id", "created_at"),
        db.Index("ix_stock_entries_product_type", "product_id", "entry_type"),
        db.Index("ix_stock_entries_purchase_date", "purchase_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    entry_type = db.Column(db.String(16), nullable=False, default="INITIAL_STOCK")
    component_name = db.Column(db.String(32), nullable=True)

    quantity = db.Column(QUANTITY, nullable=False)
    unit = db.Column(db.String(16), nullable=False, default="pcs")
    buying_price = db.Column(MONEY, nullable=False)
    total_cost = db.Column(AMOUNT, nullable=False)

    invoice_number = db.Column(db.String(64), nullable=True)
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    notes = db.Column(db.String(255), nullable=True)

    # RETURN provenance
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    refund_id = db.Column(db.Integer, db.ForeignKey("sale_refunds.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_entries", lazy="dynamic"))
    supplier = db.relationship("Supplier")

    def __repr__(self) -> str:
        return (
            f"<StockEntry id={self.id} product_id={self.product_id} type={self.entry_type} "
            f"qty={self.quantity} cost={self.total_cost}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_id": self.product_id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "entry_type": self.entry_type,
            "component_name": self.component_name,
            "quantity": decimal_str(self.quantity),
            "unit": self.unit,
            "buying_price": decimal_str(self.buying_price),
            "total_cost": decimal_str(self.total_cost),
            "invoice_number": self.invoice_number,
            "purchase_date": to_utc_z(self.purchase_date),
            "notes": self.notes,
            "sale_id": self.sale_id,
            "refund_id": self.refund_id,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockEntry, "before_update")
def _guard_stock_entry_update(mapper, connection, target):
    if target.entry_type != "INITIAL_STOCK":
        raise RuntimeError(f"StockEntry {target.id} is append-only ({target.entry_type})")


@event.listens_for(StockEntry, "before_delete")
def _guard_stock_entry_delete(mapper, connection, target):
    raise RuntimeError(f"StockEntry {target.id} is append-only and cannot be deleted")
