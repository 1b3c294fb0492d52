from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from clothpos.time_utils import to_utc_z
from .columns import AMOUNT, MONEY, QUANTITY, decimal_str


PAYMENT_STATUS_PAID = "PAID"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PENDING = "PENDING"

REFUND_STATE_NONE = "NONE"
REFUND_STATE_PARTIAL = "PARTIAL"
REFUND_STATE_FULL = "FULL"


class Sale(db.Model):
    """
    Sale document.

    Money fields:
    - total_amount: sum of line totals at sale time
    - paid_amount: money actually collected (initial payment + later payments)
    - refunded_amount: sum of refund records (debt reduction + cash payout)

    Invariants:
    - refunded_amount == sum(refunds.amount)
    - paid_amount - refunded_amount >= 0
    - per product, refunded quantity never exceeds sold quantity

    version_id is the optimistic lock that serializes concurrent refunds.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("store_id", "invoice_number", name="uq_sales_store_invoice"),
        db.Index("ix_sales_store_status_date", "store_id", "payment_status", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    invoice_number = db.Column(db.String(64), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    total_amount = db.Column(AMOUNT, nullable=False, default=Decimal("0"))
    paid_amount = db.Column(AMOUNT, nullable=False, default=Decimal("0"))
    refunded_amount = db.Column(AMOUNT, nullable=False, default=Decimal("0"))
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("sales", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem", order_by="SaleItem.id", cascade="all, delete-orphan", back_populates="sale"
    )
    payments = db.relationship(
        "SalePayment", order_by="SalePayment.id", cascade="all, delete-orphan", back_populates="sale"
    )
    refunds = db.relationship(
        "SaleRefund",
        order_by=lambda: [SaleRefund.refunded_at, SaleRefund.id],
        cascade="all, delete-orphan",
        back_populates="sale",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def net_paid(self) -> Decimal:
        return (self.paid_amount or Decimal("0")) - (self.refunded_amount or Decimal("0"))

    @property
    def debt_reduced(self) -> Decimal:
        return sum((r.debt_reduction for r in self.refunds), Decimal("0"))

    @property
    def outstanding_amount(self) -> Decimal:
        """What the customer still owes on this sale after refunds wrote debt down."""
        pending = (self.total_amount or Decimal("0")) - (self.paid_amount or Decimal("0")) - self.debt_reduced
        return max(Decimal("0"), pending)

    def to_dict(self, *, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "sale_date": to_utc_z(self.sale_date),
            "total_amount": decimal_str(self.total_amount),
            "paid_amount": decimal_str(self.paid_amount),
            "refunded_amount": decimal_str(self.refunded_amount),
            "net_paid": decimal_str(self.net_paid),
            "outstanding_amount": decimal_str(self.outstanding_amount),
            "payment_status": self.payment_status,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [i.to_dict() for i in self.items]
            data["payment_history"] = [p.to_dict() for p in self.payments]
            data["refund_history"] = [r.to_dict() for r in self.refunds]
        return data


class SaleItem(db.Model):
    """
    Line item. unit_price is frozen at sale time and is what refunds pay back.

    components names the combo pieces sold when a COMBO_SET is sold as a
    single piece or a partial set; NULL means whole sets.
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=True)
    quantity = db.Column(QUANTITY, nullable=False)
    unit_price = db.Column(MONEY, nullable=False)
    line_total = db.Column(AMOUNT, nullable=False)
    components = db.Column(db.JSON, nullable=True)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": decimal_str(self.quantity),
            "unit_price": decimal_str(self.unit_price),
            "line_total": decimal_str(self.line_total),
            "components": list(self.components) if self.components else None,
        }


class SalePayment(db.Model):
    """Payment collected against a sale after checkout (credit sales)."""
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    amount = db.Column(AMOUNT, nullable=False)
    method = db.Column(db.String(32), nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    sale = db.relationship("Sale", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": to_utc_z(self.paid_at),
            "amount": decimal_str(self.amount),
            "method": self.method,
            "notes": self.notes,
        }


class SaleRefund(db.Model):
    """
    One refund transition on a sale.

    amount == debt_reduction + cash_payout. Persisted shape (to_dict) is read
    by reporting/export tooling.
    """
    __tablename__ = "sale_refunds"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=False)

    amount = db.Column(AMOUNT, nullable=False)
    method = db.Column(db.String(32), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    debt_reduction = db.Column(AMOUNT, nullable=False, default=Decimal("0"))
    cash_payout = db.Column(AMOUNT, nullable=False, default=Decimal("0"))

    sale = db.relationship("Sale", back_populates="refunds")
    items = db.relationship(
        "SaleRefundItem", order_by="SaleRefundItem.id", cascade="all, delete-orphan", back_populates="refund"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "date": to_utc_z(self.refunded_at),
            "amount": decimal_str(self.amount),
            "method": self.method,
            "reason": self.reason,
            "debt_reduction": decimal_str(self.debt_reduction),
            "cash_payout": decimal_str(self.cash_payout),
            "items": [i.to_dict() for i in self.items],
        }


class SaleRefundItem(db.Model):
    __tablename__ = "sale_refund_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    refund_id = db.Column(db.Integer, db.ForeignKey("sale_refunds.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(QUANTITY, nullable=False)
    amount = db.Column(AMOUNT, nullable=False)

    refund = db.relationship("SaleRefund", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": decimal_str(self.quantity),
            "amount": decimal_str(self.amount),
        }
