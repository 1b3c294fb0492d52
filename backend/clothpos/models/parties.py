from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from clothpos.time_utils import to_utc_z
from .columns import AMOUNT, decimal_str


# Which suppliers have provided which products. Maintained by the stock ledger.
supplier_products = db.Table(
    "supplier_products",
    db.Column("supplier_id", db.Integer, db.ForeignKey("suppliers.id"), primary_key=True),
    db.Column("product_id", db.Integer, db.ForeignKey("products.id"), primary_key=True),
)


class Store(db.Model):
    """
    A retail store. Products, suppliers, customers and sales are store-scoped.
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Store id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    """
    Fabric/garment supplier.

    current_balance is what the store owes the supplier. It increases by the
    frozen total_cost of every stock entry attributed to the supplier.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_store_name", "store_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)

    current_balance = db.Column(AMOUNT, nullable=False, default=Decimal("0"))
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("suppliers", lazy=True))
    products = db.relationship(
        "Product",
        secondary=supplier_products,
        lazy="select",
        backref=db.backref("suppliers", lazy="select"),
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r} balance={self.current_balance}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "current_balance": decimal_str(self.current_balance),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class Customer(db.Model):
    """
    Walk-in or account customer.

    balance is the customer's outstanding debt to the store (credit sales
    not yet paid). It never goes below zero.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("store_id", "phone", name="uq_customers_store_phone"),
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)

    balance = db.Column(AMOUNT, nullable=False, default=Decimal("0"))

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "balance": decimal_str(self.balance),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
