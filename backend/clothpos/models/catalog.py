from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from clothpos.time_utils import to_utc_z
from .columns import MONEY, QUANTITY, decimal_str


KIND_SIMPLE = "SIMPLE"
KIND_RAW_MATERIAL = "RAW_MATERIAL"
KIND_COMBO_SET = "COMBO_SET"
PRODUCT_KINDS = (KIND_SIMPLE, KIND_RAW_MATERIAL, KIND_COMBO_SET)

# Garment pieces a combo set may be made of
COMBO_COMPONENT_NAMES = ("Dupatta", "Shalwar", "Qameez", "Trouser", "Kurta", "Waistcoat")


class Category(db.Model):
    """Product category. A subcategory is a category with a parent."""
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("store_id", "parent_id", "name", name="uq_categories_store_parent_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    name = db.Column(db.String(128), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    parent = db.relationship("Category", remote_side=[id], backref="children")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "parent_id": self.parent_id,
            "name": self.name,
            "is_active": self.is_active,
        }


class Brand(db.Model):
    __tablename__ = "brands"
    __table_args__ = (
        db.UniqueConstraint("store_id", "name", name="uq_brands_store_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "store_id": self.store_id, "name": self.name, "is_active": self.is_active}


class Product(db.Model):
    """
    Catalog entry. One row per sellable product, in one of three kinds.

    KIND (immutable after creation):
    - SIMPLE: sold per piece; stock_level counts pieces.
    - RAW_MATERIAL: unstitched fabric sold per meter. total_meters is
      authoritative, stock_level mirrors it, calculated_units is informational
      (how many suits the fabric would make at meters_per_unit).
    - COMBO_SET: multi-piece suit. Each component carries its own stock;
      stock_level is the number of complete sets (minimum over components).

    STOCK:
    stock_level is a materialized view over the StockEntry ledger and sale
    consumption. Only services.inventory_service writes it.

    SKU / BARCODE:
    SKU is upper-cased and unique within a store. Barcode is optional; when
    present it is unique within a store (blank barcodes are stored as NULL).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("store_id", "sku", name="uq_products_store_sku"),
        db.UniqueConstraint("store_id", "barcode", name="uq_products_store_barcode"),
        db.Index("ix_products_store_name", "store_id", "name"),
        db.Index("ix_products_store_kind", "store_id", "kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False, default=KIND_SIMPLE)

    # Identity
    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    subcategory_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True)

    # Descriptive attributes (clothing)
    color = db.Column(db.String(64), nullable=True)
    fabric_type = db.Column(db.String(64), nullable=True)
    pattern = db.Column(db.String(64), nullable=True)
    design_number = db.Column(db.String(64), nullable=True)
    collection_name = db.Column(db.String(128), nullable=True)
    size = db.Column(db.String(32), nullable=True)
    piece_count = db.Column(db.String(32), nullable=True)
    warranty_months = db.Column(db.Integer, nullable=True)

    # Units (derived from kind)
    base_unit = db.Column(db.String(16), nullable=False, default="pcs")
    sell_by_unit = db.Column(db.String(16), nullable=False, default="pcs")

    # Commercial terms (per piece / per meter / per set)
    buying_price = db.Column(MONEY, nullable=False, default=Decimal("0"))
    selling_price = db.Column(MONEY, nullable=False, default=Decimal("0"))

    stock_level = db.Column(QUANTITY, nullable=False, default=Decimal("0"))
    min_stock_level = db.Column(QUANTITY, nullable=False, default=Decimal("5"))

    # RAW_MATERIAL
    total_meters = db.Column(QUANTITY, nullable=False, default=Decimal("0"))
    meters_per_unit = db.Column(QUANTITY, nullable=False, default=Decimal("0"))
    calculated_units = db.Column(db.Integer, nullable=False, default=0)

    # COMBO_SET
    total_combo_meters = db.Column(QUANTITY, nullable=False, default=Decimal("0"))
    can_sell_separate = db.Column(db.Boolean, nullable=False, default=False)
    can_sell_partial_set = db.Column(db.Boolean, nullable=False, default=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("products", lazy=True))
    category = db.relationship("Category", foreign_keys=[category_id])
    subcategory = db.relationship("Category", foreign_keys=[subcategory_id])
    brand = db.relationship("Brand")
    components = db.relationship(
        "ComboComponent",
        order_by="ComboComponent.position",
        cascade="all, delete-orphan",
        back_populates="product",
    )
    partial_set_prices = db.relationship(
        "PartialSetPrice",
        order_by="PartialSetPrice.id",
        cascade="all, delete-orphan",
        back_populates="product",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} kind={self.kind} stock={self.stock_level}>"

    @property
    def is_low_stock(self) -> bool:
        return (self.stock_level or 0) <= (self.min_stock_level or 0)

    def component(self, name: str) -> "ComboComponent | None":
        for comp in self.components:
            if comp.name == name:
                return comp
        return None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "kind": self.kind,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "subcategory_id": self.subcategory_id,
            "brand_id": self.brand_id,
            "color": self.color,
            "fabric_type": self.fabric_type,
            "pattern": self.pattern,
            "design_number": self.design_number,
            "collection_name": self.collection_name,
            "size": self.size,
            "piece_count": self.piece_count,
            "warranty_months": self.warranty_months,
            "base_unit": self.base_unit,
            "sell_by_unit": self.sell_by_unit,
            "buying_price": decimal_str(self.buying_price),
            "selling_price": decimal_str(self.selling_price),
            "stock_level": decimal_str(self.stock_level),
            "min_stock_level": decimal_str(self.min_stock_level),
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if self.kind == KIND_RAW_MATERIAL:
            data.update({
                "total_meters": decimal_str(self.total_meters),
                "meters_per_unit": decimal_str(self.meters_per_unit),
                "calculated_units": self.calculated_units,
            })
        elif self.kind == KIND_COMBO_SET:
            data.update({
                "components": [c.to_dict() for c in self.components],
                "total_combo_meters": decimal_str(self.total_combo_meters),
                "can_sell_separate": self.can_sell_separate,
                "can_sell_partial_set": self.can_sell_partial_set,
                "partial_set_prices": [p.to_dict() for p in self.partial_set_prices],
            })
        return data


class ComboComponent(db.Model):
    """One garment piece of a COMBO_SET, kept in a stable position order."""
    __tablename__ = "combo_components"
    __table_args__ = (
        db.UniqueConstraint("product_id", "name", name="uq_combo_components_product_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    name = db.Column(db.String(32), nullable=False)
    meters = db.Column(QUANTITY, nullable=False, default=Decimal("0"))
    buying_price = db.Column(MONEY, nullable=False, default=Decimal("0"))
    selling_price = db.Column(MONEY, nullable=False, default=Decimal("0"))
    stock_level = db.Column(QUANTITY, nullable=False, default=Decimal("0"))

    product = db.relationship("Product", back_populates="components")

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "position": self.position,
            "meters": decimal_str(self.meters),
            "buying_price": decimal_str(self.buying_price),
            "selling_price": decimal_str(self.selling_price),
            "stock_level": decimal_str(self.stock_level),
        }


class PartialSetPrice(db.Model):
    """Selling price for a two-piece subset of a combo (e.g. Qameez + Shalwar)."""
    __tablename__ = "partial_set_prices"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    components = db.Column(db.JSON, nullable=False)
    selling_price = db.Column(MONEY, nullable=False)

    product = db.relationship("Product", back_populates="partial_set_prices")

    def to_dict(self) -> dict:
        return {
            "components": list(self.components or []),
            "selling_price": decimal_str(self.selling_price),
        }
