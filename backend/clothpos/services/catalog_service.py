# Overview: Service-layer operations for the product catalog; create, edit, lookup and listing.

# backend/clothpos/services/catalog_service.py
"""
Catalog Service

- create_product validates kind-specific fields, creates the product with
  zero stock, then appends INITIAL_STOCK entries through the stock ledger in
  the same transaction (one per component for COMBO_SET). Stock is never
  written directly.
- update_product: kind is immutable; commercial terms and initial stock are
  guarded by the sale lock; the combo component set is fixed at creation.
- Products are soft-deleted only (is_active=false) so sales keep their
  references.
"""
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    Product,
    Store,
    Category,
    Brand,
    ComboComponent,
    PartialSetPrice,
    KIND_SIMPLE,
    KIND_RAW_MATERIAL,
    KIND_COMBO_SET,
)
from ..errors import NotFoundError
from ..validation import (
    ValidationError,
    ConflictError,
    to_decimal,
    require_non_negative,
    QUANTITY_PLACES,
    MONEY_PLACES,
)
from ..time_utils import utcnow
from .concurrency import run_with_retry
from .inventory_service import load_product
from .ledger_service import append_ledger_event
from .product_kinds import (
    rules_for,
    normalize_kind_fields,
    normalize_partial_set_prices,
    recompute_derived,
    COMPONENT_PLACES,
    assert_invariants,
)
from .stock_ledger_service import append_entry_inner
from .sale_lock_service import guard_locked_fields, correct_initial_stock_inner

# Always editable, locked or not
DESCRIPTIVE_FIELDS = {
    "name",
    "description",
    "category_id",
    "subcategory_id",
    "brand_id",
    "color",
    "fabric_type",
    "pattern",
    "design_number",
    "collection_name",
    "size",
    "piece_count",
    "warranty_months",
    "min_stock_level",
    "is_active",
}

PRICE_FIELDS = {"buying_price", "selling_price"}

# Quantities only move through the stock ledger
STOCK_FIELDS = {"stock_level", "total_meters", "calculated_units", "total_combo_meters"}


def normalize_sku(sku) -> str:
    value = str(sku or "").strip().upper()
    if not value:
        raise ValidationError("sku is required")
    return value


def normalize_barcode(barcode) -> str | None:
    if barcode is None:
        return None
    value = str(barcode).strip()
    return value or None


def _require_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if store is None:
        raise NotFoundError(f"Store {store_id} not found")
    return store


def _check_unique(store_id: int, *, sku: str | None = None, barcode: str | None = None, exclude_id: int | None = None):
    if sku is not None:
        q = db.session.query(Product.id).filter(Product.store_id == store_id, Product.sku == sku)
        if exclude_id is not None:
            q = q.filter(Product.id != exclude_id)
        if q.first():
            raise ConflictError(f"SKU {sku} already exists for this store.")
    if barcode is not None and barcode_exists(store_id, barcode, exclude_id=exclude_id):
        raise ConflictError(f"Barcode {barcode} already exists for this store.")


def _check_references(store_id: int, data: dict) -> None:
    category_id = data.get("category_id")
    subcategory_id = data.get("subcategory_id")
    brand_id = data.get("brand_id")

    if category_id is not None:
        category = db.session.get(Category, category_id)
        if category is None or category.store_id != store_id:
            raise ValidationError("category_id does not reference a category in this store")
    if subcategory_id is not None:
        sub = db.session.get(Category, subcategory_id)
        if sub is None or sub.store_id != store_id:
            raise ValidationError("subcategory_id does not reference a category in this store")
        if category_id is None or sub.parent_id != category_id:
            raise ValidationError("subcategory must belong to the selected category")
    if brand_id is not None:
        brand = db.session.get(Brand, brand_id)
        if brand is None or brand.store_id != store_id:
            raise ValidationError("brand_id does not reference a brand in this store")


def _money(data: dict, field: str, default="0", places: int = MONEY_PLACES) -> Decimal:
    return require_non_negative(to_decimal(data.get(field, default), field, places), field)


# =============================================================================
# CREATE
# =============================================================================

def create_product(*, store_id: int, data: dict) -> Product:
    """
    Create a product and its INITIAL_STOCK entries atomically.

    Initial quantity comes from stock_level (SIMPLE), total_meters
    (RAW_MATERIAL) or each component's stock_level (COMBO_SET). The optional
    initial_stock object carries supplier_id, invoice_number, purchase_date
    and notes for those entries.
    """
    kind = data.get("kind") or KIND_SIMPLE
    rules_for(kind)

    if kind != KIND_SIMPLE and data.get("stock_level") not in (None, 0, "0"):
        raise ValidationError(f"stock_level is derived for {kind} products")
    for field in ("calculated_units", "total_combo_meters"):
        if field in data:
            raise ValidationError(f"{field} is derived and cannot be set")

    kind_fields = normalize_kind_fields(kind, data)
    initial_qty = require_non_negative(
        to_decimal(data.get("stock_level", 0), "stock_level", QUANTITY_PLACES), "stock_level"
    )

    initial_stock = data.get("initial_stock") or {}
    if not isinstance(initial_stock, dict):
        raise ValidationError("initial_stock must be an object")

    sku = normalize_sku(data.get("sku"))
    barcode = normalize_barcode(data.get("barcode"))
    name = str(data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")

    def _op():
        _require_store(store_id)
        _check_unique(store_id, sku=sku, barcode=barcode)
        _check_references(store_id, data)

        product = Product(
            store_id=store_id,
            kind=kind,
            sku=sku,
            barcode=barcode,
            name=name,
            buying_price=_money(data, "buying_price"),
            selling_price=_money(data, "selling_price"),
            min_stock_level=_money(data, "min_stock_level", "5", QUANTITY_PLACES),
            stock_level=Decimal("0"),
            total_meters=Decimal("0"),
            meters_per_unit=kind_fields.get("meters_per_unit", Decimal("0")),
            can_sell_separate=kind_fields.get("can_sell_separate", False),
            can_sell_partial_set=kind_fields.get("can_sell_partial_set", False),
        )
        for field in DESCRIPTIVE_FIELDS - {"name", "min_stock_level", "is_active"}:
            if field in data:
                setattr(product, field, data[field])

        for comp in kind_fields.get("components", []):
            product.components.append(ComboComponent(
                position=comp["position"],
                name=comp["name"],
                meters=comp["meters"],
                buying_price=comp["buying_price"],
                selling_price=comp["selling_price"],
                stock_level=Decimal("0"),
            ))
        for price in kind_fields.get("partial_set_prices", []):
            product.partial_set_prices.append(PartialSetPrice(
                components=price["components"],
                selling_price=price["selling_price"],
            ))

        recompute_derived(product)
        db.session.add(product)
        db.session.flush()

        entry_kwargs = {
            "supplier_id": initial_stock.get("supplier_id"),
            "invoice_number": initial_stock.get("invoice_number"),
            "purchase_date": initial_stock.get("purchase_date"),
            "notes": initial_stock.get("notes"),
        }
        if kind == KIND_COMBO_SET:
            for comp in kind_fields["components"]:
                append_entry_inner(
                    product=product,
                    entry_type="INITIAL_STOCK",
                    quantity=comp["stock_level"],
                    buying_price=comp["buying_price"],
                    component_name=comp["name"],
                    **entry_kwargs,
                )
        else:
            quantity = kind_fields["total_meters"] if kind == KIND_RAW_MATERIAL else initial_qty
            append_entry_inner(
                product=product,
                entry_type="INITIAL_STOCK",
                quantity=quantity,
                buying_price=product.buying_price,
                **entry_kwargs,
            )

        assert_invariants(product)

        append_ledger_event(
            store_id=product.store_id,
            event_type="product.created",
            event_category="product",
            entity_type="product",
            entity_id=product.id,
            occurred_at=utcnow(),
            note=f"Created product sku={product.sku} kind={product.kind} name={product.name}",
        )

        db.session.commit()
        return product

    try:
        return run_with_retry(_op)
    except IntegrityError:
        raise ConflictError("SKU or barcode already exists for this store.")


# =============================================================================
# UPDATE
# =============================================================================

def _apply_component_patch(product: Product, items) -> dict:
    """Apply component edits; returns {name: new buying_price} for repriced components."""
    if not isinstance(items, list):
        raise ValidationError("components must be a list")
    names = []
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("each component must be an object")
        names.append(item.get("name"))
    if set(names) != {c.name for c in product.components} or len(names) != len(product.components):
        raise ValidationError("combo component set cannot change after creation")

    repriced = {}
    for item in items:
        if "stock_level" in item:
            raise ValidationError("component stock changes go through initial_stock corrections or restock")
        comp = product.component(item["name"])
        for field in ("meters", "buying_price", "selling_price"):
            if field in item:
                label = f"{comp.name}.{field}"
                value = require_non_negative(to_decimal(item[field], label, COMPONENT_PLACES[field]), label)
                if field == "buying_price" and value != comp.buying_price:
                    repriced[comp.name] = value
                setattr(comp, field, value)
    return repriced


def update_product(*, product_id: int, patch: dict, store_id: int | None = None) -> Product:
    """
    Apply a product patch.

    Raises ValidationError for kind changes or stock writes, ConflictError on
    SKU/barcode clashes and ProductLockedError when a sold product's locked
    terms would change.
    """
    if not isinstance(patch, dict):
        raise ValidationError("Invalid JSON payload")

    def _op():
        product = load_product(product_id, store_id=store_id, lock=True)

        if "kind" in patch and patch["kind"] != product.kind:
            raise ValidationError("kind cannot be changed after creation")
        written_stock = sorted(STOCK_FIELDS & set(patch))
        if written_stock:
            raise ValidationError(
                f"{', '.join(written_stock)} cannot be edited; use restock, adjust or initial_stock"
            )
        if product.kind != KIND_COMBO_SET:
            combo_only = sorted({"components", "partial_set_prices", "can_sell_separate", "can_sell_partial_set"} & set(patch))
            if combo_only:
                raise ValidationError(f"Fields not allowed for {product.kind}: {', '.join(combo_only)}")
        if product.kind != KIND_RAW_MATERIAL and "meters_per_unit" in patch:
            raise ValidationError(f"Fields not allowed for {product.kind}: meters_per_unit")

        guard_locked_fields(product, patch)

        changed: list[str] = []

        if "sku" in patch:
            sku = normalize_sku(patch["sku"])
            if sku != product.sku:
                _check_unique(product.store_id, sku=sku, exclude_id=product.id)
                product.sku = sku
                changed.append("sku")
        if "barcode" in patch:
            barcode = normalize_barcode(patch["barcode"])
            if barcode != product.barcode:
                _check_unique(product.store_id, barcode=barcode, exclude_id=product.id)
                product.barcode = barcode
                changed.append("barcode")

        refs = {
            "category_id": patch.get("category_id", product.category_id),
            "subcategory_id": patch.get("subcategory_id", product.subcategory_id),
            "brand_id": patch.get("brand_id", product.brand_id),
        }
        if {"category_id", "subcategory_id", "brand_id"} & set(patch):
            _check_references(product.store_id, refs)

        for field in DESCRIPTIVE_FIELDS:
            if field in patch:
                value = patch[field]
                if field == "name":
                    value = str(value or "").strip()
                    if not value:
                        raise ValidationError("name cannot be blank")
                if field == "min_stock_level":
                    value = _money(patch, field, places=QUANTITY_PLACES)
                setattr(product, field, value)
                changed.append(field)

        repriced: dict = {}
        for field in PRICE_FIELDS:
            if field in patch:
                value = _money(patch, field)
                if field == "buying_price" and product.kind != KIND_COMBO_SET and value != product.buying_price:
                    repriced[None] = value
                setattr(product, field, value)
                changed.append(field)

        if "meters_per_unit" in patch:
            product.meters_per_unit = _money(patch, "meters_per_unit", places=QUANTITY_PLACES)
            changed.append("meters_per_unit")

        if "components" in patch:
            repriced.update(_apply_component_patch(product, patch["components"]))
            changed.append("components")
        if "partial_set_prices" in patch:
            names = [c.name for c in product.components]
            prices = normalize_partial_set_prices(patch["partial_set_prices"], names)
            product.partial_set_prices = [
                PartialSetPrice(components=p["components"], selling_price=p["selling_price"]) for p in prices
            ]
            changed.append("partial_set_prices")
        for flag in ("can_sell_separate", "can_sell_partial_set"):
            if flag in patch:
                if not isinstance(patch[flag], bool):
                    raise ValidationError(f"{flag} must be a boolean")
                setattr(product, flag, patch[flag])
                changed.append(flag)

        corrections = patch.get("initial_stock")
        if corrections:
            if isinstance(corrections, dict):
                corrections = [corrections]
            if not isinstance(corrections, list):
                raise ValidationError("initial_stock must be an object or a list of objects")
            for correction in corrections:
                if not isinstance(correction, dict):
                    raise ValidationError("initial_stock must be an object or a list of objects")
                correct_initial_stock_inner(product, correction)
            changed.append("initial_stock")
        elif repriced:
            # Unsold stock is repriced at the new buying price; explicit corrections above take precedence
            for component_name, price in repriced.items():
                correction = {"buying_price": price}
                if component_name is not None:
                    correction["component_name"] = component_name
                correct_initial_stock_inner(product, correction)
            changed.append("initial_stock")

        recompute_derived(product)
        assert_invariants(product)
        db.session.flush()

        if changed:
            append_ledger_event(
                store_id=product.store_id,
                event_type="product.updated",
                event_category="product",
                entity_type="product",
                entity_id=product.id,
                occurred_at=utcnow(),
                note=f"Updated product sku={product.sku}",
                payload={"fields": sorted(set(changed))},
            )

        db.session.commit()
        return product

    try:
        return run_with_retry(_op)
    except IntegrityError:
        raise ConflictError("SKU or barcode already exists for this store.")


def deactivate_product(*, product_id: int, store_id: int | None = None) -> Product:
    """
    Soft-delete a product.

    Hard deletes are never performed: sales, refunds and ledger rows keep
    pointing at the product.
    """
    def _op():
        product = load_product(product_id, store_id=store_id, lock=True)
        if product.is_active:
            product.is_active = False
            append_ledger_event(
                store_id=product.store_id,
                event_type="product.deactivated",
                event_category="product",
                entity_type="product",
                entity_id=product.id,
                occurred_at=utcnow(),
                note=f"Soft-deleted (is_active=false) product sku={product.sku}",
            )
        db.session.commit()
        return product

    return run_with_retry(_op)


# =============================================================================
# READS
# =============================================================================

def get_product(product_id: int, *, store_id: int | None = None) -> Product:
    return load_product(product_id, store_id=store_id)


def get_product_by_sku(store_id: int, sku: str) -> Product:
    normalized = normalize_sku(sku)
    product = (
        db.session.query(Product)
        .filter(Product.store_id == store_id, Product.sku == normalized)
        .first()
    )
    if product is None:
        raise NotFoundError(f"No product with SKU {normalized}")
    return product


def get_product_by_barcode(store_id: int, barcode: str) -> Product:
    normalized = normalize_barcode(barcode)
    if normalized is None:
        raise ValidationError("barcode is required")
    product = (
        db.session.query(Product)
        .filter(Product.store_id == store_id, Product.barcode == normalized)
        .first()
    )
    if product is None:
        raise NotFoundError(f"No product with barcode {normalized}")
    return product


def barcode_exists(store_id: int, barcode: str | None, *, exclude_id: int | None = None) -> bool:
    normalized = normalize_barcode(barcode)
    if normalized is None:
        return False
    q = db.session.query(Product.id).filter(Product.store_id == store_id, Product.barcode == normalized)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    return q.first() is not None


def list_products(
    *,
    store_id: int,
    search: str | None = None,
    kind: str | None = None,
    low_stock: bool = False,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Store-scoped product listing with optional filters and pagination.

    search matches name, SKU or barcode (case-insensitive). low_stock keeps
    products at or below their min_stock_level.
    """
    base_query = db.session.query(Product).filter(Product.store_id == store_id)
    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))
    if kind:
        rules_for(kind)
        base_query = base_query.filter(Product.kind == kind)
    if search:
        like = f"%{search.strip()}%"
        base_query = base_query.filter(or_(
            Product.name.ilike(like),
            Product.sku.ilike(like),
            Product.barcode.ilike(like),
        ))
    if low_stock:
        base_query = base_query.filter(Product.stock_level <= Product.min_stock_level)

    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
