# Overview: Service-layer operations for inventory; the single writer of product stock.

# backend/clothpos/services/inventory_service.py

from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockEntry, KIND_SIMPLE, KIND_RAW_MATERIAL, KIND_COMBO_SET
from ..errors import InsufficientStockError, NotFoundError
from ..validation import ValidationError, to_decimal
from .concurrency import lock_for_update
from .product_kinds import recompute_derived, assert_invariants
"""
Inventory Mutator Invariants (authoritative)

Single writer:
- Product.stock_level (and RAW_MATERIAL total_meters, COMBO_SET component
  stock) change only through apply_stock_entry() or consume_for_sale().
- Direct edits elsewhere are a bug; catalog corrections route through here too.

Dispatch by kind (one function, no parallel code paths):
- SIMPLE: stock_level += delta
- RAW_MATERIAL: total_meters += delta, then stock_level/calculated_units are
  re-derived (never incremented independently)
- COMBO_SET: delta applied to the named component(s); no name means whole
  sets, i.e. every component. Then stock_level/total_combo_meters re-derived.

Failure:
- A delta that would drive any stock quantity negative raises
  InsufficientStockError before anything is written.
- After every mutation the kind invariants are asserted; a failure raises
  ConsistencyViolationError and the caller's transaction rolls back.

Quantity/price validation happens earlier, at the stock ledger boundary.
"""

ZERO = Decimal("0")


def load_product(product_id: int, *, store_id: int | None = None, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    if store_id is not None and product.store_id != store_id:
        raise NotFoundError(f"Product {product_id} does not belong to store {store_id}")
    return product


def _apply_simple(product: Product, delta: Decimal, components) -> None:
    new_level = (product.stock_level or ZERO) + delta
    if new_level < 0:
        raise InsufficientStockError(
            f"Insufficient stock for {product.sku}: have {product.stock_level}, need {-delta}",
            product_id=product.id,
        )
    product.stock_level = new_level


def _apply_raw_material(product: Product, delta: Decimal, components) -> None:
    new_meters = (product.total_meters or ZERO) + delta
    if new_meters < 0:
        raise InsufficientStockError(
            f"Insufficient fabric for {product.sku}: have {product.total_meters} m, need {-delta} m",
            product_id=product.id,
        )
    product.total_meters = new_meters
    recompute_derived(product)


def _apply_combo_set(product: Product, delta: Decimal, components) -> None:
    if components:
        targets = []
        for name in components:
            comp = product.component(name)
            if comp is None:
                raise ValidationError(f"{product.sku} has no component {name}")
            targets.append(comp)
    else:
        targets = list(product.components)

    # Check every target before touching any, so a rejection writes nothing
    for comp in targets:
        if comp.stock_level + delta < 0:
            raise InsufficientStockError(
                f"Insufficient stock for {product.sku} {comp.name}: have {comp.stock_level}, need {-delta}",
                product_id=product.id,
                component=comp.name,
            )
    for comp in targets:
        comp.stock_level = comp.stock_level + delta
    recompute_derived(product)


_MUTATORS = {
    KIND_SIMPLE: _apply_simple,
    KIND_RAW_MATERIAL: _apply_raw_material,
    KIND_COMBO_SET: _apply_combo_set,
}


def _apply_delta(product: Product, delta: Decimal, components: list[str] | None = None) -> Product:
    mutate = _MUTATORS.get(product.kind)
    if mutate is None:
        raise ValidationError(f"Unsupported product kind {product.kind}")
    if components and product.kind != KIND_COMBO_SET:
        raise ValidationError("components apply to COMBO_SET products only")

    mutate(product, delta, components)
    assert_invariants(product)
    db.session.flush()
    return product


def apply_stock_entry(product: Product, entry: StockEntry) -> Product:
    """Apply a freshly appended ledger entry to the product's derived stock."""
    components = [entry.component_name] if entry.component_name else None
    return _apply_delta(product, entry.quantity, components)


def apply_correction(product: Product, delta: Decimal, component_name: str | None = None) -> Product:
    """Apply the quantity change of an INITIAL_STOCK correction (unlocked products only)."""
    if delta == 0:
        return product
    return _apply_delta(product, delta, [component_name] if component_name else None)


def consume_for_sale(product: Product, quantity, components: list[str] | None = None) -> Product:
    """
    Decrement stock for a finalized sale line.

    Called by the sales module. For COMBO_SET products components selects the
    pieces sold (None means whole sets).
    """
    qty = to_decimal(quantity, "quantity")
    if qty <= 0:
        raise ValidationError("quantity must be > 0")
    return _apply_delta(product, -qty, components)


def get_inventory_summary(*, product_id: int, store_id: int | None = None) -> dict:
    product = load_product(product_id, store_id=store_id)

    totals = db.session.query(
        func.coalesce(func.sum(StockEntry.quantity), 0).label("qty"),
        func.coalesce(func.sum(StockEntry.total_cost), 0).label("cost"),
        func.count(StockEntry.id).label("entries"),
    ).filter(StockEntry.product_id == product.id).one()

    stock = product.stock_level or ZERO
    return {
        "store_id": product.store_id,
        "product_id": product.id,
        "kind": product.kind,
        "unit": product.base_unit,
        "stock_level": str(stock),
        "min_stock_level": str(product.min_stock_level),
        "is_low_stock": product.is_low_stock,
        "inventory_value": str(stock * (product.buying_price or ZERO)),
        "ledger_quantity": str(Decimal(str(totals.qty))),
        "ledger_cost": str(Decimal(str(totals.cost))),
        "ledger_entries": int(totals.entries),
    }
