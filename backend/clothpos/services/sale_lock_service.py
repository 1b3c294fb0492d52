# Overview: Service-layer operations for the sale lock; guards commercial terms once a product has sold.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Product, SaleItem, StockEntry, KIND_COMBO_SET
from ..errors import NotFoundError, ProductLockedError
from ..validation import ValidationError, to_decimal, enforce_rules_stock_entry
from .concurrency import run_with_retry
from .inventory_service import load_product, apply_correction
from .balance_service import load_supplier, adjust_supplier_balance
from .ledger_service import append_ledger_event
from .product_kinds import normalize_partial_set_prices
"""
Sale Lock Invariants (authoritative)

- A product is locked iff at least one SaleItem references it.
- Locked: buying_price, selling_price, combo component prices, partial-set
  prices, initial stock quantities and supplier attribution are read-only.
  A patch that tries to change any of them raises ProductLockedError; the
  rest of the patch is not applied either.
- Identity and descriptive fields stay editable. RESTOCK is always allowed.
- Unlocked: INITIAL_STOCK entries may be corrected in place. The quantity
  delta goes through the Inventory Mutator and supplier balances move by the
  frozen total_cost difference.
"""

_UNSET = object()


def is_locked(product: Product) -> bool:
    hit = db.session.query(SaleItem.id).filter(SaleItem.product_id == product.id).first()
    return hit is not None


def lock_status(product: Product) -> dict:
    sales_count = (
        db.session.query(func.count(func.distinct(SaleItem.sale_id)))
        .filter(SaleItem.product_id == product.id)
        .scalar()
    ) or 0
    return {"product_id": product.id, "locked": sales_count > 0, "sales_count": int(sales_count)}


def locked_changes(product: Product, patch: dict) -> list[str]:
    """Names of locked terms the patch would actually change (same value is not a change)."""
    changed: list[str] = []

    for field in ("buying_price", "selling_price"):
        if field in patch and to_decimal(patch[field], field) != getattr(product, field):
            changed.append(field)

    if product.kind == KIND_COMBO_SET and isinstance(patch.get("components"), list):
        for item in patch["components"]:
            if not isinstance(item, dict):
                continue
            comp = product.component(item.get("name"))
            if comp is None:
                continue
            for field in ("buying_price", "selling_price"):
                if field in item and to_decimal(item[field], field) != getattr(comp, field):
                    changed.append(f"{comp.name}.{field}")

    if product.kind == KIND_COMBO_SET and "partial_set_prices" in patch:
        names = [c.name for c in product.components]
        wanted = normalize_partial_set_prices(patch["partial_set_prices"], names)
        current = [{"components": list(p.components), "selling_price": p.selling_price}
                   for p in product.partial_set_prices]
        if wanted != current:
            changed.append("partial_set_prices")

    if patch.get("initial_stock"):
        changed.append("initial_stock")

    return changed


def guard_locked_fields(product: Product, patch: dict) -> None:
    if not is_locked(product):
        return
    changed = locked_changes(product, patch)
    if changed:
        raise ProductLockedError(
            f"Product {product.sku} has sales; locked fields cannot change: {', '.join(changed)}"
        )


def _find_initial_entry(product: Product, correction: dict) -> StockEntry:
    query = db.session.query(StockEntry).filter(
        StockEntry.product_id == product.id,
        StockEntry.entry_type == "INITIAL_STOCK",
    )
    entry_id = correction.get("entry_id")
    if entry_id is not None:
        query = query.filter(StockEntry.id == entry_id)
    elif product.kind == KIND_COMBO_SET:
        component_name = correction.get("component_name")
        if not component_name:
            raise ValidationError("component_name or entry_id is required for COMBO_SET corrections")
        query = query.filter(StockEntry.component_name == component_name)

    entries = query.order_by(StockEntry.id.asc()).all()
    if not entries:
        raise NotFoundError(f"No INITIAL_STOCK entry found for product {product.id}")
    if len(entries) > 1:
        raise ValidationError("More than one INITIAL_STOCK entry matches; pass entry_id")
    return entries[0]


def _drop_supplier_link_if_unused(supplier, product: Product, exclude_entry_id: int) -> None:
    still_used = (
        db.session.query(StockEntry.id)
        .filter(
            StockEntry.product_id == product.id,
            StockEntry.supplier_id == supplier.id,
            StockEntry.id != exclude_entry_id,
        )
        .first()
    )
    if still_used is None and product in supplier.products:
        supplier.products.remove(product)


def correct_initial_stock_inner(product: Product, correction: dict) -> StockEntry:
    """
    Correct one INITIAL_STOCK entry of an unlocked product. Does not commit.

    correction keys: entry_id / component_name (which entry), quantity,
    buying_price, supplier_id (None detaches the supplier).
    """
    if is_locked(product):
        raise ProductLockedError(f"Product {product.sku} has sales; initial stock cannot be corrected")

    entry = _find_initial_entry(product, correction)

    old_qty = entry.quantity
    old_total = entry.total_cost
    old_supplier_id = entry.supplier_id

    new_qty = to_decimal(correction["quantity"], "quantity") if "quantity" in correction else old_qty
    new_price = (
        to_decimal(correction["buying_price"], "buying_price")
        if "buying_price" in correction
        else entry.buying_price
    )
    enforce_rules_stock_entry("INITIAL_STOCK", new_qty, new_price)
    new_total = new_qty * new_price

    new_supplier_id = correction.get("supplier_id", _UNSET)
    if new_supplier_id is _UNSET:
        new_supplier_id = old_supplier_id

    new_supplier = None
    if new_supplier_id is not None:
        new_supplier = load_supplier(new_supplier_id, lock=True)
        if new_supplier.store_id != product.store_id:
            raise ValidationError("supplier does not belong to the product's store")

    apply_correction(product, new_qty - old_qty, entry.component_name)

    entry.quantity = new_qty
    entry.buying_price = new_price
    entry.total_cost = new_total
    entry.supplier_id = new_supplier_id
    db.session.flush()

    if old_supplier_id == new_supplier_id:
        if new_supplier is not None:
            adjust_supplier_balance(
                new_supplier,
                new_total - old_total,
                reason=f"INITIAL_STOCK correction {product.sku}",
                source_type="stock_entry",
                source_id=entry.id,
            )
    else:
        if old_supplier_id is not None:
            old_supplier = load_supplier(old_supplier_id, lock=True)
            adjust_supplier_balance(
                old_supplier,
                -old_total,
                reason=f"INITIAL_STOCK moved away {product.sku}",
                source_type="stock_entry",
                source_id=entry.id,
            )
            _drop_supplier_link_if_unused(old_supplier, product, entry.id)
        if new_supplier is not None:
            if product not in new_supplier.products:
                new_supplier.products.append(product)
            adjust_supplier_balance(
                new_supplier,
                new_total,
                reason=f"INITIAL_STOCK moved in {product.sku}",
                source_type="stock_entry",
                source_id=entry.id,
            )

    append_ledger_event(
        store_id=product.store_id,
        event_type="stock.initial_corrected",
        event_category="inventory",
        entity_type="stock_entry",
        entity_id=entry.id,
        amount=new_total - old_total,
        note=f"INITIAL_STOCK correction for {product.sku}",
        payload={
            "product_id": product.id,
            "component_name": entry.component_name,
            "quantity": {"before": old_qty, "after": new_qty},
            "total_cost": {"before": old_total, "after": new_total},
            "supplier_id": {"before": old_supplier_id, "after": new_supplier_id},
        },
    )
    return entry


def correct_initial_stock(*, product_id: int, correction: dict, store_id: int | None = None) -> StockEntry:
    def _op():
        product = load_product(product_id, store_id=store_id, lock=True)
        entry = correct_initial_stock_inner(product, correction)
        db.session.commit()
        return entry

    return run_with_retry(_op)


def initial_stock_total(product: Product) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(StockEntry.total_cost), 0))
        .filter(StockEntry.product_id == product.id, StockEntry.entry_type == "INITIAL_STOCK")
        .scalar()
    )
    return Decimal(str(total))
