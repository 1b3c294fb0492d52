# Overview: Service-layer operations for the stock ledger; append-only entries that drive stock.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Product, StockEntry, Supplier, KIND_COMBO_SET
from ..validation import ValidationError, to_decimal, enforce_rules_stock_entry, require_max_length
from ..time_utils import normalize_business_time
from .concurrency import run_with_retry
from .inventory_service import load_product, apply_stock_entry
from .balance_service import load_supplier, adjust_supplier_balance
from .ledger_service import append_ledger_event
from .product_kinds import unit_for
"""
Stock Ledger Invariants (authoritative)

Append-only:
- Every stock-affecting event is one StockEntry row; rows are never deleted.
- total_cost = quantity * buying_price is computed once, at append time, and
  is never recalculated from later price changes.
- The only in-place edit is an INITIAL_STOCK correction on an unlocked
  product (sale_lock_service.correct_initial_stock).

One atomic unit per append:
- StockEntry insert
- Inventory Mutator side effect (product stock / derived fields)
- supplier.current_balance += total_cost, supplier<->product association
- LedgerEvent "stock.<entry_type>"
Either all of it is committed or none of it.

Boundary validation (ValidationError, nothing written):
- INITIAL_STOCK quantity >= 0; RESTOCK / RETURN > 0; ADJUSTMENT != 0
- buying_price >= 0
- unit must match the product kind (pcs / meter / set)
- component_name only on COMBO_SET products and must name a component
- supplier must belong to the product's store

Not idempotent: two identical calls append two entries.
"""


def _resolve_buying_price(product: Product, buying_price, component_name: str | None) -> Decimal:
    if buying_price is not None:
        return to_decimal(buying_price, "buying_price")
    if component_name:
        return product.component(component_name).buying_price
    return product.buying_price or Decimal("0")


def append_entry_inner(
    *,
    product: Product,
    entry_type: str,
    quantity,
    buying_price=None,
    unit: str | None = None,
    supplier_id: int | None = None,
    invoice_number: str | None = None,
    notes: str | None = None,
    component_name: str | None = None,
    purchase_date=None,
    sale_id: int | None = None,
    refund_id: int | None = None,
) -> StockEntry:
    """
    Append one entry against an already loaded (and locked) product.

    Does not commit; callers running a larger unit of work (catalog create,
    refunds) compose this with their own writes.
    """
    qty = to_decimal(quantity, "quantity")

    expected_unit = unit_for(product.kind)
    if unit is not None and unit != expected_unit:
        raise ValidationError(f"unit must be '{expected_unit}' for {product.kind} products")

    if component_name is not None:
        if product.kind != KIND_COMBO_SET:
            raise ValidationError("component_name is only valid for COMBO_SET products")
        if product.component(component_name) is None:
            raise ValidationError(f"{product.sku} has no component {component_name}")

    price = _resolve_buying_price(product, buying_price, component_name)
    enforce_rules_stock_entry(entry_type, qty, price)
    invoice_number = require_max_length(invoice_number, 64, "invoice_number")
    notes = require_max_length(notes, 255, "notes")

    supplier: Supplier | None = None
    if supplier_id is not None:
        supplier = load_supplier(supplier_id, lock=True)
        if supplier.store_id != product.store_id:
            raise ValidationError("supplier does not belong to the product's store")

    try:
        purchase_dt = normalize_business_time(purchase_date)
    except ValueError:
        raise ValidationError("purchase_date must be an ISO-8601 date or datetime")

    entry = StockEntry(
        store_id=product.store_id,
        product_id=product.id,
        supplier_id=supplier.id if supplier else None,
        entry_type=entry_type,
        component_name=component_name,
        quantity=qty,
        unit=expected_unit,
        buying_price=price,
        total_cost=qty * price,
        invoice_number=invoice_number,
        purchase_date=purchase_dt,
        notes=notes,
        sale_id=sale_id,
        refund_id=refund_id,
    )
    db.session.add(entry)
    db.session.flush()

    apply_stock_entry(product, entry)

    if supplier is not None:
        if product not in supplier.products:
            supplier.products.append(product)
        adjust_supplier_balance(
            supplier,
            entry.total_cost,
            reason=f"{entry_type} {product.sku}",
            source_type="stock_entry",
            source_id=entry.id,
        )

    append_ledger_event(
        store_id=product.store_id,
        event_type=f"stock.{entry_type.lower()}",
        event_category="inventory",
        entity_type="stock_entry",
        entity_id=entry.id,
        amount=entry.total_cost,
        occurred_at=purchase_dt,
        note=entry.notes,
        payload={
            "product_id": product.id,
            "quantity": qty,
            "unit": expected_unit,
            "component_name": component_name,
            "supplier_id": entry.supplier_id,
            "stock_level_after": product.stock_level,
        },
    )
    return entry


def append_entry(
    *,
    product_id: int,
    entry_type: str,
    quantity,
    buying_price=None,
    unit: str | None = None,
    supplier_id: int | None = None,
    invoice_number: str | None = None,
    notes: str | None = None,
    component_name: str | None = None,
    purchase_date=None,
    store_id: int | None = None,
) -> StockEntry:
    """
    Append a stock entry and apply it, as one committed transaction.

    buying_price defaults to the product's (or the component's) current
    buying price when omitted.
    """
    def _op():
        product = load_product(product_id, store_id=store_id, lock=True)
        entry = append_entry_inner(
            product=product,
            entry_type=entry_type,
            quantity=quantity,
            buying_price=buying_price,
            unit=unit,
            supplier_id=supplier_id,
            invoice_number=invoice_number,
            notes=notes,
            component_name=component_name,
            purchase_date=purchase_date,
        )
        db.session.commit()
        current_app.logger.info(
            "Stock entry %s %s qty=%s on product %s", entry.id, entry_type, entry.quantity, product.id
        )
        return entry

    return run_with_retry(_op)


def restock(
    *,
    product_id: int,
    quantity,
    buying_price,
    unit: str | None = None,
    supplier_id: int | None = None,
    invoice_number: str | None = None,
    purchase_date=None,
    notes: str | None = None,
    component_name: str | None = None,
    store_id: int | None = None,
) -> StockEntry:
    """
    Record new stock bought from a supplier. Allowed whether or not the
    product is sale-locked; the product's own prices are left untouched.
    """
    return append_entry(
        product_id=product_id,
        entry_type="RESTOCK",
        quantity=quantity,
        buying_price=buying_price,
        unit=unit,
        supplier_id=supplier_id,
        invoice_number=invoice_number,
        purchase_date=purchase_date,
        notes=notes,
        component_name=component_name,
        store_id=store_id,
    )


def adjust(
    *,
    product_id: int,
    quantity,
    notes: str | None = None,
    component_name: str | None = None,
    store_id: int | None = None,
) -> StockEntry:
    """Manual correction (damage, recount). Costed at the current buying price."""
    return append_entry(
        product_id=product_id,
        entry_type="ADJUSTMENT",
        quantity=quantity,
        notes=notes,
        component_name=component_name,
        store_id=store_id,
    )


class StockHistory:
    """
    Reverse-chronological view over one product's ledger.

    Iterating runs a fresh query each time, so the same object can be
    iterated again after new entries are appended.
    """

    def __init__(self, product_id: int, limit: int):
        self.product_id = product_id
        self.limit = limit

    def _query(self):
        return (
            db.session.query(StockEntry)
            .filter(StockEntry.product_id == self.product_id)
            .order_by(StockEntry.created_at.desc(), StockEntry.id.desc())
            .limit(self.limit)
        )

    def __iter__(self):
        return iter(self._query())

    def __repr__(self) -> str:
        return f"<StockHistory product_id={self.product_id} limit={self.limit}>"


def history(product: Product, limit: int | None = None) -> StockHistory:
    if limit is None:
        limit = current_app.config.get("HISTORY_DEFAULT_LIMIT", 20)
    if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
        raise ValidationError("limit must be a positive integer")
    return StockHistory(product.id, limit)


def get_initial_stock_entries(product: Product) -> list[StockEntry]:
    return (
        db.session.query(StockEntry)
        .filter(StockEntry.product_id == product.id, StockEntry.entry_type == "INITIAL_STOCK")
        .order_by(StockEntry.id.asc())
        .all()
    )
