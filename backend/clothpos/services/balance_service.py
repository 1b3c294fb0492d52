# Overview: Service-layer operations for supplier and customer balances; every change is audited.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Supplier, Customer
from ..errors import ConsistencyViolationError, NotFoundError
from .concurrency import lock_for_update
from .ledger_service import append_ledger_event
"""
Balance Invariants (authoritative)

- Supplier.current_balance: what the store owes the supplier. Moves by the
  frozen total_cost of attributed stock entries (and their corrections).
- Customer.balance: what the customer owes the store. Raised by unpaid sale
  amounts, lowered by later payments and refund debt reduction.
  It never goes below zero; an update that would do so is a bug upstream and
  raises ConsistencyViolationError.
- Every change appends a LedgerEvent (category "balance") in the caller's
  transaction. Callers commit.
"""


def load_supplier(supplier_id: int, *, store_id: int | None = None, lock: bool = False) -> Supplier:
    query = db.session.query(Supplier).filter_by(id=supplier_id)
    if lock:
        query = lock_for_update(query)
    supplier = query.first()
    if supplier is None:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    if store_id is not None and supplier.store_id != store_id:
        raise NotFoundError(f"Supplier {supplier_id} does not belong to store {store_id}")
    return supplier


def load_customer(customer_id: int, *, store_id: int | None = None, lock: bool = False) -> Customer:
    query = db.session.query(Customer).filter_by(id=customer_id)
    if lock:
        query = lock_for_update(query)
    customer = query.first()
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    if store_id is not None and customer.store_id != store_id:
        raise NotFoundError(f"Customer {customer_id} does not belong to store {store_id}")
    return customer


def adjust_supplier_balance(
    supplier: Supplier,
    delta: Decimal,
    *,
    reason: str,
    source_type: str,
    source_id: int,
) -> Supplier:
    if delta == 0:
        return supplier

    before = supplier.current_balance or Decimal("0")
    supplier.current_balance = before + delta
    db.session.flush()

    append_ledger_event(
        store_id=supplier.store_id,
        event_type="supplier.balance_adjusted",
        event_category="balance",
        entity_type="supplier",
        entity_id=supplier.id,
        amount=delta,
        note=reason,
        payload={
            "before": before,
            "after": supplier.current_balance,
            "source_type": source_type,
            "source_id": source_id,
        },
    )
    current_app.logger.info(
        "Supplier %s balance %s -> %s (%s %s)",
        supplier.id, before, supplier.current_balance, source_type, source_id,
    )
    return supplier


def adjust_customer_balance(
    customer: Customer,
    delta: Decimal,
    *,
    reason: str,
    source_type: str,
    source_id: int,
) -> Customer:
    if delta == 0:
        return customer

    before = customer.balance or Decimal("0")
    after = before + delta
    if after < 0:
        message = f"Customer {customer.id} balance would become negative ({before} + {delta})"
        current_app.logger.error(message)
        raise ConsistencyViolationError(message)

    customer.balance = after
    db.session.flush()

    append_ledger_event(
        store_id=customer.store_id,
        event_type="customer.balance_adjusted",
        event_category="balance",
        entity_type="customer",
        entity_id=customer.id,
        amount=delta,
        note=reason,
        payload={
            "before": before,
            "after": after,
            "source_type": source_type,
            "source_id": source_id,
        },
    )
    current_app.logger.info(
        "Customer %s balance %s -> %s (%s %s)",
        customer.id, before, after, source_type, source_id,
    )
    return customer
