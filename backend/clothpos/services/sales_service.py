# Overview: Service-layer operations for sales; checkout, stock consumption and later payments.

# backend/clothpos/services/sales_service.py

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import (
    Sale,
    SaleItem,
    SalePayment,
    Product,
    KIND_COMBO_SET,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PENDING,
)
from ..errors import NotFoundError
from ..validation import (
    ValidationError,
    ConflictError,
    to_decimal,
    require_non_negative,
    require_max_length,
    QUANTITY_PLACES,
    MONEY_PLACES,
    AMOUNT_PLACES,
)
from ..time_utils import normalize_business_time, utcnow
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import load_product, consume_for_sale
from .balance_service import load_customer, adjust_customer_balance
from .ledger_service import append_ledger_event
"""
Sales Invariants (authoritative)

- unit_price is frozen on the SaleItem at checkout; refunds pay it back.
- A product appears on at most one line per sale.
- Stock is consumed through the Inventory Mutator in the checkout transaction.
- paid_amount <= total_amount at checkout; later payments cannot exceed the
  outstanding amount.
- Customer.balance carries the unpaid part of credit sales; a sale with an
  outstanding amount requires a customer.
- payment_status is derived, never set by callers:
    outstanding == 0            -> PAID
    outstanding > 0, paid > 0   -> PARTIAL
    otherwise                   -> PENDING
"""

ZERO = Decimal("0")


def derive_payment_status(sale: Sale) -> str:
    if sale.outstanding_amount == 0:
        return PAYMENT_STATUS_PAID
    if (sale.paid_amount or ZERO) > 0:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_PENDING


def load_sale(sale_id: int, *, store_id: int | None = None, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    if store_id is not None and sale.store_id != store_id:
        raise NotFoundError(f"Sale {sale_id} does not belong to store {store_id}")
    return sale


def _combo_line_price(product: Product, components: list[str] | None) -> Decimal:
    """Price one unit of a combo line: whole set, single piece or partial set."""
    if not components:
        return product.selling_price

    if len(components) == 1:
        if not product.can_sell_separate:
            raise ValidationError(f"{product.sku} components cannot be sold separately")
        return product.component(components[0]).selling_price

    if not product.can_sell_partial_set:
        raise ValidationError(f"{product.sku} cannot be sold as a partial set")
    wanted = set(components)
    for price in product.partial_set_prices:
        if set(price.components) == wanted:
            return price.selling_price
    return sum((product.component(n).selling_price for n in components), ZERO)


def _normalize_components(product: Product, raw) -> list[str] | None:
    if raw in (None, []):
        return None
    if product.kind != KIND_COMBO_SET:
        raise ValidationError("components apply to COMBO_SET products only")
    if not isinstance(raw, list) or len(set(raw)) != len(raw):
        raise ValidationError("components must be a list of distinct component names")
    names = [c.name for c in product.components]
    unknown = [n for n in raw if n not in names]
    if unknown:
        raise ValidationError(f"{product.sku} has no component {', '.join(map(str, unknown))}")
    if set(raw) == set(names):
        # Every piece is a whole set
        return None
    # Keep the product's component order so RETURN entries are deterministic
    return [n for n in names if n in raw]


def _next_invoice_number(store_id: int) -> str:
    count = db.session.query(Sale.id).filter(Sale.store_id == store_id).count()
    return f"S-{count + 1:06d}"


def create_sale(
    *,
    store_id: int,
    items: list[dict],
    paid_amount=0,
    customer_id: int | None = None,
    customer_name: str | None = None,
    invoice_number: str | None = None,
    sale_date=None,
    payment_method: str = "CASH",
) -> Sale:
    """
    Finalize a sale: price lines, consume stock and record the initial payment.

    items: [{product_id, quantity, unit_price?, components?}]. unit_price
    defaults to the product (or component / partial-set) selling price.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    paid = require_non_negative(to_decimal(paid_amount, "paid_amount", AMOUNT_PLACES), "paid_amount")
    invoice_number = require_max_length(invoice_number, 64, "invoice_number")
    try:
        sale_dt = normalize_business_time(sale_date)
    except ValueError:
        raise ValidationError("sale_date must be an ISO-8601 datetime")

    def _op():
        customer = None
        if customer_id is not None:
            customer = load_customer(customer_id, store_id=store_id, lock=True)

        number = invoice_number or _next_invoice_number(store_id)
        exists = (
            db.session.query(Sale.id)
            .filter(Sale.store_id == store_id, Sale.invoice_number == number)
            .first()
        )
        if exists:
            raise ConflictError(f"Invoice {number} already exists for this store.")

        sale = Sale(
            store_id=store_id,
            invoice_number=number,
            customer_id=customer.id if customer else None,
            customer_name=customer_name or (customer.name if customer else None),
            sale_date=sale_dt,
            total_amount=ZERO,
            paid_amount=ZERO,
            refunded_amount=ZERO,
        )
        db.session.add(sale)

        seen: set[int] = set()
        total = ZERO
        for raw in items:
            if not isinstance(raw, dict):
                raise ValidationError("each item must be an object")
            product_id = raw.get("product_id")
            if not isinstance(product_id, int) or isinstance(product_id, bool):
                raise ValidationError("product_id must be an integer")
            if product_id in seen:
                raise ValidationError(f"product {product_id} appears on more than one line")
            seen.add(product_id)

            product = load_product(product_id, store_id=store_id, lock=True)
            if not product.is_active:
                raise ValidationError(f"{product.sku} is inactive")

            qty = to_decimal(raw.get("quantity"), "quantity", QUANTITY_PLACES)
            if qty <= 0:
                raise ValidationError("quantity must be > 0")
            components = _normalize_components(product, raw.get("components"))

            if raw.get("unit_price") is not None:
                unit_price = require_non_negative(
                    to_decimal(raw["unit_price"], "unit_price", MONEY_PLACES), "unit_price"
                )
            elif product.kind == KIND_COMBO_SET:
                unit_price = _combo_line_price(product, components)
            else:
                unit_price = product.selling_price

            if components and raw.get("unit_price") is not None:
                # Rules still apply when the cashier overrides the price
                _combo_line_price(product, components)

            consume_for_sale(product, qty, components)

            line_total = qty * unit_price
            total += line_total
            sale.items.append(SaleItem(
                product_id=product.id,
                product_name=product.name,
                quantity=qty,
                unit_price=unit_price,
                line_total=line_total,
                components=components,
            ))

        if paid > total:
            raise ValidationError(f"paid_amount {paid} exceeds sale total {total}")

        sale.total_amount = total
        sale.paid_amount = paid
        if paid > 0:
            sale.payments.append(SalePayment(paid_at=sale_dt, amount=paid, method=payment_method, notes="At checkout"))
        sale.payment_status = derive_payment_status(sale)
        db.session.flush()

        outstanding = sale.outstanding_amount
        if outstanding > 0:
            if customer is None:
                raise ValidationError("A customer is required when the sale is not fully paid")
            adjust_customer_balance(
                customer,
                outstanding,
                reason=f"Credit sale {sale.invoice_number}",
                source_type="sale",
                source_id=sale.id,
            )

        append_ledger_event(
            store_id=store_id,
            event_type="sale.created",
            event_category="sale",
            entity_type="sale",
            entity_id=sale.id,
            amount=total,
            occurred_at=sale_dt,
            note=f"Sale {sale.invoice_number}",
            payload={"paid_amount": paid, "lines": len(sale.items)},
        )

        db.session.commit()
        current_app.logger.info(
            "Sale %s created: total=%s paid=%s status=%s", sale.invoice_number, total, paid, sale.payment_status
        )
        return sale

    return run_with_retry(_op)


def record_payment(
    *,
    sale_id: int,
    amount,
    method: str,
    notes: str | None = None,
    store_id: int | None = None,
) -> Sale:
    """Collect money against an outstanding sale. Overpayment is rejected."""
    value = to_decimal(amount, "amount", AMOUNT_PLACES)
    if value <= 0:
        raise ValidationError("amount must be > 0")
    if not method or not str(method).strip():
        raise ValidationError("method is required")
    notes = require_max_length(notes, 255, "notes")

    def _op():
        sale = load_sale(sale_id, store_id=store_id, lock=True)
        outstanding = sale.outstanding_amount
        if value > outstanding:
            raise ValidationError(f"Payment {value} exceeds outstanding amount {outstanding}")

        sale.paid_amount = (sale.paid_amount or ZERO) + value
        sale.payments.append(SalePayment(
            paid_at=utcnow(),
            amount=value,
            method=str(method).strip(),
            notes=notes,
        ))
        sale.payment_status = derive_payment_status(sale)
        db.session.flush()

        if sale.customer_id is not None:
            adjust_customer_balance(
                load_customer(sale.customer_id, lock=True),
                -value,
                reason=f"Payment on {sale.invoice_number}",
                source_type="sale",
                source_id=sale.id,
            )

        append_ledger_event(
            store_id=sale.store_id,
            event_type="sale.payment_recorded",
            event_category="payment",
            entity_type="sale",
            entity_id=sale.id,
            amount=value,
            note=f"Payment on {sale.invoice_number}",
            payload={"method": str(method).strip(), "payment_status": sale.payment_status},
        )

        db.session.commit()
        return sale

    return run_with_retry(_op)
