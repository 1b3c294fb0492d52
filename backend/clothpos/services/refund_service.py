"""
Refund Reconciliation Service

A refund gives money back for sold items and puts the items back on the
shelf. The hard part is splitting the money correctly when the sale was not
fully paid: the part of the refund that covers what the customer still owes
is a debt reduction (their balance goes down), only the rest is paid out.

DESIGN PRINCIPLES:
- Refund lines are priced at the sale-time unit price, never the current one
- Ceiling is payment based: refundable = paid_amount - refunded_amount
- Per product, refunded quantity never exceeds sold quantity
- Prior debt reductions are deducted before a new one is computed
- Stock comes back through RETURN entries on the stock ledger
- Each refund is one transaction under a row lock and the Sale version check;
  a rejected request writes nothing

STATE (per sale):
NONE -> PARTIAL -> FULL
FULL once every line is refunded or the refundable ceiling is exhausted.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import (
    Sale,
    SaleRefund,
    SaleRefundItem,
    REFUND_STATE_NONE,
    REFUND_STATE_PARTIAL,
    REFUND_STATE_FULL,
)
from ..errors import RefundExceedsLimitError, ConsistencyViolationError
from ..validation import ValidationError, enforce_rules_refund_request, require_max_length
from ..time_utils import utcnow
from .concurrency import run_with_retry
from .inventory_service import load_product
from .balance_service import load_customer, adjust_customer_balance
from .ledger_service import append_ledger_event
from .sales_service import load_sale, derive_payment_status
from .stock_ledger_service import append_entry_inner

ZERO = Decimal("0")


# =============================================================================
# QUANTITIES
# =============================================================================

def refunded_quantities(sale: Sale) -> dict[int, Decimal]:
    """Quantity already refunded per product across the sale's refund history."""
    totals: dict[int, Decimal] = {}
    for refund in sale.refunds:
        for item in refund.items:
            totals[item.product_id] = totals.get(item.product_id, ZERO) + item.quantity
    return totals


def refundable_ceiling(sale: Sale) -> Decimal:
    return (sale.paid_amount or ZERO) - (sale.refunded_amount or ZERO)


def refund_state(sale: Sale) -> str:
    if not sale.refunds:
        return REFUND_STATE_NONE
    refunded = refunded_quantities(sale)
    all_returned = all(refunded.get(i.product_id, ZERO) >= i.quantity for i in sale.items)
    if all_returned or refundable_ceiling(sale) <= 0:
        return REFUND_STATE_FULL
    return REFUND_STATE_PARTIAL


# =============================================================================
# BREAKDOWN (pure; no writes)
# =============================================================================

def compute_refund(sale: Sale, items: list[dict]) -> dict:
    """
    Price a normalized refund request against the sale's current state.

    Raises ValidationError for products not on the sale or quantities above
    what is still available, RefundExceedsLimitError when the total is above
    the refundable ceiling.
    """
    lines_by_product = {i.product_id: i for i in sale.items}
    already = refunded_quantities(sale)

    lines = []
    refund_total = ZERO
    for item in items:
        product_id = item["product_id"]
        qty = item["quantity"]
        sale_item = lines_by_product.get(product_id)
        if sale_item is None:
            raise ValidationError(f"Product {product_id} is not on sale {sale.invoice_number}")

        available = sale_item.quantity - already.get(product_id, ZERO)
        if qty < 0 or qty > available:
            raise ValidationError(
                f"Cannot refund {qty} of {sale_item.product_name or product_id}; "
                f"only {available} refundable"
            )

        amount = qty * sale_item.unit_price
        refund_total += amount
        lines.append({
            "product_id": product_id,
            "quantity": qty,
            "unit_price": sale_item.unit_price,
            "amount": amount,
            "components": list(sale_item.components) if sale_item.components else None,
        })

    refundable = refundable_ceiling(sale)
    if refund_total > refundable:
        raise RefundExceedsLimitError(refund_total, refundable)

    pending_before = max(
        ZERO,
        (sale.total_amount or ZERO) - (sale.paid_amount or ZERO) - sale.debt_reduced,
    )
    debt_reduction = min(refund_total, pending_before)
    cash_payout = refund_total - debt_reduction

    return {
        "lines": lines,
        "refund_total": refund_total,
        "refundable": refundable,
        "pending_before": pending_before,
        "debt_reduction": debt_reduction,
        "cash_payout": cash_payout,
    }


def _breakdown_to_dict(breakdown: dict) -> dict:
    return {
        "lines": [
            {
                "product_id": line["product_id"],
                "quantity": str(line["quantity"]),
                "unit_price": str(line["unit_price"]),
                "amount": str(line["amount"]),
                "components": line["components"],
            }
            for line in breakdown["lines"]
        ],
        "refund_total": str(breakdown["refund_total"]),
        "refundable": str(breakdown["refundable"]),
        "pending_before": str(breakdown["pending_before"]),
        "debt_reduction": str(breakdown["debt_reduction"]),
        "cash_payout": str(breakdown["cash_payout"]),
    }


def refund_preview(*, sale_id: int, items, store_id: int | None = None) -> dict:
    """Same validation and arithmetic as refund(), nothing written."""
    normalized = enforce_rules_refund_request(items, None, require_method=False)
    sale = load_sale(sale_id, store_id=store_id)
    return _breakdown_to_dict(compute_refund(sale, normalized))


def refundable_summary(sale: Sale) -> dict:
    already = refunded_quantities(sale)
    lines = []
    for item in sale.items:
        refunded = already.get(item.product_id, ZERO)
        available = item.quantity - refunded
        lines.append({
            "product_id": item.product_id,
            "product_name": item.product_name,
            "sold": str(item.quantity),
            "refunded": str(refunded),
            "available": str(available),
            "unit_price": str(item.unit_price),
            "components": list(item.components) if item.components else None,
        })
    return {
        "sale_id": sale.id,
        "invoice_number": sale.invoice_number,
        "state": refund_state(sale),
        "refundable": str(refundable_ceiling(sale)),
        "outstanding_amount": str(sale.outstanding_amount),
        "items": lines,
    }


# =============================================================================
# REFUND (mutating)
# =============================================================================

def _check_sale_invariants(sale: Sale) -> None:
    recorded = sum((r.amount for r in sale.refunds), ZERO)
    problems = []
    if recorded != sale.refunded_amount:
        problems.append(f"refunded_amount={sale.refunded_amount} but refunds sum to {recorded}")
    if sale.net_paid < 0:
        problems.append(f"paid_amount - refunded_amount = {sale.net_paid} is negative")
    already = refunded_quantities(sale)
    for item in sale.items:
        if already.get(item.product_id, ZERO) > item.quantity:
            problems.append(f"product {item.product_id} refunded more than sold")
    if problems:
        message = f"Sale {sale.id} invariant violated: {'; '.join(problems)}"
        current_app.logger.error(message)
        raise ConsistencyViolationError(message)


def _return_stock(sale: Sale, refund: SaleRefund, line: dict) -> None:
    product = load_product(line["product_id"], lock=True)
    targets = line["components"] or [None]
    for component_name in targets:
        append_entry_inner(
            product=product,
            entry_type="RETURN",
            quantity=line["quantity"],
            component_name=component_name,
            notes=f"Refund on {sale.invoice_number}",
            sale_id=sale.id,
            refund_id=refund.id,
        )


def refund(
    *,
    sale_id: int,
    items,
    method: str,
    reason: str | None = None,
    store_id: int | None = None,
) -> Sale:
    """
    Refund items from a sale.

    Args:
        sale_id: Sale being refunded
        items: [{product_id, quantity}] (duplicates are merged, zero lines dropped)
        method: How the cash part is paid out (CASH, CARD, ...)
        reason: Free text kept on the refund record

    Returns:
        The updated Sale (refund_history includes the new record)

    Raises:
        ValidationError: empty request, unknown product, over-refund
        RefundExceedsLimitError: total above paid - refunded
        ConcurrencyConflictError: sale changed concurrently and retries ran out
    """
    normalized = enforce_rules_refund_request(items, method)
    method = str(method).strip()
    reason = require_max_length(reason, 255, "reason")

    def _op():
        sale = load_sale(sale_id, store_id=store_id, lock=True)
        breakdown = compute_refund(sale, normalized)

        record = SaleRefund(
            sale=sale,
            refunded_at=utcnow(),
            amount=breakdown["refund_total"],
            method=method,
            reason=reason,
            debt_reduction=breakdown["debt_reduction"],
            cash_payout=breakdown["cash_payout"],
        )
        for line in breakdown["lines"]:
            record.items.append(SaleRefundItem(
                product_id=line["product_id"],
                quantity=line["quantity"],
                amount=line["amount"],
            ))
        db.session.add(record)
        sale.refunded_amount = (sale.refunded_amount or ZERO) + breakdown["refund_total"]
        db.session.flush()

        if breakdown["debt_reduction"] > 0 and sale.customer_id is not None:
            adjust_customer_balance(
                load_customer(sale.customer_id, lock=True),
                -breakdown["debt_reduction"],
                reason=f"Refund on {sale.invoice_number}",
                source_type="sale_refund",
                source_id=record.id,
            )

        for line in breakdown["lines"]:
            _return_stock(sale, record, line)

        sale.payment_status = derive_payment_status(sale)
        _check_sale_invariants(sale)

        append_ledger_event(
            store_id=sale.store_id,
            event_type="sale.refunded",
            event_category="refund",
            entity_type="sale_refund",
            entity_id=record.id,
            amount=breakdown["refund_total"],
            occurred_at=record.refunded_at,
            note=reason,
            payload={
                "sale_id": sale.id,
                "method": method,
                "debt_reduction": breakdown["debt_reduction"],
                "cash_payout": breakdown["cash_payout"],
                "state": refund_state(sale),
            },
        )

        db.session.commit()
        current_app.logger.info(
            "Refund %s on sale %s: total=%s debt=%s cash=%s",
            record.id, sale.invoice_number,
            breakdown["refund_total"], breakdown["debt_reduction"], breakdown["cash_payout"],
        )
        return sale

    return run_with_retry(_op)
