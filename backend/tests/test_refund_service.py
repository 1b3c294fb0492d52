"""
Refund reconciliation: debt-first split, ceilings, repeated refunds and stock returns.
"""

from decimal import Decimal

import pytest

from clothpos.extensions import db
from clothpos.models import Product, Sale, SaleRefund, Customer, StockEntry, LedgerEvent
from clothpos.errors import RefundExceedsLimitError, NotFoundError
from clothpos.validation import ValidationError
from clothpos.services.sales_service import create_sale
from clothpos.services.refund_service import (
    refund,
    refund_preview,
    refund_state,
    refundable_summary,
    refunded_quantities,
)


def _reload(model, pk):
    db.session.expire_all()
    return db.session.get(model, pk)


@pytest.fixture
def cash_sale(store, make_simple):
    """3 shirts at 200, fully paid."""
    product = make_simple()
    sale = create_sale(store_id=store.id, items=[{"product_id": product.id, "quantity": 3}], paid_amount=600)
    return sale, product


@pytest.fixture
def credit_sale(store, customer, make_simple):
    """10 pieces at 100 (total 1000), 400 paid, 600 on the customer's account."""
    product = make_simple(selling_price=Decimal("100"), stock_level=Decimal("10"))
    sale = create_sale(
        store_id=store.id,
        items=[{"product_id": product.id, "quantity": 10}],
        paid_amount=400,
        customer_id=customer.id,
    )
    return sale, product


class TestCashSale:
    def test_refund_pays_cash_and_returns_stock(self, cash_sale):
        sale, product = cash_sale
        refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 1}], method="CASH", reason="Size")

        sale = _reload(Sale, sale.id)
        record = sale.refunds[0]
        assert record.amount == Decimal("200")
        assert record.cash_payout == Decimal("200")
        assert record.debt_reduction == Decimal("0")
        assert record.reason == "Size"
        assert sale.refunded_amount == Decimal("200")
        assert sale.net_paid == Decimal("400")
        assert db.session.get(Product, product.id).stock_level == Decimal("8")

    def test_return_entry_written(self, cash_sale):
        sale, product = cash_sale
        refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 2}], method="CASH")

        entry = (
            db.session.query(StockEntry)
            .filter_by(product_id=product.id, entry_type="RETURN")
            .one()
        )
        assert entry.quantity == Decimal("2")
        assert entry.sale_id == sale.id
        assert entry.refund_id is not None
        assert entry.total_cost == Decimal("240")

    def test_repeated_refunds_until_full(self, cash_sale):
        sale, product = cash_sale
        assert refund_state(sale) == "NONE"

        refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 1}], method="CASH")
        assert refund_state(_reload(Sale, sale.id)) == "PARTIAL"

        refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 2}], method="CARD")
        sale = _reload(Sale, sale.id)
        assert refund_state(sale) == "FULL"
        assert refunded_quantities(sale) == {product.id: Decimal("3")}
        assert sale.refunded_amount == Decimal("600")
        assert sale.net_paid == Decimal("0")

        with pytest.raises(ValidationError, match="only 0"):
            refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 1}], method="CASH")

    def test_over_refund_leaves_sale_unchanged(self, cash_sale):
        sale, product = cash_sale
        with pytest.raises(ValidationError):
            refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 4}], method="CASH")

        sale = _reload(Sale, sale.id)
        assert sale.refunds == []
        assert sale.refunded_amount == Decimal("0")
        assert db.session.get(Product, product.id).stock_level == Decimal("7")

    def test_duplicate_lines_are_merged(self, cash_sale):
        sale, product = cash_sale
        refund(
            sale_id=sale.id,
            items=[{"product_id": product.id, "quantity": 1}, {"product_id": product.id, "quantity": 1}],
            method="CASH",
        )
        record = _reload(Sale, sale.id).refunds[0]
        assert [(i.product_id, i.quantity) for i in record.items] == [(product.id, Decimal("2"))]


class TestCreditSale:
    def test_refund_reduces_debt_first(self, credit_sale, customer):
        sale, product = credit_sale
        assert _reload(Customer, customer.id).balance == Decimal("600")

        refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 3}], method="CASH")

        sale = _reload(Sale, sale.id)
        record = sale.refunds[0]
        assert record.debt_reduction == Decimal("300")
        assert record.cash_payout == Decimal("0")
        assert sale.outstanding_amount == Decimal("300")
        assert sale.payment_status == "PARTIAL"
        assert db.session.get(Customer, customer.id).balance == Decimal("300")

    def test_prior_debt_reduction_is_deducted(self, credit_sale, customer):
        sale, product = credit_sale
        refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 3}], method="CASH")

        preview = refund_preview(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 1}])
        assert Decimal(preview["pending_before"]) == Decimal("300")
        assert Decimal(preview["refundable"]) == Decimal("100")
        assert Decimal(preview["debt_reduction"]) == Decimal("100")
        assert Decimal(preview["cash_payout"]) == Decimal("0")

    def test_refund_above_ceiling(self, credit_sale):
        sale, product = credit_sale
        with pytest.raises(RefundExceedsLimitError) as exc:
            refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 5}], method="CASH")
        assert exc.value.refundable == Decimal("400")
        assert exc.value.refund_total == Decimal("500")
        assert _reload(Sale, sale.id).refunds == []

    def test_split_between_debt_and_cash(self, store, customer, make_simple):
        product = make_simple(selling_price=Decimal("100"))
        sale = create_sale(store_id=store.id, items=[{"product_id": product.id, "quantity": 10}],
                           paid_amount=900, customer_id=customer.id)

        refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 3}], method="CASH")

        record = _reload(Sale, sale.id).refunds[0]
        assert record.debt_reduction == Decimal("100")
        assert record.cash_payout == Decimal("200")
        assert db.session.get(Customer, customer.id).balance == Decimal("0")


class TestPreview:
    def test_preview_writes_nothing(self, cash_sale):
        sale, product = cash_sale
        preview = refund_preview(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 2}])

        assert Decimal(preview["refund_total"]) == Decimal("400")
        assert Decimal(preview["cash_payout"]) == Decimal("400")
        assert preview["lines"][0]["components"] is None
        assert db.session.query(SaleRefund).count() == 0
        assert _reload(Product, product.id).stock_level == Decimal("7")

    def test_preview_validates_like_refund(self, cash_sale):
        sale, product = cash_sale
        with pytest.raises(ValidationError):
            refund_preview(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 9}])

    def test_refundable_summary(self, cash_sale):
        sale, product = cash_sale
        refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 1}], method="CASH")

        summary = refundable_summary(_reload(Sale, sale.id))
        assert summary["state"] == "PARTIAL"
        assert Decimal(summary["refundable"]) == Decimal("400")
        line = summary["items"][0]
        assert (Decimal(line["sold"]), Decimal(line["refunded"]), Decimal(line["available"])) == (
            Decimal("3"), Decimal("1"), Decimal("2"),
        )


class TestRequestValidation:
    @pytest.mark.parametrize("items", [[], None, [{"product_id": 1, "quantity": 0}]])
    def test_empty_requests(self, cash_sale, items):
        sale, _ = cash_sale
        with pytest.raises(ValidationError):
            refund(sale_id=sale.id, items=items, method="CASH")

    def test_zero_lines_dropped(self, cash_sale):
        sale, product = cash_sale
        refund(
            sale_id=sale.id,
            items=[{"product_id": product.id, "quantity": 1}, {"product_id": 999, "quantity": 0}],
            method="CASH",
        )
        assert len(_reload(Sale, sale.id).refunds[0].items) == 1

    def test_method_required(self, cash_sale):
        sale, product = cash_sale
        with pytest.raises(ValidationError, match="method"):
            refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 1}], method="")

    def test_over_length_reason_rejected(self, cash_sale):
        sale, product = cash_sale
        with pytest.raises(ValidationError, match="reason exceeds max length 255"):
            refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 1}], method="CASH",
                   reason="r" * 256)
        assert _reload(Sale, sale.id).refunds == []

    def test_excess_quantity_places_rejected(self, cash_sale):
        sale, product = cash_sale
        with pytest.raises(ValidationError, match="decimal places"):
            refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": "0.0001"}], method="CASH")
        assert _reload(Sale, sale.id).refunded_amount == Decimal("0")

    def test_product_not_on_sale(self, cash_sale, make_simple):
        sale, _ = cash_sale
        other = make_simple()
        with pytest.raises(ValidationError, match="not on sale"):
            refund(sale_id=sale.id, items=[{"product_id": other.id, "quantity": 1}], method="CASH")

    def test_unknown_sale(self, app, db_session):
        with pytest.raises(NotFoundError):
            refund(sale_id=4040, items=[{"product_id": 1, "quantity": 1}], method="CASH")


class TestComboRefunds:
    def test_partial_set_returns_each_component(self, store, make_combo):
        product = make_combo()
        sale = create_sale(
            store_id=store.id,
            items=[{"product_id": product.id, "quantity": 2, "components": ["Qameez", "Shalwar"]}],
            paid_amount=5000,
        )
        refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 1}], method="CASH")

        returns = (
            db.session.query(StockEntry)
            .filter_by(product_id=product.id, entry_type="RETURN")
            .order_by(StockEntry.id)
            .all()
        )
        assert [(e.component_name, e.quantity) for e in returns] == [
            ("Qameez", Decimal("1")),
            ("Shalwar", Decimal("1")),
        ]
        product = _reload(Product, product.id)
        assert [c.stock_level for c in product.components] == [Decimal("9"), Decimal("7"), Decimal("10")]
        assert product.stock_level == Decimal("7")

    def test_whole_set_returns_every_component(self, store, make_combo):
        product = make_combo()
        sale = create_sale(store_id=store.id, items=[{"product_id": product.id, "quantity": 1}], paid_amount=3500)
        refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 1}], method="CASH")

        entry = db.session.query(StockEntry).filter_by(product_id=product.id, entry_type="RETURN").one()
        assert entry.component_name is None
        product = _reload(Product, product.id)
        assert [c.stock_level for c in product.components] == [Decimal("10"), Decimal("8"), Decimal("10")]


def test_refund_is_audited(cash_sale):
    sale, product = cash_sale
    refund(sale_id=sale.id, items=[{"product_id": product.id, "quantity": 1}], method="CASH")
    record = _reload(Sale, sale.id).refunds[0]
    event = db.session.query(LedgerEvent).filter_by(event_type="sale.refunded", entity_id=record.id).one()
    assert event.entity_type == "sale_refund"
    assert event.amount == Decimal("200")
