"""
Inventory mutator: kind-dispatched stock changes and their derived fields.
"""

from decimal import Decimal

import pytest

from clothpos.extensions import db
from clothpos.models import Product
from clothpos.errors import InsufficientStockError, NotFoundError
from clothpos.services.inventory_service import (
    load_product,
    consume_for_sale,
    get_inventory_summary,
)
from clothpos.services.stock_ledger_service import restock
from clothpos.validation import ValidationError


def _reload(product_id):
    db.session.expire_all()
    return db.session.get(Product, product_id)


class TestSimple:
    def test_consume_decrements(self, make_simple):
        product = make_simple()
        consume_for_sale(product, 3)
        assert product.stock_level == Decimal("7")

    def test_insufficient_stock_writes_nothing(self, make_simple):
        product = make_simple()
        with pytest.raises(InsufficientStockError) as exc:
            consume_for_sale(product, 11)
        assert exc.value.product_id == product.id
        assert product.stock_level == Decimal("10")

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity(self, make_simple, quantity):
        product = make_simple()
        with pytest.raises(ValidationError):
            consume_for_sale(product, quantity)

    def test_components_rejected(self, make_simple):
        product = make_simple()
        with pytest.raises(ValidationError):
            consume_for_sale(product, 1, ["Qameez"])


class TestRawMaterial:
    def test_created_with_derived_units(self, make_raw):
        product = _reload(make_raw().id)
        assert product.total_meters == Decimal("120")
        assert product.stock_level == Decimal("120")
        assert product.calculated_units == 30
        assert product.base_unit == "meter"

    def test_restock_rederives_units(self, make_raw):
        product = make_raw()
        restock(product_id=product.id, quantity=30, buying_price=300)

        product = _reload(product.id)
        assert product.total_meters == Decimal("150")
        assert product.stock_level == Decimal("150")
        assert product.calculated_units == 37

    def test_consume_meters(self, make_raw):
        product = make_raw()
        consume_for_sale(product, "10.5")
        assert product.total_meters == Decimal("109.5")
        assert product.stock_level == Decimal("109.5")
        assert product.calculated_units == 27

    def test_cannot_cut_more_than_available(self, make_raw):
        product = make_raw()
        with pytest.raises(InsufficientStockError):
            consume_for_sale(product, "120.5")
        assert product.total_meters == Decimal("120")


class TestComboSet:
    def test_created_with_derived_fields(self, make_combo):
        product = _reload(make_combo().id)
        assert product.total_combo_meters == Decimal("6.0")
        assert product.stock_level == Decimal("8")
        assert product.base_unit == "set"
        assert [c.stock_level for c in product.components] == [Decimal("10"), Decimal("8"), Decimal("10")]

    def test_single_component_consumption(self, make_combo):
        product = make_combo()
        consume_for_sale(product, 2, ["Qameez"])
        assert product.component("Qameez").stock_level == Decimal("8")
        assert product.component("Shalwar").stock_level == Decimal("8")
        assert product.stock_level == Decimal("8")

    def test_whole_sets_consume_every_component(self, make_combo):
        product = make_combo()
        consume_for_sale(product, 3)
        assert [c.stock_level for c in product.components] == [Decimal("7"), Decimal("5"), Decimal("7")]
        assert product.stock_level == Decimal("5")

    def test_rejection_is_atomic(self, make_combo):
        product = make_combo()
        with pytest.raises(InsufficientStockError) as exc:
            consume_for_sale(product, 9)
        assert exc.value.component == "Shalwar"
        assert [c.stock_level for c in product.components] == [Decimal("10"), Decimal("8"), Decimal("10")]
        assert product.stock_level == Decimal("8")

    def test_restock_one_component(self, make_combo):
        product = make_combo()
        restock(product_id=product.id, quantity=4, buying_price=600, component_name="Shalwar")

        product = _reload(product.id)
        assert product.component("Shalwar").stock_level == Decimal("12")
        assert product.stock_level == Decimal("10")

    def test_unknown_component(self, make_combo):
        product = make_combo()
        with pytest.raises(ValidationError):
            consume_for_sale(product, 1, ["Kurta"])


class TestSummary:
    def test_summary_matches_ledger(self, make_simple):
        product = make_simple()
        restock(product_id=product.id, quantity=5, buying_price=100)

        summary = get_inventory_summary(product_id=product.id)
        assert Decimal(summary["stock_level"]) == Decimal("15")
        assert Decimal(summary["ledger_quantity"]) == Decimal("15")
        assert Decimal(summary["ledger_cost"]) == Decimal("1700")
        assert summary["ledger_entries"] == 2
        assert summary["unit"] == "pcs"
        assert summary["is_low_stock"] is False

    def test_low_stock_flag(self, make_simple):
        product = make_simple(stock_level=3)
        assert get_inventory_summary(product_id=product.id)["is_low_stock"] is True

    def test_store_scoping(self, make_simple, other_store):
        product = make_simple()
        with pytest.raises(NotFoundError):
            get_inventory_summary(product_id=product.id, store_id=other_store.id)
        with pytest.raises(NotFoundError):
            load_product(product.id, store_id=other_store.id)
