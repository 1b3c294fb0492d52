"""
Tests for the append-only stock ledger and its side effects.
"""

from decimal import Decimal

import pytest

from clothpos.extensions import db
from clothpos.models import StockEntry, Supplier, Product, LedgerEvent
from clothpos.services.stock_ledger_service import (
    append_entry,
    restock,
    adjust,
    history,
    get_initial_stock_entries,
)
from clothpos.errors import NotFoundError
from clothpos.validation import ValidationError


class TestAppendEntry:
    def test_append_then_history_returns_entry(self, make_simple, supplier):
        product = make_simple()
        entry = restock(product_id=product.id, quantity=5, buying_price="125", supplier_id=supplier.id,
                        invoice_number="INV-9")

        latest = list(history(product, 1))
        assert len(latest) == 1
        assert latest[0].id == entry.id
        assert latest[0].entry_type == "RESTOCK"
        assert latest[0].invoice_number == "INV-9"

    def test_total_cost_is_frozen(self, make_simple):
        product = make_simple()
        entry = restock(product_id=product.id, quantity=4, buying_price="110")
        assert entry.total_cost == Decimal("440")

        from clothpos.services.catalog_service import update_product
        update_product(product_id=product.id, patch={"buying_price": "999"})

        db.session.expire_all()
        assert db.session.get(StockEntry, entry.id).total_cost == Decimal("440")

    def test_restock_increases_stock_and_supplier_balance(self, make_simple, supplier):
        product = make_simple()
        restock(product_id=product.id, quantity=6, buying_price="100", supplier_id=supplier.id)

        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_level == Decimal("16")
        sup = db.session.get(Supplier, supplier.id)
        assert sup.current_balance == Decimal("600")
        assert product.id in [p.id for p in sup.products]

    def test_fractional_meters_keep_exact_cost(self, make_raw, supplier):
        product = make_raw()
        restock(product_id=product.id, quantity="2.345", buying_price="123.4567", supplier_id=supplier.id)

        db.session.expire_all()
        latest = list(history(db.session.get(Product, product.id), 1))[0]
        assert latest.quantity == Decimal("2.345")
        assert latest.buying_price == Decimal("123.4567")
        assert latest.total_cost == Decimal("2.345") * Decimal("123.4567")
        assert db.session.get(Supplier, supplier.id).current_balance == Decimal("289.5059615")

    def test_restock_leaves_product_prices_alone(self, make_simple):
        product = make_simple()
        restock(product_id=product.id, quantity=2, buying_price="150")
        db.session.expire_all()
        assert db.session.get(Product, product.id).buying_price == Decimal("120")

    def test_adjustment_is_signed(self, make_simple):
        product = make_simple()
        entry = adjust(product_id=product.id, quantity=-3, notes="Damaged in storage")
        assert entry.entry_type == "ADJUSTMENT"
        assert entry.buying_price == Decimal("120")
        assert entry.total_cost == Decimal("-360")
        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_level == Decimal("7")

    def test_ledger_event_appended(self, make_simple):
        product = make_simple()
        entry = restock(product_id=product.id, quantity=1, buying_price="100")
        events = (
            db.session.query(LedgerEvent)
            .filter_by(entity_type="stock_entry", entity_id=entry.id, event_type="stock.restock")
            .all()
        )
        assert len(events) == 1


class TestBoundaryValidation:
    @pytest.mark.parametrize("entry_type,quantity", [
        ("RESTOCK", 0),
        ("RESTOCK", -2),
        ("RETURN", 0),
        ("ADJUSTMENT", 0),
        ("INITIAL_STOCK", -1),
    ])
    def test_quantity_rules(self, make_simple, entry_type, quantity):
        product = make_simple()
        with pytest.raises(ValidationError):
            append_entry(product_id=product.id, entry_type=entry_type, quantity=quantity, buying_price=100)

    @pytest.mark.parametrize("quantity,price", [
        ("0.0004", "10"),
        ("1.2345", "10"),
        ("2", "10.12345"),
    ])
    def test_excess_decimal_places_rejected(self, make_raw, quantity, price):
        product = make_raw()
        with pytest.raises(ValidationError, match="decimal places"):
            restock(product_id=product.id, quantity=quantity, buying_price=price)

        db.session.expire_all()
        assert db.session.get(Product, product.id).total_meters == Decimal("120")
        assert db.session.query(StockEntry).filter_by(product_id=product.id).count() == 1

    def test_trailing_zeros_are_not_extra_places(self, make_raw):
        product = make_raw()
        entry = restock(product_id=product.id, quantity="2.5000", buying_price="300.000000")
        assert entry.total_cost == Decimal("750")

    def test_over_length_notes_rejected(self, make_simple):
        product = make_simple()
        with pytest.raises(ValidationError, match="notes exceeds max length 255"):
            adjust(product_id=product.id, quantity=-1, notes="x" * 256)
        with pytest.raises(ValidationError, match="invoice_number"):
            restock(product_id=product.id, quantity=1, buying_price=1, invoice_number="9" * 65)

        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_level == Decimal("10")

    def test_negative_price_rejected(self, make_simple):
        product = make_simple()
        with pytest.raises(ValidationError, match="buying_price"):
            restock(product_id=product.id, quantity=1, buying_price="-5")

    def test_unit_must_match_kind(self, make_raw):
        product = make_raw()
        with pytest.raises(ValidationError, match="meter"):
            restock(product_id=product.id, quantity=10, buying_price=300, unit="pcs")

    def test_component_only_for_combo(self, make_simple):
        product = make_simple()
        with pytest.raises(ValidationError, match="COMBO_SET"):
            restock(product_id=product.id, quantity=1, buying_price=1, component_name="Qameez")

    def test_component_must_exist(self, make_combo):
        product = make_combo()
        with pytest.raises(ValidationError, match="no component Kurta"):
            restock(product_id=product.id, quantity=1, buying_price=1, component_name="Kurta")

    def test_supplier_from_other_store_rejected(self, make_simple, other_store):
        product = make_simple()
        foreign = Supplier(store_id=other_store.id, name="Elsewhere")
        db.session.add(foreign)
        db.session.commit()
        with pytest.raises(ValidationError, match="supplier"):
            restock(product_id=product.id, quantity=1, buying_price=1, supplier_id=foreign.id)

    def test_unknown_product(self, app, db_session):
        with pytest.raises(NotFoundError):
            restock(product_id=424242, quantity=1, buying_price=1)

    def test_rejected_append_writes_nothing(self, make_simple, supplier):
        product = make_simple()
        before = db.session.query(StockEntry).filter_by(product_id=product.id).count()
        with pytest.raises(ValidationError):
            restock(product_id=product.id, quantity=0, buying_price=10, supplier_id=supplier.id)
        db.session.expire_all()
        assert db.session.query(StockEntry).filter_by(product_id=product.id).count() == before
        assert db.session.get(Supplier, supplier.id).current_balance == Decimal("0")


class TestHistory:
    def test_newest_first_and_bounded(self, make_simple):
        product = make_simple()
        ids = [restock(product_id=product.id, quantity=1, buying_price=100).id for _ in range(3)]

        entries = list(history(product, 2))
        assert [e.id for e in entries] == [ids[2], ids[1]]

    def test_restartable(self, make_simple):
        product = make_simple()
        view = history(product, 10)
        first = [e.id for e in view]
        new_entry = restock(product_id=product.id, quantity=1, buying_price=100)
        second = [e.id for e in view]
        assert second[0] == new_entry.id
        assert second[1:] == first

    def test_default_limit_from_config(self, app, make_simple):
        product = make_simple()
        assert history(product).limit == app.config["HISTORY_DEFAULT_LIMIT"]

    @pytest.mark.parametrize("limit", [0, -1, "5"])
    def test_invalid_limit(self, make_simple, limit):
        product = make_simple()
        with pytest.raises(ValidationError):
            history(product, limit)


class TestAppendOnly:
    def test_non_initial_entry_cannot_be_updated(self, make_simple):
        product = make_simple()
        entry = restock(product_id=product.id, quantity=1, buying_price=100)
        assert entry.entry_type == "RESTOCK"
        entry.quantity = Decimal("50")
        with pytest.raises(RuntimeError, match="append-only"):
            db.session.flush()
        db.session.rollback()

    def test_entries_cannot_be_deleted(self, make_simple):
        product = make_simple()
        entry = get_initial_stock_entries(product)[0]
        db.session.delete(entry)
        with pytest.raises(RuntimeError, match="cannot be deleted"):
            db.session.flush()
        db.session.rollback()


def test_initial_stock_entries(make_combo, supplier):
    product = make_combo(initial_stock={"supplier_id": supplier.id, "invoice_number": "OPEN-1"})
    entries = get_initial_stock_entries(product)
    assert [e.component_name for e in entries] == ["Qameez", "Shalwar", "Dupatta"]
    assert all(e.entry_type == "INITIAL_STOCK" and e.unit == "set" for e in entries)
    assert [e.total_cost for e in entries] == [Decimal("12000"), Decimal("4800"), Decimal("6000")]
    db.session.expire_all()
    assert db.session.get(Supplier, supplier.id).current_balance == Decimal("22800")
