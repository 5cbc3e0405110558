"""
Return-to-supplier tests. Lines commit one at a time; there is no rollback.
"""

import pytest

from pharmacy.errors import InsufficientStockError, NotFoundError, StoreError, ValidationError
from pharmacy.models import ActivityLog, CreditNote, CreditNoteItem
from pharmacy.services import credit_note_service
from pharmacy.services.activity_service import CREDIT_NOTE_CREATED, CREDIT_NOTE_DELETED
from pharmacy.services.credit_note_service import CreditNoteError


def _return(items, **kwargs):
    return credit_note_service.create_credit_note(
        invoice_number=kwargs.pop("invoice_number", "INV-9"),
        supplier="MedSupply Ltd",
        items=items,
        user_name="carol",
        **kwargs,
    )


class TestCreateCreditNote:
    def test_decrements_stock_and_totals(self, db_session, make_product, reload):
        product = make_product(current_stock=50, cost_price_cents=1000)

        note = _return([{"product_id": product.id, "quantity": 5, "reason": "Damaged"}])

        assert reload(product).current_stock == 45
        assert note.total_amount_cents == 5000
        assert note.credit_note_number.startswith("CN-")
        assert note.reason == "Damaged"
        item = db_session.query(CreditNoteItem).filter_by(credit_note_id=note.id).one()
        assert item.cost_price_cents == 1000
        assert item.total_credit_cents == 5000
        assert item.batch_number == "B1"

    def test_unit_credit_uses_net_cost_from_invoice_terms(self, db_session, make_product):
        product = make_product(
            invoice_price_cents=100000,
            supplier_discount_bps=1000,
            vat_rate_bps=1600,
            other_charges_cents=5000,
            cost_price_cents=1,
        )
        note = _return([{"product_id": product.id, "quantity": 1, "reason": "Expired"}])
        assert note.total_amount_cents == 110200

    def test_explicit_line_cost_wins(self, db_session, make_product):
        product = make_product(cost_price_cents=1000)
        note = _return([{"product_id": product.id, "quantity": 2, "reason": "Recall", "cost_price_cents": 800}])
        assert note.total_amount_cents == 1600

    def test_returning_all_stock_is_allowed(self, db_session, make_product, reload):
        product = make_product(current_stock=3)
        _return([{"product_id": product.id, "quantity": 3, "reason": "Recall"}])
        assert reload(product).current_stock == 0

    def test_reasons_are_joined_on_header(self, db_session, make_product):
        a = make_product("A")
        b = make_product("B")
        c = make_product("C")
        note = _return([
            {"product_id": a.id, "quantity": 1, "reason": "Damaged"},
            {"product_id": b.id, "quantity": 1, "reason": "Expired"},
            {"product_id": c.id, "quantity": 1, "reason": "Damaged"},
        ])
        assert note.reason == "Damaged; Expired"

    def test_activity_is_logged(self, db_session, make_product):
        product = make_product()
        _return([{"product_id": product.id, "quantity": 1, "reason": "Damaged"}])
        event = db_session.query(ActivityLog).filter_by(action=CREDIT_NOTE_CREATED).one()
        assert event.user_name == "carol"


class TestCreditNoteRejection:
    def test_insufficient_stock_keeps_earlier_lines(self, db_session, make_product, reload):
        first = make_product("Paracetamol 500mg", current_stock=50, cost_price_cents=1000)
        second = make_product("Cough Syrup", current_stock=3)

        with pytest.raises(CreditNoteError) as exc_info:
            _return([
                {"product_id": first.id, "quantity": 5, "reason": "Damaged"},
                {"product_id": second.id, "quantity": 10, "reason": "Damaged"},
            ])

        err = exc_info.value
        assert isinstance(err.cause, InsufficientStockError)
        assert err.cause.available == 3
        assert err.cause.product_name == "Cough Syrup"
        assert "Insufficient stock for Cough Syrup. Available: 3, Returning: 10" in str(err)

        # First line stays committed, second line never written
        assert reload(first).current_stock == 45
        assert reload(second).current_stock == 3
        note = db_session.query(CreditNote).one()
        assert note.total_amount_cents == 5000
        assert db_session.query(CreditNoteItem).count() == 1
        assert db_session.query(ActivityLog).filter_by(action=CREDIT_NOTE_CREATED).count() == 0

    def test_unknown_product(self, db_session):
        with pytest.raises(CreditNoteError) as exc_info:
            _return([{"product_id": 999, "quantity": 1, "reason": "Damaged"}])
        assert isinstance(exc_info.value.cause, NotFoundError)

    def test_store_failure_is_reported(self, db_session, make_product, reload, flaky_store):
        product = make_product(current_stock=10)
        store = flaky_store({("insert", "credit_note_items"): 1})

        with pytest.raises(CreditNoteError) as exc_info:
            _return([{"product_id": product.id, "quantity": 4, "reason": "Damaged"}], store=store)

        assert isinstance(exc_info.value.cause, StoreError)
        # Not compensated: the decrement already happened
        assert reload(product).current_stock == 6

    @pytest.mark.parametrize(
        "item",
        [
            {"quantity": 1, "reason": "Damaged"},
            {"product_id": 1, "quantity": 0, "reason": "Damaged"},
            {"product_id": 1, "quantity": 1},
            {"product_id": 1, "quantity": 1, "reason": "   "},
        ],
    )
    def test_invalid_lines_write_nothing(self, db_session, item):
        with pytest.raises(ValidationError):
            _return([item])
        assert db_session.query(CreditNote).count() == 0

    def test_missing_invoice_number(self, db_session, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            _return([{"product_id": product.id, "quantity": 1, "reason": "x"}], invoice_number="")


class TestCreditNoteQueries:
    def test_get_with_items(self, db_session, make_product):
        product = make_product()
        note = _return([{"product_id": product.id, "quantity": 2, "reason": "Damaged"}])

        detail = credit_note_service.get_credit_note_with_items(note.id)
        assert detail["credit_note"]["invoice_number"] == "INV-9"
        assert detail["item_count"] == 1
        assert detail["total_quantity"] == 2

    def test_list_filtered_by_invoice(self, db_session, make_product):
        product = make_product()
        _return([{"product_id": product.id, "quantity": 1, "reason": "x"}], invoice_number="INV-A")
        _return([{"product_id": product.id, "quantity": 1, "reason": "x"}], invoice_number="INV-B")

        rows = credit_note_service.list_credit_notes(invoice_number="INV-A")
        assert [r.invoice_number for r in rows] == ["INV-A"]

    def test_delete_does_not_restore_stock(self, db_session, make_product, reload):
        product = make_product(current_stock=10)
        note = _return([{"product_id": product.id, "quantity": 4, "reason": "x"}])
        note_id = note.id

        credit_note_service.delete_credit_note(note_id)

        assert db_session.get(CreditNote, note_id) is None
        assert db_session.query(CreditNoteItem).count() == 0
        assert reload(product).current_stock == 6
        assert db_session.query(ActivityLog).filter_by(action=CREDIT_NOTE_DELETED).count() == 1

    def test_get_missing(self, db_session):
        with pytest.raises(NotFoundError):
            credit_note_service.get_credit_note(404)
