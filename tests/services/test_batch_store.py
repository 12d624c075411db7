"""Tests for BatchStore: creation, deltas, transactions and lookups."""

from decimal import Decimal

import pytest

from rollstock_kernel.domain.batch import BatchSpec, BatchStatus
from rollstock_kernel.exceptions import (
    BatchClosedError,
    BatchNotFoundError,
    ConflictError,
    DuplicateBatchCodeError,
    InsufficientStockError,
    NotFoundError,
    OverCreditError,
    ValidationError,
)
from rollstock_kernel.persistence import InMemoryBackend
from rollstock_kernel.services.batch_store import BatchStore


def _spec(quantity="500", code=None, item="PAPER-60", **kwargs):
    return BatchSpec(
        item_code=item,
        uom="Kg",
        received_quantity=quantity,
        source_document_id="GRN00001/25-26",
        batch_code=code,
        **kwargs,
    )


@pytest.fixture
def store(backend, clock):
    return BatchStore(backend, clock=clock)


class TestCreateBatch:
    def test_new_batch_is_available(self, store):
        batch = store.create_batch(_spec("500", code="A"))
        assert batch.remaining_quantity == Decimal("500")
        assert batch.status is BatchStatus.AVAILABLE
        assert store.get_by_id(batch.id) == batch

    def test_code_defaults_to_id(self, store):
        batch = store.create_batch(_spec())
        assert batch.batch_code == batch.id

    def test_sequence_increases(self, store):
        first = store.create_batch(_spec())
        second = store.create_batch(_spec())
        assert second.sequence > first.sequence

    @pytest.mark.parametrize("quantity", ["0", "-1", "abc", "NaN"])
    def test_bad_received_quantity(self, store, quantity):
        with pytest.raises(ValidationError):
            store.create_batch(_spec(quantity))

    def test_empty_uom(self, store):
        with pytest.raises(ValidationError) as exc_info:
            store.create_batch(
                BatchSpec(
                    item_code="PAPER-60",
                    uom="  ",
                    received_quantity="1",
                    source_document_id="GRN1",
                )
            )
        assert exc_info.value.field == "uom"

    def test_duplicate_code(self, store):
        first = store.create_batch(_spec(code="A"))
        with pytest.raises(DuplicateBatchCodeError) as exc_info:
            store.create_batch(_spec(code="A"))
        assert isinstance(exc_info.value, ConflictError)
        assert exc_info.value.existing_batch_id == first.id
        assert len(store.list_all()) == 1

    def test_unknown_parent(self, store):
        with pytest.raises(BatchNotFoundError):
            store.create_batch(_spec(parent_batch_id="missing"))

    def test_nested_attributes_rejected(self, store):
        with pytest.raises(ValidationError):
            store.create_batch(_spec(attributes={"widths": [1, 2]}))


class TestApplyDelta:
    def test_debit_and_credit(self, store):
        batch = store.create_batch(_spec("500"))
        assert store.apply_delta(batch.id, "-300").remaining_quantity == Decimal("200")
        after = store.apply_delta(batch.id, Decimal("100"))
        assert after.remaining_quantity == Decimal("300")
        assert after.status is BatchStatus.PARTIALLY_ISSUED
        assert after.version == 2

    def test_debit_to_zero_consumes(self, store):
        batch = store.create_batch(_spec("500"))
        assert store.apply_delta(batch.id, "-500").status is BatchStatus.CONSUMED

    def test_insufficient_stock_leaves_batch(self, store):
        batch = store.create_batch(_spec("500"))
        with pytest.raises(InsufficientStockError) as exc_info:
            store.apply_delta(batch.id, "-500.001")
        assert exc_info.value.batch_id == batch.id
        assert exc_info.value.available == "500"
        assert store.get_by_id(batch.id).remaining_quantity == Decimal("500")

    def test_over_credit(self, store):
        batch = store.create_batch(_spec("500"))
        store.apply_delta(batch.id, "-10")
        with pytest.raises(OverCreditError):
            store.apply_delta(batch.id, "10.5")
        assert store.get_by_id(batch.id).remaining_quantity == Decimal("490")

    def test_unknown_batch(self, store):
        with pytest.raises(NotFoundError):
            store.apply_delta("missing", "-1")

    @pytest.mark.parametrize("delta", ["0", "x"])
    def test_bad_delta(self, store, delta):
        batch = store.create_batch(_spec())
        with pytest.raises(ValidationError):
            store.apply_delta(batch.id, delta)

    def test_closed_batch_refuses_credit(self, store):
        batch = store.create_batch(_spec("500"))
        with store.transaction([batch.id]) as mutation:
            mutation.apply(batch.id, "-500")
            mutation.close(batch.id, "SL00001/25-26")
        with pytest.raises(BatchClosedError) as exc_info:
            store.apply_delta(batch.id, "1")
        assert exc_info.value.closed_by == "SL00001/25-26"


class TestTransaction:
    def test_failure_undoes_every_step(self, store):
        a = store.create_batch(_spec("500", code="A"))
        b = store.create_batch(_spec("500", code="B"))
        undone = []
        with pytest.raises(InsufficientStockError):
            with store.transaction([a.id, b.id]) as mutation:
                mutation.apply(a.id, "-100")
                mutation.create(_spec("5", code="C", parent_batch_id=a.id))
                mutation.on_rollback("note", lambda: undone.append("note"))
                mutation.apply(b.id, "-600")
        assert store.get_by_id(a.id).remaining_quantity == Decimal("500")
        assert store.get_by_id(a.id).version == 0
        assert store.find_by_code("C") is None
        assert store.list_children(a.id) == []
        assert undone == ["note"]

    def test_success_keeps_changes(self, store):
        a = store.create_batch(_spec("500", code="A"))
        with store.transaction([a.id]) as mutation:
            mutation.apply(a.id, "-100")
            assert mutation.change_count == 1
        assert store.get_by_id(a.id).remaining_quantity == Decimal("400")

    def test_unheld_batch_is_refused(self, store):
        a = store.create_batch(_spec(code="A"))
        with pytest.raises(RuntimeError):
            with store.transaction([]) as mutation:
                mutation.apply(a.id, "-1")

    def test_non_ledger_errors_also_roll_back(self, store):
        a = store.create_batch(_spec("500", code="A"))
        with pytest.raises(KeyError):
            with store.transaction([a.id]) as mutation:
                mutation.apply(a.id, "-100")
                raise KeyError("boom")
        assert store.get_by_id(a.id).remaining_quantity == Decimal("500")


class TestLookups:
    def test_list_available_in_fifo_order(self, store, clock):
        first = store.create_batch(_spec("10", code="A"))
        clock.advance(60)
        second = store.create_batch(_spec("10", code="B"))
        store.create_batch(_spec("10", code="OTHER", item="FILM-20"))
        store.apply_delta(first.id, "-10")
        assert [b.id for b in store.list_by_item_code("PAPER-60")] == [first.id, second.id]
        assert [b.id for b in store.list_available("PAPER-60")] == [second.id]

    def test_children_and_source_document(self, store):
        parent = store.create_batch(_spec("10", code="P"))
        child = store.create_batch(
            BatchSpec(
                item_code="PAPER-60",
                uom="Kg",
                received_quantity="4",
                source_document_id="SL00001/25-26",
                batch_code="P-SL01",
                parent_batch_id=parent.id,
            )
        )
        assert store.list_children(parent.id) == [child]
        assert store.count_children(parent.id) == 1
        assert store.list_by_source_document("SL00001/25-26") == [child]
        assert store.item_codes() == ["PAPER-60"]

    def test_delete_batch(self, store):
        batch = store.create_batch(_spec(code="A"))
        store.delete_batch(batch.id)
        assert not store.exists(batch.id)
        assert store.find_by_code("A") is None
        with pytest.raises(BatchNotFoundError):
            store.get_by_id(batch.id)

    def test_indexes_rebuilt_from_backend(self, clock):
        backend = InMemoryBackend()
        first = BatchStore(backend, clock=clock)
        parent = first.create_batch(_spec("10", code="P"))
        first.create_batch(_spec("4", code="P-SL01", parent_batch_id=parent.id))

        reopened = BatchStore(backend, clock=clock)
        assert reopened.find_by_code("P").id == parent.id
        assert [b.batch_code for b in reopened.list_children(parent.id)] == ["P-SL01"]
        new = reopened.create_batch(_spec("1", code="Q"))
        assert new.sequence == 3
