"""Tests for batch lineage queries."""

import pytest

from rollstock_engines.cutting_plan import CuttingPlan
from rollstock_kernel.exceptions import BatchNotFoundError
from rollstock_services import TransformationOutputRequest


@pytest.fixture
def two_generations(ledger, paper_roll):
    """Paper roll slit into 4 children; the first child slit again in two."""
    first = ledger.transformations.slit_by_plan(
        paper_roll.id, [CuttingPlan.of("250", 2), CuttingPlan.of("200", 2)]
    )
    child_id = first.record.outputs[0].batch_id
    second = ledger.transformations.transform(
        child_id,
        [TransformationOutputRequest("75", "125mm"), TransformationOutputRequest("75", "125mm")],
    )
    return first.record, second


class TestTrace:
    def test_ancestors_nearest_first(self, ledger, paper_roll, two_generations):
        _, second = two_generations
        grandchild = second.outputs[1].batch_id
        assert [b.id for b in ledger.trace.ancestors(grandchild)] == [
            second.input_batch_id,
            paper_roll.id,
        ]
        assert ledger.trace.origin_document(grandchild) == paper_roll.source_document_id

    def test_descendants_breadth_first(self, ledger, paper_roll, two_generations):
        first, second = two_generations
        found = [b.id for b in ledger.trace.descendants(paper_roll.id)]
        assert found == list(first.output_batch_ids) + list(second.output_batch_ids)

    def test_trace_bundle(self, ledger, two_generations):
        first, second = two_generations
        middle = second.input_batch_id
        trace = ledger.trace.trace(middle)
        assert trace.produced_by.id == first.id
        assert [t.id for t in trace.consumed_by] == [second.id]
        assert len(trace.descendants) == 2
        assert trace.batch.batch_code.endswith("-SL01")

    def test_receipt_batch_is_its_own_origin(self, ledger, paper_roll):
        trace = ledger.trace.trace(paper_roll.id)
        assert trace.ancestors == ()
        assert trace.produced_by is None
        assert trace.origin_document_id == "GRN00001/25-26"

    def test_unknown_batch(self, ledger):
        with pytest.raises(BatchNotFoundError):
            ledger.trace.descendants("missing")
