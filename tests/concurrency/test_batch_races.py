"""
Race tests for issue, return and slitting under real thread parallelism.

Threads start together on a Barrier and contend for the same batch locks.
The invariants checked afterwards are the ones a lost update would break:
remaining quantity never negative, cumulative returns never above the
issued quantity, document numbers never duplicated.

Run with: pytest tests/concurrency/test_batch_races.py -v
Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier, Event, Thread

import pytest

from rollstock_kernel.exceptions import (
    InsufficientStockError,
    OverReturnError,
    StockLedgerError,
)
from rollstock_kernel.persistence import InMemoryBackend
from rollstock_services import (
    InventoryLedger,
    IssueLineRequest,
    ReturnLineRequest,
    TransformationOutputRequest,
)

pytestmark = pytest.mark.slow_locks

NUM_THREADS = 10


def _race(num_threads, fn):
    """Run ``fn(i)`` on ``num_threads`` threads released together."""
    barrier = Barrier(num_threads, timeout=30)

    def run(i):
        barrier.wait()
        try:
            return fn(i)
        except StockLedgerError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=num_threads) as pool:
        return list(pool.map(run, range(num_threads)))


class TestConcurrentIssues:
    def test_explicit_issues_never_overdraw(self, ledger, receive):
        (batch,) = receive(ledger, "PAPER-60", "500")

        results = _race(
            NUM_THREADS,
            lambda i: ledger.allocation.issue_explicit(
                f"JOB-{i}", [IssueLineRequest(batch.id, "60")]
            ),
        )

        issued = [r for r in results if not isinstance(r, Exception)]
        failed = [r for r in results if isinstance(r, Exception)]
        assert len(issued) == 8
        assert all(isinstance(r, InsufficientStockError) for r in failed)
        assert ledger.batches.get_by_id(batch.id).remaining_quantity == Decimal("20")
        assert len({r.id for r in issued}) == 8
        assert ledger.sequences.current_value("MI") == 8
        assert ledger.stock.reconcile_batch(batch.id).is_consistent

    def test_fifo_issues_across_batches(self, ledger, receive):
        batches = receive(ledger, "FILM-20", "1000", unit_count=4)

        results = _race(
            NUM_THREADS,
            lambda i: ledger.allocation.issue_auto(f"JOB-{i}", "FILM-20", "110"),
        )

        issued = [r for r in results if not isinstance(r, Exception)]
        assert len(issued) == 9
        remaining = sum(
            ledger.batches.get_by_id(b.id).remaining_quantity for b in batches
        )
        assert remaining == Decimal("10")
        assert sum(
            line.quantity for issue in issued for line in issue.lines
        ) == Decimal("990")
        for b in batches:
            assert ledger.stock.reconcile_batch(b.id).is_consistent


class TestConcurrentReturns:
    def test_returns_bounded_by_issue(self, ledger, receive):
        (batch,) = receive(ledger, "PAPER-60", "500")
        issue = ledger.allocation.issue_explicit("JOB-1", [IssueLineRequest(batch.id, "300")])

        results = _race(
            NUM_THREADS,
            lambda i: ledger.returns.process_return(
                issue.id, [ReturnLineRequest(batch.id, "100")]
            ),
        )

        accepted = [r for r in results if not isinstance(r, Exception)]
        assert len(accepted) == 3
        assert all(
            isinstance(r, OverReturnError) for r in results if isinstance(r, Exception)
        )
        assert ledger.batches.get_by_id(batch.id).remaining_quantity == Decimal("500")
        assert ledger.returns.outstanding_quantity(issue.id, batch.id) == 0

    def test_return_and_reversal_race(self, ledger, receive):
        (batch,) = receive(ledger, "PAPER-60", "500")
        issue = ledger.allocation.issue_explicit("JOB-1", [IssueLineRequest(batch.id, "300")])

        def act(i):
            if i == 0:
                return ledger.returns.reverse_issue(issue.id)
            return ledger.returns.process_return(issue.id, [ReturnLineRequest(batch.id, "50")])

        _race(NUM_THREADS, act)

        assert ledger.records.get_issue(issue.id).is_reversed
        assert ledger.batches.get_by_id(batch.id).remaining_quantity == Decimal("500")


class TestConcurrentSlitting:
    def test_issue_versus_slit(self, ledger, receive):
        (batch,) = receive(ledger, "PAPER-60", "300")

        def act(i):
            if i % 2 == 0:
                return ledger.transformations.transform(
                    batch.id,
                    [TransformationOutputRequest("150"), TransformationOutputRequest("150")],
                )
            return ledger.allocation.issue_explicit(
                f"JOB-{i}", [IssueLineRequest(batch.id, "10")]
            )

        results = _race(NUM_THREADS, act)

        slit = ledger.records.transformations_consuming(batch.id)
        parent = ledger.batches.get_by_id(batch.id)
        assert len(slit) <= 1
        assert parent.remaining_quantity >= 0
        if slit:
            assert parent.is_closed
            assert len(ledger.batches.list_children(batch.id)) == 2
        assert ledger.stock.reconcile_batch(batch.id).is_consistent
        assert len([r for r in results if not isinstance(r, Exception)]) >= 1


class _FailOnTransformationSave(InMemoryBackend):
    """Runs ``on_save`` and then fails when a transformation record is written."""

    def __init__(self):
        super().__init__()
        self.on_save = None

    def save(self, key, value):
        if key.startswith("transformation:") and self.on_save is not None:
            self.on_save()
            raise OSError("disk full")
        super().save(key, value)


class TestUncommittedChildren:
    def test_child_invisible_until_rollback(self, clock, receive):
        backend = _FailOnTransformationSave()
        ledger = InventoryLedger(backend=backend, clock=clock)
        (roll,) = receive(ledger, "PAPER-60", "300")
        child_code = f"{roll.batch_code}-SL01"
        observed = {}
        reader_started = Event()

        def issue_child():
            reader_started.set()
            child = ledger.batches.find_by_code(child_code)
            observed["read"] = child
            if child is not None:
                observed["issue"] = ledger.allocation.issue_explicit(
                    "JOB-X", [IssueLineRequest(child.id, "100")]
                )

        reader = Thread(target=issue_child)

        def start_reader():
            reader.start()
            reader_started.wait(timeout=5)
            reader.join(timeout=0.2)
            observed["blocked"] = reader.is_alive()

        backend.on_save = start_reader

        with pytest.raises(OSError):
            ledger.transformations.transform(
                roll.id,
                [TransformationOutputRequest("140"), TransformationOutputRequest("160")],
            )
        reader.join(timeout=5)

        assert not reader.is_alive()
        assert observed["blocked"] is True
        assert observed["read"] is None
        assert "issue" not in observed
        assert ledger.records.list_issues("JOB-X") == []
        assert ledger.batches.find_by_code(child_code) is None
        assert ledger.batches.get_by_id(roll.id).remaining_quantity == Decimal("300")
        assert ledger.stock.reconcile_batch(roll.id).is_consistent


class TestLockRegistry:
    def test_registry_returns_to_baseline(self, ledger, receive):
        baseline = len(ledger.batches.locks)
        (batch,) = receive(ledger, "PAPER-60", "500")
        issue = ledger.allocation.issue_explicit("JOB-1", [IssueLineRequest(batch.id, "100")])
        ledger.returns.process_return(issue.id, [ReturnLineRequest(batch.id, "40")])
        ledger.transformations.transform(
            batch.id, [TransformationOutputRequest("200"), TransformationOutputRequest("240")]
        )
        assert not ledger.batches.exists("no-such-batch")

        _race(
            NUM_THREADS,
            lambda i: ledger.batches.get_by_id(batch.id),
        )

        assert len(ledger.batches.locks) == baseline

    def test_reentrant_hold_keeps_entry(self, ledger):
        locks = ledger.batches.locks
        with locks.hold(["batch:a", "batch:b"]):
            with locks.hold(["batch:a"]):
                assert len(locks) == 2
            assert len(locks) == 2
        assert len(locks) == 0
