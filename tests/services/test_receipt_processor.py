"""Tests for goods receipt processing."""

from datetime import date
from decimal import Decimal

import pytest

from rollstock_kernel.domain.batch import BatchSpec
from rollstock_kernel.exceptions import DuplicateBatchCodeError, ValidationError
from rollstock_services import GoodsReceipt, ReceiptLine


class TestReceive:
    def test_one_batch_per_unit(self, ledger):
        result = ledger.receipts.receive(
            GoodsReceipt(
                lines=[ReceiptLine(item_code="PAPER-60", total_received_quantity="1000", unit_count=2)]
            )
        )
        assert result.document_id == "GRN00001/25-26"
        assert [b.batch_code for b in result.batches] == [
            "GRN00001/25-26-1-01",
            "GRN00001/25-26-1-02",
        ]
        assert [b.received_quantity for b in result.batches] == [Decimal("500")] * 2
        assert all(b.source_document_id == "GRN00001/25-26" for b in result.batches)

    def test_split_sums_exactly(self, ledger, receive):
        batches = receive(ledger, "PAPER-60", "1000", unit_count=3)
        assert sum(b.received_quantity for b in batches) == Decimal("1000")
        assert batches[-1].received_quantity == Decimal("333.334")

    def test_external_document_id_kept(self, ledger):
        result = ledger.receipts.receive(
            GoodsReceipt(
                document_id="PO-77/GRN-3",
                lines=[ReceiptLine(item_code="INK-RED", total_received_quantity="20")],
            )
        )
        assert result.batches[0].batch_code == "PO-77/GRN-3-1-01"
        assert ledger.sequences.current_value("GRN") == 0

    def test_lines_numbered_from_one(self, ledger):
        result = ledger.receipts.receive(
            GoodsReceipt(
                lines=[
                    ReceiptLine(item_code="PAPER-60", total_received_quantity="100"),
                    ReceiptLine(item_code="FILM-20", total_received_quantity="60", unit_count=3),
                ]
            )
        )
        assert len(result.batches) == 4
        assert [b.batch_code for b in result.batches_for_line(2)] == [
            "GRN00001/25-26-2-01",
            "GRN00001/25-26-2-02",
            "GRN00001/25-26-2-03",
        ]

    def test_measures_split_with_quantity(self, ledger):
        result = ledger.receipts.receive(
            GoodsReceipt(
                supplier="Shree Papers",
                received_on=date(2025, 6, 1),
                lines=[
                    ReceiptLine(
                        item_code="PAPER-60",
                        total_received_quantity="1200",
                        unit_count=2,
                        attributes={"width_mm": "1000", "gsm": "60"},
                        measures={"running_metres": "20000"},
                    )
                ],
            )
        )
        first = result.batches[0]
        assert Decimal(first.attributes["running_metres"]) == Decimal("10000")
        assert first.attributes["width_mm"] == "1000"
        assert first.attributes["unit_index"] == 1
        assert first.attributes["unit_count"] == 2
        assert first.attributes["supplier"] == "Shree Papers"
        assert first.attributes["received_on"] == "2025-06-01"

    def test_numbers_advance(self, ledger, receive):
        receive(ledger, "PAPER-60", "10")
        (batch,) = receive(ledger, "PAPER-60", "10")
        assert batch.source_document_id == "GRN00002/25-26"


class TestReceiveRejections:
    @pytest.mark.parametrize(
        "line",
        [
            ReceiptLine(item_code="PAPER-60", total_received_quantity="0"),
            ReceiptLine(item_code="PAPER-60", total_received_quantity="-5"),
            ReceiptLine(item_code="PAPER-60", total_received_quantity="10", unit_count=0),
            ReceiptLine(item_code="PAPER-60", total_received_quantity="10", uom=""),
            ReceiptLine(item_code=" ", total_received_quantity="10"),
        ],
    )
    def test_invalid_line(self, ledger, line):
        with pytest.raises(ValidationError):
            ledger.receipts.receive(GoodsReceipt(lines=[line]))
        assert ledger.batches.list_all() == []
        assert ledger.sequences.current_value("GRN") == 0

    def test_no_lines(self, ledger):
        with pytest.raises(ValidationError):
            ledger.receipts.receive(GoodsReceipt(lines=[]))

    def test_failing_line_removes_earlier_batches(self, ledger):
        ledger.batches.create_batch(
            BatchSpec(
                item_code="PAPER-60",
                uom="Kg",
                received_quantity="1",
                source_document_id="MANUAL",
                batch_code="EXT-2-2-01",
            )
        )
        with pytest.raises(DuplicateBatchCodeError):
            ledger.receipts.receive(
                GoodsReceipt(
                    document_id="EXT-2",
                    lines=[
                        ReceiptLine(item_code="PAPER-60", total_received_quantity="10"),
                        ReceiptLine(item_code="PAPER-60", total_received_quantity="10"),
                    ],
                )
            )
        assert ledger.batches.list_by_source_document("EXT-2") == []
        assert ledger.batches.find_by_code("EXT-2-1-01") is None

    def test_failure_releases_generated_number(self, ledger):
        ledger.batches.create_batch(
            BatchSpec(
                item_code="PAPER-60",
                uom="Kg",
                received_quantity="1",
                source_document_id="MANUAL",
                batch_code="GRN00001/25-26-1-01",
            )
        )
        with pytest.raises(DuplicateBatchCodeError):
            ledger.receipts.receive(
                GoodsReceipt(
                    lines=[ReceiptLine(item_code="PAPER-60", total_received_quantity="10")]
                )
            )
        assert ledger.sequences.current_value("GRN") == 0

    def test_duplicate_document_rolls_back_whole_receipt(self, ledger, receive):
        receive(ledger, "PAPER-60", "10", document_id="EXT-1")
        with pytest.raises(DuplicateBatchCodeError):
            ledger.receipts.receive(
                GoodsReceipt(
                    document_id="EXT-1",
                    lines=[ReceiptLine(item_code="PAPER-60", total_received_quantity="10")],
                )
            )
        assert len(ledger.batches.list_by_source_document("EXT-1")) == 1
