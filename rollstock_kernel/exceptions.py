"""
Typed Exception Hierarchy for the Roll-Stock Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock movements are rejected for a handful of well-defined reasons (not enough
stock, too much returned, slitting outputs that do not add up).  Callers such
as a UI layer or an import job must react to each reason differently, so every
rejection is a distinct class with:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (batch id, requested and available quantity)

Example - RIGHT way:
    try:
        ledger.allocation.issue_explicit("JOB-17", [IssueLineRequest(batch_id, "250")])
    except InsufficientStockError as e:
        show_error(code=e.code, batch=e.batch_id, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockLedgerError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- BatchNotFoundError
    |   +-- IssueNotFoundError
    |   +-- ReturnNotFoundError
    |   +-- TransformationNotFoundError
    |
    +-- InsufficientStockError
    +-- OverCreditError
    +-- OverReturnError
    +-- ConservationError
    |
    +-- ConflictError
        +-- DuplicateBatchCodeError
        +-- BatchClosedError
        +-- BatchReferencedError
        +-- IssueAlreadyReversedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                      | When Raised
--------------------------|----------------------------------------------------
VALIDATION_ERROR          | Malformed input, caught before any mutation
BATCH_NOT_FOUND           | Batch id does not exist
ISSUE_NOT_FOUND           | Issue id does not exist
RETURN_NOT_FOUND          | Return id does not exist
TRANSFORMATION_NOT_FOUND  | Slitting record id does not exist
INSUFFICIENT_STOCK        | Debit would drive remaining quantity below zero
OVER_CREDIT               | Credit would push remaining above received
OVER_RETURN               | Return exceeds net issued quantity for issue/batch
CONSERVATION_VIOLATION    | Slitting outputs + wastage != input quantity
CONFLICT                  | Reversal no longer consistent with current state
DUPLICATE_BATCH_CODE      | Batch code already used by another batch
BATCH_CLOSED              | Credit against a batch consumed by slitting
BATCH_REFERENCED          | Delete of a batch still referenced by records
ISSUE_ALREADY_REVERSED    | Issue was reversed; no further returns/reversals

===============================================================================
DESIGN DECISIONS
===============================================================================

1. All classes inherit from Exception (not ValueError) so domain rejections
   can be caught as a group, apart from programming errors.

2. Quantities are carried as strings.  Decimal survives JSON logging and API
   serialization without float drift when rendered with str().
"""


class StockLedgerError(Exception):
    """
    Base exception for all ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_LEDGER_ERROR"


class ValidationError(StockLedgerError):
    """Input is malformed; raised before any mutation happens."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Lookup failures


class NotFoundError(StockLedgerError):
    """Base exception for a referenced record that does not exist."""

    code: str = "NOT_FOUND"
    kind: str = "record"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"{self.kind.capitalize()} not found: {identifier}")


class BatchNotFoundError(NotFoundError):
    """Batch with given ID was not found."""

    code: str = "BATCH_NOT_FOUND"
    kind: str = "batch"

    @property
    def batch_id(self) -> str:
        return self.identifier


class IssueNotFoundError(NotFoundError):
    """Issue record with given ID was not found."""

    code: str = "ISSUE_NOT_FOUND"
    kind: str = "issue"

    @property
    def issue_id(self) -> str:
        return self.identifier


class ReturnNotFoundError(NotFoundError):
    """Return record with given ID was not found."""

    code: str = "RETURN_NOT_FOUND"
    kind: str = "return"


class TransformationNotFoundError(NotFoundError):
    """Slitting record with given ID was not found."""

    code: str = "TRANSFORMATION_NOT_FOUND"
    kind: str = "transformation"


# Quantity rule violations


class InsufficientStockError(StockLedgerError):
    """A debit would leave the batch (or item) with negative stock."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        requested: str,
        available: str,
        batch_id: str | None = None,
        item_code: str | None = None,
    ):
        self.requested = requested
        self.available = available
        self.batch_id = batch_id
        self.item_code = item_code
        target = f"batch {batch_id}" if batch_id else f"item {item_code}"
        super().__init__(
            f"Insufficient stock in {target}: requested {requested}, "
            f"available {available}"
        )


class OverCreditError(StockLedgerError):
    """A credit would push remaining quantity above the received quantity."""

    code: str = "OVER_CREDIT"

    def __init__(self, batch_id: str, credit: str, remaining: str, received: str):
        self.batch_id = batch_id
        self.credit = credit
        self.remaining = remaining
        self.received = received
        super().__init__(
            f"Credit of {credit} to batch {batch_id} exceeds received quantity "
            f"{received} (remaining {remaining})"
        )


class OverReturnError(StockLedgerError):
    """Return exceeds the net outstanding issued quantity for an issue/batch pair."""

    code: str = "OVER_RETURN"

    def __init__(self, issue_id: str, batch_id: str, requested: str, outstanding: str):
        self.issue_id = issue_id
        self.batch_id = batch_id
        self.requested = requested
        self.outstanding = outstanding
        super().__init__(
            f"Return of {requested} against issue {issue_id} for batch {batch_id} "
            f"exceeds outstanding quantity {outstanding}"
        )


class ConservationError(StockLedgerError):
    """Slitting outputs plus wastage do not account for the input quantity."""

    code: str = "CONSERVATION_VIOLATION"

    def __init__(
        self,
        batch_id: str,
        input_quantity: str,
        output_total: str,
        wastage: str,
        tolerance: str,
    ):
        self.batch_id = batch_id
        self.input_quantity = input_quantity
        self.output_total = output_total
        self.wastage = wastage
        self.tolerance = tolerance
        super().__init__(
            f"Outputs {output_total} + wastage {wastage} != input {input_quantity} "
            f"for batch {batch_id} (tolerance {tolerance})"
        )


# State conflicts


class ConflictError(StockLedgerError):
    """Operation is inconsistent with the current state of the ledger."""

    code: str = "CONFLICT"

    def __init__(self, record_id: str, reason: str):
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"Conflict on {record_id}: {reason}")


class DuplicateBatchCodeError(ConflictError):
    """Batch code is already taken by another batch."""

    code: str = "DUPLICATE_BATCH_CODE"

    def __init__(self, batch_code: str, existing_batch_id: str):
        self.batch_code = batch_code
        self.existing_batch_id = existing_batch_id
        super().__init__(
            batch_code, f"batch code already used by batch {existing_batch_id}"
        )


class BatchClosedError(ConflictError):
    """Batch was consumed by a slitting run and can no longer be credited."""

    code: str = "BATCH_CLOSED"

    def __init__(self, batch_id: str, closed_by: str):
        self.batch_id = batch_id
        self.closed_by = closed_by
        super().__init__(batch_id, f"batch closed by transformation {closed_by}")


class BatchReferencedError(ConflictError):
    """Batch is still referenced by issue or transformation records."""

    code: str = "BATCH_REFERENCED"

    def __init__(self, batch_id: str, references: list[str]):
        self.batch_id = batch_id
        self.references = references
        super().__init__(
            batch_id, f"batch referenced by {', '.join(references)}"
        )


class IssueAlreadyReversedError(ConflictError):
    """Issue has been reversed; it accepts no further returns or reversals."""

    code: str = "ISSUE_ALREADY_REVERSED"

    def __init__(self, issue_id: str):
        self.issue_id = issue_id
        super().__init__(issue_id, "issue already reversed")
