"""Exception types raised by the data layer.

Repositories let storage errors (``sqlite3.Error``) propagate unchanged; the
classes below cover the cases the data layer detects itself.
"""


class ClinicRecordsError(Exception):
    """Base class for errors raised by clinic_records."""


class ValidationError(ClinicRecordsError):
    """A required field is missing or a value is out of range."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ImportFormatError(ValidationError):
    """CSV text or file name cannot be mapped onto a table."""


class NotFoundError(ClinicRecordsError):
    """A lookup by id returned nothing."""

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class NoDataError(ClinicRecordsError):
    """An export was requested for an empty table."""


class StoreUnavailableError(ClinicRecordsError):
    """The storage engine is not open (or its connection was closed)."""


class TransactionFailure(ClinicRecordsError):
    """The transaction primitive was misused."""


class NestedTransactionError(TransactionFailure):
    """transaction() was called from inside another transaction's work."""


class ImportRowError(ClinicRecordsError):
    """One CSV record was rejected during import."""

    def __init__(self, row_number: int, message: str):
        super().__init__(f"Row {row_number}: {message}")
        self.row_number = row_number
