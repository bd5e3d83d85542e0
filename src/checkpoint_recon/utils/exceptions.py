"""Custom exceptions for the checkpoint reconciliation engine."""


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    pass


class ValidationError(ReconciliationError):
    """Malformed input: negative amounts, unknown accounts, sub-threshold gaps."""

    pass


class ConcurrencyConflict(ReconciliationError):
    """
    A locked transaction changed during an active session, or a write collided.

    Recoverable: re-run the gap calculation and try again.
    """

    def __init__(self, message: str, transaction_ids: tuple[str, ...] = ()):
        super().__init__(message)
        self.transaction_ids = transaction_ids


class DataIntegrityError(ReconciliationError):
    """A checkpoint or period reference cannot be resolved consistently."""

    pass


class ConfigurationError(ReconciliationError):
    """Error in configuration."""

    pass


class LedgerParseError(ReconciliationError):
    """Error parsing a ledger CSV export."""

    pass


class ReportGenerationError(ReconciliationError):
    """Error generating Excel report."""

    pass
