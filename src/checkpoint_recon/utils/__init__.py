"""Utility modules."""

from .exceptions import (
    ReconciliationError,
    ValidationError,
    ConcurrencyConflict,
    DataIntegrityError,
    ConfigurationError,
    LedgerParseError,
    ReportGenerationError,
)
from .logging_config import setup_logging

__all__ = [
    "ReconciliationError",
    "ValidationError",
    "ConcurrencyConflict",
    "DataIntegrityError",
    "ConfigurationError",
    "LedgerParseError",
    "ReportGenerationError",
    "setup_logging",
]
