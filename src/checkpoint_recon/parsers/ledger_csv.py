"""
Ledger CSV transaction parser.
Parses exported ledger files into Transaction models for reconciliation.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional
import logging

import pandas as pd

from ..config import ReconConfig
from ..models.ledger import Transaction, TransactionType
from ..utils.exceptions import LedgerParseError, ValidationError

logger = logging.getLogger(__name__)

# Accepted spellings for the transaction direction column
_TYPE_ALIASES = {
    "income": TransactionType.INCOME,
    "credit": TransactionType.INCOME,
    "in": TransactionType.INCOME,
    "expense": TransactionType.EXPENSE,
    "debit": TransactionType.EXPENSE,
    "out": TransactionType.EXPENSE,
}


class LedgerCSVParser:
    """
    Parser for ledger CSV exports.

    Each row is one transaction. Amounts may be signed; when the type column
    is empty the sign decides the direction.
    """

    def __init__(self, config: ReconConfig, workspace_id: Optional[str] = None):
        """
        Initialize the parser with configuration.

        Args:
            config: Application configuration object
            workspace_id: Workspace stamped on every parsed transaction
        """
        self.config = config
        self.workspace_id = workspace_id
        ledger_config = config.input.ledger
        self.encoding = ledger_config.get("encoding", "utf-8")
        self.delimiter = ledger_config.get("delimiter", ",")
        self.date_format = ledger_config.get("date_format", "%Y-%m-%d")
        self.column_mappings = ledger_config.get("column_mappings", {})

    def parse_file(self, file_path: Path) -> list[Transaction]:
        """
        Parse a ledger CSV file.

        Args:
            file_path: Path to the CSV file

        Returns:
            List of transactions; malformed rows are skipped with a warning

        Raises:
            LedgerParseError: If the file cannot be read or lacks required columns
        """
        logger.info(f"Parsing ledger CSV file: {file_path}")

        try:
            df = pd.read_csv(
                file_path,
                encoding=self.encoding,
                delimiter=self.delimiter,
                dtype=str,
                keep_default_na=False,
            )
        except Exception as e:
            logger.error(f"Failed to read CSV file: {e}")
            raise LedgerParseError(f"Failed to read CSV file: {e}") from e

        self._check_columns(df)
        transactions = self._process_dataframe(df)
        logger.info(f"Extracted {len(transactions)} transactions from {file_path}")

        return transactions

    def _check_columns(self, df: pd.DataFrame) -> None:
        required = [self._column(name) for name in ("account_id", "date", "amount")]
        missing = [col for col in required if col not in df.columns]
        if missing:
            raise LedgerParseError(f"Ledger CSV is missing required columns: {', '.join(missing)}")

    def _process_dataframe(self, df: pd.DataFrame) -> list[Transaction]:
        transactions: list[Transaction] = []
        seen_ids: set[str] = set()

        for idx, row in df.iterrows():
            try:
                txn = self._normalize_row(row, int(idx))
            except (ValidationError, ValueError) as e:
                logger.warning(f"Failed to process row {idx}: {e}")
                continue
            if txn is None:
                continue
            if txn.id in seen_ids:
                logger.warning(f"Row {idx}: duplicate transaction id {txn.id}, skipping")
                continue
            seen_ids.add(txn.id)
            transactions.append(txn)

        return transactions

    def _normalize_row(self, row: pd.Series, idx: int) -> Optional[Transaction]:
        """
        Convert a DataFrame row to a Transaction.

        Args:
            row: Pandas Series representing a row
            idx: Row index

        Returns:
            Transaction or None if the row is unusable
        """
        account_id = _text(row.get(self._column("account_id")))
        if not account_id:
            logger.warning(f"Row {idx}: missing account id, skipping")
            return None

        txn_date = self._parse_date(row.get(self._column("date")))
        if not txn_date:
            logger.warning(f"Row {idx}: invalid date, skipping")
            return None

        amount = self._parse_amount(row.get(self._column("amount")))
        if amount is None or amount == 0:
            logger.warning(f"Row {idx}: no valid amount found, skipping")
            return None

        type_value = _text(row.get(self._column("type"))).lower()
        if type_value:
            txn_type = _TYPE_ALIASES.get(type_value)
            if txn_type is None:
                logger.warning(f"Row {idx}: unknown transaction type '{type_value}', skipping")
                return None
        else:
            txn_type = TransactionType.INCOME if amount > 0 else TransactionType.EXPENSE

        deleted_at = self._parse_timestamp(row.get(self._column("deleted_at")))

        return Transaction(
            id=_text(row.get(self._column("transaction_id"))) or f"LEDGER-{idx:05d}",
            account_id=account_id,
            amount=abs(amount),
            type=txn_type,
            date=txn_date,
            description=_text(row.get(self._column("description"))),
            workspace_id=self.workspace_id,
            deleted_at=deleted_at,
            raw_data=row.to_dict(),
        )

    def _column(self, name: str) -> str:
        return self.column_mappings.get(name, name)

    def _parse_date(self, value) -> Optional[date]:
        text = _text(value)
        if not text:
            return None

        try:
            return datetime.strptime(text, self.date_format).date()
        except ValueError:
            # Try pandas parser as fallback
            try:
                return pd.to_datetime(text).date()
            except (ValueError, TypeError):
                return None

    def _parse_timestamp(self, value) -> Optional[datetime]:
        text = _text(value)
        if not text:
            return None
        try:
            parsed = pd.to_datetime(text).to_pydatetime()
        except (ValueError, TypeError):
            logger.warning(f"Unparseable deleted_at '{text}', treating transaction as deleted now")
            return datetime.now(timezone.utc)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def _parse_amount(self, value) -> Optional[Decimal]:
        text = _text(value)
        if not text:
            return None

        # Remove currency symbols, thousands separators and spaces
        cleaned = text.replace("$", "").replace("₴", "").replace(",", "").replace(" ", "")
        try:
            amount = Decimal(cleaned)
        except InvalidOperation:
            return None
        if not amount.is_finite():
            return None
        return amount


def _text(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()
