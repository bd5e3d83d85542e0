"""
Declared balance file parser.

A balances file is YAML::

    workspace_id: household
    created_by: alice
    as_of_date: 2024-01-31
    notes: January statement
    accounts:
      - account_id: checking
        name: Checking
        currency: UAH
        actual_balance: "1250.00"
"""

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Optional
import logging

import yaml

from ..models.ledger import Account
from ..services.reconciliation_service import AccountBalanceInput
from ..utils.exceptions import LedgerParseError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class BalanceDeclaration:
    """Everything needed to open a checkpoint from a file."""

    workspace_id: str
    created_by: str
    balances: list[AccountBalanceInput] = field(default_factory=list)
    accounts: list[Account] = field(default_factory=list)
    as_of_date: Optional[date] = None
    notes: Optional[str] = None


def parse_balances_file(file_path: Path, default_currency: str = "UAH") -> BalanceDeclaration:
    """
    Parse a YAML balances file.

    Args:
        file_path: Path to the YAML file
        default_currency: Currency for accounts that do not declare one

    Returns:
        BalanceDeclaration

    Raises:
        LedgerParseError: If the file is unreadable or malformed
    """
    logger.info(f"Parsing balances file: {file_path}")

    try:
        with open(file_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise LedgerParseError(f"Failed to read balances file: {e}") from e

    if not isinstance(data, dict):
        raise LedgerParseError(f"Balances file root must be a mapping: {file_path}")

    entries = data.get("accounts") or []
    if not isinstance(entries, list) or not entries:
        raise LedgerParseError("Balances file must list at least one account under 'accounts'")

    balances: list[AccountBalanceInput] = []
    accounts: list[Account] = []
    workspace_id = str(data.get("workspace_id", "default"))

    for position, entry in enumerate(entries):
        balance, account = _parse_entry(entry, position, workspace_id, default_currency)
        balances.append(balance)
        accounts.append(account)

    return BalanceDeclaration(
        workspace_id=workspace_id,
        created_by=str(data.get("created_by", "cli")),
        balances=balances,
        accounts=accounts,
        as_of_date=_parse_date(data.get("as_of_date")),
        notes=data.get("notes"),
    )


def _parse_entry(
    entry: Any, position: int, workspace_id: str, default_currency: str
) -> tuple[AccountBalanceInput, Account]:
    if not isinstance(entry, dict) or "account_id" not in entry:
        raise LedgerParseError(f"Account entry {position} must be a mapping with an account_id")
    if "actual_balance" not in entry:
        raise LedgerParseError(f"Account entry {position} is missing actual_balance")

    account_id = str(entry["account_id"])
    name = str(entry.get("name", account_id))
    currency = str(entry.get("currency", default_currency))

    try:
        balance = AccountBalanceInput(
            account_id=account_id,
            actual_balance=entry["actual_balance"],
            account_name=name,
            currency=currency,
        )
    except ValidationError as e:
        raise LedgerParseError(f"Account {account_id}: {e}") from e

    return balance, Account(id=account_id, name=name, currency=currency, workspace_id=workspace_id)


def _parse_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    # YAML already turns unquoted ISO dates into date objects
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as e:
        raise LedgerParseError(f"Invalid as_of_date: {value}") from e
