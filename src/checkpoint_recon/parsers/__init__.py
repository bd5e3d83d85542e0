"""Parsers for ledger CSV exports and declared balance files."""

from .ledger_csv import LedgerCSVParser
from .balances import BalanceDeclaration, parse_balances_file

__all__ = ["LedgerCSVParser", "BalanceDeclaration", "parse_balances_file"]
