"""
Command-line interface for the checkpoint reconciliation engine.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional
import logging
import sys

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .calculations.gap_calculator import (
    analyze_gap_severity,
    calculate_gap_percentage,
    get_gap_severity_color,
    get_gap_severity_text,
)
from .config import ReconConfig, generate_default_config, load_config
from .constants import to_decimal
from .models.checkpoint import ResolutionMethod
from .parsers.balances import parse_balances_file
from .parsers.ledger_csv import LedgerCSVParser
from .persistence.ledger import InMemoryLedger
from .reports.excel_generator import CheckpointReport, ExcelReportGenerator
from .services.adjustment import AdjustmentTransactionCreator
from .services.reconciliation_service import GapSummary, ReconciliationService
from .utils.exceptions import ValidationError
from .utils.logging_config import setup_logging

console = Console()

RESOLVE_CHOICES = ["none", "adjust", "quick-close"]


@click.group()
@click.version_option(version=__version__)
def main():
    """Checkpoint-based balance reconciliation tool."""
    pass


@main.command()
@click.argument("ledger_file", type=click.Path(exists=True, path_type=Path))
@click.argument("balances_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Output Excel file path")
@click.option(
    "--as-of",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Override the as-of date from the balances file",
)
@click.option(
    "--resolve",
    type=click.Choice(RESOLVE_CHOICES),
    default="none",
    show_default=True,
    help="Resolve remaining gaps with adjustment entries or quick close",
)
@click.option("--close", "close_period", is_flag=True, help="Close the period if every gap is zero")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option(
    "--dry-run", is_flag=True, help="Compute gaps and show summary without generating report"
)
def reconcile(
    ledger_file: Path,
    balances_file: Path,
    config: Optional[Path],
    output: Optional[Path],
    as_of: Optional[datetime],
    resolve: str,
    close_period: bool,
    verbose: bool,
    dry_run: bool,
):
    """
    Reconcile declared account balances against a ledger export.

    LEDGER_FILE: Path to the ledger transaction CSV
    BALANCES_FILE: Path to the declared balances YAML
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    try:
        recon_config = load_config(config)
        setup_logging(log_level, log_format=recon_config.logging.format)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Reading declared balances...", total=None)
            declaration = parse_balances_file(
                balances_file, default_currency=recon_config.policy.default_currency
            )
            progress.update(task, completed=True)

            task = progress.add_task("Parsing ledger CSV...", total=None)
            parser = LedgerCSVParser(recon_config, workspace_id=declaration.workspace_id)
            transactions = parser.parse_file(ledger_file)
            progress.update(task, completed=True)

            task = progress.add_task("Computing gaps...", total=None)
            service = ReconciliationService(
                InMemoryLedger(transactions),
                config=recon_config,
                accounts=declaration.accounts,
            )
            checkpoint = service.open_checkpoint(
                declaration.workspace_id,
                declaration.balances,
                created_by=declaration.created_by,
                as_of_date=as_of.date() if as_of else declaration.as_of_date,
                notes=declaration.notes,
            )
            progress.update(task, completed=True)

            if resolve != "none":
                task = progress.add_task("Resolving gaps...", total=None)
                _resolve_all(service, checkpoint.id, resolve)
                progress.update(task, completed=True)

        summary = service.get_gap_summary(checkpoint.id)
        period = service.period_for_checkpoint(checkpoint.id)

        closed = False
        closure_reason = None
        if close_period:
            result = service.attempt_close_period(period.id)
            closed = result.closed
            closure_reason = result.reason
            period = result.period or period

        _display_gaps(service, checkpoint.id, summary)
        if close_period:
            if closed:
                console.print("\n[green]Period closed[/green]")
            else:
                console.print(f"\n[yellow]Period not closed: {closure_reason}[/yellow]")

        if dry_run:
            console.print("\n[yellow]Dry run - no report generated[/yellow]")
            return

        if output is None:
            output = _default_output_path(recon_config)

        report = CheckpointReport(
            checkpoint=service.get_checkpoint(checkpoint.id),
            period=period,
            gap_summary=summary,
            resolution_summary=AdjustmentTransactionCreator.get_gap_resolution_summary(
                checkpoint.gaps, summary.gaps
            ),
            closed=closed,
            closure_reason=closure_reason,
        )
        report_path = ExcelReportGenerator(recon_config).generate_report(report, output)

        console.print(f"\n[green]Report generated: {report_path}[/green]")

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@main.command("parse-ledger")
@click.argument("ledger_file", type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
def parse_ledger(ledger_file: Path, config: Optional[Path]):
    """
    Parse a ledger CSV file and display transaction summary.

    LEDGER_FILE: Path to the ledger transaction CSV
    """
    setup_logging(logging.INFO)

    try:
        recon_config = load_config(config)
        transactions = LedgerCSVParser(recon_config).parse_file(ledger_file)

        table = Table(title=f"Ledger Transactions: {ledger_file.name}")
        table.add_column("Date")
        table.add_column("Account")
        table.add_column("Amount", justify="right")
        table.add_column("Type")
        table.add_column("Description")

        for txn in transactions[:20]:  # Show first 20
            table.add_row(
                str(txn.date),
                txn.account_id,
                f"{txn.signed_amount:,.2f}",
                txn.type.value + (" (deleted)" if txn.is_deleted else ""),
                (
                    txn.description[:40] + "..."
                    if len(txn.description) > 40
                    else txn.description
                ),
            )

        console.print(table)

        if len(transactions) > 20:
            console.print(f"\n... and {len(transactions) - 20} more transactions")

        console.print(f"\nTotal transactions: {len(transactions)}")

    except Exception as e:
        console.print(f"[red]Error parsing file: {e}[/red]")
        sys.exit(1)


@main.command("gap-severity")
@click.argument("amount")
@click.argument("total")
def gap_severity(amount: str, total: str):
    """
    Classify a gap against a period's transaction volume.

    AMOUNT: Signed gap amount
    TOTAL: Total transaction volume of the period
    """
    try:
        gap_amount = to_decimal(amount)
        period_total = to_decimal(total)
        severity = analyze_gap_severity(gap_amount, period_total)
        percentage = calculate_gap_percentage(gap_amount, period_total)
    except ValidationError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    color = get_gap_severity_color(severity)
    console.print(
        f"Gap {gap_amount} over {period_total}: {percentage:.2f}% -> "
        f"[{color}]{severity.value} ({get_gap_severity_text(severity)})[/{color}]"
    )


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _resolve_all(service: ReconciliationService, checkpoint_id: str, mode: str) -> None:
    """Resolve every open gap, reporting the ones policy refuses."""
    method = (
        ResolutionMethod.QUICK_CLOSE if mode == "quick-close" else ResolutionMethod.MANUAL_TRANSACTION
    )
    for gap in service.get_gap_summary(checkpoint_id).gaps:
        if gap.is_resolved:
            continue
        try:
            service.resolve_gap(checkpoint_id, gap, method)
        except ValidationError as e:
            console.print(f"[yellow]Skipped {gap.account_id}: {e}[/yellow]")


def _display_gaps(service: ReconciliationService, checkpoint_id: str, summary: GapSummary) -> None:
    """Display per-account gaps and the aggregate in the console."""
    checkpoint = service.get_checkpoint(checkpoint_id)
    current = {g.account_id: g for g in summary.gaps}

    table = Table(title=f"Checkpoint {checkpoint.as_of_date.isoformat()}")
    table.add_column("Account", style="cyan")
    table.add_column("Actual", justify="right")
    table.add_column("Expected", justify="right")
    table.add_column("Gap", justify="right")
    table.add_column("Gap %", justify="right")
    table.add_column("Severity")
    table.add_column("Resolution")

    for balance in checkpoint.account_balances:
        snapshot = checkpoint.gap_for(balance.account_id)
        gap = current.get(balance.account_id, snapshot)
        color = get_gap_severity_color(snapshot.severity)
        table.add_row(
            f"{balance.account_name} ({balance.currency})",
            f"{balance.actual_balance:,.2f}",
            f"{balance.expected_balance:,.2f}",
            f"{gap.gap_amount:,.2f}",
            f"{balance.gap_percentage:.2f}%",
            f"[{color}]{get_gap_severity_text(snapshot.severity)}[/{color}]",
            gap.resolution_method.value if gap.resolution_method else "-",
        )

    console.print(table)

    aggregate = summary.aggregate
    totals = Table(title="Gap Summary")
    totals.add_column("Metric", style="cyan")
    totals.add_column("Value", justify="right")
    totals.add_row("Accounts With Gaps", str(len(aggregate.accounts_with_gaps)))
    totals.add_row("Net Gap", f"{aggregate.total_gap_amount:,.2f}")
    totals.add_row("Absolute Gap", f"{aggregate.total_absolute_gap:,.2f}")
    totals.add_row("Overall Severity", get_gap_severity_text(aggregate.overall_severity))
    totals.add_row("Ready To Close", "Yes" if summary.closure_enabled else "No")

    console.print(totals)


def _default_output_path(config: ReconConfig) -> Path:
    now = datetime.now()
    template = config.output.excel.filename_template
    return Path(template.format(date=now.strftime("%Y%m%d"), time=now.strftime("%H%M%S")))


if __name__ == "__main__":
    main()
