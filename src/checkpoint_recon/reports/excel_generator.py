"""
Excel report generator for checkpoint reconciliation.
Creates multi-sheet workbooks with formatted output.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Border, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from ..calculations.gap_calculator import get_gap_severity_color, get_gap_severity_text
from ..config import ReconConfig
from ..models.checkpoint import Checkpoint, Severity
from ..models.period import ReconciliationPeriod
from ..services.adjustment import GapResolutionSummary
from ..services.reconciliation_service import GapSummary
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
RECONCILED_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)


def severity_fill(severity: Severity) -> PatternFill:
    color = get_gap_severity_color(severity).lstrip("#")
    return PatternFill(start_color=color, end_color=color, fill_type="solid")


@dataclass
class CheckpointReport:
    """Everything rendered into one workbook."""

    checkpoint: Checkpoint
    period: ReconciliationPeriod
    gap_summary: GapSummary
    resolution_summary: GapResolutionSummary
    closed: bool = False
    closure_reason: Optional[str] = None
    generated_at: datetime = field(default_factory=datetime.now)


class ExcelReportGenerator:
    """Generates Excel checkpoint reports with multiple sheets."""

    def __init__(self, config: ReconConfig):
        """
        Initialize the report generator.

        Args:
            config: Application configuration
        """
        self.config = config
        self.output_config = config.output.excel
        self.sheet_config = config.output.sheets

    def generate_report(self, report: CheckpointReport, output_path: Path) -> Path:
        """
        Generate the complete checkpoint report.

        Args:
            report: Checkpoint, period and gap figures to render
            output_path: Path for output file

        Returns:
            Path to generated report

        Raises:
            ReportGenerationError: If the workbook cannot be written
        """
        logger.info(f"Generating Excel report: {output_path}")

        wb = Workbook()

        # Remove default sheet
        if wb.active:
            wb.remove(wb.active)

        if self.sheet_config.summary.enabled:
            self._create_summary_sheet(wb, report)

        if self.sheet_config.account_gaps.enabled:
            self._create_account_gaps_sheet(wb, report)

        if self.sheet_config.resolutions.enabled:
            self._create_resolutions_sheet(wb, report)

        if not wb.sheetnames:
            raise ReportGenerationError("Every report sheet is disabled in the configuration")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            wb.save(output_path)
        except OSError as e:
            raise ReportGenerationError(f"Failed to write report {output_path}: {e}") from e
        logger.info(f"Report saved: {output_path}")

        return output_path

    def _create_summary_sheet(self, wb: Workbook, report: CheckpointReport) -> None:
        """Create the summary sheet with key metrics."""
        ws = wb.create_sheet(self.sheet_config.summary.name)
        checkpoint = report.checkpoint
        aggregate = report.gap_summary.aggregate

        ws["A1"] = "Checkpoint Reconciliation Summary"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        ws["A3"] = "Checkpoint"
        ws["A3"].font = Font(bold=True)

        checkpoint_info = [
            ("Checkpoint ID:", checkpoint.id),
            ("Workspace:", checkpoint.workspace_id),
            ("As Of:", checkpoint.as_of_date.isoformat()),
            ("Created At:", checkpoint.created_at.strftime("%Y-%m-%d %H:%M:%S")),
            ("Created By:", checkpoint.created_by),
            ("Status:", checkpoint.status.value),
        ]
        row = 4
        for label, value in checkpoint_info:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = str(value)
            row += 1

        row += 1
        ws[f"A{row}"] = "Gaps"
        ws[f"A{row}"].font = Font(bold=True)
        row += 1

        gap_info = [
            ("Accounts:", len(checkpoint.account_balances)),
            ("Accounts With Gaps:", len(aggregate.accounts_with_gaps)),
            ("Net Gap:", f"{aggregate.total_gap_amount:,.2f}"),
            ("Absolute Gap:", f"{aggregate.total_absolute_gap:,.2f}"),
            ("Overall Severity:", get_gap_severity_text(aggregate.overall_severity)),
        ]
        for label, value in gap_info:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = value
            row += 1
        ws[f"B{row - 1}"].fill = severity_fill(aggregate.overall_severity)

        row += 1
        ws[f"A{row}"] = "Period"
        ws[f"A{row}"].font = Font(bold=True)
        row += 1

        period = report.period
        period_info = [
            ("Period ID:", period.id),
            ("Status:", period.status.value),
            ("Transactions:", period.total_transactions),
            ("Transaction Volume:", f"{period.total_amount:,.2f}"),
            ("Closed:", "Yes" if report.closed else "No"),
        ]
        if report.closure_reason:
            period_info.append(("Closure Blocked:", report.closure_reason))
        for label, value in period_info:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = value
            row += 1

        row += 1
        ws[f"A{row}"] = "Generated At:"
        ws[f"B{row}"] = report.generated_at.strftime("%Y-%m-%d %H:%M:%S")

        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 40

    def _create_account_gaps_sheet(self, wb: Workbook, report: CheckpointReport) -> None:
        """One row per account, colored by severity."""
        ws = wb.create_sheet(self.sheet_config.account_gaps.name)

        headers = [
            "Account ID",
            "Account Name",
            "Currency",
            "Actual Balance",
            "Expected Balance",
            "Gap",
            "Gap %",
            "Severity",
            "Current Gap",
        ]
        self._write_headers(ws, headers)

        gaps = {g.account_id: g for g in report.gap_summary.gaps}
        for row_num, balance in enumerate(report.checkpoint.account_balances, start=2):
            snapshot_gap = report.checkpoint.gap_for(balance.account_id)
            current_gap = gaps.get(balance.account_id, snapshot_gap)
            severity = snapshot_gap.severity if snapshot_gap else Severity.LOW

            row_data = [
                balance.account_id,
                balance.account_name,
                balance.currency,
                float(balance.actual_balance),
                float(balance.expected_balance),
                float(balance.gap_amount),
                f"{balance.gap_percentage:.2f}%",
                get_gap_severity_text(severity),
                float(current_gap.gap_amount) if current_gap else "",
            ]

            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                if balance.is_reconciled:
                    cell.fill = RECONCILED_FILL
                elif col in (6, 7, 8):
                    cell.fill = severity_fill(severity)

        self._auto_fit_columns(ws)

    def _create_resolutions_sheet(self, wb: Workbook, report: CheckpointReport) -> None:
        """How each gap was resolved, plus method counts."""
        ws = wb.create_sheet(self.sheet_config.resolutions.name)

        headers = [
            "Account ID",
            "Remaining Gap",
            "Resolution Method",
            "Adjustment Transaction",
            "Written Off",
        ]
        self._write_headers(ws, headers)

        row = 2
        for gap in report.gap_summary.gaps:
            row_data = [
                gap.account_id,
                float(gap.gap_amount),
                gap.resolution_method.value if gap.resolution_method else "unresolved",
                gap.adjustment_transaction_id or "",
                float(gap.written_off_amount) if gap.written_off_amount is not None else "",
            ]
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row, column=col, value=value)
                cell.border = THIN_BORDER
                if gap.is_resolved:
                    cell.fill = RECONCILED_FILL
            row += 1

        summary = report.resolution_summary
        counts = summary.resolution_methods
        row += 1
        ws[f"A{row}"] = "Resolution Summary"
        ws[f"A{row}"].font = Font(bold=True)
        row += 1

        summary_rows = [
            ("Original Gap Total:", f"{summary.total_original_gap:,.2f}"),
            ("Remaining Gap Total:", f"{summary.total_resolved_gap:,.2f}"),
            ("Quick Close:", counts.quick_close),
            ("Manual Transaction:", counts.manual_transaction),
            ("Unresolved:", counts.unresolved),
        ]
        for label, value in summary_rows:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = value
            row += 1

        self._auto_fit_columns(ws)

    def _write_headers(self, ws: Worksheet, headers: list[str]) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            max_length = 0
            column = get_column_letter(column_cells[0].column)

            for cell in column_cells:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))

            adjusted_width = min(max_length + 2, 50)
            ws.column_dimensions[column].width = adjusted_width
