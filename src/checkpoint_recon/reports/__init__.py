"""Excel reporting."""

from .excel_generator import CheckpointReport, ExcelReportGenerator

__all__ = ["CheckpointReport", "ExcelReportGenerator"]
