"""
Excel settlement report for one campaign.

Creates a 3-tab .xlsx file:
  Tab 1: "Clipper Payout Summary" - one row per clipper (from ClipperSummary)
  Tab 2: "Submission Audit"       - one row per evaluated submission
  Tab 3: "Rejections"             - rejected submissions with their reason

File naming: "ClipWave Settlement {campaign_id} {generated_on}.xlsx"

Formatting:
  - Bold header rows on all tabs, top row frozen
  - Auto-fit column widths (with min/max constraints)
  - Currency format for payout columns ($#,##0.00)
  - Comma-separated number format for view counts (#,##0)
"""

import os
import logging
import re
from datetime import date
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

import config
from models.schemas import Campaign, ClipperSummary, SubmissionEvaluation

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
MIN_COL_WIDTH = 10
MAX_COL_WIDTH = 50
HEADER_FONT = Font(bold=True)
CURRENCY_FORMAT = '$#,##0.00'
NUMBER_FORMAT = '#,##0'

TAB_SUMMARY = "Clipper Payout Summary"
TAB_AUDIT = "Submission Audit"
TAB_REJECTIONS = "Rejections"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


# ===========================================================================
# Public API
# ===========================================================================

def generate_report(
    campaign: Campaign,
    summaries: list[ClipperSummary],
    evaluations: list[SubmissionEvaluation],
    generated_on: Optional[date] = None,
    output_dir: Optional[str] = None,
) -> str:
    """
    Write the settlement workbook and return its absolute path.

    Args:
        campaign:     Campaign the submissions were evaluated against
        summaries:    Per-clipper rows for Tab 1
        evaluations:  Per-submission rows for Tabs 2 and 3
        generated_on: Date used in the filename (defaults to today)
        output_dir:   Directory to save the file (defaults to config.OUTPUT_DIR)
    """
    output_dir = output_dir or config.OUTPUT_DIR
    generated_on = generated_on or date.today()
    os.makedirs(output_dir, exist_ok=True)

    safe_id = _UNSAFE_FILENAME_CHARS.sub("_", campaign.id).strip("_") or "campaign"
    filename = f"ClipWave Settlement {safe_id} {generated_on.isoformat()}.xlsx"
    filepath = os.path.abspath(os.path.join(output_dir, filename))

    logger.info(f"Generating report: {filepath}")

    wb = Workbook()

    ws1 = wb.active
    ws1.title = TAB_SUMMARY
    _build_summary_tab(ws1, summaries)

    ws2 = wb.create_sheet(TAB_AUDIT)
    _build_audit_tab(ws2, campaign, evaluations)

    ws3 = wb.create_sheet(TAB_REJECTIONS)
    _build_rejections_tab(ws3, [e for e in evaluations if e.status == "rejected"])

    wb.save(filepath)
    logger.info(
        f"Report saved: {filepath} "
        f"({len(summaries)} clippers, {len(evaluations)} submissions)"
    )
    return filepath


# ===========================================================================
# Tab 1: Clipper Payout Summary
# ===========================================================================

def _build_summary_tab(ws: Worksheet, summaries: list[ClipperSummary]) -> None:
    """One row per clipper, sorted by Total Payout descending."""
    ws.append([
        "Clipper",
        "Approved Clips",
        "Pending Clips",
        "Rejected Clips",
        "Approved Views",
        "Total Payout",
    ])

    for s in sorted(summaries, key=lambda s: s.total_payout, reverse=True):
        ws.append([
            s.submitter_id,
            s.approved_count,
            s.pending_count,
            s.rejected_count,
            s.total_views,
            s.total_payout,
        ])

    _format_header_row(ws)
    _freeze_top_row(ws)
    for col_idx in [2, 3, 4, 5]:
        _apply_column_format(ws, col_idx=col_idx, fmt=NUMBER_FORMAT)
    _apply_column_format(ws, col_idx=6, fmt=CURRENCY_FORMAT)
    _auto_fit_columns(ws)


# ===========================================================================
# Tab 2: Submission Audit
# ===========================================================================

def _build_audit_tab(
    ws: Worksheet,
    campaign: Campaign,
    evaluations: list[SubmissionEvaluation],
) -> None:
    """
    Every evaluated submission, in input order.

    Columns:
      Submission ID | Clipper | Platform | Clip URL | Clip ID |
      Tracking Code Found | Views | CPMV Rate | Payout Amount | Amount (cents) | Status
    """
    ws.append([
        "Submission ID",
        "Clipper",
        "Platform",
        "Clip URL",
        "Clip ID",
        "Tracking Code Found",
        "Views",
        "CPMV Rate",
        "Payout Amount",
        "Amount (cents)",
        "Status",
    ])

    for e in evaluations:
        ws.append([
            e.submission_id,
            e.submitter_id,
            e.platform,
            e.clip_url,
            e.extraction.identifier,
            "yes" if e.attribution.has_code else "no",
            e.view_count,
            campaign.cpmv_rate,
            e.payment_amount,
            e.amount_cents,
            e.status,
        ])

    _format_header_row(ws)
    _freeze_top_row(ws)
    for col_idx in [7, 10]:
        _apply_column_format(ws, col_idx=col_idx, fmt=NUMBER_FORMAT)
    for col_idx in [8, 9]:
        _apply_column_format(ws, col_idx=col_idx, fmt=CURRENCY_FORMAT)
    _auto_fit_columns(ws)


# ===========================================================================
# Tab 3: Rejections
# ===========================================================================

def _build_rejections_tab(ws: Worksheet, rejected: list[SubmissionEvaluation]) -> None:
    ws.append(["Submission ID", "Clipper", "Platform", "Clip URL", "Views", "Reason"])

    for e in rejected:
        ws.append([
            e.submission_id,
            e.submitter_id,
            e.platform,
            e.clip_url,
            e.view_count,
            e.rejection_reason,
        ])

    _format_header_row(ws)
    _freeze_top_row(ws)
    _apply_column_format(ws, col_idx=5, fmt=NUMBER_FORMAT)
    _auto_fit_columns(ws)


# ===========================================================================
# Formatting helpers
# ===========================================================================

def _format_header_row(ws: Worksheet) -> None:
    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal="center", vertical="center")


def _freeze_top_row(ws: Worksheet) -> None:
    ws.freeze_panes = "A2"


def _apply_column_format(
    ws: Worksheet,
    col_idx: int,
    fmt: str,
    start_row: int = 2,
) -> None:
    """Apply a number format to every non-empty data cell of a 1-based column."""
    for row in range(start_row, ws.max_row + 1):
        cell = ws.cell(row=row, column=col_idx)
        if cell.value is not None:
            cell.number_format = fmt


def _auto_fit_columns(ws: Worksheet) -> None:
    """Width = longest cell text + 2, clamped to [MIN_COL_WIDTH, MAX_COL_WIDTH]."""
    for col_idx in range(1, ws.max_column + 1):
        max_length = 0
        for row in range(1, ws.max_row + 1):
            value = ws.cell(row=row, column=col_idx).value
            if value is not None:
                max_length = max(max_length, len(str(value)))

        width = min(max(max_length + 2, MIN_COL_WIDTH), MAX_COL_WIDTH)
        ws.column_dimensions[get_column_letter(col_idx)].width = width
