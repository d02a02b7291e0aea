"""
Bulk submission import from a published CSV (e.g. a Google Sheet export).

Expected header row (case-insensitive, extra columns ignored):
  clip_url | platform | description | view_count | submitter_id | id

Only clip_url and platform are required. Rows with an empty clip_url are
skipped. A blank or unsupported platform is inferred from the URL host;
if that also fails the row is skipped. view_count defaults to 0.

Output: list[SubmissionInput], ready for services.settlement.
"""

import io
import logging
from typing import Optional

import httpx
import pandas as pd

from models.schemas import SubmissionInput, SUPPORTED_PLATFORMS
from services.url_extractor import detect_platform

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("clip_url", "platform")
CSV_FETCH_TIMEOUT = 30


class ReportInputError(RuntimeError):
    pass


# ===========================================================================
# Public API
# ===========================================================================

def fetch_submissions_csv(url: str) -> list[SubmissionInput]:
    """
    Download a CSV and parse it into submissions.

    Raises:
        ReportInputError: the CSV cannot be fetched or lacks required columns
    """
    logger.info(f"Fetching submissions CSV: {url}")
    try:
        response = httpx.get(url, timeout=CSV_FETCH_TIMEOUT, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"Failed to fetch submissions CSV: {e}")
        raise ReportInputError(f"Could not fetch submissions CSV: {e}") from e

    return parse_submissions_csv(response.text)


def parse_submissions_csv(csv_text: str) -> list[SubmissionInput]:
    try:
        df = pd.read_csv(io.StringIO(csv_text), dtype=str, keep_default_na=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ReportInputError(f"Could not parse submissions CSV: {e}") from e

    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ReportInputError(
            f"Submissions CSV is missing column(s): {', '.join(missing)}. "
            f"Found: {', '.join(df.columns)}"
        )

    submissions: list[SubmissionInput] = []
    skipped = 0

    for row_idx, row in df.iterrows():
        clip_url = _clean_string(row.get("clip_url"))
        if not clip_url:
            skipped += 1
            continue

        platform = _resolve_platform(row.get("platform"), clip_url)
        if platform is None:
            logger.warning(f"Row {row_idx}: cannot determine platform for {clip_url!r}, skipping")
            skipped += 1
            continue

        submissions.append(SubmissionInput(
            clip_url=clip_url,
            platform=platform,
            description=_clean_string(row.get("description")),
            view_count=_safe_views(row.get("view_count")),
            submitter_id=_clean_string(row.get("submitter_id")),
            id=_clean_string(row.get("id")),
        ))

    logger.info(
        f"Submission import complete: {len(submissions)} rows loaded, "
        f"{skipped} rows skipped"
    )
    return submissions


# ===========================================================================
# Private helpers
# ===========================================================================

def _resolve_platform(raw_value, clip_url: str) -> Optional[str]:
    platform = (_clean_string(raw_value) or "").lower()
    if platform == "x":
        platform = "twitter"
    if platform in SUPPORTED_PLATFORMS:
        return platform
    return detect_platform(clip_url)


def _safe_views(raw_value) -> int:
    """'12,345' → 12345. Blanks, garbage and negatives → 0."""
    cleaned = (_clean_string(raw_value) or "").replace(",", "")
    try:
        views = int(float(cleaned))
    except (ValueError, OverflowError):
        return 0
    return max(views, 0)


def _clean_string(raw_value) -> Optional[str]:
    if raw_value is None or pd.isna(raw_value):
        return None
    cleaned = str(raw_value).strip()
    return cleaned if cleaned else None
