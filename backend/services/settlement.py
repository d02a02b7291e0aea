"""
Clip verification and pay-per-view settlement.

CRITICAL: payment is calculated PER SUBMISSION, never per clipper total.
Clipper summaries are built afterwards by aggregating evaluations.

Core calculator (pure and total: never raises, never rounds):
  check_attribution(description, expected_code) → AttributionCheck
      case-insensitive SUBSTRING containment, not a word match
  calculate_payment(view_count, cpmv_rate) → float
      amount = (view_count / 1000) * cpmv_rate

Settlement pipeline (built on the calculator):
  1. evaluate_submission(campaign, submission) → SubmissionEvaluation
       invalid URL              → rejected ("invalid clip URL")
       tracking code missing    → rejected ("tracking code not found in description")
       views < minimum_views    → pending, amount 0
       otherwise                → approved, amount = calculate_payment(...)
  2. build_clipper_summaries(evaluations) → aggregate per submitter
  3. run_settlement_pipeline(campaign, submissions) → both of the above

Currency rounding only happens in to_minor_units(), at the payment-provider
boundary, under an explicit policy (half_up / half_even / down).
"""

import logging
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN, ROUND_HALF_UP
from typing import Iterable, Optional

import config
from models.schemas import (
    AttributionCheck,
    Campaign,
    ClipperSummary,
    SubmissionEvaluation,
    SubmissionInput,
)
from services.url_extractor import extract_identifier

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
VIEWS_PER_MILLE = 1_000
CENTS_PER_UNIT = 100

ROUNDING_POLICIES = {
    "half_up": ROUND_HALF_UP,
    "half_even": ROUND_HALF_EVEN,
    "down": ROUND_DOWN,
}

REASON_INVALID_URL = "invalid clip URL"
REASON_MISSING_CODE = "tracking code not found in description"

UNKNOWN_SUBMITTER = "(unknown)"


# ===========================================================================
# Calculator: attribution
# ===========================================================================

def check_attribution(description: Optional[str], expected_code: str) -> AttributionCheck:
    """
    Does the description carry the campaign's tracking code?

    Both sides are lowercased with str.lower() (no locale involved) and
    compared with a plain substring test. "xCODE123x" contains "code123".
    An absent or empty description never matches.
    """
    if not description or not expected_code:
        return AttributionCheck(has_code=False)
    if not isinstance(description, str) or not isinstance(expected_code, str):
        return AttributionCheck(has_code=False)

    if expected_code.lower() in description.lower():
        return AttributionCheck(has_code=True, matched_code=expected_code)
    return AttributionCheck(has_code=False)


# ===========================================================================
# Calculator: payment
# ===========================================================================

def calculate_payment(view_count: float, cpmv_rate: float) -> float:
    """
    Amount owed for view_count views at cpmv_rate per thousand views.

    No floor, ceiling or rounding. Inputs are NOT validated: a negative view
    count gives a negative amount by plain arithmetic, so callers must reject
    bad input before getting here.
    """
    return (view_count / VIEWS_PER_MILLE) * cpmv_rate


def to_minor_units(amount: float, policy: Optional[str] = None) -> int:
    """
    Convert a currency amount to integer minor units (cents).

    Args:
        amount: Amount in major units, e.g. 12.345
        policy: "half_up", "half_even" or "down"; defaults to
                config.CURRENCY_ROUNDING

    Raises:
        ValueError: unknown rounding policy
    """
    policy = policy or config.CURRENCY_ROUNDING
    rounding = ROUNDING_POLICIES.get(policy)
    if rounding is None:
        raise ValueError(
            f"Unknown rounding policy '{policy}', "
            f"expected one of {sorted(ROUNDING_POLICIES)}"
        )
    # str() first so 0.1 + 0.2 style float noise does not leak into the cents
    cents = Decimal(str(amount)) * CENTS_PER_UNIT
    return int(cents.quantize(Decimal("1"), rounding=rounding))


# ===========================================================================
# Step 1: Evaluate one submission against a campaign
# ===========================================================================

def evaluate_submission(
    campaign: Campaign,
    submission: SubmissionInput,
) -> SubmissionEvaluation:
    """
    Run the extractor and calculator for one submission.

    Campaigns without a tracking code do not require attribution; the check
    is still reported (has_code=False) for the audit tab.
    """
    extraction = extract_identifier(submission.clip_url, submission.platform)

    if campaign.tracking_code:
        attribution = check_attribution(submission.description, campaign.tracking_code)
    else:
        attribution = AttributionCheck(has_code=False)

    status = "approved"
    reason = None
    amount = 0.0

    if not extraction.matched:
        status, reason = "rejected", REASON_INVALID_URL
    elif campaign.tracking_code and not attribution.has_code:
        status, reason = "rejected", REASON_MISSING_CODE
    elif submission.view_count < campaign.minimum_views:
        status = "pending"
    else:
        amount = calculate_payment(submission.view_count, campaign.cpmv_rate)
        # Nothing earned yet (zero rate or zero views): keep it open
        if amount <= 0:
            status, amount = "pending", 0.0

    evaluation = SubmissionEvaluation(
        submission_id=submission.id,
        submitter_id=submission.submitter_id,
        clip_url=submission.clip_url,
        platform=submission.platform,
        extraction=extraction,
        attribution=attribution,
        view_count=submission.view_count,
        payment_amount=amount,
        amount_cents=to_minor_units(amount) if amount else 0,
        status=status,
        rejection_reason=reason,
    )

    logger.debug(
        f"  [{submission.submitter_id}] {submission.platform} "
        f"{extraction.identifier or submission.clip_url!r}: "
        f"views={submission.view_count:,} → {status} ${amount:,.2f}"
        + (f" ({reason})" if reason else "")
    )
    return evaluation


def evaluate_submissions(
    campaign: Campaign,
    submissions: Iterable[SubmissionInput],
) -> list[SubmissionEvaluation]:
    evaluations = [evaluate_submission(campaign, s) for s in submissions]

    approved = [e for e in evaluations if e.status == "approved"]
    logger.info(
        f"Evaluated {len(evaluations)} submissions for campaign {campaign.id}: "
        f"{len(approved)} approved, "
        f"{sum(1 for e in evaluations if e.status == 'pending')} pending, "
        f"{sum(1 for e in evaluations if e.status == 'rejected')} rejected, "
        f"total=${sum(e.payment_amount for e in approved):,.2f}"
    )
    return evaluations


# ===========================================================================
# Step 2: Aggregate per clipper
# ===========================================================================

def build_clipper_summaries(
    evaluations: list[SubmissionEvaluation],
) -> list[ClipperSummary]:
    """
    Aggregate per-submission evaluations into per-clipper summaries.

    Evaluations without a submitter_id are grouped under "(unknown)".
    Only approved evaluations contribute views and payout.

    Returns:
        List of ClipperSummary objects, sorted by submitter_id
    """
    grouped: dict[str, list[SubmissionEvaluation]] = {}
    for evaluation in evaluations:
        key = evaluation.submitter_id or UNKNOWN_SUBMITTER
        grouped.setdefault(key, []).append(evaluation)

    summaries: list[ClipperSummary] = []
    for submitter_id in sorted(grouped):
        items = grouped[submitter_id]
        approved = [e for e in items if e.status == "approved"]
        summaries.append(ClipperSummary(
            submitter_id=submitter_id,
            approved_count=len(approved),
            pending_count=sum(1 for e in items if e.status == "pending"),
            rejected_count=sum(1 for e in items if e.status == "rejected"),
            total_views=sum(e.view_count for e in approved),
            total_payout=sum(e.payment_amount for e in approved),
        ))

    logger.info(
        f"Built {len(summaries)} clipper summaries, "
        f"total across all clippers: "
        f"${sum(s.total_payout for s in summaries):,.2f}"
    )
    return summaries


# ===========================================================================
# Convenience: full settlement pipeline
# ===========================================================================

def run_settlement_pipeline(
    campaign: Campaign,
    submissions: list[SubmissionInput],
) -> tuple[list[SubmissionEvaluation], list[ClipperSummary]]:
    logger.info(f"Running settlement pipeline on {len(submissions)} submissions")
    evaluations = evaluate_submissions(campaign, submissions)
    summaries = build_clipper_summaries(evaluations)
    return evaluations, summaries


# ===========================================================================
# Display helper
# ===========================================================================

def format_view_count(view_count: int) -> str:
    """1_250_000 → "1.2M", 3_400 → "3.4K", 999 → "999"."""
    if view_count >= 1_000_000:
        return f"{view_count / 1_000_000:.1f}M"
    if view_count >= 1_000:
        return f"{view_count / 1_000:.1f}K"
    return str(view_count)
