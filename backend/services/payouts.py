"""
Submission, funding and payout flows (store + gateway + settlement core).

Flows:
  submit_clip(store, campaign_id, submission)
      evaluate → persist → if approved, deduct amount from remaining budget
  create_campaign_payment(store, gateway, request)
      check ownership → payment intent for amount (in cents)
  payout_clipper(store, gateway, request)
      ownership → approved? → clipper connected? → claim → withdraw budget → transfer
      (claim and budget released if the transfer raises)
  onboard_clipper(store, gateway, request, app_origin)
      clipper without account → Connect account + onboarding link
  clipper_login_link(store, gateway, request)
      account belongs to clipper → dashboard login link
  handle_webhook_event(store, event)
      payment_intent.succeeded  → campaign active, remaining_budget funded
      account.updated           → clipper.stripe_account_id
      transfer.created          → submission paid

Validation failures raise PayoutRejected carrying the HTTP status the API
should answer with. Gateway (stripe) errors propagate unchanged.
"""

import logging
import uuid
from typing import Optional

from models.schemas import (
    CampaignPaymentRequest,
    ClipSubmission,
    ConnectAccountRequest,
    LoginLinkRequest,
    PayoutRequest,
    SubmissionInput,
    utc_now,
)
from services.payments import (
    PAYMENT_TYPE_CAMPAIGN_BUDGET,
    PAYMENT_TYPE_CLIP_PAYMENT,
    PaymentGateway,
)
from services.settlement import evaluate_submission, to_minor_units
from services.store import SubmissionStore

logger = logging.getLogger(__name__)


class PayoutRejected(RuntimeError):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# ===========================================================================
# Submissions
# ===========================================================================

def submit_clip(
    store: SubmissionStore,
    campaign_id: str,
    submission: SubmissionInput,
) -> ClipSubmission:
    """
    Evaluate a clip against its campaign and persist the result.

    Approved clips reserve their amount from the campaign's remaining budget
    straight away; pending and rejected clips reserve nothing.

    Raises:
        PayoutRejected(404): unknown campaign
        PayoutRejected(400): no submitter_id
    """
    campaign = store.get_campaign(campaign_id)
    if campaign is None:
        raise PayoutRejected(f"Campaign not found: {campaign_id}", status_code=404)
    if not submission.submitter_id:
        raise PayoutRejected("Missing required field: submitter_id")

    evaluation = evaluate_submission(campaign, submission)

    row = ClipSubmission(
        id=submission.id or str(uuid.uuid4()),
        campaign_id=campaign.id,
        submitter_id=submission.submitter_id,
        clip_url=submission.clip_url,
        platform=submission.platform,
        description=submission.description,
        view_count=submission.view_count,
        status=evaluation.status,
        payment_amount=evaluation.payment_amount if evaluation.status == "approved" else None,
        rejection_reason=evaluation.rejection_reason,
        tracking_code_verified=evaluation.attribution.has_code,
    )
    store.add_submission(row)

    if evaluation.status == "approved":
        store.adjust_campaign_budget(campaign.id, -evaluation.payment_amount)

    logger.info(
        f"Submission {row.id} for campaign {campaign.id}: {row.status}"
        + (f" (${row.payment_amount:,.2f})" if row.payment_amount else "")
        + (f" ({row.rejection_reason})" if row.rejection_reason else "")
    )
    return row


# ===========================================================================
# Campaign funding
# ===========================================================================

def create_campaign_payment(
    store: SubmissionStore,
    gateway: PaymentGateway,
    request: CampaignPaymentRequest,
):
    if request.amount <= 0:
        raise PayoutRejected("Amount must be positive")

    campaign = store.get_campaign(request.campaign_id)
    if campaign is None or campaign.creator_id != request.creator_id:
        raise PayoutRejected("Campaign not found or unauthorized", status_code=404)

    return gateway.create_campaign_payment_intent(
        to_minor_units(request.amount),
        campaign.id,
        request.creator_id,
        metadata={"campaign_title": campaign.title},
    )


# ===========================================================================
# Payout to clipper
# ===========================================================================

def payout_clipper(
    store: SubmissionStore,
    gateway: PaymentGateway,
    request: PayoutRequest,
) -> tuple[ClipSubmission, str, Optional[str]]:
    """
    Pay an approved submission out to the clipper's connected account.

    Returns:
        (updated submission, transfer id, clipper display name)
    """
    if not request.submission_id or not request.amount or request.amount <= 0:
        raise PayoutRejected("Missing required fields: submission_id, amount")

    submission = store.get_submission(request.submission_id)
    if submission is None:
        raise PayoutRejected("Submission not found", status_code=404)

    campaign = store.get_campaign(submission.campaign_id)
    if campaign is None:
        raise PayoutRejected("Campaign not found", status_code=404)
    if campaign.creator_id != request.creator_id:
        raise PayoutRejected("Unauthorized - not campaign creator", status_code=403)

    if submission.status != "approved":
        raise PayoutRejected("Submission must be approved before payment")

    clipper = store.get_clipper(submission.submitter_id)
    if clipper is None or not clipper.stripe_account_id:
        raise PayoutRejected("Clipper does not have a Stripe Connect account")

    # Claim first: a concurrent payout for the same submission fails here
    if store.claim_submission_for_payout(submission.id) is None:
        raise PayoutRejected("Submission must be approved before payment")
    if not store.withdraw_campaign_budget(campaign.id, request.amount):
        store.update_submission(submission.id, status="approved")
        raise PayoutRejected("Insufficient campaign budget")

    try:
        transfer = gateway.transfer_to_clipper(
            to_minor_units(request.amount),
            clipper.stripe_account_id,
            submission.id,
            metadata={
                "campaign_id": campaign.id,
                "campaign_title": campaign.title,
                "clipper_name": clipper.display_name,
            },
        )
    except Exception:
        logger.warning(f"Transfer for submission {submission.id} failed, releasing claim")
        store.adjust_campaign_budget(campaign.id, request.amount)
        store.update_submission(submission.id, status="approved")
        raise

    updated = store.update_submission(submission.id, verified_at=utc_now())

    logger.info(
        f"Paid submission {submission.id}: ${request.amount:,.2f} → "
        f"{clipper.display_name or clipper.id} (transfer {transfer['id']})"
    )
    return updated, transfer["id"], clipper.display_name


# ===========================================================================
# Clipper onboarding
# ===========================================================================

def onboard_clipper(
    store: SubmissionStore,
    gateway: PaymentGateway,
    request: ConnectAccountRequest,
    app_origin: str,
) -> tuple[str, str]:
    """
    Create a Connect account for a clipper and an onboarding link for it.

    Returns:
        (account id, onboarding url)
    """
    clipper = store.get_clipper(request.clipper_id)
    if clipper is None:
        raise PayoutRejected("Only clippers can create Connect accounts", status_code=403)
    if clipper.stripe_account_id:
        raise PayoutRejected("User already has a Stripe Connect account")

    account = gateway.create_connect_account(
        request.email or clipper.email or "",
        clipper.id,
        request.country,
    )
    store.update_clipper(clipper.id, stripe_account_id=account["id"])

    link = gateway.create_account_link(
        account["id"],
        refresh_url=f"{app_origin}/profile?stripe_refresh=true",
        return_url=f"{app_origin}/profile?stripe_success=true",
    )
    logger.info(f"Created Connect account {account['id']} for clipper {clipper.id}")
    return account["id"], link["url"]


def clipper_login_link(
    store: SubmissionStore,
    gateway: PaymentGateway,
    request: LoginLinkRequest,
) -> str:
    if not request.account_id:
        raise PayoutRejected("Account ID is required")

    clipper = store.get_clipper(request.clipper_id)
    if clipper is None or clipper.stripe_account_id != request.account_id:
        raise PayoutRejected("Account not found or unauthorized", status_code=403)

    return gateway.create_login_link(request.account_id)["url"]


# ===========================================================================
# Webhook events
# ===========================================================================

def handle_webhook_event(store: SubmissionStore, event: dict) -> bool:
    """
    Apply a verified Stripe event to the store.

    Returns:
        True if the event type is handled, False if it was ignored.
    """
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == "payment_intent.succeeded":
        _on_payment_intent_succeeded(store, obj)
    elif event_type == "account.updated":
        _on_account_updated(store, obj)
    elif event_type == "transfer.created":
        _on_transfer_created(store, obj)
    else:
        logger.info(f"Unhandled event type: {event_type}")
        return False
    return True


def _on_payment_intent_succeeded(store: SubmissionStore, payment_intent: dict) -> None:
    metadata = payment_intent.get("metadata") or {}
    if metadata.get("type") != PAYMENT_TYPE_CAMPAIGN_BUDGET:
        return

    funded = _cents_to_amount(metadata.get("amount"))
    if funded is None:
        funded = _cents_to_amount(payment_intent.get("amount"))
    if funded is None:
        logger.warning(
            f"Payment intent {payment_intent.get('id')} has no usable amount, "
            f"activating campaign {metadata.get('campaign_id')} without funding it"
        )
        store.update_campaign(metadata.get("campaign_id"), status="active")
        return

    campaign = store.update_campaign(
        metadata.get("campaign_id"), status="active", remaining_budget=funded,
    )
    if campaign is not None:
        logger.info(f"Campaign {campaign.id} budget payment confirmed")


def _on_account_updated(store: SubmissionStore, account: dict) -> None:
    user_id = (account.get("metadata") or {}).get("user_id")
    if user_id:
        store.update_clipper(user_id, stripe_account_id=account.get("id"))


def _on_transfer_created(store: SubmissionStore, transfer: dict) -> None:
    metadata = transfer.get("metadata") or {}
    submission_id = metadata.get("submission_id")
    if metadata.get("type") != PAYMENT_TYPE_CLIP_PAYMENT or not submission_id:
        return

    submission = store.update_submission(submission_id, status="paid", verified_at=utc_now())
    if submission is not None:
        logger.info(f"Submission {submission_id} marked as paid")


def _cents_to_amount(value) -> Optional[float]:
    """Stripe minor units (int or numeric string) → major units; None if unusable."""
    if value is None or value == "":
        return None
    try:
        cents = float(value)
    except (ValueError, TypeError):
        logger.warning(f"Could not parse amount in cents: {value!r}")
        return None
    return cents / 100
