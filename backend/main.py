"""
ClipWave settlement backend: FastAPI application.

Routes:
  POST /api/submissions/evaluate
    Evaluate one clip against a campaign (URL → clip id, tracking code,
    payment). Nothing is persisted.
  POST /api/submissions
    Evaluate and persist a clip for a stored campaign. Approved clips reserve
    their amount from the campaign's remaining budget.
  GET  /api/metadata?url=...
    Best-effort view/like/comment counts for a public clip URL.
  POST /api/payments/create-campaign-payment
    Payment intent funding a campaign budget.
  POST /api/payments/payout-clipper
    Transfer an approved submission's amount to the clipper.
  POST /api/payments/create-connect-account
  POST /api/payments/create-login-link
    Clipper onboarding to Stripe Connect and dashboard access.
  POST /api/payments/webhook
    Verify a Stripe webhook and apply it to the store.
  POST /api/settlements/report
    Evaluate a batch (inline or CSV URL) and write an .xlsx report.
  GET  /api/download/{filename}
    Serve a generated .xlsx file from the output directory.

Collaborators are injected with Depends(get_store) / Depends(get_gateway);
tests swap them through app.dependency_overrides.

Error handling:
  - Validation failures              → 400 / 403 / 404
  - Payments not configured          → 503
  - Stripe or CSV upstream failure   → 502
"""

import os
import logging
from functools import lru_cache
from typing import Optional

import stripe
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

import config
from models.schemas import (
    CampaignPaymentRequest,
    CampaignPaymentResponse,
    ClipSubmission,
    ConnectAccountRequest,
    ConnectAccountResponse,
    CreateSubmissionRequest,
    EvaluateRequest,
    LoginLinkRequest,
    LoginLinkResponse,
    PayoutRequest,
    PayoutResponse,
    PlatformMetadata,
    ReportRequest,
    ReportResponse,
    SubmissionEvaluation,
)
from services.excel_export import generate_report
from services.metadata import fetch_platform_metadata
from services.payments import PaymentGateway
from services.payouts import (
    PayoutRejected,
    clipper_login_link,
    create_campaign_payment,
    handle_webhook_event,
    onboard_clipper,
    payout_clipper,
    submit_clip,
)
from services.settlement import evaluate_submission, run_settlement_pipeline
from services.store import SubmissionStore
from services.submission_import import ReportInputError, fetch_submissions_csv

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ---------------------------------------------------------------------------
# Injected collaborators
# ---------------------------------------------------------------------------
_store = SubmissionStore()


def get_store() -> SubmissionStore:
    return _store


@lru_cache(maxsize=1)
def _build_gateway() -> PaymentGateway:
    return PaymentGateway.from_config()


def get_gateway() -> PaymentGateway:
    try:
        return _build_gateway()
    except RuntimeError as e:
        logger.error(f"Payment gateway unavailable: {e}")
        raise _error(503, "Payments are not configured")


def _error(status_code: int, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"status": "error", "message": message},
    )


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="ClipWave Settlement API",
    description="Clip verification and pay-per-view settlement for clipping campaigns",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    os.makedirs(config.OUTPUT_DIR, exist_ok=True)
    if not config.STRIPE_SECRET_KEY:
        logger.warning("STRIPE_SECRET_KEY not set: payment routes will answer 503")


# ===========================================================================
# Submissions
# ===========================================================================

@app.post("/api/submissions/evaluate", response_model=SubmissionEvaluation)
async def evaluate(request: EvaluateRequest):
    return evaluate_submission(request.campaign, request.submission)


@app.post("/api/submissions", response_model=ClipSubmission)
async def create_submission(
    request: CreateSubmissionRequest,
    store: SubmissionStore = Depends(get_store),
):
    try:
        return submit_clip(store, request.campaign_id, request.submission)
    except PayoutRejected as e:
        raise _error(e.status_code, e.message)


# ===========================================================================
# Metadata
# ===========================================================================

@app.get("/api/metadata", response_model=PlatformMetadata)
def clip_metadata(url: Optional[str] = None):
    if not url:
        raise _error(400, "URL parameter is required")

    metadata = fetch_platform_metadata(url)
    if metadata is None:
        raise _error(400, "Invalid clip URL")
    return metadata


# ===========================================================================
# Payments
# ===========================================================================

@app.post("/api/payments/create-campaign-payment", response_model=CampaignPaymentResponse)
def create_payment(
    request: CampaignPaymentRequest,
    store: SubmissionStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
):
    try:
        intent = create_campaign_payment(store, gateway, request)
    except PayoutRejected as e:
        raise _error(e.status_code, e.message)
    except stripe.StripeError as e:
        logger.error(f"Error creating campaign payment intent: {e}")
        raise _error(502, "Payment provider error")

    return CampaignPaymentResponse(
        client_secret=intent["client_secret"],
        payment_intent_id=intent["id"],
    )


@app.post("/api/payments/payout-clipper", response_model=PayoutResponse)
def payout(
    request: PayoutRequest,
    store: SubmissionStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
):
    try:
        _, transfer_id, clipper_name = payout_clipper(store, gateway, request)
    except PayoutRejected as e:
        raise _error(e.status_code, e.message)
    except stripe.StripeError as e:
        logger.error(f"Error processing clipper payout: {e}")
        raise _error(502, "Payment provider error")

    return PayoutResponse(
        success=True,
        transfer_id=transfer_id,
        amount=request.amount,
        clipper=clipper_name,
    )


@app.post("/api/payments/create-connect-account", response_model=ConnectAccountResponse)
def create_connect_account(
    body: ConnectAccountRequest,
    request: Request,
    store: SubmissionStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
):
    origin = str(request.base_url).rstrip("/")
    try:
        account_id, onboarding_url = onboard_clipper(store, gateway, body, origin)
    except PayoutRejected as e:
        raise _error(e.status_code, e.message)
    except stripe.StripeError as e:
        logger.error(f"Error creating Connect account: {e}")
        raise _error(502, "Payment provider error")

    return ConnectAccountResponse(account_id=account_id, onboarding_url=onboarding_url)


@app.post("/api/payments/create-login-link", response_model=LoginLinkResponse)
def create_login_link(
    body: LoginLinkRequest,
    store: SubmissionStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
):
    try:
        login_url = clipper_login_link(store, gateway, body)
    except PayoutRejected as e:
        raise _error(e.status_code, e.message)
    except stripe.StripeError as e:
        logger.error(f"Error creating login link: {e}")
        raise _error(502, "Payment provider error")

    return LoginLinkResponse(login_url=login_url)


@app.post("/api/payments/webhook")
async def stripe_webhook(
    request: Request,
    store: SubmissionStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
):
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise _error(400, "No signature provided")

    try:
        event = gateway.construct_event(payload, signature)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise _error(400, "Invalid signature")
    except RuntimeError as e:
        logger.error(f"Webhook rejected: {e}")
        raise _error(503, "Webhooks are not configured")

    handle_webhook_event(store, event)
    return {"received": True}


# ===========================================================================
# Settlement report
# ===========================================================================

@app.post("/api/settlements/report", response_model=ReportResponse)
def settlement_report(request: ReportRequest):
    campaign = request.campaign
    logger.info("=" * 60)
    logger.info(f"SETTLEMENT REPORT: campaign {campaign.id}")
    logger.info("=" * 60)

    submissions = list(request.submissions)
    if request.csv_url:
        try:
            submissions.extend(fetch_submissions_csv(request.csv_url))
        except ReportInputError as e:
            logger.error(f"Failed to load submissions CSV: {e}")
            raise _error(502, "Failed to load submissions CSV")

    evaluations, summaries = run_settlement_pipeline(campaign, submissions)
    filepath = generate_report(campaign, summaries, evaluations)
    filename = os.path.basename(filepath)

    summary = {
        "total_submissions": len(evaluations),
        "total_clippers": len(summaries),
        "approved": sum(1 for e in evaluations if e.status == "approved"),
        "pending": sum(1 for e in evaluations if e.status == "pending"),
        "rejected": sum(1 for e in evaluations if e.status == "rejected"),
        "total_payout": sum(s.total_payout for s in summaries),
    }
    logger.info(f"Report complete: {summary}")

    return ReportResponse(status="success", filename=filename, summary=summary)


@app.get("/api/download/{filename}")
async def download_report(filename: str):
    file_path = os.path.join(config.OUTPUT_DIR, filename)

    if os.path.basename(filename) != filename or not os.path.isfile(file_path):
        raise _error(404, f"Report not found: {filename}")

    return FileResponse(
        file_path,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
