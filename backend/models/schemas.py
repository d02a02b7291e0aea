"""
Pydantic models for the ClipWave settlement backend.

Models:
  - ExtractionResult: canonical clip identifier derived from a URL (or no match)
  - AttributionCheck: whether a description carries a campaign's tracking code
  - Campaign: a creator-funded budget with a tracking code and CPMV rate
  - ClipSubmission: a clipper's claim that a clip satisfies a campaign
  - SubmissionEvaluation: extraction + attribution + payment for one submission
  - Clipper: payee side of a payout (connected payment account)
  - PlatformMetadata: best-effort view/like/comment counts for a clip
  - ClipperSummary: aggregated payout per clipper (Tab 1 of the report)
  - Request / response models for the HTTP API
"""

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

import config


Platform = Literal["tiktok", "instagram", "youtube", "twitter"]
SubmissionStatus = Literal["pending", "approved", "rejected", "paid"]
CampaignStatus = Literal["draft", "active", "paused", "completed"]

SUPPORTED_PLATFORMS: tuple[str, ...] = ("tiktok", "instagram", "youtube", "twitter")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Core value types: immutable, produced once per call
# ---------------------------------------------------------------------------
class ExtractionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    matched: bool
    identifier: Optional[str] = None

    @model_validator(mode="after")
    def _identifier_iff_matched(self):
        if self.matched != (self.identifier is not None):
            raise ValueError("identifier must be present if and only if matched is true")
        return self


class AttributionCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_code: bool
    matched_code: Optional[str] = None

    @model_validator(mode="after")
    def _code_iff_found(self):
        if self.has_code != (self.matched_code is not None):
            raise ValueError("matched_code must be present if and only if has_code is true")
        return self


# ---------------------------------------------------------------------------
# Campaign: one row of the campaigns table
#
# cpmv_rate is dollars per 1,000 views. Clips under minimum_views are kept
# pending with no payment.
# ---------------------------------------------------------------------------
class Campaign(BaseModel):
    id: str
    creator_id: str
    title: str = ""
    tracking_code: Optional[str] = None
    cpmv_rate: float = Field(ge=0)
    minimum_views: int = Field(default_factory=lambda: config.DEFAULT_MINIMUM_VIEWS, ge=0)
    total_budget: Optional[float] = None
    remaining_budget: Optional[float] = None
    status: CampaignStatus = "draft"


# ---------------------------------------------------------------------------
# ClipSubmission: one row of the clip_submissions table
# ---------------------------------------------------------------------------
class ClipSubmission(BaseModel):
    id: str
    campaign_id: str
    submitter_id: str
    clip_url: str
    platform: Platform
    description: Optional[str] = None
    view_count: int = Field(default=0, ge=0)
    status: SubmissionStatus = "pending"
    payment_amount: Optional[float] = None
    rejection_reason: Optional[str] = None
    tracking_code_verified: Optional[bool] = None
    submitted_at: datetime = Field(default_factory=utc_now)
    verified_at: Optional[datetime] = None


class Clipper(BaseModel):
    id: str
    display_name: str = ""
    email: Optional[str] = None
    stripe_account_id: Optional[str] = None


# ---------------------------------------------------------------------------
# SubmissionEvaluation: outcome of evaluating one submission
#
# status:
#   rejected → invalid URL or tracking code missing (rejection_reason set)
#   pending  → valid, but view_count < campaign.minimum_views (amount 0)
#   approved → valid and qualified (payment_amount = views/1000 * cpmv)
# ---------------------------------------------------------------------------
class SubmissionEvaluation(BaseModel):
    submission_id: Optional[str] = None
    submitter_id: Optional[str] = None
    clip_url: str
    platform: Platform
    extraction: ExtractionResult
    attribution: AttributionCheck
    view_count: int
    payment_amount: float = 0.0
    amount_cents: int = 0
    status: SubmissionStatus
    rejection_reason: Optional[str] = None


class PlatformMetadata(BaseModel):
    platform: Platform
    view_count: int = 0
    like_count: int = 0
    comment_count: int = 0
    hashtags: list[str] = Field(default_factory=list)
    thumbnail: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    source: str = "fallback"  # "api", "html" or "fallback"


# ---------------------------------------------------------------------------
# ClipperSummary: per-clipper aggregation for Tab 1 of the report
#
#   approved_count = evaluations with status "approved"
#   pending_count  = valid clips still under the minimum view count
#   rejected_count = invalid URL or missing tracking code
# ---------------------------------------------------------------------------
class ClipperSummary(BaseModel):
    submitter_id: str
    approved_count: int = 0
    pending_count: int = 0
    rejected_count: int = 0
    total_views: int = 0
    total_payout: float = 0.0


# ---------------------------------------------------------------------------
# API request / response models
# ---------------------------------------------------------------------------
class SubmissionInput(BaseModel):
    clip_url: str
    platform: Platform
    description: Optional[str] = None
    view_count: int = Field(default=0, ge=0)
    submitter_id: Optional[str] = None
    id: Optional[str] = None


class EvaluateRequest(BaseModel):
    campaign: Campaign
    submission: SubmissionInput


class CreateSubmissionRequest(BaseModel):
    campaign_id: str
    submission: SubmissionInput


class CampaignPaymentRequest(BaseModel):
    amount: float
    campaign_id: str
    creator_id: str


class CampaignPaymentResponse(BaseModel):
    client_secret: Optional[str] = None
    payment_intent_id: str


class PayoutRequest(BaseModel):
    submission_id: str
    amount: float
    creator_id: str


class PayoutResponse(BaseModel):
    success: bool
    transfer_id: str
    amount: float
    clipper: Optional[str] = None


class ConnectAccountRequest(BaseModel):
    clipper_id: str
    email: Optional[str] = None
    country: str = "US"


class ConnectAccountResponse(BaseModel):
    account_id: str
    onboarding_url: str


class LoginLinkRequest(BaseModel):
    clipper_id: str
    account_id: Optional[str] = None


class LoginLinkResponse(BaseModel):
    login_url: str


class ReportRequest(BaseModel):
    campaign: Campaign
    submissions: list[SubmissionInput] = Field(default_factory=list)
    csv_url: Optional[str] = None


class ReportResponse(BaseModel):
    status: str
    filename: str
    summary: dict
