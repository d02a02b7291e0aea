"""
In-process submission store.

Stands in for the hosted database: campaigns, clip submissions and clippers,
keyed by id. One instance is created by main.get_store() and injected into
handlers, so tests get a fresh store per test via dependency overrides.

Updates return the new row. Budget changes and payout claims are read and
written under the same lock. Rows are pydantic models copied on write, so a
row handed out earlier is never mutated behind the caller's back.
"""

import logging
import threading
from typing import Optional

from models.schemas import Campaign, ClipSubmission, Clipper

logger = logging.getLogger(__name__)


class SubmissionStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._campaigns: dict[str, Campaign] = {}
        self._submissions: dict[str, ClipSubmission] = {}
        self._clippers: dict[str, Clipper] = {}

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------
    def add_campaign(self, campaign: Campaign) -> Campaign:
        with self._lock:
            self._campaigns[campaign.id] = campaign
        return campaign

    def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        with self._lock:
            return self._campaigns.get(campaign_id)

    def update_campaign(self, campaign_id: str, **fields) -> Optional[Campaign]:
        with self._lock:
            current = self._campaigns.get(campaign_id)
            if current is None:
                logger.warning(f"update_campaign: no campaign {campaign_id}")
                return None
            updated = current.model_copy(update=fields)
            self._campaigns[campaign_id] = updated
            return updated

    def adjust_campaign_budget(self, campaign_id: str, delta: float) -> Optional[Campaign]:
        """Add delta (negative to deduct) to the remaining budget, read and written under one lock."""
        with self._lock:
            current = self._campaigns.get(campaign_id)
            if current is None:
                logger.warning(f"adjust_campaign_budget: no campaign {campaign_id}")
                return None
            updated = current.model_copy(
                update={"remaining_budget": _available_budget(current) + delta}
            )
            self._campaigns[campaign_id] = updated
            return updated

    def withdraw_campaign_budget(self, campaign_id: str, amount: float) -> bool:
        """Deduct amount only if the remaining budget covers it."""
        with self._lock:
            current = self._campaigns.get(campaign_id)
            if current is None:
                return False
            available = _available_budget(current)
            if available < amount:
                return False
            self._campaigns[campaign_id] = current.model_copy(
                update={"remaining_budget": available - amount}
            )
            return True

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------
    def add_submission(self, submission: ClipSubmission) -> ClipSubmission:
        with self._lock:
            self._submissions[submission.id] = submission
        return submission

    def get_submission(self, submission_id: str) -> Optional[ClipSubmission]:
        with self._lock:
            return self._submissions.get(submission_id)

    def update_submission(self, submission_id: str, **fields) -> Optional[ClipSubmission]:
        with self._lock:
            current = self._submissions.get(submission_id)
            if current is None:
                logger.warning(f"update_submission: no submission {submission_id}")
                return None
            updated = current.model_copy(update=fields)
            self._submissions[submission_id] = updated
            return updated

    def claim_submission_for_payout(self, submission_id: str) -> Optional[ClipSubmission]:
        """
        Move an approved submission to paid and return it.

        Returns None if the submission is missing or no longer approved, so
        only one concurrent payout can win the claim.
        """
        with self._lock:
            current = self._submissions.get(submission_id)
            if current is None or current.status != "approved":
                return None
            updated = current.model_copy(update={"status": "paid"})
            self._submissions[submission_id] = updated
            return updated

    def list_submissions(self, campaign_id: Optional[str] = None) -> list[ClipSubmission]:
        with self._lock:
            rows = list(self._submissions.values())
        if campaign_id is not None:
            rows = [s for s in rows if s.campaign_id == campaign_id]
        return sorted(rows, key=lambda s: s.submitted_at)

    # ------------------------------------------------------------------
    # Clippers
    # ------------------------------------------------------------------
    def add_clipper(self, clipper: Clipper) -> Clipper:
        with self._lock:
            self._clippers[clipper.id] = clipper
        return clipper

    def get_clipper(self, clipper_id: str) -> Optional[Clipper]:
        with self._lock:
            return self._clippers.get(clipper_id)

    def update_clipper(self, clipper_id: str, **fields) -> Optional[Clipper]:
        with self._lock:
            current = self._clippers.get(clipper_id)
            if current is None:
                logger.warning(f"update_clipper: no clipper {clipper_id}")
                return None
            updated = current.model_copy(update=fields)
            self._clippers[clipper_id] = updated
            return updated


def _available_budget(campaign: Campaign) -> float:
    if campaign.remaining_budget is not None:
        return campaign.remaining_budget
    return campaign.total_budget or 0.0
