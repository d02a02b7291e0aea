"""
Stripe payment gateway.

Wraps the calls the marketplace makes to Stripe:
  - create_campaign_payment_intent: creator funds a campaign budget
  - create_connect_account / create_account_link / create_login_link:
    clipper onboarding to Stripe Connect (Express)
  - transfer_to_clipper: pay an approved submission out to the clipper
  - construct_event: verify an inbound webhook signature

The gateway is constructed once (main.get_gateway) and passed to whoever
needs it. It never sets the process-wide stripe.api_key: the key travels with
every request, so several gateways (e.g. test + live) can coexist.

All amounts here are INTEGER minor units (cents). Converting a dollar amount
is the caller's job (services.settlement.to_minor_units).
"""

import json
import logging
from typing import Optional

import stripe

import config

logger = logging.getLogger(__name__)

PAYMENT_TYPE_CAMPAIGN_BUDGET = "campaign_budget"
PAYMENT_TYPE_CLIP_PAYMENT = "clip_payment"


class PaymentGateway:
    def __init__(
        self,
        api_key: str,
        webhook_secret: str = "",
        currency: Optional[str] = None,
        api_version: Optional[str] = None,
    ):
        if not api_key:
            raise RuntimeError("STRIPE_SECRET_KEY is not set")
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.currency = currency or config.PAYMENT_CURRENCY
        self.api_version = api_version or config.STRIPE_API_VERSION

    @classmethod
    def from_config(cls) -> "PaymentGateway":
        return cls(
            api_key=config.STRIPE_SECRET_KEY,
            webhook_secret=config.STRIPE_WEBHOOK_SECRET,
            currency=config.PAYMENT_CURRENCY,
            api_version=config.STRIPE_API_VERSION,
        )

    def _request_options(self) -> dict:
        return {"api_key": self.api_key, "stripe_version": self.api_version}

    # ------------------------------------------------------------------
    # Campaign funding
    # ------------------------------------------------------------------
    def create_campaign_payment_intent(
        self,
        amount_cents: int,
        campaign_id: str,
        creator_id: str,
        metadata: Optional[dict[str, str]] = None,
    ):
        logger.info(
            f"Creating payment intent for campaign {campaign_id}: "
            f"{amount_cents} {self.currency} cents"
        )
        return stripe.PaymentIntent.create(
            amount=amount_cents,
            currency=self.currency,
            automatic_payment_methods={"enabled": True},
            metadata={
                "type": PAYMENT_TYPE_CAMPAIGN_BUDGET,
                "campaign_id": campaign_id,
                "creator_id": creator_id,
                "amount": str(amount_cents),
                **(metadata or {}),
            },
            **self._request_options(),
        )

    # ------------------------------------------------------------------
    # Clipper onboarding
    # ------------------------------------------------------------------
    def create_connect_account(self, email: str, user_id: str, country: str = "US"):
        return stripe.Account.create(
            type="express",
            country=country,
            email=email,
            capabilities={
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            metadata={"user_id": user_id},
            **self._request_options(),
        )

    def create_account_link(self, account_id: str, refresh_url: str, return_url: str):
        return stripe.AccountLink.create(
            account=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
            type="account_onboarding",
            **self._request_options(),
        )

    def create_login_link(self, account_id: str):
        return stripe.Account.create_login_link(account_id, **self._request_options())

    # ------------------------------------------------------------------
    # Payouts
    # ------------------------------------------------------------------
    def transfer_to_clipper(
        self,
        amount_cents: int,
        destination_account_id: str,
        submission_id: str,
        metadata: Optional[dict[str, str]] = None,
    ):
        logger.info(
            f"Transferring {amount_cents} {self.currency} cents to "
            f"{destination_account_id} for submission {submission_id}"
        )
        return stripe.Transfer.create(
            amount=amount_cents,
            currency=self.currency,
            destination=destination_account_id,
            metadata={
                "type": PAYMENT_TYPE_CLIP_PAYMENT,
                "submission_id": submission_id,
                **(metadata or {}),
            },
            **self._request_options(),
        )

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------
    def construct_event(self, payload: bytes, signature: str) -> dict:
        """
        Verify the stripe-signature header and return the event as a dict.

        Raises:
            stripe.SignatureVerificationError: bad or stale signature
            ValueError: payload is not valid JSON
        """
        if not self.webhook_secret:
            raise RuntimeError("STRIPE_WEBHOOK_SECRET is not set")
        stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        return json.loads(payload)
