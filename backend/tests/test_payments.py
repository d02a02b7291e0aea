"""
Tests for services/payments.py.

Stripe API calls are patched; webhook verification runs the real
stripe.Webhook code against a locally signed payload.

Test categories:
  1. CONSTRUCTION: key required, config defaults
  2. API CALLS: amounts, metadata and per-request credentials
  3. WEBHOOK VERIFICATION
"""

import sys
import os
import hashlib
import hmac
import json
import time

import pytest
import stripe
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from services.payments import (
    PAYMENT_TYPE_CAMPAIGN_BUDGET,
    PAYMENT_TYPE_CLIP_PAYMENT,
    PaymentGateway,
)


WEBHOOK_SECRET = "whsec_test_secret"


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    """Build a stripe-signature header the way Stripe does."""
    timestamp = int(timestamp if timestamp is not None else time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def gateway():
    return PaymentGateway(
        api_key="sk_test_123",
        webhook_secret=WEBHOOK_SECRET,
        currency="usd",
        api_version="2024-12-18.acacia",
    )


# ===========================================================================
# 1. CONSTRUCTION
# ===========================================================================

class TestConstruction:

    @pytest.mark.parametrize("api_key", ["", None])
    def test_key_required(self, api_key):
        with pytest.raises(RuntimeError, match="STRIPE_SECRET_KEY"):
            PaymentGateway(api_key=api_key)

    def test_from_config(self):
        with patch("services.payments.config.STRIPE_SECRET_KEY", "sk_cfg"), \
             patch("services.payments.config.STRIPE_WEBHOOK_SECRET", "whsec_cfg"), \
             patch("services.payments.config.PAYMENT_CURRENCY", "eur"):
            gateway = PaymentGateway.from_config()

        assert gateway.api_key == "sk_cfg"
        assert gateway.webhook_secret == "whsec_cfg"
        assert gateway.currency == "eur"

    def test_from_config_without_key(self):
        with patch("services.payments.config.STRIPE_SECRET_KEY", ""):
            with pytest.raises(RuntimeError):
                PaymentGateway.from_config()

    def test_global_api_key_untouched(self, gateway):
        before = stripe.api_key
        with patch("services.payments.stripe.Transfer.create", return_value={"id": "tr_1"}):
            gateway.transfer_to_clipper(100, "acct_1", "sub_1")
        assert stripe.api_key == before


# ===========================================================================
# 2. API CALLS
# ===========================================================================

class TestApiCalls:

    @patch("services.payments.stripe.PaymentIntent.create")
    def test_campaign_payment_intent(self, mock_create, gateway):
        mock_create.return_value = {"id": "pi_1", "client_secret": "secret"}

        intent = gateway.create_campaign_payment_intent(
            5_000, "camp_1", "creator_1", metadata={"campaign_title": "Clips"},
        )

        assert intent["id"] == "pi_1"
        kwargs = mock_create.call_args.kwargs
        assert kwargs["amount"] == 5_000
        assert kwargs["currency"] == "usd"
        assert kwargs["automatic_payment_methods"] == {"enabled": True}
        assert kwargs["metadata"] == {
            "type": PAYMENT_TYPE_CAMPAIGN_BUDGET,
            "campaign_id": "camp_1",
            "creator_id": "creator_1",
            "amount": "5000",
            "campaign_title": "Clips",
        }
        assert kwargs["api_key"] == "sk_test_123"
        assert kwargs["stripe_version"] == "2024-12-18.acacia"

    @patch("services.payments.stripe.Transfer.create")
    def test_transfer_to_clipper(self, mock_create, gateway):
        mock_create.return_value = {"id": "tr_9"}

        transfer = gateway.transfer_to_clipper(1_250, "acct_alice", "sub_1")

        assert transfer["id"] == "tr_9"
        kwargs = mock_create.call_args.kwargs
        assert kwargs["amount"] == 1_250
        assert kwargs["destination"] == "acct_alice"
        assert kwargs["metadata"] == {"type": PAYMENT_TYPE_CLIP_PAYMENT, "submission_id": "sub_1"}
        assert kwargs["api_key"] == "sk_test_123"

    @patch("services.payments.stripe.Account.create")
    def test_connect_account(self, mock_create, gateway):
        gateway.create_connect_account("alice@example.com", "clipper_1")

        kwargs = mock_create.call_args.kwargs
        assert kwargs["type"] == "express"
        assert kwargs["country"] == "US"
        assert kwargs["metadata"] == {"user_id": "clipper_1"}
        assert kwargs["capabilities"]["transfers"] == {"requested": True}

    @patch("services.payments.stripe.AccountLink.create")
    def test_account_link(self, mock_create, gateway):
        gateway.create_account_link("acct_1", "https://app/refresh", "https://app/return")

        kwargs = mock_create.call_args.kwargs
        assert kwargs["account"] == "acct_1"
        assert kwargs["type"] == "account_onboarding"

    @patch("services.payments.stripe.Account.create_login_link")
    def test_login_link(self, mock_create, gateway):
        gateway.create_login_link("acct_1")
        assert mock_create.call_args.args == ("acct_1",)
        assert mock_create.call_args.kwargs["api_key"] == "sk_test_123"

    @patch("services.payments.stripe.Transfer.create")
    def test_stripe_errors_propagate(self, mock_create, gateway):
        mock_create.side_effect = stripe.InvalidRequestError("No such destination", "destination")
        with pytest.raises(stripe.InvalidRequestError):
            gateway.transfer_to_clipper(100, "acct_missing", "sub_1")


# ===========================================================================
# 3. WEBHOOK VERIFICATION
# ===========================================================================

class TestConstructEvent:

    def _payload(self) -> bytes:
        return json.dumps({
            "id": "evt_1",
            "object": "event",
            "type": "transfer.created",
            "data": {"object": {"id": "tr_1", "metadata": {"submission_id": "sub_1"}}},
        }).encode("utf-8")

    def test_valid_signature_returns_plain_dict(self, gateway):
        payload = self._payload()
        event = gateway.construct_event(payload, sign(payload))

        assert isinstance(event, dict)
        assert event["type"] == "transfer.created"
        assert event["data"]["object"]["metadata"]["submission_id"] == "sub_1"

    def test_wrong_secret(self, gateway):
        payload = self._payload()
        with pytest.raises(stripe.SignatureVerificationError):
            gateway.construct_event(payload, sign(payload, secret="whsec_other"))

    def test_tampered_payload(self, gateway):
        payload = self._payload()
        header = sign(payload)
        with pytest.raises(stripe.SignatureVerificationError):
            gateway.construct_event(payload.replace(b"sub_1", b"sub_2"), header)

    def test_stale_timestamp(self, gateway):
        payload = self._payload()
        with pytest.raises(stripe.SignatureVerificationError):
            gateway.construct_event(payload, sign(payload, timestamp=time.time() - 3_600))

    def test_garbage_header(self, gateway):
        with pytest.raises(stripe.SignatureVerificationError):
            gateway.construct_event(self._payload(), "not-a-signature")

    def test_missing_webhook_secret(self):
        gateway = PaymentGateway(api_key="sk_test_123")
        with pytest.raises(RuntimeError, match="STRIPE_WEBHOOK_SECRET"):
            gateway.construct_event(b"{}", "t=1,v1=x")
