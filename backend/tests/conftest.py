"""
Shared test fixtures for the ClipWave settlement test suite.

Nothing here talks to Stripe or to the social platforms:
  - `store` is a fresh in-memory SubmissionStore per test
  - `gateway` is a FakeGateway that records calls and returns dicts shaped
    like the Stripe objects the code reads
  - `client` is a TestClient with both injected into the app
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from fastapi.testclient import TestClient

from models.schemas import Campaign, Clipper
from services.store import SubmissionStore


class FakeGateway:
    """Stands in for services.payments.PaymentGateway."""

    def __init__(self):
        self.payment_intents: list[dict] = []
        self.transfers: list[dict] = []
        self.events: list[dict] = []
        self.accounts: list[dict] = []
        self.account_links: list[dict] = []
        self.signature_valid = True

    def create_campaign_payment_intent(self, amount_cents, campaign_id, creator_id, metadata=None):
        call = {
            "amount_cents": amount_cents,
            "campaign_id": campaign_id,
            "creator_id": creator_id,
            "metadata": metadata or {},
        }
        self.payment_intents.append(call)
        return {"id": f"pi_{len(self.payment_intents)}", "client_secret": "pi_secret_test"}

    def transfer_to_clipper(self, amount_cents, destination_account_id, submission_id, metadata=None):
        call = {
            "amount_cents": amount_cents,
            "destination": destination_account_id,
            "submission_id": submission_id,
            "metadata": metadata or {},
        }
        self.transfers.append(call)
        return {"id": f"tr_{len(self.transfers)}"}

    def create_connect_account(self, email, user_id, country="US"):
        self.accounts.append({"email": email, "user_id": user_id, "country": country})
        return {"id": f"acct_new_{len(self.accounts)}"}

    def create_account_link(self, account_id, refresh_url, return_url):
        self.account_links.append({
            "account": account_id,
            "refresh_url": refresh_url,
            "return_url": return_url,
        })
        return {"url": f"https://connect.stripe.test/setup/{account_id}"}

    def create_login_link(self, account_id):
        return {"url": f"https://connect.stripe.test/express/{account_id}"}

    def construct_event(self, payload, signature):
        import json
        import stripe

        if not self.signature_valid:
            raise stripe.SignatureVerificationError("bad signature", signature)
        event = json.loads(payload)
        self.events.append(event)
        return event


@pytest.fixture
def store():
    return SubmissionStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def campaign():
    return Campaign(
        id="camp_1",
        creator_id="creator_1",
        title="Podcast clips",
        tracking_code="CODE123",
        cpmv_rate=2.5,
        minimum_views=1_000,
        total_budget=1_000.0,
        remaining_budget=1_000.0,
        status="active",
    )


@pytest.fixture
def seeded_store(store, campaign):
    store.add_campaign(campaign)
    store.add_clipper(Clipper(id="clipper_1", display_name="Alice", stripe_account_id="acct_alice"))
    store.add_clipper(Clipper(id="clipper_2", display_name="Bob"))
    return store


@pytest.fixture
def output_dir(tmp_path):
    from unittest.mock import patch

    with patch("config.OUTPUT_DIR", str(tmp_path)):
        yield str(tmp_path)


@pytest.fixture
def client(seeded_store, gateway, output_dir):
    from main import app, get_gateway, get_store

    app.dependency_overrides[get_store] = lambda: seeded_store
    app.dependency_overrides[get_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
