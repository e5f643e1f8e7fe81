import itertools
import json
import os
import threading
from typing import Any, Dict, Generator

# Configuration de test avant l'import de ticketing (valeurs lues à l'import)
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-test-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-test-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("RESEND_API_KEY", "re_test_dummy")

import pytest
from fastapi.testclient import TestClient

from fake_supabase import FakeSupabase
from stripe_events import WEBHOOK_PATH, WEBHOOK_SECRET, stripe_signature
from ticketing.app import app as fastapi_app
from ticketing.infra import supabase_client
from ticketing.notifications import service as notifications_service
from ticketing.payments import stripe_client

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)
        elif "tests/functional/" in nodeid:
            item.add_marker(pytest.mark.functional)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

# Base en mémoire à la place de Supabase (clients anon et service role)
@pytest.fixture(autouse=True)
def fake_db(monkeypatch) -> FakeSupabase:
    db = FakeSupabase()
    monkeypatch.setattr(supabase_client, "SUPABASE_SERVICE_KEY", "service-test-key")
    monkeypatch.setattr(supabase_client, "_service_supabase", db)
    monkeypatch.setattr(supabase_client, "_supabase", db)
    return db

# Emails capturés au lieu d'être envoyés via Resend
@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    sent = []

    def _fake_send(to, subject, body_html):
        sent.append({"to": to, "subject": subject, "html": body_html})
        return {"id": f"email-{len(sent)}"}

    monkeypatch.setattr(notifications_service, "_send", _fake_send)
    return sent

class FakeCheckout:
    """Remplace stripe_client.create_checkout_session: enregistre les appels, renvoie cs_test_N."""

    def __init__(self):
        self.calls = []
        self.fail = False
        self.return_url = True
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def __call__(self, **kwargs) -> Dict[str, Any]:
        with self._lock:
            self.calls.append(kwargs)
            if self.fail:
                raise RuntimeError("Stripe indisponible")
            session_id = f"cs_test_{next(self._ids)}"
        url = f"https://checkout.stripe.test/pay/{session_id}" if self.return_url else None
        return {"id": session_id, "url": url}

    @property
    def last(self) -> Dict[str, Any]:
        return self.calls[-1]

@pytest.fixture(autouse=True)
def stripe_checkout(monkeypatch) -> FakeCheckout:
    fake = FakeCheckout()
    monkeypatch.setattr(stripe_client, "create_checkout_session", fake)
    monkeypatch.setattr(stripe_client, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    return fake

@pytest.fixture
def post_webhook(client):
    def _post(event: Dict[str, Any], secret: str = WEBHOOK_SECRET, signature: str = None):
        payload = json.dumps(event)
        header = stripe_signature(payload, secret) if signature is None else signature
        return client.post(
            WEBHOOK_PATH,
            content=payload,
            headers={"Stripe-Signature": header, "Content-Type": "application/json"},
        )
    return _post

# Utilisateur authentifié (Bearer) reconnu par le faux supabase.auth
@pytest.fixture
def auth_user(fake_db) -> Dict[str, Any]:
    fake_db.auth.add_token("token-ana", user_id="user-ana", email="ana@example.com", full_name="Ana Souza")
    return {
        "id": "user-ana",
        "email": "ana@example.com",
        "full_name": "Ana Souza",
        "headers": {"Authorization": "Bearer token-ana"},
    }
