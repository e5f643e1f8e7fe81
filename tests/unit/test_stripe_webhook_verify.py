import json
import time

import pytest

from stripe_events import stripe_signature
from ticketing.payments.stripe_client import WebhookError, verify_and_parse

SECRET = "whsec_unit"


def _payload(event=None):
    return json.dumps(event or {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {"id": "cs_1"}}})


def test_valid_signature_returns_event():
    payload = _payload()
    event = verify_and_parse(payload.encode("utf-8"), stripe_signature(payload, SECRET), secret=SECRET)
    assert event["type"] == "checkout.session.completed"
    assert event["data"]["object"]["id"] == "cs_1"


def test_wrong_secret_is_rejected():
    payload = _payload()
    with pytest.raises(WebhookError) as exc:
        verify_and_parse(payload.encode("utf-8"), stripe_signature(payload, "whsec_other"), secret=SECRET)
    assert exc.value.status_code == 400


def test_tampered_body_is_rejected():
    payload = _payload()
    header = stripe_signature(payload, SECRET)
    tampered = payload.replace("cs_1", "cs_2")
    with pytest.raises(WebhookError) as exc:
        verify_and_parse(tampered.encode("utf-8"), header, secret=SECRET)
    assert exc.value.status_code == 400


def test_stale_timestamp_is_rejected():
    payload = _payload()
    header = stripe_signature(payload, SECRET, timestamp=int(time.time()) - 3600)
    with pytest.raises(WebhookError) as exc:
        verify_and_parse(payload.encode("utf-8"), header, secret=SECRET)
    assert exc.value.status_code == 400


def test_missing_header_is_rejected():
    with pytest.raises(WebhookError) as exc:
        verify_and_parse(_payload().encode("utf-8"), None, secret=SECRET)
    assert exc.value.status_code == 400


def test_missing_secret_is_a_server_error():
    payload = _payload()
    with pytest.raises(WebhookError) as exc:
        verify_and_parse(payload.encode("utf-8"), stripe_signature(payload, SECRET), secret="")
    assert exc.value.status_code == 500


@pytest.mark.parametrize("payload", ["not json", json.dumps({"id": "evt_1"}), json.dumps([1, 2])])
def test_signed_but_malformed_payload(payload):
    with pytest.raises(WebhookError) as exc:
        verify_and_parse(payload.encode("utf-8"), stripe_signature(payload, SECRET), secret=SECRET)
    assert exc.value.status_code == 400


def test_non_utf8_body_is_rejected_as_bad_request():
    body = b'{"id": "evt_1", "type": "\xff\xfe"}'
    header = stripe_signature(body.decode("latin-1"), SECRET)
    with pytest.raises(WebhookError) as exc:
        verify_and_parse(body, header, secret=SECRET)
    assert exc.value.status_code == 400
    assert str(exc.value) == "Payload Stripe invalide"
