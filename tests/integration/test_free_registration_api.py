from fake_supabase import participant, seed_category, seed_event
from ticketing.notifications import service as notifications_service

FREE_URL = "/api/v1/registrations/create-free"


def _seed_free(fake_db, event_type="free", **category_overrides):
    event = seed_event(fake_db, event_type=event_type, title="Caminhada Solidária", slug="caminhada")
    category = seed_category(fake_db, event, price=0, **category_overrides)
    return event, category


def _body(event, category, **overrides):
    body = {
        "eventId": event["id"],
        "categoryId": category["id"],
        "shirtSize": "M",
        "userName": "Ana Souza",
        "userEmail": "ana@example.com",
        "userData": participant(),
    }
    body.update(overrides)
    return body


def test_free_registration_is_confirmed_with_ticket_and_email(client, fake_db, auth_user, sent_emails, stripe_checkout):
    event, category = _seed_free(fake_db, max_participants=50)

    r = client.post(FREE_URL, json=_body(event, category), headers=auth_user["headers"])
    assert r.status_code == 200, r.text
    assert r.json()["success"] is True

    row = fake_db.get("registrations", r.json()["registrationId"])
    assert (row["status"], row["payment_status"]) == ("confirmed", "paid")
    assert row["amount_paid"] == 0
    assert row["qr_code"].startswith("data:image/png;base64,")
    assert row["ticket_code"] == f"CAMINHADA-{row['id'][:8].upper()}"
    assert fake_db.get("event_categories", category["id"])["current_participants"] == 1

    assert len(sent_emails) == 1
    assert sent_emails[0]["to"] == "ana@example.com"
    assert "Caminhada Solidária" in sent_emails[0]["subject"]
    assert row["ticket_code"] in sent_emails[0]["html"]
    assert stripe_checkout.calls == []


def test_repeated_free_registration_changes_nothing(client, fake_db, auth_user, sent_emails):
    event, category = _seed_free(fake_db)

    first = client.post(FREE_URL, json=_body(event, category), headers=auth_user["headers"])
    qr = fake_db.get("registrations", first.json()["registrationId"])["qr_code"]
    second = client.post(FREE_URL, json=_body(event, category), headers=auth_user["headers"])

    assert second.status_code == 200
    assert second.json() == {"registrationId": first.json()["registrationId"], "success": True}
    assert fake_db.get("registrations", first.json()["registrationId"])["qr_code"] == qr
    assert len(sent_emails) == 1
    assert fake_db.get("event_categories", category["id"])["current_participants"] == 1


def test_solidarity_events_are_free(client, fake_db, auth_user):
    event, category = _seed_free(fake_db, event_type="solidarity")
    r = client.post(FREE_URL, json=_body(event, category), headers=auth_user["headers"])
    assert r.status_code == 200, r.text


def test_paid_event_is_refused(client, fake_db, auth_user):
    event, category = _seed_free(fake_db, event_type="paid")
    r = client.post(FREE_URL, json=_body(event, category), headers=auth_user["headers"])
    assert r.status_code == 400
    assert r.json()["error"] == "Este evento não é gratuito."
    assert fake_db.rows("registrations") == []


def test_priced_category_is_refused(client, fake_db, auth_user):
    event = seed_event(fake_db, event_type="free")
    category = seed_category(fake_db, event, price=25)
    r = client.post(FREE_URL, json=_body(event, category), headers=auth_user["headers"])
    assert r.status_code == 400
    assert r.json()["error"] == "Esta categoria não é gratuita."


def test_full_free_category(client, fake_db, auth_user, sent_emails):
    event, category = _seed_free(fake_db, max_participants=2, current_participants=2)
    r = client.post(FREE_URL, json=_body(event, category), headers=auth_user["headers"])
    assert r.status_code == 400
    assert r.json()["code"] == "CATEGORY_FULL"
    assert sent_emails == []


def test_anonymous_free_registration(client, fake_db):
    event, category = _seed_free(fake_db)
    r = client.post(FREE_URL, json=_body(event, category, userName="João", userEmail="joao@example.com"))
    assert r.status_code == 200, r.text
    assert fake_db.auth.sign_up_calls[0]["email"] == "joao@example.com"


def test_email_failure_does_not_undo_confirmation(client, fake_db, auth_user, monkeypatch):
    def _down(to, subject, body_html):
        raise RuntimeError("Resend indisponível")

    monkeypatch.setattr(notifications_service, "_send", _down)
    event, category = _seed_free(fake_db)
    r = client.post(FREE_URL, json=_body(event, category), headers=auth_user["headers"])
    assert r.status_code == 200
    row = fake_db.get("registrations", r.json()["registrationId"])
    assert row["status"] == "confirmed"
    assert row["qr_code"]
