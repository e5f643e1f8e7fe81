import json

from ticketing.payments import metadata as meta


def test_registration_metadata_is_all_strings():
    data = meta.build_registration_metadata(
        registration_id="reg-1",
        event_id="ev-1",
        category_id="cat-1",
        user_id="user-1",
        shirt_size="M",
        partner={"name": "Bruno Lima", "shirtSize": "G"},
        coupon_id="cp-1",
    )
    assert all(isinstance(v, str) for v in data.values())
    assert data["registrationId"] == "reg-1"
    assert data["couponId"] == "cp-1"
    assert json.loads(data["partnerData"])["name"] == "Bruno Lima"


def test_optional_metadata_keys_are_omitted():
    data = meta.build_registration_metadata(
        registration_id="reg-1", event_id="ev-1", category_id="cat-1", user_id="user-1", shirt_size="M",
    )
    assert "partnerData" not in data
    assert "couponId" not in data


def test_photo_orders_are_recognized():
    photo = {"metadata": meta.build_photo_metadata(order_id="o-1", event_id="ev-1", user_id="u-1", photo_count=3)}
    assert meta.is_photo_order(photo) is True
    assert photo["metadata"]["photoCount"] == "3"
    assert meta.is_photo_order({"metadata": {"registrationId": "reg-1"}}) is False
    assert meta.is_photo_order({"metadata": None}) is False


def test_event_object_and_session_fields():
    event = {"type": "checkout.session.completed", "data": {"object": {"id": "cs_1", "payment_intent": {"id": "pi_1"}}}}
    session = meta.event_object(event)
    assert session["id"] == "cs_1"
    assert meta.payment_intent_id(session) == "pi_1"
    assert meta.payment_intent_id({"payment_intent": "pi_2"}) == "pi_2"
    assert meta.payment_intent_id({}) is None
    assert meta.event_object({"data": None}) == {}
    assert meta.session_customer_email({"customer_details": {"email": "a@b.co"}}) == "a@b.co"
