import pytest

from ticketing.pricing.fees import (
    amounts_differ,
    compute_service_fee,
    compute_total,
    round_money,
    to_cents,
)


def test_service_fee_is_ten_percent_rounded():
    assert compute_service_fee(100) == 10.0
    assert compute_service_fee(33.33) == 3.33
    # 0,005 arrondi demi vers le haut
    assert compute_service_fee(0.05) == 0.01


@pytest.mark.parametrize("subtotal", [0, -5, None, "abc", float("nan")])
def test_service_fee_is_zero_for_non_positive_or_invalid(subtotal):
    assert compute_service_fee(subtotal) == 0.0


def test_service_fee_accepts_custom_rate():
    assert compute_service_fee(200, rate=0.05) == 10.0


def test_total_is_subtotal_plus_fee():
    assert compute_total(90, 9) == 99.0
    assert compute_total(0.1, 0.2) == 0.3


def test_round_money_half_up():
    assert round_money(2.675) == 2.68
    assert round_money("10") == 10.0
    assert round_money(None) == 0.0


def test_amounts_within_tolerance_do_not_differ():
    assert amounts_differ(110.004, 110.0) is False
    assert amounts_differ(110.01, 110.0) is False
    assert amounts_differ("110.00", 110) is False


def test_amounts_outside_tolerance_differ():
    assert amounts_differ(109.98, 110.0) is True
    assert amounts_differ(0, 110.0) is True


@pytest.mark.parametrize("client_value", [None, "abc", float("nan")])
def test_unreadable_client_amount_differs(client_value):
    assert amounts_differ(client_value, 10.0) is True


def test_to_cents():
    assert to_cents(110.0) == 11000
    assert to_cents(19.999) == 2000
    assert to_cents(0.1 + 0.2) == 30
