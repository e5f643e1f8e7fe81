import pytest

from ticketing.utils.validators import (
    normalize_email,
    only_digits,
    validate_cpf,
    validate_email,
    validate_phone,
)


@pytest.mark.parametrize("cpf", ["529.982.247-25", "52998224725", "168.995.350-09"])
def test_valid_cpf(cpf):
    assert validate_cpf(cpf) is True


@pytest.mark.parametrize("cpf", ["529.982.247-24", "111.111.111-11", "00000000000", "123", "", None])
def test_invalid_cpf(cpf):
    assert validate_cpf(cpf) is False


def test_phone_accepts_landline_and_mobile():
    assert validate_phone("(21) 99876-5432") is True
    assert validate_phone("2133334444") is True
    assert validate_phone("12345") is False
    assert validate_phone(None) is False


def test_email_shape():
    assert validate_email("ana@example.com") is True
    assert validate_email("  ana@example.com ") is True
    assert validate_email("ana@example") is False
    assert validate_email("") is False
    assert validate_email(None) is False


def test_normalizers():
    assert only_digits("529.982.247-25") == "52998224725"
    assert normalize_email("  Ana@Example.COM ") == "ana@example.com"
    assert normalize_email(None) == ""
