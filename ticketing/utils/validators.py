"""
Validateurs purs des données participant (sans I/O, ne lèvent jamais).
- validate_email: forme minimale x@y.z sur la valeur nettoyée
- validate_cpf: 11 chiffres, séquences répétées refusées, deux chiffres de contrôle mod 11
- validate_phone: 10 ou 11 chiffres (fixe / mobile brésilien)
"""
import re
from typing import Any

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_REPEATED_RE = re.compile(r"^(\d)\1+$")

def only_digits(value: Any) -> str:
    return re.sub(r"\D", "", str(value or ""))

def normalize_email(value: Any) -> str:
    return str(value or "").strip().lower()

def validate_email(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return bool(_EMAIL_RE.match(value.strip()))

def _check_digit(digits: str, base: int) -> int:
    # base = 9 pour le 1er chiffre, 10 pour le 2nd
    total = sum(int(digits[i]) * (base + 1 - i) for i in range(base))
    rest = (total * 10) % 11
    return 0 if rest == 10 else rest

def validate_cpf(value: Any) -> bool:
    """
    Valide un CPF:
    - supprime la ponctuation, exige 11 chiffres
    - refuse les séquences d'un seul chiffre répété (ex: 111.111.111-11)
    - vérifie les deux chiffres de contrôle
    """
    cpf = only_digits(value)
    if len(cpf) != 11 or _REPEATED_RE.match(cpf):
        return False
    return _check_digit(cpf, 9) == int(cpf[9]) and _check_digit(cpf, 10) == int(cpf[10])

def validate_phone(value: Any) -> bool:
    return len(only_digits(value)) in (10, 11)
