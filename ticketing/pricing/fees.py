"""
Calcul des montants d'une inscription (logique pure, sans I/O).
- compute_service_fee: frais de service (10 % par défaut), arrondi au centime
- compute_total: sous-total + frais, arrondi au centime
- amounts_differ: comparaison client/serveur avec tolérance (0,01 par défaut)
- to_cents: montant -> entier en centimes pour Stripe
"""
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from ticketing.config import SERVICE_FEE_RATE, PRICE_TOLERANCE

def _as_float(value: Any) -> float:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(f) or math.isinf(f):
        return 0.0
    return f

def round_money(value: Any) -> float:
    """Arrondi monétaire au centime, demi vers le haut."""
    return float(Decimal(str(_as_float(value))).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))

def compute_service_fee(subtotal: Any, rate: Optional[float] = None) -> float:
    amount = _as_float(subtotal)
    if amount <= 0:
        return 0.0
    return round_money(amount * (SERVICE_FEE_RATE if rate is None else rate))

def compute_total(subtotal: Any, fee: Any) -> float:
    return round_money(_as_float(subtotal) + _as_float(fee))

def amounts_differ(client_value: Any, server_value: Any, tolerance: Optional[float] = None) -> bool:
    tol = PRICE_TOLERANCE if tolerance is None else tolerance
    # Un montant client illisible ne peut pas « correspondre »
    try:
        client = float(client_value)
    except (TypeError, ValueError):
        return True
    if math.isnan(client):
        return True
    # Marge flottante: 110.004 vs 110.00 reste dans la tolérance, 109.98 non
    return abs(client - _as_float(server_value)) > tol + 1e-9

def to_cents(amount: Any) -> int:
    return int(Decimal(str(round_money(amount))) * 100)
