"""
Résolution du prix d'une commande de photos.

Deux grilles possibles pour un événement:
- paliers (photo_pricing_tiers): prix unitaire selon la quantité, prioritaires s'ils existent
- forfaits (photo_packages): nombre de photos fixe pour un prix global

Ne lève jamais: une quantité nulle ou l'absence de grille donne un prix nul.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ticketing.pricing.fees import round_money

@dataclass
class PhotoPrice:
    total_price: float = 0.0
    price_per_photo: float = 0.0
    tier: Optional[Dict[str, Any]] = None
    package: Optional[Dict[str, Any]] = None
    package_units: int = 0

def _int(v: Any) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return 0

def resolve_tier(tiers: List[Dict[str, Any]], quantity: int) -> Optional[Dict[str, Any]]:
    """
    Palier applicable: plus grand min_quantity <= quantité.
    Une quantité sous tous les paliers prend le palier le plus bas.
    """
    if not tiers:
        return None
    ordered = sorted(tiers, key=lambda t: _int(t.get("min_quantity")))
    chosen = ordered[0]
    for tier in ordered:
        if _int(tier.get("min_quantity")) <= quantity:
            chosen = tier
        else:
            break
    return chosen

def best_package_for_quantity(packages: List[Dict[str, Any]], quantity: int) -> PhotoPrice:
    """
    Forfait le plus petit couvrant la quantité; sinon le plus grand forfait répété.
    - price_per_photo rapporté aux photos achetées (quantité du forfait x unités), pas à la sélection
    - tri stable par quantité: l'ordre d'affichage départage les égalités
    """
    if quantity <= 0 or not packages:
        return PhotoPrice()
    ordered = sorted(
        sorted(packages, key=lambda p: _int(p.get("display_order"))),
        key=lambda p: _int(p.get("quantity")),
    )
    for pkg in ordered:
        if _int(pkg.get("quantity")) >= quantity:
            total = round_money(pkg.get("price"))
            return PhotoPrice(
                total_price=total,
                price_per_photo=round_money(total / _int(pkg.get("quantity"))),
                package=pkg,
                package_units=1,
            )
    largest = ordered[-1]
    size = _int(largest.get("quantity"))
    if size <= 0:
        return PhotoPrice()
    units = math.ceil(quantity / size)
    total = round_money(float(largest.get("price") or 0) * units)
    return PhotoPrice(
        total_price=total,
        price_per_photo=round_money(total / (size * units)),
        package=largest,
        package_units=units,
    )

def resolve_photo_price(tiers: List[Dict[str, Any]], packages: List[Dict[str, Any]], quantity: int) -> PhotoPrice:
    qty = _int(quantity)
    if qty <= 0:
        return PhotoPrice()
    tier = resolve_tier(tiers or [], qty)
    if tier is not None:
        unit = round_money(tier.get("price_per_photo"))
        return PhotoPrice(total_price=round_money(unit * qty), price_per_photo=unit, tier=tier)
    return best_package_for_quantity(packages or [], qty)
