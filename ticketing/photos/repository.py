# module ticketing.photos.repository
"""
Accès aux données des commandes de photos (photo_orders / photo_order_items) et des grilles de prix.
Les erreurs d'accès sont propagées: le service décide du code HTTP.
"""
from typing import Any, Dict, List, Optional, Tuple
import logging

from ticketing.infra.supabase_client import get_service_supabase

logger = logging.getLogger(__name__)

def _first(res) -> Optional[Dict[str, Any]]:
    rows = getattr(res, "data", None) or []
    return rows[0] if rows else None

def get_photos(photo_ids: List[str]) -> List[Dict[str, Any]]:
    if not photo_ids:
        return []
    res = get_service_supabase().table("event_photos").select("id, event_id").in_("id", photo_ids).execute()
    return res.data or []

def get_pricing(event_id: str) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """(paliers, forfaits) de l'événement, triés par ordre d'affichage."""
    client = get_service_supabase()
    tiers = (
        client.table("photo_pricing_tiers")
        .select("*")
        .eq("event_id", event_id)
        .order("display_order")
        .execute()
    ).data or []
    packages = (
        client.table("photo_packages")
        .select("*")
        .eq("event_id", event_id)
        .order("display_order")
        .execute()
    ).data or []
    return tiers, packages

def delete_order(order_id: str) -> None:
    client = get_service_supabase()
    client.table("photo_order_items").delete().eq("order_id", order_id).execute()
    client.table("photo_orders").delete().eq("id", order_id).execute()

def _delete_pending_orders(user_id: str, event_id: str) -> None:
    res = (
        get_service_supabase()
        .table("photo_orders")
        .select("id")
        .eq("user_id", user_id)
        .eq("event_id", event_id)
        .eq("payment_status", "pending")
        .execute()
    )
    for row in res.data or []:
        delete_order(row["id"])

def create_photo_order(
    *,
    user_id: str,
    event_id: str,
    photo_ids: List[str],
    total_amount: float,
    package_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Crée la commande et ses lignes (saga):
    1) supprime l'éventuelle commande en attente précédente de l'utilisateur pour l'événement
    2) insère la commande pending/pending
    3) insère une ligne par photo; en cas d'échec, la commande est supprimée puis l'erreur propagée
    """
    _delete_pending_orders(user_id, event_id)
    client = get_service_supabase()
    order = _first(
        client.table("photo_orders")
        .insert({
            "user_id": user_id,
            "event_id": event_id,
            "total_amount": total_amount,
            "package_id": package_id,
            "status": "pending",
            "payment_status": "pending",
        })
        .execute()
    )
    if not order:
        raise RuntimeError("Pedido de fotos não criado")
    try:
        client.table("photo_order_items").insert(
            [{"order_id": order["id"], "photo_id": pid} for pid in photo_ids]
        ).execute()
    except Exception:
        logger.exception("Insertion des lignes de la commande %s impossible, suppression", order["id"])
        delete_order(order["id"])
        raise
    return order

def link_session(order_id: str, session_id: str) -> None:
    get_service_supabase().table("photo_orders").update({"stripe_session_id": session_id}).eq("id", order_id).execute()

def get_order_by_session(session_id: str) -> Optional[Dict[str, Any]]:
    res = get_service_supabase().table("photo_orders").select("*").eq("stripe_session_id", session_id).limit(1).execute()
    return _first(res)

def get_order(order_id: str) -> Optional[Dict[str, Any]]:
    res = get_service_supabase().table("photo_orders").select("*").eq("id", order_id).limit(1).execute()
    return _first(res)

def count_items(order_id: str) -> int:
    res = get_service_supabase().table("photo_order_items").select("id").eq("order_id", order_id).execute()
    return len(res.data or [])

def mark_order_paid(order_id: str, payment_intent_id: Optional[str]) -> Optional[Dict[str, Any]]:
    """Transition conditionnelle vers confirmed/paid; None si déjà payée."""
    values: Dict[str, Any] = {"status": "confirmed", "payment_status": "paid"}
    if payment_intent_id:
        values["stripe_payment_intent_id"] = payment_intent_id
    res = (
        get_service_supabase()
        .table("photo_orders")
        .update(values)
        .eq("id", order_id)
        .neq("payment_status", "paid")
        .execute()
    )
    return _first(res)

def cancel_order(order_id: str) -> Optional[Dict[str, Any]]:
    res = (
        get_service_supabase()
        .table("photo_orders")
        .update({"status": "cancelled", "payment_status": "failed"})
        .eq("id", order_id)
        .neq("payment_status", "paid")
        .execute()
    )
    return _first(res)
