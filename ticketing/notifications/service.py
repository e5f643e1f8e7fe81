"""
Emails transactionnels via Resend.
- send_registration_confirmation / send_photo_order_confirmation: envoi direct (lève en cas d'échec)
- variantes *_safely: « fire-and-forget », l'échec est loggé et n'interrompt jamais un paiement
"""
from typing import Any, Dict, Optional
import html
import logging

import resend

from ticketing.config import RESEND_API_KEY, EMAIL_FROM, BASE_URL

logger = logging.getLogger(__name__)

def init_resend() -> None:
    resend.api_key = RESEND_API_KEY

def _send(to: str, subject: str, body_html: str) -> Dict[str, Any]:
    if not RESEND_API_KEY:
        raise RuntimeError("RESEND_API_KEY manquant")
    init_resend()
    return resend.Emails.send({
        "from": EMAIL_FROM,
        "to": [to],
        "subject": subject,
        "html": body_html,
    })

def _partner_block(partner: Optional[Dict[str, Any]]) -> str:
    if not partner or not partner.get("name"):
        return ""
    return (
        "<p><strong>Dupla:</strong> "
        f"{html.escape(str(partner.get('name')))}"
        f" (camiseta {html.escape(str(partner.get('shirtSize') or partner.get('shirt_size') or '-'))})</p>"
    )

def send_registration_confirmation(to: str, template_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    template_data attendu:
      participant_name, event_title, event_date, event_location, category_name,
      ticket_code, qr_code (data URL), shirt_size, partner (optionnel), amount_paid
    """
    esc = {k: html.escape(str(v)) for k, v in template_data.items() if isinstance(v, (str, int, float)) and k != "qr_code"}
    qr_html = f'<img src="{template_data["qr_code"]}" alt="QR Code" width="240"/>' if template_data.get("qr_code") else ""
    body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h1>Inscrição confirmada!</h1>
      <p>Olá {esc.get('participant_name', '')},</p>
      <p>Sua inscrição em <strong>{esc.get('event_title', '')}</strong> está confirmada.</p>
      <p><strong>Categoria:</strong> {esc.get('category_name', '-')}</p>
      <p><strong>Data:</strong> {esc.get('event_date', '-')}</p>
      <p><strong>Local:</strong> {esc.get('event_location', '-')}</p>
      <p><strong>Camiseta:</strong> {esc.get('shirt_size', '-')}</p>
      {_partner_block(template_data.get('partner'))}
      <div style="text-align: center; border: 2px dashed #333; padding: 16px;">
        <p>Código do ingresso</p>
        <p style="font-size: 24px; font-weight: bold;">{esc.get('ticket_code', '')}</p>
        {qr_html}
      </div>
      <p><a href="{BASE_URL}/minhas-inscricoes">Ver minhas inscrições</a></p>
    </div>
    """
    subject = f"Inscrição confirmada - {template_data.get('event_title', '')}"
    return _send(to, subject, body)

def send_photo_order_confirmation(to: str, template_data: Dict[str, Any]) -> Dict[str, Any]:
    count = int(template_data.get("photo_count") or 0)
    title = html.escape(str(template_data.get("event_title") or ""))
    body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h1>Pedido de fotos confirmado!</h1>
      <p>Seu pedido de {count} foto(s) do evento <strong>{title}</strong> foi pago.</p>
      <p><a href="{BASE_URL}/minhas-fotos">Baixar minhas fotos</a></p>
    </div>
    """
    return _send(to, f"Suas fotos - {template_data.get('event_title', '')}", body)

def send_confirmation_safely(to: Optional[str], template_data: Dict[str, Any]) -> bool:
    if not to:
        logger.warning("Email de confirmation ignoré: destinataire inconnu")
        return False
    try:
        send_registration_confirmation(to, template_data)
        logger.info("notifications.registration_sent to=%s", to)
        return True
    except Exception:
        logger.exception("Envoi de l'email de confirmation impossible (to=%s)", to)
        return False

def send_photo_confirmation_safely(to: Optional[str], template_data: Dict[str, Any]) -> bool:
    if not to:
        logger.warning("Email de commande photo ignoré: destinataire inconnu")
        return False
    try:
        send_photo_order_confirmation(to, template_data)
        return True
    except Exception:
        logger.exception("Envoi de l'email de commande photo impossible (to=%s)", to)
        return False
