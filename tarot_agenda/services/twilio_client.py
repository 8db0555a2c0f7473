# tarot_agenda/services/twilio_client.py
import logging
from twilio.rest import Client
from ..config import settings

logger = logging.getLogger(__name__)


def _normalize_wa(number: str) -> str:
    if not number:
        return number
    number = number.strip()
    if not number.startswith("whatsapp:"):
        number = f"whatsapp:{number}"
    number = number.replace("whatsapp: ", "whatsapp:")
    prefix, rest = number.split(":", 1)
    rest = rest.strip()
    if not rest.startswith("+"):
        rest = "+" + rest.lstrip("+").replace(" ", "")
    return f"{prefix}:{rest}"


def get_twilio_client() -> Client | None:
    if not settings.TWILIO_ACCOUNT_SID or not settings.TWILIO_AUTH_TOKEN:
        return None
    return Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)


def send_whatsapp(to: str, body: str) -> dict:
    """
    Sends a WhatsApp message through Twilio.
    - DRY_RUN=true: nothing is sent; logs and returns {"dry_run": True, ...}
    - Missing credentials: MOCK mode, logs and returns {"mock": True, ...}
    - Twilio errors propagate to the caller.
    """
    to_norm = _normalize_wa(to)
    from_norm = _normalize_wa(settings.TWILIO_WHATSAPP_FROM or "")
    flat = body.replace("\n", " | ")

    if settings.DRY_RUN:
        logger.info("[DRY_RUN WHATSAPP] to=%s body=%s", to_norm, flat)
        return {"dry_run": True, "to": to_norm, "body": body}

    client = get_twilio_client()

    if client is None or not from_norm:
        logger.info("[WA MOCK] to=%s body=%s", to_norm, flat)
        return {"mock": True, "to": to_norm, "body": body}

    msg = client.messages.create(from_=from_norm, to=to_norm, body=body)
    logger.info("WhatsApp sent: sid=%s to=%s", msg.sid, to_norm)
    return {"sid": msg.sid, "to": to_norm}
