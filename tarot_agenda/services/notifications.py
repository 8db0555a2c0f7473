# tarot_agenda/services/notifications.py
"""
Client notifications for appointment events.

``notify`` renders the message while the caller's session is still open,
then hands delivery to a small thread pool. Delivery errors are logged and
never reach the scheduling operation that triggered them.
"""
from __future__ import annotations
import enum
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from .. import models
from .twilio_client import send_whatsapp

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="notify")


class NotificationEvent(str, enum.Enum):
    CREATED = "created"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    REMINDER = "reminder"
    STATUS_CHANGED = "status_changed"


_STATUS_LABELS = {
    models.AppointmentStatus.SCHEDULED: "agendado",
    models.AppointmentStatus.CONFIRMED: "confirmado",
    models.AppointmentStatus.IN_PROGRESS: "em andamento",
    models.AppointmentStatus.COMPLETED: "concluído",
    models.AppointmentStatus.CANCELLED: "cancelado",
    models.AppointmentStatus.NO_SHOW: "não compareceu",
}


def _when(appt: models.Appointment) -> str:
    return f"{appt.scheduled_date.strftime('%d/%m/%Y')} {appt.start_time}-{appt.end_time}"


def render_message(event: NotificationEvent, appt: models.Appointment) -> str:
    """Message body for ``event``; texts follow the site's language (pt-BR)."""
    when = _when(appt)
    if event == NotificationEvent.CREATED:
        return (
            "✅ *Agendamento recebido*\n"
            f"Data e horário: {when}\n"
            "Você receberá uma mensagem quando ele for confirmado."
        )
    if event == NotificationEvent.RESCHEDULED:
        return (
            "🔁 *Agendamento reagendado*\n"
            f"Novo horário: {when}\n"
            "Aguarde a confirmação do novo horário."
        )
    if event == NotificationEvent.CANCELLED:
        body = f"❌ *Agendamento cancelado*\nHorário: {when}"
        if appt.cancellation_reason:
            body += f"\nMotivo: {appt.cancellation_reason}"
        return body
    if event == NotificationEvent.REMINDER:
        body = f"⏰ Lembrete: sua consulta é {when}"
        if appt.meeting_url:
            body += f"\nLink: {appt.meeting_url}"
            if appt.meeting_password:
                body += f" (senha: {appt.meeting_password})"
        return body
    label = _STATUS_LABELS.get(appt.status, str(appt.status))
    return f"📅 Atualização do agendamento {when}: {label}"


def notify(event: NotificationEvent, appt: models.Appointment) -> Optional[Future]:
    """
    Fire-and-forget. Returns the delivery future, or None when nothing was
    queued (no contact, no consent, or the message could not be built).
    """
    try:
        client = appt.client
        if client is None or not client.contact:
            logger.info("notify %s skipped: appointment %s has no client contact", event.value, appt.id)
            return None
        if not client.consent_messages:
            logger.info("notify %s skipped: client %s opted out", event.value, client.id)
            return None
        body = render_message(event, appt)
        contact = client.contact
        appt_id = appt.id
    except Exception:
        logger.exception("notify %s: could not build message for appointment %s", event.value, getattr(appt, "id", None))
        return None
    return _executor.submit(_deliver, event, appt_id, contact, body)


def _deliver(event: NotificationEvent, appt_id: int, contact: str, body: str) -> None:
    try:
        send_whatsapp(contact, body)
    except Exception:
        logger.exception("notify %s failed for appointment %s", event.value, appt_id)
