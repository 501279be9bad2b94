"""Message template resolution and personalization."""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TypeVar

import pytz

from beautyhub.core.config import settings
from beautyhub.models.automation import ActionType, MarketingAutomation
from beautyhub.models.booking import Booking
from beautyhub.models.service_package import ServicePackage
from beautyhub.services.automations.recipients import Recipient
from beautyhub.services.automations.triggers import TriggerContext

GENERIC_TEMPLATE = "Hello {{name}}, this is an automated message from us."

# Keyed by automation name, used when an automation carries no template of its own.
DEFAULT_TEMPLATES: dict[str, str] = {
    "48h Appointment Reminder": (
        "Hi {{name}}, this is a friendly reminder that you have an appointment with us "
        "in 48 hours. We're looking forward to seeing you!"
    ),
    "24h Upcoming Reminder": (
        "Hi {{name}}, just a reminder that your appointment is tomorrow. See you soon!"
    ),
    "1h Final Reminder": "Hi {{name}}, your appointment is in 1 hour. We'll see you soon!",
    "Thank You After Service": (
        "Hi {{name}}, thank you for choosing us today! We hope you had a great experience."
    ),
    "Review Request": (
        "Hi {{name}}, we'd love to hear about your experience! Please leave us a review."
    ),
    "Re-book Reminder (3 Days)": (
        "Hi {{name}}, it's been 3 days since your last visit. "
        "Ready to book your next appointment?"
    ),
    "Win-Back: 30 Days Inactive": (
        "Hi {{name}}, we miss you! It's been a while since your last visit. "
        "Book now and get 10% off!"
    ),
    "Client Birthday": (
        "Happy Birthday {{name}}! We'd love to celebrate with you - "
        "here's a special birthday offer just for you!"
    ),
}

E = TypeVar("E", Booking, ServicePackage)


@dataclass(frozen=True)
class RenderedMessage:
    body: str
    subject: str | None
    from_name: str


def resolve_template(automation: MarketingAutomation) -> str:
    template = (automation.action_config or {}).get("message_template")
    if template:
        return str(template)
    return DEFAULT_TEMPLATES.get(automation.name, GENERIC_TEMPLATE)


def _for_recipient(entities: list[E], recipient: Recipient) -> E | None:
    for entity in entities:
        if entity.customer_id == recipient.customer_id:
            return entity
    return entities[0] if entities else None


def _local(value: datetime, tz: pytz.BaseTzInfo) -> datetime:
    # SQLite hands back naive datetimes; stored values are always UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(tz)


def personalize(
    template: str,
    recipient: Recipient,
    context: TriggerContext,
    tz: pytz.BaseTzInfo = pytz.UTC,
) -> str:
    """Replace known placeholders; anything unresolved is left as written."""
    name = recipient.name or "there"
    body = template.replace("{{name}}", name).replace("{{customer_name}}", name)

    booking = _for_recipient(context.bookings, recipient)
    if booking is not None:
        body = body.replace(
            "{{booking_number}}", booking.booking_number or (str(booking.id) if booking.id else "")
        )
        if booking.scheduled_at is not None:
            scheduled = _local(booking.scheduled_at, tz)
            body = body.replace("{{appointment_date}}", scheduled.strftime("%Y-%m-%d"))
            body = body.replace("{{appointment_time}}", scheduled.strftime("%H:%M"))

    package = _for_recipient(context.packages, recipient)
    if package is not None and package.expires_at is not None:
        body = body.replace(
            "{{package_expiry_date}}", _local(package.expires_at, tz).strftime("%Y-%m-%d")
        )

    return body


def render_message(
    automation: MarketingAutomation,
    recipient: Recipient,
    context: TriggerContext,
    tz: pytz.BaseTzInfo = pytz.UTC,
) -> RenderedMessage:
    action_config = automation.action_config or {}
    subject = action_config.get("subject")
    if not subject and automation.action_type == ActionType.EMAIL.value:
        subject = automation.name
    return RenderedMessage(
        body=personalize(resolve_template(automation), recipient, context, tz),
        subject=subject or None,
        from_name=action_config.get("from_name") or settings.DEFAULT_SENDER_NAME,
    )
