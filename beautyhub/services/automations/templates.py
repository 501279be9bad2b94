"""Default automation set installed for new providers."""

import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from beautyhub.models.automation import ActionType, MarketingAutomation

logger = structlog.get_logger()


@dataclass(frozen=True)
class AutomationTemplate:
    name: str
    description: str
    trigger_type: str
    trigger_config: dict[str, Any] = field(default_factory=dict)
    delay_minutes: int = 0
    action_type: str = ActionType.SMS.value


TEMPLATE_LIBRARY: tuple[AutomationTemplate, ...] = (
    AutomationTemplate(
        "48h Appointment Reminder",
        "Remind clients two days before their appointment",
        "appointment_reminder",
        {"hours_before": 48},
    ),
    AutomationTemplate(
        "24h Upcoming Reminder",
        "Remind clients the day before their appointment",
        "appointment_reminder",
        {"hours_before": 24},
    ),
    AutomationTemplate(
        "1h Final Reminder",
        "Last reminder one hour before the appointment",
        "appointment_reminder",
        {"hours_before": 1},
    ),
    AutomationTemplate(
        "Appointment Rescheduled",
        "Confirm the new time when an appointment is rescheduled",
        "appointment_rescheduled",
    ),
    AutomationTemplate(
        "No-Show Follow-up",
        "Reach out after a missed appointment",
        "appointment_no_show",
        delay_minutes=30,
    ),
    AutomationTemplate(
        "Thank You After Service",
        "Thank clients shortly after their service",
        "booking_completed",
        delay_minutes=15,
    ),
    AutomationTemplate(
        "Review Request",
        "Ask for a review two hours after the service",
        "booking_completed",
        delay_minutes=120,
    ),
    AutomationTemplate(
        "Re-book Reminder (3 Days)",
        "Nudge clients to book again three days after a visit",
        "booking_completed",
        delay_minutes=4320,
    ),
    AutomationTemplate(
        "Re-book Reminder (2 Weeks)",
        "Nudge clients to book again two weeks after a visit",
        "booking_completed",
        delay_minutes=20160,
    ),
    AutomationTemplate(
        "Win-Back: 30 Days Inactive",
        "Win back clients who have not visited in 30 days",
        "client_inactive",
        {"days": 30},
    ),
    AutomationTemplate(
        "Win-Back: 90 Days Inactive",
        "Win back clients who have not visited in 90 days",
        "client_inactive",
        {"days": 90},
    ),
    AutomationTemplate(
        "New Lead Welcome",
        "Welcome new enquiries an hour after they arrive",
        "new_lead",
        delay_minutes=60,
    ),
    AutomationTemplate(
        "New Lead Follow-up",
        "Follow up enquiries that have not booked after a day",
        "new_lead",
        delay_minutes=1440,
    ),
    AutomationTemplate(
        "Package Expiring Soon",
        "Warn clients a week before a package expires",
        "package_expiring",
        {"days_before": 7},
    ),
    AutomationTemplate(
        "Seasonal Promotion",
        "Promotions during the holiday season, summer and Valentine's week",
        "seasonal_promotion",
    ),
    AutomationTemplate("Client Birthday", "Birthday greeting with an offer", "client_birthday"),
    AutomationTemplate(
        "1 Year Anniversary",
        "Celebrate one year since the client's first visit",
        "client_anniversary",
        {"years": 1},
    ),
    AutomationTemplate(
        "10th Visit Milestone",
        "Thank clients on their 10th completed visit",
        "visit_milestone",
        {"visit_count": 10},
    ),
    AutomationTemplate(
        "25th Visit Milestone",
        "Thank clients on their 25th completed visit",
        "visit_milestone",
        {"visit_count": 25},
    ),
    AutomationTemplate(
        "Referral Thank You",
        "Thank clients who came in through a referral",
        "referral_received",
    ),
    AutomationTemplate("Holiday Greeting", "Greetings on major holidays", "holiday"),
)


async def seed_provider_automation_templates(
    db: AsyncSession, provider_id: uuid.UUID
) -> list[MarketingAutomation]:
    """Install the default template set for a provider.

    Templates are created inactive. Does nothing if the provider already has
    templates, and returns an empty list in that case.
    """
    existing = await db.scalar(
        select(func.count(MarketingAutomation.id)).where(
            MarketingAutomation.provider_id == provider_id,
            MarketingAutomation.is_template.is_(True),
        )
    )
    if existing:
        logger.info("automation_templates_already_seeded", provider_id=str(provider_id))
        return []

    automations = [
        MarketingAutomation(
            provider_id=provider_id,
            name=template.name,
            description=template.description,
            trigger_type=template.trigger_type,
            trigger_config=dict(template.trigger_config),
            delay_minutes=template.delay_minutes,
            action_type=template.action_type,
            action_config={},
            is_active=False,
            is_template=True,
        )
        for template in TEMPLATE_LIBRARY
    ]
    db.add_all(automations)
    await db.flush()
    logger.info(
        "automation_templates_seeded", provider_id=str(provider_id), count=len(automations)
    )
    return automations
