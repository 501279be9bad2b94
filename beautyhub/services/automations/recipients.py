"""Turn trigger matches into contactable recipients."""

import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beautyhub.models.automation import ActionType
from beautyhub.models.user import User
from beautyhub.services.automations.triggers import TriggerContext


@dataclass(frozen=True)
class Recipient:
    customer_id: uuid.UUID
    contact: str
    name: str | None


def pick_contact(user: User, action_type: str) -> str | None:
    """Email actions need an email address; other channels prefer the phone."""
    if action_type == ActionType.EMAIL.value:
        return user.email
    return user.phone or user.email


async def resolve_recipients(
    db: AsyncSession, context: TriggerContext, action_type: str
) -> list[Recipient]:
    """Distinct customers from the matched entities that can be reached.

    Customers without a usable contact for the channel are dropped.
    """
    customer_ids = context.customer_ids()
    if not customer_ids:
        return []

    known = {client.id: client for client in context.clients}
    missing = [i for i in customer_ids if i not in known]
    if missing:
        result = await db.execute(select(User).where(User.id.in_(missing)))
        known.update({user.id: user for user in result.scalars().all()})

    recipients: list[Recipient] = []
    for customer_id in customer_ids:
        user = known.get(customer_id)
        if user is None:
            continue
        contact = pick_contact(user, action_type)
        if contact:
            recipients.append(Recipient(customer_id=user.id, contact=contact, name=user.full_name))
    return recipients
