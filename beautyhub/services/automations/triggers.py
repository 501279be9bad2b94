"""Trigger strategies for marketing automations.

Every strategy answers one question for one automation at one instant:
should it fire now, and for which bookings, packages or clients. Time-based
triggers look at a 15 minute window so that a scheduler running every 5-15
minutes sees each entity in exactly one pass (give or take the window edges,
which the execution log de-duplicates).
"""

import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

import pytz
import structlog
from dateutil.relativedelta import relativedelta
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from beautyhub.core.config import settings
from beautyhub.models.automation import MarketingAutomation
from beautyhub.models.booking import Booking, BookingStatus
from beautyhub.models.provider import Provider
from beautyhub.models.service_package import ServicePackage
from beautyhub.models.user import User

logger = structlog.get_logger()

WINDOW = timedelta(minutes=15)
REFERRAL_WINDOW = timedelta(minutes=60)

SEASONAL_ACTIVE_DAYS = 90
HOLIDAY_ACTIVE_DAYS = 180

# (month, day)
HOLIDAYS = frozenset({(1, 1), (2, 14), (12, 25), (12, 31)})


@dataclass
class TriggerContext:
    """Entities a trigger matched."""

    bookings: list[Booking] = field(default_factory=list)
    packages: list[ServicePackage] = field(default_factory=list)
    clients: list[User] = field(default_factory=list)

    def customer_ids(self) -> list[uuid.UUID]:
        """Distinct customer ids in match order."""
        seen: dict[uuid.UUID, None] = {}
        for booking in self.bookings:
            if booking.customer_id is not None:
                seen.setdefault(booking.customer_id, None)
        for package in self.packages:
            if package.customer_id is not None:
                seen.setdefault(package.customer_id, None)
        for client in self.clients:
            seen.setdefault(client.id, None)
        return list(seen)

    def is_empty(self) -> bool:
        return not (self.bookings or self.packages or self.clients)


@dataclass
class TriggerEvaluation:
    fire: bool
    context: TriggerContext = field(default_factory=TriggerContext)

    @classmethod
    def matched(
        cls,
        bookings: Iterable[Booking] = (),
        packages: Iterable[ServicePackage] = (),
        clients: Iterable[User] = (),
    ) -> "TriggerEvaluation":
        """Fire only if something matched."""
        context = TriggerContext(list(bookings), list(packages), list(clients))
        return cls(fire=not context.is_empty(), context=context)


NOT_FIRED = TriggerEvaluation(fire=False)

TriggerStrategy = Callable[[AsyncSession, MarketingAutomation, datetime], Awaitable[TriggerEvaluation]]

_registry: dict[str, TriggerStrategy] = {}


def register_trigger(trigger_type: str) -> Callable[[TriggerStrategy], TriggerStrategy]:
    """Register a strategy for a trigger type."""

    def decorator(strategy: TriggerStrategy) -> TriggerStrategy:
        if trigger_type in _registry:
            raise ValueError(f"Trigger type already registered: {trigger_type}")
        _registry[trigger_type] = strategy
        return strategy

    return decorator


def registered_trigger_types() -> list[str]:
    return sorted(_registry)


async def evaluate_trigger(
    db: AsyncSession, automation: MarketingAutomation, now: datetime
) -> TriggerEvaluation:
    """Run the strategy registered for the automation's trigger type.

    Unknown trigger types never fire.
    """
    strategy = _registry.get(automation.trigger_type)
    if strategy is None:
        logger.warning(
            "unknown_trigger_type",
            automation_id=str(automation.id),
            trigger_type=automation.trigger_type,
        )
        return NOT_FIRED
    return await strategy(db, automation, now)


async def provider_timezone(db: AsyncSession, automation: MarketingAutomation) -> pytz.BaseTzInfo:
    """Timezone used for calendar triggers and rendered dates."""
    provider = await db.get(Provider, automation.provider_id)
    name = (provider.timezone if provider else None) or settings.DEFAULT_TIMEZONE
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning(
            "unknown_provider_timezone", timezone=name, provider_id=str(automation.provider_id)
        )
        return pytz.UTC


def _config(automation: MarketingAutomation) -> dict[str, Any]:
    return automation.trigger_config or {}


def _config_int(automation: MarketingAutomation, key: str, default: int) -> int:
    """Numeric trigger setting; configs saved from forms often hold strings."""
    value = _config(automation).get(key)
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        logger.warning(
            "invalid_trigger_config",
            automation_id=str(automation.id),
            key=key,
            value=repr(value),
        )
        return default
    return number or default


def _delay(automation: MarketingAutomation) -> timedelta:
    return timedelta(minutes=automation.delay_minutes or 0)


async def _bookings(db: AsyncSession, automation: MarketingAutomation, *criteria: Any) -> list[Booking]:
    result = await db.execute(
        select(Booking)
        .where(Booking.provider_id == automation.provider_id, *criteria)
        .order_by(Booking.scheduled_at)
    )
    return list(result.scalars().all())


async def _users(db: AsyncSession, customer_ids: Iterable[uuid.UUID]) -> list[User]:
    ids = list(customer_ids)
    if not ids:
        return []
    result = await db.execute(select(User).where(User.id.in_(ids)))
    by_id = {user.id: user for user in result.scalars().all()}
    return [by_id[i] for i in ids if i in by_id]


async def _recently_active_clients(
    db: AsyncSession, automation: MarketingAutomation, now: datetime, days: int
) -> list[User]:
    result = await db.execute(
        select(Booking.customer_id)
        .where(
            Booking.provider_id == automation.provider_id,
            Booking.customer_id.is_not(None),
            Booking.scheduled_at >= now - timedelta(days=days),
            Booking.scheduled_at <= now,
        )
        .distinct()
    )
    return await _users(db, result.scalars().all())


@register_trigger("appointment_reminder")
async def appointment_reminder(
    db: AsyncSession, automation: MarketingAutomation, now: datetime
) -> TriggerEvaluation:
    minutes_before = _config_int(automation, "minutes_before", 0) or (
        _config_int(automation, "hours_before", 24) * 60
    )
    target = now + timedelta(minutes=minutes_before) - _delay(automation)
    bookings = await _bookings(
        db,
        automation,
        Booking.status == BookingStatus.CONFIRMED.value,
        Booking.scheduled_at >= target,
        Booking.scheduled_at <= target + WINDOW,
    )
    return TriggerEvaluation.matched(bookings=bookings)


@register_trigger("booking_completed")
async def booking_completed(
    db: AsyncSession, automation: MarketingAutomation, now: datetime
) -> TriggerEvaluation:
    target = now - _delay(automation)
    bookings = await _bookings(
        db,
        automation,
        Booking.status == BookingStatus.COMPLETED.value,
        Booking.completed_at >= target - WINDOW,
        Booking.completed_at <= target,
    )
    return TriggerEvaluation.matched(bookings=bookings)


@register_trigger("appointment_no_show")
async def appointment_no_show(
    db: AsyncSession, automation: MarketingAutomation, now: datetime
) -> TriggerEvaluation:
    target = now - _delay(automation)
    bookings = await _bookings(
        db,
        automation,
        Booking.status == BookingStatus.NO_SHOW.value,
        Booking.scheduled_at >= target - WINDOW,
        Booking.scheduled_at <= target,
    )
    return TriggerEvaluation.matched(bookings=bookings)


@register_trigger("appointment_rescheduled")
async def appointment_rescheduled(
    db: AsyncSession, automation: MarketingAutomation, now: datetime
) -> TriggerEvaluation:
    target = now - _delay(automation)
    bookings = await _bookings(
        db,
        automation,
        Booking.status == BookingStatus.RESCHEDULED.value,
        Booking.updated_at >= target - WINDOW,
        Booking.updated_at <= target,
    )
    return TriggerEvaluation.matched(bookings=bookings)


@register_trigger("new_lead")
async def new_lead(
    db: AsyncSession, automation: MarketingAutomation, now: datetime
) -> TriggerEvaluation:
    minutes = _config_int(automation, "minutes", automation.delay_minutes or 60)
    target = now - timedelta(minutes=minutes)
    bookings = await _bookings(
        db,
        automation,
        Booking.status.in_([BookingStatus.PENDING.value, BookingStatus.INQUIRY.value]),
        Booking.created_at >= target - WINDOW,
        Booking.created_at <= target,
    )
    return TriggerEvaluation.matched(bookings=bookings)


@register_trigger("referral_received")
async def referral_received(
    db: AsyncSession, automation: MarketingAutomation, now: datetime
) -> TriggerEvaluation:
    target = now - _delay(automation)
    bookings = await _bookings(
        db,
        automation,
        Booking.referral_source.is_not(None),
        Booking.created_at >= target - REFERRAL_WINDOW,
        Booking.created_at <= target,
    )
    return TriggerEvaluation.matched(bookings=bookings)


@register_trigger("package_expiring")
async def package_expiring(
    db: AsyncSession, automation: MarketingAutomation, now: datetime
) -> TriggerEvaluation:
    days_before = _config_int(automation, "days_before", 7)
    target = now + timedelta(days=days_before) - _delay(automation)
    result = await db.execute(
        select(ServicePackage)
        .where(
            ServicePackage.provider_id == automation.provider_id,
            ServicePackage.is_active.is_(True),
            ServicePackage.expires_at >= target,
            ServicePackage.expires_at <= target + WINDOW,
        )
        .order_by(ServicePackage.expires_at)
    )
    return TriggerEvaluation.matched(packages=result.scalars().all())


@register_trigger("client_inactive")
async def client_inactive(
    db: AsyncSession, automation: MarketingAutomation, now: datetime
) -> TriggerEvaluation:
    days = _config_int(automation, "days", 30)
    target = now - timedelta(days=days) - _delay(automation)
    last_visit = func.max(Booking.scheduled_at)
    result = await db.execute(
        select(Booking.customer_id)
        .where(
            Booking.provider_id == automation.provider_id,
            Booking.customer_id.is_not(None),
            Booking.status != BookingStatus.CANCELLED.value,
        )
        .group_by(Booking.customer_id)
        .having(last_visit >= target - WINDOW, last_visit <= target)
    )
    return TriggerEvaluation.matched(clients=await _users(db, result.scalars().all()))


@register_trigger("visit_milestone")
async def visit_milestone(
    db: AsyncSession, automation: MarketingAutomation, now: datetime
) -> TriggerEvaluation:
    visit_count = _config_int(automation, "visit_count", 10)
    target = now - _delay(automation)
    latest = func.max(Booking.completed_at)
    result = await db.execute(
        select(Booking.customer_id)
        .where(
            Booking.provider_id == automation.provider_id,
            Booking.customer_id.is_not(None),
            Booking.status == BookingStatus.COMPLETED.value,
        )
        .group_by(Booking.customer_id)
        .having(
            func.count(Booking.id) == visit_count,
            latest >= target - WINDOW,
            latest <= target,
        )
    )
    return TriggerEvaluation.matched(clients=await _users(db, result.scalars().all()))


@register_trigger("client_anniversary")
async def client_anniversary(
    db: AsyncSession, automation: MarketingAutomation, now: datetime
) -> TriggerEvaluation:
    years = _config_int(automation, "years", 1)
    target = now - relativedelta(years=years) - _delay(automation)
    first_visit = func.min(Booking.scheduled_at)
    result = await db.execute(
        select(Booking.customer_id)
        .where(
            Booking.provider_id == automation.provider_id,
            Booking.customer_id.is_not(None),
            Booking.status == BookingStatus.COMPLETED.value,
        )
        .group_by(Booking.customer_id)
        .having(first_visit >= target - WINDOW, first_visit <= target)
    )
    return TriggerEvaluation.matched(clients=await _users(db, result.scalars().all()))


@register_trigger("client_birthday")
async def client_birthday(
    db: AsyncSession, automation: MarketingAutomation, now: datetime
) -> TriggerEvaluation:
    today = now.astimezone(await provider_timezone(db, automation)).date()
    result = await db.execute(
        select(User)
        .where(
            User.date_of_birth.is_not(None),
            User.id.in_(
                select(Booking.customer_id).where(
                    Booking.provider_id == automation.provider_id,
                    Booking.customer_id.is_not(None),
                )
            ),
        )
        .order_by(User.full_name)
    )
    clients = [
        user
        for user in result.scalars().all()
        if user.date_of_birth is not None
        and (user.date_of_birth.month, user.date_of_birth.day) == (today.month, today.day)
    ]
    return TriggerEvaluation.matched(clients=clients)


def is_seasonal_period(day: date) -> bool:
    """Holiday season (Nov 20 - Jan 7), summer (Jun-Aug) or Valentine's week."""
    if (day.month == 11 and day.day >= 20) or day.month == 12 or (day.month == 1 and day.day <= 7):
        return True
    if day.month in (6, 7, 8):
        return True
    return day.month == 2 and 10 <= day.day <= 16


def is_holiday(day: date) -> bool:
    return (day.month, day.day) in HOLIDAYS


@register_trigger("seasonal_promotion")
async def seasonal_promotion(
    db: AsyncSession, automation: MarketingAutomation, now: datetime
) -> TriggerEvaluation:
    if not is_seasonal_period(now.astimezone(await provider_timezone(db, automation)).date()):
        return NOT_FIRED
    clients = await _recently_active_clients(db, automation, now, SEASONAL_ACTIVE_DAYS)
    return TriggerEvaluation.matched(clients=clients)


@register_trigger("holiday")
async def holiday(
    db: AsyncSession, automation: MarketingAutomation, now: datetime
) -> TriggerEvaluation:
    if not is_holiday(now.astimezone(await provider_timezone(db, automation)).date()):
        return NOT_FIRED
    clients = await _recently_active_clients(db, automation, now, HOLIDAY_ACTIVE_DAYS)
    return TriggerEvaluation.matched(clients=clients)
