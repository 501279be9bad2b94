"""Admin finance summary over a date range."""

from dataclasses import asdict, dataclass
from datetime import UTC, date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import structlog
from dateutil.relativedelta import relativedelta
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from beautyhub.models.finance_transaction import FinanceTransaction
from beautyhub.models.wallet import (
    WalletTopup,
    WalletTopupStatus,
    WalletTransaction,
    WalletTransactionType,
)
from beautyhub.services.finance import ledger
from beautyhub.services.finance.ledger import LedgerRow, LedgerRows, to_decimal

logger = structlog.get_logger()

CENT = Decimal("0.01")
REFERRAL_REFERENCE = "referral"


class InvalidPeriodError(ValueError):
    """Raised when the requested date range cannot be used."""


@dataclass(frozen=True)
class Period:
    """Half-open instant range [start, end). None means unbounded."""

    start: datetime | None
    end: datetime | None


def day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


def resolve_period(start_date: date | None, end_date: date | None) -> Period:
    """end_date is an inclusive calendar day."""
    if start_date and end_date and start_date > end_date:
        raise InvalidPeriodError("start_date must be on or before end_date")
    return Period(
        start=day_start(start_date) if start_date else None,
        end=day_start(end_date + timedelta(days=1)) if end_date else None,
    )


def previous_period(period: Period, now: datetime) -> tuple[Period, Period]:
    """(current, previous) periods used for growth.

    A fully bounded range is compared with the equal-length range right
    before it; otherwise this month to date is compared with last month.
    """
    if period.start is not None and period.end is not None:
        length = period.end - period.start
        return period, Period(start=period.start - length, end=period.start)

    month_start = day_start(now.astimezone(UTC).date().replace(day=1))
    return (
        Period(start=month_start, end=now),
        Period(start=month_start - relativedelta(months=1), end=month_start),
    )


def growth_percent(current: Decimal, previous: Decimal) -> Decimal:
    if previous == 0:
        return Decimal("0")
    return (current - previous) / previous * 100


def quantize(value: Decimal) -> float:
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


def apply_period(stmt: Any, column: Any, period: Period) -> Any:
    if period.start is not None:
        stmt = stmt.where(column >= period.start)
    if period.end is not None:
        stmt = stmt.where(column < period.end)
    return stmt


async def fetch_ledger_rows(db: AsyncSession, period: Period) -> LedgerRows:
    stmt = apply_period(
        select(
            FinanceTransaction.transaction_type,
            FinanceTransaction.amount,
            FinanceTransaction.fees,
            FinanceTransaction.commission,
            FinanceTransaction.net,
            FinanceTransaction.created_at,
        ),
        FinanceTransaction.created_at,
        period,
    )
    result = await db.execute(stmt)
    return LedgerRows(
        LedgerRow(
            transaction_type=row.transaction_type,
            amount=row.amount,
            fees=row.fees,
            commission=row.commission,
            net=row.net,
            created_at=row.created_at,
        )
        for row in result.all()
    )


async def wallet_topup_revenue(db: AsyncSession, period: Period) -> Decimal:
    stmt = apply_period(
        select(func.coalesce(func.sum(WalletTopup.amount), 0)).where(
            WalletTopup.status == WalletTopupStatus.PAID.value
        ),
        WalletTopup.created_at,
        period,
    )
    return to_decimal(await db.scalar(stmt))


async def referral_payouts(db: AsyncSession, period: Period) -> Decimal:
    stmt = apply_period(
        select(func.coalesce(func.sum(WalletTransaction.amount), 0)).where(
            WalletTransaction.type == WalletTransactionType.CREDIT.value,
            WalletTransaction.reference_type == REFERRAL_REFERENCE,
        ),
        WalletTransaction.created_at,
        period,
    )
    return to_decimal(await db.scalar(stmt))


def service_collected_gross(rows: LedgerRows) -> Decimal:
    """GMV: everything the customer paid for services, gateway fees included."""
    return (
        rows.sum(ledger.SERVICE_COLLECTED, "amount")
        + rows.sum(ledger.ADDITIONAL_CHARGE, "amount")
        + rows.sum(ledger.ADDITIONAL_CHARGE, "fees")
    )


@dataclass(frozen=True)
class FinanceFigures:
    service_collected_gross: Decimal
    service_collected_net: Decimal
    gateway_fees: Decimal
    platform_commission_gross: Decimal
    platform_refund_impact: Decimal
    platform_commission_net: Decimal
    platform_take_net: Decimal
    tips_gross: Decimal
    taxes_gross: Decimal
    provider_earnings: Decimal
    refunds_gross: Decimal
    subscription_collected_gross: Decimal
    subscription_gateway_fees: Decimal
    subscription_net: Decimal
    ads_gross: Decimal
    ads_gateway_fees: Decimal
    ads_net: Decimal
    total_platform_take_net: Decimal
    gift_card_sales: Decimal
    membership_sales: Decimal
    wallet_topup_revenue: Decimal
    referral_payouts: Decimal
    total_platform_take_after_referrals: Decimal


def compute_figures(
    rows: LedgerRows,
    topup_revenue: Decimal = Decimal("0"),
    referral_payout_total: Decimal = Decimal("0"),
) -> FinanceFigures:
    gateway_fees = rows.sum(ledger.COMMISSION_BEARING, "fees")
    gross = service_collected_gross(rows)

    commission_gross = rows.sum(ledger.COMMISSION_BEARING, "net")
    refund_impact = rows.sum(ledger.REFUND, "net")
    commission_net = commission_gross + refund_impact
    take_net = commission_net - gateway_fees

    subscription_gross = rows.sum(ledger.SUBSCRIPTION, "amount")
    subscription_fees = rows.sum(ledger.SUBSCRIPTION, "fees")
    subscription_net = subscription_gross - subscription_fees

    ads_gross = rows.sum(ledger.ADS, "amount")
    ads_fees = rows.sum(ledger.ADS, "fees")
    ads_net = ads_gross - ads_fees

    total_take = take_net + subscription_net + ads_net

    return FinanceFigures(
        service_collected_gross=gross,
        service_collected_net=gross - gateway_fees,
        gateway_fees=gateway_fees,
        platform_commission_gross=commission_gross,
        platform_refund_impact=refund_impact,
        platform_commission_net=commission_net,
        platform_take_net=take_net,
        tips_gross=rows.sum(ledger.TIP, "amount"),
        taxes_gross=rows.sum(ledger.TAX, "amount"),
        provider_earnings=rows.sum(ledger.PROVIDER_EARNINGS, "net"),
        refunds_gross=rows.sum(ledger.REFUND, "amount"),
        subscription_collected_gross=subscription_gross,
        subscription_gateway_fees=subscription_fees,
        subscription_net=subscription_net,
        ads_gross=ads_gross,
        ads_gateway_fees=ads_fees,
        ads_net=ads_net,
        total_platform_take_net=total_take,
        gift_card_sales=rows.sum(ledger.GIFT_CARD, "amount"),
        membership_sales=rows.sum(ledger.MEMBERSHIP, "amount"),
        wallet_topup_revenue=topup_revenue,
        referral_payouts=referral_payout_total,
        total_platform_take_after_referrals=total_take + topup_revenue - referral_payout_total,
    )


async def build_finance_summary(
    db: AsyncSession,
    start_date: date | None = None,
    end_date: date | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Summary figures for the range plus GMV growth.

    Money values are rounded to cents and returned as floats.
    """
    now = now or datetime.now(UTC)
    period = resolve_period(start_date, end_date)

    rows = await fetch_ledger_rows(db, period)
    figures = compute_figures(
        rows,
        await wallet_topup_revenue(db, period),
        await referral_payouts(db, period),
    )

    current, previous = previous_period(period, now)
    current_gmv = (
        figures.service_collected_gross
        if current is period
        else service_collected_gross(await fetch_ledger_rows(db, current))
    )
    previous_gmv = service_collected_gross(await fetch_ledger_rows(db, previous))
    growth = growth_percent(current_gmv, previous_gmv)

    logger.info(
        "finance_summary_built",
        rows=len(rows),
        start_date=start_date.isoformat() if start_date else None,
        end_date=end_date.isoformat() if end_date else None,
    )

    data: dict[str, Any] = {key: quantize(value) for key, value in asdict(figures).items()}
    data["gmv_growth"] = quantize(growth)
    data["period"] = {
        "start_date": start_date.isoformat() if start_date else None,
        "end_date": end_date.isoformat() if end_date else None,
    }
    return data
