"""Admin finance routes."""

import uuid
from datetime import date, datetime
from decimal import Decimal

import structlog
from dateutil.parser import isoparse
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from beautyhub.core.auth import AdminUser
from beautyhub.core.config import settings
from beautyhub.core.limiter import limiter
from beautyhub.core.responses import ApiResponse, PagedResponse, PageMeta, ok
from beautyhub.db.session import get_db
from beautyhub.models.finance_transaction import FinanceTransaction
from beautyhub.services.finance.summary import InvalidPeriodError, build_finance_summary
from beautyhub.services.finance.transactions import MAX_PAGE_SIZE, list_transactions

router = APIRouter(prefix=f"{settings.API_V1_PREFIX}/admin/finance", tags=["admin-finance"])
logger = structlog.get_logger()


class PeriodResponse(BaseModel):
    start_date: str | None
    end_date: str | None


class FinanceSummaryResponse(BaseModel):
    """All money figures are rounded to cents."""

    service_collected_gross: float
    service_collected_net: float
    gateway_fees: float
    platform_commission_gross: float
    platform_refund_impact: float
    platform_commission_net: float
    platform_take_net: float
    tips_gross: float
    taxes_gross: float
    provider_earnings: float
    refunds_gross: float
    subscription_collected_gross: float
    subscription_gateway_fees: float
    subscription_net: float
    ads_gross: float
    ads_gateway_fees: float
    ads_net: float
    total_platform_take_net: float
    gift_card_sales: float
    membership_sales: float
    wallet_topup_revenue: float
    referral_payouts: float
    total_platform_take_after_referrals: float
    gmv_growth: float
    period: PeriodResponse


class TransactionResponse(BaseModel):
    id: uuid.UUID
    transaction_type: str
    amount: float | None
    fees: float | None
    commission: float | None
    net: float | None
    booking_id: uuid.UUID | None
    provider_id: uuid.UUID | None
    customer_id: uuid.UUID | None
    description: str | None
    created_at: datetime

    @classmethod
    def from_row(cls, row: FinanceTransaction) -> "TransactionResponse":
        def money(value: Decimal | None) -> float | None:
            return float(value) if value is not None else None

        return cls(
            id=row.id,
            transaction_type=row.transaction_type,
            amount=money(row.amount),
            fees=money(row.fees),
            commission=money(row.commission),
            net=money(row.net),
            booking_id=row.booking_id,
            provider_id=row.provider_id,
            customer_id=row.customer_id,
            description=row.description,
            created_at=row.created_at,
        )


def parse_date_param(name: str, value: str | None) -> date | None:
    """Accept YYYY-MM-DD or a full ISO timestamp (its date part is used)."""
    if value is None or value == "":
        return None
    try:
        return isoparse(value).date()
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_DATE", "message": f"Invalid {name}: {value}"},
        ) from e


def _date_range(start_date: str | None, end_date: str | None) -> tuple[date | None, date | None]:
    start = parse_date_param("start_date", start_date)
    end = parse_date_param("end_date", end_date)
    if start and end and start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_DATE_RANGE", "message": "start_date must be on or before end_date"},
        )
    return start, end


@router.get("/summary", response_model=ApiResponse[FinanceSummaryResponse])
@limiter.limit("30/minute")
async def get_finance_summary(
    request: Request,  # Required for rate limiter
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db),
    start_date: str | None = Query(None, description="First day, inclusive (YYYY-MM-DD)"),
    end_date: str | None = Query(None, description="Last day, inclusive (YYYY-MM-DD)"),
) -> ApiResponse[FinanceSummaryResponse]:
    """Platform finance summary with GMV growth against the previous period."""
    start, end = _date_range(start_date, end_date)
    try:
        summary = await build_finance_summary(db, start, end)
    except InvalidPeriodError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_DATE_RANGE", "message": str(e)},
        ) from e

    logger.info("finance_summary_requested", admin_id=str(current_user.id))
    return ok(FinanceSummaryResponse.model_validate(summary))


@router.get("/transactions", response_model=PagedResponse[TransactionResponse])
@limiter.limit("30/minute")
async def get_finance_transactions(
    request: Request,  # Required for rate limiter
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db),
    start_date: str | None = Query(None),
    end_date: str | None = Query(None),
    transaction_type: str | None = Query(None, alias="type"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
) -> PagedResponse[TransactionResponse]:
    start, end = _date_range(start_date, end_date)
    rows, total = await list_transactions(db, start, end, transaction_type, page, limit)
    return PagedResponse[TransactionResponse](
        data=[TransactionResponse.from_row(row) for row in rows],
        meta=PageMeta(page=page, limit=limit, total=total, has_more=page * limit < total),
    )
