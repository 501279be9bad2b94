"""Paginated ledger listing for admins."""

from collections.abc import Sequence
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from beautyhub.models.finance_transaction import FinanceTransaction
from beautyhub.services.finance.summary import Period, apply_period, resolve_period

MAX_PAGE_SIZE = 100


async def list_transactions(
    db: AsyncSession,
    start_date: date | None = None,
    end_date: date | None = None,
    transaction_type: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[Sequence[FinanceTransaction], int]:
    """Newest-first page of ledger rows and the total row count."""
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    page = max(1, page)
    period: Period = resolve_period(start_date, end_date)

    filtered = apply_period(select(FinanceTransaction), FinanceTransaction.created_at, period)
    if transaction_type:
        filtered = filtered.where(FinanceTransaction.transaction_type == transaction_type)

    total = await db.scalar(select(func.count()).select_from(filtered.subquery())) or 0
    result = await db.execute(
        filtered.order_by(FinanceTransaction.created_at.desc(), FinanceTransaction.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return result.scalars().all(), total
