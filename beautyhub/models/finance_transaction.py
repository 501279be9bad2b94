"""Immutable finance ledger model."""

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from beautyhub.db.base import Base


class TransactionType(str, Enum):
    """Ledger row types.

    Each type fixes what amount / fees / net mean for that row, so sums must
    always be taken per type set.
    """

    PAYMENT = "payment"
    ADDITIONAL_CHARGE_PAYMENT = "additional_charge_payment"
    REFUND = "refund"
    TIP = "tip"
    TAX = "tax"
    TRAVEL_FEE = "travel_fee"
    SERVICE_FEE = "service_fee"
    PROVIDER_EARNINGS = "provider_earnings"
    PROVIDER_SUBSCRIPTION_PAYMENT = "provider_subscription_payment"
    PROVIDER_ADS_PAYMENT = "provider_ads_payment"
    GIFT_CARD_SALE = "gift_card_sale"
    MEMBERSHIP_SALE = "membership_sale"


class FinanceTransaction(Base):
    """One money movement. Written by payment/refund webhooks, never edited."""

    __tablename__ = "finance_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    amount: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True, comment="Customer-facing gross"
    )
    fees: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True, comment="Gateway cost"
    )
    commission: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    net: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True, comment="Platform or provider take"
    )

    booking_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True
    )
    provider_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("providers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<FinanceTransaction({self.transaction_type}, amount={self.amount}, net={self.net})>"
