"""Marketing automation models."""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from beautyhub.db.base import Base, TimestampMixin


class ActionType(str, Enum):
    """Delivery channel for an automation message."""

    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"


class ExecutionStatus(str, Enum):
    """State of an execution record."""

    PENDING = "pending"  # Slot claimed, dispatch in flight
    SENT = "sent"


class MarketingAutomation(Base, TimestampMixin):
    """Provider-configured rule mapping a trigger to a message action."""

    __tablename__ = "marketing_automations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Trigger
    trigger_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    trigger_config: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict, comment="hours_before, days, visit_count, ..."
    )
    delay_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Offset applied before firing"
    )

    # Action
    action_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ActionType.SMS.value
    )
    action_config: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict, comment="message_template, subject, from_name"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    is_template: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<MarketingAutomation(id={self.id}, name={self.name}, trigger={self.trigger_type})>"


class AutomationExecution(Base):
    """Append-only record that an automation was sent to a customer.

    The unique (automation, customer, dedup_bucket) constraint makes the
    "claim before send" insert atomic across concurrent passes.
    """

    __tablename__ = "automation_executions"
    __table_args__ = (
        UniqueConstraint(
            "automation_id",
            "customer_id",
            "dedup_bucket",
            name="uq_automation_executions_automation_customer_day",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    automation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("marketing_automations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    action_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ExecutionStatus.SENT.value
    )
    dedup_bucket: Mapped[str] = mapped_column(
        String(10), nullable=False, comment="UTC day (YYYY-MM-DD) of the execution"
    )
    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC), index=True
    )

    def __repr__(self) -> str:
        return (
            f"<AutomationExecution(automation_id={self.automation_id}, "
            f"customer_id={self.customer_id}, status={self.status})>"
        )
