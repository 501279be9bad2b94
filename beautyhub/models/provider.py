"""Provider (tenant) and per-provider messaging credentials."""

import uuid

from sqlalchemy import Boolean, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from beautyhub.db.base import Base, TimestampMixin


class Provider(Base, TimestampMixin):
    """A beauty business selling services on the marketplace."""

    __tablename__ = "providers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str | None] = mapped_column(
        String(64), nullable=True, comment="IANA timezone for calendar triggers and message dates"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    messaging_settings: Mapped["ProviderMessagingSettings | None"] = relationship(
        "ProviderMessagingSettings",
        back_populates="provider",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Provider(id={self.id}, business_name={self.business_name})>"


class ProviderMessagingSettings(Base, TimestampMixin):
    """Messaging credentials a provider has connected.

    Any channel left unset falls back to the platform credentials.
    """

    __tablename__ = "provider_messaging_settings"

    provider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("providers.id", ondelete="CASCADE"),
        primary_key=True,
    )

    # Twilio (SMS + WhatsApp)
    twilio_account_sid: Mapped[str | None] = mapped_column(String(64), nullable=True)
    twilio_auth_token: Mapped[str | None] = mapped_column(String(128), nullable=True)
    twilio_from_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    twilio_whatsapp_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Telnyx (SMS)
    telnyx_api_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    telnyx_from_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    telnyx_messaging_profile_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Resend (email)
    resend_api_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    from_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    provider: Mapped["Provider"] = relationship("Provider", back_populates="messaging_settings")
