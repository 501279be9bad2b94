"""Channel routing for automation messages.

Each provider may connect its own Twilio, Telnyx or Resend account. Anything
a provider has not configured falls back to the platform credentials.
"""

import uuid
from dataclasses import dataclass
from typing import Protocol

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beautyhub.core.config import settings
from beautyhub.models.automation import ActionType
from beautyhub.models.provider import ProviderMessagingSettings
from beautyhub.services.messaging.email import ResendEmailClient
from beautyhub.services.messaging.sms import SendOutcome, TelnyxClient, TwilioClient

logger = structlog.get_logger()


@dataclass(frozen=True)
class OutboundMessage:
    provider_id: uuid.UUID
    channel: str
    to: str
    body: str
    subject: str | None = None
    from_name: str | None = None


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    message_id: str | None = None
    error: str | None = None

    @classmethod
    def from_outcome(cls, outcome: SendOutcome) -> "DispatchResult":
        return cls(success=outcome.success, message_id=outcome.message_id, error=outcome.error)


class MessageDispatcher(Protocol):
    """Anything that can deliver an OutboundMessage."""

    async def dispatch(self, message: OutboundMessage) -> DispatchResult: ...


class ProviderMessagingService:
    """Deliver messages with the provider's credentials or the platform's."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._settings_cache: dict[uuid.UUID, ProviderMessagingSettings | None] = {}

    async def _provider_settings(self, provider_id: uuid.UUID) -> ProviderMessagingSettings | None:
        if provider_id not in self._settings_cache:
            result = await self.db.execute(
                select(ProviderMessagingSettings).where(
                    ProviderMessagingSettings.provider_id == provider_id
                )
            )
            self._settings_cache[provider_id] = result.scalar_one_or_none()
        return self._settings_cache[provider_id]

    def _telnyx(self, ps: ProviderMessagingSettings | None) -> TelnyxClient | None:
        if ps and ps.telnyx_api_key and ps.telnyx_from_number:
            return TelnyxClient(
                ps.telnyx_api_key,
                ps.telnyx_from_number,
                ps.telnyx_messaging_profile_id,
                timeout=settings.TELNYX_TIMEOUT,
            )
        if settings.TELNYX_API_KEY and settings.TELNYX_FROM_NUMBER:
            return TelnyxClient(
                settings.TELNYX_API_KEY,
                settings.TELNYX_FROM_NUMBER,
                settings.TELNYX_MESSAGING_PROFILE_ID,
                timeout=settings.TELNYX_TIMEOUT,
            )
        return None

    def _twilio(self, ps: ProviderMessagingSettings | None) -> TwilioClient | None:
        if ps and ps.twilio_account_sid and ps.twilio_auth_token:
            return TwilioClient(
                ps.twilio_account_sid,
                ps.twilio_auth_token,
                from_number=ps.twilio_from_number,
                whatsapp_number=ps.twilio_whatsapp_number,
                timeout=settings.TWILIO_TIMEOUT,
            )
        if settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN:
            return TwilioClient(
                settings.TWILIO_ACCOUNT_SID,
                settings.TWILIO_AUTH_TOKEN,
                from_number=settings.TWILIO_FROM_NUMBER,
                whatsapp_number=settings.TWILIO_WHATSAPP_NUMBER,
                timeout=settings.TWILIO_TIMEOUT,
            )
        return None

    def _resend(self, ps: ProviderMessagingSettings | None) -> ResendEmailClient | None:
        from_email = (ps.from_email if ps else None) or settings.DEFAULT_FROM_EMAIL
        api_key = (ps.resend_api_key if ps else None) or settings.RESEND_API_KEY
        if not api_key:
            return None
        return ResendEmailClient(api_key, from_email)

    async def dispatch(self, message: OutboundMessage) -> DispatchResult:
        ps = await self._provider_settings(message.provider_id)
        log = logger.bind(provider_id=str(message.provider_id), channel=message.channel)

        try:
            if message.channel == ActionType.SMS.value:
                telnyx = self._telnyx(ps)
                if telnyx is not None:
                    outcome = await telnyx.send_sms(message.to, message.body)
                else:
                    twilio = self._twilio(ps)
                    if twilio is None:
                        return DispatchResult(success=False, error="SMS is not configured")
                    outcome = await twilio.send_sms(message.to, message.body)

            elif message.channel == ActionType.WHATSAPP.value:
                twilio = self._twilio(ps)
                if twilio is None:
                    return DispatchResult(success=False, error="WhatsApp is not configured")
                outcome = await twilio.send_whatsapp(message.to, message.body)

            elif message.channel == ActionType.EMAIL.value:
                resend_client = self._resend(ps)
                if resend_client is None:
                    return DispatchResult(success=False, error="Email is not configured")
                outcome = await resend_client.send(
                    message.to,
                    message.subject or settings.DEFAULT_SENDER_NAME,
                    message.body,
                    message.from_name or settings.DEFAULT_SENDER_NAME,
                )

            else:
                return DispatchResult(success=False, error=f"Unsupported channel: {message.channel}")

        except httpx.HTTPError as e:
            log.warning("messaging_http_error", error=str(e), error_type=type(e).__name__)
            return DispatchResult(success=False, error=f"{type(e).__name__}: {e}")

        if outcome.success:
            log.info("message_dispatched", message_id=outcome.message_id)
        return DispatchResult.from_outcome(outcome)
