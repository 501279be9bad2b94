"""Outbound messaging (SMS, WhatsApp, email)."""

from beautyhub.services.messaging.dispatcher import (
    DispatchResult,
    MessageDispatcher,
    OutboundMessage,
    ProviderMessagingService,
)

__all__ = ["DispatchResult", "MessageDispatcher", "OutboundMessage", "ProviderMessagingService"]
