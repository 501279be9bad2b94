"""Transactional email through Resend."""

import asyncio
import html
import threading
from typing import Any

import resend
import structlog
from resend.exceptions import ResendError

from beautyhub.services.messaging.sms import SendOutcome

logger = structlog.get_logger()

# The Resend SDK reads its key from module state, so sends with different
# provider keys must not interleave.
_resend_key_lock = threading.Lock()


def render_plain_html(body: str) -> str:
    """Escape a plain-text body and keep its line breaks."""
    return "<br>".join(html.escape(line) for line in body.splitlines()) or html.escape(body)


class ResendEmailClient:
    """Sends a single message via ``resend.Emails.send``."""

    def __init__(self, api_key: str, from_email: str) -> None:
        self.api_key = api_key
        self.from_email = from_email

    def _send_blocking(self, params: dict[str, Any]) -> Any:
        with _resend_key_lock:
            resend.api_key = self.api_key
            return resend.Emails.send(params)  # type: ignore[arg-type]

    async def send(self, to: str, subject: str, body: str, from_name: str) -> SendOutcome:
        params: dict[str, Any] = {
            "from": f"{from_name} <{self.from_email}>",
            "to": [to],
            "subject": subject,
            "html": render_plain_html(body),
            "text": body,
        }
        try:
            response = await asyncio.to_thread(self._send_blocking, params)
        except ResendError as e:
            logger.warning("resend_send_failed", error=str(e))
            return SendOutcome(success=False, error=str(e))

        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        return SendOutcome(success=True, message_id=message_id)
