"""Twilio and Telnyx REST clients for SMS and WhatsApp."""

from dataclasses import dataclass
from http import HTTPStatus
from typing import Any

import httpx
import structlog

logger = structlog.get_logger()

MAX_SMS_LENGTH = 1600


@dataclass
class SendOutcome:
    """Result of a single provider API call."""

    success: bool
    message_id: str | None = None
    error: str | None = None


def _error_message(response: httpx.Response) -> str:
    try:
        data: dict[str, Any] = response.json()
    except ValueError:
        return response.text
    if "errors" in data and data["errors"]:
        first = data["errors"][0]
        return str(first.get("detail") or first.get("title") or first)
    return str(data.get("message", response.text))


class TwilioClient:
    """Twilio Messages API.

    WhatsApp uses the same endpoint with ``whatsapp:`` prefixed addresses.
    """

    BASE_URL = "https://api.twilio.com/2010-04-01"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str | None = None,
        whatsapp_number: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.whatsapp_number = whatsapp_number
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.BASE_URL}/Accounts/{self.account_sid}",
            auth=(self.account_sid, self.auth_token),
            timeout=self.timeout,
        )

    async def _post_message(self, to: str, from_: str, body: str) -> SendOutcome:
        if len(body) > MAX_SMS_LENGTH:
            return SendOutcome(
                success=False,
                error=f"Message too long. Max {MAX_SMS_LENGTH} characters, got {len(body)}",
            )

        async with self._client() as client:
            response = await client.post(
                "/Messages.json",
                data={"To": to, "From": from_, "Body": body},
            )

        if response.status_code != HTTPStatus.CREATED:
            error = _error_message(response)
            logger.warning("twilio_send_failed", status_code=response.status_code, error=error)
            return SendOutcome(success=False, error=error)

        return SendOutcome(success=True, message_id=response.json().get("sid"))

    async def send_sms(self, to: str, body: str) -> SendOutcome:
        if not self.from_number:
            return SendOutcome(success=False, error="Twilio from number not configured")
        return await self._post_message(to, self.from_number, body)

    async def send_whatsapp(self, to: str, body: str) -> SendOutcome:
        if not self.whatsapp_number:
            return SendOutcome(success=False, error="Twilio WhatsApp number not configured")
        return await self._post_message(
            _whatsapp_address(to), _whatsapp_address(self.whatsapp_number), body
        )


def _whatsapp_address(number: str) -> str:
    return number if number.startswith("whatsapp:") else f"whatsapp:{number}"


class TelnyxClient:
    """Telnyx v2 messages API."""

    BASE_URL = "https://api.telnyx.com/v2"

    def __init__(
        self,
        api_key: str,
        from_number: str,
        messaging_profile_id: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.api_key = api_key
        self.from_number = from_number
        self.messaging_profile_id = messaging_profile_id
        self.timeout = timeout

    async def send_sms(self, to: str, body: str) -> SendOutcome:
        payload: dict[str, Any] = {
            "to": to,
            "from": self.from_number,
            "text": body,
            "type": "SMS",
        }
        if self.messaging_profile_id:
            payload["messaging_profile_id"] = self.messaging_profile_id

        async with httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
        ) as client:
            response = await client.post("/messages", json=payload)

        if response.status_code != HTTPStatus.OK:
            error = _error_message(response)
            logger.warning("telnyx_send_failed", status_code=response.status_code, error=error)
            return SendOutcome(success=False, error=error)

        data = response.json().get("data", {})
        return SendOutcome(success=True, message_id=data.get("id"))
