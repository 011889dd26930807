"""
WhatsApp Provider Adapters
Normalizes the Twilio and Meta Cloud API wire protocols behind one send() contract
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx

from ...models import PROVIDER_CLOUD_API, PROVIDER_TWILIO
from .exceptions import ConfigMissing, ProviderError

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


@dataclass(frozen=True)
class ProviderSettings:
    """Resolved provider credentials, loaded once per run"""

    provider: str
    api_token: str
    api_url: Optional[str] = None
    account_sid: Optional[str] = None
    from_number: Optional[str] = None


@dataclass(frozen=True)
class SendResult:
    success: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


def digits_only(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


def mask_phone(phone: str) -> str:
    digits = digits_only(phone)
    return f"***{digits[-4:]}" if digits else "***"


def _json_or_empty(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class ProviderAdapter:
    """Base class for outbound WhatsApp providers. Adapters never retry."""

    name = "provider"

    def __init__(self, settings: ProviderSettings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    async def send(self, phone: str, body: str) -> SendResult:
        digits = digits_only(phone)
        if not digits:
            return SendResult(success=False, error="Phone number has no digits")

        logger.info(f"📱 Sending WhatsApp message via {self.name} to {mask_phone(phone)}")
        try:
            response = await self._post(digits, body)
            message_id = self._parse_response(response)
        except ProviderError as e:
            logger.error(f"❌ {self.name} API error: {e}")
            return SendResult(success=False, error=str(e))
        except httpx.HTTPError as e:
            logger.error(f"❌ {self.name} request failed: {e!r}")
            return SendResult(success=False, error=str(e) or e.__class__.__name__)

        logger.info(f"✅ {self.name} accepted message (id: {message_id})")
        return SendResult(success=True, provider_message_id=message_id)

    async def _post(self, digits: str, body: str) -> httpx.Response:
        raise NotImplementedError

    def _parse_response(self, response: httpx.Response) -> Optional[str]:
        raise NotImplementedError


class TwilioAdapter(ProviderAdapter):
    """Twilio Programmable Messaging, WhatsApp channel (form-encoded POST, Basic auth)"""

    name = "twilio"

    async def _post(self, digits: str, body: str) -> httpx.Response:
        account_sid = self.settings.account_sid
        return await self.client.post(
            f"{TWILIO_API_BASE}/Accounts/{account_sid}/Messages.json",
            auth=(account_sid, self.settings.api_token),
            data={
                "From": self.settings.from_number,
                "To": f"whatsapp:{digits}",
                "Body": body,
            },
        )

    def _parse_response(self, response: httpx.Response) -> Optional[str]:
        data = _json_or_empty(response)
        if not response.is_success:
            raise ProviderError(data.get("message") or f"API Error: {response.status_code}")
        return data.get("sid")


class CloudApiAdapter(ProviderAdapter):
    """WhatsApp Business Cloud API (JSON POST, Bearer auth)"""

    name = "cloud_api"

    async def _post(self, digits: str, body: str) -> httpx.Response:
        return await self.client.post(
            f"{self.settings.api_url.rstrip('/')}/messages",
            headers={"Authorization": f"Bearer {self.settings.api_token}"},
            json={
                "messaging_product": "whatsapp",
                "to": digits,
                "type": "text",
                "text": {"body": body},
            },
        )

    def _parse_response(self, response: httpx.Response) -> Optional[str]:
        data = _json_or_empty(response)
        if not response.is_success:
            error = data.get("error")
            message = error.get("message") if isinstance(error, dict) else None
            raise ProviderError(message or f"API Error: {response.status_code}")
        # Any 2xx is an accepted send, even when the body has an unexpected shape
        messages = data.get("messages")
        if isinstance(messages, list) and messages and isinstance(messages[0], dict):
            return messages[0].get("id")
        return None


PROVIDER_ADAPTERS = {
    PROVIDER_TWILIO: TwilioAdapter,
    PROVIDER_CLOUD_API: CloudApiAdapter,
}


def build_provider(settings: ProviderSettings, client: httpx.AsyncClient) -> ProviderAdapter:
    adapter_cls = PROVIDER_ADAPTERS.get(settings.provider)
    if adapter_cls is None:
        raise ConfigMissing(f"Unsupported WhatsApp provider: {settings.provider}")
    return adapter_cls(settings, client)
