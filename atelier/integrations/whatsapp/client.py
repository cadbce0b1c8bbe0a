# ==== WHATSAPP CLOUD API ADAPTER ==== #

"""
WhatsApp Cloud API adapter for outbound template messages.

Only template sending lives here; inbound replies arrive through the webhook
route and are handed to the confirmation correlator.
"""

from typing import Optional, Sequence

import httpx

from atelier.business.phones import digits_only
from atelier.errors import AdapterRequestError, TransientAdapterError
from atelier.observability.logging import get_logger
from atelier.observability.tracing import get_tracer
from atelier.resilience.circuit_breaker import (
    CircuitBreakerConfig,
    get_circuit_breaker,
)
from atelier.settings import settings


tracer = get_tracer(__name__)
logger = get_logger(__name__)

SERVICE = "whatsapp"


def format_whatsapp_phone(phone: str) -> str:
    """Normalize an Egyptian mobile number to the ``201XXXXXXXXX`` form."""
    digits = digits_only(phone)
    if digits.startswith("201"):
        formatted = digits
    elif digits.startswith("20"):
        formatted = "201" + digits[2:]
    elif digits.startswith("01"):
        formatted = "2" + digits
    elif digits.startswith("1"):
        formatted = "20" + digits
    else:
        formatted = "201" + digits
    return formatted[:12]


class WhatsAppClient:
    """Messaging gateway backed by the WhatsApp Cloud API."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        phone_number_id: Optional[str] = None,
        access_token: Optional[str] = None,
        language: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = (api_url or settings.WHATSAPP_API_URL).rstrip("/")
        self.phone_number_id = phone_number_id or settings.WHATSAPP_PHONE_NUMBER_ID
        self.language = language or settings.WHATSAPP_TEMPLATE_LANGUAGE
        self._client = http_client or httpx.AsyncClient(
            base_url=self.api_url,
            headers={
                "Authorization": f"Bearer {access_token or settings.WHATSAPP_ACCESS_TOKEN or ''}",
                "Content-Type": "application/json",
            },
            timeout=15.0,
        )
        self._breaker = get_circuit_breaker(
            SERVICE,
            CircuitBreakerConfig(failure_threshold=5, recovery_timeout=120.0,
                                 expected_exception=TransientAdapterError),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send_template(self, phone: str, template_name: str, params: Sequence[str]) -> str:
        """
        Send a pre-approved template message.

        Args:
            phone: Recipient phone in any local spelling
            template_name: Approved template name
            params: Positional body parameters

        Returns:
            str: Provider message id, used to correlate the reply

        Raises:
            TransientAdapterError: On network errors, 429 and 5xx
            AdapterRequestError: When the provider refuses the message (other 4xx)
            CircuitBreakerError: While the messaging circuit is open
        """
        recipient = format_whatsapp_phone(phone)
        body = {
            "messaging_product": "whatsapp",
            "to": recipient,
            "type": "template",
            "template": {
                "name": template_name,
                "language": {"code": self.language},
                "components": [
                    {
                        "type": "body",
                        "parameters": [{"type": "text", "text": str(value)} for value in params],
                    }
                ],
            },
        }

        with tracer.start_as_current_span("whatsapp_send_template") as span:
            span.set_attribute("template", template_name)
            async with self._breaker:
                try:
                    response = await self._client.post(f"/{self.phone_number_id}/messages", json=body)
                except httpx.TransportError as e:
                    raise TransientAdapterError(SERVICE, f"send failed: {e}") from e
                if response.status_code == 429 or response.status_code >= 500:
                    raise TransientAdapterError(
                        SERVICE, f"send returned {response.status_code}",
                        status_code=response.status_code,
                    )
            if response.is_client_error:
                raise AdapterRequestError(
                    SERVICE, f"send returned {response.status_code}",
                    status_code=response.status_code,
                )

            messages = response.json().get("messages") or []
            if not messages or not messages[0].get("id"):
                raise TransientAdapterError(SERVICE, "send response carried no message id")

            message_id = messages[0]["id"]
            span.set_attribute("message_id", message_id)
            logger.info("WhatsApp template sent", template=template_name, message_id=message_id)
            return message_id
