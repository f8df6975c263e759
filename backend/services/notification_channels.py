# backend/services/notification_channels.py
import httpx
import logging
from typing import Any, Dict, List, Optional

from services.errors import DeliveryError

logger = logging.getLogger(__name__)


class NotificationChannels:
    """Outbound alarm transports: Mailgun e-mail, Slack webhook, generic webhook"""

    def __init__(
        self,
        mailgun_api_key: str = "",
        mailgun_domain: str = "",
        sender_email: str = "",
        mailgun_api_base: str = "https://api.mailgun.net/v3",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.mailgun_api_key = mailgun_api_key
        self.mailgun_domain = mailgun_domain
        self.sender_email = sender_email
        self.mailgun_api_base = mailgun_api_base.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def _post(self, channel: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, **kwargs)
                response.raise_for_status()
                return response
        except httpx.HTTPError as e:
            raise DeliveryError(f"{channel} delivery failed", detail=str(e)) from e

    async def send_email(self, addresses: List[str], subject: str, html: str) -> bool:
        """
        Send e-mail through the Mailgun HTTP API
        """
        if not self.mailgun_api_key or not self.mailgun_domain:
            logger.warning("Mailgun credentials not set")
            return False

        if not addresses:
            logger.warning("No e-mail recipients configured")
            return False

        await self._post(
            "email",
            f"{self.mailgun_api_base}/{self.mailgun_domain}/messages",
            auth=("api", self.mailgun_api_key),
            data={
                "from": self.sender_email,
                "to": addresses,
                "subject": subject,
                "html": html,
            },
        )
        return True

    async def send_slack(self, webhook_url: str, text: str) -> bool:
        """
        Send alert to a Slack incoming webhook
        """
        await self._post("slack", webhook_url, json={"text": text})
        return True

    async def send_webhook(self, url: str, payload: Dict[str, Any]) -> bool:
        """
        POST the full alarm payload as JSON
        """
        await self._post("webhook", url, json=payload)
        return True
