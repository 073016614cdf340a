import logging

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


class Notifier:
    """Fire-and-forget user notification. Implementations never raise."""

    async def notify(self, title: str, body: str) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    async def notify(self, title: str, body: str) -> None:
        logger.info("%s: %s", title, body)


class EvolutionClient:
    """Outbound half of the WhatsApp gateway (Evolution API)."""

    def __init__(
            self,
            base_url: str | None = None,
            api_key: str | None = None,
            instance: str | None = None,
            timeout: float | None = None,
    ):
        self.base_url = base_url if base_url is not None else settings.EVOLUTION_API_URL
        self.api_key = api_key if api_key is not None else settings.EVOLUTION_API_KEY
        self.instance = instance if instance is not None else settings.EVOLUTION_INSTANCE_NAME
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key and self.instance)

    async def send_text(self, number: str, text: str) -> bool:
        if not self.configured:
            logger.warning("Evolution API not configured, message to %s dropped", number)
            return False

        url = f"{self.base_url.rstrip('/')}/message/sendText/{self.instance}"
        logger.info("Sending message to %s: %s...", number, text[:50])
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    json={"number": number, "text": text},
                    headers={"apikey": self.api_key},
                )
        except httpx.HTTPError as e:
            logger.error("Evolution API request failed: %s", e)
            return False

        if response.is_success:
            return True
        logger.error("Evolution API refused message to %s: %s", number, response.text)
        return False


class WhatsAppNotifier(Notifier):
    def __init__(self, client: EvolutionClient, number: str):
        self.client = client
        self.number = number

    async def notify(self, title: str, body: str) -> None:
        await self.client.send_text(self.number, f"*{title}*\n{body}")


evolution_client = EvolutionClient()
