import logging
import httpx

log = logging.getLogger(__name__)

class WebhookBridge:
    """Fire-and-forget notifications to the automation backend (n8n)."""

    def __init__(self, url: str | None, *, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def notify(self, event: str, ticket: dict) -> bool:
        if not self.url:
            log.debug(f"N8N_WEBHOOK_URL is not set; skipping {event}")
            return False
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                resp = await client.post(self.url, json={"event": event, "ticket": ticket})
                resp.raise_for_status()
            log.info(f"Sent {event} for ticket #{ticket.get('id')} to n8n")
            return True
        except Exception as e:
            log.error(f"Failed to send {event} for ticket #{ticket.get('id')} to n8n: {e}", exc_info=True)
            return False
