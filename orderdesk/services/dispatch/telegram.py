from typing import Optional

import httpx

from orderdesk.services.dispatch.base import HttpChannelSender, PermanentProviderError, SendReceipt

TELEGRAM_PREFIX = "telegram:"


def chat_id_for(customer_channel_id: str) -> str:
    if customer_channel_id.startswith(TELEGRAM_PREFIX):
        return customer_channel_id[len(TELEGRAM_PREFIX) :]
    return customer_channel_id


class TelegramSender(HttpChannelSender):
    """Sends replies through the Bot API of the tenant's own bot."""

    provider = "telegram"

    def __init__(
        self,
        bot_token: str,
        api_base: str = "https://api.telegram.org",
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.bot_token = bot_token
        self.base_url = f"{api_base.rstrip('/')}/bot{bot_token}"

    async def _make_request(self, method: str, data: dict) -> SendReceipt:
        """Make request to Telegram API."""
        response = await self._post(f"{self.base_url}/{method}", json=data)
        payload = self._json(response)
        if not payload.get("ok", False):
            raise PermanentProviderError(
                f"Telegram API error: {payload.get('description', 'not ok')}",
                response.status_code,
                response.text[:500],
            )
        message_id = (payload.get("result") or {}).get("message_id")
        return SendReceipt(provider_message_id=str(message_id) if message_id is not None else None, raw=payload)

    async def send_text(self, to: str, text: str) -> SendReceipt:
        return await self._make_request("sendMessage", {"chat_id": chat_id_for(to), "text": text})

    async def send_image(self, to: str, url: str, caption: Optional[str] = None) -> SendReceipt:
        data = {"chat_id": chat_id_for(to), "photo": url}
        if caption:
            data["caption"] = caption
        return await self._make_request("sendPhoto", data)

    async def send_document(
        self, to: str, url: str, caption: Optional[str] = None, filename: Optional[str] = None
    ) -> SendReceipt:
        data = {"chat_id": chat_id_for(to), "document": url}
        if caption:
            data["caption"] = caption
        return await self._make_request("sendDocument", data)
