from typing import Optional

import httpx

from orderdesk.services.dispatch.base import HttpChannelSender, SendReceipt


class FacebookSender(HttpChannelSender):
    """Messenger Send API sender using a page access token."""

    provider = "facebook"
    BASE_URL = "https://graph.facebook.com/{version}/me/messages"

    def __init__(
        self,
        page_access_token: str,
        api_version: str = "v18.0",
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.page_access_token = page_access_token
        self.url = self.BASE_URL.format(version=api_version)

    async def _send(self, to: str, message: dict) -> SendReceipt:
        body = {"recipient": {"id": to}, "messaging_type": "RESPONSE", "message": message}
        response = await self._post(self.url, json=body, params={"access_token": self.page_access_token})
        data = self._json(response)
        return SendReceipt(provider_message_id=data.get("message_id"), raw=data)

    @staticmethod
    def _attachment(kind: str, url: str) -> dict:
        return {"attachment": {"type": kind, "payload": {"url": url, "is_reusable": True}}}

    async def send_text(self, to: str, text: str) -> SendReceipt:
        return await self._send(to, {"text": text})

    async def send_image(self, to: str, url: str, caption: Optional[str] = None) -> SendReceipt:
        # Messenger attachments carry no caption.
        return await self._send(to, self._attachment("image", url))

    async def send_document(
        self, to: str, url: str, caption: Optional[str] = None, filename: Optional[str] = None
    ) -> SendReceipt:
        return await self._send(to, self._attachment("file", url))
