from typing import Optional

import httpx

from orderdesk.services.dispatch.base import HttpChannelSender, SendReceipt


class MetaWhatsAppSender(HttpChannelSender):
    """WhatsApp Cloud API sender."""

    provider = "meta"
    BASE_URL = "https://graph.facebook.com/{version}/{phone_number_id}/messages"

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v21.0",
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.access_token = access_token
        self.url = self.BASE_URL.format(version=api_version, phone_number_id=phone_number_id)

    async def _send(self, to: str, message: dict) -> SendReceipt:
        body = {"messaging_product": "whatsapp", "recipient_type": "individual", "to": to, **message}
        response = await self._post(
            self.url,
            json=body,
            headers={"Authorization": f"Bearer {self.access_token}"},
        )
        data = self._json(response)
        messages = data.get("messages") or [{}]
        return SendReceipt(provider_message_id=messages[0].get("id"), raw=data)

    async def send_text(self, to: str, text: str) -> SendReceipt:
        return await self._send(to, {"type": "text", "text": {"preview_url": False, "body": text}})

    async def send_image(self, to: str, url: str, caption: Optional[str] = None) -> SendReceipt:
        image = {"link": url}
        if caption:
            image["caption"] = caption
        return await self._send(to, {"type": "image", "image": image})

    async def send_document(
        self, to: str, url: str, caption: Optional[str] = None, filename: Optional[str] = None
    ) -> SendReceipt:
        document = {"link": url}
        if caption:
            document["caption"] = caption
        if filename:
            document["filename"] = filename
        return await self._send(to, {"type": "document", "document": document})
