from typing import Optional

import httpx

from orderdesk.services.dispatch.base import HttpChannelSender, SendReceipt

WHATSAPP_PREFIX = "whatsapp:"


def with_whatsapp_prefix(number: str) -> str:
    return number if number.startswith(WHATSAPP_PREFIX) else f"{WHATSAPP_PREFIX}{number}"


class TwilioWhatsAppSender(HttpChannelSender):
    """Twilio Messages API sender for WhatsApp numbers."""

    provider = "twilio"
    BASE_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = with_whatsapp_prefix(from_number)
        self.url = self.BASE_URL.format(account_sid=account_sid)

    async def _send(self, to: str, body: Optional[str], media_url: Optional[str] = None) -> SendReceipt:
        data = {"From": self.from_number, "To": with_whatsapp_prefix(to)}
        if body:
            data["Body"] = body
        if media_url:
            data["MediaUrl"] = media_url
        response = await self._post(self.url, data=data, auth=(self.account_sid, self.auth_token))
        payload = self._json(response)
        return SendReceipt(provider_message_id=payload.get("sid"), raw=payload)

    async def send_text(self, to: str, text: str) -> SendReceipt:
        return await self._send(to, text)

    async def send_image(self, to: str, url: str, caption: Optional[str] = None) -> SendReceipt:
        return await self._send(to, caption, media_url=url)

    async def send_document(
        self, to: str, url: str, caption: Optional[str] = None, filename: Optional[str] = None
    ) -> SendReceipt:
        return await self._send(to, caption, media_url=url)
