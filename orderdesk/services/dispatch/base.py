"""Provider-neutral outbound types and the sender capability interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx

from orderdesk.schemas.inbound import Channel


@dataclass(frozen=True)
class TextPayload:
    text: str
    kind: str = "text"


@dataclass(frozen=True)
class ImagePayload:
    url: str
    caption: Optional[str] = None
    kind: str = "image"


@dataclass(frozen=True)
class DocumentPayload:
    url: str
    caption: Optional[str] = None
    filename: Optional[str] = None
    kind: str = "document"


Payload = Union[TextPayload, ImagePayload, DocumentPayload]


@dataclass(frozen=True)
class OutboundDispatchRequest:
    channel: Channel
    to: str
    payload: Payload
    correlation_id: str


@dataclass(frozen=True)
class SendReceipt:
    provider_message_id: Optional[str] = None
    raw: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    attempts: int
    provider_message_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    status_code: Optional[int] = None

    @staticmethod
    def delivered(attempts: int, provider_message_id: Optional[str]) -> "DeliveryResult":
        return DeliveryResult(ok=True, attempts=attempts, provider_message_id=provider_message_id)

    @staticmethod
    def failed(
        attempts: int, error: str, error_code: str, status_code: Optional[int] = None
    ) -> "DeliveryResult":
        return DeliveryResult(
            ok=False, attempts=attempts, error=error, error_code=error_code, status_code=status_code
        )


class ProviderError(Exception):
    """A channel API call failed."""

    code = "provider_error"
    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class TransientProviderError(ProviderError):
    """5xx, 429 or transport failure. Retried with backoff."""

    code = "transient_provider_error"
    retryable = True


class PermanentProviderError(ProviderError):
    """4xx other than 429: the request itself was rejected."""

    code = "permanent_provider_error"
    retryable = False


def is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


def error_for_response(provider: str, response: httpx.Response) -> ProviderError:
    body = response.text[:500]
    message = f"{provider} API error: {response.status_code}"
    if is_retryable_status(response.status_code):
        return TransientProviderError(message, response.status_code, body)
    return PermanentProviderError(message, response.status_code, body)


class ChannelSender(ABC):
    """Capability interface implemented once per provider."""

    provider = "unknown"

    @abstractmethod
    async def send_text(self, to: str, text: str) -> SendReceipt:
        pass

    @abstractmethod
    async def send_image(self, to: str, url: str, caption: Optional[str] = None) -> SendReceipt:
        pass

    @abstractmethod
    async def send_document(
        self, to: str, url: str, caption: Optional[str] = None, filename: Optional[str] = None
    ) -> SendReceipt:
        pass


class HttpChannelSender(ChannelSender):
    """Shared httpx plumbing: maps transport failures and bad statuses to ProviderError."""

    def __init__(self, *, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._transport = transport

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, **kwargs)
        except httpx.TransportError as e:
            raise TransientProviderError(f"{self.provider} transport error: {e}") from e
        if response.status_code >= 400:
            raise error_for_response(self.provider, response)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
