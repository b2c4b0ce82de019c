"""One retry loop for every provider."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from orderdesk.logging_config import get_logger
from orderdesk.services.dispatch.base import (
    ChannelSender,
    DeliveryResult,
    OutboundDispatchRequest,
    ProviderError,
    SendReceipt,
)

logger = get_logger("dispatch.retry")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay_seconds: float = 1.0

    def delay(self, attempt: int) -> float:
        """Backoff before retry number attempt + 1 (attempt is zero-based)."""
        return self.base_delay_seconds * (2**attempt)


class RetryingSender:
    def __init__(self, sender: ChannelSender, policy: RetryPolicy = RetryPolicy(), sleep: Sleep = asyncio.sleep):
        self.sender = sender
        self.policy = policy
        self._sleep = sleep

    async def _call(self, request: OutboundDispatchRequest) -> SendReceipt:
        payload = request.payload
        if payload.kind == "text":
            return await self.sender.send_text(request.to, payload.text)
        if payload.kind == "image":
            return await self.sender.send_image(request.to, payload.url, payload.caption)
        if payload.kind == "document":
            return await self.sender.send_document(request.to, payload.url, payload.caption, payload.filename)
        raise ValueError(f"Unsupported payload kind: {payload.kind}")

    def _log_attempt(self, request: OutboundDispatchRequest, attempt: int, status: str, **extra) -> None:
        context = {
            "provider": self.sender.provider,
            "channel": request.channel.value,
            "kind": request.payload.kind,
            "correlation_id": request.correlation_id,
            "attempt": attempt,
            "max_attempts": self.policy.max_retries + 1,
            "status": status,
            **extra,
        }
        level = "info" if status == "sent" else "warning"
        getattr(logger, level)("Dispatch attempt", extra={"context": context})

    async def send(self, request: OutboundDispatchRequest) -> DeliveryResult:
        last_error: ProviderError | None = None

        for attempt in range(self.policy.max_retries + 1):
            number = attempt + 1
            try:
                receipt = await self._call(request)
            except ProviderError as e:
                last_error = e
                self._log_attempt(
                    request, number, "failed", status_code=e.status_code, retryable=e.retryable, error=str(e)
                )
                if not e.retryable:
                    return DeliveryResult.failed(number, str(e), e.code, e.status_code)
                if attempt < self.policy.max_retries:
                    await self._sleep(self.policy.delay(attempt))
                continue

            self._log_attempt(request, number, "sent", provider_message_id=receipt.provider_message_id)
            return DeliveryResult.delivered(number, receipt.provider_message_id)

        logger.error(
            "Dispatch failed after all retries",
            extra={
                "context": {
                    "provider": self.sender.provider,
                    "correlation_id": request.correlation_id,
                    "attempts": self.policy.max_retries + 1,
                    "error": str(last_error),
                }
            },
        )
        return DeliveryResult.failed(
            self.policy.max_retries + 1,
            str(last_error),
            "retries_exhausted",
            last_error.status_code if last_error else None,
        )
