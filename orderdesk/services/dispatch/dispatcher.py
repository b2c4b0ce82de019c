import asyncio
from typing import Optional

import httpx

from orderdesk.config import settings
from orderdesk.logging_config import get_logger
from orderdesk.services.credential_store import CredentialError, CredentialStore
from orderdesk.services.dispatch.base import DeliveryResult, OutboundDispatchRequest
from orderdesk.services.dispatch.factory import build_sender
from orderdesk.services.dispatch.retry import RetryingSender, RetryPolicy, Sleep
from orderdesk.services.tenant_resolver import TenantContext

logger = get_logger("dispatcher")


class Dispatcher:
    """Sends one outbound unit for a tenant, with retries, and reports the outcome."""

    def __init__(
        self,
        store: Optional[CredentialStore] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store or CredentialStore()
        self.policy = policy or RetryPolicy(
            max_retries=settings.dispatch_max_retries,
            base_delay_seconds=settings.dispatch_base_delay_seconds,
        )
        self._sleep = sleep
        self._transport = transport

    async def send(self, context: TenantContext, request: OutboundDispatchRequest) -> DeliveryResult:
        try:
            sender = build_sender(context, request.channel, self.store, self._transport)
        except CredentialError as e:
            logger.error(
                f"Cannot dispatch: {e}",
                extra={
                    "context": {
                        "business_id": str(context.business_id),
                        "channel": request.channel.value,
                        "correlation_id": request.correlation_id,
                    }
                },
            )
            return DeliveryResult.failed(0, str(e), CredentialError.code)

        return await RetryingSender(sender, self.policy, self._sleep).send(request)
