import logging
from unittest.mock import AsyncMock, Mock

import pytest

from orderdesk.schemas.inbound import Channel
from orderdesk.services.credential_store import CredentialStore
from orderdesk.services.dispatch import (
    ChannelSender,
    Dispatcher,
    OutboundDispatchRequest,
    PermanentProviderError,
    RetryingSender,
    RetryPolicy,
    SendReceipt,
    TextPayload,
    TransientProviderError,
)
from orderdesk.services.dispatch.base import ImagePayload
from orderdesk.services.tenant_resolver import ChannelIntegration


class ScriptedSender(ChannelSender):
    """Plays back a list of outcomes: an exception to raise or a receipt to return."""

    provider = "scripted"

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def _next(self, method, *args):
        self.calls.append((method, args))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def send_text(self, to, text):
        return await self._next("text", to, text)

    async def send_image(self, to, url, caption=None):
        return await self._next("image", to, url, caption)

    async def send_document(self, to, url, caption=None, filename=None):
        return await self._next("document", to, url, caption, filename)


def _request(payload=None):
    return OutboundDispatchRequest(
        channel=Channel.WHATSAPP_META,
        to="+15550001",
        payload=payload or TextPayload("hello"),
        correlation_id="whatsapp_meta:wamid.1",
    )


def transient(status=503):
    return TransientProviderError(f"status {status}", status)


class TestRetryPolicy:
    def test_exponential_delays(self):
        policy = RetryPolicy(max_retries=3, base_delay_seconds=1.0)
        assert [policy.delay(n) for n in range(3)] == [1.0, 2.0, 4.0]


class TestRetryingSender:
    @pytest.mark.asyncio
    async def test_retries_transient_errors_then_succeeds(self, caplog):
        sender = ScriptedSender([transient(503), transient(503), SendReceipt("wamid.out")])
        sleep = AsyncMock()
        caplog.set_level(logging.INFO, logger="orderdesk.dispatch.retry")

        result = await RetryingSender(sender, RetryPolicy(3, 1.0), sleep).send(_request())

        assert result.ok is True
        assert result.attempts == 3
        assert result.provider_message_id == "wamid.out"
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

        attempts = [r for r in caplog.records if r.getMessage() == "Dispatch attempt"]
        assert [(r.context["attempt"], r.context["status"]) for r in attempts] == [
            (1, "failed"),
            (2, "failed"),
            (3, "sent"),
        ]

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        sender = ScriptedSender([PermanentProviderError("bad request", 400)])
        sleep = AsyncMock()

        result = await RetryingSender(sender, RetryPolicy(3, 1.0), sleep).send(_request())

        assert result.ok is False
        assert result.attempts == 1
        assert result.status_code == 400
        assert result.error_code == "permanent_provider_error"
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        sender = ScriptedSender([transient(429), SendReceipt("id")])
        result = await RetryingSender(sender, RetryPolicy(3, 1.0), AsyncMock()).send(_request())
        assert result.ok
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, caplog):
        sender = ScriptedSender([transient(), transient(), transient(), transient(), SendReceipt("never")])
        sleep = AsyncMock()

        result = await RetryingSender(sender, RetryPolicy(3, 1.0), sleep).send(_request())

        assert result.ok is False
        assert result.attempts == 4
        assert result.error_code == "retries_exhausted"
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]
        assert len(sender.calls) == 4
        assert any(r.getMessage() == "Dispatch failed after all retries" for r in caplog.records)

    @pytest.mark.asyncio
    async def test_payload_kind_selects_capability(self):
        sender = ScriptedSender([SendReceipt("img")])
        await RetryingSender(sender, RetryPolicy(), AsyncMock()).send(
            _request(ImagePayload("https://cdn.example/p.jpg", "Menu"))
        )
        assert sender.calls == [("image", ("+15550001", "https://cdn.example/p.jpg", "Menu"))]


class TestDispatcher:
    @pytest.mark.asyncio
    async def test_credential_error_is_terminal(self, caplog):
        context = Mock(
            business_id="biz",
            integration=ChannelIntegration(
                platform="whatsapp", external_id="1000", enabled=True, access_token_encrypted="corrupted=="
            ),
        )
        sleep = AsyncMock()
        dispatcher = Dispatcher(CredentialStore("a" * 64), RetryPolicy(3, 1.0), sleep)

        result = await dispatcher.send(context, _request())

        assert result.ok is False
        assert result.attempts == 0
        assert result.error_code == "credential_error"
        sleep.assert_not_awaited()
        assert any(r.levelno == logging.ERROR for r in caplog.records)

    @pytest.mark.asyncio
    async def test_missing_integration_is_credential_error(self):
        context = Mock(business_id="biz", integration=None)
        result = await Dispatcher(CredentialStore("a" * 64)).send(context, _request())
        assert result.error_code == "credential_error"
