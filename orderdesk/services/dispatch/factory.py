"""Builds the provider sender for a tenant's reply channel."""

from typing import Optional

import httpx

from orderdesk.config import settings
from orderdesk.schemas.inbound import Channel
from orderdesk.services.credential_store import CredentialError, CredentialStore
from orderdesk.services.dispatch.base import ChannelSender
from orderdesk.services.dispatch.facebook import FacebookSender
from orderdesk.services.dispatch.meta_whatsapp import MetaWhatsAppSender
from orderdesk.services.dispatch.telegram import TelegramSender
from orderdesk.services.dispatch.twilio_whatsapp import TwilioWhatsAppSender
from orderdesk.services.tenant_resolver import TenantContext


def whatsapp_provider_for(context: TenantContext, channel: Channel) -> str:
    integration = context.integration
    if integration is not None and integration.provider:
        return integration.provider
    if channel == Channel.WHATSAPP_TWILIO:
        return "twilio"
    return settings.whatsapp_provider


def build_sender(
    context: TenantContext,
    channel: Channel,
    store: CredentialStore,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ChannelSender:
    """Raises CredentialError when the owner has no usable credential."""
    integration = context.integration
    if integration is None:
        raise CredentialError(f"No {channel.platform} integration for business {context.business_id}")

    timeout = settings.dispatch_timeout_seconds

    if channel.platform == "whatsapp":
        provider = whatsapp_provider_for(context, channel)
        if provider == "twilio":
            config = integration.config or {}
            account_sid = config.get("account_sid") or settings.twilio_account_sid
            if integration.access_token_encrypted:
                auth_token = store.reveal(integration.access_token_encrypted)
            else:
                auth_token = settings.twilio_auth_token
            if not account_sid or not auth_token:
                raise CredentialError("Twilio account is not configured")
            from_number = config.get("from_number") or integration.external_id or settings.twilio_whatsapp_number
            return TwilioWhatsAppSender(account_sid, auth_token, from_number, timeout=timeout, transport=transport)
        return MetaWhatsAppSender(
            store.reveal(integration.access_token_encrypted),
            integration.external_id,
            settings.whatsapp_api_version,
            timeout=timeout,
            transport=transport,
        )

    if channel == Channel.TELEGRAM:
        return TelegramSender(
            store.reveal(integration.access_token_encrypted),
            settings.telegram_api_base,
            timeout=timeout,
            transport=transport,
        )

    if channel == Channel.FACEBOOK:
        return FacebookSender(
            store.reveal(integration.access_token_encrypted),
            settings.facebook_graph_version,
            timeout=timeout,
            transport=transport,
        )

    raise ValueError(f"Unsupported channel: {channel}")
