from orderdesk.services.dispatch.base import (
    ChannelSender,
    DeliveryResult,
    DocumentPayload,
    ImagePayload,
    OutboundDispatchRequest,
    PermanentProviderError,
    ProviderError,
    SendReceipt,
    TextPayload,
    TransientProviderError,
)
from orderdesk.services.dispatch.dispatcher import Dispatcher
from orderdesk.services.dispatch.factory import build_sender
from orderdesk.services.dispatch.retry import RetryingSender, RetryPolicy

__all__ = [
    "ChannelSender",
    "DeliveryResult",
    "Dispatcher",
    "DocumentPayload",
    "ImagePayload",
    "OutboundDispatchRequest",
    "PermanentProviderError",
    "ProviderError",
    "RetryPolicy",
    "RetryingSender",
    "SendReceipt",
    "TextPayload",
    "TransientProviderError",
    "build_sender",
]
