from orderdesk.schemas.inbound import CanonicalInboundMessage, Channel, MessageBody
from orderdesk.schemas.webhook import WebhookResponse

__all__ = ["CanonicalInboundMessage", "Channel", "MessageBody", "WebhookResponse"]
