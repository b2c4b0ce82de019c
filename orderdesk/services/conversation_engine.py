"""Interface to the opaque component that decides what to reply."""

import importlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from orderdesk.logging_config import get_logger
from orderdesk.schemas.inbound import CanonicalInboundMessage
from orderdesk.services.conversation_store import CartMutation, CartState, ConversationKey
from orderdesk.services.tenant_resolver import TenantContext

logger = get_logger("conversation_engine")


@dataclass(frozen=True)
class MediaItem:
    url: str
    caption: Optional[str] = None
    kind: str = "image"  # image, document
    filename: Optional[str] = None


@dataclass(frozen=True)
class OrderCreated:
    order_id: str


@dataclass
class TurnResult:
    reply_text: Optional[str] = None
    media: List[MediaItem] = field(default_factory=list)
    cart_mutations: List[CartMutation] = field(default_factory=list)
    order_created: Optional[OrderCreated] = None
    tokens_in: Optional[int] = None
    tokens_out: Optional[int] = None

    @property
    def llm_used(self) -> bool:
        return self.tokens_in is not None or self.tokens_out is not None

    @property
    def has_output(self) -> bool:
        return bool(self.reply_text or self.media or self.order_created)


class ConversationEngine(ABC):
    """Abstract base class for conversation engines."""

    @abstractmethod
    async def handle_turn(
        self,
        context: TenantContext,
        key: ConversationKey,
        message: CanonicalInboundMessage,
        cart: CartState,
    ) -> TurnResult:
        """Produce the reply and cart changes for one customer message."""
        pass


class NullConversationEngine(ConversationEngine):
    """Never replies. Used until a real engine is configured."""

    async def handle_turn(self, context, key, message, cart) -> TurnResult:
        return TurnResult()


def load_engine(path: str) -> ConversationEngine:
    """Load "package.module:attribute". A class or factory is called with no arguments."""
    if not path:
        logger.warning("No conversation engine configured, automated replies are disabled")
        return NullConversationEngine()

    module_name, _, attribute = path.partition(":")
    if not attribute:
        module_name, _, attribute = path.rpartition(".")
    module = importlib.import_module(module_name)
    target = getattr(module, attribute)
    engine = target if isinstance(target, ConversationEngine) else target()
    if not isinstance(engine, ConversationEngine):
        raise TypeError(f"{path} did not produce a ConversationEngine")
    logger.info(f"Conversation engine loaded: {path}")
    return engine
