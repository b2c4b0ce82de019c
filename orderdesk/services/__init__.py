from orderdesk.services.conversation_store import (
    CartConflictError,
    ConversationKey,
    ConversationStateStore,
    cancel_cart,
)
from orderdesk.services.pipeline import InboundPipeline, TurnOutcome, TurnStatus, get_pipeline
from orderdesk.services.result import Result
from orderdesk.services.tenant_resolver import TenantContext, TenantResolver
