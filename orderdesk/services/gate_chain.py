"""Business-level preconditions checked before any automated reply."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from orderdesk.services.tenant_resolver import TenantContext


class BlockingReason(str, Enum):
    NONE = "none"
    CONTRACT_NOT_APPROVED = "contract_not_approved"
    INTEGRATION_DISABLED = "integration_disabled"
    CHATBOT_DISABLED = "chatbot_disabled"


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    blocking_reason: BlockingReason = BlockingReason.NONE

    @classmethod
    def allow(cls) -> "GateDecision":
        return cls(allowed=True)

    @classmethod
    def block(cls, reason: BlockingReason) -> "GateDecision":
        return cls(allowed=False, blocking_reason=reason)


class ContractGate:
    """Platform kill switch; checked before any integration state."""

    reason = BlockingReason.CONTRACT_NOT_APPROVED

    def check(self, context: TenantContext) -> bool:
        return context.business.contract_status == "approved"


class IntegrationGate:
    reason = BlockingReason.INTEGRATION_DISABLED

    def check(self, context: TenantContext) -> bool:
        return context.integration is not None and bool(context.integration.enabled)


class ChatbotGate:
    reason = BlockingReason.CHATBOT_DISABLED

    def check(self, context: TenantContext) -> bool:
        # Stored as tinyint on some deployments
        return bool(context.owner.chatbot_enabled)


DEFAULT_GATES = (ContractGate(), IntegrationGate(), ChatbotGate())


class GateChain:
    def __init__(self, gates: Optional[Sequence] = None):
        self.gates = list(gates) if gates is not None else list(DEFAULT_GATES)

    def evaluate(self, context: TenantContext) -> GateDecision:
        """Evaluate gates in priority order, stopping at the first failure."""
        for gate in self.gates:
            if not gate.check(context):
                return GateDecision.block(gate.reason)
        return GateDecision.allow()
