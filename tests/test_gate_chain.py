from unittest.mock import Mock

from orderdesk.services.gate_chain import (
    BlockingReason,
    ChatbotGate,
    ContractGate,
    GateChain,
    IntegrationGate,
)


def _context(contract="approved", integration_enabled=True, chatbot=True, owner_type="business"):
    business = Mock(contract_status=contract, chatbot_enabled=chatbot)
    branch = Mock(chatbot_enabled=chatbot)
    integration = Mock(enabled=integration_enabled) if integration_enabled is not None else None
    context = Mock(business=business, branch=branch, integration=integration, owner_type=owner_type)
    context.owner = branch if owner_type == "branch" else business
    return context


class TestGateChain:
    def test_all_gates_pass(self):
        decision = GateChain().evaluate(_context())
        assert decision.allowed is True
        assert decision.blocking_reason == BlockingReason.NONE

    def test_contract_blocks_first(self):
        decision = GateChain().evaluate(_context(contract="pending", integration_enabled=False, chatbot=False))
        assert decision.allowed is False
        assert decision.blocking_reason == BlockingReason.CONTRACT_NOT_APPROVED

    def test_disabled_integration(self):
        decision = GateChain().evaluate(_context(integration_enabled=False))
        assert decision.blocking_reason == BlockingReason.INTEGRATION_DISABLED

    def test_missing_integration(self):
        decision = GateChain().evaluate(_context(integration_enabled=None))
        assert decision.blocking_reason == BlockingReason.INTEGRATION_DISABLED

    def test_chatbot_disabled(self):
        decision = GateChain().evaluate(_context(chatbot=False))
        assert decision.blocking_reason == BlockingReason.CHATBOT_DISABLED

    def test_chatbot_flag_read_from_branch_owner(self):
        context = _context(owner_type="branch")
        context.branch.chatbot_enabled = 0
        context.business.chatbot_enabled = True

        decision = GateChain().evaluate(context)

        assert decision.blocking_reason == BlockingReason.CHATBOT_DISABLED

    def test_later_gates_not_evaluated_after_failure(self):
        first = Mock(check=Mock(return_value=False), reason=BlockingReason.CONTRACT_NOT_APPROVED)
        second = Mock(check=Mock(return_value=True), reason=BlockingReason.INTEGRATION_DISABLED)

        decision = GateChain([first, second]).evaluate(Mock())

        assert decision.blocking_reason == BlockingReason.CONTRACT_NOT_APPROVED
        assert first.check.call_count == 1
        assert second.check.call_count == 0

    def test_default_priority_order(self):
        assert [type(g) for g in GateChain().gates] == [ContractGate, IntegrationGate, ChatbotGate]
