import uuid
from unittest.mock import Mock

from orderdesk.models import MessageLog
from orderdesk.services.audit_logger import AuditLogger, AuditOutcome, InboundLogged, OutboundLogged


def _inbound(correlation_id="whatsapp_meta:wamid.1", business_id=None):
    return InboundLogged(
        business_id=business_id or uuid.uuid4(),
        branch_id=None,
        customer_channel_id="+15550001",
        channel="whatsapp_meta",
        message_type="text",
        text="hi",
        provider_message_id="wamid.1",
        correlation_id=correlation_id,
    )


class TestAuditLogger:
    def test_records_inbound(self, session_factory, db_session):
        outcome = AuditLogger(session_factory).record(_inbound())

        assert outcome == AuditOutcome.RECORDED
        row = db_session.query(MessageLog).one()
        assert row.direction == "inbound"
        assert row.dedup_key == "in:whatsapp_meta:wamid.1"

    def test_same_provider_message_is_recorded_once(self, session_factory, db_session):
        audit = AuditLogger(session_factory)
        business_id = uuid.uuid4()

        assert audit.record(_inbound(business_id=business_id)) == AuditOutcome.RECORDED
        assert audit.record(_inbound(business_id=business_id)) == AuditOutcome.DUPLICATE
        assert db_session.query(MessageLog).count() == 1

    def test_each_outbound_unit_is_its_own_record(self, session_factory, db_session):
        audit = AuditLogger(session_factory)
        common = dict(
            business_id=uuid.uuid4(),
            branch_id=None,
            customer_channel_id="+15550001",
            channel="whatsapp_meta",
            correlation_id="whatsapp_meta:wamid.1",
            delivery_status="sent",
        )
        audit.record(OutboundLogged(message_type="image", text=None, sequence=1, media_url="u", **common))
        audit.record(OutboundLogged(message_type="text", text="hi", sequence=2, tokens_in=10, tokens_out=5, **common))

        rows = db_session.query(MessageLog).order_by(MessageLog.dedup_key).all()
        assert [r.direction for r in rows] == ["outbound", "outbound"]
        assert {r.message_type for r in rows} == {"image", "text"}
        text_row = next(r for r in rows if r.message_type == "text")
        assert (text_row.tokens_in, text_row.tokens_out) == (10, 5)

    def test_failures_are_swallowed(self, caplog):
        session = Mock()
        session.commit.side_effect = RuntimeError("db down")

        outcome = AuditLogger(lambda: session).record(_inbound())

        assert outcome == AuditOutcome.FAILED
        session.close.assert_called_once()
        assert any("Failed to write audit record" in r.getMessage() for r in caplog.records)

    def test_session_factory_failure_is_swallowed(self):
        def broken():
            raise RuntimeError("no connection")

        assert AuditLogger(broken).record(_inbound()) == AuditOutcome.FAILED
