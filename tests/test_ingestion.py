import hashlib
import hmac

from orderdesk.schemas.inbound import Channel
from orderdesk.services.ingestion import (
    parse_messenger,
    parse_meta_whatsapp,
    parse_telegram,
    parse_twilio,
    verify_signature,
)


def meta_payload(*messages, phone_number_id="1000"):
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "waba",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"phone_number_id": phone_number_id, "display_phone_number": "1555"},
                            "messages": list(messages),
                        },
                    }
                ],
            }
        ],
    }


class TestVerifySignature:
    def test_valid_signature(self):
        body = b'{"a":1}'
        digest = hmac.new(b"secret", body, hashlib.sha256).hexdigest()
        assert verify_signature(body, f"sha256={digest}", "secret") is True

    def test_invalid_signature(self):
        assert verify_signature(b"{}", "sha256=deadbeef", "secret") is False

    def test_missing_header(self):
        assert verify_signature(b"{}", None, "secret") is False

    def test_no_secret_configured(self):
        assert verify_signature(b"{}", None, "") is True


class TestMetaWhatsApp:
    def test_text_message(self):
        messages = parse_meta_whatsapp(
            meta_payload({"from": "15550001", "id": "wamid.1", "timestamp": "1714564800", "type": "text", "text": {"body": "hi"}})
        )

        assert len(messages) == 1
        message = messages[0]
        assert message.channel == Channel.WHATSAPP_META
        assert message.sender_channel_id == "15550001"
        assert message.business_channel_id == "1000"
        assert message.body.text == "hi"
        assert message.correlation_id == "whatsapp_meta:wamid.1"
        assert message.received_at.year == 2024

    def test_image_caption_becomes_text(self):
        messages = parse_meta_whatsapp(
            meta_payload(
                {"from": "1", "id": "wamid.2", "type": "image", "image": {"id": "media-1", "mime_type": "image/jpeg", "caption": "this one"}}
            )
        )
        assert messages[0].body.message_type == "image"
        assert messages[0].body.media_id == "media-1"
        assert messages[0].body.text == "this one"

    def test_status_callback_yields_nothing(self):
        payload = meta_payload()
        payload["entry"][0]["changes"][0]["value"]["statuses"] = [{"id": "wamid.1", "status": "delivered"}]
        assert parse_meta_whatsapp(payload) == []


class TestTwilio:
    def test_prefix_stripped(self):
        message = parse_twilio(
            {"From": "whatsapp:+15550001", "To": "whatsapp:+14155238886", "Body": "hi", "MessageSid": "SM1", "AccountSid": "AC1"}
        )
        assert message.channel == Channel.WHATSAPP_TWILIO
        assert message.sender_channel_id == "+15550001"
        assert message.business_channel_id == "+14155238886"
        assert message.provider_message_id == "SM1"

    def test_media(self):
        message = parse_twilio(
            {
                "From": "whatsapp:+1",
                "To": "whatsapp:+2",
                "MessageSid": "SM2",
                "NumMedia": "1",
                "MediaUrl0": "https://api.twilio.com/media/1",
                "MediaContentType0": "image/jpeg",
            }
        )
        assert message.body.message_type == "image"
        assert message.body.media_url == "https://api.twilio.com/media/1"

    def test_missing_fields(self):
        assert parse_twilio({"Body": "hi"}) is None


class TestTelegram:
    def _update(self, chat_type="private", edited=False, **message):
        body = {
            "message_id": 7,
            "date": 1714564800,
            "chat": {"id": 12345, "type": chat_type},
            "from": {"id": 12345, "is_bot": False, "first_name": "Ann"},
            "text": "hi",
            **message,
        }
        return {"update_id": 1, ("edited_message" if edited else "message"): body}

    def test_private_chat(self):
        message = parse_telegram(self._update(), "bot-key")
        assert message.channel == Channel.TELEGRAM
        assert message.sender_channel_id == "telegram:12345"
        assert message.business_channel_id == "bot-key"
        assert message.provider_message_id == "12345:7"

    def test_group_chat_ignored(self):
        assert parse_telegram(self._update(chat_type="group"), "bot-key") is None

    def test_edited_message_ignored(self):
        assert parse_telegram(self._update(edited=True), "bot-key") is None

    def test_photo_uses_largest_size(self):
        photo = [
            {"file_id": "small", "file_unique_id": "s", "width": 90, "height": 90},
            {"file_id": "large", "file_unique_id": "l", "width": 800, "height": 800},
        ]
        message = parse_telegram(self._update(photo=photo, text=None, caption="look"), "bot-key")
        assert message.body.media_id == "large"
        assert message.body.text == "look"


class TestMessenger:
    def test_text_and_echo(self):
        payload = {
            "object": "page",
            "entry": [
                {
                    "id": "page-1",
                    "messaging": [
                        {"sender": {"id": "psid-1"}, "recipient": {"id": "page-1"}, "timestamp": 1714564800000, "message": {"mid": "m1", "text": "hi"}},
                        {"sender": {"id": "page-1"}, "recipient": {"id": "psid-1"}, "message": {"mid": "m2", "text": "echo", "is_echo": True}},
                    ],
                }
            ],
        }

        messages = parse_messenger(payload)

        assert len(messages) == 1
        assert messages[0].channel == Channel.FACEBOOK
        assert messages[0].sender_channel_id == "psid-1"
        assert messages[0].business_channel_id == "page-1"
        assert messages[0].received_at.year == 2024
