"""
Tests for WeCom Handler

Tests the handshake and delivery state machine: parameter checks,
signature verification before decryption, and inner envelope parsing.
"""

import base64
from unittest.mock import patch

import pytest


TOKEN = "test-token"
CORP_ID = "ww-test-corp"
AES_KEY = base64.b64encode(b"k" * 32).decode("ascii").rstrip("=")

TIMESTAMP = "1700000000"
NONCE = "n0nce"


@pytest.fixture
def crypto():
    from worklog.intake.crypto import WeComCrypto

    return WeComCrypto(token=TOKEN, encoding_aes_key=AES_KEY, corp_id=CORP_ID)


@pytest.fixture
def handler(crypto):
    from worklog.intake.handlers import WeComHandler

    return WeComHandler(crypto)


def _delivery(crypto, inner_fields):
    """Encrypted outer envelope and its signature"""
    from worklog.intake import envelope

    encrypted = crypto.encrypt(envelope.encode(inner_fields))
    body = envelope.encode({"ToUserName": CORP_ID, "AgentID": "1000002", "Encrypt": encrypted})
    return body, crypto.generate_signature(TIMESTAMP, NONCE, encrypted)


class TestVerifyUrl:
    """Tests for the handshake"""

    def test_echoes_decrypted_challenge(self, handler, crypto):
        echostr = crypto.encrypt("challenge-123")
        signature = crypto.generate_signature(TIMESTAMP, NONCE, echostr)

        assert handler.verify_url(signature, TIMESTAMP, NONCE, echostr) == "challenge-123"

    def test_bad_signature_never_decrypts(self, handler, crypto):
        from worklog.common.errors import AuthenticationFault

        echostr = crypto.encrypt("challenge-123")

        with patch.object(crypto, "decrypt") as mock_decrypt:
            with pytest.raises(AuthenticationFault):
                handler.verify_url("0" * 40, TIMESTAMP, NONCE, echostr)

        mock_decrypt.assert_not_called()

    @pytest.mark.parametrize("missing", ["signature", "timestamp", "nonce", "echostr"])
    def test_missing_parameter(self, handler, missing):
        from worklog.common.errors import MalformedDeliveryFault

        params = {"signature": "sig", "timestamp": TIMESTAMP, "nonce": NONCE, "echostr": "abc"}
        params[missing] = None

        with pytest.raises(MalformedDeliveryFault) as exc_info:
            handler.verify_url(**params)

        assert exc_info.value.status_code == 400

    def test_undecryptable_echostr(self, handler, crypto):
        from worklog.common.errors import IntegrityFault

        echostr = base64.b64encode(b"x" * 48).decode()
        signature = crypto.generate_signature(TIMESTAMP, NONCE, echostr)

        with pytest.raises(IntegrityFault):
            handler.verify_url(signature, TIMESTAMP, NONCE, echostr)


class TestParseDelivery:
    """Tests for message deliveries"""

    def test_text_message(self, handler, crypto):
        body, signature = _delivery(crypto, {
            "ToUserName": CORP_ID,
            "FromUserName": "zhangsan",
            "CreateTime": "1348831860",
            "MsgType": "text",
            "Content": "紧急bug：登录失败，@张三 请今天修复",
            "MsgId": "1234567890123456",
            "AgentID": "1000002",
        })

        message = handler.parse_delivery(body, signature, TIMESTAMP, NONCE)

        assert message.id == "1234567890123456"
        assert message.sender_id == "zhangsan"
        assert message.text_content == "紧急bug：登录失败，@张三 请今天修复"
        assert message.message_type == "text"
        assert message.timestamp_seconds == 1348831860
        assert message.room_id is None
        assert message.source == "wecom"
        assert message.datetime.year == 2012
        assert handler.should_process(message)

    def test_room_id_from_chat_id(self, handler, crypto):
        body, signature = _delivery(crypto, {"Content": "hi", "ChatId": "chat-9", "MsgId": "1"})

        assert handler.parse_delivery(body, signature, TIMESTAMP, NONCE).room_id == "chat-9"

    def test_fallbacks_for_missing_fields(self, handler, crypto):
        body, signature = _delivery(crypto, {"Content": "hello"})

        with patch("worklog.intake.handlers.wecom.time.time", return_value=1700000123.5), \
             patch("worklog.intake.handlers.base.time.time", return_value=1700000123.5):
            message = handler.parse_delivery(body, signature, TIMESTAMP, NONCE)

        assert message.id == "1700000123500"
        assert message.message_type == "text"
        assert message.timestamp_seconds == 1700000123
        assert message.sender_id == ""

    def test_non_text_message_is_not_processed(self, handler, crypto):
        body, signature = _delivery(crypto, {"MsgType": "image", "MsgId": "5", "PicUrl": "http://x"})

        message = handler.parse_delivery(body, signature, TIMESTAMP, NONCE)

        assert message.message_type == "image"
        assert not handler.should_process(message)

    def test_blank_text_is_not_processed(self, handler, crypto):
        body, signature = _delivery(crypto, {"MsgType": "text", "Content": "   ", "MsgId": "6"})

        assert not handler.should_process(handler.parse_delivery(body, signature, TIMESTAMP, NONCE))

    def test_missing_encrypt_never_touches_cipher(self, handler, crypto):
        from worklog.common.errors import MalformedDeliveryFault

        body = "<xml><ToUserName><![CDATA[ww]]></ToUserName></xml>"

        with patch.object(crypto, "verify_signature") as mock_verify, \
             patch.object(crypto, "decrypt") as mock_decrypt:
            with pytest.raises(MalformedDeliveryFault) as exc_info:
                handler.parse_delivery(body, "sig", TIMESTAMP, NONCE)

        assert exc_info.value.public_message == "missing Encrypt field"
        mock_verify.assert_not_called()
        mock_decrypt.assert_not_called()

    def test_bad_signature_never_decrypts(self, handler, crypto):
        from worklog.common.errors import AuthenticationFault

        body, _ = _delivery(crypto, {"Content": "hello", "MsgId": "1"})

        with patch.object(crypto, "decrypt") as mock_decrypt:
            with pytest.raises(AuthenticationFault):
                handler.parse_delivery(body, "f" * 40, TIMESTAMP, NONCE)

        mock_decrypt.assert_not_called()

    def test_missing_query_parameter(self, handler, crypto):
        from worklog.common.errors import MalformedDeliveryFault

        body, signature = _delivery(crypto, {"Content": "hello"})

        with pytest.raises(MalformedDeliveryFault) as exc_info:
            handler.parse_delivery(body, signature, TIMESTAMP, None)

        assert exc_info.value.public_message == "missing parameters: nonce"

    def test_payload_for_other_corp(self, handler):
        from worklog.intake.crypto import WeComCrypto
        from worklog.common.errors import IntegrityFault

        other = WeComCrypto(token=TOKEN, encoding_aes_key=AES_KEY, corp_id="ww-other")
        body, signature = _delivery(other, {"Content": "hello"})

        with pytest.raises(IntegrityFault):
            handler.parse_delivery(body, signature, TIMESTAMP, NONCE)
