"""
WeCom Handler

Handles WeCom (企业微信) callback requests.

Handshake (GET): the platform proves it holds the token by signing an
encrypted echostr; the handler verifies the signature and answers with the
decrypted echostr.

Delivery (POST): the body is an envelope whose Encrypt field holds the
encrypted inner envelope. msg_signature, timestamp and nonce arrive as query
parameters. Checks run cheapest first, so a request missing its parameters
or its Encrypt field never reaches the cipher.
"""

import logging
import time
from typing import Dict, List, Optional

from ...common.errors import AuthenticationFault, MalformedDeliveryFault
from .. import envelope
from ..crypto import WeComCrypto
from .base import BaseHandler, InboundMessage, current_millis_id

logger = logging.getLogger("worklog.intake.wecom")

ACKNOWLEDGMENT = "success"


def _require_params(**params: Optional[str]) -> None:
    missing = [name for name, value in params.items() if not value]
    if missing:
        raise MalformedDeliveryFault(
            f"missing query parameters: {missing}",
            public_message=f"missing parameters: {', '.join(missing)}",
        )


class WeComHandler(BaseHandler):
    """
    Handler for WeCom application callbacks.

    Processes:
    - text messages (classified into work-log records)

    Ignores (acknowledged but not classified):
    - image, voice, video, file, location and event messages
    """

    def __init__(self, crypto: WeComCrypto):
        """
        Initialize WeCom handler.

        Args:
            crypto: Channel cipher built from the configured credentials
        """
        super().__init__("wecom")
        self._crypto = crypto

    @property
    def crypto(self) -> WeComCrypto:
        return self._crypto

    def verify_url(self, signature: str, timestamp: str, nonce: str, echostr: str) -> str:
        """
        Verify a callback URL handshake.

        Raises:
            MalformedDeliveryFault: If a parameter is missing
            AuthenticationFault: If the signature does not match (the echostr
                is not decrypted in that case)
            IntegrityFault: If the echostr cannot be decrypted
        """
        _require_params(
            msg_signature=signature, timestamp=timestamp, nonce=nonce, echostr=echostr,
        )

        if not self._crypto.verify_signature(signature, timestamp, nonce, echostr):
            logger.warning("Handshake signature mismatch (timestamp=%s, nonce=%s)", timestamp, nonce)
            raise AuthenticationFault("handshake signature mismatch")

        return self._crypto.decrypt(echostr)

    def parse_delivery(
        self,
        body: str,
        signature: str,
        timestamp: str,
        nonce: str,
    ) -> InboundMessage:
        """
        Verify, decrypt and parse a message delivery.

        Args:
            body: Raw request body (outer envelope)
            signature: msg_signature query parameter
            timestamp: timestamp query parameter
            nonce: nonce query parameter

        Returns:
            InboundMessage

        Raises:
            MalformedDeliveryFault: Missing parameter or Encrypt field
            AuthenticationFault: Signature mismatch
            IntegrityFault: Decryption failure
        """
        _require_params(msg_signature=signature, timestamp=timestamp, nonce=nonce)

        outer = envelope.decode(body)
        encrypted = envelope.first(outer, "Encrypt")
        if not encrypted:
            raise MalformedDeliveryFault(
                f"delivery body has no Encrypt field (tags: {sorted(outer)})",
                public_message="missing Encrypt field",
            )

        if not self._crypto.verify_signature(signature, timestamp, nonce, encrypted):
            logger.warning("Delivery signature mismatch (timestamp=%s, nonce=%s)", timestamp, nonce)
            raise AuthenticationFault("delivery signature mismatch")

        inner = envelope.decode(self._crypto.decrypt(encrypted))
        return self._parse_message(inner)

    def _parse_message(self, inner: Dict[str, List[str]]) -> InboundMessage:
        """Build an InboundMessage from a decrypted inner envelope"""
        create_time = envelope.first(inner, "CreateTime")
        try:
            timestamp_seconds = int(create_time) if create_time else int(time.time())
        except ValueError:
            logger.warning("Ignoring non-numeric CreateTime %r", create_time)
            timestamp_seconds = int(time.time())

        return InboundMessage(
            id=envelope.first(inner, "MsgId") or current_millis_id(),
            sender_id=envelope.first(inner, "FromUserName") or "",
            room_id=envelope.first(inner, "RoomId") or envelope.first(inner, "ChatId"),
            text_content=envelope.first(inner, "Content") or "",
            message_type=envelope.first(inner, "MsgType") or "text",
            timestamp_seconds=timestamp_seconds,
            source=self.source_name,
            raw_envelope=inner,
        )
