"""
Base Handler

Abstract base class for platform-specific webhook handlers.
Provides a common interface for turning verified deliveries into
InboundMessages.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional


@dataclass(frozen=True)
class InboundMessage:
    """
    A decrypted message, derived once per delivery.

    raw_envelope is the decoded inner envelope, kept for diagnostics only.
    """
    id: str
    sender_id: str
    text_content: str
    message_type: str
    timestamp_seconds: int
    room_id: Optional[str] = None
    source: str = "wecom"
    raw_envelope: Dict[str, List[str]] = field(default_factory=dict, repr=False, compare=False)

    @property
    def datetime(self) -> datetime:
        """Message time as an aware UTC datetime"""
        return datetime.fromtimestamp(self.timestamp_seconds, tz=timezone.utc)

    @property
    def is_text(self) -> bool:
        return self.message_type == "text"

    @property
    def is_valid(self) -> bool:
        """Check if message has text worth classifying"""
        return bool(self.text_content and self.text_content.strip())


def current_millis_id() -> str:
    """Fallback message id when the platform omits one"""
    return str(int(time.time() * 1000))


class BaseHandler(ABC):
    """
    Abstract base class for platform handlers.

    Each handler must implement:
    - verify_url: Answer the endpoint-ownership handshake
    - parse_delivery: Verify, decrypt and parse a message delivery
    """

    def __init__(self, source_name: str):
        """
        Initialize handler.

        Args:
            source_name: Name of the platform (e.g., "wecom")
        """
        self.source_name = source_name

    @abstractmethod
    def verify_url(self, signature: str, timestamp: str, nonce: str, echostr: str) -> str:
        """
        Answer a handshake.

        Returns:
            The plaintext challenge to echo back
        """
        pass

    @abstractmethod
    def parse_delivery(
        self,
        body: str,
        signature: str,
        timestamp: str,
        nonce: str,
    ) -> InboundMessage:
        """
        Verify and decode a message delivery.

        Returns:
            The decrypted InboundMessage
        """
        pass

    def should_process(self, message: InboundMessage) -> bool:
        """
        Check if message should be classified.

        Only plain-text messages with non-blank content are processed.
        Override in subclass for platform-specific filtering.
        """
        return message.is_text and message.is_valid
