"""
Intake - WeCom Message to Work Log

Receives WeCom application callbacks, verifies and decrypts them, and turns
chat messages into structured work-log records.

Key Components:
- WeComCrypto: Signature verification and channel encryption
- envelope: Flat tag/value envelope codec
- WeComHandler: Handshake and delivery handling
- classify: Rule-based work-log classification
- RecordBuilder: Creates work-log records from classification results
- RecordStore: Upsert-by-identity record persistence
"""

from .classifier import classify
from .crypto import WeComCrypto
from .handlers import WeComHandler, InboundMessage
from .record_builder import RecordBuilder
from .record_store import RecordStore

__all__ = [
    "classify",
    "WeComCrypto",
    "WeComHandler",
    "InboundMessage",
    "RecordBuilder",
    "RecordStore",
]
