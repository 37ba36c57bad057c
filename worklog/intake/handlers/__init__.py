"""
Platform Handlers

Each handler verifies a platform's webhook requests and converts deliveries
to the common InboundMessage format.

Available Handlers:
- WeComHandler: WeCom (企业微信) application callbacks
"""

from .base import BaseHandler, InboundMessage
from .wecom import WeComHandler, ACKNOWLEDGMENT

__all__ = [
    "BaseHandler",
    "InboundMessage",
    "WeComHandler",
    "ACKNOWLEDGMENT",
]
