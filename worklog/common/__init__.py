"""
Worklog Common Module

Shared configuration, fault taxonomy and record schemas.
"""

from .config import WorklogConfig, WeComConfig, load_config, validate_wecom_config
from .errors import (
    WorklogFault,
    ConfigurationFault,
    AuthenticationFault,
    IntegrityFault,
    MalformedDeliveryFault,
    ClassificationFault,
    PersistenceFault,
)

__all__ = [
    "WorklogConfig",
    "WeComConfig",
    "load_config",
    "validate_wecom_config",
    "WorklogFault",
    "ConfigurationFault",
    "AuthenticationFault",
    "IntegrityFault",
    "MalformedDeliveryFault",
    "ClassificationFault",
    "PersistenceFault",
]
