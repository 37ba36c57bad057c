"""
Worklog Record Schemas
"""

from .work_log import (
    WorkLogRecord,
    ClassificationResult,
    ExtractRequest,
    ApiResponse,
    Category,
    Priority,
    WorkStatus,
)

__all__ = [
    "WorkLogRecord",
    "ClassificationResult",
    "ExtractRequest",
    "ApiResponse",
    "Category",
    "Priority",
    "WorkStatus",
]
