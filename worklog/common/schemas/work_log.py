"""
Work Log Record Schema

A work-log record is the persisted, classified form of a chat message.
Identity is ``id``: the store keeps at most one record per id, and
``created_at`` is fixed by the first write.

JSON uses the camelCase field names the UI reads (createdAt,
sourceMessages, ...). Records saved by older UI builds use ``type`` for the
category and ``relatedMessages`` for the source messages; both are accepted
on input.
"""

from datetime import datetime
from typing import Any, Generic, List, Optional, TypeVar
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ============================================================================
# Enums
# ============================================================================

class Category(str, Enum):
    """Work-log categories, in classification priority order"""
    BUG = "bug"
    TASK = "task"
    MEETING = "meeting"
    PROGRESS = "progress"
    OTHER = "other"


class Priority(str, Enum):
    """Work item priority"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class WorkStatus(str, Enum):
    """Work item status labels as shown in the UI"""
    COMPLETED = "已完成"
    IN_PROGRESS = "进行中"
    NOT_STARTED = "待开始"


# ============================================================================
# Models
# ============================================================================

class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_json_dict(self) -> dict:
        """Dump with camelCase keys, dropping unset optional fields"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ClassificationResult(_CamelModel):
    """
    Output of the classification engine.

    Transient: it is the template a WorkLogRecord is built from and is never
    stored on its own.
    """
    project: Optional[str] = None
    category: Category = Field(
        default=Category.OTHER,
        validation_alias=AliasChoices("category", "type"),
    )
    title: str
    participants: List[str] = Field(default_factory=list)
    content: str = ""
    status: Optional[WorkStatus] = None
    priority: Priority = Priority.MEDIUM
    tags: Optional[List[str]] = None
    summary: str = ""


class WorkLogRecord(_CamelModel):
    """Structured work-log entry"""
    id: str = Field(..., min_length=1)
    date: str = Field(..., description="Calendar day of the entry (YYYY-MM-DD)")
    project: Optional[str] = None
    category: Category = Field(
        default=Category.OTHER,
        validation_alias=AliasChoices("category", "type"),
    )
    title: str = Field(..., min_length=1)
    participants: List[str] = Field(default_factory=list)
    content: str = ""
    # Free text edited in the UI; classified records carry a WorkStatus label
    status: Optional[str] = None
    priority: Optional[Priority] = None
    tags: Optional[List[str]] = None
    source_messages: Optional[List[str]] = Field(
        default=None,
        validation_alias=AliasChoices("sourceMessages", "source_messages", "relatedMessages"),
        serialization_alias="sourceMessages",
    )
    created_at: datetime
    updated_at: datetime


class ExtractRequest(BaseModel):
    """Body of POST /api/ai/extract"""
    messages: Any = None
    project: Optional[str] = None


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope used by every JSON endpoint"""
    success: bool
    data: Optional[T] = None
    message: Optional[str] = None
    error: Optional[str] = None
