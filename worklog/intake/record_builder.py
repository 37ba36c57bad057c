"""
Record Builder

Builds work-log records from classification results.

Key Rules:
- A record built from a platform message takes its id from the message id,
  so a redelivered message replaces its record instead of duplicating it
- created_at and updated_at start equal; the store owns updated_at afterwards
- source_messages keeps the original text the record was classified from
"""

import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..common.schemas import ClassificationResult, WorkLogRecord


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_record_id(message_id: Optional[str] = None) -> str:
    """Record id for a platform message, or a random one"""
    if message_id:
        return f"wecom-{message_id}"
    return uuid.uuid4().hex


class RecordBuilder:
    """
    Builds WorkLogRecords from ClassificationResults.

    The clock is injectable so tests can pin timestamps.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _utc_now

    def build(
        self,
        result: ClassificationResult,
        source_messages: Optional[List[str]] = None,
        message_id: Optional[str] = None,
    ) -> WorkLogRecord:
        """
        Build a record from a classification result.

        Args:
            result: Output of classify()
            source_messages: Original texts the result was derived from
            message_id: Platform message id, when the text came from a delivery

        Returns:
            WorkLogRecord ready for upsert
        """
        now = self._clock()

        return WorkLogRecord(
            id=generate_record_id(message_id),
            date=now.strftime("%Y-%m-%d"),
            project=result.project,
            category=result.category,
            title=result.title,
            participants=list(result.participants),
            content=result.content,
            status=result.status.value if result.status else None,
            priority=result.priority,
            tags=list(result.tags) if result.tags else None,
            source_messages=list(source_messages) if source_messages else None,
            created_at=now,
            updated_at=now,
        )
