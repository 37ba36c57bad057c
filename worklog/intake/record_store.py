"""
Record Store

Upsert-by-identity persistence for work-log records.

The store is a single JSON array on disk (data/dev-logs.json by default),
read and rewritten as a whole on every write. There is no transaction log:
writes go to a temporary file that replaces the original, so a reader never
sees a half-written file.

Concurrency:
- Upserts of different ids never lose each other's writes (the store's
  lock guards read-modify-write)
- Two upserts racing on the same id end with whichever ran last
"""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import ValidationError

from ..common.config import DEFAULT_DATA_PATH
from ..common.errors import PersistenceFault
from ..common.schemas import WorkLogRecord

logger = logging.getLogger("worklog.intake.record_store")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RecordStore:
    """
    JSON-file backed store of WorkLogRecords keyed by id.

    The file is the single source of truth: every read goes back to disk, so
    several store instances over the same path agree with each other.
    """

    def __init__(
        self,
        data_path: Optional[Path] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize record store.

        Args:
            data_path: Path to the JSON file (default: data/dev-logs.json)
            clock: Source of updated_at timestamps (default: UTC now)
        """
        self._data_path = Path(data_path or DEFAULT_DATA_PATH)
        self._clock = clock or _utc_now
        self._lock = threading.Lock()

    @property
    def data_path(self) -> Path:
        return self._data_path

    def _load(self) -> List[WorkLogRecord]:
        """Load all records from disk"""
        if not self._data_path.exists():
            return []

        try:
            with open(self._data_path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise PersistenceFault(f"Failed to read {self._data_path}: {e}") from e

        if not isinstance(data, list):
            raise PersistenceFault(f"{self._data_path} does not contain a record list")

        try:
            return [WorkLogRecord.model_validate(item) for item in data]
        except ValidationError as e:
            raise PersistenceFault(f"Invalid record in {self._data_path}: {e}") from e

    def _save(self, records: List[WorkLogRecord]) -> None:
        """Write all records, replacing the file atomically"""
        data = [record.to_json_dict() for record in records]

        try:
            self._data_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self._data_path.parent,
                prefix=f".{self._data_path.name}.",
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self._data_path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceFault(f"Failed to write {self._data_path}: {e}") from e

    def upsert(self, record: WorkLogRecord) -> WorkLogRecord:
        """
        Insert or replace a record by id.

        A replacement keeps the existing record's created_at. Either way
        updated_at is set to the current time.

        Args:
            record: Record to store

        Returns:
            The record as stored
        """
        with self._lock:
            records = self._load()
            now = self._clock()

            for i, existing in enumerate(records):
                if existing.id == record.id:
                    stored = record.model_copy(update={
                        "created_at": existing.created_at,
                        "updated_at": now,
                    })
                    records[i] = stored
                    logger.info("Updated record %s", record.id)
                    break
            else:
                stored = record.model_copy(update={"updated_at": now})
                records.append(stored)
                logger.info("Inserted record %s", record.id)

            self._save(records)
            return stored

    def list_all(self) -> List[WorkLogRecord]:
        """All records in insertion order"""
        with self._lock:
            return self._load()

    def get(self, record_id: str) -> Optional[WorkLogRecord]:
        """Get a specific record by id"""
        for record in self.list_all():
            if record.id == record_id:
                return record
        return None
