"""Local persistence for completed analyses.

Analyses are stored as one JSON file per record under
``<data_dir>/analyses/``. Writes go to a temp file in the same directory
followed by an atomic rename, so a crash never leaves a half-written record.

The analyzer treats persistence as best-effort: a failed save is logged and
reported to the diagnostics observer, never surfaced to the caller.

Example:
    >>> store = JsonFileAnalysisStore(Path("~/.chatlens/analyses").expanduser())
    >>> record_id = store.save(AnalysisRecord(user_id="u1", ...))
    >>> store.load(record_id).template_id
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from chatlens.config import AppConfig

logger = logging.getLogger(__name__)

_RECORD_ID = re.compile(r"^[0-9a-f]{32}$")


class StorageError(Exception):
    """A record could not be written or read."""


class AnalysisRecord(BaseModel):
    """A persisted analysis with its invocation metadata.

    Attributes:
        id: Record identifier (hex UUID).
        user_id: Caller the analysis belongs to.
        template_id: Template used.
        model: Model used.
        provider: Provider used.
        file_name: Name of the analyzed file, if any.
        analysis_result: The validated (or safe) analysis object.
        validated: Whether the result passed strict validation.
        duration_ms: Invocation wall time.
        created_at: When the record was created (UTC).
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    template_id: str | None = None
    model: str
    provider: str
    file_name: str | None = None
    analysis_result: dict[str, Any]
    validated: bool = True
    duration_ms: float | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AnalysisStore(ABC):
    """Persistence interface used by the analyzer."""

    @abstractmethod
    def save(self, record: AnalysisRecord) -> str:
        """Persist ``record`` and return its id.

        Raises:
            StorageError: If the record could not be stored.
        """
        pass

    @abstractmethod
    def load(self, record_id: str) -> AnalysisRecord:
        """Load a record by id.

        Raises:
            StorageError: If the record is missing or unreadable.
        """
        pass


class JsonFileAnalysisStore(AnalysisStore):
    """Stores each record as ``<directory>/<id>.json``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self._logger = logging.getLogger(f"{__name__}.JsonFileAnalysisStore")

    @classmethod
    def from_config(cls, config: AppConfig) -> "JsonFileAnalysisStore":
        return cls(config.paths.analyses_dir)

    def _path_for(self, record_id: str) -> Path:
        if not _RECORD_ID.match(record_id):
            raise StorageError(f"Invalid record id: {record_id!r}")
        return self.directory / f"{record_id}.json"

    def save(self, record: AnalysisRecord) -> str:
        path = self._path_for(record.id)
        content = record.model_dump_json(indent=2)

        try:
            self.directory.mkdir(parents=True, exist_ok=True)

            # Write to temp file in same directory (ensures same filesystem)
            fd, temp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp", prefix=".analysis_")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                Path(temp_path).replace(path)
            except Exception:
                Path(temp_path).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to save analysis {record.id}: {type(e).__name__}") from e

        self._logger.debug(f"Saved analysis {record.id}")
        return record.id

    def load(self, record_id: str) -> AnalysisRecord:
        path = self._path_for(record_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return AnalysisRecord.model_validate(data)
        except FileNotFoundError as e:
            raise StorageError(f"Analysis not found: {record_id}") from e
        except (OSError, ValueError, ValidationError) as e:
            raise StorageError(f"Failed to load analysis {record_id}: {type(e).__name__}") from e

    def list_records(self, user_id: str | None = None) -> list[AnalysisRecord]:
        """All readable records, newest first, optionally for one user."""
        if not self.directory.is_dir():
            return []

        records = []
        for path in self.directory.glob("*.json"):
            try:
                record = self.load(path.stem)
            except StorageError as e:
                self._logger.warning(str(e))
                continue
            if user_id is None or record.user_id == user_id:
                records.append(record)
        return sorted(records, key=lambda r: r.created_at, reverse=True)
