"""JSON-file scenario store used by the local client.

The file may be missing, unreadable or on a full disk. None of that is
fatal: an unavailable store behaves as an empty one.
"""

from __future__ import annotations

import json
import os
import threading
import uuid
from typing import Dict, List, Optional

from pydantic import ValidationError

from pension_projector.config import Settings
from pension_projector.errors import ScenarioNotFound
from pension_projector.schemas.projection import ProjectionSummary
from pension_projector.schemas.scenario import ScenarioRecord, utcnow
from pension_projector.utils.logging import get_logger

logger = get_logger("storage.local")


class LocalScenarioStore:
    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._unavailable_reason: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalScenarioStore":
        return cls(settings.local_store_path)

    @property
    def available(self) -> bool:
        return self._read() is not None

    @property
    def unavailable_reason(self) -> Optional[str]:
        return self._unavailable_reason

    def _read(self) -> Optional[Dict[str, dict]]:
        """Stored records keyed by id, or None when the store cannot be used."""
        if not os.path.exists(self.path):
            self._unavailable_reason = None
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            self._mark_unavailable(f"{type(e).__name__}: {e}")
            return None
        if not isinstance(data, dict):
            self._mark_unavailable("store root is not an object")
            return None
        self._unavailable_reason = None
        return data

    def _write(self, data: Dict[str, dict]) -> bool:
        tmp_path = f"{self.path}.tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            self._mark_unavailable(f"{type(e).__name__}: {e}")
            return False
        return True

    def _mark_unavailable(self, reason: str) -> None:
        if reason != self._unavailable_reason:
            logger.warning(f"local_store_unavailable path={self.path} reason={reason}")
        self._unavailable_reason = reason

    def save(self, record: ScenarioRecord) -> Optional[str]:
        """Returns the id, or None when the store is unavailable."""
        with self._lock:
            data = self._read()
            if data is None:
                return None
            scenario_id = record.id or uuid.uuid4().hex
            previous = data.get(scenario_id)
            stored = record.model_copy(
                update={
                    "id": scenario_id,
                    "source": "local",
                    "updated_at": utcnow(),
                    "created_at": ScenarioRecord.model_validate(previous).created_at if previous else record.created_at,
                }
            )
            payload = stored.model_dump(mode="json")
            if previous and previous.get("summary") and not record.summary:
                payload["summary"] = previous["summary"]
            data[scenario_id] = payload
            return scenario_id if self._write(data) else None

    def load(self, scenario_id: str) -> ScenarioRecord:
        data = self._read() or {}
        raw = data.get(scenario_id)
        if raw is None:
            raise ScenarioNotFound(scenario_id)
        try:
            return ScenarioRecord.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"local_record_corrupt id={scenario_id} errors={e.error_count()}")
            raise ScenarioNotFound(scenario_id) from e

    def list(self) -> List[ScenarioRecord]:
        records: List[ScenarioRecord] = []
        for scenario_id, raw in sorted((self._read() or {}).items()):
            try:
                records.append(ScenarioRecord.model_validate(raw))
            except ValidationError:
                logger.warning(f"local_record_corrupt id={scenario_id}")
        return records

    def save_summary(self, scenario_id: str, summary: ProjectionSummary) -> bool:
        with self._lock:
            data = self._read()
            if data is None:
                return False
            if scenario_id not in data:
                raise ScenarioNotFound(scenario_id)
            data[scenario_id]["summary"] = summary.model_dump(mode="json")
            return self._write(data)
