"""
Incident persistence behind a narrow document-store interface.

Two backends ship with the service: an in-memory collection (default) and a
JSON-lines file under ``storage/data``. Both are synchronous; callers on the
event loop run them in a worker thread with a timeout.
"""
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional

from core.config_loader import config_loader
from core.errors import StorageError
from core.models.enums import IncidentStatus, Severity
from core.models.incident import IncidentRecord
from core.models.telemetry import utc_now

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 500


class IncidentStore(ABC):
    """Collection of IncidentRecord documents keyed by generated id."""

    @abstractmethod
    def add(self, incident: IncidentRecord) -> str:
        """Persist a new incident and return its id."""

    @abstractmethod
    def get(self, incident_id: str) -> Optional[IncidentRecord]:
        ...

    @abstractmethod
    def all(self) -> List[IncidentRecord]:
        ...

    @abstractmethod
    def replace(self, incident: IncidentRecord):
        ...

    @abstractmethod
    def clear(self):
        ...

    def list(self, device_id: Optional[str] = None, severity: Optional[Severity] = None,
             status: Optional[IncidentStatus] = None, is_synthetic: Optional[bool] = None,
             limit: int = 50) -> List[IncidentRecord]:
        """Most-recent-first page, optionally filtered. Filters apply before the limit."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        matches = [
            i for i in self.all()
            if (device_id is None or i.device_id == device_id)
            and (severity is None or i.severity == severity)
            and (status is None or i.status == status)
            and (is_synthetic is None or i.is_synthetic == is_synthetic)
        ]
        matches.sort(key=lambda i: (i.timestamp, i.created_at), reverse=True)
        return matches[:limit]

    def update_status(self, incident_id: str, status: IncidentStatus) -> IncidentRecord:
        """Advance an incident's status.

        Raises:
            KeyError: unknown incident id.
            StatusTransitionError: the move would go backwards.
        """
        incident = self.get(incident_id)
        if incident is None:
            raise KeyError(incident_id)
        updated = incident.advance_status(status, now=utc_now())
        if updated is not incident:
            self.replace(updated)
            logger.info(f"Incident {incident_id} moved to {status.value}")
        return updated

    def stats(self) -> Dict[str, Dict[str, int]]:
        incidents = self.all()
        severities = Counter(i.severity for i in incidents)
        statuses = Counter(i.status for i in incidents)
        return {
            "severity": {s.value: severities.get(s, 0) for s in Severity},
            "status": {s.value: statuses.get(s, 0) for s in IncidentStatus},
        }


class InMemoryIncidentStore(IncidentStore):

    def __init__(self):
        self._incidents: Dict[str, IncidentRecord] = {}
        self._lock = threading.Lock()

    def add(self, incident: IncidentRecord) -> str:
        with self._lock:
            if incident.id in self._incidents:
                raise StorageError(f"Incident {incident.id} already exists")
            self._incidents[incident.id] = incident
        return incident.id

    def get(self, incident_id: str) -> Optional[IncidentRecord]:
        return self._incidents.get(incident_id)

    def all(self) -> List[IncidentRecord]:
        with self._lock:
            return list(self._incidents.values())

    def replace(self, incident: IncidentRecord):
        with self._lock:
            self._incidents[incident.id] = incident

    def clear(self):
        with self._lock:
            self._incidents.clear()


class JsonFileIncidentStore(IncidentStore):
    """One JSON document per line. Status changes rewrite the file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        os.makedirs(self.path.parent, exist_ok=True)

    def _read(self) -> Dict[str, IncidentRecord]:
        incidents: Dict[str, IncidentRecord] = {}
        if not self.path.exists():
            return incidents
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                for line_no, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        incident = IncidentRecord.from_document(json.loads(line))
                    except (ValueError, KeyError, TypeError) as e:
                        logger.warning(f"Skipping corrupt incident at {self.path}:{line_no}: {e}")
                        continue
                    incidents[incident.id] = incident
        except OSError as e:
            raise StorageError(f"Cannot read {self.path}: {e}") from e
        return incidents

    def add(self, incident: IncidentRecord) -> str:
        line = json.dumps(incident.to_document(), ensure_ascii=False)
        with self._lock:
            try:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as e:
                raise StorageError(f"Cannot write {self.path}: {e}") from e
        return incident.id

    def get(self, incident_id: str) -> Optional[IncidentRecord]:
        with self._lock:
            return self._read().get(incident_id)

    def all(self) -> List[IncidentRecord]:
        with self._lock:
            return list(self._read().values())

    def replace(self, incident: IncidentRecord):
        with self._lock:
            incidents = self._read()
            incidents[incident.id] = incident
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            try:
                with open(tmp_path, "w", encoding="utf-8") as f:
                    for item in incidents.values():
                        f.write(json.dumps(item.to_document(), ensure_ascii=False) + "\n")
                os.replace(tmp_path, self.path)
            except OSError as e:
                raise StorageError(f"Cannot rewrite {self.path}: {e}") from e

    def clear(self):
        with self._lock:
            if self.path.exists():
                self.path.unlink()


def create_incident_store(backend: Optional[str] = None) -> IncidentStore:
    """Build the configured backend (``memory`` or ``file``)."""
    backend = (backend or config_loader.get_storage_config().backend).lower()
    if backend == "file":
        path = config_loader.resolve_storage_path()
        logger.info(f"Using file incident store at {path}")
        return JsonFileIncidentStore(path)
    if backend != "memory":
        logger.warning(f"Unknown storage backend {backend!r}, using in-memory store")
    return InMemoryIncidentStore()


# Global instance
incident_store = create_incident_store()
