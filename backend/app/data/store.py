from __future__ import annotations
import json, logging, os, tempfile, threading, time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from packages.schemas.errors import PersistenceError, ReportNotFoundError
from packages.schemas.types import BoundingBox, Report, ReportDraft
from ..config.settings import settings

log = logging.getLogger(__name__)


class ReportStore:
    """
    Reports kept as a single JSON array on disk.
    Mutations serialize on one lock and replace the whole file atomically,
    so readers never see a half-written snapshot and need no lock.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = threading.Lock()

    # ---------- raw file access ----------
    def _read(self) -> List[Report]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []  # not created yet
        except OSError as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e
        if not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Corrupt report file {self.path}: {e}") from e
        if not isinstance(data, list):
            raise PersistenceError(f"Corrupt report file {self.path}: expected a JSON array")
        try:
            return [Report.model_validate(r) for r in data]
        except ValidationError as e:
            raise PersistenceError(f"Corrupt report record in {self.path}: {e}") from e

    def _write(self, reports: List[Report]) -> None:
        payload = json.dumps([r.to_json() for r in reports], indent=2, ensure_ascii=False)
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".reports-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e

    # ---------- operations ----------
    def list_all(self) -> List[Report]:
        return self._read()

    def filter_by_bounds(self, south: float, west: float, north: float, east: float) -> List[Report]:
        box = BoundingBox(south, west, north, east)
        return [r for r in self._read() if box.contains(r.latitude, r.longitude)]

    def append(self, draft: ReportDraft) -> Report:
        with self._lock:
            reports = self._read()
            last_id = max((r.id for r in reports), default=0)
            report = Report(
                id=max(int(time.time() * 1000), last_id + 1),
                category=draft.category,
                description=draft.description,
                location=draft.location,
                attachment_name=draft.attachment_name,
                latitude=draft.latitude,
                longitude=draft.longitude,
                created_at=datetime.now(timezone.utc),
            )
            reports.append(report)
            self._write(reports)
        log.info("Stored report %s (%s) at %.5f,%.5f", report.id, report.category,
                 report.latitude, report.longitude)
        return report

    def resolve(self, report_id: int, resolution_note: Optional[str]) -> Report:
        with self._lock:
            reports = self._read()
            for i, r in enumerate(reports):
                if r.id == report_id:
                    # resolving twice just overwrites the note
                    reports[i] = r.model_copy(update={"resolved": True, "resolution_note": resolution_note})
                    self._write(reports)
                    log.info("Resolved report %s", report_id)
                    return reports[i]
        raise ReportNotFoundError(report_id)


_STORE = ReportStore(settings.REPORTS_FILE)

def get_store() -> ReportStore:
    return _STORE
