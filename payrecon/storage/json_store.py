"""
JSON file persistence for reconciliation runs and audit entries.

Each run is one document under the runs directory, written to a temporary
file and moved into place, so a run is either fully on disk or absent.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import List, Optional, Tuple, Union

import structlog

from ..models import AuditEntry, ReconciliationRun

logger = structlog.get_logger()


def _atomic_write_json(path: Path, data: dict) -> None:
    fd, tmp_name = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.stem}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class JsonRunRepository:
    """Run repository backed by one JSON document per run."""

    def __init__(self, runs_dir: Union[str, Path]):
        self.runs_dir = Path(runs_dir)
        self.runs_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, run_id: str) -> Path:
        # run ids are uuid4 strings; reject anything that could escape the directory
        if not run_id or "/" in run_id or "\\" in run_id or run_id.startswith("."):
            raise ValueError(f"Invalid run id: {run_id!r}")
        return self.runs_dir / f"{run_id}.json"

    def create(self, run: ReconciliationRun) -> None:
        path = self._path(run.id)
        with self._lock:
            if path.exists():
                raise ValueError(f"Run {run.id} already exists")
            _atomic_write_json(path, run.to_dict())
        logger.debug("Run persisted", run_id=run.id, path=str(path))

    def _load_all(self) -> List[ReconciliationRun]:
        runs = []
        for path in self.runs_dir.glob("*.json"):
            with open(path, "r", encoding="utf-8") as f:
                runs.append(ReconciliationRun.from_dict(json.load(f)))
        runs.sort(key=lambda run: (run.run_date, run.id), reverse=True)
        return runs

    def latest(self) -> Optional[ReconciliationRun]:
        with self._lock:
            runs = self._load_all()
        return runs[0] if runs else None

    def get(self, run_id: str) -> Optional[ReconciliationRun]:
        try:
            path = self._path(run_id)
        except ValueError:
            return None
        with self._lock:
            if not path.exists():
                return None
            with open(path, "r", encoding="utf-8") as f:
                return ReconciliationRun.from_dict(json.load(f))

    def list(self, limit: int, offset: int = 0) -> Tuple[int, List[ReconciliationRun]]:
        with self._lock:
            runs = self._load_all()
        return len(runs), runs[offset:offset + limit]

    def delete(self, run_id: str) -> bool:
        try:
            path = self._path(run_id)
        except ValueError:
            return False
        with self._lock:
            if not path.exists():
                return False
            path.unlink()
        return True

    def delete_all(self) -> int:
        count = 0
        with self._lock:
            for path in self.runs_dir.glob("*.json"):
                path.unlink()
                count += 1
        return count


class JsonLinesAuditSink:
    """Appends audit entries to a JSON-lines file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def record(self, entry: AuditEntry) -> None:
        line = json.dumps(entry.to_dict(), ensure_ascii=False, default=str)
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
