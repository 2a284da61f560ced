from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from .utils import append_jsonl, ensure_dir, utc_now_iso


@dataclass
class JobPaths:
    out_dir: Path
    events_jsonl: Path


def create_job_paths(out_dir: str | Path) -> JobPaths:
    out = Path(out_dir)
    ensure_dir(out)
    return JobPaths(out_dir=out, events_jsonl=out / "events.jsonl")


def new_job_id(use_timeline: bool = True) -> str:
    """Generate a new job ID.

    Args:
        use_timeline: If True, use timeline format YYYY-MM-DD/HH-MM-SS__<shortid>
                     If False, use UUID format

    Returns:
        Job ID string
    """
    if not use_timeline:
        return str(uuid.uuid4())

    now = datetime.now(timezone.utc)
    date_part = now.strftime("%Y-%m-%d")
    time_part = now.strftime("%H-%M-%S")
    short_id = uuid.uuid4().hex[:8]
    return f"{date_part}/{time_part}__{short_id}"


class JobStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Job:
    job_id: str
    operation: str
    created_at: str = field(default_factory=utc_now_iso)
    status: JobStatus = JobStatus.RUNNING
    completed_at: str | None = None
    result: Any = None
    error: Any = None

    @classmethod
    def create(cls, operation: str) -> "Job":
        return cls(job_id=new_job_id(), operation=operation)

    @property
    def finished(self) -> bool:
        return self.status is not JobStatus.RUNNING

    def succeed(self, result: Any) -> None:
        # A job reaches exactly one outcome.
        if self.finished:
            raise RuntimeError(f"job {self.job_id} already {self.status.value}")
        self.status = JobStatus.SUCCEEDED
        self.result = result
        self.completed_at = utc_now_iso()

    def fail(self, error: Any) -> None:
        if self.finished:
            raise RuntimeError(f"job {self.job_id} already {self.status.value}")
        self.status = JobStatus.FAILED
        self.error = error
        self.completed_at = utc_now_iso()

    def to_dict(self) -> dict[str, Any]:
        error = self.error.to_dict() if hasattr(self.error, "to_dict") else self.error
        return {
            "job_id": self.job_id,
            "operation": self.operation,
            "status": self.status.value,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
            "error": error,
        }


def record_event(
    paths: JobPaths,
    *,
    job_id: str | None,
    operation: str | None,
    level: str,
    message: str,
    **extra: Any,
) -> None:
    event = {
        "at": utc_now_iso(),
        "job_id": job_id,
        "operation": operation,
        "level": level,
        "message": message,
    }
    event.update(extra)
    append_jsonl(paths.events_jsonl, event)
