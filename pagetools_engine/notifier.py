from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Any, TextIO

from .job import Job, JobPaths, record_event


@dataclass(frozen=True)
class Notification:
    level: str  # info|success|error|progress
    message: str


@dataclass
class Notifier:
    """User-visible messages: printed, kept in memory and written to events.jsonl."""

    paths: JobPaths | None = None
    echo: bool = True
    stdout: TextIO | None = None
    stderr: TextIO | None = None
    messages: list[Notification] = field(default_factory=list)
    job: Job | None = None

    def bind(self, job: Job | None) -> None:
        self.job = job

    def _emit(self, level: str, message: str, **extra: Any) -> None:
        self.messages.append(Notification(level=level, message=message))
        if self.echo:
            stream = (self.stderr or sys.stderr) if level == "error" else (self.stdout or sys.stdout)
            print(message, file=stream, flush=True)
        if self.paths is not None:
            record_event(
                self.paths,
                job_id=self.job.job_id if self.job else None,
                operation=self.job.operation if self.job else None,
                level=level,
                message=message,
                **extra,
            )

    def info(self, message: str) -> None:
        self._emit("info", message)

    def success(self, message: str) -> None:
        self._emit("success", message)

    def error(self, message: str, **extra: Any) -> None:
        self._emit("error", message, **extra)

    def progress(self, fraction: float) -> None:
        self._emit("progress", f"Processing: {round(fraction * 100)}%", fraction=fraction)

    def last(self, level: str | None = None) -> Notification | None:
        for n in reversed(self.messages):
            if level is None or n.level == level:
                return n
        return None
