"""Single-flight job controller.

At most one job runs at a time. The controller owns the busy flag, the UI
state, the transient handles opened by jobs and the OCR session, and releases
them on every exit path.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol, TypeVar

from .errors import CollaboratorFailure, PageToolsError
from .job import Job
from .notifier import Notifier

CLEANUP_INTERVAL_S = 30.0

T = TypeVar("T")


class JobState(str, Enum):
    IDLE = "idle"
    BUSY = "busy"


class OCRSessionLike(Protocol):
    @property
    def terminated(self) -> bool: ...

    def terminate(self) -> None: ...


@dataclass
class UiState:
    actions_enabled: bool = True
    busy_indicator: bool = False

    def set_busy(self, busy: bool) -> None:
        self.actions_enabled = not busy
        self.busy_indicator = busy


@dataclass
class _Handle:
    owner: str | None
    resource: Any
    release: Callable[[], Any]


class HandleRegistry:
    """Transient objects (open documents, buffers) that must be released."""

    def __init__(self, on_error: Callable[[Any, Exception], None] | None = None):
        self._handles: list[_Handle] = []
        self._on_error = on_error

    def __len__(self) -> int:
        return len(self._handles)

    def owners(self) -> list[str | None]:
        return [h.owner for h in self._handles]

    def register(self, owner: str | None, resource: Any, release: Callable[[], Any] | None = None) -> Any:
        if release is None:
            release = resource.close
        self._handles.append(_Handle(owner=owner, resource=resource, release=release))
        return resource

    def _release(self, selected: list[_Handle]) -> int:
        for h in selected:
            self._handles.remove(h)
        # Newest first: derived objects go before the ones they came from.
        for h in reversed(selected):
            try:
                h.release()
            except Exception as e:
                if self._on_error is not None:
                    self._on_error(h.resource, e)
        return len(selected)

    def release_owned(self, owner: str) -> int:
        return self._release([h for h in self._handles if h.owner == owner])

    def sweep(self, exclude_owner: str | None = None) -> int:
        return self._release([h for h in self._handles if exclude_owner is None or h.owner != exclude_owner])

    def release_all(self) -> int:
        return self._release(list(self._handles))


class JobContext:
    """What a job body may touch: its job record, notifications, handles, OCR."""

    def __init__(self, controller: "JobController", job: Job):
        self._controller = controller
        self.job = job

    @property
    def notifier(self) -> Notifier:
        return self._controller.notifier

    def track(self, resource: T, release: Callable[[], Any] | None = None) -> T:
        return self._controller.handles.register(self.job.job_id, resource, release)

    def open_ocr_session(self, factory: Callable[[], Any]) -> Any:
        return self._controller._open_ocr_session(factory)

    def progress(self, fraction: float) -> None:
        self.notifier.progress(fraction)


class JobController:
    def __init__(
        self,
        notifier: Notifier | None = None,
        ui: UiState | None = None,
        cleanup_interval_s: float = CLEANUP_INTERVAL_S,
    ):
        self.notifier = notifier or Notifier(echo=False)
        self.ui = ui or UiState()
        self.cleanup_interval_s = cleanup_interval_s
        self.handles = HandleRegistry(on_error=self._on_release_error)
        self._state = JobState.IDLE
        self._job: Job | None = None
        self._ocr_session: OCRSessionLike | None = None
        self._maintenance: asyncio.Task | None = None
        self._torn_down = False

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state is JobState.BUSY

    @property
    def current_job(self) -> Job | None:
        return self._job

    @property
    def ocr_session(self) -> OCRSessionLike | None:
        return self._ocr_session

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    def _on_release_error(self, resource: Any, exc: Exception) -> None:
        self.notifier.error(f"Cleanup Error: {exc}", resource=type(resource).__name__)

    def _enter_busy(self, job: Job) -> None:
        self._state = JobState.BUSY
        self._job = job
        self.notifier.bind(job)
        self.ui.set_busy(True)

    def _leave_busy(self) -> None:
        self._job = None
        self._state = JobState.IDLE
        self.notifier.bind(None)
        self.ui.set_busy(False)

    def _open_ocr_session(self, factory: Callable[[], OCRSessionLike]) -> OCRSessionLike:
        if self._ocr_session is not None:
            raise RuntimeError("an OCR session is already open")
        self._ocr_session = factory()
        return self._ocr_session

    def _terminate_ocr_session(self) -> None:
        session, self._ocr_session = self._ocr_session, None
        if session is None or session.terminated:
            return
        try:
            session.terminate()
        except Exception as e:
            self._on_release_error(session, e)

    def _release_job_resources(self, job: Job) -> None:
        self._terminate_ocr_session()
        self.handles.release_owned(job.job_id)

    async def trigger(
        self,
        operation: str,
        body: Callable[[JobContext], Awaitable[Any]],
        *,
        label: str | None = None,
    ) -> Job | None:
        """Run body as the single active job.

        Returns None without doing anything when a job is already running,
        otherwise the finished Job (succeeded or failed).
        """
        if self.busy or self._torn_down:
            return None

        job = Job.create(operation)
        self._enter_busy(job)
        try:
            result = await body(JobContext(self, job))
        except PageToolsError as e:
            e.with_operation(operation)
            job.fail(e)
            self.notifier.error(f"{label or operation} Error: {e.message}", error=e.to_dict())
        except Exception as e:
            err = CollaboratorFailure(str(e) or type(e).__name__, operation=operation)
            err.__cause__ = e
            job.fail(err)
            self.notifier.error(f"{label or operation} Error: {err.message}", error=err.to_dict())
        else:
            job.succeed(result)
        finally:
            self._release_job_resources(job)
            self._leave_busy()
        return job

    def sweep_stale(self) -> int:
        """Release handles not owned by the job in flight."""
        owner = self._job.job_id if self._job is not None else None
        if owner is None:
            return self.handles.release_all()
        return self.handles.sweep(exclude_owner=owner)

    async def _maintenance_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_s)
            self.sweep_stale()

    def start_maintenance(self) -> None:
        if self._maintenance is None or self._maintenance.done():
            self._maintenance = asyncio.get_running_loop().create_task(self._maintenance_loop())

    def stop_maintenance(self) -> None:
        if self._maintenance is not None:
            self._maintenance.cancel()
            self._maintenance = None

    def teardown(self) -> None:
        """Release everything now, whatever state the controller is in.

        Does not wait for a job in flight.
        """
        if self._torn_down:
            return
        self._torn_down = True
        self._terminate_ocr_session()
        self.handles.release_all()
        task, self._maintenance = self._maintenance, None
        if task is not None and not task.done():
            try:
                task.cancel()
            except RuntimeError:
                # loop already closed
                pass
