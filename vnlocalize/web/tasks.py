"""
Background execution of translation runs for the web interface.

Runs are coroutines; they all execute on one asyncio event loop owned by a
daemon thread. Request threads submit work with run_coroutine_threadsafe()
and cancel through the run's CancelToken.
"""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from concurrent.futures import Future
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from vnlocalize.engines.cancellation import CancelToken
from vnlocalize.engines.exceptions import TranslationError
from vnlocalize.logger import get_logger
from vnlocalize.translation.progress import TranslationProgress

logger = get_logger(__name__)

FINISHED_STATES = ("completed", "failed", "canceled")


@dataclass
class JobState:
    """In-memory representation of an asynchronous job."""

    job_id: str
    file_id: str
    scope: str = "all"
    query: Optional[str] = None
    selected_ids: List[str] = field(default_factory=list)
    untranslated_only: bool = False
    engine: Optional[str] = None
    cancel_requested: bool = False
    state: str = "pending"  # pending|running|completed|failed|canceled
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    progress: Dict[str, Any] = field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None
    last_update: float = field(default_factory=time.time)

    def request_cancel(self):
        """Mark this job as requested for cancellation."""
        self.cancel_requested = True
        self.last_update = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class LoopThread:
    """A daemon thread running one asyncio event loop forever."""

    def __init__(self, name: str = "translation-loop"):
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _ensure_started(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None or self._thread is None or not self._thread.is_alive():
                loop = asyncio.new_event_loop()
                ready = threading.Event()

                def _serve():
                    asyncio.set_event_loop(loop)
                    loop.call_soon(ready.set)
                    loop.run_forever()

                self._thread = threading.Thread(target=_serve, name=self.name, daemon=True)
                self._thread.start()
                ready.wait()
                self._loop = loop
            return self._loop

    def submit(self, coro) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self._ensure_started())


_loop_thread = LoopThread()
_jobs: Dict[str, JobState] = {}
_tokens: Dict[str, CancelToken] = {}
_futures: Dict[str, Future] = {}
_jobs_lock = threading.Lock()
_JOB_RETENTION_SECONDS = 600  # Retain job info for 10 minutes after completion


def create_translation_job(
    workspace,
    file_id: str,
    scope: str = "all",
    query: Optional[str] = None,
    selected_ids: Optional[List[str]] = None,
    untranslated_only: bool = False,
    engine: Optional[str] = None,
) -> JobState:
    """
    Create and launch an asynchronous translation job for a file.

    Returns:
        JobState for the new job (already registered and scheduled).
    """
    job_id = uuid.uuid4().hex
    job_state = JobState(
        job_id=job_id,
        file_id=file_id,
        scope=scope,
        query=query,
        selected_ids=list(selected_ids or []),
        untranslated_only=untranslated_only,
        engine=engine,
    )
    token = CancelToken()

    with _jobs_lock:
        _cleanup_jobs_locked()
        _jobs[job_id] = job_state
        _tokens[job_id] = token
        _futures[job_id] = _loop_thread.submit(_run_translation_job(workspace, job_state, token))

    logger.info(
        "Translation job %s started for file %s (scope=%s, engine=%s)",
        job_id,
        file_id,
        scope,
        engine or "default",
    )
    return job_state


def get_job(job_id: str) -> Optional[JobState]:
    """Fetch a job by ID (if still retained)."""
    with _jobs_lock:
        job = _jobs.get(job_id)
        if job and job.finished_at and (time.time() - job.finished_at) > _JOB_RETENTION_SECONDS:
            # Expired; remove
            _forget_locked(job_id)
            return None
        return job


def wait_for_job(job_id: str, timeout: Optional[float] = None) -> Optional[JobState]:
    """Block until the job's coroutine has finished (or timeout elapses)."""
    with _jobs_lock:
        future = _futures.get(job_id)
    if future is not None:
        future.result(timeout=timeout)
    return get_job(job_id)


def cancel_job(job_id: str) -> bool:
    """
    Request cancellation of a running job.

    Returns:
        True if job was found and cancellation requested, False otherwise.
    """
    with _jobs_lock:
        job = _jobs.get(job_id)
        token = _tokens.get(job_id)
        if not job or token is None:
            return False
        if job.state in FINISHED_STATES:
            return False  # Already finished
        job.request_cancel()
    token.cancel()
    logger.info("Cancellation requested for job %s", job_id)
    return True


def get_latest_job(file_id: str) -> Optional[JobState]:
    """Get the latest job (including finished ones) for a file."""
    with _jobs_lock:
        file_jobs = [job for job in _jobs.values() if job.file_id == file_id]
        if not file_jobs:
            return None
        return max(file_jobs, key=lambda j: j.created_at)


def serialize_job(job: JobState) -> Dict[str, Any]:
    """Convert JobState into JSON-safe dict."""
    with _jobs_lock:
        return job.to_dict()


async def _run_translation_job(workspace, job: JobState, token: CancelToken):
    """Coroutine executed on the background loop."""
    with _jobs_lock:
        job.state = "running"
        job.started_at = time.time()
        job.last_update = job.started_at

    def on_progress(progress: TranslationProgress):
        with _jobs_lock:
            job.progress = progress.to_dict()
            job.last_update = time.time()

    try:
        result = await workspace.start_run(
            job.file_id,
            scope=job.scope,
            query=job.query,
            selected_ids=job.selected_ids,
            untranslated_only=job.untranslated_only,
            engine=job.engine,
            progress_callback=on_progress,
            cancel_token=token,
        )
        with _jobs_lock:
            job.result = result.to_dict()
            job.error = result.error
            job.state = result.state.value
        logger.info(
            "Translation job %s finished (state=%s, done=%s/%s)",
            job.job_id,
            job.state,
            result.done,
            result.total,
        )
    except TranslationError as exc:
        with _jobs_lock:
            job.state = "failed"
            job.error = exc.to_dict()
        logger.error("Translation job %s failed: %s", job.job_id, exc)
    except Exception as exc:
        with _jobs_lock:
            job.state = "failed"
            job.error = {"error": f"{type(exc).__name__}: {exc}", "code": "unexpected_error"}
        logger.exception(
            "Translation job %s failed for file %s: %s",
            job.job_id,
            job.file_id,
            exc,
        )
    finally:
        with _jobs_lock:
            job.finished_at = time.time()
            job.last_update = job.finished_at
            _tokens.pop(job.job_id, None)


def _forget_locked(job_id: str):
    _jobs.pop(job_id, None)
    _tokens.pop(job_id, None)
    _futures.pop(job_id, None)


def _cleanup_jobs_locked():
    """Remove completed jobs that exceeded retention period (call with lock held)."""
    now = time.time()
    expired = [
        job_id
        for job_id, job in _jobs.items()
        if job.finished_at and (now - job.finished_at) > _JOB_RETENTION_SECONDS
    ]
    for job_id in expired:
        _forget_locked(job_id)
