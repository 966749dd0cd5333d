"""
Batch Orchestrator Module

Drives one translation run over one file:
- Select candidates by scope
- Fill what the translation memory already knows
- Send the rest to a provider in fixed-size batches
- Unmask, check placeholders and commit each batch atomically
- Report progress and honor cancellation between and during batches

A failed batch stops the run; batches committed before it stay, so running
the same scope again resumes where it stopped.
"""

import asyncio
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from vnlocalize.config import ProjectSettings
from vnlocalize.core.database import Database
from vnlocalize.engines.cancellation import CancelToken
from vnlocalize.engines.exceptions import (
    LengthMismatchError,
    PlaceholderIntegrityWarning,
    RunCancelled,
    TranslationError,
)
from vnlocalize.logger import get_logger
from vnlocalize.script.masking import unmask
from vnlocalize.script.models import DialogItem, sort_by_index
from vnlocalize.translation.memory import TranslationMemory, make_entry, restore
from vnlocalize.translation.progress import (
    PHASE_BATCH_DONE,
    PHASE_COMPLETED,
    PHASE_TM_PREFILL,
    TranslationProgress,
)
from vnlocalize.translation.utils import chunk_items
from vnlocalize.translation.validator import check_placeholders

logger = get_logger(__name__)

ProgressCallback = Callable[[TranslationProgress], None]


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELED = "canceled"
    FAILED = "failed"


class Scope(str, Enum):
    ALL = "all"
    FILTERED = "filtered"
    SELECTED = "selected"
    MISSING = "missing"

    @classmethod
    def parse(cls, value: Any) -> "Scope":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or cls.ALL.value).strip().lower())
        except ValueError:
            raise TranslationError(
                f"Unknown scope: {value}",
                code="invalid_scope",
                details={"supported": [s.value for s in cls]},
            )


@dataclass
class RunResult:
    """Outcome of one run."""
    file_id: str
    state: RunState
    done: int = 0
    total: int = 0
    tm_filled: int = 0
    failed_batch: Optional[int] = None
    error: Optional[Dict[str, Any]] = None
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    elapsed: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["state"] = self.state.value
        return payload


def select_candidates(
    items: Sequence[DialogItem],
    scope: Scope,
    query: Optional[str] = None,
    selected_ids: Optional[Sequence[str]] = None,
    untranslated_only: bool = False,
) -> List[DialogItem]:
    """
    Items a run should translate, in file order.

    filtered matches query case-insensitively against quote or translation;
    selected keeps the given ids; missing keeps items without a non-blank
    translation. untranslated_only applies the missing rule on top of any scope.
    """
    scope = Scope.parse(scope)
    candidates = sort_by_index(list(items))

    if scope == Scope.FILTERED:
        needle = (query or "").strip().lower()
        if needle:
            candidates = [
                d for d in candidates
                if needle in d.quote.lower() or needle in (d.translated or "").lower()
            ]
    elif scope == Scope.SELECTED:
        wanted = set(selected_ids or [])
        candidates = [d for d in candidates if d.id in wanted]

    if scope == Scope.MISSING or untranslated_only:
        candidates = [d for d in candidates if not d.has_translation]

    return candidates


class _BatchFailed(Exception):
    def __init__(self, batch_number: int, error: Exception):
        super().__init__(str(error))
        self.batch_number = batch_number
        self.error = error


class BatchOrchestrator:
    """
    Runs one translation pass over a file.

    Args:
        database: Workspace database
        provider: Adapter exposing async translate_batch()
        settings: Translation settings (languages, batch size, TM flags)
        credentials: Engine credentials passed to the provider
        cancel_token: Token that aborts the run
        progress_callback: Optional callable receiving a progress snapshot
    """

    def __init__(
        self,
        database: Database,
        provider: Any,
        settings: ProjectSettings,
        credentials: Optional[Dict[str, str]] = None,
        cancel_token: Optional[CancelToken] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.db = database
        self.provider = provider
        self.settings = settings
        self.credentials = credentials or {}
        self.cancel_token = cancel_token or CancelToken()
        self.progress_callback = progress_callback
        self.memory = TranslationMemory(database)
        self.state = RunState.IDLE
        self.progress: Optional[TranslationProgress] = None
        self.warnings: List[PlaceholderIntegrityWarning] = []

    def _report(self, phase: str):
        self.progress.phase = phase
        self.progress.warning_count = len(self.warnings)
        if self.progress_callback:
            self.progress_callback(TranslationProgress(**asdict(self.progress)))

    def _result(self, file_id: str, started: float, **kwargs) -> RunResult:
        progress = self.progress or TranslationProgress(file_id=file_id)
        return RunResult(
            file_id=file_id,
            state=self.state,
            done=progress.done,
            total=progress.total,
            tm_filled=progress.tm_filled,
            warnings=[w.to_dict() for w in self.warnings],
            elapsed=round(time.monotonic() - started, 3),
            **kwargs,
        )

    async def run(
        self,
        file_id: str,
        scope: Scope = Scope.ALL,
        query: Optional[str] = None,
        selected_ids: Optional[Sequence[str]] = None,
        untranslated_only: bool = False,
    ) -> RunResult:
        """
        Translate the file's candidates for the given scope.

        Returns:
            RunResult with state COMPLETED, CANCELED or FAILED
        """
        if self.state != RunState.IDLE:
            raise RuntimeError(f"Run already {self.state.value}")

        started = time.monotonic()
        self.state = RunState.RUNNING
        candidates = select_candidates(
            self.db.get_dialogs_for_file(file_id), scope, query, selected_ids, untranslated_only
        )
        self.progress = TranslationProgress(
            file_id=file_id,
            total=len(candidates),
            batch_size=self.settings.batch_size,
        )
        logger.info(
            f"Translate started: file={file_id}, engine={self.settings.engine}, "
            f"scope={Scope.parse(scope).value}, items={len(candidates)}"
        )

        try:
            self.cancel_token.raise_if_cancelled()
            remaining = self._prefill_from_memory(candidates)
            self.cancel_token.raise_if_cancelled()

            batches = chunk_items(remaining, self.settings.batch_size)
            self.progress.total_batches = len(batches)
            if self.settings.concurrency <= 1:
                await self._run_sequential(batches)
            else:
                await self._run_concurrent(batches, self.settings.concurrency)

        except RunCancelled:
            self.state = RunState.CANCELED
            logger.info(f"Translate cancelled: file={file_id}, done={self.progress.done}/{self.progress.total}")
            return self._result(file_id, started)

        except _BatchFailed as failure:
            self.state = RunState.FAILED
            error = failure.error
            if isinstance(error, TranslationError):
                error_payload = error.to_dict()
            else:
                error_payload = {"error": str(error), "code": "unexpected_error"}
            logger.error(f"Translate failed at batch {failure.batch_number}: {error}")
            return self._result(file_id, started, failed_batch=failure.batch_number, error=error_payload)

        self.state = RunState.COMPLETED
        self._report(PHASE_COMPLETED)
        logger.info(
            f"Translate completed: file={file_id}, done={self.progress.done}/{self.progress.total}, "
            f"tm_filled={self.progress.tm_filled}, warnings={len(self.warnings)}"
        )
        return self._result(file_id, started)

    def _prefill_from_memory(self, candidates: List[DialogItem]) -> List[DialogItem]:
        """Commit TM hits directly and return the candidates still needing a provider."""
        if not self.settings.tm_enabled or not candidates:
            return candidates

        hits = self.memory.lookup_items(self.settings.target_lang, candidates)
        if hits:
            translations = []
            for item in candidates:
                entry = hits.get(item.id)
                if entry is None:
                    continue
                text, warnings = restore(item, entry)
                self.warnings.extend(warnings)
                translations.append((item.id, text))
            self.db.commit_batch(
                translations,
                used_tm_keys=[entry.key for entry in hits.values()],
            )
            self.progress.tm_filled = len(hits)
            self.progress.done += len(hits)
            logger.info(f"  Filled {len(hits)} items from translation memory")
            self._report(PHASE_TM_PREFILL)

        return [item for item in candidates if item.id not in hits]

    async def _run_sequential(self, batches: List[List[DialogItem]]):
        for number, batch in enumerate(batches, start=1):
            self.cancel_token.raise_if_cancelled()
            try:
                await self._run_batch(number, batch)
            except RunCancelled:
                raise
            except Exception as e:
                raise _BatchFailed(number, e)

    async def _run_concurrent(self, batches: List[List[DialogItem]], concurrency: int):
        semaphore = asyncio.Semaphore(concurrency)
        failures: List[Tuple[int, Exception]] = []

        async def worker(number: int, batch: List[DialogItem]):
            async with semaphore:
                # Stop dispatching once any batch has failed
                if failures:
                    return
                self.cancel_token.raise_if_cancelled()
                try:
                    await self._run_batch(number, batch)
                except RunCancelled:
                    raise
                except Exception as e:
                    failures.append((number, e))

        results = await asyncio.gather(
            *(worker(number, batch) for number, batch in enumerate(batches, start=1)),
            return_exceptions=True,
        )
        for outcome in results:
            if isinstance(outcome, RunCancelled):
                raise outcome
            if isinstance(outcome, BaseException):
                raise outcome
        if failures:
            number, error = min(failures, key=lambda f: f[0])
            raise _BatchFailed(number, error)

    async def _run_batch(self, number: int, batch: List[DialogItem]):
        masked = [item.masked_quote or item.quote for item in batch]
        logger.debug(f"  Batch {number}: sending {len(batch)} items")

        outputs = await self.provider.translate_batch(
            masked,
            self.settings.target_lang,
            self.credentials,
            self.cancel_token,
            self.settings.source_lang,
        )
        # Nothing is written once the run has been cancelled
        self.cancel_token.raise_if_cancelled()
        if len(outputs) != len(batch):
            provider_name = getattr(self.provider, "display_name", type(self.provider).__name__)
            raise LengthMismatchError(provider_name, len(batch), len(outputs))

        translations = []
        tm_entries = []
        add_to_memory = self.settings.tm_enabled and self.settings.tm_auto_add
        for item, output in zip(batch, outputs):
            text = unmask(output, item.placeholder_map)
            self.warnings.extend(check_placeholders(item, output, text))
            translations.append((item.id, text))
            if add_to_memory and text.strip() and item.source_key:
                tm_entries.append(make_entry(self.settings.target_lang, item, output))

        # sqlite work runs off the event loop; the batch lands in one transaction
        await asyncio.to_thread(self.db.commit_batch, translations, tm_entries=tm_entries)
        self.progress.done += len(batch)
        self.progress.current_batch = max(self.progress.current_batch, number)
        logger.debug(f"  Batch {number}: committed {len(batch)} items ({self.progress.done}/{self.progress.total})")
        self._report(PHASE_BATCH_DONE)
