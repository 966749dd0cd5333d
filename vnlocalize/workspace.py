"""
Workspace service.

The Workspace is the per-process context every operation goes through: it
owns the database handle, reads configuration, builds providers and keeps the
registry of active runs (at most one per file).
"""

import asyncio
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import httpx

from vnlocalize.config import (
    ProjectSettings,
    get_credentials,
    initialize_app,
    load_config,
    merge_with_defaults,
    normalize_settings,
    save_config,
)
from vnlocalize.core.database import DB_FILE, Database
from vnlocalize.engines.cancellation import CancelToken
from vnlocalize.engines.exceptions import NotFoundError, TranslationError
from vnlocalize.engines.providers import EngineKind, create_provider
from vnlocalize.logger import configure_logging, get_logger
from vnlocalize.project import exporter, importer
from vnlocalize.script.models import DialogItem, FileRecord
from vnlocalize.script.masking import remask
from vnlocalize.translation.memory import TranslationMemory, make_entry, restore
from vnlocalize.translation.orchestrator import (
    BatchOrchestrator,
    ProgressCallback,
    RunResult,
    Scope,
)

logger = get_logger(__name__)

APPLY_TM_MODES = ("missing", "all")


@dataclass
class _ActiveRun:
    token: CancelToken
    task: Optional["asyncio.Task"]
    loop: Optional[asyncio.AbstractEventLoop]
    finished: threading.Event = field(default_factory=threading.Event)


class Workspace:
    """
    Entry point for file, translation, TM and export operations.

    Args:
        db_path: SQLite file backing the workspace
        provider_factory: Callable(kind, config, transport) returning a provider
        transport: Optional httpx transport handed to providers (tests)
    """

    def __init__(
        self,
        db_path: Union[str, Path] = DB_FILE,
        provider_factory: Callable[..., Any] = create_provider,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = Database(db_path)
        initialize_app(self.db)
        self.memory = TranslationMemory(self.db)
        self.provider_factory = provider_factory
        self.transport = transport
        self._runs: Dict[str, _ActiveRun] = {}
        self._runs_lock = threading.Lock()

    # ============================================================
    # Configuration
    # ============================================================

    def get_config(self) -> Dict[str, Any]:
        return load_config(self.db)

    def get_settings(self) -> ProjectSettings:
        return ProjectSettings.from_dict(self.get_config().get("translation"))

    def update_config(self, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Merge a partial config into the stored one and persist it."""
        config = self.get_config()
        for key, value in (patch or {}).items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key].update(value)
            else:
                config[key] = value
        config = merge_with_defaults(config)
        save_config(self.db, config)
        configure_logging(config.get("log_mode", "off"))
        return config

    def update_settings(self, updates: Dict[str, Any]) -> ProjectSettings:
        current = self.get_settings().to_dict()
        current.update(updates or {})
        config = self.update_config({"translation": normalize_settings(current)})
        return ProjectSettings.from_dict(config["translation"])

    # ============================================================
    # Files and dialogs
    # ============================================================

    def import_file(self, name: str, data: Union[bytes, str], mode: Optional[str] = None,
                    path: Optional[str] = None) -> FileRecord:
        """Import a source file; items the TM knows are filled when the TM is enabled."""
        settings = self.get_settings()
        mode = normalize_settings({"mode": mode or settings.mode})["mode"]
        target_lang = settings.target_lang if settings.tm_enabled else None
        return importer.import_file(self.db, name, data, mode, path, target_lang=target_lang)

    def list_files(self) -> List[Dict[str, Any]]:
        files = []
        for record in self.db.get_all_files():
            payload = record.to_dict()
            payload["translated_count"] = self.db.count_translated(record.id)
            payload["running"] = self.is_running(record.id)
            files.append(payload)
        return files

    def get_file(self, file_id: str) -> FileRecord:
        record = self.db.get_file_by_id(file_id)
        if record is None:
            raise NotFoundError("File", file_id)
        return record

    def remove_file(self, file_id: str) -> bool:
        """Delete a file and its dialogs, cancelling its run if one is active."""
        self.get_file(file_id)
        self.cancel_run(file_id)
        removed = self.db.delete_file(file_id)
        logger.info(f"Removed file {file_id}")
        return removed

    def reset(self) -> int:
        """Cancel active runs and remove every file. The TM and config survive."""
        with self._runs_lock:
            active = list(self._runs.values())
        for run in active:
            run.token.cancel()
        removed = self.db.delete_all_files()
        logger.info(f"Workspace reset: {removed} files removed")
        return removed

    def get_dialogs(self, file_id: str) -> List[DialogItem]:
        self.get_file(file_id)
        return self.db.get_dialogs_for_file(file_id)

    def get_dialog(self, dialog_id: str) -> DialogItem:
        item = self.db.get_dialog_by_id(dialog_id)
        if item is None:
            raise NotFoundError("Dialog", dialog_id)
        return item

    def update_translation(self, dialog_id: str, text: Optional[str]) -> DialogItem:
        """
        Manually set (or clear, with None) one item's translation.

        Non-blank text is also stored in the TM when tm_enabled and tm_auto_add are set.
        """
        return self.bulk_update_translations([{"id": dialog_id, "text": text}], strict=True)[0]

    def bulk_update_translations(self, updates: Sequence[Dict[str, Any]],
                                 strict: bool = False) -> List[DialogItem]:
        """
        Apply several manual edits in one transaction.

        Unknown ids are skipped unless strict is set, in which case they raise.
        """
        settings = self.get_settings()
        add_to_memory = settings.tm_enabled and settings.tm_auto_add

        translations = []
        tm_entries = []
        touched: List[str] = []
        for update in updates or []:
            dialog_id = str((update or {}).get("id") or "")
            text = update.get("text")
            text = None if text is None else str(text)
            item = self.db.get_dialog_by_id(dialog_id) if dialog_id else None
            if item is None:
                if strict:
                    raise NotFoundError("Dialog", dialog_id)
                continue
            translations.append((item.id, text))
            touched.append(item.id)
            if add_to_memory and text and text.strip() and item.source_key:
                tm_entries.append(make_entry(settings.target_lang, item, remask(text, item.placeholder_map)))

        if translations:
            self.db.commit_batch(translations, tm_entries=tm_entries)
        return [self.db.get_dialog_by_id(dialog_id) for dialog_id in touched]

    def copy_original(self, dialog_id: str) -> DialogItem:
        """Use the source text as the item's translation."""
        item = self.get_dialog(dialog_id)
        return self.update_translation(dialog_id, item.quote)

    def apply_tm(self, file_id: str, mode: str = "missing") -> int:
        """
        Fill a file's items from the translation memory.

        Args:
            mode: "missing" fills only untranslated items; "all" also overwrites

        Returns:
            Number of items changed
        """
        if mode not in APPLY_TM_MODES:
            raise TranslationError(f"Unknown apply mode: {mode}", code="invalid_mode",
                                   details={"supported": list(APPLY_TM_MODES)})
        settings = self.get_settings()
        if not settings.tm_enabled:
            return 0

        items = self.get_dialogs(file_id)
        hits = self.memory.lookup_items(settings.target_lang, items)
        translations = []
        used_keys = []
        for item in items:
            entry = hits.get(item.id)
            if entry is None:
                continue
            if mode == "missing" and item.has_translation:
                continue
            text, _ = restore(item, entry)
            if item.translated == text:
                continue
            translations.append((item.id, text))
            used_keys.append(entry.key)

        if translations:
            self.db.commit_batch(translations, used_tm_keys=used_keys)
        logger.info(f"Applied TM to {file_id}: {len(translations)} items ({mode})")
        return len(translations)

    # ============================================================
    # Translation runs
    # ============================================================

    def is_running(self, file_id: str) -> bool:
        with self._runs_lock:
            return file_id in self._runs

    def cancel_run(self, file_id: str) -> bool:
        """Request cancellation of the file's active run. Safe from any thread."""
        with self._runs_lock:
            active = self._runs.get(file_id)
        if active is None:
            return False
        active.token.cancel()
        logger.info(f"Cancellation requested for run on {file_id}")
        return True

    async def _wait_for_previous(self, previous: _ActiveRun):
        current_loop = asyncio.get_running_loop()
        if previous.task is not None and previous.loop is current_loop:
            await asyncio.wait({previous.task})
        else:
            await current_loop.run_in_executor(None, previous.finished.wait)

    async def start_run(
        self,
        file_id: str,
        scope: Union[Scope, str] = Scope.ALL,
        query: Optional[str] = None,
        selected_ids: Optional[Sequence[str]] = None,
        untranslated_only: bool = False,
        engine: Optional[Union[EngineKind, str]] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> RunResult:
        """
        Translate a file's items for the given scope.

        A run already active on the same file is cancelled, and awaited until it
        has unwound, before this one starts.
        """
        self.get_file(file_id)
        scope = Scope.parse(scope)
        config = self.get_config()
        settings = ProjectSettings.from_dict(config.get("translation"))
        kind = EngineKind.parse(engine or settings.engine)
        settings.engine = kind.value

        token = cancel_token or CancelToken()
        entry = _ActiveRun(token=token, task=asyncio.current_task(), loop=asyncio.get_running_loop())
        with self._runs_lock:
            previous = self._runs.get(file_id)
            self._runs[file_id] = entry

        try:
            if previous is not None:
                logger.info(f"Cancelling previous run on {file_id} before starting a new one")
                previous.token.cancel()
                await self._wait_for_previous(previous)

            provider = self.provider_factory(kind, config, transport=self.transport)
            orchestrator = BatchOrchestrator(
                self.db,
                provider,
                settings,
                credentials=get_credentials(config, kind.value),
                cancel_token=token,
                progress_callback=progress_callback,
            )
            return await orchestrator.run(file_id, scope, query, selected_ids, untranslated_only)
        finally:
            with self._runs_lock:
                if self._runs.get(file_id) is entry:
                    self._runs.pop(file_id, None)
            entry.finished.set()

    # ============================================================
    # Export
    # ============================================================

    def export_file(self, file_id: str):
        """(download_name, merged_text) for one file."""
        return exporter.export_file(self.db, file_id)

    def export_zip(self) -> bytes:
        return exporter.export_zip(self.db)

    def save_export(self, file_id: str, output_dir: Union[str, Path]) -> Path:
        """Write the merged file into output_dir and return its path."""
        name, merged = self.export_file(file_id)
        target = Path(output_dir) / name
        exporter.write_text_atomic(target, merged)
        return target

    # ============================================================
    # Translation memory
    # ============================================================

    def list_memory(self, target_lang: Optional[str] = None, search: Optional[str] = None,
                    limit: Optional[int] = None, offset: int = 0) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.memory.list_entries(target_lang, search, limit, offset)]

    def delete_memory(self, key: str) -> bool:
        if not self.memory.delete(key):
            raise NotFoundError("TM entry", key)
        return True

    def clear_memory(self) -> int:
        return self.memory.clear()

    def export_memory(self) -> Dict[str, Any]:
        return self.memory.export()

    def import_memory(self, payload: Any) -> Dict[str, int]:
        return self.memory.import_entries(payload)
