"""
Translation memory: a persistent (target language, source key) -> text cache.

Keys are '<target lowercased>::<normalized masked source>'. Writes overwrite
in place (last write wins) and keep no history.

Translated text is stored masked, with tokens where the tags were. Items
sharing a key may carry different tags, so each item that reuses an entry
unmasks it with its own placeholder map.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from vnlocalize.core.database import Database
from vnlocalize.engines.exceptions import PlaceholderIntegrityWarning, TranslationError
from vnlocalize.logger import get_logger
from vnlocalize.script.masking import remask, unmask
from vnlocalize.script.models import (
    DialogItem,
    TranslationMemoryEntry,
    now_ms,
    tm_key,
)
from vnlocalize.translation.validator import check_placeholders

logger = get_logger(__name__)

EXPORT_VERSION = 1


def make_entry(target_lang: str, item: DialogItem, masked_translation: str) -> TranslationMemoryEntry:
    """TM entry recording a masked translation for an item's masked source."""
    stamp = now_ms()
    source_key = item.source_key
    return TranslationMemoryEntry(
        key=tm_key(target_lang, source_key),
        target_lang=(target_lang or "").strip().lower(),
        source_key=source_key,
        source_text=item.quote,
        translated_text=masked_translation,
        created_at=stamp,
        updated_at=stamp,
    )


def restore(item: DialogItem,
            entry: TranslationMemoryEntry) -> Tuple[str, List[PlaceholderIntegrityWarning]]:
    """Unmask an entry for one item and check the item's tokens survived."""
    text = unmask(entry.translated_text, item.placeholder_map)
    return text, check_placeholders(item, entry.translated_text, text)


def _as_stamp(value: Any, default: int) -> int:
    try:
        return int(value) if value else default
    except (TypeError, ValueError):
        return default


class TranslationMemory:
    """TM operations over a workspace database."""

    def __init__(self, database: Database):
        self.db = database

    def lookup(self, target_lang: str, source_key: str) -> Optional[TranslationMemoryEntry]:
        return self.db.get_tm_entries([tm_key(target_lang, source_key)]).get(tm_key(target_lang, source_key))

    def lookup_items(self, target_lang: str,
                     items: Iterable[DialogItem]) -> Dict[str, TranslationMemoryEntry]:
        """
        Bulk lookup for items.

        Returns:
            Mapping of dialog id -> TM entry, for items with a non-blank hit
        """
        items = list(items)
        keys = {item.id: tm_key(target_lang, item.source_key) for item in items if item.source_key}
        found = self.db.get_tm_entries(keys.values())
        hits = {}
        for item_id, key in keys.items():
            entry = found.get(key)
            if entry and entry.translated_text.strip():
                hits[item_id] = entry
        return hits

    def upsert(self, entries: List[TranslationMemoryEntry]) -> int:
        return self.db.upsert_tm_entries(entries)

    def remember(self, target_lang: str, item: DialogItem, translated_text: str) -> bool:
        """Store one manual translation, written with real tags. Blank text is not stored."""
        if not (translated_text or "").strip() or not item.source_key:
            return False
        masked = remask(translated_text, item.placeholder_map)
        self.db.upsert_tm_entries([make_entry(target_lang, item, masked)])
        return True

    def list_entries(self, target_lang: Optional[str] = None, search: Optional[str] = None,
                     limit: Optional[int] = None, offset: int = 0) -> List[TranslationMemoryEntry]:
        return self.db.get_all_tm_entries(target_lang=target_lang, search=search,
                                          limit=limit, offset=offset)

    def count(self) -> int:
        return self.db.count_tm_entries()

    def delete(self, key: str) -> bool:
        return self.db.delete_tm_entry(key)

    def clear(self) -> int:
        removed = self.db.clear_tm()
        logger.info(f"Translation memory cleared ({removed} entries)")
        return removed

    def export(self) -> Dict[str, Any]:
        """Export every entry as {version, exported_at, entries}."""
        entries = self.db.get_all_tm_entries()
        return {
            "version": EXPORT_VERSION,
            "exported_at": now_ms(),
            "entries": [entry.to_dict() for entry in entries],
        }

    def import_entries(self, payload: Any) -> Dict[str, int]:
        """
        Merge an export into the TM, overwriting by key.

        Accepts the export object or a bare list of entries. Entries missing a
        target language, source key or translated text are skipped.

        Returns:
            {"imported": n, "skipped": m}
        """
        if isinstance(payload, dict):
            raw_entries = payload.get("entries")
        else:
            raw_entries = payload
        if not isinstance(raw_entries, list):
            raise TranslationError(
                "Invalid translation memory file: expected an entries list",
                code="invalid_tm_import",
            )

        stamp = now_ms()
        entries: List[TranslationMemoryEntry] = []
        skipped = 0
        for raw in raw_entries:
            if not isinstance(raw, dict):
                skipped += 1
                continue
            target_lang = str(raw.get("target_lang") or "").strip().lower()
            source_key = str(raw.get("source_key") or "").strip()
            translated_text = raw.get("translated_text")
            if not target_lang or not source_key or not isinstance(translated_text, str) \
                    or not translated_text.strip():
                skipped += 1
                continue
            entries.append(TranslationMemoryEntry(
                key=tm_key(target_lang, source_key),
                target_lang=target_lang,
                source_key=source_key,
                source_text=str(raw.get("source_text") or source_key),
                translated_text=translated_text,
                created_at=_as_stamp(raw.get("created_at"), stamp),
                updated_at=_as_stamp(raw.get("updated_at"), stamp),
                use_count=_as_stamp(raw.get("use_count"), 0),
            ))

        self.db.upsert_tm_entries(entries)
        logger.info(f"Imported {len(entries)} TM entries ({skipped} skipped)")
        return {"imported": len(entries), "skipped": skipped}
