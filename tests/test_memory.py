"""Tests for the translation memory and its storage."""

from __future__ import annotations

import pytest

from vnlocalize.core.database import Database
from vnlocalize.core.schema import DB_VERSION, get_db_version, initialize_database
from vnlocalize.engines.exceptions import TranslationError
from vnlocalize.script.masking import mask
from vnlocalize.script.models import DialogItem, tm_key
from vnlocalize.translation.memory import TranslationMemory, make_entry, restore


@pytest.fixture
def database(tmp_path) -> Database:
    db = Database(tmp_path / "tm.db")
    initialize_database(db)
    return db


@pytest.fixture
def memory(database) -> TranslationMemory:
    return TranslationMemory(database)


def item(quote: str, index: int = 0) -> DialogItem:
    masked, placeholder_map = mask(quote)
    return DialogItem(
        id=f"f:{index}", file_id="f", index=index, line_index=index + 1,
        content_start=0, content_end=len(quote), quote_char='"', is_triple=False,
        quote=quote, masked_quote=masked, placeholder_map=placeholder_map,
        cache_key=" ".join(masked.split()),
    )


class TestSchema:
    def test_version_is_recorded(self, database):
        assert get_db_version(database) == DB_VERSION

    def test_initialize_is_idempotent(self, database):
        initialize_database(database)
        assert get_db_version(database) == DB_VERSION


class TestKeys:
    def test_key_format(self):
        assert tm_key("VI", "Hello ⟦T0⟧!") == "vi::Hello ⟦T0⟧!"

    def test_entry_uses_masked_source(self):
        entry = make_entry("vi", item("Hello [player_name]!"), "Xin chào ⟦T0⟧!")
        assert entry.key == "vi::Hello ⟦T0⟧!"
        assert entry.translated_text == "Xin chào ⟦T0⟧!"
        assert entry.source_text == "Hello [player_name]!"


class TestLookup:
    def test_same_masked_text_shares_entry(self, memory):
        memory.remember("vi", item("Hello [player_name]!"), "Xin chào [player_name]!")
        hits = memory.lookup_items("vi", [item("Hello [mc]!", 1), item("Other", 2)])
        assert list(hits) == ["f:1"]
        assert hits["f:1"].translated_text == "Xin chào ⟦T0⟧!"

    def test_reuse_restores_the_receiving_items_tags(self, memory):
        memory.remember("vi", item("Hello [alice]!"), "Xin chào [alice]!")
        other = item("Hello [bob]!", 1)
        entry = memory.lookup_items("vi", [other])["f:1"]

        text, warnings = restore(other, entry)

        assert text == "Xin chào [bob]!"
        assert warnings == []

    def test_reuse_reports_lost_tokens(self, memory):
        memory.import_entries([{"target_lang": "vi", "source_key": "Hello ⟦T0⟧!",
                                "translated_text": "Xin chào!"}])
        other = item("Hello [bob]!", 1)
        text, warnings = restore(other, memory.lookup_items("vi", [other])["f:1"])
        assert text == "Xin chào!"
        assert [(w.kind, w.token) for w in warnings] == [("missing", "⟦T0⟧")]

    def test_target_language_is_part_of_key(self, memory):
        memory.remember("vi", item("Hi"), "Chào")
        assert memory.lookup("vi", "Hi") is not None
        assert memory.lookup("ja", "Hi") is None

    def test_blank_text_not_stored(self, memory):
        assert not memory.remember("vi", item("Hi"), "   ")
        assert memory.count() == 0

    def test_last_write_wins(self, memory):
        memory.remember("vi", item("Hi"), "Chào")
        memory.remember("vi", item("Hi"), "Xin chào")
        assert memory.count() == 1
        assert memory.lookup("vi", "Hi").translated_text == "Xin chào"


class TestManagement:
    def test_list_search_and_delete(self, memory):
        memory.remember("vi", item("Good morning"), "Chào buổi sáng")
        memory.remember("vi", item("Good night"), "Chúc ngủ ngon")
        memory.remember("ja", item("Good night"), "おやすみ")

        assert len(memory.list_entries()) == 3
        assert len(memory.list_entries(target_lang="vi")) == 2
        assert [e.source_text for e in memory.list_entries(search="morning")] == ["Good morning"]
        assert len(memory.list_entries(limit=1)) == 1

        assert memory.delete("ja::Good night")
        assert not memory.delete("ja::Good night")
        assert memory.clear() == 2
        assert memory.count() == 0

    def test_use_count_survives_upsert(self, memory, database):
        memory.remember("vi", item("Hi"), "Chào")
        database.commit_batch([], used_tm_keys=["vi::Hi"])
        memory.remember("vi", item("Hi"), "Xin chào")
        assert memory.lookup("vi", "Hi").use_count == 1


class TestExportImport:
    def test_round_trip(self, memory, tmp_path):
        memory.remember("vi", item("Hi"), "Chào")
        exported = memory.export()
        assert exported["version"] == 1
        assert len(exported["entries"]) == 1

        other_db = Database(tmp_path / "other.db")
        initialize_database(other_db)
        other = TranslationMemory(other_db)
        assert other.import_entries(exported) == {"imported": 1, "skipped": 0}
        assert other.lookup("vi", "Hi").translated_text == "Chào"

    def test_bad_entries_are_skipped(self, memory):
        result = memory.import_entries([
            {"target_lang": "vi", "source_key": "Hi", "translated_text": "Chào"},
            {"target_lang": "vi", "source_key": "", "translated_text": "x"},
            {"target_lang": "vi", "source_key": "Blank", "translated_text": "  "},
            "not an entry",
        ])
        assert result == {"imported": 1, "skipped": 3}

    def test_malformed_stamps_fall_back(self, memory):
        result = memory.import_entries([{
            "target_lang": "vi", "source_key": "Hi", "translated_text": "Chào",
            "created_at": "yesterday", "updated_at": None, "use_count": "many",
        }])
        assert result == {"imported": 1, "skipped": 0}
        entry = memory.lookup("vi", "Hi")
        assert entry.created_at > 0
        assert entry.use_count == 0

    def test_invalid_payload(self, memory):
        with pytest.raises(TranslationError) as exc_info:
            memory.import_entries({"entries": "nope"})
        assert exc_info.value.code == "invalid_tm_import"
