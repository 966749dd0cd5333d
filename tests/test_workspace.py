"""Tests for the Workspace service: files, edits, TM application, export and config."""

from __future__ import annotations

import asyncio
import io
import json
import zipfile

import pytest

from vnlocalize.config import BATCH_SIZE_MAX, DEFAULT_SETTINGS, load_config
from vnlocalize.engines.exceptions import ExtractionError, NotFoundError, TranslationError
from vnlocalize.workspace import Workspace

from conftest import SAMPLE_SCRIPT


class TestFiles:
    def test_import_and_list(self, workspace, sample_file):
        assert sample_file.name == "script.rpy"
        assert sample_file.dialog_count == 4
        (listed,) = workspace.list_files()
        assert listed["id"] == sample_file.id
        assert listed["translated_count"] == 0
        assert listed["running"] is False
        assert "source_text" not in listed

    def test_import_keeps_source_snapshot(self, workspace):
        text = 'e "Hi"\r\ne "Bye"\r\n'
        record = workspace.import_file("crlf.rpy", text.encode("utf-8"))
        stored = workspace.get_file(record.id)
        assert stored.source_text == text
        assert stored.eol == "\r\n"

    def test_relative_path_is_cleaned(self, workspace):
        record = workspace.import_file("day1.rpy", 'e "Hi"\n', path="/game/../chapters/day1.rpy")
        assert record.path == "game/chapters/day1.rpy"

    def test_rejects_unknown_extension(self, workspace):
        with pytest.raises(ExtractionError):
            workspace.import_file("notes.txt", b"hello")

    def test_rejects_invalid_utf8(self, workspace):
        with pytest.raises(ExtractionError):
            workspace.import_file("bad.rpy", b"e \"\xff\xfe\"\n")

    def test_mode_override(self, workspace):
        text = 'menu:\n    "Go left":\n        pass\n'
        assert workspace.import_file("a.rpy", text).dialog_count == 0
        assert workspace.import_file("b.rpy", text, mode="balanced").dialog_count == 1

    def test_import_fills_items_the_memory_knows(self, workspace, sample_file):
        first = workspace.get_dialogs(sample_file.id)[0]
        workspace.update_translation(first.id, "Xin chào [player_name]!")

        copy = workspace.import_file("copy.rpy", SAMPLE_SCRIPT)

        assert [i.translated for i in workspace.get_dialogs(copy.id)] == ["Xin chào [player_name]!", None, None, None]

    def test_import_fill_uses_the_new_files_tags(self, workspace):
        record = workspace.import_file("a.rpy", 'e "Hello [alice]!"\n')
        workspace.update_translation(workspace.get_dialogs(record.id)[0].id, "Xin chào [alice]!")

        other = workspace.import_file("b.rpy", 'e "Hello [bob]!"\n')

        assert [i.translated for i in workspace.get_dialogs(other.id)] == ["Xin chào [bob]!"]

    def test_no_import_fill_when_memory_disabled(self, workspace, sample_file):
        workspace.update_translation(workspace.get_dialogs(sample_file.id)[0].id, "Chào")
        workspace.update_settings({"tm_enabled": False})
        copy = workspace.import_file("copy.rpy", SAMPLE_SCRIPT)
        assert [i.translated for i in workspace.get_dialogs(copy.id)] == [None] * 4

    def test_reset_removes_files_and_keeps_memory(self, workspace, sample_file):
        workspace.update_translation(workspace.get_dialogs(sample_file.id)[0].id, "Chào [player_name]!")
        workspace.import_file("b.rpy", 'e "Bye"\n')

        assert workspace.reset() == 2

        assert workspace.list_files() == []
        with pytest.raises(NotFoundError):
            workspace.get_dialog(f"{sample_file.id}:0")
        assert workspace.memory.count() == 1
        assert workspace.get_settings().target_lang == "vi"

    def test_remove_file(self, workspace, sample_file):
        assert workspace.remove_file(sample_file.id)
        assert workspace.list_files() == []
        with pytest.raises(NotFoundError):
            workspace.get_dialogs(sample_file.id)

    def test_unknown_ids(self, workspace):
        with pytest.raises(NotFoundError):
            workspace.get_file("file_missing")
        with pytest.raises(NotFoundError):
            workspace.get_dialog("file_missing:0")


class TestEdits:
    def test_update_translation_feeds_memory(self, workspace, sample_file):
        dialog = workspace.get_dialogs(sample_file.id)[0]
        updated = workspace.update_translation(dialog.id, "Xin chào [player_name]!")
        assert updated.translated == "Xin chào [player_name]!"
        assert workspace.memory.lookup("vi", "Hello ⟦T0⟧!").translated_text == "Xin chào ⟦T0⟧!"
        assert workspace.list_files()[0]["translated_count"] == 1

    def test_clear_translation(self, workspace, sample_file):
        dialog = workspace.get_dialogs(sample_file.id)[0]
        workspace.update_translation(dialog.id, "x")
        assert workspace.update_translation(dialog.id, None).translated is None

    def test_update_unknown_dialog(self, workspace):
        with pytest.raises(NotFoundError):
            workspace.update_translation("nope:1", "x")

    def test_bulk_update_skips_unknown(self, workspace, sample_file):
        ids = [d.id for d in workspace.get_dialogs(sample_file.id)]
        items = workspace.bulk_update_translations([
            {"id": ids[0], "text": "A"},
            {"id": "ghost:9", "text": "B"},
            {"id": ids[2], "text": "C"},
        ])
        assert [i.translated for i in items] == ["A", "C"]
        assert workspace.list_files()[0]["translated_count"] == 2

    def test_copy_original(self, workspace, sample_file):
        dialog = workspace.get_dialogs(sample_file.id)[1]
        assert workspace.copy_original(dialog.id).translated == "The rain keeps falling."


class TestApplyMemory:
    def test_missing_and_all_modes(self, workspace, sample_file):
        copy = workspace.import_file("copy.rpy", SAMPLE_SCRIPT)
        first, second = workspace.get_dialogs(sample_file.id)[:2]
        workspace.update_translation(first.id, "Chào")
        workspace.update_translation(second.id, "Mưa")

        copy_items = workspace.get_dialogs(copy.id)
        workspace.bulk_update_translations([{"id": copy_items[1].id, "text": "Manual"}])
        # Manual edit also replaced the TM entry for that source
        workspace.update_translation(second.id, "Mưa")

        assert workspace.apply_tm(copy.id, "missing") == 1
        assert [i.translated for i in workspace.get_dialogs(copy.id)][:2] == ["Chào", "Manual"]

        assert workspace.apply_tm(copy.id, "all") == 1
        assert [i.translated for i in workspace.get_dialogs(copy.id)][:2] == ["Chào", "Mưa"]

    def test_apply_restores_the_files_own_tags(self, workspace):
        alice = workspace.import_file("a.rpy", 'e "Hello [alice]!"\n')
        bob = workspace.import_file("b.rpy", 'e "Hello [bob]!"\n')
        workspace.update_translation(workspace.get_dialogs(alice.id)[0].id, "Xin chào [alice]!")

        assert workspace.apply_tm(bob.id) == 1
        assert [i.translated for i in workspace.get_dialogs(bob.id)] == ["Xin chào [bob]!"]

    def test_invalid_mode(self, workspace, sample_file):
        with pytest.raises(TranslationError) as exc_info:
            workspace.apply_tm(sample_file.id, "everything")
        assert exc_info.value.code == "invalid_mode"

    def test_disabled_memory_applies_nothing(self, workspace, sample_file):
        workspace.update_translation(workspace.get_dialogs(sample_file.id)[0].id, "Chào")
        copy = workspace.import_file("copy.rpy", SAMPLE_SCRIPT)
        workspace.update_settings({"tm_enabled": False})
        assert workspace.apply_tm(copy.id) == 0


class TestExport:
    def test_untranslated_export_is_byte_identical(self, workspace, sample_file):
        name, text = workspace.export_file(sample_file.id)
        assert name == "script_translated.rpy"
        assert text == SAMPLE_SCRIPT

    def test_zip_uses_relative_paths(self, workspace):
        workspace.import_file("a.rpy", 'e "Hi"\n', path="game/a.rpy")
        record = workspace.import_file("b.json", '{"x": "Bye"}')
        workspace.update_translation(workspace.get_dialogs(record.id)[0].id, "Tạm biệt")

        archive = zipfile.ZipFile(io.BytesIO(workspace.export_zip()))
        assert sorted(archive.namelist()) == ["b.json", "game/a.rpy"]
        assert json.loads(archive.read("b.json").decode("utf-8")) == {"x": "Tạm biệt"}

    def test_zip_keeps_files_with_the_same_path(self, workspace):
        workspace.import_file("a.rpy", 'e "One"\n', path="game/a.rpy")
        workspace.import_file("a.rpy", 'e "Two"\n', path="game/a.rpy")
        workspace.import_file("a.rpy", 'e "Three"\n', path="game/a.rpy")

        archive = zipfile.ZipFile(io.BytesIO(workspace.export_zip()))
        assert sorted(archive.namelist()) == ["game/a (2).rpy", "game/a (3).rpy", "game/a.rpy"]
        contents = sorted(archive.read(name).decode("utf-8") for name in archive.namelist())
        assert contents == ['e "One"\n', 'e "Three"\n', 'e "Two"\n']

    def test_save_export_keeps_line_endings(self, workspace, tmp_path):
        record = workspace.import_file("crlf.rpy", 'e "Hi"\r\n')
        workspace.update_translation(workspace.get_dialogs(record.id)[0].id, "Chào")
        target = workspace.save_export(record.id, tmp_path / "out")
        assert target.name == "crlf_translated.rpy"
        assert target.read_bytes() == 'e "Chào"\r\n'.encode("utf-8")

    def test_export_unknown_file(self, workspace):
        with pytest.raises(NotFoundError):
            workspace.export_file("file_missing")


class TestConfig:
    def test_defaults(self, workspace):
        settings = workspace.get_settings()
        assert settings.target_lang == DEFAULT_SETTINGS["target_lang"]
        assert settings.engine == "deepseek"

    def test_settings_are_clamped(self, workspace):
        settings = workspace.update_settings({"batch_size": 999, "concurrency": 0, "engine": "nope"})
        assert settings.batch_size == BATCH_SIZE_MAX
        assert settings.concurrency == 1
        assert settings.engine == "deepseek"

    def test_partial_config_update_keeps_other_keys(self, workspace):
        workspace.update_config({"deepl": {"api_key": "abc:fx"}})
        config = workspace.get_config()
        assert config["deepl"]["api_key"] == "abc:fx"
        assert config["deepl"]["timeout"] == 60

    def test_corrupt_config_falls_back_to_defaults(self, workspace):
        workspace.db.set_app_config("config", "{not json")
        config = load_config(workspace.db)
        assert config["translation"]["target_lang"] == "vi"
        assert json.loads(workspace.db.get_app_config("config"))

    def test_config_persists_across_instances(self, tmp_path):
        Workspace(tmp_path / "w.db").update_settings({"target_lang": "ja"})
        assert Workspace(tmp_path / "w.db").get_settings().target_lang == "ja"


class TestRuns:
    def test_unknown_file(self, workspace):
        with pytest.raises(NotFoundError):
            asyncio.run(workspace.start_run("file_missing"))

    def test_unknown_scope(self, workspace, sample_file):
        with pytest.raises(TranslationError) as exc_info:
            asyncio.run(workspace.start_run(sample_file.id, scope="chapter"))
        assert exc_info.value.code == "invalid_scope"

    def test_cancel_without_run(self, workspace, sample_file):
        assert workspace.cancel_run(sample_file.id) is False
