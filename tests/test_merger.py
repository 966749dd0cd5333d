"""Tests for splicing translations back into source text."""

from __future__ import annotations

from dataclasses import replace

import pytest

from vnlocalize.engines.exceptions import ExtractionError
from vnlocalize.script.extractor import MODE_AGGRESSIVE, MODE_SAFE, extract_dialogs
from vnlocalize.script.merger import (
    apply_translations,
    escape_for,
    escape_json,
    escape_single_line,
    escape_triple,
)
from vnlocalize.script.models import (
    EOL_CRLF,
    EOL_LF,
    FORMAT_JSON,
    FORMAT_SCRIPT,
    DialogItem,
    detect_eol,
)

from conftest import SAMPLE_SCRIPT


def items_for(text: str, file_format: str = FORMAT_SCRIPT, mode: str = MODE_SAFE):
    spans = extract_dialogs(text, file_format, mode)
    return [DialogItem.from_span("f", index, span) for index, span in enumerate(spans)]


class TestEscaping:
    def test_single_line_delimiter_and_newline(self):
        assert escape_single_line('Say "hi"\nnow', '"') == 'Say \\"hi\\"\\nnow'

    def test_single_line_other_quote_untouched(self):
        assert escape_single_line("It's fine", '"') == "It's fine"
        assert escape_single_line("It's", "'") == "It\\'s"

    def test_existing_escape_pairs_are_kept(self):
        assert escape_single_line('Keep \\n and \\"', '"') == 'Keep \\n and \\"'

    def test_trailing_backslash_is_doubled(self):
        assert escape_single_line("end\\", '"') == "end\\\\"

    def test_triple_uses_file_eol(self):
        assert escape_triple("one\ntwo", '"', EOL_CRLF) == "one\r\ntwo"

    def test_triple_escapes_only_dangerous_quotes(self):
        assert escape_triple('a "b" c', '"') == 'a "b" c'
        assert escape_triple('x """ y', '"') == 'x \\""" y'
        assert escape_triple('ends with "', '"') == 'ends with \\"'

    def test_json_keeps_non_ascii(self):
        assert escape_json('Xin chào "bạn"\n') == 'Xin chào \\"bạn\\"\\n'


class TestApplyTranslations:
    def test_untouched_items_reproduce_source(self):
        assert apply_translations(SAMPLE_SCRIPT, EOL_LF, items_for(SAMPLE_SCRIPT)) == SAMPLE_SCRIPT

    def test_player_name_scenario(self):
        text = 'e "Hello [player_name]!"\n'
        (item,) = items_for(text)
        item.translated = "Xin chào [player_name]!"
        assert apply_translations(text, EOL_LF, [item]) == 'e "Xin chào [player_name]!"\n'

    def test_all_items_spliced_with_length_changes(self):
        items = items_for(SAMPLE_SCRIPT)
        for item in items:
            item.translated = f"<<{item.quote}>> longer"
        merged = apply_translations(SAMPLE_SCRIPT, EOL_LF, items)
        for item in items:
            assert f'"<<{item.quote}>> longer"' in merged
        assert merged.count("\n") == SAMPLE_SCRIPT.count("\n")
        assert "$ score = 1" in merged

    def test_item_order_does_not_matter(self):
        items = items_for(SAMPLE_SCRIPT)
        for item in items:
            item.translated = item.quote.upper() + "!!"
        forward = apply_translations(SAMPLE_SCRIPT, EOL_LF, items)
        backward = apply_translations(SAMPLE_SCRIPT, EOL_LF, list(reversed(items)))
        assert forward == backward

    def test_items_sharing_a_line(self):
        text = 'e "Hi" with Fade("slow")\n'
        items = items_for(text, mode=MODE_AGGRESSIVE)
        assert [item.quote for item in items] == ["Hi", "slow"]
        items[0].translated = "Xin chào bạn"
        items[1].translated = "s"
        assert apply_translations(text, EOL_LF, items) == 'e "Xin chào bạn" with Fade("s")\n'

    def test_json_items_sharing_a_line(self):
        text = '["Hi", "Yo"]\n'
        items = items_for(text, FORMAT_JSON)
        items[0].translated = "A"
        items[1].translated = "Tạm biệt nhé"
        assert apply_translations(text, EOL_LF, items, FORMAT_JSON) == '["A", "Tạm biệt nhé"]\n'

    @pytest.mark.parametrize("text,file_format", [
        ('e "She said \\"hi\\" and left"\ne \'It\\\'s late\'\n', FORMAT_SCRIPT),
        ('e """Two "quoted"\nlines"""\n', FORMAT_SCRIPT),
        ('{"a": "Say \\"hi\\"\\nbye", "b": "Tab\\there"}\n', FORMAT_JSON),
    ])
    def test_escaping_the_source_text_reproduces_it(self, text, file_format):
        items = items_for(text, file_format)
        assert items
        for item in items:
            escaped = escape_for(item, item.quote, file_format, detect_eol(text))
            assert escaped == text[item.content_start:item.content_end]

    def test_blank_and_identical_translations_are_skipped(self):
        items = items_for(SAMPLE_SCRIPT)
        items[0].translated = "   "
        items[1].translated = items[1].quote
        items[2].translated = None
        assert apply_translations(SAMPLE_SCRIPT, EOL_LF, items) == SAMPLE_SCRIPT

    def test_quotes_in_translation_are_escaped(self):
        text = 'e "Hi"\n'
        (item,) = items_for(text)
        item.translated = 'Say "Hi"'
        assert apply_translations(text, EOL_LF, [item]) == 'e "Say \\"Hi\\""\n'

    def test_crlf_triple_quoted(self):
        text = 'e """Line one\r\nLine two"""\r\n'
        (item,) = items_for(text)
        item.translated = "Dòng một\nDòng hai"
        merged = apply_translations(text, detect_eol(text), [item])
        assert merged == 'e """Dòng một\r\nDòng hai"""\r\n'

    def test_json_round_trip(self):
        text = '{\n  "a": "Hello",\n  "b": ["World", 2]\n}\n'
        items = items_for(text, FORMAT_JSON)
        items[0] = replace(items[0], translated='Xin "chào"')
        merged = apply_translations(text, EOL_LF, items, FORMAT_JSON)
        assert merged == '{\n  "a": "Xin \\"chào\\"",\n  "b": ["World", 2]\n}\n'

    def test_unknown_format(self):
        with pytest.raises(ExtractionError):
            apply_translations("x", EOL_LF, [], "xml")
