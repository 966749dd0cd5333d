"""Shared pytest fixtures for vnlocalize tests."""

from __future__ import annotations

from typing import Callable, List, Optional

import pytest

from vnlocalize.engines.exceptions import LengthMismatchError
from vnlocalize.engines.providers import EngineKind
from vnlocalize.workspace import Workspace

SAMPLE_SCRIPT = (
    'label start:\n'
    '    e "Hello [player_name]!"\n'
    '    "The rain keeps falling."\n'
    '    e "See you {i}tomorrow{/i}."\n'
    '    $ score = 1\n'
    '    e "Goodbye."\n'
)


class FakeProvider:
    """
    Provider stand-in. translate_batch() passes each masked text through
    `translate` and records every call.
    """

    def __init__(self, translate: Optional[Callable[[str], str]] = None,
                 fail_on_call: Optional[int] = None, short_on_call: Optional[int] = None):
        self.translate = translate or (lambda text: f"VI:{text}")
        self.fail_on_call = fail_on_call
        self.short_on_call = short_on_call
        self.calls: List[List[str]] = []

    async def translate_batch(self, texts, target_language, credentials,
                              cancel_token=None, source_language=None):
        self.calls.append(list(texts))
        number = len(self.calls)
        if self.fail_on_call == number:
            raise RuntimeError("provider exploded")
        out = [self.translate(text) for text in texts]
        if self.short_on_call == number:
            out = out[:-1]
            raise LengthMismatchError("Fake", len(texts), len(out))
        return out


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def workspace(tmp_path, fake_provider) -> Workspace:
    """Workspace on a temp database whose engines all resolve to fake_provider."""

    def factory(kind: EngineKind, config, transport=None):
        return fake_provider

    ws = Workspace(tmp_path / "test.db", provider_factory=factory)
    ws.update_config({"retry": {"max_attempts": 1, "base_delay": 0, "max_delay": 0, "jitter": 0}})
    return ws


@pytest.fixture
def sample_file(workspace):
    return workspace.import_file("script.rpy", SAMPLE_SCRIPT.encode("utf-8"))
