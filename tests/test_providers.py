"""Tests for the provider adapters, faking the network with httpx.MockTransport."""

from __future__ import annotations

import asyncio
import json
from urllib.parse import unquote

import httpx
import pytest

from vnlocalize.config import DEFAULT_CONFIG, merge_with_defaults
from vnlocalize.engines.cancellation import CancelToken
from vnlocalize.engines.exceptions import (
    CredentialsError,
    LengthMismatchError,
    ProviderError,
    RunCancelled,
    TranslationError,
)
from vnlocalize.engines.providers import (
    DEEPL_FREE_ENDPOINT,
    DEEPL_PRO_ENDPOINT,
    DeepLProvider,
    EngineKind,
    LingvaProvider,
    LLMProvider,
    create_provider,
)
from vnlocalize.engines.retry import RetryPolicy

FAST = RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, jitter=0)
KEY = {"api_key": "secret"}


class Recorder:
    """MockTransport handler replaying canned responses and keeping the requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        template = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return httpx.Response(template.status_code, headers=template.headers, content=template.content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def chat_reply(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


class TestLLMProvider:
    def test_translates_batch(self):
        recorder = Recorder(chat_reply('["Xin chào ⟦T0⟧!", "Tạm biệt."]'))
        provider = LLMProvider(DEFAULT_CONFIG["deepseek"], FAST, recorder.transport)

        result = asyncio.run(provider.translate_batch(["Hello ⟦T0⟧!", "Goodbye."], "vi", KEY))

        assert result == ["Xin chào ⟦T0⟧!", "Tạm biệt."]
        request = recorder.requests[0]
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body["model"] == "deepseek-chat"
        assert body["stream"] is False
        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert "Vietnamese" in body["messages"][1]["content"]
        assert '"Hello ⟦T0⟧!"' in body["messages"][1]["content"]

    def test_lenient_parsing(self):
        fenced = '```json\n{"translations": ["Một", "Hai"]}\n```'
        recorder = Recorder(chat_reply(fenced))
        provider = LLMProvider({}, FAST, recorder.transport)
        assert asyncio.run(provider.translate_batch(["One", "Two"], "vi", KEY)) == ["Một", "Hai"]

    def test_length_mismatch_is_not_retried(self):
        recorder = Recorder(chat_reply('["a", "b", "c"]'))
        provider = LLMProvider({}, FAST, recorder.transport)
        with pytest.raises(LengthMismatchError) as exc_info:
            asyncio.run(provider.translate_batch(["1", "2", "3", "4"], "vi", KEY))
        assert exc_info.value.expected == 4
        assert exc_info.value.received == 3
        assert len(recorder.requests) == 1

    def test_missing_credentials_makes_no_request(self):
        recorder = Recorder(chat_reply('["x"]'))
        provider = LLMProvider({}, FAST, recorder.transport)
        with pytest.raises(CredentialsError):
            asyncio.run(provider.translate_batch(["x"], "vi", {}))
        assert recorder.requests == []

    def test_server_error_is_retried(self):
        recorder = Recorder(httpx.Response(503, text="busy"), chat_reply('["ok"]'))
        provider = LLMProvider({}, FAST, recorder.transport)
        assert asyncio.run(provider.translate_batch(["x"], "vi", KEY)) == ["ok"]
        assert len(recorder.requests) == 2

    def test_auth_error_is_not_retried(self):
        recorder = Recorder(httpx.Response(401, json={"error": {"message": "bad key"}}))
        provider = LLMProvider({}, FAST, recorder.transport)
        with pytest.raises(ProviderError) as exc_info:
            asyncio.run(provider.translate_batch(["x"], "vi", KEY))
        assert exc_info.value.status == 401
        assert not exc_info.value.retryable
        assert "bad key" in str(exc_info.value)
        assert len(recorder.requests) == 1

    def test_retries_are_bounded(self):
        recorder = Recorder(httpx.Response(500, text="down"))
        provider = LLMProvider({}, FAST, recorder.transport)
        with pytest.raises(ProviderError):
            asyncio.run(provider.translate_batch(["x"], "vi", KEY))
        assert len(recorder.requests) == FAST.max_attempts

    def test_garbage_output(self):
        recorder = Recorder(chat_reply("I cannot help with that."))
        provider = LLMProvider({}, RetryPolicy(max_attempts=1), recorder.transport)
        with pytest.raises(ProviderError) as exc_info:
            asyncio.run(provider.translate_batch(["x"], "vi", KEY))
        assert exc_info.value.code == "malformed_response"

    def test_cancelled_token_stops_before_request(self):
        recorder = Recorder(chat_reply('["x"]'))
        provider = LLMProvider({}, FAST, recorder.transport)
        token = CancelToken()
        token.cancel()
        with pytest.raises(RunCancelled):
            asyncio.run(provider.translate_batch(["x"], "vi", KEY, token))
        assert recorder.requests == []


class TestDeepLProvider:
    def test_endpoint_selection(self):
        provider = DeepLProvider({}, FAST)
        assert provider.endpoint_for("abc:fx") == DEEPL_FREE_ENDPOINT + "/v2/translate"
        assert provider.endpoint_for("abc") == DEEPL_PRO_ENDPOINT + "/v2/translate"
        custom = DeepLProvider({"endpoint": "https://relay.example/"}, FAST)
        assert custom.endpoint_for("abc:fx") == "https://relay.example/v2/translate"

    def test_body(self):
        provider = DeepLProvider({}, FAST)
        body = provider.build_body(["Hi"], "ja", "en")
        assert body == {
            "text": ["Hi"],
            "target_lang": "JA",
            "preserve_formatting": 1,
            "split_sentences": "0",
            "source_lang": "EN",
            "model_type": "quality_optimized",
        }
        auto = provider.build_body(["Hi"], "de", "auto")
        assert "source_lang" not in auto
        assert "model_type" not in auto

    def test_translates_batch(self):
        recorder = Recorder(httpx.Response(200, json={"translations": [{"text": "Hallo"}, {"text": "Welt"}]}))
        provider = DeepLProvider({}, FAST, recorder.transport)

        result = asyncio.run(provider.translate_batch(["Hello", "World"], "de", {"api_key": "k:fx"}))

        assert result == ["Hallo", "Welt"]
        request = recorder.requests[0]
        assert str(request.url) == DEEPL_FREE_ENDPOINT + "/v2/translate"
        assert request.headers["Authorization"] == "DeepL-Auth-Key k:fx"
        assert json.loads(request.content)["text"] == ["Hello", "World"]

    def test_unsupported_target(self):
        recorder = Recorder(httpx.Response(200, json={"translations": []}))
        provider = DeepLProvider({}, FAST, recorder.transport)
        with pytest.raises(ProviderError) as exc_info:
            asyncio.run(provider.translate_batch(["Hello"], "vi", KEY))
        assert exc_info.value.code == "unsupported_language"
        assert recorder.requests == []


class TestLingvaProvider:
    def test_one_request_per_line(self):
        recorder = Recorder(httpx.Response(200, json={"translation": "Xin chào"}))
        provider = LingvaProvider({}, FAST, recorder.transport, base_url="https://lingva.example/")

        result = asyncio.run(provider.translate_batch(["Hello ⟦T0⟧", "   ", "Bye"], "vi", None))

        assert result == ["Xin chào", "   ", "Xin chào"]
        assert len(recorder.requests) == 2
        url = recorder.requests[0].url
        assert url.host == "lingva.example"
        assert unquote(url.raw_path.decode()) == "/api/v1/auto/vi/Hello ⟦T0⟧"

    def test_rotates_mirrors_on_failure(self):
        recorder = Recorder(
            httpx.Response(503, text="down"),
            httpx.Response(200, json={"translation": "Hola"}),
        )
        policy = RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, jitter=0)
        provider = LingvaProvider({}, policy, recorder.transport, base_url="https://first.example")
        provider.line_policy = lambda count: RetryPolicy(max_attempts=min(count, 4), base_delay=0,
                                                         max_delay=0, jitter=0)

        assert asyncio.run(provider.translate_batch(["Hello"], "es", None, source_language="en")) == ["Hola"]
        hosts = [request.url.host for request in recorder.requests]
        assert hosts[0] == "first.example"
        assert hosts[1] != "first.example"
        assert "/api/v1/en/es/" in str(recorder.requests[1].url)

    def test_candidate_urls_deduplicated(self):
        provider = LingvaProvider({}, FAST, base_url="https://lingva.lunar.icu/")
        urls = provider.candidate_urls()
        assert urls[0] == "https://lingva.lunar.icu"
        assert len(urls) == len(set(urls))

    def test_line_attempts_are_capped(self):
        provider = LingvaProvider({}, FAST)
        assert provider.line_policy(6).max_attempts == LingvaProvider.MAX_LINE_ATTEMPTS
        assert provider.line_policy(2).max_attempts == 2


class TestCreateProvider:
    def test_engine_kinds(self):
        config = merge_with_defaults({"translation": {"lingva_base_url": "https://mine.example"}})
        assert isinstance(create_provider(EngineKind.DEEPSEEK, config), LLMProvider)
        assert isinstance(create_provider("deepl", config), DeepLProvider)
        lingva = create_provider(EngineKind.LINGVA, config)
        assert isinstance(lingva, LingvaProvider)
        assert lingva.base_url == "https://mine.example"

    def test_enum_members_build_their_own_engine(self):
        config = merge_with_defaults({})
        assert EngineKind.parse(EngineKind.DEEPL) is EngineKind.DEEPL
        assert isinstance(create_provider(EngineKind.DEEPL, config), DeepLProvider)
        assert isinstance(create_provider(EngineKind.DEEPSEEK, config), LLMProvider)

    def test_lingva_mirror_comes_from_translation_settings(self):
        config = merge_with_defaults({"lingva": {"base_url": "https://ignored.example"}})
        assert create_provider(EngineKind.LINGVA, config).base_url == "https://lingva.lunar.icu"

    def test_unknown_engine(self):
        with pytest.raises(TranslationError) as exc_info:
            EngineKind.parse("babelfish")
        assert exc_info.value.code == "unknown_engine"
