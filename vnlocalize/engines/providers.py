"""
Translation Provider Implementations

One adapter per engine, all behind TranslationProvider.translate_batch():
- DeepSeek (OpenAI-compatible chat completions, whole batch as a JSON array)
- DeepL (REST /v2/translate with text[])
- Lingva (one GET per line, rotating across public mirrors)

Every adapter returns exactly one string per input line or raises.
"""

import json
from enum import Enum
from typing import Any, Awaitable, Dict, List, Optional, TypeVar
from urllib.parse import quote

import httpx

from vnlocalize import language_codes as lc
from vnlocalize.config import DEFAULT_SYSTEM_MESSAGE, get_prompt
from vnlocalize.engines.cancellation import CancelToken
from vnlocalize.engines.exceptions import (
    CredentialsError,
    LengthMismatchError,
    ProviderError,
    RunCancelled,
    TranslationError,
)
from vnlocalize.engines.retry import RetryPolicy, with_retry
from vnlocalize.logger import get_logger
from vnlocalize.translation.utils import parse_translations_response

logger = get_logger(__name__)

T = TypeVar("T")

# HTTP statuses that will not succeed on a plain retry
NON_RETRYABLE_STATUSES = frozenset({400, 401, 403})

DEEPL_FREE_ENDPOINT = "https://api-free.deepl.com"
DEEPL_PRO_ENDPOINT = "https://api.deepl.com"

LINGVA_BASE_URLS = [
    "https://lingva.lunar.icu",
    "https://lingva.dialectapp.org",
    "https://lingva.ml",
    "https://lingva.vercel.app",
    "https://translate.plausibility.cloud",
    "https://lingva.garudalinux.org",
]


class EngineKind(str, Enum):
    DEEPSEEK = "deepseek"
    DEEPL = "deepl"
    LINGVA = "lingva"

    @classmethod
    def parse(cls, value: Any) -> "EngineKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            raise TranslationError(
                f"Unknown translation engine: {value}",
                code="unknown_engine",
                details={"engine": value, "supported": [e.value for e in cls]},
            )


def get_httpx_timeout(timeout_config: Any) -> httpx.Timeout:
    """
    Convert timeout configuration to httpx.Timeout object.

    Args:
        timeout_config: Either a number (read timeout) or a dict with
            connect, write, read, pool keys

    Returns:
        httpx.Timeout object
    """
    if isinstance(timeout_config, dict):
        return httpx.Timeout(
            connect=timeout_config.get('connect', 10.0),
            write=timeout_config.get('write', 60.0),
            read=timeout_config.get('read', 120.0),
            pool=timeout_config.get('pool', 10.0),
        )
    else:
        timeout_value = float(timeout_config) if timeout_config else 120.0
        return httpx.Timeout(
            connect=10.0,
            write=60.0,
            read=timeout_value,
            pool=10.0,
        )


def handle_http_error(e: httpx.HTTPStatusError, provider: str):
    """Turn a non-success response into a ProviderError with a readable message."""
    status_code = e.response.status_code
    error_text = "Unknown error"

    try:
        error_json = e.response.json()
        if isinstance(error_json, dict) and "error" in error_json:
            error_detail = error_json["error"]
            if isinstance(error_detail, dict):
                error_text = error_detail.get("message", str(error_detail))
            else:
                error_text = str(error_detail)
        elif isinstance(error_json, dict) and "message" in error_json:
            error_text = str(error_json["message"])
        else:
            error_text = e.response.text[:500]
    except ValueError:
        error_text = e.response.text[:500] or "No details"

    raise ProviderError(
        f"{provider} API error ({status_code}): {error_text}",
        status=status_code,
        retryable=status_code not in NON_RETRYABLE_STATUSES,
        details={"provider": provider},
    )


class TranslationProvider:
    """Base adapter: credential check, retry loop, HTTP plumbing, length contract."""

    kind: EngineKind
    display_name = "Provider"
    requires_credentials = True

    def __init__(self, provider_config: Dict[str, Any], retry_policy: RetryPolicy,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = provider_config or {}
        self.retry_policy = retry_policy
        self.transport = transport
        self.timeout = self.config.get('timeout', 120)

    async def translate_batch(
        self,
        texts: List[str],
        target_language: str,
        credentials: Optional[Dict[str, str]],
        cancel_token: Optional[CancelToken] = None,
        source_language: Optional[str] = None,
    ) -> List[str]:
        """
        Translate masked texts, one output per input, in order.

        Raises:
            CredentialsError: Before any network call when credentials are missing
            LengthMismatchError: When the provider returns a different count
            ProviderError: When the retry budget is spent
            RunCancelled: When cancel_token fires
        """
        if not texts:
            return []
        api_key = self._require_credentials(credentials)

        async def attempt_once(attempt: int) -> List[str]:
            if attempt:
                logger.info(f"  {self.display_name} retry attempt {attempt + 1}/{self.retry_policy.max_attempts}")
            return await self._translate_once(texts, target_language, api_key, cancel_token, source_language)

        translations = await with_retry(attempt_once, self.retry_policy, cancel_token)
        self._check_length(translations, len(texts))
        return translations

    async def _translate_once(self, texts: List[str], target_language: str, api_key: str,
                              cancel_token: Optional[CancelToken],
                              source_language: Optional[str]) -> List[str]:
        raise NotImplementedError

    def _require_credentials(self, credentials: Optional[Dict[str, str]]) -> str:
        if not self.requires_credentials:
            return ""
        api_key = str((credentials or {}).get('api_key') or '').strip()
        if not api_key:
            raise CredentialsError(f"{self.display_name} API key is required.", provider=self.kind.value)
        return api_key

    def _check_length(self, translations: List[str], expected: int):
        if len(translations) != expected:
            raise LengthMismatchError(self.display_name, expected, len(translations))

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=get_httpx_timeout(self.timeout), transport=self.transport)

    @staticmethod
    async def _wait(cancel_token: Optional[CancelToken], awaitable: Awaitable[T]) -> T:
        if cancel_token is None:
            return await awaitable
        return await cancel_token.guard(awaitable)

    async def _request(self, cancel_token: Optional[CancelToken], method: str, url: str,
                       **kwargs) -> httpx.Response:
        """Send one request, raced against cancellation, mapping failures to ProviderError."""
        try:
            async with self._client() as client:
                response = await self._wait(cancel_token, client.request(method, url, **kwargs))
                response.raise_for_status()
                return response
        except RunCancelled:
            raise
        except httpx.HTTPStatusError as e:
            handle_http_error(e, self.display_name)
        except httpx.TimeoutException:
            raise ProviderError(f"{self.display_name} API request timeout", code="timeout")
        except httpx.TransportError as e:
            raise ProviderError(f"{self.display_name} connection failed: {e}", code="transport_error")

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            raise ProviderError(
                f"{self.display_name} returned a non-JSON response: {response.text[:200]}",
                status=response.status_code,
                code="malformed_response",
            )


class LLMProvider(TranslationProvider):
    """DeepSeek chat completions; the whole batch travels as one JSON array."""

    kind = EngineKind.DEEPSEEK
    display_name = "DeepSeek"

    def __init__(self, provider_config: Dict[str, Any], retry_policy: RetryPolicy,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(provider_config, retry_policy, transport)
        self.api_url = self.config.get('api_url') or 'https://api.deepseek.com/chat/completions'
        self.model = self.config.get('model') or 'deepseek-chat'
        self.system_message = self.config.get('system_message') or DEFAULT_SYSTEM_MESSAGE

    def build_prompt(self, texts: List[str], target_language: str) -> str:
        """Build the array translation prompt using the configured template."""
        prompt_template = get_prompt('array_translation_prompt')['prompt']
        return prompt_template.format(
            target_language_name=lc.language_label(target_language),
            target_language_code=target_language,
            text_count=len(texts),
            texts_json=json.dumps(texts, ensure_ascii=False),
        )

    async def _translate_once(self, texts, target_language, api_key, cancel_token, source_language):
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json"
        }
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.system_message},
                {"role": "user", "content": self.build_prompt(texts, target_language)},
            ],
            "stream": False,
        }

        logger.debug(f"  Calling DeepSeek API (model: {self.model}, lines: {len(texts)})...")
        response = await self._request(cancel_token, "POST", self.api_url, headers=headers, json=body)
        result = self._json(response)

        choices = result.get('choices') if isinstance(result, dict) else None
        content = ''
        if choices and isinstance(choices[0], dict):
            content = (choices[0].get('message') or {}).get('content') or ''
        if not content:
            raise ProviderError("DeepSeek response did not contain any content.", code="malformed_response")

        logger.debug(f"  Received {len(content)} chars from DeepSeek")
        translations = parse_translations_response(content)
        if translations is None:
            raise ProviderError("DeepSeek output is not a valid JSON array.", code="malformed_response")
        self._check_length(translations, len(texts))
        return translations


class DeepLProvider(TranslationProvider):
    """DeepL REST API; the batch is sent as text[] in one request."""

    kind = EngineKind.DEEPL
    display_name = "DeepL"

    def endpoint_for(self, api_key: str) -> str:
        endpoint = str(self.config.get('endpoint') or '').strip()
        if not endpoint:
            endpoint = DEEPL_FREE_ENDPOINT if api_key.endswith(':fx') else DEEPL_PRO_ENDPOINT
        return endpoint.rstrip('/') + '/v2/translate'

    def build_body(self, texts: List[str], target_language: str,
                   source_language: Optional[str]) -> Dict[str, Any]:
        target_code = lc.get_deepl_lang_code(target_language)
        body: Dict[str, Any] = {
            "text": list(texts),
            "target_lang": target_code,
            "preserve_formatting": 1,
            "split_sentences": "0",
        }
        if source_language and source_language != lc.AUTO_DETECT:
            body["source_lang"] = lc.extract_base_language(source_language).upper()
        if lc.needs_deepl_quality_model(target_code):
            body["model_type"] = "quality_optimized"
        return body

    async def _translate_once(self, texts, target_language, api_key, cancel_token, source_language):
        body = self.build_body(texts, target_language, source_language)
        headers = {
            "Authorization": f"DeepL-Auth-Key {api_key}",
            "Content-Type": "application/json",
        }

        logger.debug(f"  Calling DeepL API (target: {body['target_lang']}, lines: {len(texts)})...")
        response = await self._request(cancel_token, "POST", self.endpoint_for(api_key),
                                       headers=headers, json=body)
        result = self._json(response)

        translations = result.get('translations') if isinstance(result, dict) else None
        if not isinstance(translations, list):
            raise ProviderError("DeepL response missing translations.", code="malformed_response")
        out = [t.get('text', '') if isinstance(t, dict) else '' for t in translations]
        self._check_length(out, len(texts))
        return out


class LingvaProvider(TranslationProvider):
    """Lingva Translate; one request per line with mirror rotation on retry."""

    kind = EngineKind.LINGVA
    display_name = "Lingva"
    requires_credentials = False

    # Per-line attempts never exceed this, however many mirrors are known
    MAX_LINE_ATTEMPTS = 4

    def __init__(self, provider_config: Dict[str, Any], retry_policy: RetryPolicy,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 base_url: Optional[str] = None):
        super().__init__(provider_config, retry_policy, transport)
        self.base_url = str(base_url or '').strip().rstrip('/')

    def candidate_urls(self) -> List[str]:
        """Configured primary first, then the fallback pool, without duplicates."""
        urls = [self.base_url] if self.base_url else []
        for url in LINGVA_BASE_URLS:
            if url.rstrip('/') not in urls:
                urls.append(url.rstrip('/'))
        return urls

    def line_policy(self, mirror_count: int) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=max(1, min(mirror_count, self.MAX_LINE_ATTEMPTS)),
            base_delay=0.4,
            max_delay=2.0,
            jitter=self.retry_policy.jitter,
        )

    async def translate_batch(self, texts, target_language, credentials,
                              cancel_token=None, source_language=None):
        if not texts:
            return []
        urls = self.candidate_urls()
        policy = self.line_policy(len(urls))
        sl = source_language if source_language and source_language != lc.AUTO_DETECT else lc.AUTO_DETECT
        tl = str(target_language or '').strip().lower()

        out: List[str] = []
        for text in texts:
            if not text.strip():
                out.append(text)
                continue

            async def attempt_line(attempt: int, text: str = text) -> str:
                base_url = urls[attempt % len(urls)]
                return await self._translate_line(base_url, sl, tl, text, cancel_token)

            out.append(await with_retry(
                attempt_line,
                policy,
                cancel_token,
                # A failing mirror says nothing about the next one
                should_retry=lambda e: isinstance(e, ProviderError),
            ))

        self._check_length(out, len(texts))
        return out

    async def _translate_line(self, base_url: str, sl: str, tl: str, text: str,
                              cancel_token: Optional[CancelToken]) -> str:
        url = f"{base_url}/api/v1/{quote(sl, safe='')}/{quote(tl, safe='')}/{quote(text, safe='')}"
        logger.debug(f"  Calling Lingva mirror {base_url}")
        response = await self._request(cancel_token, "GET", url)
        result = self._json(response)
        translated = result.get('translation') if isinstance(result, dict) else None
        if not isinstance(translated, str):
            raise ProviderError("Lingva response missing translation field.", code="malformed_response")
        return translated


def create_provider(kind: EngineKind, config: Dict[str, Any],
                    transport: Optional[httpx.AsyncBaseTransport] = None) -> TranslationProvider:
    """
    Build the adapter for an engine from the application config.

    Args:
        kind: Engine to build
        config: Full application config (see config.DEFAULT_CONFIG)
        transport: Optional httpx transport, used by tests to fake the network
    """
    kind = EngineKind.parse(kind)
    policy = RetryPolicy.from_config(config.get('retry'))

    if kind == EngineKind.DEEPSEEK:
        return LLMProvider(config.get('deepseek', {}), policy, transport)
    if kind == EngineKind.DEEPL:
        return DeepLProvider(config.get('deepl', {}), policy, transport)

    settings = config.get('translation') or {}
    return LingvaProvider(config.get('lingva', {}), policy, transport,
                          base_url=settings.get('lingva_base_url'))
