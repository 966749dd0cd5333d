"""
Language code mappings and utilities.

Standards:
- ISO 639-1: 2-letter language codes (en, zh, vi)
- BCP 47: Language + Region codes (en-US, zh-CN, pt-BR)

Target languages offered for translation carry an optional DeepL code. A
language without one can still be used with the LLM and Lingva engines.
"""

from typing import Dict, List, Optional

from vnlocalize.engines.exceptions import ProviderError

# Offered target languages: code -> display name
LANGUAGES = {
    'en': 'English',
    'zh': 'Chinese (Simplified)',
    'hi': 'Hindi',
    'es': 'Spanish',
    'fr': 'French',
    'ar': 'Arabic',
    'pt': 'Portuguese',
    'ru': 'Russian',
    'de': 'German',
    'ja': 'Japanese',
    'id': 'Indonesian',
    'ms': 'Malay',
    'vi': 'Vietnamese',
    'tl': 'Filipino',
    'ko': 'Korean',
}

# DeepL target_lang values for the languages DeepL accepts
DEEPL_CODES = {
    'en': 'EN',
    'zh': 'ZH',
    'es': 'ES',
    'fr': 'FR',
    'pt': 'PT-PT',
    'de': 'DE',
    'ja': 'JA',
    'ko': 'KO',
}

# Targets for which DeepL's quality_optimized model is requested
DEEPL_QUALITY_MODEL_CODES = ('JA', 'ZH', 'KO')

AUTO_DETECT = 'auto'


def _normalize(code: str) -> str:
    return str(code or '').strip().lower()


def is_valid_language_code(code: str) -> bool:
    """
    Check if a language code is offered.

    Examples:
        >>> is_valid_language_code('vi')
        True
        >>> is_valid_language_code('VI')
        True
        >>> is_valid_language_code('invalid')
        False
    """
    return _normalize(code) in LANGUAGES


def get_language_name(code: str) -> Optional[str]:
    """
    Get the full language name from code.

    Examples:
        >>> get_language_name('ja')
        'Japanese'
        >>> get_language_name('xx') is None
        True
    """
    return LANGUAGES.get(_normalize(code))


def language_label(code: str) -> str:
    """Display name for a code, or the code itself when unknown."""
    return get_language_name(code) or str(code or '')


def extract_base_language(code: str) -> str:
    """
    Extract base language from code (remove region).

    Examples:
        >>> extract_base_language('zh-CN')
        'zh'
        >>> extract_base_language('fr')
        'fr'
    """
    return _normalize(code).split('-')[0]


def languages_match(code1: str, code2: str, strict: bool = False) -> bool:
    """
    Check if two language codes match.

    Args:
        code1: First language code
        code2: Second language code
        strict: If True, must match exactly. If False, base language match is ok.

    Examples:
        >>> languages_match('en', 'en-US')
        True
        >>> languages_match('en', 'en-US', strict=True)
        False
    """
    if strict:
        return _normalize(code1) == _normalize(code2)

    return extract_base_language(code1) == extract_base_language(code2)


def is_deepl_supported_target(code: str) -> bool:
    return extract_base_language(code) in DEEPL_CODES


def get_deepl_lang_code(code: str) -> str:
    """
    Map a target language to DeepL's target_lang value.

    Raises:
        ProviderError: Non-retryable, when DeepL does not offer the language
    """
    deepl_code = DEEPL_CODES.get(extract_base_language(code))
    if not deepl_code:
        raise ProviderError(
            f"DeepL does not support target language: {language_label(code)}.",
            status=400,
            retryable=False,
            code="unsupported_language",
            details={"target_lang": code},
        )
    return deepl_code


def needs_deepl_quality_model(deepl_code: str) -> bool:
    """
    Examples:
        >>> needs_deepl_quality_model('JA')
        True
        >>> needs_deepl_quality_model('de')
        False
    """
    return str(deepl_code or '').upper() in DEEPL_QUALITY_MODEL_CODES


def get_all_languages() -> List[Dict[str, object]]:
    """Offered languages as [{code, name, deepl}] for the settings API."""
    return [
        {'code': code, 'name': name, 'deepl': is_deepl_supported_target(code)}
        for code, name in LANGUAGES.items()
    ]
