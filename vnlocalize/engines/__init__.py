"""
Engines module

Error types, cancellation and retry shared by the translation providers.
Providers themselves live in vnlocalize.engines.providers.
"""

from vnlocalize.engines.exceptions import (
    TranslationError,
    ExtractionError,
    ProviderError,
    CredentialsError,
    LengthMismatchError,
    NotFoundError,
    RunCancelled,
    PlaceholderIntegrityWarning,
)
from vnlocalize.engines.cancellation import CancelToken
from vnlocalize.engines.retry import RetryPolicy, with_retry, is_retryable

__all__ = [
    'TranslationError', 'ExtractionError', 'ProviderError', 'CredentialsError',
    'LengthMismatchError', 'NotFoundError', 'RunCancelled', 'PlaceholderIntegrityWarning',
    'CancelToken', 'RetryPolicy', 'with_retry', 'is_retryable',
]
