"""
Translation Engine Exceptions

This module contains the exception classes shared by the extractor, the
provider adapters and the batch orchestrator.
Separated to avoid circular imports between engines, script and translation.
"""

from typing import Optional


class TranslationError(Exception):
    """Translation pipeline error with optional code and details."""

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": str(self), "code": self.code or "translation_error"}
        if self.details:
            payload["details"] = self.details
        return payload


class ExtractionError(TranslationError):
    """Input text could not be extracted (unsupported or malformed format)."""

    def __init__(self, message: str, file_format: str = None):
        super().__init__(message, code="extraction_error", details={"format": file_format})
        self.file_format = file_format


class ProviderError(TranslationError):
    """A provider call failed: non-success response or malformed payload."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        retryable: bool = True,
        code: str = "provider_error",
        details: dict = None,
    ):
        details = dict(details or {})
        if status is not None:
            details.setdefault("status", status)
        super().__init__(message, code=code, details=details)
        self.status = status
        self.retryable = retryable


class CredentialsError(ProviderError):
    """Credentials are missing or unusable; raised before any network call."""

    def __init__(self, message: str, provider: str = None):
        super().__init__(
            message,
            status=401,
            retryable=False,
            code="missing_credentials",
            details={"provider": provider},
        )


class LengthMismatchError(TranslationError):
    """Provider returned a different number of lines than it was given."""

    def __init__(self, provider: str, expected: int, received: int):
        super().__init__(
            f"{provider} returned {received} items but expected {expected}.",
            code="length_mismatch",
            details={"provider": provider, "expected": expected, "received": received},
        )
        self.expected = expected
        self.received = received


class RunCancelled(Exception):
    """Cooperative cancellation of a translation run. Not an error."""


class PlaceholderIntegrityWarning(UserWarning):
    """A masking token went missing, got duplicated or leaked into output."""

    def __init__(self, item_id: str, kind: str, token: str):
        super().__init__(f"{kind} placeholder {token} in {item_id}")
        self.item_id = item_id
        self.kind = kind
        self.token = token

    def to_dict(self) -> dict:
        return {"item_id": self.item_id, "kind": self.kind, "token": self.token}


class NotFoundError(TranslationError):
    """A file, dialog, job or TM entry id does not exist."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}", code="not_found",
                         details={"kind": kind, "id": identifier})
