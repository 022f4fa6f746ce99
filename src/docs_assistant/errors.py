"""
Exception hierarchy for the docs assistant engine.

Every error raised on purpose by the engine derives from AssistantError so
callers (CLI, HTTP layer) can catch one type and still tell the categories apart.
"""
import re
from typing import Optional

# Provider/response bodies embedded in error messages are capped to this length
MAX_BODY_CHARS = 500

# Gemini and the YouTube Data API take their key as a query parameter
_KEY_PARAM = re.compile(r"([?&]key=)[^&\s'\"]+")


def redact_secrets(text: str) -> str:
    """Mask "key=" query parameters in a URL or a transport error message."""
    if not text:
        return text
    return _KEY_PARAM.sub(r"\1***", text)


def truncate_body(body: Optional[str], limit: int = MAX_BODY_CHARS) -> str:
    """Shorten a response body for inclusion in an error message."""
    if not body:
        return ""
    body = body.strip()
    if len(body) > limit:
        return body[:limit] + "..."
    return body


class AssistantError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(AssistantError):
    """Missing or invalid configuration (credentials, backend, DSN)."""


class ValidationError(AssistantError):
    """Input rejected before any network or storage call."""


class ProviderError(AssistantError):
    """The embedding/completion provider failed or returned an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        self.status_code = status_code
        self.body = redact_secrets(truncate_body(body))
        if status_code is not None:
            message = f"{message} (status {status_code}): {self.body}"
        super().__init__(redact_secrets(message))


class ResponseDecodeError(ProviderError):
    """Provider answered 200 but the payload did not have the expected shape."""


class FetchError(AssistantError):
    """A content URL could not be retrieved."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = redact_secrets(url)
        self.status_code = status_code
        super().__init__(redact_secrets(f"fetch {url}: {message}"))


class StorageError(AssistantError):
    """A vector store query or write failed."""


class DeadlineExceeded(AssistantError):
    """The request deadline expired or the request was cancelled."""
