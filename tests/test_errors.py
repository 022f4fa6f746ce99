"""Unit tests for the error hierarchy and error classification."""

import pytest

from docs_assistant.error_classifier import ErrorClassifier, simplify_error
from docs_assistant.errors import (
    AssistantError,
    FetchError,
    ProviderError,
    ResponseDecodeError,
    redact_secrets,
    truncate_body,
)


class TestErrors:

    @pytest.mark.unit
    def test_provider_error_includes_status_and_body(self):
        error = ProviderError("embed failed", status_code=401, body='{"error": "bad key"}')

        assert str(error) == 'embed failed (status 401): {"error": "bad key"}'
        assert error.status_code == 401
        assert isinstance(error, AssistantError)

    @pytest.mark.unit
    def test_provider_error_without_status(self):
        assert str(ProviderError("embed request failed")) == "embed request failed"

    @pytest.mark.unit
    def test_body_is_truncated(self):
        error = ProviderError("complete failed", status_code=500, body="x" * 2000)

        assert len(error.body) == 503
        assert error.body.endswith("...")

    @pytest.mark.unit
    def test_decode_error_is_provider_error(self):
        assert issubclass(ResponseDecodeError, ProviderError)

    @pytest.mark.unit
    def test_fetch_error_message(self):
        error = FetchError("https://kiali.io/docs/", "status 404", status_code=404)

        assert str(error) == "fetch https://kiali.io/docs/: status 404"
        assert error.url == "https://kiali.io/docs/"

    @pytest.mark.unit
    def test_redact_secrets(self):
        assert redact_secrets("https://x.googleapis.com/v1/m:embed?key=abc123&alt=json") == \
            "https://x.googleapis.com/v1/m:embed?key=***&alt=json"
        assert redact_secrets("url: /items?part=id&key=abc123 (Caused by timeout)") == \
            "url: /items?part=id&key=*** (Caused by timeout)"
        assert redact_secrets("https://kiali.io/docs/") == "https://kiali.io/docs/"

    @pytest.mark.unit
    def test_errors_never_carry_api_keys(self):
        provider = ProviderError("embed request failed: /v1/models/m:embedContent?key=SECRET-KEY-123 refused")
        fetch = FetchError("https://www.googleapis.com/youtube/v3/playlistItems?key=SECRET-KEY-123", "status 403")

        assert "SECRET-KEY-123" not in str(provider)
        assert "SECRET-KEY-123" not in str(fetch)
        assert fetch.url == "https://www.googleapis.com/youtube/v3/playlistItems?key=***"

    @pytest.mark.unit
    def test_truncate_body_empty(self):
        assert truncate_body(None) == ""
        assert truncate_body("  ok  ") == "ok"


class TestErrorClassifier:

    @pytest.mark.unit
    @pytest.mark.parametrize("message,expected", [
        ("HTTPSConnectionPool(host='kiali.io'): Read timed out. (read timeout=20)", "Connection timeout"),
        ("Failed to resolve 'kiali.example'", "DNS resolution failed"),
        ("fetch https://kiali.io/docs/x: status 404", "Page not found (404)"),
        ("embed failed (status 429): quota", "Rate limit exceeded (429)"),
        ("complete failed (status 403): API key not valid", "Access denied (check credentials)"),
        ("embed failed (status 503): unavailable", "Remote server error (5xx)"),
        ("unexpected response shape: missing 'data'", "Malformed response payload"),
    ])
    def test_known_patterns(self, message, expected):
        assert ErrorClassifier.classify(message) == expected

    @pytest.mark.unit
    def test_unknown_message_strips_urls(self):
        summary = ErrorClassifier.classify("something odd happened at https://kiali.io/docs/a")

        assert summary == "something odd happened at"

    @pytest.mark.unit
    def test_empty_message(self):
        assert ErrorClassifier.classify("") == "Unknown error"

    @pytest.mark.unit
    def test_simplify_error_accepts_exceptions(self):
        assert simplify_error(FetchError("https://x.io", "status 404")) == "Page not found (404)"
