"""Unit tests for the OpenAI and Gemini clients (requests mocked)."""

import threading
import time
from unittest.mock import Mock

import numpy as np
import pytest
import requests

from conftest import make_response
from docs_assistant.config import Settings
from docs_assistant.deadline import Deadline
from docs_assistant.errors import (
    ConfigurationError,
    DeadlineExceeded,
    ProviderError,
    ResponseDecodeError,
    ValidationError,
)
from docs_assistant.llm_client import (
    SYSTEM_PROMPT,
    GeminiClient,
    OpenAIClient,
    create_llm_client,
)


def make_client(cls, response=None, side_effect=None, api_key="test-key"):
    session = Mock()
    if side_effect is not None:
        session.post.side_effect = side_effect
    else:
        session.post.return_value = response
    client = cls(
        api_key=api_key,
        completion_model="chat-model",
        embedding_model="embed-model",
        timeout=20.0,
        session=session,
    )
    return client, session


class TestOpenAIClient:

    @pytest.mark.unit
    def test_embed(self):
        client, session = make_client(
            OpenAIClient, make_response(json_data={"data": [{"embedding": [0.1, 0.2, 0.3]}]})
        )

        vector = client.embed("hello world")

        assert vector.dtype == np.float32
        np.testing.assert_allclose(vector, [0.1, 0.2, 0.3], rtol=1e-6)
        url = session.post.call_args.args[0]
        kwargs = session.post.call_args.kwargs
        assert url == "https://api.openai.com/v1/embeddings"
        assert kwargs["json"] == {"model": "embed-model", "input": "hello world"}
        assert kwargs["headers"]["Authorization"] == "Bearer test-key"
        assert kwargs["timeout"] == 20.0

    @pytest.mark.unit
    def test_complete(self):
        client, session = make_client(
            OpenAIClient,
            make_response(json_data={"choices": [{"message": {"content": "The answer"}}]}),
        )

        assert client.complete("prompt text") == "The answer"
        body = session.post.call_args.kwargs["json"]
        assert body["model"] == "chat-model"
        assert body["temperature"] == 0.2
        assert body["max_tokens"] == 1024
        assert body["messages"] == [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "prompt text"},
        ]

    @pytest.mark.unit
    def test_error_status(self):
        client, _ = make_client(OpenAIClient, make_response(status_code=429, text="rate limited"))

        with pytest.raises(ProviderError) as exc_info:
            client.embed("hello")

        assert exc_info.value.status_code == 429
        assert "rate limited" in str(exc_info.value)

    @pytest.mark.unit
    def test_no_choices(self):
        client, _ = make_client(OpenAIClient, make_response(json_data={"choices": []}))

        with pytest.raises(ResponseDecodeError, match="no choices"):
            client.complete("prompt")

    @pytest.mark.unit
    def test_empty_embedding(self):
        client, _ = make_client(OpenAIClient, make_response(json_data={"data": [{"embedding": []}]}))

        with pytest.raises(ResponseDecodeError, match="empty embedding"):
            client.embed("hello")

    @pytest.mark.unit
    def test_invalid_json(self):
        client, _ = make_client(OpenAIClient, make_response(text="<html>"))

        with pytest.raises(ResponseDecodeError, match="not valid JSON"):
            client.embed("hello")

    @pytest.mark.unit
    def test_missing_key(self):
        client, session = make_client(OpenAIClient, api_key="")

        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY not set"):
            client.embed("hello")
        session.post.assert_not_called()

    @pytest.mark.unit
    def test_empty_text_rejected_before_request(self):
        client, session = make_client(OpenAIClient)

        with pytest.raises(ValidationError):
            client.embed("   ")
        session.post.assert_not_called()

    @pytest.mark.unit
    def test_transport_error(self):
        client, _ = make_client(
            OpenAIClient, side_effect=requests.exceptions.ConnectionError("connection refused")
        )

        with pytest.raises(ProviderError, match="embed request failed"):
            client.embed("hello")

    @pytest.mark.unit
    def test_timeout_without_deadline_is_provider_error(self):
        client, _ = make_client(OpenAIClient, side_effect=requests.exceptions.ReadTimeout("slow"))

        with pytest.raises(ProviderError, match="timed out"):
            client.complete("prompt")

    @pytest.mark.unit
    def test_timeout_after_deadline_is_deadline_exceeded(self):
        deadline = Deadline(30.0)

        def slow_post(*args, **kwargs):
            deadline.cancel()
            raise requests.exceptions.ReadTimeout("slow")

        client, _ = make_client(OpenAIClient, side_effect=slow_post)

        with pytest.raises(DeadlineExceeded):
            client.complete("prompt", deadline=deadline)

    @pytest.mark.unit
    def test_deadline_caps_timeout(self):
        client, session = make_client(
            OpenAIClient, make_response(json_data={"data": [{"embedding": [1.0]}]})
        )

        client.embed("hello", deadline=Deadline(2.0))

        assert session.post.call_args.kwargs["timeout"] <= 2.0

    @pytest.mark.unit
    def test_cancel_aborts_call_in_flight(self):
        deadline = Deadline(60.0)
        release = threading.Event()

        def slow_post(*args, **kwargs):
            release.wait(10)
            return make_response(json_data={"choices": [{"message": {"content": "late"}}]})

        client, _ = make_client(OpenAIClient, side_effect=slow_post)
        threading.Timer(0.1, deadline.cancel).start()

        started = time.monotonic()
        try:
            with pytest.raises(DeadlineExceeded):
                client.complete("prompt", deadline=deadline)
        finally:
            release.set()

        assert time.monotonic() - started < 2.0

    @pytest.mark.unit
    def test_response_after_cancel_is_not_returned(self):
        deadline = Deadline(60.0)

        def post_then_cancel(*args, **kwargs):
            deadline.cancel()
            return make_response(json_data={"data": [{"embedding": [1.0]}]})

        client, _ = make_client(OpenAIClient, side_effect=post_then_cancel)

        with pytest.raises(DeadlineExceeded):
            client.embed("hello", deadline=deadline)

    @pytest.mark.unit
    def test_expired_deadline_skips_request(self):
        client, session = make_client(OpenAIClient)

        with pytest.raises(DeadlineExceeded):
            client.embed("hello", deadline=Deadline(0))
        session.post.assert_not_called()


class TestGeminiClient:

    @pytest.mark.unit
    def test_transport_error_hides_api_key(self):
        client, _ = make_client(
            GeminiClient,
            side_effect=requests.exceptions.ConnectionError(
                "HTTPConnectionPool(host='127.0.0.1', port=1): Max retries exceeded with url: "
                "/v1/models/embed-model:embedContent?key=SECRET-KEY-123 "
                "(Caused by NewConnectionError('Connection refused'))"
            ),
            api_key="SECRET-KEY-123",
        )

        with pytest.raises(ProviderError) as exc_info:
            client.embed("hello")

        assert "SECRET-KEY-123" not in str(exc_info.value)
        assert "key=***" in str(exc_info.value)

    @pytest.mark.unit
    def test_error_body_hides_api_key(self):
        body = '{"error": "bad request for ?key=SECRET-KEY-123"}'
        client, _ = make_client(GeminiClient, make_response(status_code=400, text=body), api_key="SECRET-KEY-123")

        with pytest.raises(ProviderError) as exc_info:
            client.complete("question")

        assert "SECRET-KEY-123" not in str(exc_info.value)
        assert "SECRET-KEY-123" not in exc_info.value.body

    @pytest.mark.unit
    def test_embed(self):
        client, session = make_client(
            GeminiClient, make_response(json_data={"embedding": {"values": [1, 2, 3, 4]}})
        )

        vector = client.embed("hello")

        assert vector.tolist() == [1.0, 2.0, 3.0, 4.0]
        url = session.post.call_args.args[0]
        assert url == (
            "https://generativelanguage.googleapis.com/v1/models/embed-model:embedContent?key=test-key"
        )
        assert session.post.call_args.kwargs["json"] == {
            "model": "models/embed-model",
            "content": {"parts": [{"text": "hello"}]},
        }

    @pytest.mark.unit
    def test_complete_prefixes_system_prompt(self):
        payload = {"candidates": [{"content": {"parts": [{"text": "Gemini says hi"}]}}]}
        client, session = make_client(GeminiClient, make_response(json_data=payload))

        assert client.complete("question") == "Gemini says hi"
        body = session.post.call_args.kwargs["json"]
        assert body["contents"][0]["parts"][0]["text"] == f"{SYSTEM_PROMPT}\n\nquestion"
        assert body["generationConfig"] == {"maxOutputTokens": 1024, "temperature": 0.2}
        assert ":generateContent?key=test-key" in session.post.call_args.args[0]

    @pytest.mark.unit
    @pytest.mark.parametrize("payload,message", [
        ({}, "missing 'embedding'"),
        ({"embedding": {}}, "missing 'values'"),
        ({"embedding": {"values": []}}, "empty embedding"),
        ({"embedding": {"values": ["a", "b"]}}, "non-numeric"),
    ])
    def test_embed_bad_payloads(self, payload, message):
        client, _ = make_client(GeminiClient, make_response(json_data=payload))

        with pytest.raises(ResponseDecodeError, match=message):
            client.embed("hello")

    @pytest.mark.unit
    @pytest.mark.parametrize("payload,message", [
        ({"candidates": []}, "no candidates"),
        ({"candidates": [{}]}, "missing 'content'"),
        ({"candidates": [{"content": {"parts": []}}]}, "no parts"),
    ])
    def test_complete_bad_payloads(self, payload, message):
        client, _ = make_client(GeminiClient, make_response(json_data=payload))

        with pytest.raises(ResponseDecodeError, match=message):
            client.complete("question")

    @pytest.mark.unit
    def test_missing_key(self):
        client, session = make_client(GeminiClient, api_key="")

        with pytest.raises(ConfigurationError, match="GEMINI_API_KEY not set"):
            client.complete("question")
        session.post.assert_not_called()


class TestCreateLLMClient:

    @pytest.mark.unit
    def test_gemini(self):
        settings = Settings(llm_provider="gemini", gemini_api_key="g", http_timeout=9.0)

        client = create_llm_client(settings)

        assert isinstance(client, GeminiClient)
        assert client.api_key == "g"
        assert client.timeout == 9.0
        assert client.models.completion_model == "gemini-1.5-flash"

    @pytest.mark.unit
    def test_openai(self):
        settings = Settings(
            llm_provider="openai",
            openai_api_key="o",
            completion_model="gpt-4o-mini",
            embedding_model="text-embedding-3-small",
        )

        client = create_llm_client(settings)

        assert isinstance(client, OpenAIClient)
        assert client.models.embedding_model == "text-embedding-3-small"

    @pytest.mark.unit
    def test_unknown_provider(self):
        settings = Settings(llm_provider="llama")

        with pytest.raises(ConfigurationError, match="Unknown LLM provider"):
            create_llm_client(settings)
