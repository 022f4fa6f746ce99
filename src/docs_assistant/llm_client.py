"""
Embedding and completion clients for the supported LLM providers.

Both providers are called over plain HTTPS with requests. Every call is a
single outbound request: no caching, no retries. Any failure is raised to the
caller as a ProviderError carrying the status code and a short body.
"""
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import numpy as np
import requests
from loguru import logger

from .config import Settings
from .deadline import Deadline, call_timeout, check_deadline, run_with_deadline
from .debug_logger import record_api_call
from .errors import (
    ConfigurationError,
    DeadlineExceeded,
    ProviderError,
    ResponseDecodeError,
    ValidationError,
)
from .rag.types import ModelIdentifiers

SYSTEM_PROMPT = (
    "You are Kiali/Istio assistant. Be precise, cite sources, and use provided "
    "Kiali endpoint data to analyze graphs, traffic, metrics, and propose troubleshooting steps."
)

COMPLETION_TEMPERATURE = 0.2
COMPLETION_MAX_TOKENS = 1024


class LLMClient(Protocol):
    """
    Contract consumed by the engine and the vector stores.
    """

    models: ModelIdentifiers

    def embed(self, text: str, deadline: Optional[Deadline] = None) -> np.ndarray:
        """Return the embedding vector of text."""
        ...

    def complete(self, prompt: str, deadline: Optional[Deadline] = None) -> str:
        """Return generated text for prompt (the system preamble is added by the client)."""
        ...


# --- provider response shapes ---

def _require(payload: Any, key: str, expected: type, context: str):
    """Fetch payload[key] and check its type, or raise ResponseDecodeError."""
    if not isinstance(payload, dict) or key not in payload:
        raise ResponseDecodeError(f"unexpected response shape: missing '{key}' in {context}")
    value = payload[key]
    if not isinstance(value, expected):
        raise ResponseDecodeError(
            f"unexpected response shape: '{key}' in {context} is {type(value).__name__}"
        )
    return value


def _to_vector(values: List[Any], context: str) -> np.ndarray:
    if not values:
        raise ResponseDecodeError(f"empty embedding values in {context}")
    try:
        return np.asarray(values, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise ResponseDecodeError(f"non-numeric embedding values in {context}: {e}") from e


@dataclass
class OpenAIEmbeddingResponse:
    embedding: np.ndarray

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "OpenAIEmbeddingResponse":
        data = _require(payload, "data", list, "embeddings response")
        if not data:
            raise ResponseDecodeError("empty embedding values: 'data' is empty")
        values = _require(data[0], "embedding", list, "data[0]")
        return cls(embedding=_to_vector(values, "data[0].embedding"))


@dataclass
class OpenAIChatResponse:
    content: str

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "OpenAIChatResponse":
        choices = _require(payload, "choices", list, "chat response")
        if not choices:
            raise ResponseDecodeError("no choices in response")
        message = _require(choices[0], "message", dict, "choices[0]")
        return cls(content=_require(message, "content", str, "choices[0].message"))


@dataclass
class GeminiEmbeddingResponse:
    embedding: np.ndarray

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "GeminiEmbeddingResponse":
        embedding = _require(payload, "embedding", dict, "embedContent response")
        values = _require(embedding, "values", list, "embedding")
        return cls(embedding=_to_vector(values, "embedding.values"))


@dataclass
class GeminiGenerateResponse:
    text: str

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "GeminiGenerateResponse":
        candidates = _require(payload, "candidates", list, "generateContent response")
        if not candidates:
            raise ResponseDecodeError("no candidates in response")
        content = _require(candidates[0], "content", dict, "candidates[0]")
        parts = _require(content, "parts", list, "candidates[0].content")
        if not parts:
            raise ResponseDecodeError("no parts in content")
        return cls(text=_require(parts[0], "text", str, "candidates[0].content.parts[0]"))


# --- clients ---

class BaseLLMClient:
    """Shared HTTP plumbing for the provider clients."""

    provider = "base"

    def __init__(
        self,
        api_key: str,
        completion_model: str,
        embedding_model: str,
        timeout: float = 20.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.models = ModelIdentifiers(
            completion_model=completion_model,
            embedding_model=embedding_model,
        )
        self.timeout = timeout
        self.session = session or requests.Session()

    def _require_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError(f"{self.provider.upper()}_API_KEY not set")
        return self.api_key

    def _post_json(
        self,
        kind: str,
        url: str,
        body: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        deadline: Optional[Deadline] = None,
    ) -> Dict[str, Any]:
        """
        POST a JSON body and return the decoded JSON response.

        Raises:
            ProviderError: Transport failure or non-200 status
            ResponseDecodeError: Body is not JSON
            DeadlineExceeded: The request deadline ran out
        """
        timeout = call_timeout(deadline, self.timeout)
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers or {})

        started = time.monotonic()
        try:
            response = run_with_deadline(
                deadline, self.session.post, url, json=body, headers=request_headers, timeout=timeout
            )
        except requests.exceptions.Timeout as e:
            record_api_call(kind, url, None, (time.monotonic() - started) * 1000, str(e))
            if deadline is not None and deadline.expired:
                raise DeadlineExceeded(f"{kind} call exceeded the request deadline") from e
            raise ProviderError(f"{kind} request timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            record_api_call(kind, url, None, (time.monotonic() - started) * 1000, str(e))
            raise ProviderError(f"{kind} request failed: {e}") from e

        elapsed_ms = (time.monotonic() - started) * 1000
        if response.status_code != 200:
            record_api_call(kind, url, response.status_code, elapsed_ms, response.text[:200])
            raise ProviderError(f"{kind} failed", status_code=response.status_code, body=response.text)

        record_api_call(kind, url, response.status_code, elapsed_ms)
        check_deadline(deadline)
        try:
            return response.json()
        except ValueError as e:
            raise ResponseDecodeError(f"{kind} response is not valid JSON: {e}") from e

    @staticmethod
    def _check_text(text: str):
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty")


class OpenAIClient(BaseLLMClient):
    """OpenAI embeddings and chat completions."""

    provider = "openai"
    EMBEDDINGS_URL = "https://api.openai.com/v1/embeddings"
    CHAT_URL = "https://api.openai.com/v1/chat/completions"

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._require_key()}"}

    def embed(self, text: str, deadline: Optional[Deadline] = None) -> np.ndarray:
        self._check_text(text)
        headers = self._auth_headers()
        payload = self._post_json(
            "embed",
            self.EMBEDDINGS_URL,
            {"model": self.models.embedding_model, "input": text},
            headers=headers,
            deadline=deadline,
        )
        return OpenAIEmbeddingResponse.from_json(payload).embedding

    def complete(self, prompt: str, deadline: Optional[Deadline] = None) -> str:
        self._check_text(prompt)
        headers = self._auth_headers()
        body = {
            "model": self.models.completion_model,
            "temperature": COMPLETION_TEMPERATURE,
            "max_tokens": COMPLETION_MAX_TOKENS,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        payload = self._post_json("complete", self.CHAT_URL, body, headers=headers, deadline=deadline)
        return OpenAIChatResponse.from_json(payload).content


class GeminiClient(BaseLLMClient):
    """Google Gemini embedContent and generateContent."""

    provider = "gemini"
    BASE_URL = "https://generativelanguage.googleapis.com/v1/models"

    def _endpoint(self, model: str, method: str) -> str:
        return f"{self.BASE_URL}/{model}:{method}?key={self._require_key()}"

    def embed(self, text: str, deadline: Optional[Deadline] = None) -> np.ndarray:
        self._check_text(text)
        model = self.models.embedding_model
        body = {
            "model": f"models/{model}",
            "content": {"parts": [{"text": text}]},
        }
        payload = self._post_json("embed", self._endpoint(model, "embedContent"), body, deadline=deadline)
        return GeminiEmbeddingResponse.from_json(payload).embedding

    def complete(self, prompt: str, deadline: Optional[Deadline] = None) -> str:
        self._check_text(prompt)
        model = self.models.completion_model
        body = {
            "contents": [{
                "parts": [{"text": f"{SYSTEM_PROMPT}\n\n{prompt}"}],
            }],
            "generationConfig": {
                "maxOutputTokens": COMPLETION_MAX_TOKENS,
                "temperature": COMPLETION_TEMPERATURE,
            },
        }
        payload = self._post_json("complete", self._endpoint(model, "generateContent"), body, deadline=deadline)
        return GeminiGenerateResponse.from_json(payload).text


def create_llm_client(settings: Settings, session: Optional[requests.Session] = None) -> BaseLLMClient:
    """
    Factory function that returns the configured provider client.

    Args:
        settings: Loaded settings (provider, models, keys, timeout)
        session: Optional shared requests session

    Returns:
        OpenAIClient or GeminiClient

    Raises:
        ConfigurationError: If the provider is unknown
    """
    clients = {"openai": OpenAIClient, "gemini": GeminiClient}
    client_class = clients.get(settings.llm_provider)
    if client_class is None:
        raise ConfigurationError(f"Unknown LLM provider: {settings.llm_provider}")

    if not settings.api_key:
        logger.warning(f"{settings.llm_provider.upper()}_API_KEY not set; provider calls will fail")

    return client_class(
        api_key=settings.api_key,
        completion_model=settings.completion_model,
        embedding_model=settings.embedding_model,
        timeout=settings.http_timeout,
        session=session,
    )
