"""
Ollama semantic evaluator.

Sends the security prompt and one redacted invocation to a local model via
Ollama's chat API, asking for a JSON answer.

Requirements:
    - Ollama must be installed and running (`ollama serve`)
    - A model must be pulled (`ollama pull qwen2.5:0.5b`)

Usage:
    from het.evaluator.ollama import OllamaEvaluator
    from het.schema import SemanticConfig

    evaluator = OllamaEvaluator(SemanticConfig(backend="ollama"))
    decision = evaluator.evaluate(invocation)
"""

import json
import logging
import time
from pathlib import Path
from typing import Any

import httpx

from het.errors import (
    SemanticConnectionError,
    SemanticModelNotFoundError,
    SemanticParseError,
    SemanticTimeoutError,
)
from het.evaluator.prompt import build_evaluation_prompt, build_system_prompt
from het.evaluator.semantic import SemanticEvaluator
from het.schema import Invocation, SemanticConfig

logger = logging.getLogger(__name__)

EVALUATOR_NAME = "ollama"
AVAILABILITY_TTL_SECONDS = 30.0


class OllamaEvaluator(SemanticEvaluator):
    """
    Semantic evaluator backed by Ollama.

    There is no retry here: the tiered evaluator bounds the whole call with
    its own deadline and falls back to a default decision on failure.

    Attributes:
        config: Backend settings (URL, model, timeouts, sampling)
        home: HET home directory, for the global prompt file
    """

    def __init__(self, config: SemanticConfig | None = None, home: Path | None = None) -> None:
        self.config = config or SemanticConfig()
        self.home = home
        self._client: httpx.Client | None = None
        self._availability: tuple[float, bool] | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.config.base_url,
                timeout=self.config.timeout_seconds,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "OllamaEvaluator":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def build_messages(self, invocation: Invocation) -> list[dict[str, str]]:
        """Chat messages for one invocation."""
        return [
            {
                "role": "system",
                "content": build_system_prompt(invocation.working_directory, self.home),
            },
            {"role": "user", "content": build_evaluation_prompt(invocation)},
        ]

    def complete(self, invocation: Invocation) -> str:
        """
        Ask the model about an invocation.

        Raises:
            SemanticConnectionError: Ollama unreachable or returned an error
            SemanticTimeoutError: Request timed out
            SemanticModelNotFoundError: Model not pulled
            SemanticParseError: Response body unusable
        """
        client = self._get_client()
        payload = {
            "model": self.config.model,
            "messages": self.build_messages(invocation),
            "stream": False,
            "format": "json",
            "options": {
                "temperature": self.config.temperature,
                "num_predict": self.config.max_tokens,
            },
        }

        try:
            response = client.post("/api/chat", json=payload)
        except httpx.TimeoutException as e:
            raise SemanticTimeoutError(
                evaluator=EVALUATOR_NAME,
                model=self.config.model,
                timeout_seconds=self.config.timeout_seconds,
            ) from e
        except httpx.HTTPError as e:
            self._availability = (time.monotonic(), False)
            raise SemanticConnectionError(
                evaluator=EVALUATOR_NAME,
                model=self.config.model,
                url=self.config.base_url,
                underlying_error=str(e),
            ) from e

        if response.status_code == 404:
            raise SemanticModelNotFoundError(
                evaluator=EVALUATOR_NAME,
                model=self.config.model,
                available_models=self._list_models(),
            )

        if response.status_code != 200:
            raise SemanticConnectionError(
                evaluator=EVALUATOR_NAME,
                model=self.config.model,
                url=self.config.base_url,
                underlying_error=f"HTTP {response.status_code}: {response.text[:200]}",
            )

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise SemanticParseError(
                evaluator=EVALUATOR_NAME,
                model=self.config.model,
                raw_response=response.text,
                parse_error=f"Invalid JSON from Ollama: {e}",
            ) from e

        message = data.get("message") if isinstance(data, dict) else None
        content = message.get("content", "") if isinstance(message, dict) else ""
        if not isinstance(content, str) or not content:
            raise SemanticParseError(
                evaluator=EVALUATOR_NAME,
                model=self.config.model,
                raw_response=str(data),
                parse_error="Empty response from model",
            )

        return content

    def _list_models(self) -> list[str]:
        """List available models from Ollama."""
        try:
            response = self._get_client().get("/api/tags")
            if response.status_code == 200:
                return [m["name"] for m in response.json().get("models", [])]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.debug("Could not list Ollama models: %s", e)
        return []

    def check_connection(self) -> tuple[bool, str]:
        """
        Check if Ollama is reachable and the model is available.

        Returns:
            Tuple of (is_ok, message)
        """
        try:
            response = self._get_client().get("/api/tags")
        except httpx.ConnectError:
            return False, f"Cannot connect to Ollama at {self.config.base_url}. Is it running?"
        except httpx.HTTPError as e:
            return False, f"Error checking Ollama: {e}"

        if response.status_code != 200:
            return False, f"Ollama returned HTTP {response.status_code}"

        try:
            models = [m["name"] for m in response.json().get("models", [])]
        except (ValueError, KeyError, TypeError) as e:
            return False, f"Unexpected response from Ollama: {e}"

        if not models:
            return False, f"No models available. Run: ollama pull {self.config.model}"

        # "qwen2.5" matches "qwen2.5:latest" and other tags
        model_base = self.config.model.split(":")[0]
        if not any(m == self.config.model or m.startswith(f"{model_base}:") for m in models):
            return (
                False,
                f"Model '{self.config.model}' not found. Available: {', '.join(models[:3])}",
            )

        return True, f"Connected to Ollama, model '{self.config.model}' available"

    def is_available(self) -> bool:
        """Connection check, remembered for a short while."""
        now = time.monotonic()
        if self._availability is not None:
            checked_at, available = self._availability
            if now - checked_at < AVAILABILITY_TTL_SECONDS:
                return available

        available, message = self.check_connection()
        if not available:
            logger.warning("Ollama unavailable: %s", message)
        self._availability = (now, available)
        return available

    def get_name(self) -> str:
        return f"OllamaEvaluator({self.config.model})"

    def get_config(self) -> dict[str, Any]:
        return {
            "backend": EVALUATOR_NAME,
            "base_url": self.config.base_url,
            "model": self.config.model,
            "timeout_seconds": self.config.timeout_seconds,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
