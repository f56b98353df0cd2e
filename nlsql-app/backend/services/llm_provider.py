"""Interchangeable clients for the text-generation backends."""
from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, Dict, Iterable, Iterator, Optional

import httpx

from ..config import get_settings
from ..errors import GenerationError
from . import prompts
from .prompts import PromptSpec

logger = logging.getLogger(__name__)


def iter_ndjson_fragments(lines: Iterable[str]) -> Iterator[str]:
    """Yield the ``response`` text of each JSON line until a ``done`` marker.

    ``lines`` must already be split on newlines (``httpx.Response.iter_lines``
    carries partial lines over between network reads). Blank lines and lines
    that are not JSON objects are skipped.
    """
    for line in lines:
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping non-JSON stream line: %r", line[:80])
            continue
        if not isinstance(data, dict):
            continue
        if data.get("error"):
            raise GenerationError(f"Ollama stream error: {data['error']}")
        fragment = data.get("response")
        if fragment:
            yield fragment
        if data.get("done") is True:
            return


def iter_sse_deltas(lines: Iterable[str]) -> Iterator[str]:
    """Yield ``choices[0].delta.content`` from chat-completion ``data:`` events."""
    for line in lines:
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed event: %r", data[:80])
            continue
        try:
            fragment = event["choices"][0]["delta"].get("content")
        except (KeyError, IndexError, TypeError, AttributeError):
            continue
        if fragment:
            yield fragment


class LLMDriver:
    """Common interface: ``generate``/``generate_stream`` on top of ``complete``/``stream``."""

    name = "base"

    def __init__(self, base_url: str, model: str, timeout: float, client: Optional[httpx.Client] = None) -> None:
        self.model = model
        self._client = client or httpx.Client(base_url=base_url, timeout=httpx.Timeout(timeout))

    def complete(self, spec: PromptSpec) -> str:
        raise NotImplementedError

    def stream(self, spec: PromptSpec) -> Iterator[str]:
        raise NotImplementedError

    def generate(self, task: str, **payload: Any) -> str:
        spec = prompts.build(task, **payload)
        logger.info("Generating %s with %s (%s)", task, self.name, self.model)
        return self.complete(spec)

    def generate_stream(self, message: str) -> Iterator[str]:
        return self.stream(prompts.chat(message))

    def close(self) -> None:
        self._client.close()


class OllamaDriver(LLMDriver):
    """Local open-weights server speaking the ``/api/generate`` protocol."""

    name = "ollama"

    def _payload(self, spec: PromptSpec, stream: bool) -> Dict[str, Any]:
        return {
            "model": self.model,
            "prompt": prompts.render_prompt(spec),
            "stream": stream,
            "options": {"temperature": spec.temperature},
        }

    def complete(self, spec: PromptSpec) -> str:
        try:
            response = self._client.post("/api/generate", json=self._payload(spec, stream=False))
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise GenerationError(f"Ollama request failed: {exc}") from exc
        except ValueError as exc:
            raise GenerationError(f"Ollama returned invalid JSON: {exc}") from exc

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise GenerationError(f"Unexpected Ollama response: {data}")
        return text

    def stream(self, spec: PromptSpec) -> Iterator[str]:
        try:
            with self._client.stream("POST", "/api/generate", json=self._payload(spec, stream=True)) as response:
                response.raise_for_status()
                yield from iter_ndjson_fragments(response.iter_lines())
        except httpx.HTTPError as exc:
            raise GenerationError(f"Ollama stream failed: {exc}") from exc


class OpenAIDriver(LLMDriver):
    """Hosted chat-completions API (OpenAI or any compatible endpoint such as Groq)."""

    name = "openai"

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float,
        api_key: Optional[str],
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(base_url, model, timeout, client)
        self._api_key = api_key

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise GenerationError("OPENAI_API_KEY is not configured")
        return {"Authorization": f"Bearer {self._api_key}"}

    def _payload(self, spec: PromptSpec, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": prompts.render_messages(spec),
            "temperature": spec.temperature,
        }
        if stream:
            payload["stream"] = True
        return payload

    def complete(self, spec: PromptSpec) -> str:
        headers = self._headers()
        try:
            response = self._client.post("/chat/completions", json=self._payload(spec, stream=False), headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise GenerationError(f"OpenAI request failed: {exc}") from exc
        except ValueError as exc:
            raise GenerationError(f"OpenAI returned invalid JSON: {exc}") from exc

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError(f"Unexpected OpenAI response: {data}") from exc

    def stream(self, spec: PromptSpec) -> Iterator[str]:
        headers = self._headers()
        try:
            with self._client.stream(
                "POST", "/chat/completions", json=self._payload(spec, stream=True), headers=headers
            ) as response:
                response.raise_for_status()
                yield from iter_sse_deltas(response.iter_lines())
        except httpx.HTTPError as exc:
            raise GenerationError(f"OpenAI stream failed: {exc}") from exc


def create_driver(name: str, client: Optional[httpx.Client] = None) -> LLMDriver:
    settings = get_settings()
    if name == "ollama":
        return OllamaDriver(settings.ollama_base_url, settings.ollama_model, settings.llm_timeout, client)
    if name == "openai":
        return OpenAIDriver(
            settings.openai_base_url,
            settings.openai_model,
            settings.llm_timeout,
            settings.openai_api_key,
            client,
        )
    raise GenerationError(f"Unsupported LLM driver: {name}")


@lru_cache(maxsize=1)
def get_driver() -> LLMDriver:
    """Driver chosen once from ``LLM_DRIVER``."""
    driver = create_driver(get_settings().llm_driver)
    logger.info("LLM driver: %s (%s)", driver.name, driver.model)
    return driver
