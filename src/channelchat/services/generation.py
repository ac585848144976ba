from __future__ import annotations

import base64
from dataclasses import dataclass
import logging
import os
from threading import RLock
from typing import Any, Dict, Optional, Protocol, Tuple

import requests
from requests.adapters import HTTPAdapter

from ..domain.errors import BackendError
from .model_router import ModelRouter, ProviderSelection


LOG = logging.getLogger("channelchat.llm")

_HTTP_TIMEOUT = (
    int(os.getenv("CHANNELCHAT_LLM_CONNECT_TIMEOUT", "3")),
    int(os.getenv("CHANNELCHAT_LLM_READ_TIMEOUT", "90")),
)


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    content_type: str = "image/png"


class GenerationBackend(Protocol):
    def generate_text(self, context_text: str) -> str: ...

    def generate_image(self, prompt: str) -> GeneratedImage: ...


def _build_session() -> requests.Session:
    # No retries: a failed call becomes the fallback reply.
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=0, pool_connections=10, pool_maxsize=10)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _parts_of(response: Any) -> list:
    parts: list = []
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        parts.extend(getattr(content, "parts", None) or [])
    return parts


class GeminiBackend:
    """Gemini adapter over the ``google-genai`` SDK."""

    name = "gemini"

    def __init__(
        self,
        model: str = "gemini-2.5-flash",
        image_model: str = "gemini-2.5-flash-image",
        api_key: Optional[str] = None,
        client: Any = None,
    ) -> None:
        self.model = model
        self.image_model = image_model
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        api_key = self._api_key or os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise BackendError("GEMINI_API_KEY not set", provider=self.name)
        try:
            from google import genai

            self._client = genai.Client(api_key=api_key)
        except Exception as exc:
            raise BackendError(f"gemini client setup failed: {exc}", provider=self.name) from exc
        return self._client

    def generate_text(self, context_text: str) -> str:
        client = self._get_client()
        LOG.debug("gemini_generate_text", extra={"model": self.model, "chars": len(context_text)})
        try:
            response = client.models.generate_content(
                model=self.model,
                contents=context_text,
                # thinking off keeps latency and cost down for chat replies
                config={"thinking_config": {"thinking_budget": 0}},
            )
        except Exception as exc:
            raise BackendError(f"gemini text generation failed: {exc}", provider=self.name) from exc
        return self._extract_text(response)

    def generate_image(self, prompt: str) -> GeneratedImage:
        client = self._get_client()
        LOG.debug("gemini_generate_image", extra={"model": self.image_model})
        try:
            response = client.models.generate_content(
                model=self.image_model,
                contents=prompt,
                config={"response_modalities": ["TEXT", "IMAGE"]},
            )
        except Exception as exc:
            raise BackendError(f"gemini image generation failed: {exc}", provider=self.name) from exc
        for part in _parts_of(response):
            inline = getattr(part, "inline_data", None)
            data = getattr(inline, "data", None) if inline is not None else None
            if not data:
                continue
            if isinstance(data, str):
                try:
                    data = base64.b64decode(data)
                except ValueError as exc:
                    raise BackendError("gemini returned undecodable image data", provider=self.name) from exc
            return GeneratedImage(data=bytes(data), content_type=getattr(inline, "mime_type", None) or "image/png")
        raise BackendError("gemini response contained no image", provider=self.name)

    @staticmethod
    def _extract_text(response: Any) -> str:
        try:
            text = getattr(response, "text", None)
        except (AttributeError, ValueError):
            text = None
        if isinstance(text, str):
            return text
        chunks = [p.text for p in _parts_of(response) if isinstance(getattr(p, "text", None), str)]
        return "".join(chunks)


class LocalLLMBackend:
    """Text-only backend for a local OpenAI-compatible or Ollama server."""

    name = "local"

    def __init__(
        self,
        base_url: str,
        model: str,
        api_style: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Tuple[int, int] = _HTTP_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_style = (api_style or os.getenv("CHANNELCHAT_LLM_LOCAL_API") or "openai").lower()
        self._session = session or _build_session()
        self._timeout = timeout

    def generate_text(self, context_text: str) -> str:
        try:
            if self.api_style == "ollama":
                return self._invoke_ollama(context_text)
            return self._invoke_openai(context_text)
        except requests.exceptions.RequestException as exc:
            raise BackendError(f"local llm request failed: {exc}", provider=self.name) from exc
        except ValueError as exc:
            raise BackendError(f"local llm returned malformed JSON: {exc}", provider=self.name) from exc

    def generate_image(self, prompt: str) -> GeneratedImage:
        raise BackendError("image generation is not supported by the local provider", provider=self.name)

    def _invoke_openai(self, prompt: str) -> str:
        LOG.debug("local_llm_invoke", extra={"model": self.model, "base_url": self.base_url})
        resp = self._session.post(
            f"{self.base_url}/v1/chat/completions",
            json={"model": self.model, "messages": [{"role": "user", "content": prompt}], "stream": False},
            timeout=self._timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        choices = data.get("choices") or []
        if choices:
            message = choices[0].get("message") or {}
            content = message.get("content")
            if content:
                return str(content)
        return str(data.get("response") or data.get("text") or "")

    def _invoke_ollama(self, prompt: str) -> str:
        resp = self._session.post(
            f"{self.base_url}/api/generate",
            json={"model": self.model, "prompt": prompt, "stream": False},
            timeout=self._timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        return str(data.get("response") or data.get("text") or "")


def build_backend(selection: ProviderSelection, env: Optional[Dict[str, str]] = None) -> GenerationBackend:
    env = env if env is not None else os.environ
    if selection.name == "gemini":
        api_key = env.get(selection.api_key_env or "GEMINI_API_KEY")
        return GeminiBackend(
            model=env.get("GEMINI_MODEL", "gemini-2.5-flash"),
            image_model=env.get("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image"),
            api_key=api_key,
        )
    if selection.name == "local":
        base_url = selection.default_base_url or "http://127.0.0.1:11434"
        if selection.base_url_env:
            base_url = env.get(selection.base_url_env, base_url)
        return LocalLLMBackend(base_url=base_url, model=selection.model)
    raise BackendError(f"Unknown provider: {selection.name}", provider=selection.name)


class RoutedBackend:
    """Backend that asks :class:`ModelRouter` for a provider on every call."""

    def __init__(self, router: Optional[ModelRouter] = None, env: Optional[Dict[str, str]] = None) -> None:
        self._env = env
        self._router = router or ModelRouter(env=env)
        self._cache: Dict[Tuple[str, str], GenerationBackend] = {}
        self._lock = RLock()

    def _backend_for(self, purpose: str) -> GenerationBackend:
        try:
            selection = self._router.select_provider(purpose)
        except RuntimeError as exc:
            raise BackendError(str(exc)) from exc
        key = (selection.name, selection.model)
        with self._lock:
            backend = self._cache.get(key)
            if backend is None:
                LOG.info("Using generation provider name=%s model=%s purpose=%s", selection.name, selection.model, purpose)
                backend = build_backend(selection, self._env)
                self._cache[key] = backend
            return backend

    def generate_text(self, context_text: str) -> str:
        return self._backend_for("text").generate_text(context_text)

    def generate_image(self, prompt: str) -> GeneratedImage:
        return self._backend_for("image").generate_image(prompt)
