"""Routing helpers for selecting the generation provider.

The router does not couple directly to concrete SDK clients; it picks a
provider configuration that :mod:`channelchat.services.generation` turns
into a backend. This keeps the selection policy unit-testable without
importing the Gemini SDK.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Set


@dataclass(frozen=True)
class ProviderSelection:
    """Returned details about the provider that should handle a call."""

    name: str
    model: str
    api_key_env: Optional[str]
    base_url_env: Optional[str] = None
    default_base_url: Optional[str] = None
    requires_api_key: bool = True


class ModelRouter:
    """Policy-based router choosing a provider per purpose ("text" or "image")."""

    PROVIDER_CONFIG: Dict[str, Dict[str, Optional[str] | bool]] = {
        "gemini": {
            "api_key_env": "GEMINI_API_KEY",
            "model_env": "GEMINI_MODEL",
            "default_model": "gemini-2.5-flash",
            "image_model_env": "GEMINI_IMAGE_MODEL",
            "default_image_model": "gemini-2.5-flash-image",
        },
        "local": {
            "api_key_env": "LOCAL_API_KEY",
            "base_url_env": "LOCAL_BASE_URL",
            "model_env": "LOCAL_MODEL",
            "default_model": "llama3.1:8b",
            "default_base_url": "http://127.0.0.1:11434",
            "requires_api_key": False,
        },
    }

    ROUTING_POLICY: Dict[str, tuple[str, ...]] = {
        "text": ("gemini", "local"),
        # Only Gemini can return image parts.
        "image": ("gemini",),
    }

    def __init__(
        self,
        env: Optional[Dict[str, str]] = None,
        allowed_providers: Optional[Iterable[str]] = None,
    ) -> None:
        self._env = env if env is not None else os.environ
        self._allowed: Optional[Set[str]] = set(allowed_providers) if allowed_providers else None
        preferred = (self._env.get("CHANNELCHAT_MODEL_PROVIDER") or "").strip().lower()
        self._preferred_provider = preferred if preferred in self.PROVIDER_CONFIG else None

    def provider_available(self, provider: str) -> bool:
        cfg = self.PROVIDER_CONFIG.get(provider)
        if not cfg:
            return False
        if self._allowed is not None and provider not in self._allowed:
            return False
        if bool(cfg.get("requires_api_key", True)):
            api_key_env = cfg.get("api_key_env")
            return bool(api_key_env and self._env.get(str(api_key_env)))
        if provider == "local":
            enabled = (self._env.get("CHANNELCHAT_ENABLE_LOCAL_PROVIDER") or "").strip() == "1"
            return enabled or self._preferred_provider == "local"
        return True

    def _resolve_selection(self, provider: str, purpose: str) -> ProviderSelection:
        cfg = self.PROVIDER_CONFIG[provider]
        if purpose == "image" and cfg.get("image_model_env"):
            model = self._env.get(str(cfg["image_model_env"]), str(cfg.get("default_image_model") or ""))
        else:
            model_env = str(cfg.get("model_env") or "")
            model = self._env.get(model_env, str(cfg.get("default_model") or ""))
        return ProviderSelection(
            name=provider,
            model=model,
            api_key_env=cfg.get("api_key_env"),  # type: ignore[arg-type]
            base_url_env=cfg.get("base_url_env"),  # type: ignore[arg-type]
            default_base_url=cfg.get("default_base_url"),  # type: ignore[arg-type]
            requires_api_key=bool(cfg.get("requires_api_key", True)),
        )

    def select_provider(self, purpose: str) -> ProviderSelection:
        """Return the provider selected for the supplied purpose.

        Raises
        ------
        RuntimeError
            If no provider configured for the purpose is currently available.
        """

        priority = list(self.ROUTING_POLICY.get(purpose, self.ROUTING_POLICY["text"]))
        if self._preferred_provider and self._preferred_provider in priority:
            priority = [self._preferred_provider] + [p for p in priority if p != self._preferred_provider]
        for provider in priority:
            if self.provider_available(provider):
                return self._resolve_selection(provider, purpose)
        raise RuntimeError(f"No active model provider available for {purpose!r} generation.")

    def maybe_select_provider(self, purpose: str) -> Optional[ProviderSelection]:
        """Like :meth:`select_provider` but returns ``None`` on failure."""

        try:
            return self.select_provider(purpose)
        except RuntimeError:
            return None
