"""
LLM access for the classification collaborator.

One client wraps one provider SDK (Anthropic or OpenAI). A client without a
key or without its SDK installed is simply unavailable; captures are then
queued unclassified rather than failing.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("brain.common.llm_client")


def _anthropic_sdk(api_key: str) -> Any:
    import anthropic

    return anthropic.Anthropic(api_key=api_key)


def _openai_sdk(api_key: str) -> Any:
    from openai import OpenAI

    return OpenAI(api_key=api_key)


_SDK_FACTORIES: Dict[str, Callable[[str], Any]] = {
    "anthropic": _anthropic_sdk,
    "openai": _openai_sdk,
}


class LLMClient:
    """Text generation against a single configured provider."""

    def __init__(self, provider: str = "anthropic", model: str = "", api_key: Optional[str] = None) -> None:
        self.provider = (provider or "anthropic").lower()
        self.model = model
        self._sdk = None

        factory = _SDK_FACTORIES.get(self.provider)
        if factory is None:
            logger.warning("Unsupported LLM provider: %s", self.provider)
            return
        if not api_key:
            logger.info("%s API key not provided, LLM client unavailable", self.provider)
            return
        try:
            self._sdk = factory(api_key)
        except ImportError:
            logger.warning("%s package not installed, LLM client unavailable", self.provider)
        except Exception as e:
            logger.warning("Failed to initialize %s client: %s", self.provider, e)

    @classmethod
    def from_config(cls, llm_config) -> "LLMClient":
        """Client for the configured provider with that provider's model and key"""
        provider = (llm_config.provider or "anthropic").lower()
        if provider == "openai":
            return cls(provider, llm_config.openai_model, llm_config.openai_api_key or None)
        return cls(provider, llm_config.anthropic_model, llm_config.anthropic_api_key or None)

    @property
    def is_available(self) -> bool:
        return self._sdk is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 512,
        timeout: float = 30.0,
    ) -> str:
        """
        Single-turn completion, stripped of surrounding whitespace.

        Raises:
            RuntimeError: the client is unavailable
            Exception: whatever the provider SDK raises (timeouts, HTTP errors)
        """
        if not self.is_available:
            raise RuntimeError("LLM client is not available")
        if self.provider == "openai":
            return self._openai_generate(prompt, system, max_tokens, timeout)
        return self._anthropic_generate(prompt, system, max_tokens, timeout)

    def _anthropic_generate(self, prompt: str, system: Optional[str], max_tokens: int, timeout: float) -> str:
        extra = {"system": system} if system else {}
        response = self._sdk.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=[{"role": "user", "content": prompt}],
            timeout=timeout,
            **extra,
        )
        return response.content[0].text.strip()

    def _openai_generate(self, prompt: str, system: Optional[str], max_tokens: int, timeout: float) -> str:
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})
        response = self._sdk.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=messages,
            timeout=timeout,
        )
        return (response.choices[0].message.content or "").strip()
