"""
LLM Router

Implements fallback chain: Gemini (primary) -> Groq -> DeepSeek.
Handles rate limiting, errors, automatic failover and tool binding.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_groq import ChatGroq
from langchain_openai import ChatOpenAI  # DeepSeek uses OpenAI-compatible API
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Available LLM providers."""

    GEMINI = "gemini"
    GROQ = "groq"
    DEEPSEEK = "deepseek"


PROVIDER_ORDER = (LLMProvider.GEMINI, LLMProvider.GROQ, LLMProvider.DEEPSEEK)


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""

    # Gemini (primary - native function calling)
    google_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash"

    # Groq (fast backup - free tier)
    groq_api_key: str | None = None
    groq_model: str = "llama-3.3-70b-versatile"

    # DeepSeek (backup)
    deepseek_api_key: str | None = None
    deepseek_model: str = "deepseek-chat"
    deepseek_base_url: str = "https://api.deepseek.com"

    # General settings
    temperature: float = 0.7
    max_tokens: int = 2048

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Read provider keys and model overrides from the environment."""
        defaults = cls()
        return cls(
            google_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", defaults.gemini_model),
            groq_api_key=os.getenv("GROQ_API_KEY"),
            groq_model=os.getenv("GROQ_MODEL", defaults.groq_model),
            deepseek_api_key=os.getenv("DEEPSEEK_API_KEY"),
            deepseek_model=os.getenv("DEEPSEEK_MODEL", defaults.deepseek_model),
            temperature=float(os.getenv("LLM_TEMPERATURE", defaults.temperature)),
        )


class RateLimitError(Exception):
    """Raised when every provider is rate limited."""

    pass


def _is_rate_limit(error: Exception) -> bool:
    error_str = str(error).lower()
    return any(
        marker in error_str
        for marker in ("rate", "limit", "429", "quota", "exceeded", "resource_exhausted")
    )


class LLMRouter:
    """
    Routes LLM requests through fallback chain.

    Priority: Gemini -> Groq -> DeepSeek

    Tool specs are bound per provider once and reused for later rounds.
    """

    def __init__(self, config: LLMConfig | None = None):
        """Initialize the LLM router."""
        self.config = config or LLMConfig()
        self._providers: dict[LLMProvider, BaseChatModel | None] = {}
        self._bound: dict[tuple[LLMProvider, tuple[str, ...]], Any] = {}
        self._initialize_providers()
        self._current_provider: LLMProvider | None = None

    def _initialize_providers(self):
        """Build a chat model for every provider that has a key."""
        cfg = self.config
        builders = {
            LLMProvider.GEMINI: (
                cfg.google_api_key,
                cfg.gemini_model,
                lambda: ChatGoogleGenerativeAI(
                    google_api_key=cfg.google_api_key,
                    model=cfg.gemini_model,
                    temperature=cfg.temperature,
                    max_output_tokens=cfg.max_tokens,
                ),
            ),
            LLMProvider.GROQ: (
                cfg.groq_api_key,
                cfg.groq_model,
                lambda: ChatGroq(
                    api_key=cfg.groq_api_key,
                    model=cfg.groq_model,
                    temperature=cfg.temperature,
                    max_tokens=cfg.max_tokens,
                ),
            ),
            LLMProvider.DEEPSEEK: (
                cfg.deepseek_api_key,
                cfg.deepseek_model,
                lambda: ChatOpenAI(
                    api_key=cfg.deepseek_api_key,
                    base_url=cfg.deepseek_base_url,
                    model=cfg.deepseek_model,
                    temperature=cfg.temperature,
                    max_tokens=cfg.max_tokens,
                ),
            ),
        }

        for provider, (api_key, model, build) in builders.items():
            self._providers[provider] = None
            if not api_key:
                logger.info(f"No API key for {provider.value}, skipping")
                continue
            try:
                self._providers[provider] = build()
                logger.info(f"{provider.value} ready with model {model}")
            except Exception as e:
                logger.warning(f"Could not set up {provider.value}: {e}")

    def get_available_providers(self) -> list[LLMProvider]:
        """Providers with a usable model, in fallback order."""
        return [p for p in PROVIDER_ORDER if self._providers.get(p) is not None]

    def _model_for(self, provider: LLMProvider, tools: list[dict] | None):
        llm = self._providers[provider]
        if not tools:
            return llm
        key = (provider, tuple(t["function"]["name"] for t in tools))
        if key not in self._bound:
            self._bound[key] = llm.bind_tools(tools)
        return self._bound[key]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((RateLimitError,)),
        reraise=True,
    )
    async def ainvoke(
        self,
        messages: list[BaseMessage],
        tools: list[dict] | None = None,
        **kwargs: Any,
    ) -> AIMessage:
        """
        Invoke LLM with automatic fallback.

        Args:
            messages: Messages to send to LLM
            tools: OpenAI-style tool specs to bind
            **kwargs: Additional arguments for the LLM

        Returns:
            LLM response message (may carry ``tool_calls``)

        Raises:
            RateLimitError: every provider was rate limited (retried)
            RuntimeError: no provider produced a reply
        """
        providers = self.get_available_providers()
        if not providers:
            raise RuntimeError("No LLM providers available")

        rate_limited = 0
        for provider in providers:
            try:
                llm = self._model_for(provider, tools)
                logger.debug(f"Trying provider: {provider.value}")

                response = await llm.ainvoke(messages, **kwargs)
                self._current_provider = provider
                logger.info(f"Success with provider: {provider.value}")
                return response

            except Exception as e:
                if _is_rate_limit(e):
                    rate_limited += 1
                    logger.warning(f"Rate limited by {provider.value}: {e}")
                    continue

                logger.error(f"Error with {provider.value}: {e}")
                continue

        if rate_limited == len(providers):
            raise RateLimitError("All LLM providers are rate limited")
        raise RuntimeError("All LLM providers failed")

    @property
    def current_provider(self) -> LLMProvider | None:
        """Get the currently active provider."""
        return self._current_provider


def create_llm_router(config: LLMConfig | None = None) -> LLMRouter:
    """
    Factory function to create an LLM router.

    Args:
        config: Provider configuration; read from the environment when omitted

    Returns:
        Configured LLM router
    """
    return LLMRouter(config or LLMConfig.from_env())
