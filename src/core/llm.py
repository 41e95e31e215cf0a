"""
LifeLine Assistant — LLM Provider Abstraction.

Single public function `complete()` that routes to the configured provider.
Provider is selected on first use via the LLM_PROVIDER env var.
Supports: openrouter (default), gemini, anthropic, openai, cohere.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

# (api_key, model, base_url, system, user_message, max_tokens) -> text
_ProviderFn = Callable[[str, str, str, str, str, int], Awaitable[str]]


class LLMNotConfigured(RuntimeError):
    """Raised when completion is requested but no LLM_API_KEY is set."""


# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _complete_openai_compatible(
    api_key: str, model: str, base_url: str, system: str, user_message: str, max_tokens: int,
) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key, base_url=base_url or None)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.choices[0].message.content or ""


async def _complete_gemini(
    api_key: str, model: str, base_url: str, system: str, user_message: str, max_tokens: int,
) -> str:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    gm = genai.GenerativeModel(model_name=model, system_instruction=system)
    response = await gm.generate_content_async(
        user_message,
        generation_config=genai.types.GenerationConfig(max_output_tokens=max_tokens),
    )
    return response.text


async def _complete_anthropic(
    api_key: str, model: str, base_url: str, system: str, user_message: str, max_tokens: int,
) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        system=system,
        messages=[{"role": "user", "content": user_message}],
    )
    return response.content[0].text


async def _complete_cohere(
    api_key: str, model: str, base_url: str, system: str, user_message: str, max_tokens: int,
) -> str:
    import cohere

    client = cohere.AsyncClientV2(api_key=api_key)
    response = await client.chat(
        model=model,
        max_tokens=max_tokens,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.message.content[0].text


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "openrouter": (_complete_openai_compatible, "openai/gpt-4o-mini"),
    "openai":     (_complete_openai_compatible, "gpt-4o-mini"),
    "gemini":     (_complete_gemini,            "gemini-2.0-flash"),
    "anthropic":  (_complete_anthropic,         "claude-haiku-4-5-20251001"),
    "cohere":     (_complete_cohere,            "command-a-03-2025"),
}


def is_configured() -> bool:
    """True when an API key is available for free-text parsing."""
    from src.config import settings

    return bool(settings.LLM_API_KEY)


def _select_provider() -> tuple[_ProviderFn, str, str, str]:
    """Read settings and return (provider_fn, model, api_key, base_url)."""
    from src.config import settings

    provider_name = settings.LLM_PROVIDER.lower()
    if provider_name not in _PROVIDERS:
        raise ValueError(
            f"Unknown LLM_PROVIDER={provider_name!r}. "
            f"Supported: {', '.join(_PROVIDERS)}"
        )
    if not settings.LLM_API_KEY:
        raise LLMNotConfigured("LLM_API_KEY is not set")

    fn, default_model = _PROVIDERS[provider_name]
    model = settings.LLM_MODEL or default_model
    # Only the OpenRouter route needs a custom endpoint
    base_url = settings.LLM_BASE_URL if provider_name == "openrouter" else ""

    logger.info("LLM provider: %s, model: %s", provider_name, model)
    return fn, model, settings.LLM_API_KEY, base_url


# Lazy singleton, populated on first call to complete()
_provider: tuple[_ProviderFn, str, str, str] | None = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete(system: str, user_message: str, max_tokens: int = 256) -> str:
    """Send a prompt to the configured LLM provider and return the response text.

    Raises on API errors; callers should handle exceptions.
    """
    global _provider

    if _provider is None:
        _provider = _select_provider()

    fn, model, api_key, base_url = _provider
    return await fn(api_key, model, base_url, system, user_message, max_tokens)
