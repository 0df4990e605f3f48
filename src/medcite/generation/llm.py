"""
Completion clients for answer generation.

Two providers behind one call shape:
- Anthropic Claude (default)
- OpenAI chat completions

SDK errors never escape ``complete``; they come back as
``Failure(LLMFailure)``, which the answer pipeline always surfaces.

Usage:
    from medcite.generation.llm import build_llm

    llm = build_llm()
    text = llm.complete(system_prompt, message, temperature=0.3, max_tokens=2000)
"""

from typing import Any, Protocol, runtime_checkable

from medcite.config import Settings, get_settings
from medcite.errors import Failure
from medcite.logging import get_logger

logger = get_logger(__name__, component="llm")


@runtime_checkable
class CompletionClient(Protocol):
    """Single-turn completion: system prompt plus one user message."""

    def complete(
            self,
            system_prompt: str,
            user_message: str,
            temperature: float = 0.3,
            max_tokens: int = 2000,
            model: str | None = None,
    ) -> str | Failure:
        ...


class AnthropicCompletionClient:
    """
    Claude via the Anthropic Messages API.

    Example:
        llm = AnthropicCompletionClient(Anthropic(api_key=...), model="claude-sonnet-4-20250514")
        answer = llm.complete(system_prompt, "First-line therapy for CAP?")
    """

    def __init__(self, client: Any, model: str):
        self.client = client
        self.model = model

        logger.info("llm_client_initialized", provider="anthropic", model=model)

    def complete(
            self,
            system_prompt: str,
            user_message: str,
            temperature: float = 0.3,
            max_tokens: int = 2000,
            model: str | None = None,
    ) -> str | Failure:
        model = model or self.model
        logger.debug("completion_start", provider="anthropic", model=model)

        try:
            response = self.client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_message}],
            )
        except Exception as e:
            logger.warning("completion_failed", provider="anthropic", error=str(e))
            return Failure.llm(f"Anthropic completion failed: {e}")

        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", "text") == "text"
        )

        logger.debug("completion_complete", provider="anthropic", chars=len(text))

        return text


class OpenAICompletionClient:
    """GPT models via OpenAI chat completions."""

    def __init__(self, client: Any, model: str = "gpt-4-turbo"):
        self.client = client
        self.model = model

        logger.info("llm_client_initialized", provider="openai", model=model)

    def complete(
            self,
            system_prompt: str,
            user_message: str,
            temperature: float = 0.3,
            max_tokens: int = 2000,
            model: str | None = None,
    ) -> str | Failure:
        model = model or self.model
        logger.debug("completion_start", provider="openai", model=model)

        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_message},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            logger.warning("completion_failed", provider="openai", error=str(e))
            return Failure.llm(f"OpenAI completion failed: {e}")

        text = response.choices[0].message.content or ""

        logger.debug("completion_complete", provider="openai", chars=len(text))

        return text


def build_llm(settings: Settings | None = None) -> AnthropicCompletionClient | OpenAICompletionClient:
    """
    Build the configured completion client.

    Raises:
        ValueError: Unknown provider, or the provider's API key is missing
    """
    settings = settings or get_settings()
    provider = settings.llm_provider.lower()

    if provider == "anthropic":
        if not settings.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY not set. Add it to your .env file.")
        from anthropic import Anthropic

        client = Anthropic(
            api_key=settings.anthropic_api_key.get_secret_value(),
            timeout=settings.request_timeout_seconds,
            max_retries=settings.max_retries,
        )
        return AnthropicCompletionClient(client, model=settings.llm_model)

    if provider == "openai":
        if not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY not set. Add it to your .env file.")
        from openai import OpenAI

        client = OpenAI(
            api_key=settings.openai_api_key.get_secret_value(),
            timeout=settings.request_timeout_seconds,
            max_retries=settings.max_retries,
        )
        return OpenAICompletionClient(client, model=settings.openai_llm_model)

    raise ValueError(f"Unknown llm_provider: {settings.llm_provider!r} (expected anthropic or openai)")


def fast_model(settings: Settings | None = None) -> str:
    """Model used for short auxiliary completions such as chat titles."""
    settings = settings or get_settings()
    if settings.llm_provider.lower() == "openai":
        return settings.openai_llm_model
    return settings.llm_model_fast
