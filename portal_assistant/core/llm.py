"""Completion client for the assistant.

Wraps the LLM provider behind one call: system prompt + prior turns + the
current user turn in, completion text out. Anthropic is used when its key is
configured, OpenAI otherwise.

Provider failures are mapped onto the assistant error taxonomy:
- credential missing / rejected  -> ConfigurationError
- HTTP 429 (rate limit or quota)  -> QuotaError
- connection, timeout, 5xx        -> retried with exponential backoff, then UpstreamError
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any

import anthropic
import openai

from portal_assistant.core.config import Settings, get_settings
from portal_assistant.core.errors import ConfigurationError, QuotaError, UpstreamError
from portal_assistant.core.llm_usage import log_llm_usage
from portal_assistant.core.logging import get_logger
from portal_assistant.core.schemas_workspace import ConversationTurn, Sender

logger = get_logger(__name__)

PROVIDER_ANTHROPIC = "anthropic"
PROVIDER_OPENAI = "openai"

_TRANSIENT_ERRORS = (
    anthropic.APIConnectionError,
    anthropic.InternalServerError,
    openai.APIConnectionError,
    openai.InternalServerError,
)
_AUTH_ERRORS = (
    anthropic.AuthenticationError,
    anthropic.PermissionDeniedError,
    openai.AuthenticationError,
    openai.PermissionDeniedError,
)
_RATE_ERRORS = (anthropic.RateLimitError, openai.RateLimitError)


@dataclass
class UserTurn:
    """The current user message after attachment normalization."""

    text: str
    image_url: str | None = None
    transcribed: bool = False


def _role(turn: ConversationTurn) -> str:
    return "assistant" if turn.sender == Sender.ASSISTANT else "user"


def _anthropic_messages(history: list[ConversationTurn], user_turn: UserTurn) -> list[dict[str, Any]]:
    """Build alternating user/assistant messages starting with a user turn."""
    messages: list[dict[str, Any]] = []
    for turn in history:
        if not turn.content or not turn.content.strip():
            continue
        role = _role(turn)
        if not messages and role == "assistant":
            continue
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"] += "\n\n" + turn.content
        else:
            messages.append({"role": role, "content": turn.content})

    content: list[dict[str, Any]] = []
    if user_turn.text:
        content.append({"type": "text", "text": user_turn.text})
    if user_turn.image_url:
        content.append({"type": "image", "source": {"type": "url", "url": user_turn.image_url}})

    if messages and messages[-1]["role"] == "user":
        previous = messages.pop()
        content.insert(0, {"type": "text", "text": previous["content"]})
    messages.append({"role": "user", "content": content})
    return messages


def _openai_messages(
    system_prompt: str, history: list[ConversationTurn], user_turn: UserTurn
) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for turn in history:
        if turn.content and turn.content.strip():
            messages.append({"role": _role(turn), "content": turn.content})

    content: list[dict[str, Any]] = []
    if user_turn.text:
        content.append({"type": "text", "text": user_turn.text})
    if user_turn.image_url:
        content.append({"type": "image_url", "image_url": {"url": user_turn.image_url}})
    messages.append({"role": "user", "content": content})
    return messages


def _quota_message(provider: str) -> str:
    name = "Anthropic" if provider == PROVIDER_ANTHROPIC else "OpenAI"
    return (
        f"You've exceeded your {name} quota or rate limit, or there is a billing issue. "
        f"Please check your {name} account."
    )


class CompletionClient:
    """Single request/response completion against the configured provider."""

    def __init__(
        self,
        settings: Settings | None = None,
        anthropic_client: Any | None = None,
        openai_client: Any | None = None,
    ):
        self.settings = settings or get_settings()
        self._anthropic = anthropic_client
        self._openai = openai_client

    @property
    def provider(self) -> str:
        if self._anthropic is not None or self.settings.ANTHROPIC_API_KEY:
            return PROVIDER_ANTHROPIC
        if self._openai is not None or self.settings.OPENAI_API_KEY:
            return PROVIDER_OPENAI
        raise ConfigurationError(
            "No AI provider is configured. Please set ANTHROPIC_API_KEY or OPENAI_API_KEY."
        )

    def _anthropic_client(self) -> Any:
        if self._anthropic is None:
            self._anthropic = anthropic.AsyncAnthropic(
                api_key=self.settings.ANTHROPIC_API_KEY, max_retries=0
            )
        return self._anthropic

    def _openai_client(self) -> Any:
        if self._openai is None:
            self._openai = openai.AsyncOpenAI(api_key=self.settings.OPENAI_API_KEY, max_retries=0)
        return self._openai

    async def complete(
        self,
        system_prompt: str,
        history: list[ConversationTurn],
        user_turn: UserTurn,
        *,
        temperature: float,
        max_tokens: int,
        model: str | None = None,
        workflow: str = "assistant",
        user_id: str | None = None,
    ) -> str:
        """
        Get a completion for the current turn.

        Args:
            system_prompt: Rendered system prompt
            history: Prior turns, oldest first
            user_turn: The current user message (text and optional image)
            temperature: Sampling temperature
            max_tokens: Output token bound
            model: Model override (defaults per provider from settings)
            workflow: Label for usage tracking
            user_id: Caller id for usage tracking

        Returns:
            Completion text

        Raises:
            ConfigurationError: No provider configured or credential rejected
            QuotaError: Provider rate limit / quota exceeded
            UpstreamError: Transient failure persisted after retries
        """
        provider = self.provider
        delay = self.settings.LLM_RETRY_INITIAL_DELAY
        max_retries = self.settings.LLM_MAX_RETRIES

        for attempt in range(max_retries + 1):
            try:
                if provider == PROVIDER_ANTHROPIC:
                    return await self._complete_anthropic(
                        system_prompt, history, user_turn, temperature, max_tokens, model, workflow, user_id
                    )
                return await self._complete_openai(
                    system_prompt, history, user_turn, temperature, max_tokens, model, workflow, user_id
                )
            except _AUTH_ERRORS as e:
                logger.error(f"{provider} rejected the API key: {e}")
                raise ConfigurationError(
                    f"The {provider.capitalize()} API key is invalid or has been revoked. "
                    "Please check the key in the settings."
                ) from e
            except _RATE_ERRORS as e:
                logger.warning(f"{provider} rate limit / quota exceeded: {e}")
                raise QuotaError(_quota_message(provider)) from e
            except _TRANSIENT_ERRORS as e:
                if attempt < max_retries:
                    wait = delay * (2**attempt)
                    logger.warning(
                        f"Completion attempt {attempt + 1}/{max_retries + 1} failed "
                        f"({type(e).__name__}), retrying in {wait}s"
                    )
                    await asyncio.sleep(wait)
                    continue
                logger.error(f"Completion failed after {max_retries + 1} attempts: {e}")
                raise UpstreamError(
                    "I couldn't reach the AI service just now. Please try again in a moment."
                ) from e

        raise UpstreamError("I couldn't reach the AI service just now. Please try again in a moment.")

    async def _complete_anthropic(
        self,
        system_prompt: str,
        history: list[ConversationTurn],
        user_turn: UserTurn,
        temperature: float,
        max_tokens: int,
        model: str | None,
        workflow: str,
        user_id: str | None,
    ) -> str:
        model_name = model or self.settings.ASSISTANT_MODEL
        start = time.time()
        response = await self._anthropic_client().messages.create(
            model=model_name,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=_anthropic_messages(history, user_turn),
        )
        duration_ms = int((time.time() - start) * 1000)

        usage = response.usage
        log_llm_usage(
            workflow=workflow,
            model=model_name,
            provider=PROVIDER_ANTHROPIC,
            tokens_input=usage.input_tokens,
            tokens_output=usage.output_tokens,
            duration_ms=duration_ms,
            user_id=user_id,
        )

        text = ""
        for block in response.content:
            if hasattr(block, "text"):
                text += block.text
        return text

    async def _complete_openai(
        self,
        system_prompt: str,
        history: list[ConversationTurn],
        user_turn: UserTurn,
        temperature: float,
        max_tokens: int,
        model: str | None,
        workflow: str,
        user_id: str | None,
    ) -> str:
        model_name = model or self.settings.OPENAI_ASSISTANT_MODEL
        start = time.time()
        response = await self._openai_client().chat.completions.create(
            model=model_name,
            messages=_openai_messages(system_prompt, history, user_turn),
            temperature=temperature,
            max_tokens=max_tokens,
        )
        duration_ms = int((time.time() - start) * 1000)

        usage = response.usage
        if usage is not None:
            log_llm_usage(
                workflow=workflow,
                model=model_name,
                provider=PROVIDER_OPENAI,
                tokens_input=usage.prompt_tokens,
                tokens_output=usage.completion_tokens,
                duration_ms=duration_ms,
                user_id=user_id,
            )

        return response.choices[0].message.content or ""
