"""Text generation for alternative lens reframings and explanations."""

import logging
from typing import Any, Protocol

import anthropic

from provenance_bot.chat.prompts import (
    BASE_SYSTEM_PROMPT,
    EXPLAIN_SYSTEM_PROMPT,
    LENS_SYSTEM_PROMPT,
    build_explain_prompt,
    build_lens_prompt,
)
from provenance_bot.chat.sessions import LensContext, LensPayload
from provenance_bot.core.logging import log_llm_call, log_llm_response, log_llm_round

logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """The model failed or produced no usable text."""


class TextGenerator(Protocol):
    """Anything that turns a message history plus instructions into text."""

    async def generate(self, messages: list[dict[str, Any]], instructions: str) -> str:
        """Return generated text or raise."""
        ...


class AnthropicTextGenerator:
    """TextGenerator backed by the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-opus-4-5-20251101",
        max_tokens: int = 4096,
        component: str = "generation",
    ):
        self._anthropic = anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model
        self._max_tokens = max_tokens
        self._component = component

    async def generate(self, messages: list[dict[str, Any]], instructions: str) -> str:
        log_llm_call(
            operation=self._component,
            model=self._model,
            system_prompt=instructions,
            messages=messages,
            config={"max_tokens": self._max_tokens},
        )

        try:
            response = await self._anthropic.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=instructions,
                messages=messages,
            )
        except anthropic.APIError as e:
            raise GenerationError(f"Anthropic request failed: {e}") from e

        log_llm_round(
            component=self._component,
            model=self._model,
            tokens_in=response.usage.input_tokens,
            tokens_out=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )

        # A truncated answer is discarded rather than posted half-finished
        if response.stop_reason == "max_tokens":
            logger.error(f"CLAUDE_MAX_TOKENS: Model {self._model} hit token limit, discarding output")
            raise GenerationError("The model hit its token limit before finishing.")

        text = "".join(block.text for block in response.content if block.type == "text")

        log_llm_response(
            operation=self._component,
            response_text=text,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )
        return text


def _system_prompt(task_prompt: str) -> str:
    return f"{BASE_SYSTEM_PROMPT}\n\n{task_prompt}".strip()


async def generate_alternative_lens_message(
    generator: TextGenerator, context: LensContext, lens: LensPayload
) -> str:
    """Rewrite the original reply through the chosen lens.

    Raises:
        GenerationError: if the generator returns nothing usable
    """
    messages = [
        {
            "role": "user",
            "content": build_lens_prompt(lens.label, lens.description, context.metadata, context.message_text),
        }
    ]
    text = (await generator.generate(messages, _system_prompt(LENS_SYSTEM_PROMPT))).strip()
    if not text:
        raise GenerationError("The model returned an empty alternative lens response.")
    return text


async def generate_explanation_message(generator: TextGenerator, context: LensContext) -> str:
    """Summarise the reasoning behind the original reply.

    Raises:
        GenerationError: if the generator returns nothing usable
    """
    messages = [{"role": "user", "content": build_explain_prompt(context.metadata, context.message_text)}]
    text = (await generator.generate(messages, _system_prompt(EXPLAIN_SYSTEM_PROMPT))).strip()
    if not text:
        raise GenerationError("The model returned an empty explanation response.")
    return text
