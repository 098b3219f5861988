"""Logging utilities for provenance-bot."""

import json
import logging
import time
from contextlib import contextmanager
from threading import Lock
from typing import Any, Generator

# AI debug mode flag
_ai_debug: bool = False
_ai_debug_lock = Lock()


def set_ai_debug(enabled: bool) -> None:
    """Enable or disable AI debug logging."""
    global _ai_debug
    with _ai_debug_lock:
        _ai_debug = enabled


def is_ai_debug() -> bool:
    """Check if AI debug logging is enabled."""
    with _ai_debug_lock:
        return _ai_debug


# Dedicated logger for AI debug output
_ai_logger = logging.getLogger("provenance_bot.ai_debug")


def format_context(context: dict[str, Any]) -> str:
    """Render structured log context as space-separated key=value pairs.

    None values are dropped so optional identifiers (guild, response id) do not
    clutter the line.
    """
    parts = []
    for key, value in context.items():
        if value is None:
            continue
        if isinstance(value, BaseException):
            value = f"{type(value).__name__}: {value}"
        text = str(value)
        if " " in text or not text:
            text = json.dumps(text)
        parts.append(f"{key}={text}")
    return " ".join(parts)


# Fail-open branches get their own logger so they can be filtered or alerted on
_fail_open_logger = logging.getLogger("provenance_bot.fail_open")


def log_fail_open(event: str, **context: Any) -> None:
    """Record that a non-critical lookup failed and a safe default was used."""
    suffix = format_context(context)
    _fail_open_logger.warning(f"FAIL_OPEN event={event}" + (f" {suffix}" if suffix else ""))


def log_llm_call(
    operation: str,
    model: str,
    system_prompt: str | None = None,
    messages: list[dict[str, Any]] | None = None,
    config: dict[str, Any] | None = None,
) -> None:
    """Log the input to an LLM call when AI debug is enabled."""
    if not is_ai_debug():
        return

    parts = [
        f"\n{'='*80}",
        f"LLM CALL: {operation}",
        f"Model: {model}",
        f"{'='*80}",
    ]

    if system_prompt:
        parts.append(f"\n--- SYSTEM PROMPT ---\n{system_prompt}")

    if messages:
        parts.append(f"\n--- MESSAGES ---\n{json.dumps(messages, indent=2, default=str)}")

    if config:
        parts.append(f"\n--- CONFIG ---\n{json.dumps(config, indent=2, default=str)}")

    _ai_logger.info("\n".join(parts))


def log_llm_response(
    operation: str,
    response_text: str | None = None,
    usage: dict[str, Any] | None = None,
) -> None:
    """Log the output from an LLM call when AI debug is enabled."""
    if not is_ai_debug():
        return

    parts = [
        f"\n{'-'*80}",
        f"LLM RESPONSE: {operation}",
        f"{'-'*80}",
    ]

    if response_text:
        parts.append(f"\n--- RESPONSE TEXT ---\n{response_text}")

    if usage:
        parts.append(f"\n--- USAGE ---\n{json.dumps(usage, indent=2, default=str)}")

    parts.append(f"{'='*80}\n")

    _ai_logger.info("\n".join(parts))


# Dedicated logger for LLM call summaries (always on)
_llm_logger = logging.getLogger("provenance_bot.llm")


def log_llm_round(
    component: str,
    model: str,
    tokens_in: int | None,
    tokens_out: int | None,
    stop_reason: str | None = None,
) -> None:
    """Log a summary of an LLM call (always on).

    Args:
        component: Which component made the call (e.g., "generation/alternative_lens")
        model: Model name used
        tokens_in: Input token count (None if unavailable)
        tokens_out: Output token count (None if unavailable)
        stop_reason: Stop reason reported by the API
    """
    tokens_str = f"in={tokens_in or '?'} out={tokens_out or '?'}"
    stop_str = f" stop={stop_reason}" if stop_reason else ""

    _llm_logger.info(f"LLM_ROUND [{component}] model={model} {tokens_str}{stop_str}")


@contextmanager
def log_timing(
    logger: logging.Logger, operation: str
) -> Generator[None, None, None]:
    """Context manager for timing operations.

    Logs at DEBUG level on completion.

    Example:
        with log_timing(logger, "Anchor recovery"):
            text = await resolver.recover_full_text(footer)
        # Logs: "Anchor recovery completed in 1.23ms"
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"{operation} completed in {elapsed_ms:.2f}ms")
