"""Deliver interaction replies exactly once, falling back to follow-ups."""

import logging
from typing import Any

import discord

from provenance_bot.core.logging import format_context

logger = logging.getLogger(__name__)

# Discord API error: "Interaction has already been acknowledged"
ALREADY_ACKNOWLEDGED_CODE = 40060


def is_already_acknowledged(error: BaseException) -> bool:
    """True if ``error`` means another handler already answered the interaction."""
    if isinstance(error, discord.InteractionResponded):
        return True
    if isinstance(error, discord.HTTPException):
        return error.code == ALREADY_ACKNOWLEDGED_CODE
    return getattr(error, "code", None) == ALREADY_ACKNOWLEDGED_CODE


def _as_message(response: Any) -> Any | None:
    """Pull a posted message out of whatever the delivery call returned."""
    if response is None:
        return None
    # InteractionCallbackResponse wraps the message in ``resource``
    resource = getattr(response, "resource", None)
    if resource is not None and hasattr(resource, "edit"):
        return resource
    if hasattr(response, "id") and hasattr(response, "edit"):
        return response
    return None


async def _resolve_message(
    interaction: discord.Interaction,
    response: Any,
    stage: str,
    log_context: dict[str, Any],
) -> Any | None:
    message = _as_message(response)
    if message is not None:
        return message
    try:
        return await interaction.original_response()
    except Exception as e:
        logger.warning(
            "INTERACTION_FETCH_REPLY_FAILED "
            + format_context({**log_context, "phase": "fetch_reply_failed", "stage": stage, "error": e})
        )
        return None


async def _follow_up(
    interaction: discord.Interaction,
    payload: dict[str, Any],
    stage: str,
    log_label: str,
    log_context: dict[str, Any],
) -> Any | None:
    try:
        response = await interaction.followup.send(wait=True, **payload)
    except Exception as e:
        logger.error(
            "INTERACTION_FOLLOW_UP_FAILED "
            + format_context({**log_context, "phase": "error", "reason": log_label, "stage": stage, "error": e})
        )
        return None
    return await _resolve_message(interaction, response, stage, log_context)


async def safe_interaction_reply(
    interaction: discord.Interaction,
    *,
    content: str,
    view: discord.ui.View | None = None,
    ephemeral: bool = False,
    allowed_mentions: discord.AllowedMentions | None = None,
    log_context: dict[str, Any] | None = None,
    log_label: str = "reply",
) -> Any | None:
    """Send ``content`` as the interaction's visible response.

    Uses a follow-up when the interaction is already acknowledged, and retries
    as a follow-up when the primary reply loses an acknowledgement race. Any
    other primary-reply error propagates.

    Returns:
        The posted message, or None if it could not be obtained
    """
    log_context = log_context or {}
    payload: dict[str, Any] = {"content": content, "ephemeral": ephemeral}
    if view is not None:
        payload["view"] = view
    if allowed_mentions is not None:
        payload["allowed_mentions"] = allowed_mentions

    if interaction.response.is_done():
        return await _follow_up(interaction, payload, "follow_up", log_label, log_context)

    try:
        response = await interaction.response.send_message(**payload)
    except Exception as e:
        if not is_already_acknowledged(e):
            raise
        logger.warning(
            "INTERACTION_ALREADY_ACKNOWLEDGED using follow-up "
            + format_context({**log_context, "phase": "fallback", "reason": log_label})
        )
        return await _follow_up(interaction, payload, "fallback_follow_up", log_label, log_context)

    return await _resolve_message(interaction, response, "reply", log_context)
