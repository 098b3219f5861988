"""Recover the full text of a reply that may span several chat messages.

A long assistant reply is posted as consecutive bot messages, followed by a
separate footer message that carries the provenance controls. Given that
footer, the resolver finds the "anchor" (the message holding the reply text)
and stitches the preceding chunks back together.

Every lookup failure degrades to whatever text was already collected.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

from provenance_bot.core.logging import log_fail_open

logger = logging.getLogger(__name__)

DEFAULT_MAX_PRECEDING_MESSAGES = 16
DEFAULT_CHAIN_WINDOW = timedelta(minutes=2)
CHUNK_SEPARATOR = "\n\n"


@dataclass
class ChatMessage:
    """Platform-neutral view of one channel message."""

    id: str
    author_id: str
    content: str
    created_at: datetime
    reference_id: str | None = None  # Set when the message is a reply
    has_embeds: bool = False
    has_components: bool = False
    footer_texts: list[str] = field(default_factory=list)

    @property
    def body(self) -> str:
        return (self.content or "").strip()

    @property
    def carries_controls(self) -> bool:
        """Embeds/components mark footers or prompts, never reply content."""
        return self.has_embeds or self.has_components


class MessageHistory(Protocol):
    """Channel lookups the resolver needs."""

    async def fetch(self, message_id: str) -> ChatMessage | None:
        """Fetch one message by id."""
        ...

    async def before(self, message_id: str, limit: int) -> Sequence[ChatMessage]:
        """Fetch up to ``limit`` messages posted before ``message_id``."""
        ...


class AnchorResolver:
    """Finds the anchor message for a footer and recovers the full reply."""

    def __init__(
        self,
        history: MessageHistory,
        bot_id: str | None,
        max_preceding_messages: int = DEFAULT_MAX_PRECEDING_MESSAGES,
        chain_window: timedelta = DEFAULT_CHAIN_WINDOW,
    ):
        self._history = history
        self._bot_id = bot_id
        self._max_preceding = max_preceding_messages
        self._chain_window = chain_window

    async def _preceding(self, message: ChatMessage) -> list[ChatMessage]:
        """Messages before ``message``, newest first."""
        candidates = await self._history.before(message.id, self._max_preceding)
        return sorted(candidates, key=lambda m: m.created_at, reverse=True)

    async def resolve_anchor(self, footer: ChatMessage) -> ChatMessage | None:
        """Resolve the message holding the reply text for a footer message."""
        # Single-message replies carry their content on the footer itself
        if footer.body:
            return footer

        if footer.reference_id:
            try:
                referenced = await self._history.fetch(footer.reference_id)
            except Exception as e:
                log_fail_open(
                    "anchor_reference_fetch_failed",
                    message_id=footer.id,
                    reference_id=footer.reference_id,
                    error=e,
                )
                referenced = None
            if referenced is not None:
                return referenced

        if not self._bot_id:
            logger.warning("Failed to resolve provenance anchor: bot id unknown")
            return None

        try:
            for candidate in await self._preceding(footer):
                # Only messages immediately above the footer belong to this reply
                if candidate.author_id != self._bot_id or candidate.carries_controls:
                    break
                if candidate.body:
                    return candidate
        except Exception as e:
            log_fail_open("anchor_history_lookup_failed", message_id=footer.id, error=e)

        return None

    async def recover_full_text(
        self, footer: ChatMessage, anchor: ChatMessage | None = None
    ) -> str:
        """Reconstruct the full reply text, even when split across messages.

        Args:
            footer: The message carrying the provenance controls
            anchor: Pre-resolved anchor; resolved from ``footer`` when omitted

        Returns:
            Chunks joined chronologically with blank lines, or "" if nothing found
        """
        if anchor is None:
            anchor = await self.resolve_anchor(footer)
        if anchor is None:
            return ""

        chunks: list[str] = []
        if anchor.body:
            chunks.append(anchor.body)

        if not self._bot_id:
            return CHUNK_SEPARATOR.join(chunks).strip()

        # A reply-bearing anchor is the start of the response; nothing above it belongs
        if anchor.reference_id and chunks:
            return CHUNK_SEPARATOR.join(chunks).strip()

        try:
            for candidate in await self._preceding(anchor):
                if candidate.author_id != self._bot_id or candidate.carries_controls:
                    break
                if not candidate.body:
                    break
                if anchor.created_at - candidate.created_at > self._chain_window:
                    break

                chunks.insert(0, candidate.body)

                if candidate.reference_id:
                    break
        except Exception as e:
            log_fail_open(
                "anchor_chunk_recovery_failed",
                message_id=footer.id,
                anchor_id=anchor.id,
                recovered_chunks=len(chunks),
                error=e,
            )

        return CHUNK_SEPARATOR.join(chunks).strip()
