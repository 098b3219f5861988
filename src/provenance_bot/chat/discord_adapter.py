"""discord.py glue: message conversion, history lookups and chunked posting."""

import logging
from collections.abc import Sequence
from typing import Any

import discord

from provenance_bot.chat.anchor import ChatMessage

logger = logging.getLogger(__name__)

# Discord rejects message content above 2000 characters
MAX_MESSAGE_LENGTH = 2000


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split a message into chunks that fit within Discord's limit.

    Splits at line or word boundaries when possible, falling back to hard splits.
    """
    if len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    while text:
        if len(text) <= max_length:
            chunks.append(text)
            break

        # Prefer a newline, then a space, within the back half of the window
        split_at = text.rfind("\n", 0, max_length)
        if split_at < max_length // 2:
            split_at = text.rfind(" ", 0, max_length)
        if split_at == -1 or split_at < max_length // 2:
            split_at = max_length

        chunks.append(text[:split_at].rstrip())
        text = text[split_at:].lstrip()

    return chunks


def to_chat_message(message: discord.Message) -> ChatMessage:
    """Convert a discord.py message into the resolver's neutral view."""
    reference_id = None
    if message.reference is not None and message.reference.message_id is not None:
        reference_id = str(message.reference.message_id)

    return ChatMessage(
        id=str(message.id),
        author_id=str(message.author.id),
        content=message.content or "",
        created_at=message.created_at,
        reference_id=reference_id,
        has_embeds=bool(message.embeds),
        has_components=bool(message.components),
        footer_texts=[e.footer.text for e in message.embeds if e.footer and e.footer.text],
    )


class DiscordMessageHistory:
    """MessageHistory over one discord.py text channel."""

    def __init__(self, channel: Any):
        self._channel = channel

    async def fetch(self, message_id: str) -> ChatMessage | None:
        try:
            message = await self._channel.fetch_message(int(message_id))
        except discord.NotFound:
            return None
        return to_chat_message(message)

    async def before(self, message_id: str, limit: int) -> Sequence[ChatMessage]:
        return [
            to_chat_message(m)
            async for m in self._channel.history(limit=limit, before=discord.Object(id=int(message_id)))
        ]


async def send_chunked(
    channel: Any,
    text: str,
    reply_to: Any | None = None,
) -> list[Any]:
    """Post ``text`` as one or more consecutive messages.

    Only the first chunk replies to ``reply_to`` (when given), so the reply
    marks where the response starts. Mentions are never pinged.

    Returns:
        The posted messages in order
    """
    sent: list[Any] = []
    target = reply_to
    for chunk in split_message(text):
        kwargs: dict[str, Any] = {"allowed_mentions": discord.AllowedMentions.none()}
        if target is not None:
            kwargs["reference"] = target
            kwargs["mention_author"] = False
        message = await channel.send(chunk, **kwargs)
        logger.info(f"MSG_SENT: channel={getattr(channel, 'id', '?')} length={len(chunk)}")
        sent.append(message)
        target = None
    return sent
