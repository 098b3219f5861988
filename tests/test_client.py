"""Tests for posting traced replies through the Discord client."""

from unittest.mock import MagicMock

import pytest

from conftest import BOT_ID, FakeChannel, FakeMessage, FakeUser, USER_ID
from provenance_bot.chat.anchor import AnchorResolver
from provenance_bot.chat.client import ProvenanceBot
from provenance_bot.chat.discord_adapter import DiscordMessageHistory, to_chat_message
from provenance_bot.chat.provenance import derive_response_id


class TestPostWithProvenanceFooter:
    """Tests for ProvenanceBot.post_with_provenance_footer."""

    @pytest.mark.asyncio
    async def test_long_reply_is_recoverable_from_footer(self, metadata):
        question = FakeMessage(id=100, author=FakeUser(USER_ID), content="What is fair?")
        channel = FakeChannel(messages=[question])
        bot = ProvenanceBot(MagicMock(), trace_viewer_url="https://traces.example.com")
        first, second = "a" * 1500, "b" * 1500

        footer = await bot.post_with_provenance_footer(channel, f"{first}\n{second}", metadata, reply_to=question)

        chunk_one, chunk_two, footer_post = channel.sent
        assert chunk_one[1]["reference"] is question
        assert "reference" not in chunk_two[1]
        assert footer_post[0] == ""
        assert footer.reference is None

        footer_view = to_chat_message(footer)
        assert footer_view.carries_controls
        assert derive_response_id(footer_view) == "resp_1"

        resolver = AnchorResolver(DiscordMessageHistory(channel), str(BOT_ID))
        assert await resolver.recover_full_text(footer_view) == f"{first}\n\n{second}"

    @pytest.mark.asyncio
    async def test_short_reply_without_target(self, metadata):
        channel = FakeChannel()
        bot = ProvenanceBot(MagicMock())

        footer = await bot.post_with_provenance_footer(channel, "Short answer.", metadata)

        (body, body_kwargs), (_, footer_kwargs) = channel.sent
        assert body == "Short answer."
        assert "reference" not in body_kwargs
        assert footer_kwargs["allowed_mentions"].everyone is False
        assert len(footer_kwargs["view"].children) == 2

        resolver = AnchorResolver(DiscordMessageHistory(channel), str(BOT_ID))
        assert await resolver.recover_full_text(to_chat_message(footer)) == "Short answer."
