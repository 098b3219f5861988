"""Tests for exactly-once interaction replies."""

from types import SimpleNamespace
from typing import Any

import discord
import pytest

from conftest import FakeChannel, FakeInteraction, FakeMessage, FakeUser
from provenance_bot.chat import safe_interaction_reply
from provenance_bot.chat.reply import is_already_acknowledged


def http_error(code: int) -> discord.HTTPException:
    return discord.HTTPException(
        SimpleNamespace(status=400, reason="Bad Request"),
        {"code": code, "message": "Interaction has already been acknowledged."},
    )


def make_interaction() -> FakeInteraction:
    return FakeInteraction({"custom_id": "explain"}, None, FakeChannel())


class RacingResponse:
    """send_message loses an acknowledgement race with ``error``."""

    def __init__(self, error: Exception):
        self.error = error

    def is_done(self) -> bool:
        return False

    async def send_message(self, **kwargs: Any) -> None:
        raise self.error


class TestIsAlreadyAcknowledged:
    """Tests for is_already_acknowledged."""

    def test_interaction_responded(self):
        assert is_already_acknowledged(discord.InteractionResponded(make_interaction()))

    def test_http_code(self):
        assert is_already_acknowledged(http_error(40060))
        assert not is_already_acknowledged(http_error(50013))

    def test_plain_error(self):
        assert not is_already_acknowledged(RuntimeError("boom"))


class TestSafeInteractionReply:
    """Tests for safe_interaction_reply."""

    @pytest.mark.asyncio
    async def test_primary_reply(self):
        interaction = make_interaction()
        message = await safe_interaction_reply(interaction, content="hi", ephemeral=True)

        assert interaction.response.messages == [{"content": "hi", "ephemeral": True}]
        assert interaction.followup.messages == []
        # send_message returned nothing, so the original response is fetched
        assert message.id == 60_000

    @pytest.mark.asyncio
    async def test_follow_up_when_already_done(self):
        interaction = make_interaction()
        await interaction.response.defer()

        message = await safe_interaction_reply(interaction, content="late")

        assert interaction.response.messages == []
        assert interaction.followup.messages == [{"wait": True, "content": "late", "ephemeral": False}]
        assert message.content == "late"

    @pytest.mark.asyncio
    async def test_optional_fields_only_when_given(self):
        interaction = make_interaction()
        mentions = discord.AllowedMentions.none()
        await safe_interaction_reply(interaction, content="x", allowed_mentions=mentions)
        assert interaction.response.messages[0] == {
            "content": "x",
            "ephemeral": False,
            "allowed_mentions": mentions,
        }

    @pytest.mark.asyncio
    async def test_lost_race_falls_back_to_follow_up(self, caplog):
        interaction = make_interaction()
        interaction.response = RacingResponse(http_error(40060))

        with caplog.at_level("WARNING"):
            message = await safe_interaction_reply(interaction, content="retry", log_label="progress")

        assert interaction.followup.messages[0]["content"] == "retry"
        assert message is not None
        assert "INTERACTION_ALREADY_ACKNOWLEDGED" in caplog.text
        assert "reason=progress" in caplog.text

    @pytest.mark.asyncio
    async def test_interaction_responded_falls_back(self):
        interaction = make_interaction()
        interaction.response = RacingResponse(discord.InteractionResponded(interaction))
        await safe_interaction_reply(interaction, content="retry")
        assert len(interaction.followup.messages) == 1

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        interaction = make_interaction()
        interaction.response = RacingResponse(http_error(50013))
        with pytest.raises(discord.HTTPException):
            await safe_interaction_reply(interaction, content="x")
        assert interaction.followup.messages == []

    @pytest.mark.asyncio
    async def test_follow_up_failure_returns_none(self, caplog):
        interaction = make_interaction()
        await interaction.response.defer()

        async def broken_send(**kwargs: Any) -> None:
            raise RuntimeError("webhook gone")

        interaction.followup.send = broken_send
        with caplog.at_level("ERROR"):
            assert await safe_interaction_reply(interaction, content="x") is None
        assert "INTERACTION_FOLLOW_UP_FAILED" in caplog.text

    @pytest.mark.asyncio
    async def test_unfetchable_original_response_returns_none(self, caplog):
        interaction = make_interaction()

        async def broken_original() -> FakeMessage:
            raise RuntimeError("unknown webhook")

        interaction.original_response = broken_original
        with caplog.at_level("WARNING"):
            assert await safe_interaction_reply(interaction, content="x") is None
        assert interaction.response.messages[0]["content"] == "x"
        assert "INTERACTION_FETCH_REPLY_FAILED" in caplog.text

    @pytest.mark.asyncio
    async def test_uses_callback_resource_when_present(self):
        interaction = make_interaction()
        posted = FakeMessage(id=7, author=FakeUser(1))

        async def send_message(**kwargs: Any) -> SimpleNamespace:
            return SimpleNamespace(resource=posted)

        interaction.response.send_message = send_message
        assert await safe_interaction_reply(interaction, content="x") is posted
