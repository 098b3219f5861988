"""Tests for anchor resolution and split-reply recovery."""

from datetime import datetime, timedelta, timezone

import pytest

from provenance_bot.chat import AnchorResolver, ChatMessage

BOT = "999"
USER = "42"
BASE = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def msg(
    message_id: int,
    content: str = "",
    author: str = BOT,
    seconds: float = 0,
    reference_id: str | None = None,
    controls: bool = False,
) -> ChatMessage:
    return ChatMessage(
        id=str(message_id),
        author_id=author,
        content=content,
        created_at=BASE + timedelta(seconds=seconds),
        reference_id=reference_id,
        has_embeds=controls,
        has_components=controls,
    )


class FakeHistory:
    """MessageHistory over an in-memory list, ids ascending with time."""

    def __init__(self, messages: list[ChatMessage], fail_fetch: bool = False, fail_before: bool = False):
        self.messages = messages
        self.fail_fetch = fail_fetch
        self.fail_before = fail_before
        self.before_calls: list[tuple[str, int]] = []

    async def fetch(self, message_id: str) -> ChatMessage | None:
        if self.fail_fetch:
            raise ConnectionError("gateway down")
        return next((m for m in self.messages if m.id == message_id), None)

    async def before(self, message_id: str, limit: int) -> list[ChatMessage]:
        self.before_calls.append((message_id, limit))
        if self.fail_before:
            raise ConnectionError("gateway down")
        older = [m for m in self.messages if int(m.id) < int(message_id)]
        # Oldest first, to check the resolver sorts for itself
        return older[-limit:]


def footer(message_id: int = 10, seconds: float = 10, content: str = "", reference_id: str | None = None) -> ChatMessage:
    return msg(message_id, content=content, seconds=seconds, reference_id=reference_id, controls=True)


class TestResolveAnchor:
    """Tests for AnchorResolver.resolve_anchor."""

    @pytest.mark.asyncio
    async def test_footer_with_body_is_its_own_anchor(self):
        own = footer(content="Short answer.")
        resolver = AnchorResolver(FakeHistory([own]), BOT)
        assert await resolver.resolve_anchor(own) is own

    @pytest.mark.asyncio
    async def test_follows_reference(self):
        target = msg(3, "Referenced reply.", seconds=3)
        history = FakeHistory([msg(1, "q", author=USER), target, msg(4, "later", seconds=4)])
        resolver = AnchorResolver(history, BOT)

        anchor = await resolver.resolve_anchor(footer(reference_id="3"))
        assert anchor is target
        assert history.before_calls == []

    @pytest.mark.asyncio
    async def test_reference_fetch_failure_falls_back_to_history(self, caplog):
        chunk = msg(5, "Chunk.", seconds=5)
        resolver = AnchorResolver(FakeHistory([chunk], fail_fetch=True), BOT)

        with caplog.at_level("WARNING", logger="provenance_bot.fail_open"):
            anchor = await resolver.resolve_anchor(footer(reference_id="3"))

        assert anchor is chunk
        assert "anchor_reference_fetch_failed" in caplog.text

    @pytest.mark.asyncio
    async def test_picks_nearest_bot_message(self):
        history = FakeHistory([msg(1, "q", author=USER), msg(2, "first", seconds=2), msg(3, "second", seconds=3)])
        anchor = await AnchorResolver(history, BOT).resolve_anchor(footer())
        assert anchor.id == "3"

    @pytest.mark.asyncio
    async def test_skips_empty_bot_messages(self):
        history = FakeHistory([msg(2, "text", seconds=2), msg(3, "   ", seconds=3)])
        anchor = await AnchorResolver(history, BOT).resolve_anchor(footer())
        assert anchor.id == "2"

    @pytest.mark.asyncio
    async def test_stops_at_other_author(self):
        history = FakeHistory([msg(2, "older bot", seconds=2), msg(3, "interjection", author=USER, seconds=3)])
        assert await AnchorResolver(history, BOT).resolve_anchor(footer()) is None

    @pytest.mark.asyncio
    async def test_stops_at_message_with_controls(self):
        """Test that an earlier footer is never mistaken for reply content."""
        history = FakeHistory([msg(2, "older reply", seconds=2), msg(3, "old footer", seconds=3, controls=True)])
        assert await AnchorResolver(history, BOT).resolve_anchor(footer()) is None

    @pytest.mark.asyncio
    async def test_unknown_bot_id(self):
        history = FakeHistory([msg(2, "reply", seconds=2)])
        assert await AnchorResolver(history, None).resolve_anchor(footer()) is None

    @pytest.mark.asyncio
    async def test_history_failure_fails_open(self, caplog):
        resolver = AnchorResolver(FakeHistory([], fail_before=True), BOT)
        with caplog.at_level("WARNING", logger="provenance_bot.fail_open"):
            assert await resolver.resolve_anchor(footer()) is None
        assert "anchor_history_lookup_failed" in caplog.text

    @pytest.mark.asyncio
    async def test_honours_lookback_limit(self):
        history = FakeHistory([msg(i, f"m{i}", seconds=i) for i in range(1, 6)])
        await AnchorResolver(history, BOT, max_preceding_messages=3).resolve_anchor(footer())
        assert history.before_calls == [("10", 3)]


class TestRecoverFullText:
    """Tests for AnchorResolver.recover_full_text."""

    @pytest.mark.asyncio
    async def test_single_message_reply(self):
        own = footer(content="  Whole answer.  ")
        assert await AnchorResolver(FakeHistory([own]), BOT).recover_full_text(own) == "Whole answer."

    @pytest.mark.asyncio
    async def test_joins_split_reply_in_order(self):
        history = FakeHistory(
            [
                msg(1, "question", author=USER),
                msg(2, "Part one.", seconds=2, reference_id="1"),
                msg(3, "Part two.", seconds=3),
                msg(4, "Part three.", seconds=4),
            ]
        )
        text = await AnchorResolver(history, BOT).recover_full_text(footer())
        assert text == "Part one.\n\nPart two.\n\nPart three."

    @pytest.mark.asyncio
    async def test_reply_bearing_chunk_starts_the_response(self):
        """Test that an earlier unrelated bot reply is not glued on."""
        history = FakeHistory(
            [
                msg(1, "Previous answer.", seconds=1),
                msg(2, "Part one.", seconds=2, reference_id="0"),
                msg(3, "Part two.", seconds=3),
            ]
        )
        text = await AnchorResolver(history, BOT).recover_full_text(footer())
        assert text == "Part one.\n\nPart two."

    @pytest.mark.asyncio
    async def test_reply_bearing_anchor_stands_alone(self):
        history = FakeHistory([msg(1, "Earlier.", seconds=1), msg(2, "Only chunk.", seconds=2, reference_id="0")])
        text = await AnchorResolver(history, BOT).recover_full_text(footer())
        assert text == "Only chunk."

    @pytest.mark.asyncio
    async def test_respects_chain_window(self):
        history = FakeHistory([msg(1, "Much older.", seconds=0), msg(2, "Recent.", seconds=200)])
        resolver = AnchorResolver(history, BOT, chain_window=timedelta(minutes=2))
        assert await resolver.recover_full_text(footer(seconds=201)) == "Recent."

    @pytest.mark.asyncio
    async def test_stops_at_empty_chunk(self):
        history = FakeHistory([msg(1, "Detached.", seconds=1), msg(2, "", seconds=2), msg(3, "Tail.", seconds=3)])
        assert await AnchorResolver(history, BOT).recover_full_text(footer()) == "Tail."

    @pytest.mark.asyncio
    async def test_nothing_found(self):
        history = FakeHistory([msg(1, "question", author=USER)])
        assert await AnchorResolver(history, BOT).recover_full_text(footer()) == ""

    @pytest.mark.asyncio
    async def test_pre_resolved_anchor(self):
        anchor = msg(7, "Given anchor.", seconds=7, reference_id="1")
        text = await AnchorResolver(FakeHistory([anchor]), BOT).recover_full_text(footer(), anchor)
        assert text == "Given anchor."

    @pytest.mark.asyncio
    async def test_without_bot_id_returns_anchor_only(self):
        anchor = msg(3, "Anchor text.", seconds=3)
        history = FakeHistory([msg(2, "Before.", seconds=2), anchor])
        assert await AnchorResolver(history, None).recover_full_text(footer(), anchor) == "Anchor text."

    @pytest.mark.asyncio
    async def test_chunk_lookup_failure_keeps_collected_text(self, caplog):
        anchor = msg(3, "Anchor text.", seconds=3)
        resolver = AnchorResolver(FakeHistory([anchor], fail_before=True), BOT)
        with caplog.at_level("WARNING", logger="provenance_bot.fail_open"):
            assert await resolver.recover_full_text(footer(), anchor) == "Anchor text."
        assert "anchor_chunk_recovery_failed" in caplog.text
