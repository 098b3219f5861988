"""Pytest configuration and fixtures."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from provenance_bot.config import Config
from provenance_bot.tracing import ResponseMetadata, TraceStore

BOT_ID = 999
USER_ID = 42


def make_metadata_payload(**overrides: Any) -> dict[str, Any]:
    """A valid camelCase trace payload."""
    payload: dict[str, Any] = {
        "responseId": "resp_1",
        "provenance": "Retrieved",
        "confidence": 0.85,
        "riskTier": "Low",
        "tradeoffCount": 2,
        "chainHash": "abc123",
        "licenseContext": "MIT",
        "modelVersion": "model-1",
        "staleAfter": (datetime.now(timezone.utc) + timedelta(days=1)).isoformat(),
        "citations": [{"title": "Example", "url": "https://example.com/a"}],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def default_config() -> Config:
    """Provide a default configuration for testing."""
    return Config()


@pytest.fixture
def metadata_payload() -> dict[str, Any]:
    return make_metadata_payload()


@pytest.fixture
def metadata(metadata_payload: dict[str, Any]) -> ResponseMetadata:
    return ResponseMetadata.from_payload(metadata_payload)


@pytest.fixture
def store(tmp_path: Path):
    """Create a test trace store."""
    trace_store = TraceStore(tmp_path / "traces.db")
    yield trace_store
    trace_store.close()


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Create a temporary config file."""
    config_content = """
discord:
  trace_viewer_url: "https://traces.example.com"

llm:
  anthropic_api_key: "test-key"
  max_tokens: 1024

traces:
  db_path: "./test-data/traces.db"
  write_limit: 5

anchor:
  max_preceding_messages: 8
  chain_window_seconds: 30
"""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(config_content)
    return config_path


# -- fake Discord objects ----------------------------------------------------


@dataclass
class FakeUser:
    id: int
    name: str = "user"
    display_name: str = "User"


@dataclass
class FakeReference:
    message_id: int


@dataclass
class FakeEmbedFooter:
    text: str | None


@dataclass
class FakeEmbed:
    footer: FakeEmbedFooter


@dataclass
class FakeMessage:
    id: int
    author: FakeUser
    content: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    reference: FakeReference | None = None
    embeds: list[FakeEmbed] = field(default_factory=list)
    components: list[Any] = field(default_factory=list)
    edits: list[dict[str, Any]] = field(default_factory=list)

    async def edit(self, **kwargs: Any) -> "FakeMessage":
        self.edits.append(kwargs)
        return self


class FakeChannel:
    """Text channel holding messages in posting order."""

    def __init__(self, channel_id: int = 10, messages: list[FakeMessage] | None = None):
        self.id = channel_id
        self.messages: list[FakeMessage] = list(messages or [])
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self._next_id = 10_000

    async def fetch_message(self, message_id: int) -> FakeMessage:
        for message in self.messages:
            if message.id == message_id:
                return message
        raise LookupError(f"message {message_id} not found")

    async def history(self, limit: int, before: Any):
        older = [m for m in self.messages if m.id < before.id]
        for message in sorted(older, key=lambda m: m.id, reverse=True)[:limit]:
            yield message

    async def send(self, content: str | None = None, **kwargs: Any) -> FakeMessage:
        self._next_id += 1
        reference = kwargs.get("reference")
        message = FakeMessage(
            id=self._next_id,
            author=FakeUser(BOT_ID, name="bot"),
            content=content or "",
            reference=FakeReference(reference.id) if reference is not None else None,
            embeds=[kwargs["embed"]] if kwargs.get("embed") is not None else [],
            components=[kwargs["view"]] if kwargs.get("view") is not None else [],
        )
        self.messages.append(message)
        self.sent.append((content or "", kwargs))
        return message


class FakeResponse:
    """Stands in for discord.InteractionResponse."""

    def __init__(self):
        self._done = False
        self.messages: list[dict[str, Any]] = []
        self.modals: list[Any] = []
        self.deferred: list[dict[str, Any]] = []

    def is_done(self) -> bool:
        return self._done

    async def send_message(self, **kwargs: Any) -> None:
        self._done = True
        self.messages.append(kwargs)

    async def send_modal(self, modal: Any) -> None:
        self._done = True
        self.modals.append(modal)

    async def defer(self, **kwargs: Any) -> None:
        self._done = True
        self.deferred.append(kwargs)


class FakeFollowup:
    def __init__(self):
        self.messages: list[dict[str, Any]] = []
        self.sent: list[FakeMessage] = []
        self._next_id = 50_000

    async def send(self, **kwargs: Any) -> FakeMessage:
        self._next_id += 1
        self.messages.append(kwargs)
        message = FakeMessage(id=self._next_id, author=FakeUser(BOT_ID), content=kwargs.get("content", ""))
        self.sent.append(message)
        return message


@dataclass
class FakeClient:
    user: FakeUser | None


class FakeInteraction:
    """Enough of discord.Interaction for the provenance handlers."""

    def __init__(
        self,
        data: dict[str, Any],
        message: FakeMessage | None,
        channel: FakeChannel,
        user: FakeUser | None = None,
        bot_user: FakeUser | None = None,
    ):
        self.data = data
        self.message = message
        self.channel = channel
        self.channel_id = channel.id
        self.guild_id = 1
        self.user = user or FakeUser(USER_ID, name="alice", display_name="Alice")
        self.client = FakeClient(bot_user or FakeUser(BOT_ID, name="bot"))
        self.type = "component"
        self.response = FakeResponse()
        self.followup = FakeFollowup()
        self.edits: list[dict[str, Any]] = []

    async def original_response(self) -> FakeMessage:
        # Edits through the fetched message land in the same list as edit_original_response
        return FakeMessage(id=60_000, author=FakeUser(BOT_ID), content="original", edits=self.edits)

    async def edit_original_response(self, **kwargs: Any) -> FakeMessage:
        self.edits.append(kwargs)
        return FakeMessage(id=60_000, author=FakeUser(BOT_ID), content=kwargs.get("content", ""))


class FakeGenerator:
    """TextGenerator returning canned text and recording calls."""

    def __init__(self, text: str = "Reframed answer.", error: Exception | None = None):
        self.text = text
        self.error = error
        self.calls: list[tuple[list[dict[str, Any]], str]] = []

    async def generate(self, messages: list[dict[str, Any]], instructions: str) -> str:
        self.calls.append((messages, instructions))
        if self.error is not None:
            raise self.error
        return self.text


class BlockingGenerator(FakeGenerator):
    """Generator that waits until released, to hold a flow mid-generation."""

    def __init__(self, text: str = "Reframed answer."):
        super().__init__(text)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def generate(self, messages: list[dict[str, Any]], instructions: str) -> str:
        self.calls.append((messages, instructions))
        self.started.set()
        await self.release.wait()
        return self.text


def build_split_reply_channel() -> tuple[FakeChannel, FakeMessage]:
    """Channel with a user question, a two-chunk bot reply and its footer.

    Returns:
        (channel, footer message)
    """
    base = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
    bot = FakeUser(BOT_ID, name="bot")
    question = FakeMessage(id=100, author=FakeUser(USER_ID), content="What is fair?", created_at=base)
    first = FakeMessage(
        id=101, author=bot, content="Part one.", created_at=base + timedelta(seconds=5),
        reference=FakeReference(100),
    )
    second = FakeMessage(id=102, author=bot, content="Part two.", created_at=base + timedelta(seconds=6))
    footer = FakeMessage(
        id=103,
        author=bot,
        content="",
        created_at=base + timedelta(seconds=7),
        embeds=[FakeEmbed(FakeEmbedFooter("Retrieved • 85% • resp_1 • Low risk"))],
        components=[object()],
    )
    return FakeChannel(messages=[question, first, second, footer]), footer
