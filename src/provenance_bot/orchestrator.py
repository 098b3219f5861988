"""Main orchestrator tying all components together."""

import asyncio
import logging
from datetime import timedelta

import uvicorn

from provenance_bot.api import SimpleRateLimiter, TraceApiClient, create_app
from provenance_bot.chat import (
    AnthropicTextGenerator,
    InProgressGuard,
    LensSessionManager,
    ProvenanceInteractions,
    SessionStore,
)
from provenance_bot.chat.client import ProvenanceBot
from provenance_bot.config import Config
from provenance_bot.tracing import TraceStore

logger = logging.getLogger(__name__)


def _secret(value) -> str | None:
    return value.get_secret_value() if value else None


class Orchestrator:
    """Builds the trace API and the Discord bot from configuration."""

    def __init__(self, config: Config, api_only: bool = False):
        """Initialize the orchestrator with all components.

        Args:
            config: Application configuration
            api_only: Serve the trace API without connecting to Discord
        """
        self._config = config
        self._api_only = api_only

        anthropic_key = _secret(config.llm.anthropic_api_key)
        if not api_only:
            if not anthropic_key:
                raise ValueError("ANTHROPIC_API_KEY must be set")
            if not _secret(config.discord.token):
                raise ValueError("DISCORD_TOKEN must be set")

        self._trace_store = TraceStore(config.traces.db_path)
        self._write_limiter = SimpleRateLimiter(
            limit=config.traces.write_limit,
            window_seconds=config.traces.write_window_seconds,
        )
        self._app = create_app(
            trace_store=self._trace_store,
            trace_token=_secret(config.traces.token),
            write_limiter=self._write_limiter,
            max_body_bytes=config.traces.max_body_bytes,
            trust_proxy=config.traces.trust_proxy,
        )

        self._trace_client: TraceApiClient | None = None
        self._bot: ProvenanceBot | None = None

        if not api_only:
            self._trace_client = TraceApiClient(
                config.traces.api_base_url,
                trace_token=_secret(config.traces.token),
            )
            generator = AnthropicTextGenerator(
                anthropic_key,
                model=config.llm.model,
                max_tokens=config.llm.max_tokens,
            )
            # One store and guard set per process, shared by every handler
            interactions = ProvenanceInteractions(
                generator,
                trace_client=self._trace_client,
                sessions=LensSessionManager(SessionStore(), InProgressGuard("alternative_lens")),
                explain_guard=InProgressGuard("explain"),
                max_preceding_messages=config.anchor.max_preceding_messages,
                chain_window=timedelta(seconds=config.anchor.chain_window_seconds),
                custom_min_length=config.lens.custom_min_length,
                custom_max_length=config.lens.custom_max_length,
            )
            self._bot = ProvenanceBot(interactions, trace_viewer_url=config.discord.trace_viewer_url)

        logger.info(f"Orchestrator initialized (api_only={api_only})")

    async def start(self) -> None:
        """Start the trace API and, unless api-only, the Discord connection."""
        host, port = self._config.traces.host, self._config.traces.port
        server = uvicorn.Server(uvicorn.Config(self._app, host=host, port=port, log_level="warning"))

        if self._bot is None:
            logger.info(f"Trace API serving on http://{host}:{port}")
            try:
                await server.serve()
            finally:
                await self.close()
            return

        server_task = asyncio.create_task(server.serve())
        logger.info(f"Trace API started on http://{host}:{port}")

        try:
            logger.info("Connecting to Discord...")
            await self._bot.start(_secret(self._config.discord.token))
        finally:
            server.should_exit = True
            await server_task
            await self.close()

    async def close(self) -> None:
        if self._trace_client is not None:
            await self._trace_client.close()
        if self._bot is not None and not self._bot.is_closed():
            await self._bot.close()
        self._trace_store.close()

    @property
    def trace_store(self) -> TraceStore:
        return self._trace_store

    @property
    def app(self):
        return self._app
