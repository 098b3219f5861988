"""Discord client that posts traced replies and routes footer interactions."""

import logging
from typing import Any

import discord

from provenance_bot.chat.discord_adapter import send_chunked
from provenance_bot.chat.provenance import ProvenanceInteractions
from provenance_bot.chat.views import build_footer_embed, build_footer_view
from provenance_bot.tracing import ResponseMetadata

logger = logging.getLogger(__name__)


class ProvenanceBot(discord.Client):
    """discord.py client wired to the provenance interaction router."""

    def __init__(
        self,
        interactions: ProvenanceInteractions,
        trace_viewer_url: str | None = None,
        intents: discord.Intents | None = None,
    ):
        if intents is None:
            intents = discord.Intents.default()
            # Anchor recovery reads earlier message content
            intents.message_content = True
        super().__init__(intents=intents)
        self._interactions = interactions
        self._trace_viewer_url = trace_viewer_url

    async def on_ready(self) -> None:
        logger.info(f"Connected to Discord as {self.user} (id={self.user.id if self.user else '?'})")

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        handled = await self._interactions.route(interaction)
        if not handled:
            logger.debug(f"Ignoring interaction type={interaction.type} data={interaction.data}")

    async def post_with_provenance_footer(
        self,
        channel: Any,
        text: str,
        metadata: ResponseMetadata,
        reply_to: Any | None = None,
    ) -> Any:
        """Post a reply followed by its provenance footer message.

        Returns:
            The footer message
        """
        await send_chunked(channel, text, reply_to=reply_to)
        footer = await channel.send(
            embed=build_footer_embed(metadata),
            view=build_footer_view(metadata.response_id, self._trace_viewer_url),
            allowed_mentions=discord.AllowedMentions.none(),
        )
        logger.info(f"FOOTER_POSTED: response_id={metadata.response_id} message_id={footer.id}")
        return footer
