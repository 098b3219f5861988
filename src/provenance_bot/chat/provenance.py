"""Handlers for the provenance footer controls.

One ProvenanceInteractions instance per process owns the session manager and
the in-progress guards. ``route`` is the single entry point: it parses the
interaction into a ProvenanceAction and dispatches on its kind. Handlers never
raise; failures are logged with the interaction's context and reported to the
user where possible.
"""

import logging
from collections.abc import Callable
from datetime import timedelta
from typing import Any

import discord

from provenance_bot.api.client import TraceApiClient, TraceLookupStatus
from provenance_bot.chat.anchor import (
    DEFAULT_CHAIN_WINDOW,
    DEFAULT_MAX_PRECEDING_MESSAGES,
    AnchorResolver,
    ChatMessage,
    MessageHistory,
)
from provenance_bot.chat.components import (
    ALT_LENS_CUSTOM_DESCRIPTION_INPUT_ID,
    InteractionKind,
    ProvenanceAction,
    extract_response_id_from_footer_text,
    parse_interaction_data,
)
from provenance_bot.chat.discord_adapter import DiscordMessageHistory, send_chunked, to_chat_message
from provenance_bot.chat.generation import (
    TextGenerator,
    generate_alternative_lens_message,
    generate_explanation_message,
)
from provenance_bot.chat.reply import is_already_acknowledged, safe_interaction_reply
from provenance_bot.chat.sessions import (
    InProgressGuard,
    LensContext,
    LensKey,
    LensSessionManager,
    SessionStore,
    build_explain_session_key,
    build_lens_payload,
    get_lens_definition,
)
from provenance_bot.chat.views import LENS_PICKER_PROMPT, build_custom_lens_modal, build_lens_picker_view
from provenance_bot.core.logging import format_context, log_fail_open, log_timing
from provenance_bot.tracing import ResponseMetadata

logger = logging.getLogger(__name__)

MISSING_TEXT_MESSAGE = (
    "I could not find the response text to reinterpret. Please try again from the original message."
)
SESSION_EXPIRED_MESSAGE = (
    "That alternative lens session expired. Click **Alternative Lens** again to restart."
)
SELECT_LENS_FIRST_MESSAGE = (
    "Select a lens first. If you choose Custom Lens, provide a description before submitting."
)
LENS_IN_PROGRESS_MESSAGE = (
    "⚠️ An alternative lens is already being generated for this response. Please wait for it to finish."
)
UNKNOWN_LENS_MESSAGE = "That lens is no longer available. Please choose a different option."
EMPTY_CUSTOM_LENS_MESSAGE = "Please describe your custom lens before submitting."
CUSTOM_LENS_SAVED_MESSAGE = (
    "Custom lens saved. Press Submit when you are ready to generate the alternative perspective."
)
TEXT_UNAVAILABLE_MESSAGE = (
    "The original response is no longer available for reinterpretation. "
    "Start a new alternative lens request."
)
LENS_INIT_FAILED_MESSAGE = (
    "Something went wrong while starting the alternative lens flow. Please try again later."
)
LENS_SELECT_FAILED_MESSAGE = (
    "Something went wrong while updating the alternative lens selection. Please try again later."
)
LENS_ACK_FAILED_MESSAGE = "I could not begin generating that alternative lens. Please try again."
LENS_GENERATION_FAILED_MESSAGE = "I could not generate that alternative lens. Please try again later."
UNSENDABLE_CHANNEL_MESSAGE = "I could not post the alternative lens response in this channel."
EXPLAIN_IN_PROGRESS_MESSAGE = (
    "⚠️ An explanation is already being generated for this response. Please wait for it to finish."
)
EXPLAIN_MISSING_TEXT_MESSAGE = (
    "I could not find the response text to explain. Please try again from the original message."
)
EXPLAIN_FAILED_MESSAGE = "I could not generate an explanation for that response. Please try again later."

HistoryFactory = Callable[[Any], MessageHistory]


def resolve_display_name(user: Any) -> str:
    """Best human-readable name for an interaction user or member."""
    for attr in ("display_name", "nick", "global_name", "name"):
        value = getattr(user, attr, None)
        if isinstance(value, str) and value:
            return value
    return "someone"


def derive_response_id(message: ChatMessage) -> str | None:
    """Response id from the first embed footer that carries one."""
    for footer_text in message.footer_texts:
        response_id = extract_response_id_from_footer_text(footer_text)
        if response_id:
            return response_id
    return None


def build_log_context(
    interaction: discord.Interaction,
    action: str,
    response_id: str | None = None,
    message_id: str | None = None,
) -> dict[str, Any]:
    if message_id is None and interaction.message is not None:
        message_id = str(interaction.message.id)
    return {
        "action": action,
        "user_id": interaction.user.id,
        "guild_id": interaction.guild_id,
        "channel_id": interaction.channel_id,
        "message_id": message_id,
        "response_id": response_id,
    }


def _log(level: int, event: str, context: dict[str, Any], **extra: Any) -> None:
    logger.log(level, f"{event} {format_context({**context, **extra})}")


class ProvenanceInteractions:
    """Alternative lens and explain flows for replies with a provenance footer."""

    def __init__(
        self,
        generator: TextGenerator,
        trace_client: TraceApiClient | None = None,
        sessions: LensSessionManager | None = None,
        explain_guard: InProgressGuard | None = None,
        max_preceding_messages: int = DEFAULT_MAX_PRECEDING_MESSAGES,
        chain_window: timedelta = DEFAULT_CHAIN_WINDOW,
        custom_min_length: int = 10,
        custom_max_length: int = 500,
        history_factory: HistoryFactory = DiscordMessageHistory,
    ):
        self._generator = generator
        self._trace_client = trace_client
        self.sessions = sessions or LensSessionManager(SessionStore(), InProgressGuard("alternative_lens"))
        self.explain_guard = explain_guard or InProgressGuard("explain")
        self._max_preceding = max_preceding_messages
        self._chain_window = chain_window
        self._custom_min_length = custom_min_length
        self._custom_max_length = custom_max_length
        self._history_factory = history_factory

        self._handlers = {
            InteractionKind.LENS_INIT: self.handle_lens_init,
            InteractionKind.LENS_SELECT: self.handle_lens_select,
            InteractionKind.LENS_MODAL: self.handle_lens_modal,
            InteractionKind.LENS_SUBMIT: self.handle_lens_submit,
            InteractionKind.EXPLAIN: self.handle_explain,
        }

    async def route(self, interaction: discord.Interaction) -> bool:
        """Dispatch an interaction to its handler.

        Returns:
            True if the interaction belonged to the provenance controls
        """
        source_id = str(interaction.message.id) if interaction.message is not None else None
        action = parse_interaction_data(interaction.data, source_id)
        if action is None:
            return False

        handler = self._handlers[action.kind]
        try:
            await handler(interaction, action)
        except Exception as e:
            # Last-resort boundary; handlers report their own failures
            _log(
                logging.ERROR,
                "PROVENANCE_HANDLER_ERROR",
                build_log_context(interaction, action.kind.name.lower(), message_id=action.target_message_id),
                phase="error",
                error=e,
            )
        return True

    # -- shared helpers ------------------------------------------------------

    def _resolver(self, interaction: discord.Interaction) -> AnchorResolver:
        bot_user = interaction.client.user if interaction.client is not None else None
        return AnchorResolver(
            self._history_factory(interaction.channel),
            str(bot_user.id) if bot_user is not None else None,
            max_preceding_messages=self._max_preceding,
            chain_window=self._chain_window,
        )

    async def _resolve_metadata(self, response_id: str | None, context: dict[str, Any]) -> ResponseMetadata | None:
        """Best-effort trace lookup; None whenever metadata cannot be used."""
        if not response_id or self._trace_client is None:
            return None

        lookup = await self._trace_client.get_trace(response_id)
        if lookup.status is TraceLookupStatus.FOUND:
            return lookup.metadata
        if lookup.status is TraceLookupStatus.STALE:
            # Stale traces still describe the reply; they are just old
            _log(logging.INFO, "TRACE_STALE", context)
            return lookup.metadata
        if lookup.status is TraceLookupStatus.NOT_FOUND:
            log_fail_open("trace_not_found", **context)
        else:
            log_fail_open("trace_lookup_failed", **context, error=lookup.error)
        return None

    async def _capture_context(
        self, interaction: discord.Interaction, log_context: dict[str, Any]
    ) -> tuple[LensContext | None, dict[str, Any], ChatMessage | None]:
        """Recover reply text and metadata for the footer the user clicked.

        Returns:
            (context or None if no text was found, updated log context, anchor)
        """
        footer = to_chat_message(interaction.message)
        resolver = self._resolver(interaction)
        with log_timing(logger, "Anchor recovery"):
            anchor = await resolver.resolve_anchor(footer)
            message_text = await resolver.recover_full_text(footer, anchor)
        if not message_text:
            return None, log_context, anchor

        response_id = derive_response_id(footer)
        if response_id:
            log_context = {**log_context, "response_id": response_id}
        metadata = await self._resolve_metadata(response_id, log_context)

        context = LensContext(
            message_text=message_text,
            metadata=metadata,
            message_id=anchor.id if anchor is not None else footer.id,
            channel_id=str(interaction.channel_id),
            response_id=response_id,
        )
        return context, log_context, anchor

    async def _ephemeral(self, interaction: discord.Interaction, content: str, log_context: dict[str, Any], label: str) -> None:
        await safe_interaction_reply(
            interaction, content=content, ephemeral=True, log_context=log_context, log_label=label
        )

    async def _fetch_reply_target(self, channel: Any, message_id: str, log_context: dict[str, Any]) -> Any | None:
        try:
            return await channel.fetch_message(int(message_id))
        except Exception as e:
            _log(logging.WARNING, "REPLY_TARGET_FETCH_FAILED", log_context, target_id=message_id, error=e)
            return None

    async def _edit_status(
        self,
        interaction: discord.Interaction,
        content: str,
        log_context: dict[str, Any],
        status: Any | None = None,
    ) -> None:
        """Edit the progress message, which is a follow-up if the reply lost an ack race."""
        try:
            if status is not None:
                await status.edit(content=content)
            else:
                await interaction.edit_original_response(content=content)
        except Exception as e:
            _log(logging.WARNING, "STATUS_EDIT_FAILED", log_context, phase="error", error=e)

    # -- alternative lens ----------------------------------------------------

    async def handle_lens_init(self, interaction: discord.Interaction, action: ProvenanceAction) -> None:
        """Alternative Lens button: capture the reply and show the lens picker."""
        log_context = build_log_context(interaction, "alt_lens:init")
        _log(logging.INFO, "LENS_INIT", log_context, phase="start")

        try:
            # History and trace lookups can outlast the acknowledgement deadline
            try:
                await interaction.response.defer(ephemeral=True, thinking=True)
            except Exception as e:
                if not is_already_acknowledged(e):
                    raise

            context, log_context, _ = await self._capture_context(interaction, log_context)
            if context is None:
                _log(logging.ERROR, "LENS_INIT", log_context, phase="error", reason="missing_message_text")
                await self._ephemeral(interaction, MISSING_TEXT_MESSAGE, log_context, "alt_lens_missing_text")
                return

            self.sessions.open(str(interaction.user.id), action.target_message_id, context)
            await safe_interaction_reply(
                interaction,
                content=LENS_PICKER_PROMPT,
                view=build_lens_picker_view(action.target_message_id),
                ephemeral=True,
                log_context=log_context,
                log_label="alt_lens_prompt",
            )
            _log(logging.INFO, "LENS_INIT", log_context, phase="success")
        except Exception as e:
            _log(logging.ERROR, "LENS_INIT", log_context, phase="error", reason="initialisation_failed", error=e)
            try:
                await self._ephemeral(interaction, LENS_INIT_FAILED_MESSAGE, log_context, "alt_lens_error_reply")
            except Exception as reply_error:
                _log(logging.WARNING, "LENS_INIT", log_context, phase="error_reply_failed", error=reply_error)

    async def handle_lens_select(self, interaction: discord.Interaction, action: ProvenanceAction) -> None:
        """Lens picked from the select menu."""
        message_id = action.target_message_id
        user_id = str(interaction.user.id)
        log_context = build_log_context(interaction, "alt_lens:select", message_id=message_id)
        _log(logging.INFO, "LENS_SELECT", log_context, phase="start")

        try:
            if not action.values:
                _log(logging.ERROR, "LENS_SELECT", log_context, phase="error", reason="no_selection")
                await interaction.response.defer()
                return

            definition = get_lens_definition(action.values[0])
            if definition is None:
                _log(
                    logging.ERROR, "LENS_SELECT", log_context,
                    phase="error", reason="unknown_lens", lens_key=action.values[0],
                )
                await self._ephemeral(interaction, UNKNOWN_LENS_MESSAGE, log_context, "alt_lens_unknown")
                return

            session = self.sessions.select(user_id, message_id, definition.key)
            if session is None:
                _log(
                    logging.ERROR, "LENS_SELECT", log_context,
                    phase="error", reason="session_expired", lens_key=definition.key.value,
                )
                await self._ephemeral(interaction, SESSION_EXPIRED_MESSAGE, log_context, "alt_lens_expired")
                return
            log_context["response_id"] = session.context.response_id

            if definition.requires_custom_description:
                modal = build_custom_lens_modal(
                    message_id,
                    prefill=session.custom_description,
                    min_length=self._custom_min_length,
                    max_length=self._custom_max_length,
                )
                await interaction.response.send_modal(modal)
                _log(
                    logging.INFO, "LENS_SELECT", log_context,
                    phase="success", lens_key=definition.key.value, mode="modal_prompt",
                )
                return

            await interaction.response.defer()
            _log(logging.INFO, "LENS_SELECT", log_context, phase="success", lens_key=definition.key.value)
        except Exception as e:
            _log(logging.ERROR, "LENS_SELECT", log_context, phase="error", reason="selection_failed", error=e)
            if not interaction.response.is_done():
                try:
                    await self._ephemeral(interaction, LENS_SELECT_FAILED_MESSAGE, log_context, "alt_lens_select_error")
                except Exception as reply_error:
                    _log(logging.WARNING, "LENS_SELECT", log_context, phase="error_reply_failed", error=reply_error)

    async def handle_lens_modal(self, interaction: discord.Interaction, action: ProvenanceAction) -> None:
        """Custom lens description submitted from the modal."""
        message_id = action.target_message_id
        user_id = str(interaction.user.id)
        log_context = build_log_context(interaction, "alt_lens:modal", message_id=message_id)

        if self.sessions.get(user_id, message_id) is None:
            _log(logging.ERROR, "LENS_MODAL", log_context, phase="error", reason="session_expired")
            await self._ephemeral(interaction, SESSION_EXPIRED_MESSAGE, log_context, "alt_lens_expired")
            return

        description = action.fields.get(ALT_LENS_CUSTOM_DESCRIPTION_INPUT_ID, "").strip()
        if not description:
            await self._ephemeral(interaction, EMPTY_CUSTOM_LENS_MESSAGE, log_context, "alt_lens_empty_custom")
            return
        if not self._custom_min_length <= len(description) <= self._custom_max_length:
            await self._ephemeral(
                interaction,
                f"Custom lens descriptions must be between {self._custom_min_length} "
                f"and {self._custom_max_length} characters.",
                log_context,
                "alt_lens_custom_length",
            )
            return

        self.sessions.set_custom_description(user_id, message_id, description)
        await self._ephemeral(interaction, CUSTOM_LENS_SAVED_MESSAGE, log_context, "alt_lens_custom_saved")
        _log(logging.INFO, "LENS_MODAL", log_context, phase="success", lens_key=LensKey.CUSTOM.value)

    async def handle_lens_submit(self, interaction: discord.Interaction, action: ProvenanceAction) -> None:
        """Submit: generate the reframing and post it under the original reply."""
        message_id = action.target_message_id
        user_id = str(interaction.user.id)
        log_context = build_log_context(interaction, "alt_lens:submit", message_id=message_id)
        _log(logging.INFO, "LENS_SUBMIT", log_context, phase="start")

        session = self.sessions.get(user_id, message_id)
        if session is None:
            _log(logging.ERROR, "LENS_SUBMIT", log_context, phase="error", reason="session_expired")
            await self._ephemeral(interaction, SESSION_EXPIRED_MESSAGE, log_context, "alt_lens_expired")
            return
        log_context["response_id"] = session.context.response_id

        if not session.context.message_text:
            self.sessions.close(user_id, message_id)
            _log(logging.ERROR, "LENS_SUBMIT", log_context, phase="error", reason="missing_message_text")
            await self._ephemeral(interaction, TEXT_UNAVAILABLE_MESSAGE, log_context, "alt_lens_missing_text")
            return

        lens = build_lens_payload(session)
        if lens is None:
            _log(logging.ERROR, "LENS_SUBMIT", log_context, phase="error", reason="missing_lens")
            await self._ephemeral(interaction, SELECT_LENS_FIRST_MESSAGE, log_context, "alt_lens_missing_lens")
            return

        # Must stay ahead of the first await on this path
        if not self.sessions.guard.try_mark(message_id):
            _log(logging.ERROR, "LENS_SUBMIT", log_context, phase="error", reason="in_progress")
            await self._ephemeral(interaction, LENS_IN_PROGRESS_MESSAGE, log_context, "alt_lens_in_progress")
            return

        try:
            description = lens.description.strip()
            details = f"\n> {description}" if description else ""
            progress = (
                f"⏳ Alternative lens requested by **{resolve_display_name(interaction.user)}** "
                f"— **{lens.label}**{details}\nGenerating response…"
            )
            try:
                status = await safe_interaction_reply(
                    interaction,
                    content=progress,
                    allowed_mentions=discord.AllowedMentions.none(),
                    log_context=log_context,
                    log_label="alt_lens_progress",
                )
            except Exception as e:
                _log(logging.ERROR, "LENS_SUBMIT", log_context, phase="error", reason="ack_failed", error=e)
                try:
                    await interaction.followup.send(content=LENS_ACK_FAILED_MESSAGE, ephemeral=True)
                except Exception as follow_up_error:
                    _log(logging.WARNING, "LENS_SUBMIT", log_context, phase="error_reply_failed", error=follow_up_error)
                return

            try:
                generated = await generate_alternative_lens_message(self._generator, session.context, lens)

                channel = interaction.channel
                if channel is None or not hasattr(channel, "send"):
                    _log(logging.ERROR, "LENS_SUBMIT", log_context, phase="error", reason="unsendable_channel")
                    await self._edit_status(interaction, UNSENDABLE_CHANNEL_MESSAGE, log_context, status)
                    return

                custom_note = (
                    f"\n> Custom guidance: {description}"
                    if lens.key is LensKey.CUSTOM and description
                    else ""
                )
                combined = f"**Alternative Lens: {lens.label}**{custom_note}\n\n{generated.strip()}"

                target = await self._fetch_reply_target(channel, session.context.message_id, log_context)
                await send_chunked(channel, combined, reply_to=target or interaction.message)

                summary = (
                    f"✅ Posted alternative lens ({lens.label} — {description})."
                    if description
                    else f"✅ Posted alternative lens ({lens.label})."
                )
                await self._edit_status(interaction, summary, log_context, status)
                _log(logging.INFO, "LENS_SUBMIT", log_context, phase="success", lens_key=lens.key.value)
            except Exception as e:
                _log(logging.ERROR, "LENS_SUBMIT", log_context, phase="error", reason="generation_failed", error=e)
                await self._edit_status(interaction, LENS_GENERATION_FAILED_MESSAGE, log_context, status)
        finally:
            self.sessions.close(user_id, message_id)
            self.sessions.guard.clear(message_id)

    # -- explain -------------------------------------------------------------

    async def handle_explain(self, interaction: discord.Interaction, action: ProvenanceAction) -> None:
        """Explain button: summarise the reasoning behind the reply."""
        message_id = action.target_message_id
        key = build_explain_session_key(message_id)
        log_context = build_log_context(interaction, "explain", message_id=message_id)
        _log(logging.INFO, "EXPLAIN", log_context, phase="start")

        # Must stay ahead of the first await on this path
        if not self.explain_guard.try_mark(key):
            _log(logging.ERROR, "EXPLAIN", log_context, phase="error", reason="in_progress")
            await self._ephemeral(interaction, EXPLAIN_IN_PROGRESS_MESSAGE, log_context, "explain_in_progress")
            return

        status = None
        try:
            progress = (
                f"⏳ Explanation requested by **{resolve_display_name(interaction.user)}**\n"
                "Generating explanation…"
            )
            status = await safe_interaction_reply(
                interaction,
                content=progress,
                allowed_mentions=discord.AllowedMentions.none(),
                log_context=log_context,
                log_label="explain_progress",
            )

            context, log_context, _ = await self._capture_context(interaction, log_context)
            if context is None:
                _log(logging.ERROR, "EXPLAIN", log_context, phase="error", reason="missing_message_text")
                await self._edit_status(interaction, EXPLAIN_MISSING_TEXT_MESSAGE, log_context, status)
                return

            generated = await generate_explanation_message(self._generator, context)

            channel = interaction.channel
            target = await self._fetch_reply_target(channel, context.message_id, log_context)
            await send_chunked(channel, f"**Explanation**\n\n{generated}", reply_to=target or interaction.message)

            await self._edit_status(interaction, "✅ Posted explanation.", log_context, status)
            _log(logging.INFO, "EXPLAIN", log_context, phase="success")
        except Exception as e:
            _log(logging.ERROR, "EXPLAIN", log_context, phase="error", reason="generation_failed", error=e)
            if interaction.response.is_done():
                await self._edit_status(interaction, EXPLAIN_FAILED_MESSAGE, log_context, status)
            else:
                try:
                    await self._ephemeral(interaction, EXPLAIN_FAILED_MESSAGE, log_context, "explain_error_reply")
                except Exception as reply_error:
                    _log(logging.WARNING, "EXPLAIN", log_context, phase="error_reply_failed", error=reply_error)
        finally:
            self.explain_guard.clear(key)
