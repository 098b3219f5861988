"""Discord UI builders for the provenance footer and the lens picker.

The components carry fixed custom ids and no callbacks; clicks are routed by
ProvenanceInteractions.route from the client's ``on_interaction`` event.
"""

from urllib.parse import quote

import discord

from provenance_bot.chat.components import (
    ALT_LENS_CUSTOM_DESCRIPTION_INPUT_ID,
    ALTERNATIVE_LENS_BUTTON_ID,
    ALTERNATIVE_LENS_MODAL_PREFIX,
    ALTERNATIVE_LENS_SELECT_PREFIX,
    ALTERNATIVE_LENS_SUBMIT_PREFIX,
    EXPLAIN_BUTTON_ID,
    format_footer_text,
)
from provenance_bot.chat.sessions import LENS_DEFINITIONS
from provenance_bot.tracing import ResponseMetadata

# Discord caps select option descriptions at 100 characters
_OPTION_DESCRIPTION_LIMIT = 100

LENS_PICKER_PROMPT = (
    'Pick a perspective to reframe this answer. Selecting "Custom Lens" will prompt for details.'
)


def _option_description(description: str) -> str:
    if len(description) > _OPTION_DESCRIPTION_LIMIT:
        return description[: _OPTION_DESCRIPTION_LIMIT - 3] + "..."
    return description


def build_footer_embed(metadata: ResponseMetadata) -> discord.Embed:
    """Small embed whose footer carries the provenance hint and response id."""
    embed = discord.Embed()
    embed.set_footer(text=format_footer_text(metadata))
    return embed


def build_footer_view(response_id: str | None = None, trace_viewer_url: str | None = None) -> discord.ui.View:
    """Alternative Lens and Explain buttons, plus a trace link when configured."""
    view = discord.ui.View(timeout=None)
    view.add_item(
        discord.ui.Button(
            label="Alternative Lens",
            style=discord.ButtonStyle.secondary,
            custom_id=ALTERNATIVE_LENS_BUTTON_ID,
        )
    )
    view.add_item(
        discord.ui.Button(
            label="Explain",
            style=discord.ButtonStyle.secondary,
            custom_id=EXPLAIN_BUTTON_ID,
        )
    )
    if response_id and trace_viewer_url:
        view.add_item(
            discord.ui.Button(
                label="View trace",
                style=discord.ButtonStyle.link,
                url=f"{trace_viewer_url.rstrip('/')}/traces/{quote(response_id, safe='')}",
            )
        )
    return view


def build_lens_picker_view(message_id: str) -> discord.ui.View:
    """Lens select menu plus Submit button, bound to the footer message id."""
    view = discord.ui.View(timeout=None)
    view.add_item(
        discord.ui.Select(
            custom_id=f"{ALTERNATIVE_LENS_SELECT_PREFIX}{message_id}",
            placeholder="Choose a lens",
            options=[
                discord.SelectOption(
                    label=definition.label,
                    value=definition.key.value,
                    description=_option_description(definition.description),
                )
                for definition in LENS_DEFINITIONS
            ],
        )
    )
    view.add_item(
        discord.ui.Button(
            label="Submit",
            style=discord.ButtonStyle.primary,
            custom_id=f"{ALTERNATIVE_LENS_SUBMIT_PREFIX}{message_id}",
        )
    )
    return view


def build_custom_lens_modal(
    message_id: str,
    prefill: str | None = None,
    min_length: int = 10,
    max_length: int = 500,
) -> discord.ui.Modal:
    """Modal asking for the custom lens description."""
    modal = discord.ui.Modal(
        title="Custom Lens Details",
        custom_id=f"{ALTERNATIVE_LENS_MODAL_PREFIX}{message_id}",
    )
    modal.add_item(
        discord.ui.TextInput(
            label="Describe the custom lens",
            style=discord.TextStyle.paragraph,
            custom_id=ALT_LENS_CUSTOM_DESCRIPTION_INPUT_ID,
            placeholder="Explain the perspective you want to apply.",
            min_length=min_length,
            max_length=max_length,
            default=prefill or None,
        )
    )
    return modal
