"""Component custom ids and the tagged variant used to route interactions."""

import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

from provenance_bot.tracing import ResponseMetadata

# Footer buttons carry fixed ids; the target is the footer message itself
ALTERNATIVE_LENS_BUTTON_ID = "alternative_lens"
EXPLAIN_BUTTON_ID = "explain"

# Follow-up controls embed the footer message id after the prefix
ALTERNATIVE_LENS_SELECT_PREFIX = "alt_lens_select:"
ALTERNATIVE_LENS_SUBMIT_PREFIX = "alt_lens_submit:"
ALTERNATIVE_LENS_MODAL_PREFIX = "alt_lens_custom_modal:"
ALT_LENS_CUSTOM_DESCRIPTION_INPUT_ID = "alt_lens_custom_description"

FOOTER_SEPARATOR = " • "

_FOOTER_RESPONSE_ID = re.compile(r"^([\w.-]+)\W+([\w.-]+)\W+([\w-]+)\W+")


class InteractionKind(Enum):
    """Closed set of provenance interactions."""

    LENS_INIT = auto()  # "Alternative Lens" footer button
    LENS_SELECT = auto()  # lens picker select menu
    LENS_SUBMIT = auto()  # lens picker Submit button
    LENS_MODAL = auto()  # custom lens description modal
    EXPLAIN = auto()  # "Explain" footer button


@dataclass(frozen=True)
class ProvenanceAction:
    """A parsed interaction: what was clicked and which reply it targets."""

    kind: InteractionKind
    target_message_id: str
    values: tuple[str, ...] = ()
    fields: dict[str, str] = field(default_factory=dict)


_PREFIXED_KINDS = (
    (ALTERNATIVE_LENS_SELECT_PREFIX, InteractionKind.LENS_SELECT),
    (ALTERNATIVE_LENS_SUBMIT_PREFIX, InteractionKind.LENS_SUBMIT),
    (ALTERNATIVE_LENS_MODAL_PREFIX, InteractionKind.LENS_MODAL),
)


def parse_custom_id(custom_id: str) -> tuple[InteractionKind, str | None] | None:
    """Map a component custom id to its kind and embedded message id.

    Footer buttons return a None message id (the caller uses the message the
    button is attached to). Unknown ids return None.
    """
    if custom_id == ALTERNATIVE_LENS_BUTTON_ID:
        return InteractionKind.LENS_INIT, None
    if custom_id == EXPLAIN_BUTTON_ID:
        return InteractionKind.EXPLAIN, None

    for prefix, kind in _PREFIXED_KINDS:
        if custom_id.startswith(prefix):
            message_id = custom_id[len(prefix):]
            return (kind, message_id) if message_id else None
    return None


def _modal_fields(data: dict[str, Any]) -> dict[str, str]:
    fields: dict[str, str] = {}
    for row in data.get("components", []):
        # Action rows hold a list; label wrappers hold a single component
        children = row.get("components") or [row.get("component") or {}]
        for component in children:
            custom_id = component.get("custom_id")
            if custom_id:
                fields[custom_id] = component.get("value") or ""
    return fields


def parse_interaction_data(
    data: dict[str, Any] | None, source_message_id: str | None
) -> ProvenanceAction | None:
    """Build a ProvenanceAction from raw interaction data.

    Args:
        data: The interaction's ``data`` payload (custom_id, values, components)
        source_message_id: Id of the message carrying the clicked component

    Returns:
        The parsed action, or None for interactions this module does not own
    """
    if not data:
        return None
    parsed = parse_custom_id(data.get("custom_id", ""))
    if parsed is None:
        return None

    kind, message_id = parsed
    target = message_id or source_message_id
    if not target:
        return None

    return ProvenanceAction(
        kind=kind,
        target_message_id=target,
        values=tuple(data.get("values") or ()),
        fields=_modal_fields(data) if kind is InteractionKind.LENS_MODAL else {},
    )


def format_footer_text(metadata: ResponseMetadata) -> str:
    """Render the short footer hint shown under a reply.

    The third token is the response id; extract_response_id_from_footer_text
    relies on that position.
    """
    confidence = f"{round(metadata.confidence * 100)}%"
    return FOOTER_SEPARATOR.join(
        [
            metadata.provenance.value,
            confidence,
            metadata.response_id,
            f"{metadata.risk_tier.value} risk",
        ]
    )


def extract_response_id_from_footer_text(footer_text: str | None) -> str | None:
    """Pull the response id out of footer text, if present."""
    if not footer_text:
        return None
    match = _FOOTER_RESPONSE_ID.match(footer_text)
    return match.group(3) if match else None
