"""Discord side: anchor recovery, lens/explain sessions and interaction handlers."""

from provenance_bot.chat.anchor import AnchorResolver, ChatMessage, MessageHistory
from provenance_bot.chat.components import InteractionKind, ProvenanceAction, parse_interaction_data
from provenance_bot.chat.generation import (
    AnthropicTextGenerator,
    GenerationError,
    TextGenerator,
    generate_alternative_lens_message,
    generate_explanation_message,
)
from provenance_bot.chat.provenance import ProvenanceInteractions
from provenance_bot.chat.reply import safe_interaction_reply
from provenance_bot.chat.sessions import (
    LENS_DEFINITIONS,
    InProgressGuard,
    LensContext,
    LensKey,
    LensSession,
    LensSessionManager,
    SessionStore,
    build_lens_payload,
)

__all__ = [
    "LENS_DEFINITIONS",
    "AnchorResolver",
    "AnthropicTextGenerator",
    "ChatMessage",
    "GenerationError",
    "InProgressGuard",
    "InteractionKind",
    "LensContext",
    "LensKey",
    "LensSession",
    "LensSessionManager",
    "MessageHistory",
    "ProvenanceAction",
    "ProvenanceInteractions",
    "SessionStore",
    "TextGenerator",
    "build_lens_payload",
    "generate_alternative_lens_message",
    "generate_explanation_message",
    "parse_interaction_data",
    "safe_interaction_reply",
]
