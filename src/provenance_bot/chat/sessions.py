"""Alternative lens catalogue, session state and in-progress guards.

Sessions live in an in-memory SessionStore created once per process and
injected into the interaction handlers. There is no TTL sweep: an entry is
removed when a submit finishes (success or failure) or replaced when the same
user starts the flow again on the same message. Abandoned flows leave one small
entry behind until then, and nothing survives a restart.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from provenance_bot.tracing import ResponseMetadata

logger = logging.getLogger(__name__)


class LensKey(str, Enum):
    """Keys of the fixed lens catalogue."""

    DANEEL = "DANEEL"
    UTILITARIAN = "UTILITARIAN"
    DEONTOLOGICAL = "DEONTOLOGICAL"
    VIRTUE_ETHICS = "VIRTUE_ETHICS"
    EASTERN = "EASTERN"
    CUSTOM = "CUSTOM"


@dataclass(frozen=True)
class LensDefinition:
    """One entry of the lens catalogue."""

    key: LensKey
    label: str
    description: str
    requires_custom_description: bool = False


LENS_DEFINITIONS: tuple[LensDefinition, ...] = (
    LensDefinition(
        key=LensKey.DANEEL,
        label="Asimovian (Daneel character)",
        description=(
            "Channel Daneel Olivaw: state clean facts, guard human welfare, "
            "and apply Zeroth Law judgment."
        ),
    ),
    LensDefinition(
        key=LensKey.UTILITARIAN,
        label="Utilitarian",
        description="Prioritise overall outcomes and collective wellbeing.",
    ),
    LensDefinition(
        key=LensKey.DEONTOLOGICAL,
        label="Deontological",
        description="Emphasise duties, rules, and principled obligations.",
    ),
    LensDefinition(
        key=LensKey.VIRTUE_ETHICS,
        label="Virtue Ethics",
        description="Highlight character, cultivation of virtues, and moral exemplars.",
    ),
    LensDefinition(
        key=LensKey.EASTERN,
        label="Eastern Philosophy",
        description="Incorporate perspectives rooted in Confucian, Buddhist, or Daoist thought.",
    ),
    LensDefinition(
        key=LensKey.CUSTOM,
        label="Custom Lens",
        description="Provide your own framing or perspective.",
        requires_custom_description=True,
    ),
)


def get_lens_definition(key: str) -> LensDefinition | None:
    """Look up a catalogue entry by key string."""
    for definition in LENS_DEFINITIONS:
        if definition.key.value == key:
            return definition
    return None


@dataclass(frozen=True)
class LensContext:
    """Snapshot of the reply being reinterpreted, captured at session start."""

    message_text: str
    metadata: ResponseMetadata | None
    message_id: str
    channel_id: str
    response_id: str | None = None


@dataclass(frozen=True)
class LensPayload:
    """The resolved lens handed to generation."""

    key: LensKey
    label: str
    description: str


class LensSessionState(Enum):
    """Where a live session is in the lens flow."""

    INITIATED = "initiated"
    CUSTOM_DESCRIPTION_PENDING = "custom-description-pending"
    READY_TO_SUBMIT = "ready-to-submit"


@dataclass
class LensSession:
    """Per-(user, message) state of the alternative lens flow."""

    context: LensContext
    selected_lens_key: LensKey | None = None
    custom_description: str | None = None

    @property
    def state(self) -> LensSessionState:
        if self.selected_lens_key is None:
            return LensSessionState.INITIATED
        if build_lens_payload(self) is None:
            return LensSessionState.CUSTOM_DESCRIPTION_PENDING
        return LensSessionState.READY_TO_SUBMIT


def build_lens_payload(session: LensSession) -> LensPayload | None:
    """Resolve the selected lens, or None if the selection is incomplete."""
    if session.selected_lens_key is None:
        return None

    definition = get_lens_definition(session.selected_lens_key.value)
    if definition is None:
        return None

    if definition.requires_custom_description:
        if not session.custom_description:
            return None
        return LensPayload(definition.key, definition.label, session.custom_description)

    return LensPayload(definition.key, definition.label, definition.description)


def build_lens_session_key(user_id: str, message_id: str) -> str:
    return f"{user_id}:{message_id}"


def build_explain_session_key(message_id: str) -> str:
    return f"explain:{message_id}"


class SessionStore:
    """In-memory lens sessions keyed by ``"{user_id}:{message_id}"``."""

    def __init__(self) -> None:
        self._sessions: dict[str, LensSession] = {}

    def get(self, key: str) -> LensSession | None:
        return self._sessions.get(key)

    def set(self, key: str, session: LensSession) -> None:
        self._sessions[key] = session

    def delete(self, key: str) -> None:
        self._sessions.pop(key, None)

    def __len__(self) -> int:
        return len(self._sessions)


class InProgressGuard:
    """Mutual-exclusion markers; membership is the only signal.

    ``try_mark`` checks and marks in one synchronous step. Callers must invoke
    it before their first ``await`` so two coroutines cannot both pass.
    """

    def __init__(self, name: str):
        self.name = name
        self._keys: set[str] = set()

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def try_mark(self, key: str) -> bool:
        """Mark ``key`` as in progress; False if it already was."""
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def clear(self, key: str) -> None:
        self._keys.discard(key)


class LensSessionManager:
    """State transitions of the alternative lens flow."""

    def __init__(self, store: SessionStore, guard: InProgressGuard):
        self._store = store
        self.guard = guard

    def open(self, user_id: str, message_id: str, context: LensContext) -> LensSession:
        """Start a fresh session, replacing any earlier one for the same key."""
        key = build_lens_session_key(user_id, message_id)
        self._store.delete(key)
        session = LensSession(context=context)
        self._store.set(key, session)
        logger.debug(f"LENS_SESSION opened key={key}")
        return session

    def get(self, user_id: str, message_id: str) -> LensSession | None:
        return self._store.get(build_lens_session_key(user_id, message_id))

    def select(self, user_id: str, message_id: str, lens_key: LensKey) -> LensSession | None:
        """Record a lens choice; returns None when the session has expired."""
        session = self.get(user_id, message_id)
        if session is None:
            return None

        session.selected_lens_key = lens_key
        if lens_key is not LensKey.CUSTOM:
            session.custom_description = None
        return session

    def set_custom_description(
        self, user_id: str, message_id: str, description: str
    ) -> LensSession | None:
        """Store a custom lens description and select the custom lens."""
        session = self.get(user_id, message_id)
        if session is None:
            return None

        session.selected_lens_key = LensKey.CUSTOM
        session.custom_description = description.strip()
        return session

    def close(self, user_id: str, message_id: str) -> None:
        self._store.delete(build_lens_session_key(user_id, message_id))
