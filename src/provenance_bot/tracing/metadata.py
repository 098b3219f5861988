"""Response metadata (trace record) data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import (
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    TypeAdapter,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from provenance_bot.core.logging import log_fail_open

_URL_ADAPTER = TypeAdapter(AnyUrl)


class Provenance(str, Enum):
    """Where an answer came from, at a high level."""

    RETRIEVED = "Retrieved"
    INFERRED = "Inferred"
    SPECULATIVE = "Speculative"


class RiskTier(str, Enum):
    """How sensitive a response is."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Citation(BaseModel):
    """A source used in a response."""

    model_config = ConfigDict(extra="forbid")

    title: str
    url: str
    snippet: str | None = None

    @field_validator("url")
    @classmethod
    def _require_absolute_url(cls, value: str) -> str:
        # Keep the caller's exact string; AnyUrl would normalise it
        try:
            _URL_ADAPTER.validate_python(value)
        except ValidationError:
            raise ValueError("Invalid url") from None
        return value


class ResponseMetadata(BaseModel):
    """Provenance record attached to one assistant reply.

    Unknown fields are kept (``extra="allow"``) so newer producers can add
    data without older readers dropping it on a round-trip.
    """

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
        protected_namespaces=(),
    )

    response_id: str = Field(min_length=1)
    provenance: Provenance
    confidence: float = Field(ge=0.0, le=1.0)
    risk_tier: RiskTier
    tradeoff_count: int = Field(ge=0)
    chain_hash: str
    license_context: str
    model_version: str
    stale_after: str
    citations: list[Citation]
    image_descriptions: list[str] | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON shape, including passthrough fields."""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "ResponseMetadata":
        """Deserialize from the camelCase JSON shape."""
        return cls.model_validate(data)


class StrictResponseMetadata(ResponseMetadata):
    """Write-side variant.

    Keys must be the camelCase names and unknown top-level fields are
    rejected. Numbers must arrive as JSON numbers, not "0.5" or true.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=False)

    confidence: StrictFloat = Field(ge=0.0, le=1.0)
    tradeoff_count: StrictInt = Field(ge=0)


def stale_after_date(metadata: ResponseMetadata) -> datetime | None:
    """Parse ``staleAfter`` into an aware datetime.

    Fail-open: a missing or unparsable value yields None (treated as not
    stale) so a bad timestamp never blocks reads.
    """
    raw = metadata.stale_after
    if not raw:
        log_fail_open("stale_after_missing", response_id=metadata.response_id)
        return None

    try:
        # fromisoformat on older interpreters rejects the "Z" suffix
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        log_fail_open(
            "stale_after_unparsable",
            response_id=metadata.response_id,
            stale_after=raw,
        )
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_stale(metadata: ResponseMetadata, now: datetime | None = None) -> bool:
    """Whether the record's staleAfter timestamp has passed."""
    stale_at = stale_after_date(metadata)
    if stale_at is None:
        return False
    current = now or datetime.now(timezone.utc)
    return stale_at < current
