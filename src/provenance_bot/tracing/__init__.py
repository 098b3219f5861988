"""Response trace records: schema, validation and storage."""

from provenance_bot.tracing.metadata import (
    Citation,
    Provenance,
    ResponseMetadata,
    RiskTier,
    StrictResponseMetadata,
    is_stale,
    stale_after_date,
)
from provenance_bot.tracing.store import TraceStore, TraceSummary
from provenance_bot.tracing.validation import (
    MetadataValidationError,
    TraceRecordError,
    validate_metadata,
)

__all__ = [
    "Citation",
    "MetadataValidationError",
    "Provenance",
    "ResponseMetadata",
    "RiskTier",
    "StrictResponseMetadata",
    "TraceRecordError",
    "TraceStore",
    "TraceSummary",
    "is_stale",
    "stale_after_date",
    "validate_metadata",
]
