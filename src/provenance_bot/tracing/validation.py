"""Validation of untrusted metadata payloads."""

from typing import Any

from pydantic import ValidationError

from provenance_bot.tracing.metadata import ResponseMetadata, StrictResponseMetadata

# Error types pydantic reports when a field is absent or not a string
_MISSING_OR_WRONG_TYPE = {"missing", "string_type"}


class MetadataValidationError(ValueError):
    """A metadata payload failed schema validation.

    Attributes:
        path: Dotted location of the first failing field ("body" for the root)
        message: Human-readable reason for the first failure
        missing_response_id: True when responseId itself is absent or not a string
    """

    def __init__(self, path: str, message: str, missing_response_id: bool = False):
        self.path = path
        self.message = message
        self.missing_response_id = missing_response_id
        super().__init__(f"{path}: {message}")

    @property
    def details(self) -> str:
        return f"{self.path}: {self.message}"


class TraceRecordError(RuntimeError):
    """A stored trace record no longer passes validation."""


def _format_loc(loc: tuple[Any, ...], root: str) -> str:
    return ".".join(str(part) for part in loc) if loc else root


def validate_metadata(payload: Any, strict: bool = False) -> ResponseMetadata:
    """Validate a decoded JSON payload as ResponseMetadata.

    Args:
        payload: Decoded JSON value (anything; non-objects are rejected)
        strict: Reject unknown top-level fields (used by the write endpoint)

    Returns:
        The validated metadata model

    Raises:
        MetadataValidationError: describing the first failing field
    """
    model = StrictResponseMetadata if strict else ResponseMetadata
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        errors = e.errors()
        missing_response_id = any(
            err["loc"] == ("responseId",) and err["type"] in _MISSING_OR_WRONG_TYPE
            for err in errors
        )
        first = errors[0] if errors else None
        path = _format_loc(tuple(first["loc"]), "body") if first else "body"
        message = first["msg"] if first else "Invalid trace payload."
        raise MetadataValidationError(path, message, missing_response_id) from e


def assert_valid_response_metadata(
    value: Any, source: str, response_id: str
) -> ResponseMetadata:
    """Validate a record loaded from storage before handing it to consumers.

    Raises:
        TraceRecordError: naming the source and response id of the bad record
    """
    try:
        return validate_metadata(value)
    except MetadataValidationError as e:
        root_path = "root" if e.path == "body" else e.path
        raise TraceRecordError(
            f'Trace record "{source}" for response "{response_id}" is invalid '
            f"({root_path}: {e.message})."
        ) from e
