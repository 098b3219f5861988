"""HTTP client the bot uses to read and write traces."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import quote

import aiohttp

from provenance_bot.api.server import TRACE_TOKEN_HEADER
from provenance_bot.tracing import MetadataValidationError, ResponseMetadata, validate_metadata

logger = logging.getLogger(__name__)


class TraceLookupStatus(Enum):
    """How a metadata lookup resolved."""

    FOUND = "found"
    STALE = "stale"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass
class TraceLookup:
    """Result of fetching one trace; metadata is set for FOUND and STALE."""

    status: TraceLookupStatus
    metadata: ResponseMetadata | None = None
    error: str | None = None


class TraceApiError(Exception):
    """A trace write was rejected or could not be delivered."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class TraceApiClient:
    """Talks to the trace endpoints over HTTP."""

    TIMEOUT_SECONDS = 10

    def __init__(self, base_url: str, trace_token: str | None = None):
        if not base_url.strip():
            raise ValueError("Trace API client requires a non-empty base_url")
        self._base_url = base_url.rstrip("/")
        self._trace_token = trace_token
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.TIMEOUT_SECONDS)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"Accept": "application/json"},
            )
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def get_trace(self, response_id: str) -> TraceLookup:
        """Fetch metadata for a response id.

        Never raises: transport and validation failures come back as ERROR so
        callers can proceed without metadata.
        """
        url = f"{self._base_url}/traces/{quote(response_id, safe='')}"
        try:
            session = await self._get_session()
            async with session.get(url) as response:
                if response.status == 404:
                    return TraceLookup(TraceLookupStatus.NOT_FOUND)
                if response.status not in (200, 410):
                    return TraceLookup(
                        TraceLookupStatus.ERROR,
                        error=f"HTTP {response.status}: {response.reason}",
                    )
                body: Any = await response.json()
                status = response.status
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            return TraceLookup(TraceLookupStatus.ERROR, error=f"Failed to fetch: {e}")

        if status == 410:
            body = body.get("metadata") if isinstance(body, dict) else None

        try:
            metadata = validate_metadata(body)
        except MetadataValidationError as e:
            return TraceLookup(TraceLookupStatus.ERROR, error=f"Invalid trace body: {e}")

        if status == 410:
            return TraceLookup(TraceLookupStatus.STALE, metadata=metadata)
        return TraceLookup(TraceLookupStatus.FOUND, metadata=metadata)

    async def post_trace(self, metadata: ResponseMetadata) -> str:
        """Store metadata through the write endpoint.

        Returns:
            The responseId acknowledged by the server

        Raises:
            TraceApiError: on a non-200 answer or transport failure
        """
        headers = {}
        if self._trace_token:
            headers[TRACE_TOKEN_HEADER] = self._trace_token

        try:
            session = await self._get_session()
            async with session.post(
                f"{self._base_url}/traces",
                json=metadata.to_payload(),
                headers=headers,
            ) as response:
                body: Any = await response.json(content_type=None)
                if response.status != 200:
                    error = body.get("error") if isinstance(body, dict) else None
                    raise TraceApiError(
                        f"Trace write rejected: HTTP {response.status} {error or response.reason}",
                        status=response.status,
                    )
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            raise TraceApiError(f"Trace write failed: {e}") from e

        return body.get("responseId", metadata.response_id)
