"""FastAPI server exposing trace reads and authenticated trace writes."""

from __future__ import annotations

import json
import logging
import secrets
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from provenance_bot.api.rate_limiter import SimpleRateLimiter
from provenance_bot.tracing import (
    MetadataValidationError,
    TraceStore,
    is_stale,
    validate_metadata,
)

logger = logging.getLogger(__name__)

TRACE_TOKEN_HEADER = "X-Trace-Token"
DEFAULT_MAX_TRACE_BODY_BYTES = 256 * 1024


def _json(
    status_code: int, payload: Any, headers: dict[str, str] | None = None
) -> JSONResponse:
    return JSONResponse(payload, status_code=status_code, headers=headers)


def get_client_ip(request: Request, trust_proxy: bool) -> str:
    """Resolve the client address used for rate limiting and request logs.

    X-Forwarded-For is honoured only when the server sits behind a trusted
    reverse proxy; otherwise the socket peer address is used.
    """
    client_ip = request.client.host if request.client else "unknown"

    if trust_proxy:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()

    if client_ip.startswith("::ffff:"):
        client_ip = client_ip[len("::ffff:"):]
    return client_ip


def create_app(
    trace_store: TraceStore | None,
    trace_token: str | None = None,
    write_limiter: SimpleRateLimiter | None = None,
    max_body_bytes: int = DEFAULT_MAX_TRACE_BODY_BYTES,
    trust_proxy: bool = False,
) -> FastAPI:
    """Create the trace API FastAPI app.

    Args:
        trace_store: Trace storage backend; None means storage failed to initialize.
        trace_token: Shared secret required for writes; None disables ingestion.
        write_limiter: Per-client limiter for writes; None rejects writes with 503.
        max_body_bytes: Upper bound for the JSON write payload.
        trust_proxy: Read X-Forwarded-For to find the real client IP.

    Returns:
        A configured FastAPI application.
    """
    app = FastAPI(title="Provenance Trace API")

    def log_request(request: Request, status_code: int, label: str) -> None:
        logger.info(
            f"TRACE_REQUEST {request.method} {request.url.path} status={status_code} "
            f"ip={get_client_ip(request, trust_proxy)} {label}"
        )

    @app.get("/traces/{response_id}")
    async def get_trace(request: Request, response_id: str):
        """Return stored metadata, or a 410 envelope once it has gone stale."""
        logger.debug(f"Trace request received responseId={response_id}")

        if trace_store is None:
            log_request(request, 503, "trace store-unavailable")
            return _json(503, {"error": "Trace store unavailable"})

        try:
            metadata = trace_store.retrieve(response_id)
        except Exception as e:
            logger.error(f'Failed to retrieve trace for response "{response_id}": {e}')
            log_request(request, 500, "trace error")
            return _json(500, {"error": "Failed to read trace"}, {"Cache-Control": "no-store"})

        if metadata is None:
            log_request(request, 404, "trace not-found")
            return _json(404, {"error": "Trace not found"})

        payload = metadata.to_payload()
        if is_stale(metadata):
            log_request(request, 410, "trace stale")
            return _json(410, {"message": "Trace is stale", "metadata": payload})

        log_request(request, 200, "trace success")
        return _json(200, payload)

    @app.api_route("/traces", methods=["GET", "PUT", "PATCH", "DELETE"])
    async def traces_method_not_allowed(request: Request):
        log_request(request, 405, "trace upsert method-not-allowed")
        return _json(405, {"error": "Method not allowed"}, {"Allow": "POST"})

    @app.post("/traces")
    async def post_trace(request: Request):
        """Validate and store a trace written by a trusted producer."""
        if trace_store is None:
            log_request(request, 503, "trace upsert store-unavailable")
            return _json(503, {"error": "Trace store unavailable"})

        # Require a shared secret so the public cannot poison traces
        if not trace_token:
            log_request(request, 503, "trace upsert token-not-configured")
            return _json(503, {"error": "Trace ingestion not configured"})

        provided = request.headers.get(TRACE_TOKEN_HEADER)
        if not provided:
            log_request(request, 401, "trace upsert missing-token")
            return _json(401, {"error": "Missing trace token"})

        if not secrets.compare_digest(provided.encode(), trace_token.encode()):
            log_request(request, 403, "trace upsert invalid-token")
            return _json(403, {"error": "Invalid trace token"})

        if write_limiter is None:
            log_request(request, 503, "trace upsert limiter-unavailable")
            return _json(503, {"error": "Trace rate limiter unavailable"})

        client_ip = get_client_ip(request, trust_proxy)
        limit = write_limiter.check(client_ip)
        if not limit.allowed:
            log_request(request, 429, "trace upsert rate-limited")
            return _json(
                429,
                {"error": "Too many trace writes", "retryAfter": limit.retry_after},
                {"Retry-After": str(limit.retry_after)},
            )

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > max_body_bytes:
            log_request(
                request, 413, f"trace upsert payload-too-large contentLength={content_length}"
            )
            return _json(413, {"error": "Trace payload too large"}, {"Connection": "close"})

        # Count bytes as they stream in; chunked uploads carry no Content-Length
        body = bytearray()
        async for chunk in request.stream():
            body.extend(chunk)
            if len(body) > max_body_bytes:
                log_request(request, 413, "trace upsert payload-too-large")
                return _json(413, {"error": "Trace payload too large"}, {"Connection": "close"})

        if not body:
            log_request(request, 400, "trace upsert missing-body")
            return _json(400, {"error": "Missing request body"})

        try:
            payload = json.loads(body)
        except ValueError as e:
            logger.warning(f"Trace upsert received invalid JSON body: {e}")
            log_request(request, 400, "trace upsert invalid-json")
            return _json(400, {"error": "Invalid JSON body"})

        try:
            metadata = validate_metadata(payload, strict=True)
        except MetadataValidationError as e:
            label = "missing-responseId" if e.missing_response_id else "invalid-payload"
            log_request(request, 400, f"trace upsert {label}")
            return _json(
                400,
                {
                    "error": "Missing responseId" if e.missing_response_id else "Invalid trace payload",
                    "details": e.details,
                },
            )

        try:
            trace_store.upsert(metadata)
        except Exception as e:
            logger.error(f"Trace upsert failed: {e}")
            log_request(request, 500, "trace upsert error")
            return _json(500, {"error": "Failed to store trace"})

        log_request(request, 200, f"trace upsert success {metadata.response_id}")
        return _json(200, {"ok": True, "responseId": metadata.response_id})

    return app
