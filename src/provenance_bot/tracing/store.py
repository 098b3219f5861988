"""SQLite storage for response traces."""

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from provenance_bot.tracing.metadata import ResponseMetadata
from provenance_bot.tracing.validation import assert_valid_response_metadata

logger = logging.getLogger(__name__)


@dataclass
class TraceSummary:
    """Lightweight summary of a trace for list views."""

    response_id: str
    updated_at: datetime
    provenance: str
    risk_tier: str
    confidence: float
    stale_after: str


class TraceStore:
    """SQLite-backed trace storage keyed by response id.

    Writes are last-writer-wins; no versioning or conflict detection. Staleness
    is not applied here, the store returns whatever was last written.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()
        logger.info(f"TraceStore initialized at {self.db_path}")

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS traces (
                response_id TEXT PRIMARY KEY,
                updated_at TIMESTAMP NOT NULL,
                provenance TEXT NOT NULL,
                risk_tier TEXT NOT NULL,
                confidence REAL NOT NULL,
                stale_after TEXT,
                metadata_json TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_traces_updated ON traces(updated_at DESC);
        """)
        self._conn.commit()

    def upsert(self, metadata: ResponseMetadata) -> ResponseMetadata:
        """Store or overwrite the record for ``metadata.response_id``.

        Storage errors (sqlite3.Error) propagate to the caller.
        """
        payload = metadata.to_payload()
        self._conn.execute(
            """
            INSERT OR REPLACE INTO traces
            (response_id, updated_at, provenance, risk_tier, confidence, stale_after, metadata_json)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                metadata.response_id,
                datetime.now(timezone.utc).isoformat(),
                metadata.provenance.value,
                metadata.risk_tier.value,
                metadata.confidence,
                metadata.stale_after,
                json.dumps(payload),
            ),
        )
        self._conn.commit()
        logger.debug(f"Saved trace {metadata.response_id}")
        return metadata

    def retrieve(self, response_id: str) -> ResponseMetadata | None:
        """Get a trace by response id, or None when it was never stored.

        Raises:
            TraceRecordError: if the stored JSON no longer validates
        """
        row = self._conn.execute(
            "SELECT metadata_json FROM traces WHERE response_id = ?", (response_id,)
        ).fetchone()
        if row is None:
            return None
        return assert_valid_response_metadata(
            json.loads(row["metadata_json"]), "sqlite", response_id
        )

    def recent(self, limit: int = 50) -> list[TraceSummary]:
        """Get the most recently written trace summaries."""
        rows = self._conn.execute(
            """
            SELECT response_id, updated_at, provenance, risk_tier, confidence, stale_after
            FROM traces ORDER BY updated_at DESC LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [
            TraceSummary(
                response_id=row["response_id"],
                updated_at=datetime.fromisoformat(row["updated_at"]),
                provenance=row["provenance"],
                risk_tier=row["risk_tier"],
                confidence=row["confidence"],
                stale_after=row["stale_after"] or "",
            )
            for row in rows
        ]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
