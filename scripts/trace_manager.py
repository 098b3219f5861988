#!/usr/bin/env python3
"""CLI tool for browsing and importing response traces."""

import argparse
import json
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tabulate import tabulate

from provenance_bot.tracing import (
    MetadataValidationError,
    TraceRecordError,
    TraceStore,
    is_stale,
    validate_metadata,
)


def get_store(db_path: str) -> TraceStore:
    """Open the trace database."""
    if not Path(db_path).exists():
        print(f"No trace database found at {db_path}")
        sys.exit(1)
    return TraceStore(db_path)


def cmd_list(args):
    """List the most recently written traces."""
    store = get_store(args.db_path)
    summaries = store.recent(limit=args.limit)

    if not summaries:
        print("No traces found.")
        return

    rows = [
        [
            s.response_id,
            s.provenance,
            f"{s.confidence:.2f}",
            s.risk_tier,
            s.stale_after[:19],
            s.updated_at.isoformat()[:19],
        ]
        for s in summaries
    ]

    print(f"\nFound {len(rows)} traces:\n")
    print(tabulate(
        rows,
        headers=["Response ID", "Provenance", "Confidence", "Risk", "Stale after", "Updated"],
        tablefmt="simple",
    ))
    print()


def cmd_show(args):
    """Show full metadata for one trace."""
    store = get_store(args.db_path)

    try:
        metadata = store.retrieve(args.response_id)
    except TraceRecordError as e:
        print(f"Stored trace is invalid: {e}")
        sys.exit(1)

    if metadata is None:
        print(f"Trace {args.response_id} not found.")
        return

    print(f"\n{'='*60}")
    print(f"Response ID: {metadata.response_id}")
    print(f"Stale:       {'yes' if is_stale(metadata) else 'no'}")
    print(f"{'='*60}")
    print(json.dumps(metadata.to_payload(), indent=2))
    print(f"{'='*60}\n")


def cmd_import(args):
    """Import traces from a JSON file (one object or a list of objects)."""
    with open(args.file) as f:
        data = json.load(f)

    records = data if isinstance(data, list) else [data]
    store = TraceStore(args.db_path)

    imported = 0
    for index, record in enumerate(records):
        try:
            metadata = validate_metadata(record, strict=args.strict)
        except MetadataValidationError as e:
            print(f"Skipping record {index}: {e.details}")
            continue
        store.upsert(metadata)
        imported += 1

    store.close()
    print(f"Imported {imported} of {len(records)} traces into {args.db_path}")


def main():
    parser = argparse.ArgumentParser(
        description="Manage response traces for provenance-bot"
    )
    parser.add_argument(
        "--db-path",
        default="./data/traces.db",
        help="Path to the trace database (default: ./data/traces.db)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # list command
    list_parser = subparsers.add_parser("list", help="List recent traces")
    list_parser.add_argument("--limit", type=int, default=50, help="Max results (default: 50)")
    list_parser.set_defaults(func=cmd_list)

    # show command
    show_parser = subparsers.add_parser("show", help="Show full metadata of a trace")
    show_parser.add_argument("response_id", help="Response ID")
    show_parser.set_defaults(func=cmd_show)

    # import command
    import_parser = subparsers.add_parser("import", help="Import traces from JSON")
    import_parser.add_argument("file", help="JSON file with one trace or a list of traces")
    import_parser.add_argument("--strict", action="store_true", help="Reject unknown top-level fields")
    import_parser.set_defaults(func=cmd_import)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
