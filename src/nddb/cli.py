"""Command-line tool: run a text query over a JSON, NDJSON or CSV file."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from nddb.collection import Collection
from nddb.log import setup_logging


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="nddb-query",
        description="Load records from a .json, .ndjson or .csv file, filter and print them as JSON",
    )
    parser.add_argument("file", help="File to load records from")
    parser.add_argument(
        "-q",
        "--query",
        help='Text query, e.g. \'age > 18 and country in ["it", "de"]\'',
    )
    parser.add_argument("--sort", metavar="PATH", action="append", help="Sort by field path (repeatable)")
    parser.add_argument("--reverse", action="store_true", help="Reverse the order after sorting")
    parser.add_argument("--limit", type=int, help="Keep the first N records (last -N if negative)")
    parser.add_argument("--fields", metavar="PATH", nargs="+", help="Only output these fields")
    parser.add_argument("--count", action="store_true", help="Print the number of matching records only")
    parser.add_argument("--pretty", action="store_true", help="Indent the JSON output")
    parser.add_argument("--log-level", default=None, help="Log level (default: $LOGLEVEL or INFO)")

    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    path = Path(args.file)
    if not path.exists():
        print(f"Error: {args.file} not found", file=sys.stderr)
        return 1

    db = Collection()
    if not db.load(path):
        print(f"Error: cannot load records from {args.file}", file=sys.stderr)
        return 1

    if args.query:
        result = db.where(args.query)
        if result is False:
            print(f"Error: invalid query: {args.query}", file=sys.stderr)
            return 1
        db = db.execute()

    if args.sort:
        db.sort(args.sort if len(args.sort) > 1 else args.sort[0])
    if args.reverse:
        db.reverse()
    if args.limit is not None:
        db = db.limit(args.limit)
    if args.fields:
        db = db.keep(args.fields)

    if args.count:
        print(len(db))
    else:
        print(db.stringify(compress=not args.pretty))
    return 0


if __name__ == "__main__":
    sys.exit(main())
