"""Storage backends and record codecs used to save and load collections."""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Iterable, Iterator, Mapping, MutableMapping
from pathlib import Path
from typing import Any, Protocol

from nddb.cycle import decycle, retrocycle

FORMATS = ("json", "ndjson", "csv")

_EXTENSIONS = {
    ".json": "json",
    ".ndjson": "ndjson",
    ".jsonl": "ndjson",
    ".csv": "csv",
}


class StorageBackend(Protocol):
    """Where serialized collections are written to and read from."""

    def write(self, target: str, data: str) -> None: ...

    def read(self, target: str) -> str: ...


class FileStorage:
    """Stores each collection as a UTF-8 file on the local filesystem.

    Relative targets are resolved against ``base_dir`` if one is given.
    """

    def __init__(self, base_dir: Path | str | None = None) -> None:
        self.base_dir = Path(base_dir) if base_dir is not None else None

    def path_for(self, target: str | Path) -> Path:
        path = Path(target)
        if self.base_dir is not None and not path.is_absolute():
            path = self.base_dir / path
        return path

    def write(self, target: str, data: str) -> None:
        path = self.path_for(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(data)

    def read(self, target: str) -> str:
        with open(self.path_for(target), encoding="utf-8") as f:
            return f.read()

    def __repr__(self) -> str:
        return f"FileStorage({str(self.base_dir) if self.base_dir else ''!r})"


class KeyValueStorage:
    """Stores serialized collections in an injected key/value store.

    Any ``MutableMapping[str, str]`` works, e.g. a plain dict or a
    ``shelve`` object.
    """

    def __init__(self, store: MutableMapping[str, str] | None = None) -> None:
        self.store: MutableMapping[str, str] = store if store is not None else {}

    def write(self, target: str, data: str) -> None:
        self.store[target] = data

    def read(self, target: str) -> str:
        return self.store[target]

    def __repr__(self) -> str:
        return f"KeyValueStorage({len(self.store)} keys)"


def detect_format(target: str | Path, default: str = "json") -> str:
    """Guess the record format from a target's file extension."""
    return _EXTENSIONS.get(Path(str(target)).suffix.lower(), default)


def encode_records(items: Iterable[Any], compress: bool = True) -> str:
    """Serialize records to a JSON array, decycling each record first.

    Args:
        items: Records to serialize.
        compress: If False, the output is indented by 4 spaces.
    """
    records = [decycle(item) for item in items]
    if not records:
        return "[]"
    if compress:
        return json.dumps(records, separators=(",", ":"))
    return json.dumps(records, indent=4)


def encode_ndjson(items: Iterable[Any]) -> str:
    """Serialize records to newline-delimited JSON."""
    return "".join(json.dumps(decycle(item), separators=(",", ":")) + "\n" for item in items)


def encode_csv(items: Iterable[Any], delimiter: str = ",") -> str:
    """Serialize mapping records to CSV with a header row.

    Columns are the union of the top-level keys in first-seen order.
    Nested values are written as JSON; missing values as empty cells.
    """
    records = [item for item in items if isinstance(item, Mapping)]
    columns: list[str] = []
    for record in records:
        for key in record:
            if key not in columns:
                columns.append(key)

    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")
    writer.writerow(columns)
    for record in records:
        row = []
        for column in columns:
            value = record.get(column)
            if isinstance(value, (Mapping, list, tuple)):
                value = json.dumps(decycle(value), separators=(",", ":"))
            row.append("" if value is None else value)
        writer.writerow(row)
    return buffer.getvalue()


def decode_json(text: str) -> list[Any]:
    """Parse a JSON array of records and restore cyclic references."""
    data = json.loads(text)
    if not isinstance(data, list):
        data = [data]
    return [retrocycle(item) for item in data]


def decode_ndjson(text: str) -> list[Any]:
    """Parse newline-delimited JSON records, skipping blank lines."""
    return [retrocycle(json.loads(line)) for line in text.splitlines() if line.strip()]


def iter_csv_rows(text: str, options: Mapping[str, Any] | None = None) -> Iterator[dict[str, Any]]:
    """Yield one dict per CSV row.

    Options:
        columns_from_header: Use the first row as column names (default True).
        column_names: Explicit column names; replaces the header names.
        delimiter: Field delimiter (default ``,``).
    """
    options = options or {}
    reader = csv.reader(io.StringIO(text), delimiter=options.get("delimiter", ","))
    names: list[str] | None = list(options["column_names"]) if options.get("column_names") else None

    if options.get("columns_from_header", True):
        header = next(reader, None)
        if header is None:
            return
        if names is None:
            names = header

    for row in reader:
        if not row:
            continue
        if names is None:
            yield {str(i): value for i, value in enumerate(row)}
        else:
            yield {name: value for name, value in zip(names, row)}


def decode_records(text: str, fmt: str, options: Mapping[str, Any] | None = None) -> list[Any]:
    """Decode a serialized collection in one of FORMATS."""
    if fmt == "json":
        return decode_json(text)
    if fmt == "ndjson":
        return decode_ndjson(text)
    if fmt == "csv":
        return list(iter_csv_rows(text, options))
    raise ValueError(f"Unknown record format '{fmt}'. Expected one of: {', '.join(FORMATS)}")
