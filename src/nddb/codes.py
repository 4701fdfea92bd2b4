"""Authorization codes: generate, read or fetch them, and load them into a collection.

``generate_codes(settings)`` is a coroutine whatever the mode:

- ``dummy``: sequential ids (``"0"``, ``"1"``, ...).
- ``auto``: random hex codes, unique within one batch.
- ``local``: read from ``in_file`` or ``codes.json`` / ``codes.ndjson`` /
  ``codes.csv`` in ``auth_dir``.
- ``external``: no codes, they are added later by the caller.
- ``monitor``: no codes, they are added later from the monitor interface.
- ``custom``: the result of ``custom_cb(settings)`` (sync or async).

Each code is a dict with ``id``, ``AccessCode`` and ``ExitCode``, plus
``pwd`` when ``add_pwd`` is set. Codes read from files may carry any other
fields.
"""

from __future__ import annotations

import inspect
import logging
import secrets
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import aiofiles
import voluptuous.error
from voluptuous import ALLOW_EXTRA, All, Any as AnyOf, In, Optional, Range, Required, Schema

from nddb.collection import Collection
from nddb.storage import FORMATS, KeyValueStorage, detect_format

logger = logging.getLogger(__name__)

MODES = ("dummy", "auto", "local", "external", "monitor", "custom")
DEFAULT_N_CODES = 100
DEFAULT_LENGTHS = {"id_len": 8, "pwd_len": 8, "access_len": 6, "exit_len": 6}
DEFAULT_FILES = ("codes.json", "codes.ndjson", "codes.csv")

# Give up after this many collisions while drawing one code.
MAX_DRAWS = 500


class CodesError(Exception):
    """Raised when codes cannot be produced (missing or empty file, too many collisions)."""


CODES_LENGTH_SCHEMA = Schema({
    Optional("id_len"): All(int, Range(min=1)),
    Optional("pwd_len"): All(int, Range(min=1)),
    Optional("access_len"): All(int, Range(min=1)),
    Optional("exit_len"): All(int, Range(min=1)),
})

SETTINGS_SCHEMA = Schema({
    Required("mode"): In(MODES),
    Optional("n_codes"): All(int, Range(min=1)),
    Optional("add_pwd"): bool,
    Optional("codes_length"): CODES_LENGTH_SCHEMA,
    Optional("in_file"): AnyOf(None, str, Path),
    Optional("auth_dir"): AnyOf(str, Path),
}, extra=ALLOW_EXTRA)


def validate_settings(settings: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a settings mapping.

    Raises:
        TypeError: If settings is not a mapping.
        ValueError: If a setting has a wrong type or value.
    """
    if not isinstance(settings, Mapping):
        raise TypeError(f"Code settings must be a mapping, got {type(settings).__name__}")
    try:
        return SETTINGS_SCHEMA(dict(settings))
    except voluptuous.error.MultipleInvalid as e:
        logger.debug(f"Invalid code settings: {e}")
        raise ValueError(f"Invalid code settings at {e.path}: {e.msg}") from e


def gen_code(length: int, taken: set[str]) -> str:
    """Draw a random hex code of the given length that is not in taken.

    The code is added to taken.

    Raises:
        CodesError: If no free code was found after MAX_DRAWS attempts.
    """
    n_bytes = (length + 1) // 2
    for _ in range(MAX_DRAWS):
        code = secrets.token_hex(n_bytes)[:length]
        if code not in taken:
            taken.add(code)
            return code
    raise CodesError(
        f"Error generating codes: no free code of length {length} after {MAX_DRAWS} draws"
    )


def dummy_codes(n_codes: int, add_pwd: bool = False) -> list[dict[str, str]]:
    codes = []
    for i in range(n_codes):
        code = {"id": str(i), "AccessCode": str(i), "ExitCode": f"{i}exit"}
        if add_pwd:
            code["pwd"] = str(i)
        codes.append(code)
    return codes


def auto_codes(
    n_codes: int, add_pwd: bool = False, lengths: Mapping[str, int] | None = None
) -> list[dict[str, str]]:
    """Generate random codes; every id, access, exit and password code is distinct."""
    lengths = {**DEFAULT_LENGTHS, **(lengths or {})}
    taken: set[str] = set()
    codes = []
    for _ in range(n_codes):
        code = {
            "id": gen_code(lengths["id_len"], taken),
            "AccessCode": gen_code(lengths["access_len"], taken),
            "ExitCode": gen_code(lengths["exit_len"], taken),
        }
        if add_pwd:
            code["pwd"] = gen_code(lengths["pwd_len"], taken)
        codes.append(code)
    return codes


def find_codes_file(in_file: str | Path | None, auth_dir: str | Path) -> Path:
    """Resolve the file local codes are read from.

    Raises:
        TypeError: If in_file is an empty string.
        CodesError: If the file does not exist.
    """
    base = Path(auth_dir)
    if in_file is None:
        for name in DEFAULT_FILES:
            path = base / name
            if path.exists():
                return path
        raise CodesError(
            f"mode=local: in_file not set and none of {', '.join(DEFAULT_FILES)} found in {base}"
        )
    if isinstance(in_file, str) and not in_file.strip():
        raise TypeError("mode=local: in_file must be a non-empty string or None")
    path = Path(in_file)
    if not path.is_absolute():
        path = base / path
    if not path.exists():
        raise CodesError(f"mode=local: in_file not found: {path}")
    return path


async def read_codes_file(path: Path) -> list[Any]:
    """Read codes from a JSON, NDJSON or CSV file.

    Raises:
        CodesError: If the format is unknown, the file cannot be decoded,
            or it holds no codes.
    """
    fmt = detect_format(path, default="")
    if fmt not in FORMATS:
        raise CodesError(f"mode=local: unknown format: {path}")

    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        text = await f.read()

    db = Collection(storage=KeyValueStorage({path.name: text}))
    if not db.load(path.name):
        raise CodesError(f"mode=local: cannot decode codes from {path}")
    codes = db.fetch()
    if not codes:
        raise CodesError(f"mode=local: no codes found in {path}")
    logger.info(f"Loaded {len(codes)} codes from {path}")
    return codes


async def generate_codes(settings: Mapping[str, Any]) -> list[Any]:
    """Produce the authorization codes described by settings.

    Args:
        settings: ``mode`` (required), ``n_codes`` (default 100),
            ``add_pwd``, ``codes_length`` (``id_len``, ``pwd_len``,
            ``access_len``, ``exit_len``), ``in_file``, ``auth_dir`` and
            ``custom_cb``.

    Raises:
        TypeError: If ``custom_cb`` is not callable in custom mode.
        ValueError: If the settings are invalid.
        CodesError: If local codes cannot be read.
    """
    options = validate_settings(settings)
    mode = options["mode"]
    n_codes = options.get("n_codes", DEFAULT_N_CODES)
    add_pwd = options.get("add_pwd", False)

    if mode == "dummy":
        return dummy_codes(n_codes, add_pwd)

    if mode == "auto":
        return auto_codes(n_codes, add_pwd, options.get("codes_length"))

    if mode == "local":
        path = find_codes_file(options.get("in_file"), options.get("auth_dir", "."))
        return await read_codes_file(path)

    if mode in ("external", "monitor"):
        return []

    custom_cb = options.get("custom_cb")
    if not callable(custom_cb):
        raise TypeError(f"mode=custom: custom_cb must be callable, got {type(custom_cb).__name__}")
    result = custom_cb(settings)
    if inspect.isawaitable(result):
        result = await result
    return list(result or [])


async def load_code_registry(settings: Mapping[str, Any], **kwargs: Any) -> Collection:
    """Generate codes and return them in a collection indexed by ``id``.

    Extra keyword arguments are passed to the Collection constructor.
    """
    codes = await generate_codes(settings)
    registry = Collection(codes, **kwargs)
    registry.index("id", lambda code: code.get("id") if isinstance(code, Mapping) else None)
    return registry
