"""Encode and restore self-referential records for JSON.

Repeated references inside a record are replaced by ``{"$ref": PATH}``
markers, where PATH is a JSONPath such as ``$["parent"][0]`` relative to
the record itself. ``retrocycle`` turns the markers back into references.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

REF = "$ref"

_PATH_RE = re.compile(
    r'^\$(?:\[(?:\d+|"(?:[^\\"\x00-\x1f]|\\(?:[\\"/bfnrt]|u[0-9a-fA-F]{4}))*")\])*$'
)
_STEP_RE = re.compile(r'\[(\d+|"(?:[^\\"]|\\.)*")\]')


def decycle(value: Any) -> Any:
    """Return a JSON-safe copy of value with repeated references replaced.

    >>> a = {"name": "a"}
    >>> a["self"] = a
    >>> decycle(a)
    {'name': 'a', 'self': {'$ref': '$'}}
    """
    seen: dict[int, str] = {}

    def derez(node: Any, path: str) -> Any:
        if not isinstance(node, (Mapping, list, tuple)):
            return node
        ref = seen.get(id(node))
        if ref is not None:
            return {REF: ref}
        seen[id(node)] = path
        if isinstance(node, Mapping):
            return {
                key: derez(child, f"{path}[{json.dumps(str(key))}]")
                for key, child in node.items()
            }
        return [derez(child, f"{path}[{i}]") for i, child in enumerate(node)]

    return derez(value, "$")


def _resolve(root: Any, path: str) -> Any:
    node = root
    for step in _STEP_RE.findall(path):
        node = node[json.loads(step)] if step.startswith('"') else node[int(step)]
    return node


def retrocycle(root: Any) -> Any:
    """Replace ``$ref`` markers in a decoded record with the referenced objects.

    The record is modified in place and returned. Markers whose path is not
    a valid JSONPath, or that point to nothing in the record, are left
    untouched.
    """

    def ref_of(node: Any) -> str | None:
        if isinstance(node, dict) and len(node) == 1:
            path = node.get(REF)
            if isinstance(path, str) and _PATH_RE.match(path):
                return path
        return None

    def rez(node: Any) -> None:
        if isinstance(node, list):
            entries = list(enumerate(node))
        elif isinstance(node, dict):
            entries = list(node.items())
        else:
            return
        for key, child in entries:
            path = ref_of(child)
            if path is not None:
                try:
                    node[key] = _resolve(root, path)
                except (LookupError, TypeError):
                    logger.debug(f"Unresolved reference {path} left in place")
            elif isinstance(child, (dict, list)):
                rez(child)

    if ref_of(root) is not None:
        return root
    rez(root)
    return root
