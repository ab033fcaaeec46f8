"""Inline internal ``$ref`` pointers so downstream code sees a plain tree.

OpenAPI documents share definitions through JSON References such as
``{"$ref": "#/components/parameters/Limit"}``.  The extractor and schema
translator never follow references themselves; they are handed the output
of :func:`resolve_refs`, in which every internal reference has been replaced
by a copy of its target.

A reference that points back at one of its own ancestors (a recursive
schema like a tree node) is left in place at the point where the cycle
closes, so the result is always finite.
"""

from __future__ import annotations

import copy
from typing import Any

from ontap.exceptions import SpecParseError


def resolve_refs(document: dict[str, Any]) -> dict[str, Any]:
    """Return a deep copy of *document* with internal ``$ref`` pointers inlined.

    Args:
        document: The raw OpenAPI document.

    Returns:
        A new dictionary; *document* is not modified.

    Raises:
        SpecParseError: If a reference is external (not ``#/...``) or points
            at a location that does not exist.
    """
    root = copy.deepcopy(document)
    return _RefResolver(root).resolve(root, ())


def lookup_pointer(document: dict[str, Any], ref: str) -> Any:
    """Follow an internal JSON Pointer (``#/a/b/0``) through *document*.

    Handles RFC 6901 escaping (``~1`` for ``/`` and ``~0`` for ``~``).

    Raises:
        SpecParseError: If *ref* is external or any segment is missing.
    """
    if not ref.startswith("#/"):
        raise SpecParseError(f"External $ref not supported: {ref}")

    node: Any = document
    for raw_segment in ref[2:].split("/"):
        segment = raw_segment.replace("~1", "/").replace("~0", "~")
        if isinstance(node, dict) and segment in node:
            node = node[segment]
        elif isinstance(node, list) and segment.isdigit() and int(segment) < len(node):
            node = node[int(segment)]
        else:
            raise SpecParseError(f"Cannot resolve $ref '{ref}': no '{segment}' segment")
    return node


class _RefResolver:
    def __init__(self, root: dict[str, Any]) -> None:
        self._root = root

    def resolve(self, node: Any, active: tuple[str, ...]) -> Any:
        if isinstance(node, list):
            return [self.resolve(item, active) for item in node]
        if not isinstance(node, dict):
            return node

        ref = node.get("$ref")
        if isinstance(ref, str):
            if ref in active:
                return node
            target = lookup_pointer(self._root, ref)
            return self.resolve(target, active + (ref,))

        return {key: self.resolve(value, active) for key, value in node.items()}
