"""Translate OpenAPI schema objects into :class:`~ontap.models.Schema` values.

The translator sees schemas after ``$ref`` resolution, so nested objects and
array items are plain dictionaries.  It is deliberately forgiving: anything
that is not a mapping translates to an untyped schema, which the command
compiler treats as a string.
"""

from __future__ import annotations

from typing import Any, Optional

from ontap.models import Schema

_UNTYPED = Schema()


def translate_schema(node: Any) -> Schema:
    """Build a :class:`~ontap.models.Schema` from a schema object.

    Args:
        node: A resolved schema dictionary, or ``None`` when the parameter
            declares no schema.

    Returns:
        The translated schema.  Absent or malformed nodes, and ``$ref``
        dicts left unresolved at a reference cycle, yield an untyped schema.

    Example::

        >>> translate_schema({"type": ["integer", "null"], "default": 10}).type
        'integer'
    """
    if not isinstance(node, dict) or "$ref" in node:
        return _UNTYPED

    properties = node.get("properties")
    enum_values = node.get("enum")
    required = node.get("required")

    return Schema(
        type=schema_type(node),
        format=_as_str(node.get("format")),
        description=_as_str(node.get("description")),
        default=node.get("default"),
        enum=list(enum_values) if isinstance(enum_values, list) else [],
        minimum=_as_number(node.get("minimum")),
        maximum=_as_number(node.get("maximum")),
        min_length=_as_int(node.get("minLength")),
        max_length=_as_int(node.get("maxLength")),
        pattern=_as_str(node.get("pattern")),
        properties=(
            {name: translate_schema(prop) for name, prop in properties.items()}
            if isinstance(properties, dict)
            else {}
        ),
        items=translate_schema(node["items"]) if "items" in node else None,
        required=[r for r in required if isinstance(r, str)]
        if isinstance(required, list)
        else [],
        example=node.get("example"),
    )


def schema_type(node: dict[str, Any]) -> str:
    """Return the declared type of *node*.

    OpenAPI 3.1 allows a list of types (``["string", "null"]``); the first
    non-null entry wins.  A missing type yields ``""``.
    """
    value = node.get("type", "")
    if isinstance(value, list):
        non_null = [t for t in value if t != "null"]
        return str(non_null[0]) if non_null else ""
    return str(value) if value else ""


def _as_str(value: Any) -> str:
    return str(value) if value is not None else ""


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value
