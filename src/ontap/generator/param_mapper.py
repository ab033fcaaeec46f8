"""Map OpenAPI parameters to command-line flags and positional arguments.

The command compiler calls into this module once per parameter while it
builds the command tree.  Everything decided here is frozen into plain
descriptors (:class:`FlagSpec`, :class:`ArgumentSpec`) so that the Typer
layer never has to look at a :class:`~ontap.models.Schema` again.

**Mapping rules:**

* **Path parameters** become positional arguments, always required.
* **Query, header and cookie parameters** become ``--<name>`` flags.  The
  flag name is the parameter name exactly as the description spells it.
* **Flag kinds** follow the schema type: ``string`` to a string flag,
  ``integer`` and ``number`` to an integer flag, ``boolean`` to a bool flag,
  ``array`` to a repeatable string flag.  Anything else is a string flag, and
  header and cookie parameters are always strings.
* **Defaults** are coerced exactly once into a :data:`~ontap.models.FlagDefault`
  variant by :func:`resolve_default`.
* **Python identifiers** for the generated function signature come from
  :func:`sanitize_param_name` and are made unique per command.
"""

from __future__ import annotations

import json
import keyword
import logging
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from ontap.models import (
    BoolDefault,
    FlagDefault,
    FlagKind,
    IntegerDefault,
    Parameter,
    ParameterLocation,
    Schema,
    StringDefault,
    StringListDefault,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reserved names
# ---------------------------------------------------------------------------

#: Long flag names owned by the request-shaping flags every leaf command has.
RESERVED_FLAGS: frozenset[str] = frozenset(
    {
        "data",
        "header",
        "query",
        "form",
        "auth",
        "content-type",
        "output",
        "save",
        "extract",
        "filter",
        "verbose",
        "dry-run",
        "help",
    }
)

#: Python identifiers used by the context and those flags in the generated signature.
RESERVED_IDENTIFIERS: frozenset[str] = frozenset(
    {
        "ctx",
        "data",
        "header",
        "query",
        "form",
        "auth",
        "content_type",
        "output",
        "save",
        "extract",
        "filter",
        "verbose",
        "dry_run",
    }
)

# Click splits option declarations on "/" and whitespace.
_FLAG_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-\[\]]*$")


class FlagMappingError(ValueError):
    """A parameter cannot be registered as a flag."""


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------


class ArgumentSpec(BaseModel):
    """A positional argument bound to one path parameter."""

    model_config = ConfigDict(frozen=True)

    name: str
    identifier: str
    help: str = ""


class FlagSpec(BaseModel):
    """A ``--flag`` bound to one query, header or cookie parameter.

    Attributes:
        name: The flag name without dashes (the parameter name).
        identifier: The Python identifier in the generated signature.
        location: Where the value goes in the request.
        kind: The value kind the flag parses.
        default: The resolved default.
        declared_default: Whether the description declares a default that
            reads as the flag's kind, in which case the value is sent even
            when the flag is not given.
        required: Whether the flag must be supplied.
        help: Help text shown by ``--help``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    identifier: str
    location: ParameterLocation
    kind: FlagKind
    default: FlagDefault
    declared_default: bool = False
    required: bool = False
    help: str = ""

    @property
    def has_negative_form(self) -> bool:
        """Whether the flag is declared as ``--x/--no-x``."""
        return self.kind == FlagKind.BOOL and bool(self.default.value or self.required)

    @property
    def option_names(self) -> list[str]:
        """Every long option name this flag occupies on the command line."""
        if self.has_negative_form:
            return [self.name, f"no-{self.name}"]
        return [self.name]


# ---------------------------------------------------------------------------
# Name sanitisation
# ---------------------------------------------------------------------------


_CAMEL_LOWER_UPPER_RE = re.compile(r"([a-z0-9])([A-Z])")
_CAMEL_ACRONYM_RE = re.compile(r"([A-Z]+)([A-Z][a-z])")
_NON_IDENT_RE = re.compile(r"[^a-z0-9_]+")


def sanitize_param_name(name: str) -> str:
    """Turn a parameter name into a valid Python identifier.

    CamelCase is split, everything is lowercased, runs of other characters
    collapse to one underscore.  A leading digit gets an underscore prefix
    and Python keywords get a trailing one.

    Example::

        >>> sanitize_param_name("petId")
        'pet_id'
        >>> sanitize_param_name("X-Request-ID")
        'x_request_id'
        >>> sanitize_param_name("class")
        'class_'
    """
    split = _CAMEL_ACRONYM_RE.sub(r"\1_\2", _CAMEL_LOWER_UPPER_RE.sub(r"\1_\2", name))
    ident = _NON_IDENT_RE.sub("_", split.lower())
    ident = re.sub(r"_+", "_", ident).strip("_") or "param"
    if ident[0].isdigit():
        ident = f"_{ident}"
    if keyword.iskeyword(ident):
        ident = f"{ident}_"
    return ident


def unique_identifier(name: str, taken: set[str]) -> str:
    """Return a sanitised identifier for *name* that is not in *taken*.

    Collisions get a numeric suffix (``id``, ``id_2``, ``id_3`` ...).  The
    caller is responsible for adding the result to *taken*.
    """
    base = sanitize_param_name(name)
    ident = base
    counter = 2
    while ident in taken:
        ident = f"{base}_{counter}"
        counter += 1
    return ident


# ---------------------------------------------------------------------------
# Kinds and defaults
# ---------------------------------------------------------------------------

_KIND_BY_TYPE: dict[str, FlagKind] = {
    "string": FlagKind.STRING,
    "integer": FlagKind.INTEGER,
    "number": FlagKind.INTEGER,
    "boolean": FlagKind.BOOL,
    "array": FlagKind.STRING_LIST,
}


def flag_kind_for(parameter: Parameter) -> FlagKind:
    """Pick the flag kind for a non-path *parameter*."""
    if parameter.location in (ParameterLocation.HEADER, ParameterLocation.COOKIE):
        return FlagKind.STRING
    schema_type = parameter.schema_.type if parameter.schema_ is not None else ""
    return _KIND_BY_TYPE.get(schema_type, FlagKind.STRING)


def resolve_default(kind: FlagKind, schema: Optional[Schema]) -> FlagDefault:
    """Coerce ``schema.default`` into the :data:`FlagDefault` variant for *kind*.

    A missing default, or one that cannot be read as the flag's kind, yields
    the kind's zero value.  Float defaults of integer flags are truncated.
    """
    coerced = _coerce_default(kind, schema.default if schema is not None else None)
    return coerced if coerced is not None else _zero_default(kind)


def _zero_default(kind: FlagKind) -> FlagDefault:
    if kind == FlagKind.INTEGER:
        return IntegerDefault()
    if kind == FlagKind.BOOL:
        return BoolDefault()
    if kind == FlagKind.STRING_LIST:
        return StringListDefault()
    return StringDefault()


def _coerce_default(kind: FlagKind, raw: Any) -> Optional[FlagDefault]:
    """Return the default for *kind*, or ``None`` when *raw* is absent or unreadable."""
    if raw is None:
        return None
    if kind == FlagKind.INTEGER:
        number = _to_int(raw)
        return IntegerDefault(value=number) if number is not None else None
    if kind == FlagKind.BOOL:
        flag = _to_bool(raw)
        return BoolDefault(value=flag) if flag is not None else None
    if kind == FlagKind.STRING_LIST:
        values = raw if isinstance(raw, list) else [raw]
        return StringListDefault(value=tuple(_to_str(v) for v in values))
    return StringDefault(value=_to_str(raw))


def _to_int(raw: Any) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    try:
        return int(raw) if isinstance(raw, (int, float)) else int(float(str(raw)))
    except (ValueError, OverflowError):
        logger.debug("Ignoring non-numeric default %r", raw)
        return None


def _to_bool(raw: Any) -> Optional[bool]:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        text = raw.strip().lower()
        if text in ("true", "1", "yes"):
            return True
        if text in ("false", "0", "no"):
            return False
    logger.debug("Ignoring non-boolean default %r", raw)
    return None


def _to_str(raw: Any) -> str:
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if isinstance(raw, (dict, list)):
        return json.dumps(raw)
    return str(raw)


# ---------------------------------------------------------------------------
# Parameter mapping
# ---------------------------------------------------------------------------


def _help_for(parameter: Parameter) -> str:
    schema = parameter.schema_
    parts: list[str] = []
    if parameter.deprecated:
        parts.append("[DEPRECATED]")
    description = parameter.description or (schema.description if schema else "")
    if description:
        parts.append(description)
    if schema is not None and schema.enum:
        parts.append(f"(choices: {', '.join(_to_str(v) for v in schema.enum)})")
    return " ".join(parts)


def map_argument(parameter: Parameter, taken: set[str]) -> ArgumentSpec:
    """Describe the positional argument for path *parameter*."""
    return ArgumentSpec(
        name=parameter.name,
        identifier=unique_identifier(parameter.name, taken),
        help=_help_for(parameter),
    )


def map_flag(parameter: Parameter, taken: set[str]) -> FlagSpec:
    """Describe the flag for a query, header or cookie *parameter*.

    Args:
        parameter: The parameter to map.
        taken: Python identifiers already used by the command.

    Raises:
        FlagMappingError: If the parameter is a path parameter or its name
            cannot be used as an option name.
    """
    if parameter.location == ParameterLocation.PATH:
        raise FlagMappingError(f"path parameter {parameter.name!r} is not a flag")
    if not _FLAG_NAME_RE.match(parameter.name):
        raise FlagMappingError(f"{parameter.name!r} is not a usable flag name")

    kind = flag_kind_for(parameter)
    help_text = _help_for(parameter)
    if parameter.required:
        help_text = f"{help_text} [REQUIRED]" if help_text else "[REQUIRED]"

    schema = parameter.schema_
    declared = _coerce_default(kind, schema.default if schema is not None else None)
    return FlagSpec(
        name=parameter.name,
        identifier=unique_identifier(parameter.name, taken),
        location=parameter.location,
        kind=kind,
        default=declared if declared is not None else _zero_default(kind),
        declared_default=declared is not None,
        required=parameter.required,
        help=help_text,
    )
