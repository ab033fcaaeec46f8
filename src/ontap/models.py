"""Canonical Pydantic models shared across all ontap modules.

This is the single source of truth for data shapes in the project.  The
models fall into three groups:

**Configuration models** -- read from the user's ``config.yaml``:
    :class:`APIConfig` and :class:`Config`.

**Description models** -- produced by the operation extractor and schema
translator, consumed by the command compiler and request builder:
    :class:`HTTPMethod`, :class:`ParameterLocation`, :class:`Schema`,
    :class:`Parameter`, :class:`MediaType`, :class:`RequestBody`,
    :class:`Response`, :class:`Endpoint`, and :class:`ParsedDocument`.

**Flag defaults** -- the tagged variant a generated flag's default value is
resolved into once, at registration time:
    :class:`FlagKind` and the ``*Default`` models joined in
    :data:`FlagDefault`.

Description models are frozen: an :class:`Endpoint` is never patched after
extraction, it is rebuilt wholesale when the spec is refreshed.
"""

from __future__ import annotations

import enum
import re
from datetime import datetime, timedelta
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Durations ---


_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")
_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}


def parse_duration(value: str | int | float) -> timedelta:
    """Parse a duration such as ``"24h"``, ``"1h30m"``, ``"90s"`` or ``600``.

    Bare numbers are seconds.  Units may be chained in any order and each
    may carry a fraction (``"1.5h"``).

    Args:
        value: The duration string or number of seconds.

    Returns:
        The equivalent :class:`~datetime.timedelta`.

    Raises:
        ValueError: If *value* is empty, negative, or contains an unknown unit.
    """
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"negative duration: {value}")
        return timedelta(seconds=value)

    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    if text.isdigit():
        return timedelta(seconds=int(text))

    seconds = 0.0
    pos = 0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return timedelta(seconds=seconds)


# --- Config ---


DEFAULT_CACHE_TTL = "24h"
DEFAULT_API_KEY_HEADER = "X-API-Key"


class APIConfig(BaseModel):
    """One named API in ``config.yaml``.

    Example::

        APIConfig(
            apispec="https://petstore3.swagger.io/api/v3/openapi.json",
            url="https://petstore3.swagger.io/api/v3",
            auth="Bearer ${PETSTORE_TOKEN}",
            cache_ttl="12h",
        )
    """

    model_config = ConfigDict(extra="allow")

    apispec: str = Field(description="URL or file path to the OpenAPI description")
    url: str = Field(default="", description="Base URL requests are sent to")
    auth: str = Field(
        default="",
        description="Default auth: 'user:pass', 'Bearer <token>', 'Basic <b64>', "
        "or a bare API key",
    )
    cache_ttl: str = Field(
        default=DEFAULT_CACHE_TTL, description="How long the parsed spec stays cached"
    )
    output: str = Field(default="json", description="Default output format")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Headers sent with every request"
    )
    api_key_header: str = Field(
        default=DEFAULT_API_KEY_HEADER,
        description="Header carrying a bare API key",
    )

    @field_validator("cache_ttl", mode="before")
    @classmethod
    def _check_cache_ttl(cls, value: Any) -> str:
        parse_duration(value)
        return str(value) if not isinstance(value, str) else value

    @property
    def ttl(self) -> timedelta:
        """The parsed :attr:`cache_ttl`."""
        return parse_duration(self.cache_ttl)


class Config(BaseModel):
    """The whole ``config.yaml`` document: a mapping of API name to settings."""

    apis: dict[str, APIConfig] = Field(default_factory=dict)


# --- Description models ---


class HTTPMethod(str, enum.Enum):
    """The eight HTTP methods an OpenAPI path item may declare."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"


class ParameterLocation(str, enum.Enum):
    """Locations where an API parameter can appear, per OpenAPI ``in`` field."""

    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    COOKIE = "cookie"


class Schema(BaseModel):
    """Type metadata translated from an OpenAPI schema object.

    ``type`` is the empty string when the description declares none; the
    compiler treats that as a string.
    """

    model_config = ConfigDict(frozen=True)

    type: str = ""
    format: str = ""
    description: str = ""
    default: Any = None
    enum: list[Any] = Field(default_factory=list)
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: str = ""
    properties: dict[str, Schema] = Field(default_factory=dict)
    items: Optional[Schema] = None
    required: list[str] = Field(default_factory=list)
    example: Any = None


class Parameter(BaseModel):
    """One input to an operation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    location: ParameterLocation
    required: bool = False
    deprecated: bool = False
    description: str = ""
    schema_: Optional[Schema] = Field(default=None, alias="schema")


class MediaType(BaseModel):
    """A media type entry under a request body or response ``content`` map."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    schema_: Optional[Schema] = Field(default=None, alias="schema")
    example: Any = None


class RequestBody(BaseModel):
    """The request body an operation accepts."""

    model_config = ConfigDict(frozen=True)

    description: str = ""
    required: bool = False
    content: dict[str, MediaType] = Field(default_factory=dict)


class Response(BaseModel):
    """One declared response, keyed by status code on :class:`Endpoint`."""

    model_config = ConfigDict(frozen=True)

    description: str = ""
    content: dict[str, MediaType] = Field(default_factory=dict)
    headers: list[str] = Field(default_factory=list)


class Endpoint(BaseModel):
    """One HTTP method on one path, as extracted from the description."""

    model_config = ConfigDict(frozen=True)

    path: str
    method: HTTPMethod
    operation_id: str = ""
    summary: str = ""
    description: str = ""
    parameters: list[Parameter] = Field(default_factory=list)
    request_body: Optional[RequestBody] = None
    responses: dict[str, Response] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    security: list[dict[str, list[str]]] = Field(default_factory=list)
    deprecated: bool = False


class ParsedDocument(BaseModel):
    """A loaded and ``$ref``-resolved description, as returned by the spec provider."""

    location: str
    openapi_version: str = Field(description="Detected major.minor: '3.0' or '3.1'")
    document: dict[str, Any]


class CacheEntry(BaseModel):
    """One spec stored in the spec cache."""

    key: str
    location: str
    openapi_version: str
    document: dict[str, Any]
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """Return ``True`` once *now* is past :attr:`expires_at`."""
        return now > self.expires_at


# --- Flag defaults ---


class FlagKind(str, enum.Enum):
    """The value kind of a generated flag."""

    STRING = "string"
    INTEGER = "integer"
    BOOL = "bool"
    STRING_LIST = "string_list"


class StringDefault(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[FlagKind.STRING] = FlagKind.STRING
    value: str = ""


class IntegerDefault(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[FlagKind.INTEGER] = FlagKind.INTEGER
    value: int = 0


class BoolDefault(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[FlagKind.BOOL] = FlagKind.BOOL
    value: bool = False


class StringListDefault(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[FlagKind.STRING_LIST] = FlagKind.STRING_LIST
    value: tuple[str, ...] = ()


FlagDefault = Annotated[
    Union[StringDefault, IntegerDefault, BoolDefault, StringListDefault],
    Field(discriminator="kind"),
]
"""A resolved flag default, discriminated by ``kind``."""
