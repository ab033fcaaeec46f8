"""Assemble one outbound HTTP request from a leaf command's bound values.

:func:`build_request` is the single entry point.  It takes the
:class:`~ontap.models.Endpoint` the command was compiled from, the values the
user supplied (:class:`RequestInputs`) and the owning
:class:`~ontap.models.APIConfig`, and returns a fully resolved
:class:`RequestDescriptor`.  Nothing here touches the network, which is what
makes ``--dry-run`` possible: the descriptor is built the same way whether
or not it is sent.

Header precedence, lowest to highest::

    client defaults < api.headers < auth < declared header flags
        < --header < --content-type
"""

from __future__ import annotations

import base64
import enum
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field

from ontap import __version__
from ontap.exceptions import RequestBuildError
from ontap.models import APIConfig, Endpoint, ParameterLocation

logger = logging.getLogger(__name__)

USER_AGENT = f"ontap/{__version__}"

_PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")
_ENV_VAR_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


class BodyKind(str, enum.Enum):
    """How the request body is encoded."""

    NONE = "none"
    JSON = "json"
    FORM = "form"


class BoundParameter(BaseModel):
    """A declared query, header or cookie parameter with the value to send."""

    model_config = ConfigDict(frozen=True)

    name: str
    location: ParameterLocation
    value: Any


class RequestInputs(BaseModel):
    """Everything the user supplied to one leaf command.

    Attributes:
        path_values: Path parameter name to the positional argument value.
        parameters: Declared query, header and cookie values to send.
        data: ``--data``: literal JSON or ``@file``.
        headers: ``--header key:value`` entries.
        queries: ``--query key=value`` entries.
        forms: ``--form key=value`` / ``key=@file`` entries.
        auth: ``--auth``, overriding the API's configured auth.
        content_type: ``--content-type``.
    """

    path_values: dict[str, str] = Field(default_factory=dict)
    parameters: list[BoundParameter] = Field(default_factory=list)
    data: Optional[str] = None
    headers: list[str] = Field(default_factory=list)
    queries: list[str] = Field(default_factory=list)
    forms: list[str] = Field(default_factory=list)
    auth: Optional[str] = None
    content_type: Optional[str] = None


class FormFile(BaseModel):
    """A file attached to a multipart form."""

    field: str
    filename: str
    content: bytes


class RequestDescriptor(BaseModel):
    """A fully resolved request, ready to send or to report in a dry run."""

    method: str
    url: str
    path: str
    query: list[tuple[str, str]] = Field(default_factory=list)
    headers: dict[str, str] = Field(default_factory=dict)
    body_kind: BodyKind = BodyKind.NONE
    json_body: Any = None
    form_fields: list[tuple[str, str]] = Field(default_factory=list)
    form_files: list[FormFile] = Field(default_factory=list)

    def describe(self) -> list[str]:
        """Human-readable lines for logs, with credentials masked."""
        lines = [f"{self.method} {self.url}"]
        for key, value in self.query:
            lines.append(f"  query  {key}={value}")
        for key, value in self.headers.items():
            shown = "***" if key.lower() in _SECRET_HEADERS else value
            lines.append(f"  header {key}: {shown}")
        if self.body_kind == BodyKind.JSON:
            lines.append(f"  body   {json.dumps(self.json_body)}")
        elif self.body_kind == BodyKind.FORM:
            for key, value in self.form_fields:
                lines.append(f"  form   {key}={value}")
            for item in self.form_files:
                lines.append(f"  form   {item.field}=@{item.filename} ({len(item.content)} bytes)")
        return lines


_SECRET_HEADERS = frozenset({"authorization", "cookie", "proxy-authorization"})


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def build_request(
    endpoint: Endpoint,
    inputs: RequestInputs,
    api: APIConfig,
) -> RequestDescriptor:
    """Resolve *endpoint* and *inputs* into a :class:`RequestDescriptor`.

    Raises:
        RequestBuildError: If a path placeholder has no value, the API has
            no base URL, or a ``--data``/``--header``/``--query``/``--form``
            value is malformed.
    """
    if not api.url:
        raise RequestBuildError("no base URL configured for this API (set 'url' in the config)")

    path = substitute_path(endpoint.path, inputs.path_values)
    headers: dict[str, str] = {"User-Agent": USER_AGENT, "Accept": "application/json"}
    for key, value in api.headers.items():
        _set_header(headers, key, value)

    auth = inputs.auth if inputs.auth is not None else api.auth
    for key, value in resolve_auth(auth, api.api_key_header).items():
        _set_header(headers, key, value)

    query: list[tuple[str, str]] = []
    cookies: list[str] = []
    for bound in inputs.parameters:
        values = _as_strings(bound.value)
        if bound.location == ParameterLocation.QUERY:
            query.extend((bound.name, v) for v in values)
        elif bound.location == ParameterLocation.HEADER:
            _set_header(headers, bound.name, ", ".join(values))
        elif bound.location == ParameterLocation.COOKIE:
            cookies.extend(f"{bound.name}={v}" for v in values)
    if cookies:
        _set_header(headers, "Cookie", "; ".join(cookies))

    query.extend(parse_query_flag(entry) for entry in inputs.queries)
    for entry in inputs.headers:
        key, value = parse_header_flag(entry)
        _set_header(headers, key, value)

    descriptor = RequestDescriptor(
        method=endpoint.method.value,
        url=api.url.rstrip("/") + path,
        path=path,
        query=query,
        headers=headers,
    )
    _attach_body(descriptor, inputs)

    if inputs.content_type:
        _set_header(descriptor.headers, "Content-Type", inputs.content_type)
    return descriptor


def _attach_body(descriptor: RequestDescriptor, inputs: RequestInputs) -> None:
    if inputs.forms:
        if inputs.data is not None:
            logger.warning("Both --form and --data given; sending form data only")
        descriptor.body_kind = BodyKind.FORM
        for entry in inputs.forms:
            key, value = _split_pair(entry, "=", "--form", "key=value or key=@file")
            if value.startswith("@"):
                file_path = Path(value[1:]).expanduser()
                descriptor.form_files.append(
                    FormFile(field=key, filename=file_path.name, content=_read_file(file_path))
                )
            else:
                descriptor.form_fields.append((key, value))
        return

    if inputs.data is not None:
        descriptor.body_kind = BodyKind.JSON
        descriptor.json_body = parse_data_flag(inputs.data)
        if not _has_header(descriptor.headers, "Content-Type"):
            descriptor.headers["Content-Type"] = "application/json"


# ---------------------------------------------------------------------------
# Path substitution
# ---------------------------------------------------------------------------


def substitute_path(template: str, values: dict[str, str]) -> str:
    """Replace every ``{name}`` in *template* with the encoded value bound to *name*.

    Example::

        >>> substitute_path("/pets/{petId}/photos", {"petId": "a b"})
        '/pets/a%20b/photos'
    """

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in values:
            raise RequestBuildError(f"no value for path parameter '{name}' in {template}")
        return quote(str(values[name]), safe="")

    return _PLACEHOLDER_RE.sub(_replace, template)


# ---------------------------------------------------------------------------
# Flag syntax
# ---------------------------------------------------------------------------


def parse_data_flag(raw: str) -> Any:
    """Parse ``--data``: literal JSON, or ``@path`` to a file holding JSON."""
    source = "--data"
    text = raw
    if raw.startswith("@"):
        file_path = Path(raw[1:]).expanduser()
        text = _read_file(file_path).decode("utf-8")
        source = str(file_path)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise RequestBuildError(f"invalid JSON in {source}: {exc}") from exc


def parse_header_flag(entry: str) -> tuple[str, str]:
    """Parse ``--header key:value``; both sides are trimmed."""
    return _split_pair(entry, ":", "--header", "key:value")


def parse_query_flag(entry: str) -> tuple[str, str]:
    """Parse ``--query key=value``."""
    return _split_pair(entry, "=", "--query", "key=value")


def _split_pair(entry: str, sep: str, flag: str, expected: str) -> tuple[str, str]:
    key, found, value = entry.partition(sep)
    key = key.strip()
    if not found or not key:
        raise RequestBuildError(f"invalid {flag} value {entry!r}, expected {expected}")
    return key, value.strip()


def _read_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise RequestBuildError(f"cannot read {path}: {exc.strerror or exc}") from exc


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def expand_env(value: str) -> str:
    """Expand ``${VAR}`` and ``$VAR`` from the environment; unknown names become ``""``."""
    return _ENV_VAR_RE.sub(
        lambda m: os.environ.get(m.group(1) or m.group(2), ""), value
    )


def resolve_auth(auth: str, api_key_header: str) -> dict[str, str]:
    """Turn an auth string into the headers that carry it.

    * ``Bearer <token>`` / ``Basic <b64>`` -- used verbatim as ``Authorization``.
    * ``user:pass`` -- HTTP basic auth.
    * anything else -- an API key sent in *api_key_header*.

    The checks run in that order, so ``Bearer a:b`` stays a bearer token.
    """
    value = expand_env(auth).strip()
    if not value:
        return {}
    if value.startswith(("Bearer ", "Basic ")):
        return {"Authorization": value}
    if ":" in value:
        token = base64.b64encode(value.encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {token}"}
    return {api_key_header: value}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _as_strings(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [_scalar(v) for v in value]
    return [_scalar(value)]


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _has_header(headers: dict[str, str], name: str) -> bool:
    return any(key.lower() == name.lower() for key in headers)


def _set_header(headers: dict[str, str], name: str, value: str) -> None:
    """Set *name*, replacing any existing header that differs only in case."""
    for key in [k for k in headers if k.lower() == name.lower()]:
        del headers[key]
    headers[name] = value
