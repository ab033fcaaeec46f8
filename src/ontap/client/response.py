"""Response decoding, dot-path extraction and status mapping.

After :class:`~ontap.client.sync_client.SyncClient` returns a
:class:`~ontap.client.sync_client.ResponseEnvelope`, the leaf command runs
the body through these helpers before handing it to a formatter:

* :func:`decode_body` -- JSON if the body parses, the raw text otherwise.
* :func:`extract_fields` -- ``--extract``: several dot paths, partial
  results allowed.
* :func:`filter_data` -- ``--filter``: one dot path, a miss is an error.
* :func:`raise_for_status` -- maps a non-2xx status to an exception.

Dot paths are deliberately minimal: ``a.b.c`` descends through mappings by
key, and a ``[]`` step applied to a list yields the whole list.  There are
no wildcards, predicates or numeric indexes.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Optional

from ontap.exceptions import (
    AuthError,
    NotFoundError,
    OntapError,
    PathNotFoundError,
    ServerError,
)

if TYPE_CHECKING:
    from ontap.client.sync_client import ResponseEnvelope

logger = logging.getLogger(__name__)

LIST_TOKEN = "[]"


def decode_body(envelope: ResponseEnvelope) -> Any:
    """Decode the response body.

    Returns:
        The parsed JSON value, the body text when it is not JSON, or
        ``None`` when the body is empty.
    """
    if not envelope.body:
        return None
    text = envelope.body.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        logger.debug("Response body is not JSON; using raw text")
        return text


def lookup_path(data: Any, path: str) -> Any:
    """Follow the dot path *path* through *data*.

    Raises:
        PathNotFoundError: If a step cannot be followed.

    Example::

        >>> lookup_path({"a": {"b": 1}}, "a.b")
        1
        >>> lookup_path({"items": [1, 2]}, "items.[]")
        [1, 2]
    """
    current = data
    for step in path.split("."):
        if isinstance(current, dict):
            if step not in current:
                raise PathNotFoundError(path, step, "no such key")
            current = current[step]
        elif isinstance(current, list) and step == LIST_TOKEN:
            return current
        else:
            raise PathNotFoundError(path, step, f"cannot descend into {_kind(current)}")
    return current


def extract_fields(data: Any, fields: list[str]) -> dict[str, Any]:
    """Resolve each of *fields* against *data*.

    Fields that cannot be resolved are logged and left out, so the result
    may be empty.
    """
    result: dict[str, Any] = {}
    for field in fields:
        try:
            result[field] = lookup_path(data, field)
        except PathNotFoundError as exc:
            logger.warning("Cannot extract %s: %s", field, exc)
    return result


def filter_data(data: Any, path: str) -> Any:
    """Return the value at *path*.

    Raises:
        PathNotFoundError: If the path cannot be followed.
    """
    return lookup_path(data, path)


def raise_for_status(envelope: ResponseEnvelope) -> None:
    """Raise the exception matching a non-2xx status.

    401/403 map to :class:`AuthError`, 404 to :class:`NotFoundError`, 5xx
    to :class:`ServerError` and any other non-2xx to :class:`OntapError`.
    """
    status = envelope.status_code
    if 200 <= status < 300:
        return
    message = f"HTTP {status} {envelope.reason}".rstrip()
    detail = _error_detail(envelope)
    if detail:
        message = f"{message}: {detail}"

    if status in (401, 403):
        raise AuthError(message)
    if status == 404:
        raise NotFoundError(message)
    if status >= 500:
        raise ServerError(message)
    raise OntapError(message)


def _error_detail(envelope: ResponseEnvelope) -> Optional[str]:
    data = decode_body(envelope)
    if isinstance(data, dict):
        for key in ("message", "error", "detail"):
            if isinstance(data.get(key), str):
                return data[key]
        return None
    if isinstance(data, str):
        return data[:200]
    return None


def _kind(value: Any) -> str:
    if isinstance(value, list):
        return "a list"
    if value is None:
        return "null"
    return f"a {type(value).__name__}"
