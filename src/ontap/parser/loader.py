"""Load OpenAPI descriptions from a URL or a local file.

This module handles all I/O for fetching raw OpenAPI documents and turning
them into Python dictionaries.  JSON and YAML are both accepted; the format
is guessed from the file extension or ``Content-Type`` and falls back to
trying JSON, then YAML.

The two public functions are:

* :func:`load_document` -- Read and parse a document from a location.
* :func:`detect_version` -- Classify the ``openapi`` field as ``"3.0"`` or
  ``"3.1"``, rejecting Swagger 2.0 and anything that is not OpenAPI 3.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import httpx
import yaml

from ontap.exceptions import SpecParseError

logger = logging.getLogger(__name__)

SPEC_FETCH_TIMEOUT = 30.0


def is_url(location: str) -> bool:
    """Return ``True`` when *location* is an ``http(s)://`` URL."""
    return location.startswith(("http://", "https://"))


def load_document(location: str) -> dict[str, Any]:
    """Load an OpenAPI document from *location*.

    Args:
        location: An ``http(s)://`` URL or a filesystem path (``~`` is
            expanded).

    Returns:
        The parsed document as a dictionary.

    Raises:
        SpecParseError: If the location cannot be read or its content is
            neither a JSON nor a YAML mapping.
    """
    if is_url(location):
        return _load_from_url(location)
    return _load_from_file(location)


def _load_from_url(url: str) -> dict[str, Any]:
    try:
        response = httpx.get(url, timeout=SPEC_FETCH_TIMEOUT, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise SpecParseError(
            f"HTTP {exc.response.status_code} fetching spec from {url}"
        ) from exc
    except httpx.RequestError as exc:
        raise SpecParseError(f"Failed to fetch spec from {url}: {exc}") from exc

    content_type = response.headers.get("content-type", "")
    hint = ""
    if "json" in content_type:
        hint = "json"
    elif "yaml" in content_type or "yml" in content_type:
        hint = "yaml"
    return _parse_content(response.text, hint=hint, source=url)


def _load_from_file(path: str) -> dict[str, Any]:
    file_path = Path(path).expanduser()
    if not file_path.is_file():
        raise SpecParseError(f"Spec file not found: {path}")

    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SpecParseError(f"Failed to read spec file {path}: {exc}") from exc

    if not content.strip():
        raise SpecParseError(f"Spec file is empty: {path}")

    suffix = file_path.suffix.lower()
    hint = ""
    if suffix == ".json":
        hint = "json"
    elif suffix in (".yaml", ".yml"):
        hint = "yaml"
    return _parse_content(content, hint=hint, source=path)


def _parse_content(content: str, hint: str = "", source: str = "") -> dict[str, Any]:
    """Parse *content* as JSON or YAML.

    JSON is tried first unless the hint says YAML; an explicit JSON hint does
    not fall back to YAML.

    Args:
        content: The raw document text.
        hint: Optional format hint (``"json"`` or ``"yaml"``).
        source: Where the content came from, for error messages.

    Returns:
        The parsed mapping.

    Raises:
        SpecParseError: If the content cannot be parsed or is not a mapping.
    """
    if hint != "yaml":
        try:
            result = json.loads(content)
        except json.JSONDecodeError as exc:
            if hint == "json":
                raise SpecParseError(f"Invalid JSON in {source}: {exc}") from exc
        else:
            return _require_mapping(result, source)

    try:
        result = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise SpecParseError(f"Failed to parse {source} as JSON or YAML: {exc}") from exc
    return _require_mapping(result, source)


def _require_mapping(result: Any, source: str) -> dict[str, Any]:
    if not isinstance(result, dict):
        kind = type(result).__name__ if result is not None else "empty document"
        raise SpecParseError(f"Spec {source} must be a JSON/YAML object (got {kind})")
    return result


def detect_version(document: dict[str, Any]) -> str:
    """Return the OpenAPI major.minor version of *document*.

    ``3.1.x`` maps to ``"3.1"`` and ``3.0.x`` to ``"3.0"``.  Any other
    ``3.x`` version is parsed as 3.0 after logging a warning.

    Args:
        document: The parsed document.

    Returns:
        ``"3.0"`` or ``"3.1"``.

    Raises:
        SpecParseError: For Swagger 2.0, a missing ``openapi`` field, or a
            non-3 version.
    """
    if "swagger" in document:
        raise SpecParseError(
            f"Swagger {document['swagger']} is not supported. "
            "Only OpenAPI 3.0.x and 3.1.x are supported."
        )

    version = document.get("openapi")
    if version is None:
        raise SpecParseError("Missing 'openapi' field. Is this an OpenAPI 3.x document?")

    version_str = str(version)
    if version_str.startswith("3.1"):
        return "3.1"
    if version_str.startswith("3.0"):
        return "3.0"
    if version_str.startswith("3"):
        logger.warning("Unknown OpenAPI 3.x version %s, parsing as 3.0", version_str)
        return "3.0"

    raise SpecParseError(
        f"Unsupported OpenAPI version: {version_str}. "
        "Only OpenAPI 3.0.x and 3.1.x are supported."
    )
