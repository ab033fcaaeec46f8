"""Extract :class:`~ontap.models.Endpoint` records from a resolved OpenAPI document.

The single public entry point is :func:`extract_endpoints`.  It walks the
``paths`` object and, for every path item, visits the eight standard HTTP
methods in a fixed order.  Each method present yields exactly one
:class:`~ontap.models.Endpoint`, or is skipped with a logged warning that
names the path, the method and the reason.  A single malformed operation
never aborts extraction of the rest of the document.

Parameter merging follows OpenAPI: parameters declared on the path item
apply to every operation under it, and an operation-level parameter with
the same ``name`` and ``in`` replaces the path-level one.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from ontap.exceptions import InvalidDocumentError
from ontap.models import (
    Endpoint,
    HTTPMethod,
    MediaType,
    Parameter,
    ParameterLocation,
    RequestBody,
    Response,
)
from ontap.parser.schema import translate_schema

logger = logging.getLogger(__name__)


class _SkipOperation(Exception):
    """An operation cannot be converted; carries the reason."""


def extract_endpoints(document: Optional[dict[str, Any]]) -> list[Endpoint]:
    """Produce one :class:`~ontap.models.Endpoint` per operation in *document*.

    Args:
        document: A ``$ref``-resolved OpenAPI document, as returned by
            :func:`~ontap.parser.resolver.resolve_refs`.

    Returns:
        Endpoints in document path order, methods in :class:`HTTPMethod`
        order.  A document without ``paths`` yields an empty list.

    Raises:
        InvalidDocumentError: If *document* is ``None`` or not a mapping.
    """
    if document is None:
        raise InvalidDocumentError("no OpenAPI document to extract operations from")
    if not isinstance(document, dict):
        raise InvalidDocumentError(
            f"OpenAPI document must be a mapping, got {type(document).__name__}"
        )

    paths = document.get("paths") or {}
    if not isinstance(paths, dict):
        raise InvalidDocumentError("'paths' must be a mapping")

    global_security = document.get("security") or []
    endpoints: list[Endpoint] = []

    for path, path_item in paths.items():
        if not isinstance(path_item, dict):
            logger.warning("Skipping path %s: path item is not a mapping", path)
            continue

        shared_params = path_item.get("parameters") or []

        for method in HTTPMethod:
            operation = path_item.get(method.value.lower())
            if operation is None:
                continue
            try:
                endpoints.append(
                    _extract_endpoint(path, method, operation, shared_params, global_security)
                )
            except (_SkipOperation, ValidationError) as exc:
                logger.warning("Skipping %s %s: %s", method.value, path, exc)

    return endpoints


def _extract_endpoint(
    path: str,
    method: HTTPMethod,
    operation: Any,
    shared_params: list[Any],
    global_security: list[Any],
) -> Endpoint:
    if not isinstance(operation, dict):
        raise _SkipOperation("operation is not a mapping")

    merged = merge_parameters(shared_params, operation.get("parameters") or [])
    security = operation.get("security")
    if security is None:
        security = global_security

    tags = operation.get("tags") or []
    if not isinstance(tags, list):
        raise _SkipOperation("'tags' is not a list")

    return Endpoint(
        path=path,
        method=method,
        operation_id=operation.get("operationId") or "",
        summary=operation.get("summary") or "",
        description=operation.get("description") or "",
        parameters=[_extract_parameter(raw) for raw in merged],
        request_body=_extract_request_body(operation.get("requestBody")),
        responses=_extract_responses(operation.get("responses") or {}),
        tags=[str(tag) for tag in tags],
        security=security,
        deprecated=bool(operation.get("deprecated", False)),
    )


def merge_parameters(shared: list[Any], own: list[Any]) -> list[Any]:
    """Merge path-item parameters with operation parameters.

    Args:
        shared: Parameters declared on the path item.
        own: Parameters declared on the operation.

    Returns:
        The path-item parameters not overridden by an operation parameter
        with the same ``(name, in)``, followed by the operation parameters.
    """
    if not isinstance(shared, list) or not isinstance(own, list):
        raise _SkipOperation("'parameters' is not a list")

    overridden = {_param_key(p) for p in own if isinstance(p, dict)}
    kept = [p for p in shared if not (isinstance(p, dict) and _param_key(p) in overridden)]
    return kept + list(own)


def _param_key(raw: dict[str, Any]) -> tuple[Any, Any]:
    return raw.get("name"), raw.get("in")


def _extract_parameter(raw: Any) -> Parameter:
    if not isinstance(raw, dict):
        raise _SkipOperation("parameter is not a mapping")

    name = raw.get("name")
    if not name or not isinstance(name, str):
        raise _SkipOperation("parameter without a name")

    location_str = raw.get("in")
    try:
        location = ParameterLocation(location_str)
    except ValueError:
        raise _SkipOperation(
            f"parameter {name!r} has unsupported location {location_str!r}"
        ) from None

    schema = translate_schema(raw.get("schema")) if "schema" in raw else None

    return Parameter(
        name=name,
        location=location,
        required=location == ParameterLocation.PATH or bool(raw.get("required", False)),
        deprecated=bool(raw.get("deprecated", False)),
        description=raw.get("description") or "",
        schema=schema,
    )


def _extract_content(content: Any) -> dict[str, MediaType]:
    if not isinstance(content, dict):
        return {}
    media: dict[str, MediaType] = {}
    for media_type, entry in content.items():
        entry = entry if isinstance(entry, dict) else {}
        media[media_type] = MediaType(
            schema=translate_schema(entry["schema"]) if "schema" in entry else None,
            example=entry.get("example"),
        )
    return media


def _extract_request_body(body: Any) -> Optional[RequestBody]:
    if not isinstance(body, dict):
        return None
    return RequestBody(
        description=body.get("description") or "",
        required=bool(body.get("required", False)),
        content=_extract_content(body.get("content")),
    )


def _extract_responses(responses: Any) -> dict[str, Response]:
    if not isinstance(responses, dict):
        return {}
    result: dict[str, Response] = {}
    for status, response in responses.items():
        if not isinstance(response, dict):
            continue
        headers = response.get("headers")
        result[str(status)] = Response(
            description=response.get("description") or "",
            content=_extract_content(response.get("content")),
            headers=list(headers) if isinstance(headers, dict) else [],
        )
    return result
