"""OpenAPI parsing -- load documents, resolve ``$ref`` pointers, extract endpoints.

Typical usage::

    from ontap.parser import detect_version, extract_endpoints, load_document, resolve_refs

    raw = load_document("petstore.yaml")
    version = detect_version(raw)
    endpoints = extract_endpoints(resolve_refs(raw))

Sub-modules:

* :mod:`~ontap.parser.loader` -- URL / file I/O, format detection and
  OpenAPI version detection.
* :mod:`~ontap.parser.resolver` -- internal ``$ref`` inlining with cycle
  protection.
* :mod:`~ontap.parser.schema` -- schema object translation.
* :mod:`~ontap.parser.extractor` -- one :class:`~ontap.models.Endpoint` per
  path and method.
"""

from ontap.parser.extractor import extract_endpoints
from ontap.parser.loader import detect_version, load_document
from ontap.parser.resolver import resolve_refs
from ontap.parser.schema import translate_schema

__all__ = [
    "detect_version",
    "extract_endpoints",
    "load_document",
    "resolve_refs",
    "translate_schema",
]
