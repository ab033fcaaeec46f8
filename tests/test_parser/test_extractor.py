"""Tests for endpoint extraction from resolved OpenAPI documents."""

from __future__ import annotations

from typing import Any

import pytest

from ontap.exceptions import InvalidDocumentError
from ontap.models import Endpoint, HTTPMethod, ParameterLocation
from ontap.parser.extractor import extract_endpoints, merge_parameters
from ontap.parser.resolver import resolve_refs


def _by_id(endpoints: list[Endpoint]) -> dict[str, Endpoint]:
    return {e.operation_id or f"{e.method.value} {e.path}": e for e in endpoints}


class TestExtractEndpoints:
    def test_one_endpoint_per_operation(self, petstore_30_resolved: dict[str, Any]) -> None:
        endpoints = extract_endpoints(petstore_30_resolved)
        assert [(e.method, e.path) for e in endpoints] == [
            (HTTPMethod.GET, "/pets"),
            (HTTPMethod.POST, "/pets"),
            (HTTPMethod.GET, "/pets/{petId}"),
            (HTTPMethod.DELETE, "/pets/{petId}"),
            (HTTPMethod.GET, "/owners/{ownerId}/pets/{petId}"),
            (HTTPMethod.GET, "/store/inventory"),
        ]

    def test_operation_fields(self, petstore_30_resolved: dict[str, Any]) -> None:
        list_pets = _by_id(extract_endpoints(petstore_30_resolved))["listPets"]
        assert list_pets.summary == "List all pets"
        assert list_pets.tags == ["pets"]
        assert [p.name for p in list_pets.parameters] == ["limit", "status", "tags", "X-Request-ID"]
        assert list_pets.responses["200"].headers == ["X-Total-Count"]

    def test_ref_parameter_resolved(self, petstore_30_resolved: dict[str, Any]) -> None:
        limit = _by_id(extract_endpoints(petstore_30_resolved))["listPets"].parameters[0]
        assert limit.location == ParameterLocation.QUERY
        assert limit.schema_ is not None
        assert limit.schema_.type == "integer"
        assert limit.schema_.default == 10

    def test_path_level_parameters_inherited(self, petstore_30_resolved: dict[str, Any]) -> None:
        endpoints = _by_id(extract_endpoints(petstore_30_resolved))
        for op in ("getPet", "deletePet"):
            assert [(p.name, p.location) for p in endpoints[op].parameters] == [
                ("petId", ParameterLocation.PATH)
            ]

    def test_request_body(self, petstore_30_resolved: dict[str, Any]) -> None:
        create = _by_id(extract_endpoints(petstore_30_resolved))["createPet"]
        assert create.request_body is not None
        assert create.request_body.required is True
        body_schema = create.request_body.content["application/json"].schema_
        assert body_schema is not None
        assert body_schema.required == ["name"]

    def test_security_inheritance(self, petstore_30_resolved: dict[str, Any]) -> None:
        endpoints = _by_id(extract_endpoints(petstore_30_resolved))
        assert endpoints["listPets"].security == [{"api_key": []}]
        # An explicit empty list overrides the global requirement.
        assert endpoints["createPet"].security == []

    def test_deprecated_flag(self, petstore_30_resolved: dict[str, Any]) -> None:
        endpoints = _by_id(extract_endpoints(petstore_30_resolved))
        assert endpoints["deletePet"].deprecated is True
        assert endpoints["getPet"].deprecated is False

    def test_missing_operation_id_and_tags(self, petstore_30_resolved: dict[str, Any]) -> None:
        inventory = _by_id(extract_endpoints(petstore_30_resolved))["GET /store/inventory"]
        assert inventory.operation_id == ""
        assert inventory.tags == []

    def test_path_parameter_forced_required(self, petstore_31_raw: dict[str, Any]) -> None:
        endpoints = _by_id(extract_endpoints(resolve_refs(petstore_31_raw)))
        (param,) = endpoints["GET /pets/{id}"].parameters
        assert param.location == ParameterLocation.PATH
        assert param.required is True

    def test_31_type_list(self, petstore_31_raw: dict[str, Any]) -> None:
        list_pets = _by_id(extract_endpoints(resolve_refs(petstore_31_raw)))["listPets"]
        limit = list_pets.parameters[0]
        assert limit.schema_ is not None
        assert limit.schema_.type == "integer"
        assert limit.schema_.default == 20

    def test_no_paths(self) -> None:
        assert extract_endpoints({"openapi": "3.0.0", "info": {}}) == []

    def test_none_document(self) -> None:
        with pytest.raises(InvalidDocumentError):
            extract_endpoints(None)

    def test_non_mapping_document(self) -> None:
        with pytest.raises(InvalidDocumentError, match="must be a mapping"):
            extract_endpoints(["not", "a", "document"])  # type: ignore[arg-type]

    def test_malformed_operation_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        doc = {
            "paths": {
                "/a": {
                    "get": {"operationId": "ok"},
                    "post": {"parameters": [{"name": "x", "in": "body"}]},
                    "put": "not an operation",
                },
                "/b": ["not", "a", "path item"],
            }
        }
        endpoints = extract_endpoints(doc)
        assert [e.operation_id for e in endpoints] == ["ok"]
        assert "Skipping POST /a" in caplog.text
        assert "unsupported location 'body'" in caplog.text
        assert "Skipping PUT /a" in caplog.text
        assert "Skipping path /b" in caplog.text

    def test_parameter_without_name_skips_operation(self) -> None:
        doc = {"paths": {"/a": {"get": {"parameters": [{"in": "query"}]}}}}
        assert extract_endpoints(doc) == []

    def test_non_standard_keys_ignored(self) -> None:
        doc = {
            "paths": {
                "/a": {
                    "summary": "shared",
                    "x-internal": True,
                    "servers": [],
                    "get": {"operationId": "getA"},
                }
            }
        }
        assert [e.operation_id for e in extract_endpoints(doc)] == ["getA"]


class TestMergeParameters:
    def test_operation_overrides_path_level(self) -> None:
        shared = [
            {"name": "id", "in": "path", "description": "shared"},
            {"name": "verbose", "in": "query"},
        ]
        own = [{"name": "id", "in": "path", "description": "own"}]
        merged = merge_parameters(shared, own)
        assert merged == [
            {"name": "verbose", "in": "query"},
            {"name": "id", "in": "path", "description": "own"},
        ]

    def test_same_name_different_location_kept(self) -> None:
        shared = [{"name": "id", "in": "header"}]
        own = [{"name": "id", "in": "query"}]
        assert len(merge_parameters(shared, own)) == 2
