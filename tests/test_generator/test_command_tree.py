"""Tests for compiling endpoints into a command tree and rendering it with Typer."""

from __future__ import annotations

from typing import Any

import pytest
from typer.testing import CliRunner

from ontap.generator.command_tree import (
    NodeKind,
    build_api_app,
    command_name,
    compile_api,
    compile_endpoint,
    tag_descriptions,
    usage_for,
)
from ontap.generator.param_mapper import ArgumentSpec
from ontap.models import Endpoint, FlagKind, HTTPMethod, Parameter, ParameterLocation, Schema
from ontap.parser.extractor import extract_endpoints


def _endpoint(
    path: str = "/pets",
    method: HTTPMethod = HTTPMethod.GET,
    operation_id: str = "",
    tags: list[str] | None = None,
    parameters: list[Parameter] | None = None,
    **kwargs: Any,
) -> Endpoint:
    return Endpoint(
        path=path,
        method=method,
        operation_id=operation_id,
        tags=tags or [],
        parameters=parameters or [],
        **kwargs,
    )


def _query(name: str, schema_type: str = "string", **kwargs: Any) -> Parameter:
    return Parameter(
        name=name, location=ParameterLocation.QUERY, schema=Schema(type=schema_type), **kwargs
    )


@pytest.fixture
def petstore_endpoints(petstore_30_resolved: dict[str, Any]) -> list[Endpoint]:
    return extract_endpoints(petstore_30_resolved)


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


class TestCommandName:
    def test_operation_id_verbatim(self) -> None:
        assert command_name(_endpoint(operation_id="listPets")) == "listPets"

    @pytest.mark.parametrize(
        ("method", "path", "expected"),
        [
            (HTTPMethod.GET, "/pets/{id}", "get-pets-{id}"),
            (HTTPMethod.POST, "/store/order", "post-store-order"),
            (HTTPMethod.DELETE, "/", "delete"),
            (HTTPMethod.PATCH, "/a/b/", "patch-a-b"),
        ],
    )
    def test_derived_from_method_and_path(
        self, method: HTTPMethod, path: str, expected: str
    ) -> None:
        assert command_name(_endpoint(path=path, method=method)) == expected

    def test_usage(self) -> None:
        args = [
            ArgumentSpec(name="ownerId", identifier="owner_id"),
            ArgumentSpec(name="petId", identifier="pet_id"),
        ]
        assert usage_for("getOwnerPet", args) == "getOwnerPet [ownerId petId]"
        assert usage_for("listPets", []) == "listPets"


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


class TestCompileApi:
    def test_three_levels(self, petstore_endpoints: list[Endpoint]) -> None:
        api = compile_api("petstore", petstore_endpoints)
        assert api.kind == NodeKind.API
        assert api.name == "petstore"
        assert all(tag.kind == NodeKind.TAG for tag in api.children)
        assert all(
            leaf.kind == NodeKind.ENDPOINT for tag in api.children for leaf in tag.children
        )

    def test_tags_in_first_seen_order(self, petstore_endpoints: list[Endpoint]) -> None:
        api = compile_api("petstore", petstore_endpoints)
        assert [tag.name for tag in api.children] == ["pets", "owners", "default"]

    def test_first_tag_wins(self, petstore_endpoints: list[Endpoint]) -> None:
        api = compile_api("petstore", petstore_endpoints)
        assert api.child("admin") is None
        pets = api.child("pets")
        assert pets is not None
        assert [leaf.name for leaf in pets.children] == ["listPets", "createPet", "getPet"]

    def test_untagged_goes_to_default(self, petstore_endpoints: list[Endpoint]) -> None:
        default = compile_api("petstore", petstore_endpoints).child("default")
        assert default is not None
        assert [leaf.name for leaf in default.children] == ["get-store-inventory"]

    def test_empty_first_tag_goes_to_default(self) -> None:
        api = compile_api("x", [_endpoint(operation_id="a", tags=[""])])
        assert [tag.name for tag in api.children] == ["default"]

    def test_deprecated_omitted(self, petstore_endpoints: list[Endpoint]) -> None:
        api = compile_api("petstore", petstore_endpoints)
        names = {leaf.name for tag in api.children for leaf in tag.children}
        assert "deletePet" not in names

    def test_every_live_endpoint_appears_once(self, petstore_endpoints: list[Endpoint]) -> None:
        api = compile_api("petstore", petstore_endpoints)
        leaves = [leaf.endpoint for tag in api.children for leaf in tag.children]
        live = [e for e in petstore_endpoints if not e.deprecated]
        assert sorted((e.method, e.path) for e in leaves) == sorted(
            (e.method, e.path) for e in live
        )

    def test_compilation_is_repeatable(self, petstore_endpoints: list[Endpoint]) -> None:
        assert compile_api("petstore", petstore_endpoints) == compile_api(
            "petstore", petstore_endpoints
        )

    def test_duplicate_name_in_tag_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        first = _endpoint("/a", operation_id="dup", tags=["t"])
        second = _endpoint("/b", operation_id="dup", tags=["t"])
        tag = compile_api("x", [first, second]).child("t")
        assert tag is not None
        assert len(tag.children) == 1
        assert tag.children[0].endpoint == first
        assert "command 'dup' already exists under 't'" in caplog.text

    def test_same_name_in_different_tags_allowed(self) -> None:
        api = compile_api(
            "x",
            [
                _endpoint("/a", operation_id="list", tags=["one"]),
                _endpoint("/b", operation_id="list", tags=["two"]),
            ],
        )
        assert [tag.name for tag in api.children] == ["one", "two"]

    def test_help_text(self, petstore_30_resolved: dict[str, Any]) -> None:
        api = compile_api(
            "petstore",
            extract_endpoints(petstore_30_resolved),
            tag_help=tag_descriptions(petstore_30_resolved),
            help="Petstore (petstore)",
        )
        assert api.help == "Petstore (petstore)"
        assert api.child("pets").help == "Everything about your pets"  # type: ignore[union-attr]
        default = api.child("default")
        assert default is not None
        assert default.help == "Operations tagged 'default'."

    def test_default_api_help(self) -> None:
        assert compile_api("x", []).help == "Commands for the x API."


class TestTagDescriptions:
    def test_reads_top_level_tags(self, petstore_30_raw: dict[str, Any]) -> None:
        assert tag_descriptions(petstore_30_raw) == {
            "pets": "Everything about your pets",
            "owners": "Pet owners",
        }

    def test_malformed_tags(self) -> None:
        assert tag_descriptions({"tags": "pets"}) == {}
        assert tag_descriptions({"tags": [{"name": "a"}, "b"]}) == {}


# ---------------------------------------------------------------------------
# Leaves
# ---------------------------------------------------------------------------


class TestCompileEndpoint:
    def test_path_params_become_arguments(self, petstore_endpoints: list[Endpoint]) -> None:
        endpoint = next(e for e in petstore_endpoints if e.operation_id == "getOwnerPet")
        leaf = compile_endpoint(endpoint)
        assert [a.name for a in leaf.arguments] == ["ownerId", "petId"]
        assert leaf.usage == "getOwnerPet [ownerId petId]"
        assert [(f.name, f.location) for f in leaf.flags] == [
            ("session", ParameterLocation.COOKIE),
            ("include", ParameterLocation.QUERY),
        ]

    def test_flag_kinds(self, petstore_endpoints: list[Endpoint]) -> None:
        leaf = compile_endpoint(next(e for e in petstore_endpoints if e.operation_id == "listPets"))
        kinds = {f.name: f.kind for f in leaf.flags}
        assert kinds == {
            "limit": FlagKind.INTEGER,
            "status": FlagKind.STRING,
            "tags": FlagKind.STRING_LIST,
            "X-Request-ID": FlagKind.STRING,
        }

    def test_help_ends_with_method_and_path(self) -> None:
        leaf = compile_endpoint(_endpoint(summary="List", description="All of them."))
        assert leaf.help.splitlines()[0] == "List"
        assert leaf.help.splitlines()[-1] == "GET /pets"
        assert "All of them." in leaf.help

    def test_help_from_description_only(self) -> None:
        leaf = compile_endpoint(_endpoint(description="First line.\nSecond line."))
        assert leaf.help == "First line.\n\nGET /pets"

    def test_duplicate_parameter_first_wins(self, caplog: pytest.LogCaptureFixture) -> None:
        endpoint = _endpoint(
            parameters=[
                _query("limit", "integer", description="first"),
                _query("limit", "string", description="second"),
            ]
        )
        (flag,) = compile_endpoint(endpoint).flags
        assert flag.kind == FlagKind.INTEGER
        assert flag.help == "first"
        assert "ignoring duplicate query parameter 'limit'" in caplog.text

    def test_same_name_different_location_keeps_first_flag(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        endpoint = _endpoint(
            parameters=[
                _query("token"),
                Parameter(name="token", location=ParameterLocation.HEADER),
            ]
        )
        (flag,) = compile_endpoint(endpoint).flags
        assert flag.location == ParameterLocation.QUERY
        assert "flag --token is already taken" in caplog.text

    @pytest.mark.parametrize("reserved", ["output", "data", "dry-run", "help", "header"])
    def test_reserved_names_skipped(
        self, reserved: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        leaf = compile_endpoint(_endpoint(parameters=[_query(reserved), _query("keep")]))
        assert [f.name for f in leaf.flags] == ["keep"]
        assert f"flag --{reserved} is already taken" in caplog.text

    def test_negated_bool_collision(self, caplog: pytest.LogCaptureFixture) -> None:
        endpoint = _endpoint(
            parameters=[
                _query("no-cache"),
                Parameter(
                    name="cache",
                    location=ParameterLocation.QUERY,
                    schema=Schema(type="boolean", default=True),
                ),
            ]
        )
        assert [f.name for f in compile_endpoint(endpoint).flags] == ["no-cache"]
        assert "flag --no-cache is already taken" in caplog.text

    def test_required_bool_reserves_negated_name(self, caplog: pytest.LogCaptureFixture) -> None:
        endpoint = _endpoint(
            parameters=[
                Parameter(
                    name="active",
                    location=ParameterLocation.QUERY,
                    required=True,
                    schema=Schema(type="boolean"),
                ),
                _query("no-active"),
            ]
        )
        assert [f.name for f in compile_endpoint(endpoint).flags] == ["active"]
        assert "flag --no-active is already taken" in caplog.text

    def test_unusable_flag_name_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        leaf = compile_endpoint(_endpoint(parameters=[_query("a b"), _query("ok")]))
        assert [f.name for f in leaf.flags] == ["ok"]
        assert "skipping flag" in caplog.text

    def test_identifiers_unique_across_arguments_and_flags(self) -> None:
        endpoint = _endpoint(
            "/pets/{petId}",
            parameters=[
                Parameter(name="petId", location=ParameterLocation.PATH, required=True),
                _query("pet_id"),
            ],
        )
        leaf = compile_endpoint(endpoint)
        assert leaf.arguments[0].identifier == "pet_id"
        assert leaf.flags[0].identifier == "pet_id_2"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestBuildApiApp:
    def test_groups_and_commands_registered(
        self, petstore_endpoints: list[Endpoint], make_runtime
    ) -> None:
        app = build_api_app(compile_api("petstore", petstore_endpoints), make_runtime())
        result = CliRunner().invoke(app, ["pets", "--help"])
        assert result.exit_code == 0
        for name in ("listPets", "createPet", "getPet"):
            assert name in result.output

    def test_leaf_help_shows_flags(
        self, petstore_endpoints: list[Endpoint], make_runtime
    ) -> None:
        app = build_api_app(compile_api("petstore", petstore_endpoints), make_runtime())
        result = CliRunner().invoke(app, ["owners", "getOwnerPet", "--help"])
        assert result.exit_code == 0
        for flag in ("--session", "--include", "--data", "--dry-run", "--header"):
            assert flag in result.output
        assert "[REQUIRED]" in result.output
        assert "Usage: getOwnerPet [ownerId petId]" in result.output

    def test_bool_flag_with_true_default_is_negatable(self, make_runtime) -> None:
        endpoint = _endpoint(
            operation_id="list",
            tags=["t"],
            parameters=[
                Parameter(
                    name="active",
                    location=ParameterLocation.QUERY,
                    schema=Schema(type="boolean", default=True),
                )
            ],
        )
        app = build_api_app(compile_api("x", [endpoint]), make_runtime())
        result = CliRunner().invoke(app, ["t", "list", "--help"])
        assert "--no-active" in result.output

    def test_leaf_receives_its_own_context(self, make_runtime, http_handler) -> None:
        endpoint = _endpoint(
            operation_id="list",
            tags=["t"],
            parameters=[_query("ctx"), _query("page", "integer")],
        )
        app = build_api_app(compile_api("petstore", [endpoint]), make_runtime())
        result = CliRunner().invoke(app, ["t", "list", "--ctx", "v"])
        assert result.exit_code == 0, result.output
        params = http_handler.last.url.params
        assert params["ctx"] == "v"
        # An unset flag without a declared default stays out of the request.
        assert "page" not in params

    def test_zero_value_given_explicitly_is_sent(self, make_runtime, http_handler) -> None:
        endpoint = _endpoint(
            operation_id="list", tags=["t"], parameters=[_query("page", "integer")]
        )
        app = build_api_app(compile_api("petstore", [endpoint]), make_runtime())
        result = CliRunner().invoke(app, ["t", "list", "--page", "0"])
        assert result.exit_code == 0, result.output
        assert http_handler.last.url.params["page"] == "0"

    def test_unreadable_default_not_sent(self, make_runtime, http_handler) -> None:
        endpoint = _endpoint(
            operation_id="list",
            tags=["t"],
            parameters=[
                Parameter(
                    name="limit",
                    location=ParameterLocation.QUERY,
                    schema=Schema(type="integer", default="abc"),
                )
            ],
        )
        app = build_api_app(compile_api("petstore", [endpoint]), make_runtime())
        result = CliRunner().invoke(app, ["t", "list"])
        assert result.exit_code == 0, result.output
        assert "limit" not in http_handler.last.url.params
