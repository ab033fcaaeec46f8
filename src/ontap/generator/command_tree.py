"""Compile endpoints into a command tree and render it with Typer.

This is the core of ontap.  It runs in two stages:

**Compile** (:func:`compile_api`) -- pure data, no Typer involved.

1. Drop deprecated endpoints.
2. Group the rest by first tag (``"default"`` when there is none), tags in
   first-seen order.
3. Name every endpoint (:func:`command_name`).  A second endpoint with the
   same name under the same tag is skipped with a warning.
4. Split parameters into positional arguments (path) and flags (query,
   header, cookie) via :mod:`ontap.generator.param_mapper`.  Duplicate
   ``(name, in)`` pairs and flags that collide with the request-shaping
   flags are skipped with a warning; first declared wins.

The result is a three-level :class:`CommandNode` tree: API, tag, endpoint.
Compiling the same endpoints twice yields equal trees.

**Render** (:func:`build_api_app`) -- turns the tree into nested
:class:`typer.Typer` apps.  Each leaf is a dynamically generated function
whose signature Typer can inspect; when invoked it hands its values to
:func:`run_endpoint`, which builds the request, sends it (unless
``--dry-run``) and writes the formatted response.
"""

from __future__ import annotations

import enum
import logging
import re
import textwrap
from typing import Any, Callable, Optional, Sequence

import typer
from pydantic import BaseModel, ConfigDict
from rich.markup import escape

from ontap.client.request import BoundParameter, RequestInputs, build_request
from ontap.client.response import decode_body, extract_fields, filter_data, raise_for_status
from ontap.client.sync_client import SyncClient
from ontap.config import get_api_config
from ontap.context import RuntimeContext
from ontap.exceptions import MissingRequiredFlagError
from ontap.generator.param_mapper import (
    RESERVED_FLAGS,
    RESERVED_IDENTIFIERS,
    ArgumentSpec,
    FlagMappingError,
    FlagSpec,
    map_argument,
    map_flag,
)
from ontap.models import Endpoint, FlagKind, ParameterLocation
from ontap.output import get_formatter, write_output

logger = logging.getLogger(__name__)

DEFAULT_TAG = "default"


# ---------------------------------------------------------------------------
# Command nodes
# ---------------------------------------------------------------------------


class NodeKind(str, enum.Enum):
    API = "api"
    TAG = "tag"
    ENDPOINT = "endpoint"


class CommandNode(BaseModel):
    """One entry in the compiled command tree.

    API and tag nodes only carry ``children``.  Endpoint nodes (leaves) carry
    the endpoint, its usage string, positional arguments and flags.
    """

    model_config = ConfigDict(frozen=True)

    kind: NodeKind
    name: str
    help: str = ""
    children: tuple[CommandNode, ...] = ()
    endpoint: Optional[Endpoint] = None
    usage: str = ""
    arguments: tuple[ArgumentSpec, ...] = ()
    flags: tuple[FlagSpec, ...] = ()

    def child(self, name: str) -> Optional[CommandNode]:
        """Return the direct child called *name*, if any."""
        for node in self.children:
            if node.name == name:
                return node
        return None


# ---------------------------------------------------------------------------
# Compile
# ---------------------------------------------------------------------------


def command_name(endpoint: Endpoint) -> str:
    """Derive the command token for *endpoint*.

    The ``operationId`` is used verbatim.  Without one, the name is the
    lowercased method and the path joined by a hyphen, every ``/`` in the
    path becoming ``-`` and the hyphen from the leading slash dropped.

    Example::

        GET /pets/{id}, no operationId  ->  get-pets-{id}
    """
    if endpoint.operation_id:
        return endpoint.operation_id
    path = endpoint.path.replace("/", "-").lstrip("-")
    return f"{endpoint.method.value.lower()}-{path}".strip("-")


def usage_for(name: str, arguments: Sequence[ArgumentSpec]) -> str:
    """Render ``name [arg1 arg2]``, or just *name* without path parameters."""
    if not arguments:
        return name
    return f"{name} [{' '.join(arg.name for arg in arguments)}]"


def tag_descriptions(document: dict[str, Any]) -> dict[str, str]:
    """Map tag name to description from the document's top-level ``tags``."""
    raw = document.get("tags") or []
    if not isinstance(raw, list):
        return {}
    return {
        str(t["name"]): str(t["description"])
        for t in raw
        if isinstance(t, dict) and t.get("name") and t.get("description")
    }


def compile_api(
    api_name: str,
    endpoints: Sequence[Endpoint],
    tag_help: Optional[dict[str, str]] = None,
    help: str = "",
) -> CommandNode:
    """Compile the endpoints of one API into an API node.

    Args:
        api_name: The API's name in the config; the first command level.
        endpoints: Endpoints as returned by
            :func:`~ontap.parser.extractor.extract_endpoints`.
        tag_help: Optional tag name to help text mapping.
        help: Help text for the API command itself.

    Returns:
        The API :class:`CommandNode`.
    """
    groups: dict[str, list[Endpoint]] = {}
    for endpoint in endpoints:
        if endpoint.deprecated:
            logger.debug("Omitting deprecated %s %s", endpoint.method.value, endpoint.path)
            continue
        tag = endpoint.tags[0] if endpoint.tags and endpoint.tags[0] else DEFAULT_TAG
        groups.setdefault(tag, []).append(endpoint)

    tag_nodes: list[CommandNode] = []
    for tag, members in groups.items():
        leaves: list[CommandNode] = []
        seen: set[str] = set()
        for endpoint in members:
            leaf = compile_endpoint(endpoint)
            if leaf.name in seen:
                logger.warning(
                    "Skipping %s %s: command '%s' already exists under '%s'",
                    endpoint.method.value,
                    endpoint.path,
                    leaf.name,
                    tag,
                )
                continue
            seen.add(leaf.name)
            leaves.append(leaf)
        tag_nodes.append(
            CommandNode(
                kind=NodeKind.TAG,
                name=tag,
                help=(tag_help or {}).get(tag) or f"Operations tagged '{tag}'.",
                children=tuple(leaves),
            )
        )

    return CommandNode(
        kind=NodeKind.API,
        name=api_name,
        help=help or f"Commands for the {api_name} API.",
        children=tuple(tag_nodes),
    )


def compile_endpoint(endpoint: Endpoint) -> CommandNode:
    """Compile one endpoint into a leaf :class:`CommandNode`."""
    name = command_name(endpoint)
    identifiers: set[str] = set(RESERVED_IDENTIFIERS)
    option_names: set[str] = set(RESERVED_FLAGS)
    seen: set[tuple[str, ParameterLocation]] = set()
    arguments: list[ArgumentSpec] = []
    flags: list[FlagSpec] = []

    for param in endpoint.parameters:
        key = (param.name, param.location)
        if key in seen:
            logger.warning(
                "%s: ignoring duplicate %s parameter '%s'", name, param.location.value, param.name
            )
            continue
        seen.add(key)

        if param.location == ParameterLocation.PATH:
            argument = map_argument(param, identifiers)
            identifiers.add(argument.identifier)
            arguments.append(argument)
            continue

        try:
            flag = map_flag(param, identifiers)
        except FlagMappingError as exc:
            logger.warning("%s: skipping flag: %s", name, exc)
            continue
        clash = next((n for n in flag.option_names if n in option_names), None)
        if clash is not None:
            logger.warning(
                "%s: skipping %s parameter '%s', flag --%s is already taken",
                name,
                param.location.value,
                param.name,
                clash,
            )
            continue
        option_names.update(flag.option_names)
        identifiers.add(flag.identifier)
        flags.append(flag)

    return CommandNode(
        kind=NodeKind.ENDPOINT,
        name=name,
        help=_build_help_text(endpoint),
        endpoint=endpoint,
        usage=usage_for(name, arguments),
        arguments=tuple(arguments),
        flags=tuple(flags),
    )


def _build_help_text(endpoint: Endpoint) -> str:
    parts: list[str] = []
    if endpoint.summary:
        parts.append(endpoint.summary)
    elif endpoint.description:
        first_line = endpoint.description.split("\n", 1)[0]
        parts.append(textwrap.shorten(first_line, width=80))
    if endpoint.description and endpoint.summary:
        parts.extend(["", endpoint.description])
    if parts:
        parts.append("")
    parts.append(f"{endpoint.method.value} {endpoint.path}")
    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Render
# ---------------------------------------------------------------------------


def build_api_app(node: CommandNode, runtime: RuntimeContext) -> typer.Typer:
    """Render an API node as a :class:`typer.Typer` sub-app.

    A leaf whose command function cannot be generated is logged and left
    out; its siblings are still registered.
    """
    api_app = typer.Typer(
        name=node.name, help=escape(node.help), no_args_is_help=True, rich_markup_mode="rich"
    )
    for tag in node.children:
        tag_app = typer.Typer(name=tag.name, help=escape(tag.help), no_args_is_help=True)
        for leaf in tag.children:
            try:
                fn = _build_command_function(leaf, node.name, runtime)
            except (SyntaxError, TypeError, ValueError) as exc:
                logger.warning("Skipping command %s %s: %s", tag.name, leaf.name, exc)
                continue
            tag_app.command(
                name=leaf.name, help=escape(leaf.help), epilog=escape(f"Usage: {leaf.usage}")
            )(fn)
        api_app.add_typer(tag_app)
    return api_app


# Request-shaping flags present on every leaf: identifier -> (annotation, Option).
def _generic_options() -> list[tuple[str, Any, Any]]:
    return [
        ("data", Optional[str], typer.Option(
            None, "--data", "-d", help="Request body: JSON string, or @file."
        )),
        ("header", Optional[list[str]], typer.Option(
            None, "--header", "-H", help="Extra header as key:value. Repeatable."
        )),
        ("query", Optional[list[str]], typer.Option(
            None, "--query", "-q", help="Extra query parameter as key=value. Repeatable."
        )),
        ("form", Optional[list[str]], typer.Option(
            None, "--form", "-F", help="Form field as key=value or key=@file. Repeatable."
        )),
        ("auth", Optional[str], typer.Option(
            None, "--auth", "-a", help="Auth override: user:pass, 'Bearer <token>' or an API key."
        )),
        ("content_type", Optional[str], typer.Option(
            None, "--content-type", "-t", help="Content-Type header for the request body."
        )),
        ("output", Optional[str], typer.Option(
            None, "--output", "-o", help="Output format: json, yaml, csv, text, table."
        )),
        ("save", Optional[str], typer.Option(None, "--save", help="Write output to a file.")),
        ("extract", Optional[list[str]], typer.Option(
            None, "--extract", help="Dot-path field(s) to extract. Repeatable or comma-separated."
        )),
        ("filter", Optional[str], typer.Option(
            None, "--filter", help="Dot-path to select from the response."
        )),
        ("verbose", bool, typer.Option(False, "--verbose", "-v", help="Log request details.")),
        ("dry_run", bool, typer.Option(
            False, "--dry-run", help="Build the request but do not send it."
        )),
    ]


def _flag_annotation(flag: FlagSpec) -> Any:
    base: Any = {
        FlagKind.STRING: str,
        FlagKind.INTEGER: int,
        FlagKind.BOOL: bool,
        FlagKind.STRING_LIST: list[str],
    }[flag.kind]
    return Optional[base] if flag.required or flag.kind == FlagKind.STRING_LIST else base


def _flag_option(flag: FlagSpec) -> Any:
    decl = f"--{flag.name}/--no-{flag.name}" if flag.has_negative_form else f"--{flag.name}"

    if flag.required:
        default: Any = None
    elif flag.kind == FlagKind.STRING_LIST:
        default = list(flag.default.value) or None
    else:
        default = flag.default.value
    return typer.Option(
        default, decl, help=escape(flag.help) or None, show_default=not flag.required
    )


def _build_command_function(
    leaf: CommandNode,
    api_name: str,
    runtime: RuntimeContext,
) -> Callable[..., Any]:
    """Generate a Typer-compatible function for *leaf*.

    The function source is built as a string and compiled so that
    :mod:`inspect` (which Typer relies on) sees a real signature: the
    :class:`typer.Context`, one positional argument per path parameter,
    the parameter flags, then the request-shaping flags.  Defaults and
    annotations are injected through the namespace as ``_default_*`` /
    ``_ann_*`` names.
    """
    namespace: dict[str, Any] = {"_ann_ctx": typer.Context}
    sig_parts: list[str] = ["ctx: _ann_ctx"]
    identifiers: list[str] = []

    for idx, arg in enumerate(leaf.arguments):
        namespace[f"_ann_arg_{idx}"] = str
        namespace[f"_default_arg_{idx}"] = typer.Argument(
            ..., metavar=arg.name, help=escape(arg.help) or None, show_default=False
        )
        sig_parts.append(f"{arg.identifier}: _ann_arg_{idx} = _default_arg_{idx}")
        identifiers.append(arg.identifier)

    for idx, flag in enumerate(leaf.flags):
        namespace[f"_ann_opt_{idx}"] = _flag_annotation(flag)
        namespace[f"_default_opt_{idx}"] = _flag_option(flag)
        sig_parts.append(f"{flag.identifier}: _ann_opt_{idx} = _default_opt_{idx}")
        identifiers.append(flag.identifier)

    for ident, annotation, option in _generic_options():
        namespace[f"_ann_gen_{ident}"] = annotation
        namespace[f"_default_gen_{ident}"] = option
        sig_parts.append(f"{ident}: _ann_gen_{ident} = _default_gen_{ident}")
        identifiers.append(ident)

    func_name = f"_cmd_{_slugify(api_name)}_{_slugify(leaf.name)}"
    values = ", ".join(f"{ident!r}: {ident}" for ident in identifiers)
    source = (
        f"def {func_name}({', '.join(sig_parts)}):\n"
        f"    return _dispatch(ctx, {{{values}}})\n"
    )

    def _dispatch(ctx: typer.Context, bound: dict[str, Any]) -> None:
        run_endpoint(leaf, api_name, runtime, bound, ctx)

    namespace["_dispatch"] = _dispatch
    code = compile(source, f"<ontap:{api_name}:{leaf.name}>", "exec", dont_inherit=True)
    exec(code, namespace)  # noqa: S102 -- controlled code generation
    fn = namespace[func_name]
    fn.__doc__ = leaf.help
    return fn


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------


def _was_given(ctx: typer.Context, identifier: str) -> bool:
    # Typer may bundle its own Click, so compare the enum member by name.
    source = ctx.get_parameter_source(identifier)
    return source is not None and source.name != "DEFAULT"


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, (list, tuple)) and not value)


def bind_parameters(
    leaf: CommandNode,
    values: dict[str, Any],
    ctx: typer.Context,
) -> tuple[dict[str, str], list[BoundParameter]]:
    """Split bound command values into path values and declared parameters.

    A flag is sent when it was given on the command line or the description
    declares a default for it.

    Raises:
        MissingRequiredFlagError: If a required flag was not supplied.
    """
    path_values = {arg.name: str(values[arg.identifier]) for arg in leaf.arguments}
    parameters: list[BoundParameter] = []
    for flag in leaf.flags:
        value = values.get(flag.identifier)
        given = _was_given(ctx, flag.identifier) and not _missing(value)
        if flag.required and not given:
            raise MissingRequiredFlagError(flag.name)
        if given or (flag.declared_default and not _missing(value)):
            parameters.append(BoundParameter(name=flag.name, location=flag.location, value=value))
    return path_values, parameters


def _root_value(ctx: typer.Context, values: dict[str, Any], name: str) -> Any:
    """Prefer the leaf's value for *name* when given, else the root callback's."""
    if _was_given(ctx, name) and not _missing(values.get(name)):
        return values[name]
    return ctx.find_root().params.get(name)


def _split_fields(entries: Optional[Sequence[str]]) -> list[str]:
    return [f.strip() for entry in entries or () for f in entry.split(",") if f.strip()]


def run_endpoint(
    leaf: CommandNode,
    api_name: str,
    runtime: RuntimeContext,
    values: dict[str, Any],
    ctx: typer.Context,
) -> None:
    """Execute one leaf command.

    Builds the request, then either reports a dry run or sends it, decodes
    the body, applies ``--extract`` / ``--filter`` to successful responses
    and writes the formatted result.  A non-2xx response is written as-is
    and then raised as the matching :class:`~ontap.exceptions.OntapError`.
    """
    assert leaf.endpoint is not None
    api = get_api_config(runtime.config, api_name)

    verbose = bool(values.get("verbose")) or bool(ctx.find_root().params.get("verbose"))
    dry_run = bool(values.get("dry_run")) or bool(ctx.find_root().params.get("dry_run"))
    if verbose:
        logging.getLogger("ontap").setLevel(logging.DEBUG)

    format_name = _root_value(ctx, values, "output") or api.output or "json"
    formatter = get_formatter(format_name)
    save = _root_value(ctx, values, "save")
    fields = _split_fields(_root_value(ctx, values, "extract"))
    filter_path = _root_value(ctx, values, "filter")

    path_values, parameters = bind_parameters(leaf, values, ctx)
    descriptor = build_request(
        leaf.endpoint,
        RequestInputs(
            path_values=path_values,
            parameters=parameters,
            data=values.get("data"),
            headers=list(values.get("header") or []),
            queries=list(values.get("query") or []),
            forms=list(values.get("form") or []),
            auth=values.get("auth"),
            content_type=values.get("content_type"),
        ),
        api,
    )

    if dry_run:
        for line in descriptor.describe():
            logger.debug(line)
        runtime.output.info("Dry run completed. No request was sent.")
        return

    with SyncClient(transport=runtime.transport) as client:
        envelope = client.send(descriptor)

    data = decode_body(envelope)
    if envelope.ok:
        if fields:
            data = extract_fields(data, fields)
        if filter_path:
            data = filter_data(data, filter_path)
    if data is not None:
        write_output(formatter(data), runtime.output, save)
    raise_for_status(envelope)


def _slugify(value: str) -> str:
    result = re.sub(r"[^a-z0-9_]", "_", value.lower()).strip("_")
    return result or "cmd"
