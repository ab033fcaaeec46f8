"""Typer application factory and CLI entry point for ontap.

:func:`build_app` assembles the root :class:`typer.Typer` application: the
global options, the built-in ``init``, ``refresh`` and ``version`` commands,
and one command group per API in the configuration file.

:func:`main` is the console-script entry point declared in
``pyproject.toml``.  It pre-scans ``argv`` for the options that must take
effect before the command tree exists (``--config``, ``--verbose``,
``--log-level``), sets up logging, builds the
:class:`~ontap.context.RuntimeContext`, and invokes the app with that
context as Click's ``obj``.  It is also the one place where
:class:`~ontap.exceptions.OntapError` is turned into a message and an exit
code.  Unexpected exceptions are written to a crash log under the data
directory.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

import httpx
import typer
from rich.logging import RichHandler

from ontap import __version__
from ontap.cache.spec_cache import SpecCache, SpecProvider
from ontap.config import (
    clear_cache_requested,
    default_config,
    default_config_path,
    get_api_config,
    get_cache_dir,
    get_data_dir,
    load_config,
    resolve_config_path,
    save_config,
)
from ontap.context import RuntimeContext
from ontap.exceptions import ConfigError, OntapError, SpecParseError
from ontap.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INTERRUPTED
from ontap.generator.command_tree import build_api_app, compile_api, tag_descriptions
from ontap.models import Config
from ontap.output import OutputManager
from ontap.parser.extractor import extract_endpoints

logger = logging.getLogger(__name__)

BUILTIN_COMMANDS = frozenset({"init", "refresh", "version"})

LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


# ------------------------------------------------------------------ #
# Logging
# ------------------------------------------------------------------ #


def configure_logging(
    level: str = "info",
    verbose: bool = False,
    output: Optional[OutputManager] = None,
) -> logging.Logger:
    """Attach a stderr :class:`~rich.logging.RichHandler` to the ``ontap`` logger.

    Safe to call more than once; the handler is installed only the first
    time and later calls just adjust the level.

    Args:
        level: One of ``debug``, ``info``, ``warn``, ``error``.  Unknown
            values fall back to ``info``.
        verbose: Force ``debug``.
        output: Supplies the stderr console the handler writes to.

    Returns:
        The ``ontap`` logger.
    """
    package_logger = logging.getLogger("ontap")
    if not any(isinstance(h, RichHandler) for h in package_logger.handlers):
        handler = RichHandler(
            console=output.stderr_console if output is not None else None,
            show_time=False,
            show_path=False,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        package_logger.addHandler(handler)

    package_logger.setLevel(logging.DEBUG if verbose else LOG_LEVELS.get(level, logging.INFO))
    return package_logger


# ------------------------------------------------------------------ #
# Runtime context
# ------------------------------------------------------------------ #


def create_runtime(
    config_flag: Optional[str],
    output: OutputManager,
    transport: Optional[httpx.BaseTransport] = None,
) -> RuntimeContext:
    """Load the config and open the spec cache.

    An unreadable config is reported and replaced by an empty one so that
    ``ontap init --force`` still works.  ``ONTAP_CLEAR_CACHE=true`` empties
    the spec cache here, before any spec is loaded.
    """
    config_path = resolve_config_path(config_flag)
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        output.warning(str(exc))
        config = Config()

    try:
        cache: Optional[SpecCache] = SpecCache(get_cache_dir())
    except OSError as exc:
        logger.warning("Spec cache unavailable, loading specs directly: %s", exc)
        cache = None
    provider = SpecProvider(cache)

    if clear_cache_requested():
        provider.clear()
        logger.info("Spec cache cleared")

    return RuntimeContext(
        config=config,
        spec_provider=provider,
        output=output,
        config_path=config_path,
        transport=transport,
    )


# ------------------------------------------------------------------ #
# Root callback and built-ins
# ------------------------------------------------------------------ #


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"ontap {__version__}")
        raise typer.Exit()


def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Config file (default: $ONTAP_CONFIG or the XDG config dir)."
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output format: json, yaml, csv, text, table."
    ),
    save: Optional[str] = typer.Option(None, "--save", help="Write output to a file."),
    extract: Optional[list[str]] = typer.Option(
        None, "--extract", help="Dot-path field(s) to extract. Repeatable or comma-separated."
    ),
    filter: Optional[str] = typer.Option(
        None, "--filter", help="Dot-path to select from the response."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Build requests but do not send them."
    ),
    log_level: str = typer.Option(
        "info", "--log-level", "-l", help="Log level: debug, info, warn, error."
    ),
) -> None:
    """Root callback executed before every sub-command.

    ``--config`` has already been applied by :func:`main` by the time this
    runs.  The request-related options are read back by leaf commands from
    the root context; a leaf flag of the same name takes precedence.
    """
    if log_level not in LOG_LEVELS:
        raise typer.BadParameter(
            f"must be one of {', '.join(LOG_LEVELS)}", param_hint="--log-level"
        )
    runtime: Optional[RuntimeContext] = ctx.obj
    configure_logging(log_level, verbose, runtime.output if runtime else None)


def init_command(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config."),
    global_: bool = typer.Option(
        False,
        "--global",
        "-g",
        help="Write to the per-user config location, ignoring --config and $ONTAP_CONFIG.",
    ),
) -> None:
    """Write a starter configuration file.

    The file goes where the next run will look for it: the ``--config``
    path, else ``$ONTAP_CONFIG``, else the per-user location.  ``--global``
    always writes the per-user location.
    """
    runtime: RuntimeContext = ctx.obj
    path = default_config_path() if global_ else runtime.config_path
    if path.exists() and not force:
        raise ConfigError(f"Config already exists at {path} (use --force to overwrite)")
    save_config(default_config(), path)
    runtime.output.success(f"Wrote starter config to {path}")


def refresh_command(
    ctx: typer.Context,
    api_name: Optional[str] = typer.Argument(
        None, metavar="API", help="API to refresh (default: all).", show_default=False
    ),
) -> None:
    """Re-fetch and re-cache API specs, ignoring their TTL."""
    runtime: RuntimeContext = ctx.obj
    if api_name is not None:
        names = [api_name]
        get_api_config(runtime.config, api_name)
    else:
        names = list(runtime.config.apis)

    failed: list[str] = []
    for name in names:
        api = runtime.config.apis[name]
        try:
            runtime.spec_provider.refresh_spec(api.apispec, api.ttl)
        except OntapError as exc:
            if api_name is not None:
                raise
            logger.warning("Failed to refresh %s: %s", name, exc)
            failed.append(name)
            continue
        runtime.output.success(f"Refreshed spec for {name}")

    if failed:
        raise SpecParseError(f"Failed to refresh: {', '.join(failed)}")


def version_command(ctx: typer.Context) -> None:
    """Show the ontap version."""
    runtime: RuntimeContext = ctx.obj
    runtime.output.print_data(f"ontap {__version__}")


# ------------------------------------------------------------------ #
# App assembly
# ------------------------------------------------------------------ #


def load_api_commands(app: typer.Typer, runtime: RuntimeContext) -> None:
    """Add one command group per configured API to *app*.

    APIs are processed in config order.  An API whose spec cannot be
    loaded, or whose name is taken by a built-in command, is logged and
    skipped; the others are still registered.
    """
    for name, api in runtime.config.apis.items():
        if name in BUILTIN_COMMANDS:
            logger.warning("Skipping API '%s': the name belongs to a built-in command", name)
            continue
        try:
            parsed = runtime.spec_provider.get_spec(api.apispec, api.ttl)
            endpoints = extract_endpoints(parsed.document)
        except OntapError as exc:
            logger.warning("Skipping API '%s': %s", name, exc)
            continue

        info = parsed.document.get("info")
        title = info.get("title") if isinstance(info, dict) else None
        node = compile_api(
            name,
            endpoints,
            tag_help=tag_descriptions(parsed.document),
            help=f"{title} ({name})" if title else "",
        )
        logger.debug("Loaded %d endpoints for %s", len(endpoints), name)
        app.add_typer(build_api_app(node, runtime))


def build_app(runtime: RuntimeContext) -> typer.Typer:
    """Create the root application for *runtime*.

    Invoke it with ``app(obj=runtime)`` (or ``CliRunner().invoke(app, args,
    obj=runtime)``) so commands can reach the context.
    """
    epilog = None
    if not runtime.config.apis:
        epilog = (
            f"No APIs configured in {runtime.config_path}. "
            "Run 'ontap init' to create a starter config."
        )
    app = typer.Typer(
        name="ontap",
        help="Turn OpenAPI 3.0/3.1 descriptions into CLI commands.",
        epilog=epilog,
        no_args_is_help=True,
        add_completion=False,
        rich_markup_mode="rich",
    )
    app.callback()(main_callback)
    app.command("init")(init_command)
    app.command("refresh")(refresh_command)
    app.command("version")(version_command)
    load_api_commands(app, runtime)
    return app


# ------------------------------------------------------------------ #
# Entry point
# ------------------------------------------------------------------ #


@dataclass
class _EarlyOptions:
    config: Optional[str] = None
    verbose: bool = False
    log_level: str = "info"


def _prescan(argv: Sequence[str]) -> _EarlyOptions:
    """Pick out the options needed before the command tree is built."""
    found = _EarlyOptions()
    args = list(argv)
    for i, arg in enumerate(args):
        if arg == "--":
            break
        value = args[i + 1] if i + 1 < len(args) else None
        if arg in ("--config", "-c") and value is not None:
            found.config = value
        elif arg.startswith("--config="):
            found.config = arg.split("=", 1)[1]
        elif arg in ("--log-level", "-l") and value is not None:
            found.log_level = value
        elif arg.startswith("--log-level="):
            found.log_level = arg.split("=", 1)[1]
        elif arg in ("--verbose", "-v"):
            found.verbose = True
    return found


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )
    return str(log_path)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point invoked by the ``ontap`` console script.

    1. Install signal handlers for clean Ctrl-C behaviour.
    2. Pre-scan ``argv`` and configure logging.
    3. Load the config, open the spec cache and build the command tree.
    4. Invoke the Typer application.

    :class:`~ontap.exceptions.OntapError` exits with the error's
    ``exit_code``; any other exception writes a crash log and exits 1.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    args = list(sys.argv[1:] if argv is None else argv)
    early = _prescan(args)
    output = OutputManager(verbose=early.verbose)
    configure_logging(early.log_level, early.verbose, output)

    try:
        runtime = create_runtime(early.config, output)
        app = build_app(runtime)
        app(args=args, obj=runtime, prog_name="ontap")
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except OntapError as exc:
        output.error(str(exc))
        sys.exit(exc.exit_code)
    except Exception as exc:
        log_path = _write_crash_log(exc)
        output.error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)


if __name__ == "__main__":
    main()
