"""ontap -- turn OpenAPI 3.0/3.1 descriptions into CLI commands at runtime.

Each API listed in the configuration file becomes a top-level command group.
Its operations are grouped by their first tag and exposed as leaf commands
whose flags and positional arguments mirror the operation's parameters.

Typical workflow::

    ontap init                                # write a starter config.yaml
    ontap petstore pets getPet 42 -o yaml     # call GET /pets/{id}
    ontap refresh petstore                    # re-fetch the cached spec

Modules:
    app: Typer application and CLI entry point.
    context: The explicit runtime context threaded through the CLI.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration loading and saving.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes.
    output: Diagnostics and response formatters.
"""

__version__ = "0.3.0"
