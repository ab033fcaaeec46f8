"""Command generator -- compile endpoints into a Typer command tree.

Typical usage::

    from ontap.generator import build_api_app, compile_api

    node = compile_api("petstore", endpoints)
    root_app.add_typer(build_api_app(node, runtime))

Sub-modules:

* :mod:`~ontap.generator.param_mapper` -- parameter to flag / argument
  mapping, flag kinds and tagged defaults.
* :mod:`~ontap.generator.command_tree` -- grouping, naming, the
  :class:`~ontap.generator.command_tree.CommandNode` tree and its Typer
  rendering.
"""

from ontap.generator.command_tree import CommandNode, build_api_app, command_name, compile_api

__all__ = ["CommandNode", "build_api_app", "command_name", "compile_api"]
