"""The runtime context handed to tree building and to every command.

A single :class:`RuntimeContext` is created by :func:`ontap.app.main` (or by
a test) and threaded through explicitly: tree building receives it as an
argument and Click carries it as ``ctx.obj``.  Nothing in ontap reads
configuration, the spec cache or the output manager from module globals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import httpx

from ontap.cache.spec_cache import SpecProvider
from ontap.models import Config
from ontap.output import OutputManager


@dataclass
class RuntimeContext:
    """Everything a command needs at run time.

    Attributes:
        config: The loaded configuration.
        spec_provider: Loads parsed descriptions through the spec cache.
        output: User-facing output (stdout data, stderr diagnostics).
        config_path: The config file in use; ``init`` writes here.
        logger: The ``ontap`` package logger.
        transport: Optional :mod:`httpx` transport for outgoing requests.
    """

    config: Config
    spec_provider: SpecProvider
    output: OutputManager
    config_path: Path
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("ontap"))
    transport: Optional[httpx.BaseTransport] = None
