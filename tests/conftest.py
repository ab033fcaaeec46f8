"""Shared test fixtures for ontap.

Provides reusable fixtures for loading spec fixtures, creating isolated
config environments, building a :class:`~ontap.context.RuntimeContext`
backed by an :class:`httpx.MockTransport`, and running CLI commands.
These fixtures are automatically discovered by pytest and available to
all test modules without explicit imports.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest
import yaml

from ontap.cache.spec_cache import SpecCache, SpecProvider
from ontap.context import RuntimeContext
from ontap.models import APIConfig, Config
from ontap.output import OutputManager


FIXTURES_DIR = Path(__file__).parent / "fixtures"
PETSTORE_30 = FIXTURES_DIR / "petstore_3.0.json"
PETSTORE_31 = FIXTURES_DIR / "petstore_3.1.yaml"
BASE_URL = "https://api.example.com"


# ---------------------------------------------------------------------------
# Logger state
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _restore_ontap_logger() -> None:
    """Put the ``ontap`` logger level back after every test.

    ``--verbose`` and the root callback both set the level on the package
    logger, which would otherwise leak from one test into the next.
    """
    package_logger = logging.getLogger("ontap")
    level = package_logger.level
    yield
    package_logger.setLevel(level)


# ---------------------------------------------------------------------------
# Raw spec fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def petstore_30_raw() -> dict[str, Any]:
    """Load raw petstore 3.0 spec dict."""
    with open(PETSTORE_30) as f:
        return json.load(f)


@pytest.fixture
def petstore_31_raw() -> dict[str, Any]:
    """Load raw petstore 3.1 spec dict."""
    with open(PETSTORE_31) as f:
        return yaml.safe_load(f)


@pytest.fixture
def petstore_30_resolved(petstore_30_raw: dict[str, Any]) -> dict[str, Any]:
    from ontap.parser.resolver import resolve_refs

    return resolve_refs(petstore_30_raw)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path so that tests never touch real user
    config.  Clears the ONTAP_* environment variables and changes the
    working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("NO_COLOR", "1")

    for var in ["ONTAP_CONFIG", "ONTAP_CLEAR_CACHE"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def petstore_api() -> APIConfig:
    """An API entry pointing at the petstore 3.0 fixture."""
    return APIConfig(apispec=str(PETSTORE_30), url=BASE_URL)


@pytest.fixture
def write_config(isolated_config: Path) -> Callable[[dict[str, Any]], Path]:
    """Write a ``config.yaml`` with the given ``apis`` mapping and return its path."""

    def _write(apis: dict[str, Any]) -> Path:
        path = isolated_config / "config.yaml"
        path.write_text(yaml.safe_dump({"apis": apis}, sort_keys=False))
        return path

    return _write


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """A controllable UTC clock for the spec cache."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# HTTP mocking
# ---------------------------------------------------------------------------


class RecordingHandler:
    """MockTransport handler that records requests and answers with a canned response.

    Attributes:
        requests: Every :class:`httpx.Request` received, in order.
        status_code: Status of the canned response.
        json_body: Body of the canned response, sent as JSON unless
            ``text_body`` is set.
        text_body: Raw body text, for non-JSON responses.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.json_body: Any = [{"id": 1, "name": "Rex", "tag": "dog"}]
        self.text_body: Optional[str] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        if self.text_body is not None:
            return httpx.Response(self.status_code, text=self.text_body)
        return httpx.Response(self.status_code, json=self.json_body)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def http_handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def make_runtime(
    isolated_config: Path,
    petstore_api: APIConfig,
    http_handler: RecordingHandler,
) -> Callable[..., RuntimeContext]:
    """Factory for a :class:`RuntimeContext` wired to a MockTransport.

    By default the context holds one API, ``petstore``, and no spec cache.
    """

    def _make(
        apis: Optional[dict[str, APIConfig]] = None,
        cache: Optional[SpecCache] = None,
    ) -> RuntimeContext:
        return RuntimeContext(
            config=Config(apis=apis if apis is not None else {"petstore": petstore_api}),
            spec_provider=SpecProvider(cache),
            output=OutputManager(no_color=True),
            config_path=isolated_config / "config.yaml",
            transport=httpx.MockTransport(http_handler),
        )

    return _make


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner.

    Returns a CliRunner instance that captures stdout/stderr and
    provides a consistent interface for invoking Typer apps in tests.
    """
    from typer.testing import CliRunner

    return CliRunner()


@pytest.fixture
def petstore_30_path() -> Path:
    return PETSTORE_30


@pytest.fixture
def petstore_31_path() -> Path:
    return PETSTORE_31
