"""Configuration management with XDG paths and atomic writes.

This module handles all persistent configuration for ontap:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.ontap/`` on macOS and Windows.  See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **The config file** -- a YAML document listing the APIs ontap knows about,
  deserialised into a :class:`~ontap.models.Config`::

      apis:
        petstore:
          apispec: https://petstore3.swagger.io/api/v3/openapi.json
          url: https://petstore3.swagger.io/api/v3
          auth: Bearer ${PETSTORE_TOKEN}
          cache_ttl: 24h
          output: json
          headers:
            X-Client: ontap

* **Location precedence** -- ``--config`` flag, then ``$ONTAP_CONFIG``, then
  ``<config dir>/config.yaml``.  See :func:`resolve_config_path`.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) so a crash never leaves a half-written config.
"""

from __future__ import annotations

import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from ontap.exceptions import ConfigError
from ontap.models import APIConfig, Config

_APP_NAME = "ontap"
_CONFIG_FILENAME = "config.yaml"

CONFIG_ENV_VAR = "ONTAP_CONFIG"
CLEAR_CACHE_ENV_VAR = "ONTAP_CLEAR_CACHE"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    return Path.home().joinpath(*default_segments)


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/ontap/`` (default ``~/.config/ontap/``).
    On macOS/Windows: ``~/.ontap/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the parsed-spec cache.  Its contents can be deleted at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/ontap/`` (default ``~/.cache/ontap/``).
    On macOS/Windows: ``~/.ontap/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/ontap/`` (default ``~/.local/share/ontap/``).
    On macOS/Windows: ``~/.ontap/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_config_path() -> Path:
    """Return ``<config dir>/config.yaml``, ignoring ``--config`` and ``$ONTAP_CONFIG``."""
    return get_config_dir() / _CONFIG_FILENAME


def resolve_config_path(explicit: Optional[str] = None) -> Path:
    """Pick the config file to use.

    Args:
        explicit: The ``--config`` flag value, if any.

    Returns:
        *explicit* when given, else ``$ONTAP_CONFIG`` when set, else
        ``<config dir>/config.yaml``.  The file need not exist.
    """
    if explicit:
        return Path(explicit).expanduser()
    env_value = os.environ.get(CONFIG_ENV_VAR, "")
    if env_value:
        return Path(env_value).expanduser()
    return default_config_path()


def clear_cache_requested() -> bool:
    """Return ``True`` when ``$ONTAP_CLEAR_CACHE`` is set to ``"true"``."""
    return os.environ.get(CLEAR_CACHE_ENV_VAR, "").lower() == "true"


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file lives in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.  On failure the
    temp file is removed and the exception re-raised.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Load / save ---


def load_config(path: Path) -> Config:
    """Load and validate the YAML config file at *path*.

    Args:
        path: The config file location.

    Returns:
        The deserialised :class:`~ontap.models.Config`.  A missing file
        yields an empty config (no APIs).

    Raises:
        ConfigError: If the file exists but is not valid YAML, is not a
            mapping, or fails validation.
    """
    if not path.is_file():
        return Config()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc

    if data is None:
        return Config()
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config at {path}: top level must be a mapping")
    if data.get("apis") is None:
        data = {**data, "apis": {}}
    try:
        return Config.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: Config, path: Path) -> None:
    """Persist *config* to *path* as YAML, atomically."""
    data = config.model_dump(mode="json")
    _atomic_write(path, yaml.safe_dump(data, sort_keys=False, default_flow_style=False))


def get_api_config(config: Config, name: str) -> APIConfig:
    """Return the settings of the API called *name*.

    Raises:
        ConfigError: If no such API is configured.
    """
    try:
        return config.apis[name]
    except KeyError:
        known = ", ".join(config.apis) or "none"
        raise ConfigError(f"API '{name}' not found in config (configured: {known})") from None


def default_config() -> Config:
    """Return the starter configuration written by ``ontap init``."""
    return Config(
        apis={
            "example-api": APIConfig(
                apispec="./openapi.yaml",
                url="http://api.example.com",
                auth="user:pass",
                cache_ttl="24h",
                output="json",
                headers={"X-Client": "ontap"},
            )
        }
    )
