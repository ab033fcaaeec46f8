"""Exception hierarchy for ontap.

All exceptions inherit from :class:`OntapError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`ontap.exit_codes`.
Helpers raise these freely; :func:`ontap.app.main` is the single place that
turns them into a user-facing message and a process exit code.

Subclass hierarchy::

    OntapError (exit 1)
    +-- InvalidUsageError          (exit 2)
    |   +-- MissingRequiredFlagError
    |   +-- RequestBuildError
    |   +-- UnsupportedFormatError
    +-- AuthError                  (exit 3)
    +-- NotFoundError              (exit 4)
    +-- ServerError                (exit 5)
    +-- ConnectionError_           (exit 6)
    +-- SpecParseError             (exit 7)
    |   +-- InvalidDocumentError
    +-- ConfigError                (exit 1)
    +-- PathNotFoundError          (exit 1)
"""

from __future__ import annotations

from ontap.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_SERVER_ERROR,
    EXIT_SPEC_PARSE_ERROR,
)


class OntapError(Exception):
    """Base exception for all ontap errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`ontap.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(OntapError):
    """Raised for invalid CLI arguments."""

    exit_code = EXIT_INVALID_USAGE


class MissingRequiredFlagError(InvalidUsageError):
    """Raised when a flag generated from a required parameter was not supplied."""

    def __init__(self, flag: str):
        super().__init__(f"required flag --{flag} not set")
        self.flag = flag


class RequestBuildError(InvalidUsageError):
    """Raised when flag values cannot be turned into an HTTP request.

    Covers malformed ``--data`` JSON, ``--header`` / ``--query`` /
    ``--form`` entries without a separator, unreadable ``@file``
    references, and unresolved path placeholders.
    """


class UnsupportedFormatError(InvalidUsageError):
    """Raised when an output format name has no registered formatter."""


class AuthError(OntapError):
    """Raised when the API answers 401 or 403."""

    exit_code = EXIT_AUTH_FAILURE


class NotFoundError(OntapError):
    """Raised when the API answers 404."""

    exit_code = EXIT_NOT_FOUND


class ServerError(OntapError):
    """Raised when the API answers with a 5xx status."""

    exit_code = EXIT_SERVER_ERROR


class ConnectionError_(OntapError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class SpecParseError(OntapError):
    """Raised when an OpenAPI description cannot be loaded or fails validation."""

    exit_code = EXIT_SPEC_PARSE_ERROR


class InvalidDocumentError(SpecParseError):
    """Raised when the operation extractor is handed no document at all."""


class ConfigError(OntapError):
    """Raised for configuration problems (unreadable YAML, invalid values, unknown API)."""

    exit_code = EXIT_GENERIC_FAILURE


class PathNotFoundError(OntapError):
    """Raised when a dot-path does not resolve against response data.

    Args:
        path: The full dot-path that was requested.
        step: The path segment at which traversal stopped.
        reason: Short description of what was found instead.
    """

    exit_code = EXIT_GENERIC_FAILURE

    def __init__(self, path: str, step: str, reason: str):
        super().__init__(f"path '{path}' not found at '{step}': {reason}")
        self.path = path
        self.step = step
