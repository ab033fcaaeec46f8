"""Process exit codes for ontap.

The codes are grouped by who is at fault, so a wrapping script can tell a
typo on its own command line (2) from a rejected credential (3), a missing
remote resource (4), a broken upstream (5, 6) or an unusable API
description (7).  :mod:`ontap.exceptions` attaches one of these to every
error class; :func:`ontap.app.main` passes it to :func:`sys.exit`.

Example::

    $ ontap petstore pets getPet 999
    $ echo $?
    4
"""

EXIT_GENERIC_FAILURE = 1
"""Anything without a more specific code: config problems, bad ``--extract`` paths, crashes."""

EXIT_INVALID_USAGE = 2
"""The command line could not be turned into a request (same code Click uses)."""

EXIT_AUTH_FAILURE = 3
"""HTTP 401 or 403."""

EXIT_NOT_FOUND = 4
"""HTTP 404."""

EXIT_SERVER_ERROR = 5
"""HTTP 5xx."""

EXIT_CONNECTION_ERROR = 6
"""No HTTP response at all: DNS failure, refused connection or timeout."""

EXIT_SPEC_PARSE_ERROR = 7
"""The API description for the invoked API could not be read or parsed."""

EXIT_INTERRUPTED = 130
"""Ctrl-C (128 + SIGINT)."""
