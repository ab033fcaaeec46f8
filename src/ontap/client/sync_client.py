"""Thin synchronous HTTP adapter over :class:`httpx.Client`.

:class:`SyncClient` sends exactly one
:class:`~ontap.client.request.RequestDescriptor` per call and returns a
:class:`ResponseEnvelope` with everything the response pipeline needs.  It
does not retry, cache or interpret status codes; that is left to
:mod:`ontap.client.response`.

Dry runs never reach this module: the leaf command stops after building
the descriptor.

Example::

    with SyncClient() as client:
        envelope = client.send(descriptor)
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

from ontap.client.request import BodyKind, RequestDescriptor
from ontap.exceptions import ConnectionError_

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class ResponseEnvelope(BaseModel):
    """Status, headers, full body and elapsed time of one response.

    ``elapsed`` is wall-clock time around the whole call, measured here
    rather than read from httpx, which only records it once the response
    stream is closed.
    """

    status_code: int
    reason: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""
    elapsed: timedelta = timedelta(0)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class SyncClient:
    """Blocking HTTP client for one ontap invocation.

    Must be used as a context manager so the underlying connection pool is
    closed.

    Args:
        timeout: Total request timeout in seconds.
        transport: Optional :class:`httpx.BaseTransport`, for example an
            :class:`httpx.MockTransport` in tests.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    def __enter__(self) -> SyncClient:
        self._client = httpx.Client(timeout=self._timeout, transport=self._transport)
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def send(self, descriptor: RequestDescriptor) -> ResponseEnvelope:
        """Send *descriptor* and collect the response.

        Raises:
            ConnectionError_: On timeouts and other transport failures.
        """
        assert self._client is not None, "Client not initialised -- use as context manager"

        kwargs: dict[str, Any] = {
            "method": descriptor.method,
            "url": descriptor.url,
            "params": descriptor.query,
            "headers": descriptor.headers,
        }
        if descriptor.body_kind == BodyKind.JSON:
            kwargs["json"] = descriptor.json_body
        elif descriptor.body_kind == BodyKind.FORM:
            # files= forces multipart even when only plain fields are present.
            files: list[tuple[str, Any]] = [
                (key, (None, value)) for key, value in descriptor.form_fields
            ]
            files.extend(
                (item.field, (item.filename, item.content)) for item in descriptor.form_files
            )
            kwargs["files"] = files

        for line in descriptor.describe():
            logger.debug(line)

        start = time.perf_counter()
        try:
            response = self._client.request(**kwargs)
        except httpx.TimeoutException as exc:
            raise ConnectionError_(
                f"Request to {descriptor.url} timed out after {self._timeout:g}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise ConnectionError_(f"Request to {descriptor.url} failed: {exc}") from exc

        envelope = ResponseEnvelope(
            status_code=response.status_code,
            reason=response.reason_phrase or "",
            headers=dict(response.headers),
            body=response.content,
            elapsed=timedelta(seconds=time.perf_counter() - start),
        )
        logger.debug(
            "Response: %s %s in %.0f ms",
            envelope.status_code,
            envelope.reason,
            envelope.elapsed.total_seconds() * 1000,
        )
        for key, value in envelope.headers.items():
            logger.debug("  %s: %s", key, value)
        return envelope
