"""Disk-backed TTL cache for parsed OpenAPI descriptions.

Fetching and resolving a large description on every invocation would make
each command noticeably slow, so parsed documents are kept in a
:class:`diskcache.Cache` directory for the API's ``cache_ttl``.

Keys are SHA-256 hashes of the spec location.  Every entry records its own
``created_at`` / ``expires_at`` and :class:`SpecCache` checks expiry itself
against an injectable clock, so an expired entry is never handed out even
if the underlying store has not evicted it yet.  Entries read from disk are
kept in an in-memory index guarded by a re-entrant lock.

:class:`SpecProvider` is what the rest of ontap talks to: it combines the
cache with :func:`~ontap.parser.loader.load_document`,
:func:`~ontap.parser.loader.detect_version` and
:func:`~ontap.parser.resolver.resolve_refs`.
"""

from __future__ import annotations

import hashlib
import logging
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import diskcache
from pydantic import ValidationError

from ontap.models import CacheEntry, ParsedDocument
from ontap.parser.loader import detect_version, load_document
from ontap.parser.resolver import resolve_refs

logger = logging.getLogger(__name__)

_CACHE_ERRORS = (OSError, sqlite3.Error, ValidationError)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def make_key(location: str) -> str:
    """Return the cache key for a spec *location*."""
    return hashlib.sha256(location.encode("utf-8")).hexdigest()


class SpecCache:
    """TTL cache of :class:`~ontap.models.CacheEntry` records.

    Args:
        cache_dir: Root cache directory.  Entries live in a ``specs/``
            subdirectory.
        clock: Returns the current time; defaults to UTC ``now``.

    Example::

        cache = SpecCache(get_cache_dir())
        entry = cache.get(make_key("petstore.yaml"))
    """

    def __init__(
        self,
        cache_dir: str | Path,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._directory = Path(cache_dir) / "specs"
        self._store = diskcache.Cache(str(self._directory))
        self._index: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._clock = clock or _utcnow

    @property
    def directory(self) -> Path:
        return self._directory

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for *key*, or ``None``.

        An expired entry is deleted and reported as a miss.
        """
        with self._lock:
            entry = self._index.get(key)
            if entry is None:
                raw = self._store.get(key)
                if raw is None:
                    return None
                entry = CacheEntry.model_validate(raw)

            if entry.is_expired(self._clock()):
                logger.debug("Cache entry %s expired at %s", key[:12], entry.expires_at)
                self.delete(key)
                return None

            self._index[key] = entry
            return entry

    def set(self, document: ParsedDocument, ttl: timedelta) -> CacheEntry:
        """Store *document* for *ttl* and return the new entry.

        An existing entry for the same location is overwritten.
        """
        now = self._clock()
        entry = CacheEntry(
            key=make_key(document.location),
            location=document.location,
            openapi_version=document.openapi_version,
            document=document.document,
            created_at=now,
            expires_at=now + ttl,
        )
        seconds = ttl.total_seconds()
        with self._lock:
            self._store.set(
                entry.key,
                entry.model_dump(mode="json"),
                expire=seconds if seconds > 0 else None,
            )
            self._index[entry.key] = entry
        return entry

    def delete(self, key: str) -> None:
        """Remove the entry for *key* if present."""
        with self._lock:
            self._index.pop(key, None)
            self._store.delete(key)

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._index.clear()
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache`."""
        self._store.close()


class SpecProvider:
    """Load parsed descriptions, going through the cache when one is configured.

    Args:
        cache: The spec cache, or ``None`` to always load directly.
        loader: Reads a raw document from a location.  Replaceable in tests.
    """

    def __init__(
        self,
        cache: Optional[SpecCache] = None,
        loader: Callable[[str], dict[str, Any]] = load_document,
    ) -> None:
        self._cache = cache
        self._loader = loader

    @property
    def cache(self) -> Optional[SpecCache]:
        return self._cache

    def get_spec(self, location: str, ttl: timedelta) -> ParsedDocument:
        """Return the parsed description at *location*.

        A live cache entry is returned as-is.  Otherwise the document is
        loaded, its version detected, its references resolved and the result
        cached for *ttl*.  Cache read or write failures are logged and the
        document is still returned.

        Raises:
            SpecParseError: If the document cannot be loaded or validated.
        """
        key = make_key(location)
        entry: Optional[CacheEntry] = None
        if self._cache is not None:
            try:
                entry = self._cache.get(key)
            except _CACHE_ERRORS as exc:
                logger.warning("Spec cache read failed for %s: %s", location, exc)

        if entry is not None:
            logger.debug("Using cached spec for %s", location)
            return ParsedDocument(
                location=entry.location,
                openapi_version=entry.openapi_version,
                document=entry.document,
            )

        parsed = self._load(location)
        self._store(parsed, ttl)
        return parsed

    def refresh_spec(self, location: str, ttl: timedelta) -> ParsedDocument:
        """Drop any cached copy of *location*, then load and cache it again.

        Raises:
            SpecParseError: If the document cannot be loaded or validated.
        """
        if self._cache is not None:
            try:
                self._cache.delete(make_key(location))
            except _CACHE_ERRORS as exc:
                logger.warning("Failed to drop cached spec for %s: %s", location, exc)

        parsed = self._load(location)
        self._store(parsed, ttl)
        return parsed

    def clear(self) -> None:
        """Empty the cache, if any."""
        if self._cache is not None:
            self._cache.clear()

    def _load(self, location: str) -> ParsedDocument:
        logger.debug("Loading spec from %s", location)
        raw = self._loader(location)
        version = detect_version(raw)
        return ParsedDocument(
            location=location,
            openapi_version=version,
            document=resolve_refs(raw),
        )

    def _store(self, parsed: ParsedDocument, ttl: timedelta) -> None:
        if self._cache is None:
            return
        try:
            self._cache.set(parsed, ttl)
        except _CACHE_ERRORS as exc:
            logger.warning("Failed to cache spec for %s: %s", parsed.location, exc)
