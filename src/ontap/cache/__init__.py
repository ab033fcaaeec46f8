"""Parsed-spec caching for ontap.

Provides :class:`SpecCache`, a TTL cache of resolved OpenAPI documents stored
with :mod:`diskcache`, and :class:`SpecProvider`, which loads documents
through that cache.  The cache lifetime of each API comes from its
``cache_ttl`` setting (:class:`~ontap.models.APIConfig`).
"""

from ontap.cache.spec_cache import SpecCache, SpecProvider, make_key

__all__ = ["SpecCache", "SpecProvider", "make_key"]
