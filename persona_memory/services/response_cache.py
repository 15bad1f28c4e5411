"""
Response cache for LLM answers with exact-key lookup and semantic fallback.
"""

import hashlib
import math
import threading
from typing import Any, Dict, List, Optional

from ..errors import EmbeddingUnavailable
from ..models.core import CacheEntry
from ..utils.config import CacheConfig
from ..utils.config import config as app_config
from ..utils.embedding import EmbeddingService
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import Clock, age_seconds, now_seconds
from .scored_store import ScoredStore
from .snapshot_restore import restore_entries
from .vector_index import VectorIndex

logger = get_logger(__name__)

# Embedding precision folded into the semantic key.
SEMANTIC_KEY_DECIMALS = 6


def exact_key(query: str) -> str:
    """Deterministic cache key for a query string."""
    return hashlib.sha256(query.encode('utf-8')).hexdigest()


def semantic_key(embedding: List[float]) -> str:
    """Key derived from an embedding; near-identical embeddings share it."""
    rounded = ','.join(f'{value:.{SEMANTIC_KEY_DECIMALS}f}' for value in embedding)
    return hashlib.sha256(rounded.encode('ascii')).hexdigest()


class ResponseCache:
    """Bounded TTL cache of (query, response) pairs.

    Entries are keyed by the hash of the query. Each semantic key points at
    the exact key that wrote it most recently, so a semantic collision
    re-targets the slot without touching the older entry's exact key.
    """

    def __init__(self, embedder: EmbeddingService, config: Optional[CacheConfig] = None, clock: Clock = now_seconds):
        """
        Initialize the response cache.

        Args:
            embedder: Embedding service used for queries
            config: CacheConfig instance, uses default if None
            clock: Source of the current time in Unix seconds
        """
        self.embedder = embedder
        self.config = config or app_config.cache
        self.clock = clock
        self.index = VectorIndex()
        self.store: ScoredStore[CacheEntry] = ScoredStore()
        self._semantic_owner: Dict[str, str] = {}
        self._lock = threading.RLock()
        self._hits = {'exact': 0, 'semantic': 0}
        self._misses = 0

        logger.info(f'Initialized ResponseCache (max_size={self.config.max_size}, '
                    f'ttl={self.config.default_ttl_seconds}s, threshold={self.config.similarity_threshold})')

    def cache(self, query: str, response: Any, metadata: Optional[Dict[str, Any]] = None, ttl: Optional[float] = None) -> str:
        """Store a response under the query's exact key and semantic key.

        Args:
            query: The prompt or question that produced the response
            response: Payload to return on later lookups
            metadata: Extra data kept with the entry; a 'ttl' value is used
                when no explicit ttl is given
            ttl: Lifetime in seconds (default from config)

        Returns:
            The exact key of the cached entry

        Raises:
            EmbeddingUnavailable: If the embedding service fails
            ValueError: If the ttl is negative
        """
        metadata = dict(metadata or {})
        if ttl is None:
            ttl = metadata.get('ttl', self.config.default_ttl_seconds)
        ttl = _check_ttl(ttl)

        embedding = self._embed(query)

        key = exact_key(query)
        entry = CacheEntry(id=key,
                           created_at=self.clock(),
                           embedding=embedding,
                           query=query,
                           response=response,
                           metadata=metadata,
                           ttl=ttl,
                           semantic_key=semantic_key(embedding))

        with self._lock:
            self.index.insert(entry.semantic_key, embedding)
            previous = self.store.get(key)
            if previous is not None:
                self.store.delete(key)
                if previous.semantic_key != entry.semantic_key:
                    self._release_semantic(previous)
            self.store.put(key, entry)
            self._semantic_owner[entry.semantic_key] = key
            self.size_manage()

        logger.debug(f'Cached response under key {key[:12]} (ttl={ttl}s)')
        return key

    def lookup(self, query: str) -> Optional[Any]:
        """Find a cached response by exact query, then by semantic similarity.

        Args:
            query: The prompt or question

        Returns:
            The cached response, or None when nothing valid matches

        Raises:
            EmbeddingUnavailable: If the exact key misses and the query cannot be embedded
        """
        if not query or not query.strip():
            logger.warning('Empty query provided for cache lookup')
            return None

        with self._lock:
            entry = self.store.get(exact_key(query))
            if entry is not None and entry.is_valid(self.clock()):
                entry.usage_count += 1
                self._hits['exact'] += 1
                logger.debug(f'Exact cache hit for key {entry.id[:12]}')
                return entry.response

        embedding = self._embed(query)

        with self._lock:
            match = self.index.nearest(embedding)
            if match is not None and match[1] >= self.config.similarity_threshold:
                entry = self.store.get(self._semantic_owner.get(match[0], ''))
                if entry is not None and entry.is_valid(self.clock()):
                    entry.usage_count += 1
                    self._hits['semantic'] += 1
                    logger.debug(f'Semantic cache hit for key {entry.id[:12]} (similarity={match[1]:.3f})')
                    return entry.response

            self._misses += 1

        logger.debug('Cache miss')
        return None

    def score(self, entry: CacheEntry, now: float) -> float:
        """(exp(-age / ttl) + exp(-usage_decay * usage)) / 2."""
        age = age_seconds(entry.created_at, now)
        age_factor = math.exp(-age / entry.ttl) if entry.ttl > 0 else 0.0
        usage_factor = math.exp(-entry.usage_count * self.config.usage_decay)
        return (age_factor + usage_factor) / 2

    def size_manage(self) -> int:
        """Evict the lowest-scored entries until the cache fits its max size.

        Returns:
            Number of entries evicted
        """
        with self._lock:
            if self.store.size() <= self.config.max_size:
                return 0

            now = self.clock()
            evicted = self.store.evict_to_capacity(self.config.max_size, lambda entry: self.score(entry, now))
            for _, entry in evicted:
                self._release_semantic(entry)

        logger.debug(f'Evicted {len(evicted)} cache entries to stay within {self.config.max_size}')
        return len(evicted)

    def purge_expired(self) -> int:
        """Remove every entry whose TTL has run out.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self.clock()
            expired = [entry for entry in self.store.values() if not entry.is_valid(now)]
            for entry in expired:
                self.store.delete(entry.id)
                self._release_semantic(entry)

        if expired:
            logger.info(f'Purged {len(expired)} expired cache entries')
        return len(expired)

    def update_ttl(self, key: str, new_ttl: float) -> bool:
        """Change the TTL of a cached entry.

        Returns:
            True if the key existed, False otherwise

        Raises:
            ValueError: If the ttl is negative
        """
        new_ttl = _check_ttl(new_ttl)
        with self._lock:
            entry = self.store.get(key)
            if entry is None:
                return False
            entry.ttl = new_ttl
            return True

    def get(self, key: str) -> Optional[CacheEntry]:
        return self.store.get(key)

    def size(self) -> int:
        return self.store.size()

    def clear(self) -> None:
        with self._lock:
            self.store.clear()
            self.index.clear()
            self._semantic_owner.clear()
        logger.info('Cleared response cache')

    def stats(self) -> Dict[str, Any]:
        """Entry counts, average usage and measured hit rate."""
        with self._lock:
            usages = [entry.usage_count for entry in self.store.values()]
            hits = self._hits['exact'] + self._hits['semantic']
            lookups = hits + self._misses
            return {
                'total_entries': len(usages),
                'semantic_entries': len(self._semantic_owner),
                'average_usage': sum(usages) / len(usages) if usages else 0.0,
                'hits': hits,
                'exact_hits': self._hits['exact'],
                'semantic_hits': self._hits['semantic'],
                'misses': self._misses,
                'hit_rate': hits / lookups if lookups else 0.0
            }

    def to_snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {'entries': [entry.to_dict() for entry in self.store.values()]}

    def load_snapshot(self, data: Dict[str, Any]) -> int:
        """Replace the cache contents with a snapshot and rebuild the semantic index.

        Invalid entries are skipped with a warning. Later entries win semantic
        slots they share with earlier ones.

        Returns:
            Number of entries loaded
        """
        entries, index = restore_entries(data.get('entries', []),
                                         CacheEntry.from_dict, ('id', 'query', 'semantic_key', 'embedding'),
                                         self.clock(),
                                         'cache',
                                         index_key=lambda entry: entry.semantic_key)
        owners = {}
        for entry in entries:
            owners[entry.semantic_key] = entry.id

        with self._lock:
            self.index = index
            self._semantic_owner = owners
            self.store.clear()
            for entry in entries:
                self.store.put(entry.id, entry)
            self.size_manage()

        logger.info(f'Loaded {len(entries)} cache entries from snapshot')
        return len(entries)

    def _embed(self, text: str) -> List[float]:
        try:
            return self.embedder.embed(text)
        except EmbeddingUnavailable as e:
            logger.error(f'Embedding failed for cache query: {e}')
            raise

    def _release_semantic(self, entry: CacheEntry) -> None:
        if self._semantic_owner.get(entry.semantic_key) == entry.id:
            del self._semantic_owner[entry.semantic_key]
            self.index.remove(entry.semantic_key)


def _check_ttl(ttl: float) -> float:
    ttl = float(ttl)
    if ttl < 0:
        raise ValueError(f'TTL must not be negative, got {ttl}')
    return ttl
