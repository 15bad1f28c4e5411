"""Shared fixtures for the memory engine tests."""

import hashlib
import math
import re

import pytest

from persona_memory.errors import EmbeddingUnavailable
from persona_memory.services.episodic_memory import EpisodicMemoryStore
from persona_memory.services.response_cache import ResponseCache
from persona_memory.services.semantic_knowledge import SemanticKnowledgeStore
from persona_memory.utils.config import CacheConfig, EpisodicConfig, SemanticConfig

DIMENSION = 256
START = 1_700_000_000.0


class FakeEmbedder:
    """Deterministic embedding service.

    Texts registered in `vectors` get that exact vector; anything else gets a
    hashed bag-of-words vector, so texts sharing most words are similar.
    """

    def __init__(self, dimension=DIMENSION):
        self.dimension = dimension
        self.vectors = {}
        self.calls = []
        self.failing = set()

    def set(self, text, vector):
        padded = list(vector) + [0.0] * (self.dimension - len(vector))
        self.vectors[text] = padded

    def embed(self, text):
        self.calls.append(text)
        if text in self.failing:
            raise EmbeddingUnavailable(f'embedding refused for {text!r}')
        if text in self.vectors:
            return list(self.vectors[text])
        vector = [0.0] * self.dimension
        for word in re.findall(r'\w+', text.lower()):
            bucket = int(hashlib.md5(word.encode('utf-8')).hexdigest(), 16) % self.dimension
            vector[bucket] += 1.0
        return vector


class FakeClock:
    def __init__(self, start=START):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def unit(angle_degrees):
    """2-d unit vector; cosine between unit(a) and unit(b) is cos(a - b)."""
    radians = math.radians(angle_degrees)
    return [math.cos(radians), math.sin(radians)]


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def episodic(embedder, clock):
    return EpisodicMemoryStore(embedder, EpisodicConfig(), clock)


@pytest.fixture
def semantic(embedder, clock):
    return SemanticKnowledgeStore(embedder, SemanticConfig(), clock)


@pytest.fixture
def cache(embedder, clock):
    return ResponseCache(embedder, CacheConfig(), clock)


def assert_symmetric(store):
    """Every episodic relation is present on both sides and points at a live entry."""
    for entry in store.store.values():
        for related_id in entry.related_ids:
            other = store.get(related_id)
            assert other is not None, f'{entry.id} relates to missing {related_id}'
            assert entry.id in other.related_ids, f'{entry.id} -> {related_id} is one-sided'
