"""Tests for persona_memory.services.episodic_memory."""

import json
import math

import pytest

from persona_memory.errors import EmbeddingUnavailable, NotFound
from persona_memory.services.episodic_memory import EpisodicMemoryStore
from persona_memory.utils.config import EpisodicConfig

from conftest import assert_symmetric, unit

DAY = 24 * 60 * 60


class TestCreate:
    def test_defaults(self, episodic, embedder):
        entry = episodic.create('conversation', 'hello', participants=['bob', 'alice'], emotions=['joy'])

        assert entry.importance == 5.0
        assert entry.access_count == 0
        assert entry.participants == {'alice', 'bob'}
        assert entry.emotions == {'joy'}
        assert embedder.calls[-1] == 'conversation hello alice bob'
        assert episodic.get(entry.id) is entry
        assert episodic.size() == 1

    def test_similar_contexts_link_both_ways(self, episodic):
        e1 = episodic.create('conversation', 'greeting the user')
        e2 = episodic.create('conversation', 'greeting the user again')

        assert e2.id in episodic.get(e1.id).related_ids
        assert e1.id in episodic.get(e2.id).related_ids
        assert_symmetric(episodic)

    def test_dissimilar_contexts_stay_unlinked(self, episodic, embedder):
        embedder.set('observation sunrise', unit(0))
        embedder.set('observation invoice', unit(60))

        a = episodic.create('observation', 'sunrise')
        b = episodic.create('observation', 'invoice')

        assert a.related_ids == set()
        assert b.related_ids == set()

    def test_link_threshold_is_inclusive(self, embedder, clock):
        store = EpisodicMemoryStore(embedder, EpisodicConfig(link_threshold=0.6), clock)
        embedder.set('action a', [1.0, 0.0])
        embedder.set('action b', [3.0, 4.0])  # cosine exactly 0.6

        a = store.create('action', 'a')
        b = store.create('action', 'b')

        assert b.id in a.related_ids

    def test_failed_embedding_leaves_store_empty(self, episodic, embedder):
        embedder.failing.add('conversation broken')
        with pytest.raises(EmbeddingUnavailable):
            episodic.create('conversation', 'broken')
        assert episodic.size() == 0
        assert len(episodic.index) == 0

    def test_invalid_arguments(self, episodic):
        with pytest.raises(ValueError):
            episodic.create('dream', 'flying')
        with pytest.raises(ValueError):
            episodic.create('conversation', 'hi', importance=11)

    def test_capacity_evicts_least_important(self, embedder, clock):
        store = EpisodicMemoryStore(embedder, EpisodicConfig(max_memories=3), clock)
        embedder.set('action low', unit(0))
        embedder.set('action high', unit(10))
        embedder.set('action side', unit(90))
        embedder.set('action other', unit(180))

        low = store.create('action', 'low', importance=1)
        high = store.create('action', 'high', importance=9)
        store.create('action', 'side', importance=8)
        assert high.id in low.related_ids

        store.create('action', 'other', importance=7)

        assert store.size() == 3
        assert store.get(low.id) is None
        assert low.id not in store.index
        assert low.id not in store.get(high.id).related_ids
        assert_symmetric(store)


class TestDecay:
    def test_decay_uses_age_in_days(self, episodic, clock):
        entry = episodic.create('conversation', 'old news')
        clock.advance(10 * DAY)

        assert episodic.decay(entry.id) == pytest.approx(5.0 * math.exp(-1.0))
        assert entry.decay_factor == pytest.approx(math.exp(-1.0))

    def test_decay_does_not_compound(self, episodic, clock):
        entry = episodic.create('conversation', 'old news')
        clock.advance(3 * DAY)

        first = episodic.decay(entry.id)
        second = episodic.decay(entry.id)

        assert first == pytest.approx(second)
        assert entry.importance == 5.0

    def test_access_count_reduces_factor(self, episodic, embedder):
        embedder.set('conversation topic', unit(0))
        embedder.set('the topic', unit(0))
        entry = episodic.create('conversation', 'topic')

        episodic.retrieve('the topic')

        assert entry.access_count == 1
        assert episodic.decay(entry.id) == pytest.approx(5.0 * math.exp(-0.1))

    def test_decay_unknown_id(self, episodic):
        with pytest.raises(NotFound):
            episodic.decay('missing')


class TestRetrieve:
    def test_ranks_by_similarity_importance_and_decay(self, episodic, embedder):
        embedder.set('observation near', unit(0))
        embedder.set('observation far', unit(80))
        embedder.set('observation orthogonal', unit(90))
        embedder.set('query', unit(0))

        near = episodic.create('observation', 'near', importance=5)
        far = episodic.create('observation', 'far', importance=10)
        orthogonal = episodic.create('observation', 'orthogonal', importance=10)

        results = episodic.retrieve('query', limit=2)

        assert [entry.id for entry, _ in results] == [near.id, far.id]
        assert results[0][1] == pytest.approx(5.0)
        assert results[1][1] == pytest.approx(10.0 * math.cos(math.radians(80)))
        assert near.access_count == 1
        assert far.access_count == 1
        assert orthogonal.access_count == 0

    def test_ties_break_by_lower_id(self, episodic, embedder):
        embedder.set('conversation one', unit(0))
        embedder.set('conversation two', unit(0))
        embedder.set('query', unit(0))

        a = episodic.create('conversation', 'one')
        b = episodic.create('conversation', 'two')

        results = episodic.retrieve('query')
        assert [entry.id for entry, _ in results] == sorted([a.id, b.id])

    def test_updates_last_accessed(self, episodic, clock, embedder):
        embedder.set('conversation topic', unit(0))
        embedder.set('query', unit(0))
        entry = episodic.create('conversation', 'topic')
        clock.advance(60)

        episodic.retrieve('query')

        assert entry.last_accessed_at == clock.now

    def test_empty_context_returns_nothing(self, episodic, embedder):
        episodic.create('conversation', 'topic')
        calls = len(embedder.calls)
        assert episodic.retrieve('   ') == []
        assert len(embedder.calls) == calls


class TestUpdate:
    def test_update_reembeds_and_relinks(self, episodic, embedder):
        embedder.set('conversation a', unit(0))
        embedder.set('conversation b', unit(10))
        embedder.set('conversation moved away', unit(90))

        a = episodic.create('conversation', 'a')
        b = episodic.create('conversation', 'b')
        assert b.id in a.related_ids

        updated = episodic.update(a.id, context='moved away', importance=7)

        assert updated.context == 'moved away'
        assert updated.importance == 7
        assert updated.embedding[:2] == pytest.approx(unit(90))
        assert updated.related_ids == set()
        assert a.id not in b.related_ids
        assert_symmetric(episodic)

    def test_update_can_create_links(self, episodic, embedder):
        embedder.set('conversation a', unit(0))
        embedder.set('conversation b', unit(90))
        embedder.set('conversation b closer', unit(5))

        a = episodic.create('conversation', 'a')
        b = episodic.create('conversation', 'b')
        episodic.update(b.id, context='b closer')

        assert a.id in b.related_ids
        assert b.id in a.related_ids

    def test_failed_embedding_leaves_entry_untouched(self, episodic, embedder):
        entry = episodic.create('conversation', 'stable', importance=4)
        embedding = list(entry.embedding)
        embedder.failing.add('conversation changed')

        with pytest.raises(EmbeddingUnavailable):
            episodic.update(entry.id, context='changed', importance=9)

        assert entry.context == 'stable'
        assert entry.importance == 4
        assert entry.embedding == embedding

    def test_update_unknown_id(self, episodic):
        with pytest.raises(NotFound):
            episodic.update('missing', context='x')

    def test_update_rejects_unknown_fields(self, episodic):
        entry = episodic.create('conversation', 'x')
        with pytest.raises(ValueError):
            episodic.update(entry.id, access_count=100)


class TestDelete:
    def test_delete_strips_relations(self, episodic):
        e1 = episodic.create('conversation', 'greeting the user')
        e2 = episodic.create('conversation', 'greeting the user again')
        e3 = episodic.create('conversation', 'greeting the user once more')

        episodic.delete(e1.id)

        assert episodic.get(e1.id) is None
        assert e1.id not in episodic.index
        assert e1.id not in e2.related_ids
        assert e1.id not in e3.related_ids
        assert_symmetric(episodic)

    def test_delete_unknown_id(self, episodic):
        with pytest.raises(NotFound):
            episodic.delete('missing')


class TestQueries:
    def test_related(self, episodic):
        e1 = episodic.create('conversation', 'greeting the user')
        e2 = episodic.create('conversation', 'greeting the user again')
        assert [entry.id for entry in episodic.related(e1.id)] == [e2.id]

    def test_recent(self, episodic, clock):
        old = episodic.create('observation', 'morning')
        clock.advance(2 * 60 * 60)
        new = episodic.create('observation', 'afternoon')

        assert [entry.id for entry in episodic.recent(60 * 60)] == [new.id]
        assert [entry.id for entry in episodic.recent(3 * 60 * 60)] == [new.id, old.id]


class TestIntegrityAndSnapshots:
    def test_clean_store_has_no_problems(self, episodic):
        episodic.create('conversation', 'greeting the user')
        episodic.create('conversation', 'greeting the user again')
        assert episodic.verify_integrity() == []

    def test_dangling_relation_reported(self, episodic):
        entry = episodic.create('conversation', 'hello')
        entry.related_ids.add('ghost')
        problems = episodic.verify_integrity()
        assert len(problems) == 1
        assert 'ghost' in problems[0]

    def test_snapshot_round_trip(self, episodic, embedder, clock):
        e1 = episodic.create('conversation', 'greeting the user', participants=['alice'], emotions=['warmth'])
        e2 = episodic.create('conversation', 'greeting the user again', participants=['alice'])
        episodic.retrieve('greeting')

        data = json.loads(json.dumps(episodic.to_snapshot()))
        restored = EpisodicMemoryStore(embedder, EpisodicConfig(), clock)
        assert restored.load_snapshot(data) == 2

        copy = restored.get(e1.id)
        assert copy.related_ids == {e2.id}
        assert copy.emotions == {'warmth'}
        assert copy.access_count == e1.access_count
        assert copy.embedding == e1.embedding
        assert len(restored.index) == 2
        assert restored.verify_integrity() == []
        assert {entry.id for entry, _ in restored.retrieve('greeting the user')} == {e1.id, e2.id}

    def test_invalid_snapshot_entries_are_skipped(self, episodic, embedder, clock):
        good = episodic.create('conversation', 'greeting the user')
        zeroed = episodic.create('conversation', 'greeting the user again')
        future = episodic.create('observation', 'sunrise')
        blank = episodic.create('action', 'waving')

        data = json.loads(json.dumps(episodic.to_snapshot()))
        by_id = {item['id']: item for item in data['entries']}
        by_id[zeroed.id]['embedding'] = [0.0] * len(zeroed.embedding)
        by_id[future.id]['created_at'] = clock.now + DAY
        by_id[blank.id]['context'] = ''
        data['entries'].append({'id': 'broken'})

        restored = EpisodicMemoryStore(embedder, EpisodicConfig(), clock)

        assert restored.load_snapshot(data) == 1
        assert restored.get(good.id).related_ids == set()
        assert restored.get(zeroed.id) is None
        assert len(restored.index) == 1
        assert restored.verify_integrity() == []
