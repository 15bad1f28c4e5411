"""Tests for persona_memory.services.scored_store."""

from persona_memory.services.scored_store import ScoredStore


def score(entry):
    return entry['score']


class TestScoredStore:
    def test_put_get_delete(self):
        store = ScoredStore()
        store.put('a', {'score': 1.0})
        assert store.get('a') == {'score': 1.0}
        assert store.size() == 1
        assert store.delete('a') is True
        assert store.delete('a') is False
        assert store.get('a') is None

    def test_lowest_score_evicted_first(self):
        store = ScoredStore()
        store.put('high', {'score': 0.9})
        store.put('mid', {'score': 0.5})
        store.put('low', {'score': 0.1})
        store.put('fourth', {'score': 0.7})

        evicted = store.evict_to_capacity(2, score)

        assert [entry_id for entry_id, _ in evicted] == ['low', 'mid']
        assert store.size() == 2
        assert set(store.ids()) == {'high', 'fourth'}

    def test_ties_evict_oldest_first(self):
        store = ScoredStore()
        for entry_id in ('first', 'second', 'third'):
            store.put(entry_id, {'score': 1.0})

        evicted = store.evict_to_capacity(1, score)

        assert [entry_id for entry_id, _ in evicted] == ['first', 'second']
        assert store.ids() == ['third']

    def test_reput_keeps_insertion_position(self):
        store = ScoredStore()
        store.put('a', {'score': 1.0})
        store.put('b', {'score': 1.0})
        store.put('a', {'score': 1.0})

        evicted = store.evict_to_capacity(1, score)

        assert [entry_id for entry_id, _ in evicted] == ['a']

    def test_within_capacity_is_noop(self):
        store = ScoredStore()
        store.put('a', {'score': 0.1})
        assert store.evict_to_capacity(5, score) == []
        assert store.size() == 1

    def test_zero_capacity_empties_store(self):
        store = ScoredStore()
        store.put('a', {'score': 0.1})
        store.put('b', {'score': 0.2})
        assert len(store.evict_to_capacity(0, score)) == 2
        assert store.size() == 0
