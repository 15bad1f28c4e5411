"""Tests for persona_memory.services.vector_index."""

import pytest

from persona_memory.errors import DegenerateVector, DimensionMismatch
from persona_memory.services.vector_index import VectorIndex, cosine_similarity


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_scale_invariant(self):
        assert cosine_similarity([1.0, 1.0], [5.0, 5.0]) == pytest.approx(1.0)

    def test_orthogonal_and_opposite(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_length_mismatch(self):
        with pytest.raises(DimensionMismatch):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])

    def test_empty_vectors(self):
        with pytest.raises(DimensionMismatch):
            cosine_similarity([], [])

    def test_zero_norm(self):
        with pytest.raises(DegenerateVector):
            cosine_similarity([0.0, 0.0], [1.0, 0.0])


class TestVectorIndex:
    def test_dimension_fixed_by_first_insert(self):
        index = VectorIndex()
        index.insert('a', [1.0, 0.0, 0.0])
        assert index.dimension == 3

        with pytest.raises(DimensionMismatch):
            index.insert('b', [1.0, 0.0])
        assert 'b' not in index
        assert len(index) == 1

    def test_degenerate_insert_rejected(self):
        index = VectorIndex(dimension=2)
        with pytest.raises(DegenerateVector):
            index.insert('a', [0.0, 0.0])
        assert len(index) == 0

    def test_query_dimension_checked(self):
        index = VectorIndex()
        index.insert('a', [1.0, 0.0])
        with pytest.raises(DimensionMismatch):
            index.nearest([1.0, 0.0, 0.0])

    def test_nearest_on_empty_index(self):
        assert VectorIndex().nearest([1.0, 0.0]) is None

    def test_nearest(self):
        index = VectorIndex()
        index.insert('a', [1.0, 0.0])
        index.insert('b', [0.0, 1.0])
        entry_id, similarity = index.nearest([0.1, 1.0])
        assert entry_id == 'b'
        assert similarity > 0.9

    def test_nearest_tie_goes_to_lowest_id(self):
        index = VectorIndex()
        index.insert('m', [1.0, 1.0])
        index.insert('c', [1.0, 1.0])
        index.insert('x', [1.0, 1.0])
        for _ in range(5):
            assert index.nearest([3.0, 3.0])[0] == 'c'

    def test_all_above_is_inclusive_and_ordered(self):
        index = VectorIndex()
        index.insert('b', [1.0, 0.0])
        index.insert('a', [1.0, 0.0])
        index.insert('c', [0.0, 1.0])
        matches = index.all_above([1.0, 0.0], 1.0)
        assert [entry_id for entry_id, _ in matches] == ['a', 'b']

    def test_all_above_excludes(self):
        index = VectorIndex()
        index.insert('a', [1.0, 0.0])
        index.insert('b', [1.0, 0.1])
        matches = index.all_above([1.0, 0.0], 0.5, exclude=('a',))
        assert [entry_id for entry_id, _ in matches] == ['b']

    def test_insert_replaces_and_remove(self):
        index = VectorIndex()
        index.insert('a', [1.0, 0.0])
        index.insert('a', [0.0, 1.0])
        assert index.nearest([0.0, 1.0]) == ('a', pytest.approx(1.0))
        assert index.get('a') == pytest.approx([0.0, 1.0])

        assert index.remove('a') is True
        assert index.remove('a') is False
        assert 'a' not in index
        assert index.get('a') is None
