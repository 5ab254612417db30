"""Tests for top-N selection."""

from __future__ import annotations

import numpy as np
import pytest

from multilabel.errors import InvalidArgumentError
from multilabel.ml.topn import top_n


class TestTopN:
    def test_returns_best_first(self) -> None:
        assert top_n([0.1, 0.7, 0.2], 3) == [1, 2, 0]

    def test_returns_exactly_n_indices(self) -> None:
        rng = np.random.default_rng(0)
        for m in (1, 2, 7, 50):
            scores = rng.random(m).astype(np.float32)
            for n in range(1, m + 1):
                result = top_n(scores, n)
                assert len(result) == n
                assert len(set(result)) == n
                assert all(0 <= idx < m for idx in result)
                picked = [scores[idx] for idx in result]
                assert picked == sorted(picked, reverse=True)

    def test_selected_are_the_largest(self) -> None:
        scores = np.array([0.3, 0.9, 0.1, 0.8, 0.5], dtype=np.float32)
        assert set(top_n(scores, 2)) == {1, 3}
        assert top_n(scores, 1) == [int(np.argmax(scores))]

    def test_clamps_n_to_vector_length(self) -> None:
        assert top_n([0.2, 0.5], 5) == [1, 0]

    def test_ties_prefer_lower_index(self) -> None:
        assert top_n([0.5, 0.9, 0.5, 0.9], 4) == [1, 3, 0, 2]
        assert top_n([0.5, 0.9, 0.5, 0.9], 1) == [1]

    def test_all_equal_keeps_input_order(self) -> None:
        assert top_n([1.0, 1.0, 1.0], 3) == [0, 1, 2]

    def test_negative_scores(self) -> None:
        assert top_n([-3.0, -1.0, -2.0], 2) == [1, 2]

    def test_empty_vector_raises(self) -> None:
        with pytest.raises(InvalidArgumentError, match="empty"):
            top_n([], 1)

    @pytest.mark.parametrize("n", [0, -1])
    def test_non_positive_n_raises(self, n: int) -> None:
        with pytest.raises(InvalidArgumentError, match="positive"):
            top_n([0.1, 0.2], n)

    def test_invalid_argument_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            top_n([0.1], 0)
