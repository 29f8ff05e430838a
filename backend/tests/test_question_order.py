"""
Tests for per-candidate question ordering.
"""

import random

import pytest

from interview_recorder.core.errors import SessionLoadFailedError
from interview_recorder.core.question_order import (
    generate_question_order,
    resolve_question_order,
    shuffle_indices,
)


def test_generated_order_is_a_permutation():
    for count in (1, 2, 5, 12):
        order = generate_question_order(count)
        assert sorted(order) == list(range(count))


def test_seeded_shuffle_is_reproducible():
    assert generate_question_order(8, random.Random(7)) == generate_question_order(8, random.Random(7))


def test_shuffle_does_not_mutate_input():
    items = ["a", "b", "c", "d"]
    shuffled = shuffle_indices(items, random.Random(1))
    assert items == ["a", "b", "c", "d"]
    assert sorted(shuffled) == items


def test_shuffle_produces_varied_orders():
    rng = random.Random(42)
    orders = {tuple(generate_question_order(5, rng)) for _ in range(50)}
    assert len(orders) > 1


def test_empty_and_negative_counts():
    assert generate_question_order(0) == []
    with pytest.raises(ValueError):
        generate_question_order(-1)


def test_resolve_without_stored_order_is_identity():
    assert resolve_question_order(None, 3) == [0, 1, 2]
    assert resolve_question_order([], 3) == [0, 1, 2]


def test_resolve_keeps_stored_order():
    assert resolve_question_order([2, 0, 1], 3) == [2, 0, 1]


@pytest.mark.parametrize("order", [[0, 0, 1], [0, 1], [1, 2, 3]])
def test_resolve_rejects_invalid_orders(order):
    with pytest.raises(SessionLoadFailedError):
        resolve_question_order(order, 3)
