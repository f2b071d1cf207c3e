"""
Tests for set validation.
"""

import random
from functools import reduce
from operator import xor

from projective_set.validate import (
    find_all_sets, find_set_containing, has_valid_set, is_valid_set, xor_all,
)


def test_is_valid_set_basic():
    """Three or more values that XOR to zero form a set."""
    assert is_valid_set([1, 2, 3])
    assert is_valid_set([17, 5, 20])
    assert is_valid_set([1, 2, 4, 7])
    assert not is_valid_set([1, 2, 4])
    assert not is_valid_set([1, 2, 3, 4])


def test_is_valid_set_needs_three_cards():
    assert not is_valid_set([])
    assert not is_valid_set([5])
    # two equal values XOR to zero but are too few
    assert not is_valid_set([5, 5])


def test_is_valid_set_order_independent():
    values = [9, 12, 5]
    assert xor_all(values) == 0
    assert is_valid_set(values)
    assert is_valid_set(list(reversed(values)))


def test_find_all_sets_single_set():
    """Only {1, 2, 3} is a set when the other cards each own a bit."""
    assert find_all_sets([1, 2, 3, 4, 8, 16, 32]) == [[0, 1, 2]]


def test_find_all_sets_results_are_valid():
    rng = random.Random(7)
    values = rng.sample(range(1, 64), 7)
    sets = find_all_sets(values)

    assert sets
    for indices in sets:
        assert len(indices) >= 3
        assert reduce(xor, (values[i] for i in indices), 0) == 0


def test_find_all_sets_too_few_cards():
    assert find_all_sets([1, 2]) == []


def test_seven_distinct_cards_always_hold_a_set():
    """Seven distinct non-zero 6-bit values are always linearly dependent."""
    rng = random.Random(42)
    for _ in range(200):
        assert has_valid_set(rng.sample(range(1, 64), 7))


def test_has_valid_set_none():
    assert not has_valid_set([1, 2, 4, 8, 16, 32])
    assert not has_valid_set([1, 2])


def test_find_set_containing():
    values = [1, 2, 3, 4, 8, 16, 32]
    assert find_set_containing(values, [0]) == [0, 1, 2]
    assert find_set_containing(values, [2, 1]) == [0, 1, 2]
    assert find_set_containing(values, [3]) is None


def test_find_set_containing_prefers_smallest():
    # {1, 2, 3} and {1, 2, 4, 7} both contain 1; the 3-card set wins
    values = [1, 2, 3, 4, 7]
    result = find_set_containing(values, [0])
    assert len(result) == 3
    assert is_valid_set([values[i] for i in result])


def test_find_set_containing_out_of_range():
    assert find_set_containing([1, 2, 3], [5]) is None
    assert find_set_containing([1, 2, 3], [-1]) is None
