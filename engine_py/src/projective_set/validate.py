"""
Set validation for card selections.

A set is a group of at least three cards whose values XOR to zero, i.e.
every dot position appears an even number of times across the group.
Any 7 distinct non-zero 6-bit values are linearly dependent over GF(2),
so a full table of 7 cards always holds at least one set.
"""

from functools import reduce
from operator import xor
from typing import List, Optional, Sequence

from .constants import MIN_SET_SIZE


def xor_all(values: Sequence[int]) -> int:
    return reduce(xor, values, 0)


def is_valid_set(values: Sequence[int]) -> bool:
    """
    Check whether card values form a valid set.

    Args:
        values: Card values, in any order (repeats allowed)

    Returns:
        True if there are at least 3 values and they XOR to 0

    Example:
        >>> is_valid_set([17, 5, 20])
        True
        >>> is_valid_set([1, 2, 4])
        False
    """
    if len(values) < MIN_SET_SIZE:
        return False
    return xor_all(values) == 0


def _mask_indices(mask: int, n: int) -> List[int]:
    return [i for i in range(n) if mask & (1 << i)]


def _mask_xor(values: Sequence[int], mask: int) -> int:
    result = 0
    for i, value in enumerate(values):
        if mask & (1 << i):
            result ^= value
    return result


def find_all_sets(values: Sequence[int]) -> List[List[int]]:
    """
    Find every valid set among ``values``.

    Brute force over all 2^n - 1 subsets; with 7 cards that is 127 checks.

    Returns:
        Index lists of each valid subset, in ascending mask order
    """
    n = len(values)
    found = []
    # 0b111 is the first mask with three bits
    for mask in range(7, 1 << n):
        if bin(mask).count('1') < MIN_SET_SIZE:
            continue
        if _mask_xor(values, mask) == 0:
            found.append(_mask_indices(mask, n))
    return found


def has_valid_set(values: Sequence[int]) -> bool:
    """Like ``find_all_sets`` but stops at the first hit."""
    n = len(values)
    if n < MIN_SET_SIZE:
        return False
    for mask in range(7, 1 << n):
        if bin(mask).count('1') < MIN_SET_SIZE:
            continue
        if _mask_xor(values, mask) == 0:
            return True
    return False


def find_set_containing(values: Sequence[int], required_indices: Sequence[int]) -> Optional[List[int]]:
    """
    Find the smallest valid set that includes all ``required_indices``.

    Args:
        values: All available card values
        required_indices: Indices that must be part of the set

    Returns:
        Sorted indices of the set, or None if no such set exists
    """
    n = len(values)
    required_mask = 0
    for index in required_indices:
        if index < 0 or index >= n:
            return None
        required_mask |= 1 << index
    required_count = bin(required_mask).count('1')

    for size in range(max(MIN_SET_SIZE, required_count), n + 1):
        for mask in range(required_mask, 1 << n):
            if mask & required_mask != required_mask:
                continue
            if bin(mask).count('1') != size:
                continue
            if _mask_xor(values, mask) == 0:
                return _mask_indices(mask, n)
    return None
