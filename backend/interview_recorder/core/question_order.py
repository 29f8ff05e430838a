"""
Question Order
Per-candidate randomized question ordering (anti-cheating).
"""

import random
from typing import List, Optional, Sequence, TypeVar

from interview_recorder.core.errors import SessionLoadFailedError

T = TypeVar("T")


def shuffle_indices(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """
    Fisher-Yates shuffle returning a new list (the input is not mutated).

    Args:
        items: Items to shuffle
        rng: Optional random source (seeded in tests)

    Returns:
        Shuffled copy of items
    """
    rng = rng or random.Random()
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def generate_question_order(question_count: int, rng: Optional[random.Random] = None) -> List[int]:
    """
    Generate a randomized permutation of [0, question_count).

    Example:
        generate_question_order(5)  # [2, 0, 4, 1, 3]
    """
    if question_count < 0:
        raise ValueError("question_count must be non-negative")
    return shuffle_indices(range(question_count), rng)


def resolve_question_order(order: Optional[Sequence[int]], question_count: int) -> List[int]:
    """
    Validate a stored order, falling back to the identity order when none was stored.

    Raises:
        SessionLoadFailedError: If the stored order is not a permutation of [0, question_count)
    """
    if not order:
        return list(range(question_count))

    resolved = [int(i) for i in order]
    if sorted(resolved) != list(range(question_count)):
        raise SessionLoadFailedError(
            f"Question order {resolved} is not a permutation of {question_count} questions"
        )
    return resolved
