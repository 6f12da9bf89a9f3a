"""
Domain enums.
"""

from __future__ import annotations

from enum import IntEnum


class VocabLevel(IntEnum):
    """How well a learner knows a vocab."""

    IGNORED = -1
    NEW = 0
    LEVEL_1 = 1
    LEVEL_2 = 2
    LEVEL_3 = 3
    LEVEL_4 = 4
    LEARNED = 5
    KNOWN = 6


def default_vocabs_by_level() -> dict[int, int]:
    """Zero count for every level."""
    return {int(level): 0 for level in VocabLevel}
