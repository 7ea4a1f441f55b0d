"""
Selection of the next identifier to draw.
"""
from __future__ import annotations

from typing import Iterable, Sequence

from ..lib.roster import DEFAULT_PRIORITY

__all__ = [
    "DrawPolicy",
]


class DrawPolicy:
    """
    Deterministic policy choosing which identifier is drawn next.

    Identifiers are drawn in the order of `priority`; identifiers of the
    roster not listed there follow in roster order. Drawn identifiers are
    never chosen again. Any two clients holding the same roster and drawn
    set compute the same next draw.

    The wheel animation shown by a presentation layer is purely cosmetic:
    it lands on {obj}`DrawPolicy.wheel_index` of the identifier chosen here.
    """

    priority: tuple[str, ...]
    """
    Identifiers in the order they're drawn.
    """

    def __init__(self, priority: Iterable[str] | None = None):
        self.priority = tuple(
            dict.fromkeys(DEFAULT_PRIORITY if priority is None else priority)
        )

    def __repr__(self) -> str:
        return f"DrawPolicy(priority={list(self.priority)})"

    def order(self, roster: Sequence[str]) -> list[str]:
        """
        Get the full draw order for the provided roster.
        """
        members = set(roster)
        ranked = [i for i in self.priority if i in members]
        ranked_set = set(ranked)

        return ranked + [i for i in roster if i not in ranked_set]

    def remaining(
        self, roster: Sequence[str], drawn_set: Iterable[str]
    ) -> list[str]:
        """
        Get identifiers not yet drawn, in the order they will be drawn.
        """
        drawn = set(drawn_set)
        return [i for i in self.order(roster) if i not in drawn]

    def next(
        self, roster: Sequence[str], drawn_set: Iterable[str]
    ) -> str | None:
        """
        Get the next identifier to draw, or `None` if all are drawn.
        """
        remaining = self.remaining(roster, drawn_set)
        return remaining[0] if remaining else None

    @staticmethod
    def wheel_index(roster: Sequence[str], identifier: str) -> int:
        """
        Get the wheel segment of the identifier. The roster never shrinks,
        so segments are stable for the life of a session.
        """
        return list(roster).index(identifier)
