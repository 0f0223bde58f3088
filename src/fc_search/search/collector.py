"""Top-K collection with a per-document score tweak, plus page windowing.

tantivy ranks hits by raw score only. The ranking rules need a tweak that
looks at the matched identifier, so searchers fetch the raw top hits, widened
by how far the tweak can move a score (``IndexSnapshot.candidates``), and
hand them to ``TopDocs`` which re-ranks and slices the requested window.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
import heapq
from typing import Generic, TypeVar


T = TypeVar("T")

# (identifier, raw score) -> (tweaked score, tie break)
ScoreTweak = Callable[[str, float], tuple[float, float]]

DocAddress = tuple[int, int]


@dataclass(frozen=True, slots=True)
class ScoredHit:
    """A hit after tweaking; ``address`` is (segment ordinal, doc id)."""

    identifier: str
    score: float
    tie_break: float
    address: DocAddress


def _identity_tweak(identifier: str, score: float) -> tuple[float, float]:
    return score, 0.0


def page_window(n_items: int, page: int) -> tuple[int, int]:
    """Return ``(limit, offset)`` for a 1-based page; page 0 is treated as page 1.

    The limit asks for one extra row so callers can tell whether a next
    page exists without a second query.
    """
    if n_items < 0:
        raise ValueError(f"n_items must be >= 0, got {n_items}")
    return n_items + 1, (max(page, 1) - 1) * n_items


class TopDocs:
    """Keep the best ``limit`` hits after skipping the first ``offset``.

    Order: tweaked score descending, tie break descending, then document
    address ascending so equal hits keep index order.
    """

    def __init__(self, limit: int, *, offset: int = 0, tweak: ScoreTweak | None = None) -> None:
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must be non-negative")
        self.limit = limit
        self.offset = offset
        self.tweak = tweak or _identity_tweak

    @classmethod
    def for_page(cls, n_items: int, page: int, *, tweak: ScoreTweak | None = None) -> TopDocs:
        limit, offset = page_window(n_items, page)
        return cls(limit, offset=offset, tweak=tweak)

    def collect(self, hits: Iterable[tuple[str, float, DocAddress]]) -> list[ScoredHit]:
        scored = (self._score(identifier, score, address) for identifier, score, address in hits)
        ranked = heapq.nsmallest(
            self.offset + self.limit,
            scored,
            key=lambda hit: (-hit.score, -hit.tie_break, hit.address),
        )
        return ranked[self.offset :]

    def _score(self, identifier: str, score: float, address: DocAddress) -> ScoredHit:
        tweaked, tie_break = self.tweak(identifier, score)
        return ScoredHit(identifier=identifier, score=tweaked, tie_break=tie_break, address=address)


@dataclass(frozen=True)
class SearchPage(Generic[T]):
    """One page of results; ``has_next_page`` is true when more rows follow."""

    items: tuple[T, ...]
    has_next_page: bool

    @classmethod
    def empty(cls) -> SearchPage[T]:
        return cls(items=(), has_next_page=False)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


def paginate(rows: Sequence[T], n_items: int) -> tuple[list[T], bool]:
    """Drop the look-ahead row collected by ``page_window``."""
    has_next_page = len(rows) > n_items
    return list(rows[:n_items]), has_next_page
