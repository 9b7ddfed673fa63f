"""Unit tests for page-number pagination."""

from __future__ import annotations

import pytest

from backfill.errors import TransportError
from backfill.pagination import Page, collect, iter_pages


def _pages(items: list[int], size: int) -> dict[int, Page[int]]:
    chunks = [items[start : start + size] for start in range(0, len(items), size)]
    chunks = chunks or [[]]
    return {
        number: Page(items=tuple(chunk), has_next=number < len(chunks))
        for number, chunk in enumerate(chunks, start=1)
    }


@pytest.mark.parametrize("size", [1, 3, 7, 25, 100])
def test_collect_returns_every_item_in_order(size: int) -> None:
    """K items split across P pages come back as exactly K items."""
    items = list(range(25))
    pages = _pages(items, size)
    requested: list[int] = []

    def fetch(number: int) -> Page[int]:
        requested.append(number)
        return pages[number]

    assert collect(fetch) == tuple(items)
    assert requested == list(range(1, len(pages) + 1))


def test_collect_handles_empty_endpoint() -> None:
    """An endpoint with no items yields an empty tuple after one request."""
    calls: list[int] = []

    def fetch(number: int) -> Page[int]:
        calls.append(number)
        return Page(items=(), has_next=False)

    assert collect(fetch) == ()
    assert calls == [1]


def test_collect_discards_partial_results_on_failure() -> None:
    """A failing page raises and nothing collected so far is returned."""

    def fetch(number: int) -> Page[str]:
        if number == 3:
            raise TransportError("connection reset")
        return Page(items=(f"item-{number}",), has_next=True)

    with pytest.raises(TransportError):
        collect(fetch)


def test_iter_pages_is_lazy() -> None:
    """Pages are only requested as items are consumed."""
    requested: list[int] = []

    def fetch(number: int) -> Page[int]:
        requested.append(number)
        return Page(items=(number,), has_next=True)

    iterator = iter_pages(fetch, first_page=5)
    assert requested == []
    assert next(iterator) == 5
    assert next(iterator) == 6
    assert requested == [5, 6]
