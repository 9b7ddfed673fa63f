"""Page-number pagination over GitHub list endpoints.

Every list fetch in backfill goes through :func:`collect`. It drains the
endpoint completely before handing anything back, so callers never see half
a list: if any page fails the exception propagates and the items gathered so
far are dropped with the generator.
"""

from __future__ import annotations

import dataclasses
import typing as typ

T = typ.TypeVar("T")

DEFAULT_PAGE_SIZE = 100


@dataclasses.dataclass(frozen=True)
class Page(typ.Generic[T]):
    """One page of results and whether another page follows."""

    items: tuple[T, ...]
    has_next: bool


PageFetcher = typ.Callable[[int], Page[T]]


def iter_pages(fetch_page: PageFetcher[T], *, first_page: int = 1) -> typ.Iterator[T]:
    """Yield items from successive pages until the endpoint reports no more."""
    page_number = first_page
    while True:
        page = fetch_page(page_number)
        yield from page.items
        if not page.has_next:
            return
        page_number += 1


def collect(fetch_page: PageFetcher[T], *, first_page: int = 1) -> tuple[T, ...]:
    """Return every item from every page, in order."""
    return tuple(iter_pages(fetch_page, first_page=first_page))
