"""Page selector parsing and resolution against a document's page count."""

from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import InvalidRange, NoPagesSelected

ALL_SENTINEL = "all"

_NUMBER_RE = re.compile(r"^\d+$")


@dataclass(frozen=True)
class PageSelection:
    """Strictly ascending 1-based page numbers, or every page of the source."""

    pages: tuple[int, ...] = ()
    all_pages: bool = False

    def __post_init__(self) -> None:
        if any(p < 1 for p in self.pages):
            raise InvalidRange("Page numbers must be >= 1")
        if list(self.pages) != sorted(set(self.pages)):
            raise InvalidRange("Page numbers must be strictly ascending")

    @classmethod
    def first_page(cls) -> PageSelection:
        return cls(pages=(1,))

    @classmethod
    def every_page(cls) -> PageSelection:
        return cls(all_pages=True)

    def describe(self) -> str:
        return ALL_SENTINEL if self.all_pages else ",".join(str(p) for p in self.pages)

    def resolve(self, page_count: int) -> tuple[list[int], list[int]]:
        """Return (selected, ignored) for a document with ``page_count`` pages.

        Out-of-range numbers are ignored rather than rejected; an empty
        result raises NoPagesSelected.
        """
        if self.all_pages:
            selected = list(range(1, page_count + 1))
            ignored: list[int] = []
        else:
            selected = [p for p in self.pages if p <= page_count]
            ignored = [p for p in self.pages if p > page_count]
        if not selected:
            raise NoPagesSelected(
                f"No pages selected: '{self.describe()}' does not match a document with {page_count} page(s)"
            )
        return selected, ignored


def _parse_number(token: str, original: str) -> int:
    token = token.strip()
    if not _NUMBER_RE.match(token):
        raise InvalidRange(f"Invalid page token: '{original}'")
    value = int(token)
    if value < 1:
        raise InvalidRange(f"Page numbers must be >= 1: '{original}'")
    return value


def parse_pages(selector: str | None) -> PageSelection:
    """Parse a selector such as ``"1-3,5"`` into a PageSelection.

    An empty selector or ``"all"`` selects every page; empty tokens
    between commas are skipped.
    """
    if selector is None or not selector.strip() or selector.strip().lower() == ALL_SENTINEL:
        return PageSelection.every_page()

    pages: set[int] = set()
    for part in selector.split(","):
        token = part.strip()
        if not token:
            continue
        if "-" in token:
            start_raw, _, end_raw = token.partition("-")
            if "-" in end_raw:
                raise InvalidRange(f"Invalid page range: '{token}'")
            start = _parse_number(start_raw, token)
            end = _parse_number(end_raw, token)
            if start > end:
                raise InvalidRange(f"Page range start exceeds end: '{token}'")
            pages.update(range(start, end + 1))
        else:
            pages.add(_parse_number(token, token))

    if not pages:
        return PageSelection.every_page()
    return PageSelection(pages=tuple(sorted(pages)))
