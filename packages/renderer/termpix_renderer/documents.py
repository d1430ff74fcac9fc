"""Document handles shared by every decoder variant."""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator

from .errors import DecodeFailed
from .models import InputType, RasterPage

URL_PREFIXES = ("http://", "https://", "file://")


@dataclass
class Source:
    """Input as given on the command line or piped on stdin."""

    name: str
    path: Path | None = None
    url: str | None = None
    _data: bytes | None = field(default=None, repr=False)

    @classmethod
    def from_path(cls, path: Path) -> Source:
        return cls(name=str(path), path=path)

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "stdin") -> Source:
        return cls(name=name, _data=data)

    @property
    def extension(self) -> str:
        if self.path is None:
            return ""
        return self.path.suffix.lower().lstrip(".")

    def read(self) -> bytes:
        if self._data is None:
            if self.path is None:
                return (self.url or "").encode("utf-8")
            try:
                self._data = self.path.read_bytes()
            except OSError as exc:
                raise DecodeFailed(f"Failed to open file: {exc}") from exc
        return self._data

    def digest(self) -> str:
        return hashlib.sha256(self.read()).hexdigest()


class Document:
    """A decoded source exposing its page count before any page is rendered.

    ``random_access`` documents render any page directly; sequential ones
    are walked from the first page and unselected pages are discarded.
    """

    random_access = True
    cache_eligible = False

    def __init__(self, input_type: InputType, name: str, page_count: int) -> None:
        self.input_type = input_type
        self.name = name
        self.page_count = page_count
        self.identity: str | None = None
        self.render_options: dict[str, Any] = {}
        self.lock: threading.Lock = threading.Lock()

    def render_page(self, number: int) -> RasterPage:
        if not 1 <= number <= self.page_count:
            raise DecodeFailed(f"Page {number} out of range (1-{self.page_count})", page_number=number)
        with self.lock:
            return self._render(number)

    def iter_pages(self) -> Iterator[tuple[int, RasterPage | DecodeFailed]]:
        """Walk every page in order; a failed page yields its error and the walk goes on."""
        for number in range(1, self.page_count + 1):
            try:
                outcome: RasterPage | DecodeFailed = self.render_page(number)
            except DecodeFailed as exc:
                if exc.page_number is None:
                    exc.page_number = number
                outcome = exc
            yield number, outcome

    def _render(self, number: int) -> RasterPage:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> Document:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()


class SinglePageDocument(Document):
    def __init__(self, input_type: InputType, name: str, loader: Callable[[], RasterPage]) -> None:
        super().__init__(input_type, name, page_count=1)
        self._loader = loader

    def _render(self, number: int) -> RasterPage:
        return self._loader()
