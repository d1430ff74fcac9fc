"""Content-addressed on-disk cache of rendered pages."""

from __future__ import annotations

import hashlib
import json
import os
import struct
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from termpix_renderer import CacheIOError, PixelFormat, RasterPage

from .logging_setup import get_logger

ENTRY_MAGIC = b"TPXC1\n"
ENTRY_SUFFIX = ".page"
_HEADER_LEN = struct.Struct(">I")


@dataclass(frozen=True)
class CacheKey:
    """Fingerprint of everything that changes the rendered pixels of one page."""

    identity: str
    page_number: int
    options: tuple[tuple[str, Any], ...] = ()

    @classmethod
    def build(cls, identity: str, page_number: int, options: dict[str, Any] | None = None) -> CacheKey:
        return cls(identity=identity, page_number=page_number, options=tuple(sorted((options or {}).items())))

    @property
    def fingerprint(self) -> str:
        material = json.dumps(
            {"identity": self.identity, "page": self.page_number, "options": list(self.options)},
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(material.encode("utf-8")).hexdigest()


def serialize_page(key: CacheKey, page: RasterPage) -> bytes:
    header = json.dumps(
        {
            "fingerprint": key.fingerprint,
            "width": page.width,
            "height": page.height,
            "pixel_format": page.pixel_format.value,
            "page_number": page.page_number,
        },
        sort_keys=True,
    ).encode("utf-8")
    return ENTRY_MAGIC + _HEADER_LEN.pack(len(header)) + header + page.pixels


def deserialize_page(key: CacheKey, blob: bytes) -> RasterPage:
    if not blob.startswith(ENTRY_MAGIC):
        raise CacheIOError("bad entry magic")
    offset = len(ENTRY_MAGIC)
    if len(blob) < offset + _HEADER_LEN.size:
        raise CacheIOError("truncated entry header")
    (header_len,) = _HEADER_LEN.unpack_from(blob, offset)
    offset += _HEADER_LEN.size
    try:
        header = json.loads(blob[offset : offset + header_len].decode("utf-8"))
    except ValueError as exc:
        raise CacheIOError(f"unreadable entry header: {exc}") from exc
    if header.get("fingerprint") != key.fingerprint:
        raise CacheIOError("fingerprint mismatch")
    try:
        return RasterPage(
            width=int(header["width"]),
            height=int(header["height"]),
            pixel_format=PixelFormat(header["pixel_format"]),
            pixels=blob[offset + header_len :],
            page_number=int(header["page_number"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise CacheIOError(f"invalid entry: {exc}") from exc


class RenderCache:
    """Memoizes expensive renders; every I/O problem degrades to a miss."""

    def __init__(self, directory: Path, enabled: bool = True) -> None:
        self.directory = Path(directory)
        self.enabled = enabled
        self.hits = 0
        self.misses = 0
        self.stores = 0
        self._log = get_logger()

    def path_for(self, key: CacheKey) -> Path:
        digest = key.fingerprint
        return self.directory / digest[:2] / f"{digest}{ENTRY_SUFFIX}"

    def lookup(self, key: CacheKey) -> RasterPage | None:
        if not self.enabled:
            self.misses += 1
            return None
        path = self.path_for(key)
        try:
            blob = path.read_bytes()
        except FileNotFoundError:
            self.misses += 1
            return None
        except OSError as exc:
            self._warn("cache read failed", path, exc)
            self.misses += 1
            return None

        try:
            page = deserialize_page(key, blob)
        except CacheIOError as exc:
            self._warn("cache entry corrupt", path, exc)
            self._unlink(path)
            self.misses += 1
            return None
        self.hits += 1
        self._log.debug("cache hit %s", path.name, extra={"event": "cache_hit"})
        return page

    def store(self, key: CacheKey, page: RasterPage) -> bool:
        if not self.enabled:
            return False
        path = self.path_for(key)
        blob = serialize_page(key, page)
        try:
            if path.exists() and path.read_bytes() == blob:
                return True
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", dir=path.parent)
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(blob)
                os.replace(tmp_name, path)
            except BaseException:
                self._unlink(Path(tmp_name))
                raise
        except OSError as exc:
            self._warn("cache write failed", path, exc)
            return False
        self.stores += 1
        self._log.debug("cache store %s", path.name, extra={"event": "cache_store"})
        return True

    def discard(self, key: CacheKey) -> None:
        self._unlink(self.path_for(key))

    def entry_count(self) -> int:
        if not self.directory.is_dir():
            return 0
        return sum(1 for _ in self.directory.glob(f"*/*{ENTRY_SUFFIX}"))

    def _unlink(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            self._warn("cache delete failed", path, exc)

    def _warn(self, message: str, path: Path, exc: Exception) -> None:
        self._log.warning("%s for %s: %s", message, path, exc, extra={"event": "cache_io_error"})
