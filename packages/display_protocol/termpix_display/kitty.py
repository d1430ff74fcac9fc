"""Kitty graphics protocol encoder for terminal image transmission."""

from __future__ import annotations

import base64
import itertools
import os
import time
import zlib
from io import BytesIO
from typing import Iterator

from PIL import Image

from .models import EncodedImage, PreparedFrame, TransmissionMode, TransmissionUnit

# Maximum base64 bytes per escape sequence.
KITTY_CHUNK_SIZE = 4096
FORMAT_RGBA = 32
FORMAT_PNG = 100

_ID_MASK = 0x7FFFFFFF


def _seed_image_id() -> int:
    seed = (time.time_ns() ^ (os.getpid() << 16)) & _ID_MASK
    return seed or 1


def split_chunks(encoded: bytes, chunk_size: int = KITTY_CHUNK_SIZE) -> list[bytes]:
    if chunk_size < 4 or chunk_size % 4 != 0:
        raise ValueError("Chunk size must be a positive multiple of 4")
    if not encoded:
        return [b""]
    return [encoded[i : i + chunk_size] for i in range(0, len(encoded), chunk_size)]


def encode_payload(frame: PreparedFrame, mode: TransmissionMode) -> bytes:
    if mode == TransmissionMode.RAW:
        return frame.pixels
    if mode == TransmissionMode.ZLIB:
        return zlib.compress(frame.pixels)
    image = Image.frombytes("RGBA", (frame.width, frame.height), frame.pixels)
    buf = BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


class KittyEncoder:
    """Turns prepared frames into chunked APC graphics commands."""

    def __init__(
        self,
        chunk_size: int = KITTY_CHUNK_SIZE,
        first_image_id: int | None = None,
        quiet: int = 2,
    ) -> None:
        if chunk_size < 4 or chunk_size % 4 != 0:
            raise ValueError("Chunk size must be a positive multiple of 4")
        self.chunk_size = chunk_size
        self.quiet = quiet
        self._ids: Iterator[int] = itertools.count(first_image_id or _seed_image_id())

    def next_image_id(self) -> int:
        value = next(self._ids) & _ID_MASK
        if value == 0:
            value = next(self._ids) & _ID_MASK
        return value

    def _header(self, frame: PreparedFrame, mode: TransmissionMode, image_id: int) -> list[tuple[str, str]]:
        control = [("a", "T")]
        if mode == TransmissionMode.PNG:
            control.append(("f", str(FORMAT_PNG)))
        else:
            control.append(("f", str(FORMAT_RGBA)))
            control.append(("s", str(frame.width)))
            control.append(("v", str(frame.height)))
            if mode == TransmissionMode.ZLIB:
                control.append(("o", "z"))
        control.append(("i", str(image_id)))
        if self.quiet:
            control.append(("q", str(self.quiet)))
        return control

    def encode(self, frame: PreparedFrame, mode: TransmissionMode = TransmissionMode.PNG) -> EncodedImage:
        mode = TransmissionMode(mode)
        payload = encode_payload(frame, mode)
        image_id = self.next_image_id()
        chunks = split_chunks(base64.standard_b64encode(payload), self.chunk_size)

        units: list[TransmissionUnit] = []
        last = len(chunks) - 1
        for idx, chunk in enumerate(chunks):
            more = "0" if idx == last else "1"
            if idx == 0:
                control = self._header(frame, mode, image_id)
            else:
                control = [("i", str(image_id))]
            control.append(("m", more))
            units.append(TransmissionUnit(control=tuple(control), payload=chunk))

        return EncodedImage(
            image_id=image_id,
            mode=mode,
            width=frame.width,
            height=frame.height,
            payload=payload,
            units=tuple(units),
            page_number=frame.page_number,
        )

    @staticmethod
    def delete_all() -> TransmissionUnit:
        return TransmissionUnit(control=(("a", "d"),))

