"""Typed models for terminal transmission and geometry."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TransmissionMode(str, Enum):
    PNG = "png"
    ZLIB = "zlib"
    RAW = "raw"


@dataclass(frozen=True)
class TerminalGeometry:
    columns: int
    rows: int
    cell_width: int
    cell_height: int
    reserved_rows: int = 2

    @property
    def width_px(self) -> int:
        return max(1, self.columns * self.cell_width)

    @property
    def height_px(self) -> int:
        # Leave room for the prompt and the newline after the image.
        usable = self.rows - self.reserved_rows if self.rows > self.reserved_rows else self.rows
        return max(1, usable * self.cell_height)


@dataclass(frozen=True)
class PreparedFrame:
    width: int
    height: int
    pixels: bytes
    page_number: int = 1

    def __post_init__(self) -> None:
        if self.width < 1 or self.height < 1:
            raise ValueError("Frame dimensions must be at least 1x1")
        if len(self.pixels) != self.width * self.height * 4:
            raise ValueError(f"Frame buffer must be {self.width * self.height * 4} bytes")


@dataclass(frozen=True)
class TransmissionUnit:
    control: tuple[tuple[str, str], ...]
    payload: bytes = b""

    def key(self, name: str) -> str | None:
        for k, v in self.control:
            if k == name:
                return v
        return None

    @property
    def more(self) -> bool:
        return self.key("m") == "1"

    def to_bytes(self) -> bytes:
        keys = ",".join(f"{k}={v}" for k, v in self.control)
        body = keys.encode("ascii")
        if self.payload:
            body += b";" + self.payload
        return b"\x1b_G" + body + b"\x1b\\"


@dataclass(frozen=True)
class EncodedImage:
    image_id: int
    mode: TransmissionMode
    width: int
    height: int
    payload: bytes
    units: tuple[TransmissionUnit, ...]
    page_number: int = 1


@dataclass
class SendStats:
    bytes_sent: int = 0
    units_sent: int = 0
    images_sent: int = 0
    files_written: list[str] = field(default_factory=list)
