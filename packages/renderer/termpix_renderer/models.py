"""Typed renderer models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np
from PIL import Image


class PixelFormat(str, Enum):
    RGBA8 = "RGBA8"
    RGBA16 = "RGBA16"

    @property
    def bytes_per_pixel(self) -> int:
        return 8 if self is PixelFormat.RGBA16 else 4


class InputType(str, Enum):
    AUTO = "auto"
    IMAGE = "image"
    SVG = "svg"
    PDF = "pdf"
    HTML = "html"
    OFFICE = "office"
    TEXT = "text"


@dataclass(frozen=True)
class RasterPage:
    """One decoded page; RGBA16 samples are big-endian like PNG."""

    width: int
    height: int
    pixel_format: PixelFormat
    pixels: bytes
    page_number: int = 1

    def __post_init__(self) -> None:
        if self.width < 1 or self.height < 1:
            raise ValueError("Page dimensions must be at least 1x1")
        expected = self.width * self.height * self.pixel_format.bytes_per_pixel
        if len(self.pixels) != expected:
            raise ValueError(f"Page buffer must be {expected} bytes, got {len(self.pixels)}")
        if self.page_number < 1:
            raise ValueError("Page numbers are 1-based")

    @classmethod
    def from_image(cls, image: Image.Image, page_number: int = 1) -> RasterPage:
        if image.mode in ("I;16", "I;16B", "I;16L", "I;16N"):
            gray = np.asarray(image, dtype=np.uint16)
            alpha = np.full(gray.shape, 0xFFFF, dtype=np.uint16)
            rgba = np.stack([gray, gray, gray, alpha], axis=-1)
            return cls(
                width=image.width,
                height=image.height,
                pixel_format=PixelFormat.RGBA16,
                pixels=rgba.astype(">u2").tobytes(),
                page_number=page_number,
            )
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return cls(
            width=image.width,
            height=image.height,
            pixel_format=PixelFormat.RGBA8,
            pixels=image.tobytes(),
            page_number=page_number,
        )

    def to_array(self) -> np.ndarray:
        if self.pixel_format is PixelFormat.RGBA16:
            arr = np.frombuffer(self.pixels, dtype=">u2")
        else:
            arr = np.frombuffer(self.pixels, dtype=np.uint8)
        return arr.reshape((self.height, self.width, 4))

    def to_rgba8(self) -> RasterPage:
        if self.pixel_format is PixelFormat.RGBA8:
            return self
        arr = (self.to_array() >> 8).astype(np.uint8)
        return RasterPage(
            width=self.width,
            height=self.height,
            pixel_format=PixelFormat.RGBA8,
            pixels=arr.tobytes(),
            page_number=self.page_number,
        )

    @property
    def has_alpha(self) -> bool:
        arr = self.to_array()
        full = 0xFFFF if self.pixel_format is PixelFormat.RGBA16 else 0xFF
        return bool((arr[..., 3] != full).any())
