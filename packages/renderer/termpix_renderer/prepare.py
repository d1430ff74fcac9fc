"""Fit policies, background compositing and resize against terminal geometry."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np
from PIL import Image

from termpix_display.models import PreparedFrame, TerminalGeometry

from .models import RasterPage


class FitKind(str, Enum):
    AUTO = "auto"
    EXPLICIT = "explicit"
    FIT_WIDTH = "fullwidth"
    FIT_HEIGHT = "fullheight"
    FIT_BOX = "resize"
    NO_RESIZE = "noresize"


@dataclass(frozen=True)
class FitPolicy:
    kind: FitKind = FitKind.AUTO
    width: int | None = None
    height: int | None = None

    def __post_init__(self) -> None:
        if self.kind == FitKind.EXPLICIT and not (self.width or self.height):
            raise ValueError("Explicit fit needs a width, a height or both")
        for value in (self.width, self.height):
            if value is not None and value < 1:
                raise ValueError("Explicit dimensions must be >= 1")

    @classmethod
    def explicit(cls, width: int | None = None, height: int | None = None) -> FitPolicy:
        return cls(kind=FitKind.EXPLICIT, width=width, height=height)


def parse_color(value: str) -> tuple[int, int, int, int]:
    color = value.strip().lstrip("#")
    if len(color) != 6:
        raise ValueError(f"Invalid color format: {value}")
    try:
        r, g, b = (int(color[i : i + 2], 16) for i in (0, 2, 4))
    except ValueError as exc:
        raise ValueError(f"Invalid color format: {value}") from exc
    return r, g, b, 255


def _round(value: float) -> int:
    return max(1, int(value + 0.5))


def compute_target_size(
    source: tuple[int, int],
    policy: FitPolicy,
    geometry: TerminalGeometry,
) -> tuple[int, int]:
    src_w, src_h = source
    box_w, box_h = geometry.width_px, geometry.height_px
    kind = policy.kind

    if kind == FitKind.AUTO:
        kind = FitKind.FIT_BOX if (src_w > box_w or src_h > box_h) else FitKind.NO_RESIZE

    if kind == FitKind.EXPLICIT:
        if policy.width and policy.height:
            return policy.width, policy.height
        if policy.width:
            return policy.width, _round(src_h * policy.width / src_w)
        return _round(src_w * policy.height / src_h), policy.height
    if kind == FitKind.FIT_WIDTH:
        return box_w, _round(src_h * box_w / src_w)
    if kind == FitKind.FIT_HEIGHT:
        return _round(src_w * box_h / src_h), box_h
    if kind == FitKind.FIT_BOX:
        scale = min(box_w / src_w, box_h / src_h)
        return _round(src_w * scale), _round(src_h * scale)
    return src_w, src_h


def composite_background(rgba: np.ndarray, color: tuple[int, int, int, int]) -> np.ndarray:
    """Blend an HxWx4 uint8 array over an opaque color."""
    src = rgba.astype(np.uint32)
    alpha = src[..., 3:4]
    bg = np.array(color[:3], dtype=np.uint32)
    rgb = (src[..., :3] * alpha + bg * (255 - alpha)) // 255
    out = np.empty_like(rgba)
    out[..., :3] = rgb.astype(np.uint8)
    out[..., 3] = 255
    return out


def prepare(
    page: RasterPage,
    policy: FitPolicy,
    geometry: TerminalGeometry,
    background: tuple[int, int, int, int] | None = None,
) -> PreparedFrame:
    # Every transmission format carries 8-bit samples.
    page = page.to_rgba8()
    rgba = page.to_array()
    if background is not None and page.has_alpha:
        rgba = composite_background(rgba, background)

    image = Image.fromarray(np.ascontiguousarray(rgba))
    target = compute_target_size((page.width, page.height), policy, geometry)
    if target != image.size:
        image = image.resize(target, Image.Resampling.LANCZOS)

    return PreparedFrame(
        width=image.width,
        height=image.height,
        pixels=image.tobytes(),
        page_number=page.page_number,
    )
