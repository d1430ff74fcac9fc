"""SVG rasterization through Qt's SVG renderer."""

from __future__ import annotations

import os
from typing import Any, Callable, Mapping

from .errors import CollaboratorUnavailable, DecodeFailed
from .models import PixelFormat, RasterPage

SizeHint = Callable[[int, int], "tuple[int, int]"]

# QGuiApplication must outlive every QImage painted in this process.
_APP: Any = None


def _qt() -> tuple[Any, ...]:
    try:
        from PySide6.QtCore import QByteArray
        from PySide6.QtGui import QGuiApplication, QImage, QPainter
        from PySide6.QtSvg import QSvgRenderer
    except ImportError as exc:
        raise CollaboratorUnavailable("PySide6", "pip install PySide6") from exc
    return QByteArray, QGuiApplication, QImage, QPainter, QSvgRenderer


def qpa_platform(environ: Mapping[str, str]) -> str:
    """Qt platform plugin for a process that only paints into QImages."""
    current = environ.get("QT_QPA_PLATFORM", "").strip()
    # Windowing plugins abort the process when no display is reachable.
    if current in ("offscreen", "minimal"):
        return current
    return "offscreen"


def _ensure_app(app_type: Any) -> None:
    global _APP
    if app_type.instance() is None:
        os.environ["QT_QPA_PLATFORM"] = qpa_platform(os.environ)
        _APP = app_type(["termpix"])


def render_svg(data: bytes, size_hint: SizeHint | None = None) -> RasterPage:
    """Rasterize SVG markup directly at the size chosen by ``size_hint``."""
    QByteArray, QGuiApplication, QImage, QPainter, QSvgRenderer = _qt()
    _ensure_app(QGuiApplication)

    renderer = QSvgRenderer(QByteArray(data))
    if not renderer.isValid():
        raise DecodeFailed("Failed to parse SVG")

    default = renderer.defaultSize()
    src_w, src_h = max(1, default.width()), max(1, default.height())
    width, height = size_hint(src_w, src_h) if size_hint else (src_w, src_h)

    image = QImage(width, height, QImage.Format.Format_RGBA8888)
    image.fill(0)
    painter = QPainter(image)
    try:
        renderer.render(painter)
    finally:
        painter.end()

    stride = image.bytesPerLine()
    raw = bytes(image.constBits())
    row = width * 4
    if stride != row:
        raw = b"".join(raw[y * stride : y * stride + row] for y in range(height))
    return RasterPage(width=width, height=height, pixel_format=PixelFormat.RGBA8, pixels=raw[: row * height])
