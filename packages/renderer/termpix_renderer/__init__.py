"""Renderer package: decoding, page selection and frame preparation."""

from .documents import Document, SinglePageDocument, Source
from .errors import (
    CacheIOError,
    CollaboratorUnavailable,
    DecodeFailed,
    InvalidRange,
    NoPagesSelected,
    UnsupportedFormat,
    ViewerError,
)
from .gateway import RendererGateway, RenderOptions
from .models import InputType, PixelFormat, RasterPage
from .pages import PageSelection, parse_pages
from .plugin import PluginSpec
from .prepare import FitKind, FitPolicy, compute_target_size, parse_color, prepare

__all__ = [
    "CacheIOError",
    "CollaboratorUnavailable",
    "DecodeFailed",
    "Document",
    "FitKind",
    "FitPolicy",
    "InputType",
    "InvalidRange",
    "NoPagesSelected",
    "PageSelection",
    "PixelFormat",
    "PluginSpec",
    "RasterPage",
    "RenderOptions",
    "RendererGateway",
    "SinglePageDocument",
    "Source",
    "UnsupportedFormat",
    "ViewerError",
    "compute_target_size",
    "parse_color",
    "parse_pages",
    "prepare",
]
