"""Syntax-highlighted text rendered to a single raster page with Pygments."""

from __future__ import annotations

from pygments import highlight
from pygments.formatters.img import FontNotFound, ImageFormatter
from pygments.lexer import Lexer
from pygments.lexers import TextLexer, get_lexer_by_name, guess_lexer, guess_lexer_for_filename
from pygments.util import ClassNotFound

from .errors import CollaboratorUnavailable, DecodeFailed
from .models import RasterPage
from .raster import decode_image


def pick_lexer(text: str, language: str | None = None, filename: str | None = None) -> Lexer:
    if language:
        try:
            return get_lexer_by_name(language)
        except ClassNotFound as exc:
            raise DecodeFailed(f"Unknown language: {language}") from exc
    if filename:
        try:
            return guess_lexer_for_filename(filename, text)
        except ClassNotFound:
            pass
    try:
        return guess_lexer(text)
    except ClassNotFound:
        return TextLexer()


def render_text(
    data: bytes,
    language: str | None = None,
    filename: str | None = None,
    font_size: int = 14,
    style: str = "default",
) -> RasterPage:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeFailed("Text input must be valid UTF-8") from exc

    lexer = pick_lexer(text, language=language, filename=filename)
    try:
        formatter = ImageFormatter(image_format="png", font_size=font_size, style=style, line_numbers=False)
    except FontNotFound as exc:
        raise CollaboratorUnavailable("a monospace font for Pygments", str(exc)) from exc
    except OSError as exc:
        # Font lookup shells out to fc-list on Linux.
        raise CollaboratorUnavailable("fontconfig (fc-list)", "install fontconfig and a monospace font") from exc
    except ClassNotFound as exc:
        raise DecodeFailed(f"Unknown highlight style: {style}") from exc
    png = highlight(text or " ", lexer, formatter)
    return decode_image(png)
