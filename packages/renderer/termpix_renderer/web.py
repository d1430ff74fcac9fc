"""Full-page HTML screenshots through a headless Chromium (Playwright)."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .documents import URL_PREFIXES, Source
from .errors import CollaboratorUnavailable, DecodeFailed
from .raster import decode_image
from .models import RasterPage

HTML_EXTENSIONS = frozenset({"html", "htm"})
HTML_MAGIC = (b"<html", b"<!DOCTYPE html", b"<!doctype html")


def is_url(data: bytes) -> bool:
    return data.startswith(tuple(p.encode("ascii") for p in URL_PREFIXES))


def _sync_playwright() -> Any:
    try:
        from playwright.sync_api import sync_playwright
    except ImportError as exc:
        raise CollaboratorUnavailable("playwright", "pip install playwright && playwright install chromium") from exc
    return sync_playwright


def _target(source: Source) -> tuple[str | None, str | None]:
    """Return (url, inline_html) for a source."""
    if source.url:
        return source.url, None
    if source.path is not None:
        return source.path.resolve().as_uri(), None

    data = source.read()
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeFailed("HTML input must be valid UTF-8") from exc
    stripped = text.strip()
    if stripped.startswith(URL_PREFIXES):
        return stripped, None
    candidate = Path(stripped) if "\n" not in stripped and len(stripped) < 4096 else None
    if candidate is not None and candidate.is_file():
        return candidate.resolve().as_uri(), None
    return None, text


def screenshot_html(source: Source, viewport_width: int = 1280, timeout_ms: int = 30000) -> RasterPage:
    sync_playwright = _sync_playwright()
    from playwright.sync_api import Error as PlaywrightError

    url, html = _target(source)
    try:
        with sync_playwright() as pw:
            browser = pw.chromium.launch(headless=True)
            try:
                page = browser.new_page(viewport={"width": viewport_width, "height": 800})
                if url is not None:
                    page.goto(url, wait_until="load", timeout=timeout_ms)
                else:
                    page.set_content(html, wait_until="load", timeout=timeout_ms)
                png = page.screenshot(full_page=True, type="png")
            finally:
                browser.close()
    except PlaywrightError as exc:
        if "Executable doesn't exist" in str(exc):
            raise CollaboratorUnavailable("Chromium for Playwright", "run: playwright install chromium") from exc
        raise DecodeFailed(f"Failed to render HTML: {exc}") from exc
    return decode_image(png)
