"""Input-type detection and a uniform decode interface over every format family."""

from __future__ import annotations

import importlib.util
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator

from .documents import URL_PREFIXES, Document, SinglePageDocument, Source
from .errors import CollaboratorUnavailable, DecodeFailed, UnsupportedFormat
from .models import InputType, RasterPage
from .office import OFFICE_EXTENSIONS, convert_to_pdf, soffice_available
from .paginated import PdfDocument
from .plugin import PluginSpec, run_plugin
from .raster import FrameSequenceDocument, decode_image, frame_count, is_raster
from .text import render_text
from .vector import SizeHint, render_svg
from .web import HTML_EXTENSIONS, HTML_MAGIC, is_url, screenshot_html

logger = logging.getLogger("termpix.renderer")

Opener = Callable[[Source, "SizeHint | None"], Document]

# Python modules each collaborator needs before anything is decoded.
_REQUIRED_MODULES: dict[InputType, tuple[str, ...]] = {
    InputType.IMAGE: (),
    InputType.SVG: ("PySide6",),
    InputType.PDF: ("pypdfium2",),
    InputType.HTML: ("playwright",),
    InputType.OFFICE: ("pypdfium2",),
    InputType.TEXT: (),
}


@dataclass(frozen=True)
class RenderOptions:
    pdf_dpi: int = 150
    grayscale: bool = False
    html_viewport_width: int = 1280
    text_font_size: int = 14
    text_style: str = "default"
    language: str | None = None
    office_timeout_s: float = 120.0


class RendererGateway:
    def __init__(
        self,
        options: RenderOptions | None = None,
        plugins: Iterable[PluginSpec] = (),
        work_dir: Path | None = None,
        reuse_conversions: bool = True,
    ) -> None:
        self.options = options or RenderOptions()
        self.plugins = list(plugins)
        self.work_dir = work_dir
        self.reuse_conversions = reuse_conversions
        # Collaborators wrap single-instance engines: one decode at a time per type.
        self._locks = {t: threading.Lock() for t in _REQUIRED_MODULES}
        self._openers: dict[InputType, Opener] = {
            InputType.IMAGE: self._open_image,
            InputType.SVG: self._open_svg,
            InputType.PDF: self._open_pdf,
            InputType.HTML: self._open_html,
            InputType.OFFICE: self._open_office,
            InputType.TEXT: self._open_text,
        }
        missing = set(_REQUIRED_MODULES) - set(self._openers)
        if missing:
            raise RuntimeError(f"No opener for {sorted(t.value for t in missing)}")

    def register(self, input_type: InputType, opener: Opener) -> None:
        if input_type not in self._openers:
            raise ValueError(f"Unknown input type: {input_type}")
        self._openers[input_type] = opener

    @staticmethod
    def resolve_source(source: Source) -> Source:
        """Follow piped data that is itself a URL or a path to an existing file."""
        if source.path is not None or source.url is not None:
            return source
        data = source.read()
        if not data or len(data) > 4096 or b"\n" in data.strip():
            return source
        try:
            text = data.decode("utf-8").strip()
        except UnicodeDecodeError:
            return source
        if text.startswith(URL_PREFIXES):
            return Source(name=text, url=text)
        candidate = Path(text)
        if text and candidate.is_file():
            return Source.from_path(candidate)
        return source

    def detect(self, source: Source, requested: InputType = InputType.AUTO) -> tuple[InputType, PluginSpec | None]:
        if requested != InputType.AUTO:
            return requested, None
        if source.url:
            return InputType.HTML, None

        data = source.read()
        ext = source.extension
        for plugin in self.plugins:
            if plugin.matches(data, ext):
                return plugin.output, plugin
        if not data:
            raise UnsupportedFormat("Failed to decode input: empty input")

        head = data[:512].lstrip()
        if ext in HTML_EXTENSIONS or is_url(head) or head.startswith(HTML_MAGIC):
            return InputType.HTML, None
        if ext == "svg" or head.startswith((b"<svg", b"<?xml")):
            return InputType.SVG, None
        if ext == "pdf" or data.startswith(b"%PDF"):
            return InputType.PDF, None
        if ext in OFFICE_EXTENSIONS:
            return InputType.OFFICE, None
        if is_raster(data):
            return InputType.IMAGE, None
        try:
            data.decode("utf-8")
        except UnicodeDecodeError:
            raise UnsupportedFormat("Failed to decode input: the image format could not be determined") from None
        return InputType.TEXT, None

    @staticmethod
    def probe(input_type: InputType) -> None:
        """Fail early when a collaborator's library or program is missing."""
        for module in _REQUIRED_MODULES.get(input_type, ()):
            if importlib.util.find_spec(module) is None:
                raise CollaboratorUnavailable(module, f"pip install {module}")
        if input_type == InputType.OFFICE and not soffice_available():
            raise CollaboratorUnavailable("LibreOffice (soffice)", "install LibreOffice and put soffice on PATH")

    @staticmethod
    def availability() -> dict[str, bool]:
        status = {t.value: True for t in _REQUIRED_MODULES}
        for input_type in _REQUIRED_MODULES:
            try:
                RendererGateway.probe(input_type)
            except CollaboratorUnavailable:
                status[input_type.value] = False
        return status

    def open(
        self,
        source: Source,
        input_type: InputType = InputType.AUTO,
        size_hint: SizeHint | None = None,
    ) -> Document:
        source = self.resolve_source(source)
        resolved, plugin = self.detect(source, input_type)
        self.probe(resolved)
        if plugin is not None:
            logger.info("running plugin %s", plugin.name, extra={"event": "plugin_run"})
            with self._locks[resolved]:
                output = run_plugin(plugin, source.read())
            source = Source.from_bytes(output, name=source.name)

        document = self._openers[resolved](source, size_hint)
        # Office output is rendered by the same PDF engine.
        document.lock = self._locks[InputType.PDF if isinstance(document, PdfDocument) else resolved]
        logger.debug(
            "opened %s as %s with %d page(s)",
            source.name,
            resolved.value,
            document.page_count,
            extra={"event": "document_open"},
        )
        return document

    def iter_pages(
        self, document: Document, numbers: Iterable[int]
    ) -> Iterator[tuple[int, RasterPage | DecodeFailed]]:
        """Yield ``(number, page or failure)`` for the requested pages in ascending order."""
        wanted = sorted(set(numbers))
        if document.random_access:
            for number in wanted:
                try:
                    outcome: RasterPage | DecodeFailed = document.render_page(number)
                except DecodeFailed as exc:
                    outcome = exc
                yield number, outcome
            return
        remaining = set(wanted)
        for number, outcome in document.iter_pages():
            if number not in remaining:
                if isinstance(outcome, DecodeFailed):
                    logger.debug(
                        "unselected page %d of %s failed: %s",
                        number,
                        document.name,
                        outcome,
                        extra={"event": "page_discarded"},
                    )
                continue
            remaining.discard(number)
            yield number, outcome
            if not remaining:
                return

    def _open_image(self, source: Source, _hint: SizeHint | None) -> Document:
        data = source.read()
        if frame_count(data) > 1:
            return FrameSequenceDocument(data, source.name)
        return SinglePageDocument(InputType.IMAGE, source.name, lambda: decode_image(data))

    def _open_svg(self, source: Source, hint: SizeHint | None) -> Document:
        data = source.read()
        return SinglePageDocument(InputType.SVG, source.name, lambda: render_svg(data, hint))

    def _open_pdf(self, source: Source, _hint: SizeHint | None) -> Document:
        with self._locks[InputType.PDF]:
            document = PdfDocument(
                source.read(),
                source.name,
                dpi=self.options.pdf_dpi,
                grayscale=self.options.grayscale,
            )
        document.identity = source.digest()
        return document

    def _open_office(self, source: Source, _hint: SizeHint | None) -> Document:
        data = source.read()
        with self._locks[InputType.OFFICE]:
            pdf = convert_to_pdf(
                data,
                source.extension,
                self.work_dir,
                timeout=self.options.office_timeout_s,
                reuse=self.reuse_conversions,
            )
            document = PdfDocument(
                pdf,
                source.name,
                dpi=self.options.pdf_dpi,
                grayscale=self.options.grayscale,
                input_type=InputType.OFFICE,
            )
        document.identity = source.digest()
        return document

    def _open_html(self, source: Source, _hint: SizeHint | None) -> Document:
        width = self.options.html_viewport_width
        return SinglePageDocument(InputType.HTML, source.name, lambda: screenshot_html(source, viewport_width=width))

    def _open_text(self, source: Source, _hint: SizeHint | None) -> Document:
        data = source.read()
        opts = self.options
        filename = source.path.name if source.path is not None else None
        return SinglePageDocument(
            InputType.TEXT,
            source.name,
            lambda: render_text(
                data,
                language=opts.language,
                filename=filename,
                font_size=opts.text_font_size,
                style=opts.text_style,
            ),
        )
