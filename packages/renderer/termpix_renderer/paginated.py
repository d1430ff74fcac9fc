"""PDF decoder backed by pypdfium2."""

from __future__ import annotations

from typing import Any

from .documents import Document
from .errors import CollaboratorUnavailable, DecodeFailed
from .models import InputType, RasterPage

POINTS_PER_INCH = 72


def _pdfium() -> Any:
    try:
        import pypdfium2 as pdfium
    except ImportError as exc:
        raise CollaboratorUnavailable("pypdfium2", "pip install pypdfium2") from exc
    return pdfium


class PdfDocument(Document):
    """Random-access PDF pages rendered at a fixed DPI."""

    cache_eligible = True

    def __init__(
        self,
        data: bytes,
        name: str,
        dpi: int = 150,
        grayscale: bool = False,
        input_type: InputType = InputType.PDF,
    ) -> None:
        pdfium = _pdfium()
        try:
            self._pdf = pdfium.PdfDocument(data)
        except pdfium.PdfiumError as exc:
            raise DecodeFailed(f"Failed to open PDF: {exc}") from exc
        super().__init__(input_type, name, page_count=len(self._pdf))
        self.dpi = dpi
        self.grayscale = grayscale
        self.render_options = {"dpi": dpi, "grayscale": grayscale}

    def _render(self, number: int) -> RasterPage:
        page = self._pdf[number - 1]
        try:
            bitmap = page.render(
                scale=self.dpi / POINTS_PER_INCH,
                grayscale=self.grayscale,
                may_draw_forms=True,
            )
            image = bitmap.to_pil()
        except Exception as exc:
            raise DecodeFailed(f"Failed to render page {number}: {exc}", page_number=number) from exc
        finally:
            page.close()
        return RasterPage.from_image(image, page_number=number)

    def close(self) -> None:
        self._pdf.close()
