"""Raster image decoder backed by Pillow."""

from __future__ import annotations

from io import BytesIO

from PIL import Image, UnidentifiedImageError

from .documents import Document
from .errors import DecodeFailed
from .models import InputType, RasterPage


def is_raster(data: bytes) -> bool:
    try:
        with Image.open(BytesIO(data)) as image:
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return False
    return True


def frame_count(data: bytes) -> int:
    try:
        with Image.open(BytesIO(data)) as image:
            return max(1, int(getattr(image, "n_frames", 1)))
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return 1


def decode_image(data: bytes, page_number: int = 1) -> RasterPage:
    try:
        with Image.open(BytesIO(data)) as image:
            image.load()
            return RasterPage.from_image(image, page_number=page_number)
    except UnidentifiedImageError as exc:
        raise DecodeFailed("Failed to load image: the image format could not be determined") from exc
    except (OSError, SyntaxError, ValueError) as exc:
        raise DecodeFailed(f"Failed to load image: {exc}") from exc


class FrameSequenceDocument(Document):
    """Animated GIF, WebP or multi-page TIFF with one page per frame.

    Frames are delta-coded against earlier ones, so the document is walked
    from the first frame rather than seeked.
    """

    random_access = False

    def __init__(self, data: bytes, name: str) -> None:
        try:
            image = Image.open(BytesIO(data))
        except UnidentifiedImageError as exc:
            raise DecodeFailed("Failed to load image: the image format could not be determined") from exc
        except (OSError, SyntaxError, ValueError) as exc:
            raise DecodeFailed(f"Failed to load image: {exc}") from exc
        super().__init__(InputType.IMAGE, name, page_count=max(1, int(getattr(image, "n_frames", 1))))
        self._image = image

    def _render(self, number: int) -> RasterPage:
        try:
            self._image.seek(number - 1)
            self._image.load()
            return RasterPage.from_image(self._image, page_number=number)
        except (EOFError, OSError, SyntaxError, ValueError) as exc:
            raise DecodeFailed(f"Failed to load frame {number}: {exc}", page_number=number) from exc

    def close(self) -> None:
        self._image.close()
