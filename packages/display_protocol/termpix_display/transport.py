"""Terminal transport: escape-sequence writer and geometry probe."""

from __future__ import annotations

import shutil
import struct
import sys
from pathlib import Path
from typing import Any, BinaryIO

from .errors import TerminalWriteError
from .models import EncodedImage, SendStats, TerminalGeometry, TransmissionUnit

if sys.platform != "win32":
    import fcntl
    import termios
else:  # pragma: no cover
    fcntl = None
    termios = None


def _ioctl_winsize(fd: int) -> tuple[int, int, int, int] | None:
    if fcntl is None or termios is None:
        return None
    try:
        packed = fcntl.ioctl(fd, termios.TIOCGWINSZ, b"\x00" * 8)
    except OSError:
        return None
    rows, cols, xpixel, ypixel = struct.unpack("HHHH", packed)
    return rows, cols, xpixel, ypixel


def query_geometry(
    fd: int | None = None,
    fallback_cell_width: int = 10,
    fallback_cell_height: int = 20,
    reserved_rows: int = 2,
) -> TerminalGeometry:
    """Read columns, rows and cell size of the controlling terminal.

    Terminals that do not report a pixel size get the fallback cell size,
    and a missing terminal falls back to 80x24.
    """
    if fd is None:
        try:
            fd = sys.stdout.fileno()
        except (AttributeError, OSError, ValueError):
            fd = 1
    winsize = _ioctl_winsize(fd)
    if winsize and winsize[0] > 0 and winsize[1] > 0:
        rows, cols, xpixel, ypixel = winsize
    else:
        size = shutil.get_terminal_size((80, 24))
        rows, cols, xpixel, ypixel = size.lines, size.columns, 0, 0

    cell_w = xpixel // cols if xpixel and cols else fallback_cell_width
    cell_h = ypixel // rows if ypixel and rows else fallback_cell_height
    return TerminalGeometry(
        columns=cols,
        rows=rows,
        cell_width=max(1, cell_w),
        cell_height=max(1, cell_h),
        reserved_rows=reserved_rows,
    )


def is_interactive(stream: Any) -> bool:
    try:
        return bool(stream.isatty())
    except (AttributeError, ValueError):
        return False


class TerminalTransport:
    """Single writer for escape sequences; callers serialize through it."""

    def __init__(self, stream: BinaryIO | None = None, newline: bool = True) -> None:
        self._stream = stream
        self.newline = newline
        self.stats = SendStats()

    @property
    def stream(self) -> BinaryIO:
        if self._stream is None:
            self._stream = sys.stdout.buffer
        return self._stream

    def _write(self, data: bytes) -> int:
        try:
            written = self.stream.write(data)
        except (OSError, ValueError) as exc:
            raise TerminalWriteError(f"Failed to write to terminal: {exc}") from exc
        return len(data) if written is None else int(written)

    def flush(self) -> None:
        try:
            self.stream.flush()
        except (OSError, ValueError) as exc:
            raise TerminalWriteError(f"Failed to flush terminal: {exc}") from exc

    def send_unit(self, unit: TransmissionUnit) -> int:
        sent = self._write(unit.to_bytes())
        self.stats.bytes_sent += sent
        self.stats.units_sent += 1
        return sent

    def send_image(self, image: EncodedImage) -> int:
        sent = 0
        for unit in image.units:
            sent += self.send_unit(unit)
        if self.newline:
            sent += self._write(b"\n")
            self.stats.bytes_sent += 1
        self.flush()
        self.stats.images_sent += 1
        return sent

    def write_file(self, image: EncodedImage, path: Path, overwrite: bool = False) -> Path:
        if path.exists() and not overwrite:
            raise FileExistsError(f"Output file already exists: {path}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(image.payload)
        except OSError as exc:
            raise TerminalWriteError(f"Failed to write {path}: {exc}") from exc
        self.stats.files_written.append(str(path))
        self.stats.images_sent += 1
        return path

