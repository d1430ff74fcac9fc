"""Display protocol package for kitty-compatible terminal graphics."""

from .errors import TerminalWriteError
from .kitty import KITTY_CHUNK_SIZE, KittyEncoder, encode_payload, split_chunks
from .models import (
    EncodedImage,
    PreparedFrame,
    SendStats,
    TerminalGeometry,
    TransmissionMode,
    TransmissionUnit,
)
from .replay import ReplayImage, ReplayReport, StreamReplay
from .transport import TerminalTransport, is_interactive, query_geometry

__all__ = [
    "EncodedImage",
    "KITTY_CHUNK_SIZE",
    "KittyEncoder",
    "PreparedFrame",
    "ReplayImage",
    "ReplayReport",
    "SendStats",
    "StreamReplay",
    "TerminalGeometry",
    "TerminalTransport",
    "TerminalWriteError",
    "TransmissionMode",
    "TransmissionUnit",
    "encode_payload",
    "is_interactive",
    "query_geometry",
    "split_chunks",
]
