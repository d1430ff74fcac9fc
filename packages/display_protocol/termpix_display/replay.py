"""Replay/analysis utilities for captured graphics escape streams."""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass, field
from pathlib import Path

from .models import TransmissionUnit


_APC_RE = re.compile(rb"\x1b_G([^;\x1b]*)(?:;([^\x1b]*))?\x1b\\")


@dataclass
class ReplayImage:
    image_id: int | None
    control: dict[str, str] = field(default_factory=dict)
    chunks: list[bytes] = field(default_factory=list)
    complete: bool = False

    @property
    def payload(self) -> bytes:
        return base64.standard_b64decode(b"".join(self.chunks))


@dataclass
class ReplayReport:
    total_units: int = 0
    delete_commands: int = 0
    images: list[ReplayImage] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class StreamReplay:
    @staticmethod
    def _parse_control(raw: bytes) -> tuple[tuple[str, str], ...]:
        pairs: list[tuple[str, str]] = []
        for item in raw.decode("ascii").split(","):
            if not item:
                continue
            key, _, value = item.partition("=")
            pairs.append((key, value))
        return tuple(pairs)

    def parse(self, stream: bytes) -> list[TransmissionUnit]:
        units: list[TransmissionUnit] = []
        for match in _APC_RE.finditer(stream):
            units.append(TransmissionUnit(control=self._parse_control(match.group(1)), payload=match.group(2) or b""))
        return units

    def run(self, stream: bytes, max_chunk: int | None = None) -> ReplayReport:
        units = self.parse(stream)
        report = ReplayReport(total_units=len(units))
        current: ReplayImage | None = None

        for idx, unit in enumerate(units):
            if unit.key("a") == "d":
                report.delete_commands += 1
                continue
            if max_chunk is not None and len(unit.payload) > max_chunk:
                report.errors.append(f"unit_{idx}_oversized")

            raw_id = unit.key("i")
            image_id = int(raw_id) if raw_id else None
            if current is None:
                if unit.key("a") is None:
                    report.errors.append(f"unit_{idx}_missing_header")
                current = ReplayImage(image_id=image_id, control=dict(unit.control))
                report.images.append(current)
            elif image_id != current.image_id:
                report.errors.append(f"unit_{idx}_id_mismatch")

            current.chunks.append(unit.payload)
            if not unit.more:
                current.complete = True
                current = None

        if current is not None:
            report.errors.append("unterminated_image")
        return report

    def run_file(self, path: Path, max_chunk: int | None = None) -> ReplayReport:
        return self.run(path.read_bytes(), max_chunk=max_chunk)
