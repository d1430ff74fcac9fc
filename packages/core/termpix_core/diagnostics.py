"""Environment report for ``--doctor``."""

from __future__ import annotations

import importlib.util
import platform
import re
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from termpix_display import TerminalGeometry
from termpix_renderer import RendererGateway
from termpix_renderer.office import soffice_available

from .cache import RenderCache
from .config import AppConfig, config_path
from .logging_setup import log_dir


_SECRET_RE = re.compile(r"(token|secret|password|apikey|api_key|auth)", re.IGNORECASE)

_COLLABORATORS = ("PySide6", "pypdfium2", "playwright", "pygments", "PIL", "numpy")


def redact(value: Any) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if _SECRET_RE.search(str(k)):
                out[k] = "***REDACTED***"
            else:
                out[k] = redact(v)
        return out
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def collaborator_status() -> dict[str, bool]:
    status = {name: importlib.util.find_spec(name) is not None for name in _COLLABORATORS}
    status["soffice"] = soffice_available()
    return status


def build_doctor_payload(cfg: AppConfig, cache: RenderCache, geometry: TerminalGeometry) -> dict[str, Any]:
    return {
        "ts_utc": datetime.now(timezone.utc).isoformat(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "config_path": str(config_path()),
        "log_dir": str(log_dir()),
        "config": redact(asdict(cfg)),
        "cache": {
            "directory": str(cache.directory),
            "enabled": cache.enabled,
            "entries": cache.entry_count(),
        },
        "terminal": asdict(geometry) | {"width_px": geometry.width_px, "height_px": geometry.height_px},
        "collaborators": collaborator_status(),
        "input_types": RendererGateway.availability(),
    }
