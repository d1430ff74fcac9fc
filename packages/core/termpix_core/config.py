"""Persistent viewer settings schema and load/save helpers."""

from __future__ import annotations

import json
import os
import platform
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from termpix_renderer import InputType, PluginSpec, RenderOptions
from termpix_renderer.plugin import PLUGIN_OUTPUTS


CONFIG_VERSION = 2

_HEX_COLOR = re.compile(r"^#?[0-9a-fA-F]{6}$")


@dataclass
class DisplayConfig:
    mode: str = "png"
    fit: str = "auto"
    background: bool = False
    background_color: str = "FFFFFF"


@dataclass
class RenderConfig:
    pdf_dpi: int = 150
    grayscale: bool = False
    html_viewport_width: int = 1280
    text_font_size: int = 14
    text_style: str = "default"
    office_timeout_s: float = 120.0


@dataclass
class CacheConfig:
    enabled: bool = True
    directory: str | None = None


@dataclass
class PipelineConfig:
    workers: int = 4
    on_page_error: str = "skip"


@dataclass
class TerminalConfig:
    fallback_cell_width: int = 10
    fallback_cell_height: int = 20
    reserved_rows: int = 2


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    display: DisplayConfig = field(default_factory=DisplayConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    terminal: TerminalConfig = field(default_factory=TerminalConfig)
    plugins: dict[str, dict[str, Any]] = field(default_factory=dict)

    def render_options(self, language: str | None = None) -> RenderOptions:
        return RenderOptions(
            pdf_dpi=self.render.pdf_dpi,
            grayscale=self.render.grayscale,
            html_viewport_width=self.render.html_viewport_width,
            text_font_size=self.render.text_font_size,
            text_style=self.render.text_style,
            language=language,
            office_timeout_s=self.render.office_timeout_s,
        )

    def plugin_specs(self) -> list[PluginSpec]:
        specs: list[PluginSpec] = []
        for name, raw in sorted(self.plugins.items()):
            spec = plugin_from_dict(name, raw)
            if spec is not None:
                specs.append(spec)
        return specs


def _platform_dir(kind: str) -> Path:
    system = platform.system()
    home = Path.home()
    if system == "Windows":
        env = "LOCALAPPDATA" if kind == "cache" else "APPDATA"
        base = Path(os.environ.get(env, home / "AppData" / "Roaming"))
        return base / "Termpix" / ("Cache" if kind == "cache" else "")
    if system == "Darwin":
        if kind == "cache":
            return home / "Library" / "Caches" / "Termpix"
        return home / "Library" / "Application Support" / "Termpix"

    env, fallback = {
        "config": ("XDG_CONFIG_HOME", home / ".config"),
        "cache": ("XDG_CACHE_HOME", home / ".cache"),
        "state": ("XDG_STATE_HOME", home / ".local" / "state"),
    }[kind]
    raw = os.environ.get(env)
    base = Path(raw) if raw and Path(raw).is_absolute() else fallback
    return base / "termpix"


def config_path() -> Path:
    return _platform_dir("config") / "config.json"


def default_cache_dir() -> Path:
    return _platform_dir("cache")


def state_dir() -> Path:
    if platform.system() in ("Windows", "Darwin"):
        return _platform_dir("config")
    return _platform_dir("state")


def cache_dir(cfg: AppConfig) -> Path:
    if cfg.cache.directory:
        return Path(cfg.cache.directory).expanduser()
    return default_cache_dir()


def plugin_from_dict(name: str, raw: dict[str, Any]) -> PluginSpec | None:
    command = raw.get("command") or raw.get("path")
    if not command or not isinstance(command, str):
        return None
    try:
        output = InputType(str(raw.get("output", "image")).lower())
    except ValueError:
        return None
    if output not in PLUGIN_OUTPUTS:
        return None
    return PluginSpec(
        name=name,
        command=command,
        output=output,
        extensions=tuple(str(e).lower().lstrip(".") for e in raw.get("extensions", []) or []),
        magic_bytes=tuple(str(m) for m in raw.get("magic_bytes", []) or []),
        placeholder=raw.get("placeholder"),
        output_placeholder=raw.get("output_placeholder"),
        timeout_s=float(raw.get("timeout_s", 120.0)),
    )


def _merge(dataclass_type, raw: dict[str, Any]):
    defaults = dataclass_type()  # type: ignore[misc]
    if not isinstance(raw, dict):
        return defaults
    for k, v in raw.items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _normalize_display(cfg: AppConfig) -> None:
    if cfg.display.mode not in ("png", "zlib", "raw"):
        cfg.display.mode = "png"
    if cfg.display.fit not in ("auto", "fullwidth", "fullheight", "resize", "noresize"):
        cfg.display.fit = "auto"
    if not _HEX_COLOR.match(str(cfg.display.background_color)):
        cfg.display.background_color = "FFFFFF"
    cfg.display.background = bool(cfg.display.background)


def _normalize_render(cfg: AppConfig) -> None:
    cfg.render.pdf_dpi = max(36, min(600, int(cfg.render.pdf_dpi)))
    cfg.render.html_viewport_width = max(320, min(7680, int(cfg.render.html_viewport_width)))
    cfg.render.text_font_size = max(6, min(72, int(cfg.render.text_font_size)))
    cfg.render.office_timeout_s = float(max(5.0, cfg.render.office_timeout_s))


def _normalize_pipeline(cfg: AppConfig) -> None:
    cfg.pipeline.workers = max(1, min(32, int(cfg.pipeline.workers)))
    if cfg.pipeline.on_page_error not in ("skip", "abort"):
        cfg.pipeline.on_page_error = "skip"


def _normalize_terminal(cfg: AppConfig) -> None:
    cfg.terminal.fallback_cell_width = max(1, int(cfg.terminal.fallback_cell_width))
    cfg.terminal.fallback_cell_height = max(1, int(cfg.terminal.fallback_cell_height))
    cfg.terminal.reserved_rows = max(0, int(cfg.terminal.reserved_rows))


def _migrate(raw: dict[str, Any]) -> dict[str, Any]:
    version = int(raw.get("config_version", 1))
    data = dict(raw)

    if version < 2:
        # v1 kept the cache directory at top level and had no pipeline section.
        cache = dict(data.get("cache", {}) or {})
        if "cache_dir" in data:
            cache.setdefault("directory", data.pop("cache_dir"))
        data["cache"] = cache
        data.setdefault("pipeline", {})
        data["config_version"] = 2

    return data


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()

    data = _migrate(raw)
    plugins = data.get("plugins", {})
    cfg = AppConfig(
        config_version=int(data.get("config_version", CONFIG_VERSION)),
        display=_merge(DisplayConfig, data.get("display", {})),
        render=_merge(RenderConfig, data.get("render", {})),
        cache=_merge(CacheConfig, data.get("cache", {})),
        pipeline=_merge(PipelineConfig, data.get("pipeline", {})),
        terminal=_merge(TerminalConfig, data.get("terminal", {})),
        plugins={str(k): v for k, v in plugins.items() if isinstance(v, dict)} if isinstance(plugins, dict) else {},
    )

    try:
        _normalize_display(cfg)
        _normalize_render(cfg)
        _normalize_pipeline(cfg)
        _normalize_terminal(cfg)
    except (TypeError, ValueError):
        return AppConfig()
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path
