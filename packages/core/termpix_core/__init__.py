"""Core services: settings, logging, render cache and the viewing pipeline."""

from .cache import CacheKey, RenderCache
from .config import AppConfig, cache_dir, config_path, load_config, save_config
from .diagnostics import build_doctor_payload, redact
from .logging_setup import configure_logging, get_logger
from .orchestrator import (
    EXIT_OK,
    EXIT_OUTPUT,
    EXIT_RENDER,
    EXIT_USAGE,
    Orchestrator,
    PageErrorPolicy,
    ViewRequest,
    ViewResult,
    ViewState,
)

__all__ = [
    "AppConfig",
    "CacheKey",
    "EXIT_OK",
    "EXIT_OUTPUT",
    "EXIT_RENDER",
    "EXIT_USAGE",
    "Orchestrator",
    "PageErrorPolicy",
    "RenderCache",
    "ViewRequest",
    "ViewResult",
    "ViewState",
    "build_doctor_payload",
    "cache_dir",
    "config_path",
    "configure_logging",
    "get_logger",
    "load_config",
    "redact",
    "save_config",
]
