"""
Folder-watching application built on top of `squirrel_kit`.

Detection itself (decode, NMS, annotation, inference) lives in `squirrel_kit`;
this package only covers:
- JSON run config (model + route + logging)
- logging setup
- the directory router (detected / no detection / failed)
- the CLI runner
"""

from __future__ import annotations

from .config import AppConfig, LoggingSettings, ModelSettings, RouteSettings, load_app_config, parse_app_config
from .logging_utils import configure_logging
from .router import DirectoryRouter, RouteOutcome, RouteStatus

__all__ = [
    "AppConfig",
    "LoggingSettings",
    "ModelSettings",
    "RouteSettings",
    "load_app_config",
    "parse_app_config",
    "configure_logging",
    "DirectoryRouter",
    "RouteOutcome",
    "RouteStatus",
]
