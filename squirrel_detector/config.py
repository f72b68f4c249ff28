from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from squirrel_kit.errors import ConfigurationError
from squirrel_kit.metadata import load_class_names, parse_class_names
from squirrel_kit.postprocess import PostprocessConfig

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_BACKENDS = {"onnxruntime", "torchscript"}


@dataclass(frozen=True)
class ModelSettings:
    path: Path
    class_names: Tuple[str, ...]
    input_size: int = 640
    confidence_threshold: float = 0.5
    nms_threshold: float = 0.45
    backend: Optional[str] = None

    def __post_init__(self) -> None:
        if not str(self.path).strip():
            raise ConfigurationError("model.path must not be empty")
        if self.backend is not None and self.backend not in _BACKENDS:
            raise ConfigurationError(f"model.backend must be one of {sorted(_BACKENDS)}, got {self.backend!r}")
        object.__setattr__(self, "class_names", parse_class_names(self.class_names))
        self.post_config()

    def post_config(self) -> PostprocessConfig:
        return PostprocessConfig(
            input_size=self.input_size,
            confidence_threshold=self.confidence_threshold,
            nms_threshold=self.nms_threshold,
        )


@dataclass(frozen=True)
class RouteSettings:
    input_directory: Path
    output_directory: Path
    output_annotated_directory: Path
    no_detection_directory: Path
    failed_directory: Optional[Path] = None
    file_pattern: str = "*.jpg"
    polling_delay_ms: int = 1000

    def __post_init__(self) -> None:
        if not self.file_pattern.strip():
            raise ConfigurationError("route.file_pattern must not be empty")
        if self.polling_delay_ms < 0:
            raise ConfigurationError("route.polling_delay_ms must be >= 0")
        src = Path(self.input_directory).resolve()
        for name in ("output_directory", "output_annotated_directory", "no_detection_directory", "failed_directory"):
            value = getattr(self, name)
            if value is not None and Path(value).resolve() == src:
                raise ConfigurationError(f"route.{name} must differ from route.input_directory")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    file: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.level.upper() not in _LOG_LEVELS:
            raise ConfigurationError(f"logging.level must be one of {sorted(_LOG_LEVELS)}, got {self.level!r}")


@dataclass(frozen=True)
class AppConfig:
    model: ModelSettings
    route: RouteSettings
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    schema_version: int = 1

    def __post_init__(self) -> None:
        if self.schema_version != 1:
            raise ConfigurationError("config schema_version must be 1")


def _require(payload: Dict[str, Any], key: str, section: str) -> Any:
    if key not in payload:
        raise ConfigurationError(f"Missing required key: {section}.{key}")
    return payload[key]


def _require_str(payload: Dict[str, Any], key: str, section: str) -> str:
    value = _require(payload, key, section)
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"{section}.{key} must be a non-empty string")
    return value


def _optional_str(payload: Dict[str, Any], key: str, section: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"{section}.{key} must be a non-empty string if provided")
    return value


def _number(payload: Dict[str, Any], key: str, section: str, default: float) -> float:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{section}.{key} must be a number")
    return float(value)


def _integer(payload: Dict[str, Any], key: str, section: str, default: int) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{section}.{key} must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ConfigurationError(f"{section}.{key} must be an integer")
    return int(value)


def _section(payload: Dict[str, Any], key: str, allowed: set, required: bool = True) -> Dict[str, Any]:
    if key not in payload:
        if required:
            raise ConfigurationError(f"Missing required section: {key}")
        return {}
    section = payload[key]
    if not isinstance(section, dict):
        raise ConfigurationError(f"{key} must be a JSON object")
    unknown = sorted(set(section.keys()) - allowed)
    if unknown:
        raise ConfigurationError(f"Unknown {key} keys: {unknown}")
    return section


def _path(raw: str, base_dir: Path) -> Path:
    p = Path(raw).expanduser()
    return p if p.is_absolute() else (base_dir / p)


def _parse_model(section: Dict[str, Any], base_dir: Path) -> ModelSettings:
    has_names = section.get("class_names") is not None
    metadata = _optional_str(section, "metadata", "model")
    if has_names and metadata is not None:
        raise ConfigurationError("Use either model.class_names or model.metadata, not both.")
    if metadata is not None:
        class_names = load_class_names(_path(metadata, base_dir))
    elif has_names:
        raw = section["class_names"]
        if not isinstance(raw, (str, list)):
            raise ConfigurationError("model.class_names must be a comma-delimited string or a list of strings")
        class_names = parse_class_names(raw)
    else:
        raise ConfigurationError("Missing required key: model.class_names (or model.metadata)")

    return ModelSettings(
        path=_path(_require_str(section, "path", "model"), base_dir),
        class_names=class_names,
        input_size=_integer(section, "input_size", "model", 640),
        confidence_threshold=_number(section, "confidence_threshold", "model", 0.5),
        nms_threshold=_number(section, "nms_threshold", "model", 0.45),
        backend=_optional_str(section, "backend", "model"),
    )


def _parse_route(section: Dict[str, Any], base_dir: Path) -> RouteSettings:
    failed = _optional_str(section, "failed_directory", "route")
    return RouteSettings(
        input_directory=_path(_require_str(section, "input_directory", "route"), base_dir),
        output_directory=_path(_require_str(section, "output_directory", "route"), base_dir),
        output_annotated_directory=_path(_require_str(section, "output_annotated_directory", "route"), base_dir),
        no_detection_directory=_path(_require_str(section, "no_detection_directory", "route"), base_dir),
        failed_directory=_path(failed, base_dir) if failed is not None else None,
        file_pattern=_optional_str(section, "file_pattern", "route") or "*.jpg",
        polling_delay_ms=_integer(section, "polling_delay_ms", "route", 1000),
    )


def _parse_logging(section: Dict[str, Any], base_dir: Path) -> LoggingSettings:
    log_file = _optional_str(section, "file", "logging")
    return LoggingSettings(
        level=(_optional_str(section, "level", "logging") or "INFO").upper(),
        file=_path(log_file, base_dir) if log_file is not None else None,
    )


def parse_app_config(payload: Dict[str, Any], base_dir: Path) -> AppConfig:
    """
    Validate a config mapping. Relative paths resolve against `base_dir`.
    """

    if not isinstance(payload, dict):
        raise ConfigurationError("Config must be a JSON object")
    unknown = sorted(set(payload.keys()) - {"schema_version", "model", "route", "logging"})
    if unknown:
        raise ConfigurationError(f"Unknown config keys: {unknown}")

    schema_version = _integer(payload, "schema_version", "config", 1)
    model = _parse_model(
        _section(
            payload,
            "model",
            {"path", "input_size", "confidence_threshold", "nms_threshold", "class_names", "metadata", "backend"},
        ),
        base_dir,
    )
    route = _parse_route(
        _section(
            payload,
            "route",
            {
                "input_directory",
                "output_directory",
                "output_annotated_directory",
                "no_detection_directory",
                "failed_directory",
                "file_pattern",
                "polling_delay_ms",
            },
        ),
        base_dir,
    )
    logging_settings = _parse_logging(_section(payload, "logging", {"level", "file"}, required=False), base_dir)
    return AppConfig(model=model, route=route, logging=logging_settings, schema_version=schema_version)


def load_app_config(path: Path) -> AppConfig:
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid config JSON: {path}") from exc
    return parse_app_config(payload, base_dir=path.resolve().parent)
