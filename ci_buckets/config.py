"""Configuration loading and the settings dataclasses built from it."""
from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional, Sequence, Tuple, Union

import yaml

from .splitter import SplitConstraints

_MISSING = object()
_SECRET_MARKERS = ("secret", "password", "token", "credential")


def _deep_merge(base: MutableMapping[str, Any], update: Mapping[str, Any]) -> MutableMapping[str, Any]:
    for key, value in update.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), MutableMapping):
            _deep_merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def _set_dotted(data: MutableMapping[str, Any], dotted: str, value: Any) -> None:
    parts = [part for part in dotted.split(".") if part]
    if not parts:
        raise ValueError(f"invalid configuration key: {dotted!r}")
    node = data
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, MutableMapping):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value


def _parse_scalar(raw: str) -> Any:
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def _env_overrides(prefix: str) -> Dict[str, Any]:
    marker = prefix.rstrip("_") + "__"
    overrides: Dict[str, Any] = {}
    for name, raw in sorted(os.environ.items()):
        if not name.startswith(marker):
            continue
        dotted = ".".join(part.lower() for part in name[len(marker):].split("__"))
        if dotted:
            _set_dotted(overrides, dotted, _parse_scalar(raw))
    return overrides


def _redact(data: Any, key: str = "") -> Any:
    if any(marker in key.lower() for marker in _SECRET_MARKERS):
        return "[REDACTED]"
    if isinstance(data, Mapping):
        return {k: _redact(v, str(k)) for k, v in data.items()}
    if isinstance(data, list):
        return [_redact(item, key) for item in data]
    return data


class Config:
    """Layered configuration: defaults, YAML file, environment, CLI overrides."""

    def __init__(self, data: Optional[Mapping[str, Any]] = None, *, source: Optional[Path] = None) -> None:
        self._data: Dict[str, Any] = copy.deepcopy(dict(data or {}))
        self.source = source

    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        *,
        defaults: Optional[Mapping[str, Any]] = None,
        env_prefix: Optional[str] = None,
        cli_overrides: Optional[Mapping[str, Any]] = None,
    ) -> "Config":
        resolved = Path(path).expanduser()
        with resolved.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle)
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, Mapping):
            raise ValueError(f"configuration root must be a mapping: {resolved}")
        data: Dict[str, Any] = copy.deepcopy(dict(defaults or {}))
        _deep_merge(data, loaded)
        if env_prefix:
            _deep_merge(data, _env_overrides(env_prefix))
        for dotted, value in (cli_overrides or {}).items():
            _set_dotted(data, dotted, _parse_scalar(value) if isinstance(value, str) else value)
        return cls(data, source=resolved)

    def get(self, key: str, typ: type = object, default: Any = _MISSING, *, required: bool = False) -> Any:
        node: Any = self._data
        for part in key.split("."):
            if not isinstance(node, Mapping) or part not in node:
                if required or default is _MISSING:
                    raise KeyError(f"missing configuration key: {key}")
                return default
            node = node[part]
        if node is None:
            if required:
                raise KeyError(f"missing configuration key: {key}")
            return None if default is _MISSING else default
        if typ is object or isinstance(node, typ):
            return copy.deepcopy(node)
        if typ in (int, float, str):
            try:
                return typ(node)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"configuration key {key} must be {typ.__name__}") from exc
        if typ is bool and isinstance(node, str):
            lowered = node.strip().lower()
            if lowered in ("1", "true", "yes", "on"):
                return True
            if lowered in ("0", "false", "no", "off"):
                return False
        raise TypeError(f"configuration key {key} has incompatible type: {type(node)!r}")

    def export(self, fmt: str = "dict", *, redact_secrets: bool = True) -> Union[Dict[str, Any], str]:
        data = _redact(self._data) if redact_secrets else copy.deepcopy(self._data)
        if fmt == "dict":
            return data
        if fmt == "yaml":
            return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
        raise ValueError(f"unsupported export format: {fmt}")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def _positive_int(data: Mapping[str, Any], key: str, default: int) -> int:
    raw = data.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"scheduling.{key} must be an integer") from exc
    if value < 1:
        raise ValueError(f"scheduling.{key} must be >= 1")
    return value


@dataclass(frozen=True)
class SchedulingSettings:
    bucket_number_per_build_type: int = 50
    max_subprojects_in_bucket: int = 10
    max_major_version: int = 6
    show_progress: bool = False

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "SchedulingSettings":
        if data is None:
            return cls()
        return cls(
            bucket_number_per_build_type=_positive_int(data, "bucket_number_per_build_type", 50),
            max_subprojects_in_bucket=_positive_int(data, "max_subprojects_in_bucket", 10),
            max_major_version=_positive_int(data, "max_major_version", 6),
            show_progress=bool(data.get("show_progress", False)),
        )

    def split_constraints(self) -> SplitConstraints:
        return SplitConstraints(self.bucket_number_per_build_type, self.max_subprojects_in_bucket)


@dataclass(frozen=True)
class LoggerSettings:
    level: str
    namespace: str
    sinks: Tuple[Mapping[str, Any], ...]

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "LoggerSettings":
        if data is None:
            return cls(level="INFO", namespace="ci_buckets", sinks=({"type": "console"},))
        sinks_raw: Sequence[Any] = data.get("sinks") or [{"type": "console"}]
        sinks = tuple({"type": sink} if isinstance(sink, str) else dict(sink) for sink in sinks_raw)
        return cls(
            level=str(data.get("level", "INFO")).upper(),
            namespace=str(data.get("namespace", "ci_buckets")),
            sinks=sinks,
        )


__all__ = [
    "Config",
    "LoggerSettings",
    "SchedulingSettings",
]
