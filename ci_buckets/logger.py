#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Structured logging
------------------

JSON-line logging on top of the standard :mod:`logging` module.

* Events are dotted names (``classifier.history.missing``) with keyword fields.
* Context bound with :meth:`StructuredLogger.bind` is attached to every record
  of the current context (``contextvars``), ``stage()`` scopes it to a block.
* Sinks: console, rotating file, in-memory (tests) and HTTP (``requests``).
* Secret-looking fields are redacted and long sequences summarised.
"""
from __future__ import annotations

import contextlib
import contextvars
import datetime as _dt
import hashlib
import json
import logging
import logging.handlers
import sys
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

import requests

if TYPE_CHECKING:
    from .config import Config


__all__ = [
    "HTTPSinkHandler",
    "MemorySinkHandler",
    "SinkFactory",
    "StructuredJSONFormatter",
    "StructuredLogger",
]


_SECRET_MARKERS = ("secret", "password", "token", "credential", "auth")
_MAX_SEQUENCE = 64
_DEFAULT_NAMESPACE = "ci_buckets"


def _coerce_level(level: Union[str, int, None]) -> int:
    if level is None:
        return logging.INFO
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        lvl = logging.getLevelName(level.upper())
        if isinstance(lvl, int):
            return lvl
    raise ValueError(f"invalid logging level: {level!r}")


def _sanitize(key: str, value: Any, depth: int = 0) -> Any:
    if any(marker in key.lower() for marker in _SECRET_MARKERS):
        return "[REDACTED]"
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if depth >= 4:
        return repr(value)
    if isinstance(value, Mapping):
        return {str(k): _sanitize(str(k), v, depth + 1) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        seq = sorted(value, key=repr) if isinstance(value, (set, frozenset)) else list(value)
        if len(seq) > _MAX_SEQUENCE:
            digest = hashlib.sha256(json.dumps(seq[:32], default=repr).encode("utf-8")).hexdigest()
            return {"__summary__": f"{type(value).__name__}[len={len(seq)}]", "sha256": digest}
        return [_sanitize(key, item, depth + 1) for item in seq]
    if isinstance(value, Path):
        return str(value)
    return repr(value)


class StructuredJSONFormatter(logging.Formatter):
    def __init__(self, *, app_info: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__()
        self._app_info = dict(app_info or {})

    def format(self, record: logging.LogRecord) -> str:
        created = _dt.datetime.fromtimestamp(record.created, tz=_dt.timezone.utc)
        entry: Dict[str, Any] = {
            "ts": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "event": getattr(record, "_structured_event", record.getMessage()),
            "logger": record.name,
        }
        stage = getattr(record, "_structured_stage", None)
        if stage:
            entry["stage"] = stage
        entry["fields"] = getattr(record, "_structured_fields", {})
        if self._app_info:
            entry["app"] = self._app_info
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stack": self.formatException(record.exc_info),
            }
        return json.dumps(entry, ensure_ascii=False, default=repr)


class HTTPSinkHandler(logging.Handler):
    """Posts each formatted record to an HTTP collector."""

    def __init__(self, *, url: str, headers: Optional[Mapping[str, str]] = None, timeout: float = 5.0) -> None:
        super().__init__()
        self.url = url
        self.headers = dict(headers or {"Content-Type": "application/json"})
        self.timeout = timeout
        self._session = requests.Session()

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - network
        try:
            response = self._session.post(
                self.url,
                data=self.format(record).encode("utf-8"),
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException:
            self.handleError(record)

    def close(self) -> None:
        self._session.close()
        super().close()


class MemorySinkHandler(logging.Handler):
    """Keeps formatted records in memory; used by the tests."""

    def __init__(self, name: str) -> None:
        super().__init__()
        self.name = name
        self.records: List[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))

    def events(self) -> List[Dict[str, Any]]:
        return [json.loads(line) for line in self.records]


class SinkFactory:
    @staticmethod
    def create(sink_cfg: Union[str, Mapping[str, Any]]) -> logging.Handler:
        if isinstance(sink_cfg, str):
            sink_cfg = {"type": sink_cfg}
        if not isinstance(sink_cfg, Mapping):
            raise TypeError("sink configuration must be mapping or string")
        sink_type = str(sink_cfg.get("type", "console")).lower()
        handler: logging.Handler
        if sink_type == "console":
            stream = sys.stdout if sink_cfg.get("stream", "stderr") == "stdout" else sys.stderr
            handler = logging.StreamHandler(stream=stream)
        elif sink_type in ("file", "rotating_file"):
            path = sink_cfg.get("path")
            if not path:
                raise ValueError(f"{sink_type} sink requires 'path'")
            resolved = Path(str(path)).expanduser().resolve()
            resolved.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.handlers.RotatingFileHandler(
                resolved,
                maxBytes=int(sink_cfg.get("max_bytes", 10 * 1024 * 1024)),
                backupCount=int(sink_cfg.get("backups", 5)),
                encoding="utf-8",
            )
        elif sink_type == "http":
            url = sink_cfg.get("url")
            if not url:
                raise ValueError("http sink requires 'url'")
            handler = HTTPSinkHandler(
                url=str(url),
                headers=sink_cfg.get("headers"),
                timeout=float(sink_cfg.get("timeout", 5.0)),
            )
        elif sink_type == "memory":
            handler = MemorySinkHandler(name=str(sink_cfg.get("name", "memory")))
        else:
            raise ValueError(f"unsupported sink type: {sink_type}")
        level = sink_cfg.get("level")
        if level is not None:
            handler.setLevel(_coerce_level(level))
        return handler


class StructuredLogger:
    _context: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar("ci_buckets_log_context", default={})
    _stage: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("ci_buckets_log_stage", default=None)
    _lock = threading.RLock()
    _configured = False
    _namespace = _DEFAULT_NAMESPACE
    _memory_sinks: Dict[str, MemorySinkHandler] = {}

    def __init__(self, name: str) -> None:
        self._ensure_configured()
        root = logging.getLogger(self._namespace)
        if name == self._namespace or name.startswith(self._namespace + "."):
            self._logger = logging.getLogger(name)
        else:
            self._logger = root.getChild(name)

    @classmethod
    def get_logger(cls, name: str = "app") -> "StructuredLogger":
        return cls(name)

    # -------------------- configuration --------------------
    @classmethod
    def _ensure_configured(cls) -> None:
        if not cls._configured:
            cls.configure()

    @classmethod
    def configure(
        cls,
        *,
        sinks: Optional[Sequence[Union[str, Mapping[str, Any]]]] = None,
        level: Union[str, int, None] = None,
        app: Optional[Mapping[str, Any]] = None,
        namespace: str = _DEFAULT_NAMESPACE,
    ) -> None:
        with cls._lock:
            old_root = logging.getLogger(cls._namespace)
            for handler in list(old_root.handlers):
                old_root.removeHandler(handler)
                handler.close()
            cls._namespace = namespace
            root = logging.getLogger(namespace)
            for handler in list(root.handlers):
                root.removeHandler(handler)
                handler.close()
            root.setLevel(_coerce_level(level))
            root.propagate = False
            cls._memory_sinks = {}
            formatter = StructuredJSONFormatter(app_info=app)
            for sink in sinks or [{"type": "console"}]:
                handler = SinkFactory.create(sink)
                handler.setFormatter(formatter)
                root.addHandler(handler)
                if isinstance(handler, MemorySinkHandler):
                    cls._memory_sinks[handler.name] = handler
            cls._configured = True

    @classmethod
    def configure_from_config(cls, cfg: "Config") -> None:
        from .config import LoggerSettings

        settings = LoggerSettings.from_mapping(cfg.get("logger", dict, default=None))
        app = cfg.get("app", dict, default={})
        cls.configure(
            sinks=settings.sinks,
            level=settings.level,
            app={"name": app.get("name"), "env": app.get("env")} if app else None,
            namespace=settings.namespace,
        )

    @classmethod
    def get_memory_sink(cls, name: str = "memory") -> Optional[MemorySinkHandler]:
        return cls._memory_sinks.get(name)

    # -------------------- context --------------------
    @classmethod
    def reset_context(cls) -> None:
        cls._context.set({})
        cls._stage.set(None)

    def bind(self, **context: Any) -> "StructuredLogger":
        current = dict(self._context.get())
        current.update(context)
        self._context.set(current)
        return self

    def unbind(self, *keys: str) -> "StructuredLogger":
        current = dict(self._context.get())
        for key in keys:
            current.pop(key, None)
        self._context.set(current)
        return self

    @contextlib.contextmanager
    def stage(self, name: str) -> Iterator["StructuredLogger"]:
        token = self._stage.set(name)
        try:
            yield self
        finally:
            self._stage.reset(token)

    # -------------------- primitives --------------------
    def _log(self, level: int, event: str, fields: Mapping[str, Any], exc: Optional[BaseException] = None) -> None:
        if not event:
            raise ValueError("event must be non-empty")
        if not self._logger.isEnabledFor(level):
            return
        combined: Dict[str, Any] = dict(self._context.get())
        combined.update(fields)
        sanitized = {key: _sanitize(key, value) for key, value in combined.items()}
        exc_info = (type(exc), exc, exc.__traceback__) if exc is not None else None
        self._logger.log(
            level,
            event,
            extra={
                "_structured_event": event,
                "_structured_fields": sanitized,
                "_structured_stage": self._stage.get(),
            },
            exc_info=exc_info,
            stacklevel=3,
        )

    def debug(self, event: str, **fields: Any) -> None:
        self._log(logging.DEBUG, event, fields)

    def info(self, event: str, **fields: Any) -> None:
        self._log(logging.INFO, event, fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._log(logging.WARNING, event, fields)

    def error(self, event: str, **fields: Any) -> None:
        exc = fields.pop("exc", None)
        self._log(logging.ERROR, event, fields, exc if isinstance(exc, BaseException) else None)

    def exception(self, event: str, exc: BaseException, **fields: Any) -> None:
        fields.setdefault("error_type", type(exc).__name__)
        fields.setdefault("error_message", str(exc))
        self._log(logging.ERROR, event, fields, exc)
