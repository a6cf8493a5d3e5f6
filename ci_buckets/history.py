"""Historical test-class timing data.

The document maps build project id -> subproject name -> list of
``{"testClass", "sourceSet", "buildTimeMs"}`` records.  A build project with
any malformed entry is dropped as a whole so it falls back to unsplit
subprojects instead of being split on partial data.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .buckets import TestClassTime
from .logger import StructuredLogger

BuildProjectClassTimes = Dict[str, Dict[str, List[TestClassTime]]]


class HistoryFormatError(ValueError):
    """The timing document cannot be read at all."""


def _parse_record(record: Any) -> TestClassTime:
    if not isinstance(record, Mapping):
        raise HistoryFormatError(f"record must be an object, got {type(record).__name__}")
    missing = [key for key in ("testClass", "sourceSet", "buildTimeMs") if key not in record]
    if missing:
        raise HistoryFormatError(f"record is missing {', '.join(missing)}")
    for key in ("testClass", "sourceSet"):
        value = record[key]
        if not isinstance(value, str) or not value.strip():
            raise HistoryFormatError(f"{key} must be a non-empty string, got {value!r}")
    raw_time = record["buildTimeMs"]
    if isinstance(raw_time, bool) or not isinstance(raw_time, (int, float)):
        raise HistoryFormatError(f"buildTimeMs must be an integer, got {raw_time!r}")
    if isinstance(raw_time, float) and not raw_time.is_integer():
        raise HistoryFormatError(f"buildTimeMs must be an integer, got {raw_time!r}")
    if raw_time < 0:
        raise HistoryFormatError(f"buildTimeMs must be non-negative, got {raw_time!r}")
    return TestClassTime.from_mapping(record)


def _parse_project(project: Any) -> Dict[str, List[TestClassTime]]:
    if not isinstance(project, Mapping):
        raise HistoryFormatError(f"build project must be an object, got {type(project).__name__}")
    subprojects: Dict[str, List[TestClassTime]] = {}
    for name, records in project.items():
        if not isinstance(records, list):
            raise HistoryFormatError(f"subproject {name} must map to a list")
        subprojects[str(name)] = [_parse_record(record) for record in records]
    return subprojects


def parse_history(data: Any, *, logger: Optional[StructuredLogger] = None) -> BuildProjectClassTimes:
    if not isinstance(data, Mapping):
        raise HistoryFormatError("timing data must be a JSON object")
    log = logger or StructuredLogger.get_logger("ci_buckets.history")
    result: BuildProjectClassTimes = {}
    for project_id, project in data.items():
        try:
            result[str(project_id)] = _parse_project(project)
        except HistoryFormatError as exc:
            log.warning("history.project.dropped", build_project=str(project_id), reason=str(exc))
    log.debug("history.parsed", build_projects=len(result))
    return result


def load_history(path: Union[str, Path], *, logger: Optional[StructuredLogger] = None) -> BuildProjectClassTimes:
    resolved = Path(path).expanduser()
    try:
        with resolved.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except json.JSONDecodeError as exc:
        raise HistoryFormatError(f"{resolved}: {exc}") from exc
    return parse_history(data, logger=logger)


__all__ = [
    "BuildProjectClassTimes",
    "HistoryFormatError",
    "load_history",
    "parse_history",
]
