"""Runner-side test filtering.

A scheduled job hands its test run one of three project properties:

* ``includeTestClasses`` - run only the classes in
  ``build/include-test-classes.properties``,
* ``excludeTestClasses`` - run everything except the classes in
  ``build/exclude-test-classes.properties``,
* ``onlyTestGradleMajorVersion`` - run cross-version tests of one major
  version only.

:func:`select_filter_provider` picks the matching provider once per test run;
the provider then configures each :class:`TestTask`.
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .logger import StructuredLogger

INCLUDE_PROPERTY = "includeTestClasses"
EXCLUDE_PROPERTY = "excludeTestClasses"
MAJOR_VERSION_PROPERTY = "onlyTestGradleMajorVersion"
MULTI_VERSION_TASK = "integMultiVersionTest"

_CROSS_VERSION_TASK = re.compile(r"gradle(.+)CrossVersionTest")
_VERSION = re.compile(r"^(\d+(?:\.\d+)*)(.*)$")


@dataclass
class TestTask:
    name: str
    source_set: str
    enabled: bool = True
    fail_on_no_matching_tests: bool = True
    include_patterns: List[str] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)

    __test__ = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "source_set": self.source_set,
            "enabled": self.enabled,
            "fail_on_no_matching_tests": self.fail_on_no_matching_tests,
            "include_patterns": list(self.include_patterns),
            "exclude_patterns": list(self.exclude_patterns),
        }


def read_test_classes(content: str) -> Dict[str, List[str]]:
    """Group ``testClass=sourceSet`` lines by source set, keeping file order."""
    entries: Dict[str, str] = {}
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line[0] in "#!":
            continue
        separators = [i for i in (line.find("="), line.find(":")) if i >= 0]
        if not separators:
            entries[line] = ""
            continue
        index = min(separators)
        entries[line[:index].strip()] = line[index + 1:].strip()
    grouped: Dict[str, List[str]] = {}
    for test_class, source_set in entries.items():
        grouped.setdefault(source_set, []).append(test_class)
    return grouped


def _version_key(text: str) -> Tuple[Tuple[int, ...], int]:
    match = _VERSION.match(text.strip())
    if match is None:
        raise ValueError(f"invalid version: {text!r}")
    numbers = tuple(int(part) for part in match.group(1).split("."))
    numbers = numbers + (0,) * max(0, 3 - len(numbers))
    # pre-releases order before their release
    return numbers, 0 if match.group(2) else 1


class TestFilterProvider(ABC):
    __test__ = False

    @abstractmethod
    def configure(self, task: TestTask) -> TestTask:
        raise NotImplementedError


class IncludeTestClassProvider(TestFilterProvider):
    def __init__(self, include_test_classes: Mapping[str, List[str]]) -> None:
        self.include_test_classes = {k: list(v) for k, v in include_test_classes.items()}

    def configure(self, task: TestTask) -> TestTask:
        if task.name == MULTI_VERSION_TASK:
            # the multi-version suite runs in the exclude fragment
            task.enabled = False
            return task
        task.fail_on_no_matching_tests = False
        task.include_patterns.extend(self.include_test_classes.get(task.source_set, []))
        return task


class ExcludeTestClassProvider(TestFilterProvider):
    def __init__(self, exclude_test_classes: Mapping[str, List[str]]) -> None:
        self.exclude_test_classes = {k: list(v) for k, v in exclude_test_classes.items()}

    def configure(self, task: TestTask) -> TestTask:
        if task.name != MULTI_VERSION_TASK:
            task.fail_on_no_matching_tests = False
            task.exclude_patterns.extend(self.exclude_test_classes.get(task.source_set, []))
        return task


class CrossVersionBucketProvider(TestFilterProvider):
    def __init__(self, only_test_major_version: Union[str, int]) -> None:
        self.major_version = int(only_test_major_version)
        # major version 1 also covers 0.x
        lower = 0 if self.major_version == 1 else self.major_version
        self._lower = _version_key(f"{lower}.0")
        self._upper = _version_key(f"{self.major_version + 1}.0")

    def version_enabled(self, version: str) -> bool:
        return self._lower <= _version_key(version) < self._upper

    def configure(self, task: TestTask) -> TestTask:
        match = _CROSS_VERSION_TASK.search(task.name)
        if match is not None:
            task.enabled = self.version_enabled(match.group(1))
        return task


class NoOpTestClassProvider(TestFilterProvider):
    def configure(self, task: TestTask) -> TestTask:
        return task


def select_filter_provider(
    properties: Mapping[str, Any],
    build_dir: Union[str, Path],
    *,
    logger: Optional[StructuredLogger] = None,
) -> TestFilterProvider:
    log = logger or StructuredLogger.get_logger("ci_buckets.filters")
    root = Path(build_dir)

    def _value(key: str) -> str:
        raw = properties.get(key)
        return "" if raw is None else str(raw).strip()

    provider: TestFilterProvider
    if _value(INCLUDE_PROPERTY):
        content = (root / "include-test-classes.properties").read_text(encoding="utf-8")
        provider = IncludeTestClassProvider(read_test_classes(content))
    elif _value(EXCLUDE_PROPERTY):
        content = (root / "exclude-test-classes.properties").read_text(encoding="utf-8")
        provider = ExcludeTestClassProvider(read_test_classes(content))
    elif _value(MAJOR_VERSION_PROPERTY):
        provider = CrossVersionBucketProvider(_value(MAJOR_VERSION_PROPERTY))
    else:
        provider = NoOpTestClassProvider()
    log.info("filters.provider.selected", provider=type(provider).__name__, build_dir=str(root))
    return provider


__all__ = [
    "CrossVersionBucketProvider",
    "ExcludeTestClassProvider",
    "IncludeTestClassProvider",
    "NoOpTestClassProvider",
    "TestFilterProvider",
    "TestTask",
    "read_test_classes",
    "select_filter_provider",
]
