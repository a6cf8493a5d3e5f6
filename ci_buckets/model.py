"""Build model: subprojects, stages and the test coverages each stage runs."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .buckets import Bucket


class Os(str, enum.Enum):
    LINUX = "linux"
    WINDOWS = "windows"
    MACOS = "macos"

    @classmethod
    def parse(cls, value: str) -> "Os":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown os: {value}") from None


class TestType(enum.Enum):
    # (unit_tests, functional_tests, cross_version_tests)
    QUICK = ("quick", True, True, False)
    PLATFORM = ("platform", True, True, False)
    QUICK_FEEDBACK_CROSS_VERSION = ("quick_feedback_cross_version", False, False, True)
    ALL_VERSIONS_CROSS_VERSION = ("all_versions_cross_version", False, False, True)
    PARALLEL = ("parallel", False, True, False)
    NO_DAEMON = ("no_daemon", False, True, False)
    ALL_VERSIONS_INTEG_MULTI_VERSION = ("all_versions_integ_multi_version", False, True, False)

    __test__ = False

    def __init__(self, key: str, unit_tests: bool, functional_tests: bool, cross_version_tests: bool) -> None:
        self.key = key
        self.unit_tests = unit_tests
        self.functional_tests = functional_tests
        self.cross_version_tests = cross_version_tests

    @property
    def camel_name(self) -> str:
        return "".join(part.capitalize() for part in self.key.split("_"))

    @classmethod
    def parse(cls, value: str) -> "TestType":
        key = str(value).strip().lower().replace("-", "_")
        for member in cls:
            if member.key == key:
                return member
        raise ValueError(f"Unknown test type: {value}")


@dataclass(frozen=True)
class TestCoverage:
    uuid: int
    test_type: TestType
    os: Os = Os.LINUX
    jvm_version: str = "java8"
    vendor: str = "oracle"

    __test__ = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TestCoverage":
        if "uuid" not in data or "test_type" not in data:
            raise ValueError("test coverage requires 'uuid' and 'test_type'")
        return cls(
            uuid=int(data["uuid"]),
            test_type=TestType.parse(data["test_type"]),
            os=Os.parse(data.get("os", "linux")),
            jvm_version=str(data.get("jvm_version", "java8")),
            vendor=str(data.get("vendor", "oracle")),
        )

    def _prefix(self) -> str:
        return f"{self.test_type.camel_name}{self.jvm_version.capitalize()}{self.os.value.capitalize()}"

    def as_id(self, model: "BuildModel") -> str:
        return f"{model.project_prefix}{self._prefix()}_{self.uuid}"

    def as_configuration_id(self, model: "BuildModel", suffix: str) -> str:
        return f"{model.project_prefix}{self._prefix()}_{suffix}"

    def as_name(self) -> str:
        return f"Test Coverage - {self.test_type.camel_name} {self.jvm_version.capitalize()} {self.vendor.capitalize()} {self.os.value.capitalize()}"


@dataclass(frozen=True)
class Stage:
    name: str
    functional_tests: Tuple[TestCoverage, ...] = ()
    omits_slow_projects: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Stage":
        if not data.get("name"):
            raise ValueError("stage requires a 'name'")
        return cls(
            name=str(data["name"]),
            functional_tests=tuple(TestCoverage.from_mapping(item) for item in data.get("functional_tests", []) or []),
            omits_slow_projects=bool(data.get("omits_slow_projects", False)),
        )


@dataclass(frozen=True)
class Subproject(Bucket):
    """A subproject of the build, scheduled as its own bucket when unsplit."""

    name: str
    unit_tests: bool = True
    functional_tests: bool = True
    cross_version_tests: bool = False
    slow: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Subproject":
        if not data.get("name"):
            raise ValueError("subproject requires a 'name'")
        return cls(
            name=str(data["name"]),
            unit_tests=bool(data.get("unit_tests", True)),
            functional_tests=bool(data.get("functional_tests", True)),
            cross_version_tests=bool(data.get("cross_version_tests", False)),
            slow=bool(data.get("slow", False)),
        )

    def has_tests_for(self, test_type: TestType) -> bool:
        return (
            (test_type.unit_tests and self.unit_tests)
            or (test_type.functional_tests and self.functional_tests)
            or (test_type.cross_version_tests and self.cross_version_tests)
        )

    def applies_to(self, coverage: TestCoverage, stage: Stage) -> bool:
        if stage.omits_slow_projects and self.slow:
            return False
        return self.has_tests_for(coverage.test_type)

    def job_id(self, model: "BuildModel", coverage: TestCoverage, bucket_index: int) -> str:
        return coverage.as_configuration_id(model, self.name)

    def name_for(self, coverage: TestCoverage) -> str:
        return f"{coverage.as_name()} ({self.name})"

    def description_for(self, coverage: TestCoverage) -> str:
        return f"{coverage.as_name()} for {self.name}"

    def subproject_names(self) -> Tuple[str, ...]:
        return (self.name,)


@dataclass(frozen=True)
class BuildModel:
    project_prefix: str
    subprojects: Tuple[Subproject, ...] = ()
    stages: Tuple[Stage, ...] = ()
    _by_name: Dict[str, Subproject] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index: Dict[str, Subproject] = {}
        for subproject in self.subprojects:
            if subproject.name in index:
                raise ValueError(f"Duplicate subproject: {subproject.name}")
            index[subproject.name] = subproject
        object.__setattr__(self, "_by_name", index)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "BuildModel":
        if not data:
            raise RuntimeError("Missing build_model configuration")
        subprojects: Iterable[Mapping[str, Any]] = data.get("subprojects", []) or []
        stages: Iterable[Mapping[str, Any]] = data.get("stages", []) or []
        return cls(
            project_prefix=str(data.get("project_prefix", "")),
            subprojects=tuple(Subproject.from_mapping(item) for item in subprojects),
            stages=tuple(Stage.from_mapping(item) for item in stages),
        )

    def subproject_by_name(self, name: str) -> Optional[Subproject]:
        return self._by_name.get(name)

    def subprojects_for(self, coverage: TestCoverage, stage: Stage) -> List[Subproject]:
        return [subproject for subproject in self.subprojects if subproject.applies_to(coverage, stage)]

    def slow_subprojects(self) -> List[Subproject]:
        return [subproject for subproject in self.subprojects if subproject.slow]


__all__ = [
    "BuildModel",
    "Os",
    "Stage",
    "Subproject",
    "TestCoverage",
    "TestType",
]
