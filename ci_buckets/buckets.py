"""Bucket variants and the weighted items they are built from.

Every bucket answers the same questions (id, display name, description,
subprojects to run, runner arguments, filter file) so the job materializer can
treat them alike.  Concrete variants:

* :class:`~ci_buckets.model.Subproject` - one unsplit subproject,
* :class:`SmallSubprojectBucket` - several small subprojects merged,
* :class:`LargeSubprojectSplitBucket` - one fragment of an oversized subproject,
* :class:`VersionMatrixBucket` - cross-version tests for one major version,
* :class:`WholeSuiteBucket` - the whole suite in a single job.
"""
from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Sequence, Tuple

from .splitter import split

if TYPE_CHECKING:
    from .model import BuildModel, Subproject, TestCoverage


class InclusionMode(str, enum.Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"


@dataclass(frozen=True)
class FilterFile:
    mode: InclusionMode
    lines: Tuple[str, ...]

    @property
    def file_name(self) -> str:
        return f"{self.mode.value}-test-classes.properties"

    def render(self) -> str:
        return "\n".join(self.lines)


class Bucket(ABC):
    """One unit of scheduled test work, materialized into one CI job."""

    @abstractmethod
    def job_id(self, model: "BuildModel", coverage: "TestCoverage", bucket_index: int) -> str:
        raise NotImplementedError

    @abstractmethod
    def name_for(self, coverage: "TestCoverage") -> str:
        raise NotImplementedError

    @abstractmethod
    def description_for(self, coverage: "TestCoverage") -> str:
        raise NotImplementedError

    def subproject_names(self) -> Tuple[str, ...]:
        return ()

    def extra_parameters(self) -> str:
        return ""

    def filter_file(self) -> Optional[FilterFile]:
        return None


# ---------------------------------------------------------------------------
# Weighted items
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TestClassTime:
    test_class: str
    source_set: str
    build_time_ms: int

    __test__ = False

    @property
    def weight(self) -> int:
        return self.build_time_ms

    def to_properties_line(self) -> str:
        return f"{self.test_class}={self.source_set}"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TestClassTime":
        return cls(
            test_class=str(data["testClass"]),
            source_set=str(data["sourceSet"]),
            build_time_ms=int(data["buildTimeMs"]),
        )


@dataclass(frozen=True)
class SubprojectTestClassTime:
    """A subproject together with the recorded times of its test classes."""

    subproject: "Subproject"
    test_class_times: Tuple[TestClassTime, ...] = ()

    @property
    def total_time(self) -> int:
        return sum(t.build_time_ms for t in self.test_class_times)

    @property
    def weight(self) -> int:
        return self.total_time

    def split(self, expected_bucket_number: int) -> List[Bucket]:
        """Break this subproject into ``expected_bucket_number`` fragments.

        The last fragment excludes every class listed in the earlier ones, so
        classes without history and the unit-test source set still run there.
        """
        if expected_bucket_number <= 1 or not self.test_class_times:
            return [self.subproject]
        ordered = sorted(self.test_class_times, key=lambda t: -t.build_time_ms)
        groups: List[List[TestClassTime]] = split(
            ordered,
            lambda test_class, _pieces: [[test_class]],
            list,
            expected_bucket_number,
        )
        if len(groups) == 1:
            return [self.subproject]
        fragments: List[Bucket] = []
        earlier: List[TestClassTime] = []
        for index, classes in enumerate(groups):
            number = index + 1
            if index < len(groups) - 1:
                fragments.append(
                    LargeSubprojectSplitBucket(
                        subproject=self.subproject,
                        number=number,
                        mode=InclusionMode.INCLUDE,
                        classes=tuple(classes),
                        weight=sum(c.build_time_ms for c in classes),
                    )
                )
                earlier.extend(classes)
            else:
                fragments.append(
                    LargeSubprojectSplitBucket(
                        subproject=self.subproject,
                        number=number,
                        mode=InclusionMode.EXCLUDE,
                        classes=tuple(earlier),
                        weight=self.total_time - sum(c.build_time_ms for c in earlier),
                    )
                )
        return fragments

    def __repr__(self) -> str:
        return f"SubprojectTestClassTime(subproject={self.subproject.name}, total_time={self.total_time})"


# ---------------------------------------------------------------------------
# Bucket variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SmallSubprojectBucket(Bucket):
    subprojects_build_time: Tuple[SubprojectTestClassTime, ...]

    @classmethod
    def of(cls, items: Sequence[SubprojectTestClassTime]) -> "SmallSubprojectBucket":
        return cls(subprojects_build_time=tuple(items))

    @property
    def subprojects(self) -> Tuple["Subproject", ...]:
        return tuple(item.subproject for item in self.subprojects_build_time)

    @property
    def name(self) -> str:
        return ",".join(self.subproject_names())

    @property
    def weight(self) -> int:
        return sum(item.total_time for item in self.subprojects_build_time)

    def job_id(self, model: "BuildModel", coverage: "TestCoverage", bucket_index: int) -> str:
        return coverage.as_configuration_id(model, f"bucket{bucket_index + 1}")

    def name_for(self, coverage: "TestCoverage") -> str:
        return f"{coverage.as_name()} ({self.name})"

    def description_for(self, coverage: "TestCoverage") -> str:
        return f"{coverage.as_name()} for {', '.join(self.subproject_names())}"

    def subproject_names(self) -> Tuple[str, ...]:
        return tuple(subproject.name for subproject in self.subprojects)


@dataclass(frozen=True)
class LargeSubprojectSplitBucket(Bucket):
    subproject: "Subproject"
    number: int
    mode: InclusionMode
    classes: Tuple[TestClassTime, ...] = field(default=())
    weight: int = 0

    @property
    def name(self) -> str:
        return f"{self.subproject.name}_{self.number}"

    @property
    def include(self) -> bool:
        return self.mode is InclusionMode.INCLUDE

    def job_id(self, model: "BuildModel", coverage: "TestCoverage", bucket_index: int) -> str:
        return coverage.as_configuration_id(model, self.name)

    def name_for(self, coverage: "TestCoverage") -> str:
        return f"{coverage.as_name()} ({self.name})"

    def description_for(self, coverage: "TestCoverage") -> str:
        return f"{coverage.as_name()} for {self.name}"

    def subproject_names(self) -> Tuple[str, ...]:
        return (self.subproject.name,)

    def extra_parameters(self) -> str:
        # unit tests only run in the exclude fragment
        if self.include:
            return f"-PincludeTestClasses=true -x {self.subproject.name}:test"
        return "-PexcludeTestClasses=true"

    def filter_file(self) -> Optional[FilterFile]:
        return FilterFile(mode=self.mode, lines=tuple(c.to_properties_line() for c in self.classes))


@dataclass(frozen=True)
class VersionMatrixBucket(Bucket):
    major_version: int

    def job_id(self, model: "BuildModel", coverage: "TestCoverage", bucket_index: int) -> str:
        return coverage.as_configuration_id(model, f"gradle{self.major_version}")

    def name_for(self, coverage: "TestCoverage") -> str:
        return f"{coverage.as_name()} (gradle {self.major_version})"

    def description_for(self, coverage: "TestCoverage") -> str:
        return f"{coverage.as_name()} for gradle {self.major_version}"

    def extra_parameters(self) -> str:
        return f"-PonlyTestGradleMajorVersion={self.major_version}"


@dataclass(frozen=True)
class WholeSuiteBucket(Bucket):
    def job_id(self, model: "BuildModel", coverage: "TestCoverage", bucket_index: int) -> str:
        return coverage.as_configuration_id(model, "all")

    def name_for(self, coverage: "TestCoverage") -> str:
        return coverage.as_name()

    def description_for(self, coverage: "TestCoverage") -> str:
        return f"{coverage.as_name()} for all subprojects"


__all__ = [
    "Bucket",
    "FilterFile",
    "InclusionMode",
    "LargeSubprojectSplitBucket",
    "SmallSubprojectBucket",
    "SubprojectTestClassTime",
    "TestClassTime",
    "VersionMatrixBucket",
    "WholeSuiteBucket",
]
