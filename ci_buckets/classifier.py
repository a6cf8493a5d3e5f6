#!/usr/bin/env python3
"""Coverage classification and bucket provisioning.

Every test coverage is scheduled with one of three strategies:

* ``WHOLE_SUITE`` - the multi-version aggregate suite runs as a single job,
* ``VERSION_MATRIX`` - cross-version suites get one job per major version,
* ``WEIGHTED`` - subprojects are balanced by recorded test-class time with
  :func:`ci_buckets.splitter.split`.

:class:`StatisticBasedBucketProvider` computes the buckets of every coverage
once when it is constructed; callers create one provider per scheduling run
and pass it to whatever needs it.
"""
from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Sequence

from .buckets import (
    Bucket,
    LargeSubprojectSplitBucket,
    SmallSubprojectBucket,
    SubprojectTestClassTime,
    TestClassTime,
    VersionMatrixBucket,
    WholeSuiteBucket,
)
from .config import SchedulingSettings
from .history import BuildProjectClassTimes
from .jobs import FunctionalTest, materialize
from .logger import StructuredLogger
from .model import BuildModel, Stage, Subproject, TestCoverage, TestType
from .progress import ProgressController
from .splitter import split_with_constraints, summarize

UNKNOWN_SUBPROJECT = "UNKNOWN"
UNIT_TEST_SOURCE_SET = "test"


class CoverageStrategy(str, enum.Enum):
    WHOLE_SUITE = "whole-suite"
    VERSION_MATRIX = "version-matrix"
    WEIGHTED = "weighted"


def select_strategy(coverage: TestCoverage) -> CoverageStrategy:
    if coverage.test_type is TestType.ALL_VERSIONS_INTEG_MULTI_VERSION:
        return CoverageStrategy.WHOLE_SUITE
    if coverage.test_type in (TestType.ALL_VERSIONS_CROSS_VERSION, TestType.QUICK_FEEDBACK_CROSS_VERSION):
        return CoverageStrategy.VERSION_MATRIX
    return CoverageStrategy.WEIGHTED


def version_matrix_buckets(max_major_version: int) -> List[Bucket]:
    return [VersionMatrixBucket(version) for version in range(1, max_major_version + 1)]


def _bucket_weight(bucket: Bucket, totals: Mapping[str, int]) -> int:
    if isinstance(bucket, Subproject):
        return totals.get(bucket.name, 0)
    if isinstance(bucket, (SmallSubprojectBucket, LargeSubprojectSplitBucket)):
        return bucket.weight
    return 0


class BucketProvider(ABC):
    @abstractmethod
    def create_functional_tests_for(self, stage: Stage, coverage: TestCoverage) -> List[FunctionalTest]:
        raise NotImplementedError

    @abstractmethod
    def create_deferred_functional_tests_for(self, stage: Stage) -> List[FunctionalTest]:
        raise NotImplementedError


class StatisticBasedBucketProvider(BucketProvider):
    """Bucket provider driven by historical test-class times."""

    def __init__(
        self,
        model: BuildModel,
        history: BuildProjectClassTimes,
        settings: Optional[SchedulingSettings] = None,
        *,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self.model = model
        self.settings = settings or SchedulingSettings()
        self.logger = logger or StructuredLogger.get_logger("ci_buckets.classifier")
        self._buckets: Dict[TestCoverage, List[Bucket]] = self._build_buckets(history)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    def buckets_for(self, coverage: TestCoverage) -> List[Bucket]:
        return list(self._buckets[coverage])

    def create_functional_tests_for(self, stage: Stage, coverage: TestCoverage) -> List[FunctionalTest]:
        return [
            materialize(bucket, self.model, stage, coverage, index)
            for index, bucket in enumerate(self._buckets[coverage])
        ]

    def create_deferred_functional_tests_for(self, stage: Stage) -> List[FunctionalTest]:
        stages = list(self.model.stages)
        deferred_index = next((i for i, s in enumerate(stages) if not s.omits_slow_projects), None)
        if deferred_index is None or stages[deferred_index].name != stage.name:
            return []
        slow = self.model.slow_subprojects()
        deferred: List[FunctionalTest] = []
        for earlier in stages[:deferred_index]:
            for coverage in earlier.functional_tests:
                deferred.extend(materialize(subproject, self.model, earlier, coverage, -1) for subproject in slow)
        self.logger.info("classifier.deferred", stage=stage.name, jobs=len(deferred))
        return deferred

    # ------------------------------------------------------------------
    # bucket construction
    # ------------------------------------------------------------------

    def _build_buckets(self, history: BuildProjectClassTimes) -> Dict[TestCoverage, List[Bucket]]:
        result: Dict[TestCoverage, List[Bucket]] = {}
        total = sum(len(stage.functional_tests) for stage in self.model.stages)
        with ProgressController(total, "Bucketing", enabled=self.settings.show_progress) as progress:
            for stage in self.model.stages:
                for coverage in stage.functional_tests:
                    strategy = select_strategy(coverage)
                    if strategy is CoverageStrategy.WHOLE_SUITE:
                        buckets: List[Bucket] = [WholeSuiteBucket()]
                    elif strategy is CoverageStrategy.VERSION_MATRIX:
                        buckets = version_matrix_buckets(self.settings.max_major_version)
                    else:
                        buckets = self._split_by_test_classes(coverage, stage, history)
                    result[coverage] = buckets
                    self.logger.debug(
                        "classifier.coverage",
                        stage=stage.name,
                        coverage=coverage.as_id(self.model),
                        strategy=strategy.value,
                        buckets=len(buckets),
                    )
                    progress.advance(1)
        return result

    def _split_by_test_classes(self, coverage: TestCoverage, stage: Stage, history: BuildProjectClassTimes) -> List[Bucket]:
        valid_subprojects = self.model.subprojects_for(coverage, stage)
        build_project = coverage.as_id(self.model)
        class_times: Optional[Mapping[str, Sequence[TestClassTime]]] = history.get(build_project)
        if class_times is None:
            self.logger.info("classifier.history.missing", build_project=build_project, subprojects=len(valid_subprojects))
            return list(valid_subprojects)

        valid_names = {subproject.name for subproject in valid_subprojects}
        weighted: List[SubprojectTestClassTime] = []
        for name, times in class_times.items():
            if name == UNKNOWN_SUBPROJECT:
                continue
            subproject = self.model.subproject_by_name(name)
            if subproject is None:
                self.logger.info("classifier.subproject.unknown", build_project=build_project, subproject=name)
                continue
            if name not in valid_names:
                self.logger.debug("classifier.subproject.skipped", build_project=build_project, subproject=name)
                continue
            kept = tuple(t for t in times if t.source_set != UNIT_TEST_SOURCE_SET)
            weighted.append(SubprojectTestClassTime(subproject, kept))
        if sum(item.total_time for item in weighted) == 0:
            self.logger.info("classifier.history.empty", build_project=build_project, subprojects=len(valid_subprojects))
            return list(valid_subprojects)
        # Subprojects without history still have to run somewhere; they weigh nothing.
        recorded = {item.subproject.name for item in weighted}
        weighted.extend(SubprojectTestClassTime(s) for s in valid_subprojects if s.name not in recorded)

        weighted.sort(key=lambda item: -item.total_time)
        buckets: List[Bucket] = split_with_constraints(
            weighted,
            lambda item, pieces: item.split(pieces),
            SmallSubprojectBucket.of,
            self.settings.split_constraints(),
        )
        totals = {item.subproject.name: item.total_time for item in weighted}
        stats = summarize([_bucket_weight(bucket, totals) for bucket in buckets])
        self.logger.info(
            "classifier.split",
            build_project=build_project,
            buckets=stats.bucket_count,
            total_ms=stats.total_weight,
            max_ms=stats.max_weight,
            min_ms=stats.min_weight,
            gini=round(stats.gini_coefficient, 4),
        )
        return buckets


__all__ = [
    "BucketProvider",
    "CoverageStrategy",
    "StatisticBasedBucketProvider",
    "select_strategy",
    "version_matrix_buckets",
]
