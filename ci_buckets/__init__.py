"""Split large test suites into balanced CI buckets."""

from .buckets import (
    Bucket,
    FilterFile,
    InclusionMode,
    LargeSubprojectSplitBucket,
    SmallSubprojectBucket,
    SubprojectTestClassTime,
    TestClassTime,
    VersionMatrixBucket,
    WholeSuiteBucket,
)
from .classifier import CoverageStrategy, StatisticBasedBucketProvider, select_strategy
from .config import Config, SchedulingSettings
from .history import HistoryFormatError, load_history, parse_history
from .jobs import FunctionalTest, materialize
from .logger import StructuredLogger
from .model import BuildModel, Os, Stage, Subproject, TestCoverage, TestType
from .splitter import SplitConstraints, split, summarize

__version__ = "0.1.0"

__all__ = [
    "Bucket",
    "BuildModel",
    "Config",
    "CoverageStrategy",
    "FilterFile",
    "FunctionalTest",
    "HistoryFormatError",
    "InclusionMode",
    "LargeSubprojectSplitBucket",
    "Os",
    "SchedulingSettings",
    "SmallSubprojectBucket",
    "SplitConstraints",
    "Stage",
    "StatisticBasedBucketProvider",
    "StructuredLogger",
    "Subproject",
    "SubprojectTestClassTime",
    "TestClassTime",
    "TestCoverage",
    "TestType",
    "VersionMatrixBucket",
    "WholeSuiteBucket",
    "load_history",
    "materialize",
    "parse_history",
    "select_strategy",
    "split",
    "summarize",
]
