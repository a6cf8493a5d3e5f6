from __future__ import annotations

import json
import unittest

from ci_buckets.buckets import (
    FilterFile,
    InclusionMode,
    LargeSubprojectSplitBucket,
    TestClassTime,
    VersionMatrixBucket,
    WholeSuiteBucket,
)
from ci_buckets.jobs import PREPARE_TEST_CLASSES, materialize, prepare_test_classes_step, unix_script, windows_script
from ci_buckets.model import BuildModel, Os, Stage, Subproject, TestCoverage, TestType

FILTER = FilterFile(InclusionMode.EXCLUDE, ("org.ATest=integTest", "org.BTest=crossVersionTest"))


class ScriptTestCase(unittest.TestCase):
    def test_unix_script(self) -> None:
        expected = """
mkdir -p build
rm -rf build/*-test-classes.properties
cat > build/exclude-test-classes.properties << EOL
org.ATest=integTest
org.BTest=crossVersionTest
EOL

echo "Tests to be excluded in this build"
cat build/exclude-test-classes.properties
"""
        self.assertEqual(unix_script(FILTER), expected)

    def test_windows_script(self) -> None:
        expected = """
mkdir build
del /f /q build\\include-test-classes.properties
del /f /q build\\exclude-test-classes.properties
(
echo org.ATest=integTest
echo org.BTest=crossVersionTest
) > build\\exclude-test-classes.properties

echo "Tests to be excluded in this build"
type build\\exclude-test-classes.properties
"""
        self.assertEqual(windows_script(FILTER), expected)

    def test_step_picks_dialect_by_os(self) -> None:
        windows = prepare_test_classes_step(FILTER, Os.WINDOWS)
        linux = prepare_test_classes_step(FILTER, Os.LINUX)
        self.assertEqual((windows.name, windows.execution_mode), (PREPARE_TEST_CLASSES, "ALWAYS"))
        self.assertIn("type build\\exclude-test-classes.properties", windows.script_content)
        self.assertIn("cat build/exclude-test-classes.properties", linux.script_content)


class MaterializeTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.model = BuildModel(project_prefix="Check_", subprojects=(Subproject("core"),))
        self.stage = Stage("ReadyForMerge")

    def test_fragment_job_on_windows(self) -> None:
        coverage = TestCoverage(uuid=2, test_type=TestType.PLATFORM, os=Os.WINDOWS)
        fragment = LargeSubprojectSplitBucket(
            Subproject("core"), 1, InclusionMode.INCLUDE, (TestClassTime("org.ATest", "integTest", 30),), 30
        )
        job = materialize(fragment, self.model, self.stage, coverage, 0)
        self.assertEqual(job.id, "Check_PlatformJava8Windows_core_1")
        self.assertEqual(job.name, f"{coverage.as_name()} (core_1)")
        self.assertEqual(job.subprojects, ("core",))
        self.assertEqual(job.os, "windows")
        self.assertIn("echo org.ATest=integTest", job.pre_build_steps[0].script_content)
        self.assertIn(") > build\\include-test-classes.properties", job.pre_build_steps[0].script_content)

    def test_whole_suite_job(self) -> None:
        coverage = TestCoverage(uuid=4, test_type=TestType.ALL_VERSIONS_INTEG_MULTI_VERSION)
        job = materialize(WholeSuiteBucket(), self.model, self.stage, coverage, 0)
        self.assertEqual(job.id, "Check_AllVersionsIntegMultiVersionJava8Linux_all")
        self.assertEqual(job.name, coverage.as_name())
        self.assertEqual(job.description, f"{coverage.as_name()} for all subprojects")
        self.assertEqual((job.subprojects, job.pre_build_steps), ((), ()))

    def test_version_job(self) -> None:
        coverage = TestCoverage(uuid=3, test_type=TestType.QUICK_FEEDBACK_CROSS_VERSION)
        job = materialize(VersionMatrixBucket(4), self.model, self.stage, coverage, 3)
        self.assertEqual(job.id, "Check_QuickFeedbackCrossVersionJava8Linux_gradle4")
        self.assertEqual(job.name, f"{coverage.as_name()} (gradle 4)")
        self.assertEqual(job.extra_parameters, "-PonlyTestGradleMajorVersion=4")

    def test_job_serialises_to_json(self) -> None:
        coverage = TestCoverage(uuid=1, test_type=TestType.QUICK)
        job = materialize(Subproject("core"), self.model, self.stage, coverage, 0)
        payload = json.loads(json.dumps(job.to_dict()))
        self.assertEqual(payload["id"], "Check_QuickJava8Linux_core")
        self.assertEqual(payload["subprojects"], ["core"])
        self.assertEqual(payload["test_type"], "quick")
        self.assertEqual(payload["pre_build_steps"], [])


if __name__ == "__main__":
    unittest.main()
