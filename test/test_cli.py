from __future__ import annotations

import io
import json
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

from ci_buckets.cli import main
from ci_buckets.logger import StructuredLogger

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
MEMORY_SINK = "logger.sinks=[{type: memory, name: cli}]"


class PlanCommandTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.output = Path(self._tmp.name) / "out" / "jobs.json"

    def tearDown(self) -> None:
        StructuredLogger.reset_context()
        self._tmp.cleanup()

    def _plan(self, *extra: str) -> int:
        return main([
            "plan",
            "--config", str(CONFIG_DIR / "scheduling.yaml"),
            "--history", str(CONFIG_DIR / "test-class-data.json"),
            "--output", str(self.output),
            "--set", MEMORY_SINK,
            *extra,
        ])

    def test_plan_single_stage(self) -> None:
        self.assertEqual(self._plan("--stage", "ReadyForMerge"), 0)
        jobs = json.loads(self.output.read_text(encoding="utf-8"))["jobs"]
        ids = [job["id"] for job in jobs]
        self.assertEqual(
            ids[:4],
            [f"Check_PlatformJava11Windows_{name}" for name in ("core", "launcher", "wrapper", "docs")],
        )
        self.assertEqual(ids[4:10], [f"Check_QuickFeedbackCrossVersionJava8Linux_gradle{v}" for v in range(1, 7)])
        self.assertEqual(ids[10:], ["Check_AllVersionsIntegMultiVersionJava8Linux_all", "Check_QuickJava8Linux_docs"])
        events = StructuredLogger.get_memory_sink("cli").events()
        complete = [e for e in events if e["event"] == "cli.plan.complete"]
        self.assertEqual(complete[0]["fields"]["jobs"], 12)
        self.assertEqual(complete[0]["stage"], "Materialize")

    def test_plan_splits_recorded_coverage(self) -> None:
        self.assertEqual(self._plan("--stage", "QuickFeedback", "--set", "scheduling.bucket_number_per_build_type=4"), 0)
        jobs = json.loads(self.output.read_text(encoding="utf-8"))["jobs"]
        subprojects = [name for job in jobs for name in job["subprojects"]]
        self.assertIn("core", subprojects)
        self.assertIn("launcher", subprojects)
        self.assertIn("wrapper", subprojects)
        self.assertNotIn("docs", subprojects)
        self.assertNotIn("tooling-api", subprojects)
        core_jobs = [job for job in jobs if job["subprojects"] == ["core"]]
        self.assertGreater(len(core_jobs), 1)
        self.assertIn("-PexcludeTestClasses=true", core_jobs[-1]["extra_parameters"])

    def test_missing_config(self) -> None:
        stderr = io.StringIO()
        with redirect_stderr(stderr):
            code = main(["plan", "--config", str(Path(self._tmp.name) / "absent.yaml")])
        self.assertEqual(code, 1)
        self.assertIn("File not found", stderr.getvalue())

    def test_unparsable_config(self) -> None:
        config = Path(self._tmp.name) / "broken.yaml"
        config.write_text("build_model: [unclosed\n", encoding="utf-8")
        stderr = io.StringIO()
        with redirect_stderr(stderr):
            code = main(["plan", "--config", str(config)])
        self.assertEqual(code, 1)
        self.assertIn("Error", stderr.getvalue())

    def test_wrongly_typed_build_model(self) -> None:
        config = Path(self._tmp.name) / "typed.yaml"
        config.write_text("logger:\n  sinks: [memory]\nbuild_model: [core, launcher]\n", encoding="utf-8")
        stderr = io.StringIO()
        with redirect_stderr(stderr):
            code = main(["plan", "--config", str(config)])
        self.assertEqual(code, 1)
        self.assertIn("TypeError", stderr.getvalue())

    def test_invalid_override(self) -> None:
        stderr = io.StringIO()
        with redirect_stderr(stderr):
            code = self._plan("--set", "scheduling.max_subprojects_in_bucket=0")
        self.assertEqual(code, 1)
        self.assertIn("ValueError", stderr.getvalue())


class FilterCommandTestCase(unittest.TestCase):
    def setUp(self) -> None:
        StructuredLogger.configure(sinks=[{"type": "memory", "name": "cli"}])

    def test_include_filter(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "include-test-classes.properties").write_text(
                "org.ATest=integTest\norg.BTest=crossVersionTest\n", encoding="utf-8"
            )
            stdout = io.StringIO()
            with redirect_stdout(stdout):
                code = main([
                    "filter",
                    "--build-dir", tmp,
                    "--task", "integTest",
                    "--source-set", "integTest",
                    "-P", "includeTestClasses=true",
                ])
        self.assertEqual(code, 0)
        task = json.loads(stdout.getvalue())
        self.assertEqual(task["include_patterns"], ["org.ATest"])
        self.assertFalse(task["fail_on_no_matching_tests"])

    def test_cross_version_filter(self) -> None:
        stdout = io.StringIO()
        with redirect_stdout(stdout):
            code = main([
                "filter",
                "--task", "gradle3.5CrossVersionTest",
                "--source-set", "crossVersionTest",
                "-P", "onlyTestGradleMajorVersion=4",
            ])
        self.assertEqual(code, 0)
        self.assertFalse(json.loads(stdout.getvalue())["enabled"])

    def test_bad_property(self) -> None:
        stderr = io.StringIO()
        with redirect_stderr(stderr):
            code = main(["filter", "--task", "integTest", "--source-set", "integTest", "-P", "oops"])
        self.assertEqual(code, 1)


if __name__ == "__main__":
    unittest.main()
