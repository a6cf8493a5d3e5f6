from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import yaml

from ci_buckets.config import Config, LoggerSettings, SchedulingSettings

CONFIG = """
app:
  name: ci-buckets
scheduling:
  bucket_number_per_build_type: 20
  max_subprojects_in_bucket: 5
logger:
  level: debug
  sinks:
    - memory
reporting:
  api_token: abc123
  retries: "3"
  verbose: "yes"
"""


class ConfigTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "scheduling.yaml"
        self.path.write_text(CONFIG, encoding="utf-8")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_layers(self) -> None:
        env = {"CI_BUCKETS_TEST__SCHEDULING__MAX_SUBPROJECTS_IN_BUCKET": "7"}
        with mock.patch.dict(os.environ, env):
            cfg = Config.load(
                self.path,
                defaults={"scheduling": {"max_major_version": 6, "bucket_number_per_build_type": 50}},
                env_prefix="CI_BUCKETS_TEST",
                cli_overrides={"scheduling.bucket_number_per_build_type": "30", "history.path": "data.json"},
            )
        self.assertEqual(cfg.get("scheduling.max_major_version", int), 6)
        self.assertEqual(cfg.get("scheduling.max_subprojects_in_bucket", int), 7)
        self.assertEqual(cfg.get("scheduling.bucket_number_per_build_type", int), 30)
        self.assertEqual(cfg.get("history.path", str), "data.json")
        self.assertEqual(cfg.source, self.path)

    def test_get_coercion_and_defaults(self) -> None:
        cfg = Config.load(self.path)
        self.assertEqual(cfg.get("reporting.retries", int), 3)
        self.assertTrue(cfg.get("reporting.verbose", bool))
        self.assertEqual(cfg.get("missing.key", default="fallback"), "fallback")
        with self.assertRaises(KeyError):
            cfg.get("missing.key")
        with self.assertRaises(KeyError):
            cfg.get("missing.key", default=None, required=True)
        with self.assertRaises(TypeError):
            cfg.get("scheduling", list)

    def test_export_redacts_secrets(self) -> None:
        cfg = Config.load(self.path)
        exported = cfg.export()
        self.assertEqual(exported["reporting"]["api_token"], "[REDACTED]")
        self.assertEqual(cfg.export(redact_secrets=False)["reporting"]["api_token"], "abc123")
        self.assertEqual(yaml.safe_load(cfg.export("yaml"))["app"]["name"], "ci-buckets")
        with self.assertRaises(ValueError):
            cfg.export("toml")

    def test_root_must_be_mapping(self) -> None:
        self.path.write_text("- a\n- b\n", encoding="utf-8")
        with self.assertRaises(ValueError):
            Config.load(self.path)


class SettingsTestCase(unittest.TestCase):
    def test_scheduling_defaults(self) -> None:
        self.assertEqual(SchedulingSettings.from_mapping(None), SchedulingSettings())
        settings = SchedulingSettings.from_mapping({"bucket_number_per_build_type": "12"})
        self.assertEqual((settings.bucket_number_per_build_type, settings.max_subprojects_in_bucket), (12, 10))

    def test_scheduling_rejects_non_positive(self) -> None:
        with self.assertRaises(ValueError):
            SchedulingSettings.from_mapping({"bucket_number_per_build_type": 0})
        with self.assertRaises(ValueError):
            SchedulingSettings.from_mapping({"max_subprojects_in_bucket": "many"})

    def test_logger_settings(self) -> None:
        settings = LoggerSettings.from_mapping({"level": "debug", "sinks": ["memory", {"type": "console"}]})
        self.assertEqual(settings.level, "DEBUG")
        self.assertEqual(settings.sinks, ({"type": "memory"}, {"type": "console"}))
        self.assertEqual(LoggerSettings.from_mapping(None).sinks, ({"type": "console"},))


if __name__ == "__main__":
    unittest.main()
