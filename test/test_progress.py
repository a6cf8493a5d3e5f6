from __future__ import annotations

import unittest

from ci_buckets.progress import ProgressController


class ProgressControllerTestCase(unittest.TestCase):
    def test_counts_units_when_disabled(self) -> None:
        with ProgressController(3, "Bucketing", enabled=False) as progress:
            progress.advance()
            progress.advance(2)
            progress.advance(0)
        self.assertEqual(progress.completed_units, 3)

    def test_total_is_at_least_one(self) -> None:
        progress = ProgressController(0)
        self.assertEqual((progress.total_units, progress.description), (1, "Progress"))
        progress.close()


if __name__ == "__main__":
    unittest.main()
