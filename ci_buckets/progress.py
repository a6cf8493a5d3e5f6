#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Progress reporting built on top of tqdm."""

from __future__ import annotations

from typing import Optional

from tqdm import tqdm


class ProgressController:
    """Drives a tqdm bar in whole units.

    Disabled controllers still count units so callers need no branching.
    """

    def __init__(self, total_units: int, description: str = "", *, enabled: bool = True) -> None:
        self.total_units = max(int(total_units), 1)
        self.description = description or "Progress"
        self.enabled = enabled
        self.completed_units = 0
        self._bar: Optional[tqdm] = None

    def __enter__(self) -> "ProgressController":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self) -> None:
        if self._bar is not None:
            return
        self._bar = tqdm(
            total=self.total_units,
            desc=self.description,
            unit="coverage",
            dynamic_ncols=True,
            leave=False,
            disable=not self.enabled,
        )

    def advance(self, units: int = 1) -> None:
        if units <= 0:
            return
        self.completed_units += units
        if self._bar is not None:
            self._bar.update(units)

    def close(self) -> None:
        if self._bar is None:
            return
        self._bar.close()
        self._bar = None
