#!/usr/bin/env python3
"""Bucket splitting.

This module implements the greedy splitter that turns a size-descending list
of weighted items into a fixed number of roughly equal buckets.  Items that
are too large for one bucket are handed to a caller supplied
``split_large`` function, items that are too small are merged by
``aggregate_small``.  The splitter itself never looks inside an item; it only
reads ``item.weight``.

The target bucket size is recomputed from the remaining weight at every step,
so early buckets may over- or undershoot and later buckets compensate::

    >>> split(items, split_large, aggregate_small, 5, max_items_per_bucket=10)

The recursion walks an immutable window over the input, so the caller's list
is never mutated and identical input always yields identical buckets.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")
R = TypeVar("R")


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SplitConstraints:
    expected_bucket_number: int
    max_items_per_bucket: Optional[int] = None

    def __post_init__(self) -> None:
        _validate_counts(self.expected_bucket_number, self.max_items_per_bucket)


@dataclass(frozen=True)
class SplitStatistics:
    bucket_count: int
    total_weight: int
    max_weight: int
    min_weight: int
    gini_coefficient: float


@dataclass(frozen=True)
class _Window(Generic[T]):
    """Read-only view of ``items[head:tail]`` with cached weights."""

    items: Tuple[T, ...]
    weights: Tuple[int, ...]
    head: int
    tail: int

    @classmethod
    def of(cls, items: Sequence[T]) -> "_Window[T]":
        frozen = tuple(items)
        weights = tuple(_weight_of(item) for item in frozen)
        return cls(items=frozen, weights=weights, head=0, tail=len(frozen))

    def __len__(self) -> int:
        return self.tail - self.head

    @property
    def total_weight(self) -> int:
        return sum(self.weights[self.head:self.tail])

    def values(self) -> List[T]:
        return list(self.items[self.head:self.tail])

    def take_largest(self) -> Tuple[T, int, "_Window[T]"]:
        index = self.head
        rest = _Window(self.items, self.weights, self.head + 1, self.tail)
        return self.items[index], self.weights[index], rest

    def take_smallest(self) -> Tuple[T, int, "_Window[T]"]:
        index = self.tail - 1
        rest = _Window(self.items, self.weights, self.head, self.tail - 1)
        return self.items[index], self.weights[index], rest


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _validate_counts(expected_bucket_number: int, max_items_per_bucket: Optional[int]) -> None:
    if expected_bucket_number < 1:
        raise ValueError(f"expected_bucket_number must be >= 1, got {expected_bucket_number}")
    if max_items_per_bucket is not None and max_items_per_bucket < 1:
        raise ValueError(f"max_items_per_bucket must be >= 1, got {max_items_per_bucket}")


def _weight_of(item: Any) -> int:
    weight = int(item.weight)
    if weight < 0:
        raise ValueError(f"weight must be non-negative: {item!r}")
    return weight


def _piece_count(weight: int, target: int) -> int:
    if target <= 0:
        return 1
    return max(1, math.ceil(weight / target))


def _chunks(values: Sequence[T], size: Optional[int]) -> List[List[T]]:
    if size is None or len(values) <= size:
        return [list(values)]
    return [list(values[i:i + size]) for i in range(0, len(values), size)]


def _compute_gini(values: Sequence[float]) -> float:
    filtered = [v for v in values if v >= 0]
    if not filtered:
        return 0.0
    sorted_vals = sorted(filtered)
    cum = 0.0
    for i, val in enumerate(sorted_vals, 1):
        cum += i * val
    total = sum(sorted_vals)
    n = len(sorted_vals)
    if total == 0:
        return 0.0
    return (2 * cum) / (n * total) - (n + 1) / n


def summarize(weights: Sequence[int]) -> SplitStatistics:
    """Balance statistics for a list of bucket weights."""
    return SplitStatistics(
        bucket_count=len(weights),
        total_weight=sum(weights),
        max_weight=max(weights) if weights else 0,
        min_weight=min(weights) if weights else 0,
        gini_coefficient=_compute_gini(weights),
    )


# ---------------------------------------------------------------------------
# Splitting
# ---------------------------------------------------------------------------


def _split(
    remaining: _Window[T],
    split_large: Callable[[T, int], Sequence[R]],
    aggregate_small: Callable[[List[T]], R],
    expected_bucket_number: int,
    max_items_per_bucket: Optional[int],
) -> List[R]:
    if not remaining:
        return []
    if expected_bucket_number <= 1:
        # Everything left goes to the last bucket, chunked so the item cap still holds.
        return [aggregate_small(chunk) for chunk in _chunks(remaining.values(), max_items_per_bucket)]

    target = remaining.total_weight // expected_bucket_number
    largest, largest_weight, rest = remaining.take_largest()

    if largest_weight >= target:
        pieces = list(split_large(largest, _piece_count(largest_weight, target)))
        return pieces + _split(
            rest,
            split_large,
            aggregate_small,
            expected_bucket_number - len(pieces),
            max_items_per_bucket,
        )

    group = [largest]
    accumulated = largest_weight
    while accumulated < target and rest and (max_items_per_bucket is None or len(group) < max_items_per_bucket):
        smallest, smallest_weight, rest = rest.take_smallest()
        group.append(smallest)
        accumulated += smallest_weight
    return [aggregate_small(group)] + _split(
        rest,
        split_large,
        aggregate_small,
        expected_bucket_number - 1,
        max_items_per_bucket,
    )


def split(
    items: Sequence[T],
    split_large: Callable[[T, int], Sequence[R]],
    aggregate_small: Callable[[List[T]], R],
    expected_bucket_number: int,
    max_items_per_bucket: Optional[int] = None,
) -> List[R]:
    """Split ``items`` into about ``expected_bucket_number`` balanced buckets.

    ``items`` must already be ordered by descending ``weight``; the order is
    not checked.  ``split_large(item, pieces)`` breaks an item that alone
    reaches the target size into ``pieces`` buckets, and
    ``aggregate_small(items)`` merges a group of small items into one bucket.
    ``max_items_per_bucket=None`` leaves aggregates unbounded.

    Fewer buckets are returned when the items run out first; more are returned
    when an oversized item yields more fragments than there are slots left, or
    when the item cap forces the remainder into several aggregates.
    """
    _validate_counts(expected_bucket_number, max_items_per_bucket)
    if not items:
        raise ValueError("items must not be empty")
    return _split(_Window.of(items), split_large, aggregate_small, expected_bucket_number, max_items_per_bucket)


def split_with_constraints(
    items: Sequence[T],
    split_large: Callable[[T, int], Sequence[R]],
    aggregate_small: Callable[[List[T]], R],
    constraints: SplitConstraints,
) -> List[R]:
    return split(
        items,
        split_large,
        aggregate_small,
        constraints.expected_bucket_number,
        constraints.max_items_per_bucket,
    )


__all__ = [
    "SplitConstraints",
    "SplitStatistics",
    "split",
    "split_with_constraints",
    "summarize",
]
