"""Unit tests for the bucket partitioner."""

from __future__ import annotations

from collections import Counter

import pytest

from stageci.model import TestClass, WorkItem
from stageci.partition import InvalidBucketCount, partition, weighted_items


def test_regression_seven_items_three_buckets() -> None:
    items = [(f"T{w}", w) for w in [10, 9, 8, 7, 6, 5, 4]]

    buckets = partition(items, 3)

    assert [b.duration for b in buckets] == [17, 17, 15]
    assert [b.index for b in buckets] == [0, 1, 2]


def test_every_item_assigned_exactly_once() -> None:
    weights = [3, 41, 7, 7, 19, 2, 0, 11, 5, 23, 8, 13]
    items = [WorkItem(f"C{i}", w) for i, w in enumerate(weights)]

    for bucket_count in (1, 2, 3, 5, 12, 20):
        buckets = partition(items, bucket_count)

        assert len(buckets) == bucket_count
        assigned = Counter(i for b in buckets for i in b.ids)
        assert set(assigned) == {item.id for item in items}
        assert all(n == 1 for n in assigned.values())
        assert sum(b.duration for b in buckets) == sum(weights)


def test_equal_weights_are_deterministic() -> None:
    items = [(f"org.example.Test{i:02d}", 5) for i in range(17)]

    first = partition(items, 4)
    for _ in range(5):
        assert partition(list(items), 4) == first


def test_equal_weights_follow_input_order() -> None:
    buckets = partition([("a", 1), ("b", 1), ("c", 1)], 3)

    assert [b.ids for b in buckets] == [["a"], ["b"], ["c"]]


def test_makespan_within_list_scheduling_bound() -> None:
    weights = [29, 27, 25, 23, 21, 19, 17, 15, 13, 11, 9, 7, 5, 3]
    m = 4
    buckets = partition([(str(i), w) for i, w in enumerate(weights)], m)

    makespan = max(b.duration for b in buckets)
    assert makespan >= sum(weights) / m
    assert makespan <= sum(weights) / m + max(weights) * (1 - 1 / m)


def test_refinement_improves_on_greedy_assignment() -> None:
    # plain LPT ends at 19 here
    buckets = partition([(str(w), w) for w in [10, 9, 8, 7, 6, 5, 4]], 3)

    assert [b.ids for b in buckets] == [["8", "5", "4"], ["10", "7"], ["9", "6"]]


def test_empty_items_give_empty_buckets() -> None:
    buckets = partition([], 3)

    assert len(buckets) == 3
    assert all(len(b) == 0 and b.duration == 0 for b in buckets)


def test_more_buckets_than_items() -> None:
    buckets = partition([("x", 4), ("y", 2)], 5)

    assert [b.ids for b in buckets] == [["x"], ["y"], [], [], []]


@pytest.mark.parametrize("count", [0, -1])
def test_invalid_bucket_count(count: int) -> None:
    with pytest.raises(InvalidBucketCount):
        partition([("x", 1)], count)


def test_single_bucket_takes_everything() -> None:
    buckets = partition([("a", 1), ("b", 3), ("c", 2)], 1)

    assert buckets[0].ids == ["b", "c", "a"]
    assert buckets[0].duration == 6


def test_weighted_items_uses_default_for_unknown_classes() -> None:
    classes = [
        TestClass("org.A", "core"),
        TestClass("org.B", "core"),
        TestClass("org.C", "core", duration=2.0),
    ]

    items = weighted_items(classes, {"org.A": 12.5, "org.C": 99.0}, default_weight=3.0)

    assert items == [
        WorkItem("org.A", 12.5, "core"),
        WorkItem("org.B", 3.0, "core"),
        WorkItem("org.C", 2.0, "core"),
    ]


def test_fractional_weights_terminate() -> None:
    # 66+62 vs 66+56.6: swapping 62 and 56.6 only trades the two loads
    weights = [88.0, 92.6, 66.0, 30.744, 96.5, 62.0, 56.6, 53.757, 66.0, 95.0, 73.0, 8.973]
    items = [(f"c{i}", w) for i, w in enumerate(weights)]

    buckets = partition(items, 7)

    assert sorted(i for b in buckets for i in b.ids) == sorted(i for i, _ in items)
    assert sum(b.duration for b in buckets) == pytest.approx(sum(weights))
    assert buckets[0].duration == pytest.approx(128.0)
    assert buckets[0].ids == ["c2", "c5"]
