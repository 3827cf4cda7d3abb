# partition.py
from __future__ import annotations

import heapq
from typing import Iterable, List, Mapping, Sequence, Tuple, Union

from .model import Bucket, TestClass, WorkItem

ItemLike = Union[WorkItem, Tuple[str, float]]

_EPSILON = 1e-9


class InvalidBucketCount(ValueError):
    """Raised when asked for fewer than one bucket."""

    def __init__(self, bucket_count: int):
        super().__init__(f"bucket count must be >= 1, got {bucket_count}")
        self.bucket_count = bucket_count


def weighted_items(
    test_classes: Iterable[TestClass],
    durations: Mapping[str, float],
    default_weight: float,
) -> List[WorkItem]:
    """Attach historical durations; classes without statistics get `default_weight`."""
    out: List[WorkItem] = []
    for tc in test_classes:
        duration = tc.duration if tc.duration is not None else durations.get(tc.id)
        out.append(WorkItem(tc.id, default_weight if duration is None else duration, tc.subproject))
    return out


def _as_work_item(item: ItemLike) -> WorkItem:
    if isinstance(item, WorkItem):
        return item
    return WorkItem(*item)


def partition(items: Sequence[ItemLike], bucket_count: int) -> List[Bucket]:
    """
    Split weighted items into `bucket_count` buckets with a small makespan.

    Greedy longest-processing-time first: items sorted by descending weight
    (stable, so equal weights keep input order) each go to the currently
    lightest bucket. The LPT result is then refined by moves/swaps out of the
    heaviest bucket, which can only lower the makespan.

    Buckets are returned heaviest first and re-indexed from 0. Extra buckets
    (more buckets than items) are empty.

    Raises:
        InvalidBucketCount: bucket_count < 1
    """
    if bucket_count < 1:
        raise InvalidBucketCount(bucket_count)

    work = [_as_work_item(i) for i in items]
    order = sorted(range(len(work)), key=lambda i: -work[i].weight)

    members: List[List[WorkItem]] = [[] for _ in range(bucket_count)]
    loads: List[float] = [0.0] * bucket_count

    # (load, bucket index): ties go to the lowest index
    heap = [(0.0, b) for b in range(bucket_count)]
    heapq.heapify(heap)
    for i in order:
        load, b = heapq.heappop(heap)
        members[b].append(work[i])
        loads[b] = load + work[i].weight
        heapq.heappush(heap, (loads[b], b))

    _rebalance(members, loads)

    ranked = sorted(range(bucket_count), key=lambda b: (-loads[b], b))
    return [Bucket(index=n, items=tuple(members[b])) for n, b in enumerate(ranked)]


def _rebalance(members: List[List[WorkItem]], loads: List[float]) -> None:
    """
    Lighten the heaviest bucket until no single move or swap helps.

    Each round applies the candidate with the smallest resulting pair maximum;
    candidates are scanned in bucket/item order and only strict improvements
    are taken, so the result is deterministic and the loop terminates.
    """
    while True:
        heavy = max(range(len(loads)), key=lambda b: (loads[b], -b))
        # rounding can make a swap of two loads look like a gain
        limit = loads[heavy] - _EPSILON * max(loads[heavy], 1.0)
        best = None  # (new pair max, other bucket, heavy item pos, other item pos or None)

        for other in range(len(loads)):
            if other == heavy:
                continue
            gap = loads[heavy] - loads[other]
            if gap <= 0:
                continue

            for hi, h_item in enumerate(members[heavy]):
                # move
                if 0 < h_item.weight < gap:
                    pair_max = max(loads[heavy] - h_item.weight, loads[other] + h_item.weight)
                    if pair_max < limit and (best is None or pair_max < best[0]):
                        best = (pair_max, other, hi, None)
                # swap
                for oi, o_item in enumerate(members[other]):
                    delta = h_item.weight - o_item.weight
                    if 0 < delta < gap:
                        pair_max = max(loads[heavy] - delta, loads[other] + delta)
                        if pair_max < limit and (best is None or pair_max < best[0]):
                            best = (pair_max, other, hi, oi)

        if best is None:
            return

        _, other, hi, oi = best
        h_item = members[heavy][hi]
        if oi is None:
            del members[heavy][hi]
            members[other].append(h_item)
            loads[heavy] -= h_item.weight
            loads[other] += h_item.weight
        else:
            o_item = members[other][oi]
            members[heavy][hi] = o_item
            members[other][oi] = h_item
            delta = h_item.weight - o_item.weight
            loads[heavy] -= delta
            loads[other] += delta
