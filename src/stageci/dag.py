# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, List, Sequence, Set, Tuple

from .graph import BuildType


class GraphError(ValueError):
    """The build-type dependency graph is inconsistent."""
    pass


def build_dag(build_types: Sequence[BuildType]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build a DAG from build types.

    Requires:
      - build_type.id: str (unique)
      - build_type.dependencies: ids that must finish BEFORE this build
    """
    ids = [bt.id for bt in build_types]
    if len(set(ids)) != len(ids):
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        raise GraphError(f"Duplicate build type ids found: {dupes}")

    id_set = set(ids)
    adj: Dict[str, Set[str]] = {i: set() for i in id_set}
    indeg: Dict[str, int] = {i: 0 for i in id_set}

    for bt in build_types:
        for dep in bt.dependencies:
            if dep not in id_set:
                raise GraphError(f"Build type '{bt.id}' depends on missing build type '{dep}'")
            # edge dep -> bt.id
            if bt.id not in adj[dep]:
                adj[dep].add(bt.id)
                indeg[bt.id] += 1

    return adj, indeg


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Convert the DAG into topological levels.
    Builds on one level can run in parallel.
    """
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(sorted([n for n, d in indeg.items() if d == 0]))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level_size = len(q)
        level: List[str] = []

        for _ in range(level_size):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in sorted(adj.get(node, set())):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        levels.append(level)

    if processed != len(indeg):
        remaining = sorted([n for n, d in indeg.items() if d > 0])
        raise GraphError(f"Dependency cycle between build types: {remaining}")

    return levels


def dependency_levels(build_types: Sequence[BuildType]) -> List[List[str]]:
    adj, indeg = build_dag(build_types)
    return topo_levels(adj, indeg)
