# emit.py
from __future__ import annotations

import hashlib
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict

from .graph import PipelineGraph

# ---------------------------------------------------------------------
# The graph is written as canonical JSON next to a fingerprint file:
#   <output>             the graph
#   <output>.sha256      sha256 of the canonical JSON
#
# Regenerating identical configuration must not touch the output, so the
# CI server's settings-change detection does not see spurious churn.
# ---------------------------------------------------------------------


def graph_to_dict(graph: PipelineGraph) -> Dict[str, Any]:
    return {
        "branch": graph.branch.value,
        "project": asdict(graph.root),
    }


def canonical_json(data: Dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(data: Dict[str, Any]) -> str:
    h = hashlib.sha256()
    h.update(canonical_json(data).encode("utf-8"))
    return h.hexdigest()


def _fingerprint_path(path: Path) -> Path:
    return path.with_name(path.name + ".sha256")


def write_graph(graph: PipelineGraph, path: str | Path) -> bool:
    """
    Write the graph to `path` unless an identical graph is already there.

    Returns:
        True if the file was (re)written, False if it was up to date.
    """
    out = Path(path)
    data = graph_to_dict(graph)
    digest = fingerprint(data)

    fp_path = _fingerprint_path(out)
    if out.exists() and fp_path.exists() and fp_path.read_text(encoding="utf-8").strip() == digest:
        return False

    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    fp_path.write_text(digest + "\n", encoding="utf-8")
    return True
