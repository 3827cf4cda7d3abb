# graph.py
# Declarative pipeline graph handed to the CI server.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

from .branch import Branch


@dataclass(frozen=True)
class VcsTrigger:
    kind: str = "vcs"


@dataclass(frozen=True)
class FinishBuildTrigger:
    build_type_id: str
    successful_only: bool = True
    kind: str = "finish-build"


@dataclass(frozen=True)
class ScheduleTrigger:
    """Daily schedule at `hour`."""
    hour: int
    trigger_build: str = "always"
    with_pending_changes_only: bool = False
    kind: str = "schedule"


Trigger = Union[VcsTrigger, FinishBuildTrigger, ScheduleTrigger]


@dataclass(frozen=True)
class BuildStep:
    name: str
    tasks: Tuple[str, ...]


@dataclass(frozen=True)
class BuildType:
    id: str
    name: str
    description: str = ""
    steps: Tuple[BuildStep, ...] = ()
    dependencies: Tuple[str, ...] = ()
    triggers: Tuple[Trigger, ...] = ()
    params: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CleanupRule:
    history_days: Optional[int] = None
    artifact_days: Optional[int] = None
    artifact_patterns: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    parent_id: Optional[str] = None
    description: str = ""
    params: Dict[str, str] = field(default_factory=dict)
    build_types: Tuple[BuildType, ...] = ()
    subprojects: Tuple["Project", ...] = ()
    build_types_order: Tuple[str, ...] = ()
    subprojects_order: Tuple[str, ...] = ()
    cleanup: Tuple[CleanupRule, ...] = ()

    def all_build_types(self) -> list[BuildType]:
        out = list(self.build_types)
        for sub in self.subprojects:
            out.extend(sub.all_build_types())
        return out


@dataclass(frozen=True)
class PipelineGraph:
    root: Project
    branch: Branch

    def build_type(self, build_type_id: str) -> BuildType:
        for bt in self.root.all_build_types():
            if bt.id == build_type_id:
                return bt
        raise KeyError(build_type_id)
