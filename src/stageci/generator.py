# generator.py
from __future__ import annotations

import runpy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from . import settings
from .assembler import assemble
from .branch import BranchPolicy
from .config import FunctionalTestSpec, PerformanceTestSpec, PipelineConfig
from .durations import DataUnavailable, load, load_manifest
from .graph import PipelineGraph
from .model import Bucket, TestClass, WorkItem
from .partition import partition, weighted_items
from .stages import build_stages
from .ui.console import get_console

# Duration Store -> Bucket Partitioner -> Stage Model -> Project Assembler


# ----------------------------------------------------------------------
# Pipeline loading (local settings file)
# ----------------------------------------------------------------------

def load_pipeline(path: str | Path) -> PipelineConfig:
    """
    Load a pipeline definition from a python file path.

    The file must define either:
      - pipeline() -> PipelineConfig
      - PIPELINE = PipelineConfig(...)
    """
    p_path = Path(path).expanduser().resolve()
    if not p_path.exists():
        raise FileNotFoundError(f"Pipeline file not found: {p_path}")
    if p_path.suffix != ".py":
        raise ValueError(f"Pipeline must be a .py file, got: {p_path.name}")

    module_name = f"stageci_pipeline_{p_path.stem}"
    globals_dict = runpy.run_path(str(p_path), run_name=module_name)

    config = None
    if "pipeline" in globals_dict and callable(globals_dict["pipeline"]):
        try:
            config = globals_dict["pipeline"]()
        except TypeError as e:
            if "positional argument" in str(e):
                raise TypeError(
                    "Your pipeline() is being called with arguments (name collision with the helper). "
                    "Import the helper under another name: `from stageci.dsl import pipeline as define` "
                    "then `def pipeline(): return define(...)`"
                ) from e
            raise
    elif "PIPELINE" in globals_dict:
        config = globals_dict["PIPELINE"]

    if not isinstance(config, PipelineConfig):
        raise TypeError(
            "Pipeline file must return/define a PipelineConfig. "
            "Define pipeline() -> PipelineConfig or PIPELINE = PipelineConfig(...)."
        )

    return config


# ----------------------------------------------------------------------
# Data loading with fallbacks
# ----------------------------------------------------------------------

@dataclass
class Datasets:
    durations: Dict[str, float] = field(default_factory=dict)
    subprojects: Optional[Dict[str, Tuple[str, ...]]] = None
    performance_durations: Dict[str, float] = field(default_factory=dict)
    performance_tests: Dict[str, Tuple[str, ...]] = field(default_factory=dict)


def _load_or(loader, source: Path, fallback, what: str):
    try:
        return loader(source)
    except DataUnavailable as e:
        get_console().print_warning(f"{e}; {what}")
        return fallback


def load_datasets(data_dir: str | Path) -> Datasets:
    """
    Load all datasets from `data_dir`. Missing or corrupt sources degrade to
    default weights and never abort generation.
    """
    d = Path(data_dir)
    return Datasets(
        durations=_load_or(load, d / settings.TEST_CLASS_DATA_FILE, {}, "using default test weights"),
        subprojects=_load_or(
            load_manifest, d / settings.SUBPROJECTS_FILE, None, "using configured subprojects"
        ),
        performance_durations=_load_or(
            load, d / settings.PERFORMANCE_DURATIONS_FILE, {}, "using default scenario weights"
        ),
        performance_tests=_load_or(
            load_manifest, d / settings.PERFORMANCE_TESTS_FILE, {}, "no performance scenarios"
        ),
    )


def functional_items(
    spec: FunctionalTestSpec,
    config: PipelineConfig,
    data: Datasets,
    default_weight: float,
) -> List[WorkItem]:
    wanted = set(spec.subprojects)

    if data.subprojects is None:
        # whole-subproject items
        subs = [s for s in config.subprojects if not wanted or s in wanted]
        return [WorkItem(s, default_weight, s) for s in subs]

    classes = [
        TestClass(id=cls, subproject=sub)
        for sub, members in data.subprojects.items()
        if not wanted or sub in wanted
        for cls in members
    ]
    return weighted_items(classes, data.durations, default_weight)


def performance_items(spec: PerformanceTestSpec, data: Datasets, default_weight: float) -> List[WorkItem]:
    return [
        WorkItem(scenario, data.performance_durations.get(scenario, default_weight))
        for scenario in data.performance_tests.get(spec.coverage, ())
    ]


def partition_stages(
    config: PipelineConfig,
    data: Datasets,
    default_weight: float = settings.DEFAULT_WEIGHT,
) -> Dict[str, List[Bucket]]:
    """Partition every test spec of every stage; buckets are keyed by "<stage>/<spec>"."""
    buckets: Dict[str, List[Bucket]] = {}
    for stage_cfg in config.stages:
        for spec in stage_cfg.functional:
            items = functional_items(spec, config, data, default_weight)
            buckets[stage_cfg.bucket_key(spec.id)] = partition(items, spec.bucket_count)
        for spec in stage_cfg.performance:
            items = performance_items(spec, data, default_weight)
            buckets[stage_cfg.bucket_key(spec.id)] = partition(items, spec.bucket_count)
    return buckets


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

@dataclass
class Generation:
    graph: PipelineGraph
    stages: list
    buckets: Mapping[str, Sequence[Bucket]]
    policy: BranchPolicy


def generate(
    config: PipelineConfig,
    branch_param: Optional[str],
    data_dir: str | Path = settings.DATA_DIR,
    default_weight: float = settings.DEFAULT_WEIGHT,
    data: Optional[Datasets] = None,
) -> Generation:
    """
    Generate the pipeline graph for one branch.

    Raises:
        InvalidBucketCount: a test spec asks for fewer than one bucket
        PipelineError: the assembled graph is inconsistent
    """
    policy = BranchPolicy.from_parameter(branch_param)
    if data is None:
        data = load_datasets(data_dir)

    buckets = partition_stages(config, data, default_weight)
    stages = build_stages(config, buckets)
    graph = assemble(stages, buckets, policy, config)
    return Generation(graph=graph, stages=stages, buckets=buckets, policy=policy)
