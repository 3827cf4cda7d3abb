from .dsl import stage, task, functional_tests, performance_tests, matrix, pipeline
from .generator import generate, load_pipeline
from .partition import partition, InvalidBucketCount
from .branch import Branch, resolve_branch, trigger_hour

__all__ = [
    "stage", "task", "functional_tests", "performance_tests", "matrix", "pipeline",
    "generate", "load_pipeline", "partition", "InvalidBucketCount",
    "Branch", "resolve_branch", "trigger_hour",
]
