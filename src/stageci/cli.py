# cli.py
from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import click

from stageci import settings
from stageci.api_client import APIClient, APIError
from stageci.assembler import PipelineError
from stageci.dag import dependency_levels
from stageci.emit import graph_to_dict, write_graph
from stageci.generator import Generation, generate, load_pipeline
from stageci.git_facts.git import current_ref, remote_url
from stageci.partition import InvalidBucketCount
from stageci.stages import PipelineRun
from stageci.ui.console import Console, get_console, set_console


def find_pipeline_files() -> list[Path]:
    """
    Find all pipeline files in the current directory.

    Returns:
        List of Path objects for pipeline files
    """
    pipeline_files = []
    current_dir = Path(".")

    default_pipeline = current_dir / "stageci_pipeline.py"
    if default_pipeline.exists():
        pipeline_files.append(default_pipeline)

    for path in current_dir.glob("*_pipeline.py"):
        if path != default_pipeline:
            pipeline_files.append(path)

    return sorted(pipeline_files)


def discover_pipeline(pipeline_arg: str | None) -> Path:
    """
    Discover pipeline file from argument or default.

    Raises:
        SystemExit: If the pipeline cannot be found or several candidates exist
    """
    console = get_console()

    if pipeline_arg:
        pipeline_path = Path(pipeline_arg)
        if not pipeline_path.exists() and pipeline_path.suffix != ".py":
            pipeline_path = Path(str(pipeline_path) + ".py")
        if not pipeline_path.exists():
            console.print_error(
                "Pipeline file not found",
                f"Could not find pipeline file: {pipeline_arg}",
                suggestion="Create a pipeline file or specify a different path:\n  stageci generate --pipeline my_pipeline.py",
            )
            sys.exit(1)
        return pipeline_path

    pipeline_files = find_pipeline_files()

    if len(pipeline_files) == 0:
        console.print_error(
            "No pipeline file found",
            "Could not find any pipeline files.",
            details=[
                "Looked for:",
                "  stageci_pipeline.py",
                "  *_pipeline.py",
            ],
            suggestion="Create a pipeline file:\n  stageci_pipeline.py\n\nOr specify one explicitly:\n  stageci generate --pipeline my_pipeline.py",
        )
        sys.exit(1)

    if len(pipeline_files) > 1:
        file_list = "\n".join(f"  {f}" for f in pipeline_files)
        console.print_error(
            "Multiple pipeline files found",
            "Found multiple pipeline files. Please specify which one to use:",
            details=[file_list],
            suggestion="Specify a pipeline explicitly:\n  stageci generate --pipeline stageci_pipeline.py",
        )
        sys.exit(1)

    return pipeline_files[0]


def resolve_branch_parameter(branch_arg: str | None) -> str:
    """--branch, then STAGECI_BRANCH, then the checked-out git ref."""
    if branch_arg:
        return branch_arg
    if settings.BRANCH:
        return settings.BRANCH
    try:
        return current_ref()
    except (subprocess.CalledProcessError, FileNotFoundError):
        get_console().print_debug("No git ref available, branch parameter is empty")
        return ""


def _run_generation(ctx, pipeline: str | None, branch: str | None, data_dir: str) -> tuple[Path, Generation]:
    console = get_console()
    pipeline_path = discover_pipeline(pipeline)

    try:
        config = load_pipeline(pipeline_path)
    except Exception as e:
        console.print_error(
            "Failed to load pipeline",
            f"Could not load pipeline from {pipeline_path}",
            details=[str(e)],
        )
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)

    branch_param = resolve_branch_parameter(branch)
    console.print_debug(f"Branch parameter: {branch_param!r}")

    try:
        generation = generate(config, branch_param, data_dir=data_dir)
    except InvalidBucketCount as e:
        console.print_error(
            "Invalid bucket count",
            str(e),
            suggestion=f"Fix the test specs in {pipeline_path.name}: every spec needs at least one bucket.",
        )
        sys.exit(1)
    except PipelineError as e:
        console.print_error("Inconsistent pipeline", str(e))
        sys.exit(1)

    console.print_generation_started(
        pipeline=pipeline_path.name,
        branch=generation.policy.branch.display_name,
        stage_count=len(generation.stages),
    )
    return pipeline_path, generation


def _pipeline_options(f):
    f = click.option(
        "--data-dir",
        default=settings.DATA_DIR,
        show_default=True,
        help="Directory holding subprojects.json, test-class-data.json and performance data",
    )(f)
    f = click.option("--branch", default=None, help="Branch parameter (defaults to STAGECI_BRANCH or the git ref)")(f)
    f = click.option(
        "--pipeline",
        default=None,
        help="Pipeline file path (defaults to stageci_pipeline.py if present)",
    )(f)
    return f


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """StageCI - bucketed CI pipeline configuration generator."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command("generate")
@_pipeline_options
@click.option("--output", default=settings.OUTPUT, show_default=True, help="Where to write the pipeline graph")
@click.pass_context
def generate_cmd(ctx, pipeline, branch, data_dir, output):
    """Generate the pipeline graph and write it as JSON."""
    console = get_console()
    try:
        _path, generation = _run_generation(ctx, pipeline, branch, data_dir)
        changed = write_graph(generation.graph, output)
        console.print_graph_written(output, changed)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except OSError as e:
        console.print_error("Could not write pipeline", str(e))
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@_pipeline_options
@click.pass_context
def plan(ctx, pipeline, branch, data_dir):
    """Print stages, buckets and build order without writing anything."""
    console = get_console()
    try:
        _path, generation = _run_generation(ctx, pipeline, branch, data_dir)

        for stage in generation.stages:
            console.print_stage(stage.name, stage.gate.value, len(stage.jobs))
            for job in stage.jobs:
                if job.is_bucket:
                    bucket = generation.buckets[job.bucket_key][job.bucket_index]
                    console.print_bucket(job.name, bucket.duration, len(bucket))
                else:
                    console.print_info(f"  {job.name}: {job.task}")

        console.print_levels(dependency_levels(generation.graph.root.all_build_types()))
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@_pipeline_options
@click.option("--api", required=True, help="Registry base URL (e.g., http://localhost:8000)")
@click.option("--repo", default=None, help="Repository URL (defaults to git remote origin URL)")
@click.pass_context
def submit(ctx, pipeline, branch, data_dir, api, repo):
    """Submit the generated pipeline to the registry."""
    console = get_console()
    try:
        _path, generation = _run_generation(ctx, pipeline, branch, data_dir)

        if not repo:
            try:
                repo = remote_url("origin")
                console.print_debug(f"Using repository URL from git remote: {repo}")
            except (subprocess.CalledProcessError, FileNotFoundError):
                repo = Path(os.getcwd()).name
                console.print_debug(f"No git remote, using directory name: {repo}")

        stages = PipelineRun(generation.stages).to_dict()["stages"]
        client = APIClient(api)
        try:
            result = client.submit_pipeline(repo, graph_to_dict(generation.graph), stages)
        except APIError as e:
            console.print_error(
                "Submission failed",
                str(e),
                suggestion=f"Check the registry at {client.base_url}.",
            )
            sys.exit(1)

        state = "new revision" if result.get("changed") else "unchanged"
        console.print_info(f"\nSubmitted {result.get('project_id')} to {client.base_url}")
        console.print_info(f"  Revision: {result.get('revision')} ({state})")
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


if __name__ == "__main__":
    cli()
