"""CLI tests using click's CliRunner."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from stageci.cli import cli

PIPELINE = """
from stageci.dsl import ALWAYS_RUN, functional_tests, stage, task
from stageci.dsl import pipeline as define


def pipeline():
    return define(
        stage("Quick", task("Sanity", ":sanityCheck"), functional_tests("Unit", "test", {buckets}), gate=ALWAYS_RUN),
        stage("Ready for Nightly", functional_tests("Forking", "forkingIntegTest", 1)),
    )
"""


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "stageci_pipeline.py").write_text(PIPELINE.format(buckets=2), encoding="utf-8")
    (tmp_path / "subprojects.json").write_text(json.dumps({"core": ["org.A", "org.B", "org.C"]}), encoding="utf-8")
    (tmp_path / "test-class-data.json").write_text(json.dumps({"org.A": 5, "org.B": 4, "org.C": 3}), encoding="utf-8")
    return tmp_path


def test_generate_writes_graph_once(workspace: Path) -> None:
    runner = CliRunner()
    args = ["generate", "--branch", "refs/heads/master", "--data-dir", ".", "--output", "out/pipeline.json"]

    result = runner.invoke(cli, args)
    assert result.exit_code == 0, result.output
    assert "Pipeline written to out/pipeline.json" in result.output

    graph = json.loads((workspace / "out" / "pipeline.json").read_text(encoding="utf-8"))
    assert graph["project"]["id"] == "Gradle_Master"

    again = runner.invoke(cli, args)
    assert again.exit_code == 0, again.output
    assert "Pipeline unchanged" in again.output


def test_plan_prints_buckets_and_order(workspace: Path) -> None:
    result = CliRunner().invoke(cli, ["plan", "--branch", "release", "--data-dir", "."])

    assert result.exit_code == 0, result.output
    assert "Branch: Release" in result.output
    assert "STAGE: Quick [always_run]" in result.output
    assert "Unit (1): 2 item(s), 7s" in result.output
    assert "Unit (2): 1 item(s), 5s" in result.output
    assert "BUILD ORDER" in result.output


def test_generate_without_pipeline_file(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli, ["generate", "--branch", "master"])

    assert result.exit_code == 1
    assert "No pipeline file found" in result.output


def test_invalid_bucket_count_exits_non_zero(workspace: Path) -> None:
    (workspace / "stageci_pipeline.py").write_text(PIPELINE.format(buckets=0), encoding="utf-8")

    result = CliRunner().invoke(cli, ["generate", "--branch", "master", "--data-dir", "."])

    assert result.exit_code == 1
    assert "Invalid bucket count" in result.output


def test_submit_posts_graph_and_stages(workspace: Path, monkeypatch) -> None:
    calls = []

    def fake_submit(self, repo, graph, stages):
        calls.append((self.base_url, repo, graph, stages))
        return {"project_id": graph["project"]["id"], "revision": 3, "changed": True}

    monkeypatch.setattr("stageci.cli.APIClient.submit_pipeline", fake_submit)

    result = CliRunner().invoke(
        cli,
        ["submit", "--api", "http://registry:8000/", "--repo", "git@example.com:gradle.git",
         "--branch", "master", "--data-dir", "."],
    )

    assert result.exit_code == 0, result.output
    assert "Revision: 3 (new revision)" in result.output
    base_url, repo, graph, stages = calls[0]
    assert base_url == "http://registry:8000"
    assert repo == "git@example.com:gradle.git"
    assert graph["branch"] == "master"
    assert [s["name"] for s in stages] == ["Quick", "Ready for Nightly"]
    assert stages[0]["gate"] == "always_run"


def test_plan_interrupt_exits_130(workspace: Path, monkeypatch) -> None:
    def interrupted(_build_types):
        raise KeyboardInterrupt

    monkeypatch.setattr("stageci.cli.dependency_levels", interrupted)

    result = CliRunner().invoke(cli, ["plan", "--branch", "master", "--data-dir", "."])

    assert result.exit_code == 130
    assert "Interrupted by user" in result.output


def test_unexpected_error_is_reported(workspace: Path, monkeypatch) -> None:
    def broken(_build_types):
        raise RuntimeError("levels exploded")

    monkeypatch.setattr("stageci.cli.dependency_levels", broken)

    result = CliRunner().invoke(cli, ["plan", "--branch", "master", "--data-dir", "."])

    assert result.exit_code == 1
    assert "Error: levels exploded" in result.output


def test_debug_shows_traceback_for_bad_pipeline(workspace: Path) -> None:
    (workspace / "stageci_pipeline.py").write_text("raise RuntimeError('bad pipeline')\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["--debug", "generate", "--branch", "master", "--data-dir", "."])

    assert result.exit_code == 1
    assert "Failed to load pipeline" in result.output
    assert "Traceback" in result.output
