# stageci_pipeline.py
# Pipeline for the Gradle build: quick feedback first, then wider coverage,
# nightly promotion from "Ready for Nightly".
from __future__ import annotations

from stageci.dsl import (
    ALWAYS_RUN,
    MANUAL_TRIGGER,
    functional_tests,
    matrix,
    performance_tests,
    stage,
    task,
)
from stageci.dsl import pipeline as define


def pipeline():
    return define(
        stage(
            "Quick Feedback - Linux Only",
            task("SanityCheck", ":sanityCheck", name="Sanity Check"),
            task("CompileAll", ":compileAllBuild", name="Compile All"),
            functional_tests("QuickUnit", "quickTest", 2, name="Quick Unit Tests"),
            gate=ALWAYS_RUN,
            description="Run checks and functional tests with the embedded executer on Linux",
        ),
        stage(
            "Quick Feedback",
            matrix("os", ["Linux", "Windows"]).each(
                lambda os: functional_tests(f"{os}Embedded", "embeddedIntegTest", 3, name=f"{os} Embedded Tests")
            ),
            description="Run embedded integration tests on all operating systems",
        ),
        stage(
            "Ready for Nightly",
            functional_tests("Forking", "forkingIntegTest", 4, name="Forking Integ Tests"),
            performance_tests("PerCommitPerformance", "perCommit", 2, name="Performance Regression"),
            description="Run forking integration tests and per-commit performance tests",
        ),
        stage(
            "Ready for Release",
            functional_tests(
                "CrossVersion",
                "crossVersionTest",
                2,
                name="Cross Version Tests",
                subprojects=["core", "tooling-api"],
            ),
            performance_tests("DailyPerformance", "perDay", 1, name="Daily Performance"),
            gate=MANUAL_TRIGGER,
            description="Run cross-version and daily performance tests before a release",
        ),
        build_scan_tags=["Check"],
        subprojects=["base-services", "core-api", "model-core", "core", "code-quality", "tooling-api"],
    )
