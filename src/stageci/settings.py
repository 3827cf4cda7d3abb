from __future__ import annotations
import os

DEFAULT_WEIGHT = float(os.environ.get("STAGECI_DEFAULT_WEIGHT", "1.0"))
DATA_DIR = os.environ.get("STAGECI_DATA_DIR", ".")
OUTPUT = os.environ.get("STAGECI_OUTPUT", ".stageci/pipeline.json")
BRANCH = os.environ.get("STAGECI_BRANCH")

SUBPROJECTS_FILE = "subprojects.json"
TEST_CLASS_DATA_FILE = "test-class-data.json"
PERFORMANCE_DURATIONS_FILE = "performance-test-durations.json"
PERFORMANCE_TESTS_FILE = "performance-tests-ci.json"

FAILED_TEST_ARTIFACT_DESTINATION = ".teamcity/gradle-logs"
