"""Console output formatting utilities for StageCI."""

from __future__ import annotations

import sys
from typing import Optional, Sequence


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_generation_started(
        self,
        pipeline: str,
        branch: str,
        stage_count: int,
    ) -> None:
        """Print generation start information."""
        print("\nGENERATION STARTED")
        print(f"Pipeline: {pipeline}")
        print(f"Branch: {branch}")
        print(f"Stages: {stage_count}")
        print()

    def print_stage(self, name: str, gate: str, job_count: int) -> None:
        """Print a stage summary line."""
        print(f"\nSTAGE: {name} [{gate}] ({job_count} job(s))")

    def print_bucket(self, name: str, duration: float, size: int) -> None:
        """Print one bucket of a stage."""
        print(f"  {name}: {size} item(s), {duration:g}s")

    def print_levels(self, levels: Sequence[Sequence[str]]) -> None:
        """Print build-type dependency levels."""
        self.print_header("BUILD ORDER")
        for i, level in enumerate(levels, start=1):
            print(f"  {i}: {', '.join(level)}")

    def print_graph_written(self, path: str, changed: bool) -> None:
        """Print the emission result."""
        if changed:
            print(f"\nPipeline written to {path}")
        else:
            print(f"\nPipeline unchanged: {path}")

    def print_warning(self, message: str) -> None:
        """Print a recoverable problem."""
        print(f"WARNING: {message}", file=sys.stderr)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
