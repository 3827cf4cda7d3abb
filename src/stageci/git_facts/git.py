# git.py
# Small, focused wrapper around the Git CLI.
# The branch parameter falls back to the checked-out ref when neither
# --branch nor STAGECI_BRANCH is given.

from __future__ import annotations

import subprocess
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Raises:
        subprocess.CalledProcessError: git exited non-zero
        FileNotFoundError: git is not installed
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def current_ref(cwd: Optional[str] = None) -> str:
    """
    Full name of the checked-out branch (e.g. "refs/heads/release/1.0").

    A detached HEAD yields "HEAD".
    """
    try:
        return _git(["symbolic-ref", "-q", "HEAD"], cwd=cwd)
    except subprocess.CalledProcessError:
        return "HEAD"


def remote_url(remote: str = "origin", cwd: Optional[str] = None) -> str:
    return _git(["remote", "get-url", remote], cwd=cwd)
