# durations.py
# Read-only access to the historical duration datasets and manifests.

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Dict, List

from pydantic import Field, TypeAdapter, ValidationError

# strict: numeric strings and booleans are rejected, ints still pass
Duration = Annotated[float, Field(ge=0, allow_inf_nan=False, strict=True)]

_DURATIONS = TypeAdapter(Dict[str, Duration])
_MANIFEST = TypeAdapter(Dict[str, List[str]])


@dataclass
class DataUnavailable(Exception):
    """A duration dataset or manifest is missing or malformed."""
    source: str
    reason: str

    def __str__(self) -> str:
        return f"data unavailable: {self.source} ({self.reason})"


def _read_json(source: str | Path):
    path = Path(source)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise DataUnavailable(str(source), "file not found")
    except OSError as e:
        raise DataUnavailable(str(source), f"unreadable: {e}")

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise DataUnavailable(str(source), f"invalid JSON: {e}")


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    loc = ".".join(str(p) for p in err["loc"])
    return f"{loc}: {err['msg']}" if loc else err["msg"]


def load(source: str | Path) -> Dict[str, float]:
    """
    Load per-test-class durations (seconds) from a JSON object.

    Raises:
        DataUnavailable: missing file, bad JSON, or a negative/non-numeric duration
    """
    raw = _read_json(source)
    try:
        return dict(_DURATIONS.validate_python(raw))
    except ValidationError as e:
        raise DataUnavailable(str(source), _first_error(e))


def load_manifest(source: str | Path) -> Dict[str, tuple[str, ...]]:
    """
    Load a `{group: [member, ...]}` manifest.

    Used for the subprojects manifest (subproject -> test classes) and the
    performance manifest (coverage -> scenarios).
    """
    raw = _read_json(source)
    try:
        manifest = _MANIFEST.validate_python(raw)
    except ValidationError as e:
        raise DataUnavailable(str(source), _first_error(e))
    return {group: tuple(members) for group, members in manifest.items()}
