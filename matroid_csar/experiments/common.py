from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Iterable, List, Mapping

import numpy as np


def ensure_dir(path: str | Path) -> None:
    """Create *path* if it is missing."""

    os.makedirs(path, exist_ok=True)


def parse_seed_range(spec: str) -> List[int]:
    """Turn ``"start:end"`` (inclusive) or a single integer into a list of seeds."""

    if ":" not in spec:
        return [int(spec)]
    seed_start, seed_end = map(int, spec.split(":"))
    if seed_end < seed_start:
        raise ValueError(f"empty seed range {spec!r}")
    return list(range(seed_start, seed_end + 1))


def save_json(path: str | Path, payload: Mapping[str, object]) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, sort_keys=True, default=_json_default)


def write_jsonl(path: Path, records: Iterable[Mapping[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        for rec in records:
            f.write(json.dumps(rec, default=_json_default) + "\n")


def _json_default(obj: object) -> object:
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if hasattr(obj, "__dict__"):
        return obj.__dict__
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")
