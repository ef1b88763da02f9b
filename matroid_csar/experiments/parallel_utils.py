"""Utilities for running independent CSAR trials in parallel."""

from __future__ import annotations

from concurrent.futures import ProcessPoolExecutor, as_completed
from functools import partial
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from ..Experiment import TrialConfig, TrialResult, run_once


def run_jobs_in_pool(
    jobs: Sequence[Tuple[Any, Callable[[], Any]]],
    num_workers: int,
    *,
    on_done: Optional[Callable[[Any, Any], None]] = None,
) -> Dict[Any, Any]:
    """Run callables in a process pool; returns a map from job id to result."""

    results: Dict[Any, Any] = {}
    if num_workers <= 1:
        for job_id, fn in jobs:
            results[job_id] = fn()
            if on_done is not None:
                on_done(job_id, results[job_id])
        return results

    with ProcessPoolExecutor(max_workers=num_workers) as ex:
        future_map = {ex.submit(fn): job_id for job_id, fn in jobs}
        for fut in as_completed(future_map):
            job_id = future_map[fut]
            results[job_id] = fut.result()
            if on_done is not None:
                on_done(job_id, results[job_id])
    return results


def build_trial_callable(
    config: TrialConfig,
    seed: int,
    *,
    round_budget: Optional[int] = None,
) -> Callable[[], TrialResult]:
    """Create a picklable callable running one trial (each call owns its own state)."""

    return partial(run_once, config, seed, round_budget=round_budget)
