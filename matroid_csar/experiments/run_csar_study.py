"""Repeated-trial study of CSAR sample complexity on uniform and graphic matroids.

Example
-------
    python -m matroid_csar.experiments.run_csar_study --matroid uniform --arms 5 --rank 2 \
        --means 10,9,8,1,1 --delta 0.1 --repetitions 1000 --workers 4
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from tqdm.auto import tqdm

from ..Experiment import ALGORITHMS, MATROID_KINDS, REWARD_FAMILIES, TrialConfig, TrialResult, graphic_config, uniform_config
from ..Graph import complete_graph_edges, cycle_graph_edges, random_connected_graph
from ..metrics import summary
from .common import ensure_dir, parse_seed_range, save_json, write_jsonl
from .parallel_utils import build_trial_callable, run_jobs_in_pool

LOGGER = logging.getLogger(__name__)

GRAPH_SHAPES = ("cycle", "complete", "random")


def parse_means(text: Optional[str]) -> Optional[List[float]]:
    if text is None:
        return None
    values = [float(tok) for tok in text.split(",") if tok.strip()]
    if not values:
        raise ValueError("--means must list at least one value")
    return values


def build_config(args: argparse.Namespace) -> TrialConfig:
    """Translate CLI arguments into a trial configuration.

    Missing means are drawn uniformly from [0, 1) with ``--instance-seed`` so every
    repetition sees the same instance.
    """

    instance_rng = np.random.default_rng(args.instance_seed)
    means = parse_means(args.means)
    common = dict(
        family=args.family,
        sigma=args.sigma,
        delta=args.delta,
        algorithm=args.algorithm,
        epsilon=args.epsilon,
        phase_samples=args.phase_samples,
    )

    if args.matroid == "uniform":
        n_arms = len(means) if means is not None else args.arms
        if n_arms is None:
            raise ValueError("uniform matroid needs --arms or --means")
        if means is None:
            means = instance_rng.random(n_arms).tolist()
        elif args.arms is not None and args.arms != len(means):
            raise ValueError(f"--arms={args.arms} but {len(means)} means were given")
        if args.rank is None:
            raise ValueError("uniform matroid needs --rank")
        return uniform_config(means, args.rank, **common)

    if args.vertices is None:
        raise ValueError("graphic matroid needs --vertices")
    if args.graph == "cycle":
        edges = cycle_graph_edges(args.vertices)
    elif args.graph == "complete":
        edges = complete_graph_edges(args.vertices)
    else:
        n_edges = args.edges if args.edges is not None else 2 * args.vertices
        edges = random_connected_graph(args.vertices, n_edges, instance_rng)
    if means is None:
        means = instance_rng.random(len(edges)).tolist()
    elif len(means) != len(edges):
        raise ValueError(f"{args.graph} graph has {len(edges)} edges but {len(means)} means were given")
    return graphic_config(args.vertices, edges, means, rank=args.rank, **common)


def run_study(
    config: TrialConfig,
    seeds: Sequence[int],
    *,
    round_budget: Optional[int] = None,
    workers: int = 1,
    progress: bool = True,
) -> List[TrialResult]:
    jobs = [(seed, build_trial_callable(config, seed, round_budget=round_budget)) for seed in seeds]
    bar = tqdm(total=len(jobs), desc="CSAR trials", unit="trial", disable=not progress)
    try:
        results = run_jobs_in_pool(jobs, workers, on_done=lambda _seed, _res: bar.update(1))
    finally:
        bar.close()
    return [results[seed] for seed in seeds]


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Successive accept-reject on matroid bandits.")
    parser.add_argument("--matroid", choices=MATROID_KINDS, default="uniform")
    parser.add_argument("--arms", type=int, default=None, help="Number of arms (uniform matroid).")
    parser.add_argument("--rank", type=int, default=None, help="Target rank; graphic defaults to vertices-1.")
    parser.add_argument("--graph", choices=GRAPH_SHAPES, default="complete", help="Graph shape (graphic matroid).")
    parser.add_argument("--vertices", type=int, default=None)
    parser.add_argument("--edges", type=int, default=None, help="Edge count for --graph random (default 2*vertices).")
    parser.add_argument("--means", type=str, default=None, help="Comma-separated true means; random U(0,1) if omitted.")
    parser.add_argument("--instance-seed", type=int, default=0, help="Seed for random means and graphs.")
    parser.add_argument("--family", choices=REWARD_FAMILIES, default="gaussian")
    parser.add_argument("--sigma", type=float, default=1.0, help="Gaussian reward noise.")
    parser.add_argument("--delta", type=float, default=0.1, help="Confidence budget.")
    parser.add_argument("--seeds", type=str, default="0:99", help="Seed range start:end (inclusive).")
    parser.add_argument("--repetitions", type=int, default=None, help="Shortcut for --seeds 0:R-1.")
    parser.add_argument("--round-budget", type=int, default=None, help="Stop a trial after this many pulls (default: 100000 per arm).")
    parser.add_argument("--algorithm", choices=ALGORITHMS, default="csar")
    parser.add_argument("--epsilon", type=float, default=0.0, help="csar: stop once the best basis is epsilon-optimal.")
    parser.add_argument("--phase-samples", type=int, default=100, help="phased: pulls per remaining arm and phase.")
    parser.add_argument("--workers", type=int, default=1)
    parser.add_argument("--output-dir", type=Path, default=Path("results/csar_study"))
    parser.add_argument("--plot", action="store_true", help="Write a histogram of total pulls.")
    parser.add_argument("--no-progress", action="store_true")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def run_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    if args.repetitions is not None:
        if not (0 < args.repetitions <= 100_000):
            raise ValueError("--repetitions must lie in [1, 100000]")
        seeds = list(range(args.repetitions))
    else:
        seeds = parse_seed_range(args.seeds)

    config = build_config(args)
    LOGGER.info("running %d trials on %s", len(seeds), config.info())
    results = run_study(
        config,
        seeds,
        round_budget=args.round_budget,
        workers=args.workers,
        progress=not args.no_progress,
    )
    stats = summary(results)
    stats["config"] = config.info()

    ensure_dir(args.output_dir)
    write_jsonl(args.output_dir / "results.jsonl", (r.as_record() for r in results))
    save_json(args.output_dir / "summary.json", stats)
    if args.plot:
        from .plots import plot_pull_histogram

        try:
            plot_pull_histogram(
                results,
                args.output_dir / "pull_histogram.png",
                title=f"{config.algorithm} on {config.matroid} matroid (n={config.n_arms}, delta={config.delta})",
                marker=stats["mean_pulls"],
            )
        except ValueError as err:
            LOGGER.warning("Histogram skipped: %s", err)

    if stats["outcomes"]["incomplete_basis"]:
        LOGGER.warning("%d trials reported an incomplete basis", stats["outcomes"]["incomplete_basis"])
    if stats["outcomes"]["budget_exceeded"]:
        LOGGER.warning("%d trials exhausted the round budget", stats["outcomes"]["budget_exceeded"])
    return stats


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s:%(name)s:%(message)s")
    stats = run_from_args(args)
    print(json.dumps({k: v for k, v in stats.items() if k != "mean_pulls_per_arm"}, indent=2))


if __name__ == "__main__":
    main()
