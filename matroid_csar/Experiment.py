from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

import numpy as np

from .Algorithm import ConfidenceTracker, Decision, RoundLog
from .Bandit import AbstractArmPool, BernoulliArmPool, GaussianArmPool
from .Graph import Edge, connected_components, validate_edges
from .Matroid import AbstractMatroid, GraphicMatroid, UniformMatroid
from .csar import BaseEngine, CSAREngine, PhasedCSAREngine
from .errors import IncompleteBasisError, RoundBudgetExceededError

LOGGER = logging.getLogger(__name__)

MATROID_KINDS: Tuple[str, ...] = ("uniform", "graphic")
REWARD_FAMILIES: Tuple[str, ...] = ("gaussian", "bernoulli")
MAX_ARMS = 100_000
ALGORITHMS: Tuple[str, ...] = ("csar", "phased")
# Default cap on total pulls is this many per arm.
DEFAULT_PULLS_PER_ARM = 100_000

IDENTIFIED = "identified"
INCOMPLETE_BASIS = "incomplete_basis"
BUDGET_EXCEEDED = "budget_exceeded"
OUTCOMES: Tuple[str, ...] = (IDENTIFIED, INCOMPLETE_BASIS, BUDGET_EXCEEDED)


@dataclass(frozen=True)
class TrialConfig:
    """Read-only description of a trial, shared by every repetition."""

    matroid: str                            # one of MATROID_KINDS
    means: Tuple[float, ...]                # hidden true mean of each arm
    rank: Optional[int] = None              # uniform: required; graphic: defaults to n_vertices - 1
    n_vertices: Optional[int] = None        # graphic only
    edges: Optional[Tuple[Edge, ...]] = None  # graphic only; arm i is edges[i]
    family: str = "gaussian"                # one of REWARD_FAMILIES
    sigma: float = 1.0                      # gaussian noise level
    delta: float = 0.1                      # confidence budget
    algorithm: str = "csar"                 # one of ALGORITHMS
    epsilon: float = 0.0                    # csar: stop once the exchange slack is below this
    phase_samples: int = 100                # phased: pulls per remaining arm and phase

    def __post_init__(self) -> None:
        object.__setattr__(self, "means", tuple(float(m) for m in self.means))
        if self.edges is not None:
            object.__setattr__(self, "edges", tuple((int(u), int(v)) for u, v in self.edges))

        if self.matroid not in MATROID_KINDS:
            raise ValueError(f"matroid must be one of {MATROID_KINDS}, got {self.matroid!r}")
        if self.family not in REWARD_FAMILIES:
            raise ValueError(f"family must be one of {REWARD_FAMILIES}, got {self.family!r}")
        if not (0 < len(self.means) <= MAX_ARMS):
            raise ValueError(f"number of arms must lie in [1, {MAX_ARMS}]")
        if not all(math.isfinite(m) for m in self.means):
            raise ValueError("means must be finite")
        if not (0.0 < self.delta < 1.0):
            raise ValueError("delta must lie in (0, 1)")
        if self.sigma <= 0:
            raise ValueError("sigma must be positive")
        if self.family == "bernoulli" and not all(0.0 <= m <= 1.0 for m in self.means):
            raise ValueError("bernoulli means must lie in [0, 1]")
        if self.algorithm not in ALGORITHMS:
            raise ValueError(f"algorithm must be one of {ALGORITHMS}, got {self.algorithm!r}")
        if not (math.isfinite(self.epsilon) and self.epsilon >= 0):
            raise ValueError("epsilon must be finite and non-negative")
        if self.phase_samples < 1:
            raise ValueError("phase_samples must be positive")

        if self.matroid == "uniform":
            if self.rank is None:
                raise ValueError("uniform matroid requires rank")
            if self.rank < 0:
                raise ValueError("rank must be non-negative")
            if self.edges is not None or self.n_vertices is not None:
                raise ValueError("edges/n_vertices only apply to graphic matroids")
        else:
            if self.edges is None or self.n_vertices is None:
                raise ValueError("graphic matroid requires n_vertices and edges")
            if self.n_vertices < 1:
                raise ValueError("n_vertices must be positive")
            validate_edges(self.n_vertices, self.edges)
            if len(self.edges) != len(self.means):
                raise ValueError("graphic matroid needs exactly one mean per edge")
            if self.rank is not None and not (0 <= self.rank <= self.n_vertices - 1):
                raise ValueError(f"rank must lie in [0, {self.n_vertices - 1}] for {self.n_vertices} vertices")

    @property
    def n_arms(self) -> int:
        return len(self.means)

    def build_matroid(self) -> AbstractMatroid:
        """Fresh oracle instance (each trial must own its own)."""
        if self.matroid == "uniform":
            return UniformMatroid(self.n_arms, int(self.rank))
        return GraphicMatroid(int(self.n_vertices), self.edges, rank=self.rank)

    def build_arm_pool(self) -> AbstractArmPool:
        if self.family == "bernoulli":
            return BernoulliArmPool(self.means)
        return GaussianArmPool(self.means, sigma=self.sigma)

    def build_engine(
        self,
        matroid: AbstractMatroid,
        tracker: ConfidenceTracker,
        *,
        track_history: bool = False,
    ) -> BaseEngine:
        if self.algorithm == "phased":
            return PhasedCSAREngine(
                matroid, tracker, phase_samples=self.phase_samples, track_history=track_history
            )
        return CSAREngine(matroid, tracker, epsilon=self.epsilon, track_history=track_history)

    def default_round_budget(self) -> int:
        return DEFAULT_PULLS_PER_ARM * self.n_arms

    def info(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "matroid": self.matroid,
            "n_arms": self.n_arms,
            "rank": self.rank,
            "family": self.family,
            "delta": self.delta,
            "algorithm": self.algorithm,
        }
        if self.algorithm == "csar":
            data["epsilon"] = self.epsilon
        else:
            data["phase_samples"] = self.phase_samples
        if self.family == "gaussian":
            data["sigma"] = self.sigma
        if self.matroid == "graphic":
            data["n_vertices"] = self.n_vertices
        return data


def uniform_config(means: Sequence[float], rank: int, **kwargs: Any) -> TrialConfig:
    return TrialConfig(matroid="uniform", means=tuple(means), rank=rank, **kwargs)


def graphic_config(
    n_vertices: int,
    edges: Sequence[Edge],
    means: Sequence[float],
    rank: Optional[int] = None,
    **kwargs: Any,
) -> TrialConfig:
    return TrialConfig(
        matroid="graphic",
        means=tuple(means),
        rank=rank,
        n_vertices=n_vertices,
        edges=tuple(edges),
        **kwargs,
    )


@dataclass
class TrialResult:
    basis: FrozenSet[int]
    total_pulls: int
    succeeded: bool
    outcome: str
    seed: int
    pulls: np.ndarray = field(repr=False)
    rejected: FrozenSet[int] = frozenset()
    round_logs: List[RoundLog] = field(default_factory=list, repr=False)
    decisions: List[Decision] = field(default_factory=list, repr=False)

    def as_record(self) -> Dict[str, Any]:
        return {
            "seed": self.seed,
            "outcome": self.outcome,
            "succeeded": self.succeeded,
            "total_pulls": self.total_pulls,
            "basis": sorted(self.basis),
            "pulls": self.pulls.tolist(),
        }


class Experiment:
    """
    Orchestrator for a single CSAR trial.
    Responsible for the RNG, the private per-trial state bundle and the round budget.
    Without an explicit budget a trial is capped at ``DEFAULT_PULLS_PER_ARM`` pulls per arm.
    """

    def __init__(self, config: TrialConfig, seed: int, *, round_budget: Optional[int] = None):
        if round_budget is None:
            round_budget = config.default_round_budget()
        if round_budget < 0:
            raise ValueError("round_budget must be non-negative")
        self.config = config
        self.seed = int(seed)
        self.round_budget = int(round_budget)

    def _drive(self, engine: BaseEngine) -> None:
        while not engine.done:
            if engine.round >= self.round_budget:
                raise RoundBudgetExceededError(self.round_budget)
            engine.step()

    def run(self, *, track_history: bool = False) -> TrialResult:
        rng = np.random.default_rng(self.seed)
        matroid = self.config.build_matroid()
        pool = self.config.build_arm_pool()
        pool.reset(rng)
        tracker = ConfidenceTracker(pool, self.config.delta, rng)

        try:
            engine = self.config.build_engine(matroid, tracker, track_history=track_history)
        except IncompleteBasisError as err:
            LOGGER.warning("seed %d: %s", self.seed, err)
            if self.config.matroid == "graphic":
                components = connected_components(int(self.config.n_vertices), self.config.edges)
                LOGGER.warning("seed %d: graph has %d connected components", self.seed, len(components))
            return TrialResult(
                basis=frozenset(),
                total_pulls=0,
                succeeded=False,
                outcome=INCOMPLETE_BASIS,
                seed=self.seed,
                pulls=tracker.counts.copy(),
            )

        outcome = IDENTIFIED
        try:
            self._drive(engine)
        except RoundBudgetExceededError as err:
            LOGGER.warning("seed %d: %s", self.seed, err)
            outcome = BUDGET_EXCEEDED

        basis = frozenset(engine.accepted)
        succeeded = outcome == IDENTIFIED and self._is_optimal(basis, pool)
        return TrialResult(
            basis=basis,
            total_pulls=int(tracker.t),
            succeeded=succeeded,
            outcome=outcome,
            seed=self.seed,
            pulls=tracker.counts.copy(),
            rejected=frozenset(engine.rejected),
            round_logs=engine.round_logs,
            decisions=engine.decisions,
        )

    def _is_optimal(self, basis: FrozenSet[int], pool: AbstractArmPool) -> bool:
        reference = self.config.build_matroid()
        if len(basis) != reference.target_rank or not reference.is_independent(basis):
            return False
        best = pool.basis_weight(pool.optimal_basis(reference))
        return math.isclose(pool.basis_weight(sorted(basis)), best, rel_tol=1e-12, abs_tol=1e-12)


def run_once(
    config: TrialConfig,
    rng_seed: int,
    *,
    round_budget: Optional[int] = None,
    track_history: bool = False,
) -> TrialResult:
    """Run one independent trial and report ``basis``, ``total_pulls`` and ``succeeded``."""

    return Experiment(config, rng_seed, round_budget=round_budget).run(track_history=track_history)
