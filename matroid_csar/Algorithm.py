from __future__ import annotations
import enum
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .Bandit import AbstractArmPool


class ArmStatus(enum.IntEnum):
    UNDETERMINED = 0
    ACCEPTED = 1
    REJECTED = 2


@dataclass(frozen=True)
class RoundLog:
    t: int
    arm: int
    reward: float
    radius: float


@dataclass(frozen=True)
class Decision:
    t: int
    arm: int
    status: ArmStatus
    lower: float
    upper: float


class ConfidenceTracker:
    r"""Per-arm pull counts, empirical means and anytime confidence radii.

    The radius of arm ``i`` at round ``t`` is

    .. math:: \beta_i(t) = \sqrt{c \log f(t) / N_i}, \qquad c = 2R^2,\; f(t) = 4 n t^3 / \delta,

    the calibration of CLUCB (Chen et al., 2014).  A union bound over the ``n``
    arms, every round ``t`` and every possible pull count ``N_i \le t`` keeps the
    probability that any interval misses its mean below ``delta``.

    Parameters
    ----------
    pool:
        Reward environment.  The tracker only ever calls ``pool.sample``.
    delta:
        Confidence budget in ``(0, 1)``.
    rng:
        The trial's private generator, forwarded to ``pool.sample``.
    subgaussian_scale:
        Overrides ``pool.subgaussian_scale`` when given.
    """

    def __init__(
        self,
        pool: AbstractArmPool,
        delta: float,
        rng: np.random.Generator,
        *,
        subgaussian_scale: Optional[float] = None,
    ) -> None:
        if not (0.0 < delta < 1.0):
            raise ValueError("delta must lie in (0, 1)")
        scale = pool.subgaussian_scale if subgaussian_scale is None else float(subgaussian_scale)
        if scale <= 0:
            raise ValueError("subgaussian_scale must be positive")
        self.pool = pool
        self.delta = float(delta)
        self.rng = rng
        self.n_arms = int(pool.n_arms)
        self.c = 2.0 * scale * scale

        self.counts = np.zeros(self.n_arms, dtype=np.int64)
        self.sums = np.zeros(self.n_arms, dtype=float)
        self.t = 0

    # --- sampling ---
    def pull(self, i: int) -> float:
        """Draw one reward from arm ``i`` and fold it into the statistics."""
        x = float(self.pool.sample(i, self.rng))
        self.counts[i] += 1
        self.sums[i] += x
        self.t += 1
        return x

    # --- statistics ---
    def log_f(self) -> float:
        t = max(1, self.t)
        return math.log(4.0 * self.n_arms / self.delta) + 3.0 * math.log(t)

    def empirical_means(self) -> np.ndarray:
        return np.divide(
            self.sums,
            np.maximum(1, self.counts),
            out=np.zeros_like(self.sums),
        )

    def empirical_mean(self, i: int) -> float:
        n = int(self.counts[i])
        return float(self.sums[i] / n) if n else 0.0

    def radius(self, i: int) -> float:
        n = int(self.counts[i])
        if n == 0:
            return float("inf")
        return math.sqrt(self.c * self.log_f() / n)

    def radii(self) -> np.ndarray:
        out = np.full(self.n_arms, np.inf, dtype=float)
        pulled = self.counts > 0
        out[pulled] = np.sqrt(self.c * self.log_f() / self.counts[pulled])
        return out

    def upper_bound(self, i: int) -> float:
        if self.counts[i] == 0:
            return float("inf")
        return self.empirical_mean(i) + self.radius(i)

    def lower_bound(self, i: int) -> float:
        if self.counts[i] == 0:
            return float("-inf")
        return self.empirical_mean(i) - self.radius(i)

    def upper_bounds(self) -> np.ndarray:
        # Adding the radius to the zero mean of an unpulled arm gives +inf, never nan.
        return self.empirical_means() + self.radii()

    def lower_bounds(self) -> np.ndarray:
        return self.empirical_means() - self.radii()
