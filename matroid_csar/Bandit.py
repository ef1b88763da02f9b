# Bandit.py
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence

import numpy as np

from .Matroid import AbstractMatroid


class AbstractArmPool(ABC):
    """Environment: maps a pulled arm to a reward sample; keeps the true means hidden.

    Only :meth:`sample` is consumed by the learner.  The ``mean``/``means``
    accessors exist for evaluation (checking whether an identified basis is
    optimal) and must never feed back into arm selection.
    """

    n_arms: int

    @abstractmethod
    def reset(self, rng: np.random.Generator) -> None:
        ...

    @abstractmethod
    def sample(self, a: int, rng: np.random.Generator) -> float:
        ...

    @abstractmethod
    def mean(self, a: int) -> float:
        ...

    @property
    @abstractmethod
    def subgaussian_scale(self) -> float:
        """Sub-Gaussian parameter ``R`` shared by every arm of the pool."""
        ...

    def means(self) -> np.ndarray:
        return np.array([self.mean(a) for a in range(self.n_arms)], dtype=float)

    def optimal_basis(self, matroid: AbstractMatroid) -> List[int]:
        """Max-expected-weight basis of a *fresh* matroid (nothing committed)."""
        if matroid.committed:
            raise ValueError("optimal_basis expects a matroid without committed elements")
        return sorted(matroid.max_weight_basis(self.means()))

    def basis_weight(self, basis: Sequence[int]) -> float:
        mu = self.means()
        return float(sum(mu[int(a)] for a in basis))

    def info(self) -> Dict[str, Any]:
        return {}

    def _check_arm(self, a: int) -> None:
        if not (0 <= a < self.n_arms):
            raise IndexError("arm out of range")


class _PerArmStreams:
    """Spawn one child generator per arm so each arm's reward stream is private.

    With per-arm streams the k-th reward of an arm does not depend on the order in
    which other arms were pulled, which keeps runs with equal seeds comparable.
    """

    def __init__(self) -> None:
        self._arm_generators: List[np.random.Generator] = []

    def _spawn(self, rng: np.random.Generator, n_arms: int) -> None:
        seed_sequence = np.random.SeedSequence(int(rng.integers(np.iinfo(np.int64).max)))
        self._arm_generators = [np.random.default_rng(child) for child in seed_sequence.spawn(n_arms)]

    def _generator(self, a: int, rng: np.random.Generator) -> np.random.Generator:
        if not self._arm_generators:
            # Fallback to provided rng if reset has not been called.
            return rng
        return self._arm_generators[a]


class BernoulliArmPool(AbstractArmPool, _PerArmStreams):
    def __init__(self, probs: Sequence[float]) -> None:
        _PerArmStreams.__init__(self)
        self._p = np.asarray(probs, dtype=float)
        if self._p.ndim != 1 or self._p.size == 0:
            raise ValueError("probs must be a non-empty 1-D sequence")
        if np.any((self._p < 0) | (self._p > 1)):
            raise ValueError("Bernoulli probabilities must be in [0,1].")
        self.n_arms = int(self._p.size)

    @property
    def subgaussian_scale(self) -> float:
        return 0.5

    def reset(self, rng: np.random.Generator) -> None:
        self._spawn(rng, self.n_arms)

    def sample(self, a: int, rng: np.random.Generator) -> float:
        self._check_arm(a)
        return float(self._generator(a, rng).random() < self._p[a])

    def mean(self, a: int) -> float:
        self._check_arm(a)
        return float(self._p[a])

    def info(self) -> Dict[str, Any]:
        return {"type": "Bernoulli", "probs": self._p.tolist()}


class GaussianArmPool(AbstractArmPool, _PerArmStreams):
    def __init__(self, means: Sequence[float], sigma: float = 1.0) -> None:
        _PerArmStreams.__init__(self)
        self._mu = np.asarray(means, dtype=float)
        if self._mu.ndim != 1 or self._mu.size == 0:
            raise ValueError("means must be a non-empty 1-D sequence")
        if not np.all(np.isfinite(self._mu)):
            raise ValueError("means must be finite")
        self._sigma = float(sigma)
        if self._sigma <= 0:
            raise ValueError("sigma must be > 0")
        self.n_arms = int(self._mu.size)

    @property
    def subgaussian_scale(self) -> float:
        return self._sigma

    def reset(self, rng: np.random.Generator) -> None:
        self._spawn(rng, self.n_arms)

    def sample(self, a: int, rng: np.random.Generator) -> float:
        self._check_arm(a)
        noise = self._generator(a, rng).standard_normal()
        return float(self._mu[a] + self._sigma * noise)

    def mean(self, a: int) -> float:
        self._check_arm(a)
        return float(self._mu[a])

    def info(self) -> Dict[str, Any]:
        return {"type": "Gaussian", "means": self._mu.tolist(), "sigma": self._sigma}
