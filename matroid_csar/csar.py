"""Combinatorial Successive Accept-Reject (CSAR) on matroids.

Both engines keep every arm in one of three states and pull one arm per round.
Accepted arms are contracted into the matroid oracle and rejected arms are
deleted from it, so every decision is taken on the remaining minor.

``CSAREngine`` is the fixed-confidence variant.  Undetermined arms are sampled
adaptively until the confidence intervals prove that an arm belongs to
(Accepted) or is excluded from (Rejected) the maximum-expected-weight basis:

* accept ``e`` when ``e`` is not spanned by the accepted arms together with
  every live arm that might still be heavier (``UCB_f > LCB_e``);
* reject ``e`` when ``e`` is spanned by the accepted arms together with the
  live arms that are certainly heavier (``LCB_f > UCB_e``).

If all intervals hold, the greedy algorithm run on the true means would make
the same decisions, so the final accepted set is an optimal basis.

Arm selection follows the exchange step of CLUCB (Chen et al., 2014): the
empirical best completion ``B`` is compared with the best completion ``B~``
under pessimistic weights on ``B`` and optimistic weights elsewhere.  The
boundary pair consists of the most optimistic arm entering ``B~`` and the most
pessimistic arm leaving ``B``; the wider of the two is pulled.  With
``epsilon > 0`` the engine stops as soon as ``B~`` can beat ``B`` by at most
``epsilon``, which settles arms with tied means.

``PhasedCSAREngine`` is the phased variant (Chen et al., 2014, CSAR): each
phase pulls every remaining arm ``phase_samples`` times, then accepts or
rejects the remaining arm with the largest empirical gap.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import numpy as np

from .Algorithm import ArmStatus, ConfidenceTracker, Decision, RoundLog
from .Matroid import AbstractMatroid
from .errors import IncompleteBasisError

LOGGER = logging.getLogger(__name__)


class BaseEngine(ABC):
    """Arm states and the round loop shared by the CSAR engines.

    The engine owns the trial's arm states; the matroid and tracker handed to it
    must not be shared with another engine.
    """

    name = "base"

    def __init__(
        self,
        matroid: AbstractMatroid,
        tracker: ConfidenceTracker,
        *,
        track_history: bool = False,
    ) -> None:
        if tracker.n_arms != matroid.n_elements:
            raise ValueError(
                f"tracker has {tracker.n_arms} arms but the matroid has {matroid.n_elements} elements"
            )
        if matroid.committed or matroid.deleted:
            raise ValueError("matroid must not have committed or deleted elements")
        if not matroid.feasible():
            raise IncompleteBasisError(matroid.target_rank, matroid.full_rank())

        self.matroid = matroid
        self.tracker = tracker
        self.n_arms = int(matroid.n_elements)
        self.track_history = bool(track_history)
        self.status = np.full(self.n_arms, ArmStatus.UNDETERMINED, dtype=np.int8)
        self.round_logs: List[RoundLog] = []
        self.decisions: List[Decision] = []

    # --- views ---
    def _ids(self, status: ArmStatus) -> List[int]:
        return np.flatnonzero(self.status == status).tolist()

    @property
    def accepted(self) -> List[int]:
        return self._ids(ArmStatus.ACCEPTED)

    @property
    def rejected(self) -> List[int]:
        return self._ids(ArmStatus.REJECTED)

    @property
    def undetermined(self) -> List[int]:
        return self._ids(ArmStatus.UNDETERMINED)

    @property
    def basis(self) -> List[int]:
        return self.accepted

    @property
    def round(self) -> int:
        return self.tracker.t

    @property
    def done(self) -> bool:
        return not np.any(self.status == ArmStatus.UNDETERMINED)

    def _basis_complete(self) -> bool:
        return len(self.matroid.committed) >= self.matroid.target_rank

    # --- round loop ---
    @abstractmethod
    def select_arm(self) -> int:
        ...

    @abstractmethod
    def _after_pull(self, arm: int) -> None:
        ...

    def step(self) -> int:
        """Run one round: pull a single arm and update the states.  Returns the pulled arm."""

        arm = self.select_arm()
        reward = self.tracker.pull(arm)
        if self.track_history:
            self.round_logs.append(
                RoundLog(t=self.tracker.t, arm=arm, reward=reward, radius=self.tracker.radius(arm))
            )
        self._after_pull(arm)
        return arm

    def run(self) -> List[int]:
        while not self.done:
            self.step()
        if not self._basis_complete():
            raise IncompleteBasisError(self.matroid.target_rank, len(self.matroid.committed))
        return self.basis

    # --- decisions ---
    def _accept(self, e: int) -> None:
        lower, upper = self.tracker.lower_bound(e), self.tracker.upper_bound(e)
        self.matroid.commit(e)
        self.status[e] = ArmStatus.ACCEPTED
        LOGGER.debug("t=%d accept arm %d (lcb=%.4g, ucb=%.4g)", self.tracker.t, e, lower, upper)
        if self.track_history:
            self.decisions.append(Decision(self.tracker.t, e, ArmStatus.ACCEPTED, lower, upper))

    def _reject(self, e: int) -> None:
        lower, upper = self.tracker.lower_bound(e), self.tracker.upper_bound(e)
        self.matroid.delete(e)
        self.status[e] = ArmStatus.REJECTED
        LOGGER.debug("t=%d reject arm %d (lcb=%.4g, ucb=%.4g)", self.tracker.t, e, lower, upper)
        if self.track_history:
            self.decisions.append(Decision(self.tracker.t, e, ArmStatus.REJECTED, lower, upper))

    def _reject_rest(self) -> None:
        # Everything left is spanned by a full basis.
        for e in self.undetermined:
            self._reject(e)


class CSAREngine(BaseEngine):
    """Adaptive fixed-confidence accept/reject engine for a single trial."""

    name = "csar"

    def __init__(
        self,
        matroid: AbstractMatroid,
        tracker: ConfidenceTracker,
        *,
        epsilon: float = 0.0,
        track_history: bool = False,
    ) -> None:
        super().__init__(matroid, tracker, track_history=track_history)
        if not epsilon >= 0:
            raise ValueError("epsilon must be non-negative")
        self.epsilon = float(epsilon)
        # Coloops are accepted and loops rejected before any pull.
        self._classify()

    # --- selection ---
    def _exchange(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Empirical best completion, its pessimistic challenger, and the bounds."""

        live = np.flatnonzero(self.status == ArmStatus.UNDETERMINED)
        ucb = self.tracker.upper_bounds()
        lcb = self.tracker.lower_bounds()
        best = np.array(sorted(self.matroid.max_weight_basis(self.tracker.empirical_means(), live)), dtype=np.int64)
        in_best = np.zeros(self.n_arms, dtype=bool)
        in_best[best] = True
        adjusted = np.where(in_best, lcb, ucb)
        challenger = np.array(sorted(self.matroid.max_weight_basis(adjusted, live)), dtype=np.int64)
        return best, challenger, lcb, ucb

    def boundary_pair(self) -> Tuple[Optional[int], Optional[int]]:
        """Return ``(optimistic, pessimistic)`` boundary arms; either may be None."""

        if self.done:
            return None, None
        best, challenger, lcb, ucb = self._exchange()
        entering = np.setdiff1d(challenger, best)
        leaving = np.setdiff1d(best, challenger)
        # argmax/argmin return the first extremum, i.e. the smaller id.
        optimistic = int(entering[np.argmax(ucb[entering])]) if entering.size else None
        pessimistic = int(leaving[np.argmin(lcb[leaving])]) if leaving.size else None
        return optimistic, pessimistic

    def select_arm(self) -> int:
        if self.done:
            raise RuntimeError("all arms are classified; nothing left to pull")
        radii = self.tracker.radii()
        candidates = [a for a in self.boundary_pair() if a is not None]
        if not candidates:
            # Both completions agree; fall back to the widest live interval.
            candidates = self.undetermined
        return min(candidates, key=lambda i: (-radii[i], i))

    def _after_pull(self, arm: int) -> None:
        self._classify(arm)

    # --- classification ---
    def _affected(self, pulled: int) -> np.ndarray:
        """Live arms whose decision can have changed by pulling ``pulled``.

        Between two pulls the other intervals only widen, so an arm can only
        become decidable through its comparison with the pulled arm.
        """

        live = self.status == ArmStatus.UNDETERMINED
        ucb = self.tracker.upper_bounds()
        lcb = self.tracker.lower_bounds()
        affected = live & ((lcb >= ucb[pulled]) | (ucb < lcb[pulled]))
        affected[pulled] = live[pulled]
        return np.flatnonzero(affected)

    def _classify(self, pulled: Optional[int] = None) -> None:
        candidates = None if pulled is None else self._affected(pulled)
        while not self._basis_complete():
            live = np.flatnonzero(self.status == ArmStatus.UNDETERMINED)
            if live.size == 0:
                break
            accept, reject = self.matroid.dominance_decisions(
                live, self.tracker.lower_bounds(), self.tracker.upper_bounds(), candidates
            )
            if accept.size == 0 and reject.size == 0:
                break
            accepted = set(accept.tolist())
            for e in np.union1d(accept, reject).tolist():
                if e in accepted:
                    self._accept(e)
                else:
                    self._reject(e)
            candidates = None

        if self.epsilon > 0 and not self._basis_complete() and not self.done:
            self._stop_if_close()
        if self._basis_complete():
            self._reject_rest()

    def _stop_if_close(self) -> None:
        best, challenger, lcb, ucb = self._exchange()
        entering = np.setdiff1d(challenger, best)
        leaving = np.setdiff1d(best, challenger)
        slack = float(ucb[entering].sum() - lcb[leaving].sum())
        if np.isfinite(slack) and slack <= self.epsilon:
            LOGGER.debug("t=%d stop with exchange slack %.4g <= epsilon", self.tracker.t, slack)
            for e in best.tolist():
                self._accept(e)


class PhasedCSAREngine(BaseEngine):
    """Phased CSAR: uniform sampling per phase, one max-gap decision per phase.

    Phase ``k`` pulls every remaining arm ``phase_samples`` times, arm by arm in
    ascending id order.  At the end of the phase the remaining arm with the
    largest empirical gap is accepted if it lies in the empirical best
    completion and rejected otherwise.
    """

    name = "phased"

    def __init__(
        self,
        matroid: AbstractMatroid,
        tracker: ConfidenceTracker,
        *,
        phase_samples: int = 100,
        gap_method: str = "fast",
        track_history: bool = False,
    ) -> None:
        super().__init__(matroid, tracker, track_history=track_history)
        if phase_samples < 1:
            raise ValueError("phase_samples must be positive")
        self.phase_samples = int(phase_samples)
        self.gap_method = gap_method
        self.phase = 0
        self._phase_arms: List[int] = []
        self._cursor = 0
        if self._basis_complete():
            self._reject_rest()

    def select_arm(self) -> int:
        if self.done:
            raise RuntimeError("all arms are classified; nothing left to pull")
        if not self._phase_arms:
            self._phase_arms = self.undetermined
            self._cursor = 0
        return self._phase_arms[self._cursor // self.phase_samples]

    def _after_pull(self, arm: int) -> None:
        self._cursor += 1
        if self._cursor == len(self._phase_arms) * self.phase_samples:
            self._end_phase()

    def _end_phase(self) -> None:
        self.phase += 1
        self._phase_arms = []
        means = self.tracker.empirical_means()
        arm = self.matroid.max_gap_arm(means, method=self.gap_method)
        if arm in self.matroid.max_weight_basis(means):
            self._accept(arm)
        else:
            self._reject(arm)
        LOGGER.debug("phase %d decided arm %d", self.phase, arm)
        if self._basis_complete():
            self._reject_rest()
