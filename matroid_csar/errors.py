"""Exception types raised by the matroid oracles, the CSAR engine and the trial driver."""

from __future__ import annotations


class MatroidCSARError(Exception):
    """Base class for errors raised by this package."""


class InvalidElementError(MatroidCSARError, IndexError):
    """An oracle was queried with an element outside ``[0, n)``.

    This signals a bug in the caller and is never converted into a trial outcome.
    """

    def __init__(self, element: int, n_elements: int) -> None:
        super().__init__(f"element {element!r} outside ground set [0, {n_elements})")
        self.element = element
        self.n_elements = n_elements


class IncompleteBasisError(MatroidCSARError):
    """The matroid cannot yield an independent set of the requested rank."""

    def __init__(self, target_rank: int, achievable_rank: int) -> None:
        super().__init__(
            f"no basis of rank {target_rank} exists (achievable rank is {achievable_rank})"
        )
        self.target_rank = target_rank
        self.achievable_rank = achievable_rank


class RoundBudgetExceededError(MatroidCSARError):
    """The driver stopped a trial after its round budget ran out."""

    def __init__(self, rounds: int) -> None:
        super().__init__(f"round budget of {rounds} pulls exhausted before classification finished")
        self.rounds = rounds
