# Matroid.py
from __future__ import annotations
import copy
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from .Graph import (
    Edge,
    TreeEdge,
    UnionFind,
    bottleneck_minima,
    forest_rank,
    replacement_maxima,
    validate_edges,
)
from .errors import IncompleteBasisError, InvalidElementError

GAP_METHODS: Tuple[str, ...] = ("fast", "naive")


class AbstractMatroid(ABC):
    """Independence oracle over the ground set ``0..n_elements-1``.

    Besides the plain ``is_independent``/``rank`` queries the oracle maintains a
    *committed* independent set (the arms accepted so far) and a *deleted* set
    (the arms rejected so far).  Together they describe the minor the search
    still works on: ``commit`` contracts an element, ``delete`` removes it.
    ``can_add`` and ``spans`` are read-only queries against the committed set.
    """

    n_elements: int
    target_rank: int

    def __init__(self) -> None:
        self._committed: List[int] = []
        self._committed_set: Set[int] = set()
        self._deleted: Set[int] = set()

    # --- element validation ---
    def check_element(self, e: int) -> int:
        e_int = int(e)
        if not (0 <= e_int < self.n_elements):
            raise InvalidElementError(e, self.n_elements)
        return e_int

    def check_elements(self, S: Iterable[int]) -> Set[int]:
        return {self.check_element(e) for e in S}

    def element_array(self, S: Iterable[int]) -> np.ndarray:
        """Sorted, de-duplicated int64 array of validated element ids."""
        if isinstance(S, np.ndarray):
            arr = S.astype(np.int64, copy=False).ravel()
        else:
            arr = np.fromiter((int(e) for e in S), dtype=np.int64)
        arr = np.unique(arr)
        if arr.size and (arr[0] < 0 or arr[-1] >= self.n_elements):
            raise InvalidElementError(int(arr[0] if arr[0] < 0 else arr[-1]), self.n_elements)
        return arr

    def _weights(self, weights: Sequence[float]) -> np.ndarray:
        w = np.asarray(weights, dtype=float)
        if w.shape != (self.n_elements,):
            raise ValueError(f"weights must have shape ({self.n_elements},), got {w.shape}")
        return w

    # --- independence queries ---
    @abstractmethod
    def is_independent(self, S: Iterable[int]) -> bool:
        ...

    @abstractmethod
    def rank(self, S: Iterable[int]) -> int:
        ...

    @abstractmethod
    def can_add(self, e: int) -> bool:
        """Would ``committed ∪ {e}`` still be independent?"""
        ...

    @abstractmethod
    def spans(self, e: int, others: Iterable[int]) -> bool:
        """Is ``e`` in the closure of ``committed ∪ others``?"""
        ...

    @abstractmethod
    def _greedy(self, order: List[int]) -> List[int]:
        ...

    @abstractmethod
    def _exchange_extremes(
        self, w: np.ndarray, basis: np.ndarray, others: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Best single exchanges against the optimal completion ``basis``.

        Returns ``(best_out, worst_in)``: for ``i`` in ``basis`` the largest
        weight of an element of ``others`` whose fundamental circuit contains
        ``i`` (``-inf`` if none), and for ``f`` in ``others`` the smallest weight
        of a ``basis`` element in the fundamental circuit of ``f`` (``+inf`` if
        none, e.g. for a loop of the minor).
        """
        ...

    @abstractmethod
    def _commit(self, e: int) -> None:
        ...

    @abstractmethod
    def _reset(self) -> None:
        ...

    # --- committed and deleted elements ---
    @property
    def committed(self) -> Tuple[int, ...]:
        return tuple(self._committed)

    @property
    def deleted(self) -> Tuple[int, ...]:
        return tuple(sorted(self._deleted))

    def remaining_rank(self) -> int:
        return self.target_rank - len(self._committed)

    def remaining_elements(self) -> np.ndarray:
        """Ids neither committed nor deleted, ascending."""
        mask = np.ones(self.n_elements, dtype=bool)
        mask[self._committed] = False
        mask[list(self._deleted)] = False
        return np.flatnonzero(mask)

    def commit(self, e: int) -> None:
        """Contract ``e``: add it to the committed independent set."""
        e = self.check_element(e)
        if e in self._committed_set:
            raise ValueError(f"element {e} is already committed")
        if e in self._deleted:
            raise ValueError(f"element {e} was deleted")
        if not self.can_add(e):
            raise ValueError(f"committing element {e} would break independence")
        self._commit(e)
        self._committed.append(e)
        self._committed_set.add(e)

    def delete(self, e: int) -> None:
        """Remove ``e`` from the minor; it is no longer a candidate for any basis."""
        e = self.check_element(e)
        if e in self._committed_set:
            raise ValueError(f"element {e} is committed")
        if e in self._deleted:
            raise ValueError(f"element {e} is already deleted")
        self._deleted.add(e)

    def reset(self) -> None:
        self._committed = []
        self._committed_set = set()
        self._deleted = set()
        self._reset()

    # --- derived queries ---
    def full_rank(self) -> int:
        return self.rank(range(self.n_elements))

    def feasible(self) -> bool:
        """True iff the ground set contains an independent set of the target rank."""
        return self.full_rank() >= self.target_rank

    def greedy_extension(self, order: Sequence[int]) -> List[int]:
        """Scan ``order`` and keep every element that stays independent with the committed set.

        Stops once the target rank is reached.  Already committed elements are skipped.
        """
        return self._greedy([self.check_element(e) for e in order])

    def max_weight_basis(
        self,
        weights: Sequence[float],
        candidates: Optional[Iterable[int]] = None,
    ) -> List[int]:
        """Greedy max-weight completion of the committed set.

        Candidates (default: the remaining elements) are scanned by decreasing
        weight, ties going to the smaller id.  The returned list holds only the
        newly added elements, in scan order.
        """

        w = self._weights(weights)
        cand = self.remaining_elements() if candidates is None else self.element_array(candidates)
        if cand.size == 0:
            return []
        order = cand[np.lexsort((cand, -w[cand]))]
        return self._greedy(order.tolist())

    def dominance_decisions(
        self,
        live: Iterable[int],
        lower: Sequence[float],
        upper: Sequence[float],
        candidates: Optional[Iterable[int]] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Arms of ``candidates`` (default: all of ``live``) that the bounds already decide.

        ``e`` is accepted when it is not spanned by the committed set together
        with every other live arm whose upper bound exceeds ``lower[e]``, and
        rejected when it is spanned by the committed set together with the live
        arms whose lower bound exceeds ``upper[e]``.  Returns ``(accepted,
        rejected)`` as ascending id arrays; the decisions stay valid when they
        are applied together in any order.

        This version asks ``spans`` once per arm.  Both concrete oracles answer
        the whole batch from one sort of the bounds.
        """

        live_arr = self.element_array(live)
        lo, hi = self._weights(lower), self._weights(upper)
        queries = self._queries(live_arr, candidates)
        accept: List[int] = []
        reject: List[int] = []
        for e in queries.tolist():
            others = live_arr[live_arr != e]
            if not self.spans(e, others[hi[others] > lo[e]].tolist()):
                accept.append(e)
            elif self.spans(e, others[lo[others] > hi[e]].tolist()):
                reject.append(e)
        return np.array(accept, dtype=np.int64), np.array(reject, dtype=np.int64)

    def _queries(self, live: np.ndarray, candidates: Optional[Iterable[int]]) -> np.ndarray:
        if candidates is None:
            return live
        return np.intersect1d(self.element_array(candidates), live)

    # --- max-gap ---
    def arm_gaps(self, weights: Sequence[float], *, method: str = "fast") -> np.ndarray:
        """Gap of every remaining element with respect to the optimal completion.

        For an element ``i`` of the optimal completion the gap is its weight
        minus the best completion that avoids ``i``; for any other element it is
        the optimal weight minus the best completion forced to contain it.  A
        gap is ``+inf`` when the forced completion does not exist.  Committed
        and deleted elements get ``nan``.

        ``method="naive"`` re-solves a contracted or deleted copy of the minor
        per element; ``method="fast"`` reads every gap off the fundamental
        circuits of the optimal completion.
        """

        if method not in GAP_METHODS:
            raise ValueError(f"method must be one of {GAP_METHODS}, got {method!r}")
        w = self._weights(weights)
        remaining = self.remaining_elements()
        if remaining.size == 0:
            raise ValueError("no remaining elements")
        if not np.all(np.isfinite(w[remaining])):
            raise ValueError("weights of the remaining elements must be finite")
        basis = np.array(sorted(self.max_weight_basis(w)), dtype=np.int64)
        if len(self._committed) + basis.size < self.target_rank:
            raise IncompleteBasisError(self.target_rank, len(self._committed) + basis.size)

        if method == "naive":
            return self._naive_gaps(w, basis, remaining)
        gaps = np.full(self.n_elements, np.nan)
        others = np.setdiff1d(remaining, basis)
        best_out, worst_in = self._exchange_extremes(w, basis, others)
        gaps[basis] = w[basis] - best_out[basis]
        gaps[others] = worst_in[others] - w[others]
        return gaps

    def max_gap_arm(self, weights: Sequence[float], *, method: str = "fast") -> int:
        """Remaining element with the largest gap; ties go to the smaller id."""
        gaps = self.arm_gaps(weights, method=method)
        remaining = self.remaining_elements()
        return int(remaining[int(np.argmax(gaps[remaining]))])

    def _naive_gaps(self, w: np.ndarray, basis: np.ndarray, remaining: np.ndarray) -> np.ndarray:
        optimum = float(w[basis].sum())
        in_basis = set(basis.tolist())
        gaps = np.full(self.n_elements, np.nan)
        for i in remaining.tolist():
            minor = copy.deepcopy(self)
            if i in in_basis:
                minor.delete(i)
                forced = 0.0
            elif minor.can_add(i):
                minor.commit(i)
                forced = float(w[i])
            else:
                gaps[i] = np.inf
                continue
            picks = minor.max_weight_basis(w)
            if len(minor.committed) + len(picks) < minor.target_rank:
                gaps[i] = np.inf
            else:
                gaps[i] = optimum - (forced + float(w[picks].sum()))
        return gaps

    def info(self) -> Dict[str, Any]:
        return {"n_elements": self.n_elements, "target_rank": self.target_rank}


class UniformMatroid(AbstractMatroid):
    """U(r, n): a set is independent iff it has at most ``r`` elements."""

    def __init__(self, n: int, r: int) -> None:
        super().__init__()
        if n <= 0:
            raise ValueError("n must be positive")
        if r < 0:
            raise ValueError("r must be non-negative")
        self.n_elements = int(n)
        self.target_rank = int(r)

    def is_independent(self, S: Iterable[int]) -> bool:
        return len(self.check_elements(S)) <= self.target_rank

    def rank(self, S: Iterable[int]) -> int:
        return min(len(self.check_elements(S)), self.target_rank)

    def can_add(self, e: int) -> bool:
        e = self.check_element(e)
        if e in self._committed_set:
            return True
        return len(self._committed) < self.target_rank

    def spans(self, e: int, others: Iterable[int]) -> bool:
        e = self.check_element(e)
        span_set = self.check_elements(others) | self._committed_set
        return e in span_set or len(span_set) >= self.target_rank

    def dominance_decisions(self, live, lower, upper, candidates=None):
        # Everything in U(r, n) is spanned by any r elements, so both rules are counts.
        live_arr = self.element_array(live)
        lo, hi = self._weights(lower), self._weights(upper)
        queries = self._queries(live_arr, candidates)
        room = self.remaining_rank()
        if room <= 0:
            return np.empty(0, dtype=np.int64), queries
        ql, qh = lo[queries], hi[queries]
        maybe_heavier = (
            live_arr.size
            - np.searchsorted(np.sort(hi[live_arr]), ql, side="right")
            - (qh > ql).astype(np.int64)
        )
        surely_heavier = (
            live_arr.size
            - np.searchsorted(np.sort(lo[live_arr]), qh, side="right")
            - (ql > qh).astype(np.int64)
        )
        accept = maybe_heavier < room
        reject = ~accept & (surely_heavier >= room)
        return queries[accept], queries[reject]

    def _greedy(self, order: List[int]) -> List[int]:
        room = self.remaining_rank()
        picks: List[int] = []
        seen: Set[int] = set()
        for e in order:
            if len(picks) >= room:
                break
            if e in self._committed_set or e in seen:
                continue
            seen.add(e)
            picks.append(e)
        return picks

    def _exchange_extremes(self, w, basis, others):
        # Any element outside a basis of U(r, n) closes a circuit with the whole basis.
        best_out = np.full(self.n_elements, -np.inf)
        worst_in = np.full(self.n_elements, np.inf)
        if basis.size and others.size:
            best_out[basis] = w[others].max()
            worst_in[others] = w[basis].min()
        return best_out, worst_in

    def _commit(self, e: int) -> None:
        pass  # cardinality is the only state

    def _reset(self) -> None:
        pass

    def info(self) -> Dict[str, Any]:
        data = super().info()
        data.update({"type": "UniformMatroid", "n": self.n_elements, "r": self.target_rank})
        return data


class GraphicMatroid(AbstractMatroid):
    """Cycle matroid of an undirected multigraph; element ``i`` is ``edges[i]``.

    The target rank defaults to ``n_vertices - 1`` (spanning trees).  A smaller
    rank turns the oracle into the truncation: acyclic *and* at most ``rank`` edges.
    Committed edges are unioned into a union-find, so the minor's edges are
    read with their endpoints replaced by union-find roots.
    """

    def __init__(self, n_vertices: int, edges: Sequence[Edge], rank: Optional[int] = None) -> None:
        super().__init__()
        if n_vertices <= 0:
            raise ValueError("n_vertices must be positive")
        self.n_vertices = int(n_vertices)
        self.edges: Tuple[Edge, ...] = validate_edges(self.n_vertices, edges)
        if not self.edges:
            raise ValueError("graphic matroid needs at least one edge")
        self.n_elements = len(self.edges)
        target = self.n_vertices - 1 if rank is None else int(rank)
        if not (0 <= target <= self.n_vertices - 1):
            raise ValueError(f"rank must lie in [0, {self.n_vertices - 1}] for {self.n_vertices} vertices")
        self.target_rank = target
        self._uf = UnionFind(self.n_vertices)

    def _forest_rank(self, S: Iterable[int]) -> int:
        return forest_rank(self.n_vertices, [self.edges[e] for e in self.check_elements(S)])

    def _contracted(self, elems: Iterable[int]) -> Tuple[List[int], List[int]]:
        find = self._uf.find
        us: List[int] = []
        vs: List[int] = []
        for e in elems:
            u, v = self.edges[e]
            us.append(find(u))
            vs.append(find(v))
        return us, vs

    def is_independent(self, S: Iterable[int]) -> bool:
        elems = self.check_elements(S)
        if len(elems) > self.target_rank:
            return False
        return self._forest_rank(elems) == len(elems)

    def rank(self, S: Iterable[int]) -> int:
        return min(self._forest_rank(S), self.target_rank)

    def can_add(self, e: int) -> bool:
        e = self.check_element(e)
        if e in self._committed_set:
            return True
        if len(self._committed) >= self.target_rank:
            return False
        u, v = self.edges[e]
        return not self._uf.connected(u, v)

    def spans(self, e: int, others: Iterable[int]) -> bool:
        e = self.check_element(e)
        extra = self.check_elements(others) - self._committed_set
        if e in self._committed_set or e in extra:
            return True
        scratch = self._uf.copy()
        size = len(self._committed)
        for f in extra:
            if size >= self.target_rank:
                return True
            u, v = self.edges[f]
            if scratch.union(u, v):
                size += 1
        if size >= self.target_rank:
            return True
        u, v = self.edges[e]
        return scratch.connected(u, v)

    def dominance_decisions(self, live, lower, upper, candidates=None):
        """Batch version of the accept/reject rules.

        Acceptance: a maximum spanning forest ``T`` of the live edges by upper
        bound (Kruskal, committed edges contracted) restricted to edges with
        upper bound above ``lower[e]`` spans every such edge.  So ``e`` is
        spanned by the heavier-looking edges unless it is a forest edge whose
        best covering chord has upper bound at most ``lower[e]``; the truncation
        additionally needs the forest edges above ``lower[e]`` to stay below
        the remaining rank.  Rejection: queries sorted by upper bound sweep the
        live edges sorted by lower bound through one union-find.
        """

        live_arr = self.element_array(live)
        lo, hi = self._weights(lower), self._weights(upper)
        queries = self._queries(live_arr, candidates)
        room = self.remaining_rank()
        if room <= 0:
            return np.empty(0, dtype=np.int64), queries

        live_list = live_arr.tolist()
        us, vs = self._contracted(live_list)
        cu = dict(zip(live_list, us))
        cv = dict(zip(live_list, vs))

        # acceptance
        scratch = UnionFind(self.n_vertices)
        tree: List[TreeEdge] = []
        chords: List[Tuple[int, int, float]] = []
        in_tree = np.zeros(self.n_elements, dtype=bool)
        for e in live_arr[np.lexsort((live_arr, -hi[live_arr]))].tolist():
            if scratch.union(cu[e], cv[e]):
                tree.append((cu[e], cv[e], e))
                in_tree[e] = True
            elif cu[e] != cv[e]:
                chords.append((cu[e], cv[e], float(hi[e])))
        cover = np.full(self.n_elements, -np.inf)
        for e, value in replacement_maxima(self.n_vertices, tree, chords).items():
            cover[e] = value
        tree_hi = np.sort(hi[[e for _, _, e in tree]])
        ql = lo[queries]
        forest_above = tree_hi.size - np.searchsorted(tree_hi, ql, side="right")
        own = (hi[queries] > ql).astype(np.int64)
        accept = in_tree[queries] & ~(cover[queries] > ql) & (forest_above - own < room)

        # rejection
        reject = np.zeros(queries.size, dtype=bool)
        by_lower = live_arr[np.lexsort((live_arr, -lo[live_arr]))].tolist()
        scratch = UnionFind(self.n_vertices)
        size = j = 0
        for pos in np.argsort(-hi[queries], kind="stable").tolist():
            e = int(queries[pos])
            while j < len(by_lower) and lo[by_lower[j]] > hi[e]:
                f = by_lower[j]
                size += scratch.union(cu[f], cv[f])
                j += 1
            if not accept[pos] and (size >= room or scratch.connected(cu[e], cv[e])):
                reject[pos] = True
        return queries[accept], queries[reject]

    def _greedy(self, order: List[int]) -> List[int]:
        room = self.remaining_rank()
        scratch = self._uf.copy()
        picks: List[int] = []
        for e in order:
            if len(picks) >= room:
                break
            if e in self._committed_set:
                continue
            u, v = self.edges[e]
            if scratch.union(u, v):
                picks.append(e)
        return picks

    def _exchange_extremes(self, w, basis, others):
        best_out = np.full(self.n_elements, -np.inf)
        worst_in = np.full(self.n_elements, np.inf)
        bu, bv = self._contracted(basis.tolist())
        ou, ov = self._contracted(others.tolist())
        tree = [(u, v, e) for u, v, e in zip(bu, bv, basis.tolist())]
        forest = UnionFind(self.n_vertices)
        for u, v, _ in tree:
            forest.union(u, v)

        chords: List[Tuple[int, int, float]] = []
        pairs: List[Edge] = []
        closing: List[int] = []
        bridging: List[int] = []
        for u, v, f in zip(ou, ov, others.tolist()):
            if forest.connected(u, v):
                if u != v:
                    chords.append((u, v, float(w[f])))
                    pairs.append((u, v))
                    closing.append(f)
            else:
                bridging.append(f)

        for e, value in replacement_maxima(self.n_vertices, tree, chords).items():
            best_out[e] = value
        for f, value in zip(closing, bottleneck_minima(self.n_vertices, tree, w, pairs)):
            worst_in[f] = value
        if bridging and basis.size:
            # Below the graph rank a forest-joining edge closes a circuit with the whole basis.
            best_out[basis] = np.maximum(best_out[basis], w[bridging].max())
            worst_in[bridging] = w[basis].min()
        return best_out, worst_in

    def _commit(self, e: int) -> None:
        u, v = self.edges[e]
        self._uf.union(u, v)

    def _reset(self) -> None:
        self._uf = UnionFind(self.n_vertices)

    def info(self) -> Dict[str, Any]:
        data = super().info()
        data.update(
            {
                "type": "GraphicMatroid",
                "n_vertices": self.n_vertices,
                "n_edges": self.n_elements,
                "rank": self.target_rank,
            }
        )
        return data
