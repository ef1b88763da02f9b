import itertools

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from matroid_csar.Graph import cycle_graph_edges, random_connected_graph
from matroid_csar.Matroid import AbstractMatroid, GraphicMatroid, UniformMatroid
from matroid_csar.errors import IncompleteBasisError, InvalidElementError


# --- uniform ---

def test_uniform_independence_and_rank() -> None:
    m = UniformMatroid(5, 2)
    assert m.is_independent([])
    assert m.is_independent([0, 4])
    assert not m.is_independent([0, 1, 2])
    assert m.rank([0, 1, 2, 3]) == 2
    assert m.rank([3]) == 1
    assert m.full_rank() == 2
    assert m.feasible()


def test_uniform_can_add_commit_and_span() -> None:
    m = UniformMatroid(4, 2)
    assert m.can_add(0)
    m.commit(0)
    assert m.committed == (0,)
    assert not m.spans(1, [])
    assert m.spans(1, [2])
    assert m.spans(0, [])
    m.commit(3)
    assert not m.can_add(1)
    assert m.spans(1, [])
    with pytest.raises(ValueError):
        m.commit(1)
    with pytest.raises(ValueError):
        m.commit(3)
    m.reset()
    assert m.committed == ()
    assert m.can_add(1)


def test_uniform_rank_above_ground_set_is_infeasible() -> None:
    m = UniformMatroid(3, 5)
    assert m.full_rank() == 3
    assert not m.feasible()


def test_invalid_element_is_reported() -> None:
    m = UniformMatroid(3, 1)
    for call in (lambda: m.can_add(3), lambda: m.rank([0, -1]), lambda: m.spans(0, [7]), lambda: m.commit(5)):
        with pytest.raises(InvalidElementError):
            call()
    g = GraphicMatroid(4, cycle_graph_edges(4))
    with pytest.raises(IndexError):
        g.is_independent([4])


def test_max_weight_basis_breaks_ties_by_id() -> None:
    m = UniformMatroid(4, 2)
    assert m.max_weight_basis([1.0, 3.0, 3.0, 3.0]) == [1, 2]
    m.commit(2)
    assert m.max_weight_basis([1.0, 3.0, 3.0, 3.0]) == [1]
    assert m.max_weight_basis([1.0, 3.0, 3.0, 3.0], candidates=[0, 3]) == [3]
    with pytest.raises(ValueError):
        m.max_weight_basis([1.0, 2.0])


def test_greedy_extension_skips_committed_and_stops_at_rank() -> None:
    m = UniformMatroid(4, 2)
    m.commit(1)
    assert m.greedy_extension([1, 3, 0, 2]) == [3]
    g = GraphicMatroid(4, cycle_graph_edges(4))
    assert g.greedy_extension([3, 2, 1, 0]) == [3, 2, 1]
    with pytest.raises(InvalidElementError):
        g.greedy_extension([4])


# --- graphic ---

def test_graphic_cycle_oracle() -> None:
    g = GraphicMatroid(4, cycle_graph_edges(4))
    assert g.target_rank == 3
    assert g.is_independent([0, 1, 2])
    assert not g.is_independent([0, 1, 2, 3])
    assert g.rank(range(4)) == 3
    assert g.rank([0, 2]) == 2


def test_graphic_can_add_is_non_committing() -> None:
    g = GraphicMatroid(4, cycle_graph_edges(4))
    g.commit(0)
    g.commit(1)
    assert g.can_add(2)
    assert g.can_add(2)
    assert g.committed == (0, 1)
    # Edges 0, 1 and 2 close the cycle with edge 3.
    assert not g.spans(3, [])
    assert g.spans(3, [2])
    assert g.committed == (0, 1)
    g.commit(2)
    assert not g.can_add(3)
    with pytest.raises(ValueError):
        g.commit(3)


def test_graphic_self_loop_is_always_spanned() -> None:
    g = GraphicMatroid(3, [(0, 1), (1, 1), (1, 2)])
    assert not g.can_add(1)
    assert g.spans(1, [])
    assert g.rank([1]) == 0


def test_graphic_disconnected_graph_is_infeasible() -> None:
    g = GraphicMatroid(5, [(0, 1), (1, 2), (2, 0), (3, 4)])
    assert g.target_rank == 4
    assert g.full_rank() == 3
    assert not g.feasible()


def test_graphic_truncation() -> None:
    g = GraphicMatroid(4, cycle_graph_edges(4), rank=2)
    assert not g.is_independent([0, 1, 2])
    assert g.rank([0, 1, 2]) == 2
    g.commit(0)
    assert g.spans(2, [1])
    assert not g.spans(2, [])
    with pytest.raises(ValueError):
        GraphicMatroid(4, cycle_graph_edges(4), rank=4)


def test_graphic_greedy_is_kruskal() -> None:
    edges = [(0, 1), (1, 2), (0, 2), (2, 3)]
    g = GraphicMatroid(4, edges)
    assert sorted(g.max_weight_basis([5.0, 4.0, 3.0, 0.5])) == [0, 1, 3]
    g.commit(2)
    assert sorted(g.max_weight_basis([5.0, 4.0, 3.0, 0.5])) == [0, 3]


# --- properties against brute force ---

small_graphs = st.integers(min_value=2, max_value=5).flatmap(
    lambda n: st.tuples(
        st.just(n),
        st.lists(st.tuples(st.integers(0, n - 1), st.integers(0, n - 1)), min_size=1, max_size=7),
    )
)


@settings(max_examples=60, deadline=None)
@given(small_graphs, st.data())
def test_graphic_independence_matches_networkx(case, data) -> None:
    nx = pytest.importorskip("networkx")
    n, edges = case
    g = GraphicMatroid(n, edges)
    subset = data.draw(st.sets(st.integers(0, len(edges) - 1)))
    G = nx.MultiGraph()
    G.add_nodes_from(range(n))
    G.add_edges_from(edges[i] for i in subset)
    assert g.is_independent(subset) == nx.is_forest(G)


@settings(max_examples=60, deadline=None)
@given(small_graphs, st.data())
def test_greedy_basis_is_optimal(case, data) -> None:
    n, edges = case
    g = GraphicMatroid(n, edges)
    weights = np.array(
        data.draw(st.lists(st.floats(-5, 5, allow_nan=False), min_size=len(edges), max_size=len(edges)))
    )
    rank = g.full_rank()
    greedy = g.max_weight_basis(weights)
    assert len(greedy) == rank
    assert g.is_independent(greedy)
    best = max(
        weights[list(S)].sum()
        for S in itertools.combinations(range(len(edges)), rank)
        if g.is_independent(S)
    )
    assert weights[greedy].sum() == pytest.approx(best)


@settings(max_examples=60, deadline=None)
@given(small_graphs, st.data())
def test_spans_agrees_with_rank(case, data) -> None:
    n, edges = case
    g = GraphicMatroid(n, edges)
    e = data.draw(st.integers(0, len(edges) - 1))
    others = data.draw(st.sets(st.integers(0, len(edges) - 1)))
    expected = g.rank(others | {e}) == g.rank(others)
    assert g.spans(e, others) == expected


# --- minors ---

def test_delete_and_remaining_elements() -> None:
    m = UniformMatroid(5, 2)
    m.commit(1)
    m.delete(3)
    assert m.remaining_elements().tolist() == [0, 2, 4]
    assert m.deleted == (3,)
    for call in (lambda: m.delete(1), lambda: m.delete(3), lambda: m.commit(3)):
        with pytest.raises(ValueError):
            call()
    assert m.max_weight_basis([5.0, 0.0, 4.0, 9.0, 1.0]) == [0]
    m.reset()
    assert m.deleted == ()
    assert m.remaining_elements().tolist() == [0, 1, 2, 3, 4]


def test_graphic_delete_keeps_union_find() -> None:
    g = GraphicMatroid(3, [(0, 1), (1, 2), (0, 2)])
    g.delete(0)
    assert g.can_add(0)
    assert sorted(g.max_weight_basis([9.0, 1.0, 2.0])) == [1, 2]


# --- batch dominance decisions ---

def _tied_bounds(rng, n, unpulled=0.05):
    centre = rng.integers(0, 40, size=n) / 4.0
    width = rng.integers(1, 8, size=n) / 4.0
    lower, upper = centre - width, centre + width
    blank = rng.random(n) < unpulled
    lower[blank] = -np.inf
    upper[blank] = np.inf
    return lower, upper


def _assert_same_decisions(matroid, live, lower, upper, candidates=None) -> None:
    fast = matroid.dominance_decisions(live, lower, upper, candidates)
    reference = AbstractMatroid.dominance_decisions(matroid, live, lower, upper, candidates)
    assert fast[0].tolist() == reference[0].tolist()
    assert fast[1].tolist() == reference[1].tolist()


@pytest.mark.parametrize("rank", [1, 40, 300, 599])
def test_uniform_decisions_match_spans_rule_at_scale(rank) -> None:
    rng = np.random.default_rng(rank)
    m = UniformMatroid(600, rank)
    m.commit(0)
    m.delete(1)
    lower, upper = _tied_bounds(rng, 600)
    _assert_same_decisions(m, m.remaining_elements(), lower, upper)


@pytest.mark.parametrize("rank", [None, 60, 150])
def test_graphic_decisions_match_spans_rule_at_scale(rank) -> None:
    rng = np.random.default_rng(5)
    edges = random_connected_graph(200, 600, rng)
    g = GraphicMatroid(200, edges, rank=rank)
    for e in g.max_weight_basis(rng.normal(size=600))[:20]:
        g.commit(e)
    for e in rng.choice(g.remaining_elements(), size=30, replace=False).tolist():
        g.delete(e)
    lower, upper = _tied_bounds(rng, 600)
    live = g.remaining_elements()
    _assert_same_decisions(g, live, lower, upper)
    _assert_same_decisions(g, live, lower, upper, candidates=live[::7])


def test_full_basis_rejects_every_candidate() -> None:
    m = UniformMatroid(4, 1)
    m.commit(2)
    accept, reject = m.dominance_decisions([0, 1, 3], np.zeros(4), np.ones(4), candidates=[1, 2, 3])
    assert accept.tolist() == []
    assert reject.tolist() == [1, 3]


@settings(max_examples=80, deadline=None)
@given(small_graphs, st.data())
def test_graphic_decisions_match_spans_rule(case, data) -> None:
    n, edges = case
    rank = data.draw(st.one_of(st.none(), st.integers(0, n - 1)))
    g = GraphicMatroid(n, edges, rank=rank)
    for e in data.draw(st.lists(st.integers(0, len(edges) - 1), max_size=3)):
        if g.can_add(e) and e not in g.committed:
            g.commit(e)
    centre = data.draw(st.lists(st.integers(0, 4), min_size=len(edges), max_size=len(edges)))
    width = data.draw(st.lists(st.integers(1, 3), min_size=len(edges), max_size=len(edges)))
    lower = np.array(centre, dtype=float) - np.array(width)
    upper = np.array(centre, dtype=float) + np.array(width)
    _assert_same_decisions(g, g.remaining_elements(), lower, upper)


# --- max-gap ---

def test_max_gap_arm_uniform() -> None:
    m = UniformMatroid(5, 2)
    w = [5.0, 4.0, 3.0, 0.0, -1.0]
    gaps = m.arm_gaps(w)
    assert gaps.tolist() == [2.0, 1.0, 1.0, 4.0, 5.0]
    assert m.max_gap_arm(w) == m.max_gap_arm(w, method="naive") == 4
    m.commit(0)
    m.delete(4)
    gaps = m.arm_gaps(w)
    assert np.isnan(gaps[[0, 4]]).all()
    assert gaps[[1, 2, 3]].tolist() == [1.0, 1.0, 4.0]


def test_arm_gaps_of_coloops_and_loops_are_infinite() -> None:
    # Pendant edge 3 is a coloop; edge 4 is a self-loop.
    g = GraphicMatroid(4, [(0, 1), (1, 2), (0, 2), (2, 3), (1, 1)])
    w = [3.0, 2.0, 1.0, 0.5, 9.0]
    for method in ("fast", "naive"):
        gaps = g.arm_gaps(w, method=method)
        assert gaps[3] == np.inf and gaps[4] == np.inf
        assert gaps[[0, 1, 2]].tolist() == [2.0, 1.0, 1.0]


def test_arm_gaps_errors() -> None:
    g = GraphicMatroid(5, [(0, 1), (1, 2), (2, 0), (3, 4)])
    with pytest.raises(IncompleteBasisError):
        g.arm_gaps([1.0, 2.0, 3.0, 4.0])
    m = UniformMatroid(3, 1)
    with pytest.raises(ValueError):
        m.arm_gaps([1.0, 2.0, 3.0], method="exact")
    with pytest.raises(ValueError):
        m.arm_gaps([1.0, np.nan, 3.0])


def _minor_cases():
    rng = np.random.default_rng(21)
    yield UniformMatroid(12, 5), rng
    yield UniformMatroid(6, 6), rng
    edges = random_connected_graph(9, 20, rng)
    yield GraphicMatroid(9, edges), rng
    yield GraphicMatroid(9, edges, rank=4), rng
    yield GraphicMatroid(4, [(0, 1), (0, 1), (1, 2), (2, 2), (2, 3), (3, 0)]), rng


@pytest.mark.parametrize("matroid,rng", list(_minor_cases()))
def test_fast_gaps_match_naive(matroid, rng) -> None:
    for _ in range(5):
        matroid.reset()
        w = rng.normal(size=matroid.n_elements)
        basis = matroid.max_weight_basis(w)
        if len(basis) > 1:
            matroid.commit(basis[0])
            others = np.setdiff1d(matroid.remaining_elements(), basis)
            if others.size > 1:
                matroid.delete(int(others[0]))
        fast = matroid.arm_gaps(w)
        naive = matroid.arm_gaps(w, method="naive")
        np.testing.assert_allclose(fast, naive, rtol=1e-9, atol=1e-9, equal_nan=True)
