# Graph.py
"""
Undirected multigraph helpers backing the graphic (circuit) matroid.

Design goals
------------
- Light-weight and dependency-free for core logic (numpy only for random
  instance generation).
- Edges are plain ``(u, v)`` integer pairs; the position of an edge in the
  edge list is the id of the corresponding arm.
- A union-find with path halving and union by size supports both
  non-committing cycle checks (``connected``) and committing unions.
- Offline path queries over a spanning forest (``replacement_maxima``,
  ``bottleneck_minima``) answer a whole batch of exchange questions in
  near-linear time instead of one union-find pass per edge.

Usage
-----
>>> from matroid_csar.Graph import UnionFind, cycle_graph_edges
>>> uf = UnionFind(4)
>>> for u, v in cycle_graph_edges(4)[:3]:
...     _ = uf.union(u, v)
>>> uf.connected(3, 0)          # the fourth edge would close the cycle
True
"""

from __future__ import annotations

from collections import deque
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

Edge = Tuple[int, int]
# (u, v, edge id) of a forest edge.
TreeEdge = Tuple[int, int, int]


# ---------------------------------------------------------------------------
# Union-find
# ---------------------------------------------------------------------------

class UnionFind:
    """Disjoint-set forest over vertices ``0..n-1``."""

    __slots__ = ("parent", "size", "components")

    def __init__(self, n: int) -> None:
        if n < 0:
            raise ValueError("number of vertices must be non-negative")
        self.parent: List[int] = list(range(n))
        self.size: List[int] = [1] * n
        self.components = n

    def __len__(self) -> int:
        return len(self.parent)

    def find(self, v: int) -> int:
        parent = self.parent
        while parent[v] != v:
            # Path halving keeps trees shallow without recursion.
            parent[v] = parent[parent[v]]
            v = parent[v]
        return v

    def connected(self, u: int, v: int) -> bool:
        """Cycle check: would the edge ``(u, v)`` close a cycle?  Never unions."""
        return self.find(u) == self.find(v)

    def union(self, u: int, v: int) -> bool:
        """Merge the trees containing ``u`` and ``v``; return False if already merged."""
        ru, rv = self.find(u), self.find(v)
        if ru == rv:
            return False
        if self.size[ru] < self.size[rv]:
            ru, rv = rv, ru
        self.parent[rv] = ru
        self.size[ru] += self.size[rv]
        self.components -= 1
        return True

    def copy(self) -> "UnionFind":
        clone = UnionFind.__new__(UnionFind)
        clone.parent = list(self.parent)
        clone.size = list(self.size)
        clone.components = self.components
        return clone


# ---------------------------------------------------------------------------
# Edge-list queries
# ---------------------------------------------------------------------------

def validate_edges(n_vertices: int, edges: Sequence[Edge]) -> Tuple[Edge, ...]:
    """Return ``edges`` as a tuple of int pairs, checking vertex bounds."""

    out: List[Edge] = []
    for idx, edge in enumerate(edges):
        if len(edge) != 2:
            raise ValueError(f"edge {idx} must be a (u, v) pair, got {edge!r}")
        u, v = int(edge[0]), int(edge[1])
        if not (0 <= u < n_vertices and 0 <= v < n_vertices):
            raise ValueError(f"edge {idx} = {edge!r} references a vertex outside [0, {n_vertices})")
        out.append((u, v))
    return tuple(out)


def forest_rank(n_vertices: int, edges: Sequence[Edge]) -> int:
    """Size of a spanning forest of the graph, i.e. ``V - #components``."""

    uf = UnionFind(n_vertices)
    for u, v in edges:
        uf.union(u, v)
    return n_vertices - uf.components


def connected_components(n_vertices: int, edges: Sequence[Edge]) -> List[List[int]]:
    uf = UnionFind(n_vertices)
    for u, v in edges:
        uf.union(u, v)
    groups: dict = {}
    for v in range(n_vertices):
        groups.setdefault(uf.find(v), []).append(v)
    return sorted(groups.values(), key=lambda comp: comp[0])


# ---------------------------------------------------------------------------
# Offline path queries on a forest
# ---------------------------------------------------------------------------

def _root_forest(n_vertices: int, tree_edges: Sequence[TreeEdge]):
    """BFS-root every tree; return parent vertex, parent edge id, depth and root per vertex."""

    adj: Dict[int, List[Tuple[int, int]]] = {}
    for u, v, eid in tree_edges:
        adj.setdefault(u, []).append((v, eid))
        adj.setdefault(v, []).append((u, eid))

    parent = list(range(n_vertices))
    parent_edge = [-1] * n_vertices
    depth = [0] * n_vertices
    root_of = list(range(n_vertices))
    seen = [False] * n_vertices
    for root in adj:
        if seen[root]:
            continue
        seen[root] = True
        queue = deque([root])
        while queue:
            u = queue.popleft()
            for v, eid in adj[u]:
                if not seen[v]:
                    seen[v] = True
                    parent[v] = u
                    parent_edge[v] = eid
                    depth[v] = depth[u] + 1
                    root_of[v] = root
                    queue.append(v)
    return parent, parent_edge, depth, root_of


def replacement_maxima(
    n_vertices: int,
    tree_edges: Sequence[TreeEdge],
    chords: Sequence[Tuple[int, int, float]],
) -> Dict[int, float]:
    """For every forest edge, the largest chord value whose forest path runs over it.

    ``chords`` are ``(u, v, value)`` triples; a chord covers the edges of the
    forest path between its endpoints.  Forest edges covered by no chord are
    missing from the result.  Chords are swept by decreasing value and every
    forest edge is settled the first time it is covered, so the whole batch
    costs ``O((V + m) log m)``.
    """

    parent, parent_edge, depth, root_of = _root_forest(n_vertices, tree_edges)
    jump = list(range(n_vertices))

    def top(x: int) -> int:
        while jump[x] != x:
            jump[x] = jump[jump[x]]
            x = jump[x]
        return x

    best: Dict[int, float] = {}
    for u, v, value in sorted(chords, key=lambda c: -c[2]):
        if root_of[u] != root_of[v]:
            continue
        a, b = top(u), top(v)
        while a != b:
            if depth[a] < depth[b]:
                a, b = b, a
            best[parent_edge[a]] = value
            jump[a] = parent[a]
            a = top(a)
    return best


def bottleneck_minima(
    n_vertices: int,
    tree_edges: Sequence[TreeEdge],
    weights: Sequence[float],
    pairs: Sequence[Edge],
) -> List[float]:
    """Smallest ``weights[eid]`` on the forest path between the endpoints of each pair.

    Forest edges are merged in decreasing weight order; a pair is answered by
    the edge whose merge first connects its endpoints, which is the lightest
    edge of its path.  Pending pairs move from the smaller component to the
    larger one.  Pairs with equal endpoints, or endpoints in different trees,
    get ``inf``.
    """

    answer = [float("inf")] * len(pairs)
    done = [False] * len(pairs)
    pending: Dict[int, List[int]] = {}
    for q, (a, b) in enumerate(pairs):
        if a != b:
            pending.setdefault(a, []).append(q)
            pending.setdefault(b, []).append(q)

    uf = UnionFind(n_vertices)
    for u, v, eid in sorted(tree_edges, key=lambda t: -weights[t[2]]):
        ru, rv = uf.find(u), uf.find(v)
        if ru == rv:
            continue
        big, small = pending.pop(ru, []), pending.pop(rv, [])
        if len(big) < len(small):
            big, small = small, big
        for q in small:
            if done[q]:
                continue
            a, b = pairs[q]
            if {uf.find(a), uf.find(b)} == {ru, rv}:
                answer[q] = float(weights[eid])
                done[q] = True
            else:
                big.append(q)
        uf.union(ru, rv)
        pending[uf.find(ru)] = big
    return answer


# ---------------------------------------------------------------------------
# Instance generators
# ---------------------------------------------------------------------------

def cycle_graph_edges(n_vertices: int) -> List[Edge]:
    """Edges ``(i, i+1 mod n)`` of the cycle on ``n_vertices`` vertices."""

    if n_vertices < 3:
        raise ValueError("a simple cycle needs at least 3 vertices")
    return [(i, (i + 1) % n_vertices) for i in range(n_vertices)]


def complete_graph_edges(n_vertices: int) -> List[Edge]:
    if n_vertices < 2:
        raise ValueError("a complete graph needs at least 2 vertices")
    return [(u, v) for u in range(n_vertices) for v in range(u + 1, n_vertices)]


def random_connected_graph(
    n_vertices: int,
    n_edges: int,
    rng: Optional[np.random.Generator] = None,
) -> List[Edge]:
    """Sample a simple connected graph with exactly ``n_edges`` edges.

    A random spanning tree is laid down first so the result is connected;
    the remaining edges are drawn uniformly among the missing pairs.
    """

    if n_vertices < 2:
        raise ValueError("need at least 2 vertices")
    max_edges = n_vertices * (n_vertices - 1) // 2
    if not (n_vertices - 1 <= n_edges <= max_edges):
        raise ValueError(f"n_edges must lie in [{n_vertices - 1}, {max_edges}] for {n_vertices} vertices")
    rng = rng or np.random.default_rng()

    order = rng.permutation(n_vertices).tolist()
    present = set()
    edges: List[Edge] = []
    for pos in range(1, n_vertices):
        anchor = order[int(rng.integers(pos))]
        u, v = sorted((anchor, order[pos]))
        present.add((u, v))
        edges.append((u, v))

    missing = [pair for pair in complete_graph_edges(n_vertices) if pair not in present]
    extra = n_edges - len(edges)
    if extra:
        picks = rng.choice(len(missing), size=extra, replace=False)
        edges.extend(missing[int(i)] for i in sorted(picks))
    return edges
