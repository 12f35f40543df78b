import numpy as np
import fastremap

N_COLORS = 4


class ColoringError(ValueError):
    pass


class ColoringInfeasible(ColoringError):
    """Raised when the exact search exhausts every branch without a valid 4-coloring."""


class ColoringAttemptsExhausted(ColoringError):
    """Raised when every heuristic attempt failed."""

    def __init__(self, attempts):
        self.attempts = attempts
        super().__init__(f"Failed to color the regions with {N_COLORS} colors in {attempts} attempts.")


class RegionGraph:
    """
    Adjacency between labeled regions, keyed by (possibly sparse) positive labels.

    The adjacency is normalized on construction: it is made symmetric, self-loops are
    dropped and labels <= 0 never become vertices. Neighbor sets are frozen, so solvers
    can only read it; anything that needs to remove edges works on a working_copy().
    `colors` holds the assignment committed by a successful coloring run.
    """

    def __init__(self, adjacency=None):
        adj = {}
        for node, nbrs in (adjacency or {}).items():
            node = int(node)
            if node <= 0:
                continue
            adj.setdefault(node, set())
            for v in nbrs:
                v = int(v)
                if v <= 0 or v == node:
                    continue
                adj[node].add(v)
                adj.setdefault(v, set()).add(node)
        self.adjacency = {k: frozenset(adj[k]) for k in sorted(adj)}
        self.colors = {}

    @classmethod
    def from_edges(cls, edges, nodes=()):
        adj = {int(n): set() for n in nodes}
        for a, b in edges:
            adj.setdefault(int(a), set()).add(int(b))
        return cls(adj)

    @property
    def nodes(self):
        return list(self.adjacency)

    @property
    def n_edges(self):
        return sum(len(v) for v in self.adjacency.values()) // 2

    def degree(self, node):
        return len(self.adjacency[node])

    def edges(self):
        return [(a, b) for a in self.adjacency for b in sorted(self.adjacency[a]) if a < b]

    def __len__(self):
        return len(self.adjacency)

    def __iter__(self):
        return iter(self.adjacency)

    def __contains__(self, node):
        return node in self.adjacency

    def __getitem__(self, node):
        return self.adjacency[node]

    def __eq__(self, other):
        if not isinstance(other, RegionGraph):
            return NotImplemented
        return self.adjacency == other.adjacency

    def __repr__(self):
        return f"RegionGraph(nodes={len(self)}, edges={self.n_edges})"

    def to_csr(self):
        """
        Dense-index form of the graph for the solvers' inner loops.

        Returns
        -------
        nodes : ndarray (int64)
            Sorted labels; position i is the dense index of nodes[i].
        indptr, indices : ndarray (int64)
            CSR neighbor lists over dense indices.
        """
        N = len(self.adjacency)
        nodes = np.fromiter(self.adjacency.keys(), dtype=np.int64, count=N)
        degrees = np.fromiter((len(self.adjacency[int(nid)]) for nid in nodes), dtype=np.int64, count=N)
        indptr = np.zeros(N + 1, dtype=np.int64)
        np.cumsum(degrees, out=indptr[1:])
        if indptr[-1] == 0:
            return nodes, indptr, np.empty(0, dtype=np.int64)

        concat_neighbors = np.empty(indptr[-1], dtype=np.int64)
        pos = 0
        for nid in nodes:
            arr = sorted(self.adjacency[int(nid)])
            concat_neighbors[pos:pos + len(arr)] = arr
            pos += len(arr)

        id2idx = {int(v): i for i, v in enumerate(nodes.tolist())}
        indices = fastremap.remap(concat_neighbors, id2idx, preserve_missing_labels=False).astype(np.int64, copy=False)
        return nodes, indptr, indices

    def working_copy(self):
        return WorkingGraph(self)


def as_graph(graph):
    if isinstance(graph, RegionGraph):
        return graph
    return RegionGraph(graph)


class WorkingGraph:
    """
    Private mutable clone of a RegionGraph for a single heuristic attempt.

    Vertices are dense indices 0..N-1; `labels[i]` translates back. Edges may be removed,
    and every removal is recorded in `removed` as a (lo, hi) label pair.
    """

    def __init__(self, graph):
        nodes, indptr, indices = as_graph(graph).to_csr()
        self.labels = nodes
        self.adj = [set(indices[indptr[i]:indptr[i + 1]].tolist()) for i in range(nodes.size)]
        self.removed = []

    def __len__(self):
        return len(self.adj)

    def degree(self, u):
        return len(self.adj[u])

    @property
    def relaxed(self):
        return len(self.removed) > 0

    def remove_edge(self, u, v):
        self.adj[u].discard(v)
        self.adj[v].discard(u)
        a, b = int(self.labels[u]), int(self.labels[v])
        self.removed.append((min(a, b), max(a, b)))

    def to_labels(self, colors):
        """Translate a dense color array (-1 = uncolored) back to {label: color}."""
        return {int(self.labels[i]): int(c) for i, c in enumerate(colors) if c >= 0}


def is_planar(graph, strict=False):
    """
    Euler-characteristic sanity check run before coloring.

    The face count is derived as F = 2 - V + E, so V - E + F == 2 holds for any V and E:
    on its own this check accepts every graph and acts as an advisory hook that trusts
    the segmentation upstream. With strict=True the necessary bound E <= 3V - 6 for
    simple planar graphs (V >= 3) is applied as well, which does reject dense graphs
    such as K5.
    """
    graph = as_graph(graph)
    V = len(graph)
    E = graph.n_edges
    F = 2 - V + E
    planar = V - E + F == 2
    if strict and V >= 3:
        planar = planar and E <= 3 * V - 6
    return planar


def count_conflicts(graph, colors):
    """
    Number of problems with `colors` as a 4-coloring of `graph`: edges whose endpoints
    share a color plus vertices without a color in 0..3. Zero means valid.
    """
    graph = as_graph(graph)
    bad = 0
    for u in graph:
        c = colors.get(u)
        if c is None or not 0 <= c < N_COLORS:
            bad += 1
    for a, b in graph.edges():
        ca = colors.get(a)
        if ca is not None and ca == colors.get(b):
            bad += 1
    return bad
