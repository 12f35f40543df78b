import numpy as np
import scipy.sparse
from scipy.sparse.csgraph import connected_components
from numba import njit

from .graph import as_graph, ColoringInfeasible, N_COLORS

# failures allowed in the first search run; doubled on every restart
RESTART_BASE = 1000


@njit(cache=True)
def _popcount4(m):
    return (m & 1) + ((m >> 1) & 1) + ((m >> 2) & 1) + ((m >> 3) & 1)


@njit(cache=True)
def _select(indptr, indices, cand, colored, key):
    """
    Minimum remaining values, ties broken by the number of uncolored neighbors and then
    by the lowest key. Returns -1 once every vertex is colored.
    """
    N = indptr.size - 1
    selected = -1
    min_choices = 5
    max_degree = -1
    for u in range(N):
        if colored[u]:
            continue
        c = _popcount4(cand[u])
        if c > min_choices:
            continue
        d = 0
        for k in range(indptr[u], indptr[u + 1]):
            if not colored[indices[k]]:
                d += 1
        if c < min_choices or d > max_degree or (d == max_degree and key[u] < key[selected]):
            min_choices = c
            max_degree = d
            selected = u
    return selected


@njit(cache=True)
def _backtrack_csr(indptr, indices, n, key, limit):
    """
    Backtracking with forward checking over a CSR graph, using an explicit stack of
    decision frames. Each frame holds its vertex, the next color to try and where its
    entries start in the undo log of (neighbor, removed color) pairs.

    Returns (colors, status): status 1 when colored, 0 when the search space is
    exhausted, -1 when more than `limit` failures occurred (limit < 0 means no limit).
    """
    N = indptr.size - 1
    full = (1 << n) - 1
    cand = np.full(N, full, np.int64)
    colors = np.full(N, -1, np.int64)
    colored = np.zeros(N, np.bool_)

    frame_vertex = np.empty(N, np.int64)
    frame_next = np.empty(N, np.int64)
    frame_undo = np.empty(N, np.int64)

    # a neighbor loses at most one color per colored vertex next to it
    ucap = max(indptr[N], 1)
    undo_v = np.empty(ucap, np.int64)
    undo_c = np.empty(ucap, np.int64)
    top = 0
    fails = 0

    u = _select(indptr, indices, cand, colored, key)
    if u == -1:
        return colors, 1
    depth = 0
    frame_vertex[depth] = u
    frame_next[depth] = 0
    frame_undo[depth] = top
    depth += 1

    while depth > 0:
        f = depth - 1
        u = frame_vertex[f]

        # roll back the previous color tried at this frame
        if colored[u]:
            while top > frame_undo[f]:
                top -= 1
                cand[undo_v[top]] |= (1 << undo_c[top])
            colored[u] = False
            colors[u] = -1

        if limit >= 0 and fails > limit:
            return colors, -1

        c = frame_next[f]
        while c < n and ((cand[u] >> c) & 1) == 0:
            c += 1
        if c == n:
            # no valid color left for u, fail back to the parent frame
            fails += 1
            depth -= 1
            continue
        frame_next[f] = c + 1

        colors[u] = c
        colored[u] = True
        bit = 1 << c
        dead_end = False
        for k in range(indptr[u], indptr[u + 1]):
            v = indices[k]
            if colored[v] or (cand[v] & bit) == 0:
                continue
            cand[v] &= ~bit
            undo_v[top] = v
            undo_c[top] = c
            top += 1
            if cand[v] == 0:
                dead_end = True
        if dead_end:
            fails += 1
            continue

        w = _select(indptr, indices, cand, colored, key)
        if w == -1:
            return colors, 1
        frame_vertex[depth] = w
        frame_next[depth] = 0
        frame_undo[depth] = top
        depth += 1

    return colors, 0


@njit(cache=True)
def _peel_csr(indptr, indices, n):
    """
    Repeatedly strip vertices with fewer than n remaining neighbors. Returns the strip
    order and its length; vertices not in it form the core that needs a search.
    """
    N = indptr.size - 1
    deg = np.empty(N, np.int64)
    for u in range(N):
        deg[u] = indptr[u + 1] - indptr[u]
    removed = np.zeros(N, np.bool_)
    order = np.empty(N, np.int64)
    stack = np.empty(N, np.int64)
    top = 0
    for u in range(N):
        if deg[u] < n:
            stack[top] = u
            top += 1
    cnt = 0
    while top > 0:
        top -= 1
        u = stack[top]
        removed[u] = True
        order[cnt] = u
        cnt += 1
        for k in range(indptr[u], indptr[u + 1]):
            v = indices[k]
            if removed[v]:
                continue
            deg[v] -= 1
            # each vertex crosses below n once, so it is stacked once
            if deg[v] == n - 1:
                stack[top] = v
                top += 1
    return order, cnt


@njit(cache=True)
def _color_peeled(indptr, indices, colors, order, cnt, n):
    """
    Color stripped vertices in reverse strip order with the smallest free color. Each had
    fewer than n neighbors left when stripped, and those are exactly the ones already
    colored here, so a free color always exists.
    """
    for t in range(cnt - 1, -1, -1):
        u = order[t]
        mask = 0
        for k in range(indptr[u], indptr[u + 1]):
            cv = colors[indices[k]]
            if cv >= 0:
                mask |= (1 << cv)
        for c in range(n):
            if (mask & (1 << c)) == 0:
                colors[u] = c
                break
    return colors


def _search_component(indptr, indices, n, verbose=False):
    m = indptr.size - 1
    key = np.arange(m, dtype=np.int64)
    limit = max(RESTART_BASE, 8 * m)
    rng = np.random.default_rng(0)
    restarts = 0
    while True:
        colors, status = _backtrack_csr(indptr, indices, n, key, limit)
        if status >= 0:
            break
        # heavy-tailed search: retry with reshuffled tie-breaks and twice the budget
        restarts += 1
        limit *= 2
        key = rng.permutation(m).astype(np.int64)
    if verbose and restarts:
        print('exact search on', m, 'core regions restarted', restarts, 'times')
    return colors, status == 1


def exact_color(graph, verbose=False):
    """
    Exact 4-coloring by backtracking search with forward checking.

    The graph is only read. Vertices with fewer than 4 neighbors are stripped first
    (repeatedly) and colored last, since they always have a free color. The remaining
    core is searched one connected component at a time: vertices are chosen by minimum
    remaining values, ties going to the vertex with the most uncolored neighbors, and
    colors are tried in ascending order. A run that fails too often is restarted with
    shuffled tie-breaks and a doubled failure budget, so the search stays complete and
    the result is deterministic.

    Returns
    -------
    colors : dict
        label -> color in 0..3 for every vertex.

    Raises
    ------
    ColoringInfeasible
        If no valid 4-coloring exists.
    """
    graph = as_graph(graph)
    if len(graph) == 0:
        return {}
    nodes, indptr, indices = graph.to_csr()
    N = nodes.size
    colors = np.full(N, -1, dtype=np.int64)

    order, cnt = _peel_csr(indptr, indices, N_COLORS)
    core = np.ones(N, dtype=bool)
    core[order[:cnt]] = False
    core_idx = np.flatnonzero(core)
    if verbose:
        print('exact search:', N, 'regions,', core_idx.size, 'in the core')

    if core_idx.size:
        adj = scipy.sparse.csr_matrix((np.ones(indices.size, dtype=np.int8), indices, indptr), shape=(N, N))
        sub = adj[core_idx][:, core_idx].tocsr()
        sub.sort_indices()
        n_comp, comp = connected_components(sub, directed=False)
        for j in range(n_comp):
            members = np.flatnonzero(comp == j)
            part = sub[members][:, members].tocsr()
            part.sort_indices()
            part_colors, ok = _search_component(part.indptr.astype(np.int64), part.indices.astype(np.int64),
                                                N_COLORS, verbose=verbose)
            if not ok:
                raise ColoringInfeasible(
                    f"No valid {N_COLORS}-coloring exists for {len(graph)} regions with "
                    f"{graph.n_edges} adjacencies ({members.size} regions form an uncolorable core).")
            colors[core_idx[members]] = part_colors

    colors = _color_peeled(indptr, indices, colors, order, cnt, N_COLORS)
    return {int(nodes[i]): int(colors[i]) for i in range(N)}
