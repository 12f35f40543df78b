from collections import deque

import numpy as np

from .graph import as_graph, ColoringAttemptsExhausted, N_COLORS
from .repair import repair_colors

MAX_RETRIES = 3


def _excluded(work, colors, u):
    return {colors[v] for v in work.adj[u] if colors[v] >= 0}


def _relax(work, colors, u):
    """
    Remove the edge from u to the colored neighbor whose color is rarest around u.
    Returns False if u has no colored neighbor left.
    """
    colored = [v for v in sorted(work.adj[u]) if colors[v] >= 0]
    if not colored:
        return False
    hist = np.bincount([colors[v] for v in colored], minlength=N_COLORS)
    v = min(colored, key=lambda v: hist[colors[v]])
    work.remove_edge(u, v)
    return True


def heuristic_color(work, rng=None, verbose=False):
    """
    Fast randomized 4-coloring that relaxes the graph instead of backtracking.

    BFS from the highest-degree vertex, giving every vertex the first free color of a
    freshly shuffled palette. When all four colors are taken around a vertex, one edge
    to a colored neighbor is removed from `work` and the vertex is retried. Vertices the
    BFS never reached go through a repair worklist with a color cursor and a per-vertex
    retry counter; a vertex that keeps running out of colors loses another edge and
    takes the least used color that frees up.

    `work` is a WorkingGraph and is modified in place; the coloring is valid for the
    relaxed graph, which is a subgraph of the original whenever `work.relaxed`.

    Returns
    -------
    colors : dict or None
        label -> color in 0..3, or None if some vertex stayed uncolored.
    """
    rng = np.random.default_rng(rng)
    N = len(work)
    if N == 0:
        return {}

    colors = np.full(N, -1, dtype=np.int64)
    freq = np.zeros(N_COLORS, dtype=np.int64)
    palette = list(range(N_COLORS))

    # first vertex of maximum degree
    degrees = np.fromiter((work.degree(u) for u in range(N)), dtype=np.int64, count=N)
    start = int(np.argmax(degrees))
    colors[start] = 0
    freq[0] += 1

    visited = np.zeros(N, dtype=bool)
    visited[start] = True
    queue = deque([start])
    while queue:
        u = queue.popleft()
        if colors[u] < 0:
            used = _excluded(work, colors, u)
            if len(used) == N_COLORS:
                _relax(work, colors, u)
                queue.append(u)
                continue
            rng.shuffle(palette)
            c = next(c for c in palette if c not in used)
            colors[u] = c
            freq[c] += 1
        for v in sorted(work.adj[u]):
            if not visited[v]:
                visited[v] = True
                queue.append(v)

    # repair pass for anything the BFS did not color
    stack = [(u, 0) for u in range(N) if colors[u] < 0]
    retries = np.zeros(N, dtype=np.int64)
    while stack:
        u, c = stack.pop()
        if colors[u] >= 0:
            continue
        used = _excluded(work, colors, u)
        if c not in used:
            colors[u] = c
            freq[c] += 1
            for v in sorted(work.adj[u]):
                if colors[v] < 0:
                    stack.append((v, 0))
        elif c + 1 < N_COLORS:
            stack.append((u, c + 1))
        else:
            # the cursor only runs out once all four colors are excluded around u, and
            # coloring more vertices never frees one, so retries only re-walk the palette
            retries[u] += 1
            if retries[u] <= MAX_RETRIES:
                stack.append((u, 0))
            elif _relax(work, colors, u):
                free = [k for k in range(N_COLORS) if k not in _excluded(work, colors, u)]
                if free:
                    # balance the palette with the least used color the relaxation freed
                    best = min(free, key=lambda k: freq[k])
                    colors[u] = best
                    freq[best] += 1
                    for v in sorted(work.adj[u]):
                        if colors[v] < 0:
                            stack.append((v, 0))
                else:
                    stack.append((u, 0))

    if verbose and work.relaxed:
        print('relaxed', len(work.removed), 'edges:', work.removed)
    if np.any(colors < 0):
        if verbose:
            print('uncolored regions:', work.labels[colors < 0].tolist())
        return None
    return work.to_labels(colors)


def repeat_until_success(graph, max_attempts=100, rng=None, strict=True, verbose=False):
    """
    Run heuristic_color on fresh working copies of `graph` until one attempt succeeds.

    The graph itself is never modified by the solver. With strict=True an attempt only
    counts if its coloring is valid on the untouched graph: when edges were relaxed, the
    coloring is first repaired against the full adjacency (recoloring, then Kempe-chain
    swaps) and the attempt fails if a conflict remains. strict=False accepts relaxed
    colorings as they are.

    On success the assignment is committed to `graph.colors` when `graph` is a
    RegionGraph. A plain mapping is converted to a temporary RegionGraph, so for those
    inputs only the returned colors carry the result.

    Returns
    -------
    colors : dict
        label -> color in 0..3.
    attempts : int
        Number of attempts used, starting at 1.

    Raises
    ------
    ColoringAttemptsExhausted
        After max_attempts failed attempts.
    """
    graph = as_graph(graph)
    rng = np.random.default_rng(rng)
    csr = None
    for attempt in range(1, max_attempts + 1):
        work = graph.working_copy()
        colors = heuristic_color(work, rng=rng)
        if colors is not None and strict and work.relaxed:
            if csr is None:
                csr = graph.to_csr()
            nodes, indptr, indices = csr
            dense = np.array([colors[int(l)] for l in nodes], dtype=np.int64)
            dense, conflict = repair_colors(indptr, indices, dense)
            if conflict:
                colors = None
            else:
                colors = {int(l): int(c) for l, c in zip(nodes, dense)}
                if verbose:
                    print('repaired', len(work.removed), 'relaxed edges on the full graph')
        if colors is not None:
            graph.colors = dict(colors)
            if verbose:
                print('4-color heuristic succeeded after', attempt, 'attempts')
            return colors, attempt
        if verbose:
            print('attempt', attempt, 'failed, trying again')
    raise ColoringAttemptsExhausted(max_attempts)
