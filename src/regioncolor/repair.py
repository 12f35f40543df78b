import numpy as np
from numba import njit

from .graph import N_COLORS


@njit(cache=True)
def _has_conflict(indptr, indices, colors):
    N = indptr.size - 1
    for u in range(N):
        cu = colors[u]
        if cu < 0:
            return True
        for k in range(indptr[u], indptr[u + 1]):
            if colors[indices[k]] == cu:
                return True
    return False


@njit(cache=True)
def _neighbor_mask(indptr, indices, colors, u):
    """Bitmask of neighbor colors, and whether a neighbor shares u's color."""
    cu = colors[u]
    mask = 0
    clash = False
    for k in range(indptr[u], indptr[u + 1]):
        cv = colors[indices[k]]
        if cv >= 0:
            mask |= (1 << cv)
            if cv == cu:
                clash = True
    return mask, clash


@njit(cache=True)
def _repair_coloring(indptr, indices, colors, n, max_passes=4):
    """
    Recolor uncolored or clashing vertices to the smallest color none of their
    neighbors use. A few passes over all vertices; returns (colors, conflict_exists).
    """
    N = indptr.size - 1
    passes = 0
    changed = True
    while changed and passes < max_passes:
        changed = False
        passes += 1
        for u in range(N):
            mask, clash = _neighbor_mask(indptr, indices, colors, u)
            if colors[u] >= 0 and not clash:
                continue
            for c in range(n):
                if (mask & (1 << c)) == 0:
                    colors[u] = c
                    changed = True
                    break
    return colors, _has_conflict(indptr, indices, colors)


@njit(cache=True)
def _kempe_repair_csr(indptr, indices, colors, n, max_passes=4):
    """
    Resolve clashes at vertices whose neighbors already use all n colors.

    For a clashing vertex u and a color pair (a, b), collect the {a, b} component
    reachable from u's a-colored neighbors without passing through u. If it holds none
    of u's b-colored neighbors, swapping a <-> b inside it clears a from u's
    neighborhood and u takes color a. Vertices outside the component keep their
    colors, so a swap never adds a clash. Returns (colors, conflict_exists).
    """
    N = indptr.size - 1
    stamp = np.zeros(N, np.int64)
    q = np.empty(max(N, 1), np.int64)
    token = 0

    passes = 0
    while passes < max_passes:
        passes += 1
        fixed_any = False
        for u in range(N):
            mask, clash = _neighbor_mask(indptr, indices, colors, u)
            if colors[u] >= 0 and not clash:
                continue

            free = -1
            for c in range(n):
                if (mask & (1 << c)) == 0:
                    free = c
                    break
            if free >= 0:
                colors[u] = free
                fixed_any = True
                continue

            done = False
            for a in range(n):
                for b in range(n):
                    if a == b:
                        continue
                    token += 1
                    stamp[u] = token
                    tail = 0
                    for k in range(indptr[u], indptr[u + 1]):
                        v = indices[k]
                        if colors[v] == a and stamp[v] != token:
                            stamp[v] = token
                            q[tail] = v
                            tail += 1
                    head = 0
                    while head < tail:
                        x = q[head]
                        head += 1
                        for kk in range(indptr[x], indptr[x + 1]):
                            y = indices[kk]
                            if stamp[y] == token:
                                continue
                            cy = colors[y]
                            if cy == a or cy == b:
                                stamp[y] = token
                                q[tail] = y
                                tail += 1

                    blocked = False
                    for k in range(indptr[u], indptr[u + 1]):
                        v = indices[k]
                        if colors[v] == b and stamp[v] == token:
                            blocked = True
                            break
                    if blocked:
                        continue

                    for i in range(tail):
                        x = q[i]
                        if colors[x] == a:
                            colors[x] = b
                        else:
                            colors[x] = a
                    colors[u] = a
                    done = True
                    break
                if done:
                    break
            if done:
                fixed_any = True

        if not fixed_any:
            break

    return colors, _has_conflict(indptr, indices, colors)


def repair_colors(indptr, indices, colors, n=N_COLORS, max_passes=4):
    """
    Try to turn a dense color array (-1 = uncolored) into a valid coloring of the CSR
    graph, first by plain recoloring and then by Kempe-chain swaps. Modifies colors in
    place; returns (colors, conflict_exists).
    """
    colors, conflict = _repair_coloring(indptr, indices, colors, n, max_passes)
    if conflict:
        colors, conflict = _kempe_repair_csr(indptr, indices, colors, n, max_passes)
    return colors, conflict
