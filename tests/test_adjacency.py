import numpy as np
import pytest
from skimage.segmentation import watershed

import regioncolor
from regioncolor import RegionGraph, region_graph, is_planar
from regioncolor.adjacency import connect, neighbors
from regioncolor.format_labels import format_markers, unique_labels


# -------- synthetic mask generators --------------------------------------

def generate_mask(kind):
    """
    Return a label image according to the requested kind.
    Shapes are small so tests stay fast.
    """
    if kind == "halves":
        m = np.ones((4, 4), dtype=np.int32)
        m[:, 2:] = 2
        return m

    if kind == "empty":
        return np.zeros((5, 5), dtype=np.int32)

    if kind == "single":
        m = np.zeros((5, 5), dtype=np.int32)
        m[2:4, 2:4] = 1
        return m

    if kind == "diagonal":
        return np.array([[1, 0],
                         [0, 2]], dtype=np.int32)

    if kind == "quad":
        return np.array([[1, 2],
                         [3, 4]], dtype=np.int32)

    if kind == "blocks":
        # 5x5 grid of 3x3 blocks; 8-connectivity makes this a king's graph
        return np.kron(np.arange(1, 26).reshape(5, 5), np.ones((3, 3), dtype=np.int64))

    if kind == "separated":
        # sparse labels kept apart by background, -1 lines and the 255 sentinel
        return np.array([[5, 5, 255, 9, 9],
                         [5, 5, 255, 9, 9],
                         [0, 0, 0, 0, 0],
                         [12, 12, -1, 20, 20]], dtype=np.int32)

    if kind == "watershed":
        rng = np.random.default_rng(0)
        shape = (40, 40)
        seeds = np.zeros(shape, dtype=np.int32)
        pts = rng.choice(seeds.size, 8, replace=False)
        seeds.flat[pts] = np.arange(1, 9) * 3
        return watershed(np.zeros(shape), seeds)

    raise ValueError(f"Unknown mask kind: {kind}")


ALL_KINDS = ["halves", "empty", "single", "diagonal", "quad", "blocks", "separated", "watershed"]


def valid_labels(m, boundary=None):
    m = np.asarray(m)
    if boundary is None:
        boundary = m.max() + 1
    return {int(v) for v in np.unique(m) if v > 0 and v != boundary}


# -------- graph construction ---------------------------------------------

def test_two_halves():
    graph = region_graph(generate_mask("halves"))
    assert graph.adjacency == {1: {2}, 2: {1}}


def test_connectivity():
    m = generate_mask("diagonal")
    assert region_graph(m).adjacency == {1: {2}, 2: {1}}
    assert region_graph(m, conn=1).adjacency == {1: set(), 2: set()}


def test_quad_is_complete():
    graph = region_graph(generate_mask("quad"))
    assert graph.n_edges == 6
    for u in graph:
        assert graph[u] == {1, 2, 3, 4} - {u}


def test_sentinel_and_sparse_labels():
    m = generate_mask("separated")
    graph = region_graph(m, boundary=255)
    assert graph.adjacency == {5: set(), 9: set(), 12: set(), 20: set()}
    assert 255 not in graph and -1 not in graph and 0 not in graph


def test_sentinel_region_is_not_a_vertex():
    # without the sentinel, 255 is an ordinary region touching both sides
    m = generate_mask("separated")
    graph = region_graph(m)
    assert graph[255] == {5, 9}
    assert region_graph(m, boundary=255).adjacency[5] == set()


@pytest.mark.parametrize("mask_kind", ALL_KINDS)
def test_vertex_completeness(mask_kind):
    m = generate_mask(mask_kind)
    graph = region_graph(m)
    assert set(graph.nodes) == valid_labels(m)


@pytest.mark.parametrize("mask_kind", ALL_KINDS)
def test_symmetric_and_irreflexive(mask_kind):
    graph = region_graph(generate_mask(mask_kind))
    for a in graph:
        assert a not in graph[a]
        for b in graph[a]:
            assert a in graph[b]


@pytest.mark.parametrize("mask_kind", ALL_KINDS)
def test_deterministic(mask_kind):
    m = generate_mask(mask_kind)
    assert region_graph(m) == region_graph(m)
    assert region_graph(m).adjacency == region_graph(m.copy()).adjacency


def test_read_only_input():
    m = generate_mask("halves")
    m.setflags(write=False)
    assert region_graph(m).adjacency == {1: {2}, 2: {1}}


def test_clean_splits_disjoint_label():
    m = np.zeros((6, 6), dtype=np.int32)
    m[0:2, 0:2] = 1
    m[4:6, 4:6] = 1
    m[0:2, 2:4] = 2
    assert set(region_graph(m).nodes) == {1, 2}

    graph = region_graph(m, clean=True)
    assert len(graph) == 3
    assert graph[1] == {2}
    new = (set(graph.nodes) - {1, 2}).pop()
    assert graph[new] == set()


def test_clean_min_area():
    m = np.zeros((6, 6), dtype=np.int32)
    m[0:3, 0:3] = 1
    m[5, 5] = 1
    labels, boundary = format_markers(m, clean=True, min_area=1)
    assert labels[5, 5] == 0
    assert unique_labels(labels, boundary).tolist() == [1]


def test_format_markers_rejects_floats():
    with pytest.raises(ValueError):
        format_markers(np.zeros((3, 3), dtype=float))


def test_connect_pairs_sorted_unique():
    labels, boundary = format_markers(generate_mask("blocks"))
    pairs = connect(labels, boundary)
    assert np.all(pairs[:, 0] < pairs[:, 1])
    assert len({tuple(p) for p in pairs.tolist()}) == len(pairs)
    # king's graph on a 5x5 grid: 2*5*4 orthogonal + 2*4*4 diagonal
    assert len(pairs) == 72


def test_neighbors_2d():
    nbs = neighbors((4, 6), conn=2, unique=False)
    assert sorted(nbs.tolist()) == [-7, -6, -5, -1, 1, 5, 6, 7]
    assert sorted(neighbors((4, 6), conn=2).tolist()) == [1, 5, 6, 7]


# -------- RegionGraph -----------------------------------------------------

def test_region_graph_normalizes():
    graph = RegionGraph({1: {2}, 3: {1}, 0: {1}, 4: {4, -2}})
    assert graph.adjacency == {1: {2, 3}, 2: {1}, 3: {1}, 4: set()}
    assert graph.edges() == [(1, 2), (1, 3)]
    assert graph.degree(1) == 2
    assert graph.colors == {}


def test_from_edges_keeps_isolated():
    graph = RegionGraph.from_edges([(1, 2)], nodes=[7])
    assert graph.adjacency == {1: {2}, 2: {1}, 7: set()}


def test_to_csr_sparse_labels():
    graph = RegionGraph({10: {30}, 30: {10, 50}, 50: {30}})
    nodes, indptr, indices = graph.to_csr()
    assert nodes.tolist() == [10, 30, 50]
    assert indptr.tolist() == [0, 1, 3, 4]
    assert indices.tolist() == [1, 0, 2, 1]


def test_working_copy_isolated_from_graph():
    graph = RegionGraph({1: {2, 3}, 2: {3}})
    work = graph.working_copy()
    work.remove_edge(0, 1)
    assert work.removed == [(1, 2)]
    assert work.relaxed
    assert 1 not in work.adj[0]
    assert graph[1] == {2, 3}


# -------- planarity check -------------------------------------------------

def complete(n):
    return RegionGraph({i: set(range(1, n + 1)) - {i} for i in range(1, n + 1)})


@pytest.mark.parametrize("graph", [
    RegionGraph(),
    RegionGraph({1: set()}),
    complete(3),
    complete(4),
    complete(5),
    complete(7),
    RegionGraph.from_edges([(a, b) for a in (1, 2, 3) for b in (4, 5, 6)]),  # K3,3
])
def test_is_planar_accepts_everything(graph):
    assert is_planar(graph)


def test_is_planar_strict():
    assert is_planar(complete(4), strict=True)
    assert is_planar(region_graph(generate_mask("watershed")), strict=True)
    assert not is_planar(complete(5), strict=True)
    assert not is_planar(complete(6), strict=True)


def test_is_planar_plain_mapping():
    assert regioncolor.is_planar({1: {2}, 2: {1}})
