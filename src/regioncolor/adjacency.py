import numpy as np
import scipy.ndimage
from numba import njit

from .format_labels import format_markers, unique_labels
from .graph import RegionGraph


def neighbors(shape, conn=2, unique=True):
    """
    Flat offsets to the neighbors of a pixel in a row-major array of the given shape.
    conn follows scipy.ndimage.generate_binary_structure: in 2D, conn=1 is the
    4-neighborhood and conn=2 the 8-neighborhood. With unique=True an offset and its
    negation are only kept once, so each pair of pixels is visited a single time.
    """
    dim = len(shape)
    block = scipy.ndimage.generate_binary_structure(dim, conn)
    block[(1,) * dim] = False
    steps = np.argwhere(block) - 1

    if unique:
        # lexicographically positive steps: first nonzero coordinate is +1
        lead = steps[np.arange(len(steps)), np.argmax(steps != 0, axis=1)]
        steps = steps[lead > 0]

    strides = np.cumprod((1,) + tuple(shape[:0:-1]))[::-1]
    return (steps @ strides).astype(np.int64)


@njit(cache=True)
def search(img, nbs, boundary):
    """
    Label pairs (lo, hi) of every two pixels nbs apart that hold different regions.
    Pairs repeat once per touching pixel pair. img must be padded so no offset leaves it.
    """
    flat = img.ravel()
    valid = (flat > 0) & (flat != boundary)
    # first pass sizes the output exactly
    count = 0
    for d in nbs:
        for i in range(flat.size - d):
            if valid[i] and valid[i + d] and flat[i] != flat[i + d]:
                count += 1

    pairs = np.empty((count, 2), np.int64)
    s = 0
    for d in nbs:
        for i in range(flat.size - d):
            if valid[i] and valid[i + d] and flat[i] != flat[i + d]:
                pairs[s, 0] = min(flat[i], flat[i + d])
                pairs[s, 1] = max(flat[i], flat[i + d])
                s += 1
    return pairs


def connect(img, boundary, conn=2):
    """
    Sorted, deduplicated (lo, hi) label pairs of touching regions.
    """
    # a zero frame keeps every forward step inside the array and is never a region
    padded = np.pad(img, 1, 'constant')
    pairs = search(padded, neighbors(padded.shape, conn, unique=True), boundary)
    if len(pairs) == 0:
        return pairs
    return np.unique(pairs, axis=0)


def mapidx(pairs, nodes):
    """
    Symmetric adjacency dict from an edge list. Every label in nodes gets an entry, and
    edges touching a label outside nodes are dropped.
    """
    conmap = {int(n): set() for n in nodes}
    for a, b in pairs.tolist():
        if a in conmap and b in conmap:
            conmap[a].add(b)
            conmap[b].add(a)
    return conmap


def labels_to_graph(labels, boundary, conn=2, verbose=False):
    """
    RegionGraph of a label image that is already formatted (see format_markers).
    """
    nodes = unique_labels(labels, boundary)
    pairs = connect(labels, boundary, conn)
    if verbose:
        print('number of regions', nodes.size, 'touching pairs', len(pairs))
    return RegionGraph(mapidx(pairs, nodes))


def region_graph(markers, boundary=None, conn=2, clean=False, verbose=False):
    """
    Build the region adjacency graph of a labeled raster.

    Parameters
    ----------
    markers : ndarray
        Integer label image. Labels <= 0 and the boundary value are not regions.
    boundary : int, optional
        Sentinel marking boundary/unassigned pixels. Defaults to max(markers)+1.
    conn : int
        Neighborhood connectivity, 2 = 8-connected in 2D.
    clean : bool
        Split labels with several disjoint components into separate regions first.

    Returns
    -------
    graph : RegionGraph
        Every valid label in the raster is a vertex, isolated regions included.
    """
    labels, boundary = format_markers(markers, boundary=boundary, clean=clean, verbose=verbose)
    return labels_to_graph(labels, boundary, conn=conn, verbose=verbose)
