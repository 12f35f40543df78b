#4-color region map: adjacency graph from a label image, then exact or randomized heuristic coloring

import numpy as np

from .adjacency import labels_to_graph
from .exact import exact_color
from .format_labels import format_markers
from .graph import ColoringAttemptsExhausted, N_COLORS
from .heuristic import repeat_until_success

# red, green, blue, yellow
PALETTE = np.array([[255, 0, 0],
                    [0, 255, 0],
                    [0, 0, 255],
                    [255, 255, 0]], dtype=np.uint8)


def label(markers, boundary=None, exact=False, max_attempts=100, rng=None, clean=False,
          return_graph=False, verbose=False):
    """
    Color every region of a label image with one of 4 colors so that touching regions differ.

    Returns an integer image holding color+1 for each region pixel and 0 for background,
    boundary and unassigned pixels. By default the randomized heuristic is tried first and
    the exact search is used if it runs out of attempts; exact=True goes straight to the
    exact search. With return_graph the RegionGraph is returned too, its `colors` holding
    the assignment.
    """
    labels, boundary = format_markers(markers, boundary=boundary, clean=clean, verbose=verbose)
    graph = labels_to_graph(labels, boundary, verbose=verbose)
    if exact:
        graph.colors = exact_color(graph, verbose=verbose)
    else:
        try:
            repeat_until_success(graph, max_attempts=max_attempts, rng=rng, verbose=verbose)
        except ColoringAttemptsExhausted as e:
            if verbose: print(e, 'Falling back to exact search.')
            graph.colors = exact_color(graph, verbose=verbose)

    max_label = int(labels.max()) if labels.size else 0
    lut = get_lut(graph.colors, max_label)
    # labels <= 0 and the boundary are not vertices, so their lut entry is 0
    ncl = lut[np.clip(labels, 0, None)]

    if return_graph:
        return ncl, graph
    else:
        return ncl


def get_lut(colors, max_label):
    """
    Lookup table label -> color+1 with 0 for labels without a color.
    """
    lut = np.zeros(max(int(max_label), 0) + 1, dtype=np.uint8)
    for i in colors:
        if i <= max_label:
            lut[i] = colors[i] + 1
    return lut


def colorize(markers, colors, palette=PALETTE):
    """
    RGB rendering of a coloring: each region is painted with palette[color]; pixels whose
    label has no color (background, boundary, unassigned) stay black.
    """
    palette = np.asarray(palette, dtype=np.uint8)
    if palette.shape != (N_COLORS, 3):
        raise ValueError(f"palette must have shape ({N_COLORS}, 3), got {palette.shape}")
    labels = np.asarray(markers)
    max_label = int(labels.max()) if labels.size else 0
    lut = get_lut(colors, max_label)
    idx = lut[np.clip(labels, 0, None)]
    table = np.vstack((np.zeros((1, 3), dtype=np.uint8), palette))
    return table[idx]
