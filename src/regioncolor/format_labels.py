import numpy as np
import fastremap

# Lazy imports for heavy dependencies - only import when functions are called
def _lazy_import_skimage_measure():
    from skimage import measure
    return measure


def format_markers(markers, boundary=None, clean=False, min_area=0, verbose=False):
    """
    Puts a marker image into the form the graph builder expects, without renumbering.
    Labels <= 0 and the boundary sentinel are never regions. If boundary is None it is
    derived as max+1, which never occurs, so only labels <= 0 are excluded.
    Optional clean flag: disjoint components of the same label become separate regions
    and components with area <= min_area are cleared to 0.

    Returns (labels, boundary).
    """
    markers = np.asarray(markers)
    if markers.ndim == 0:
        raise ValueError("markers must be at least 1-dimensional")
    if markers.dtype.kind not in "iub":
        raise ValueError(f"markers must hold integer labels, got dtype {markers.dtype}")

    # Watershed output uses -1 for boundaries, so we must cast to a signed type. The copy
    # also makes read-only (memmap) inputs safe to modify.
    labels = markers.astype(np.int64, copy=True)
    if boundary is None:
        boundary = int(labels.max()) + 1 if labels.size else 1
    boundary = int(boundary)

    if clean:
        labels = split_disjoint(labels, boundary, min_area=min_area, verbose=verbose)
    return labels, boundary


def unique_labels(labels, boundary):
    """
    Get sorted unique valid labels.
    """
    sub = labels[(labels > 0) & (labels != boundary)]
    if sub.size:
        return fastremap.unique(sub)
    else:
        return np.array([], dtype=labels.dtype)


def split_disjoint(labels, boundary, min_area=0, verbose=False):
    measure = _lazy_import_skimage_measure()
    next_label = max(int(labels.max()) + 1, 1) if labels.size else 1
    if next_label == boundary:
        next_label += 1
    for j in unique_labels(labels, boundary):
        mask = labels == j
        lbl = measure.label(mask, connectivity=labels.ndim)
        regions = measure.regionprops(lbl)
        regions.sort(key=lambda x: x.area, reverse=True)
        if len(regions) == 0:
            continue

        if len(regions) > 1 and verbose:
            print('Warning - found label {} with {} disjoint parts.'.format(j, len(regions)))
        for rg in regions[1:]:
            coords = tuple(rg.coords.T)
            if rg.area <= min_area:
                labels[coords] = 0
            else:
                labels[coords] = next_label
                if verbose:
                    print('relabeling disjoint part of', j, 'as', next_label, 'Area:', rg.area)
                next_label += 1
                if next_label == boundary:
                    next_label += 1

        rg0 = regions[0]
        if rg0.area <= min_area:
            labels[tuple(rg0.coords.T)] = 0
            if verbose:
                print('Warning - label', j, 'has area less than', min_area, '- removing it.')
    return labels
