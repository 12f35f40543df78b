from .label import label, get_lut, colorize, PALETTE
from .adjacency import region_graph, labels_to_graph, connect, neighbors
from .format_labels import format_markers, unique_labels
from .graph import (RegionGraph, WorkingGraph, is_planar, count_conflicts,
                    ColoringError, ColoringInfeasible, ColoringAttemptsExhausted)
from .exact import exact_color
from .heuristic import heuristic_color, repeat_until_success
from .repair import repair_colors
