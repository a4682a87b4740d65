"""
Road graph package.

The graph engine and its structural transforms. Transforms are also reachable
as methods of RoadNetworkGraph.
"""

from .network import RoadNetworkGraph
from .conversion import to_compact_map, to_loose_map, to_undirected_map
from .planarity import non_planar_node_count, is_planar_map

__all__ = [
    'RoadNetworkGraph',

    # Structural transforms
    'to_compact_map',
    'to_loose_map',
    'to_undirected_map',

    # Validation
    'non_planar_node_count',
    'is_planar_map',
]
