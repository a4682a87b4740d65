"""
Planarity check for road maps.

Two roads that do not share an endpoint must not cross anywhere, a crossing
without an intersection means a missing node or a bridge drawn in the plane.
The check compares every pair of ways segment by segment, so it is meant as an
offline validation pass.
"""

import logging
from typing import List

from core.graph.network import RoadNetworkGraph
from core.geometry import Segment
from core.models.road import RoadWay

logger = logging.getLogger(__name__)


def _share_endpoint(first: RoadWay, second: RoadWay) -> bool:
    first_ends = (first.from_node.to_point(), first.to_node.to_point())
    second_ends = (second.from_node.to_point(), second.to_node.to_point())
    return any(a.equals_2d(b) for a in first_ends for b in second_ends)


def non_planar_node_count(graph: RoadNetworkGraph) -> int:
    """
    Count the crossings between ways that do not share an endpoint.

    Only strict crossings count, segments that merely touch do not.

    Returns:
        Total number of crossing segment pairs
    """
    ways = graph.ways
    edges: List[List[Segment]] = [way.edges for way in ways]
    count = 0
    for i in range(len(ways)):
        for j in range(i + 1, len(ways)):
            if _share_endpoint(ways[i], ways[j]):
                continue
            for first_edge in edges[i]:
                for second_edge in edges[j]:
                    if first_edge.crosses(second_edge):
                        count += 1
    if count > 0:
        logger.info(f"Found {count} non-planar crossings in {graph}.")
    return count


def is_planar_map(graph: RoadNetworkGraph) -> bool:
    return non_planar_node_count(graph) == 0
