"""
OSM extract reading with osmium.

The handler keeps every node of the extract (optionally clipped to a bounding
box) and every way tagged as a drivable road.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import osmium

from core.geometry import DEFAULT_DISTANCE_FUNCTION, DistanceFunction, Rectangle
from core.graph.network import RoadNetworkGraph
from core.osm.builder import OsmNode, OsmWay, build_road_graph, is_road_way

logger = logging.getLogger(__name__)


class RoadExtractHandler(osmium.SimpleHandler):
    """Osmium handler collecting nodes and road ways."""

    def __init__(self, bounds: Optional[Rectangle] = None):
        """
        Initialize handler.

        Args:
            bounds: Only nodes inside this box are kept, all nodes by default
        """
        super().__init__()
        self.bounds = bounds
        self.nodes: Dict[int, OsmNode] = {}
        self.ways: List[OsmWay] = []

    def node(self, n):
        if not n.location.valid():
            return
        lon, lat = n.location.lon, n.location.lat
        if self.bounds is not None and not self.bounds.contains(lon, lat):
            return
        self.nodes[n.id] = OsmNode(n.id, lon, lat)

    def way(self, w):
        tags = {tag.k: tag.v for tag in w.tags}
        if not is_road_way(tags):
            return
        self.ways.append(OsmWay(w.id, [n.ref for n in w.nodes], tags))


def read_osm_file(path: Union[str, Path],
                  bounds: Optional[Rectangle] = None) -> Tuple[Dict[int, OsmNode], List[OsmWay]]:
    """
    Read nodes and road ways from an OSM file (.osm, .osm.pbf, ...).

    Raises:
        FileNotFoundError: If the file does not exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"OSM file not found: {path}")

    handler = RoadExtractHandler(bounds)
    handler.apply_file(str(path))
    logger.info(f"Initial map read finish, {len(handler.nodes)} nodes and {len(handler.ways)} "
                f"road ways found in {path.name}")
    return handler.nodes, handler.ways


def load_osm_map(path: Union[str, Path], dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION,
                 bounds: Optional[Rectangle] = None) -> RoadNetworkGraph:
    """Read an OSM file and build its directed road graph."""
    nodes, ways = read_osm_file(path, bounds)
    return build_road_graph(nodes, ways, dist_func)
