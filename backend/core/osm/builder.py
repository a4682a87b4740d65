"""
Road graph assembly from OpenStreetMap entities.

OSM ways are filtered by their highway tag, trimmed to the part covered by the
extract, split at every node they share with another road and turned into
directed road ways:

- oneway=-1 reverses the digitised direction
- oneway=no adds a reverse way "-<id>" whose interior node IDs end with "-"
- oneway=yes/true/1 keeps the digitised direction only
- without a oneway tag motorways and roundabouts are one-way, other roads two-way
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from core.constants import (
    HIGHWAY_TYPES, IMPLICIT_ONEWAY_HIGHWAYS, MAP_TAG_KEYS, ONEWAY_BOTH_VALUE,
    ONEWAY_FORWARD_VALUES, ONEWAY_REVERSE_VALUE, PIECE_SEPARATOR,
    REVERSE_NODE_SUFFIX, REVERSE_PREFIX,
)
from core.geometry import DEFAULT_DISTANCE_FUNCTION, DistanceFunction
from core.graph.network import RoadNetworkGraph
from core.models.road import RoadNode, RoadWay

logger = logging.getLogger(__name__)

FORWARD = 'forward'
REVERSE = 'reverse'
BOTH = 'both'


@dataclass
class OsmNode:
    """An OSM node of the extract."""
    node_id: int
    lon: float
    lat: float


@dataclass
class OsmWay:
    """An OSM way with its node references and tags."""
    way_id: int
    node_ids: List[int]
    tags: Dict[str, str] = field(default_factory=dict)


def is_road_way(tags: Mapping[str, str]) -> bool:
    """True if the highway tag is one of the drivable road types."""
    return tags.get('highway') in HIGHWAY_TYPES


def way_direction(tags: Mapping[str, str]) -> str:
    """Travel direction of a road relative to its digitised node order."""
    oneway = tags.get('oneway', '').strip().lower()
    if oneway == ONEWAY_REVERSE_VALUE:
        return REVERSE
    if oneway == ONEWAY_BOTH_VALUE:
        return BOTH
    if oneway in ONEWAY_FORWARD_VALUES:
        return FORWARD
    if oneway:
        logger.debug(f"Unknown oneway value {oneway!r}, treated as two-way.")
        return BOTH
    if tags.get('junction') == 'roundabout' or tags.get('highway') in IMPLICIT_ONEWAY_HIGHWAYS:
        return FORWARD
    return BOTH


def trim_way(way: OsmWay, nodes: Mapping[int, OsmNode]) -> Optional[List[int]]:
    """
    Cut a way down to the part whose nodes are in the extract.

    Leading and trailing nodes outside the extract are dropped. A way with a
    missing interior node is dropped entirely.

    Returns:
        The node IDs of the remaining part, or None if the way is dropped
    """
    refs = way.node_ids
    if len(refs) < 2:
        logger.error(f"The current way {way.way_id} only contains {len(refs)} points.")
        return None

    start, end = 0, len(refs) - 1
    while start < end and refs[start] not in nodes:
        start += 1
    while end > start and refs[end] not in nodes:
        end -= 1
    if start == end:
        logger.warning(f"Way {way.way_id} is not found in the map.")
        return None

    for ref in refs[start + 1:end]:
        if ref not in nodes:
            logger.warning(f"Intermediate node {ref} from way {way.way_id} is not found in node list. "
                           f"Ignore the current road.")
            return None
    return refs[start:end + 1]


def find_intersections(trimmed: Iterable[List[int]]) -> set:
    """Node IDs that end a way or are used more than once across all ways."""
    usage: Counter = Counter()
    intersections = set()
    for refs in trimmed:
        usage.update(refs)
        intersections.add(refs[0])
        intersections.add(refs[-1])
    intersections.update(ref for ref, count in usage.items() if count > 1)
    return intersections


def split_way(way_id: int, refs: List[int], intersections: set) -> List[Tuple[str, List[int]]]:
    """
    Split a way at its interior intersections.

    Returns:
        List of (piece ID, node IDs). A way without interior intersection keeps
        its own ID, otherwise the pieces are numbered "<id>_<k>".
    """
    pieces = []
    current = [refs[0]]
    for ref in refs[1:]:
        current.append(ref)
        if ref in intersections:
            pieces.append(current)
            current = [ref]
    if len(current) > 1:
        pieces.append(current)

    if len(pieces) == 1:
        return [(str(way_id), pieces[0])]
    return [(f"{way_id}{PIECE_SEPARATOR}{k}", piece) for k, piece in enumerate(pieces)]


def build_road_graph(nodes: Mapping[int, OsmNode], ways: Iterable[OsmWay],
                     dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION) -> RoadNetworkGraph:
    """
    Assemble a directed road graph from OSM entities.

    Args:
        nodes: Nodes of the extract by ID
        ways: OSM ways, non-road ways are ignored
        dist_func: Distance function attached to the graph

    Returns:
        RoadNetworkGraph without isolated nodes
    """
    trimmed = []
    for way in ways:
        if not is_road_way(way.tags):
            continue
        refs = trim_way(way, nodes)
        if refs is not None:
            trimmed.append((way, refs))
    intersections = find_intersections(refs for _, refs in trimmed)

    registered: Dict[int, RoadNode] = {}

    def intersection_node(ref: int) -> RoadNode:
        if ref not in registered:
            osm_node = nodes[ref]
            registered[ref] = RoadNode(str(ref), osm_node.lon, osm_node.lat, dist_func)
        return registered[ref]

    def mini_node(ref: int, suffix: str = "") -> RoadNode:
        osm_node = nodes[ref]
        return RoadNode(f"{ref}{suffix}", osm_node.lon, osm_node.lat, dist_func)

    road_ways: List[RoadWay] = []
    for way, refs in trimmed:
        tags = {k: v for k, v in way.tags.items() if k in MAP_TAG_KEYS}
        direction = way_direction(way.tags)
        for piece_id, piece in split_way(way.way_id, refs, intersections):
            start, end = nodes[piece[0]], nodes[piece[-1]]
            if (start.lon, start.lat) == (end.lon, end.lat):
                logger.debug(f"Way {piece_id} has the same start and end point, skipped.")
                continue
            if direction == REVERSE:
                piece = piece[::-1]
            vertices = ([intersection_node(piece[0])] + [mini_node(ref) for ref in piece[1:-1]]
                        + [intersection_node(piece[-1])])
            road_ways.append(RoadWay(piece_id, vertices, dist_func, tags))
            if direction == BOTH:
                reverse_vertices = ([vertices[-1]]
                                    + [mini_node(ref, REVERSE_NODE_SUFFIX) for ref in piece[-2:0:-1]]
                                    + [vertices[0]])
                road_ways.append(RoadWay(f"{REVERSE_PREFIX}{piece_id}", reverse_vertices, dist_func, tags))

    graph = RoadNetworkGraph(dist_func)
    graph.set_nodes(list(registered.values()))
    graph.add_ways(road_ways)
    removed = graph.isolated_node_removal()
    graph.update_boundary()
    logger.info(f"Load initial map finish, total number of ways: {graph.way_count}, number of nodes after "
                f"isolation removal: {graph.node_count} ({removed} removed). Boundary is: {graph.min_lon},"
                f"{graph.max_lon},{graph.min_lat},{graph.max_lat}.")
    return graph
