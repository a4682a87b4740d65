"""
Structural map transforms.

Each transform clones its input and returns the new graph, the input graph is
never modified:

- to_compact_map: merge degree-2 through-nodes into polyline ways
- to_loose_map: split polyline ways into straight segments
- to_undirected_map: keep one way per physical road

Way IDs carry the bookkeeping that makes compact and loose conversion inverse
to each other. Merging two ways joins their IDs with a comma, splitting a
polyline appends a split marker and the segment index.
"""

import logging
from typing import List, Optional, Set, Tuple

from core.constants import REVERSE_PREFIX, SPLIT_MARKER, WAY_ID_SEPARATOR
from core.graph.network import RoadNetworkGraph
from core.models.road import RoadNode, RoadWay
from core.validation import GraphIntegrityError

logger = logging.getLogger(__name__)


# =============================================================================
# COMPACT
# =============================================================================

def to_compact_map(graph: RoadNetworkGraph) -> RoadNetworkGraph:
    """
    Merge every degree-2 through-node into the ways around it.

    A node with degree 2 whose incoming and outgoing counts differ is left in
    place with a warning.

    Raises:
        GraphIntegrityError: If split-way IDs do not share their original ID, or
            the result still holds split IDs or through-nodes
    """
    if graph.is_compact_map:
        logger.info("The map is already a compact map, return a copy.")
        return graph.clone()

    result = graph.clone()
    directed = result.is_directed_map
    merged_nodes: List[RoadNode] = []

    for node in result.nodes:
        if directed and node.degree == 2 and node.in_degree != node.out_degree:
            logger.warning(f"Node {node.node_id} has degree 2 but asymmetric incoming and outgoing ways.")
            continue
        if not node.is_through_node(directed):
            continue

        connected = [result.get_way(way_id) for way_id in {**node.in_way_ids, **node.out_way_ids}]
        pair = _oriented_pair(result, node)
        if pair is None:
            logger.debug(f"Node {node.node_id} sits on a loop road, skip merging.")
            continue
        first, second = pair
        merged = RoadWay(
            _merged_way_id(first.way_id, second.way_id),
            first.nodes + second.nodes[1:],
            first.dist_func,
            {**second.tags, **first.tags},
            max(first.visit_count, second.visit_count),
        )
        result.remove_road_ways(connected)
        result.add_way(merged)
        merged_nodes.append(node)

    result.remove_nodes(node.node_id for node in merged_nodes)

    for way in result.ways:
        if SPLIT_MARKER in way.way_id:
            raise GraphIntegrityError(f"The compact map still contains split road ID: {way.way_id}")
    for node in result.nodes:
        # a through-node on a loop road is a junction of the loop and stays
        if node.is_through_node(directed) and _oriented_pair(result, node) is not None:
            raise GraphIntegrityError(f"The compact map still contains through node: {node.node_id}")

    result.is_compact_map = True
    logger.info(f"Compact map generated, {len(merged_nodes)} nodes merged: {result}")
    return result


def _oriented_pair(graph: RoadNetworkGraph, node: RoadNode) -> Optional[Tuple[RoadWay, RoadWay]]:
    """
    The two ways of a through-node, oriented so that the first ends at the node
    and the second starts from it. On undirected maps a way is reversed when
    needed. None if one of them is a loop road through the node.
    """
    if graph.is_directed_map:
        first = graph.get_way(next(iter(node.in_way_ids)))
        second = graph.get_way(next(iter(node.out_way_ids)))
    else:
        way_a, way_b = (graph.get_way(way_id) for way_id in node.in_way_ids)
        if way_a.from_node.node_id == node.node_id and way_b.to_node.node_id == node.node_id:
            way_a, way_b = way_b, way_a
        first = way_a if way_a.to_node.node_id == node.node_id else _reversed_way(way_a)
        second = way_b if way_b.from_node.node_id == node.node_id else _reversed_way(way_b)
    if first.from_node.node_id == node.node_id or second.to_node.node_id == node.node_id:
        return None
    return first, second


def _reversed_way(way: RoadWay) -> RoadWay:
    # component order follows segment order, so reverse the composite ID as well
    parts = way.way_id.split(WAY_ID_SEPARATOR)
    return way.reversed(WAY_ID_SEPARATOR.join(reversed(parts)))


def _merged_way_id(incoming_id: str, outgoing_id: str) -> str:
    """
    ID of the way merged from two consecutive ways.

    Ways split from one polyline get their original ID back, other ways are
    joined with the separator.
    """
    if SPLIT_MARKER in incoming_id or SPLIT_MARKER in outgoing_id:
        incoming_origin = incoming_id.split(SPLIT_MARKER)[0]
        outgoing_origin = outgoing_id.split(SPLIT_MARKER)[0]
        if incoming_origin != outgoing_origin:
            raise GraphIntegrityError(
                f"The road ways to be merged are not from the same original road: {incoming_id},{outgoing_id}"
            )
        return incoming_origin
    return f"{incoming_id}{WAY_ID_SEPARATOR}{outgoing_id}"


# =============================================================================
# LOOSE
# =============================================================================

def to_loose_map(graph: RoadNetworkGraph) -> RoadNetworkGraph:
    """
    Split every polyline way into consecutive straight segments.

    Interior vertices become intersections. A merged way gets its component IDs
    back, one per segment. Any other way names its segments with the split
    marker and the segment index.

    Raises:
        GraphIntegrityError: If a merged ID does not match the segment count, or
            the result holds polylines, merged IDs or a different node count
    """
    if not graph.is_compact_map:
        logger.info("The map is already a loose map, return a copy.")
        return graph.clone()

    expected_node_count = len(graph.all_type_of_nodes())
    result = graph.clone()
    removed: List[RoadWay] = []
    inserted: List[RoadWay] = []

    for way in result.ways:
        if len(way) <= 2:
            continue
        segment_count = len(way) - 1
        component_ids = way.way_id.split(WAY_ID_SEPARATOR)
        if len(component_ids) > 1 and len(component_ids) != segment_count:
            raise GraphIntegrityError(
                f"The merged road {way.way_id} does not have the same number of segments "
                f"as its components: {segment_count}"
            )
        removed.append(way)
        for i in range(segment_count):
            start, end = way.nodes[i], way.nodes[i + 1]
            if i + 1 < segment_count:
                result.add_node(end)
            segment_id = component_ids[i] if len(component_ids) > 1 else f"{way.way_id}{SPLIT_MARKER}{i}"
            inserted.append(RoadWay(segment_id, [start, end], way.dist_func, way.tags, way.visit_count))

    result.remove_road_ways(removed)
    result.add_ways(inserted)

    for way in result.ways:
        if len(way) != 2:
            raise GraphIntegrityError(f"The loose map contains a polyline road: {way.way_id}")
        if WAY_ID_SEPARATOR in way.way_id:
            raise GraphIntegrityError(f"The loose map contains a merged road ID: {way.way_id}")
    if result.node_count != expected_node_count:
        raise GraphIntegrityError(
            f"The loose map has {result.node_count} nodes, the compact map has {expected_node_count}."
        )

    result.is_compact_map = False
    logger.info(f"Loose map generated, {len(removed)} polylines split: {result}")
    return result


# =============================================================================
# UNDIRECTED
# =============================================================================

def to_undirected_map(graph: RoadNetworkGraph) -> RoadNetworkGraph:
    """
    Keep one way per pair of endpoints and drop the direction.

    Forward ways are kept unless another way already connects the same
    endpoints. A reverse way whose geometry is not covered by a forward way is
    kept under its forward ID, which is logged since bidirectional roads should
    always come in pairs.
    """
    source = graph.clone()
    seen: Set[tuple] = set()
    kept: List[RoadWay] = []
    reverse_ways: List[RoadWay] = []
    max_visit_count = 0

    for way in source.ways:
        if REVERSE_PREFIX in way.way_id:
            reverse_ways.append(way)
            continue
        key = way.endpoint_key()
        if key in seen or _swapped(key) in seen:
            logger.error(f"Multiple roads share the same endpoints: {way.way_id}, {key}")
            continue
        seen.add(key)
        kept.append(way)
        max_visit_count = max(max_visit_count, way.visit_count)

    kept_ids = {way.way_id for way in kept}
    recovered = 0
    for way in reverse_ways:
        key = way.endpoint_key()
        if key in seen or _swapped(key) in seen:
            continue
        logger.error(f"Reverse road {way.way_id} does not have its forward road in the map.")
        forward_id = way.way_id[len(REVERSE_PREFIX):] if way.way_id.startswith(REVERSE_PREFIX) else way.way_id
        if forward_id in kept_ids or source.contains_way(forward_id):
            logger.error(f"Road {forward_id} exists but does not match reverse road {way.way_id}, drop it.")
            continue
        seen.add(key)
        kept.append(way.renamed(forward_id))
        kept_ids.add(forward_id)
        recovered += 1

    result = RoadNetworkGraph(source.dist_func, is_directed_map=False)
    result.set_nodes(source.nodes)
    result.add_ways(kept)
    result.is_compact_map = result.is_compact_map or graph.is_compact_map
    result.update_boundary()
    logger.info(f"Undirected map generated: {result}, {recovered} reverse-only roads recovered, "
                f"max visit count {max_visit_count}.")
    return result


def _swapped(key: tuple) -> tuple:
    return key[1], key[0]
