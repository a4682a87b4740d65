"""
Road network graph.

The graph owns an arena of intersections and ways addressed by their string
IDs. Nodes keep the IDs of their incoming and outgoing ways, so cloning a graph
rebuilds every adjacency from scratch instead of sharing references.

A graph is either loose (every way is a straight two-vertex segment) or compact
(ways may be polylines, degree-2 through-nodes eliminated), and either directed
or undirected. The structural transforms never modify the graph they are
called on; they return a new graph.
"""

import math
import logging
from typing import Any, Dict, Iterable, List, Optional

from core.geometry import DEFAULT_DISTANCE_FUNCTION, DistanceFunction, Rectangle
from core.models.road import RoadNode, RoadWay
from core.validation import GraphIntegrityError

logger = logging.getLogger(__name__)


class RoadNetworkGraph:
    """A road network graph based on the OpenStreetMap data model."""

    def __init__(self, dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION,
                 is_directed_map: bool = True):
        self.dist_func = dist_func
        self.is_directed_map = is_directed_map
        self.is_compact_map = False
        self._node_list: List[RoadNode] = []
        self._node_index: Dict[str, RoadNode] = {}
        self._way_list: List[RoadWay] = []
        self._way_index: Dict[str, RoadWay] = {}
        self._reset_boundary()

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def nodes(self) -> List[RoadNode]:
        """Registered intersections, in insertion order."""
        return list(self._node_list)

    @property
    def ways(self) -> List[RoadWay]:
        return list(self._way_list)

    @property
    def node_count(self) -> int:
        return len(self._node_list)

    @property
    def way_count(self) -> int:
        return len(self._way_list)

    def is_empty(self) -> bool:
        return not self._node_list

    def contains_node(self, node_id: str) -> bool:
        return node_id in self._node_index

    def contains_way(self, way_id: str) -> bool:
        return way_id in self._way_index

    def get_node(self, node_id: str) -> RoadNode:
        if node_id not in self._node_index:
            raise KeyError(f"The requested road node ID {node_id} is not in the map.")
        return self._node_index[node_id]

    def get_way(self, way_id: str) -> RoadWay:
        if way_id not in self._way_index:
            raise KeyError(f"The requested road way ID {way_id} is not in the map.")
        return self._way_index[way_id]

    def all_type_of_nodes(self) -> List[RoadNode]:
        """
        All nodes of the map: intersections followed by the mini nodes
        embedded in polyline ways.
        """
        if not self.is_compact_map:
            return list(self._node_list)
        points = list(self._node_list)
        for way in self._way_list:
            points.extend(n for n in way.nodes if n.node_id not in self._node_index)
        return points

    # =========================================================================
    # NODES
    # =========================================================================

    def add_node(self, node: Optional[RoadNode]) -> None:
        """
        Register an intersection. Its existing adjacency is cleared.

        A node whose ID already exists is logged and ignored, except for the
        empty ID which may be registered several times.
        """
        if node is None:
            return
        if node.node_id in self._node_index and node.node_id != "":
            logger.error(f"Insert node to network failed. Node already exist: {node.node_id}")
            return
        node.clear_connected_ways()
        self._node_list.append(node)
        self._node_index[node.node_id] = node
        self._extend_boundary(node)

    def add_nodes(self, nodes: Iterable[RoadNode]) -> None:
        if nodes is None:
            raise ValueError("List of road nodes to add must not be None.")
        for node in nodes:
            self.add_node(node)

    def set_nodes(self, nodes: Iterable[RoadNode]) -> None:
        """
        Reset the map with a new node list.

        Raises:
            GraphIntegrityError: If the map already contains ways
        """
        if self._way_list or self._way_index:
            raise GraphIntegrityError("set_nodes() should not be called when there are road ways in the map.")
        self._clear()
        self.add_nodes(nodes)

    def remove_node(self, node_id: str) -> None:
        """
        Unregister an intersection that no way is connected to.

        Raises:
            GraphIntegrityError: If the node is unknown or still connected
        """
        self.remove_nodes([node_id])

    def remove_nodes(self, node_ids: Iterable[str]) -> None:
        """
        Unregister several unconnected intersections, rebuilding the node list once.

        Raises:
            GraphIntegrityError: If a node is unknown or still connected, in
                which case nothing is removed
        """
        removed = {}
        for node_id in node_ids:
            node = self._node_index.get(node_id)
            if node is None:
                raise GraphIntegrityError(f"The node {node_id} is not an intersection in the map.")
            if node.degree != 0:
                raise GraphIntegrityError(f"The node {node_id} to be removed is connected by some edges.")
            removed[id(node)] = node_id
        if not removed:
            return
        self._node_list = [node for node in self._node_list if id(node) not in removed]
        for node_id in removed.values():
            self._node_index.pop(node_id, None)

    def isolated_node_removal(self) -> int:
        """
        Remove every intersection with degree zero.

        Returns:
            Number of removed nodes
        """
        before = len(self._node_list)
        kept = []
        for node in self._node_list:
            if node.degree == 0:
                logger.debug(f"Removed node ID: {node.node_id}")
                if self._node_index.get(node.node_id) is node:
                    del self._node_index[node.node_id]
            else:
                kept.append(node)
        self._node_list = kept
        return before - len(kept)

    # =========================================================================
    # WAYS
    # =========================================================================

    def add_way(self, way: RoadWay) -> None:
        """
        Register a way between two registered intersections.

        The first way that is not a straight segment turns this map into a
        compact map for good.

        Raises:
            GraphIntegrityError: If the way has fewer than two vertices, its ID
                already exists or one of its endpoints is not registered
        """
        if len(way.nodes) < 2:
            raise GraphIntegrityError(f"Road way {way.way_id} contains fewer than two nodes.")
        if way.way_id in self._way_index:
            raise GraphIntegrityError(f"Road way already exist: {way.way_id}")
        start = self._node_index.get(way.from_node.node_id)
        end = self._node_index.get(way.to_node.node_id)
        if start is None or end is None:
            raise GraphIntegrityError(
                f"The endpoints of the inserted road way do not exist in the current map: "
                f"{way.from_node.node_id},{way.to_node.node_id}"
            )
        if not self.is_compact_map and len(way.nodes) != 2:
            logger.info("A polyline road added to the current map, set as a compact map.")
            self.is_compact_map = True

        self._way_list.append(way)
        self._way_index[way.way_id] = way
        start.add_outgoing_way(way.way_id)
        end.add_incoming_way(way.way_id)
        if not self.is_directed_map:
            # both incoming and outgoing on an undirected map
            start.add_incoming_way(way.way_id)
            end.add_outgoing_way(way.way_id)
        for node in way.nodes:
            self._extend_boundary(node)

    def add_ways(self, ways: Iterable[RoadWay]) -> None:
        if ways is None:
            raise ValueError("List of road ways to add must not be None.")
        for way in ways:
            self.add_way(way)

    def remove_road_ways(self, ways: Iterable[RoadWay]) -> None:
        """Detach and remove ways. Ways that are not in the map are logged and skipped."""
        removed_ids = set()
        for way in ways:
            if self._way_index.get(way.way_id) is None:
                logger.error(f"The road to be removed is not in the map: {way.way_id}")
                continue
            del self._way_index[way.way_id]
            removed_ids.add(way.way_id)
            start = self._node_index.get(way.from_node.node_id)
            end = self._node_index.get(way.to_node.node_id)
            if start is not None:
                start.remove_outgoing_way(way.way_id)
                if not self.is_directed_map:
                    start.remove_incoming_way(way.way_id)
            if end is not None:
                end.remove_incoming_way(way.way_id)
                if not self.is_directed_map:
                    end.remove_outgoing_way(way.way_id)
        if removed_ids:
            self._way_list = [w for w in self._way_list if w.way_id not in removed_ids]

    # =========================================================================
    # BOUNDARY
    # =========================================================================

    def _reset_boundary(self) -> None:
        self.has_boundary = False
        self.min_lon = math.inf
        self.min_lat = math.inf
        self.max_lon = -math.inf
        self.max_lat = -math.inf

    def _extend_boundary(self, node: RoadNode) -> None:
        self.has_boundary = True
        self.min_lon = min(self.min_lon, node.lon)
        self.max_lon = max(self.max_lon, node.lon)
        self.min_lat = min(self.min_lat, node.lat)
        self.max_lat = max(self.max_lat, node.lat)

    def update_boundary(self) -> None:
        """Recompute the boundary over every node, mini nodes included."""
        self._reset_boundary()
        for node in self.all_type_of_nodes():
            self._extend_boundary(node)

    def set_boundary(self, min_lon: float, max_lon: float, min_lat: float, max_lat: float) -> None:
        self.min_lon, self.max_lon = min_lon, max_lon
        self.min_lat, self.max_lat = min_lat, max_lat
        self.has_boundary = True

    @property
    def boundary(self) -> Rectangle:
        if not self.has_boundary:
            logger.warning("The current map does not have boundary.")
            return Rectangle(-math.inf, -math.inf, math.inf, math.inf, self.dist_func)
        return Rectangle(self.min_lon, self.min_lat, self.max_lon, self.max_lat, self.dist_func)

    def _clear(self) -> None:
        self._node_list = []
        self._node_index = {}
        self._way_list = []
        self._way_index = {}
        self._reset_boundary()

    # =========================================================================
    # COPY AND TRANSFORMS
    # =========================================================================

    def clone(self) -> "RoadNetworkGraph":
        """
        Deep copy of the graph. Nodes, mini nodes and ways are copied and the
        adjacency is rebuilt through add_way.

        Raises:
            GraphIntegrityError: If a way is not linked to registered intersections
        """
        copy = RoadNetworkGraph(self.dist_func, self.is_directed_map)
        id_to_copy: Dict[str, RoadNode] = {}
        for node in self._node_list:
            node_copy = node.copy()
            copy.add_node(node_copy)
            id_to_copy[node_copy.node_id] = node_copy
        for way in self._way_list:
            start = id_to_copy.get(way.from_node.node_id)
            end = id_to_copy.get(way.to_node.node_id)
            if start is None or end is None:
                raise GraphIntegrityError(
                    f"The road way to be cloned {way.way_id} is not originally linked to the intersections."
                )
            vertices = [start] + [n.copy() for n in way.interior_nodes] + [end]
            copy.add_way(RoadWay(way.way_id, vertices, way.dist_func, way.tags, way.visit_count))
        copy.is_compact_map = copy.is_compact_map or self.is_compact_map
        copy.update_boundary()
        if (copy.min_lon, copy.max_lon, copy.min_lat, copy.max_lat) != \
                (self.min_lon, self.max_lon, self.min_lat, self.max_lat):
            logger.warning("Clone result has different boundary as the original object.")
        return copy

    def to_compact_map(self) -> "RoadNetworkGraph":
        """New graph with every degree-2 through-node merged away."""
        from core.graph.conversion import to_compact_map
        return to_compact_map(self)

    def to_loose_map(self) -> "RoadNetworkGraph":
        """New graph in which every way is a straight segment."""
        from core.graph.conversion import to_loose_map
        return to_loose_map(self)

    def to_undirected_map(self) -> "RoadNetworkGraph":
        """New undirected graph keeping one way per physical road."""
        from core.graph.conversion import to_undirected_map
        return to_undirected_map(self)

    def non_planar_node_count(self) -> int:
        from core.graph.planarity import non_planar_node_count
        return non_planar_node_count(self)

    def is_planar_map(self) -> bool:
        return self.non_planar_node_count() == 0

    def summary(self) -> Dict[str, Any]:
        """Size, mode flags and boundary of the map."""
        return {
            'node_count': self.node_count,
            'way_count': self.way_count,
            'all_node_count': len(self.all_type_of_nodes()),
            'is_directed_map': self.is_directed_map,
            'is_compact_map': self.is_compact_map,
            'boundary': {
                'min_lon': self.min_lon,
                'min_lat': self.min_lat,
                'max_lon': self.max_lon,
                'max_lat': self.max_lat,
            } if self.has_boundary else None,
        }

    def __repr__(self) -> str:
        return (f"RoadNetworkGraph(nodes={self.node_count}, ways={self.way_count}, "
                f"directed={self.is_directed_map}, compact={self.is_compact_map})")
