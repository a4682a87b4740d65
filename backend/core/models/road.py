"""
Road network entities.

A RoadNode is an intersection (registered in the graph) or a polyline vertex
embedded in a way ("mini node"). A RoadWay is an ordered chain of nodes whose
first and last vertices are intersections. Adjacency is kept as way IDs on the
node, never as references to way objects.
"""

from typing import Dict, Iterable, List, Optional

from core.geometry import DEFAULT_DISTANCE_FUNCTION, DistanceFunction, Point, Segment


class RoadNode:
    """A road intersection or polyline vertex."""

    def __init__(self, node_id: str, lon: float, lat: float,
                 dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION,
                 tags: Optional[Dict[str, str]] = None):
        self.node_id = node_id
        self.lon = lon
        self.lat = lat
        self.dist_func = dist_func
        self.tags: Dict[str, str] = dict(tags) if tags else {}
        # insertion-ordered sets of way IDs
        self.in_way_ids: Dict[str, None] = {}
        self.out_way_ids: Dict[str, None] = {}

    @property
    def in_degree(self) -> int:
        return len(self.in_way_ids)

    @property
    def out_degree(self) -> int:
        return len(self.out_way_ids)

    @property
    def degree(self) -> int:
        return self.in_degree + self.out_degree

    def add_incoming_way(self, way_id: str) -> None:
        self.in_way_ids[way_id] = None

    def add_outgoing_way(self, way_id: str) -> None:
        self.out_way_ids[way_id] = None

    def remove_incoming_way(self, way_id: str) -> None:
        self.in_way_ids.pop(way_id, None)

    def remove_outgoing_way(self, way_id: str) -> None:
        self.out_way_ids.pop(way_id, None)

    def clear_connected_ways(self) -> None:
        self.in_way_ids.clear()
        self.out_way_ids.clear()

    def is_through_node(self, directed: bool = True) -> bool:
        """
        One incoming and one outgoing way that are not the same (self-loop) way.

        On an undirected map every way is both incoming and outgoing, so a
        through node is connected to exactly two distinct ways. Such a node is
        an artifact of map generation and can be merged away.
        """
        if directed:
            if self.in_degree != 1 or self.out_degree != 1:
                return False
            return next(iter(self.in_way_ids)) != next(iter(self.out_way_ids))
        return self.in_degree == 2 and self.in_way_ids.keys() == self.out_way_ids.keys()

    def to_point(self) -> Point:
        return Point(self.lon, self.lat, self.dist_func)

    def copy(self, node_id: Optional[str] = None) -> "RoadNode":
        """Copy without adjacency."""
        return RoadNode(self.node_id if node_id is None else node_id,
                        self.lon, self.lat, self.dist_func, self.tags)

    def __repr__(self) -> str:
        return f"RoadNode({self.node_id!r}, {self.lon}, {self.lat})"


class RoadWay:
    """An ordered chain of road nodes with an ID and a tag set."""

    def __init__(self, way_id: str, nodes: Optional[Iterable[RoadNode]] = None,
                 dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION,
                 tags: Optional[Dict[str, str]] = None, visit_count: int = 0):
        self.way_id = way_id
        self.nodes: List[RoadNode] = list(nodes) if nodes is not None else []
        self.dist_func = dist_func
        self.tags: Dict[str, str] = dict(tags) if tags else {}
        self.visit_count = visit_count

    @property
    def from_node(self) -> RoadNode:
        return self.nodes[0]

    @property
    def to_node(self) -> RoadNode:
        return self.nodes[-1]

    @property
    def interior_nodes(self) -> List[RoadNode]:
        return self.nodes[1:-1]

    @property
    def edges(self) -> List[Segment]:
        return [Segment(a.lon, a.lat, b.lon, b.lat, self.dist_func)
                for a, b in zip(self.nodes, self.nodes[1:])]

    @property
    def length(self) -> float:
        """Length in meters."""
        return sum(edge.length for edge in self.edges)

    def add_node(self, node: RoadNode) -> None:
        self.nodes.append(node)

    def endpoint_key(self):
        """Coordinate pair of the endpoints, used to detect duplicate geometry."""
        return (self.from_node.lon, self.from_node.lat), (self.to_node.lon, self.to_node.lat)

    def renamed(self, way_id: str) -> "RoadWay":
        """Same vertices and tags under another ID."""
        return RoadWay(way_id, self.nodes, self.dist_func, self.tags, self.visit_count)

    def reversed(self, way_id: Optional[str] = None) -> "RoadWay":
        """Same vertices in the opposite order."""
        return RoadWay(self.way_id if way_id is None else way_id, self.nodes[::-1],
                       self.dist_func, self.tags, self.visit_count)

    def __len__(self) -> int:
        return len(self.nodes)

    def __repr__(self) -> str:
        return f"RoadWay({self.way_id!r}, size={len(self.nodes)})"
