"""
Shared fixtures and builders for the preprocessing tests.

Graph and observation fixtures use the planar distance function so that
distances, speeds and boundaries come out as exact numbers.
"""

import pytest

from core.geometry import EuclideanDistanceFunction, Point
from core.graph import RoadNetworkGraph
from core.models.road import RoadNode, RoadWay
from core.models.sequence import ObservationSequence
from core.models.station import BTObservation, BTStation

EUCLIDEAN = EuclideanDistanceFunction()


def make_graph(node_coords, way_specs, directed=True):
    """
    Build a graph from {node_id: (x, y)} and [(way_id, [node_id, ...])].

    Interior IDs of a way spec that are not in node_coords must be given as
    (node_id, x, y) tuples.
    """
    graph = RoadNetworkGraph(EUCLIDEAN, is_directed_map=directed)
    nodes = {node_id: RoadNode(node_id, x, y, EUCLIDEAN) for node_id, (x, y) in node_coords.items()}
    graph.set_nodes(nodes.values())
    ways = []
    for way_id, vertex_specs in way_specs:
        vertices = []
        for spec in vertex_specs:
            if isinstance(spec, tuple):
                vertices.append(RoadNode(spec[0], spec[1], spec[2], EUCLIDEAN))
            else:
                vertices.append(nodes[spec])
        ways.append(RoadWay(way_id, vertices, EUCLIDEAN))
    graph.add_ways(ways)
    return graph


def make_station(station_id, x, y):
    return BTStation(station_id, Point(x, y, EUCLIDEAN))


def make_sequence(observation_specs, sequence_id=0, device_id=1):
    """Build a sequence from [(enter, leave, station)] tuples."""
    observations = [BTObservation(device_id, enter, leave, station)
                    for enter, leave, station in observation_specs]
    return ObservationSequence(sequence_id, observations)


@pytest.fixture
def chain_graph():
    """Directed loose chain a -> b -> c -> d along the x axis."""
    return make_graph(
        {'a': (0, 0), 'b': (10, 0), 'c': (20, 0), 'd': (30, 0)},
        [('1', ['a', 'b']), ('2', ['b', 'c']), ('3', ['c', 'd'])],
    )


@pytest.fixture
def cross_graph():
    """Directed loose map with a T junction at b and a through node on each branch."""
    return make_graph(
        {'a': (0, 0), 'b': (10, 0), 'c': (20, 0), 'd': (30, 0), 'e': (10, 10), 'f': (10, 20)},
        [('1', ['a', 'b']), ('2', ['b', 'c']), ('3', ['c', 'd']),
         ('4', ['b', 'e']), ('5', ['e', 'f'])],
    )


@pytest.fixture
def stations():
    """Stations 1000 m apart along the x axis."""
    return [make_station(f"S{i}", i * 1000.0, 0.0) for i in range(5)]
