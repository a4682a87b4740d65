"""
Tests for the planarity check.
"""

from core.graph import is_planar_map, non_planar_node_count

from conftest import make_graph


class TestPlanarity:
    """Tests for non_planar_node_count and is_planar_map."""

    def test_crossing_roads_without_intersection(self):
        """Two diagonals that do not share a node cross once."""
        graph = make_graph({'a': (0, 0), 'b': (10, 10), 'c': (0, 10), 'd': (10, 0)},
                           [('1', ['a', 'b']), ('2', ['c', 'd'])])
        assert non_planar_node_count(graph) == 1
        assert not is_planar_map(graph)
        assert not graph.is_planar_map()

    def test_roads_meeting_at_intersection(self, cross_graph):
        """Roads joined at their nodes are planar."""
        assert non_planar_node_count(cross_graph) == 0
        assert is_planar_map(cross_graph)

    def test_polyline_crossings_counted_per_segment(self):
        """A zigzag polyline crossing a straight road counts every crossing segment."""
        graph = make_graph(
            {'a': (0, 0), 'b': (30, 0), 'c': (-1, 5), 'd': (31, 5)},
            [('1', ['a', ('m1', 10, 10), ('m2', 20, 0), 'b']), ('2', ['c', 'd'])],
        )
        assert graph.non_planar_node_count() == 2

    def test_shared_endpoint_skips_pair(self):
        """Ways with a common endpoint are never compared."""
        graph = make_graph(
            {'a': (0, 0), 'b': (10, 0), 'c': (10, 10)},
            [('1', ['a', ('m', 5, 5), 'b']), ('2', ['a', 'c'])],
        )
        assert non_planar_node_count(graph) == 0

    def test_touching_roads_are_planar(self):
        """A road ending on another road does not cross it."""
        graph = make_graph({'a': (0, 0), 'b': (10, 0), 'c': (5, 0), 'd': (5, 10)},
                           [('1', ['a', 'b']), ('2', ['c', 'd'])])
        assert non_planar_node_count(graph) == 0
