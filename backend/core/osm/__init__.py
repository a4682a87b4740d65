"""
OSM package.

Conversion of OpenStreetMap extracts into road network graphs. The builder
works on plain node and way records, the reader produces them with osmium.
"""

from .builder import (
    OsmNode,
    OsmWay,
    is_road_way,
    way_direction,
    trim_way,
    split_way,
    build_road_graph,
)

# The reader needs osmium: from core.osm.reader import load_osm_map

__all__ = [
    'OsmNode',
    'OsmWay',
    'is_road_way',
    'way_direction',
    'trim_way',
    'split_way',
    'build_road_graph',
]
