"""
Constants for the Bluetooth trip preprocessing pipeline.

This module contains all the algorithmic, format and domain-specific constants
used throughout the codebase. Constants are grouped by their purpose and
documented with their units where applicable.
"""

# =============================================================================
# SEQUENCE SEGMENTATION THRESHOLDS
# =============================================================================

# Maximum time gap (sec) between two observations of the same trip
MAX_TIME_GAP_SECONDS = 1200

# A long gap is only cut when the implied speed is below 15 km/h
TRIP_CUT_SPEED_MPS = 4.17

# Sequences whose overall speed is below 5 km/h look like pedestrians
PEDESTRIAN_SPEED_MPS = 1.39

# Observations staying longer than this are "long stay" records (seconds).
# Also the cap applied to a single observation's duration in the statistics.
LONG_DURATION_SECONDS = 300

# Minimum number of observations for an emitted trip
MIN_SEQUENCE_LENGTH = 2

# =============================================================================
# STATIONS AND BOUNDARIES
# =============================================================================

DEFAULT_STATION_RADIUS_METERS = 100.0
DEFAULT_BOUNDARY_EXTENSION_METERS = 1000.0

# Empty observation sequences use max-long sentinels
EMPTY_SEQUENCE_TIME = 2 ** 63 - 1
EMPTY_DEVICE_ID = -1

# =============================================================================
# ROAD NETWORK IDENTIFIERS
# =============================================================================

WAY_ID_SEPARATOR = ","  # merged way "id1,id2" produced by compaction
SPLIT_MARKER = "_S"  # split way "id_S0" produced by loosening
REVERSE_PREFIX = "-"  # reverse way "-id" produced by the OSM loader
REVERSE_NODE_SUFFIX = "-"  # interior node "id-" of a reverse way
PIECE_SEPARATOR = "_"  # OSM way "id_2" split at a shared node

# OSM highway values kept as drivable roads
HIGHWAY_TYPES = frozenset({
    "motorway", "motorway_link",
    "trunk", "trunk_link",
    "primary", "primary_link",
    "secondary", "secondary_link",
    "tertiary", "tertiary_link",
    "unclassified", "service",
    "living_street", "road",
    "residential",
})

# Highway types that are one-way when no oneway tag is present
IMPLICIT_ONEWAY_HIGHWAYS = frozenset({"motorway", "motorway_link"})

ONEWAY_FORWARD_VALUES = frozenset({"yes", "true", "1"})
ONEWAY_REVERSE_VALUE = "-1"
ONEWAY_BOTH_VALUE = "no"

# Way tags written to the map file
MAP_TAG_KEYS = ("highway", "oneway", "junction", "lanes", "maxspeed")

# =============================================================================
# RAW RECORD FORMAT
# =============================================================================

RAW_RECORD_COLUMNS = ["device_id", "enter_time", "duration", "station_id", "lat", "lon", "owner"]
RAW_HEADER_MARKER = "deviceid"
RAW_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

STATION_FILE_NAME = "station.txt"
SEQUENCE_FILE_PREFIX = "Sequence_"
MAP_FILE_NAME = "Brisbane.txt"

# =============================================================================
# VALIDATION
# =============================================================================

assert PEDESTRIAN_SPEED_MPS < TRIP_CUT_SPEED_MPS, \
    "Pedestrian speed must be below the trip cut speed"
