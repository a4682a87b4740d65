"""
Application settings and configuration.

This module contains application-specific configuration, folder layout and defaults.
For algorithmic constants, see core.constants module.
"""

import os
import time
import logging
from typing import Dict, Any, Optional

# Import algorithmic constants from core module
from core.constants import (
    MAX_TIME_GAP_SECONDS,
    TRIP_CUT_SPEED_MPS,
    LONG_DURATION_SECONDS,
    DEFAULT_BOUNDARY_EXTENSION_METERS,
    DEFAULT_STATION_RADIUS_METERS,
    MAP_FILE_NAME,
    STATION_FILE_NAME,
    SEQUENCE_FILE_PREFIX,
)

# App information
APP_NAME = "BT Trip Prep"
APP_VERSION = "1.0.0"
APP_DESCRIPTION = "Segment Bluetooth observations into trips and prepare the road map"

# File paths
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATA_ROOT = os.environ.get("BT_DATA_ROOT", os.path.join(BASE_DIR, "data"))

# Folder layout below the data root
RAW_OBSERVATION_SUBDIR = os.path.join("raw", "observation")
RAW_MAP_SUBDIR = os.path.join("raw", "map")
RAW_SEQUENCE_SUBDIR = os.path.join("raw", "obSequence")
INPUT_MAP_SUBDIR = os.path.join("input", "map")
INPUT_STATION_SUBDIR = os.path.join("input", "btStation")
INPUT_SEQUENCE_SUBDIR = os.path.join("input", "obSequence")
LOG_SUBDIR = "log"

RAW_OSM_FILE_NAME = "Brisbane.osm.pbf"
LOG_FILE_PREFIX = "Bluetooth_"

# Reference region of the Brisbane dataset (min_lon, min_lat, max_lon, max_lat)
REFERENCE_BOUNDING_BOX = (152.87669, -27.66475, 153.26154, -27.27603)

# Processing defaults
DEFAULT_WORKERS = 1  # Parsing threads, 1 parses in the calling thread
DEFAULT_TIME_ZONE = os.environ.get("BT_TIME_ZONE", "UTC")  # Zone of raw enter times
DEFAULT_POLL_INTERVAL = 1.0  # Seconds between worker progress checks
MAP_OPERATIONS = ["compact", "loose", "undirected", "planarity"]

# API server
API_HOST = os.environ.get("BT_API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("BT_API_PORT", "8000"))

# API limits
MAX_UPLOAD_SIZE_MB = 50

# Logging configuration
LOGGING_CONFIG = {
    "level": logging.INFO,
    "format": '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
}


def init_logging(log_dir: Optional[str] = None, file_name: Optional[str] = None,
                 level: int = LOGGING_CONFIG["level"]) -> str:
    """
    Configure root logging to the console and to <log_dir>/<file_name>.log.

    Args:
        log_dir: Log folder, created if missing (default: <data root>/log)
        file_name: Log file name without extension (default: Bluetooth_<epoch ms>)
        level: Root log level

    Returns:
        Path of the log file
    """
    log_dir = log_dir or os.path.join(DATA_ROOT, LOG_SUBDIR)
    file_name = file_name or f"{LOG_FILE_PREFIX}{int(time.time() * 1000)}"
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, f"{file_name}.log")

    logging.basicConfig(
        level=level,
        format=LOGGING_CONFIG["format"],
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_path, encoding='utf-8'),
        ],
        force=True,
    )
    logging.getLogger(__name__).debug("Log initialization done.")
    return log_path


# =============== Configuration Classes ===============
# These classes provide typed access to configuration sections

class SegmentationConfig:
    """Configuration parameters for trip segmentation."""
    MAX_TIME_GAP = MAX_TIME_GAP_SECONDS  # From core.constants
    CUT_SPEED = TRIP_CUT_SPEED_MPS  # From core.constants
    LONG_DURATION = LONG_DURATION_SECONDS  # From core.constants
    BOUNDARY_EXTENSION = DEFAULT_BOUNDARY_EXTENSION_METERS  # From core.constants
    WORKERS = DEFAULT_WORKERS
    TIME_ZONE = DEFAULT_TIME_ZONE

    @classmethod
    def as_dict(cls) -> Dict[str, Any]:
        """Get segmentation configuration as a dictionary."""
        return {
            'max_time_gap': cls.MAX_TIME_GAP,
            'cut_speed': cls.CUT_SPEED,
            'long_duration': cls.LONG_DURATION,
            'boundary_extension': cls.BOUNDARY_EXTENSION,
            'workers': cls.WORKERS,
            'time_zone': cls.TIME_ZONE,
        }


class MapConfig:
    """Configuration parameters for road map preparation."""
    STATION_RADIUS = DEFAULT_STATION_RADIUS_METERS  # From core.constants
    OPERATIONS = MAP_OPERATIONS
    REFERENCE_BOUNDING_BOX = REFERENCE_BOUNDING_BOX

    @classmethod
    def as_dict(cls) -> Dict[str, Any]:
        """Get map configuration as a dictionary."""
        return {
            'station_radius': cls.STATION_RADIUS,
            'operations': list(cls.OPERATIONS),
            'reference_bounding_box': list(cls.REFERENCE_BOUNDING_BOX),
        }


class PathConfig:
    """Folder layout of a pipeline run below a data root."""

    def __init__(self, root: Optional[str] = None):
        self.root = root or DATA_ROOT

    def _join(self, subdir: str) -> str:
        return os.path.join(self.root, subdir)

    @property
    def raw_observation_dir(self) -> str:
        return self._join(RAW_OBSERVATION_SUBDIR)

    @property
    def raw_map_dir(self) -> str:
        return self._join(RAW_MAP_SUBDIR)

    @property
    def raw_sequence_dir(self) -> str:
        return self._join(RAW_SEQUENCE_SUBDIR)

    @property
    def input_map_dir(self) -> str:
        return self._join(INPUT_MAP_SUBDIR)

    @property
    def input_station_dir(self) -> str:
        return self._join(INPUT_STATION_SUBDIR)

    @property
    def input_sequence_dir(self) -> str:
        return self._join(INPUT_SEQUENCE_SUBDIR)

    @property
    def log_dir(self) -> str:
        return self._join(LOG_SUBDIR)

    @property
    def raw_osm_file(self) -> str:
        return os.path.join(self.raw_map_dir, RAW_OSM_FILE_NAME)

    @property
    def map_file(self) -> str:
        return os.path.join(self.input_map_dir, MAP_FILE_NAME)

    @property
    def station_file(self) -> str:
        return os.path.join(self.input_station_dir, STATION_FILE_NAME)

    @staticmethod
    def sequence_file_name(batch_name: str) -> str:
        return f"{SEQUENCE_FILE_PREFIX}{batch_name}.txt"

    def as_dict(self) -> Dict[str, Any]:
        """Get the folder layout as a dictionary."""
        return {
            'root': self.root,
            'raw_observation_dir': self.raw_observation_dir,
            'raw_map_dir': self.raw_map_dir,
            'raw_sequence_dir': self.raw_sequence_dir,
            'input_map_dir': self.input_map_dir,
            'input_station_dir': self.input_station_dir,
            'input_sequence_dir': self.input_sequence_dir,
            'log_dir': self.log_dir,
        }
