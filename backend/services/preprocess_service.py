"""
Preprocessing pipeline service.

This module ties the loaders, the segmentation and the map transforms together
for the command line and the API:

- observations: raw Bluetooth files -> device sequences -> trips, stations, boundary
- map: OSM extract -> directed road graph -> map file
- transforms: one named structural operation on a loaded map
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, TextIO, Tuple, Union

from config.settings import (
    DEFAULT_POLL_INTERVAL, DEFAULT_TIME_ZONE, DEFAULT_WORKERS, MAP_OPERATIONS, PathConfig,
)
from core.constants import DEFAULT_BOUNDARY_EXTENSION_METERS, MAX_TIME_GAP_SECONDS
from core.geometry import DEFAULT_DISTANCE_FUNCTION, DistanceFunction, Rectangle
from core.graph import RoadNetworkGraph
from core.io import clean_folder, list_files, write_map, write_sequence_file, write_station_file
from core.models.sequence import ObservationSequence
from core.models.station import BTStation
from core.observations import (
    LoaderStatistics, ObservationLoadResult, StationRegistry,
    extend_boundary, load_raw_observations, station_boundary,
)
from core.osm.reader import load_osm_map
from core.sequences import SegmentationStats, segment_observation_sequences
from core.validation import ValidationError

logger = logging.getLogger(__name__)

LOOSE_BATCH_NAME = "all"


class ObservationPreprocessResult:
    """Container for the outcome of an observation preprocessing run."""

    def __init__(self,
                 stations: List[BTStation],
                 device_count: int,
                 sequence_count: int,
                 loader_stats: LoaderStatistics,
                 segmentation_stats: SegmentationStats,
                 boundary: Optional[Rectangle],
                 extended_boundary: Optional[Rectangle],
                 written_files: Optional[List[str]] = None):
        self.stations = stations
        self.device_count = device_count
        self.sequence_count = sequence_count
        self.loader_stats = loader_stats
        self.segmentation_stats = segmentation_stats
        self.boundary = boundary
        self.extended_boundary = extended_boundary
        self.written_files = written_files or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            'station_count': len(self.stations),
            'device_count': self.device_count,
            'sequence_count': self.sequence_count,
            'loader': self.loader_stats.to_dict(),
            'segmentation': self.segmentation_stats.to_dict(),
            'boundary': rectangle_to_dict(self.boundary),
            'extended_boundary': rectangle_to_dict(self.extended_boundary),
            'written_files': self.written_files,
        }


def rectangle_to_dict(box: Optional[Rectangle]) -> Optional[Dict[str, float]]:
    if box is None:
        return None
    return {'min_lon': box.min_x, 'min_lat': box.min_y, 'max_lon': box.max_x, 'max_lat': box.max_y}


# =============================================================================
# OBSERVATIONS
# =============================================================================

def segment_observation_batch(sources: Iterable[Union[str, Path, TextIO]],
                              dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION,
                              max_time_gap: int = MAX_TIME_GAP_SECONDS,
                              workers: int = DEFAULT_WORKERS,
                              registry: Optional[StationRegistry] = None,
                              time_zone: str = DEFAULT_TIME_ZONE,
                              poll_interval: float = DEFAULT_POLL_INTERVAL
                              ) -> Tuple[ObservationLoadResult, List[ObservationSequence], SegmentationStats]:
    """
    Load one batch of raw files and segment its device sequences into trips.

    Returns:
        Tuple of (load result, trips, segmentation statistics)
    """
    loaded = load_raw_observations(sources, dist_func, workers=workers, registry=registry,
                                   time_zone=time_zone, poll_interval=poll_interval)
    trips, stats = segment_observation_sequences(loaded.sequences, dist_func, max_time_gap)
    return loaded, trips, stats


def find_observation_batches(raw_folder: Union[str, Path]) -> List[Tuple[str, List[Path]]]:
    """
    Group the raw observation folder into batches.

    Every sub-folder (one per month) is a batch of its own. Files directly in
    the folder form one batch named "all".

    Raises:
        FileNotFoundError: If the folder does not exist
    """
    folder = Path(raw_folder)
    if not folder.is_dir():
        raise FileNotFoundError(f"Input observation folder is not found: {folder}")

    batches = []
    loose_files = []
    for entry in sorted(folder.iterdir()):
        if entry.is_dir():
            batches.append((entry.name, list_files(entry)))
        elif entry.is_file():
            loose_files.append(entry)
    if loose_files:
        batches.append((LOOSE_BATCH_NAME, loose_files))
    return batches


def preprocess_observations(paths: Optional[PathConfig] = None,
                            dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION,
                            max_time_gap: int = MAX_TIME_GAP_SECONDS,
                            boundary_extension: float = DEFAULT_BOUNDARY_EXTENSION_METERS,
                            workers: int = DEFAULT_WORKERS,
                            time_zone: str = DEFAULT_TIME_ZONE) -> ObservationPreprocessResult:
    """
    Run the observation preprocessing over the raw observation folder.

    For each batch the unsegmented device sequences are written to the raw
    sequence folder and the trips to the input sequence folder. Stations are
    merged across batches and written once.

    Args:
        paths: Folder layout of the run
        dist_func: Distance function
        max_time_gap: Segmentation time gap in seconds
        boundary_extension: Buffer around the station boundary in meters
        workers: Parsing threads per batch
        time_zone: Time zone of the raw enter times

    Returns:
        ObservationPreprocessResult

    Raises:
        ValidationError: On malformed input or a station reported at two locations
        FileNotFoundError: If the raw observation folder is missing
    """
    paths = paths or PathConfig()
    batches = find_observation_batches(paths.raw_observation_dir)
    clean_folder(paths.raw_sequence_dir)
    clean_folder(paths.input_sequence_dir)

    registry = StationRegistry(dist_func)
    loader_stats = LoaderStatistics()
    segmentation_stats = SegmentationStats()
    device_ids: Set[int] = set()
    sequence_count = 0
    written_files: List[str] = []

    for i, (batch_name, files) in enumerate(batches):
        logger.info(f"Processing {i + 1}/{len(batches)} batch: {batch_name}")
        loaded, trips, stats = segment_observation_batch(
            files, dist_func, max_time_gap, workers, registry, time_zone
        )
        device_ids.update(sequence.device_id for sequence in loaded.sequences)
        file_name = PathConfig.sequence_file_name(batch_name)
        raw_path = Path(paths.raw_sequence_dir) / file_name
        input_path = Path(paths.input_sequence_dir) / file_name
        write_sequence_file(loaded.sequences, raw_path)
        write_sequence_file(trips, input_path)
        written_files.extend([str(raw_path), str(input_path)])

        loader_stats.merge(loaded.statistics)
        segmentation_stats.merge(stats)
        sequence_count += len(trips)

    # shared locations are a property of the merged registry, not of a batch
    loader_stats.shared_location_count = len(registry.shared_locations())

    stations = registry.stations
    write_station_file(stations, paths.station_file)
    written_files.append(paths.station_file)

    logger.info(f"Total number of Bluetooth readers: {len(stations)}.")
    logger.info(f"Total number of Bluetooth devices: {len(device_ids)}")
    boundary = station_boundary(stations, dist_func)
    extended = None
    if boundary is None:
        logger.warning("No Bluetooth station loaded, the map boundary is not available.")
    else:
        extended = extend_boundary(boundary, boundary_extension)
        logger.info(f"The bounding box is set to {extended.min_x},{extended.max_x},{extended.min_y},"
                    f"{extended.max_y} for map extraction.")
    for line in loader_stats.summary():
        logger.info(line)
    logger.info(f"Segmentation finished. {segmentation_stats.summary()}")

    return ObservationPreprocessResult(
        stations=stations,
        device_count=len(device_ids),
        sequence_count=sequence_count,
        loader_stats=loader_stats,
        segmentation_stats=segmentation_stats,
        boundary=boundary,
        extended_boundary=extended,
        written_files=written_files,
    )


# =============================================================================
# MAP
# =============================================================================

def preprocess_map(osm_file: Union[str, Path], output_file: Union[str, Path],
                   dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION,
                   bounds: Optional[Rectangle] = None) -> RoadNetworkGraph:
    """Build the road graph of an OSM extract and write it as a map file."""
    graph = load_osm_map(osm_file, dist_func, bounds)
    write_map(graph, output_file)
    return graph


class MapTransformResult:
    """Container for the outcome of a map operation."""

    def __init__(self, operation: str, source: RoadNetworkGraph, graph: RoadNetworkGraph,
                 non_planar_count: Optional[int] = None):
        self.operation = operation
        self.source = source
        self.graph = graph
        self.non_planar_count = non_planar_count

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'operation': self.operation,
            'source': self.source.summary(),
            'result': self.graph.summary(),
        }
        if self.non_planar_count is not None:
            result['non_planar_count'] = self.non_planar_count
            result['is_planar'] = self.non_planar_count == 0
        return result


def transform_map(graph: RoadNetworkGraph, operation: str) -> MapTransformResult:
    """
    Apply one named operation to a map.

    Args:
        graph: Input map, left unchanged
        operation: One of "compact", "loose", "undirected", "planarity"

    Raises:
        ValidationError: If the operation is unknown
    """
    operation = operation.lower()
    if operation not in MAP_OPERATIONS:
        raise ValidationError(f"Unknown map operation '{operation}', expected one of {MAP_OPERATIONS}")

    if operation == "compact":
        return MapTransformResult(operation, graph, graph.to_compact_map())
    if operation == "loose":
        return MapTransformResult(operation, graph, graph.to_loose_map())
    if operation == "undirected":
        return MapTransformResult(operation, graph, graph.to_undirected_map())
    return MapTransformResult(operation, graph, graph, non_planar_count=graph.non_planar_node_count())
