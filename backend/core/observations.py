"""
Raw Bluetooth observation loading.

Raw files are comma separated records

    deviceid,enterTime,duration,stationID,lat,lon,owner

with the enter time formatted as "yyyy-MM-dd HH:mm:ss". Header rows start with
"deviceid" and may appear anywhere. Every file is parsed independently, files
can be fanned out over a thread pool and the observations are fanned in to one
chronologically sorted sequence per device.
"""

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, TextIO, Tuple, Union

import pandas as pd

from core.constants import RAW_HEADER_MARKER, RAW_RECORD_COLUMNS, RAW_TIME_FORMAT
from core.geometry import DEFAULT_DISTANCE_FUNCTION, DistanceFunction, Point, Rectangle, bounding_box
from core.io import read_lines
from core.models.sequence import ObservationSequence
from core.models.station import BTObservation, BTStation
from core.validation import (
    ValidationError, validate_parameter_ranges,
    validate_raw_record_fields, validate_station_consistency,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


# =============================================================================
# STATIONS
# =============================================================================

class StationRegistry:
    """
    Station ID deduplication shared by all parsing workers.

    A station ID seen twice must come with the same coordinates, otherwise the
    load is aborted.
    """

    def __init__(self, dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION):
        self.dist_func = dist_func
        self._stations: Dict[str, BTStation] = {}
        self._lock = threading.Lock()

    def get_or_create(self, station_id: str, lon: float, lat: float) -> BTStation:
        """
        Return the station with this ID, creating it on first sight.

        Raises:
            ValidationError: If the ID is already known at another location
        """
        return self.register(BTStation(station_id, Point(lon, lat, self.dist_func)))

    def register(self, station: BTStation) -> BTStation:
        """
        Add a station, or return the known one with the same ID.

        Raises:
            ValidationError: If the ID is already known at another location
        """
        with self._lock:
            known = self._stations.get(station.station_id)
            if known is None:
                self._stations[station.station_id] = station
                return station
        validate_station_consistency(station.station_id, known.centre, station.centre)
        return known

    def get(self, station_id: str) -> Optional[BTStation]:
        return self._stations.get(station_id)

    @property
    def stations(self) -> List[BTStation]:
        with self._lock:
            return list(self._stations.values())

    def shared_locations(self) -> Dict[str, List[str]]:
        """Locations reported by more than one station, as location -> station IDs."""
        location_to_ids: Dict[str, List[str]] = {}
        for station in self.stations:
            location_to_ids.setdefault(str(station.centre), []).append(station.station_id)
        return {location: ids for location, ids in location_to_ids.items() if len(ids) > 1}

    def __contains__(self, station_id: str) -> bool:
        return station_id in self._stations

    def __len__(self) -> int:
        return len(self._stations)


def station_boundary(stations: Iterable[BTStation],
                     dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION) -> Optional[Rectangle]:
    """Bounding box of the station centres, None without stations."""
    box = bounding_box((station.centre for station in stations), dist_func)
    if box is not None:
        logger.info(f"Current map region is: {box.min_x},{box.max_x},{box.min_y},{box.max_y}")
    return box


def extend_boundary(box: Rectangle, meters: float) -> Rectangle:
    """
    Extend a boundary by a metric buffer on every side.

    Raises:
        ValidationError: If the buffer is out of range
    """
    validate_parameter_ranges(boundary_extension=meters)
    return box.extend_by_dist(meters)


# =============================================================================
# STATISTICS
# =============================================================================

@dataclass
class LoaderStatistics:
    """Counters of one raw load. Time differences are in seconds."""
    file_count: int = 0
    record_count: int = 0
    skipped_record_count: int = 0
    observation_count: int = 0
    sequence_count: int = 0
    wrong_order_pair_count: int = 0
    included_pair_count: int = 0
    wrong_order_sequence_count: int = 0
    unique_station_visit_count: int = 0
    total_time_diff: float = 0.0
    gap_count: int = 0
    shared_location_count: int = 0

    def merge(self, other: "LoaderStatistics") -> "LoaderStatistics":
        for name, value in asdict(other).items():
            setattr(self, name, getattr(self, name) + value)
        return self

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    def summary(self) -> List[str]:
        """Log lines describing the load."""
        per_sequence = self.observation_count / self.sequence_count if self.sequence_count else 0.0
        visits = self.unique_station_visit_count / self.sequence_count if self.sequence_count else 0.0
        average_gap = self.total_time_diff / self.gap_count if self.gap_count else 0.0
        return [
            f"Bluetooth record read finished. Total number of observations: {self.observation_count}, "
            f"sequences: {self.sequence_count}, average observation per sequence: {per_sequence:.2f}, "
            f"number of unique station visit per sequence: {visits:.2f}.",
            f"Average time gap between consecutive Bluetooth readers: {average_gap:.2f}",
            f"Total number of incorrect time sequence: {self.wrong_order_sequence_count}, incorrect pairs "
            f"{self.wrong_order_pair_count}, record that is completely contained by its preceding "
            f"observation: {self.included_pair_count}",
            f"Total number of locations that have multiple stations assigned: {self.shared_location_count}.",
        ]


@dataclass
class ObservationLoadResult:
    """Sequences (one per device), stations and statistics of a raw load."""
    sequences: List[ObservationSequence]
    stations: List[BTStation]
    statistics: LoaderStatistics = field(default_factory=LoaderStatistics)

    def boundary(self) -> Optional[Rectangle]:
        if not self.stations:
            return None
        return station_boundary(self.stations, self.stations[0].dist_func)


# =============================================================================
# PARSING
# =============================================================================

def read_raw_records(source: Union[PathLike, TextIO]) -> pd.DataFrame:
    """
    Read the records of a raw file (path or file-like) as strings, header rows removed.

    Raises:
        ValidationError: If a record does not have exactly seven fields
    """
    records = []
    for line in read_lines(source):
        if not line.strip():
            continue
        fields = line.split(',')
        if fields[0] == RAW_HEADER_MARKER:
            continue
        records.append(validate_raw_record_fields(fields, line))
    return pd.DataFrame(records, columns=RAW_RECORD_COLUMNS)


def _to_epoch_seconds(times: pd.Series, time_zone: str) -> pd.Series:
    localized = times.dt.tz_localize(time_zone).dt.tz_convert('UTC')
    return (localized - pd.Timestamp('1970-01-01', tz='UTC')) // pd.Timedelta(seconds=1)


def parse_raw_file(path: Union[PathLike, TextIO], registry: StationRegistry,
                   time_zone: str = 'UTC') -> Tuple[List[BTObservation], int, int]:
    """
    Parse one raw file into observations.

    Stations are registered for every record. A record with an unparsable
    enter time is logged and skipped.

    Args:
        path: Raw observation file
        registry: Shared station registry
        time_zone: Time zone of the enter times

    Returns:
        Tuple of (observations in file order, record count, skipped record count)

    Raises:
        ValidationError: On a malformed record or a conflicting station
    """
    df = read_raw_records(path)
    if df.empty:
        logger.warning(f"No records found in {path}")
        return [], 0, 0

    try:
        device_ids = pd.to_numeric(df['device_id'].str.strip()).astype('int64')
        durations = pd.to_numeric(df['duration'].str.strip()).astype('int64')
        lats = pd.to_numeric(df['lat'].str.strip()).astype(float)
        lons = pd.to_numeric(df['lon'].str.strip()).astype(float)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"Input record in {path} has a non-numeric field: {e}") from e

    stations = [registry.get_or_create(station_id, lon, lat)
                for station_id, lon, lat in zip(df['station_id'], lons, lats)]

    enter_times = pd.to_datetime(df['enter_time'], format=RAW_TIME_FORMAT, errors='coerce')
    parsable = enter_times.notna()
    for row in df.loc[~parsable].itertuples(index=False):
        logger.error(f"The date information is not parsable: {','.join(row)}")
    epoch = _to_epoch_seconds(enter_times[parsable], time_zone)

    observations = []
    for i in parsable[parsable].index:
        observations.append(BTObservation.from_duration(
            int(device_ids[i]), int(epoch[i]), int(durations[i]), stations[i], df.at[i, 'owner']
        ))
    skipped = len(df) - len(observations)
    logger.debug(f"Parsed {len(observations)} observations from {path}, skipped {skipped}")
    return observations, len(df), skipped


def _parse_files(paths: List[PathLike], registry: StationRegistry, workers: int, time_zone: str,
                 poll_interval: float) -> Dict[int, Tuple[List[BTObservation], int, int]]:
    results: Dict[int, Tuple[List[BTObservation], int, int]] = {}
    if workers == 1 or len(paths) <= 1:
        for i, path in enumerate(paths):
            results[i] = parse_raw_file(path, registry, time_zone)
            logger.info(f"Processed the {i + 1}/{len(paths)} file.")
        return results

    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_index = {executor.submit(parse_raw_file, path, registry, time_zone): i
                           for i, path in enumerate(paths)}
        pending = set(future_to_index)
        try:
            while pending:
                done, pending = wait(pending, timeout=poll_interval, return_when=FIRST_COMPLETED)
                for future in done:
                    results[future_to_index[future]] = future.result()
                logger.info(f"Processed the {len(results)}/{len(paths)} file.")
        except Exception:
            for future in pending:
                future.cancel()
            raise
    return results


def load_raw_observations(paths: Iterable[PathLike],
                          dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION,
                          workers: int = 1,
                          registry: Optional[StationRegistry] = None,
                          time_zone: str = 'UTC',
                          start_id: int = 0,
                          poll_interval: float = 1.0) -> ObservationLoadResult:
    """
    Load raw observation files into one sorted sequence per device.

    Args:
        paths: Raw observation files
        dist_func: Distance function attached to the stations
        workers: Number of parsing threads, 1 parses in the calling thread
        registry: Station registry shared with other loads, a new one by default
        time_zone: Time zone of the raw enter times
        start_id: ID of the first device sequence
        poll_interval: Seconds between progress checks of the workers

    Returns:
        ObservationLoadResult with the device sequences, every station and the statistics

    Raises:
        ValidationError: On a malformed record or conflicting station coordinates
    """
    paths = list(paths)
    validate_parameter_ranges(workers=workers)
    if registry is None:
        registry = StationRegistry(dist_func)

    stats = LoaderStatistics(file_count=len(paths))
    parsed = _parse_files(paths, registry, workers, time_zone, poll_interval)

    # file order keeps the device order deterministic
    device_to_observations: Dict[int, List[BTObservation]] = {}
    for i in sorted(parsed):
        observations, record_count, skipped = parsed[i]
        stats.record_count += record_count
        stats.skipped_record_count += skipped
        for ob in observations:
            device_to_observations.setdefault(ob.device_id, []).append(ob)

    sequences = []
    for observations in device_to_observations.values():
        observations.sort(key=lambda ob: ob.sort_key)
        sequence = ObservationSequence(start_id + len(sequences), observations)
        _collect_order_stats(sequence, stats)
        sequences.append(sequence)

    shared = registry.shared_locations()
    for location, station_ids in shared.items():
        logger.info(f"The current location {location} has multiple Bluetooth readers: {','.join(station_ids)}")
    stats.shared_location_count = len(shared)

    stations = registry.stations
    station_boundary(stations, dist_func)
    for line in stats.summary():
        logger.info(line)
    return ObservationLoadResult(sequences, stations, stats)


def _collect_order_stats(sequence: ObservationSequence, stats: LoaderStatistics) -> None:
    wrong_order = False
    for current, following in zip(sequence.observations, sequence.observations[1:]):
        if current.leave_time > following.enter_time:
            if current.leave_time > following.leave_time:
                logger.debug(f"The next observation is completely included in the last observation in sequence "
                             f"{sequence.sequence_id}: {following.enter_time},{following.leave_time}")
                stats.included_pair_count += 1
            stats.wrong_order_pair_count += 1
            wrong_order = True
        else:
            stats.total_time_diff += following.enter_time - current.leave_time
            stats.gap_count += 1
    if wrong_order:
        stats.wrong_order_sequence_count += 1
    stats.unique_station_visit_count += len({ob.station.station_id for ob in sequence.observations})
    stats.sequence_count += 1
    stats.observation_count += len(sequence)
