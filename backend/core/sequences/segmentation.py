"""
Trip segmentation of observation sequences.

A device sequence is cut where the device is not seen for a long time and the
stations on both sides of the gap are close enough that a slow traversal
would have covered them, which means the device most likely stopped and
started a new trip. Sub-sequences with a single observation carry no trip and
are dropped.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Tuple

from core.constants import (
    LONG_DURATION_SECONDS, MAX_TIME_GAP_SECONDS, MIN_SEQUENCE_LENGTH,
    PEDESTRIAN_SPEED_MPS, TRIP_CUT_SPEED_MPS,
)
from core.geometry import DistanceFunction
from core.models.sequence import ObservationSequence
from core.models.station import BTObservation
from core.validation import validate_parameter_ranges

logger = logging.getLogger(__name__)


@dataclass
class SegmentationStats:
    """
    Counters collected over the emitted sequences of one or more segmentation runs.

    Durations and time differences are in seconds. Each observation adds at
    most LONG_DURATION_SECONDS to total_duration so that a parked device does
    not dominate the average.
    """
    input_sequence_count: int = 0
    sequence_count: int = 0
    observation_count: int = 0
    gap_count: int = 0
    total_time_diff: float = 0.0
    total_duration: float = 0.0
    max_duration: int = 0
    long_duration_count: int = 0
    low_speed_sequence_count: int = 0
    nested_observation_count: int = 0
    cut_count: int = 0
    dropped_singleton_count: int = 0

    def merge(self, other: "SegmentationStats") -> "SegmentationStats":
        """Add the counters of another run, keeping the larger maximum."""
        for name, value in asdict(other).items():
            if name == 'max_duration':
                self.max_duration = max(self.max_duration, value)
            else:
                setattr(self, name, getattr(self, name) + value)
        return self

    @property
    def average_time_gap(self) -> float:
        return self.total_time_diff / self.gap_count if self.gap_count else 0.0

    @property
    def average_duration(self) -> float:
        return self.total_duration / self.observation_count if self.observation_count else 0.0

    @property
    def average_sequence_length(self) -> float:
        return self.observation_count / self.sequence_count if self.sequence_count else 0.0

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result.update({
            'average_time_gap': self.average_time_gap,
            'average_duration': self.average_duration,
            'average_sequence_length': self.average_sequence_length,
        })
        return result

    def summary(self) -> str:
        return (f"Total number of sequences: {self.sequence_count}, total number of observations: "
                f"{self.observation_count}, average observation per sequence: {self.average_sequence_length:.2f}, "
                f"average time gap: {self.average_time_gap:.2f}, average duration: {self.average_duration:.2f}, "
                f"number of long stay points: {self.long_duration_count}, maximum duration: {self.max_duration}, "
                f"number of potential pedestrian sequences (<5km/h): {self.low_speed_sequence_count}.")


def should_cut(current: BTObservation, following: BTObservation, dist_func: DistanceFunction,
               max_time_gap: int = MAX_TIME_GAP_SECONDS) -> bool:
    """
    Decide whether a trip ends between two observations.

    The trip is cut when the time gap exceeds max_time_gap and the average speed
    between the two stations over that gap is below the cut speed (15 km/h).
    """
    time_diff = following.enter_time - current.leave_time
    if time_diff <= max_time_gap:
        return False
    avg_speed = dist_func.distance(current.station.centre, following.station.centre) / time_diff
    return avg_speed < TRIP_CUT_SPEED_MPS


def split_sequence(sequence: ObservationSequence, dist_func: DistanceFunction,
                   max_time_gap: int = MAX_TIME_GAP_SECONDS,
                   stats: Optional[SegmentationStats] = None) -> List[List[BTObservation]]:
    """
    Split one chronologically sorted device sequence into trips.

    An observation nested inside the current one (it leaves before the current
    one does) is skipped and plays no part in the cut decision.

    Returns:
        Observation lists of the trips, each with at least two observations
    """
    observations = sequence.observations
    if not observations:
        return []

    trips: List[List[BTObservation]] = []
    current_trip = [observations[0]]
    current = observations[0]
    for following in observations[1:]:
        if following.leave_time < current.leave_time:
            if stats is not None:
                stats.nested_observation_count += 1
            continue
        if should_cut(current, following, dist_func, max_time_gap):
            if stats is not None:
                stats.cut_count += 1
            _close_trip(current_trip, trips, stats)
            current_trip = [following]
        else:
            current_trip.append(following)
        current = following
    _close_trip(current_trip, trips, stats)
    return trips


def _close_trip(trip: List[BTObservation], trips: List[List[BTObservation]],
                stats: Optional[SegmentationStats]) -> None:
    if len(trip) >= MIN_SEQUENCE_LENGTH:
        trips.append(trip)
    elif stats is not None:
        stats.dropped_singleton_count += len(trip)


def segment_observation_sequences(sequences: List[ObservationSequence], dist_func: DistanceFunction,
                                  max_time_gap: int = MAX_TIME_GAP_SECONDS,
                                  start_id: int = 0) -> Tuple[List[ObservationSequence], SegmentationStats]:
    """
    Segment device sequences into trips.

    Args:
        sequences: One sequence per device, each sorted by (enter, leave) time
        dist_func: Distance function for station-to-station distances
        max_time_gap: Time gap (seconds) above which a slow transition is cut
        start_id: First ID assigned to the emitted sequences

    Returns:
        Tuple of (trips with consecutive IDs from start_id, statistics of the run)
    """
    validate_parameter_ranges(max_time_gap=max_time_gap)

    stats = SegmentationStats(input_sequence_count=len(sequences))
    result: List[ObservationSequence] = []
    next_id = start_id
    for sequence in sequences:
        for trip in split_sequence(sequence, dist_func, max_time_gap, stats):
            result.append(ObservationSequence(next_id, trip))
            next_id += 1

    for sequence in result:
        _collect_sequence_stats(sequence, dist_func, stats)
    stats.sequence_count = len(result)

    logger.info(f"Segmented {len(sequences)} device sequences into {len(result)} trips, "
                f"{stats.cut_count} cuts, {stats.nested_observation_count} nested observations skipped")
    return result, stats


def _collect_sequence_stats(sequence: ObservationSequence, dist_func: DistanceFunction,
                            stats: SegmentationStats) -> None:
    stats.observation_count += len(sequence)
    for ob in sequence.observations:
        duration = ob.duration
        stats.total_duration += min(duration, LONG_DURATION_SECONDS)
        if duration > LONG_DURATION_SECONDS:
            stats.long_duration_count += 1
        stats.max_duration = max(stats.max_duration, duration)

    distance = 0.0
    for current, following in zip(sequence.observations, sequence.observations[1:]):
        distance += dist_func.distance(current.station.centre, following.station.centre)
        stats.total_time_diff += max(following.enter_time - current.leave_time, 0)
        stats.gap_count += 1

    elapsed = sequence.end_time - sequence.start_time
    if elapsed > 0:
        avg_speed = distance / elapsed
        if 0 < avg_speed < PEDESTRIAN_SPEED_MPS:
            stats.low_speed_sequence_count += 1
