"""
Observation sequence model.

A sequence is the chronologically ordered list of observations of a single
device, interpreted as one trip once segmented.
"""

from typing import Any, Dict, Iterator, List, Optional

import pandas as pd

from core.constants import EMPTY_DEVICE_ID, EMPTY_SEQUENCE_TIME
from core.models.station import BTObservation
from core.validation import ValidationError


class ObservationSequence:
    """
    Ordered observations of one device.

    The start time, end time and device ID are cached from the first and last
    observation. An empty sequence reports max-long sentinel times and device -1.
    """

    def __init__(self, sequence_id: int, observations: Optional[List[BTObservation]] = None):
        self.sequence_id = sequence_id
        self.set_observations(observations if observations is not None else [])

    def set_observations(self, observations: List[BTObservation]) -> None:
        self.observations = observations
        if observations:
            self.start_time = observations[0].enter_time
            self.end_time = observations[-1].leave_time
            self.device_id = observations[0].device_id
        else:
            self.start_time = EMPTY_SEQUENCE_TIME
            self.end_time = EMPTY_SEQUENCE_TIME
            self.device_id = EMPTY_DEVICE_ID

    def add_observation(self, observation: BTObservation) -> None:
        """
        Append an observation at the end of the sequence.

        Raises:
            ValidationError: If the observation enters before the current end time
        """
        if not self.observations:
            self.set_observations([observation])
            return
        if observation.enter_time < self.end_time:
            raise ValidationError(
                f"The new observation should not be added to the end of sequence {self.sequence_id} "
                f"due to early detect time: {observation.enter_time},{self.end_time}"
            )
        self.observations.append(observation)
        self.end_time = observation.leave_time

    def chronology_check(self) -> bool:
        """True if every observation leaves before the next one enters."""
        return all(curr.leave_time <= nxt.enter_time
                   for curr, nxt in zip(self.observations, self.observations[1:]))

    @property
    def duration(self) -> int:
        if not self.observations:
            return 0
        return self.end_time - self.start_time

    def travel_distance(self) -> float:
        """Sum of station-to-station distances along the sequence in meters."""
        return sum(curr.station.centre.distance_to(nxt.station.centre)
                   for curr, nxt in zip(self.observations, self.observations[1:]))

    def __len__(self) -> int:
        return len(self.observations)

    def __iter__(self) -> Iterator[BTObservation]:
        return iter(self.observations)

    def __getitem__(self, index):
        return self.observations[index]

    def __repr__(self) -> str:
        return (f"ObservationSequence(id={self.sequence_id}, device={self.device_id}, "
                f"size={len(self)}, start={self.start_time}, end={self.end_time})")

    def to_dict(self) -> Dict[str, Any]:
        """Summary of the sequence for DataFrame creation."""
        duration = self.duration
        distance = self.travel_distance()
        return {
            'sequence_id': self.sequence_id,
            'device_id': self.device_id,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'duration': duration,
            'observation_count': len(self),
            'distance': distance,
            'avg_speed_ms': distance / duration if duration > 0 else 0.0,
            'stations': [ob.station.station_id for ob in self.observations],
        }


def sequences_to_dataframe(sequences: List[ObservationSequence]) -> pd.DataFrame:
    """
    Convert a list of sequences to a pandas DataFrame, one row per sequence.

    Args:
        sequences: List of ObservationSequence objects

    Returns:
        pandas DataFrame with sequence summaries
    """
    if not sequences:
        return pd.DataFrame()

    data = [sequence.to_dict() for sequence in sequences]
    return pd.DataFrame(data)


def observations_to_dataframe(sequences: List[ObservationSequence]) -> pd.DataFrame:
    """Flatten sequences to one row per observation."""
    rows = [
        {
            'sequence_id': sequence.sequence_id,
            'device_id': ob.device_id,
            'enter_time': ob.enter_time,
            'leave_time': ob.leave_time,
            'station_id': ob.station.station_id,
            'owner': ob.owner,
        }
        for sequence in sequences for ob in sequence.observations
    ]
    return pd.DataFrame(rows)
