"""
Bluetooth station and observation models.

This module defines the fixed sensors of the network and the single detection
events they report.
"""

from dataclasses import dataclass, field
from typing import List

from core.constants import DEFAULT_STATION_RADIUS_METERS
from core.geometry import DEFAULT_DISTANCE_FUNCTION, DistanceFunction, Point


@dataclass(eq=False)
class BTStation:
    """
    A Bluetooth station located at a fixed place.

    The station detects devices within its radius, which covers one or more
    road intersections. Two stations are the same station when their IDs match.
    """
    station_id: str
    centre: Point
    radius: float = DEFAULT_STATION_RADIUS_METERS
    covering_node_ids: List[str] = field(default_factory=list)

    @classmethod
    def at(cls, station_id: str, lon: float, lat: float,
           dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION, **kwargs) -> "BTStation":
        """Build a station from raw coordinates."""
        return cls(station_id, Point(lon, lat, dist_func), **kwargs)

    @property
    def dist_func(self) -> DistanceFunction:
        return self.centre.dist_func

    def add_covering_node(self, node_id: str) -> None:
        self.covering_node_ids.append(node_id)

    def __eq__(self, other) -> bool:
        if not isinstance(other, BTStation):
            return NotImplemented
        return self.station_id == other.station_id

    def __hash__(self) -> int:
        return hash(self.station_id)


@dataclass(frozen=True)
class BTObservation:
    """
    One detection of a device by a station.

    Times are epoch seconds. Observations order by enter time, then by leave time.
    """
    device_id: int
    enter_time: int
    leave_time: int
    station: BTStation = field(compare=False)
    owner: str = field(default="", compare=False)

    @classmethod
    def from_duration(cls, device_id: int, enter_time: int, duration: int,
                      station: BTStation, owner: str = "") -> "BTObservation":
        return cls(device_id, enter_time, enter_time + duration, station, owner)

    @property
    def duration(self) -> int:
        return self.leave_time - self.enter_time

    @property
    def sort_key(self):
        return self.enter_time, self.leave_time

    def __lt__(self, other: "BTObservation") -> bool:
        return self.sort_key < other.sort_key
