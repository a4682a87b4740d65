"""
Geometry primitives and distance functions.

Points, segments and rectangles are immutable and carry the distance function
used for any metric question about them. The distance function is a stateless
policy object, so one instance is shared by every spatial entity of a run.
"""

import math
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from geopy.distance import EARTH_RADIUS, great_circle

logger = logging.getLogger(__name__)


# =============================================================================
# DISTANCE FUNCTIONS
# =============================================================================

class DistanceFunction:
    """
    Interface of a pluggable distance function.

    Coordinates are (x=longitude, y=latitude). Implementations must be
    stateless so they can be shared between threads.
    """

    def distance(self, a: "Point", b: "Point") -> float:
        """Distance between two points in meters."""
        raise NotImplementedError

    def coordinate_offset_x(self, meters: float, at_latitude: float) -> float:
        """Longitude delta covering `meters` along a parallel at the given latitude."""
        raise NotImplementedError

    def coordinate_offset_y(self, meters: float, at_longitude: float) -> float:
        """Latitude delta covering `meters` along a meridian at the given longitude."""
        raise NotImplementedError


class GreatCircleDistanceFunction(DistanceFunction):
    """Great-circle distance on a spherical earth (geopy's mean radius)."""

    def __init__(self, radius_km: float = EARTH_RADIUS):
        self.radius_m = radius_km * 1000

    def distance(self, a: "Point", b: "Point") -> float:
        return great_circle((a.y, a.x), (b.y, b.x), radius=self.radius_m / 1000).meters

    def coordinate_offset_x(self, meters: float, at_latitude: float) -> float:
        return math.degrees(meters / (self.radius_m * math.cos(math.radians(at_latitude))))

    def coordinate_offset_y(self, meters: float, at_longitude: float) -> float:
        # meridians are great circles, the offset does not depend on the longitude
        return math.degrees(meters / self.radius_m)

    def __repr__(self) -> str:
        return f"GreatCircleDistanceFunction(radius_m={self.radius_m})"


class EuclideanDistanceFunction(DistanceFunction):
    """Planar distance for projected coordinates already expressed in meters."""

    def distance(self, a: "Point", b: "Point") -> float:
        return math.hypot(b.x - a.x, b.y - a.y)

    def coordinate_offset_x(self, meters: float, at_latitude: float) -> float:
        return meters

    def coordinate_offset_y(self, meters: float, at_longitude: float) -> float:
        return meters


DEFAULT_DISTANCE_FUNCTION = GreatCircleDistanceFunction()


# =============================================================================
# PRIMITIVES
# =============================================================================

@dataclass(frozen=True)
class Point:
    """
    A 2D point (x=longitude, y=latitude).

    Equality is exact on the coordinates; the distance function does not take
    part in comparisons or hashing.
    """
    x: float
    y: float
    dist_func: DistanceFunction = field(default=DEFAULT_DISTANCE_FUNCTION, compare=False, repr=False)

    def equals_2d(self, other: Optional["Point"]) -> bool:
        if other is None:
            return False
        return self.x == other.x and self.y == other.y

    def distance_to(self, other: "Point") -> float:
        """Distance to another point in meters."""
        return self.dist_func.distance(self, other)

    def __str__(self) -> str:
        return f"{self.x} {self.y}"


@dataclass(frozen=True)
class Segment:
    """A straight line segment between (x1, y1) and (x2, y2)."""
    x1: float
    y1: float
    x2: float
    y2: float
    dist_func: DistanceFunction = field(default=DEFAULT_DISTANCE_FUNCTION, compare=False, repr=False)

    @property
    def start(self) -> Point:
        return Point(self.x1, self.y1, self.dist_func)

    @property
    def end(self) -> Point:
        return Point(self.x2, self.y2, self.dist_func)

    @property
    def length(self) -> float:
        """Length in meters."""
        return self.dist_func.distance(self.start, self.end)

    def equals_2d(self, other: Optional["Segment"]) -> bool:
        if other is None:
            return False
        return (self.x1, self.y1, self.x2, self.y2) == (other.x1, other.y1, other.x2, other.y2)

    def crosses(self, other: "Segment") -> bool:
        """
        Check whether the two segments cross at a point interior to both.

        Touching at an endpoint or overlapping collinearly is not a crossing.
        """
        d1 = _orientation(other.x1, other.y1, other.x2, other.y2, self.x1, self.y1)
        d2 = _orientation(other.x1, other.y1, other.x2, other.y2, self.x2, self.y2)
        d3 = _orientation(self.x1, self.y1, self.x2, self.y2, other.x1, other.y1)
        d4 = _orientation(self.x1, self.y1, self.x2, self.y2, other.x2, other.y2)
        return d1 * d2 < 0 and d3 * d4 < 0


def _orientation(ax: float, ay: float, bx: float, by: float, cx: float, cy: float) -> float:
    """Signed area of the triangle (a, b, c): >0 counter-clockwise, <0 clockwise, 0 collinear."""
    return (bx - ax) * (cy - ay) - (by - ay) * (cx - ax)


@dataclass(frozen=True)
class Rectangle:
    """
    An axis-aligned rectangle defined by its lower-left and upper-right corners.
    """
    min_x: float
    min_y: float
    max_x: float
    max_y: float
    dist_func: DistanceFunction = field(default=DEFAULT_DISTANCE_FUNCTION, compare=False, repr=False)

    @property
    def width(self) -> float:
        return abs(self.max_x - self.min_x)

    @property
    def height(self) -> float:
        return abs(self.max_y - self.min_y)

    @property
    def area(self) -> float:
        return (self.max_y - self.min_y) * (self.max_x - self.min_x)

    @property
    def perimeter(self) -> float:
        return 2 * self.height + 2 * self.width

    @property
    def center(self) -> Point:
        return Point(self.min_x + (self.max_x - self.min_x) / 2,
                     self.min_y + (self.max_y - self.min_y) / 2,
                     self.dist_func)

    @property
    def corners(self) -> List[Point]:
        return [
            Point(self.min_x, self.min_y, self.dist_func),
            Point(self.min_x, self.max_y, self.dist_func),
            Point(self.max_x, self.max_y, self.dist_func),
            Point(self.max_x, self.min_y, self.dist_func),
        ]

    @property
    def left_edge(self) -> Segment:
        return Segment(self.min_x, self.min_y, self.min_x, self.max_y, self.dist_func)

    @property
    def right_edge(self) -> Segment:
        return Segment(self.max_x, self.min_y, self.max_x, self.max_y, self.dist_func)

    @property
    def lower_edge(self) -> Segment:
        return Segment(self.min_x, self.min_y, self.max_x, self.min_y, self.dist_func)

    @property
    def upper_edge(self) -> Segment:
        return Segment(self.min_x, self.max_y, self.max_x, self.max_y, self.dist_func)

    @property
    def edges(self) -> List[Segment]:
        return [self.left_edge, self.upper_edge, self.right_edge, self.lower_edge]

    def is_square(self) -> bool:
        return self.height == self.width

    def is_adjacent(self, other: Optional["Rectangle"]) -> bool:
        """True if the two rectangles share an edge."""
        if other is None:
            return False
        return any(e1.equals_2d(e2) for e1 in self.edges for e2 in other.edges)

    def contains(self, x: float, y: float) -> bool:
        """True if (x, y) lies inside or on the perimeter."""
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y

    def contains_point(self, point: Point) -> bool:
        return self.contains(point.x, point.y)

    def contains_rectangle(self, other: "Rectangle") -> bool:
        return (self.min_x <= other.min_x and other.max_x <= self.max_x
                and self.min_y <= other.min_y and other.max_y <= self.max_y)

    def overlaps(self, other: Optional["Rectangle"]) -> bool:
        if other is None:
            return False
        if self.max_x < other.min_x or self.min_x > other.max_x:
            return False
        return not (self.max_y < other.min_y or self.min_y > other.max_y)

    def extend_by_dist(self, meters: float) -> "Rectangle":
        """
        Grow the rectangle by a metric buffer on every side.

        All four offsets are computed from this (unmodified) rectangle: the
        longitude delta at its mid-latitude, the latitude delta at its
        mid-longitude.
        """
        mid_lat = (self.min_y + self.max_y) / 2
        mid_lon = (self.min_x + self.max_x) / 2
        dx = self.dist_func.coordinate_offset_x(meters, mid_lat)
        dy = self.dist_func.coordinate_offset_y(meters, mid_lon)
        return Rectangle(self.min_x - dx, self.min_y - dy, self.max_x + dx, self.max_y + dy, self.dist_func)

    def __str__(self) -> str:
        return (f"( {self.min_x} {self.min_y}, {self.min_x} {self.max_y}, "
                f"{self.max_x} {self.max_y}, {self.max_x} {self.min_y} )")


def bounding_box(points, dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION) -> Optional[Rectangle]:
    """
    Compute the bounding box of a collection of points.

    Returns:
        The rectangle, or None when no point is given
    """
    points = list(points)
    if not points:
        return None
    xs = [p.x for p in points]
    ys = [p.y for p in points]
    return Rectangle(min(xs), min(ys), max(xs), max(ys), dist_func)
