"""
Input validation utilities and error types for core functions.

This module provides the exception taxonomy and validation helpers used to
keep the loaders and the road network graph consistent.
"""

import logging
from typing import List, Optional, Sequence

from core.constants import RAW_RECORD_COLUMNS

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Fatal input inconsistency, such as a malformed record or conflicting station."""
    pass


class GraphIntegrityError(Exception):
    """Structural invariant of the road network graph has been violated."""
    pass


def validate_raw_record_fields(fields: Sequence[str], line: str = "") -> List[str]:
    """
    Validate the field layout of one raw Bluetooth record.

    Args:
        fields: Values of the record, already split
        line: Original record text for error messages

    Returns:
        The fields as a list

    Raises:
        ValidationError: If the field count is wrong or a field is missing
    """
    if len(fields) != len(RAW_RECORD_COLUMNS):
        raise ValidationError(f"Input record format length is wrong: {line or fields}")

    missing = [name for name, value in zip(RAW_RECORD_COLUMNS, fields)
               if value is None or (isinstance(value, float) and value != value)]
    if missing:
        raise ValidationError(f"Input record is missing fields {missing}: {line or fields}")

    return list(fields)


def validate_station_consistency(station_id: str, known_centre, new_centre) -> None:
    """
    Check that a station ID is not reported at two different places.

    Raises:
        ValidationError: If the two centres differ
    """
    if not known_centre.equals_2d(new_centre):
        raise ValidationError(
            f"The same Bluetooth reader has different location: {station_id}, "
            f"{known_centre}, {new_centre}"
        )


def validate_parameter_ranges(
    max_time_gap: Optional[float] = None,
    boundary_extension: Optional[float] = None,
    workers: Optional[int] = None,
) -> None:
    """
    Validate parameter ranges for segmentation and loading.

    Args:
        max_time_gap: Maximum gap inside one trip in seconds
        boundary_extension: Buffer around the station boundary in meters
        workers: Number of parsing workers

    Raises:
        ValidationError: If any parameter is out of valid range
    """
    if max_time_gap is not None:
        if not 0 < max_time_gap <= 86400:  # one day max
            raise ValidationError(f"Max time gap must be 0-86400s, got {max_time_gap}")

    if boundary_extension is not None:
        if not 0 <= boundary_extension <= 100000:  # 100km max
            raise ValidationError(f"Boundary extension must be 0-100000m, got {boundary_extension}")

    if workers is not None:
        if workers < 1:
            raise ValidationError(f"Worker count must be positive, got {workers}")
