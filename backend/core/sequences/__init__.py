"""
Sequences package.

Trip segmentation of per-device observation sequences.
"""

from .segmentation import (
    segment_observation_sequences,
    split_sequence,
    should_cut,
    SegmentationStats,
)

from core.models.sequence import ObservationSequence, sequences_to_dataframe, observations_to_dataframe

__all__ = [
    # Main segmentation function
    'segment_observation_sequences',

    # Building blocks
    'split_sequence',
    'should_cut',
    'SegmentationStats',

    # Models
    'ObservationSequence',
    'sequences_to_dataframe',
    'observations_to_dataframe',
]
