"""
Services package.

Provides business logic layer between API and core algorithms.

Modules:
    preprocess_service: Observation preprocessing pipeline and map preparation
"""

from services.preprocess_service import (
    preprocess_observations,
    preprocess_map,
    transform_map,
    segment_observation_batch,
    ObservationPreprocessResult,
    MapTransformResult,
)

__all__ = [
    'preprocess_observations',
    'preprocess_map',
    'transform_map',
    'segment_observation_batch',
    'ObservationPreprocessResult',
    'MapTransformResult',
]
