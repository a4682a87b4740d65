#!/usr/bin/env python3
"""
Run the preprocessing pipeline from the command line.

Usage:
    python run_preprocess.py observations [--root DIR] [--max-time-gap 1200] [--workers 4]
    python run_preprocess.py map [--root DIR] [--extension 5000]
    python run_preprocess.py transform MAP_FILE OPERATION [--output FILE]
"""

import argparse
import logging
import sys
from pathlib import Path

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from config.settings import DEFAULT_TIME_ZONE, DEFAULT_WORKERS, MAP_OPERATIONS, PathConfig, init_logging
from core.constants import DEFAULT_BOUNDARY_EXTENSION_METERS, MAX_TIME_GAP_SECONDS
from core.io import read_map, read_station_file, write_map
from core.observations import extend_boundary, station_boundary
from core.validation import GraphIntegrityError, ValidationError, validate_parameter_ranges
from services.preprocess_service import preprocess_map, preprocess_observations, transform_map

logger = logging.getLogger(__name__)


def run_observations(args) -> int:
    paths = PathConfig(args.root)
    result = preprocess_observations(
        paths,
        max_time_gap=args.max_time_gap,
        boundary_extension=args.extension,
        workers=args.workers,
        time_zone=args.time_zone,
    )
    logger.info(f"Observation preprocessing done: {result.sequence_count} trips, "
                f"{len(result.stations)} stations, {result.device_count} devices.")
    return 0


def run_map(args) -> int:
    paths = PathConfig(args.root)
    bounds = None
    if Path(paths.station_file).exists():
        boundary = station_boundary(read_station_file(paths.station_file))
        if boundary is not None:
            bounds = extend_boundary(boundary, args.extension)
    if bounds is None:
        logger.warning("No station file found, the whole OSM extract is used.")
    graph = preprocess_map(args.osm_file or paths.raw_osm_file, paths.map_file, bounds=bounds)
    logger.info(f"Map preprocessing done: {graph}")
    return 0


def run_transform(args) -> int:
    graph = read_map(args.map_file)
    result = transform_map(graph, args.operation)
    if result.non_planar_count is not None:
        print(f"Non-planar node count: {result.non_planar_count}")
    elif args.output:
        write_map(result.graph, args.output)
    print(result.graph)
    return 0


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Prepare Bluetooth observation trips and the road map for trip inference"
    )
    parser.add_argument(
        '--log-level',
        default='INFO',
        help='Root log level (default: INFO)'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    observations = subparsers.add_parser('observations', help='Segment raw observations into trips')
    observations.add_argument('--root', default=None, help='Data root folder')
    observations.add_argument('--max-time-gap', type=int, default=MAX_TIME_GAP_SECONDS,
                              help=f'Trip cut time gap in seconds (default: {MAX_TIME_GAP_SECONDS})')
    observations.add_argument('--extension', type=float, default=DEFAULT_BOUNDARY_EXTENSION_METERS,
                              help='Boundary buffer in meters')
    observations.add_argument('--workers', type=int, default=DEFAULT_WORKERS,
                              help='Parsing threads per batch')
    observations.add_argument('--time-zone', default=DEFAULT_TIME_ZONE,
                              help='Time zone of the raw enter times')
    observations.set_defaults(handler=run_observations)

    map_parser = subparsers.add_parser('map', help='Build the road map from the OSM extract')
    map_parser.add_argument('--root', default=None, help='Data root folder')
    map_parser.add_argument('--osm-file', default=None, help='OSM extract (default: raw map folder)')
    map_parser.add_argument('--extension', type=float, default=DEFAULT_BOUNDARY_EXTENSION_METERS,
                            help='Boundary buffer in meters')
    map_parser.set_defaults(handler=run_map)

    transform = subparsers.add_parser('transform', help='Apply a structural operation to a map file')
    transform.add_argument('map_file', help='Map file to read')
    transform.add_argument('operation', choices=MAP_OPERATIONS)
    transform.add_argument('--output', default=None, help='Where to write the resulting map')
    transform.set_defaults(handler=run_transform)

    args = parser.parse_args()

    root = getattr(args, 'root', None)
    log_path = init_logging(PathConfig(root).log_dir, level=getattr(logging, args.log_level.upper(), logging.INFO))
    logger.info(f"Logging to {log_path}")

    try:
        if hasattr(args, 'max_time_gap'):
            validate_parameter_ranges(max_time_gap=args.max_time_gap, boundary_extension=args.extension,
                                      workers=args.workers)
        elif hasattr(args, 'extension'):
            validate_parameter_ranges(boundary_extension=args.extension)
        return args.handler(args)
    except (ValidationError, GraphIntegrityError, FileNotFoundError) as e:
        logger.error(str(e))
        return 1


if __name__ == '__main__':
    sys.exit(main())
