"""
Text formats of the preprocessing outputs.

Station file, one station per line:

    stationID lon lat [radius][|nodeID nodeID ...]

Observation sequence file, one sequence per line:

    sequenceID deviceID startTime endTime|enterTime leaveTime stationID owner|...

Map file, a header followed by node and way records:

    # directed=true compact=false
    N nodeID lon lat
    W wayID|key=value;key=value|nodeID lon lat,nodeID lon lat,...

Coordinates are written with full float precision so that a written map or
station file reads back to identical coordinates.
"""

import io
import logging
import shutil
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, TextIO, Union

from core.constants import DEFAULT_STATION_RADIUS_METERS, MAP_TAG_KEYS
from core.geometry import DEFAULT_DISTANCE_FUNCTION, DistanceFunction, Point
from core.graph.network import RoadNetworkGraph
from core.models.road import RoadNode, RoadWay
from core.models.sequence import ObservationSequence
from core.models.station import BTObservation, BTStation
from core.validation import ValidationError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

FIELD_SEPARATOR = "|"
TAG_SEPARATOR = ";"
VERTEX_SEPARATOR = ","
NODE_RECORD = "N"
WAY_RECORD = "W"
MAP_HEADER_PREFIX = "#"


# =============================================================================
# FOLDERS
# =============================================================================

def create_folder(path: PathLike) -> Path:
    """Create a folder and its parents if missing."""
    folder = Path(path)
    folder.mkdir(parents=True, exist_ok=True)
    return folder


def clean_folder(path: PathLike) -> Path:
    """Empty a folder, creating it if missing."""
    folder = Path(path)
    if folder.exists():
        for child in folder.iterdir():
            if child.is_dir():
                shutil.rmtree(child)
            else:
                child.unlink()
    else:
        folder.mkdir(parents=True)
    return folder


def list_files(path: PathLike, suffix: Optional[str] = None) -> List[Path]:
    """
    Regular files of a folder, sorted by name.

    Raises:
        FileNotFoundError: If the folder does not exist
    """
    folder = Path(path)
    if not folder.is_dir():
        raise FileNotFoundError(f"Input folder is not found: {folder}")
    return sorted(p for p in folder.iterdir()
                  if p.is_file() and (suffix is None or p.name.endswith(suffix)))


def read_lines(source: Union[PathLike, TextIO]) -> List[str]:
    if hasattr(source, 'read'):
        content = source.read()
        if isinstance(content, bytes):
            content = content.decode('utf-8')
        return content.splitlines()
    with open(source, 'r', encoding='utf-8') as f:
        return f.read().splitlines()


def _write_lines(lines: Iterable[str], path: PathLike) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        for line in lines:
            f.write(line)
            f.write("\n")


# =============================================================================
# STATIONS
# =============================================================================

def format_station(station: BTStation) -> str:
    line = f"{station.station_id} {station.centre.x} {station.centre.y}"
    if station.radius != DEFAULT_STATION_RADIUS_METERS:
        line += f" {station.radius}"
    if station.covering_node_ids:
        line += FIELD_SEPARATOR + " ".join(station.covering_node_ids)
    return line


def parse_station(line: str, dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION) -> BTStation:
    """
    Raises:
        ValidationError: If the line is not a station record
    """
    head, _, nodes = line.partition(FIELD_SEPARATOR)
    fields = head.split()
    if len(fields) not in (3, 4):
        raise ValidationError(f"Station record format is wrong: {line}")
    try:
        lon, lat = float(fields[1]), float(fields[2])
        radius = float(fields[3]) if len(fields) == 4 else DEFAULT_STATION_RADIUS_METERS
    except ValueError as e:
        raise ValidationError(f"Station record has non-numeric values: {line}") from e
    return BTStation(fields[0], Point(lon, lat, dist_func), radius, nodes.split())


def write_station_file(stations: Iterable[BTStation], path: PathLike) -> None:
    stations = list(stations)
    _write_lines((format_station(s) for s in stations), path)
    logger.info(f"Wrote {len(stations)} stations to {path}")


def read_station_file(source: Union[PathLike, TextIO],
                      dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION) -> List[BTStation]:
    """
    Read a station file.

    Raises:
        ValidationError: On a malformed line or a station ID listed twice
    """
    stations: Dict[str, BTStation] = {}
    for line in read_lines(source):
        if not line.strip():
            continue
        station = parse_station(line, dist_func)
        if station.station_id in stations:
            raise ValidationError(f"Station {station.station_id} appears twice in the station file.")
        stations[station.station_id] = station
    return list(stations.values())


# =============================================================================
# OBSERVATION SEQUENCES
# =============================================================================

def format_sequence(sequence: ObservationSequence) -> str:
    parts = [f"{sequence.sequence_id} {sequence.device_id} {sequence.start_time} {sequence.end_time}"]
    for ob in sequence.observations:
        parts.append(f"{ob.enter_time} {ob.leave_time} {ob.station.station_id} {ob.owner}")
    return FIELD_SEPARATOR.join(parts)


def parse_sequence(line: str, stations: Mapping[str, BTStation]) -> ObservationSequence:
    """
    Parse one sequence line.

    Raises:
        ValidationError: If the line is malformed, refers to an unknown station or
            its header does not match the observations
    """
    parts = line.split(FIELD_SEPARATOR)
    header = parts[0].split()
    if len(header) != 4:
        raise ValidationError(f"Sequence header format is wrong: {parts[0]}")
    try:
        sequence_id, device_id, start_time, end_time = (int(value) for value in header)
    except ValueError as e:
        raise ValidationError(f"Sequence header has non-numeric values: {parts[0]}") from e

    observations = []
    for part in parts[1:]:
        fields = part.split(" ", 3)
        if len(fields) < 3:
            raise ValidationError(f"Observation record format is wrong in sequence {sequence_id}: {part}")
        station = stations.get(fields[2])
        if station is None:
            raise ValidationError(f"Observation refers to unknown station {fields[2]} in sequence {sequence_id}.")
        try:
            enter_time, leave_time = int(fields[0]), int(fields[1])
        except ValueError as e:
            raise ValidationError(f"Observation record has non-numeric times in sequence {sequence_id}: {part}") from e
        owner = fields[3] if len(fields) == 4 else ""
        observations.append(BTObservation(device_id, enter_time, leave_time, station, owner))

    sequence = ObservationSequence(sequence_id, observations)
    if (sequence.device_id, sequence.start_time, sequence.end_time) != (device_id, start_time, end_time):
        raise ValidationError(f"The header of sequence {sequence_id} is inconsistent with its observations.")
    return sequence


def write_sequence_file(sequences: Iterable[ObservationSequence], path: PathLike) -> None:
    sequences = list(sequences)
    _write_lines((format_sequence(s) for s in sequences), path)
    logger.info(f"Wrote {len(sequences)} sequences to {path}")


def read_sequence_file(source: Union[PathLike, TextIO],
                       stations: Mapping[str, BTStation]) -> List[ObservationSequence]:
    return [parse_sequence(line, stations) for line in read_lines(source) if line.strip()]


def read_sequence_folder(folder: PathLike, stations: Mapping[str, BTStation],
                         prefix: str = "") -> List[ObservationSequence]:
    """Read every sequence file of a folder whose name starts with the prefix."""
    sequences = []
    for path in list_files(folder):
        if path.name.startswith(prefix):
            sequences.extend(read_sequence_file(path, stations))
    logger.info(f"Read {len(sequences)} sequences from {folder}")
    return sequences


# =============================================================================
# ROAD MAP
# =============================================================================

def _format_tags(tags: Mapping[str, str]) -> str:
    items = []
    for key in MAP_TAG_KEYS:
        value = tags.get(key)
        if value is None:
            continue
        if any(c in value for c in (FIELD_SEPARATOR, TAG_SEPARATOR, "=")):
            logger.debug(f"Tag {key}={value} contains a reserved character, not written.")
            continue
        items.append(f"{key}={value}")
    return TAG_SEPARATOR.join(items)


def _parse_tags(text: str) -> Dict[str, str]:
    tags = {}
    for item in text.split(TAG_SEPARATOR):
        if item:
            key, _, value = item.partition("=")
            tags[key] = value
    return tags


def format_map(graph: RoadNetworkGraph) -> str:
    """Serialise a graph to the map text format."""
    out = io.StringIO()
    out.write(f"{MAP_HEADER_PREFIX} directed={str(graph.is_directed_map).lower()} "
              f"compact={str(graph.is_compact_map).lower()}\n")
    for node in graph.nodes:
        out.write(f"{NODE_RECORD} {node.node_id} {node.lon} {node.lat}\n")
    for way in graph.ways:
        vertices = VERTEX_SEPARATOR.join(f"{n.node_id} {n.lon} {n.lat}" for n in way.nodes)
        out.write(f"{WAY_RECORD} {way.way_id}{FIELD_SEPARATOR}{_format_tags(way.tags)}{FIELD_SEPARATOR}{vertices}\n")
    return out.getvalue()


def _parse_header(line: str) -> Dict[str, bool]:
    flags = {}
    for item in line[len(MAP_HEADER_PREFIX):].split():
        key, _, value = item.partition("=")
        flags[key] = value.lower() == "true"
    return flags


def _parse_vertex(text: str, dist_func: DistanceFunction) -> RoadNode:
    fields = text.split()
    if len(fields) != 3:
        raise ValidationError(f"Way vertex format is wrong: {text}")
    return RoadNode(fields[0], float(fields[1]), float(fields[2]), dist_func)


def parse_map(source: Union[str, TextIO], dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION) -> RoadNetworkGraph:
    """
    Rebuild a graph from the map text format.

    Raises:
        ValidationError: On a malformed record
        GraphIntegrityError: If a way endpoint is not a listed node or a way ID repeats
    """
    lines = source.splitlines() if isinstance(source, str) else read_lines(source)
    flags = {'directed': True, 'compact': False}
    nodes: List[RoadNode] = []
    id_to_node: Dict[str, RoadNode] = {}
    ways: List[RoadWay] = []

    try:
        for line in lines:
            if not line.strip():
                continue
            if line.startswith(MAP_HEADER_PREFIX):
                flags.update(_parse_header(line))
            elif line.startswith(NODE_RECORD + " "):
                fields = line.split()
                if len(fields) != 4:
                    raise ValidationError(f"Node record format is wrong: {line}")
                node = RoadNode(fields[1], float(fields[2]), float(fields[3]), dist_func)
                nodes.append(node)
                id_to_node.setdefault(node.node_id, node)
            elif line.startswith(WAY_RECORD + " "):
                parts = line[len(WAY_RECORD) + 1:].split(FIELD_SEPARATOR)
                if len(parts) != 3:
                    raise ValidationError(f"Way record format is wrong: {line}")
                way_id, tags, vertex_text = parts
                vertices = [_parse_vertex(text, dist_func) for text in vertex_text.split(VERTEX_SEPARATOR)]
                # endpoints are the registered intersections
                for index in (0, -1):
                    vertices[index] = id_to_node.get(vertices[index].node_id, vertices[index])
                ways.append(RoadWay(way_id, vertices, dist_func, _parse_tags(tags)))
            else:
                raise ValidationError(f"Unknown map record: {line}")
    except ValueError as e:
        raise ValidationError(f"Map record has non-numeric coordinates: {e}") from e

    graph = RoadNetworkGraph(dist_func, is_directed_map=flags['directed'])
    graph.set_nodes(nodes)
    graph.add_ways(ways)
    if flags['compact']:
        graph.is_compact_map = True
    logger.info(f"Read map: {graph}")
    return graph


def write_map(graph: RoadNetworkGraph, path: PathLike) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(format_map(graph))
    logger.info(f"Wrote map {graph} to {path}")


def read_map(source: Union[PathLike, TextIO],
             dist_func: DistanceFunction = DEFAULT_DISTANCE_FUNCTION) -> RoadNetworkGraph:
    """
    Raises:
        FileNotFoundError: If the map file does not exist
    """
    if hasattr(source, 'read'):
        return parse_map(source, dist_func)
    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"Map file not found: {path}")
    with open(path, 'r', encoding='utf-8') as f:
        return parse_map(f.read(), dist_func)
