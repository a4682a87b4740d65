"""
FastAPI backend for BT Trip Prep.

This provides REST API endpoints for trip segmentation of Bluetooth
observations and for the structural road map operations.
"""

from fastapi import FastAPI, UploadFile, File, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Dict, List, Optional, Any
import logging
import io
import sys
import os

# Add parent directory to path to import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Initialize logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from config.settings import (
    APP_NAME, APP_VERSION, APP_DESCRIPTION, MAX_UPLOAD_SIZE_MB, DEFAULT_TIME_ZONE,
    SegmentationConfig, MapConfig,
)
from core.constants import DEFAULT_BOUNDARY_EXTENSION_METERS, MAX_TIME_GAP_SECONDS
from core.io import format_map, format_station, parse_map
from core.observations import extend_boundary
from core.validation import ValidationError, GraphIntegrityError, validate_parameter_ranges
from services.preprocess_service import rectangle_to_dict, segment_observation_batch, transform_map

# Create FastAPI app
app = FastAPI(
    title=f"{APP_NAME} API",
    description=APP_DESCRIPTION,
    version=APP_VERSION
)

# Add CORS middleware for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",  # Dev frontend
        "http://localhost:3001",  # Dev frontend (alt port)
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# Pydantic models for API requests/responses
class BoundaryModel(BaseModel):
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float


class StationModel(BaseModel):
    station_id: str
    lon: float
    lat: float
    radius: float
    record: str


class SegmentationResponse(BaseModel):
    sequences: List[Dict[str, Any]]
    stations: List[StationModel]
    loader_statistics: Dict[str, Any]
    segmentation_statistics: Dict[str, Any]
    boundary: Optional[BoundaryModel]
    extended_boundary: Optional[BoundaryModel]


class MapTransformResponse(BaseModel):
    operation: str
    source: Dict[str, Any]
    result: Dict[str, Any]
    non_planar_count: Optional[int] = None
    is_planar: Optional[bool] = None
    map_text: str


async def _read_upload(file: UploadFile) -> str:
    """Read an uploaded text file, enforcing the size limit."""
    content = await file.read()
    max_size = MAX_UPLOAD_SIZE_MB * 1024 * 1024
    if len(content) > max_size:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {MAX_UPLOAD_SIZE_MB}MB, received {len(content) / 1024 / 1024:.1f}MB"
        )
    if not content.strip():
        raise HTTPException(status_code=400, detail="File appears to be empty")
    try:
        return content.decode('utf-8')
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="File is not UTF-8 text")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": f"{APP_NAME} API",
        "version": APP_VERSION,
        "endpoints": {
            "POST /api/observations/segment": "Segment a raw Bluetooth observation file into trips",
            "POST /api/map/transform": "Apply a structural operation to a map file",
            "GET /api/config": "Default configuration values",
            "GET /api/health": "Health check endpoint"
        }
    }


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "bt-trip-prep-api"}


@app.get("/api/config")
async def get_config():
    """Get default configuration values."""
    return {
        "segmentation": SegmentationConfig.as_dict(),
        "map": MapConfig.as_dict(),
        "ranges": {
            "max_time_gap": {"min": 1, "max": 86400, "step": 60},
            "boundary_extension": {"min": 0, "max": 100000, "step": 100},
        }
    }


@app.post("/api/observations/segment", response_model=SegmentationResponse)
async def segment_observations(
    file: UploadFile = File(...),
    max_time_gap: int = MAX_TIME_GAP_SECONDS,
    boundary_extension: float = DEFAULT_BOUNDARY_EXTENSION_METERS,
    time_zone: str = DEFAULT_TIME_ZONE
):
    """
    Segment a raw Bluetooth observation file.

    Args:
        file: Raw CSV file (deviceid,enterTime,duration,stationID,lat,lon,owner)
        max_time_gap: Time gap in seconds above which a slow transition ends a trip
        boundary_extension: Buffer around the station boundary in meters
        time_zone: Time zone of the enter times

    Returns:
        Trips, stations, statistics and the station boundary
    """
    try:
        validate_parameter_ranges(max_time_gap=max_time_gap, boundary_extension=boundary_extension)
        text = await _read_upload(file)
        logger.info(f"Processing file: {file.filename}")

        loaded, trips, stats = segment_observation_batch([io.StringIO(text)], max_time_gap=max_time_gap,
                                                         time_zone=time_zone)
        boundary = loaded.boundary()
        extended = extend_boundary(boundary, boundary_extension) if boundary is not None else None

        return SegmentationResponse(
            sequences=[sequence.to_dict() for sequence in trips],
            stations=[
                StationModel(
                    station_id=station.station_id,
                    lon=station.centre.x,
                    lat=station.centre.y,
                    radius=station.radius,
                    record=format_station(station),
                )
                for station in loaded.stations
            ],
            loader_statistics=loaded.statistics.to_dict(),
            segmentation_statistics=stats.to_dict(),
            boundary=rectangle_to_dict(boundary),
            extended_boundary=rectangle_to_dict(extended),
        )

    except HTTPException:
        raise
    except ValidationError as e:
        logger.warning(f"Invalid observation file: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error segmenting observations: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error segmenting observations: {str(e)}")


@app.post("/api/map/transform", response_model=MapTransformResponse)
async def transform_map_file(
    file: UploadFile = File(...),
    operation: str = "compact"
):
    """
    Apply a structural operation to a map file.

    Args:
        file: Map file in the text map format
        operation: compact, loose, undirected or planarity

    Returns:
        Summaries of the input and resulting map, and the resulting map text
    """
    try:
        text = await _read_upload(file)
        logger.info(f"Processing map file: {file.filename}, operation: {operation}")
        graph = parse_map(text)
        result = transform_map(graph, operation)
        return MapTransformResponse(map_text=format_map(result.graph), **result.to_dict())

    except HTTPException:
        raise
    except (ValidationError, GraphIntegrityError) as e:
        logger.warning(f"Invalid map request: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error transforming map: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error transforming map: {str(e)}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
