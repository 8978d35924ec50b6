"""
API schemas (Pydantic models) for request/response validation.
"""

from typing import Optional

from pydantic import BaseModel, Field


# ============================================================================
# Session Schemas
# ============================================================================

class LoadSessionRequest(BaseModel):
    """Request to load a session from a server URL or a local folder."""
    source: str = Field(..., min_length=1)


class CameraResponse(BaseModel):
    name: str
    display_name: str
    type: str
    description: str
    resolution: str
    color: str
    session: str
    detection_count: int
    image_count: int
    classes: list[str]


class GPSStatisticsResponse(BaseModel):
    total_points: int
    source_counts: dict[str, int]
    bounds: Optional[tuple[float, float, float, float]] = None  # (min_lat, min_lon, max_lat, max_lon)
    coverage: float
    track_length_m: float


class SessionResponse(BaseModel):
    """Summary of the published session."""
    session_name: str
    session_path: str
    generation: int
    loaded_at: Optional[str] = None
    frame_count: int
    is_empty: bool
    total_detections: int
    cameras: list[CameraResponse]
    gps_statistics: GPSStatisticsResponse
    system_sample_count: int
    failures: dict[str, str]


class SessionStatsResponse(BaseModel):
    frame_count: int
    total_detections: int
    unique_classes: list[str]
    duration_s: float
    images_in_timeline: int
    track_length_m: float


# ============================================================================
# Timeline Schemas
# ============================================================================

class DetectionResponse(BaseModel):
    frame_num: int
    stream_id: int
    class_name: str
    confidence: float
    left: float
    top: float
    width: float
    height: float
    timestamp: Optional[str] = None
    image_path: Optional[str] = None
    obj_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class FrameResponse(BaseModel):
    """One synchronized timeline frame."""
    index: int
    timestamp: str
    date: str
    time: str
    latitude: float
    longitude: float
    gps_source: str
    detections: list[DetectionResponse]
    images: dict[str, dict[str, list[str]]]
    full_paths: dict[str, dict[str, list[str]]]


class TimelineResponse(BaseModel):
    total: int
    start: int
    frames: list[FrameResponse]


class GPSFixResponse(BaseModel):
    timestamp: str
    date: str
    time: str
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    source: str


class SystemSampleResponse(BaseModel):
    timestamp: str
    cpu_usage_percent: float
    gpu_usage_percent: float
    memory_used_mb: float
    memory_total_mb: float
    memory_usage_percent: float
    swap_used_mb: float
    swap_total_mb: float
    swap_usage_percent: float
    disk_used_gb: float
    disk_total_gb: float
    disk_usage_percent: float
    cpu_temp_celsius: float
    gpu_temp_celsius: float
    thermal_temp_celsius: float
    fan_speed_percent: float
    power_total_watts: float
    power_cpu_watts: float
    power_gpu_watts: float
    uptime_seconds: float


# ============================================================================
# Playback Schemas
# ============================================================================

class PlaybackStateResponse(BaseModel):
    current_index: int
    is_playing: bool
    speed_multiplier: float
    length: int
    tick_period_s: float


class SeekRequest(BaseModel):
    index: int


class StepRequest(BaseModel):
    delta: int = 1


class SpeedRequest(BaseModel):
    """Playback speed multiplier; must be positive."""
    multiplier: float
