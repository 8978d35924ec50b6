"""
Per-source survey records (normalized, not yet synchronized).

The record normalizer turns provider rows into these structures before the
timeline synthesizer merges them.
"""

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Optional


EPOCH_SENTINEL_DATE = "1970-01-01"
EPOCH_SENTINEL_TIME = "00:00:00"
EPOCH_SENTINEL = f"{EPOCH_SENTINEL_DATE} {EPOCH_SENTINEL_TIME}"


class GPSSource(Enum):
    """Where a GPS fix came from."""

    TRACK_LOG = "track_log"
    METADATA = "metadata"    # embedded lat/lon columns of detection metadata
    SYNTHETIC = "synthetic"  # placeholder trace, never real GPS


class TripleKey(NamedTuple):
    """(session, camera, anomaly type) key of one detection/image stream."""

    session: str
    camera: str
    anomaly_type: str

    def label(self) -> str:
        return f"{self.session}/{self.camera}/{self.anomaly_type}"


@dataclass(frozen=True)
class GPSFix:
    """One positional sample."""

    timestamp: str
    date: str
    time: str
    epoch_s: float
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    source: GPSSource = GPSSource.TRACK_LOG

    @property
    def has_position(self) -> bool:
        return self.latitude != 0.0 or self.longitude != 0.0


@dataclass(frozen=True)
class SystemSample:
    """One embedded-system telemetry snapshot."""

    timestamp: str
    date: str
    time: str
    epoch_s: float
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


@dataclass(frozen=True)
class Detection:
    """
    One bounding-box observation.

    Box geometry is in source-image pixels. stream_id identifies the camera
    lane that produced the detection.
    """

    frame_num: int
    stream_id: int
    class_name: str
    confidence: float
    left: float
    top: float
    width: float
    height: float
    timestamp: Optional[str] = None
    epoch_s: Optional[float] = None
    image_path: Optional[str] = None
    obj_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_position(self) -> bool:
        return (
            self.latitude is not None
            and self.longitude is not None
            and (self.latitude != 0.0 or self.longitude != 0.0)
        )


@dataclass(frozen=True)
class ImageRef:
    """One entry of an image listing."""

    name: str
    size: int = 0
    modified: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class ManifestEntry:
    """One (session, camera, anomaly type) stream found by the metadata scan."""

    session: str
    camera: str
    anomaly_type: str
    image_count: int = 0
    has_images: bool = False
    has_metadata: bool = True
    record_count: Optional[int] = None

    @property
    def key(self) -> TripleKey:
        return TripleKey(self.session, self.camera, self.anomaly_type)
