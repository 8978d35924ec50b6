"""
Session data model.

A SessionSnapshot is the immutable result of one load:
- cameras seen in the metadata scan
- the synchronized timeline (one frame per retained GPS fix)
- the raw GPS trace and system telemetry
- derived GPS statistics
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import numpy as np

from roadview.models.records import Detection, GPSFix, GPSSource, SystemSample
from roadview.utils.coordinates import track_length_m
from roadview.utils.timestamps import seconds_of_day, to_epoch_seconds


NO_FRAME = -1  # current index when the timeline is empty

HIGH_RES_STREAM_BASE = 100  # 4kcam detections use stream IDs >= 100


@dataclass(frozen=True)
class CameraConfig:
    """Static description of a known survey camera."""

    name: str
    display_name: str
    type: str
    resolution: str
    color: str
    description: str
    stream_id_base: int = 1


CAMERA_CONFIGS: dict[str, CameraConfig] = {
    "4kcam": CameraConfig(
        name="4kcam",
        display_name="4K Camera",
        type="High Resolution",
        resolution="4096x2160",
        color="#3B82F6",
        description="High-resolution 4K road inspection camera",
        stream_id_base=HIGH_RES_STREAM_BASE,
    ),
    "cam1": CameraConfig(
        name="cam1",
        display_name="Camera 1",
        type="Standard",
        resolution="1920x1080",
        color="#10B981",
        description="Standard resolution road inspection camera",
    ),
    "argus0": CameraConfig(
        name="argus0",
        display_name="Argus Camera 0",
        type="Multi-sensor",
        resolution="1920x1080",
        color="#F59E0B",
        description="Multi-sensor inspection camera",
    ),
    "argus1": CameraConfig(
        name="argus1",
        display_name="Argus Camera 1",
        type="Multi-sensor",
        resolution="1920x1080",
        color="#EF4444",
        description="Multi-sensor inspection camera",
    ),
}

CLASS_COLORS: dict[str, str] = {
    "crack": "#EF4444",
    "pole": "#3B82F6",
    "pothole": "#F59E0B",
    "crosswalk_blur": "#8B5CF6",
    "white_line_blur": "#10B981",
    "facility": "#06B6D4",
}


def get_camera_config(name: str) -> CameraConfig:
    """Known camera config, or a neutral default for unknown cameras."""
    config = CAMERA_CONFIGS.get(name)
    if config is not None:
        return config
    return CameraConfig(
        name=name,
        display_name=name,
        type="Unknown",
        resolution="1920x1080",
        color="#6B7280",
        description="Road inspection camera",
    )


def camera_owns_stream(camera: str, stream_id: int) -> bool:
    """Cameras are told apart by stream-ID range, not by name."""
    if get_camera_config(camera).stream_id_base >= HIGH_RES_STREAM_BASE:
        return stream_id >= HIGH_RES_STREAM_BASE
    return stream_id < HIGH_RES_STREAM_BASE


@dataclass(frozen=True)
class TimelineFrame:
    """
    One synchronized frame, anchored at a GPS fix.

    images / full_paths: camera -> anomaly type -> image names / resolved paths.
    """

    timestamp: str
    date: str
    time: str
    epoch_s: float
    latitude: float
    longitude: float
    detections: tuple[Detection, ...] = ()
    images: dict[str, dict[str, tuple[str, ...]]] = field(default_factory=dict)
    full_paths: dict[str, dict[str, tuple[str, ...]]] = field(default_factory=dict)
    gps_source: GPSSource = GPSSource.TRACK_LOG

    def detections_for(self, camera: str, class_name: Optional[str] = None) -> list[Detection]:
        return [
            d for d in self.detections
            if camera_owns_stream(camera, d.stream_id)
            and (class_name is None or d.class_name == class_name)
        ]

    def image_count(self) -> int:
        return sum(len(names) for classes in self.images.values() for names in classes.values())


@dataclass(frozen=True)
class CameraInfo:
    """Aggregate description of one camera within one survey session."""

    name: str
    display_name: str
    type: str
    description: str
    resolution: str
    color: str
    session: str
    detection_count: int = 0
    image_count: int = 0
    classes: tuple[str, ...] = ()


@dataclass(frozen=True)
class GPSStatistics:
    """Derived statistics of the GPS trace."""

    total_points: int
    source_counts: dict[str, int]
    bounds: Optional[tuple[float, float, float, float]]  # (min_lat, min_lon, max_lat, max_lon)
    coverage: float
    track_length_m: float = 0.0

    @classmethod
    def from_trace(cls, trace: list[GPSFix], coverage: float) -> "GPSStatistics":
        counts = {source.value: 0 for source in GPSSource}
        for fix in trace:
            counts[fix.source.value] += 1

        positioned = [fix for fix in trace if fix.has_position]
        if not positioned:
            return cls(
                total_points=len(trace),
                source_counts=counts,
                bounds=None,
                coverage=coverage,
            )

        lat = np.array([fix.latitude for fix in positioned], dtype=np.float64)
        lon = np.array([fix.longitude for fix in positioned], dtype=np.float64)
        return cls(
            total_points=len(trace),
            source_counts=counts,
            bounds=(float(lat.min()), float(lon.min()), float(lat.max()), float(lon.max())),
            coverage=coverage,
            track_length_m=track_length_m(lat, lon),
        )


@dataclass(frozen=True)
class SessionStats:
    """Summary figures shown next to the timeline."""

    frame_count: int
    total_detections: int
    unique_classes: tuple[str, ...]
    duration_s: float
    images_in_timeline: int


@dataclass(frozen=True)
class SessionSnapshot:
    """
    Immutable view of one loaded survey session.

    A new load always produces a new snapshot; nothing here is patched in
    place once published.
    """

    session_name: str
    session_path: str
    cameras: tuple[CameraInfo, ...]
    timeline: tuple[TimelineFrame, ...]
    gps_trace: tuple[GPSFix, ...]
    system_samples: tuple[SystemSample, ...]
    gps_statistics: GPSStatistics
    failures: dict[str, str] = field(default_factory=dict)
    generation: int = 0
    loaded_at: Optional[datetime] = None

    @property
    def frame_count(self) -> int:
        return len(self.timeline)

    @property
    def is_empty(self) -> bool:
        """Connected, manifest read, but nothing to play."""
        return len(self.timeline) == 0

    @property
    def total_detections(self) -> int:
        return sum(len(frame.detections) for frame in self.timeline)

    def frame_at(self, index: int) -> Optional[TimelineFrame]:
        if 0 <= index < len(self.timeline):
            return self.timeline[index]
        return None

    def camera(self, name: str, session: Optional[str] = None) -> Optional[CameraInfo]:
        for camera in self.cameras:
            if camera.name == name and (session is None or camera.session == session):
                return camera
        return None

    def nearest_index(self, target: str) -> int:
        """
        Index of the frame closest to target.

        A full timestamp is compared against frame timestamps; a bare
        'HH:MM[:SS]' is compared by time of day. Ties pick the earlier frame.
        """
        if not self.timeline:
            return NO_FRAME

        target_epoch = to_epoch_seconds(target)
        if target_epoch is not None:
            times = np.array([frame.epoch_s for frame in self.timeline], dtype=np.float64)
            return int(np.argmin(np.abs(times - target_epoch)))

        target_sod = seconds_of_day(target)
        if target_sod is None:
            raise ValueError(f"Unrecognized time: {target!r}")
        frame_sod = [seconds_of_day(frame.time) for frame in self.timeline]
        times = np.array([np.inf if s is None else s for s in frame_sod], dtype=np.float64)
        return int(np.argmin(np.abs(times - target_sod)))

    def stats(self) -> SessionStats:
        classes: list[str] = []
        for frame in self.timeline:
            for detection in frame.detections:
                if detection.class_name not in classes:
                    classes.append(detection.class_name)

        duration = 0.0
        if len(self.timeline) > 1:
            duration = float(self.timeline[-1].epoch_s - self.timeline[0].epoch_s)

        return SessionStats(
            frame_count=len(self.timeline),
            total_detections=self.total_detections,
            unique_classes=tuple(classes),
            duration_s=duration,
            images_in_timeline=sum(frame.image_count() for frame in self.timeline),
        )


@dataclass(frozen=True)
class PlaybackState:
    """Read-only copy of the playback controller's state."""

    current_index: int
    is_playing: bool
    speed_multiplier: float
    length: int
    tick_period_s: float
