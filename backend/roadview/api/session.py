"""
API routes for the survey session.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from roadview.api.schemas import (
    CameraResponse,
    DetectionResponse,
    FrameResponse,
    GPSFixResponse,
    GPSStatisticsResponse,
    LoadSessionRequest,
    SessionResponse,
    SessionStatsResponse,
    SystemSampleResponse,
    TimelineResponse,
)
from roadview.models.records import Detection, GPSFix, SystemSample
from roadview.models.session import CameraInfo, SessionSnapshot, TimelineFrame
from roadview.services.errors import LoadSuperseded, ManifestUnavailable, ProviderUnreachable
from roadview.services.session import get_store


router = APIRouter(prefix="/session", tags=["session"])


def _require_snapshot() -> SessionSnapshot:
    snapshot = get_store().snapshot
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No session loaded")
    return snapshot


def _camera_response(camera: CameraInfo) -> CameraResponse:
    return CameraResponse(
        name=camera.name,
        display_name=camera.display_name,
        type=camera.type,
        description=camera.description,
        resolution=camera.resolution,
        color=camera.color,
        session=camera.session,
        detection_count=camera.detection_count,
        image_count=camera.image_count,
        classes=list(camera.classes),
    )


def _detection_response(detection: Detection) -> DetectionResponse:
    return DetectionResponse(
        frame_num=detection.frame_num,
        stream_id=detection.stream_id,
        class_name=detection.class_name,
        confidence=detection.confidence,
        left=detection.left,
        top=detection.top,
        width=detection.width,
        height=detection.height,
        timestamp=detection.timestamp,
        image_path=detection.image_path,
        obj_id=detection.obj_id,
        latitude=detection.latitude,
        longitude=detection.longitude,
    )


def frame_response(index: int, frame: TimelineFrame) -> FrameResponse:
    return FrameResponse(
        index=index,
        timestamp=frame.timestamp,
        date=frame.date,
        time=frame.time,
        latitude=frame.latitude,
        longitude=frame.longitude,
        gps_source=frame.gps_source.value,
        detections=[_detection_response(d) for d in frame.detections],
        images={cam: {cls: list(names) for cls, names in classes.items()} for cam, classes in frame.images.items()},
        full_paths={
            cam: {cls: list(paths) for cls, paths in classes.items()}
            for cam, classes in frame.full_paths.items()
        },
    )


def _gps_response(fix: GPSFix) -> GPSFixResponse:
    return GPSFixResponse(
        timestamp=fix.timestamp,
        date=fix.date,
        time=fix.time,
        latitude=fix.latitude,
        longitude=fix.longitude,
        altitude=fix.altitude,
        speed=fix.speed,
        heading=fix.heading,
        source=fix.source.value,
    )


def _system_response(sample: SystemSample) -> SystemSampleResponse:
    values = {name: getattr(sample, name) for name in SystemSampleResponse.model_fields}
    return SystemSampleResponse(**values)


def _session_response(snapshot: SessionSnapshot) -> SessionResponse:
    stats = snapshot.gps_statistics
    return SessionResponse(
        session_name=snapshot.session_name,
        session_path=snapshot.session_path,
        generation=snapshot.generation,
        loaded_at=snapshot.loaded_at.isoformat() if snapshot.loaded_at else None,
        frame_count=snapshot.frame_count,
        is_empty=snapshot.is_empty,
        total_detections=snapshot.total_detections,
        cameras=[_camera_response(c) for c in snapshot.cameras],
        gps_statistics=GPSStatisticsResponse(
            total_points=stats.total_points,
            source_counts=stats.source_counts,
            bounds=stats.bounds,
            coverage=stats.coverage,
            track_length_m=stats.track_length_m,
        ),
        system_sample_count=len(snapshot.system_samples),
        failures=snapshot.failures,
    )


async def _run_load(source: Optional[str] = None) -> SessionSnapshot:
    store = get_store()
    try:
        if source is None:
            return await store.refresh()
        return await store.load(source)
    except ManifestUnavailable as e:
        raise HTTPException(status_code=502, detail=str(e))
    except ProviderUnreachable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except LoadSuperseded as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/load", response_model=SessionResponse)
async def load_session(request: LoadSessionRequest):
    """Load a session from a survey server URL or a local session folder."""
    snapshot = await _run_load(request.source)
    return _session_response(snapshot)


@router.post("/refresh", response_model=SessionResponse)
async def refresh_session():
    """Reload the current source."""
    if get_store().source is None:
        raise HTTPException(status_code=404, detail="No session loaded")
    snapshot = await _run_load()
    return _session_response(snapshot)


@router.get("", response_model=SessionResponse)
async def get_session():
    return _session_response(_require_snapshot())


@router.get("/cameras", response_model=list[CameraResponse])
async def list_cameras():
    return [_camera_response(c) for c in _require_snapshot().cameras]


@router.get("/timeline", response_model=TimelineResponse)
async def get_timeline(
    start: int = Query(0, ge=0, description="First frame index"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum frames returned"),
):
    snapshot = _require_snapshot()
    frames = snapshot.timeline[start:start + limit]
    return TimelineResponse(
        total=snapshot.frame_count,
        start=start,
        frames=[frame_response(start + i, frame) for i, frame in enumerate(frames)],
    )


@router.get("/frames/nearest", response_model=FrameResponse)
async def get_nearest_frame(time: str = Query(..., description="HH:MM[:SS] or full timestamp")):
    """Frame closest to a time of day or timestamp."""
    snapshot = _require_snapshot()
    try:
        index = snapshot.nearest_index(time)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    frame = snapshot.frame_at(index)
    if frame is None:
        raise HTTPException(status_code=404, detail="Timeline is empty")
    return frame_response(index, frame)


@router.get("/frames/{index}", response_model=FrameResponse)
async def get_frame(index: int):
    snapshot = _require_snapshot()
    frame = snapshot.frame_at(index)
    if frame is None:
        raise HTTPException(status_code=404, detail=f"Frame out of range: {index}")
    return frame_response(index, frame)


@router.get("/gps", response_model=list[GPSFixResponse])
async def get_gps_trace():
    return [_gps_response(fix) for fix in _require_snapshot().gps_trace]


@router.get("/metrics", response_model=list[SystemSampleResponse])
async def get_system_metrics():
    return [_system_response(s) for s in _require_snapshot().system_samples]


@router.get("/stats", response_model=SessionStatsResponse)
async def get_session_stats():
    snapshot = _require_snapshot()
    stats = snapshot.stats()
    return SessionStatsResponse(
        frame_count=stats.frame_count,
        total_detections=stats.total_detections,
        unique_classes=list(stats.unique_classes),
        duration_s=stats.duration_s,
        images_in_timeline=stats.images_in_timeline,
        track_length_m=snapshot.gps_statistics.track_length_m,
    )
