"""
API routes for timeline playback.
"""

from fastapi import APIRouter, HTTPException

from roadview.api.schemas import (
    FrameResponse,
    PlaybackStateResponse,
    SeekRequest,
    SpeedRequest,
    StepRequest,
)
from roadview.api.session import frame_response
from roadview.services.session import get_store


router = APIRouter(prefix="/playback", tags=["playback"])


def _state_response() -> PlaybackStateResponse:
    state = get_store().playback.state()
    return PlaybackStateResponse(
        current_index=state.current_index,
        is_playing=state.is_playing,
        speed_multiplier=state.speed_multiplier,
        length=state.length,
        tick_period_s=state.tick_period_s,
    )


@router.get("", response_model=PlaybackStateResponse)
async def get_playback_state():
    return _state_response()


@router.get("/frame", response_model=FrameResponse)
async def get_current_frame():
    """The frame at the current playback index."""
    store = get_store()
    if store.snapshot is None:
        raise HTTPException(status_code=404, detail="No session loaded")
    index = store.playback.current_index
    frame = store.snapshot.frame_at(index)
    if frame is None:
        raise HTTPException(status_code=404, detail="Timeline is empty")
    return frame_response(index, frame)


@router.post("/play", response_model=PlaybackStateResponse)
async def play():
    get_store().playback.play()
    return _state_response()


@router.post("/pause", response_model=PlaybackStateResponse)
async def pause():
    get_store().playback.pause()
    return _state_response()


@router.post("/toggle", response_model=PlaybackStateResponse)
async def toggle():
    get_store().playback.toggle()
    return _state_response()


@router.post("/seek", response_model=PlaybackStateResponse)
async def seek(request: SeekRequest):
    """Jump to a frame index (clamped to the timeline)."""
    get_store().playback.set_index(request.index)
    return _state_response()


@router.post("/step", response_model=PlaybackStateResponse)
async def step(request: StepRequest):
    get_store().playback.step(request.delta)
    return _state_response()


@router.post("/speed", response_model=PlaybackStateResponse)
async def set_speed(request: SpeedRequest):
    try:
        get_store().playback.set_speed(request.multiplier)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _state_response()
