"""
Timeline synthesizer.

Builds the synchronized timeline from a SourceBundle:
1. The GPS trace, sorted by time (stable), is the backbone.
2. Above `max_frames` fixes, an evenly strided subsample keeps the first
   and last fix so the whole survey stays covered.
3. Each detection stream is attached either by nearest timestamp (within
   `match_tolerance_s`) when its rows carry enough timestamps, or by
   round-robin (`frame_index mod count`) otherwise.
"""

import logging
from enum import Enum
from typing import Callable, Optional

import numpy as np
from numpy.typing import NDArray

from roadview.config import LoaderConfig
from roadview.models.records import Detection, GPSFix, ImageRef, TripleKey
from roadview.models.session import TimelineFrame
from roadview.services.aggregator import SourceBundle


logger = logging.getLogger(__name__)


ImageUrlResolver = Callable[[TripleKey, str, Optional[str]], str]

UNMATCHED = -1


class MatchStrategy(Enum):
    TIMESTAMP = "timestamp"
    ROUND_ROBIN = "round_robin"


class _FrameSlots:
    """Mutable per-frame accumulator, frozen into a TimelineFrame at the end."""

    def __init__(self):
        self.detections: list[Detection] = []
        self.images: dict[str, dict[str, list[str]]] = {}
        self.full_paths: dict[str, dict[str, list[str]]] = {}

    def add_image(self, key: TripleKey, name: str, full_path: str) -> None:
        names = self.images.setdefault(key.camera, {}).setdefault(key.anomaly_type, [])
        if name in names:
            return
        names.append(name)
        self.full_paths.setdefault(key.camera, {}).setdefault(key.anomaly_type, []).append(full_path)


class TimelineSynthesizer:
    """Merges GPS, detections and images into TimelineFrames."""

    def __init__(self, config: Optional[LoaderConfig] = None):
        self.config = config or LoaderConfig()

    def synthesize(
        self,
        bundle: SourceBundle,
        image_url: Optional[ImageUrlResolver] = None,
    ) -> list[TimelineFrame]:
        backbone = self.select_backbone(bundle.gps)
        if not backbone:
            return []

        resolve = image_url or _default_image_url
        epochs = np.array([fix.epoch_s for fix in backbone], dtype=np.float64)
        slots = [_FrameSlots() for _ in backbone]

        for key in bundle.triples():
            detections = bundle.detections.get(key, [])
            images = bundle.images.get(key, [])
            if not detections and not images:
                continue

            strategy = self.choose_strategy(detections)
            logger.debug(f"{key.label()}: {len(detections)} detections, {len(images)} images, {strategy.value}")

            if strategy is MatchStrategy.TIMESTAMP:
                self._attach_by_timestamp(slots, epochs, key, detections, images, resolve)
            else:
                self._attach_round_robin(slots, key, detections, images, resolve)

        frames = [
            TimelineFrame(
                timestamp=fix.timestamp,
                date=fix.date,
                time=fix.time,
                epoch_s=fix.epoch_s,
                latitude=fix.latitude,
                longitude=fix.longitude,
                detections=tuple(slot.detections),
                images=_freeze(slot.images),
                full_paths=_freeze(slot.full_paths),
                gps_source=fix.source,
            )
            for fix, slot in zip(backbone, slots)
        ]
        logger.info(f"Synthesized {len(frames)} frames from {len(bundle.gps)} GPS fixes")
        return frames

    def select_backbone(self, gps: list[GPSFix]) -> list[GPSFix]:
        """Time-sorted GPS fixes, evenly subsampled down to max_frames."""
        ordered = sorted(gps, key=lambda fix: fix.epoch_s)
        n = len(ordered)
        cap = self.config.max_frames
        if n <= cap:
            return ordered

        indices = np.floor(np.linspace(0, n - 1, cap) + 0.5).astype(int)
        logger.info(f"GPS trace has {n} fixes, keeping {cap} evenly spaced")
        return [ordered[i] for i in indices]

    def choose_strategy(self, detections: list[Detection]) -> MatchStrategy:
        if not detections:
            return MatchStrategy.ROUND_ROBIN
        timed = sum(1 for d in detections if d.epoch_s is not None)
        if timed / len(detections) >= self.config.min_timestamp_coverage:
            return MatchStrategy.TIMESTAMP
        return MatchStrategy.ROUND_ROBIN

    def match_frames(self, detections: list[Detection], epochs: NDArray[np.float64]) -> NDArray[np.int64]:
        """
        Nearest frame index per detection, or UNMATCHED when the detection
        has no timestamp or the nearest frame is beyond the tolerance.
        Equidistant detections go to the earlier frame.
        """
        if len(epochs) == 0 or not detections:
            return np.full(len(detections), UNMATCHED, dtype=np.int64)

        t = np.array(
            [np.nan if d.epoch_s is None else d.epoch_s for d in detections],
            dtype=np.float64,
        )
        last = len(epochs) - 1
        idx = np.searchsorted(epochs, np.nan_to_num(t, nan=np.inf), side="left")
        left = np.clip(idx - 1, 0, last)
        right = np.clip(idx, 0, last)

        d_left = np.abs(t - epochs[left])
        d_right = np.abs(epochs[right] - t)
        nearest = np.where(d_right < d_left, right, left)
        distance = np.minimum(d_left, d_right)

        valid = ~np.isnan(t) & (distance <= self.config.match_tolerance_s)
        return np.where(valid, nearest, UNMATCHED).astype(np.int64)

    def _attach_by_timestamp(
        self,
        slots: list[_FrameSlots],
        epochs: NDArray[np.float64],
        key: TripleKey,
        detections: list[Detection],
        images: list[ImageRef],
        resolve: ImageUrlResolver,
    ) -> None:
        by_name = {ref.name: ref for ref in images}
        matches = self.match_frames(detections, epochs)

        attached = 0
        for detection, frame_index in zip(detections, matches):
            if frame_index == UNMATCHED:
                continue
            slot = slots[int(frame_index)]
            slot.detections.append(detection)
            attached += 1
            if detection.image_path:
                ref = by_name.get(detection.image_path)
                full_path = resolve(key, detection.image_path, ref.url if ref else None)
                slot.add_image(key, detection.image_path, full_path)

        if attached < len(detections):
            logger.debug(f"{key.label()}: {len(detections) - attached} detections outside tolerance")

    def _attach_round_robin(
        self,
        slots: list[_FrameSlots],
        key: TripleKey,
        detections: list[Detection],
        images: list[ImageRef],
        resolve: ImageUrlResolver,
    ) -> None:
        for i, slot in enumerate(slots):
            detection = None
            if detections:
                detection = detections[i % len(detections)]
                slot.detections.append(detection)

            if images:
                ref = images[i % len(images)]
                slot.add_image(key, ref.name, resolve(key, ref.name, ref.url))
            elif detection is not None and detection.image_path:
                slot.add_image(key, detection.image_path, resolve(key, detection.image_path, None))


def _freeze(nested: dict[str, dict[str, list[str]]]) -> dict[str, dict[str, tuple[str, ...]]]:
    return {
        camera: {anomaly: tuple(names) for anomaly, names in classes.items()}
        for camera, classes in nested.items()
    }


def _default_image_url(key: TripleKey, name: str, url: Optional[str] = None) -> str:
    return url or f"{key.session}/{key.camera}/{key.anomaly_type}/{name}"
