"""
Session store - loads survey sessions and publishes snapshots.

A load opens a provider for the source descriptor, collects every source,
synthesizes the timeline and wraps it all into an immutable
SessionSnapshot. The store publishes a snapshot only if no newer load was
started meanwhile, and keeps the previous snapshot when a load fails.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import httpx

from roadview.config import LoaderConfig, PlaybackConfig
from roadview.models.records import ManifestEntry
from roadview.models.session import CameraInfo, GPSStatistics, SessionSnapshot, get_camera_config
from roadview.services.aggregator import SourceAggregator, SourceBundle
from roadview.services.errors import LoadError, LoadSuperseded, ProviderUnreachable
from roadview.services.playback import AsyncioTickScheduler, PlaybackController
from roadview.services.provider import open_provider
from roadview.services.timeline import TimelineSynthesizer


logger = logging.getLogger(__name__)


def build_cameras(bundle: SourceBundle) -> tuple[CameraInfo, ...]:
    """
    One CameraInfo per (session, camera) in manifest order.

    detection_count is the number of fetched detection rows; when none were
    fetched, the dashboard summary's recordCount is used instead.
    """
    groups: dict[tuple[str, str], list[ManifestEntry]] = {}
    for entry in bundle.manifest:
        groups.setdefault((entry.session, entry.camera), []).append(entry)

    summary = _dashboard_anomalies(bundle.dashboard)

    cameras = []
    for (session, camera), entries in groups.items():
        classes: list[str] = []
        detection_count = 0
        image_count = 0
        for entry in entries:
            if entry.anomaly_type not in classes:
                classes.append(entry.anomaly_type)
            detection_count += len(bundle.detections.get(entry.key, []))
            image_count += entry.image_count or len(bundle.images.get(entry.key, []))

        by_type = summary.get(camera)
        if detection_count == 0 and isinstance(by_type, dict):
            detection_count = sum(
                _to_count(counts.get("recordCount"))
                for counts in by_type.values()
                if isinstance(counts, dict)
            )

        config = get_camera_config(camera)
        cameras.append(CameraInfo(
            name=camera,
            display_name=config.display_name,
            type=config.type,
            description=config.description,
            resolution=config.resolution,
            color=config.color,
            session=session,
            detection_count=detection_count,
            image_count=image_count,
            classes=tuple(classes),
        ))
    return tuple(cameras)


def gps_coverage(bundle: SourceBundle) -> float:
    """Fraction of cameras with at least one GPS-capable detection stream."""
    cameras = {entry.camera for entry in bundle.manifest}
    if not cameras:
        return 0.0
    covered = {key.camera for key in bundle.gps_capable}
    return len(cameras & covered) / len(cameras)


def derive_session_name(origin: str, manifest: list[ManifestEntry]) -> str:
    """Folder name for local sources; otherwise the single manifest session or the host."""
    if not (origin.startswith("http://") or origin.startswith("https://")):
        return Path(origin).name or origin

    sessions = list(dict.fromkeys(entry.session for entry in manifest))
    if len(sessions) == 1:
        return sessions[0]
    return httpx.URL(origin).host or origin


async def load_session(
    source: str,
    config: Optional[LoaderConfig] = None,
    generation: int = 0,
) -> SessionSnapshot:
    """
    Load a complete snapshot from a source descriptor.

    Raises:
        ProviderUnreachable: descriptor unusable or provider not answering
        ManifestUnavailable: metadata scan failed
    """
    config = config or LoaderConfig()
    provider = open_provider(source, config)
    try:
        if not await provider.health():
            raise ProviderUnreachable(f"Provider not reachable: {source}")
        bundle = await SourceAggregator(provider, config).collect()
        timeline = TimelineSynthesizer(config).synthesize(bundle, provider.image_url)
    finally:
        await provider.aclose()

    trace = tuple(sorted(bundle.gps, key=lambda fix: fix.epoch_s))
    snapshot = SessionSnapshot(
        session_name=derive_session_name(bundle.origin, bundle.manifest),
        session_path=bundle.origin,
        cameras=build_cameras(bundle),
        timeline=tuple(timeline),
        gps_trace=trace,
        system_samples=tuple(sorted(bundle.system_samples, key=lambda sample: sample.epoch_s)),
        gps_statistics=GPSStatistics.from_trace(list(trace), gps_coverage(bundle)),
        failures=dict(bundle.failures),
        generation=generation,
        loaded_at=datetime.now(timezone.utc),
    )
    if snapshot.is_empty:
        logger.warning(f"Session {snapshot.session_name} loaded with an empty timeline")
    return snapshot


class SessionStore:
    """
    Holds the published session snapshot and its playback controller.

    Loads are tagged with an increasing generation; only the newest load may
    publish. A failed load leaves the published snapshot untouched.
    """

    def __init__(
        self,
        config: Optional[LoaderConfig] = None,
        playback: Optional[PlaybackController] = None,
    ):
        self.config = config or LoaderConfig()
        self.playback = playback or PlaybackController(PlaybackConfig(), AsyncioTickScheduler())
        self._snapshot: Optional[SessionSnapshot] = None
        self._source: Optional[str] = None
        self._generation = 0
        self._loading = False
        self.last_error: Optional[str] = None

    @property
    def snapshot(self) -> Optional[SessionSnapshot]:
        return self._snapshot

    @property
    def source(self) -> Optional[str]:
        return self._source

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_loading(self) -> bool:
        return self._loading

    async def load(self, source: str) -> SessionSnapshot:
        self._generation += 1
        generation = self._generation
        self._loading = True
        logger.info(f"Loading session from {source} (generation {generation})")

        try:
            snapshot = await load_session(source, self.config, generation)
        except LoadError as e:
            if generation != self._generation:
                raise LoadSuperseded(f"Load of {source} was superseded") from e
            self.last_error = str(e)
            logger.error(f"Session load failed: {e}")
            raise
        finally:
            if generation == self._generation:
                self._loading = False

        if generation != self._generation:
            logger.info(f"Discarding superseded load of {source} (generation {generation})")
            raise LoadSuperseded(f"Load of {source} was superseded")

        self._snapshot = snapshot
        self._source = source
        self.last_error = None
        self.playback.reset(snapshot.frame_count)
        logger.info(
            f"Published session {snapshot.session_name}: {snapshot.frame_count} frames, "
            f"{len(snapshot.cameras)} cameras"
        )
        return snapshot

    async def refresh(self) -> SessionSnapshot:
        """Reload the current source."""
        if self._source is None:
            raise ProviderUnreachable("No session has been loaded")
        return await self.load(self._source)

    def clear(self) -> None:
        self.playback.reset(0)
        self._snapshot = None
        self._source = None
        self.last_error = None


def _dashboard_anomalies(dashboard: dict) -> dict:
    summary = dashboard.get("summary") if isinstance(dashboard, dict) else None
    anomalies = summary.get("anomalies") if isinstance(summary, dict) else None
    return anomalies if isinstance(anomalies, dict) else {}


def _to_count(value) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


# Global store instance (set up by app initialization)
_store: Optional[SessionStore] = None


def get_store() -> SessionStore:
    """Get the global session store."""
    global _store
    if _store is None:
        _store = SessionStore()
    return _store


def init_store(config: Optional[LoaderConfig] = None) -> SessionStore:
    """Replace the global store, e.g. with a custom config."""
    global _store
    _store = SessionStore(config)
    return _store
