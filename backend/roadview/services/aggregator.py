"""
Source aggregator.

Fetches every data source of a survey session through a provider and
returns them as one bundle. Only the metadata scan is required; every other
source is fetched independently and a failure there is recorded in
`bundle.failures` while the source comes back empty.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Optional

from roadview.config import LoaderConfig
from roadview.models.records import (
    EPOCH_SENTINEL,
    Detection,
    GPSFix,
    GPSSource,
    ImageRef,
    ManifestEntry,
    SystemSample,
    TripleKey,
)
from roadview.services.errors import ManifestUnavailable, SourceUnavailable
from roadview.services.normalizer import RecordKind, normalize_rows
from roadview.services.provider import DataProvider
from roadview.utils.sample_data import synthesize_gps_trace
from roadview.utils.timestamps import split_timestamp, to_epoch_seconds


logger = logging.getLogger(__name__)


@dataclass
class SourceBundle:
    """Everything fetched for one session, before synchronization."""

    origin: str
    manifest: list[ManifestEntry] = field(default_factory=list)
    dashboard: dict[str, Any] = field(default_factory=dict)
    gps: list[GPSFix] = field(default_factory=list)
    gps_source: Optional[GPSSource] = None
    detections: dict[TripleKey, list[Detection]] = field(default_factory=dict)
    images: dict[TripleKey, list[ImageRef]] = field(default_factory=dict)
    gps_capable: set[TripleKey] = field(default_factory=set)
    system_samples: list[SystemSample] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def has_stream_data(self) -> bool:
        """Any detection row or image listed for any triple."""
        return any(self.detections.values()) or any(self.images.values())

    def triples(self) -> list[TripleKey]:
        return [entry.key for entry in self.manifest]


class SourceAggregator:
    """Collects a SourceBundle from a provider."""

    def __init__(self, provider: DataProvider, config: Optional[LoaderConfig] = None):
        self.provider = provider
        self.config = config or LoaderConfig()

    async def collect(self) -> SourceBundle:
        bundle = SourceBundle(origin=self.provider.origin)

        try:
            raw_manifest = await self.provider.scan_metadata()
        except SourceUnavailable as e:
            logger.error(f"Metadata scan failed for {self.provider.origin}: {e.reason}")
            raise ManifestUnavailable(f"Metadata scan unavailable: {e.reason}") from e

        bundle.manifest = _dedupe_manifest(normalize_rows(RecordKind.MANIFEST, raw_manifest))
        triples = bundle.triples()
        logger.info(f"Manifest lists {len(triples)} detection streams")

        results = await asyncio.gather(
            self._fetch(bundle, "gps", self.provider.gps_data(), []),
            self._fetch(bundle, "dashboard", self.provider.dashboard(), {}),
            self._fetch(bundle, "system_metrics", self.provider.system_metrics(), []),
            *[
                self._fetch(bundle, f"detections:{key.label()}", self.provider.detection_metadata(key), [])
                for key in triples
            ],
            *[
                self._fetch(bundle, f"images:{key.label()}", self.provider.images(key), [])
                for key in triples
            ],
        )

        raw_gps, dashboard, raw_metrics = results[0], results[1], results[2]
        raw_detections = results[3:3 + len(triples)]
        raw_images = results[3 + len(triples):]

        bundle.dashboard = dashboard if isinstance(dashboard, dict) else {}
        bundle.system_samples = normalize_rows(RecordKind.SYSTEM, raw_metrics)

        for key, rows in zip(triples, raw_detections):
            detections = normalize_rows(
                RecordKind.DETECTION, rows, camera=key.camera, anomaly_type=key.anomaly_type
            )
            bundle.detections[key] = detections
            if any(d.has_position for d in detections):
                bundle.gps_capable.add(key)

        for key, entries in zip(triples, raw_images):
            bundle.images[key] = normalize_rows(RecordKind.IMAGE, entries)

        gps = normalize_rows(RecordKind.GPS, raw_gps, source=GPSSource.TRACK_LOG)
        if gps:
            bundle.gps = gps
            bundle.gps_source = GPSSource.TRACK_LOG
        else:
            await self._fallback_gps(bundle)

        logger.info(
            f"Collected {len(bundle.gps)} GPS fixes ({bundle.gps_source.value if bundle.gps_source else 'none'}), "
            f"{sum(len(d) for d in bundle.detections.values())} detections, "
            f"{len(bundle.system_samples)} system samples, {len(bundle.failures)} failed sources"
        )
        return bundle

    async def _fetch(self, bundle: SourceBundle, source: str, request: Awaitable, empty: Any) -> Any:
        try:
            return await request
        except SourceUnavailable as e:
            logger.warning(f"Source unavailable: {source} ({e.reason})")
            bundle.failures[source] = e.reason
            return empty

    async def _fallback_gps(self, bundle: SourceBundle) -> None:
        """
        No usable track log. Try detection-embedded positions, then the
        provider's per-stream GPS endpoint, then a synthetic trace.
        """
        fixes = _fixes_from_detections(bundle.detections)
        if fixes:
            logger.info(f"Derived {len(fixes)} GPS fixes from detection metadata")
            bundle.gps = fixes
            bundle.gps_source = GPSSource.METADATA
            return

        triples = bundle.triples()
        responses = await asyncio.gather(*[
            self._fetch(bundle, f"gps_metadata:{key.label()}", self.provider.gps_from_metadata(key), [])
            for key in triples
        ])
        for key, rows in zip(triples, responses):
            stream_fixes = [
                fix for fix in normalize_rows(RecordKind.GPS, rows, source=GPSSource.METADATA)
                if fix.has_position
            ]
            if stream_fixes:
                bundle.gps_capable.add(key)
                fixes.extend(stream_fixes)
        if fixes:
            logger.info(f"Fetched {len(fixes)} GPS fixes from metadata endpoints")
            bundle.gps = fixes
            bundle.gps_source = GPSSource.METADATA
            return

        if self.config.synthetic_fallback and bundle.has_stream_data:
            start = _earliest_detection_epoch(bundle.detections)
            bundle.gps = synthesize_gps_trace(
                n_points=self.config.synthetic_points,
                interval_s=self.config.synthetic_interval_s,
                seed=self.config.synthetic_seed,
                center=self.config.synthetic_center,
                start_epoch_s=start,
            )
            bundle.gps_source = GPSSource.SYNTHETIC
            logger.warning(f"No real GPS available, using {len(bundle.gps)} synthetic fixes")
        else:
            logger.warning("No GPS available and no stream data; timeline will be empty")


def _dedupe_manifest(entries: list[ManifestEntry]) -> list[ManifestEntry]:
    seen = set()
    unique = []
    for entry in entries:
        if entry.key in seen:
            continue
        seen.add(entry.key)
        unique.append(entry)
    return unique


def _fixes_from_detections(detections: dict[TripleKey, list[Detection]]) -> list[GPSFix]:
    fixes = []
    for rows in detections.values():
        for detection in rows:
            if not detection.has_position:
                continue
            timestamp = detection.timestamp or EPOCH_SENTINEL
            epoch_s = detection.epoch_s
            if epoch_s is None:
                epoch_s = to_epoch_seconds(timestamp) or 0.0
            date, time = split_timestamp(timestamp)
            fixes.append(GPSFix(
                timestamp=timestamp,
                date=date,
                time=time,
                epoch_s=epoch_s,
                latitude=detection.latitude,
                longitude=detection.longitude,
                source=GPSSource.METADATA,
            ))
    return fixes


def _earliest_detection_epoch(detections: dict[TripleKey, list[Detection]]) -> float:
    epochs = [d.epoch_s for rows in detections.values() for d in rows if d.epoch_s is not None]
    return min(epochs) if epochs else 0.0
