"""
Data providers.

A provider answers the survey data contract (health, dashboard, GPS log,
system metrics, metadata scan, per-stream detections and images). Two
implementations exist: a remote survey server reached over HTTP and a
session folder on local disk. Both return raw rows; normalization happens
later in the record normalizer.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol

import httpx
import pandas as pd
from pydantic import BaseModel, ConfigDict, ValidationError

from roadview.config import LoaderConfig
from roadview.models.records import TripleKey
from roadview.services.errors import ProviderUnreachable, SourceUnavailable


logger = logging.getLogger(__name__)


IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp"}
GPS_LOG_NAME = "gps_log.csv"
SYSTEM_METRICS_NAME = "system_metrics.csv"
METADATA_NAME = "metadata.csv"


class DataProvider(Protocol):
    """Interface for survey data sources."""

    origin: str

    async def health(self) -> bool:
        ...

    async def dashboard(self) -> dict[str, Any]:
        ...

    async def gps_data(self) -> list[dict[str, Any]]:
        ...

    async def system_metrics(self) -> list[dict[str, Any]]:
        ...

    async def scan_metadata(self) -> list[dict[str, Any]]:
        ...

    async def detection_metadata(self, key: TripleKey) -> list[dict[str, Any]]:
        ...

    async def images(self, key: TripleKey) -> list[dict[str, Any]]:
        ...

    async def gps_from_metadata(self, key: TripleKey) -> list[dict[str, Any]]:
        ...

    def image_url(self, key: TripleKey, name: str, url: Optional[str] = None) -> str:
        ...

    async def aclose(self) -> None:
        ...


class Envelope(BaseModel):
    """{success, data | files | images} wrapper used by the survey server."""

    model_config = ConfigDict(extra="allow")

    success: bool = False
    data: Optional[list[dict[str, Any]]] = None
    files: Optional[list[dict[str, Any]]] = None
    images: Optional[list[dict[str, Any]]] = None
    error: Optional[str] = None


class HttpDataProvider:
    """
    Provider backed by a survey server's REST API.

    Any transport error, non-2xx status, undecodable body or
    `success: false` envelope raises SourceUnavailable for that source.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.origin = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.origin,
            timeout=timeout,
            transport=transport,
        )

    async def health(self) -> bool:
        """True when the server answers /health with a 2xx status."""
        try:
            response = await self._client.get("/health")
        except httpx.HTTPError as e:
            logger.warning(f"Health check failed for {self.origin}: {e}")
            return False
        if not response.is_success:
            logger.warning(f"Health check for {self.origin} returned HTTP {response.status_code}")
            return False
        return True

    async def dashboard(self) -> dict[str, Any]:
        payload = await self._get_json("/api/dashboard", "dashboard")
        if not isinstance(payload, dict):
            raise SourceUnavailable("dashboard", "response is not an object")
        return payload

    async def gps_data(self) -> list[dict[str, Any]]:
        return await self._get_list("/api/gps-data", "gps", "data")

    async def system_metrics(self) -> list[dict[str, Any]]:
        return await self._get_list("/api/system-metrics", "system_metrics", "data")

    async def scan_metadata(self) -> list[dict[str, Any]]:
        return await self._get_list("/api/metadata/scan", "manifest", "files")

    async def detection_metadata(self, key: TripleKey) -> list[dict[str, Any]]:
        path = f"/api/metadata/{key.session}/{key.camera}/{key.anomaly_type}"
        return await self._get_list(path, f"detections:{key.label()}", "data")

    async def images(self, key: TripleKey) -> list[dict[str, Any]]:
        path = f"/api/images/{key.session}/{key.camera}/{key.anomaly_type}"
        return await self._get_list(path, f"images:{key.label()}", "images")

    async def gps_from_metadata(self, key: TripleKey) -> list[dict[str, Any]]:
        params = {"session": key.session, "camera": key.camera, "anomalyType": key.anomaly_type}
        return await self._get_list(
            "/api/gps-from-metadata", f"gps_metadata:{key.label()}", "data", params=params
        )

    def image_url(self, key: TripleKey, name: str, url: Optional[str] = None) -> str:
        if url:
            if url.startswith("http://") or url.startswith("https://"):
                return url
            return f"{self.origin}{url if url.startswith('/') else '/' + url}"
        return f"{self.origin}/data/{key.session}/{key.camera}/{key.anomaly_type}/{name}"

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, path: str, source: str, params: Optional[dict] = None) -> Any:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise SourceUnavailable(source, f"request failed: {e}") from e

        if not response.is_success:
            raise SourceUnavailable(source, f"HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise SourceUnavailable(source, f"invalid JSON: {e}") from e

    async def _get_list(
        self,
        path: str,
        source: str,
        field: str,
        params: Optional[dict] = None,
    ) -> list[dict[str, Any]]:
        payload = await self._get_json(path, source, params=params)
        try:
            envelope = Envelope.model_validate(payload)
        except ValidationError as e:
            raise SourceUnavailable(source, f"malformed envelope: {e.error_count()} errors") from e

        rows = getattr(envelope, field)
        if not envelope.success or rows is None:
            raise SourceUnavailable(source, envelope.error or "success: false")
        return rows


class LocalDataProvider:
    """
    Provider backed by a session folder on disk.

    Expected layout (any depth for the logs):
        <root>/**/gps_log.csv
        <root>/**/system_metrics.csv
        <root>/<session>/<camera>/<anomalyType>/metadata.csv + images
    """

    def __init__(self, root: Path):
        self.root = root
        self.origin = str(root)
        # Stream folders found by the last scan
        self._folders: dict[TripleKey, Path] = {}

    async def health(self) -> bool:
        return self.root.is_dir()

    async def dashboard(self) -> dict[str, Any]:
        files = await self.scan_metadata()
        anomalies: dict[str, dict[str, dict[str, int]]] = {}
        for entry in files:
            key = TripleKey(entry["session"], entry["camera"], entry["anomalyType"])
            try:
                record_count = len(await self.detection_metadata(key))
            except SourceUnavailable as e:
                logger.warning(f"Dashboard count skipped for {key.label()}: {e.reason}")
                record_count = 0
            anomalies.setdefault(key.camera, {})[key.anomaly_type] = {
                "recordCount": record_count,
                "imageCount": entry["imageCount"],
            }
        return {"success": True, "summary": {"anomalies": anomalies}}

    async def gps_data(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._read_first, GPS_LOG_NAME, "gps")

    async def system_metrics(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._read_first, SYSTEM_METRICS_NAME, "system_metrics")

    async def scan_metadata(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._scan)

    async def detection_metadata(self, key: TripleKey) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._read_metadata, key)

    async def images(self, key: TripleKey) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._list_images, key)

    async def gps_from_metadata(self, key: TripleKey) -> list[dict[str, Any]]:
        rows = await self.detection_metadata(key)
        return [row for row in rows if _has_coordinates(row)]

    def image_url(self, key: TripleKey, name: str, url: Optional[str] = None) -> str:
        if url:
            return url
        folder = self._triple_dir(key) or (self.root / key.session / key.camera / key.anomaly_type)
        return str((folder / name).resolve())

    async def aclose(self) -> None:
        return None

    def _read_metadata(self, key: TripleKey) -> list[dict[str, Any]]:
        source = f"detections:{key.label()}"
        folder = self._triple_dir(key)
        try:
            found = folder is not None and (folder / METADATA_NAME).is_file()
        except OSError as e:
            raise SourceUnavailable(source, f"cannot access {folder}: {e}") from e
        if not found:
            raise SourceUnavailable(source, "metadata.csv not found")
        return _read_csv_rows(folder / METADATA_NAME, source)

    def _list_images(self, key: TripleKey) -> list[dict[str, Any]]:
        source = f"images:{key.label()}"
        folder = self._triple_dir(key)
        if folder is None:
            raise SourceUnavailable(source, "folder not found")
        listing = []
        try:
            for path in _image_files(folder):
                stat = path.stat()
                listing.append({
                    "name": path.name,
                    "size": stat.st_size,
                    "modified": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
                    "url": str(path.resolve()),
                })
        except OSError as e:
            raise SourceUnavailable(source, f"cannot list {folder}: {e}") from e
        return listing

    def _read_first(self, filename: str, source: str) -> list[dict[str, Any]]:
        matches = sorted(self.root.rglob(filename))
        if not matches:
            raise SourceUnavailable(source, f"{filename} not found under {self.root}")
        if len(matches) > 1:
            logger.info(f"Multiple {filename} files found, using {matches[0]}")
        return _read_csv_rows(matches[0], source)

    def _scan(self) -> list[dict[str, Any]]:
        if not self.root.is_dir():
            raise SourceUnavailable("manifest", f"folder not found: {self.root}")

        files = []
        folders: dict[TripleKey, Path] = {}
        for csv_path in sorted(self.root.rglob(METADATA_NAME)):
            folder = csv_path.parent
            parts = folder.relative_to(self.root).parts
            if len(parts) < 2:
                continue
            session = parts[-3] if len(parts) >= 3 else self.root.name
            key = TripleKey(session, parts[-2], parts[-1])
            if key in folders:
                logger.warning(f"Duplicate stream {key.label()} at {folder}, keeping {folders[key]}")
                continue
            folders[key] = folder
            try:
                image_count = len(_image_files(folder))
            except OSError as e:
                logger.warning(f"Cannot list images in {folder}: {e}")
                image_count = 0
            files.append({
                "session": session,
                "camera": parts[-2],
                "anomalyType": parts[-1],
                "imageCount": image_count,
                "hasImages": image_count > 0,
                "hasMetadata": True,
            })
        self._folders = folders
        logger.debug(f"Scanned {len(files)} metadata files in {self.root}")
        return files

    def _triple_dir(self, key: TripleKey) -> Optional[Path]:
        if key in self._folders:
            return self._folders[key]
        candidates = [self.root / key.session / key.camera / key.anomaly_type]
        if key.session == self.root.name:
            candidates.append(self.root / key.camera / key.anomaly_type)
        for folder in candidates:
            if folder.is_dir():
                return folder
        return None


def open_provider(source: str, config: LoaderConfig) -> DataProvider:
    """
    Open a provider for a source descriptor.

    'http://...' or 'https://...' is a survey server; anything else is a
    session folder path.
    """
    descriptor = (source or "").strip()
    if not descriptor:
        raise ProviderUnreachable("Empty source descriptor")

    if descriptor.startswith("http://") or descriptor.startswith("https://"):
        return HttpDataProvider(descriptor, timeout=config.request_timeout_s)

    root = Path(descriptor).expanduser()
    if not root.is_dir():
        raise ProviderUnreachable(f"Session folder not found: {descriptor}")
    return LocalDataProvider(root)


def _read_csv_rows(path: Path, source: str) -> list[dict[str, Any]]:
    """Read a CSV as raw strings; blank cells stay empty strings."""
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError:
        return []
    except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
        raise SourceUnavailable(source, f"cannot read {path.name}: {e}") from e

    df.columns = [str(c).strip() for c in df.columns]
    return df.to_dict(orient="records")


def _image_files(folder: Path) -> list[Path]:
    return sorted(
        p for p in folder.iterdir()
        if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
    )


def _has_coordinates(row: dict[str, Any]) -> bool:
    lat = next((row[k] for k in ("latitude", "lat") if str(row.get(k, "")).strip()), None)
    lon = next((row[k] for k in ("longitude", "lng", "lon") if str(row.get(k, "")).strip()), None)
    return lat is not None and lon is not None

