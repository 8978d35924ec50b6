"""
Record normalizer.

Turns raw provider rows (CSV or JSON key/value mappings) into typed records.
Every field has an ordered alias list, resolved once here, and an enumerated
default used when the value is missing or unparsable. Normalization never
raises for a malformed row; only structurally empty rows are dropped.
"""

import math
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from roadview.models.records import (
    EPOCH_SENTINEL_DATE,
    EPOCH_SENTINEL_TIME,
    Detection,
    GPSFix,
    GPSSource,
    ImageRef,
    ManifestEntry,
    SystemSample,
)
from roadview.models.session import get_camera_config
from roadview.utils.coordinates import is_valid_latitude, is_valid_longitude
from roadview.utils.timestamps import TIME_PATTERN, split_timestamp, to_epoch_seconds


KNOTS_TO_KMH = 1.852


class RecordKind(Enum):
    GPS = "gps"
    SYSTEM = "system"
    DETECTION = "detection"
    IMAGE = "image"
    MANIFEST = "manifest"


# Field aliases, first match wins
TIMESTAMP_ALIASES = ["timestamp", "Timestamp", "datetime", "gps_timestamp"]
DATE_ALIASES = ["date", "Date"]
TIME_ALIASES = ["time", "Time"]

GPS_ALIASES = {
    "latitude": ["latitude", "Latitude", "lat", "Lat", "LAT"],
    "longitude": ["longitude", "Longitude", "lng", "lon", "Lon", "long", "LON"],
    "altitude": ["altitude", "Altitude", "alt", "elevation"],
    "speed": ["speed", "Speed", "speed_kmh"],
    "speed_knots": ["speed_knots"],
    "heading": ["heading", "Heading", "course", "bearing"],
}

DETECTION_ALIASES = {
    "frame_num": ["frameNum", "frame_number", "frame_num", "frame"],
    "stream_id": ["streamId", "stream_id", "source_id"],
    "class_name": ["className", "class_name", "class", "label"],
    "confidence": ["confidence", "score", "conf"],
    "left": ["left", "x", "bbox_left"],
    "top": ["top", "y", "bbox_top"],
    "width": ["width", "w", "bbox_width"],
    "height": ["height", "h", "bbox_height"],
    "image_path": ["imagePath", "image_path", "filename", "image"],
    "obj_id": ["objId", "obj_id", "object_id", "track_id"],
}

IMAGE_ALIASES = {
    "name": ["name", "filename", "file"],
    "size": ["size", "bytes"],
    "modified": ["modified", "mtime", "lastModified"],
    "url": ["url", "path"],
}

MANIFEST_ALIASES = {
    "session": ["session", "sessionName"],
    "camera": ["camera", "cameraName"],
    "anomaly_type": ["anomalyType", "anomaly_type", "className", "class"],
    "image_count": ["imageCount", "image_count"],
    "has_images": ["hasImages", "has_images"],
    "has_metadata": ["hasMetadata", "has_metadata"],
    "record_count": ["recordCount", "record_count"],
}

# Telemetry field -> default when absent or unparsable
SYSTEM_DEFAULTS: dict[str, float] = {
    "cpu_usage_percent": 0.0,
    "gpu_usage_percent": 0.0,
    "memory_used_mb": 0.0,
    "memory_total_mb": 8192.0,
    "memory_usage_percent": 0.0,
    "swap_used_mb": 0.0,
    "swap_total_mb": 2048.0,
    "swap_usage_percent": 0.0,
    "disk_used_gb": 0.0,
    "disk_total_gb": 500.0,
    "disk_usage_percent": 0.0,
    "cpu_temp_celsius": 45.0,
    "gpu_temp_celsius": 50.0,
    "thermal_temp_celsius": 48.0,
    "fan_speed_percent": 30.0,
    "power_total_watts": 15.0,
    "power_cpu_watts": 8.0,
    "power_gpu_watts": 7.0,
    "uptime_seconds": 3600.0,
}

DETECTION_DEFAULTS = {
    "frame_num": 0,
    "confidence": 1.0,
    "left": 0.0,
    "top": 0.0,
    "width": 100.0,
    "height": 100.0,
}


class RecordNormalizer:
    """Normalizer for survey source rows."""

    def gps(
        self,
        row: Mapping[str, Any],
        source: GPSSource = GPSSource.TRACK_LOG,
    ) -> Optional[GPSFix]:
        if _is_blank(row):
            return None

        timestamp, date, time, epoch_s = self._resolve_timestamp(row)

        speed = _to_float(_pick(row, GPS_ALIASES["speed"]))
        if speed is None:
            knots = _to_float(_pick(row, GPS_ALIASES["speed_knots"]))
            speed = knots * KNOTS_TO_KMH if knots is not None else None

        return GPSFix(
            timestamp=timestamp,
            date=date,
            time=time,
            epoch_s=epoch_s,
            latitude=_latitude(_pick(row, GPS_ALIASES["latitude"])),
            longitude=_longitude(_pick(row, GPS_ALIASES["longitude"])),
            altitude=_to_float(_pick(row, GPS_ALIASES["altitude"])),
            speed=speed,
            heading=_to_float(_pick(row, GPS_ALIASES["heading"])),
            source=source,
        )

    def system(self, row: Mapping[str, Any]) -> Optional[SystemSample]:
        if _is_blank(row):
            return None

        timestamp, date, time, epoch_s = self._resolve_timestamp(row)
        values = {}
        for name, default in SYSTEM_DEFAULTS.items():
            value = _to_float(row.get(name))
            values[name] = default if value is None else value

        return SystemSample(timestamp=timestamp, date=date, time=time, epoch_s=epoch_s, **values)

    def detection(
        self,
        row: Mapping[str, Any],
        camera: str = "",
        anomaly_type: str = "",
    ) -> Optional[Detection]:
        if _is_blank(row):
            return None

        frame_num = _to_int(_pick(row, DETECTION_ALIASES["frame_num"]))
        if frame_num is None:
            frame_num = DETECTION_DEFAULTS["frame_num"]

        stream_id = _to_int(_pick(row, DETECTION_ALIASES["stream_id"]))
        if stream_id is None:
            stream_id = get_camera_config(camera).stream_id_base

        class_name = _pick(row, DETECTION_ALIASES["class_name"])
        if class_name is None or str(class_name).strip() == "":
            class_name = anomaly_type
        else:
            class_name = str(class_name)

        confidence = _to_float(_pick(row, DETECTION_ALIASES["confidence"]))
        if confidence is None:
            confidence = DETECTION_DEFAULTS["confidence"]
        confidence = min(max(confidence, 0.0), 1.0)

        box = {}
        for name in ("left", "top", "width", "height"):
            value = _to_float(_pick(row, DETECTION_ALIASES[name]))
            box[name] = DETECTION_DEFAULTS[name] if value is None else max(value, 0.0)

        timestamp, epoch_s = self._optional_timestamp(row)

        image_path = _pick(row, DETECTION_ALIASES["image_path"])
        if image_path is None or str(image_path).strip() == "":
            image_path = f"frame_{frame_num}.jpg"

        obj_id = _pick(row, DETECTION_ALIASES["obj_id"])

        lat_raw = _pick(row, GPS_ALIASES["latitude"])
        lon_raw = _pick(row, GPS_ALIASES["longitude"])

        return Detection(
            frame_num=frame_num,
            stream_id=stream_id,
            class_name=class_name,
            confidence=confidence,
            timestamp=timestamp,
            epoch_s=epoch_s,
            image_path=str(image_path),
            obj_id=str(obj_id) if obj_id is not None and str(obj_id) != "" else None,
            latitude=_latitude(lat_raw) if _to_float(lat_raw) is not None else None,
            longitude=_longitude(lon_raw) if _to_float(lon_raw) is not None else None,
            **box,
        )

    def image(self, entry: Mapping[str, Any]) -> Optional[ImageRef]:
        if _is_blank(entry):
            return None
        name = _pick(entry, IMAGE_ALIASES["name"])
        if name is None or str(name).strip() == "":
            # A listing entry without a file name cannot be displayed
            return None
        size = _to_int(_pick(entry, IMAGE_ALIASES["size"]))
        modified = _pick(entry, IMAGE_ALIASES["modified"])
        url = _pick(entry, IMAGE_ALIASES["url"])
        return ImageRef(
            name=str(name),
            size=size if size is not None else 0,
            modified=str(modified) if modified is not None else None,
            url=str(url) if url is not None else None,
        )

    def manifest_entry(self, entry: Mapping[str, Any]) -> Optional[ManifestEntry]:
        if _is_blank(entry):
            return None
        image_count = _to_int(_pick(entry, MANIFEST_ALIASES["image_count"]))
        has_images = _to_bool(_pick(entry, MANIFEST_ALIASES["has_images"]))
        has_metadata = _to_bool(_pick(entry, MANIFEST_ALIASES["has_metadata"]))
        return ManifestEntry(
            session=_text(_pick(entry, MANIFEST_ALIASES["session"]), "default"),
            camera=_text(_pick(entry, MANIFEST_ALIASES["camera"]), "unknown"),
            anomaly_type=_text(_pick(entry, MANIFEST_ALIASES["anomaly_type"]), "unknown"),
            image_count=image_count if image_count is not None else 0,
            has_images=has_images if has_images is not None else bool(image_count),
            has_metadata=has_metadata if has_metadata is not None else True,
            record_count=_to_int(_pick(entry, MANIFEST_ALIASES["record_count"])),
        )

    def _resolve_timestamp(self, row: Mapping[str, Any]) -> tuple[str, str, str, float]:
        """
        Combined timestamp, or date + time, or the epoch sentinel.
        """
        raw_ts = _pick(row, TIMESTAMP_ALIASES)
        date = _text(_pick(row, DATE_ALIASES), "")
        time = _text(_pick(row, TIME_ALIASES), "")

        if raw_ts is not None and str(raw_ts).strip() != "":
            timestamp = str(raw_ts).strip()
            if TIME_PATTERN.match(timestamp):
                # Bare time of day in the timestamp column
                date = date or EPOCH_SENTINEL_DATE
                time = time or timestamp
                timestamp = f"{date} {time}"
            else:
                ts_date, ts_time = split_timestamp(timestamp)
                date = date or ts_date or EPOCH_SENTINEL_DATE
                time = time or ts_time or EPOCH_SENTINEL_TIME
        else:
            date = date or EPOCH_SENTINEL_DATE
            time = time or EPOCH_SENTINEL_TIME
            timestamp = f"{date} {time}"

        epoch_s = to_epoch_seconds(timestamp)
        return timestamp, date, time, epoch_s if epoch_s is not None else 0.0

    def _optional_timestamp(self, row: Mapping[str, Any]) -> tuple[Optional[str], Optional[float]]:
        raw_ts = _pick(row, TIMESTAMP_ALIASES)
        if raw_ts is not None and str(raw_ts).strip() != "":
            timestamp = str(raw_ts).strip()
        else:
            date = _text(_pick(row, DATE_ALIASES), "")
            time = _text(_pick(row, TIME_ALIASES), "")
            if not date and not time:
                return None, None
            timestamp = f"{date} {time}".strip()
        return timestamp, to_epoch_seconds(timestamp)


_NORMALIZER = RecordNormalizer()

_DISPATCH = {
    RecordKind.GPS: _NORMALIZER.gps,
    RecordKind.SYSTEM: _NORMALIZER.system,
    RecordKind.DETECTION: _NORMALIZER.detection,
    RecordKind.IMAGE: _NORMALIZER.image,
    RecordKind.MANIFEST: _NORMALIZER.manifest_entry,
}


def normalize_row(kind: RecordKind, row: Mapping[str, Any], **context):
    """Normalize one row; returns None for a structurally empty row."""
    return _DISPATCH[kind](row, **context)


def normalize_rows(kind: RecordKind, rows: Iterable[Mapping[str, Any]], **context) -> list:
    """Normalize a batch, dropping empty rows and non-mapping entries."""
    records = []
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        record = normalize_row(kind, row, **context)
        if record is not None:
            records.append(record)
    return records


def _pick(row: Mapping[str, Any], aliases: list[str]) -> Any:
    for alias in aliases:
        if alias in row:
            value = row[alias]
            if value is None:
                continue
            if isinstance(value, str) and value.strip() == "":
                continue
            return value
    return None


def _is_blank(row: Optional[Mapping[str, Any]]) -> bool:
    if not row:
        return True
    for value in row.values():
        if value is None:
            continue
        if isinstance(value, float) and math.isnan(value):
            continue
        if isinstance(value, str) and value.strip() == "":
            continue
        return False
    return True


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _to_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    if number is None:
        return None
    return int(number)


def _to_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes", "y"):
        return True
    if text in ("false", "0", "no", "n"):
        return False
    return None


def _text(value: Any, default: str) -> str:
    if value is None:
        return default
    text = str(value)
    return text if text.strip() != "" else default


def _latitude(value: Any) -> float:
    number = _to_float(value)
    if number is None or not is_valid_latitude(number):
        return 0.0
    return number


def _longitude(value: Any) -> float:
    number = _to_float(value)
    if number is None or not is_valid_longitude(number):
        return 0.0
    return number
