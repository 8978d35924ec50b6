"""
Sample data generator.

Produces survey-shaped data: a placeholder GPS trace used when a session has
no real GPS, and a complete demo session folder (GPS log, system metrics,
per-camera detection metadata and images) in the survey server's layout.
"""

from pathlib import Path
from typing import Optional

import numpy as np

from roadview.models.records import GPSFix, GPSSource
from roadview.utils.timestamps import format_timestamp, split_timestamp, to_epoch_seconds


METERS_PER_DEG_LAT = 111000.0


def synthesize_gps_trace(
    n_points: int = 20,
    interval_s: float = 1.0,
    seed: int = 7,
    center: tuple[float, float] = (37.5665, 126.9780),
    start_epoch_s: float = 0.0,
) -> list[GPSFix]:
    """
    Deterministic placeholder trace: a gentle random walk around `center`,
    one fix every `interval_s` seconds. Every fix is tagged synthetic.
    """
    if n_points <= 0:
        return []

    rng = np.random.default_rng(seed)
    center_lat, center_lon = center
    meters_per_deg_lon = METERS_PER_DEG_LAT * np.cos(np.radians(center_lat))

    # ~10 m steps north-east with small jitter
    north = np.cumsum(rng.normal(7.0, 2.0, n_points))
    east = np.cumsum(rng.normal(7.0, 2.0, n_points))
    lat = center_lat + north / METERS_PER_DEG_LAT
    lon = center_lon + east / meters_per_deg_lon

    fixes = []
    for i in range(n_points):
        epoch_s = start_epoch_s + i * interval_s
        timestamp = format_timestamp(epoch_s)
        date, time = split_timestamp(timestamp)
        fixes.append(GPSFix(
            timestamp=timestamp,
            date=date,
            time=time,
            epoch_s=epoch_s,
            latitude=round(float(lat[i]), 7),
            longitude=round(float(lon[i]), 7),
            source=GPSSource.SYNTHETIC,
        ))
    return fixes


def generate_survey_session(
    output_folder: Path,
    session: str = "F1",
    n_fixes: int = 60,
    start: str = "2024-05-14 10:00:00",
    center: tuple[float, float] = (37.5665, 126.9780),
    cameras: Optional[dict[str, list[str]]] = None,
    detections_per_stream: int = 12,
    seed: int = 42,
) -> Path:
    """
    Write a demo survey session folder and return its root.

    Layout:
        <root>/gps_log.csv
        <root>/system_metrics.csv
        <root>/<session>/<camera>/<anomalyType>/metadata.csv + frame_N.jpg
    """
    if cameras is None:
        cameras = {
            "4kcam": ["crack", "pothole"],
            "cam1": ["pole"],
        }

    rng = np.random.default_rng(seed)
    output_folder.mkdir(parents=True, exist_ok=True)

    start_epoch = to_epoch_seconds(start) or 0.0
    epochs = start_epoch + np.arange(n_fixes, dtype=np.float64)

    # Straight-ish drive with lateral wander
    center_lat, center_lon = center
    meters_per_deg_lon = METERS_PER_DEG_LAT * np.cos(np.radians(center_lat))
    north = np.arange(n_fixes) * 8.0 + rng.normal(0, 0.5, n_fixes)
    east = np.cumsum(rng.normal(0, 1.0, n_fixes))
    lat = center_lat + north / METERS_PER_DEG_LAT
    lon = center_lon + east / meters_per_deg_lon
    speed = np.clip(rng.normal(28.8, 3.0, n_fixes), 0, None)
    heading = np.degrees(np.arctan2(np.diff(east, prepend=east[0]), 8.0)) % 360

    lines = ["timestamp,date,time,latitude,longitude,altitude,speed,heading"]
    for i in range(n_fixes):
        timestamp = format_timestamp(float(epochs[i]))
        date, time = split_timestamp(timestamp)
        lines.append(
            f"{timestamp},{date},{time},"
            f"{lat[i]:.7f},{lon[i]:.7f},"
            f"35.0,"
            f"{speed[i]:.1f},"
            f"{heading[i]:.1f}"
        )
    (output_folder / "gps_log.csv").write_text("\n".join(lines) + "\n")

    lines = [
        "timestamp,cpu_usage_percent,gpu_usage_percent,memory_used_mb,memory_total_mb,"
        "cpu_temp_celsius,gpu_temp_celsius,power_total_watts,uptime_seconds"
    ]
    for i in range(0, n_fixes, 5):
        lines.append(
            f"{format_timestamp(float(epochs[i]))},"
            f"{rng.uniform(20, 80):.1f},{rng.uniform(30, 95):.1f},"
            f"{rng.uniform(2000, 6000):.0f},8192,"
            f"{rng.uniform(40, 70):.1f},{rng.uniform(45, 75):.1f},"
            f"{rng.uniform(10, 20):.2f},{3600 + i}"
        )
    (output_folder / "system_metrics.csv").write_text("\n".join(lines) + "\n")

    for camera, classes in cameras.items():
        stream_id = 100 if camera == "4kcam" else 1
        for anomaly_type in classes:
            stream_dir = output_folder / session / camera / anomaly_type
            stream_dir.mkdir(parents=True, exist_ok=True)

            picks = np.sort(rng.choice(n_fixes, size=min(detections_per_stream, n_fixes), replace=False))
            lines = [
                "frameNum,streamId,className,confidence,left,top,width,height,"
                "timestamp,latitude,longitude,imagePath"
            ]
            for frame_num in picks:
                image_name = f"frame_{frame_num}.jpg"
                lines.append(
                    f"{frame_num},{stream_id},{anomaly_type},"
                    f"{rng.uniform(0.5, 0.99):.2f},"
                    f"{rng.integers(0, 1600)},{rng.integers(0, 900)},"
                    f"{rng.integers(40, 300)},{rng.integers(40, 300)},"
                    f"{format_timestamp(float(epochs[frame_num]))},"
                    f"{lat[frame_num]:.7f},{lon[frame_num]:.7f},"
                    f"{image_name}"
                )
                # Placeholder JPEG (SOI/EOI markers only)
                (stream_dir / image_name).write_bytes(b"\xff\xd8\xff\xd9")
            (stream_dir / "metadata.csv").write_text("\n".join(lines) + "\n")

    return output_folder


if __name__ == "__main__":
    # Generate a demo session when run directly
    output = Path("./data/sample_session")
    generate_survey_session(output)
    print(f"Generated sample survey session in {output}")
