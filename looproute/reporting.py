"""Progress notifications and output writers."""
from __future__ import annotations

import csv
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, TextIO
from urllib.parse import urlencode

from .config import METERS_PER_MILE, SearchConfig
from .models import ProgressStatus, SearchProgress, SearchResult, Stop

ProgressCallback = Callable[[SearchProgress], None]

MAPS_DIRECTIONS_URL = "https://www.google.com/maps/dir/"
_MAPS_TRAVEL_MODES = {"WALK": "walking", "DRIVE": "driving", "BICYCLE": "bicycling"}


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _fsync_dir(path: str) -> None:
    try:
        dir_fd = os.open(path, os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


@contextmanager
def atomic_writer(
    path: str,
    mode: str = "w",
    encoding: str = "utf-8",
    newline: Optional[str] = None,
) -> Iterator[TextIO]:
    dir_path = os.path.dirname(path) or "."
    base = os.path.basename(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{base}.", suffix=".tmp", dir=dir_path)
    try:
        with os.fdopen(fd, mode, encoding=encoding, newline=newline) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(dir_path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write_text(path: str, text: str) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        f.write(text)


def write_json_object(path: str, payload: Dict[str, Any]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def write_route_csv(path: str, stops: Iterable[Stop]) -> None:
    fieldnames = ["sequence", "place_id", "name", "address", "lat", "lon"]
    with atomic_writer(path, mode="w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for idx, stop in enumerate(stops, start=1):
            row = stop.to_dict()
            row["sequence"] = idx
            writer.writerow(row)


def write_summary(path: str, summary_lines: List[str]) -> None:
    atomic_write_text(path, "\n".join(summary_lines))


def build_maps_url(stops: List[Stop], travel_mode: str = "WALK") -> str:
    """Shareable Google Maps directions link for the closed loop."""
    if not stops:
        return ""
    origin = f"{stops[0].lat},{stops[0].lon}"
    params = {
        "api": "1",
        "origin": origin,
        "destination": origin,
        "travelmode": _MAPS_TRAVEL_MODES.get(travel_mode.upper(), "walking"),
    }
    if len(stops) > 1:
        params["waypoints"] = "|".join(f"{s.lat},{s.lon}" for s in stops[1:])
    return f"{MAPS_DIRECTIONS_URL}?{urlencode(params)}"


def render_summary(result: SearchResult, cfg: SearchConfig) -> List[str]:
    if not result.success:
        return [
            "Route search failed",
            f"- error: {result.error_kind.value if result.error_kind else 'unknown'}",
            f"- message: {result.message}",
            f"- oracle calls used: {result.oracle_calls_used}",
        ]
    distance_m = result.distance_m or 0.0
    lines = [
        "Route found" if result.verified else "Route found (estimated, not verified)",
        f"- stops: {len(result.route)}",
        f"- distance: {distance_m / METERS_PER_MILE:.1f} mi ({distance_m:.0f} m)",
        f"- target band: {cfg.min_distance_m:.0f}-{cfg.max_distance_m:.0f} m",
        f"- oracle calls used: {result.oracle_calls_used}",
        f"- candidates evaluated: {result.candidates_evaluated}",
        f"- maps: {build_maps_url(result.route, cfg.travel_mode)}",
        "",
    ]
    for idx, stop in enumerate(result.route, start=1):
        lines.append(f"{idx:2d}. {stop.name} | {stop.address}")
    return lines


class ProgressReporter:
    def __init__(
        self,
        callback: Optional[ProgressCallback] = None,
        output_path: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.callback = callback
        self.output_path = output_path
        self.logger = logger or logging.getLogger(__name__)
        self.candidates_found: Optional[int] = None
        self.oracle_calls_used: Optional[int] = None
        self.candidates_evaluated: Optional[int] = None
        self.last: Optional[SearchProgress] = None

    def emit(
        self,
        status: ProgressStatus,
        message: str,
        candidates_found: Optional[int] = None,
        oracle_calls_used: Optional[int] = None,
        candidates_evaluated: Optional[int] = None,
    ) -> SearchProgress:
        # Counters stick once reported so later notifications carry them forward.
        if candidates_found is not None:
            self.candidates_found = candidates_found
        if oracle_calls_used is not None:
            self.oracle_calls_used = oracle_calls_used
        if candidates_evaluated is not None:
            self.candidates_evaluated = candidates_evaluated

        progress = SearchProgress(
            status=status,
            message=message,
            candidates_found=self.candidates_found,
            oracle_calls_used=self.oracle_calls_used,
            candidates_evaluated=self.candidates_evaluated,
        )
        self.last = progress
        self.logger.info("Progress: status=%s %s", status.value, message)
        if self.callback is not None:
            try:
                self.callback(progress)
            except Exception:
                self.logger.exception("Progress callback raised; ignoring")
        if self.output_path:
            payload = progress.to_dict()
            payload["timestamp"] = utc_now_iso()
            write_json_object(self.output_path, payload)
        return progress
