"""CLI entrypoint."""
from __future__ import annotations

import argparse
import logging
import os
import random
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv as _load_dotenv

from looproute import config
from looproute.candidates import place_to_stop
from looproute.geo import Coordinate
from looproute.http import HttpClient, RequestBudget, RequestMetrics, RetryPolicy
from looproute.models import SearchProgress, SearchResult, Stop
from looproute.pipeline import find_optimal_route
from looproute.places_client import PlacesClient
from looproute.reporting import (
    build_maps_url,
    ensure_dir,
    render_summary,
    write_json_object,
    write_route_csv,
    write_summary,
)
from looproute.routes_client import RoutesClient

logger = logging.getLogger("run")


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Optionally load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    _load_dotenv(dotenv_path=env_path, override=False)


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Plan a closed-loop route through nearby stops")
    parser.add_argument("--start-place-id", type=str, default=None, help="Start at this place id")
    parser.add_argument("--start-lat", type=float, default=None)
    parser.add_argument("--start-lon", type=float, default=None)
    parser.add_argument("--start-name", type=str, default="Start")
    parser.add_argument("--start-address", type=str, default=None)
    parser.add_argument("--min-miles", type=float, default=None, help="Minimum loop distance in miles")
    parser.add_argument("--max-miles", type=float, default=None, help="Maximum loop distance in miles")
    parser.add_argument("--min-stops", type=int, default=None)
    parser.add_argument("--max-stops", type=int, default=None)
    parser.add_argument("--radius-miles", type=float, default=None, help="Search radius around the start")
    parser.add_argument("--max-calls", type=int, default=None, help="Cap on Routes API calls")
    parser.add_argument("--attempts", type=int, default=None, help="Construction attempts per stop count")
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible loops")
    parser.add_argument("--config", type=str, default=None, help="Path to search_config.json")
    parser.add_argument("--max-places", type=int, default=config.MAX_PLACES_REQUESTS_PER_RUN)
    parser.add_argument("--out", type=str, default=config.OUTPUT_DIR)
    args = parser.parse_args(argv)
    if args.start_place_id is None and (args.start_lat is None or args.start_lon is None):
        parser.error("provide --start-place-id or both --start-lat and --start-lon")
    return args


def build_search_config(args: argparse.Namespace) -> config.SearchConfig:
    cfg = config.load_search_config(args.config) or config.SearchConfig()
    overrides: Dict[str, Any] = {}
    if args.min_miles is not None:
        overrides["min_distance_m"] = args.min_miles * config.METERS_PER_MILE
    if args.max_miles is not None:
        overrides["max_distance_m"] = args.max_miles * config.METERS_PER_MILE
    if args.min_stops is not None:
        overrides["min_stops"] = args.min_stops
    if args.max_stops is not None:
        overrides["max_stops"] = args.max_stops
    if args.radius_miles is not None:
        overrides["search_radius"] = args.radius_miles
        overrides["radius_unit_m"] = config.METERS_PER_MILE
    if args.max_calls is not None:
        overrides["max_oracle_calls"] = args.max_calls
    if args.attempts is not None:
        overrides["attempts_per_stop_count"] = args.attempts
    return replace(cfg, **overrides)


def resolve_start(args: argparse.Namespace, places: PlacesClient) -> Stop:
    if args.start_place_id:
        return place_to_stop(places.get_details(args.start_place_id))
    name = args.start_name
    return Stop(
        place_id=f"start:{args.start_lat},{args.start_lon}",
        name=name,
        address=args.start_address or name,
        location=Coordinate(lat=args.start_lat, lon=args.start_lon),
    )


def write_outputs(
    out_dir: str,
    result: SearchResult,
    cfg: config.SearchConfig,
    metrics: Optional[RequestMetrics] = None,
) -> None:
    ensure_dir(out_dir)
    payload = result.to_dict()
    payload["maps_url"] = build_maps_url(result.route, cfg.travel_mode) if result.success else None
    payload["requests"] = metrics.to_dict() if metrics is not None else None
    write_json_object(os.path.join(out_dir, "result.json"), payload)
    write_summary(os.path.join(out_dir, "summary.txt"), render_summary(result, cfg))
    if result.success:
        write_route_csv(os.path.join(out_dir, "route.csv"), result.route)


def _print_progress(progress: SearchProgress) -> None:
    print(f"[{progress.status.value}] {progress.message}")


def main(argv: Optional[list] = None) -> int:
    load_env()
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    api_key = (os.environ.get("GOOGLE_MAPS_API_KEY") or "").strip()
    if not api_key:
        print("Missing GOOGLE_MAPS_API_KEY in environment", file=sys.stderr)
        return 1

    try:
        cfg = build_search_config(args)
        cfg.validate()
    except ValueError as exc:
        print(f"Invalid search config: {exc}", file=sys.stderr)
        return 1

    metrics = RequestMetrics()
    http_client = HttpClient(api_key, timeout=config.HTTP_TIMEOUT_SECONDS, retry=RetryPolicy())
    places = PlacesClient(http_client, RequestBudget("places", args.max_places, metrics=metrics))
    # Each oracle call is one Routes request; the verifier enforces the same cap.
    routes = RoutesClient(
        http_client,
        RequestBudget("routes", cfg.max_oracle_calls, metrics=metrics),
        travel_mode=cfg.travel_mode,
    )

    try:
        start = resolve_start(args, places)
    except Exception as exc:
        print(f"Could not resolve start place: {exc}", file=sys.stderr)
        return 1

    ensure_dir(args.out)
    rng = random.Random(args.seed) if args.seed is not None else None
    result = find_optimal_route(
        start,
        places,
        routes,
        cfg=cfg,
        on_progress=_print_progress,
        rng=rng,
        progress_path=os.path.join(args.out, "progress.json"),
    )
    write_outputs(args.out, result, cfg, metrics=metrics)

    logger.info("Requests: network=%s cache_hits=%s", metrics.network, metrics.cache_hits)
    for line in render_summary(result, cfg):
        print(line)
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
