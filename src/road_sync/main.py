"""
Command line entry point for OSM road sync.

Usage:
    road-sync bbox 136.90 35.15 136.95 35.20
    road-sync region Naka-ku
    road-sync stale --max-age-hours 24
    road-sync status
    road-sync logs --limit 20
"""

import argparse
import json
import logging
import sys

from .config.sync_config import SyncConfig
from .database.services.asset_store import PostgisAssetStore
from .database.services.sync_log_service import PostgisSyncLogStore
from .services.sync.errors import RegionBoundaryNotFound
from .services.sync.sync_orchestrator import CancellationToken, SyncOrchestrator
from .utils.geo_utils import GeoBox


logger = logging.getLogger(__name__)


def build_orchestrator(config: SyncConfig) -> SyncOrchestrator:
    return SyncOrchestrator(
        asset_store=PostgisAssetStore(),
        log_store=PostgisSyncLogStore(),
        config=config,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync road assets from OpenStreetMap")
    parser.add_argument("--triggered-by", default="cli", help="Label stored on the sync log")
    parser.add_argument("--deadline", type=float, help="Abort the run after this many seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    bbox = subparsers.add_parser("bbox", help="Sync a bounding box")
    for name in ("min_lng", "min_lat", "max_lng", "max_lat"):
        bbox.add_argument(name, type=float)

    region = subparsers.add_parser("region", help="Sync a ward by its boundary")
    region.add_argument("name")

    stale = subparsers.add_parser("stale", help="Sync every ward not synced recently")
    stale.add_argument("--max-age-hours", type=float, default=24.0)

    subparsers.add_parser("status", help="Show sync status")

    logs = subparsers.add_parser("logs", help="List recent sync runs")
    logs.add_argument("--limit", type=int, default=20)
    logs.add_argument("--offset", type=int, default=0)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = SyncConfig.from_env()
    config.validate()
    orchestrator = build_orchestrator(config)
    cancel_token = CancellationToken(args.deadline) if args.deadline else None

    if args.command == "bbox":
        bbox = GeoBox(args.min_lng, args.min_lat, args.max_lng, args.max_lat)
        result = orchestrator.run_bbox_sync(bbox, args.triggered_by, cancel_token)
        print(json.dumps(result.to_dict(), indent=2))

    elif args.command == "region":
        try:
            result = orchestrator.run_region_sync(args.name, args.triggered_by, cancel_token)
        except RegionBoundaryNotFound as e:
            logger.error(str(e))
            return 1
        print(json.dumps(result.to_dict(), indent=2))

    elif args.command == "stale":
        results = orchestrator.sync_stale_regions(args.max_age_hours, args.triggered_by)
        print(json.dumps(
            {region: r.to_dict() if r else None for region, r in results.items()}, indent=2
        ))

    elif args.command == "status":
        print(json.dumps(orchestrator.get_sync_status().to_dict(), indent=2))

    elif args.command == "logs":
        runs, total = orchestrator.list_sync_runs(args.limit, args.offset)
        print(json.dumps({"data": [r.to_dict() for r in runs], "total": total}, indent=2))

    return 0


if __name__ == "__main__":
    sys.exit(main())
