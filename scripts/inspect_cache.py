#!/usr/bin/env python3
"""
Cache Inspection Script

Look inside the edge data cache from a terminal.

Usage:
    python scripts/inspect_cache.py keys project:org:
    python scripts/inspect_cache.py get task 7f3c2a
    python scripts/inspect_cache.py warm-org acme-builders
    python scripts/inspect_cache.py stats
"""

import asyncio
import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from weatherguard.container import DataServices, create_data_services
from weatherguard.exceptions import WeatherGuardError
from weatherguard.kv.redis_store import RedisKVStore
from weatherguard.models.common import PaginationQuery
from weatherguard.utils.config import get_settings


logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", verbose: bool = False):
    """Configure logging."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
        ]
    )


def resource_service(services: DataServices, resource: str):
    """Map a resource name from the command line to its service."""
    lookup = {
        "project": services.projects,
        "task": services.tasks,
        "weather_analysis": services.analyses,
        "analysis": services.analyses,
    }
    if resource not in lookup:
        raise SystemExit(f"Unknown resource '{resource}'. Choose from: {', '.join(lookup)}")
    return lookup[resource]


async def cmd_keys(services: DataServices, prefix: str, show_metadata: bool):
    keys = await services.store.list_all(prefix)
    for key in keys:
        if show_metadata and key.metadata is not None:
            print(f"{key.name}  {json.dumps(key.metadata.to_wire())}")
        else:
            print(key.name)
    print(f"\n{len(keys)} keys under '{prefix}'")


async def cmd_get(services: DataServices, resource: str, resource_id: str):
    record = await resource_service(services, resource).get_by_id(resource_id)
    if record is None:
        print(f"{resource} {resource_id} not found")
        return 1
    print(json.dumps(record.to_wire(), indent=2))
    return 0


async def cmd_warm_org(services: DataServices, organization_id: str):
    settings = get_settings()
    page = await services.projects.get_by_organization(
        organization_id,
        PaginationQuery(page_size=settings.MAX_PAGE_SIZE),
    )
    print(f"Organization {organization_id}: {page.total_count} projects cached")
    for project in page.items:
        print(f"  - {project.id}  {project.name}  [{project.status}]")


async def cmd_stats(services: DataServices):
    stats = services.get_stats()
    if isinstance(services.store, RedisKVStore):
        stats["store_health"] = await services.store.health_check()
    print(json.dumps(stats, indent=2, default=str))


async def run(args) -> int:
    services = create_data_services()
    try:
        if args.command == "keys":
            await cmd_keys(services, args.prefix, args.metadata)
        elif args.command == "get":
            return await cmd_get(services, args.resource, args.id)
        elif args.command == "warm-org":
            await cmd_warm_org(services, args.organization_id)
        elif args.command == "stats":
            await cmd_stats(services)
        return 0
    except WeatherGuardError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        await services.close()


def main():
    parser = argparse.ArgumentParser(
        description="Inspect the WeatherGuard edge data cache"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    keys_parser = subparsers.add_parser("keys", help="List keys under a prefix")
    keys_parser.add_argument("prefix", nargs="?", default="", help="Key prefix, e.g. 'task:project:'")
    keys_parser.add_argument("--metadata", action="store_true", help="Show key metadata")

    get_parser = subparsers.add_parser("get", help="Read one record through the cache")
    get_parser.add_argument("resource", help="project, task or weather_analysis")
    get_parser.add_argument("id", help="Record id")

    warm_parser = subparsers.add_parser("warm-org", help="Load an organization's projects into the cache")
    warm_parser.add_argument("organization_id", help="Organization id")

    subparsers.add_parser("stats", help="Show cache statistics")

    args = parser.parse_args()
    setup_logging(get_settings().LOG_LEVEL, args.verbose)

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
