"""
Dealership data setup CLI.

Usage:
    python -m inventory.cli --source inventory --file data/used_cars.csv
    python -m inventory.cli --source inventory --url https://dms.example.com/api/vehicles
    python -m inventory.cli --source campaigns
    python -m inventory.cli --source mock
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from config.settings import get_settings
from communications.campaigns import seed_campaigns
from database.session import close_db, init_db
from database.sink import SqlRecordSink

from .loader import InventoryLoader
from .matcher import seed_inventory

logger = logging.getLogger(__name__)


async def run(source: str, file_path: str = None, api_url: str = None) -> int:
    settings = get_settings()
    if not settings.database_url:
        logger.error("DATABASE_URL not set")
        return 1

    factory = await init_db(settings.database_url)
    sink = SqlRecordSink(factory)
    try:
        if source == "inventory":
            loader = InventoryLoader()
            path = Path(file_path) if file_path else None
            if api_url:
                records = await loader.load_from_api(api_url)
            elif path.suffix == ".csv":
                records = loader.load_from_csv(path)
            elif path.suffix == ".json":
                records = loader.load_from_json(path)
            else:
                logger.error(f"Unsupported format: {path.suffix}")
                return 1
            counts = await loader.import_into(sink, records)
            return 0 if counts["failed"] == 0 else 1
        if source == "campaigns":
            await seed_campaigns(sink)
        elif source == "mock":
            await seed_inventory(sink)
        return 0
    finally:
        await close_db()


def main():
    parser = argparse.ArgumentParser(description="Dealership data setup")
    parser.add_argument(
        "--source",
        choices=["inventory", "campaigns", "mock"],
        required=True,
        help="What to load",
    )
    parser.add_argument("--file", help="Path to inventory CSV or JSON")
    parser.add_argument("--url", help="Inventory API URL returning vehicle JSON")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.source == "inventory" and not (args.file or args.url):
        logger.error("--file or --url required for inventory import")
        sys.exit(1)

    sys.exit(asyncio.run(run(args.source, args.file, args.url)))


if __name__ == "__main__":
    main()
