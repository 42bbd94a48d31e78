#!/usr/bin/env python3
"""
Compute global rankings once, outside the web process.

Runs the same pipeline as the scheduled refresh and prints a summary (or the
full snapshot as JSON).

Usage:
    # Recompute and store both snapshots
    python scripts/compute_rankings.py

    # Print the top 25 EPA entries
    python scripts/compute_rankings.py --top 25

    # Dump the whole EPA snapshot as JSON
    python scripts/compute_rankings.py --json
"""

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from ftcmetrics.config import get_settings  # noqa: E402
from ftcmetrics.container import ServiceContainer  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main(top: int, as_json: bool) -> int:
    settings = get_settings()
    container = await ServiceContainer.build(settings)
    try:
        snapshot = await container.rankings.compute_and_cache_rankings()
    finally:
        await container.close()

    if snapshot is None:
        logger.error("Rankings computation failed; see log above")
        return 1

    if as_json:
        print(json.dumps(snapshot.to_dict(), indent=2))
        return 0

    logger.info(
        f"Season {snapshot.season}: {snapshot.total_teams} teams, "
        f"{snapshot.total_matches} matches, {snapshot.events_processed} events"
    )
    for entry in snapshot.rankings[:top]:
        print(f"{entry.rank:>5}  {entry.team_number:>6}  EPA {entry.epa:>7.2f}  "
              f"({entry.match_count} matches, {entry.trend})")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Compute global FTC rankings")
    parser.add_argument("--top", type=int, default=10, help="Entries to print (default 10)")
    parser.add_argument("--json", action="store_true", help="Print the EPA snapshot as JSON")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.top, args.json)))
