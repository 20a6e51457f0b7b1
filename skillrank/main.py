"""
Command line entry point.

    skillrank init-db
    skillrank recompute-rankings --sport tennis --category country --scope PE --period monthly
    skillrank recompute-rankings --all --period all_time

recompute-rankings is what the external scheduler calls; concurrent
invocations are serialised by the Redis job lock when REDIS_URL is set.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from skillrank.config import Config
from skillrank.engine import SkillRankEngine
from skillrank.utils.exceptions import SkillRankError
from skillrank.utils.logger import setup_logger

logger = setup_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="skillrank", description="Skill scoring and rating engine")
    parser.add_argument("--database-url", help=f"Database URL (default: {Config.DATABASE_URL})")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create tables and seed the sport catalog")

    rankings = subparsers.add_parser("recompute-rankings", help="Recompute ranking snapshots")
    rankings.add_argument("--all", action="store_true",
                          help="Every scope of every active sport")
    rankings.add_argument("--sport", help="Sport slug (tennis, padel, ...)")
    rankings.add_argument("--category", choices=["global", "country", "tier"], default="global")
    rankings.add_argument("--scope", help="Country code or tier name")
    rankings.add_argument("--period", choices=["weekly", "monthly", "all_time"], default="all_time")
    rankings.add_argument("--period-key", help="Explicit period key (2026-10, 2026-W42, all)")

    return parser


async def run(args: argparse.Namespace) -> int:
    engine = SkillRankEngine(args.database_url)
    await engine.setup(connect_redis=args.command == "recompute-rankings")

    try:
        if args.command == "init-db":
            sports = await engine.db.get_all_sports()
            print(f"Database ready with {len(sports)} sports")
            return 0

        if args.all:
            results = await engine.ranking_service.recompute_all_rankings(args.period, args.period_key)
        else:
            if not args.sport:
                print("--sport is required unless --all is given", file=sys.stderr)
                return 2
            sport = await engine.db.get_sport_by_slug(args.sport)
            if not sport:
                print(f"Unknown sport '{args.sport}'", file=sys.stderr)
                return 2
            results = [await engine.recompute_rankings(
                sport.id, args.category, args.scope, args.period, args.period_key
            )]

        for result in results:
            status = "skipped (locked)" if result.skipped else f"{result.ranked_players} ranked"
            scope = f"{result.category.value}:{result.scope_value}" if result.scope_value else result.category.value
            print(f"sport={result.sport_id} {scope} {result.period.value}/{result.period_key}: {status}")
        return 0
    finally:
        await engine.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run(args))
    except SkillRankError as e:
        print(e.user_message, file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
