"""Command line entry point for batch jobs and ad-hoc queries"""
import argparse
import datetime
import logging
import sys
from typing import List, Optional

from listening_analytics.config import settings
from listening_analytics.db import db
from listening_analytics.errors import AnalyticsError, InvalidArgument
from listening_analytics.services.analytics import AnalyticsService
from listening_analytics.utils.json_encoder import json_dumps

logger = logging.getLogger(__name__)

def _parse_day(value: str) -> datetime.date:
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Not an ISO date (YYYY-MM-DD): {value!r}")

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="listening_analytics", description="Listening analytics jobs")
    parser.add_argument("--database-url", help="SQLAlchemy URL, defaults to the configured database")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create missing tables")

    refresh = sub.add_parser("refresh-stats", help="Recompute daily track stats")
    refresh.add_argument("--day", type=_parse_day, help="Day to refresh (default: today)")
    refresh.add_argument("--start", type=_parse_day, help="First day of a backfill range")
    refresh.add_argument("--end", type=_parse_day, help="Last day of a backfill range")
    refresh.add_argument("--prune-stale", action="store_true", default=None,
                         help="Delete rows for tracks with no plays on the day")

    recommend = sub.add_parser("recommend", help="Recommend tracks for a user")
    recommend.add_argument("--user", type=int, required=True)
    recommend.add_argument("--limit", type=int, default=settings.RECOMMEND_DEFAULT_LIMIT)
    recommend.add_argument("--timeout", type=float, default=None, help="Deadline in seconds")

    reconcile = sub.add_parser("reconcile", help="Recompute popularity from likes")
    reconcile.add_argument("--track", type=int, action="append", dest="tracks",
                           help="Track id to reconcile, repeatable (default: all tracks)")

    top = sub.add_parser("top-tracks", help="Most played tracks among listeners of a country")
    top.add_argument("--country", required=True)
    top.add_argument("--limit", type=int, default=10)
    return parser

def dispatch(args: argparse.Namespace, service: AnalyticsService):
    """Run one parsed command and return a JSON-serialisable result"""
    if args.command == "init-db":
        return {"status": "ok"}
    if args.command == "refresh-stats":
        if args.start or args.end:
            if not (args.start and args.end):
                raise InvalidArgument("--start and --end must be given together")
            results = service.stats.refresh_range(args.start, args.end, prune_stale=args.prune_stale)
            return [result.model_dump() for result in results]
        day = args.day or datetime.date.today()
        return service.refresh_daily_stats(day, prune_stale=args.prune_stale).model_dump()
    if args.command == "recommend":
        recommendations = service.recommend(args.user, args.limit, args.timeout)
        return [recommendation.model_dump() for recommendation in recommendations]
    if args.command == "reconcile":
        return service.reconcile_popularity(args.tracks).model_dump()
    if args.command == "top-tracks":
        return [row.model_dump() for row in service.top_tracks_by_country(args.country, args.limit)]
    raise AnalyticsError(f"Unknown command {args.command}")

def run(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, run the command and print its result as JSON."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    try:
        db.init(args.database_url)
        with db.session() as session:
            result = dispatch(args, AnalyticsService(session))
        print(json_dumps(result, indent=2))
        return 0
    except AnalyticsError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error during {args.command}: {e}")
        return 1
    finally:
        db.dispose()

if __name__ == "__main__":
    sys.exit(run())
