"""Command-line interface for karma."""

import argparse
import asyncio
import json
import logging
import sys

import aiohttp

from . import services
from .achievements import AchievementStatus
from .backend import BackendClient, KarmaError
from .config import load_settings
from .fees import split_donation
from .geo import haversine_miles
from .recommend import DEFAULT_LIMIT

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler()]
    )
    # Quiet down aiohttp
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def _money(value) -> str:
    return f"${value:,.2f}"


def _emit(data, fmt: str, lines: list[str]):
    if fmt == "json":
        print(json.dumps(data, indent=2))
    else:
        for line in lines:
            print(line)


def cmd_fee(args) -> int:
    fees = split_donation(args.amount)
    _emit(fees.to_dict(), args.format, [
        f"Donation:     {_money(fees.amount)}",
        f"Platform fee: {_money(fees.platform_fee)}",
        f"Nonprofit:    {_money(fees.net_amount)}",
    ])
    return 0


def cmd_distance(args) -> int:
    miles = haversine_miles(args.lat1, args.lon1, args.lat2, args.lon2)
    _emit({"miles": miles}, args.format,
          ["Distance unknown" if miles is None else f"{miles:.1f} miles"])
    return 0


async def _with_backend(action, args):
    settings = load_settings(args.env_file)
    async with aiohttp.ClientSession() as session:
        backend = BackendClient(session, settings)
        user = await services.get_current_user(backend)
        return await action(backend, user, args)


async def _recommend(backend, user, args):
    results = await services.recommended_nonprofits(backend, user, limit=args.limit)
    data = [{"id": r.nonprofit.id, "name": r.nonprofit.name,
             "category": r.nonprofit.category, "score": r.score} for r in results]
    lines = [f"{i}. {r.nonprofit.name} ({r.nonprofit.category or 'uncategorized'}) - Score: {r.score}"
             for i, r in enumerate(results, 1)] or ["No recommendations yet."]
    _emit(data, args.format, lines)


async def _opportunities(backend, user, args):
    results = await services.recommended_opportunities(backend, user, limit=args.limit)
    data = [{"id": r.opportunity.id, "title": r.opportunity.title, "score": r.score,
             "spots_available": r.opportunity.spots_available, "distance": r.distance}
            for r in results]
    lines = []
    for i, r in enumerate(results, 1):
        where = f", {r.distance:.1f} mi" if r.distance is not None else ""
        lines.append(f"{i}. {r.opportunity.title} - {r.opportunity.spots_available} spots{where}"
                     f" - Score: {r.score}")
    _emit(data, args.format, lines or ["No opportunities found."])


async def _achievements(backend, user, args):
    if user is None:
        raise KarmaError("Not signed in")
    results = await services.user_achievements(backend, user)
    data = [{"id": r.achievement.id, "title": r.achievement.title,
             "status": r.status.value, "progress": round(r.progress, 1)} for r in results]
    marks = {
        AchievementStatus.COMPLETED: "[x]",
        AchievementStatus.IN_PROGRESS: "[~]",
        AchievementStatus.LOCKED: "[ ]",
    }
    lines = [f"{marks[r.status]} {r.achievement.icon} {r.achievement.title}: {r.progress:.0f}%"
             for r in results]
    _emit(data, args.format, lines)


async def _alerts(backend, user, args):
    alerts = await services.disaster_alerts(backend, user, limit=args.limit)
    data = [{"id": o.id, "title": o.title, "miles": d} for o, d in alerts]
    lines = [f"! {o.title} ({d:.0f} miles away)" for o, d in alerts] or ["No disaster alerts near you."]
    _emit(data, args.format, lines)


BACKEND_COMMANDS = {
    "recommend": _recommend,
    "opportunities": _opportunities,
    "achievements": _achievements,
    "alerts": _alerts,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="karma",
        description="Recommendations, fees and impact for the Karma giving platform"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Quiet mode (errors only)"
    )
    parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)"
    )
    parser.add_argument(
        "--env-file",
        help="Path to a .env file with KARMA_* settings"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    fee = sub.add_parser("fee", help="Show the platform fee split for a donation amount")
    fee.add_argument("amount", help="Gross donation amount, e.g. 100 or 25.50")

    distance = sub.add_parser("distance", help="Distance in miles between two points")
    for name in ("lat1", "lon1", "lat2", "lon2"):
        distance.add_argument(name, type=float)

    sub.add_parser("achievements", help="Show your impact achievements")

    for name, help_text, default in (
        ("recommend", "Recommend nonprofits you haven't supported yet", DEFAULT_LIMIT),
        ("opportunities", "Recommend volunteer opportunities", DEFAULT_LIMIT),
        ("alerts", "Disaster-relief opportunities near you", services.DISASTER_ALERT_LIMIT),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument(
            "--limit",
            type=int,
            default=default,
            help=f"Number of results (default: {default})"
        )

    return parser


def main(argv=None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.quiet:
        logging.basicConfig(level=logging.ERROR)
    else:
        setup_logging(args.verbose)

    if args.command == "fee":
        return cmd_fee(args)
    if args.command == "distance":
        return cmd_distance(args)

    try:
        asyncio.run(_with_backend(BACKEND_COMMANDS[args.command], args))
    except (KarmaError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
