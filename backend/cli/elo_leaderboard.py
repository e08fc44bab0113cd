#!/usr/bin/env python3
"""
Inspect persisted ELO ratings from the command line.

Subcommands:
    leaderboard GAME_TYPE [--page N] [--limit N] [--min-games N]
    history IDENTITY_ID GAME_TYPE [--limit N]
    ratings IDENTITY_ID
"""

import argparse
import json
import os
import sys

from dotenv import load_dotenv

# Add backend directory to path for imports
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from domain.constants import MIN_GAMES_FOR_RANKING  # noqa: E402
from services.leaderboard import LeaderboardService  # noqa: E402


def show_leaderboard(service: LeaderboardService, args) -> int:
    page = service.get_leaderboard(
        args.game_type, page=args.page, limit=args.limit, min_games=args.min_games
    )
    print(f"Leaderboard: {page.game_type} (page {page.page}/{max(page.total_pages, 1)}, "
          f"{page.total} ranked players, min {page.min_games} games)")
    print("\n{:>4} {:<30} {:>7} {:>6} {:>6} {:>6} {:>7}".format(
        "#", "Player", "Rating", "Peak", "Floor", "Games", "Streak"
    ))
    print("-" * 72)
    for row in page.rankings:
        print("{:>4} {:<30} {:>7} {:>6} {:>6} {:>6} {:>+7}".format(
            row.rank, row.display_name[:30], row.rating, row.peak, row.floor,
            row.games_played, row.streak
        ))
    return 0


def show_history(service: LeaderboardService, args) -> int:
    entries = service.get_history(args.identity_id, args.game_type, limit=args.limit)
    if not entries:
        print(f"No {args.game_type} history for identity {args.identity_id}")
        return 1
    for entry in entries:
        date = entry.date.isoformat() if entry.date else "-"
        print(f"{date}  game {entry.game_id}  #{entry.placement}  "
              f"{entry.rating} ({entry.change:+d})  vs {', '.join(entry.opponents)}")
    return 0


def show_ratings(service: LeaderboardService, args) -> int:
    summary = service.get_identity_ratings(args.identity_id)
    if summary is None:
        print(f"Identity {args.identity_id} not found")
        return 1
    print(json.dumps(summary, indent=2, default=str))
    return 0


def main(argv=None) -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Inspect persisted ELO ratings.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    board = subparsers.add_parser("leaderboard", help="Show a game type's leaderboard")
    board.add_argument("game_type")
    board.add_argument("--page", type=int, default=1)
    board.add_argument("--limit", type=int, default=50)
    board.add_argument("--min-games", type=int, default=MIN_GAMES_FOR_RANKING)
    board.set_defaults(handler=show_leaderboard)

    history = subparsers.add_parser("history", help="Show an identity's rating history")
    history.add_argument("identity_id")
    history.add_argument("game_type")
    history.add_argument("--limit", type=int, default=20)
    history.set_defaults(handler=show_history)

    ratings = subparsers.add_parser("ratings", help="Show an identity's ratings in every game type")
    ratings.add_argument("identity_id")
    ratings.set_defaults(handler=show_ratings)

    args = parser.parse_args(argv)
    return args.handler(LeaderboardService(), args)


if __name__ == "__main__":
    sys.exit(main())
