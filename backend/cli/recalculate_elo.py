#!/usr/bin/env python3
"""
Recalculate ELO ratings from all finished games, in the order they were played.

- Without --dry-run the ratings in scope are wiped and rebuilt from scratch
- --game-type limits the rebuild to one rating pool (e.g. wizard, flip-7)
- Per-game failures are reported at the end; they never stop the run

Usage:
    python cli/recalculate_elo.py --dry-run
    python cli/recalculate_elo.py --game-type "Flip 7" --verbose
"""

import argparse
import logging
import os
import sys
import time

from dotenv import load_dotenv

# Add backend directory to path for imports
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from services.leaderboard import LeaderboardService  # noqa: E402
from services.recalculation import RecalculationOrchestrator  # noqa: E402

logger = logging.getLogger(__name__)

MAX_ERRORS_SHOWN = 10


def print_progress(current: int, total: int) -> None:
    if current % 10 == 0 or current == total:
        percent = (current / total) * 100 if total else 100.0
        sys.stdout.write(f"\r   Progress: {current}/{total} ({percent:.1f}%)")
        sys.stdout.flush()


def print_summary(summary, duration: float, verbose: bool) -> None:
    print("\n" + "=" * 60)
    print("Results:")
    print(f"   Games Processed: {summary.games_processed}")
    print(f"   Player Updates: {summary.player_updates}")
    print(f"   Errors: {len(summary.errors)}")
    print(f"   Duration: {duration:.2f}s")
    print(f"   Dry Run: {summary.dry_run}")

    if summary.per_type_counts:
        print("\nGames by Type:")
        for game_type, count in sorted(summary.per_type_counts.items()):
            print(f"   {game_type}: {count} games")

    if summary.errors and verbose:
        print("\nErrors:")
        for err in summary.errors[:MAX_ERRORS_SHOWN]:
            print(f"   - Game {err['game_id']} ({err['game_type']}): {err['message']}")
        if len(summary.errors) > MAX_ERRORS_SHOWN:
            print(f"   ... and {len(summary.errors) - MAX_ERRORS_SHOWN} more")


def print_top_players(leaderboard: LeaderboardService, game_types, limit: int = 10) -> None:
    for game_type in game_types:
        page = leaderboard.get_leaderboard(game_type, limit=limit, min_games=1)
        if not page.rankings:
            continue
        print(f"\nTop {limit} - {page.game_type}:")
        print("{:>4} {:<30} {:>7} {:>6} {:>7}".format("#", "Player", "Rating", "Games", "Streak"))
        print("-" * 58)
        for row in page.rankings:
            print("{:>4} {:<30} {:>7} {:>6} {:>+7}".format(
                row.rank, row.display_name[:30], row.rating, row.games_played, row.streak
            ))


def main(argv=None) -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Replay finished games chronologically to rebuild ELO ratings."
    )
    parser.add_argument(
        "--dry-run", "-d",
        action="store_true",
        help="Compute ratings without persisting them",
    )
    parser.add_argument(
        "--game-type",
        help="Only recalculate this game type (default: all game types)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show progress and per-game errors",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"Mode: {'DRY RUN (no changes will be saved)' if args.dry_run else 'LIVE'}")
    print(f"Game Types: {args.game_type or 'ALL'}\n")

    orchestrator = RecalculationOrchestrator()
    start = time.time()
    summary = orchestrator.recalculate_all(
        dry_run=args.dry_run,
        game_type=args.game_type,
        on_progress=print_progress if args.verbose else None,
    )
    if args.verbose:
        sys.stdout.write("\n")

    print_summary(summary, time.time() - start, args.verbose)

    if not args.dry_run:
        print_top_players(LeaderboardService(orchestrator.identity_repo), sorted(summary.per_type_counts))

    return 1 if summary.errors else 0


if __name__ == "__main__":
    sys.exit(main())
