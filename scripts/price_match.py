"""
price_match.py — Print the fair market board for one match.

Modes
-----
  direct          --supremacy S --expectancy E
  line search     --prices H D A --line L --over O --under U
  golden section  --prices H D A --golden (--total-goals T | --line L --over O --under U)

Usage
-----
  python scripts/price_match.py --supremacy -0.4 --expectancy 2.6
  python scripts/price_match.py --prices 1.80 3.60 4.50 --line 2.5 --over 1.95 --under 1.95
  python scripts/price_match.py --prices 1.80 3.60 4.50 --golden --total-goals 2.7 --group asian_handicap
  python scripts/price_match.py --supremacy 0 --expectancy 2.6 --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Ensure the project root (one level up from scripts/) is on sys.path so that
# `from scoreline.xxx import ...` resolves when the script is run directly.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("price_match")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Calibrate one match and print its fair market prices."
    )
    parser.add_argument("--supremacy", type=float, help="λ_away − λ_home (negative = home favoured)")
    parser.add_argument("--expectancy", type=float, help="Expected total goals")
    parser.add_argument(
        "--prices", type=float, nargs=3, metavar=("HOME", "DRAW", "AWAY"),
        help="Decimal 1X2 prices",
    )
    parser.add_argument("--line", type=float, help="Total goals line for --over/--under")
    parser.add_argument("--over", type=float, help="Decimal price of Over --line")
    parser.add_argument("--under", type=float, help="Decimal price of Under --line")
    parser.add_argument(
        "--golden", action="store_true",
        help="Use the golden-section calibrator instead of the line search",
    )
    parser.add_argument("--total-goals", type=float, help="Known total goals rate (with --golden)")
    parser.add_argument("--group", action="append", help="Only print these market groups")
    parser.add_argument("--json", action="store_true", help="Emit the board as JSON")
    return parser


def calibrate_from_args(args: argparse.Namespace, parser: argparse.ArgumentParser):
    from scoreline.core.model_config import ModelConfig
    from scoreline.services.calibrator import (
        calibrate_by_golden_section,
        calibrate_from_prices,
        calibrate_from_supremacy,
    )

    config = ModelConfig.from_env()
    if args.expectancy is not None:
        return calibrate_from_supremacy(args.supremacy or 0.0, args.expectancy, config=config)
    if args.prices is None:
        parser.error("give --expectancy (with --supremacy) or --prices")
    if args.golden:
        return calibrate_by_golden_section(
            *args.prices,
            total_goals=args.total_goals,
            line=args.line,
            over_odds=args.over,
            under_odds=args.under,
            config=config,
        )
    if None in (args.line, args.over, args.under):
        parser.error("--prices needs --line, --over and --under (or --golden --total-goals)")
    return calibrate_from_prices(*args.prices, args.line, args.over, args.under, config=config)


def _format_selection(selection: dict) -> str:
    if "probability" in selection:
        return f"{selection['probability'] * 100:6.2f}%  {selection['odds']:>9.3f}"
    home, away = selection.get("home_price"), selection.get("away_price")
    if home is None or away is None:
        return "void"
    return (
        f"home {home['probability'] * 100:6.2f}% {home['odds']:>8.3f}   "
        f"away {away['probability'] * 100:6.2f}% {away['odds']:>8.3f}"
    )


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    from scoreline.core.odds_math import InvalidOddsError
    from scoreline.services.calibrator import CalibrationError, InvalidInputError
    from scoreline.services.markets import market_board, serialise_board

    try:
        model = calibrate_from_args(args, parser)
    except (InvalidOddsError, InvalidInputError, CalibrationError) as exc:
        logger.error("%s", exc)
        return 1

    board = serialise_board(market_board(model))
    if args.group:
        unknown = sorted(set(args.group) - set(board))
        if unknown:
            parser.error(f"unknown market group(s): {', '.join(unknown)}")
        board = {g: board[g] for g in args.group}

    if args.json:
        print(json.dumps({"rates": model.rates(), "markets": board}, indent=2))
        return 0

    print(f"\n{'=' * 60}")
    print(
        f"  home λ={model.full_time.home:.3f}   away λ={model.full_time.away:.3f}   "
        f"({model.method.value})"
    )
    print(f"{'=' * 60}")
    for group, selections in board.items():
        print(f"\n  {group}")
        for label, selection in selections.items():
            print(f"    {label:<32} {_format_selection(selection)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
