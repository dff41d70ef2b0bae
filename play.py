#!/usr/bin/env python3
"""
Console front-end for LazyInvestor.

Usage::

    python play.py --demo
    python play.py --data-dir data/markets --index NASDAQ --year 1995

Renders the HUD, the narrative and the results screen in a terminal and
forwards the player's intents to the engine. It reads engine state after every
call and never touches portfolios itself.
"""

import argparse
import logging
import math
import sys
from typing import Callable, List, Optional, Sequence, Tuple, Dict, Any

from engine import (
    GameEngine,
    GameStatus,
    GameEngineError,
    GameNotActiveError,
    SessionState,
    FinalReport,
    SALARY,
    display_year as year_for_step,
)
from market_data import (
    DATA_DIR,
    MarketIndex,
    MarketDataError,
    demo_markets,
    load_markets,
    valid_start_years,
)
from messages import format_currency, render_message
from narrative import NarrativeEvent

logger = logging.getLogger(__name__)

DEFAULT_START_YEAR = 1985

RESET = '\033[0m'
STYLE_CODES = {
    'muted': '\033[2;1m',
    'dim': '\033[2m',
    'trend-up': '\033[1;32m',
    'trend-down': '\033[1;31m',
    'standing': '\033[37m',
    'ahead': '\033[1;34m',
    'ahead-amount': '\033[34m',
    'behind': '\033[1;33m',
    'behind-amount': '\033[33m',
    'tied': '\033[37m',
    'tied-strong': '\033[1;37m',
    'stat': '\033[1;97m',
    'alert': '\033[1;33m',
    'accent': '\033[1;34m',
    'insight': '\033[1;33m',
}

BUY_WORDS = ('buy', 'b')
SELL_WORDS = ('sell', 's')
HOLD_WORDS = ('hold', 'h', 'wait')
MAX_WORDS = ('max', 'all')


class CommandError(ValueError):
    """The typed command could not be turned into an intent."""
    pass


# =============================================================================
# DERIVED DISPLAY VALUES
# =============================================================================

def display_year(state: SessionState) -> float:
    return year_for_step(state.step)


def max_affordable_buy(state: SessionState) -> float:
    """This turn's salary lands before the buy executes."""
    return state.player.cash + SALARY


def max_sellable_value(state: SessionState) -> float:
    latest = state.latest
    return state.player.shares * latest.price if latest else 0.0


# =============================================================================
# INPUT PARSING
# Malformed amounts are rejected here and never reach the engine.
# =============================================================================

def parse_amount(text: str, maximum: float) -> float:
    word = text.strip().lower().replace(',', '').lstrip('$')
    if word in MAX_WORDS:
        return maximum
    if word == 'half':
        return maximum / 2

    try:
        amount = float(word)
    except ValueError:
        raise CommandError(f"Not an amount: {text!r}")

    if not math.isfinite(amount):
        raise CommandError("Amount must be a finite number")
    if amount < 0:
        raise CommandError("Amount cannot be negative")
    return amount


def parse_command(text: str, state: SessionState) -> Tuple[str, float]:
    """
    Turn a typed command into (action, amount).

    Examples: 'buy 500', 'b max', 'sell half', 'sell all', 'hold'.
    A buy or sell without an amount uses the maximum.
    """
    parts = text.strip().lower().split()
    if not parts:
        raise CommandError("Type buy, sell or hold")

    verb, rest = parts[0], parts[1:]
    if len(rest) > 1:
        raise CommandError(f"Too many words: {text!r}")

    if verb in HOLD_WORDS:
        return 'hold', 0.0
    if verb in BUY_WORDS:
        maximum = max_affordable_buy(state)
        return 'buy', parse_amount(rest[0], maximum) if rest else maximum
    if verb in SELL_WORDS:
        maximum = max_sellable_value(state)
        return 'sell', parse_amount(rest[0], maximum) if rest else maximum

    raise CommandError(f"Unknown command: {verb!r}")


def parse_review_choice(text: str) -> str:
    word = text.strip().lower()
    if word in ('c', 'continue', 'stay', 'y', 'yes'):
        return 'continue'
    if word in ('e', 'exit', 'quit', 'n', 'no'):
        return 'exit'
    raise CommandError("Answer continue or exit")


# =============================================================================
# RENDERING
# =============================================================================

def render_narrative(event: NarrativeEvent, color: bool = True) -> str:
    if not color:
        return event.plain_text()
    out = []
    for fragment in event:
        code = STYLE_CODES.get(fragment.style) if fragment.style else None
        out.append(f"{code}{fragment.text}{RESET}" if code else fragment.text)
    return ''.join(out)


def render_hud(state: SessionState, index_label: str = '') -> str:
    latest = state.latest
    player_total = latest.player_total if latest else 0.0
    bot_total = latest.bot_total if latest else 0.0
    price = latest.price if latest else 0.0

    lines = [
        '=' * 64,
        f"PLAYER (YOU)  {format_currency(player_total)}   "
        f"cash available: {format_currency(max_affordable_buy(state))}",
        f"YEAR {display_year(state):.1f}   {index_label} index: ${price:,.2f}",
        f"DCA MASTER    {format_currency(bot_total)}   status: auto-investing...",
        '=' * 64,
    ]
    return '\n'.join(lines)


def render_chart_table(points: List[Dict[str, Any]]) -> str:
    lines = [f"{'when':>12} {'price':>12} {'you':>14} {'DCA Master':>14}"]
    for point in points:
        x = point['x']
        when = f"{x:.1f}" if isinstance(x, float) else str(x)
        lines.append(
            f"{when:>12} {point['price']:>12,.2f} "
            f"{point['player_total']:>14,.0f} {point['bot_total']:>14,.0f}"
        )
    return '\n'.join(lines)


def render_results(report: FinalReport, color: bool = True) -> str:
    sign = '+' if report.difference > 0 else ''
    lines = [
        '',
        f"*** {report.headline} ***",
        report.tagline,
        '',
        f"Final assets (you):        {format_currency(report.player_total)}",
        f"Final assets (DCA Master): {format_currency(report.bot_total)}",
        f"Return gap: {sign}{report.difference_percent:.2f}%",
        '',
        render_narrative(report.analysis, color),
        '',
        render_message('results/timeline', {'first_date': report.first_date,
                                             'last_date': report.last_date}),
    ]
    return '\n'.join(lines)


# =============================================================================
# GAME LOOP
# =============================================================================

def run_session(engine: GameEngine,
                read: Optional[Callable[[str], str]] = None,
                write: Optional[Callable[[str], None]] = None,
                color: bool = True) -> FinalReport:
    """Drive one started session to its results screen."""
    read = read or input
    write = write or print
    if engine.status is GameStatus.IDLE:
        raise GameNotActiveError("Start a game before running a session")
    index_label = engine.state.config.index.label

    while not engine.is_game_over():
        write(render_hud(engine.state, index_label))
        write(render_narrative(engine.get_narrative(), color))

        if engine.is_review_pending():
            answer = read("\n[continue / exit] > ")
            try:
                engine.resolve_review(parse_review_choice(answer))
            except CommandError as e:
                write(f"! {e}")
            continue

        text = read("\n[buy <amount|max> / sell <amount|half|all> / hold] > ")
        try:
            action, amount = parse_command(text, engine.state)
            engine.advance(action, amount)
        except (CommandError, GameEngineError) as e:
            write(f"! {e}")

    # The turn that finished the game may still carry a review block
    if engine.is_review_pending():
        write(render_narrative(engine.get_narrative(), color))

    report = engine.final_report()
    write(render_chart_table(engine.chart_points()))
    write(render_results(report, color))
    return report


def choose_start_year(engine: GameEngine, index: MarketIndex,
                      read: Optional[Callable[[str], str]] = None) -> int:
    read = read or input
    years = valid_start_years(engine.get_series(index))
    default = DEFAULT_START_YEAR if DEFAULT_START_YEAR in years else years[0]
    answer = read(f"Start year {years[0]}-{years[-1]} [{default}] > ").strip()
    return int(answer) if answer.isdigit() else default


# =============================================================================
# ENTRY POINT
# =============================================================================

def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Beat the DCA Master: out-trade a dollar-cost-averaging bot.",
    )
    parser.add_argument(
        "--index",
        default=MarketIndex.SPY500.value,
        choices=[index.value for index in MarketIndex],
        help="Market index to play on (default: SPY500).",
    )
    parser.add_argument(
        "--year",
        type=int,
        default=None,
        help="Start year; prompts when omitted.",
    )
    parser.add_argument(
        "--data-dir",
        default=str(DATA_DIR),
        help=f"Directory holding SPY500/NASDAQ .json or .csv files (default: {DATA_DIR}).",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Play on a seeded synthetic market instead of data files.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Seed for the demo market (default: 42).",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable ANSI colours.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING).",
    )
    return parser.parse_args(argv)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    _setup_logging(args.log_level)

    try:
        markets = demo_markets(args.seed) if args.demo else load_markets(args.data_dir)
    except MarketDataError as e:
        logger.error(f"{e}")
        print("No market data available. Use --demo to play on a synthetic market.")
        return 2

    index = MarketIndex(args.index)
    if index not in markets:
        index = next(iter(markets))
        logger.warning(f"No data for {args.index}; playing {index.value} instead")

    engine = GameEngine(markets)
    color = not args.no_color

    try:
        while True:
            year = args.year if args.year is not None else choose_start_year(engine, index)
            engine.start(index, year)
            run_session(engine, color=color)

            again = input("\nReplay? [y/N] > ").strip().lower()
            engine.reset()
            if again not in ('y', 'yes'):
                return 0
    except (EOFError, KeyboardInterrupt):
        print()
        return 0


if __name__ == "__main__":
    sys.exit(main())
