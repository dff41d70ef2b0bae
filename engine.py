"""
LazyInvestor: Beat the DCA Master - Game Engine

Core game state and turn logic. ALL MATH IS HARD-CODED.
The narrative layer describes outcomes but CANNOT modify game state.

This module is the single source of truth for:
- SessionState and the two portfolios (player and DCA bot)
- Turn transitions (Income → Bot → Player action → Settlement → Review)
- Win-rate statistics and the 5-year performance review
- Game end conditions (series exhausted, surrender)

Every transition is a pure function (state, intent, market series) →
(new state, narrative). GameEngine wraps them around the single live session.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any, List, Tuple, Mapping, Sequence, Union
from enum import Enum
import logging
import math

import narrative
from narrative import NarrativeEvent, EMPTY_NARRATIVE
from market_data import (
    MarketIndex,
    MarketSample,
    MarketDataError,
    demo_markets,
    locate_start,
    start_date_for,
)

logger = logging.getLogger(__name__)


# =============================================================================
# MATHEMATICAL CONSTANTS - THE LAWS OF THE GAME UNIVERSE
# =============================================================================

# Income credited every half year. Funds both the player and the DCA bot.
SALARY = 1000.0

STEPS_PER_YEAR = 2

# Every 10 steps (5 years) a losing player is asked whether to carry on.
REVIEW_INTERVAL_STEPS = 10


# =============================================================================
# ENUMS
# =============================================================================

class GameStatus(Enum):
    IDLE = 'idle'
    PLAYING = 'playing'
    FINISHED = 'finished'


class GameEndReason(Enum):
    COMPLETED = 'completed'
    SURRENDERED = 'surrendered'


class TradeAction(Enum):
    BUY = 'buy'
    SELL = 'sell'
    HOLD = 'hold'


class ReviewDecision(Enum):
    CONTINUE = 'continue'
    EXIT = 'exit'


class GameOutcome(Enum):
    VICTORY = 'victory'
    WISE_EXIT = 'wise_exit'
    DEFEAT = 'defeat'


# =============================================================================
# GAME STATE DATACLASSES
# Frozen: a transition builds a new SessionState, it never edits one.
# =============================================================================

@dataclass(frozen=True)
class GameConfiguration:
    """Chosen once before a session starts."""

    index: MarketIndex
    start_year: int


@dataclass(frozen=True)
class PortfolioState:
    """Cash and (fractional) shares. The bot never holds cash."""

    cash: float = 0.0
    shares: float = 0.0

    def value_at(self, price: float) -> float:
        return self.cash + self.shares * price


@dataclass(frozen=True)
class TurnRecord:
    """One settled turn. Record 0 is the synthetic starting point."""

    step: int
    game_year: float
    real_date: str
    player_total: float
    bot_total: float
    price: float
    player_cash: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'step': self.step,
            'game_year': self.game_year,
            'real_date': self.real_date,
            'player_total': self.player_total,
            'bot_total': self.bot_total,
            'price': self.price,
            'player_cash': self.player_cash,
        }


@dataclass(frozen=True)
class SessionState:
    """
    Complete game snapshot.

    CRITICAL: This class is READ-ONLY to the presentation layer.
    Only the transitions in this module produce new instances.
    """

    status: GameStatus = GameStatus.IDLE
    step: int = 0
    start_offset: int = 0
    config: Optional[GameConfiguration] = None
    player: PortfolioState = field(default_factory=PortfolioState)
    bot: PortfolioState = field(default_factory=PortfolioState)
    winning_turns: int = 0
    history: Tuple[TurnRecord, ...] = ()
    pending_review: bool = False
    end_reason: GameEndReason = GameEndReason.COMPLETED

    @classmethod
    def idle(cls) -> 'SessionState':
        return cls()

    @property
    def latest(self) -> Optional[TurnRecord]:
        return self.history[-1] if self.history else None

    @property
    def win_rate(self) -> int:
        return win_rate_percent(self.winning_turns, self.step)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data projection for the presentation layer."""
        return {
            'status': self.status.value,
            'step': self.step,
            'start_offset': self.start_offset,
            'index': self.config.index.value if self.config else None,
            'start_year': self.config.start_year if self.config else None,
            'player': {'cash': self.player.cash, 'shares': self.player.shares},
            'bot': {'cash': self.bot.cash, 'shares': self.bot.shares},
            'winning_turns': self.winning_turns,
            'history': [record.to_dict() for record in self.history],
            'pending_review': self.pending_review,
            'end_reason': self.end_reason.value,
        }


# =============================================================================
# INTENTS
# The only messages the presentation layer may send.
# =============================================================================

@dataclass(frozen=True)
class StartGame:
    config: GameConfiguration


@dataclass(frozen=True)
class AdvanceTurn:
    action: TradeAction
    amount: float = 0.0


@dataclass(frozen=True)
class ResolveReview:
    decision: ReviewDecision


@dataclass(frozen=True)
class Reset:
    pass


Intent = Union[StartGame, AdvanceTurn, ResolveReview, Reset]
Transition = Tuple[SessionState, NarrativeEvent]


# =============================================================================
# STATISTICS
# =============================================================================

def win_rate_percent(winning_turns: int, step: int) -> int:
    """Share of settled turns the player led, rounded half up to a whole percent."""
    if step <= 0:
        return 0
    rate = Decimal(winning_turns * 100) / Decimal(step)
    return int(rate.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def is_review_checkpoint(step: int, player_total: float, bot_total: float) -> bool:
    """A 5-year checkpoint where the player is strictly behind."""
    return step > 0 and step % REVIEW_INTERVAL_STEPS == 0 and player_total < bot_total


def display_year(step: int) -> float:
    """Year shown while a turn is in progress: 0.5, 1.0, 1.5 ..."""
    return step / STEPS_PER_YEAR + 0.5


# =============================================================================
# TRANSITIONS
# =============================================================================

def start_session(config: GameConfiguration, series: Sequence[MarketSample]) -> Transition:
    """
    Begin a fresh session.

    A start year with no sample on or after June 1st falls back to the
    first sample of the series.
    """
    if not series:
        raise MarketDataError(f"No market data for {config.index.value}")

    offset = locate_start(series, config.start_year)
    if offset is None:
        logger.warning(
            f"No {config.index.value} sample on or after {start_date_for(config.start_year)}; "
            f"starting from {series[0].date}"
        )
        offset = 0

    first = series[offset]
    seed_record = TurnRecord(
        step=0,
        game_year=0.5,
        real_date=first.date,
        player_total=0.0,
        bot_total=0.0,
        price=first.price,
        player_cash=0.0,
    )

    state = SessionState(
        status=GameStatus.PLAYING,
        step=0,
        start_offset=offset,
        config=config,
        player=PortfolioState(),
        bot=PortfolioState(),
        winning_turns=0,
        history=(seed_record,),
        pending_review=False,
        end_reason=GameEndReason.COMPLETED,
    )

    logger.info(
        f"Session started: {config.index.value} from {first.date} "
        f"(offset {offset}, {len(series) - offset - 1} turns available)"
    )
    return state, narrative.opening()


def advance_turn(state: SessionState, series: Sequence[MarketSample],
                 action: TradeAction, amount: float = 0.0) -> Transition:
    """
    Settle one half-year turn.

    Phases:
    1. Income: SALARY credited to player cash
    2. Bot: SALARY converted to shares at the current price
    3. Player action at the current price (amounts clamped, never rejected)
    4. Settlement: both portfolios valued at the next price
    5. Statistics, performance review and end-of-series check
    """
    _require_playing(state)
    if state.pending_review:
        raise ReviewPendingError("Resolve the performance review before advancing")

    current_index = state.start_offset + state.step
    next_index = current_index + 1

    if next_index >= len(series):
        logger.info(f"Market series exhausted at step {state.step}; game completed")
        finished = replace(state, status=GameStatus.FINISHED,
                           end_reason=GameEndReason.COMPLETED)
        return finished, narrative.market_exhausted()

    current_price = series[current_index].price
    next_sample = series[next_index]
    next_price = next_sample.price

    # Phase 1: Income
    cash = state.player.cash + SALARY
    shares = state.player.shares

    # Phase 2: Bot strategy
    bot_shares = state.bot.shares + SALARY / current_price

    # Phase 3: Player action
    if action is TradeAction.BUY:
        spend = min(amount, cash)
        if spend > 0:
            shares += spend / current_price
            cash -= spend
    elif action is TradeAction.SELL:
        holdings_value = shares * current_price
        proceeds = min(amount, holdings_value)
        if proceeds > 0:
            if proceeds >= holdings_value:
                shares = 0.0
            else:
                shares -= proceeds / current_price
            cash += proceeds

    # Phase 4: Settlement
    player = PortfolioState(cash=cash, shares=shares)
    bot = PortfolioState(cash=0.0, shares=bot_shares)
    player_total = player.value_at(next_price)
    bot_total = bot.value_at(next_price)

    new_step = state.step + 1
    record = TurnRecord(
        step=new_step,
        game_year=state.step / STEPS_PER_YEAR + 1.0,
        real_date=next_sample.date,
        player_total=player_total,
        bot_total=bot_total,
        price=next_price,
        player_cash=cash,
    )

    # Phase 5: Statistics, review, end check
    winning_turns = state.winning_turns + (1 if player_total > bot_total else 0)
    # Raised even on the last turn; the game still finishes below
    pending_review = is_review_checkpoint(new_step, player_total, bot_total)
    series_over = next_index + 1 >= len(series)

    event = narrative.generate(
        prev_price=current_price,
        next_price=next_price,
        player_total=player_total,
        bot_total=bot_total,
        win_rate_percent=win_rate_percent(winning_turns, new_step),
        game_year=record.game_year,
        is_review_trigger=pending_review,
    )

    logger.debug(
        f"Step {new_step} ({next_sample.date}): {action.value} {amount:.2f} | "
        f"player {player_total:.2f} vs bot {bot_total:.2f}"
    )
    if pending_review:
        logger.info(f"Performance review triggered at step {new_step}")
    if series_over:
        logger.info(f"Final sample reached at step {new_step}; game completed")

    new_state = replace(
        state,
        status=GameStatus.FINISHED if series_over else GameStatus.PLAYING,
        step=new_step,
        player=player,
        bot=bot,
        winning_turns=winning_turns,
        history=state.history + (record,),
        pending_review=pending_review,
        end_reason=GameEndReason.COMPLETED,
    )
    return new_state, event


def resolve_review(state: SessionState, decision: ReviewDecision) -> Transition:
    """Answer a pending performance review. Portfolios are untouched either way."""
    _require_playing(state)
    if not state.pending_review:
        raise NoReviewPendingError("No performance review is pending")

    if decision is ReviewDecision.CONTINUE:
        logger.info(f"Player stays in after review at step {state.step}")
        return replace(state, pending_review=False), narrative.stay_the_course()

    logger.info(f"Player surrendered at step {state.step}")
    surrendered = replace(
        state,
        status=GameStatus.FINISHED,
        pending_review=False,
        end_reason=GameEndReason.SURRENDERED,
    )
    return surrendered, EMPTY_NARRATIVE


def reset_session() -> Transition:
    """Discard the session entirely."""
    return SessionState.idle(), EMPTY_NARRATIVE


def transition(state: SessionState, intent: Intent,
               markets: Mapping[MarketIndex, Sequence[MarketSample]]) -> Transition:
    """Single entry point: (state, intent) → (new state, narrative)."""
    if isinstance(intent, StartGame):
        return start_session(intent.config, _series_for(markets, intent.config.index))

    if isinstance(intent, AdvanceTurn):
        _require_playing(state)
        series = _series_for(markets, state.config.index)
        return advance_turn(state, series, intent.action, intent.amount)

    if isinstance(intent, ResolveReview):
        return resolve_review(state, intent.decision)

    if isinstance(intent, Reset):
        return reset_session()

    raise TypeError(f"Unknown intent: {intent!r}")


def _require_playing(state: SessionState):
    if state.status is not GameStatus.PLAYING:
        raise GameNotActiveError(f"Game is not in progress (status: {state.status.value})")


def _series_for(markets: Mapping[MarketIndex, Sequence[MarketSample]],
                index: MarketIndex) -> Sequence[MarketSample]:
    try:
        return markets[index]
    except KeyError:
        raise UnknownMarketError(f"No market data loaded for {index.value}")


# =============================================================================
# RESULTS
# =============================================================================

@dataclass(frozen=True)
class FinalReport:
    """Everything the results screen shows."""

    outcome: GameOutcome
    end_reason: GameEndReason
    player_total: float
    bot_total: float
    difference: float
    difference_percent: float
    first_date: str
    last_date: str
    exit_year: float
    headline: str
    tagline: str
    analysis: NarrativeEvent

    @property
    def won(self) -> bool:
        return self.outcome is GameOutcome.VICTORY


def final_report(state: SessionState) -> FinalReport:
    """Summarise a finished session."""
    if state.status is not GameStatus.FINISHED:
        raise GameNotActiveError("The results are only available once the game is finished")

    final = state.history[-1]
    difference = final.player_total - final.bot_total
    difference_percent = difference / final.bot_total * 100 if final.bot_total else 0.0

    if difference > 0:
        outcome = GameOutcome.VICTORY
    elif state.end_reason is GameEndReason.SURRENDERED:
        outcome = GameOutcome.WISE_EXIT
    else:
        outcome = GameOutcome.DEFEAT

    exit_year = display_year(state.step)
    headline, tagline, analysis = narrative.final_verdict(outcome.value, exit_year)

    return FinalReport(
        outcome=outcome,
        end_reason=state.end_reason,
        player_total=final.player_total,
        bot_total=final.bot_total,
        difference=difference,
        difference_percent=difference_percent,
        first_date=state.history[0].real_date,
        last_date=final.real_date,
        exit_year=exit_year,
        headline=headline,
        tagline=tagline,
        analysis=analysis,
    )


def chart_points(state: SessionState, show_real_dates: Optional[bool] = None) -> List[Dict[str, Any]]:
    """
    One point per history record for the price chart.

    Real dates stay hidden (x is the game year) until the game is finished.
    """
    if show_real_dates is None:
        show_real_dates = state.status is GameStatus.FINISHED

    return [
        {
            'x': record.real_date if show_real_dates else record.game_year,
            'price': record.price,
            'player_total': record.player_total,
            'bot_total': record.bot_total,
        }
        for record in state.history
    ]


# =============================================================================
# GAME ENGINE CLASS
# Holds the single live session and validates caller input.
# =============================================================================

class GameEngine:
    """
    Main game engine. Owns the live SessionState and the latest narrative.

    Accepts enums or their string values from the presentation layer,
    rejects malformed amounts, and delegates to the pure transitions.
    """

    def __init__(self, markets: Mapping[MarketIndex, Sequence[MarketSample]]):
        self.markets: Dict[MarketIndex, Sequence[MarketSample]] = dict(markets)
        self.state = SessionState.idle()
        self.narrative = EMPTY_NARRATIVE

    # -------------------------------------------------------------------------
    # INTENTS
    # -------------------------------------------------------------------------

    def start(self, index: Union[MarketIndex, str], start_year: int) -> SessionState:
        """Start a new session, discarding whatever came before."""
        config = GameConfiguration(index=self._coerce_index(index), start_year=int(start_year))
        return self._apply(StartGame(config))

    def advance(self, action: Union[TradeAction, str], amount: float = 0.0) -> SessionState:
        """
        Play one turn.

        Raises:
            InvalidActionError: unknown action
            InvalidAmountError: negative or non-finite amount
            GameNotActiveError / ReviewPendingError: wrong game phase
        """
        action = _coerce_enum(TradeAction, action, InvalidActionError)
        amount = 0.0 if action is TradeAction.HOLD else self._validate_amount(amount)
        return self._apply(AdvanceTurn(action, amount))

    def resolve_review(self, decision: Union[ReviewDecision, str]) -> SessionState:
        decision = _coerce_enum(ReviewDecision, decision, InvalidActionError)
        return self._apply(ResolveReview(decision))

    def reset(self) -> SessionState:
        return self._apply(Reset())

    def _apply(self, intent: Intent) -> SessionState:
        self.state, self.narrative = transition(self.state, intent, self.markets)
        return self.state

    def _coerce_index(self, index: Union[MarketIndex, str]) -> MarketIndex:
        try:
            index = MarketIndex(index)
        except ValueError:
            raise UnknownMarketError(f"Unknown market index: {index}")
        if index not in self.markets:
            raise UnknownMarketError(f"No market data loaded for {index.value}")
        return index

    @staticmethod
    def _validate_amount(amount) -> float:
        try:
            amount = float(amount)
        except (TypeError, ValueError):
            raise InvalidAmountError(f"Amount must be a number, got {amount!r}")
        if not math.isfinite(amount) or amount < 0:
            raise InvalidAmountError(f"Amount must be a non-negative finite number, got {amount}")
        return amount

    # -------------------------------------------------------------------------
    # PUBLIC API
    # -------------------------------------------------------------------------

    def get_state(self) -> SessionState:
        """Return the current snapshot. Frozen, so safe to hand out."""
        return self.state

    def get_narrative(self) -> NarrativeEvent:
        return self.narrative

    def get_series(self, index: Union[MarketIndex, str, None] = None) -> Sequence[MarketSample]:
        """Series for index, or for the running session when index is omitted."""
        if index is not None:
            return self.markets[self._coerce_index(index)]
        if self.state.config is None:
            raise GameNotActiveError("No game has been started")
        return self.markets[self.state.config.index]

    @property
    def status(self) -> GameStatus:
        return self.state.status

    def is_game_over(self) -> bool:
        return self.state.status is GameStatus.FINISHED

    def is_review_pending(self) -> bool:
        return self.state.pending_review

    def final_report(self) -> FinalReport:
        return final_report(self.state)

    def chart_points(self, show_real_dates: Optional[bool] = None) -> List[Dict[str, Any]]:
        return chart_points(self.state, show_real_dates)

    def get_turn_summary(self) -> Dict[str, Any]:
        """Get summary of current turn state."""
        latest = self.state.latest
        return {
            'status': self.state.status.value,
            'step': self.state.step,
            'year': display_year(self.state.step),
            'price': latest.price if latest else 0.0,
            'player_total': latest.player_total if latest else 0.0,
            'bot_total': latest.bot_total if latest else 0.0,
            'cash': self.state.player.cash,
            'shares': self.state.player.shares,
            'bot_shares': self.state.bot.shares,
            'winning_turns': self.state.winning_turns,
            'win_rate': self.state.win_rate,
            'pending_review': self.state.pending_review,
        }


def _coerce_enum(enum_cls, value, error_cls):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        raise error_cls(f"Unknown {enum_cls.__name__}: {value!r}")


# =============================================================================
# EXCEPTIONS
# =============================================================================

class GameEngineError(Exception):
    """Base exception for engine errors."""
    pass


class ProtocolError(GameEngineError):
    """The caller sent an intent the current phase does not allow."""
    pass


class GameNotActiveError(ProtocolError):
    """Raised when playing outside the PLAYING state."""
    pass


class ReviewPendingError(ProtocolError):
    """Raised when advancing while a performance review awaits an answer."""
    pass


class NoReviewPendingError(ProtocolError):
    """Raised when answering a review nobody asked."""
    pass


class InvalidActionError(GameEngineError):
    """Raised when invalid action or decision is specified."""
    pass


class InvalidAmountError(GameEngineError):
    """Raised when a trade amount is negative, infinite or not a number."""
    pass


class UnknownMarketError(GameEngineError):
    """Raised when no series is loaded for the requested index."""
    pass


# =============================================================================
# NEW GAME FACTORY
# =============================================================================

def new_game(
    markets: Optional[Mapping[MarketIndex, Sequence[MarketSample]]] = None,
    index: MarketIndex = MarketIndex.SPY500,
    start_year: int = 1985,
    seed: int = 42,
) -> GameEngine:
    """Create an engine (demo markets unless given) and start a session."""
    engine = GameEngine(markets if markets is not None else demo_markets(seed))
    engine.start(index, start_year)
    return engine


# =============================================================================
# MAIN ENTRY (for testing)
# =============================================================================

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    engine = new_game(seed=42)
    print("Initial state:", engine.get_turn_summary())
    print(engine.get_narrative().plain_text())

    # Take a few turns
    for action in ('buy', 'hold', 'sell', 'buy', 'hold'):
        engine.advance(action, 1500)
        print(f"\n{action}: {engine.get_turn_summary()}")
        print(engine.get_narrative().plain_text())
