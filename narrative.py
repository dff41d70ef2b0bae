"""
Narrative generator for LazyInvestor.

Turns a settled turn's economics into styled commentary. Every function here
is pure: identical inputs give identical fragments, and nothing reads or
writes game state. Text comes from the message templates; this module only
decides which fragments appear, in what order and with which style tag.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, List

from messages import render_message


# Literal percentage change (not rounded) beyond which moves read as "sharp".
SHARP_MOVE_PERCENT = 5.0

# Style tags. The presentation layer maps these to colours.
MUTED = 'muted'
DIM = 'dim'
TREND_UP = 'trend-up'
TREND_DOWN = 'trend-down'
STANDING = 'standing'
AHEAD = 'ahead'
AHEAD_AMOUNT = 'ahead-amount'
BEHIND = 'behind'
BEHIND_AMOUNT = 'behind-amount'
TIED = 'tied'
TIED_STRONG = 'tied-strong'
STAT = 'stat'
ALERT = 'alert'
ACCENT = 'accent'
INSIGHT = 'insight'


@dataclass(frozen=True)
class NarrativeFragment:
    """A run of text with an optional style tag."""

    text: str
    style: Optional[str] = None

    def to_dict(self):
        return {'text': self.text, 'style': self.style}


@dataclass(frozen=True)
class NarrativeEvent:
    """Ordered fragments shown together. Replaced wholesale every turn."""

    fragments: Tuple[NarrativeFragment, ...] = ()

    def plain_text(self) -> str:
        return ''.join(f.text for f in self.fragments)

    def styles(self) -> List[Optional[str]]:
        return [f.style for f in self.fragments]

    def __len__(self):
        return len(self.fragments)

    def __iter__(self):
        return iter(self.fragments)

    def to_dict(self):
        return {'fragments': [f.to_dict() for f in self.fragments]}


EMPTY_NARRATIVE = NarrativeEvent()


class NarrativeBuilder:
    """Accumulates fragments rendered from message templates."""

    def __init__(self):
        self._fragments: List[NarrativeFragment] = []

    def add(self, template_name: str, style: Optional[str] = None, **context) -> 'NarrativeBuilder':
        self._fragments.append(NarrativeFragment(render_message(template_name, context), style))
        return self

    def build(self) -> NarrativeEvent:
        return NarrativeEvent(tuple(self._fragments))


# =============================================================================
# TURN COMMENTARY
# =============================================================================

def generate(
    prev_price: float,
    next_price: float,
    player_total: float,
    bot_total: float,
    win_rate_percent: int,
    game_year: float,
    is_review_trigger: bool,
) -> NarrativeEvent:
    """
    Commentary for one settled turn.

    Order: year stamp, market trend, competitive standing with win rate,
    then either the performance review block or the orders prompt.
    """
    builder = NarrativeBuilder()

    # (a) Year stamp
    builder.add('turn/year_stamp', MUTED, game_year=game_year)

    # (b) Market trend
    _add_market_trend(builder, prev_price, next_price)

    # (c) Standing against the DCA Master
    _add_standing(builder, player_total, bot_total, win_rate_percent)

    # (d) Review prompt or the usual closer
    if is_review_trigger:
        builder.add('review/alert', ALERT)
        builder.add('review/verdict')
        builder.add('review/warning')
        builder.add('review/question')
    else:
        builder.add('turn/closer')

    return builder.build()


def _add_market_trend(builder: NarrativeBuilder, prev_price: float, next_price: float):
    price_diff = next_price - prev_price
    pct_change = price_diff / prev_price * 100
    change = f"{abs(pct_change):.2f}"

    builder.add('turn/compared', DIM)

    if price_diff >= 0:
        wording = 'rallied hard' if pct_change > SHARP_MOVE_PERCENT else 'edged up'
        builder.add('turn/trend', TREND_UP, icon='📈', wording=wording)
        builder.add('turn/change', TREND_UP, sign='+', change=change)
    else:
        wording = 'plunged' if pct_change < -SHARP_MOVE_PERCENT else 'pulled back'
        builder.add('turn/trend', TREND_DOWN, icon='📉', wording=wording)
        builder.add('turn/change', TREND_DOWN, sign='-', change=change)

    builder.add('turn/trend_end')


def _add_standing(builder: NarrativeBuilder, player_total: float, bot_total: float,
                  win_rate_percent: int):
    gap = player_total - bot_total

    builder.add('turn/standing', STANDING)
    if gap > 0:
        builder.add('turn/ahead', AHEAD)
        builder.add('turn/gap', AHEAD_AMOUNT, gap=abs(gap))
    elif gap < 0:
        builder.add('turn/behind', BEHIND)
        builder.add('turn/gap', BEHIND_AMOUNT, gap=abs(gap))
    else:
        builder.add('turn/tied', TIED)
        builder.add('turn/tied_rival', TIED_STRONG)

    builder.add('turn/win_rate_lead', DIM)
    builder.add('turn/win_rate', STAT, win_rate=win_rate_percent)
    builder.add('turn/win_rate_tail', DIM)


# =============================================================================
# SESSION NARRATIVES
# =============================================================================

def opening() -> NarrativeEvent:
    """Shown once a session starts, before the first turn."""
    return (NarrativeBuilder()
            .add('opening/link')
            .add('opening/orders')
            .build())


def stay_the_course() -> NarrativeEvent:
    """Shown when the player keeps going after a performance review."""
    return (NarrativeBuilder()
            .add('review/confirmed', ACCENT)
            .add('review/encourage')
            .build())


def market_exhausted() -> NarrativeEvent:
    """Shown when an advance is requested but the series has no next sample."""
    return NarrativeBuilder().add('end/exhausted', MUTED).build()


def final_verdict(outcome: str, exit_year: float) -> Tuple[str, str, NarrativeEvent]:
    """
    Results screen copy for an outcome ('victory', 'wise_exit', 'defeat').

    Returns (headline, tagline, analysis).
    """
    headline = render_message(f'results/{outcome}_headline')
    tagline = render_message(f'results/{outcome}_tagline')

    builder = NarrativeBuilder()
    if outcome == 'wise_exit':
        builder.add('results/wise_exit_title', INSIGHT)
    builder.add(f'results/{outcome}_analysis', exit_year=exit_year)

    return headline, tagline, builder.build()
