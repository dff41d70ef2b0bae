"""
Message template system for LazyInvestor.

Jinja2-based templates for every piece of player-facing text.
The narrative layer renders fragments from here; it never formats numbers itself.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Any, Optional
from jinja2 import Environment, DictLoader, StrictUndefined, TemplateNotFound


class MessageEngine:
    """
    Jinja2-based message template engine.

    Templates live inline in MESSAGE_TEMPLATES, keyed by '<group>/<name>'.
    """

    def __init__(self, templates: Optional[Dict[str, str]] = None):
        self.templates = templates if templates is not None else MESSAGE_TEMPLATES

        self.env = Environment(
            loader=DictLoader(self.templates),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

        # Register custom filters
        self.env.filters['currency'] = format_currency
        self.env.filters['percent'] = format_percent
        self.env.filters['year'] = format_year

    def has_template(self, template_name: str) -> bool:
        return template_name in self.templates

    def render(self, template_name: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Render a template with context. Unknown names raise KeyError."""
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound:
            raise KeyError(f"Unknown message template: {template_name}")
        return template.render(**(context or {}))


def format_currency(value) -> str:
    """Format number as whole dollars with thousands separators, halves rounded up."""
    try:
        dollars = Decimal(str(float(value))).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
        return f"${dollars:,}"
    except (ValueError, TypeError, InvalidOperation):
        return f"${value}"


def format_percent(value, digits: int = 0) -> str:
    """Format number as percentage."""
    try:
        return f"{float(value):.{digits}f}%"
    except (ValueError, TypeError):
        return f"{value}%"


def format_year(value) -> str:
    """Game years are shown in half-year steps: 0.5, 1.0, 1.5 ..."""
    return f"{float(value):.1f}"


# =============================================================================
# MESSAGE TEMPLATES
# Fragment templates keep their trailing newlines; the narrative layer
# concatenates fragments verbatim.
# =============================================================================

MESSAGE_TEMPLATES = {
    # Session opening
    'opening/link': "Commander, uplink established. Market data is streaming in...\n",
    'opening/orders': (
        "This is the starting baseline. Study the terrain and choose your first move:\n"
        "buy in, take profits, or hold and wait?"
    ),

    # Turn settlement
    'turn/year_stamp': "⏳ Investment year {{ game_year | year }}: the half-year cycle has settled.\n",
    'turn/compared': "Compared with six months ago, ",
    'turn/trend': "{{ icon }} the market {{ wording }} ",
    'turn/change': "{{ sign }}{{ change }}%",
    'turn/trend_end': ".\n",
    'turn/standing': "🆚 Standing: you are",
    'turn/ahead': " ahead of ",
    'turn/behind': " behind ",
    'turn/gap': "the DCA Master by {{ gap | currency }}",
    'turn/tied': " dead even with ",
    'turn/tied_rival': "the DCA Master",
    'turn/win_rate_lead': ".\n📊 You have led for ",
    'turn/win_rate': "{{ win_rate | percent }}",
    'turn/win_rate_tail': " of the turns so far.\n",
    'turn/closer': "Your orders: buy more, take profits, or hold steady?",

    # Five-year performance review
    'review/alert': "\n⚠️ Performance review alert (5-year checkpoint)\n",
    'review/verdict': "Over the last five years your active moves failed to beat the mechanical DCA plan.\n",
    'review/warning': "The data suggests more market timing may widen the gap.\n",
    'review/question': "Do you trust yourself to turn it around, or concede that DCA wins and exit?",
    'review/confirmed': "🫡 Order confirmed: staying the course.\n",
    'review/encourage': (
        "You are behind for now, but only those who stay at the table get a chance to come back.\n"
        "Issue your orders for this turn."
    ),

    # Series exhausted
    'end/exhausted': "🏁 The market record ends here. Final settlement is complete.",

    # Results screen
    'results/victory_headline': "VICTORY",
    'results/victory_tagline': "You beat the DCA Master!",
    'results/victory_analysis': (
        "Tactical review: your timing caught the swings of the market. "
        "Remember that over a long enough history this may be survivorship bias. "
        "Can you beat it twice in a row?"
    ),
    'results/wise_exit_headline': "WISE EXIT",
    'results/wise_exit_tagline': "Cutting losses in time is a kind of wisdom too",
    'results/wise_exit_title': "💡 Investment insight\n",
    'results/wise_exit_analysis': (
        "In year {{ exit_year | year }} you acknowledged that dollar-cost averaging was the better plan.\n"
        "That was a sensible call. Most active investors trail the index over the long run. "
        "For most people, accepting that and committing to long-term DCA is the steadiest "
        "and least stressful road to financial freedom."
    ),
    'results/defeat_headline': "DEFEAT",
    'results/defeat_tagline': "The DCA strategy steamrolled you...",
    'results/defeat_analysis': (
        "Tactical review: frequent trading left cash idle on the sidelines. "
        "The DCA Master made no clever moves at all; simply staying in the market beat you."
    ),
    'results/timeline': "Real market timeline: {{ first_date }} to {{ last_date }}",
}


# Global message engine instance
_engine: Optional[MessageEngine] = None


def get_message_engine() -> MessageEngine:
    """Get or create the global message engine."""
    global _engine
    if _engine is None:
        _engine = MessageEngine()
    return _engine


def render_message(template_name: str, context: Optional[Dict[str, Any]] = None) -> str:
    """Convenience function to render a message template."""
    return get_message_engine().render(template_name, context)
