"""
Tests for the narrative generator - same inputs, same fragments
"""

import pytest
from narrative import (
    generate, opening, stay_the_course, market_exhausted, final_verdict,
    NarrativeEvent, NarrativeFragment, NarrativeBuilder,
)


CLOSER = "Your orders: buy more, take profits, or hold steady?"


class TestTurnNarrative:
    """Golden outputs for turn commentary."""

    def test_ahead_after_sharp_rally(self):
        event = generate(100, 110, 1100, 1000, 100, 1.0, False)

        assert event.plain_text() == (
            "⏳ Investment year 1.0: the half-year cycle has settled.\n"
            "Compared with six months ago, 📈 the market rallied hard +10.00%.\n"
            "🆚 Standing: you are ahead of the DCA Master by $100.\n"
            "📊 You have led for 100% of the turns so far.\n"
            + CLOSER
        )
        assert event.styles() == [
            'muted', 'dim', 'trend-up', 'trend-up', None,
            'standing', 'ahead', 'ahead-amount',
            'dim', 'stat', 'dim', None,
        ]

    def test_behind_after_mild_pullback(self):
        event = generate(100, 98, 1000, 2234.6, 33, 2.5, False)

        assert event.plain_text() == (
            "⏳ Investment year 2.5: the half-year cycle has settled.\n"
            "Compared with six months ago, 📉 the market pulled back -2.00%.\n"
            "🆚 Standing: you are behind the DCA Master by $1,235.\n"
            "📊 You have led for 33% of the turns so far.\n"
            + CLOSER
        )
        assert event.styles()[2:4] == ['trend-down', 'trend-down']
        assert event.styles()[6:8] == ['behind', 'behind-amount']

    def test_tie_has_no_gap(self):
        event = generate(100, 110, 1100, 1100, 0, 1.0, False)
        text = event.plain_text()

        assert "🆚 Standing: you are dead even with the DCA Master.\n" in text
        assert "$" not in text
        assert event.styles()[6:8] == ['tied', 'tied-strong']

    @pytest.mark.parametrize('next_price, wording, change', [
        (105.01, 'rallied hard', '+5.01%'),
        (104.99, 'edged up', '+4.99%'),
        (100, 'edged up', '+0.00%'),
        (95.01, 'pulled back', '-4.99%'),
        (94.99, 'plunged', '-5.01%'),
    ])
    def test_trend_wording_threshold(self, next_price, wording, change):
        text = generate(100, next_price, 0, 0, 0, 1.0, False).plain_text()

        assert f"the market {wording} {change}.\n" in text

    def test_threshold_uses_unrounded_percentage(self):
        """5.004% prints as 5.00% but is still a sharp move."""
        text = generate(100, 105.004, 0, 0, 0, 1.0, False).plain_text()
        assert "rallied hard +5.00%" in text

    def test_review_block_replaces_closer(self):
        event = generate(100, 120, 5000, 6000, 20, 5.5, True)
        text = event.plain_text()

        assert text.endswith(
            "\n⚠️ Performance review alert (5-year checkpoint)\n"
            "Over the last five years your active moves failed to beat the mechanical DCA plan.\n"
            "The data suggests more market timing may widen the gap.\n"
            "Do you trust yourself to turn it around, or concede that DCA wins and exit?"
        )
        assert CLOSER not in text
        assert 'alert' in event.styles()

    def test_identical_inputs_identical_output(self):
        first = generate(123.4, 117.2, 4567.8, 4321.0, 57, 7.5, False)
        second = generate(123.4, 117.2, 4567.8, 4321.0, 57, 7.5, False)

        assert first == second
        assert first.to_dict() == second.to_dict()


class TestSessionNarratives:

    def test_opening(self):
        text = opening().plain_text()
        assert text.startswith("Commander, uplink established.")
        assert text.endswith("buy in, take profits, or hold and wait?")

    def test_stay_the_course(self):
        event = stay_the_course()
        assert event.fragments[0] == NarrativeFragment(
            "🫡 Order confirmed: staying the course.\n", 'accent')
        assert event.plain_text().endswith("Issue your orders for this turn.")

    def test_market_exhausted(self):
        assert len(market_exhausted()) == 1

    @pytest.mark.parametrize('outcome, headline', [
        ('victory', 'VICTORY'),
        ('wise_exit', 'WISE EXIT'),
        ('defeat', 'DEFEAT'),
    ])
    def test_final_verdict_headlines(self, outcome, headline):
        title, tagline, analysis = final_verdict(outcome, 3.0)

        assert title == headline
        assert tagline
        assert len(analysis) >= 1

    def test_wise_exit_mentions_exit_year(self):
        _, _, analysis = final_verdict('wise_exit', 12.5)

        assert analysis.fragments[0].style == 'insight'
        assert "In year 12.5 you acknowledged" in analysis.plain_text()


class TestNarrativeBuilder:

    def test_builder_preserves_order_and_style(self):
        event = (NarrativeBuilder()
                 .add('turn/compared', 'dim')
                 .add('turn/change', 'trend-up', sign='+', change='1.50')
                 .build())

        assert event == NarrativeEvent((
            NarrativeFragment("Compared with six months ago, ", 'dim'),
            NarrativeFragment("+1.50%", 'trend-up'),
        ))

    def test_unknown_template_raises(self):
        with pytest.raises(KeyError):
            NarrativeBuilder().add('turn/nope')
