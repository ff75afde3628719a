import pytest

from odds_tracker.revaluation.models import Odds, Side
from odds_tracker.revaluation.valuation import (
    Valuation,
    expected_payout,
    revalue,
    unrealized_pnl,
    value_position,
)

from conftest import make_position


def test_no_side_reference_example():
    valuation = value_position(
        Side.NO,
        bet_amount=100,
        entry_odds=Odds(0.05, 0.95),
        current_odds=Odds(0.0435, 0.9565),
    )
    assert valuation.expected_payout == pytest.approx(104.55, abs=0.01)
    assert valuation.unrealized_pnl == pytest.approx(0.684, abs=0.01)


def test_yes_side_uses_yes_prices():
    valuation = value_position(Side.YES, 50, Odds(0.4, 0.6), Odds(0.5, 0.5))
    assert valuation.expected_payout == pytest.approx(100.0)
    assert valuation.unrealized_pnl == pytest.approx(12.5)


def test_losing_position_has_negative_pnl():
    valuation = value_position(Side.YES, 100, Odds(0.8, 0.2), Odds(0.4, 0.6))
    assert valuation.unrealized_pnl == pytest.approx(-50.0)


def test_zero_current_price_collapses_payout_to_stake():
    valuation = value_position(Side.YES, 100, Odds(0.3, 0.7), Odds(0.0, 1.0))
    assert valuation.expected_payout == 100
    assert expected_payout(37.5, 0.0) == 37.5


def test_zero_entry_price_reports_no_pnl():
    for current in (0.0, 0.2, 0.99):
        assert unrealized_pnl(100, 0.0, current) == 0.0
    valuation = value_position(Side.NO, 100, Odds(1.0, 0.0), Odds(0.3, 0.7))
    assert valuation.unrealized_pnl == 0.0


@pytest.mark.parametrize("side", [Side.YES, Side.NO])
@pytest.mark.parametrize("bet", [0.5, 10, 250])
@pytest.mark.parametrize("entry", [(0.0, 1.0), (0.2, 0.8), (0.5, 0.5)])
@pytest.mark.parametrize("current", [(0.0, 1.0), (0.33, 0.67), (0.9, 0.1)])
def test_valuation_is_deterministic(side, bet, entry, current):
    first = value_position(side, bet, Odds(*entry), Odds(*current))
    second = value_position(side, bet, Odds(*entry), Odds(*current))
    assert first == second
    assert isinstance(first, Valuation)


def test_positions_on_same_market_are_valued_independently():
    odds = Odds(0.6, 0.4)
    cheap = make_position("p1", "m1", Side.YES, bet_amount=100, entry=(0.3, 0.7))
    dear = make_position("p2", "m1", Side.YES, bet_amount=20, entry=(0.75, 0.25))
    assert revalue(cheap, odds).unrealized_pnl == pytest.approx(100.0)
    assert revalue(dear, odds).unrealized_pnl == pytest.approx(-4.0)
