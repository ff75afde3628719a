"""
Mark-to-Market Valuation
========================

For a position with stake b on one side of a binary market, entry price e
of that side and current price p of that side:

    expected_payout = b / p                 (b when p == 0)
    unrealized_pnl  = ((p - e) / e) * b     (0 when e == 0)

A zero current price has no sensible payout, so the payout collapses to
the stake. A zero entry price makes the return indeterminate and is
reported as no gain or loss.
"""

from dataclasses import dataclass

from odds_tracker.revaluation.models import Odds, Position, Side


@dataclass(frozen=True)
class Valuation:
    expected_payout: float
    unrealized_pnl: float


def expected_payout(bet_amount: float, current_price: float) -> float:
    if current_price > 0:
        return bet_amount / current_price
    return bet_amount


def unrealized_pnl(bet_amount: float, entry_price: float, current_price: float) -> float:
    if entry_price > 0:
        return ((current_price - entry_price) / entry_price) * bet_amount
    return 0.0


def value_position(side: Side, bet_amount: float, entry_odds: Odds, current_odds: Odds) -> Valuation:
    entry_price = entry_odds.price_for(side)
    current_price = current_odds.price_for(side)
    return Valuation(
        expected_payout=expected_payout(bet_amount, current_price),
        unrealized_pnl=unrealized_pnl(bet_amount, entry_price, current_price),
    )


def revalue(position: Position, current_odds: Odds) -> Valuation:
    return value_position(position.side, position.bet_amount, position.entry_odds, current_odds)
