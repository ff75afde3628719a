"""
Revaluation Layer
=================

Turns live Gamma odds into updated valuations of open positions.

Each module is one step of a tracker cycle:
- price_parser: raw Gamma payload -> normalized YES/NO pair
- market_grouper: open positions -> one entry per market to fetch
- valuation: expected payout and unrealized P&L of one position
- persistence: per-position writes back to the store
- tracker: schedule, cycle orchestration, statistics
"""
