"""
Tracker Error Hierarchy
=======================

TrackerError
 ├── FetchError
 │    ├── TransientFetchError   network error, timeout, 429, 5xx (retried)
 │    └── PermanentFetchError   other 4xx, unknown market, bad body (not retried)
 ├── ParseError                 unrecognized price payload (falls back to 0.5/0.5)
 ├── PersistenceError           a single position write failed
 └── BalanceError               a single agent balance could not be revalued
"""

from typing import Optional


class TrackerError(Exception):
    """Base class for all revaluation tracker errors"""


class FetchError(TrackerError):
    def __init__(self, market_id: str, message: str, status: Optional[int] = None, attempts: int = 1):
        super().__init__(f"market {market_id}: {message}")
        self.market_id = market_id
        self.status = status
        self.attempts = attempts


class TransientFetchError(FetchError):
    pass


class PermanentFetchError(FetchError):
    pass


class ParseError(TrackerError):
    pass


class PersistenceError(TrackerError):
    def __init__(self, position_id: str, message: str):
        super().__init__(f"position {position_id}: {message}")
        self.position_id = position_id


class BalanceError(TrackerError):
    def __init__(self, agent_id: str, message: str):
        super().__init__(f"agent {agent_id}: {message}")
        self.agent_id = agent_id
