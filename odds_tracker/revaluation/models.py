from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Side(str, Enum):
    YES = "YES"
    NO = "NO"


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


# position_status values the store uses for positions that are no longer open
CLOSED_STATUSES = {"CLOSED_MANUAL", "CLOSED_RESOLVED", "RESOLVED"}


@dataclass(frozen=True)
class Odds:
    yes_price: float
    no_price: float

    def price_for(self, side: Side) -> float:
        return self.yes_price if side is Side.YES else self.no_price


@dataclass(frozen=True)
class MarketPriceSnapshot:
    """Normalized live odds of one market, fetched during the current cycle"""
    market_id: str
    yes_price: float
    no_price: float
    fetched_at: datetime
    source_shape: str = "unknown"

    @property
    def odds(self) -> Odds:
        return Odds(self.yes_price, self.no_price)


@dataclass
class Position:
    """A simulated bet on a binary market, as read from the position store"""
    id: str
    market_id: str
    side: Side
    bet_amount: float
    entry_odds: Odds
    status: PositionStatus = PositionStatus.OPEN
    current_odds: Optional[Odds] = None
    expected_payout: Optional[float] = None
    unrealized_pnl: Optional[float] = None
    updated_at: Optional[str] = None

    agent_id: str = ""
    agent_name: str = ""
    market_question: str = ""
    created_at: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status is PositionStatus.OPEN

    @property
    def entry_price(self) -> float:
        return self.entry_odds.price_for(self.side)

    @classmethod
    def from_row(cls, row: dict) -> "Position":
        """
        Build a Position from an `agent_predictions` row.

        Raises ValueError/KeyError/TypeError for rows missing the fields a
        revaluation needs.
        """
        entry = _odds_mapping(row.get("entry_odds"), "entry_odds") or {}
        current = _odds_mapping(row.get("current_market_odds"), "current_market_odds")

        raw_status = str(row.get("position_status") or "OPEN").upper()
        if row.get("resolved") or raw_status in CLOSED_STATUSES:
            status = PositionStatus.RESOLVED
        else:
            status = PositionStatus.OPEN

        return cls(
            id=str(row["id"]),
            market_id=str(row.get("market_id") or ""),
            side=Side(str(row["prediction"]).upper()),
            bet_amount=float(row.get("bet_amount") or 0),
            entry_odds=Odds(
                yes_price=float(entry.get("yes_price") or 0),
                no_price=float(entry.get("no_price") or 0),
            ),
            status=status,
            current_odds=Odds(
                yes_price=float(current.get("yes_price") or 0),
                no_price=float(current.get("no_price") or 0),
            ) if current else None,
            expected_payout=_optional_float(row.get("expected_payout")),
            unrealized_pnl=_optional_float(row.get("unrealized_pnl")),
            updated_at=row.get("updated_at"),
            agent_id=str(row.get("agent_id") or ""),
            agent_name=str(row.get("agent_name") or ""),
            market_question=str(row.get("market_question") or ""),
            created_at=row.get("created_at"),
        )


def _optional_float(value) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def _odds_mapping(value, column: str) -> Optional[dict]:
    """
    Odds columns arrive as jsonb objects, or as JSON text from older rows.
    Anything that does not decode to an object is a malformed row.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"{column} is not valid JSON: {value!r}") from e
    if not isinstance(value, dict):
        raise ValueError(f"{column} must be an object, got {type(value).__name__}")
    return value


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
