"""
Gamma Price Payload Parser
==========================

Gamma has served market odds in several shapes over time:

1. outcomePrices as a list          ["0.45", "0.55"]
2. outcomePrices as a JSON string   "[\"0.45\", \"0.55\"]"
3. legacy token list                tokens: [{"outcome": "Yes", "price": "0.45"}, ...]
4. direct fields                    yes_price / no_price

classify() maps a payload onto exactly one of these shapes (first match in
that order wins, anything else is Unrecognized); resolve() turns the shape
into a raw (yes, no) pair; normalize() rescales the pair to sum to 1.
Unparseable input never raises out of this module: it degrades to the
0.5/0.5 fallback pair and logs a warning.
"""

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Tuple, Union

from odds_tracker.core.errors import ParseError
from odds_tracker.revaluation.models import MarketPriceSnapshot, utc_now

logger = logging.getLogger(__name__)

FALLBACK_PAIR: Tuple[float, float] = (0.5, 0.5)


@dataclass(frozen=True)
class OutcomePricesArray:
    prices: List[Any]


@dataclass(frozen=True)
class OutcomePricesString:
    raw: str


@dataclass(frozen=True)
class TokenList:
    tokens: List[Any]


@dataclass(frozen=True)
class DirectFields:
    yes_price: Any = None
    no_price: Any = None


@dataclass(frozen=True)
class Unrecognized:
    keys: Tuple[str, ...] = ()


PayloadShape = Union[OutcomePricesArray, OutcomePricesString, TokenList, DirectFields, Unrecognized]


def classify(payload: Any) -> PayloadShape:
    if not isinstance(payload, dict):
        return Unrecognized()

    outcome_prices = payload.get("outcomePrices")
    if outcome_prices:
        if isinstance(outcome_prices, str):
            return OutcomePricesString(outcome_prices)
        if isinstance(outcome_prices, (list, tuple)):
            return OutcomePricesArray(list(outcome_prices))

    tokens = payload.get("tokens")
    if isinstance(tokens, list) and tokens:
        return TokenList(tokens)

    if payload.get("yes_price") is not None or payload.get("no_price") is not None:
        return DirectFields(payload.get("yes_price"), payload.get("no_price"))

    return Unrecognized(tuple(sorted(str(k) for k in payload.keys())))


def _to_price(value: Any) -> float:
    """Parse one price; raises ParseError for anything that is not a finite, non-negative number"""
    if isinstance(value, bool):
        raise ParseError(f"boolean is not a price: {value!r}")
    try:
        price = float(value)
    except (TypeError, ValueError) as e:
        raise ParseError(f"not a number: {value!r}") from e
    if not math.isfinite(price) or price < 0:
        raise ParseError(f"out of range: {value!r}")
    return price


def _pair_from_list(prices: List[Any]) -> Tuple[float, float]:
    if len(prices) < 2:
        raise ParseError(f"expected at least 2 outcome prices, got {len(prices)}")
    return _to_price(prices[0]), _to_price(prices[1])


def resolve(shape: PayloadShape) -> Tuple[float, float]:
    """
    Raw (yes, no) pair for a classified payload, before normalization.

    Raises:
        ParseError: shape is Unrecognized or its values cannot be read
    """
    if isinstance(shape, OutcomePricesArray):
        return _pair_from_list(shape.prices)

    if isinstance(shape, OutcomePricesString):
        try:
            prices = json.loads(shape.raw)
        except json.JSONDecodeError as e:
            raise ParseError(f"outcomePrices is not valid JSON: {shape.raw!r}") from e
        if not isinstance(prices, list):
            raise ParseError(f"outcomePrices JSON is not a list: {shape.raw!r}")
        return _pair_from_list(prices)

    if isinstance(shape, TokenList):
        yes_price, no_price = FALLBACK_PAIR
        matched = False
        for token in shape.tokens:
            if not isinstance(token, dict):
                continue
            outcome = str(token.get("outcome", "")).strip().lower()
            if outcome == "yes":
                yes_price = _to_price(token.get("price"))
                matched = True
            elif outcome == "no":
                no_price = _to_price(token.get("price"))
                matched = True
        if not matched:
            raise ParseError("token list has no Yes/No outcome")
        return yes_price, no_price

    if isinstance(shape, DirectFields):
        yes_price, no_price = FALLBACK_PAIR
        if shape.yes_price is not None:
            yes_price = _to_price(shape.yes_price)
        if shape.no_price is not None:
            no_price = _to_price(shape.no_price)
        return yes_price, no_price

    raise ParseError(f"no price fields found (keys: {', '.join(shape.keys) or 'none'})")


def normalize(yes_price: float, no_price: float) -> Tuple[float, float]:
    """
    Rescale a pair so it sums to exactly 1 (removes upstream fee skew).
    A zero-sum pair has no information and becomes the fallback pair.
    """
    total = yes_price + no_price
    if total > 0:
        return yes_price / total, no_price / total
    return FALLBACK_PAIR


def parse_prices(payload: Any, market_id: str = "?") -> Tuple[Tuple[float, float], str]:
    """Normalized (yes, no) pair plus the name of the shape it came from"""
    shape = classify(payload)
    try:
        raw = resolve(shape)
    except ParseError as e:
        logger.warning(f"⚠️ Market {market_id}: {e}; using fallback 0.5/0.5")
        return FALLBACK_PAIR, type(shape).__name__
    return normalize(*raw), type(shape).__name__


def parse_market_prices(
    market_id: str,
    payload: Any,
    fetched_at: Optional[datetime] = None,
) -> MarketPriceSnapshot:
    (yes_price, no_price), shape_name = parse_prices(payload, market_id)
    return MarketPriceSnapshot(
        market_id=market_id,
        yes_price=yes_price,
        no_price=no_price,
        fetched_at=fetched_at or utc_now(),
        source_shape=shape_name,
    )
