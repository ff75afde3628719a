import math
from datetime import datetime

import pytest

from odds_tracker.revaluation.price_parser import (
    FALLBACK_PAIR,
    DirectFields,
    OutcomePricesArray,
    OutcomePricesString,
    TokenList,
    Unrecognized,
    classify,
    normalize,
    parse_market_prices,
    parse_prices,
)


def test_outcome_prices_json_string():
    (yes, no), shape = parse_prices({"outcomePrices": '["0.45", "0.55"]'})
    assert shape == "OutcomePricesString"
    assert yes == pytest.approx(0.45)
    assert no == pytest.approx(0.55)


def test_outcome_prices_list():
    (yes, no), shape = parse_prices({"outcomePrices": [0.3, 0.7]})
    assert shape == "OutcomePricesArray"
    assert (yes, no) == pytest.approx((0.3, 0.7))


def test_token_list_matches_outcome_case_insensitively():
    payload = {
        "tokens": [
            {"outcome": "NO", "price": "0.8", "token_id": "t-no"},
            {"outcome": "Yes", "price": "0.2", "token_id": "t-yes"},
        ]
    }
    (yes, no), shape = parse_prices(payload)
    assert shape == "TokenList"
    assert (yes, no) == pytest.approx((0.2, 0.8))


def test_direct_fields():
    (yes, no), shape = parse_prices({"yes_price": "0.65", "no_price": 0.35})
    assert shape == "DirectFields"
    assert (yes, no) == pytest.approx((0.65, 0.35))


def test_outcome_prices_take_precedence_over_tokens_and_direct_fields():
    payload = {
        "outcomePrices": '["0.9", "0.1"]',
        "tokens": [{"outcome": "Yes", "price": "0.2"}, {"outcome": "No", "price": "0.8"}],
        "yes_price": 0.5,
        "no_price": 0.5,
    }
    assert isinstance(classify(payload), OutcomePricesString)
    (yes, no), _ = parse_prices(payload)
    assert (yes, no) == pytest.approx((0.9, 0.1))


def test_tokens_take_precedence_over_direct_fields():
    payload = {
        "tokens": [{"outcome": "Yes", "price": "0.25"}, {"outcome": "No", "price": "0.75"}],
        "yes_price": 0.9,
    }
    assert isinstance(classify(payload), TokenList)


def test_classify_shapes():
    assert isinstance(classify({"outcomePrices": ["0.1", "0.9"]}), OutcomePricesArray)
    assert isinstance(classify({"yes_price": 0.4}), DirectFields)
    assert isinstance(classify({"question": "Will it rain?"}), Unrecognized)
    assert isinstance(classify(["0.4", "0.6"]), Unrecognized)
    assert isinstance(classify(None), Unrecognized)


def test_unrecognized_payload_falls_back(caplog):
    (yes, no), shape = parse_prices({"question": "Will it rain?", "volume": "1000"}, "m-1")
    assert (yes, no) == FALLBACK_PAIR
    assert shape == "Unrecognized"
    assert "m-1" in caplog.text


@pytest.mark.parametrize("payload", [
    {"outcomePrices": "not json"},
    {"outcomePrices": '{"yes": 0.4}'},
    {"outcomePrices": '["0.4"]'},
    {"outcomePrices": ["abc", "0.5"]},
    {"outcomePrices": ["-0.2", "0.5"]},
    {"outcomePrices": ["NaN", "0.5"]},
    {"tokens": [{"outcome": "Maybe", "price": "0.4"}]},
    {"tokens": [{"outcome": "Yes", "price": None}, {"outcome": "No", "price": "0.5"}]},
    {"yes_price": "n/a"},
])
def test_unparseable_values_fall_back(payload):
    (yes, no), _ = parse_prices(payload)
    assert (yes, no) == FALLBACK_PAIR


def test_zero_prices_fall_back_exactly():
    (yes, no), _ = parse_prices({"outcomePrices": '["0", "0"]'})
    assert (yes, no) == (0.5, 0.5)
    assert normalize(0.0, 0.0) == (0.5, 0.5)


def test_fee_skew_is_normalized_away():
    (yes, no), _ = parse_prices({"outcomePrices": ["0.52", "0.50"]})
    assert yes == pytest.approx(0.52 / 1.02)
    assert no == pytest.approx(0.50 / 1.02)
    assert yes + no == pytest.approx(1.0, abs=1e-9)


def test_missing_half_of_direct_pair_keeps_default_before_normalizing():
    (yes, no), _ = parse_prices({"yes_price": 0.7})
    assert yes == pytest.approx(0.7 / 1.2)
    assert no == pytest.approx(0.5 / 1.2)


@pytest.mark.parametrize("yes", [0.0, 1e-6, 0.01, 0.3, 0.5, 0.97, 1.0, 3.0])
@pytest.mark.parametrize("no", [1e-6, 0.02, 0.5, 0.99, 1.0, 7.5])
def test_normalized_pair_sums_to_one(yes, no):
    y, n = normalize(yes, no)
    assert math.isclose(y + n, 1.0, abs_tol=1e-9)
    assert y >= 0 and n >= 0


def test_parse_market_prices_builds_snapshot():
    fetched_at = datetime(2026, 1, 5, 12, 0, 0)
    snapshot = parse_market_prices("m-42", {"outcomePrices": '["0.25", "0.75"]'}, fetched_at)
    assert snapshot.market_id == "m-42"
    assert snapshot.fetched_at == fetched_at
    assert snapshot.source_shape == "OutcomePricesString"
    assert snapshot.odds.yes_price == pytest.approx(0.25)
    assert snapshot.odds.no_price == pytest.approx(0.75)
