from odds_tracker.revaluation.market_grouper import group_by_market, index_by_id

from conftest import make_position


def test_groups_positions_by_market():
    positions = [make_position(f"p{i}", f"m{i % 3}") for i in range(7)]
    groups = group_by_market(positions)

    assert set(groups) == {"m0", "m1", "m2"}
    assert groups["m0"] == ["p0", "p3", "p6"]
    assert groups["m1"] == ["p1", "p4"]
    assert sum(len(ids) for ids in groups.values()) == 7


def test_positions_without_market_are_dropped():
    positions = [make_position("p1", "m1"), make_position("p2", "")]
    assert group_by_market(positions) == {"m1": ["p1"]}


def test_empty_input():
    assert group_by_market([]) == {}
    assert index_by_id([]) == {}


def test_index_by_id():
    positions = [make_position("a", "m1"), make_position("b", "m2")]
    index = index_by_id(positions)
    assert index["b"].market_id == "m2"
