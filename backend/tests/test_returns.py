import pytest

from app.services.returns import (
    average_basis,
    calc_return_rate,
    calculate_return,
    effective_basis,
    format_return,
    position_from_opinion,
    target_reached,
)


def test_long_gain_and_loss():
    assert calculate_return(100000, 110000) == 10.0
    assert calculate_return(100000, 95000, "long") == -5.0


def test_short_inverts_sign():
    assert calculate_return(100, 90, "short") == 10.0
    assert calculate_return(100, 125, "short") == -25.0


@pytest.mark.parametrize(
    "basis,current",
    [
        (100000, 120000),
        (100000, 80000),
        (3, 4),
        (7, 11),
        (300, 299.99),
        (1, 1.00005),
        (200, 200.01),
        (0.3, 0.1),
        (100, 100),
        (12345.678, 0.01),
    ],
)
def test_short_is_exact_negation_of_long(basis, current):
    assert calculate_return(basis, current, "long") == -calculate_return(basis, current, "short")


def test_rounds_to_two_decimals():
    assert calculate_return(3, 4) == 33.33
    assert str(calculate_return(300, 299.99)) == "0.0"


@pytest.mark.parametrize("basis,current", [(0, 100), (100, 0), (-5, 100), (None, 100), ("abc", 100)])
def test_zero_guard(basis, current):
    assert calculate_return(basis, current) == 0.0


def test_average_basis_equal_weight_without_quantities():
    assert average_basis(100, [{"price": 80}, {"price": 60}]) == 80.0


def test_average_basis_weighted_by_quantity():
    # 10 @ 100 + 30 @ 80 = 3400 / 40
    assert average_basis(100, [{"price": 80, "quantity": 30}], initial_quantity=10) == 85.0


def test_average_basis_skips_invalid_entries():
    assert average_basis(100, [{"price": 0}, {"price": None}, {"price": 50}]) == 75.0


def test_effective_basis_prefers_avg_price():
    assert effective_basis({"initialPrice": 100, "avgPrice": 90}) == 90.0
    assert effective_basis({"initialPrice": 100, "avgPrice": 0}) == 100.0
    assert effective_basis({"initial_price": 100, "avg_price": None}) == 100.0


def test_closed_rate_is_authoritative():
    post = {
        "initialPrice": 100,
        "currentPrice": 200,
        "is_closed": True,
        "closed_return_rate": 7.5,
    }
    assert calc_return_rate(post) == 7.5


def test_open_post_recomputed_from_basis():
    post = {"initialPrice": 100, "avgPrice": 80, "currentPrice": 100, "positionType": "long"}
    assert calc_return_rate(post) == 25.0


def test_format_return():
    assert format_return(12.3) == "+12.30%"
    assert format_return(-3) == "-3.00%"
    assert format_return(0) == "+0.00%"


def test_position_from_opinion():
    assert position_from_opinion("sell") == "short"
    assert position_from_opinion("buy") == "long"
    assert position_from_opinion("sell", "long") == "long"
    assert position_from_opinion(None) == "long"


def test_target_reached():
    assert target_reached("long", 120, 120)
    assert not target_reached("long", 119, 120)
    assert target_reached("short", 80, 85)
    assert not target_reached("short", 90, 85)
    assert not target_reached("long", 120, None)
    assert not target_reached("long", 120, 0)
