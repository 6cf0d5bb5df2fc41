"""
Return-rate math for long/short positions.

Every rate that reaches a response or the feed snapshot goes through here so precision is the
same at every call site (2 decimals). Closed posts never hit calculate_return: their persisted
closed_return_rate is authoritative.
"""
from typing import Any, Iterable, Mapping

from app.core.constants import RETURN_RATE_DECIMALS

POSITION_LONG = "long"
POSITION_SHORT = "short"
POSITION_TYPES = (POSITION_LONG, POSITION_SHORT)


def _round(value: float) -> float:
    # round() on a float that is already x.xx5-ish can yield -0.0; normalize for stable JSON
    out = round(float(value), RETURN_RATE_DECIMALS)
    return out + 0.0


def calculate_return(basis_price: float, current_price: float, position_type: str = POSITION_LONG) -> float:
    """
    Percentage return of a position, rounded to 2 decimals.
    Returns 0 when either price is missing or non-positive (no division by zero, no bogus -100%).
    """
    try:
        basis = float(basis_price or 0)
        current = float(current_price or 0)
    except (TypeError, ValueError):
        return 0.0
    if basis <= 0 or current <= 0:
        return 0.0
    if position_type == POSITION_SHORT:
        return _round((basis - current) / basis * 100)
    return _round((current - basis) / basis * 100)


def average_basis(
    initial_price: float,
    entries: Iterable[Mapping[str, Any]] | None,
    initial_quantity: float | None = None,
) -> float:
    """
    Weighted average of the initial basis and every averaging-down entry.
    Entries carrying a positive quantity weigh by it; entries without one weigh 1,
    so a post with no recorded quantities is an equal-weighted mean.
    """
    weight = float(initial_quantity) if initial_quantity and initial_quantity > 0 else 1.0
    total = float(initial_price or 0) * weight
    weights = weight
    for entry in entries or []:
        price = float(entry.get("price") or 0)
        if price <= 0:
            continue
        qty = entry.get("quantity")
        w = float(qty) if qty and float(qty) > 0 else 1.0
        total += price * w
        weights += w
    if weights <= 0:
        return 0.0
    return _round(total / weights)


def _get(data: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return None


def effective_basis(data: Mapping[str, Any]) -> float:
    """avgPrice once averaged down, else the initial price. Accepts feed (camelCase) or row-ish dicts."""
    avg = _get(data, "avgPrice", "avg_price")
    if avg is not None and float(avg) > 0:
        return float(avg)
    return float(_get(data, "initialPrice", "initial_price") or 0)


def calc_return_rate(data: Mapping[str, Any]) -> float:
    """Return rate for a stored post: frozen closed rate if closed, else recomputed from basis/current."""
    closed_rate = _get(data, "closed_return_rate", "closedReturnRate")
    if _get(data, "is_closed", "isClosed") and closed_rate is not None:
        return float(closed_rate)
    current = float(_get(data, "currentPrice", "current_price") or 0)
    position = _get(data, "positionType", "position_type") or POSITION_LONG
    return calculate_return(effective_basis(data), current, position)


def format_return(return_rate: float, decimal_places: int = 2) -> str:
    sign = "+" if return_rate >= 0 else ""
    return f"{sign}{return_rate:.{decimal_places}f}%"


def position_from_opinion(opinion: str | None, position_type: str | None = None) -> str:
    """Explicit position wins; otherwise a 'sell' call is a short, anything else a long."""
    if position_type in POSITION_TYPES:
        return position_type
    return POSITION_SHORT if (opinion or "").lower() == "sell" else POSITION_LONG


def target_reached(position_type: str, current_price: float, target_price: float | None) -> bool:
    if not target_price or target_price <= 0 or not current_price or current_price <= 0:
        return False
    if position_type == POSITION_SHORT:
        return current_price <= target_price
    return current_price >= target_price
