"""Display helpers shared by the JSON API."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal


def format_npr(value: int | Decimal) -> str:
    """Format rupees with South Asian digit grouping, e.g. 'Rs.3,02,856'.

    The last three digits form one group; every group to the left has two.
    """
    amount = int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    sign = "-" if amount < 0 else ""
    digits = str(abs(amount))

    if len(digits) <= 3:
        return f"Rs.{sign}{digits}"

    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return f"Rs.{sign}{','.join(groups)},{tail}"


def format_percent(value: Decimal) -> str:
    """Signed percent with two decimals, e.g. '+1.69%'."""
    rounded = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{'+' if rounded > 0 else ''}{rounded}%"


def timestamp_to_iso(value: float | None) -> str | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()

