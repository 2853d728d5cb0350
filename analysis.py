"""Dashboard and analysis aggregates over the item catalog and activity log.

Everything here works on plain records as they come out of the document
store, so it never fails on a missing or malformed field: absent or
non-numeric amounts, quantities and stock count as zero, and an activity
whose date cannot be parsed falls in no month and sorts as the oldest.
"""
from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from schemas import AnalysisReport, DashboardReport, Number, Series

SALE = "sale"
LOSS = "loss"

RECENT_LIMIT = 5
TOP_ITEMS_LIMIT = 5
MONTHS = 6

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)

Record = Mapping[str, Any]


def as_number(value: Any) -> Number:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return value


def parse_date(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp into an aware datetime in local time."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    # naive values are taken as local time
    try:
        return parsed.astimezone()
    except (OverflowError, OSError, ValueError):
        return None


def group_key(value: Any) -> Any:
    """Dictionary key for a grouping field, whatever the stored value is."""
    if value is None or isinstance(value, (str, int, float)):
        return value
    return repr(value)


# ----------------------------------------------------------------------
# Filters
def items_for(user_id: str, items: Iterable[Record]) -> List[Record]:
    return [item for item in items if item.get("userId") == user_id]


def activities_for(user_id: str, activities: Iterable[Record], kind: Optional[str] = None) -> List[Record]:
    return [
        act
        for act in activities
        if act.get("userId") == user_id and (kind is None or act.get("type") == kind)
    ]


def of_kind(activities: Iterable[Record], kind: str) -> List[Record]:
    return [act for act in activities if act.get("type") == kind]


def sum_field(records: Iterable[Record], field: str) -> Number:
    return sum((as_number(record.get(field)) for record in records), 0)


def in_month(activity: Record, year: int, month: int) -> bool:
    when = parse_date(activity.get("date"))
    return when is not None and when.year == year and when.month == month


def month_axis(now: datetime, months: int = MONTHS) -> List[Tuple[int, int]]:
    """(year, month) pairs for the ``months`` calendar months ending with ``now``, oldest first."""
    current = now.year * 12 + now.month - 1
    axis = []
    for i in range(months - 1, -1, -1):
        year, month0 = divmod(current - i, 12)
        axis.append((year, month0 + 1))
    return axis


def most_recent(activities: Iterable[Record], limit: int = RECENT_LIMIT) -> List[Record]:
    # sorted() is stable with reverse=True, so equal timestamps keep insertion order
    ordered = sorted(activities, key=lambda act: parse_date(act.get("date")) or _OLDEST, reverse=True)
    return ordered[:limit]


# ----------------------------------------------------------------------
# Report builders
def monthly_series(activities: List[Record], axis: List[Tuple[int, int]]) -> Series:
    series = Series()
    for year, month in axis:
        series.labels.append(date(year, month, 1).strftime("%b"))
        series.data.append(sum_field((act for act in activities if in_month(act, year, month)), "amount"))
    return series


def top_items(sales: Iterable[Record], limit: int = TOP_ITEMS_LIMIT) -> Series:
    groups: Dict[Any, Dict[str, Any]] = {}
    for act in sales:
        group = groups.setdefault(group_key(act.get("itemId")), {"name": None, "quantity": 0})
        if act.get("itemName") is not None:
            group["name"] = act.get("itemName")
        group["quantity"] += as_number(act.get("quantity"))
    ranked = sorted(groups.values(), key=lambda g: g["quantity"], reverse=True)[:limit]
    return Series(labels=[g["name"] for g in ranked], data=[g["quantity"] for g in ranked])


def loss_breakdown(losses: Iterable[Record]) -> Series:
    totals: Dict[Any, Number] = {}
    for act in losses:
        key = group_key(act.get("lossType"))
        totals[key] = totals.get(key, 0) + as_number(act.get("quantity"))
    return Series(labels=list(totals.keys()), data=list(totals.values()))


def build_dashboard(items: Iterable[Record], activities: Iterable[Record], user_id: str) -> DashboardReport:
    user_activities = activities_for(user_id, activities)
    # "monthly" figures are all-time sums; the field names are kept for API compatibility
    return DashboardReport(
        total_stock=sum_field(items_for(user_id, items), "stock"),
        monthly_revenue=sum_field(of_kind(user_activities, SALE), "amount"),
        monthly_losses=sum_field(of_kind(user_activities, LOSS), "amount"),
        recent_activities=[dict(act) for act in most_recent(user_activities)],
    )


def build_analysis(
    items: Iterable[Record],
    activities: Iterable[Record],
    user_id: str,
    now: Optional[datetime] = None,
) -> AnalysisReport:
    user_activities = activities_for(user_id, activities)
    sales = of_kind(user_activities, SALE)
    losses = of_kind(user_activities, LOSS)
    axis = month_axis(parse_date(now) or datetime.now().astimezone())
    return AnalysisReport(
        total_revenue=sum_field(sales, "amount"),
        total_losses=sum_field(losses, "amount"),
        items_sold=sum_field(sales, "quantity"),
        items_lost=sum_field(losses, "quantity"),
        monthly_sales=monthly_series(sales, axis),
        monthly_losses=monthly_series(losses, axis),
        top_items=top_items(sales),
        loss_types=loss_breakdown(losses),
    )
