# groupfit/progress.py
# =============================================================================
# Weekly progress: reconcile a member's logged workouts against the plan that
# applies to a week.
#
#   amount mode  (some non-Rest planned entry has an amount)
#       planned and logged amounts are summed per (kind, unit); each planned
#       pair is credited min(logged, planned). Unplanned pairs earn nothing.
#   count mode   (no planned amounts)
#       any logged workout in the week counts toward any non-Rest planned slot.
# =============================================================================

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from groupfit.calendar_week import week_identifier_of, week_range_of
from groupfit.models import Group, KindProgress, LoggedEntry, ProgressSummary, WeekPlan
from groupfit.plan_resolver import effective_plan

log = logging.getLogger(__name__)

DEFAULT_UNIT = "km"
SWIM_UNIT = "m"

# kind -> unit -> amount
AmountTable = Dict[str, Dict[str, float]]


def _round(value: float) -> int:
    """Round half up, like the dashboard does (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def normalize_logged_amount(entry: LoggedEntry) -> Tuple[Optional[float], str]:
    """Amount and unit credited for a logged workout.

    ``amount`` wins; the legacy ``distance`` field is used only when ``amount``
    is missing. Swims default to metres, everything else to kilometres.
    """
    amount = entry.amount if entry.amount is not None else entry.distance
    if entry.unit:
        unit = entry.unit
    else:
        unit = SWIM_UNIT if entry.workout_kind == "Swim" else DEFAULT_UNIT
    return amount, unit


def entries_in_week(entries: Iterable[LoggedEntry], week_id: str) -> List[LoggedEntry]:
    """Entries dated inside the week, compared as YYYY-MM-DD strings."""
    week = week_range_of(week_id)
    start = week.start.date().isoformat()
    end = week.end.date().isoformat()
    return [e for e in entries if start <= (e.date or "")[:10] <= end]


def entries_for_member(entries: Iterable[LoggedEntry], member_id: str) -> List[LoggedEntry]:
    return [e for e in entries if e.member_id == member_id]


def _iter_planned(plan: WeekPlan):
    for day_entries in plan.values():
        for entry in day_entries or []:
            yield entry


def uses_amounts(plan: WeekPlan) -> bool:
    return any(e.amount is not None and not e.is_rest for e in _iter_planned(plan))


def _planned_amounts(plan: WeekPlan) -> AmountTable:
    table: AmountTable = defaultdict(lambda: defaultdict(float))
    for entry in _iter_planned(plan):
        if entry.is_rest or entry.amount is None:
            continue
        table[entry.workout_kind][entry.unit or DEFAULT_UNIT] += entry.amount
    return table


def _logged_amounts(entries: Iterable[LoggedEntry]) -> AmountTable:
    table: AmountTable = defaultdict(lambda: defaultdict(float))
    for entry in entries:
        amount, unit = normalize_logged_amount(entry)
        if amount is None:
            continue
        table[entry.workout_kind][unit] += amount
    return table


def _amount_progress(plan: WeekPlan, entries: List[LoggedEntry]) -> ProgressSummary:
    planned = _planned_amounts(plan)
    logged = _logged_amounts(entries)

    total_raw = 0.0
    completed_raw = 0.0
    breakdown: Dict[str, KindProgress] = {}
    for kind, units in planned.items():
        for unit, planned_amount in units.items():
            logged_amount = logged.get(kind, {}).get(unit, 0.0)
            credited = min(logged_amount, planned_amount)
            total_raw += planned_amount
            completed_raw += credited

            # Keyed by kind only: with several units the last pair's credit wins
            item = breakdown.get(kind)
            if item is None:
                item = breakdown[kind] = KindProgress(unit=unit)
            item.planned += planned_amount
            item.logged = credited

    percentage = _round(100 * completed_raw / total_raw) if total_raw else 0
    return ProgressSummary(
        completed=_round(completed_raw),
        total=_round(total_raw),
        percentage=percentage,
        mode="amount",
        breakdown=breakdown,
    )


def _count_progress(plan: WeekPlan, entries: List[LoggedEntry]) -> ProgressSummary:
    total = sum(1 for e in _iter_planned(plan) if not e.is_rest)
    completed = len(entries)
    percentage = _round(100 * completed / total) if total else 0
    return ProgressSummary(completed=completed, total=total, percentage=percentage, mode="count")


def weekly_progress(
    group: Group,
    member_id: str,
    entries: Iterable[LoggedEntry],
    week_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ProgressSummary:
    """Completion summary for one member and one week (default: this week).

    Any date inside the week may be passed; it is normalized to its Monday.

    Raises InvalidWeekIdentifier when ``week_id`` is not a calendar date.
    """
    week_id = week_identifier_of(week_id, now=now)

    if group.default_plan is None:
        return ProgressSummary()

    plan = effective_plan(group, week_id, now=now)
    member_entries = entries_for_member(entries_in_week(entries, week_id), member_id)

    if uses_amounts(plan):
        summary = _amount_progress(plan, member_entries)
    else:
        summary = _count_progress(plan, member_entries)
    log.debug(
        f"Progress for member {member_id} week {week_id}: "
        f"{summary.completed}/{summary.total} ({summary.mode})"
    )
    return summary
