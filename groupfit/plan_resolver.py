# groupfit/plan_resolver.py
# =============================================================================
# Which plan applies to a given week: a per-week override replaces the group's
# default plan for that week entirely. Missing data resolves to an empty plan.
# =============================================================================

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from groupfit.calendar_week import week_identifier_of
from groupfit.models import DAYS, Group, WeekPlan, empty_week_plan

log = logging.getLogger(__name__)


def has_override(group: Group, week_id: str) -> bool:
    return week_id in (group.week_overrides or {})


def effective_plan(
    group: Group, week_id: Optional[str] = None, now: Optional[datetime] = None
) -> WeekPlan:
    if week_id is None:
        week_id = week_identifier_of(now=now)
    overrides = group.week_overrides or {}
    if week_id in overrides:
        log.debug(f"Using override plan for week {week_id}")
        return overrides[week_id]
    if group.default_plan is None:
        return empty_week_plan()
    return group.default_plan


def current_week_view(group: Group, now: Optional[datetime] = None) -> WeekPlan:
    """This week's plan with every day present, Monday first."""
    plan = effective_plan(group, now=now)
    return {day: list(plan.get(day) or []) for day in DAYS}
