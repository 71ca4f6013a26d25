"""GroupFit: shared weekly training plans and member progress."""

from groupfit.calendar_week import (
    InvalidWeekIdentifier,
    adjacent_week,
    days_until,
    is_in_future,
    is_in_past,
    is_today,
    week_identifier_of,
    week_range_of,
)
from groupfit.plan_resolver import current_week_view, effective_plan
from groupfit.progress import weekly_progress

__version__ = "1.0.0"
