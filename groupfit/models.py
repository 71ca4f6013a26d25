# groupfit/models.py
# =============================================================================
# Domain models shared by the engine and the API (Pydantic v2).
# Stored documents use the original field names (type, trainingPlan, userId...);
# everything is normalized to one shape on read.
# =============================================================================

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

DAYS = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")

REST = "Rest"
OTHER = "Other"


class Interval(BaseModel):
    type: Literal["warmup", "work", "cooldown", "recovery"]
    distance: Optional[float] = None
    time: Optional[float] = None  # seconds
    pace: Optional[float] = None
    avg_heart_rate: Optional[float] = Field(
        None, validation_alias=AliasChoices("avg_heart_rate", "avgHeartRate")
    )
    note: Optional[str] = None
    repeats: Optional[int] = None


class WorkoutSet(BaseModel):
    reps: Optional[int] = None
    weight: Optional[float] = None  # kg


class Exercise(BaseModel):
    name: str
    sets: List[WorkoutSet] = Field(default_factory=list)


class PlannedEntry(BaseModel):
    """One planned activity for a day.

    A bare string label is accepted anywhere an entry is expected and becomes
    ``{"workout_kind": "Other", "note": label}``.
    """
    model_config = ConfigDict(populate_by_name=True)

    workout_kind: str = Field(validation_alias=AliasChoices("workout_kind", "type"))
    amount: Optional[float] = None
    unit: Optional[str] = None
    duration_minutes: Optional[float] = Field(
        None, validation_alias=AliasChoices("duration_minutes", "duration")
    )
    description: Optional[str] = None
    note: Optional[str] = Field(None, validation_alias=AliasChoices("note", "notes"))
    intervals: List[Interval] = Field(default_factory=list)
    exercises: List[Exercise] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def coerce_label(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"workout_kind": OTHER, "note": data}
        return data

    @property
    def is_rest(self) -> bool:
        return self.workout_kind == REST


WeekPlan = Dict[str, List[PlannedEntry]]


def empty_week_plan() -> WeekPlan:
    return {day: [] for day in DAYS}


class Group(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = None
    name: str = ""
    goal_type: Optional[str] = Field(None, validation_alias=AliasChoices("goal_type", "goalType"))
    goal_date: Optional[str] = Field(None, validation_alias=AliasChoices("goal_date", "goalDate"))
    default_plan: Optional[WeekPlan] = Field(
        None, validation_alias=AliasChoices("default_plan", "defaultPlan", "trainingPlan")
    )
    week_overrides: Dict[str, WeekPlan] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("week_overrides", "weekOverrides", "weeklyPlanOverrides"),
    )

    @model_validator(mode="before")
    @classmethod
    def null_overrides(cls, data: Any) -> Any:
        # Stored groups may carry an explicit null for the overrides map
        if isinstance(data, dict):
            for key in ("week_overrides", "weekOverrides", "weeklyPlanOverrides"):
                if key in data and data[key] is None:
                    data = {**data, key: {}}
        return data


class LoggedEntry(BaseModel):
    """One completed activity by one member. ``distance`` is the legacy amount field."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = None
    member_id: str = Field(validation_alias=AliasChoices("member_id", "memberId", "userId"))
    workout_kind: str = Field(validation_alias=AliasChoices("workout_kind", "type"))
    date: str
    amount: Optional[float] = None
    unit: Optional[str] = None
    distance: Optional[float] = None
    duration_minutes: Optional[float] = Field(
        None, validation_alias=AliasChoices("duration_minutes", "duration")
    )
    notes: Optional[str] = None


class KindProgress(BaseModel):
    planned: float = 0.0
    logged: float = 0.0
    unit: str


class ProgressSummary(BaseModel):
    completed: int = 0
    total: int = 0
    percentage: int = 0
    mode: Literal["amount", "count", "none"] = "none"
    breakdown: Optional[Dict[str, KindProgress]] = None
