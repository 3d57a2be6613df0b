"""Response envelopes.

Every response has the shape ``{"status": ..., "data": {...}}``.
"""
from typing import Literal

from pydantic import Field

from app.models.time_entry import CamelModel, TimeEntry, TimeEntryDetail


class TimerData(CamelModel):
    timer: TimeEntry


class TimerResponse(CamelModel):
    """Single time entry."""

    status: Literal["success"] = "success"
    data: TimerData


class TimerListData(CamelModel):
    timers: list[TimeEntryDetail]
    logged_hours: float


class TimerListResponse(CamelModel):
    """Time entries for a user or project, with their logged hours."""

    status: Literal["success"] = "success"
    data: TimerListData


class HoursSummary(CamelModel):
    """Logged hours for a user or project broken down by related ids."""

    total_hours: float
    entry_count: int
    by_project: dict[str, float] = Field(default_factory=dict)
    by_task: dict[str, float] = Field(default_factory=dict)
    by_user: dict[str, float] = Field(default_factory=dict)


class SummaryData(CamelModel):
    summary: HoursSummary


class SummaryResponse(CamelModel):
    status: Literal["success"] = "success"
    data: SummaryData


class ErrorResponse(CamelModel):
    """Failure envelope: "fail" for client errors, "error" otherwise."""

    status: Literal["fail", "error"]
    message: str
