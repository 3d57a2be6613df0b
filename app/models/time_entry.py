"""Time entry model definitions.

Documents are stored with snake_case keys and naive UTC datetimes; the
JSON API speaks camelCase and marks every timestamp as UTC.
"""
from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model exposing camelCase field names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimerAction(CamelModel):
    """
    Request body for start/pause/resume/stop.

    Identifiers are optional here so that missing ones are reported by
    the service as a validation failure rather than a schema error.
    """

    user_id: Optional[str] = None
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    description: Optional[str] = None


class ManualTimeEntryCreate(CamelModel):
    """Request body for logging a completed time entry by hand."""

    user: Optional[str] = None
    project: Optional[str] = None
    task: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    description: Optional[str] = None


class TimeEntryUpdate(CamelModel):
    """Time entry update model - all fields optional."""

    duration: Optional[int] = Field(None, ge=0)
    entry_date: Optional[date] = Field(None, alias="date")
    description: Optional[str] = None


class TimeEntry(CamelModel):
    """Full time entry model with database fields."""

    id: str = Field(alias="_id", serialization_alias="id")
    user_id: str
    project_id: str
    task_id: str
    description: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: int = 0
    is_paused: bool = False
    paused_at: Optional[datetime] = None
    total_paused_time: int = 0
    created_at: datetime
    updated_at: datetime

    @field_serializer(
        "start_time", "end_time", "paused_at", "created_at", "updated_at",
        when_used="json-unless-none",
    )
    def serialize_utc(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_doc(cls, doc: dict, **extra):
        """
        Convert a time_entries document to this model.

        Missing or null duration and paused time read as 0. Extra keyword
        arguments are passed through to subclasses' own fields.
        """
        return cls(
            _id=str(doc["_id"]),
            user_id=str(doc["user_id"]),
            project_id=str(doc["project_id"]),
            task_id=str(doc["task_id"]),
            description=doc.get("description", ""),
            start_time=doc.get("start_time"),
            end_time=doc.get("end_time"),
            duration=doc.get("duration") or 0,
            is_paused=doc.get("is_paused", False),
            paused_at=doc.get("paused_at"),
            total_paused_time=doc.get("total_paused_time") or 0,
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
            **extra,
        )


class RelatedRef(CamelModel):
    """Display fields of a document referenced by a time entry."""

    id: str
    name: Optional[str] = None
    title: Optional[str] = None
    email: Optional[str] = None


class TimeEntryDetail(TimeEntry):
    """Time entry expanded with its related project, task and user."""

    project: Optional[RelatedRef] = None
    task: Optional[RelatedRef] = None
    user: Optional[RelatedRef] = None
