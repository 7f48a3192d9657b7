import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

from src.schemas import ClockTime, NonBlank, RequestModel, Timestamp


class Frequency(StrEnum):
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class RepeatUnit(StrEnum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    IRREGULAR = "irregular"


class MonthlyRecurrenceMode(StrEnum):
    SAME_DATE = "same_date"
    SAME_WEEKDAY = "same_weekday"


class TaskFields(RequestModel):
    """Fields shared by create and update; every one optional here."""

    description: str | None = Field(default=None, max_length=5000)
    assigned_to: list[int] | None = None
    frequency: Frequency | None = None
    custom_frequency_days: int | None = Field(default=None, ge=1)
    repeat_interval: int | None = Field(default=None, ge=1)
    repeat_unit: RepeatUnit | None = None
    monthly_recurrence_mode: MonthlyRecurrenceMode | None = None
    enable_rotation: bool | None = None
    required_persons: int | None = Field(default=None, ge=1)
    excluded_members: list[int] | None = None
    due_date: datetime.date | None = None
    due_time: ClockTime | None = None
    duration_days: int | None = Field(default=None, ge=0)
    duration_minutes: int | None = Field(default=None, ge=0)


class TaskCreate(TaskFields):
    name: NonBlank = Field(max_length=200)
    prerequisites: list[int] = []
    followups: list[int] = []

    @model_validator(mode="after")
    def check_due_time(self):
        if self.due_time is not None and self.due_date is None:
            raise ValueError("due_time needs a due_date")
        return self


class TaskUpdate(TaskFields):
    name: NonBlank | None = Field(default=None, max_length=200)
    clear_repeat: bool = False


class CompleteRequest(RequestModel):
    comment: str | None = Field(default=None, max_length=5000)
    photo_urls: list[str] = []
    force: bool = False


class ToggleRequest(RequestModel):
    is_completed: bool
    force: bool = False


class DateRequest(RequestModel):
    date: datetime.date


class MilestoneRequest(RequestModel):
    comment: str | None = Field(default=None, max_length=5000)
    photo_urls: list[str] = []
    file_urls: list[str] = []


class ReminderRequest(RequestModel):
    comment: str | None = Field(default=None, max_length=1000)


class RotationSlot(RequestModel):
    position: int = Field(ge=1)
    member_id: int | None = None


class RotationOccurrence(RequestModel):
    occurrence_number: int = Field(ge=1)
    members: list[RotationSlot] = []
    notes: str | None = None
    is_skipped: bool = False


class RotationScheduleRequest(RequestModel):
    schedule: list[RotationOccurrence]


class RotationExtendRequest(RequestModel):
    members: list[RotationSlot] = []
    notes: str | None = None


class RotationAutofillRequest(RequestModel):
    count: int = Field(default=4, ge=1, le=52)
    slots: int | None = Field(default=None, ge=1)


class DependencyRequest(RequestModel):
    prerequisites: list[int] = []
    followups: list[int] = []


class OccurrenceQuery(BaseModel):
    count: int = Field(default=5, ge=1, le=52)


class OccurrenceBorrowStatus(StrEnum):
    PENDING = "pending"
    BORROWED = "borrowed"
    RETURNED = "returned"
    OVERDUE = "overdue"


class OccurrenceItemCreate(RequestModel):
    inventory_item_id: int
    borrow_start_date: Timestamp | None = None
    borrow_end_date: Timestamp | None = None
    notes: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def check_window(self):
        if (
            self.borrow_start_date
            and self.borrow_end_date
            and self.borrow_end_date < self.borrow_start_date
        ):
            raise ValueError("borrow_end_date must not be before borrow_start_date")
        return self


class OccurrenceItemUpdate(RequestModel):
    """Only the fields sent are changed; null clears dates, notes and the request link."""

    borrow_start_date: Timestamp | None = None
    borrow_end_date: Timestamp | None = None
    borrow_status: OccurrenceBorrowStatus | None = None
    borrow_request_id: int | None = None
    notes: str | None = Field(default=None, max_length=1000)
