from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

from src.schemas import NonBlank, RequestModel, Timestamp


class EventType(StrEnum):
    TASK = "task"
    BORROW_START = "borrow_start"
    BORROW_RETURN = "borrow_return"
    REMINDER = "reminder"
    OTHER = "other"


class EventCreate(RequestModel):
    title: NonBlank = Field(max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    start_date: Timestamp
    end_date: Timestamp | None = None
    all_day: bool = False
    event_type: EventType = EventType.OTHER
    icon: str | None = Field(default=None, max_length=50)
    related_task_id: int | None = None

    @model_validator(mode="after")
    def check_range(self):
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class EventUpdate(RequestModel):
    title: NonBlank | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    start_date: Timestamp | None = None
    end_date: Timestamp | None = None
    all_day: bool | None = None
    event_type: EventType | None = None
    icon: str | None = Field(default=None, max_length=50)


class EventQuery(BaseModel):
    type: EventType | None = None
