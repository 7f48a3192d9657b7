import datetime

from src.database import format_timestamp, load_json, parse_timestamp


class Task:
    def __init__(
        self,
        id: int = None,
        household_id: int = None,
        name: str = "",
        description: str = None,
        assigned_to: list[int] = None,
        frequency: str = "once",
        custom_frequency_days: int = None,
        repeat_interval: int = None,
        repeat_unit: str = None,
        monthly_recurrence_mode: str = "same_date",
        enable_rotation: bool = False,
        required_persons: int = None,
        due_date: datetime.datetime = None,
        duration_days: int = None,
        duration_minutes: int = None,
        is_completed: bool = False,
        completed_by: int = None,
        completed_at: str = None,
        completion_photo_urls: list = None,
        skipped_dates: list[str] = None,
        created_by: int = None,
        created_at: str = None,
        updated_at: str = None,
    ):
        self.id = id
        self.household_id = household_id
        self.name = name
        self.description = description
        self.assigned_to = list(assigned_to or [])
        self.frequency = frequency  # once, daily, weekly, monthly or custom
        self.custom_frequency_days = custom_frequency_days
        self.repeat_interval = repeat_interval
        self.repeat_unit = repeat_unit  # days, weeks, months or irregular
        self.monthly_recurrence_mode = monthly_recurrence_mode or "same_date"
        self.enable_rotation = enable_rotation
        self.required_persons = required_persons
        self.due_date = due_date
        self.duration_days = duration_days
        self.duration_minutes = duration_minutes
        self.is_completed = is_completed
        self.completed_by = completed_by
        self.completed_at = completed_at
        self.completion_photo_urls = list(completion_photo_urls or [])
        self.skipped_dates = sorted(set(skipped_dates or []))  # "YYYY-MM-DD" strings
        self.created_by = created_by
        self.created_at = created_at
        self.updated_at = updated_at

    @classmethod
    def from_row(cls, row):
        data = dict(row)
        assigned_to = [
            int(member_id) for member_id in load_json(data.pop("assigned_to"), [])
        ]
        return cls(
            assigned_to=assigned_to,
            enable_rotation=bool(data.pop("enable_rotation")),
            is_completed=bool(data.pop("is_completed")),
            due_date=parse_timestamp(data.pop("due_date")),
            completion_photo_urls=load_json(data.pop("completion_photo_urls"), []),
            skipped_dates=load_json(data.pop("skipped_dates"), []),
            **data,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "household_id": self.household_id,
            "name": self.name,
            "description": self.description,
            "assigned_to": self.assigned_to,
            "frequency": self.frequency,
            "custom_frequency_days": self.custom_frequency_days,
            "repeat_interval": self.repeat_interval,
            "repeat_unit": self.repeat_unit,
            "monthly_recurrence_mode": self.monthly_recurrence_mode,
            "enable_rotation": self.enable_rotation,
            "required_persons": self.required_persons,
            "due_date": format_timestamp(self.due_date),
            "duration_days": self.duration_days,
            "duration_minutes": self.duration_minutes,
            "is_completed": self.is_completed,
            "completed_by": self.completed_by,
            "completed_at": self.completed_at,
            "completion_photo_urls": self.completion_photo_urls,
            "skipped_dates": self.skipped_dates,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self):
        return f"Task({self.id}, {self.name}, due={self.due_date})"
