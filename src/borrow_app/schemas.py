from pydantic import BaseModel, Field, model_validator

from src.schemas import NonBlank, RequestModel, Timestamp

from .workflow import STATUSES


class BorrowCreate(RequestModel):
    inventory_item_id: int
    start_date: Timestamp
    end_date: Timestamp
    request_message: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ResponseRequest(RequestModel):
    response_message: str | None = Field(default=None, max_length=1000)


class RevokeRequest(RequestModel):
    reason: NonBlank = Field(max_length=1000)


class ChecklistItem(RequestModel):
    id: str | None = None
    label: NonBlank = Field(max_length=200)
    required: bool = True


class PhotoRequirement(RequestModel):
    id: str | None = None
    label: NonBlank = Field(max_length=200)
    example_photo_url: str | None = None
    required: bool = True


class GuidelineRequest(RequestModel):
    instructions_text: str | None = Field(default=None, max_length=5000)
    checklist_items: list[ChecklistItem] = []
    photo_requirements: list[PhotoRequirement] = []


class ReturnPhoto(RequestModel):
    requirement_id: NonBlank
    photo_url: NonBlank
    filename: str | None = None


class ReturnRequest(RequestModel):
    checklist_state: dict[str, bool] = {}
    return_photos: list[ReturnPhoto] = []
    condition_report: str | None = Field(default=None, max_length=5000)


class BorrowListQuery(BaseModel):
    status: str | None = None

    @model_validator(mode="after")
    def check_status(self):
        if self.status and self.status not in STATUSES:
            raise ValueError(f"status must be one of {', '.join(STATUSES)}")
        return self
