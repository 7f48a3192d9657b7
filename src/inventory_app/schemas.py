from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

from src.schemas import NonBlank, RequestModel, Timestamp


class OwnershipType(StrEnum):
    PERSONAL = "personal"
    HOUSEHOLD = "household"


class InventoryCreate(RequestModel):
    name: NonBlank = Field(max_length=200)
    details: str | None = Field(default=None, max_length=2000)
    category_id: int | None = None
    photo_urls: list[str] = []
    ownership_type: OwnershipType = OwnershipType.HOUSEHOLD
    owner_ids: list[int] = []

    @model_validator(mode="after")
    def check_owners(self):
        if self.ownership_type == OwnershipType.PERSONAL and not self.owner_ids:
            raise ValueError("personal items need at least one owner")
        return self


class InventoryUpdate(RequestModel):
    name: NonBlank | None = Field(default=None, max_length=200)
    details: str | None = Field(default=None, max_length=2000)
    category_id: int | None = None
    photo_urls: list[str] | None = None
    ownership_type: OwnershipType | None = None
    owner_ids: list[int] | None = None


class AvailabilityQuery(BaseModel):
    start: Timestamp | None = None
    end: Timestamp | None = None

    @model_validator(mode="after")
    def check_range(self):
        if self.start and self.end and self.end < self.start:
            raise ValueError("end must not be before start")
        return self
