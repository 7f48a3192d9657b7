from pydantic import Field

from src.schemas import NonBlank, RequestModel


class HouseholdCreate(RequestModel):
    name: NonBlank = Field(max_length=100)


class HouseholdJoin(RequestModel):
    invite_code: NonBlank = Field(min_length=8, max_length=8)
    member_name: NonBlank | None = Field(default=None, max_length=100)


class MemberCreate(RequestModel):
    member_name: NonBlank = Field(max_length=100)
    photo_url: str | None = None


class MemberUpdate(RequestModel):
    member_name: NonBlank | None = Field(default=None, max_length=100)
    photo_url: str | None = None
    is_active: bool | None = None
