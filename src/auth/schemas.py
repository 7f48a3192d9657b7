from pydantic import Field

from src.schemas import Email, NonBlank, RequestModel


class RegisterRequest(RequestModel):
    name: NonBlank = Field(max_length=100)
    email: Email
    password: str


class LoginRequest(RequestModel):
    email: Email
    password: str


class ProfileUpdate(RequestModel):
    name: NonBlank | None = Field(default=None, max_length=100)
    email: Email | None = None


class PasswordChange(RequestModel):
    current_password: str
    new_password: str
