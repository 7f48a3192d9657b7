"""
Request validation shared by all blueprints.

Each feature keeps its pydantic request models in its own schemas.py; the
helpers here read the request and translate pydantic failures into the
application's ValidationError.
"""

import datetime
import re
from typing import Annotated, TypeVar

import pydantic
from flask import request
from pydantic import AfterValidator, BaseModel, ConfigDict

from src.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")
CLOCK_TIME = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _hex_color(value: str) -> str:
    if not HEX_COLOR.match(value):
        raise ValueError("must be a hex color like #3D5A80")
    return value.upper()


def _clock_time(value: str) -> str:
    if not CLOCK_TIME.match(value):
        raise ValueError("must be a time formatted HH:MM")
    return value


def _email(value: str) -> str:
    value = value.strip().lower()
    if not EMAIL.match(value):
        raise ValueError("must be a valid email address")
    return value


def _naive_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


HexColor = Annotated[str, AfterValidator(_hex_color)]
ClockTime = Annotated[str, AfterValidator(_clock_time)]
NonBlank = Annotated[str, AfterValidator(_not_blank)]
Email = Annotated[str, AfterValidator(_email)]
# Offsets are folded into naive UTC, the form every timestamp is stored in
Timestamp = Annotated[datetime.datetime, AfterValidator(_naive_utc)]


class RequestModel(BaseModel):
    """Base for request bodies: unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


def format_errors(error: pydantic.ValidationError) -> list[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        message = item["msg"].removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return messages


def validate(model: type[ModelT], data) -> ModelT:
    try:
        return model.model_validate(data if data is not None else {})
    except pydantic.ValidationError as e:
        raise ValidationError("Invalid request", format_errors(e)) from e


def parse_body(model: type[ModelT]) -> ModelT:
    """Validate the JSON body of the current request against a model."""
    data = request.get_json(silent=True)
    if data is not None and not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return validate(model, data)


def parse_args(model: type[ModelT]) -> ModelT:
    """Validate the query string of the current request against a model."""
    return validate(model, request.args.to_dict())


def parse_date(value: str, field: str = "date") -> datetime.date:
    try:
        return datetime.date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field} must be a date formatted YYYY-MM-DD") from e
