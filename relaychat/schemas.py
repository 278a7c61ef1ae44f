from __future__ import annotations

import json
from typing import Any, Optional, Type, TypeVar

from fastapi import Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class Payload(BaseModel):
    """Request bodies: every field may be absent, unknown fields are ignored."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def zero_is_absent(cls, v: Any) -> Any:
        # a falsy number counts as a missing value, not as "0"
        if isinstance(v, (int, float)) and not isinstance(v, bool) and not v:
            return None
        return v


class SignupRequest(Payload):
    user_id: Optional[str] = Field(default=None, alias="userId")
    password: Optional[str] = None
    auth_code: Optional[str] = Field(default=None, alias="authCode")


class LoginRequest(Payload):
    user_id: Optional[str] = Field(default=None, alias="userId")
    password: Optional[str] = None
    role: Optional[str] = None


class ChatRequest(Payload):
    user_id: Optional[str] = Field(default=None, alias="userId")
    role: Optional[str] = None
    question: Optional[str] = None


P = TypeVar("P", bound=Payload)


def parse_payload(model: Type[P], raw: bytes) -> P:
    """Decode a JSON object body into ``model``; anything unreadable becomes an empty payload."""
    try:
        data = json.loads(raw or b"{}")
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    try:
        return model.model_validate(data)
    except ValidationError:
        return model()


def json_body(model: Type[P]):
    """FastAPI dependency reading the raw body into ``model`` via ``parse_payload``."""

    async def dependency(request: Request) -> P:
        return parse_payload(model, await request.body())

    return dependency
