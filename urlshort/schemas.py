from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer

# Request bodies accept anything for their fields so the services can report
# missing or malformed values with their own messages.


class RegisterIn(BaseModel):
    name: Any = None
    email: Any = None
    password: Any = None


class LoginIn(BaseModel):
    email: Any = None
    password: Any = None


class UrlCreate(BaseModel):
    url: Any = None


class CustomUrlCreate(BaseModel):
    url: Any = None
    custom_url: Any = Field(default=None, alias="customUrl")

    model_config = ConfigDict(populate_by_name=True)


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    avatar: str | None = None
    created_at: datetime | None = Field(default=None, serialization_alias="createdAt")

    @classmethod
    def from_model(cls, user) -> "UserOut":
        return cls(
            id=str(user.id),
            name=user.name,
            email=user.email,
            avatar=user.avatar,
            created_at=user.created_at,
        )


class CurrentUser(BaseModel):
    """Identity attached to a request by the authentication gate."""

    id: int
    email: str
    name: str
    token_iat: int | None = None
    token_exp: int | None = None


class Envelope(BaseModel):
    success: bool = True
    message: str
    data: Any = None

    @field_serializer("data")
    def _dump_data(self, data):
        if isinstance(data, BaseModel):
            return data.model_dump(by_alias=True, mode="json")
        if isinstance(data, dict):
            return {
                k: v.model_dump(by_alias=True, mode="json") if isinstance(v, BaseModel) else v
                for k, v in data.items()
            }
        return data


def envelope(message: str, data: Any = None) -> dict:
    return Envelope(message=message, data=data).model_dump(mode="json")
