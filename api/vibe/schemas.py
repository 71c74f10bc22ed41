from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator


class ProfileBase(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    age: int | None = Field(default=None, ge=18, le=99)
    bio: str | None = Field(default=None, max_length=600)
    occupation: str | None = Field(default=None, max_length=120)
    images: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, values: list[str]) -> list[str]:
        out: list[str] = []
        for value in values:
            v = str(value or "").strip()
            if v and v not in out:
                out.append(v)
        return out

    @field_validator("images")
    @classmethod
    def _drop_blank_images(cls, values: list[str]) -> list[str]:
        return [str(v).strip() for v in values if str(v or "").strip()]


class HunterProfile(ProfileBase):
    role: Literal["hunter"]
    budget: int | None = Field(default=None, ge=0)
    move_in: str | None = Field(default=None, max_length=32)


class HostProfile(ProfileBase):
    role: Literal["host"]
    rent: int | None = Field(default=None, ge=0)
    locality: str | None = Field(default=None, max_length=120)


ProfileInput = Annotated[Union[HunterProfile, HostProfile], Field(discriminator="role")]
profile_adapter = TypeAdapter(ProfileInput)


class PhoneInput(BaseModel):
    phone_number: str


class SwipeRequest(BaseModel):
    target_id: str = Field(min_length=1)
    direction: Literal["like", "pass"]


class SwipeResponse(BaseModel):
    recorded: bool
    is_match: bool = False
    match_id: str | None = None
    counterpart: dict[str, Any] | None = None
    is_ad: bool = False
    requeued: bool = False


class SendMessageRequest(BaseModel):
    text: str = ""


class BlockRequest(BaseModel):
    blocked_uid: str = Field(min_length=1)


class ReportRequest(BaseModel):
    offender_uid: str = Field(min_length=1)
    reason: str = Field(min_length=1, max_length=64)
    details: str | None = Field(default=None, max_length=2000)
