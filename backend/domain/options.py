"""
Input contract between the page and the engine.
"""
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.models import MAX_SLOGAN_LENGTH, AssetRef, CompositionRequest, get_theme

DEFAULT_CUSTOM_TEXT = "Ma culture est ma force"


class VisualOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    photo: Union[bytes, str]  # encoded bytes, data URI, URL or path
    custom_text: str = Field(default=DEFAULT_CUSTOM_TEXT, alias="customText")
    theme: Literal["green", "red"] = "green"

    @field_validator("photo")
    @classmethod
    def _photo_not_empty(cls, value: Union[bytes, str]) -> Union[bytes, str]:
        if not value:
            raise ValueError("photo is required")
        return value

    @field_validator("custom_text", mode="before")
    @classmethod
    def _cap_custom_text(cls, value: object) -> str:
        # Mirrors the form's maxlength; the engine trims again on its side.
        text = "" if value is None else str(value)
        return text[:MAX_SLOGAN_LENGTH]

    def photo_ref(self) -> AssetRef:
        if isinstance(self.photo, bytes):
            return AssetRef.from_bytes(self.photo, label="photo")
        return AssetRef.from_uri(self.photo, label="photo")

    def to_request(self) -> CompositionRequest:
        return CompositionRequest(
            photo=self.photo_ref(),
            theme=get_theme(self.theme),
            slogan=self.custom_text,
        )
