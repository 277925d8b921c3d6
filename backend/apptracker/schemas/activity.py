from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ActivityCreate(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    application_id: int | str | None = Field(
        default=None, validation_alias=AliasChoices("application_id", "applicationId")
    )
    type: str | None = None
    date: str | datetime | None = None
    notes: str | None = None


class ActivityUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    application_id: int | str | None = Field(
        default=None, validation_alias=AliasChoices("application_id", "applicationId")
    )
    type: str | None = None
    date: str | datetime | None = None
    notes: str | None = None


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    application_id: int
    type: str
    date: str | None
    notes: str | None
    created_at: str
    application_company: str | None = None
    application_role: str | None = None
