from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ContactCreate(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    application_id: int | str | None = Field(
        default=None, validation_alias=AliasChoices("application_id", "applicationId")
    )
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    title: str | None = None
    linkedin: str | None = None


class ContactUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    application_id: int | str | None = Field(
        default=None, validation_alias=AliasChoices("application_id", "applicationId")
    )
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    title: str | None = None
    linkedin: str | None = None


class ContactResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    application_id: int
    name: str
    email: str | None
    phone: str | None
    title: str | None
    linkedin: str | None
    created_at: str
    application_company: str | None = None
    application_role: str | None = None
