from pydantic import BaseModel, ConfigDict

from apptracker.schemas.activity import ActivityResponse
from apptracker.schemas.contact import ContactResponse
from apptracker.schemas.tag import TagResponse


class ApplicationCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    company: str | None = None
    role: str | None = None
    status: str | None = None
    url: str | None = None
    notes: str | None = None


class ApplicationUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    company: str | None = None
    role: str | None = None
    status: str | None = None
    url: str | None = None
    notes: str | None = None


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company: str
    role: str | None
    status: str
    url: str | None
    notes: str | None
    created_at: str


class ApplicationFull(BaseModel):
    application: ApplicationResponse
    contacts: list[ContactResponse] = []
    activities: list[ActivityResponse] = []
    tags: list[TagResponse] = []
