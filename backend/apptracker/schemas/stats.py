from pydantic import BaseModel


class Stats(BaseModel):
    applications: int = 0
    contacts: int = 0
    activities: int = 0
