from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_path: Path = Path.home() / "AppTracker"
    # "sqlite" for the relational store, "json" for the document store.
    backend: str = "sqlite"
    # Selects the status vocabulary, see apptracker.statuses.
    locale: str = "en"
    # Local disk I/O can stall under contention; no store call waits longer.
    operation_timeout_seconds: float = 10.0
    # Insert one sample application on startup when the store is empty.
    seed_sample_data: bool = False
    api_prefix: str = "/api/v1"
    host: str = "127.0.0.1"
    port: int = 8000

    @property
    def db_path(self) -> Path:
        return self.data_path / "apptracker.sqlite"

    @property
    def json_path(self) -> Path:
        return self.data_path / "apptracker.json"

    @property
    def store_path(self) -> Path:
        return self.json_path if self.backend == "json" else self.db_path

    model_config = {"env_prefix": "APPTRACKER_"}


settings = Settings()
