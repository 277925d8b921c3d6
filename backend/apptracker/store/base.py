import asyncio
import logging
from abc import ABC, abstractmethod
from functools import partial
from typing import Any, Callable, TypeVar

from apptracker import validation
from apptracker.config import settings
from apptracker.errors import StorageError
from apptracker.schemas.activity import ActivityResponse
from apptracker.schemas.application import ApplicationFull, ApplicationResponse
from apptracker.schemas.contact import ContactResponse
from apptracker.schemas.stats import Stats
from apptracker.schemas.tag import TagResponse
from apptracker.utils.timestamps import utc_now

logger = logging.getLogger("apptracker.store")

T = TypeVar("T")


def _log_late_failure(task: asyncio.Future):
    if not task.cancelled() and task.exception() is not None:
        logger.warning("Store operation failed after timing out: %s", task.exception())


def sample_payloads(statuses: list[str]) -> tuple[dict, dict, dict]:
    """Application, contact and activity used to seed an empty store."""
    application = {
        "company": "OpenAI",
        "role": "Software Engineer",
        "status": statuses[1],
        "url": "https://openai.com/careers",
        "notes": "Exciting opportunity",
    }
    contact = {"name": "Alex Doe", "email": "alex@example.com", "title": "Recruiter"}
    activity = {"type": "Phone Screen", "notes": "Intro call"}
    return application, contact, activity


class Store(ABC):
    """Asynchronous contract shared by the SQLite and JSON backends.

    Public coroutines validate their input, then hand the normalised fields
    to a synchronous backend primitive that runs in a worker thread. Calls
    are serialised: one operation touches the backend at a time.
    """

    backend: str = ""

    def __init__(self, statuses: list[str], timeout: float | None = None):
        self._statuses = list(statuses)
        self._timeout = settings.operation_timeout_seconds if timeout is None else timeout
        self._lock = asyncio.Lock()

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        await self._lock.acquire()
        task = asyncio.ensure_future(asyncio.to_thread(partial(fn, *args)))
        # A worker thread cannot be interrupted: the lock stays held until it
        # returns, even after the caller has given up waiting.
        task.add_done_callback(lambda _: self._lock.release())
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self._timeout)
        except asyncio.TimeoutError:
            task.add_done_callback(_log_late_failure)
            raise StorageError(
                f"Store operation timed out after {self._timeout} seconds"
            ) from None

    # --- statuses / stats ---

    async def get_allowed_statuses(self) -> list[str]:
        return list(self._statuses)

    async def get_stats(self) -> Stats:
        return await self._run(self._stats)

    # --- applications ---

    async def create_application(self, data) -> dict:
        fields = validation.application_fields(data, self._statuses)
        return await self._run(self._create_application, fields)

    async def list_applications(self) -> list[ApplicationResponse]:
        return await self._run(self._list_applications)

    async def update_application(self, application_id, patch) -> dict:
        app_id = validation.positive_int(application_id)
        fields = validation.application_patch(patch, self._statuses)
        if not fields:
            return {"changes": 0}
        return await self._run(self._update_application, app_id, fields)

    async def delete_application(self, application_id) -> dict:
        app_id = validation.positive_int(application_id)
        return await self._run(self._delete_application, app_id)

    async def get_application_full(self, application_id) -> ApplicationFull | None:
        app_id = validation.positive_int(application_id)
        return await self._run(self._get_application_full, app_id)

    # --- contacts ---

    async def list_contacts(self) -> list[ContactResponse]:
        return await self._run(self._list_contacts)

    async def create_contact(self, data) -> dict:
        fields = validation.contact_fields(data)
        return await self._run(self._create_contact, fields)

    async def update_contact(self, contact_id, patch) -> dict:
        cid = validation.positive_int(contact_id)
        fields = validation.contact_patch(patch)
        if not fields:
            return {"changes": 0}
        return await self._run(self._update_contact, cid, fields)

    async def delete_contact(self, contact_id) -> dict:
        cid = validation.positive_int(contact_id)
        return await self._run(self._delete_contact, cid)

    # --- activities ---

    async def list_activities(self) -> list[ActivityResponse]:
        return await self._run(self._list_activities)

    async def create_activity(self, data) -> dict:
        fields = validation.activity_fields(data)
        return await self._run(self._create_activity, fields)

    async def update_activity(self, activity_id, patch) -> dict:
        aid = validation.positive_int(activity_id)
        fields = validation.activity_patch(patch)
        if not fields:
            return {"changes": 0}
        return await self._run(self._update_activity, aid, fields)

    async def delete_activity(self, activity_id) -> dict:
        aid = validation.positive_int(activity_id)
        return await self._run(self._delete_activity, aid)

    # --- tags ---

    async def list_tags(self) -> list[TagResponse]:
        return await self._run(self._list_tags)

    # --- maintenance ---

    async def seed_sample_data(self) -> bool:
        """Insert one sample application with a contact and an activity.

        Does nothing unless the store holds no applications yet.
        """
        stats = await self.get_stats()
        if stats.applications:
            return False
        application, contact, activity = sample_payloads(self._statuses)
        created = await self.create_application(application)
        await self.create_contact({**contact, "application_id": created["id"]})
        await self.create_activity(
            {**activity, "application_id": created["id"], "date": utc_now()}
        )
        logger.info("Seeded sample data into %s store", self.backend)
        return True

    async def export_document(self) -> dict:
        return await self._run(self._export_document)

    async def integrity_check(self) -> str:
        return await self._run(self._integrity_check)

    async def close(self):
        await self._run(self._close)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # --- backend primitives, called with validated fields ---

    @abstractmethod
    def _stats(self) -> Stats: ...

    @abstractmethod
    def _create_application(self, fields: dict) -> dict: ...

    @abstractmethod
    def _list_applications(self) -> list[ApplicationResponse]: ...

    @abstractmethod
    def _update_application(self, app_id: int, fields: dict) -> dict: ...

    @abstractmethod
    def _delete_application(self, app_id: int) -> dict: ...

    @abstractmethod
    def _get_application_full(self, app_id: int) -> ApplicationFull | None: ...

    @abstractmethod
    def _list_contacts(self) -> list[ContactResponse]: ...

    @abstractmethod
    def _create_contact(self, fields: dict) -> dict: ...

    @abstractmethod
    def _update_contact(self, contact_id: int, fields: dict) -> dict: ...

    @abstractmethod
    def _delete_contact(self, contact_id: int) -> dict: ...

    @abstractmethod
    def _list_activities(self) -> list[ActivityResponse]: ...

    @abstractmethod
    def _create_activity(self, fields: dict) -> dict: ...

    @abstractmethod
    def _update_activity(self, activity_id: int, fields: dict) -> dict: ...

    @abstractmethod
    def _delete_activity(self, activity_id: int) -> dict: ...

    @abstractmethod
    def _list_tags(self) -> list[TagResponse]: ...

    @abstractmethod
    def _export_document(self) -> dict: ...

    @abstractmethod
    def _integrity_check(self) -> str: ...

    @abstractmethod
    def _close(self): ...
