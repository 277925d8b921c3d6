"""Store backed by a single JSON document.

Emulates what SQLite gives the relational store for free: auto-increment ids
kept in ``meta``, foreign key checks by scanning ``applications``, and
cascading deletes by filtering the dependent collections. Every successful
mutation rewrites the whole document (skipped in memory-only mode).
"""
import copy
import json
import logging
from pathlib import Path

from apptracker.errors import NotFoundError, ValidationError
from apptracker.schemas.activity import ActivityResponse
from apptracker.schemas.application import ApplicationFull, ApplicationResponse
from apptracker.schemas.contact import ContactResponse
from apptracker.schemas.stats import Stats
from apptracker.schemas.tag import TagResponse
from apptracker.store.base import Store
from apptracker.utils import timestamps
from apptracker.utils.filesystem import write_json_atomic
from apptracker.validation import positive_int

logger = logging.getLogger("apptracker.store.json")

# collection -> (id counter in meta, fields besides id, fields that must be text)
COLLECTIONS = {
    "applications": (
        "next_application_id",
        ("company", "role", "status", "url", "notes", "created_at"),
        ("company", "status", "created_at"),
    ),
    "contacts": (
        "next_contact_id",
        ("application_id", "name", "email", "phone", "title", "linkedin", "created_at"),
        ("name", "created_at"),
    ),
    "activities": (
        "next_activity_id",
        ("application_id", "type", "date", "notes", "created_at"),
        ("type", "created_at"),
    ),
    "tags": ("next_tag_id", ("name",), ("name",)),
}


def empty_document() -> dict:
    doc = {"meta": {counter: 1 for counter, _, _ in COLLECTIONS.values()}}
    for key in COLLECTIONS:
        doc[key] = []
    doc["application_tags"] = []
    return doc


def _id_or_none(value) -> int | None:
    try:
        return positive_int(value)
    except ValidationError:
        return None


def normalize_document(raw, statuses: list[str]) -> dict:
    """Rebuild a loaded document field by field.

    Records without a usable id (or owner id) are dropped. Text fields that are
    missing or hold anything but a string become ``None``, or ``""`` where the
    field is required. Each id counter ends up above every id in its collection.
    """
    doc = empty_document()
    if not isinstance(raw, dict):
        return doc
    meta = raw.get("meta") if isinstance(raw.get("meta"), dict) else {}

    for key, (counter, fields, required) in COLLECTIONS.items():
        records, seen = [], set()
        items = raw.get(key) if isinstance(raw.get(key), list) else []
        for item in items:
            if not isinstance(item, dict):
                continue
            record_id = _id_or_none(item.get("id"))
            if record_id is None or record_id in seen:
                continue
            record = {"id": record_id}
            for field in fields:
                value = item.get(field)
                if field == "application_id":
                    record[field] = _id_or_none(value)
                elif isinstance(value, str):
                    record[field] = value
                else:
                    record[field] = "" if field in required else None
            if record.get("application_id", 0) is None:
                continue
            if key == "applications" and not record["status"]:
                record["status"] = statuses[0]
            seen.add(record_id)
            records.append(record)
        doc[key] = records
        highest = max((r["id"] for r in records), default=0)
        doc["meta"][counter] = max(_id_or_none(meta.get(counter)) or 1, highest + 1)

    links = set()
    items = raw.get("application_tags") if isinstance(raw.get("application_tags"), list) else []
    for item in items:
        if not isinstance(item, dict):
            continue
        app_id, tag_id = _id_or_none(item.get("application_id")), _id_or_none(item.get("tag_id"))
        if app_id is not None and tag_id is not None:
            links.add((app_id, tag_id))
    doc["application_tags"] = [
        {"application_id": app_id, "tag_id": tag_id} for app_id, tag_id in sorted(links)
    ]
    return doc


def load_document(path: Path, statuses: list[str]) -> dict:
    if not path.exists():
        return empty_document()
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Could not read %s (%s); starting with an empty store", path, exc)
        return empty_document()
    if not isinstance(raw, dict):
        logger.warning("Unexpected document in %s; starting with an empty store", path)
    return normalize_document(raw, statuses)


def _find(records: list[dict], record_id: int) -> dict | None:
    for record in records:
        if record["id"] == record_id:
            return record
    return None


def _newest_first(records: list[dict]) -> list[dict]:
    return sorted(records, key=lambda r: (r["created_at"] or "", r["id"]), reverse=True)


class JsonStore(Store):
    backend = "json"

    def __init__(
        self,
        path: Path | None,
        statuses: list[str],
        timeout: float | None = None,
        document: dict | None = None,
    ):
        super().__init__(statuses, timeout)
        self.path = path
        self._doc = document if document is not None else empty_document()

    def _draft(self) -> dict:
        return copy.deepcopy(self._doc)

    def _save(self, doc: dict):
        # Disk first: a failed write leaves the in-memory state untouched.
        if self.path is not None:
            write_json_atomic(self.path, doc)
        self._doc = doc

    @staticmethod
    def _take_id(doc: dict, counter: str) -> int:
        next_id = doc["meta"][counter]
        doc["meta"][counter] = next_id + 1
        return next_id

    def _require_application(self, doc: dict, app_id: int):
        if _find(doc["applications"], app_id) is None:
            raise NotFoundError("Application not found")

    def _insert(self, key: str, fields: dict) -> dict:
        doc = self._draft()
        if "application_id" in fields:
            self._require_application(doc, fields["application_id"])
        counter = COLLECTIONS[key][0]
        record = {"id": self._take_id(doc, counter), **fields, "created_at": timestamps.utc_now()}
        doc[key].append(record)
        self._save(doc)
        return {"id": record["id"]}

    def _patch(self, key: str, record_id: int, fields: dict) -> dict:
        doc = self._draft()
        if "application_id" in fields:
            self._require_application(doc, fields["application_id"])
        record = _find(doc[key], record_id)
        if record is None:
            return {"changes": 0}
        record.update(fields)
        self._save(doc)
        return {"changes": 1}

    def _remove(self, key: str, record_id: int) -> dict:
        if _find(self._doc[key], record_id) is None:
            return {"changes": 0}
        doc = self._draft()
        doc[key] = [r for r in doc[key] if r["id"] != record_id]
        self._save(doc)
        return {"changes": 1}

    def _joined(self, record: dict) -> dict:
        owner = _find(self._doc["applications"], record["application_id"])
        return {
            **record,
            "application_company": owner["company"] if owner else None,
            "application_role": owner["role"] if owner else None,
        }

    # --- stats ---

    def _stats(self) -> Stats:
        return Stats(
            applications=len(self._doc["applications"]),
            contacts=len(self._doc["contacts"]),
            activities=len(self._doc["activities"]),
        )

    # --- applications ---

    def _create_application(self, fields: dict) -> dict:
        return self._insert("applications", fields)

    def _list_applications(self) -> list[ApplicationResponse]:
        return [ApplicationResponse(**r) for r in _newest_first(self._doc["applications"])]

    def _update_application(self, app_id: int, fields: dict) -> dict:
        return self._patch("applications", app_id, fields)

    def _delete_application(self, app_id: int) -> dict:
        if _find(self._doc["applications"], app_id) is None:
            return {"changes": 0}
        doc = self._draft()
        doc["applications"] = [r for r in doc["applications"] if r["id"] != app_id]
        doc["contacts"] = [r for r in doc["contacts"] if r["application_id"] != app_id]
        doc["activities"] = [r for r in doc["activities"] if r["application_id"] != app_id]
        doc["application_tags"] = [
            r for r in doc["application_tags"] if r["application_id"] != app_id
        ]
        self._save(doc)
        return {"changes": 1}

    def _get_application_full(self, app_id: int) -> ApplicationFull | None:
        application = _find(self._doc["applications"], app_id)
        if application is None:
            return None
        contacts = sorted(
            (r for r in self._doc["contacts"] if r["application_id"] == app_id),
            key=lambda r: r["id"],
        )
        # Dated activities first, newest date first, then highest id.
        activities = sorted(
            (r for r in self._doc["activities"] if r["application_id"] == app_id),
            key=lambda r: (r["date"] is not None, r["date"] or "", r["id"]),
            reverse=True,
        )
        tag_ids = {
            link["tag_id"]
            for link in self._doc["application_tags"]
            if link["application_id"] == app_id
        }
        tags = sorted(
            (t for t in self._doc["tags"] if t["id"] in tag_ids), key=lambda t: t["name"]
        )
        return ApplicationFull(
            application=ApplicationResponse(**application),
            contacts=[ContactResponse(**r) for r in contacts],
            activities=[ActivityResponse(**r) for r in activities],
            tags=[TagResponse(**t) for t in tags],
        )

    # --- contacts ---

    def _list_contacts(self) -> list[ContactResponse]:
        return [ContactResponse(**self._joined(r)) for r in _newest_first(self._doc["contacts"])]

    def _create_contact(self, fields: dict) -> dict:
        return self._insert("contacts", fields)

    def _update_contact(self, contact_id: int, fields: dict) -> dict:
        return self._patch("contacts", contact_id, fields)

    def _delete_contact(self, contact_id: int) -> dict:
        return self._remove("contacts", contact_id)

    # --- activities ---

    def _list_activities(self) -> list[ActivityResponse]:
        return [
            ActivityResponse(**self._joined(r)) for r in _newest_first(self._doc["activities"])
        ]

    def _create_activity(self, fields: dict) -> dict:
        return self._insert("activities", fields)

    def _update_activity(self, activity_id: int, fields: dict) -> dict:
        return self._patch("activities", activity_id, fields)

    def _delete_activity(self, activity_id: int) -> dict:
        return self._remove("activities", activity_id)

    # --- tags ---

    def _list_tags(self) -> list[TagResponse]:
        return [TagResponse(**t) for t in sorted(self._doc["tags"], key=lambda t: t["name"])]

    # --- maintenance ---

    def _export_document(self) -> dict:
        return copy.deepcopy(self._doc)

    def _integrity_check(self) -> str:
        return "ok"

    def _close(self):
        pass
