import asyncio
import threading

import pytest

from apptracker.errors import NotFoundError, StorageError, ValidationError
from apptracker.statuses import statuses_for
from apptracker.store import MEMORY, open_store
from apptracker.utils import timestamps
from conftest import add_tag

EN = statuses_for("en")


@pytest.fixture
def clock(monkeypatch):
    """Hand out creation timestamps from a list instead of the wall clock."""
    values = []

    def fake_now():
        return values.pop(0)

    monkeypatch.setattr(timestamps, "utc_now", fake_now)
    return values


class TestScenario:
    @pytest.mark.asyncio
    async def test_acme_lifecycle(self, store):
        assert await store.create_application({"company": "Acme", "status": "Applied"}) == {"id": 1}

        rows = await store.list_applications()
        assert len(rows) == 1
        assert rows[0].company == "Acme"
        assert rows[0].role is None
        assert rows[0].status == "Applied"

        assert await store.create_contact({"applicationId": 1, "name": "Max"}) == {"id": 1}
        assert await store.delete_application(1) == {"changes": 1}

        stats = await store.get_stats()
        assert stats.model_dump() == {"applications": 0, "contacts": 0, "activities": 0}


class TestApplications:
    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        created = await store.create_application({
            "company": "  Initech ",
            "role": "Engineer",
            "status": "Interviewing",
            "url": "https://initech.example/jobs/1",
            "notes": " second round ",
        })
        full = await store.get_application_full(created["id"])
        app = full.application
        assert app.id == created["id"]
        assert app.company == "Initech"
        assert app.role == "Engineer"
        assert app.status == "Interviewing"
        assert app.url == "https://initech.example/jobs/1"
        assert app.notes == "second round"
        assert app.created_at.endswith("Z")
        assert full.contacts == [] and full.activities == [] and full.tags == []

    @pytest.mark.asyncio
    async def test_default_status_is_first_stage(self, store):
        created = await store.create_application({"company": "Acme"})
        full = await store.get_application_full(created["id"])
        assert full.application.status == EN[0]

    @pytest.mark.asyncio
    async def test_company_required(self, store):
        with pytest.raises(ValidationError, match="company is required"):
            await store.create_application({"company": "   "})
        assert (await store.get_stats()).applications == 0

    @pytest.mark.asyncio
    async def test_every_allowed_status_accepted(self, store):
        for status in EN:
            await store.create_application({"company": "A", "status": status})
        assert (await store.get_stats()).applications == len(EN)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["Nope", "applied", "Beworben", ""])
    async def test_unknown_status_rejected(self, store, status):
        with pytest.raises(ValidationError, match="Invalid status"):
            await store.create_application({"company": "A", "status": status})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["notaurl", "ftp://x.com"])
    async def test_invalid_url_rejected(self, store, url):
        with pytest.raises(ValidationError, match="Invalid URL"):
            await store.create_application({"company": "A", "url": url})

    @pytest.mark.asyncio
    async def test_https_url_accepted(self, store):
        assert await store.create_application({"company": "A", "url": "https://x.com"}) == {"id": 1}

    @pytest.mark.asyncio
    async def test_partial_update(self, store):
        created = await store.create_application({"company": "Acme", "role": "Dev"})
        result = await store.update_application(created["id"], {"status": "Offer"})
        assert result == {"changes": 1}

        app = (await store.get_application_full(created["id"])).application
        assert app.status == "Offer"
        assert app.company == "Acme"
        assert app.role == "Dev"

    @pytest.mark.asyncio
    async def test_update_clears_optional_field(self, store):
        created = await store.create_application({"company": "Acme", "role": "Dev"})
        await store.update_application(created["id"], {"role": "  "})
        app = (await store.get_application_full(created["id"])).application
        assert app.role is None

    @pytest.mark.asyncio
    async def test_update_without_known_fields_is_noop(self, store):
        created = await store.create_application({"company": "Acme"})
        assert await store.update_application(created["id"], {}) == {"changes": 0}
        assert await store.update_application(created["id"], {"salary": 1}) == {"changes": 0}

    @pytest.mark.asyncio
    async def test_update_unknown_id(self, store):
        assert await store.update_application(99, {"company": "X"}) == {"changes": 0}

    @pytest.mark.asyncio
    async def test_update_validates_status(self, store):
        created = await store.create_application({"company": "Acme"})
        with pytest.raises(ValidationError):
            await store.update_application(created["id"], {"status": "Ghosted"})

    @pytest.mark.asyncio
    async def test_update_does_not_touch_created_at(self, store):
        created = await store.create_application({"company": "Acme"})
        before = (await store.get_application_full(created["id"])).application.created_at
        await store.update_application(created["id"], {"notes": "x", "created_at": "1999"})
        after = (await store.get_application_full(created["id"])).application.created_at
        assert before == after

    @pytest.mark.asyncio
    async def test_deleted_ids_are_not_reused(self, store):
        await store.create_application({"company": "A"})
        await store.create_application({"company": "B"})
        assert await store.delete_application(2) == {"changes": 1}
        assert await store.create_application({"company": "C"}) == {"id": 3}

        await store.create_contact({"application_id": 1, "name": "Max"})
        await store.delete_contact(1)
        assert await store.create_contact({"application_id": 1, "name": "Erika"}) == {"id": 2}

        document = await store.export_document()
        assert document["meta"]["next_application_id"] == 4
        assert document["meta"]["next_contact_id"] == 3

    @pytest.mark.asyncio
    async def test_delete_unknown_id(self, store):
        assert await store.delete_application(42) == {"changes": 0}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", [0, -1, "abc", "²"])
    async def test_bad_id_rejected(self, store, bad_id):
        with pytest.raises(ValidationError, match="Invalid id"):
            await store.get_application_full(bad_id)
        with pytest.raises(ValidationError, match="Invalid id"):
            await store.delete_application(bad_id)

    @pytest.mark.asyncio
    async def test_full_of_missing_application_is_none(self, store):
        assert await store.get_application_full(5) is None

    @pytest.mark.asyncio
    async def test_results_are_copies(self, store):
        await store.create_application({"company": "Acme"})
        rows = await store.list_applications()
        rows[0].company = "Mutated"
        assert (await store.list_applications())[0].company == "Acme"


class TestOrdering:
    @pytest.mark.asyncio
    async def test_newest_first(self, store, clock):
        clock.extend([
            "2024-01-01T09:00:00.000Z",
            "2024-01-02T09:00:00.000Z",
            "2024-01-03T09:00:00.000Z",
        ])
        for name in ("First", "Second", "Third"):
            await store.create_application({"company": name})
        rows = await store.list_applications()
        assert [r.company for r in rows] == ["Third", "Second", "First"]

    @pytest.mark.asyncio
    async def test_equal_timestamps_fall_back_to_id(self, store, clock):
        clock.extend(["2024-01-01T09:00:00.000Z"] * 3)
        for name in ("A", "B", "C"):
            await store.create_application({"company": name})
        rows = await store.list_applications()
        assert [r.id for r in rows] == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_full_aggregate_ordering(self, store):
        app_id = (await store.create_application({"company": "Acme"}))["id"]
        for name in ("Zed", "Amy"):
            await store.create_contact({"application_id": app_id, "name": name})
        await store.create_activity({"application_id": app_id, "type": "undated"})
        await store.create_activity({"application_id": app_id, "type": "old", "date": "2024-01-01"})
        await store.create_activity({"application_id": app_id, "type": "new", "date": "2024-06-01"})
        await store.create_activity({"application_id": app_id, "type": "new-2", "date": "2024-06-01"})
        add_tag(store, app_id, 1, "remote")
        add_tag(store, app_id, 2, "berlin")

        full = await store.get_application_full(app_id)
        assert [c.name for c in full.contacts] == ["Zed", "Amy"]
        assert [a.type for a in full.activities] == ["new-2", "new", "old", "undated"]
        assert [t.name for t in full.tags] == ["berlin", "remote"]


class TestContacts:
    @pytest.mark.asyncio
    async def test_unknown_application(self, store):
        with pytest.raises(NotFoundError, match="Application not found"):
            await store.create_contact({"application_id": 7, "name": "Max"})
        assert (await store.get_stats()).contacts == 0

    @pytest.mark.asyncio
    async def test_name_required(self, store):
        await store.create_application({"company": "Acme"})
        with pytest.raises(ValidationError, match="name is required"):
            await store.create_contact({"application_id": 1, "name": ""})

    @pytest.mark.asyncio
    async def test_linkedin_must_be_http(self, store):
        await store.create_application({"company": "Acme"})
        with pytest.raises(ValidationError, match="Invalid URL"):
            await store.create_contact({"application_id": 1, "name": "Max", "linkedin": "linkedin"})
        created = await store.create_contact({
            "application_id": 1,
            "name": "Max",
            "linkedin": "https://www.linkedin.com/in/max",
        })
        assert created == {"id": 1}

    @pytest.mark.asyncio
    async def test_list_joins_application(self, store):
        await store.create_application({"company": "Acme", "role": "Dev"})
        await store.create_contact({
            "application_id": 1,
            "name": " Max ",
            "email": "max@acme.test",
            "phone": "",
        })
        rows = await store.list_contacts()
        assert len(rows) == 1
        contact = rows[0]
        assert contact.name == "Max"
        assert contact.email == "max@acme.test"
        assert contact.phone is None
        assert contact.application_company == "Acme"
        assert contact.application_role == "Dev"

    @pytest.mark.asyncio
    async def test_reassign(self, store):
        await store.create_application({"company": "Acme"})
        await store.create_application({"company": "Globex"})
        await store.create_contact({"application_id": 1, "name": "Max"})

        assert await store.update_contact(1, {"applicationId": 2}) == {"changes": 1}
        contact = (await store.list_contacts())[0]
        assert contact.application_id == 2
        assert contact.application_company == "Globex"

    @pytest.mark.asyncio
    async def test_reassign_to_missing_application(self, store):
        await store.create_application({"company": "Acme"})
        await store.create_contact({"application_id": 1, "name": "Max"})
        with pytest.raises(NotFoundError):
            await store.update_contact(1, {"application_id": 9})
        assert (await store.list_contacts())[0].application_id == 1

    @pytest.mark.asyncio
    async def test_update_and_delete(self, store):
        await store.create_application({"company": "Acme"})
        await store.create_contact({"application_id": 1, "name": "Max"})
        assert await store.update_contact(1, {"title": "Recruiter"}) == {"changes": 1}
        assert (await store.list_contacts())[0].title == "Recruiter"
        assert await store.update_contact(1, {}) == {"changes": 0}
        assert await store.update_contact(5, {"title": "x"}) == {"changes": 0}
        assert await store.delete_contact(1) == {"changes": 1}
        assert await store.delete_contact(1) == {"changes": 0}


class TestActivities:
    @pytest.mark.asyncio
    async def test_create_normalises_date(self, store):
        await store.create_application({"company": "Acme"})
        await store.create_activity({
            "application_id": 1,
            "type": "Interview",
            "date": "2024-05-01T14:00:00+02:00",
        })
        activity = (await store.list_activities())[0]
        assert activity.date == "2024-05-01T12:00:00.000Z"
        assert activity.application_company == "Acme"

    @pytest.mark.asyncio
    async def test_absent_and_invalid_dates(self, store):
        await store.create_application({"company": "Acme"})
        await store.create_activity({"application_id": 1, "type": "Call"})
        assert (await store.list_activities())[0].date is None
        with pytest.raises(ValidationError, match="Invalid date"):
            await store.create_activity({"application_id": 1, "type": "Call", "date": "soon"})

    @pytest.mark.asyncio
    async def test_unknown_application(self, store):
        with pytest.raises(NotFoundError):
            await store.create_activity({"application_id": 3, "type": "Call"})

    @pytest.mark.asyncio
    async def test_update_reassign_and_delete(self, store):
        await store.create_application({"company": "Acme"})
        await store.create_application({"company": "Globex"})
        await store.create_activity({"application_id": 1, "type": "Call", "date": "2024-01-01"})

        assert await store.update_activity(1, {"application_id": 2, "date": None}) == {"changes": 1}
        activity = (await store.list_activities())[0]
        assert activity.application_id == 2
        assert activity.date is None
        with pytest.raises(NotFoundError):
            await store.update_activity(1, {"application_id": 10})
        assert await store.delete_activity(1) == {"changes": 1}
        assert (await store.get_stats()).activities == 0


class TestCascade:
    @pytest.mark.asyncio
    async def test_delete_removes_dependents(self, store):
        doomed = (await store.create_application({"company": "Doomed"}))["id"]
        kept = (await store.create_application({"company": "Kept"}))["id"]
        for name in ("A", "B"):
            await store.create_contact({"application_id": doomed, "name": name})
        for kind in ("Call", "Mail", "Interview"):
            await store.create_activity({"application_id": doomed, "type": kind})
        await store.create_contact({"application_id": kept, "name": "C"})
        await store.create_activity({"application_id": kept, "type": "Call"})
        add_tag(store, doomed, 1, "urgent")
        add_tag(store, kept, 1, "urgent")

        before = await store.get_stats()
        assert await store.delete_application(doomed) == {"changes": 1}
        after = await store.get_stats()

        assert after.applications == before.applications - 1
        assert after.contacts == before.contacts - 2
        assert after.activities == before.activities - 3
        assert all(c.application_id != doomed for c in await store.list_contacts())
        assert all(a.application_id != doomed for a in await store.list_activities())

        document = await store.export_document()
        assert document["application_tags"] == [{"application_id": kept, "tag_id": 1}]
        assert [t.name for t in (await store.get_application_full(kept)).tags] == ["urgent"]


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_allowed_statuses_is_a_copy(self, store):
        statuses = await store.get_allowed_statuses()
        assert statuses == EN
        statuses.append("Ghosted")
        assert await store.get_allowed_statuses() == EN

    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, store):
        assert await store.seed_sample_data() is True
        assert await store.seed_sample_data() is False
        stats = await store.get_stats()
        assert stats.model_dump() == {"applications": 1, "contacts": 1, "activities": 1}
        app = (await store.list_applications())[0]
        assert app.status == "Applied"

    @pytest.mark.asyncio
    async def test_export_document_layout(self, store):
        await store.create_application({"company": "Acme"})
        await store.create_contact({"application_id": 1, "name": "Max"})
        document = await store.export_document()
        assert set(document) == {
            "meta", "applications", "contacts", "activities", "tags", "application_tags",
        }
        assert document["meta"] == {
            "next_application_id": 2,
            "next_contact_id": 2,
            "next_activity_id": 1,
            "next_tag_id": 1,
        }
        assert document["contacts"][0]["application_id"] == 1

    @pytest.mark.asyncio
    async def test_list_tags(self, store):
        await store.create_application({"company": "Acme"})
        add_tag(store, 1, 1, "remote")
        add_tag(store, 1, 2, "fintech")
        assert [t.name for t in await store.list_tags()] == ["fintech", "remote"]

    @pytest.mark.asyncio
    async def test_integrity_check(self, store):
        assert await store.integrity_check() == "ok"


class TestTimeouts:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("backend", ["sqlite", "json"])
    async def test_next_call_waits_for_timed_out_worker(self, backend, monkeypatch):
        store = await open_store(MEMORY, backend=backend, locale="en", timeout=0.05)
        release = threading.Event()
        stalled = []
        create = store._create_application

        def stall_once(fields):
            if not stalled:
                stalled.append(fields["company"])
                release.wait(5)
            return create(fields)

        monkeypatch.setattr(store, "_create_application", stall_once)

        with pytest.raises(StorageError, match="timed out"):
            await store.create_application({"company": "Slow"})

        queued = asyncio.ensure_future(store.create_application({"company": "Next"}))
        await asyncio.sleep(0.2)
        assert not queued.done()

        release.set()
        assert await queued == {"id": 2}
        assert sorted(r.company for r in await store.list_applications()) == ["Next", "Slow"]
        await store.close()
