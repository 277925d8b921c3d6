from sqlalchemy import func, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from apptracker.errors import NotFoundError, StorageError
from apptracker.models import Activity, Application, Contact, Tag, application_tags
from apptracker.schemas.activity import ActivityResponse
from apptracker.schemas.application import ApplicationFull, ApplicationResponse
from apptracker.schemas.contact import ContactResponse
from apptracker.schemas.stats import Stats
from apptracker.schemas.tag import TagResponse
from apptracker.store.base import Store
from apptracker.utils import timestamps

_FK_FAILED = "FOREIGN KEY constraint failed"
_HAS_SEQUENCES = "SELECT 1 FROM sqlite_master WHERE type='table' AND name='sqlite_sequence'"


def _as_dict(obj) -> dict:
    return {column.name: getattr(obj, column.name) for column in obj.__table__.columns}


class SqlStore(Store):
    """Store backed by SQLite through the SQLAlchemy ORM."""

    backend = "sqlite"

    def __init__(self, engine: Engine, statuses: list[str], timeout: float | None = None):
        super().__init__(statuses, timeout)
        self.engine = engine
        self.SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    def _session(self) -> Session:
        return self.SessionLocal()

    @staticmethod
    def _require_application(db: Session, app_id: int):
        if db.get(Application, app_id) is None:
            raise NotFoundError("Application not found")

    @staticmethod
    def _commit(db: Session):
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if _FK_FAILED in str(exc.orig):
                raise NotFoundError("Application not found") from exc
            raise StorageError(f"Constraint violation: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise StorageError(str(exc)) from exc

    # --- stats ---

    def _stats(self) -> Stats:
        with self._session() as db:
            return Stats(
                applications=db.query(func.count(Application.id)).scalar(),
                contacts=db.query(func.count(Contact.id)).scalar(),
                activities=db.query(func.count(Activity.id)).scalar(),
            )

    # --- applications ---

    def _create_application(self, fields: dict) -> dict:
        with self._session() as db:
            application = Application(**fields, created_at=timestamps.utc_now())
            db.add(application)
            self._commit(db)
            return {"id": application.id}

    def _list_applications(self) -> list[ApplicationResponse]:
        with self._session() as db:
            rows = (
                db.query(Application)
                .order_by(Application.created_at.desc(), Application.id.desc())
                .all()
            )
            return [ApplicationResponse.model_validate(row) for row in rows]

    def _update_application(self, app_id: int, fields: dict) -> dict:
        with self._session() as db:
            application = db.get(Application, app_id)
            if application is None:
                return {"changes": 0}
            for key, value in fields.items():
                setattr(application, key, value)
            self._commit(db)
            return {"changes": 1}

    def _delete_application(self, app_id: int) -> dict:
        with self._session() as db:
            application = db.get(Application, app_id)
            if application is None:
                return {"changes": 0}
            # Contacts and activities go with the row via ON DELETE CASCADE.
            db.delete(application)
            self._commit(db)
            return {"changes": 1}

    def _get_application_full(self, app_id: int) -> ApplicationFull | None:
        with self._session() as db:
            application = db.get(Application, app_id)
            if application is None:
                return None
            contacts = (
                db.query(Contact)
                .filter(Contact.application_id == app_id)
                .order_by(Contact.id.asc())
                .all()
            )
            # SQLite sorts NULL lowest, so undated activities come last.
            activities = (
                db.query(Activity)
                .filter(Activity.application_id == app_id)
                .order_by(Activity.date.desc(), Activity.id.desc())
                .all()
            )
            tags = (
                db.query(Tag)
                .join(application_tags, application_tags.c.tag_id == Tag.id)
                .filter(application_tags.c.application_id == app_id)
                .order_by(Tag.name.asc())
                .all()
            )
            return ApplicationFull(
                application=ApplicationResponse.model_validate(application),
                contacts=[ContactResponse.model_validate(c) for c in contacts],
                activities=[ActivityResponse.model_validate(a) for a in activities],
                tags=[TagResponse.model_validate(t) for t in tags],
            )

    # --- contacts ---

    def _list_contacts(self) -> list[ContactResponse]:
        with self._session() as db:
            rows = (
                db.query(Contact, Application.company, Application.role)
                .outerjoin(Application, Application.id == Contact.application_id)
                .order_by(Contact.created_at.desc(), Contact.id.desc())
                .all()
            )
            return [
                ContactResponse(
                    **_as_dict(contact), application_company=company, application_role=role
                )
                for contact, company, role in rows
            ]

    def _create_contact(self, fields: dict) -> dict:
        with self._session() as db:
            self._require_application(db, fields["application_id"])
            contact = Contact(**fields, created_at=timestamps.utc_now())
            db.add(contact)
            self._commit(db)
            return {"id": contact.id}

    def _update_contact(self, contact_id: int, fields: dict) -> dict:
        with self._session() as db:
            if "application_id" in fields:
                self._require_application(db, fields["application_id"])
            contact = db.get(Contact, contact_id)
            if contact is None:
                return {"changes": 0}
            for key, value in fields.items():
                setattr(contact, key, value)
            self._commit(db)
            return {"changes": 1}

    def _delete_contact(self, contact_id: int) -> dict:
        with self._session() as db:
            deleted = db.query(Contact).filter(Contact.id == contact_id).delete()
            self._commit(db)
            return {"changes": deleted}

    # --- activities ---

    def _list_activities(self) -> list[ActivityResponse]:
        with self._session() as db:
            rows = (
                db.query(Activity, Application.company, Application.role)
                .outerjoin(Application, Application.id == Activity.application_id)
                .order_by(Activity.created_at.desc(), Activity.id.desc())
                .all()
            )
            return [
                ActivityResponse(
                    **_as_dict(activity), application_company=company, application_role=role
                )
                for activity, company, role in rows
            ]

    def _create_activity(self, fields: dict) -> dict:
        with self._session() as db:
            self._require_application(db, fields["application_id"])
            activity = Activity(**fields, created_at=timestamps.utc_now())
            db.add(activity)
            self._commit(db)
            return {"id": activity.id}

    def _update_activity(self, activity_id: int, fields: dict) -> dict:
        with self._session() as db:
            if "application_id" in fields:
                self._require_application(db, fields["application_id"])
            activity = db.get(Activity, activity_id)
            if activity is None:
                return {"changes": 0}
            for key, value in fields.items():
                setattr(activity, key, value)
            self._commit(db)
            return {"changes": 1}

    def _delete_activity(self, activity_id: int) -> dict:
        with self._session() as db:
            deleted = db.query(Activity).filter(Activity.id == activity_id).delete()
            self._commit(db)
            return {"changes": deleted}

    # --- tags ---

    def _list_tags(self) -> list[TagResponse]:
        with self._session() as db:
            return [TagResponse.model_validate(t) for t in db.query(Tag).order_by(Tag.name).all()]

    # --- maintenance ---

    def _export_document(self) -> dict:
        data = {"meta": {}}
        with self._session() as db:
            sequences = {}
            if db.execute(text(_HAS_SEQUENCES)).first() is not None:
                sequences = dict(db.execute(text("SELECT name, seq FROM sqlite_sequence")).all())
            for key, counter, model in (
                ("applications", "next_application_id", Application),
                ("contacts", "next_contact_id", Contact),
                ("activities", "next_activity_id", Activity),
                ("tags", "next_tag_id", Tag),
            ):
                rows = db.query(model).order_by(model.id).all()
                data[key] = [_as_dict(row) for row in rows]
                max_id = db.query(func.max(model.id)).scalar() or 0
                # The sequence remembers ids of rows that were deleted since.
                data["meta"][counter] = max(sequences.get(key, 0), max_id) + 1
            links = db.execute(
                application_tags.select().order_by(
                    application_tags.c.application_id, application_tags.c.tag_id
                )
            ).fetchall()
            data["application_tags"] = [
                {"application_id": row.application_id, "tag_id": row.tag_id} for row in links
            ]
        return data

    def _integrity_check(self) -> str:
        with self.engine.connect() as conn:
            return conn.execute(text("PRAGMA integrity_check")).scalar()

    def _close(self):
        self.engine.dispose()
