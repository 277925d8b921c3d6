"""Input normalisation and constraint checks.

Everything here is pure: no store access, no I/O. Each store write runs its
payload through one of the ``*_fields`` / ``*_patch`` functions first, so a
rejected payload never reaches the backend.
"""
from datetime import datetime
from typing import Any, Mapping, TypeVar

from pydantic import AnyHttpUrl, BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from apptracker.errors import ValidationError
from apptracker.schemas.activity import ActivityCreate, ActivityUpdate
from apptracker.schemas.application import ApplicationCreate, ApplicationUpdate
from apptracker.schemas.contact import ContactCreate, ContactUpdate
from apptracker.utils.timestamps import to_iso

ModelT = TypeVar("ModelT", bound=BaseModel)

_http_url = TypeAdapter(AnyHttpUrl)


def parse_payload(schema: type[ModelT], data: ModelT | Mapping[str, Any] | None) -> ModelT:
    """Coerce a mapping into ``schema``; shape errors become ValidationError."""
    if isinstance(data, schema):
        return data
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValidationError("Invalid payload")
    try:
        return schema.model_validate(dict(data))
    except PydanticValidationError as exc:
        raise ValidationError(error_message(exc.errors())) from exc


def error_message(errors) -> str:
    """One-line message for the first of a list of pydantic errors."""
    err = errors[0]
    loc = [str(part) for part in err["loc"]]
    # Request errors are prefixed with where the value came from.
    if loc and loc[0] in ("body", "query", "path"):
        loc = loc[1:]
    field = ".".join(loc) or "payload"
    return f"Invalid {field}: {err['msg']}"


def required_string(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    return text


def optional_string(value: str | None) -> str | None:
    return (value or "").strip() or None


def check_status(value: str | None, statuses: list[str]) -> str:
    status = (value or "").strip()
    if status not in statuses:
        raise ValidationError(f"Invalid status '{status}'. Allowed: {', '.join(statuses)}")
    return status


def check_url(value: str | None, field: str = "url") -> str | None:
    url = optional_string(value)
    if url is None:
        return None
    try:
        _http_url.validate_python(url)
    except PydanticValidationError:
        raise ValidationError(
            f"Invalid URL: {field} must be an absolute http(s) URL"
        ) from None
    return url


def normalize_date(value: str | datetime | None) -> str | None:
    if isinstance(value, datetime):
        parsed = value
    else:
        text = optional_string(value)
        if text is None:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError("Invalid date") from None
    try:
        return to_iso(parsed)
    except OverflowError:
        # Parses, but falls outside the datetime range once shifted to UTC.
        raise ValidationError("Invalid date") from None


def positive_int(value: Any, name: str = "id") -> int:
    message = "Invalid id" if name == "id" else f"Invalid {name}"
    if isinstance(value, bool):
        raise ValidationError(message)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(message)
        value = int(value)
    elif isinstance(value, str):
        text = value.strip()
        if not (text.isascii() and text.isdigit()):
            raise ValidationError(message)
        value = int(text)
    if not isinstance(value, int) or value <= 0:
        raise ValidationError(message)
    return value


def _application_id(payload: BaseModel) -> int:
    value = payload.application_id
    if value is None or value == "":
        raise ValidationError("application_id is required")
    return positive_int(value, "application_id")


def application_fields(data, statuses: list[str]) -> dict:
    payload = parse_payload(ApplicationCreate, data)
    status = payload.status if payload.status is not None else statuses[0]
    return {
        "company": required_string(payload.company, "company"),
        "role": optional_string(payload.role),
        "status": check_status(status, statuses),
        "url": check_url(payload.url),
        "notes": optional_string(payload.notes),
    }


def application_patch(data, statuses: list[str]) -> dict:
    payload = parse_payload(ApplicationUpdate, data)
    present = payload.model_dump(exclude_unset=True)
    fields = {}
    if "company" in present:
        fields["company"] = required_string(payload.company, "company")
    if "role" in present:
        fields["role"] = optional_string(payload.role)
    if "status" in present:
        fields["status"] = check_status(payload.status, statuses)
    if "url" in present:
        fields["url"] = check_url(payload.url)
    if "notes" in present:
        fields["notes"] = optional_string(payload.notes)
    return fields


def contact_fields(data) -> dict:
    payload = parse_payload(ContactCreate, data)
    return {
        "application_id": _application_id(payload),
        "name": required_string(payload.name, "name"),
        "email": optional_string(payload.email),
        "phone": optional_string(payload.phone),
        "title": optional_string(payload.title),
        "linkedin": check_url(payload.linkedin, "linkedin"),
    }


def contact_patch(data) -> dict:
    payload = parse_payload(ContactUpdate, data)
    present = payload.model_dump(exclude_unset=True)
    fields = {}
    if "application_id" in present:
        fields["application_id"] = _application_id(payload)
    if "name" in present:
        fields["name"] = required_string(payload.name, "name")
    for key in ("email", "phone", "title"):
        if key in present:
            fields[key] = optional_string(present[key])
    if "linkedin" in present:
        fields["linkedin"] = check_url(payload.linkedin, "linkedin")
    return fields


def activity_fields(data) -> dict:
    payload = parse_payload(ActivityCreate, data)
    return {
        "application_id": _application_id(payload),
        "type": required_string(payload.type, "type"),
        "date": normalize_date(payload.date),
        "notes": optional_string(payload.notes),
    }


def activity_patch(data) -> dict:
    payload = parse_payload(ActivityUpdate, data)
    present = payload.model_dump(exclude_unset=True)
    fields = {}
    if "application_id" in present:
        fields["application_id"] = _application_id(payload)
    if "type" in present:
        fields["type"] = required_string(payload.type, "type")
    if "date" in present:
        fields["date"] = normalize_date(payload.date)
    if "notes" in present:
        fields["notes"] = optional_string(payload.notes)
    return fields
