from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from eventflow.core.errors import CapacityBelowAttendance, EventNotFound, Forbidden, ValidationError
from eventflow.models.event import Event
from eventflow.services.transactions import run_in_transaction

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 200
LOCATION_MAX_LENGTH = 255
CATEGORY_MAX_LENGTH = 50
TIME_MAX_LENGTH = 20
MIN_CAPACITY = 1
MAX_CAPACITY = 1000
DEFAULT_CATEGORY = "General"


# -----------------------------
# Field parsing
# -----------------------------
def parse_event_date(value: Any) -> date:
    """Accepts YYYY-MM-DD or a full ISO-8601 datetime (the date part is kept)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value or "").strip()
    if not raw:
        raise ValidationError("Date is required")
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return date.fromisoformat(raw)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(raw).date()
    except ValueError:
        raise ValidationError("Invalid date format")


def parse_capacity(value: Any) -> int:
    try:
        capacity = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("Invalid capacity")
    if capacity < MIN_CAPACITY or capacity > MAX_CAPACITY:
        raise ValidationError(f"Capacity must be between {MIN_CAPACITY} and {MAX_CAPACITY}")
    return capacity


def clean_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def _provided(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


# -----------------------------
# Reads
# -----------------------------
def get_event(db: Session, event_id: int) -> Event:
    event = db.get(Event, event_id)
    if not event:
        raise EventNotFound()
    return event


def lock_event(db: Session, event_id: int) -> Event:
    """
    Load the event row for a read-modify-write. On PostgreSQL the row stays locked
    until commit/rollback; everywhere the version column catches a concurrent writer.
    """
    event = (
        db.execute(
            select(Event)
            .where(Event.id == event_id)
            .with_for_update(of=Event)
            .execution_options(populate_existing=True)
        )
        .unique()
        .scalars()
        .first()
    )
    if not event:
        raise EventNotFound()
    return event


def list_events(db: Session) -> list[Event]:
    return db.query(Event).order_by(Event.date.asc(), Event.id.asc()).all()


def list_events_for_owner(db: Session, user_id: int) -> list[Event]:
    return (
        db.query(Event)
        .filter(Event.created_by == user_id)
        .order_by(Event.created_at.desc(), Event.id.desc())
        .all()
    )


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search_events(db: Session, query: str) -> list[Event]:
    term = (query or "").strip()
    if not term:
        return []
    like = _like_pattern(term)
    return (
        db.query(Event)
        .filter(
            or_(
                Event.title.ilike(like, escape="\\"),
                Event.description.ilike(like, escape="\\"),
                Event.location.ilike(like, escape="\\"),
                Event.category.ilike(like, escape="\\"),
            )
        )
        .order_by(Event.date.asc(), Event.id.asc())
        .all()
    )


# -----------------------------
# Writes
# -----------------------------
def create_event(
    db: Session,
    *,
    owner_id: int,
    title: Any,
    description: Any,
    date: Any,
    time: Any,
    location: Any,
    capacity: Any,
    category: Any = None,
    image_url: str | None = None,
) -> Event:
    event = Event(
        created_by=owner_id,
        title=clean_text(title, "Title", max_length=TITLE_MAX_LENGTH),
        description=clean_text(description, "Description"),
        date=parse_event_date(date),
        time=clean_text(time, "Time", max_length=TIME_MAX_LENGTH),
        location=clean_text(location, "Location", max_length=LOCATION_MAX_LENGTH),
        category=(
            clean_text(category, "Category", max_length=CATEGORY_MAX_LENGTH)
            if _provided(category)
            else DEFAULT_CATEGORY
        ),
        capacity=parse_capacity(capacity),
        image_url=image_url,
        attendee_count=0,
    )
    db.add(event)
    db.commit()
    db.refresh(event)

    logger.info("Event created: id=%s owner=%s capacity=%s", event.id, owner_id, event.capacity)
    return event


def _apply_changes(event: Event, fields: dict[str, Any], image_url: str | None) -> None:
    if _provided(fields.get("title")):
        event.title = clean_text(fields["title"], "Title", max_length=TITLE_MAX_LENGTH)
    if _provided(fields.get("description")):
        event.description = clean_text(fields["description"], "Description")
    if _provided(fields.get("date")):
        event.date = parse_event_date(fields["date"])
    if _provided(fields.get("time")):
        event.time = clean_text(fields["time"], "Time", max_length=TIME_MAX_LENGTH)
    if _provided(fields.get("location")):
        event.location = clean_text(fields["location"], "Location", max_length=LOCATION_MAX_LENGTH)
    if _provided(fields.get("category")):
        event.category = clean_text(fields["category"], "Category", max_length=CATEGORY_MAX_LENGTH)
    if _provided(fields.get("capacity")):
        capacity = parse_capacity(fields["capacity"])
        # Checked against the count read under the row lock, never a client-supplied count.
        if capacity < event.attendee_count:
            raise CapacityBelowAttendance(event.attendee_count)
        event.capacity = capacity
    if image_url:
        event.image_url = image_url


def update_event(
    db: Session,
    event_id: int,
    user_id: int,
    fields: dict[str, Any],
    *,
    image_url: str | None = None,
) -> tuple[Event, str | None]:
    """
    Owner-only field edit. Returns (event, replaced_image_url).

    Raises:
        EventNotFound, Forbidden, ValidationError, CapacityBelowAttendance,
        TransientError (a concurrent writer won twice in a row)
    """
    replaced: dict[str, str | None] = {"image_url": None}

    def _op() -> Event:
        event = lock_event(db, event_id)
        if event.created_by != user_id:
            raise Forbidden("Not authorized to edit this event")
        replaced["image_url"] = event.image_url if image_url else None
        _apply_changes(event, fields, image_url)
        db.flush()
        return event

    event = run_in_transaction(db, _op, label="event update")
    logger.info("Event updated: id=%s by user=%s", event_id, user_id)
    return event, replaced["image_url"]


def delete_event(db: Session, event_id: int, user_id: int) -> str | None:
    """Owner-only delete. Returns the image URL the event held, if any."""

    def _op() -> str | None:
        event = lock_event(db, event_id)
        if event.created_by != user_id:
            raise Forbidden("Not authorized to delete this event")
        image_url = event.image_url
        db.delete(event)
        db.flush()
        return image_url

    image_url = run_in_transaction(db, _op, label="event delete")
    logger.info("Event deleted: id=%s by user=%s", event_id, user_id)
    return image_url
