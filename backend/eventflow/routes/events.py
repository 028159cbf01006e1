# eventflow/routes/events.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from eventflow.auth.identity import Identity
from eventflow.core.database import get_db
from eventflow.dependencies.auth import get_current_identity
from eventflow.schemas.event import EVENT_CATEGORIES, EventOut, MessageOut
from eventflow.services import events as events_service
from eventflow.services.image_storage import delete_image, save_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["events"])


def _store_image(image: UploadFile | None) -> str | None:
    # Browsers send an empty part when the file input is left blank.
    if image is None or not (image.filename or "").strip():
        return None
    return save_image(image)


# -----------------------------
# Reads
# -----------------------------
@router.get("/events", response_model=list[EventOut])
def list_events(db: Session = Depends(get_db)):
    return events_service.list_events(db)


# Declared before /events/{event_id} so the literal path wins.
@router.get("/events/my-events", response_model=list[EventOut])
def my_events(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return events_service.list_events_for_owner(db, identity.user_id)


@router.get("/events/search/{query}", response_model=list[EventOut])
def search_events(query: str, db: Session = Depends(get_db)):
    return events_service.search_events(db, query)


@router.get("/event-categories", response_model=list[str])
def event_categories():
    return EVENT_CATEGORIES


@router.get("/events/{event_id}", response_model=EventOut)
def get_event(event_id: int, db: Session = Depends(get_db)):
    return events_service.get_event(db, event_id)


# -----------------------------
# Owner writes
# -----------------------------
@router.post("/events", response_model=EventOut, status_code=201)
def create_event(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    time: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    capacity: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    image_url = _store_image(image)
    try:
        return events_service.create_event(
            db,
            owner_id=identity.user_id,
            title=title,
            description=description,
            date=date,
            time=time,
            location=location,
            category=category,
            capacity=capacity,
            image_url=image_url,
        )
    except Exception:
        db.rollback()
        delete_image(image_url)
        raise


@router.put("/events/{event_id}", response_model=EventOut)
def update_event(
    event_id: int,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    time: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    capacity: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    fields = {
        "title": title,
        "description": description,
        "date": date,
        "time": time,
        "location": location,
        "category": category,
        "capacity": capacity,
    }
    image_url = _store_image(image)
    try:
        event, replaced_image_url = events_service.update_event(
            db, event_id, identity.user_id, fields, image_url=image_url
        )
    except Exception:
        delete_image(image_url)
        raise

    if replaced_image_url and replaced_image_url != image_url:
        delete_image(replaced_image_url)
    return event


@router.delete("/events/{event_id}", response_model=MessageOut)
def delete_event(
    event_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    image_url = events_service.delete_event(db, event_id, identity.user_id)
    delete_image(image_url)
    return MessageOut(message="Event deleted successfully")
