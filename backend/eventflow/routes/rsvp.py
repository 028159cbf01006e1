from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from eventflow.auth.identity import Identity
from eventflow.core.database import get_db
from eventflow.dependencies.auth import get_current_identity
from eventflow.schemas.event import EventOut, MessageOut, RsvpOut
from eventflow.services.rsvp import RsvpService

router = APIRouter(prefix="/api/events", tags=["rsvp"])


@router.post("/{event_id}/rsvp", response_model=RsvpOut)
def join_event(
    event_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    event = RsvpService(db).join(event_id, identity.user_id)
    return RsvpOut(message="Successfully joined event", event=EventOut.model_validate(event))


@router.delete("/{event_id}/rsvp", response_model=MessageOut)
def leave_event(
    event_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    RsvpService(db).leave(event_id, identity.user_id)
    return MessageOut(message="Successfully left event")
