from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from eventflow.core.errors import AlreadyJoined, CapacityExceeded, NotJoined, SelfRsvpForbidden
from eventflow.models.event import Event
from eventflow.models.event_attendee import EventAttendee
from eventflow.services.events import lock_event
from eventflow.services.transactions import run_in_transaction

logger = logging.getLogger(__name__)


class RsvpService:
    """
    Join/leave an event's attendee set.

    Each call is one transaction over a single event row: read it under a row lock,
    check the preconditions, then write the attendee row and the event's
    attendee_count together. The count update bumps the event's version column, so
    a writer that read an older version fails its flush instead of overwriting the
    winner; it is re-run once against fresh state, where it reports the real
    conflict. Conflicts themselves are never retried.
    """

    def __init__(self, db: Session):
        self.db = db

    def join(self, event_id: int, user_id: int) -> Event:
        """
        Raises, checked in this order:
            EventNotFound, CapacityExceeded, AlreadyJoined, SelfRsvpForbidden
        """

        def _op() -> Event:
            event = lock_event(self.db, event_id)

            if event.attendee_count >= event.capacity:
                raise CapacityExceeded()
            if self._find_attendee(event.id, user_id) is not None:
                raise AlreadyJoined()
            if event.created_by == user_id:
                raise SelfRsvpForbidden()

            self.db.add(EventAttendee(event_id=event.id, user_id=user_id))
            event.attendee_count = event.attendee_count + 1
            self.db.flush()
            return event

        event = run_in_transaction(self.db, _op, label="RSVP join")
        logger.info("RSVP join: event=%s user=%s", event_id, user_id)
        return event

    def leave(self, event_id: int, user_id: int) -> Event:
        """
        Raises:
            EventNotFound, NotJoined
        """

        def _op() -> Event:
            event = lock_event(self.db, event_id)

            row = self._find_attendee(event.id, user_id)
            if row is None:
                raise NotJoined()

            self.db.delete(row)
            event.attendee_count = event.attendee_count - 1
            self.db.flush()
            return event

        event = run_in_transaction(self.db, _op, label="RSVP leave")
        logger.info("RSVP leave: event=%s user=%s", event_id, user_id)
        return event

    def _find_attendee(self, event_id: int, user_id: int) -> EventAttendee | None:
        return (
            self.db.query(EventAttendee)
            .filter(EventAttendee.event_id == event_id, EventAttendee.user_id == user_id)
            .first()
        )
