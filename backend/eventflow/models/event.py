# eventflow/models/event.py
from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from eventflow.core.base import Base


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("capacity >= 1", name="ck_events_capacity_positive"),
        CheckConstraint("attendee_count >= 0", name="ck_events_attendee_count_non_negative"),
        CheckConstraint("attendee_count <= capacity", name="ck_events_attendee_count_within_capacity"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # ownership, immutable after creation
    created_by = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    date = Column(Date, nullable=False, index=True)
    time = Column(String(20), nullable=False)
    location = Column(String(255), nullable=False)
    category = Column(String(50), nullable=False, default="General", server_default="General")
    capacity = Column(Integer, nullable=False)
    image_url = Column(String(500), nullable=True)

    # Mirrors len(attendee_rows). Every join/leave rewrites it, so every membership
    # change is an UPDATE of this row and goes through the version check below.
    attendee_count = Column(Integer, nullable=False, default=0, server_default="0")
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    creator = relationship("User", back_populates="events", lazy="joined", innerjoin=True)

    attendee_rows = relationship(
        "EventAttendee",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="[EventAttendee.joined_at, EventAttendee.id]",
        lazy="selectin",
    )

    @property
    def attendees(self) -> list:
        rows = getattr(self, "attendee_rows", None) or []
        return [r.user for r in rows if r.user is not None]
