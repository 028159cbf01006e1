from datetime import date, datetime
from typing import List, Optional

from pydantic import Field

from eventflow.schemas.base import CamelModel
from eventflow.schemas.user import UserContactOut, UserSummaryOut

EVENT_CATEGORIES = [
    "Technology",
    "Business",
    "Arts",
    "Sports",
    "Education",
    "Networking",
    "Social",
    "Other",
]


class EventOut(CamelModel):
    id: int
    title: str
    description: str
    date: date
    time: str
    location: str
    category: str
    capacity: int
    image_url: Optional[str] = None
    # populated owner, serialized as "createdBy"
    creator: UserContactOut = Field(alias="createdBy")
    attendees: List[UserSummaryOut] = []
    attendee_count: int
    created_at: datetime
    updated_at: datetime


class RsvpOut(CamelModel):
    message: str
    event: EventOut


class MessageOut(CamelModel):
    message: str
