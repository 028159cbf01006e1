from datetime import datetime

from eventflow.schemas.base import CamelModel


class UserSummaryOut(CamelModel):
    id: int
    first_name: str
    last_name: str
    user_name: str


class UserContactOut(UserSummaryOut):
    email: str


class UserMeOut(UserContactOut):
    is_verified: bool
    created_at: datetime


class ExistsOut(CamelModel):
    exists: bool
