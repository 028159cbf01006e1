# eventflow/schemas/auth.py
from typing import Literal, Optional

from pydantic import EmailStr, Field

from eventflow.schemas.base import CamelModel
from eventflow.schemas.user import UserMeOut

CodePurpose = Literal["VERIFY_EMAIL", "FORGOT_PASSWORD"]


class SignupIn(CamelModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    user_name: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    password: str = Field(min_length=1, max_length=128)


class LoginIn(CamelModel):
    identifier: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class SendCodeIn(CamelModel):
    email: EmailStr
    type: CodePurpose
    first_name: str = ""
    last_name: str = ""


class VerifyCodeIn(CamelModel):
    email: EmailStr
    code: str = Field(min_length=1, max_length=12)
    type: CodePurpose


class UpdatePasswordIn(CamelModel):
    email: EmailStr
    new_password: str = Field(min_length=1, max_length=128)


class StatusOut(CamelModel):
    success: bool = True
    message: str
    type: Optional[str] = None


class LoginOut(CamelModel):
    success: bool = True
    access_token: str
    message: str = "Login successful"
    user: UserMeOut


class AccessTokenOut(CamelModel):
    success: bool = True
    access_token: str
