import re
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator, EmailStr, Field, field_validator

from app.schemas.user import CamelModel


USERNAME_PATTERN = r"^[A-Za-z0-9_.\-]{3,30}$"
PHONE_PATTERN = r"^\+?[0-9]{7,15}$"


class OtpType(str, Enum):
    EMAIL_VERIFICATION = "emailVerification"
    FORGOT_PASSWORD = "forgotPassword"


def _check_password_strength(value: str) -> str:
    if not re.search(r"[A-Za-z]", value) or not re.search(r"[0-9]", value):
        raise ValueError("Password must contain at least one letter and one number")
    return value


Password = Annotated[str, Field(min_length=8, max_length=64), AfterValidator(_check_password_strength)]


class SignupRequest(CamelModel):
    username: str = Field(pattern=USERNAME_PATTERN)
    email: EmailStr
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    password: Password


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class VerifyOtpRequest(CamelModel):
    email: EmailStr
    otp: str = Field(pattern=r"^\d{6}$")
    type: OtpType = OtpType.EMAIL_VERIFICATION


class ResendOtpRequest(CamelModel):
    email: EmailStr
    type: OtpType = OtpType.EMAIL_VERIFICATION


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    email: EmailStr
    password: Password


class RefreshTokenRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: Password


class UpdateProfileRequest(CamelModel):
    username: str | None = Field(default=None, pattern=USERNAME_PATTERN)
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    profile_picture: str | None = Field(default=None, max_length=1024)

    @field_validator("profile_picture")
    @classmethod
    def check_url(cls, value: str | None) -> str | None:
        if value is not None and not re.match(r"^https?://\S+$", value):
            raise ValueError("Profile picture must be a valid URL")
        return value


class GoogleAuthRequest(CamelModel):
    id_token: str = Field(min_length=1)
    username: str | None = Field(default=None, pattern=USERNAME_PATTERN)


class GuestLoginRequest(CamelModel):
    username: str | None = Field(default=None, pattern=USERNAME_PATTERN)


class ConvertGuestRequest(CamelModel):
    email: EmailStr
    password: Password
    username: str | None = Field(default=None, pattern=USERNAME_PATTERN)
