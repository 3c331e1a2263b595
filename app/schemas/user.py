import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.models.user import Role, UserType, SignupMethod


# 🔹 응답 필드는 camelCase (userType, isEmailVerified ...)
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# 🔹 유저 응답용 (password / otp / refresh_token 제외)
class UserResponse(CamelModel):
    id: UUID
    username: str
    email: str
    phone: str | None = None
    role: Role
    user_type: UserType
    signup_method: SignupMethod
    is_email_verified: bool
    is_active: bool
    is_deleted: bool
    deleted_at: datetime.datetime | None = None
    profile_picture: str | None = None
    created_at: datetime.datetime
    updated_at: datetime.datetime


# 🔹 인증 미들웨어가 request에 붙이는 최소 사용자 정보 (5분 캐시)
class CurrentUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    username: str
    email: str
    role: Role
    user_type: UserType
    is_email_verified: bool
    is_active: bool


def serialize_user(user) -> dict:
    return UserResponse.model_validate(user).model_dump(mode="json", by_alias=True)
