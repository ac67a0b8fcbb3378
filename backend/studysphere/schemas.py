# backend/studysphere/schemas.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from .models import Role


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionUser(CamelModel):
    """The identity held in a session; never carries the password hash."""

    id: str
    username: str
    name: str
    role: Role

    @classmethod
    def from_user(cls, user) -> "SessionUser":
        return cls(id=user.id, username=user.username, name=user.name, role=user.role)


class RegisterRequest(BaseModel):
    username: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=2)
    role: Role


class LoginRequest(BaseModel):
    username: EmailStr
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class CourseCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    icon: Optional[str] = None
    color: Optional[str] = None


class UserOut(CamelModel):
    message: Optional[str] = None
    user: SessionUser


class SessionInfo(CamelModel):
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class MeOut(CamelModel):
    user: SessionUser
    session_info: SessionInfo


class TeacherStats(CamelModel):
    total_students: int
    total_courses: int
    total_uploads: int
    total_views: int
    engagement_rate: int


class StudentStats(CamelModel):
    courses_enrolled: int
    available_content: int


class Message(CamelModel):
    message: str
    code: Optional[str] = None
