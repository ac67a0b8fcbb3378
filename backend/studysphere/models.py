# backend/studysphere/models.py
"""
Persisted records. Each model maps to one JSON array file under the data
directory; on disk and on the wire fields are camelCase.
"""

import uuid
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Role = Literal["student", "teacher"]
ContentType = Literal["document", "video", "assignment", "presentation"]


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=new_id)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class User(Record):
    username: str
    password_hash: str
    name: str
    role: Role
    created_at: datetime = Field(default_factory=utcnow)


class Course(Record):
    title: str
    description: str
    teacher_id: str
    teacher_name: str
    icon: str = "fas fa-book"
    color: str = "academic-blue"
    created_at: datetime = Field(default_factory=utcnow)


class Content(Record):
    course_id: str
    title: str
    description: Optional[str] = None
    type: ContentType
    file_name: str
    file_size: str
    file_path: str
    views: str = "0"
    created_at: datetime = Field(default_factory=utcnow)


class Enrollment(Record):
    student_id: str
    course_id: str
    enrolled_at: datetime = Field(default_factory=utcnow)
