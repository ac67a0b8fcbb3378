# backend/studysphere/storage.py
"""
Flat-file persistence: one JSON array per collection under a data directory.

Every write reads the whole collection, mutates it in memory and replaces
the file atomically. Writers of the same collection are serialized with an asyncio.Lock
so read-modify-write cycles inside one process never interleave; there is no
protection against other processes writing the same files.
"""

import asyncio
import json
import logging
import os
import tempfile
from typing import Dict, List, Optional, Type

from pydantic import ValidationError

from .auth import hash_password_async
from .errors import StorageCorruption
from .models import Content, Course, Enrollment, Record, User

logger = logging.getLogger(__name__)

COLLECTIONS: Dict[str, Type[Record]] = {
    "users": User,
    "courses": Course,
    "content": Content,
    "enrollments": Enrollment,
}

SAMPLE_PASSWORD = "password123"


class FileStorage:
    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self._locks = {name: asyncio.Lock() for name in COLLECTIONS}

    def path_for(self, collection: str) -> str:
        return os.path.join(self.data_dir, f"{collection}.json")

    # ---------- low level file access ----------

    def _read_file(self, path: str) -> list:
        with open(path, "r", encoding="utf-8") as fh:
            raw = fh.read()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageCorruption(path, str(e)) from e
        if not isinstance(data, list):
            raise StorageCorruption(path, "expected a JSON array")
        return data

    def _write_file(self, path: str, rows: list) -> None:
        # readers never take the lock, so they must only ever see a whole file
        tmp = tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=os.path.dirname(path), suffix=".tmp", delete=False
        )
        try:
            with tmp:
                json.dump(rows, tmp, indent=2)
            os.replace(tmp.name, path)
        except Exception:
            try:
                os.remove(tmp.name)
            except OSError:
                pass
            raise

    async def _read(self, collection: str) -> List[Record]:
        path = self.path_for(collection)
        rows = await asyncio.to_thread(self._read_file, path)
        model = COLLECTIONS[collection]
        try:
            return [model.model_validate(row) for row in rows]
        except ValidationError as e:
            raise StorageCorruption(path, f"invalid record: {e.error_count()} error(s)") from e

    async def _write(self, collection: str, records: List[Record]) -> None:
        rows = [r.to_json() for r in records]
        await asyncio.to_thread(self._write_file, self.path_for(collection), rows)

    async def _append(self, collection: str, record: Record) -> Record:
        async with self._locks[collection]:
            records = await self._read(collection)
            records.append(record)
            await self._write(collection, records)
        return record

    # ---------- lifecycle ----------

    async def connect(self, seed: bool = True) -> None:
        """Create the data directory and empty collections, then seed once."""
        os.makedirs(self.data_dir, exist_ok=True)
        for name in COLLECTIONS:
            path = self.path_for(name)
            if not os.path.exists(path):
                await asyncio.to_thread(self._write_file, path, [])
        logger.info("Connected to file storage at %s", self.data_dir)
        if seed:
            await self.seed_sample_data()

    async def seed_sample_data(self) -> bool:
        """Write the demo dataset if no user exists yet. Returns True if seeded."""
        async with self._locks["users"]:
            if await self._read("users"):
                logger.info("Sample data already exists, skipping initialization")
                return False

            logger.info("Initializing sample data...")
            hashed = await hash_password_async(SAMPLE_PASSWORD)
            teacher = User(
                username="teacher@example.com",
                password_hash=hashed,
                name="Prof. Johnson",
                role="teacher",
            )
            student = User(
                username="student@example.com",
                password_hash=hashed,
                name="John Doe",
                role="student",
            )
            await self._write("users", [teacher, student])

        math_course = Course(
            title="Mathematics 101",
            description="Basic algebra and geometry concepts",
            teacher_id=teacher.id,
            teacher_name=teacher.name,
            icon="fas fa-calculator",
            color="academic-blue",
        )
        physics = Course(
            title="Physics 201",
            description="Mechanics and thermodynamics",
            teacher_id=teacher.id,
            teacher_name=teacher.name,
            icon="fas fa-atom",
            color="success-green",
        )
        async with self._locks["courses"]:
            await self._write("courses", [math_course, physics])

        intro = Content(
            course_id=math_course.id,
            title="Introduction to Algebra",
            description="Basic concepts and fundamentals",
            type="video",
            file_name="intro-algebra.mp4",
            file_size="15.3 MB",
            file_path="/uploads/intro-algebra.mp4",
            views="143",
        )
        async with self._locks["content"]:
            await self._write("content", [intro])

        logger.info("Sample data initialized successfully")
        return True

    # ---------- users ----------

    async def get_user(self, user_id: str) -> Optional[User]:
        return next((u for u in await self._read("users") if u.id == user_id), None)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        return next((u for u in await self._read("users") if u.username == username), None)

    async def get_users(self) -> List[User]:
        return await self._read("users")

    async def create_user(self, user: User) -> Optional[User]:
        """Append a user. Returns None, writing nothing, if the username is taken."""
        async with self._locks["users"]:
            users = await self.get_users()
            if any(u.username == user.username for u in users):
                return None
            users.append(user)
            await self._write("users", users)
        return user

    async def update_user_password(self, user_id: str, password_hash: str) -> bool:
        async with self._locks["users"]:
            users = await self._read("users")
            for user in users:
                if user.id == user_id:
                    user.password_hash = password_hash
                    await self._write("users", users)
                    return True
        return False

    # ---------- courses ----------

    async def get_courses(self) -> List[Course]:
        return await self._read("courses")

    async def get_course(self, course_id: str) -> Optional[Course]:
        return next((c for c in await self._read("courses") if c.id == course_id), None)

    async def get_courses_by_teacher(self, teacher_id: str) -> List[Course]:
        return [c for c in await self._read("courses") if c.teacher_id == teacher_id]

    async def create_course(self, course: Course) -> Course:
        return await self._append("courses", course)

    # ---------- content ----------

    async def get_content_by_course(self, course_id: str) -> List[Content]:
        return [c for c in await self._read("content") if c.course_id == course_id]

    async def get_content(self, content_id: str) -> Optional[Content]:
        return next((c for c in await self._read("content") if c.id == content_id), None)

    async def create_content(self, content: Content) -> Content:
        return await self._append("content", content)

    async def update_content_views(self, content_id: str) -> Optional[Content]:
        """Add one view. Returns the updated item, or None if the id is unknown."""
        async with self._locks["content"]:
            items = await self._read("content")
            for item in items:
                if item.id == content_id:
                    item.views = str(int(item.views or "0") + 1)
                    await self._write("content", items)
                    return item
        return None

    async def delete_content(self, content_id: str) -> bool:
        async with self._locks["content"]:
            items = await self._read("content")
            remaining = [c for c in items if c.id != content_id]
            if len(remaining) == len(items):
                return False
            await self._write("content", remaining)
        return True

    # ---------- enrollments ----------

    async def get_enrollments_by_student(self, student_id: str) -> List[Enrollment]:
        return [e for e in await self._read("enrollments") if e.student_id == student_id]

    async def get_enrollments_by_course(self, course_id: str) -> List[Enrollment]:
        return [e for e in await self._read("enrollments") if e.course_id == course_id]

    async def create_enrollment(self, enrollment: Enrollment) -> Optional[Enrollment]:
        """Append an enrollment. Returns None if the student already has this course."""
        async with self._locks["enrollments"]:
            enrollments = await self._read("enrollments")
            if any(
                e.student_id == enrollment.student_id and e.course_id == enrollment.course_id
                for e in enrollments
            ):
                return None
            enrollments.append(enrollment)
            await self._write("enrollments", enrollments)
        return enrollment

    async def is_enrolled(self, student_id: str, course_id: str) -> bool:
        return any(
            e.student_id == student_id and e.course_id == course_id
            for e in await self._read("enrollments")
        )
