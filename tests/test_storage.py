import asyncio
import json
import os
from pathlib import Path

import pytest

from studysphere.auth import verify_password
from studysphere.errors import StorageCorruption
from studysphere.models import Content, Course, Enrollment, User
from studysphere.storage import COLLECTIONS, SAMPLE_PASSWORD, FileStorage


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def store(tmp_path):
    s = FileStorage(str(tmp_path / "data"))
    run(s.connect(seed=False))
    return s


def make_content(course_id="c1", views="0"):
    return Content(
        course_id=course_id,
        title="Slides",
        type="presentation",
        file_name="slides.pptx",
        file_size="1.2 MB",
        file_path="/tmp/slides",
        views=views,
    )


def test_connect_creates_empty_collections(store):
    for name in COLLECTIONS:
        with open(store.path_for(name)) as fh:
            assert json.load(fh) == []


def test_seed_once(tmp_path):
    s = FileStorage(str(tmp_path / "data"))
    run(s.connect())

    users = run(s.get_users())
    assert sorted(u.username for u in users) == ["student@example.com", "teacher@example.com"]
    teacher = next(u for u in users if u.role == "teacher")
    assert verify_password(SAMPLE_PASSWORD, teacher.password_hash)

    courses = run(s.get_courses())
    assert [c.title for c in courses] == ["Mathematics 101", "Physics 201"]
    assert all(c.teacher_id == teacher.id for c in courses)

    content = run(s.get_content_by_course(courses[0].id))
    assert len(content) == 1
    assert content[0].views == "143"

    # a second start leaves everything as it was
    again = FileStorage(s.data_dir)
    run(again.connect())
    assert [u.id for u in run(again.get_users())] == [u.id for u in users]
    assert len(run(again.get_courses())) == 2


def test_seed_skipped_when_any_user_exists(store):
    run(store.create_user(User(username="x@example.com", password_hash="h", name="X Y", role="student")))
    assert run(store.seed_sample_data()) is False
    assert run(store.get_courses()) == []


def test_malformed_json_raises(store):
    with open(store.path_for("courses"), "w") as fh:
        fh.write("{not json")
    with pytest.raises(StorageCorruption):
        run(store.get_courses())


def test_non_array_raises(store):
    with open(store.path_for("users"), "w") as fh:
        json.dump({"users": []}, fh)
    with pytest.raises(StorageCorruption):
        run(store.get_user_by_username("a@b.com"))


def test_records_are_camel_case_on_disk(store):
    run(store.create_course(Course(title="Art", description="Drawing", teacher_id="t1", teacher_name="T")))
    with open(store.path_for("courses")) as fh:
        row = json.load(fh)[0]
    assert row["teacherId"] == "t1"
    assert row["teacherName"] == "T"
    assert "createdAt" in row


def test_round_trip_preserves_records_and_order(store):
    created = [
        run(store.create_enrollment(Enrollment(student_id="s1", course_id=f"c{i}")))
        for i in range(5)
    ]
    reopened = FileStorage(store.data_dir)
    loaded = run(reopened.get_enrollments_by_student("s1"))
    assert loaded == created


def test_concurrent_view_increments_are_serialized(store):
    item = run(store.create_content(make_content()))

    async def bump_ten_times():
        await asyncio.gather(*(store.update_content_views(item.id) for _ in range(10)))

    run(bump_ten_times())
    assert run(store.get_content(item.id)).views == "10"


def test_view_increment_unknown_id(store):
    run(store.create_content(make_content()))
    path = Path(store.path_for("content"))
    before = path.read_text()
    assert run(store.update_content_views("missing")) is None
    assert path.read_text() == before


def test_delete_content(store):
    keep = run(store.create_content(make_content()))
    gone = run(store.create_content(make_content()))

    assert run(store.delete_content("missing")) is False
    assert len(run(store.get_content_by_course("c1"))) == 2

    assert run(store.delete_content(gone.id)) is True
    assert run(store.delete_content(gone.id)) is False
    assert [c.id for c in run(store.get_content_by_course("c1"))] == [keep.id]


def test_update_user_password(store):
    user = run(store.create_user(User(username="p@example.com", password_hash="old", name="P Q", role="teacher")))
    assert run(store.update_user_password("missing", "new")) is False
    assert run(store.update_user_password(user.id, "new")) is True
    assert run(store.get_user(user.id)).password_hash == "new"


def test_is_enrolled(store):
    run(store.create_enrollment(Enrollment(student_id="s1", course_id="c1")))
    assert run(store.is_enrolled("s1", "c1"))
    assert not run(store.is_enrolled("s1", "c2"))
    assert len(run(store.get_enrollments_by_course("c1"))) == 1


def test_data_dir_is_created(tmp_path):
    path = tmp_path / "nested" / "data"
    run(FileStorage(str(path)).connect(seed=False))
    assert os.path.isdir(path)


def test_create_user_rejects_taken_username(store):
    first = run(store.create_user(User(username="dup@example.com", password_hash="h1", name="A B", role="student")))
    again = User(username="dup@example.com", password_hash="h2", name="C D", role="teacher")
    assert run(store.create_user(again)) is None
    assert [u.id for u in run(store.get_users())] == [first.id]


def test_concurrent_create_user_keeps_one(store):
    async def register_four():
        return await asyncio.gather(*(
            store.create_user(User(username="race@example.com", password_hash="h", name=f"User {i}", role="student"))
            for i in range(4)
        ))

    results = run(register_four())
    assert sum(r is not None for r in results) == 1
    assert len(run(store.get_users())) == 1


def test_create_enrollment_rejects_duplicate_pair(store):
    assert run(store.create_enrollment(Enrollment(student_id="s1", course_id="c1"))) is not None
    assert run(store.create_enrollment(Enrollment(student_id="s1", course_id="c1"))) is None
    # same course, other student is fine
    assert run(store.create_enrollment(Enrollment(student_id="s2", course_id="c1"))) is not None
    assert len(run(store.get_enrollments_by_course("c1"))) == 2


def test_concurrent_create_enrollment_keeps_one(store):
    async def enroll_five():
        return await asyncio.gather(*(
            store.create_enrollment(Enrollment(student_id="s1", course_id="c1")) for _ in range(5)
        ))

    results = run(enroll_five())
    assert sum(r is not None for r in results) == 1
    assert len(run(store.get_enrollments_by_student("s1"))) == 1


def test_readers_see_whole_files_while_writing(store):
    item = run(store.create_content(make_content()))

    async def read_and_write():
        writes = [store.update_content_views(item.id) for _ in range(50)]
        reads = [store.get_content_by_course("c1") for _ in range(50)]
        return await asyncio.gather(*writes, *reads)

    results = run(read_and_write())
    for listing in results[50:]:
        assert [c.id for c in listing] == [item.id]
    assert run(store.get_content(item.id)).views == "50"
    assert sorted(os.listdir(store.data_dir)) == sorted(f"{name}.json" for name in COLLECTIONS)


def test_failed_write_keeps_previous_file(store, monkeypatch):
    run(store.create_content(make_content()))
    path = Path(store.path_for("content"))
    before = path.read_text()

    def broken_dump(*args, **kwargs):
        raise TypeError("not serializable")

    monkeypatch.setattr("studysphere.storage.json.dump", broken_dump)
    with pytest.raises(TypeError):
        run(store.create_content(make_content()))

    assert path.read_text() == before
    assert not [f for f in os.listdir(store.data_dir) if f.endswith(".tmp")]
