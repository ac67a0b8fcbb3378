# backend/studysphere/routes.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from .auth import authenticate_user, hash_password_async, verify_password_async
from .errors import ApiError, auth_required, not_found, storage_errors
from .guards import check_rate_limit, require_auth, require_student, require_teacher
from .models import Content, ContentType, Course, Enrollment, User
from .schemas import (
    ChangePasswordRequest,
    CourseCreate,
    LoginRequest,
    MeOut,
    Message,
    RegisterRequest,
    SessionInfo,
    SessionUser,
    StudentStats,
    TeacherStats,
    UserOut,
)
from .sessions import Session, SessionManager, get_session, get_sessions
from .storage import FileStorage
from .utils import format_file_size, save_upload

router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)


def get_storage(request: Request) -> FileStorage:
    return request.app.state.storage


async def _get_course_or_404(storage: FileStorage, course_id: str) -> Course:
    course = await storage.get_course(course_id)
    if course is None:
        raise not_found("course")
    return course


# ---------- auth ----------

@router.post("/auth/register", response_model=UserOut, status_code=201)
async def register(
    payload: RegisterRequest,
    storage: FileStorage = Depends(get_storage),
    session: Session = Depends(get_session),
    sessions: SessionManager = Depends(get_sessions),
):
    user_exists = ApiError(409, "User already exists", "USER_EXISTS")
    with storage_errors("Registration failed"):
        # cheap early answer; create_user re-checks under the users lock
        if await storage.get_user_by_username(payload.username):
            raise user_exists
        user = User(
            username=payload.username,
            password_hash=await hash_password_async(payload.password),
            name=payload.name,
            role=payload.role,
        )
        if await storage.create_user(user) is None:
            raise user_exists

    sessions.regenerate(session)
    session.login(SessionUser.from_user(user))
    logger.info("Registered new %s account %s", user.role, user.id)
    return UserOut(message="Account created successfully", user=session.user)


@router.post("/auth/login", response_model=UserOut, dependencies=[Depends(check_rate_limit)])
async def login(
    payload: LoginRequest,
    storage: FileStorage = Depends(get_storage),
    session: Session = Depends(get_session),
    sessions: SessionManager = Depends(get_sessions),
):
    with storage_errors("Login failed"):
        user = await authenticate_user(storage, payload.username, payload.password)
    if not user:
        session.record_failed_login(sessions.clock())
        raise ApiError(401, "Invalid credentials", "INVALID_CREDENTIALS")

    sessions.regenerate(session)
    session.login(SessionUser.from_user(user))
    return UserOut(message="Login successful", user=session.user)


@router.post("/auth/logout", response_model=Message, dependencies=[Depends(require_auth)])
async def logout(session: Session = Depends(get_session), sessions: SessionManager = Depends(get_sessions)):
    sessions.destroy(session)
    return Message(message="Logged out successfully", code="LOGOUT_SUCCESS")


@router.get("/auth/me", response_model=MeOut)
async def me(session: Session = Depends(get_session), sessions: SessionManager = Depends(get_sessions)):
    if session.user is None:
        raise auth_required()
    # occasional id rotation narrows the window for a fixated or leaked id
    sessions.maybe_rotate(session)
    return MeOut(user=session.user, session_info=SessionInfo(**session.info()))


@router.post("/auth/change-password", response_model=Message)
async def change_password(
    payload: ChangePasswordRequest,
    current: SessionUser = Depends(require_auth),
    storage: FileStorage = Depends(get_storage),
):
    with storage_errors("Password change failed"):
        user = await storage.get_user(current.id)
        if not user or not await verify_password_async(payload.current_password, user.password_hash):
            raise ApiError(401, "Current password is incorrect", "INVALID_PASSWORD")
        await storage.update_user_password(user.id, await hash_password_async(payload.new_password))
    return Message(message="Password changed successfully", code="PASSWORD_CHANGED")


@router.post("/auth/refresh", dependencies=[Depends(require_auth)])
async def refresh(session: Session = Depends(get_session), sessions: SessionManager = Depends(get_sessions)):
    sessions.touch(session)
    return {
        "message": "Session refreshed",
        "code": "SESSION_REFRESHED",
        "user": session.user.model_dump(by_alias=True),
    }


# ---------- courses ----------

@router.get("/courses", response_model=List[Course], dependencies=[Depends(require_auth)])
async def list_courses(storage: FileStorage = Depends(get_storage)):
    with storage_errors("Failed to fetch courses"):
        return await storage.get_courses()


@router.get("/courses/{course_id}", response_model=Course, dependencies=[Depends(require_auth)])
async def get_course(course_id: str, storage: FileStorage = Depends(get_storage)):
    with storage_errors("Failed to fetch course"):
        return await _get_course_or_404(storage, course_id)


@router.get("/teacher/courses", response_model=List[Course])
async def teacher_courses(user: SessionUser = Depends(require_teacher), storage: FileStorage = Depends(get_storage)):
    with storage_errors("Failed to fetch teacher courses"):
        return await storage.get_courses_by_teacher(user.id)


@router.post("/courses", response_model=Course)
async def create_course(
    payload: CourseCreate,
    user: SessionUser = Depends(require_teacher),
    storage: FileStorage = Depends(get_storage),
):
    course = Course(
        title=payload.title,
        description=payload.description,
        teacher_id=user.id,
        teacher_name=user.name,
        **payload.model_dump(include={"icon", "color"}, exclude_none=True),
    )
    with storage_errors("Failed to create course"):
        await storage.create_course(course)
    logger.info("Teacher %s created course %s", user.id, course.id)
    return course


# ---------- content ----------

@router.get("/courses/{course_id}/content", response_model=List[Content], dependencies=[Depends(require_auth)])
async def list_content(course_id: str, storage: FileStorage = Depends(get_storage)):
    with storage_errors("Failed to fetch content"):
        await _get_course_or_404(storage, course_id)
        return await storage.get_content_by_course(course_id)


@router.post("/courses/{course_id}/content", response_model=Content)
async def upload_content(
    request: Request,
    course_id: str,
    title: str = Form(..., min_length=1),
    description: Optional[str] = Form(None),
    content_type: ContentType = Form(..., alias="type"),
    file: Optional[UploadFile] = File(None),
    user: SessionUser = Depends(require_teacher),
    storage: FileStorage = Depends(get_storage),
):
    settings = request.app.state.settings
    with storage_errors("Failed to upload content"):
        await _get_course_or_404(storage, course_id)
        if file is None or not file.filename:
            raise ApiError(400, "No file uploaded", "NO_FILE")

        path, size = await save_upload(file, settings.upload_dir, settings.max_upload_bytes)
        content = Content(
            course_id=course_id,
            title=title,
            description=description or None,
            type=content_type,
            file_name=file.filename,
            file_size=format_file_size(size),
            file_path=path,
        )
        await storage.create_content(content)
    logger.info("Teacher %s uploaded %s (%d bytes) to course %s", user.id, content.id, size, course_id)
    return content


@router.put("/content/{content_id}/view", dependencies=[Depends(require_auth)])
async def record_view(content_id: str, storage: FileStorage = Depends(get_storage)):
    with storage_errors("Failed to update view count"):
        updated = await storage.update_content_views(content_id)
    if updated is None:
        raise not_found("content")
    return {"message": "View count updated", "views": updated.views}


@router.delete("/content/{content_id}", response_model=Message, dependencies=[Depends(require_teacher)])
async def delete_content(content_id: str, storage: FileStorage = Depends(get_storage)):
    with storage_errors("Failed to delete content"):
        deleted = await storage.delete_content(content_id)
    if not deleted:
        raise not_found("content")
    return Message(message="Content deleted successfully")


# ---------- enrollments ----------

@router.get("/student/enrollments", response_model=List[Course])
async def student_enrollments(user: SessionUser = Depends(require_student), storage: FileStorage = Depends(get_storage)):
    with storage_errors("Failed to fetch enrollments"):
        enrollments = await storage.get_enrollments_by_student(user.id)
        courses = [await storage.get_course(e.course_id) for e in enrollments]
    return [c for c in courses if c is not None]


@router.post("/courses/{course_id}/enroll", response_model=Enrollment)
async def enroll(course_id: str, user: SessionUser = Depends(require_student), storage: FileStorage = Depends(get_storage)):
    with storage_errors("Failed to enroll in course"):
        await _get_course_or_404(storage, course_id)
        enrollment = await storage.create_enrollment(Enrollment(student_id=user.id, course_id=course_id))
    if enrollment is None:
        raise ApiError(400, "Already enrolled in this course", "ALREADY_ENROLLED")
    return enrollment


# ---------- stats ----------

@router.get("/teacher/stats", response_model=TeacherStats)
async def teacher_stats(user: SessionUser = Depends(require_teacher), storage: FileStorage = Depends(get_storage)):
    with storage_errors("Failed to fetch teacher stats"):
        courses = await storage.get_courses_by_teacher(user.id)
        total_students = 0
        items: List[Content] = []
        for course in courses:
            total_students += len(await storage.get_enrollments_by_course(course.id))
            items.extend(await storage.get_content_by_course(course.id))

    views = [int(item.views or "0") for item in items]
    viewed = sum(1 for v in views if v > 0)
    return TeacherStats(
        total_students=total_students,
        total_courses=len(courses),
        total_uploads=len(items),
        total_views=sum(views),
        engagement_rate=round(100 * viewed / len(items)) if items else 0,
    )


@router.get("/student/stats", response_model=StudentStats)
async def student_stats(user: SessionUser = Depends(require_student), storage: FileStorage = Depends(get_storage)):
    with storage_errors("Failed to fetch student stats"):
        enrollments = await storage.get_enrollments_by_student(user.id)
        available = 0
        for enrollment in enrollments:
            available += len(await storage.get_content_by_course(enrollment.course_id))
    return StudentStats(courses_enrolled=len(enrollments), available_content=available)


@router.get("/health")
async def health():
    return {"status": "ok"}
