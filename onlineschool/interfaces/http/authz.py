import time

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ...config import settings
from ...domain.entities import Role, User
from ...infrastructure.db import get_db
from ...infrastructure.repositories import current_approval, is_enrolled, teacher_owns_course


def start_session(request: Request, user: User) -> None:
    request.session.clear()
    request.session["user"] = user.to_session()
    request.session["issued_at"] = int(time.time())

def session_user(request: Request) -> User | None:
    """Пользователь из сессии или None, если сессии нет или она истекла.

    Срок жизни считается от входа и не продлевается активностью.
    """
    data = request.session.get("user")
    if not data:
        return None
    issued_at = request.session.get("issued_at")
    if issued_at is None or time.time() - issued_at > settings.SESSION_MAX_AGE:
        request.session.clear()
        return None
    return User.from_session(data)

def get_current_user(request: Request) -> User:
    user = session_user(request)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user

def require_role(*roles: Role):
    allowed = frozenset(roles)

    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user
    return dependency

require_student = require_role(Role.STUDENT)
require_staff = require_role(Role.TEACHER, Role.MASTER_TEACHER)
require_admin = require_role(Role.MASTER_TEACHER)

def check_approved(db: Session, user: User) -> User:
    # одобрение может измениться после входа, поэтому читаем его из БД, а не из сессии
    if user.role in (Role.STUDENT, Role.MASTER_TEACHER):
        return user
    if user.role is Role.TEACHER:
        if current_approval(db, user.id):
            return user
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="Your account is pending admin approval")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

def require_approved_staff(user: User = Depends(require_staff), db: Session = Depends(get_db)) -> User:
    return check_approved(db, user)

# --- Владение ресурсами. master_teacher проходит всегда.

def ensure_course_owner(db: Session, course_id: int, user: User) -> None:
    if user.role is Role.MASTER_TEACHER:
        return
    if user.role is Role.TEACHER and teacher_owns_course(db, course_id, user.id):
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your course")

def ensure_course_access(db: Session, course_id: int, user: User) -> None:
    """Студент должен быть записан на курс, преподаватель - вести его."""
    if user.role is Role.STUDENT:
        if not is_enrolled(db, course_id, user.id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enrolled in this course")
        return
    ensure_course_owner(db, course_id, user)
