import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ....domain.entities import Role, User as SessionUser, normalize_email
from ....infrastructure.db import get_db
from ....infrastructure.metrics import store_fallbacks_total
from ....infrastructure.models import Course, Enrollment, User
from ....infrastructure.repositories import users_by_ids, count_by
from ..authz import require_admin
from ..schemas import CourseOut, PersonInfo, UserOut, UserUpdate, dump

logger = structlog.get_logger()

# Весь раздел только для master_teacher
router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _get_user_or_404(db: Session, user_id: int) -> User:
    row = db.query(User).filter(User.id == user_id).first()
    if not row: raise HTTPException(404, "User not found")
    return row

@router.get("/stats")
def stats(db: Session = Depends(get_db)):
    # полный проход по пользователям; при росте платформы нужна отдельная агрегация
    rows = db.query(User.role, User.is_approved, func.count()).group_by(User.role, User.is_approved).all()
    by_role = {r.value: 0 for r in Role}
    pending = 0
    for role, approved, n in rows:
        by_role[role] = by_role.get(role, 0) + n
        if role == Role.TEACHER.value and not approved:
            pending += n
    return {
        "totalStudents": by_role[Role.STUDENT.value],
        "totalTeachers": by_role[Role.TEACHER.value],
        "totalAdmins": by_role[Role.MASTER_TEACHER.value],
        "pendingApprovals": pending,
        "totalCourses": db.query(Course).count(),
        "totalUsers": sum(by_role.values()),
    }

@router.get("/users")
def list_users(role: str | None = Query(None), approved: bool | None = Query(None),
               db: Session = Depends(get_db)):
    q = db.query(User)
    if role:
        if Role.parse(role) is None:
            raise HTTPException(400, "Invalid role")
        q = q.filter(User.role == role)
    if approved is not None:
        q = q.filter(User.is_approved.is_(approved))
    return [dump(UserOut, u) for u in q.order_by(User.created_at.desc()).all()]

@router.get("/users/{user_id}")
def get_user(user_id: int, db: Session = Depends(get_db)):
    return dump(UserOut, _get_user_or_404(db, user_id))

@router.put("/users/{user_id}")
def edit_user(user_id: int, payload: UserUpdate, admin: SessionUser = Depends(require_admin),
              db: Session = Depends(get_db)):
    role = None
    if payload.role:
        role = Role.parse(payload.role)
        if role is None:
            raise HTTPException(400, "Invalid role")
    # администратор не может понизить сам себя
    if user_id == admin.id and role is not None and role is not Role.MASTER_TEACHER:
        raise HTTPException(400, "Cannot change your own admin role")

    row = _get_user_or_404(db, user_id)
    if payload.first_name: row.first_name = payload.first_name
    if payload.last_name: row.last_name = payload.last_name
    if payload.email: row.email = normalize_email(payload.email)
    if role is not None: row.role = role.value
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(400, "An account with this email already exists")
    db.refresh(row)
    logger.info("user_updated", user_id=row.id, admin_id=admin.id)
    return {"success": True, "user": dump(UserOut, row)}

@router.delete("/users/{user_id}")
def delete_user(user_id: int, admin: SessionUser = Depends(require_admin), db: Session = Depends(get_db)):
    if user_id == admin.id:
        raise HTTPException(400, "Cannot delete your own account")
    row = _get_user_or_404(db, user_id)
    db.delete(row); db.commit()
    logger.info("user_deleted", user_id=user_id, admin_id=admin.id)
    return {"success": True}

def _set_teacher_approval(db: Session, user_id: int, approved: bool) -> dict:
    row = (db.query(User)
             .filter(User.id == user_id, User.role == Role.TEACHER.value)
             .first())
    if not row: raise HTTPException(404, "Teacher not found")
    row.is_approved = approved
    db.commit(); db.refresh(row)
    logger.info("teacher_approval_changed", user_id=user_id, approved=approved)
    return {"success": True, "user": dump(UserOut, row)}

@router.post("/users/{user_id}/approve")
def approve_teacher(user_id: int, db: Session = Depends(get_db)):
    return _set_teacher_approval(db, user_id, True)

@router.post("/users/{user_id}/reject")
def reject_teacher(user_id: int, db: Session = Depends(get_db)):
    return _set_teacher_approval(db, user_id, False)

@router.post("/users/{user_id}/promote")
def promote_user(user_id: int, db: Session = Depends(get_db)):
    row = _get_user_or_404(db, user_id)
    row.role = Role.MASTER_TEACHER.value
    row.is_approved = True
    db.commit(); db.refresh(row)
    logger.info("user_promoted", user_id=user_id)
    return {"success": True, "user": dump(UserOut, row)}

@router.get("/pending-teachers")
def pending_teachers(db: Session = Depends(get_db)):
    rows = (db.query(User)
              .filter(User.role == Role.TEACHER.value, User.is_approved.is_(False))
              .order_by(User.created_at.desc()).all())
    return [dump(UserOut, u) for u in rows]

# --- Курсы с преподавателями: сначала join, при ошибке - отдельные запросы

def _courses_with_teacher_joined(db: Session) -> list[dict]:
    rows = (db.query(Course, User)
              .outerjoin(User, User.id == Course.teacher_id)
              .order_by(Course.created_at.desc()).all())
    enrollments = count_by(db, Enrollment.course_id, (c.id for c, _ in rows))
    return [{**dump(CourseOut, c),
             "teacher": dump(PersonInfo, t),
             "enrollment_count": enrollments.get(c.id, 0)} for c, t in rows]

def _courses_with_teacher_batched(db: Session) -> list[dict]:
    rows = db.query(Course).order_by(Course.created_at.desc()).all()
    teachers = users_by_ids(db, (c.teacher_id for c in rows))
    enrollments = count_by(db, Enrollment.course_id, (c.id for c in rows))
    return [{**dump(CourseOut, c),
             "teacher": dump(PersonInfo, teachers.get(c.teacher_id)),
             "enrollment_count": enrollments.get(c.id, 0)} for c in rows]

@router.get("/courses")
def courses_with_teacher(db: Session = Depends(get_db)):
    try:
        return _courses_with_teacher_joined(db)
    except SQLAlchemyError:
        logger.warning("admin_courses_fallback", exc_info=True)
        store_fallbacks_total.labels(operation="admin_courses").inc()
        db.rollback()
        return _courses_with_teacher_batched(db)
