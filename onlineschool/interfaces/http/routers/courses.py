import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ....domain.entities import Role, User as SessionUser
from ....infrastructure.db import get_db
from ....infrastructure.models import Course, Enrollment, Assignment, Submission, User, utcnow
from ....infrastructure.repositories import users_by_ids, count_by, enrolled_course_ids, is_enrolled
from ..authz import (get_current_user, require_student, require_staff,
                     require_approved_staff, ensure_course_owner)
from ..schemas import (CourseCreate, CourseUpdate, CourseOut, EnrollmentOut, AssignmentOut,
                       SubmissionOut, UserBrief, PersonInfo, StudentInfo, as_utc, dump)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/courses", tags=["courses"], dependencies=[Depends(get_current_user)])


def _get_course_or_404(db: Session, course_id: int) -> Course:
    row = db.query(Course).filter(Course.id == course_id).first()
    if not row: raise HTTPException(404, "Course not found")
    return row

# --- Списки курсов в зависимости от роли

def _student_courses(db: Session, student_id: int) -> list[dict]:
    course_ids = enrolled_course_ids(db, student_id)
    if not course_ids:
        return []
    rows = (db.query(Course)
              .filter(Course.id.in_(list(course_ids)), Course.is_active.is_(True))
              .order_by(Course.created_at.desc()).all())
    teachers = users_by_ids(db, (c.teacher_id for c in rows))
    assignments = count_by(db, Assignment.course_id, (c.id for c in rows))
    return [{**dump(CourseOut, c),
             "teacher": dump(UserBrief, teachers.get(c.teacher_id)),
             "assignment_count": assignments.get(c.id, 0)} for c in rows]

def _teacher_courses(db: Session, teacher_id: int) -> list[dict]:
    # свои курсы, в том числе неактивные
    rows = (db.query(Course).filter(Course.teacher_id == teacher_id)
              .order_by(Course.created_at.desc()).all())
    ids = [c.id for c in rows]
    enrollments = count_by(db, Enrollment.course_id, ids)
    assignments = count_by(db, Assignment.course_id, ids)
    return [{**dump(CourseOut, c),
             "enrollment_count": enrollments.get(c.id, 0),
             "assignment_count": assignments.get(c.id, 0)} for c in rows]

def _all_courses(db: Session) -> list[dict]:
    rows = db.query(Course).order_by(Course.created_at.desc()).all()
    teachers = users_by_ids(db, (c.teacher_id for c in rows))
    enrollments = count_by(db, Enrollment.course_id, (c.id for c in rows))
    return [{**dump(CourseOut, c),
             "teacher": dump(UserBrief, teachers.get(c.teacher_id)),
             "enrollment_count": enrollments.get(c.id, 0)} for c in rows]

@router.get("")
def list_courses(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
    if user.role is Role.STUDENT:
        return _student_courses(db, user.id)
    if user.role is Role.TEACHER:
        return _teacher_courses(db, user.id)
    if user.role is Role.MASTER_TEACHER:
        return _all_courses(db)
    raise HTTPException(403, "Insufficient permissions")

@router.get("/available")
def available_courses(user: SessionUser = Depends(require_student), db: Session = Depends(get_db)):
    rows = (db.query(Course).filter(Course.is_active.is_(True))
              .order_by(Course.created_at.desc()).all())
    enrolled = enrolled_course_ids(db, user.id)
    teachers = users_by_ids(db, (c.teacher_id for c in rows))
    enrollments = count_by(db, Enrollment.course_id, (c.id for c in rows))
    return [{**dump(CourseOut, c),
             "teacher": dump(UserBrief, teachers.get(c.teacher_id)),
             "is_enrolled": c.id in enrolled,
             "enrollment_count": enrollments.get(c.id, 0)} for c in rows]

@router.get("/{course_id}")
def get_course(course_id: int, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
    course = _get_course_or_404(db, course_id)
    result = dump(CourseOut, course)

    teacher = db.query(User).filter(User.id == course.teacher_id).first()
    result["teacher"] = dump(PersonInfo, teacher)

    assignments = (db.query(Assignment).filter(Assignment.course_id == course.id)
                     .order_by(Assignment.due_date.asc()).all())
    result["assignments"] = [dump(AssignmentOut, a) for a in assignments]
    result["enrollment_count"] = count_by(db, Enrollment.course_id, [course.id])[course.id]

    if user.role is Role.STUDENT:
        result["is_enrolled"] = is_enrolled(db, course.id, user.id)
        if assignments:
            subs = (db.query(Submission)
                      .filter(Submission.student_id == user.id,
                              Submission.assignment_id.in_([a.id for a in assignments]))
                      .all())
            sub_map = {s.assignment_id: s for s in subs}
            for a in result["assignments"]:
                a["my_submission"] = dump(SubmissionOut, sub_map.get(a["id"]))
    return result

# --- Управление курсами: преподаватель (одобренный) или администратор

@router.post("")
def create_course(payload: CourseCreate, user: SessionUser = Depends(require_approved_staff),
                  db: Session = Depends(get_db)):
    if not payload.name:
        raise HTTPException(400, "Course name is required")
    row = Course(teacher_id=user.id, name=payload.name,
                 description=payload.description or "", subject=payload.subject or "")
    db.add(row); db.commit(); db.refresh(row)
    logger.info("course_created", course_id=row.id, teacher_id=user.id)
    return {"success": True, "course": dump(CourseOut, row)}

@router.put("/{course_id}")
def update_course(course_id: int, payload: CourseUpdate, user: SessionUser = Depends(require_staff),
                  db: Session = Depends(get_db)):
    ensure_course_owner(db, course_id, user)
    row = _get_course_or_404(db, course_id)

    updates = payload.model_dump(exclude_unset=True)
    if "name" in updates and not updates["name"]:
        raise HTTPException(400, "Course name is required")
    if "is_active" in updates and updates["is_active"] is None:
        raise HTTPException(400, "is_active must be true or false")
    for field, value in updates.items():
        setattr(row, field, value)
    row.updated_at = utcnow()
    db.commit(); db.refresh(row)
    logger.info("course_updated", course_id=row.id, fields=sorted(updates))
    return {"success": True, "course": dump(CourseOut, row)}

@router.delete("/{course_id}")
def deactivate_course(course_id: int, user: SessionUser = Depends(require_staff),
                      db: Session = Depends(get_db)):
    ensure_course_owner(db, course_id, user)
    row = _get_course_or_404(db, course_id)
    # мягкое удаление: записи и задания остаются в БД
    row.is_active = False
    row.updated_at = utcnow()
    db.commit()
    logger.info("course_deactivated", course_id=course_id)
    return {"success": True}

# --- Запись студентов

@router.post("/{course_id}/enroll")
def enroll(course_id: int, user: SessionUser = Depends(require_student), db: Session = Depends(get_db)):
    course = db.query(Course.id).filter(Course.id == course_id, Course.is_active.is_(True)).first()
    if not course: raise HTTPException(404, "Course not found")
    row = Enrollment(student_id=user.id, course_id=course_id)
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        # уникальность (student_id, course_id) проверяет БД
        db.rollback()
        raise HTTPException(400, "Already enrolled in this course")
    db.refresh(row)
    logger.info("enrollment_created", course_id=course_id, student_id=user.id)
    return {"success": True, "enrollment": dump(EnrollmentOut, row)}

@router.delete("/{course_id}/unenroll")
def unenroll(course_id: int, user: SessionUser = Depends(require_student), db: Session = Depends(get_db)):
    (db.query(Enrollment)
       .filter(Enrollment.student_id == user.id, Enrollment.course_id == course_id)
       .delete(synchronize_session=False))
    db.commit()
    return {"success": True}

@router.get("/{course_id}/students")
def course_students(course_id: int, user: SessionUser = Depends(require_staff), db: Session = Depends(get_db)):
    ensure_course_owner(db, course_id, user)
    enrollments = db.query(Enrollment).filter(Enrollment.course_id == course_id).all()
    if not enrollments:
        return []
    students = users_by_ids(db, (e.student_id for e in enrollments))
    result = []
    for e in enrollments:
        student = students.get(e.student_id)
        if student is None:
            continue
        result.append({**dump(StudentInfo, student), "enrolled_at": as_utc(e.enrolled_at)})
    return result
