import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ....domain.entities import Role, User as SessionUser
from ....infrastructure.db import get_db
from ....infrastructure.models import Course, Assignment, Submission, utcnow
from ....infrastructure.repositories import users_by_ids, count_by
from ..authz import (get_current_user, require_student, require_staff, require_approved_staff,
                     ensure_course_owner, ensure_course_access)
from ..schemas import (AssignmentCreate, AssignmentUpdate, AssignmentOut, SubmitReq, GradeReq,
                       SubmissionOut, UserBrief, PersonInfo, as_utc, dump)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/assignments", tags=["assignments"], dependencies=[Depends(get_current_user)])

DEFAULT_MAX_POINTS = 100


def _get_assignment_or_404(db: Session, assignment_id: int) -> Assignment:
    row = db.query(Assignment).filter(Assignment.id == assignment_id).first()
    if not row: raise HTTPException(404, "Assignment not found")
    return row

@router.get("/my-submissions")
def my_submissions(user: SessionUser = Depends(require_student), db: Session = Depends(get_db)):
    subs = (db.query(Submission).filter(Submission.student_id == user.id)
              .order_by(Submission.submitted_at.desc()).all())
    assignment_ids = list({s.assignment_id for s in subs})
    assignments = {a.id: a for a in db.query(Assignment).filter(Assignment.id.in_(assignment_ids)).all()}
    course_ids = list({a.course_id for a in assignments.values()})
    courses = {c.id: c.name for c in db.query(Course.id, Course.name).filter(Course.id.in_(course_ids)).all()}

    result = []
    for s in subs:
        item = dump(SubmissionOut, s)
        a = assignments.get(s.assignment_id)
        item["assignment"] = None if a is None else {
            "title": a.title, "max_points": a.max_points,
            "due_date": as_utc(a.due_date), "course_id": a.course_id,
        }
        item["course_name"] = courses.get(a.course_id, "") if a is not None else ""
        result.append(item)
    return result

@router.get("/pending-grading")
def pending_grading(user: SessionUser = Depends(require_staff), db: Session = Depends(get_db)):
    # очередь проверки строится только по собственным курсам, даже для администратора
    courses = db.query(Course.id, Course.name).filter(Course.teacher_id == user.id).all()
    if not courses:
        return []
    course_names = {c.id: c.name for c in courses}

    assignments = (db.query(Assignment.id, Assignment.title, Assignment.course_id)
                     .filter(Assignment.course_id.in_(list(course_names))).all())
    if not assignments:
        return []
    assignment_map = {a.id: {"id": a.id, "title": a.title, "course_id": a.course_id} for a in assignments}

    subs = (db.query(Submission)
              .filter(Submission.assignment_id.in_(list(assignment_map)), Submission.grade.is_(None))
              .order_by(Submission.submitted_at.asc()).all())
    students = users_by_ids(db, (s.student_id for s in subs))

    result = []
    for s in subs:
        item = dump(SubmissionOut, s)
        item["student"] = dump(UserBrief, students.get(s.student_id))
        item["assignment"] = assignment_map[s.assignment_id]
        item["course_name"] = course_names.get(item["assignment"]["course_id"], "")
        result.append(item)
    return result

@router.get("/course/{course_id}")
def course_assignments(course_id: int, user: SessionUser = Depends(get_current_user),
                       db: Session = Depends(get_db)):
    ensure_course_access(db, course_id, user)

    rows = (db.query(Assignment).filter(Assignment.course_id == course_id)
              .order_by(Assignment.due_date.asc()).all())
    result = [dump(AssignmentOut, a) for a in rows]
    ids = [a.id for a in rows]

    if user.role is Role.STUDENT:
        subs = (db.query(Submission)
                  .filter(Submission.student_id == user.id, Submission.assignment_id.in_(ids))
                  .all())
        sub_map = {s.assignment_id: s for s in subs}
        for a in result:
            a["my_submission"] = dump(SubmissionOut, sub_map.get(a["id"]))
    else:
        submitted = count_by(db, Submission.assignment_id, ids)
        ungraded = count_by(db, Submission.assignment_id, ids, Submission.grade.is_(None))
        for a in result:
            a["submission_count"] = submitted.get(a["id"], 0)
            a["ungraded_count"] = ungraded.get(a["id"], 0)
    return result

@router.get("/{assignment_id}")
def get_assignment(assignment_id: int, user: SessionUser = Depends(get_current_user),
                   db: Session = Depends(get_db)):
    row = _get_assignment_or_404(db, assignment_id)
    result = dump(AssignmentOut, row)
    course = db.query(Course.name, Course.teacher_id).filter(Course.id == row.course_id).first()
    result["course"] = {"name": course.name, "teacher_id": course.teacher_id} if course else None

    if user.role is Role.STUDENT:
        sub = (db.query(Submission)
                 .filter(Submission.assignment_id == row.id, Submission.student_id == user.id)
                 .first())
        result["my_submission"] = dump(SubmissionOut, sub)
    return result

# --- CRUD заданий: владелец курса или администратор

@router.post("")
def create_assignment(payload: AssignmentCreate, user: SessionUser = Depends(require_approved_staff),
                      db: Session = Depends(get_db)):
    if not payload.course_id or not payload.title:
        raise HTTPException(400, "Course and title are required")
    ensure_course_owner(db, payload.course_id, user)
    if not db.query(Course.id).filter(Course.id == payload.course_id).first():
        raise HTTPException(404, "Course not found")

    row = Assignment(
        course_id=payload.course_id,
        title=payload.title,
        description=payload.description or "",
        due_date=payload.due_date,
        max_points=payload.max_points if payload.max_points is not None else DEFAULT_MAX_POINTS,
    )
    db.add(row); db.commit(); db.refresh(row)
    logger.info("assignment_created", assignment_id=row.id, course_id=row.course_id)
    return {"success": True, "assignment": dump(AssignmentOut, row)}

@router.put("/{assignment_id}")
def update_assignment(assignment_id: int, payload: AssignmentUpdate,
                      user: SessionUser = Depends(require_staff), db: Session = Depends(get_db)):
    row = _get_assignment_or_404(db, assignment_id)
    ensure_course_owner(db, row.course_id, user)

    # только переданные поля; null для due_date/description означает "очистить"
    updates = payload.model_dump(exclude_unset=True)
    if "title" in updates and not updates["title"]:
        raise HTTPException(400, "Title cannot be empty")
    if "max_points" in updates and updates["max_points"] is None:
        raise HTTPException(400, "max_points cannot be null")
    for field, value in updates.items():
        setattr(row, field, value)
    db.commit(); db.refresh(row)
    logger.info("assignment_updated", assignment_id=row.id, fields=sorted(updates))
    return {"success": True, "assignment": dump(AssignmentOut, row)}

@router.delete("/{assignment_id}")
def delete_assignment(assignment_id: int, user: SessionUser = Depends(require_staff),
                      db: Session = Depends(get_db)):
    row = _get_assignment_or_404(db, assignment_id)
    ensure_course_owner(db, row.course_id, user)
    db.query(Submission).filter(Submission.assignment_id == row.id).delete(synchronize_session=False)
    db.delete(row); db.commit()
    logger.info("assignment_deleted", assignment_id=assignment_id)
    return {"success": True}

# --- Сдача и проверка работ

@router.post("/{assignment_id}/submit")
def submit(assignment_id: int, payload: SubmitReq, user: SessionUser = Depends(require_student),
           db: Session = Depends(get_db)):
    if not payload.content:
        raise HTTPException(400, "Submission content is required")
    assignment = _get_assignment_or_404(db, assignment_id)
    ensure_course_access(db, assignment.course_id, user)

    existing = (db.query(Submission)
                  .filter(Submission.assignment_id == assignment_id, Submission.student_id == user.id)
                  .first())
    if existing:
        # повторная сдача возвращает работу в очередь проверки
        existing.content = payload.content
        existing.submitted_at = utcnow()
        existing.grade = None
        existing.feedback = None
        existing.graded_at = None
        row = existing
        db.commit()
    else:
        row = Submission(assignment_id=assignment_id, student_id=user.id, content=payload.content)
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            # параллельная первая сдача того же студента
            db.rollback()
            raise HTTPException(400, "Submission already exists, please resubmit")
    db.refresh(row)
    logger.info("submission_saved", submission_id=row.id, assignment_id=assignment_id,
                student_id=user.id, resubmitted=existing is not None)
    return {"success": True, "submission": dump(SubmissionOut, row)}

@router.get("/{assignment_id}/submissions")
def assignment_submissions(assignment_id: int, user: SessionUser = Depends(require_staff),
                           db: Session = Depends(get_db)):
    assignment = _get_assignment_or_404(db, assignment_id)
    ensure_course_owner(db, assignment.course_id, user)

    subs = (db.query(Submission).filter(Submission.assignment_id == assignment_id)
              .order_by(Submission.submitted_at.desc()).all())
    students = users_by_ids(db, (s.student_id for s in subs))
    return {
        "assignment": {"course_id": assignment.course_id, "title": assignment.title,
                       "max_points": assignment.max_points},
        "submissions": [{**dump(SubmissionOut, s), "student": dump(PersonInfo, students.get(s.student_id))}
                        for s in subs],
    }

@router.put("/submissions/{submission_id}/grade")
def grade_submission(submission_id: int, payload: GradeReq, user: SessionUser = Depends(require_staff),
                     db: Session = Depends(get_db)):
    if payload.grade is None:
        raise HTTPException(400, "Grade is required")
    row = db.query(Submission).filter(Submission.id == submission_id).first()
    if not row: raise HTTPException(404, "Submission not found")
    assignment = _get_assignment_or_404(db, row.assignment_id)
    ensure_course_owner(db, assignment.course_id, user)

    row.grade = payload.grade
    row.feedback = payload.feedback or ""
    row.graded_at = utcnow()
    db.commit(); db.refresh(row)
    logger.info("submission_graded", submission_id=row.id, grade=row.grade, grader_id=user.id)
    return {"success": True, "submission": dump(SubmissionOut, row)}
