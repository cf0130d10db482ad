from typing import Iterable

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import UserORM, CourseORM, EnrollmentORM
from ..domain.entities import Role, User
from ..application.use_cases.register_user import IUserRepository, EmailAlreadyRegistered
from ..application.use_cases.authenticate_user import ICredentialsRepository

def to_domain(u: UserORM) -> User:
    return User(id=u.id, first_name=u.first_name, last_name=u.last_name,
                email=u.email, role=Role(u.role), is_approved=bool(u.is_approved))

class UserRepository(IUserRepository, ICredentialsRepository):
    def __init__(self, db: Session): self.db = db

    def get_by_email(self, email: str) -> User | None:
        row = self.db.query(UserORM).filter(UserORM.email == email).first()
        return to_domain(row) if row else None

    def get_credentials(self, email: str) -> tuple[User, str] | None:
        row = self.db.query(UserORM).filter(UserORM.email == email).first()
        return (to_domain(row), row.password_hash) if row else None

    def create(self, first_name: str, last_name: str, email: str, password_hash: str,
               role: Role = Role.STUDENT, is_approved: bool = True) -> User:
        row = UserORM(first_name=first_name, last_name=last_name, email=email,
                      password_hash=password_hash, role=role.value, is_approved=is_approved)
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            # параллельная регистрация с тем же email
            self.db.rollback()
            raise EmailAlreadyRegistered()
        self.db.refresh(row)
        return to_domain(row)


# --- Пакетные выборки вместо запроса на каждую строку:

def users_by_ids(db: Session, ids: Iterable[int]) -> dict[int, UserORM]:
    ids = set(ids)
    if not ids:
        return {}
    rows = db.query(UserORM).filter(UserORM.id.in_(list(ids))).all()
    return {u.id: u for u in rows}

def count_by(db: Session, column, keys: Iterable[int], *criteria) -> dict[int, int]:
    """COUNT(*) ... GROUP BY column для набора ключей; отсутствующие ключи -> 0."""
    keys = set(keys)
    if not keys:
        return {}
    rows = (db.query(column, func.count())
              .filter(column.in_(list(keys)), *criteria)
              .group_by(column).all())
    counts = dict.fromkeys(keys, 0)
    counts.update({k: n for k, n in rows})
    return counts


# --- Проверки владения и записи на курс:

def teacher_owns_course(db: Session, course_id: int, teacher_id: int) -> bool:
    row = db.query(CourseORM.teacher_id).filter(CourseORM.id == course_id).first()
    return row is not None and row.teacher_id == teacher_id

def is_enrolled(db: Session, course_id: int, student_id: int) -> bool:
    row = (db.query(EnrollmentORM.id)
             .filter(EnrollmentORM.course_id == course_id,
                     EnrollmentORM.student_id == student_id)
             .first())
    return row is not None

def enrolled_course_ids(db: Session, student_id: int) -> set[int]:
    rows = db.query(EnrollmentORM.course_id).filter(EnrollmentORM.student_id == student_id).all()
    return {r.course_id for r in rows}

def current_approval(db: Session, user_id: int) -> bool | None:
    row = db.query(UserORM.is_approved).filter(UserORM.id == user_id).first()
    return None if row is None else bool(row.is_approved)
