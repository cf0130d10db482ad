import structlog
from sqlalchemy.orm import Session

from .models import UserORM
from .security import PasswordHasher
from ..domain.entities import Role, normalize_email

logger = structlog.get_logger()


def ensure_admin(db: Session, email: str, password: str,
                 first_name: str = "Master", last_name: str = "Teacher") -> UserORM:
    """Создаёт master_teacher с указанным email, если его ещё нет.

    Единственный путь к роли администратора помимо повышения другим
    администратором: без него на пустой базе некому одобрять преподавателей.
    """
    email = normalize_email(email)
    row = db.query(UserORM).filter(UserORM.email == email).first()
    if row:
        if row.role != Role.MASTER_TEACHER.value or not row.is_approved:
            row.role = Role.MASTER_TEACHER.value
            row.is_approved = True
            db.commit(); db.refresh(row)
            logger.info("admin_promoted_on_bootstrap", user_id=row.id)
        return row
    row = UserORM(first_name=first_name, last_name=last_name, email=email,
                  password_hash=PasswordHasher().hash(password),
                  role=Role.MASTER_TEACHER.value, is_approved=True)
    db.add(row); db.commit(); db.refresh(row)
    logger.info("admin_created", user_id=row.id, email=email)
    return row
