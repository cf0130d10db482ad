from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    MASTER_TEACHER = "master_teacher"  # администратор платформы

    @classmethod
    def parse(cls, value: str | None) -> "Role | None":
        try:
            return cls(value)
        except ValueError:
            return None


# Роли, доступные при самостоятельной регистрации
SELF_SERVICE_ROLES = (Role.STUDENT, Role.TEACHER)
STAFF_ROLES = (Role.TEACHER, Role.MASTER_TEACHER)


@dataclass(frozen=True)
class User:
    """Снимок пользователя, который хранится в сессии.

    id и role считаются достоверными с момента входа; is_approved
    только для отображения, Approval Gate всегда перечитывает его из БД.
    """
    id: int | None
    first_name: str
    last_name: str
    email: str
    role: Role = Role.STUDENT
    is_approved: bool = True

    def to_session(self) -> dict:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "role": self.role.value,
            "isApproved": self.is_approved,
        }

    @classmethod
    def from_session(cls, data: dict) -> "User":
        return cls(
            id=data["id"],
            first_name=data.get("firstName", ""),
            last_name=data.get("lastName", ""),
            email=data.get("email", ""),
            role=Role(data["role"]),
            is_approved=bool(data.get("isApproved")),
        )


def normalize_email(email: str | None) -> str | None:
    """Email сравнивается без учёта регистра и пробелов по краям."""
    if email is None:
        return None
    return email.strip().lower()
