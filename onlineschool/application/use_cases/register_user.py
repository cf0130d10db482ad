from ...domain.entities import Role, SELF_SERVICE_ROLES, User, normalize_email
from ..dto import RegisterUserInput

MIN_PASSWORD_LENGTH = 6


class EmailAlreadyRegistered(ValueError):
    def __init__(self):
        super().__init__("An account with this email already exists")


class IUserRepository:
    def get_by_email(self, email: str) -> User | None: ...
    def create(self, first_name: str, last_name: str, email: str, password_hash: str,
               role: Role = Role.STUDENT, is_approved: bool = True) -> User: ...

class IPasswordHasher:
    def hash(self, plain: str) -> str: ...

class RegisterUser:
    def __init__(self, repo: IUserRepository, hasher: IPasswordHasher):
        self.repo = repo
        self.hasher = hasher

    def execute(self, data: RegisterUserInput) -> User:
        email = normalize_email(data.email)
        if not (data.first_name and data.last_name and email and data.password):
            raise ValueError("All fields are required")
        if len(data.password) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if self.repo.get_by_email(email):
            raise EmailAlreadyRegistered()

        # master_teacher нельзя получить при регистрации, только через повышение
        role = Role.parse(data.role)
        if role not in SELF_SERVICE_ROLES:
            role = Role.STUDENT
        # студенты одобрены сразу, преподаватели ждут администратора
        is_approved = role is Role.STUDENT

        pwd_hash = self.hasher.hash(data.password)
        return self.repo.create(
            data.first_name, data.last_name, email, pwd_hash,
            role=role, is_approved=is_approved,
        )
