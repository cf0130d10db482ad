from ...domain.entities import User, normalize_email


class InvalidCredentials(ValueError):
    """Одинаковая ошибка для неизвестного email и неверного пароля."""
    def __init__(self):
        super().__init__("Invalid email or password")


class ICredentialsRepository:
    def get_credentials(self, email: str) -> tuple[User, str] | None: ...

class IPasswordVerifier:
    def verify(self, plain: str, hashed: str) -> bool: ...

class AuthenticateUser:
    def __init__(self, repo: ICredentialsRepository, hasher: IPasswordVerifier):
        self.repo = repo
        self.hasher = hasher

    def execute(self, email: str | None, password: str | None) -> User:
        email = normalize_email(email)
        if not email or not password:
            raise ValueError("Email and password are required")
        found = self.repo.get_credentials(email)
        if found is None:
            raise InvalidCredentials()
        user, password_hash = found
        if not self.hasher.verify(password, password_hash):
            raise InvalidCredentials()
        return user
