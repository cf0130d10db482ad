from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./onlineschool.db"
    SECRET_KEY: str = "dev-secret-onlineschool"
    LOG_LEVEL: str = "INFO"

    SESSION_COOKIE: str = "onlineschool_session"
    SESSION_MAX_AGE: int = 24 * 60 * 60  # 24 часа, без продления
    SESSION_HTTPS_ONLY: bool = False

    BCRYPT_ROUNDS: int = 12
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_PER_MINUTE: int = 60
    LOGIN_RATE_LIMIT: str = "10/minute"

    # Первый администратор (master_teacher) создаётся при старте, если заданы оба поля
    ADMIN_EMAIL: str | None = None
    ADMIN_PASSWORD: str | None = None
    ADMIN_FIRST_NAME: str = "Master"
    ADMIN_LAST_NAME: str = "Teacher"

    VIEWS_DIR: str = str(Path(__file__).parent / "views")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
