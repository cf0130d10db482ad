from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from ..config import settings

engine_kwargs = {"pool_pre_ping": True, "echo": False}
if settings.DATABASE_URL.startswith("sqlite"):
    # FastAPI выполняет sync-эндпоинты в пуле потоков
    engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    engine_kwargs.update(pool_size=10, max_overflow=20, pool_recycle=3600)
    # Добавляем параметры кодировки для PostgreSQL
    if settings.DATABASE_URL.startswith("postgresql"):
        engine_kwargs["connect_args"] = {"client_encoding": "utf8"}

engine = create_engine(settings.DATABASE_URL, **engine_kwargs)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

def enable_sqlite_foreign_keys(target: Engine) -> None:
    """SQLite по умолчанию не проверяет FOREIGN KEY и не делает ON DELETE CASCADE."""
    if target.dialect.name != "sqlite":
        return

    @event.listens_for(target, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

enable_sqlite_foreign_keys(engine)

def get_db():
    db = SessionLocal()
    try: yield db
    finally: db.close()
