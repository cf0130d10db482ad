import pytest
import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.dirname(CURRENT_DIR)
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Настройки читаются при импорте приложения, поэтому задаём их до импорта
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from onlineschool.infrastructure.db import get_db, enable_sqlite_foreign_keys
from onlineschool.infrastructure.models import Base
from onlineschool.infrastructure.seed import ensure_admin
from onlineschool.main import app

# Тестовая БД в памяти, одно соединение на все сессии
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_foreign_keys(test_engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db

PASSWORD = "secret123"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass1"


@pytest.fixture
def db():
    """Чистая схема на каждый тест + сессия для проверок состояния БД"""
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=test_engine)

@pytest.fixture
def make_client(db):
    """Каждый клиент - отдельный браузер со своей cookie-сессией"""
    def _make():
        return TestClient(app)
    return _make

@pytest.fixture
def client(make_client):
    return make_client()

def login_as(client: TestClient, email: str, password: str) -> TestClient:
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    client.user = client.get("/api/user").json()
    return client

@pytest.fixture
def signup(make_client):
    """Регистрирует пользователя и возвращает клиента с его сессией"""
    def _signup(first_name: str, email: str, role: str = "student", last_name: str = "Tester"):
        c = make_client()
        response = c.post("/auth/register", json={
            "firstName": first_name,
            "lastName": last_name,
            "email": email,
            "password": PASSWORD,
            "role": role,
        })
        assert response.status_code == 200, response.text
        c.user = c.get("/api/user").json()
        return c
    return _signup

@pytest.fixture
def admin(db, make_client):
    ensure_admin(db, ADMIN_EMAIL, ADMIN_PASSWORD)
    return login_as(make_client(), ADMIN_EMAIL, ADMIN_PASSWORD)

@pytest.fixture
def teacher(signup, admin):
    """Одобренный администратором преподаватель"""
    c = signup("Ann", "ann@example.com", role="teacher")
    assert admin.post(f"/api/admin/users/{c.user['id']}/approve").status_code == 200
    return c

@pytest.fixture
def other_teacher(signup, admin):
    c = signup("Carl", "carl@example.com", role="teacher")
    assert admin.post(f"/api/admin/users/{c.user['id']}/approve").status_code == 200
    return c

@pytest.fixture
def student(signup):
    return signup("Bo", "bo@example.com")

@pytest.fixture
def course(teacher):
    response = teacher.post("/api/courses", json={"name": "Algebra", "description": "Linear equations", "subject": "Math"})
    assert response.status_code == 200, response.text
    return response.json()["course"]

@pytest.fixture
def enrolled_student(student, course):
    assert student.post(f"/api/courses/{course['id']}/enroll").status_code == 200
    return student

@pytest.fixture
def assignment(teacher, course):
    response = teacher.post("/api/assignments", json={"course_id": course["id"], "title": "HW1"})
    assert response.status_code == 200, response.text
    return response.json()["assignment"]
