from onlineschool.infrastructure.models import User
from onlineschool.config import settings

from conftest import PASSWORD


def register(client, **overrides):
    payload = {
        "firstName": "Test",
        "lastName": "User",
        "email": "test@example.com",
        "password": "password123",
    }
    payload.update(overrides)
    return client.post("/auth/register", json=payload)

def test_register_student_success(client):
    """Тест успешной регистрации студента"""
    response = register(client)
    assert response.status_code == 200
    assert response.json() == {"success": True, "redirect": "/dashboard"}

    me = client.get("/api/user")
    assert me.status_code == 200
    data = me.json()
    assert data["email"] == "test@example.com"
    assert data["firstName"] == "Test"
    assert data["role"] == "student"
    assert data["isApproved"] is True

def test_register_teacher_requires_approval(client):
    """Новый преподаватель не одобрен"""
    register(client, role="teacher")
    data = client.get("/api/user").json()
    assert data["role"] == "teacher"
    assert data["isApproved"] is False

def test_register_cannot_self_assign_admin(client, db):
    """Роль master_teacher при регистрации понижается до student"""
    register(client, role="master_teacher")
    assert client.get("/api/user").json()["role"] == "student"
    row = db.query(User).filter(User.email == "test@example.com").one()
    assert row.role == "student"

def test_register_unknown_role_falls_back_to_student(client):
    register(client, role="principal")
    assert client.get("/api/user").json()["role"] == "student"

def test_register_password_is_hashed(client, db):
    register(client)
    row = db.query(User).filter(User.email == "test@example.com").one()
    assert row.password_hash != "password123"

def test_register_missing_fields(client):
    """Тест регистрации без обязательных полей"""
    response = register(client, lastName="")
    assert response.status_code == 400
    assert response.json() == {"error": "All fields are required"}

def test_register_short_password(client):
    """Тест регистрации с коротким паролем"""
    response = register(client, password="12345")
    assert response.status_code == 400
    assert "at least 6" in response.json()["error"]

def test_register_invalid_email(client):
    """Тест регистрации с невалидным email"""
    response = register(client, email="invalid-email")
    assert response.status_code == 400
    assert "error" in response.json()

def test_register_duplicate_email(make_client, db):
    """Повторная регистрация с тем же email не создаёт пользователя"""
    assert register(make_client()).status_code == 200

    response = register(make_client(), firstName="Other")
    assert response.status_code == 400
    assert "already exists" in response.json()["error"]
    assert db.query(User).filter(User.email == "test@example.com").count() == 1

def test_register_and_login_with_mixed_case_email(make_client, db):
    """Email хранится в нижнем регистре, вход работает с тем же написанием"""
    assert register(make_client(), email="Ann@Example.COM").status_code == 200
    assert db.query(User).filter(User.email == "ann@example.com").count() == 1

    for typed in ("Ann@Example.COM", "ann@example.com", "  ANN@EXAMPLE.COM "):
        c = make_client()
        response = c.post("/auth/login", json={"email": typed, "password": "password123"})
        assert response.status_code == 200, typed
        assert c.get("/api/user").json()["email"] == "ann@example.com"

def test_register_duplicate_email_ignores_case(make_client, db):
    assert register(make_client(), email="bo@example.com").status_code == 200
    response = register(make_client(), email="BO@Example.com")
    assert response.status_code == 400
    assert response.json() == {"error": "An account with this email already exists"}
    assert db.query(User).count() == 1

def test_login_success(make_client):
    """Тест успешного входа"""
    register(make_client())
    client = make_client()
    response = client.post("/auth/login", json={"email": "test@example.com", "password": "password123"})
    assert response.status_code == 200
    assert response.json()["redirect"] == "/dashboard"
    assert client.get("/api/user").json()["email"] == "test@example.com"

def test_login_does_not_reveal_which_part_failed(make_client):
    """Неверный пароль и неизвестный email дают одинаковый ответ"""
    register(make_client())
    wrong_password = make_client().post(
        "/auth/login", json={"email": "test@example.com", "password": "wrongpassword"})
    unknown_email = make_client().post(
        "/auth/login", json={"email": "nobody@example.com", "password": "password123"})

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json() == {"error": "Invalid email or password"}

def test_login_missing_fields(client):
    response = client.post("/auth/login", json={"email": "test@example.com"})
    assert response.status_code == 400

def test_login_snapshot_comes_from_stored_record(make_client, admin):
    """Снимок сессии берётся из БД, а не из запроса"""
    teacher = make_client()
    register(teacher, role="teacher", email="t@example.com")
    user_id = teacher.get("/api/user").json()["id"]
    admin.post(f"/api/admin/users/{user_id}/approve")

    client = make_client()
    client.post("/auth/login", json={"email": "t@example.com", "password": "password123", "role": "master_teacher"})
    data = client.get("/api/user").json()
    assert data["role"] == "teacher"
    assert data["isApproved"] is True

def test_logout(signup):
    """После выхода сессия уничтожена"""
    client = signup("Bo", "bo@example.com")
    response = client.post("/auth/logout")
    assert response.status_code == 200
    assert response.json() == {"success": True, "redirect": "/login"}
    assert client.get("/api/user").status_code == 401

def test_current_user_without_session(client):
    """Тест получения информации без сессии"""
    response = client.get("/api/user")
    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}

def test_session_expires_without_sliding(signup, monkeypatch):
    """Сессия истекает по времени входа, а не последней активности"""
    client = signup("Bo", "bo@example.com")
    assert client.get("/api/user").status_code == 200

    monkeypatch.setattr(settings, "SESSION_MAX_AGE", -1)
    assert client.get("/api/user").status_code == 401
    assert client.get("/api/courses").status_code == 401

def test_login_after_registration_with_fixture_password(signup, make_client):
    signup("Bo", "bo@example.com")
    response = make_client().post("/auth/login", json={"email": "bo@example.com", "password": PASSWORD})
    assert response.status_code == 200
