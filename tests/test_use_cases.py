import pytest
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock

from onlineschool.application.dto import RegisterUserInput
from onlineschool.application.use_cases.register_user import RegisterUser, EmailAlreadyRegistered
from onlineschool.application.use_cases.authenticate_user import AuthenticateUser, InvalidCredentials
from onlineschool.application.use_cases.conversations import build_conversations
from onlineschool.domain.entities import Role, User


def make_repo(existing=None):
    repo = MagicMock()
    repo.get_by_email.return_value = existing

    def create(first_name, last_name, email, password_hash, role=Role.STUDENT, is_approved=True):
        return User(id=1, first_name=first_name, last_name=last_name, email=email,
                    role=role, is_approved=is_approved)
    repo.create.side_effect = create
    return repo

def make_hasher():
    hasher = MagicMock()
    hasher.hash.side_effect = lambda plain: f"hashed:{plain}"
    hasher.verify.side_effect = lambda plain, hashed: hashed == f"hashed:{plain}"
    return hasher

def registration(**overrides):
    data = dict(first_name="Ann", last_name="Lee", email="ann@example.com", password="secret1", role=None)
    data.update(overrides)
    return RegisterUserInput(**data)

# --- RegisterUser

@pytest.mark.parametrize("role,expected_role,expected_approved", [
    ("student", Role.STUDENT, True),
    ("teacher", Role.TEACHER, False),
    ("master_teacher", Role.STUDENT, True),
    (None, Role.STUDENT, True),
])
def test_register_role_and_approval(role, expected_role, expected_approved):
    """Роль ограничена student/teacher, одобрение зависит от роли"""
    repo, hasher = make_repo(), make_hasher()
    user = RegisterUser(repo, hasher).execute(registration(role=role))
    assert user.role is expected_role
    assert user.is_approved is expected_approved

def test_register_hashes_password():
    repo, hasher = make_repo(), make_hasher()
    RegisterUser(repo, hasher).execute(registration())
    args = repo.create.call_args
    assert args.args[3] == "hashed:secret1"

def test_register_duplicate_email_does_not_create():
    existing = User(id=7, first_name="A", last_name="B", email="ann@example.com")
    repo = make_repo(existing=existing)
    with pytest.raises(EmailAlreadyRegistered):
        RegisterUser(repo, make_hasher()).execute(registration())
    repo.create.assert_not_called()

def test_register_validation_messages():
    uc = RegisterUser(make_repo(), make_hasher())
    with pytest.raises(ValueError, match="All fields are required"):
        uc.execute(registration(first_name=None))
    with pytest.raises(ValueError, match="at least 6"):
        uc.execute(registration(password="abc"))

def test_register_lowercases_email():
    repo = make_repo()
    user = RegisterUser(repo, make_hasher()).execute(registration(email=" Ann@Example.COM "))
    repo.get_by_email.assert_called_once_with("ann@example.com")
    assert user.email == "ann@example.com"

# --- AuthenticateUser

def test_authenticate_success():
    user = User(id=3, first_name="Bo", last_name="Ray", email="bo@example.com")
    repo = MagicMock()
    repo.get_credentials.return_value = (user, "hashed:secret1")
    assert AuthenticateUser(repo, make_hasher()).execute("bo@example.com", "secret1") == user

def test_authenticate_same_error_for_unknown_and_wrong_password():
    repo = MagicMock()
    repo.get_credentials.return_value = None
    with pytest.raises(InvalidCredentials) as unknown:
        AuthenticateUser(repo, make_hasher()).execute("x@example.com", "secret1")

    user = User(id=3, first_name="Bo", last_name="Ray", email="bo@example.com")
    repo.get_credentials.return_value = (user, "hashed:other")
    with pytest.raises(InvalidCredentials) as wrong:
        AuthenticateUser(repo, make_hasher()).execute("bo@example.com", "secret1")

    assert str(unknown.value) == str(wrong.value) == "Invalid email or password"

def test_authenticate_looks_up_lowercased_email():
    user = User(id=3, first_name="Bo", last_name="Ray", email="bo@example.com")
    repo = MagicMock()
    repo.get_credentials.return_value = (user, "hashed:secret1")
    AuthenticateUser(repo, make_hasher()).execute("Bo@Example.com", "secret1")
    repo.get_credentials.assert_called_once_with("bo@example.com")

# --- Сводка диалогов

T0 = datetime(2026, 1, 1, 12, 0, 0)

def msg(sender, receiver, content, minutes, is_read=False):
    return SimpleNamespace(sender_id=sender, receiver_id=receiver, content=content,
                           created_at=T0 + timedelta(minutes=minutes), is_read=is_read)

def test_conversations_keep_latest_message_per_partner():
    sent = [msg(1, 2, "hi Bo", 0), msg(1, 3, "hi Cy", 5)]
    received = [msg(2, 1, "hello Ann", 10), msg(3, 1, "old", 1, is_read=True)]

    result = build_conversations(sent, received)

    assert [c.partner_id for c in result] == [2, 3]
    assert result[0].last_message == "hello Ann"
    assert result[1].last_message == "hi Cy"
    assert result[1].unread == 0

def test_conversations_unread_counter_survives_newer_message():
    """Счётчик непрочитанных не сбрасывается при замене последнего сообщения"""
    sent = [msg(1, 2, "reply", 30)]
    received = [msg(2, 1, "first", 10), msg(2, 1, "second", 20), msg(2, 1, "third", 40)]

    result = build_conversations(sent, received)

    assert len(result) == 1
    assert result[0].unread == 3
    assert result[0].last_message == "third"

def test_conversations_empty():
    assert build_conversations([], []) == []
