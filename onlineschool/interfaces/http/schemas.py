from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictInt, field_validator

def as_utc(value):
    """SQLite возвращает DateTime без зоны; все метки времени хранятся в UTC."""
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

def _due_date_to_utc(value: datetime | None) -> datetime | None:
    # срок с явным смещением переводим в UTC до записи
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc)
    return value

# --- Запросы

class RegisterReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    first_name: str | None = Field(None, alias="firstName")
    last_name: str | None = Field(None, alias="lastName")
    email: EmailStr | None = None
    password: str | None = None
    role: str | None = None

class LoginReq(BaseModel):
    email: str | None = None
    password: str | None = None

class CourseCreate(BaseModel):
    name: str | None = None
    description: str | None = None
    subject: str | None = None

class CourseUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    subject: str | None = None
    is_active: bool | None = None

class AssignmentCreate(BaseModel):
    course_id: int | None = None
    title: str | None = None
    description: str | None = None
    due_date: datetime | None = None
    max_points: int | None = None

    @field_validator("due_date")
    @classmethod
    def due_date_utc(cls, value):
        return _due_date_to_utc(value)

class AssignmentUpdate(BaseModel):
    # отсутствующее поле не трогаем, явный null - отдельное значение
    title: str | None = None
    description: str | None = None
    due_date: datetime | None = None
    max_points: int | None = None

    @field_validator("due_date")
    @classmethod
    def due_date_utc(cls, value):
        return _due_date_to_utc(value)

class SubmitReq(BaseModel):
    content: str | None = None

class GradeReq(BaseModel):
    # без приведения типов: true, "85" и 85.0 отклоняются
    grade: StrictInt | None = None
    feedback: str | None = None

class MessageCreate(BaseModel):
    receiver_id: int | None = None
    content: str | None = None

class UserUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: EmailStr | None = None
    role: str | None = None

# --- Ответы

class _Out(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    @field_validator("*")
    @classmethod
    def timestamps_utc(cls, value):
        return as_utc(value)

class UserBrief(_Out):
    first_name: str
    last_name: str

class PersonInfo(UserBrief):
    email: str

class StudentInfo(_Out):
    id: int
    first_name: str
    last_name: str
    email: str

class UserContact(_Out):
    id: int
    first_name: str
    last_name: str
    role: str

class PartnerInfo(_Out):
    first_name: str
    last_name: str
    role: str

class UserOut(_Out):
    id: int
    first_name: str
    last_name: str
    email: str
    role: str
    is_approved: bool
    created_at: datetime | None = None

class CourseOut(_Out):
    id: int
    teacher_id: int
    name: str
    description: str | None = None
    subject: str | None = None
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

class EnrollmentOut(_Out):
    id: int
    student_id: int
    course_id: int
    enrolled_at: datetime | None = None

class AssignmentOut(_Out):
    id: int
    course_id: int
    title: str
    description: str | None = None
    due_date: datetime | None = None
    max_points: int
    created_at: datetime | None = None

class SubmissionOut(_Out):
    id: int
    assignment_id: int
    student_id: int
    content: str
    submitted_at: datetime | None = None
    grade: int | None = None
    feedback: str | None = None
    graded_at: datetime | None = None

class MessageOut(_Out):
    id: int
    sender_id: int
    receiver_id: int
    content: str
    created_at: datetime | None = None
    is_read: bool


def dump(schema: type[BaseModel], row) -> dict | None:
    """ORM-объект -> dict, к которому роутеры добавляют связанные данные."""
    if row is None:
        return None
    return schema.model_validate(row).model_dump()
