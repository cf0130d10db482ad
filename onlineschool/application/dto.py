from dataclasses import dataclass, field
from datetime import datetime

@dataclass
class RegisterUserInput:
    first_name: str | None
    last_name: str | None
    email: str | None
    password: str | None
    role: str | None = None

@dataclass
class ConversationSummary:
    partner_id: int
    last_message: str
    last_at: datetime
    unread: int = 0
    partner: dict | None = field(default=None)
