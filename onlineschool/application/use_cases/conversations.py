from typing import Iterable, Protocol
from datetime import datetime

from ..dto import ConversationSummary


class MessageLike(Protocol):
    sender_id: int
    receiver_id: int
    content: str
    created_at: datetime
    is_read: bool


def build_conversations(sent: Iterable[MessageLike],
                        received: Iterable[MessageLike]) -> list[ConversationSummary]:
    """Сводит отправленные и полученные сообщения в список диалогов.

    На каждого собеседника остаётся самое свежее сообщение; счётчик
    unread считает все непрочитанные входящие от него и не сбрасывается,
    когда последнее сообщение заменяется более новым. Результат отсортирован
    от самого свежего диалога к самому старому.
    """
    conv: dict[int, ConversationSummary] = {}

    def touch(partner_id: int, m: MessageLike) -> ConversationSummary:
        item = conv.get(partner_id)
        if item is None:
            item = conv[partner_id] = ConversationSummary(
                partner_id=partner_id, last_message=m.content, last_at=m.created_at)
        elif m.created_at > item.last_at:
            item.last_message = m.content
            item.last_at = m.created_at
        return item

    for m in sent:
        touch(m.receiver_id, m)
    for m in received:
        item = touch(m.sender_id, m)
        if not m.is_read:
            item.unread += 1

    return sorted(conv.values(), key=lambda c: c.last_at, reverse=True)
