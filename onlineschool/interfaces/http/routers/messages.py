from dataclasses import asdict

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ....application.use_cases.conversations import build_conversations
from ....domain.entities import Role, User as SessionUser
from ....infrastructure.db import get_db
from ....infrastructure.models import Course, Enrollment, Message, User
from ....infrastructure.repositories import users_by_ids, enrolled_course_ids
from ..authz import get_current_user
from ..schemas import MessageCreate, MessageOut, PartnerInfo, UserContact, as_utc, dump

logger = structlog.get_logger()

router = APIRouter(prefix="/api/messages", tags=["messages"], dependencies=[Depends(get_current_user)])


@router.get("/unread-count")
def unread_count(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
    count = (db.query(Message)
               .filter(Message.receiver_id == user.id, Message.is_read.is_(False))
               .count())
    return {"count": count}

@router.get("/conversations")
def conversations(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
    sent = db.query(Message).filter(Message.sender_id == user.id).all()
    received = db.query(Message).filter(Message.receiver_id == user.id).all()

    result = build_conversations(sent, received)
    partners = users_by_ids(db, (c.partner_id for c in result))
    for conv in result:
        conv.partner = dump(PartnerInfo, partners.get(conv.partner_id))
        conv.last_at = as_utc(conv.last_at)
    return [asdict(c) for c in result]

@router.get("/contacts")
def contacts(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
    if user.role is Role.STUDENT:
        # преподаватели курсов, на которые записан студент
        course_ids = enrolled_course_ids(db, user.id)
        rows = db.query(Course.teacher_id).filter(Course.id.in_(list(course_ids))).all()
        contact_ids = {r.teacher_id for r in rows}
    elif user.role is Role.TEACHER:
        # студенты своих курсов
        rows = (db.query(Enrollment.student_id)
                  .join(Course, Course.id == Enrollment.course_id)
                  .filter(Course.teacher_id == user.id).all())
        contact_ids = {r.student_id for r in rows}
    elif user.role is Role.MASTER_TEACHER:
        rows = db.query(User).filter(User.id != user.id).order_by(User.id).all()
        return [dump(UserContact, u) for u in rows]
    else:
        raise HTTPException(403, "Insufficient permissions")

    people = users_by_ids(db, contact_ids)
    return [dump(UserContact, people[i]) for i in sorted(people)]

@router.get("/conversation/{partner_id}")
def conversation_with(partner_id: int, user: SessionUser = Depends(get_current_user),
                      db: Session = Depends(get_db)):
    partner = db.query(User).filter(User.id == partner_id).first()
    if not partner: raise HTTPException(404, "User not found")

    messages = (db.query(Message)
                  .filter(or_(and_(Message.sender_id == user.id, Message.receiver_id == partner_id),
                              and_(Message.sender_id == partner_id, Message.receiver_id == user.id)))
                  .order_by(Message.created_at.asc(), Message.id.asc())
                  .all())
    history = [dump(MessageOut, m) for m in messages]

    # отметка о прочтении; повторный вызов ничего не меняет
    marked = (db.query(Message)
                .filter(Message.sender_id == partner_id, Message.receiver_id == user.id,
                        Message.is_read.is_(False))
                .update({Message.is_read: True}, synchronize_session=False))
    db.commit()
    if marked:
        logger.info("messages_marked_read", reader_id=user.id, partner_id=partner_id, count=marked)

    return {"partner": dump(PartnerInfo, partner), "messages": history}

@router.post("/send")
def send_message(payload: MessageCreate, user: SessionUser = Depends(get_current_user),
                 db: Session = Depends(get_db)):
    if not payload.receiver_id or not payload.content:
        raise HTTPException(400, "Receiver and content are required")
    receiver = db.query(User.id).filter(User.id == payload.receiver_id).first()
    if not receiver: raise HTTPException(404, "Recipient not found")

    row = Message(sender_id=user.id, receiver_id=payload.receiver_id, content=payload.content)
    db.add(row); db.commit(); db.refresh(row)
    logger.info("message_sent", message_id=row.id, sender_id=user.id, receiver_id=row.receiver_id)
    return {"success": True, "message": dump(MessageOut, row)}
