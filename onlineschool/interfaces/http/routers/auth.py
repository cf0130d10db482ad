import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from ....infrastructure.db import get_db
from ....infrastructure.repositories import UserRepository
from ....infrastructure.security import PasswordHasher
from ....infrastructure.metrics import login_attempts_total
from ....infrastructure.ratelimit import limiter, REGISTER_LIMIT, LOGIN_LIMIT
from ....application.dto import RegisterUserInput
from ....domain.entities import User
from ....application.use_cases.register_user import RegisterUser
from ....application.use_cases.authenticate_user import AuthenticateUser, InvalidCredentials
from ..authz import get_current_user, start_session
from ..schemas import RegisterReq, LoginReq

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["auth"])
session_router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/register")
@limiter.limit(REGISTER_LIMIT)
def register(request: Request, response: Response, payload: RegisterReq,
             db: Session = Depends(get_db)):
    uc = RegisterUser(repo=UserRepository(db), hasher=PasswordHasher())
    try:
        user = uc.execute(RegisterUserInput(
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=payload.email,
            password=payload.password,
            role=payload.role,
        ))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    start_session(request, user)
    logger.info("user_registered", user_id=user.id, role=user.role.value)
    return {"success": True, "redirect": "/dashboard"}


@router.post("/login")
@limiter.limit(LOGIN_LIMIT)
def login(request: Request, response: Response, payload: LoginReq,
          db: Session = Depends(get_db)):
    uc = AuthenticateUser(repo=UserRepository(db), hasher=PasswordHasher())
    try:
        user = uc.execute(payload.email, payload.password)
    except InvalidCredentials as e:
        # не раскрываем, что именно не совпало
        login_attempts_total.labels(outcome="invalid").inc()
        logger.info("login_failed")
        raise HTTPException(status_code=401, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    start_session(request, user)
    login_attempts_total.labels(outcome="success").inc()
    logger.info("login_succeeded", user_id=user.id)
    return {"success": True, "redirect": "/dashboard"}


@router.post("/logout")
def logout(request: Request):
    request.session.clear()
    return {"success": True, "redirect": "/login"}


@session_router.get("/user")
def current_user(request: Request, user: User = Depends(get_current_user)):
    return request.session["user"]
