from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import FileResponse, RedirectResponse

from ....config import settings
from ..authz import session_user

router = APIRouter(tags=["pages"], include_in_schema=False)


def _view(name: str) -> FileResponse:
    return FileResponse(Path(settings.VIEWS_DIR) / f"{name}.html", media_type="text/html")

def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=302)

@router.get("/")
def index(request: Request):
    return _redirect("/dashboard" if session_user(request) else "/login")

@router.get("/login")
def login_page(request: Request):
    if session_user(request):
        return _redirect("/dashboard")
    return _view("login")

@router.get("/register")
def register_page(request: Request):
    if session_user(request):
        return _redirect("/dashboard")
    return _view("register")

@router.get("/dashboard")
def dashboard_page(request: Request):
    if not session_user(request):
        return _redirect("/login")
    return _view("dashboard")
