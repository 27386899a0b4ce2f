from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from typing import Optional
from .. import auth, database
from ..errors import AuthError, ConflictError, ValidationError
from ..templating import templates

router = APIRouter()


def _form_error(request: Request, template: str, error, status_code: int):
    return templates.TemplateResponse(request, template, {"error": str(error)}, status_code=status_code)


@router.get("/")
def index():
    return RedirectResponse("/login", status_code=status.HTTP_303_SEE_OTHER)

# ===== Registration =====

@router.get("/register")
def register_form(request: Request):
    return templates.TemplateResponse(request, "register.html", {"error": None})

@router.post("/register")
def register(
    request: Request,
    username: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    db: Session = Depends(database.get_db),
):
    try:
        auth.register_user(db, username, email, password)
    except ValidationError as e:
        return _form_error(request, "register.html", e, status.HTTP_400_BAD_REQUEST)
    except ConflictError as e:
        return _form_error(request, "register.html", e, status.HTTP_409_CONFLICT)
    return RedirectResponse("/login", status_code=status.HTTP_303_SEE_OTHER)

# ===== Authentication =====

@router.get("/login")
def login_form(request: Request):
    return templates.TemplateResponse(request, "login.html", {"error": None})

@router.post("/login")
def login(
    request: Request,
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    db: Session = Depends(database.get_db),
):
    """`username` may hold either the username or the email address."""
    try:
        user = auth.authenticate_user(db, username, password)
    except ValidationError as e:
        return _form_error(request, "login.html", e, status.HTTP_400_BAD_REQUEST)
    except AuthError as e:
        return _form_error(request, "login.html", e, status.HTTP_401_UNAUTHORIZED)
    auth.login_session(request, user)
    return RedirectResponse("/dashboard", status_code=status.HTTP_303_SEE_OTHER)

@router.get("/logout")
def logout(request: Request):
    auth.logout_session(request)
    return RedirectResponse("/login", status_code=status.HTTP_303_SEE_OTHER)
