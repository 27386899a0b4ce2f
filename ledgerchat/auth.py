import logging
from typing import Optional

from fastapi import Request
from passlib.context import CryptContext
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .config import BCRYPT_ROUNDS
from .errors import AuthError, ConflictError, LoginRequired, StorageError, ValidationError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)

INVALID_CREDENTIALS = "Invalid username or password"


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def register_user(db: Session, username: Optional[str], email: Optional[str], password: Optional[str]) -> models.User:
    username = (username or "").strip()
    email = (email or "").strip() or None
    if not username or not password:
        raise ValidationError("Username and password are required")

    filters = [models.User.username == username]
    if email:
        filters.append(models.User.email == email)
    existing = db.query(models.User).filter(or_(*filters)).first()
    if existing:
        if existing.username == username:
            raise ConflictError("Username already taken")
        raise ConflictError("Email already registered")

    user = models.User(username=username, email=email, hashed_password=get_password_hash(password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        # lost a race against a concurrent registration
        db.rollback()
        raise ConflictError("Username or email already registered") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageError("Could not save user") from exc
    db.refresh(user)
    logger.info(f"User registered: {user.username}")
    return user


def authenticate_user(db: Session, identifier: Optional[str], password: Optional[str]) -> models.User:
    """Look a user up by username or email and check the password.

    Both failure modes raise the same AuthError so the response does not tell
    which half of the credentials was wrong.
    """
    identifier = (identifier or "").strip()
    if not identifier or not password:
        raise ValidationError("All fields are required")
    user = (
        db.query(models.User)
        .filter(or_(models.User.username == identifier, models.User.email == identifier))
        .first()
    )
    if not user or not verify_password(password, user.hashed_password):
        logger.info(f"Failed login for {identifier}")
        raise AuthError(INVALID_CREDENTIALS)
    logger.info(f"Login successful: {user.username}")
    return user


def login_session(request: Request, user: models.User):
    request.session["user_id"] = user.id
    request.session["username"] = user.username


def logout_session(request: Request):
    request.session.clear()


def require_user(request: Request) -> dict:
    """Dependency guarding ledger and chat pages."""
    user_id = request.session.get("user_id")
    if not user_id:
        raise LoginRequired()
    return {"id": user_id, "username": request.session.get("username")}
