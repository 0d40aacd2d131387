import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache

import bcrypt
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from urlshort import crud, models
from urlshort.config import Settings, get_settings
from urlshort.database import get_db
from urlshort.errors import AppError, ErrorKind, invalid, unauthorized
from urlshort.schemas import CurrentUser

logger = logging.getLogger("urlshort.auth")

MIN_PASSWORD_LENGTH = 6
# bcrypt only reads the first 72 bytes and bcrypt 5 refuses anything longer
MAX_PASSWORD_BYTES = 72
TOKEN_COOKIE = "token"

# Same message for unknown email and wrong password
INVALID_CREDENTIALS = "Invalid email or password"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login", auto_error=False)

_email = TypeAdapter(EmailStr)


# ---------- passwords ----------

def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def verify_password(password: str, hashed: str) -> bool:
    if password_too_long(password):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.error("Stored password hash is malformed")
        return False


@lru_cache(maxsize=None)
def _dummy_hash(rounds: int) -> str:
    # unknown emails are checked against this so every failed login costs one bcrypt check
    return hash_password("not-a-real-password", rounds)


# ---------- tokens ----------

def create_access_token(settings: Settings, user: models.User) -> str:
    now = datetime.now(timezone.utc)
    expire = now + timedelta(days=settings.token_expire_days)
    claims = {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
        "iss": settings.token_issuer,
        "aud": settings.token_audience,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(settings: Settings, token: str) -> dict:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.token_audience,
            issuer=settings.token_issuer,
        )
    except ExpiredSignatureError:
        raise unauthorized("Your session has expired. Please log in again.", "INVALID_TOKEN")
    except JWTError:
        raise unauthorized("Invalid authentication token. Please log in again.", "INVALID_TOKEN")


# ---------- register / login ----------

def _require_email(email) -> str:
    if not isinstance(email, str) or not email.strip():
        raise invalid("Email is required and must be a non-empty string")
    email = email.strip().lower()
    try:
        _email.validate_python(email)
    except ValidationError:
        raise invalid("Please provide a valid email address")
    return email


def register_user(db: Session, settings: Settings, name, email, password) -> tuple[models.User, str]:
    if not isinstance(name, str) or not name.strip():
        raise invalid("Name is required and must be a non-empty string")
    email = _require_email(email)
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise invalid(f"Password is required and must be at least {MIN_PASSWORD_LENGTH} characters long")
    if password_too_long(password):
        raise invalid(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")

    if crud.get_user_by_email(db, email):
        raise AppError(ErrorKind.ALREADY_EXISTS, "User with this email already exists")

    user = crud.create_user(db, name, email, hash_password(password, settings.bcrypt_rounds))
    logger.info("Registered user id=%s email=%s", user.id, user.email)
    return user, create_access_token(settings, user)


def login_user(db: Session, settings: Settings, email, password) -> tuple[models.User, str, str]:
    email = _require_email(email)
    if not isinstance(password, str) or not password:
        raise invalid("Password is required")

    user = crud.get_user_by_email(db, email)
    hashed = user.password if user is not None else _dummy_hash(settings.bcrypt_rounds)
    if not verify_password(password, hashed) or user is None:
        logger.warning("Failed login for %s", email)
        raise AppError(ErrorKind.INVALID_CREDENTIALS, INVALID_CREDENTIALS)

    login_time = datetime.now(timezone.utc).isoformat()
    logger.info("User id=%s logged in", user.id)
    return user, create_access_token(settings, user), login_time


# ---------- authentication gate ----------

def token_from_request(request: Request, bearer: str | None) -> str | None:
    if bearer:
        return bearer
    header = request.headers.get("Authorization", "").strip()
    # a raw token without the Bearer scheme is accepted too
    if header and " " not in header:
        return header
    return request.cookies.get(TOKEN_COOKIE) or None


def get_current_user(
    request: Request,
    bearer: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    token = token_from_request(request, bearer)
    if not token:
        raise unauthorized(
            "Authentication required. Please log in to access this resource.", "NO_TOKEN_PROVIDED"
        )

    payload = decode_access_token(settings, token)
    email = payload.get("email")
    if not payload.get("id") or not isinstance(email, str) or not email:
        raise unauthorized("Invalid authentication token. Please log in again.", "INVALID_TOKEN")

    user = crud.get_user_by_email(db, email)
    if user is None:
        raise unauthorized("User account not found. Please log in again.", "USER_NOT_FOUND")

    return CurrentUser(
        id=user.id,
        email=email,
        name=payload.get("name") or user.name,
        token_iat=payload.get("iat"),
        token_exp=payload.get("exp"),
    )
