"""
User identity service.
- find_by_email / find_by_id / insert_user / update_subscribed_flag
- register_user / login_user (validation, hashing, token issuance)
"""

import re
import uuid
from datetime import datetime, timezone
from typing import Optional, Tuple
from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mzone.core.database import get_db_session, users
from mzone.core.errors import AuthError, NotFoundError, ValidationError
from mzone.core.logging import log_event
from mzone.core.security import hash_password, issue_token, verify_password
from mzone.models.user import User

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 10
# bcrypt only hashes the first 72 bytes and refuses longer input
MAX_PASSWORD_BYTES = 72
MIN_FULL_NAME_LENGTH = 2


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        full_name=row.full_name,
        email=row.email,
        password_hash=row.password_hash,
        is_subscribed=bool(row.is_subscribed),
        created_at=row.created_at,
    )


def validate_email(email: Optional[str]) -> bool:
    return bool(email and EMAIL_RE.match(email.strip()))


def validate_password(password: Optional[str]) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")
    if not re.search(r"[a-zA-Z]", password) or not re.search(r"[0-9]", password):
        raise ValidationError("Password must contain both letters and numbers")


def validate_full_name(full_name: Optional[str]) -> None:
    if not full_name or len(full_name.strip()) < MIN_FULL_NAME_LENGTH:
        raise ValidationError(f"Full name must be at least {MIN_FULL_NAME_LENGTH} characters")


def find_by_email(email: str) -> Optional[User]:
    with get_db_session() as session:
        row = session.execute(
            select(users).where(users.c.email == User.normalize_email(email))
        ).first()
        return _row_to_user(row) if row else None


def find_by_id(user_id: str) -> Optional[User]:
    with get_db_session() as session:
        row = session.execute(select(users).where(users.c.id == user_id)).first()
        return _row_to_user(row) if row else None


def get_user(user_id: str) -> User:
    """Raises NotFoundError if the user does not exist."""
    user = find_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def insert_user(full_name: str, email: str, password_hash: str) -> User:
    """
    Insert a new user with is_subscribed = False.

    Raises:
        ValidationError: email already registered
    """
    user = User(
        id=str(uuid.uuid4()),
        full_name=full_name.strip(),
        email=User.normalize_email(email),
        password_hash=password_hash,
        is_subscribed=False,
        created_at=datetime.now(timezone.utc),
    )
    try:
        with get_db_session() as session:
            session.execute(
                insert(users).values(
                    id=user.id,
                    full_name=user.full_name,
                    email=user.email,
                    password_hash=user.password_hash,
                    is_subscribed=False,
                    created_at=user.created_at,
                )
            )
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email
        raise ValidationError("Email already registered")
    return user


def update_subscribed_flag(user_id: str, is_subscribed: bool, session: Optional[Session] = None) -> bool:
    """
    Set the user's subscribed flag. Returns False if no such user.

    Pass `session` to make the write part of a caller's transaction.
    """
    stmt = update(users).where(users.c.id == user_id).values(is_subscribed=is_subscribed)
    if session is not None:
        return session.execute(stmt).rowcount > 0
    with get_db_session() as own_session:
        return own_session.execute(stmt).rowcount > 0


def register_user(full_name: str, email: str, password: str) -> Tuple[User, str]:
    """Validate, create the user, and issue a token."""
    validate_full_name(full_name)
    if not validate_email(email):
        raise ValidationError("Invalid email address")
    validate_password(password)

    if find_by_email(email):
        raise ValidationError("Email already registered")

    user = insert_user(full_name, email, hash_password(password))
    log_event("info", "user.registered", user_id=user.id)
    return user, issue_token(user.id, user.email)


def login_user(email: str, password: str) -> Tuple[User, str]:
    """
    Verify credentials and issue a token.

    Unknown email and wrong password fail identically.
    """
    if not validate_email(email):
        raise ValidationError("Invalid email address")
    if not password:
        raise ValidationError("Password is required")

    user = find_by_email(email)
    if user is None or not verify_password(password, user.password_hash):
        raise AuthError("Invalid email or password", code="invalid_credentials")

    return user, issue_token(user.id, user.email)
