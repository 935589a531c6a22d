# Overview: Service-layer operations for auth; password hashing, registration and credential checks.

"""
Authentication Service

WHY: Every RFQ and order must be attributable to a user. Uses bcrypt for
password hashing. Session issuance lives in session_service.py; this module
only answers "is this identifier/secret pair valid?".

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Login accepts username or email
- Only users with status=active can authenticate
"""

import re

import bcrypt
from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import User
from ..workflow import UserRole, UserStatus

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns True if password matches hash, False otherwise (including
    malformed hashes).
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def next_user_code(role: UserRole) -> str:
    """ADM-00001 / CST-00001 style code, sequential per role."""
    prefix = "ADM" if role == UserRole.ADMIN else "CST"
    count = db.session.query(func.count(User.id)).filter(User.role == role).scalar() or 0
    return f"{prefix}-{count + 1:05d}"


def create_user(
    username: str,
    email: str,
    password: str,
    role: UserRole = UserRole.CUSTOMER,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        ValidationError: bad email, weak password, or username/email taken
    """
    if not EMAIL_RE.match(email or ""):
        raise ValidationError("Invalid email format.")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValidationError("Email or username already exists.")

    user = User(
        user_code=next_user_code(role),
        username=username,
        email=email,
        first_name=first_name,
        last_name=last_name,
        password_hash=hash_password(password),
        role=role,
        status=UserStatus.ACTIVE,
    )

    db.session.add(user)
    db.session.commit()
    return user


def register_customer(data: dict) -> User:
    """Self-registration; every field in the form is required."""
    required = ("first_name", "last_name", "email", "username", "password")
    missing = [field for field in required if not data.get(field)]
    if missing:
        raise ValidationError("Missing required fields.", details={"missing": missing})

    return create_user(
        username=data["username"].strip(),
        email=data["email"].strip().lower(),
        password=data["password"],
        role=UserRole.CUSTOMER,
        first_name=data["first_name"].strip(),
        last_name=data["last_name"].strip(),
    )


def authenticate(identifier: str, password: str) -> User | None:
    """
    Check an identifier (username or email) / password pair.

    Returns the User when the credential is valid and the account is active,
    None otherwise. Does not create a session and does not touch
    last_login_at; session_service.login does both once the session exists.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == identifier.lower())
    ).first()

    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    return user
