# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Exclusive Session Management Service

WHY: A user may hold exactly one authenticated session at a time. A second
login must fail until the first session is logged out (or lapses).

CREDENTIAL: the client receives a signed JWT embedding the user identity and
an opaque random session token. The database stores only the SHA-256 hash of
that token, so a leaked table cannot be replayed.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Fixed TTL (SESSION_TTL_HOURS, default 2h), extended on each successful verify
- Single active session per user, enforced by a partial unique index
  (see UserSession); the pre-insert check only produces a friendlier error
- Auth failures (401) are kept apart from datastore outages (503) so a
  transient outage never logs a legitimate user out
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

import jwt
from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import (
    AuthFailure,
    BackendUnavailableError,
    SessionConflictError,
    ValidationError,
    is_backend_unavailable,
)
from ..extensions import db
from ..models import User, UserSession
from ..time_utils import as_naive_utc, utcnow
from . import auth_service

CREDENTIAL_ALGORITHM = "HS256"
STALE_SESSION_RETENTION = timedelta(days=30)


@dataclass
class SessionContext:
    """Identity attached to a request once its credential checks out."""
    user: User
    session: UserSession
    claims: dict
    credential: str  # re-signed credential with a fresh expiry


@dataclass
class LoginResult:
    user: User
    session: UserSession
    credential: str


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """Hash token for database storage using SHA-256."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def session_ttl() -> timedelta:
    return timedelta(hours=current_app.config["SESSION_TTL_HOURS"])


def encode_credential(user: User, session_token: str, issued_at: datetime) -> str:
    payload = {
        "id": user.id,
        "user_id": user.user_code,
        "username": user.username,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role.value,
        "session_token": session_token,
        "iat": issued_at,
        "exp": issued_at + session_ttl(),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=CREDENTIAL_ALGORITHM)


def decode_credential(credential: str) -> dict:
    """Check signature and expiry. Raises AuthFailure(JWT_INVALID) otherwise."""
    try:
        return jwt.decode(
            credential,
            current_app.config["JWT_SECRET"],
            algorithms=[CREDENTIAL_ALGORITHM],
            options={"require": ["exp", "id", "session_token"]},
        )
    except jwt.PyJWTError as exc:
        raise AuthFailure("Invalid or expired token.", code="JWT_INVALID") from exc


def _expire_lapsed_sessions(user_id: int, now: datetime) -> int:
    """Deactivate this user's active sessions whose expiry has passed."""
    result = db.session.execute(
        update(UserSession)
        .where(
            UserSession.user_id == user_id,
            UserSession.is_active.is_(True),
            UserSession.expires_at < now,
        )
        .values(is_active=False, ended_at=now, end_reason="expired")
    )
    return result.rowcount


def login(
    identifier: str,
    password: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> LoginResult:
    """
    Verify credentials and open the user's single session.

    Raises:
        ValidationError: missing fields or invalid credentials (400)
        SessionConflictError: the user already has an active session (409)
    """
    if not identifier or not password:
        raise ValidationError("Email/Username and password are required.")

    user = auth_service.authenticate(identifier, password)
    if not user:
        raise ValidationError("Invalid credentials.")

    now = utcnow()
    _expire_lapsed_sessions(user.id, now)

    existing = db.session.query(UserSession).filter_by(user_id=user.id, is_active=True).first()
    if existing:
        db.session.rollback()
        raise SessionConflictError(
            "This account already has an active session. Log out on the other device first.",
            code="SESSION_EXISTS",
        )

    token = generate_token()
    session = UserSession(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=now,
        last_activity=now,
        expires_at=now + session_ttl(),
        is_active=True,
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
    )
    db.session.add(session)

    try:
        db.session.flush()
    except IntegrityError as exc:
        # A concurrent login won the partial unique index
        db.session.rollback()
        raise SessionConflictError(
            "This account already has an active session. Log out on the other device first.",
            code="SESSION_EXISTS",
        ) from exc

    user.last_login_at = now
    db.session.commit()

    return LoginResult(user=user, session=session, credential=encode_credential(user, token, now))


def _end_session(session: UserSession, reason: str) -> None:
    """Deactivate a session that failed verification; failure here is only logged."""
    session_id = session.id
    try:
        session.is_active = False
        session.ended_at = utcnow()
        session.end_reason = reason
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Could not deactivate session %s (%s)", session_id, reason)


def touch_session(session: UserSession, now: datetime) -> None:
    """
    Record activity and slide the expiry window.

    Fire-and-forget: a failure is logged and swallowed so it can never fail
    the request that triggered it. A failed commit rolls back and expires
    the loaded rows, so nothing here may read them afterwards.
    """
    session_id = session.id
    try:
        session.last_activity = now
        session.expires_at = now + session_ttl()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Failed to update last_activity for session %s", session_id)


def verify(credential: str | None) -> SessionContext:
    """
    Validate a credential against its active session.

    Raises:
        AuthFailure: missing/invalid credential or no matching active session
        BackendUnavailableError: the session lookup could not reach the datastore
    """
    if not credential:
        raise AuthFailure("Missing token.", code="NO_TOKEN")

    claims = decode_credential(credential)
    session_token = claims["session_token"]

    try:
        session = db.session.query(UserSession).filter_by(
            user_id=claims["id"],
            token_hash=hash_token(session_token),
            is_active=True,
        ).first()
        user = session.user if session else None
    except SQLAlchemyError as exc:
        db.session.rollback()
        if is_backend_unavailable(exc):
            raise BackendUnavailableError(
                "Auth backend temporarily unavailable.",
                code="AUTH_BACKEND_UNAVAILABLE",
            ) from exc
        raise

    if not session:
        raise AuthFailure("Session expired or invalid.", code="SESSION_INVALID")

    now = utcnow()
    if as_naive_utc(session.expires_at) < now:
        _end_session(session, "expired")
        raise AuthFailure("Session expired or invalid.", code="SESSION_INVALID")

    if not user or not user.is_active:
        _end_session(session, "user not active")
        raise AuthFailure("Session expired or invalid.", code="SESSION_INVALID")

    credential = encode_credential(user, session_token, now)
    touch_session(session, now)

    return SessionContext(user=user, session=session, claims=claims, credential=credential)


def logout(credential: str | None) -> bool:
    """
    End the session named by the credential.

    Returns True if an active session was deactivated, False if it was
    already gone. Raises AuthFailure for a missing or invalid credential.
    """
    if not credential:
        raise AuthFailure("Missing token.", code="NO_TOKEN")

    claims = decode_credential(credential)

    result = db.session.execute(
        update(UserSession)
        .where(
            UserSession.user_id == claims["id"],
            UserSession.token_hash == hash_token(claims["session_token"]),
            UserSession.is_active.is_(True),
        )
        .values(is_active=False, ended_at=utcnow(), end_reason="logout")
    )
    db.session.commit()
    return result.rowcount > 0


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    """
    Deactivate every active session for a user.

    WHY: Security response (password change, suspension). Forces a fresh login.
    """
    result = db.session.execute(
        update(UserSession)
        .where(UserSession.user_id == user_id, UserSession.is_active.is_(True))
        .values(is_active=False, ended_at=utcnow(), end_reason=reason)
    )
    db.session.commit()
    return result.rowcount


def cleanup_expired_sessions() -> tuple[int, int]:
    """
    Deactivate lapsed sessions and delete inactive ones older than 30 days.

    Returns (deactivated, deleted).
    """
    now = utcnow()

    deactivated = db.session.execute(
        update(UserSession)
        .where(UserSession.is_active.is_(True), UserSession.expires_at < now)
        .values(is_active=False, ended_at=now, end_reason="expired")
    ).rowcount

    deleted = db.session.query(UserSession).filter(
        UserSession.is_active.is_(False),
        UserSession.created_at < now - STALE_SESSION_RETENTION,
    ).delete(synchronize_session=False)

    db.session.commit()
    return deactivated, deleted
