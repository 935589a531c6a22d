from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..workflow import UserRole, UserStatus
from .columns import enum_type


class User(db.Model):
    """
    Customer and staff accounts.

    WHY: Every RFQ, order and payment is attributable to exactly one user.
    Role decides whether admin routes are reachable; status decides whether
    the user can log in at all.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # Human-facing identifier, e.g. "CST-00001" / "ADM-00001"
    user_code = db.Column(db.String(16), nullable=False, unique=True)

    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(enum_type(UserRole, 16), nullable=False, default=UserRole.CUSTOMER)
    status = db.Column(enum_type(UserStatus, 16), nullable=False, default=UserStatus.ACTIVE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_code,
            "username": self.username,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role.value,
            "status": self.status.value,
            "created_at": to_utc_z(self.created_at),
            "last_login": to_utc_z(self.last_login_at),
        }


class UserSession(db.Model):
    """
    Server-side half of an auth credential.

    The client holds a signed credential that embeds the plaintext session
    token; only its SHA-256 hash is stored here.

    INVARIANT: at most one row per user with is_active = true. Enforced by
    the partial unique index below, not by the login code path, so two
    concurrent logins cannot both succeed.
    """
    __tablename__ = "user_sessions"
    __table_args__ = (
        db.Index(
            "uq_user_sessions_one_active",
            "user_id",
            unique=True,
            sqlite_where=db.text("is_active = 1"),
            postgresql_where=db.text("is_active"),
        ),
        db.Index("ix_user_sessions_token_hash", "token_hash"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    token_hash = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_activity = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    end_reason = db.Column(db.String(64), nullable=True)

    user_agent = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "last_activity": to_utc_z(self.last_activity),
            "is_active": self.is_active,
        }
