from __future__ import annotations

from ..extensions import db
from bufet.time_utils import to_utc_z, utcnow

ROLE_USER = "user"
ROLE_OFFICE_ASSISTANT = "office_assistant"


class User(db.Model):
    """
    Canteen account holder.

    Users are created on first successful login. Email is the identity
    (stored lower-case). role is 'user' or 'office_assistant' (staff);
    staff rights come from the OFFICE_ASSISTANT_EMAILS allow-list at login.

    created_at matters beyond bookkeeping: shortages recorded before a user
    joined are never shown to them.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(32), nullable=False, default=ROLE_USER)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_office_assistant(self) -> bool:
        return self.role == ROLE_OFFICE_ASSISTANT

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class LoginCode(db.Model):
    """
    Emailed one-time login code.

    The 6-digit code is low-entropy, so only its bcrypt hash is stored.
    Requesting a new code marks every earlier unused code for the email as used.
    """
    __tablename__ = "login_codes"
    __table_args__ = (
        db.Index("ix_login_codes_email_used", "email", "used"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    code_hash = db.Column(db.String(255), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    used = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)


class SessionToken(db.Model):
    """
    Opaque bearer token issued after a successful code verification.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - Absolute expiry (SESSION_TTL_DAYS)
    - Revocable on logout
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))
