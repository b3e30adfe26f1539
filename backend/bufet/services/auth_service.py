# Overview: Service-layer operations for auth; email one-time codes, user provisioning, roles.

"""
Passwordless login.

request_code() emails a 6-digit code; verify_code() exchanges it for a
session token and creates the user on first login.

SECURITY NOTES:
- Codes are low-entropy, so only a bcrypt hash is stored (LOGIN_CODE_BCRYPT_ROUNDS)
- A new request invalidates every earlier unused code for the email
- Codes expire after LOGIN_CODE_TTL_MINUTES and are single-use
- Staff role comes from the OFFICE_ASSISTANT_EMAILS suffix list; it is granted
  at login and never taken away automatically
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import timedelta

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import LoginCode, User, ROLE_OFFICE_ASSISTANT, ROLE_USER
from ..validation import ValidationError
from bufet.time_utils import utcnow
from . import notification_service, session_service

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
CODE_RE = re.compile(r"^\d{6}$")


@dataclass
class LoginResult:
    user: User
    token: str
    created: bool


def normalize_email(email) -> str:
    if not isinstance(email, str):
        raise ValidationError("email is required")
    email = email.strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email address")
    return email


def allowed_domains() -> list[str]:
    return list(current_app.config.get("ALLOWED_EMAIL_DOMAINS") or [])


def is_domain_allowed(email: str, domains: list[str]) -> bool:
    """Empty list means every domain is allowed."""
    if not domains:
        return True
    return email.rsplit("@", 1)[-1].lower() in domains


def role_for_email(email: str, suffixes: list[str]) -> str:
    email = email.lower()
    if any(email.endswith(s) for s in suffixes):
        return ROLE_OFFICE_ASSISTANT
    return ROLE_USER


def generate_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def hash_code(code: str) -> str:
    rounds = current_app.config.get("LOGIN_CODE_BCRYPT_ROUNDS", 10)
    return bcrypt.hashpw(code.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_code_hash(code: str, code_hash: str) -> bool:
    try:
        return bcrypt.checkpw(code.encode("utf-8"), code_hash.encode("utf-8"))
    except ValueError:
        return False


def request_code(email) -> LoginCode:
    """
    Issue and email a fresh login code.

    The code row is committed before sending. A failed send raises
    NotificationError to the caller; the user can simply request again.
    """
    email = normalize_email(email)
    domains = allowed_domains()
    if not is_domain_allowed(email, domains):
        raise ValidationError(f"Only emails from these domains are allowed: {', '.join(domains)}")

    ttl = current_app.config.get("LOGIN_CODE_TTL_MINUTES", 10)
    code = generate_code()

    db.session.query(LoginCode).filter_by(email=email, used=False).update(
        {"used": True}, synchronize_session=False
    )
    login_code = LoginCode(
        email=email,
        code_hash=hash_code(code),
        expires_at=utcnow() + timedelta(minutes=ttl),
    )
    db.session.add(login_code)
    db.session.commit()

    notification_service.send_notification(
        notification_service.KIND_OTP,
        email,
        {"code": code, "ttl_minutes": ttl},
    )
    return login_code


def _consume_code(email: str, code: str) -> bool:
    now = utcnow()
    candidates = db.session.query(LoginCode).filter(
        LoginCode.email == email,
        LoginCode.used.is_(False),
        LoginCode.expires_at > now,
    ).order_by(LoginCode.created_at.desc()).all()

    for candidate in candidates:
        if verify_code_hash(code, candidate.code_hash):
            candidate.used = True
            return True
    return False


def verify_code(email, code, name: str | None = None) -> LoginResult:
    """
    Exchange a login code for a session.

    Creates the user on first login. An existing user is upgraded to
    office assistant when the allow-list now matches, and renamed when a
    non-blank name is given.
    """
    email = normalize_email(email)
    code = str(code or "").strip()
    if not CODE_RE.match(code):
        raise ValidationError("Code must be 6 digits")
    name = (name or "").strip() or None

    if not _consume_code(email, code):
        db.session.rollback()
        raise ValidationError("Invalid or expired code")

    expected_role = role_for_email(email, current_app.config.get("OFFICE_ASSISTANT_EMAILS") or [])

    user = db.session.query(User).filter_by(email=email).first()
    created = False
    if user is None:
        user = User(email=email, name=name, role=expected_role, is_active=True)
        db.session.add(user)
        created = True
        logger.info("Created new user: %s with role: %s", email, expected_role)
    else:
        if expected_role == ROLE_OFFICE_ASSISTANT and user.role != expected_role:
            user.role = expected_role
            logger.info("Upgraded user %s to role: %s", email, expected_role)
        if name and name != user.name:
            user.name = name

    if user.is_active is False:
        db.session.commit()
        raise ValidationError("Account is deactivated")

    user.last_login_at = utcnow()
    db.session.commit()

    _, token = session_service.create_session(user.id)
    return LoginResult(user=user, token=token, created=created)


def update_profile(user: User, name) -> User:
    if name is not None and not isinstance(name, str):
        raise ValidationError("name must be a string")
    user.name = (name or "").strip() or None
    db.session.commit()
    return user
