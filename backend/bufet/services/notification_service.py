# Overview: Outbound email; renders login codes, deposit confirmations and debt reminders.

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

import httpx
from flask import current_app

logger = logging.getLogger(__name__)

KIND_OTP = "otp"
KIND_DEPOSIT = "deposit"
KIND_REMINDER = "reminder"
VALID_KINDS = {KIND_OTP, KIND_DEPOSIT, KIND_REMINDER}

MAIL_MODE_CONSOLE = "console"
MAIL_MODE_SMTP = "smtp"
MAIL_MODE_HTTP = "http"

APP_NAME = "Bufet"


class NotificationError(RuntimeError):
    """Delivery failed at the transport."""


@dataclass
class Message:
    recipient: str
    subject: str
    text: str


def format_cents(cents: int) -> str:
    """1234 -> '12.34 EUR'. Only used for human-readable text."""
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(int(cents)), 100)
    return f"{sign}{whole}.{frac:02d} EUR"


def _greeting(data: dict) -> str:
    name = data.get("name")
    return f"Hi {name}," if name else "Hi,"


def _render_otp(data: dict) -> tuple[str, str]:
    ttl = data.get("ttl_minutes", 10)
    text = "\n".join([
        "Hi,",
        "",
        f"Your login code is: {data['code']}",
        "",
        f"The code is valid for {ttl} minutes.",
    ])
    return f"{APP_NAME} - login code", text


def _render_deposit(data: dict) -> tuple[str, str]:
    lines = [
        _greeting(data),
        "",
        "A deposit was just recorded on your canteen account.",
        "",
        f"Amount paid: {format_cents(data['total_paid_cents'])}",
    ]
    if data.get("contribution_cents", 0) > 0:
        lines.append(f"  - to your account: {format_cents(data['deposited_cents'])}")
        lines.append(f"  - shortage contribution: {format_cents(data['contribution_cents'])}")
    lines += [
        "",
        f"Previous balance: {format_cents(data['previous_balance_cents'])}",
        f"New balance: {format_cents(data['new_balance_cents'])}",
    ]
    if data["new_balance_cents"] > 0:
        lines += ["", f"You have {format_cents(data['new_balance_cents'])} of credit for future purchases."]
    lines += ["", "Thank you,", APP_NAME]
    return f"{APP_NAME} - deposit confirmation", "\n".join(lines)


def _render_reminder(data: dict) -> tuple[str, str]:
    debt = format_cents(abs(data["balance_cents"]))
    text = "\n".join([
        _greeting(data),
        "",
        f"Your canteen account is in debt: {debt}.",
        "Please settle it with the office at your earliest convenience.",
        "",
        "Thank you,",
        APP_NAME,
    ])
    return f"{APP_NAME} - balance reminder", text


_RENDERERS = {
    KIND_OTP: _render_otp,
    KIND_DEPOSIT: _render_deposit,
    KIND_REMINDER: _render_reminder,
}


def render(kind: str, recipient: str, data: dict) -> Message:
    if kind not in VALID_KINDS:
        raise ValueError(f"Unknown notification kind: {kind}")
    subject, text = _RENDERERS[kind](data)
    return Message(recipient=recipient, subject=subject, text=text)


def _send_console(msg: Message) -> None:
    logger.info("EMAIL to=%s subject=%r\n%s", msg.recipient, msg.subject, msg.text)


def _send_smtp(msg: Message, config) -> None:
    email = EmailMessage()
    email["From"] = config["MAIL_FROM"]
    email["To"] = msg.recipient
    email["Subject"] = msg.subject
    email.set_content(msg.text)

    try:
        with smtplib.SMTP(config["SMTP_HOST"], config["SMTP_PORT"], timeout=10) as smtp:
            smtp.starttls()
            if config.get("SMTP_USERNAME"):
                smtp.login(config["SMTP_USERNAME"], config["SMTP_PASSWORD"])
            smtp.send_message(email)
    except (smtplib.SMTPException, OSError) as exc:
        raise NotificationError(f"SMTP delivery to {msg.recipient} failed: {exc}") from exc


def _send_http(msg: Message, config) -> None:
    url = config.get("MAIL_RELAY_URL")
    if not url:
        raise NotificationError("MAIL_RELAY_URL is not configured")

    headers = {}
    if config.get("MAIL_RELAY_API_KEY"):
        headers["Authorization"] = f"Bearer {config['MAIL_RELAY_API_KEY']}"

    payload = {
        "from": config["MAIL_FROM"],
        "to": [msg.recipient],
        "subject": msg.subject,
        "text": msg.text,
    }
    try:
        with httpx.Client(timeout=10.0) as client:
            resp = client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        raise NotificationError(f"Mail relay request failed: {exc}") from exc
    if not resp.is_success:
        raise NotificationError(f"Mail relay error: {resp.status_code} {resp.text}")


def send_notification(kind: str, recipient: str, data: dict) -> Message:
    """
    Render and deliver one email through the configured MAIL_MODE.

    Raises NotificationError when the transport fails. Callers decide whether
    that matters: login codes must arrive, confirmations and reminders are best-effort.
    """
    msg = render(kind, recipient, data)
    config = current_app.config
    mode = (config.get("MAIL_MODE") or MAIL_MODE_CONSOLE).lower()

    if mode == MAIL_MODE_CONSOLE:
        _send_console(msg)
    elif mode == MAIL_MODE_SMTP:
        _send_smtp(msg, config)
    elif mode == MAIL_MODE_HTTP:
        _send_http(msg, config)
    else:
        raise NotificationError(f"Unknown MAIL_MODE: {mode}")

    logger.info("Sent %s email to %s", kind, recipient)
    return msg
