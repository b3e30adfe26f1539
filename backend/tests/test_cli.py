"""CLI command tests (flask users / reminders)."""

from bufet.models import User, ROLE_OFFICE_ASSISTANT
from bufet.services import ledger_service


def test_users_list(app, db_session, make_user):
    debtor = make_user(email="zed@example.com")
    ledger_service.append_entry(user_id=debtor.id, amount_cents=-740)
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["users", "list"])

    assert result.exit_code == 0
    assert "zed@example.com" in result.output
    assert "-7.40 EUR" in result.output


def test_users_list_empty(app, db_session):
    result = app.test_cli_runner().invoke(args=["users", "list"])
    assert "No users found." in result.output


def test_promote(app, db_session, make_user):
    user = make_user(email="helper@example.com")

    result = app.test_cli_runner().invoke(args=["users", "promote", "Helper@Example.com"])

    assert result.exit_code == 0
    db_session.refresh(user)
    assert user.role == ROLE_OFFICE_ASSISTANT


def test_promote_unknown(app, db_session):
    result = app.test_cli_runner().invoke(args=["users", "promote", "ghost@example.com"])
    assert result.exit_code != 0
    assert "User not found" in result.output
    assert db_session.query(User).count() == 0


def test_reminders_send(app, db_session, make_user, sent_notifications):
    debtor = make_user(email="deep@example.com")
    ledger_service.append_entry(user_id=debtor.id, amount_cents=-900)
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["reminders", "send"])

    assert result.exit_code == 0
    assert "PASS deep@example.com" in result.output
    assert "1 sent, 0 failed" in result.output
