"""
Best-effort approver notification.
"""

from unittest.mock import MagicMock, patch

import pytest

from cmdgate.core.approval import submit_request
from cmdgate.core.notifier import (
    NotificationError,
    notify_approvers,
    render_approval_email,
    send_email,
)
from cmdgate.core.schema import Role


def test_render_escapes_command():
    subject, body = render_approval_email("alice", "echo <script>", "req-1")
    assert "echo <script>" in subject
    assert "&lt;script&gt;" in body
    assert "req-1" in body


def test_send_email_without_smtp_password_is_skipped():
    with patch("cmdgate.core.notifier.smtplib.SMTP") as smtp:
        assert send_email("a@example.com", "s", "<p>b</p>") is False
    smtp.assert_not_called()


def test_send_email_uses_starttls(monkeypatch):
    monkeypatch.setenv("SMTP_PASSWORD", "secret")
    with patch("cmdgate.core.notifier.smtplib.SMTP") as smtp:
        server = smtp.return_value.__enter__.return_value
        assert send_email("a@example.com", "subject", "<p>body</p>") is True

    server.starttls.assert_called_once()
    server.login.assert_called_once()
    server.sendmail.assert_called_once()
    assert server.sendmail.call_args[0][1] == ["a@example.com"]


def test_send_email_failure_reports_reason(monkeypatch):
    monkeypatch.setenv("SMTP_PASSWORD", "secret")
    with patch("cmdgate.core.notifier.smtplib.SMTP", side_effect=OSError("unreachable")):
        with pytest.raises(NotificationError) as exc_info:
            send_email("a@example.com", "s", "b")
    assert "unreachable" in str(exc_info.value)


def test_notify_approvers_emails_only_approvers(make_user, member, no_notify):
    make_user(Role.APPROVER, username="ann")
    make_user(Role.APPROVER, username="abe")
    make_user(Role.ADMIN, username="root")
    request = submit_request(member[0], "make deploy", schedule=no_notify)

    with patch("cmdgate.core.notifier.send_email", return_value=True) as send:
        sent = notify_approvers(request, member[0].username)

    assert sent == 2
    recipients = sorted(call.args[0] for call in send.call_args_list)
    assert recipients == ["abe@example.com", "ann@example.com"]


def test_notify_approvers_never_raises(member, no_notify):
    request = submit_request(member[0], "make deploy", schedule=no_notify)
    with patch("cmdgate.core.notifier.list_approver_emails", side_effect=RuntimeError("db gone")):
        assert notify_approvers(request, member[0].username) == 0


def test_notify_with_failing_transport_still_counts_others(make_user, member, no_notify):
    make_user(Role.APPROVER, username="ann")
    make_user(Role.APPROVER, username="abe")
    request = submit_request(member[0], "make deploy", schedule=no_notify)

    send = MagicMock(side_effect=[NotificationError("SMTPRecipientsRefused: ann"), True])
    with patch("cmdgate.core.notifier.send_email", send), \
            patch("cmdgate.core.notifier.logger") as log:
        assert notify_approvers(request, member[0].username) == 1

    statuses = [call.args[2] for call in log.log_notification.call_args_list]
    assert sorted(statuses) == ["failed", "sent"]
    failed = next(call for call in log.log_notification.call_args_list if call.args[2] == "failed")
    assert "SMTPRecipientsRefused" in failed.kwargs["error"]


def test_unconfigured_smtp_is_logged_as_skipped(make_user, member, no_notify):
    make_user(Role.APPROVER, username="ann")
    request = submit_request(member[0], "make deploy", schedule=no_notify)

    with patch("cmdgate.core.notifier.logger") as log:
        assert notify_approvers(request, member[0].username) == 0

    log.log_notification.assert_called_once_with(request.id, "ann@example.com", "skipped")
