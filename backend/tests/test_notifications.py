from datetime import datetime, timedelta, timezone

from app.core.config import settings
from app.services import notifications
from app.services.notifications import (
    DeletionNotifier,
    LogEmailSender,
    SmtpEmailSender,
    dashboard_login_link,
    deletion_cancelled_email,
    deletion_requested_email,
    deletion_undo_link,
    format_deletion_date,
    get_email_sender,
    inactivity_final_warning_email,
    resolve_timezone,
)
from tests.testkit import RecordingEmailSender

SCHEDULED = datetime(2025, 12, 12, 19, 9, tzinfo=timezone.utc)


def test_format_deletion_date_in_polish():
    assert format_deletion_date(SCHEDULED) == "12 grudnia 2025, 19:09"
    assert format_deletion_date(SCHEDULED, timezone(timedelta(hours=1))) == "12 grudnia 2025, 20:09"
    assert format_deletion_date(datetime(2026, 3, 1, 8, 5, tzinfo=timezone.utc)) == "1 marca 2026, 08:05"


def test_resolve_timezone_defaults_to_utc():
    assert resolve_timezone(None) is timezone.utc
    assert resolve_timezone("utc") is timezone.utc


def test_undo_link_points_at_dashboard():
    token = "ab" * 32
    assert deletion_undo_link("https://dashboard.test/", token) == f"https://dashboard.test/auth/undo-deletion/{token}"


def test_requested_email_carries_link_and_date():
    link = "https://dashboard.test/auth/undo-deletion/x?a=1&b=2"

    template = deletion_requested_email(link, SCHEDULED)

    assert template.subject == "Potwierdzenie prośby o usunięcie konta"
    assert link in template.text
    assert "12 grudnia 2025, 19:09" in template.text
    assert 'href="https://dashboard.test/auth/undo-deletion/x?a=1&amp;b=2"' in template.html


def test_cancelled_email():
    template = deletion_cancelled_email()
    assert template.subject == "Usunięcie konta zostało anulowane"
    assert "pozostaje aktywne" in template.text


def test_notifier_uses_sender_address():
    sender = RecordingEmailSender()
    notifier = DeletionNotifier("noreply@dashboard.test", sender)

    notifier.send_deletion_requested("owner@example.com", "https://dashboard.test/x", SCHEDULED)
    notifier.send_deletion_cancelled("owner@example.com")

    assert [(s, to) for s, to, _ in sender.sent] == [
        ("noreply@dashboard.test", "owner@example.com"),
        ("noreply@dashboard.test", "owner@example.com"),
    ]


def test_get_email_sender_by_provider_code():
    assert isinstance(get_email_sender("none", settings), LogEmailSender)
    assert isinstance(get_email_sender("", settings), LogEmailSender)
    smtp = get_email_sender(" SMTP ", settings)
    assert isinstance(smtp, SmtpEmailSender)
    assert smtp.host == settings.SMTP_HOST


def test_smtp_sender_builds_multipart_message(monkeypatch):
    sessions = []

    class FakeSMTP:
        def __init__(self, host, port, timeout):
            self.args = (host, port, timeout)
            self.calls = []
            sessions.append(self)

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self):
            self.calls.append("starttls")

        def login(self, username, password):
            self.calls.append(("login", username, password))

        def send_message(self, msg):
            self.calls.append(msg)

    monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)
    sender = SmtpEmailSender("smtp.test", 2525, username="user", password="secret", timeout_seconds=3)

    sender.send("noreply@dashboard.test", "owner@example.com", deletion_cancelled_email())

    [smtp] = sessions
    assert smtp.args == ("smtp.test", 2525, 3)
    assert smtp.calls[:2] == ["starttls", ("login", "user", "secret")]
    msg = smtp.calls[2]
    assert msg["To"] == "owner@example.com"
    assert msg["Subject"] == "Usunięcie konta zostało anulowane"
    assert msg.is_multipart()


def test_inactivity_final_warning_points_at_login():
    login = dashboard_login_link("https://dashboard.test/")

    template = inactivity_final_warning_email(login, SCHEDULED)

    assert login == "https://dashboard.test/login"
    assert "OSTATNIE OSTRZEŻENIE" in template.subject
    assert "12 grudnia 2025, 19:09" in template.text
    assert f'href="{login}"' in template.html


def test_notifier_sends_final_warning():
    sender = RecordingEmailSender()

    DeletionNotifier("noreply@dashboard.test", sender).send_inactivity_final_warning(
        "owner@example.com", "https://dashboard.test/login", SCHEDULED
    )

    [(_, to, template)] = sender.sent
    assert to == "owner@example.com"
    assert "https://dashboard.test/login" in template.text
