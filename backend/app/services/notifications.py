from __future__ import annotations

import html
import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from email.message import EmailMessage
from typing import Protocol
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

_MONTHS_PL = (
    "stycznia",
    "lutego",
    "marca",
    "kwietnia",
    "maja",
    "czerwca",
    "lipca",
    "sierpnia",
    "września",
    "października",
    "listopada",
    "grudnia",
)


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    text: str
    html: str | None = None


def resolve_timezone(name: str | None) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def format_deletion_date(value: datetime, tz: tzinfo = timezone.utc) -> str:
    local = value.astimezone(tz)
    return f"{local.day} {_MONTHS_PL[local.month - 1]} {local.year}, {local:%H:%M}"


def deletion_undo_link(dashboard_url: str, undo_token: str) -> str:
    return f"{dashboard_url.rstrip('/')}/auth/undo-deletion/{undo_token}"


def dashboard_login_link(dashboard_url: str) -> str:
    return f"{dashboard_url.rstrip('/')}/login"


def deletion_requested_email(undo_link: str, scheduled_at: datetime, tz: tzinfo = timezone.utc) -> EmailTemplate:
    when = format_deletion_date(scheduled_at, tz)
    consequences = [
        "Twoje konto, profil, galerie, zdjęcia, klienci i pakiety zostaną trwale usunięte",
        "Galerie klientów będą zachowane do momentu ich wygaśnięcia",
        "Dane finansowe (saldo portfela, transakcje i faktury) zostaną zachowane zgodnie z wymogami prawnymi",
    ]
    text = (
        "Witaj,\n\n"
        "Otrzymaliśmy prośbę o usunięcie Twojego konta.\n\n"
        f"Twoje konto zostanie usunięte: {when}\n\n"
        "Jeśli nie prosiłeś o usunięcie konta lub chcesz anulować tę operację, kliknij poniższy link:\n\n"
        f"{undo_link}\n\n"
        "Ten link będzie ważny do momentu usunięcia konta.\n\n"
        "Konsekwencje usunięcia konta:\n"
        + "\n".join(f"- {line}" for line in consequences)
    )
    link = html.escape(undo_link, quote=True)
    items = "".join(f"<li>{html.escape(line)}</li>" for line in consequences)
    body = (
        "<h2>Potwierdzenie prośby o usunięcie konta</h2>"
        "<p>Witaj,</p>"
        "<p>Otrzymaliśmy prośbę o usunięcie Twojego konta.</p>"
        f"<p><strong>Data usunięcia konta: {html.escape(when)}</strong></p>"
        "<p>Jeśli nie prosiłeś o usunięcie konta lub chcesz anulować tę operację, kliknij poniższy link:</p>"
        f'<p><a href="{link}">Anuluj usunięcie konta</a></p>'
        "<p><small>Ten link będzie ważny do momentu usunięcia konta.</small></p>"
        f"<p><strong>Konsekwencje usunięcia konta:</strong></p><ul>{items}</ul>"
    )
    return EmailTemplate(subject="Potwierdzenie prośby o usunięcie konta", text=text, html=body)


def deletion_cancelled_email() -> EmailTemplate:
    return EmailTemplate(
        subject="Usunięcie konta zostało anulowane",
        text=(
            "Witaj,\n\n"
            "Usunięcie Twojego konta zostało pomyślnie anulowane.\n\n"
            "Twoje konto pozostaje aktywne i możesz z niego normalnie korzystać.\n\n"
            "Jeśli masz pytania, skontaktuj się z nami."
        ),
        html=(
            "<h2>Usunięcie konta zostało anulowane</h2>"
            "<p>Witaj,</p>"
            "<p>Usunięcie Twojego konta zostało pomyślnie anulowane.</p>"
            "<p>Twoje konto pozostaje aktywne i możesz z niego normalnie korzystać.</p>"
            "<p>Jeśli masz pytania, skontaktuj się z nami.</p>"
        ),
    )


def inactivity_final_warning_email(login_url: str, scheduled_at: datetime, tz: tzinfo = timezone.utc) -> EmailTemplate:
    when = format_deletion_date(scheduled_at, tz)
    text = (
        "Drogi Użytkowniku / Droga Użytkowniczko,\n\n"
        "To jest ostatnie ostrzeżenie przed usunięciem Twojego konta.\n\n"
        f"Twoje konto nie było używane od 12 miesięcy i zostanie automatycznie usunięte: {when}\n\n"
        "Jeśli chcesz zachować konto i wszystkie Twoje dane, zaloguj się TERAZ. "
        "Po zalogowaniu usunięcie zostanie automatycznie anulowane.\n"
        f"Zaloguj się teraz: {login_url}\n\n"
        "Jeśli nie zalogujesz się przed tą datą, Twoje konto zostanie trwale usunięte "
        "zgodnie z naszą polityką ochrony danych (RODO/GDPR)."
    )
    link = html.escape(login_url, quote=True)
    body = (
        "<h2>OSTATNIE OSTRZEŻENIE: Twoje konto zostanie usunięte</h2>"
        "<p>To jest ostatnie ostrzeżenie przed usunięciem Twojego konta.</p>"
        "<p>Twoje konto nie było używane od <strong>12 miesięcy</strong> i zostanie automatycznie usunięte:</p>"
        f"<p><strong>{html.escape(when)}</strong></p>"
        "<p>Jeśli chcesz zachować konto i wszystkie Twoje dane, <strong>zaloguj się TERAZ</strong>. "
        "Po zalogowaniu usunięcie zostanie automatycznie anulowane.</p>"
        f'<p><a href="{link}">Zaloguj się TERAZ</a></p>'
        "<p>Jeśli nie zalogujesz się przed tą datą, Twoje konto zostanie trwale usunięte "
        "zgodnie z naszą polityką ochrony danych (RODO/GDPR).</p>"
    )
    return EmailTemplate(subject="OSTATNIE OSTRZEŻENIE: Twoje konto zostanie usunięte", text=text, html=body)


class EmailSender(Protocol):
    provider_code: str

    def send(self, sender: str, to: str, template: EmailTemplate) -> None:
        ...


class SmtpEmailSender:
    provider_code = "smtp"

    def __init__(
        self,
        host: str,
        port: int = 587,
        *,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout_seconds: int = 10,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout_seconds = timeout_seconds

    def send(self, sender: str, to: str, template: EmailTemplate) -> None:
        msg = EmailMessage()
        msg["From"] = sender
        msg["To"] = to
        msg["Subject"] = template.subject
        msg.set_content(template.text)
        if template.html:
            msg.add_alternative(template.html, subtype="html")

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(msg)


class LogEmailSender:
    provider_code = "none"

    def send(self, sender: str, to: str, template: EmailTemplate) -> None:
        logger.info("Email provider disabled, not sending %r to %s", template.subject, to)


def get_email_sender(provider_code: str, settings) -> EmailSender:
    code = (provider_code or "none").strip().lower()
    if code == "smtp":
        return SmtpEmailSender(
            settings.SMTP_HOST,
            settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            timeout_seconds=settings.SIDE_EFFECT_TIMEOUT_SECONDS,
        )
    return LogEmailSender()


class DeletionNotifier:
    """Transactional emails for the deletion lifecycle.

    Errors propagate to the caller, which decides whether they are fatal.
    """

    def __init__(self, sender_address: str | None, email_sender: EmailSender, tz: tzinfo = timezone.utc):
        self.sender_address = sender_address
        self.email_sender = email_sender
        self.tz = tz

    def send_deletion_requested(self, to: str, undo_link: str, scheduled_at: datetime) -> None:
        self.email_sender.send(self.sender_address, to, deletion_requested_email(undo_link, scheduled_at, self.tz))

    def send_deletion_cancelled(self, to: str) -> None:
        self.email_sender.send(self.sender_address, to, deletion_cancelled_email())

    def send_inactivity_final_warning(self, to: str, login_url: str, scheduled_at: datetime) -> None:
        self.email_sender.send(self.sender_address, to, inactivity_final_warning_email(login_url, scheduled_at, self.tz))
