"""Security incident notifications (fire-and-forget)."""

from __future__ import annotations

import logging
import smtplib
import ssl
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Callable, Optional

from authcore.config import settings
from authcore.services.device_info import describe_device
from authcore.services.origin_guard import OriginFingerprint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlertRecipient:
    """Detached copy of the identity fields an alert needs."""

    user_id: int
    email: str
    name: str = ""

    @classmethod
    def from_user(cls, user) -> "AlertRecipient":
        return cls(user_id=user.id, email=user.email or "", name=user.name or "")


def redact_email(email: str) -> str:
    """Redact an email address for logging."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class IncidentNotifier:
    """Sink for security-relevant events. Implementations must not raise."""

    def notify_replay_detected(self, recipient: AlertRecipient, fingerprint: OriginFingerprint) -> None:
        raise NotImplementedError

    def notify_all_sessions_revoked(self, recipient: AlertRecipient, reason: str) -> None:
        raise NotImplementedError

    def notify_new_device_login(self, recipient: AlertRecipient, fingerprint: OriginFingerprint) -> None:
        raise NotImplementedError


class LoggingIncidentNotifier(IncidentNotifier):
    """Development sink: writes alerts to the log instead of sending them."""

    def notify_replay_detected(self, recipient, fingerprint):
        logger.warning(
            "security_alert replay_detected user_id=%s to=%s ip=%s device=%s",
            recipient.user_id,
            redact_email(recipient.email),
            fingerprint.ip_address,
            describe_device(fingerprint.user_agent),
        )

    def notify_all_sessions_revoked(self, recipient, reason):
        logger.warning(
            "security_alert all_sessions_revoked user_id=%s to=%s reason=%s",
            recipient.user_id,
            redact_email(recipient.email),
            reason,
        )

    def notify_new_device_login(self, recipient, fingerprint):
        logger.info(
            "security_alert new_device user_id=%s to=%s ip=%s device=%s",
            recipient.user_id,
            redact_email(recipient.email),
            fingerprint.ip_address,
            describe_device(fingerprint.user_agent),
        )


class EmailIncidentNotifier(IncidentNotifier):
    """Send alerts over SMTP with optional STARTTLS."""

    def __init__(
        self,
        *,
        smtp_host: str,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: bool = True,
        from_email: Optional[str] = None,
        from_name: str = "Store Security",
        timeout: float = 10.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.timeout = timeout

    def _send(self, to_email: str, subject: str, text_body: str) -> None:
        html_body = "<html><body>" + "".join(
            f"<p>{escape(line)}</p>" for line in text_body.split("\n") if line.strip()
        ) + "</body></html>"

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
            if self.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.smtp_user and self.smtp_password:
                server.login(self.smtp_user, self.smtp_password)
            server.sendmail(self.from_email, [to_email], msg.as_string())
        logger.info("Security alert sent to %s: %s", redact_email(to_email), subject)

    @staticmethod
    def _timestamp() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")

    def notify_replay_detected(self, recipient, fingerprint):
        body = (
            f"Hello {recipient.name or recipient.email},\n"
            "Suspicious activity was detected on your account: a session token "
            "that had already been used was presented again.\n"
            f"Time: {self._timestamp()}\n"
            f"IP address: {fingerprint.ip_address or 'unknown'}\n"
            f"Device: {describe_device(fingerprint.user_agent) or 'unknown'}\n"
            "All of your sessions have been signed out. If this was not you, "
            "change your password immediately."
        )
        self._send(recipient.email, "Security alert: suspicious activity detected", body)

    def notify_all_sessions_revoked(self, recipient, reason):
        body = (
            f"Hello {recipient.name or recipient.email},\n"
            "You have been signed out of all devices.\n"
            f"Reason: {reason}\n"
            f"Time: {self._timestamp()}\n"
            "Sign in again to continue."
        )
        self._send(recipient.email, "You have been signed out of all devices", body)

    def notify_new_device_login(self, recipient, fingerprint):
        body = (
            f"Hello {recipient.name or recipient.email},\n"
            "Your session was used from a new device or network.\n"
            f"Time: {self._timestamp()}\n"
            f"IP address: {fingerprint.ip_address or 'unknown'}\n"
            f"Device: {describe_device(fingerprint.user_agent) or 'unknown'}\n"
            "If this was not you, sign out of all devices and change your password."
        )
        self._send(recipient.email, "New sign-in detected", body)


class AsyncIncidentNotifier(IncidentNotifier):
    """
    Dispatch alerts on a small thread pool.

    Calls return immediately. Failures inside the delegate are logged and
    dropped; they never reach the caller and are not retried.
    """

    def __init__(self, delegate: IncidentNotifier, max_workers: int = 2) -> None:
        self.delegate = delegate
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="incident-notifier")

    def _submit(self, name: str, fn: Callable[..., None], *args) -> Optional[Future]:
        def run() -> None:
            try:
                fn(*args)
            except Exception as exc:
                logger.error("Incident notification %s failed: %s", name, exc, exc_info=True)

        try:
            return self._executor.submit(run)
        except RuntimeError as exc:
            # Executor already shut down.
            logger.error("Incident notification %s dropped: %s", name, exc)
            return None

    def notify_replay_detected(self, recipient, fingerprint):
        self._submit("replay_detected", self.delegate.notify_replay_detected, recipient, fingerprint)

    def notify_all_sessions_revoked(self, recipient, reason):
        self._submit("all_sessions_revoked", self.delegate.notify_all_sessions_revoked, recipient, reason)

    def notify_new_device_login(self, recipient, fingerprint):
        self._submit("new_device_login", self.delegate.notify_new_device_login, recipient, fingerprint)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def build_incident_notifier() -> AsyncIncidentNotifier:
    """SMTP delivery when SMTP_HOST is configured, log-only otherwise."""
    if settings.SMTP_HOST and (settings.ALERT_FROM_EMAIL or settings.SMTP_USER):
        delegate: IncidentNotifier = EmailIncidentNotifier(
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USER or None,
            smtp_password=settings.SMTP_PASSWORD or None,
            smtp_use_tls=settings.SMTP_USE_TLS,
            from_email=settings.ALERT_FROM_EMAIL or None,
            from_name=settings.ALERT_FROM_NAME,
            timeout=settings.SMTP_TIMEOUT_SECONDS,
        )
    else:
        delegate = LoggingIncidentNotifier()
    return AsyncIncidentNotifier(delegate, max_workers=settings.NOTIFIER_MAX_WORKERS)
