"""
Admin e-mail fallback over SMTP.

smtplib is blocking, so sends run in a worker thread.
"""
import asyncio
import logging
import smtplib
from email.message import EmailMessage
from html import escape

from govcar.config import get_settings
from govcar.exceptions import NotificationError
from govcar.models.booking import Booking
from govcar.models.driver import Driver
from govcar.models.vehicle import Vehicle

logger = logging.getLogger(__name__)
settings = get_settings()


class Mailer:
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender: str = "",
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender or username
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.host and self.sender)

    async def send(self, to: str, subject: str, html: str) -> None:
        if not self.configured:
            raise NotificationError("SMTP is not configured")
        if not to:
            raise NotificationError("No admin e-mail address configured")

        msg = EmailMessage()
        msg["From"] = f"Gov Car Booking <{self.sender}>"
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")

        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP send to %s failed: %s", to, exc)
            raise NotificationError(f"E-mail send failed: {exc}") from exc
        logger.info("Admin e-mail sent to=%s subject=%r", to, subject)

    def _deliver(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)


def assignment_email(booking: Booking, vehicle: Vehicle | None, driver: Driver, base_url: str) -> tuple[str, str]:
    """Returns (subject, html) for the admin copy of an assignment."""
    subject = f"[Vehicle booking] {booking.request_code} assigned to {driver.full_name}"
    rows = [
        ("Job", booking.request_code),
        ("Start", booking.start_at.isoformat()),
        ("Requester", booking.requester_name),
        ("Destination", booking.destination or "-"),
        ("Purpose", booking.purpose or "-"),
        ("Vehicle", vehicle.plate_number if vehicle else "-"),
        ("Driver", driver.full_name),
        ("Chat delivery", "LINE" if driver.chat_channel_id else "no LINE account linked"),
    ]
    body = "".join(f"<p><strong>{escape(k)}:</strong> {escape(str(v))}</p>" for k, v in rows)
    html = f"""
    <div style="font-family: Arial, sans-serif; padding: 20px; color: #333;">
      <h2 style="color: #1E3A8A;">Driver assigned</h2>
      {body}
      <a href="{escape(base_url)}/admin/requests?id={escape(booking.id)}"
         style="background-color: #1E3A8A; color: white; padding: 10px 20px; text-decoration: none; border-radius: 5px;">
         Open booking
      </a>
      <p style="margin-top: 20px; font-size: 12px; color: #777;">Automated message, please do not reply.</p>
    </div>
    """
    return subject, html


def build_mailer() -> Mailer:
    return Mailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        sender=settings.email_from,
        timeout=settings.notification_timeout_seconds,
    )
