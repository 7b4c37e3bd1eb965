"""
Best-effort driver notifications.

Two channels per assignment, run concurrently:
  1. LINE push to the driver's chat channel (skipped when none is linked)
  2. E-mail summary to the admin address, always attempted
Failures are collected as warnings and never raised to the caller.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache

from govcar.config import get_settings
from govcar.exceptions import NotificationError
from govcar.models.booking import Booking
from govcar.models.driver import Driver
from govcar.models.vehicle import Vehicle
from govcar.services import line_messages
from govcar.services.line import LineClient, build_line_client
from govcar.services.mailer import Mailer, assignment_email, build_mailer

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class NotificationReport:
    chat_sent: bool = False
    email_sent: bool = False
    warnings: list[str] = field(default_factory=list)


def _describe(exc: BaseException) -> str:
    if isinstance(exc, NotificationError):
        return exc.detail
    return f"{exc.__class__.__name__}: {exc}"


class Notifier:
    def __init__(
        self,
        line: LineClient,
        mailer: Mailer,
        admin_email: str = "",
        base_url: str = "",
        tz_name: str = "UTC",
    ):
        self.line = line
        self.mailer = mailer
        self.admin_email = admin_email
        self.base_url = base_url
        self.tz_name = tz_name

    async def notify_driver_assignment(
        self,
        driver: Driver,
        booking: Booking,
        vehicle: Vehicle | None,
    ) -> NotificationReport:
        report = NotificationReport()

        if driver.chat_channel_id:
            message = line_messages.assignment_message(
                booking,
                vehicle,
                driver,
                base_url=self.base_url,
                tz_name=self.tz_name,
                now=datetime.now(timezone.utc),
            )
            chat = self.line.push(driver.chat_channel_id, [message])
        else:
            chat = None
            report.warnings.append(f"Driver {driver.full_name} has no chat channel; push skipped")

        subject, html = assignment_email(booking, vehicle, driver, self.base_url)
        email = self.mailer.send(self.admin_email, subject, html)

        tasks = [email] if chat is None else [chat, email]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        email_result = results[-1]

        if chat is not None:
            chat_result = results[0]
            if isinstance(chat_result, BaseException):
                report.warnings.append(f"Chat push for {booking.request_code} failed: {_describe(chat_result)}")
            else:
                report.chat_sent = True

        if isinstance(email_result, BaseException):
            report.warnings.append(f"Admin e-mail for {booking.request_code} failed: {_describe(email_result)}")
        else:
            report.email_sent = True

        for warning in report.warnings:
            logger.warning(warning)
        return report

    async def send_to_driver(self, driver: Driver | None, messages: list[dict]) -> NotificationReport:
        """Single-channel push, e.g. acceptance acknowledgements and reminders."""
        report = NotificationReport()
        if driver is None or not driver.chat_channel_id:
            report.warnings.append("No chat channel to reply to")
            return report
        try:
            await self.line.push(driver.chat_channel_id, messages)
            report.chat_sent = True
        except Exception as exc:
            report.warnings.append(f"Chat push to {driver.full_name} failed: {_describe(exc)}")
            logger.warning("Chat push to driver=%s failed: %s", driver.id, _describe(exc))
        return report


@lru_cache
def get_notifier() -> Notifier:
    return Notifier(
        line=build_line_client(),
        mailer=build_mailer(),
        admin_email=settings.admin_email,
        base_url=settings.public_base_url,
        tz_name=settings.local_timezone,
    )
