"""
Unit tests for the best-effort Notifier: failures become warnings.
"""
from datetime import datetime, timedelta, timezone

import pytest

from govcar.exceptions import NotificationError
from govcar.models.booking import Booking
from govcar.models.driver import Driver


def _booking() -> Booking:
    return Booking(
        id="b-1",
        request_code="REQ-20261019-AAAAAA",
        requester_name="Land Office",
        start_at=datetime.now(timezone.utc) + timedelta(hours=3),
        status="ASSIGNED",
    )


@pytest.mark.asyncio
class TestNotifyDriverAssignment:
    async def test_both_channels_sent(self, notifier, line, mailer):
        driver = Driver(id="d-1", full_name="Somchai", chat_channel_id="U-1")

        report = await notifier.notify_driver_assignment(driver, _booking(), None)

        assert report.chat_sent and report.email_sent
        assert report.warnings == []
        line.push.assert_awaited_once()
        assert line.push.await_args.args[0] == "U-1"
        mailer.send.assert_awaited_once()
        assert mailer.send.await_args.args[0] == "fleet-admin@example.go.th"

    async def test_failures_are_reported_not_raised(self, notifier, line, mailer):
        line.push.side_effect = NotificationError("LINE monthly message quota reached")
        mailer.send.side_effect = ConnectionRefusedError("smtp down")
        driver = Driver(id="d-1", full_name="Somchai", chat_channel_id="U-1")

        report = await notifier.notify_driver_assignment(driver, _booking(), None)

        assert not report.chat_sent
        assert not report.email_sent
        assert len(report.warnings) == 2
        assert "quota" in report.warnings[0]

    async def test_no_chat_channel_sends_email_only(self, notifier, line, mailer):
        driver = Driver(id="d-1", full_name="Somchai", chat_channel_id=None)

        report = await notifier.notify_driver_assignment(driver, _booking(), None)

        line.push.assert_not_awaited()
        mailer.send.assert_awaited_once()
        assert report.email_sent and not report.chat_sent
        assert "no chat channel" in report.warnings[0]


@pytest.mark.asyncio
class TestSendToDriver:
    async def test_push_failure_is_a_warning(self, notifier, line):
        line.push.side_effect = NotificationError("LINE rejected push (400)")
        driver = Driver(id="d-1", full_name="Somchai", chat_channel_id="U-1")

        report = await notifier.send_to_driver(driver, [{"type": "text", "text": "hi"}])

        assert not report.chat_sent
        assert report.warnings

    async def test_missing_driver(self, notifier, line):
        report = await notifier.send_to_driver(None, [])
        line.push.assert_not_awaited()
        assert report.warnings == ["No chat channel to reply to"]
