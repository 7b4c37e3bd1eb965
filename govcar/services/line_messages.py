"""Flex and text payloads pushed to drivers over LINE."""
import json
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from govcar.models.booking import Booking
from govcar.models.driver import Driver
from govcar.models.vehicle import Vehicle

WORK_DAY_START_HOUR = 8
WORK_DAY_END_HOUR = 16
ADVANCE_BOOKING_THRESHOLD = timedelta(hours=1)

COLOR_OFF_HOURS = "#F59E0B"
COLOR_ADVANCE = "#6366F1"
COLOR_DEFAULT = "#2563EB"


def to_local(value: datetime, tz_name: str) -> datetime:
    # SQLite hands back naive values; they are stored as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(ZoneInfo(tz_name))


def is_off_hours(value: datetime, tz_name: str) -> bool:
    """Weekend, or outside 08:00-16:00 local time."""
    local = to_local(value, tz_name)
    if local.weekday() >= 5:
        return True
    return local.hour < WORK_DAY_START_HOUR or local.hour >= WORK_DAY_END_HOUR


def text_message(text: str) -> dict:
    return {"type": "text", "text": text}


def _row(label: str, value: str | None) -> dict:
    return {
        "type": "box",
        "layout": "baseline",
        "contents": [
            {"type": "text", "text": label, "flex": 2, "color": "#555555"},
            {"type": "text", "text": value or "-", "flex": 5, "wrap": True},
        ],
    }


def _time_window(booking: Booking, tz_name: str) -> tuple[str, str]:
    start = to_local(booking.start_at, tz_name)
    window = start.strftime("%H:%M")
    if booking.end_at is not None:
        window = f"{window}-{to_local(booking.end_at, tz_name).strftime('%H:%M')}"
    return start.strftime("%d %b %Y"), window


def assignment_message(
    booking: Booking,
    vehicle: Vehicle | None,
    driver: Driver,
    *,
    base_url: str,
    tz_name: str,
    now: datetime,
) -> dict:
    start = booking.start_at if booking.start_at.tzinfo else booking.start_at.replace(tzinfo=timezone.utc)
    off_hours = is_off_hours(booking.start_at, tz_name)
    advance = start > now + ADVANCE_BOOKING_THRESHOLD

    if off_hours:
        title, color = "Off-hours assignment", COLOR_OFF_HOURS
    elif advance:
        title, color = "Advance booking", COLOR_ADVANCE
    else:
        title, color = "New job for you", COLOR_DEFAULT

    date_text, window = _time_window(booking, tz_name)

    return {
        "type": "flex",
        "altText": title,
        "contents": {
            "type": "bubble",
            "size": "mega",
            "header": {
                "type": "box",
                "layout": "vertical",
                "paddingAll": "20px",
                "backgroundColor": color,
                "contents": [
                    {"type": "text", "text": title, "weight": "bold", "size": "xl", "color": "#FFFFFF"},
                ],
            },
            "body": {
                "type": "box",
                "layout": "vertical",
                "spacing": "md",
                "paddingAll": "18px",
                "contents": [
                    {"type": "text", "text": f"Job: {booking.request_code}", "weight": "bold", "size": "lg"},
                    {"type": "separator", "margin": "lg"},
                    _row("Vehicle", vehicle.plate_number if vehicle else None),
                    _row("Date", date_text),
                    _row("Time", window),
                    _row("Requester", booking.requester_name),
                    _row("Destination", booking.destination),
                    _row("Driver", driver.full_name),
                    _row("Purpose", booking.purpose),
                ],
            },
            "footer": {
                "type": "box",
                "layout": "vertical",
                "paddingAll": "16px",
                "contents": [
                    {
                        "type": "button",
                        "style": "primary",
                        "color": "#4CAF50",
                        "action": {
                            "type": "postback",
                            "label": "Accept job",
                            "data": json.dumps({"type": "ACCEPT_JOB", "booking_id": booking.id}),
                        },
                    },
                    {
                        "type": "button",
                        "style": "secondary",
                        "margin": "sm",
                        "action": {"type": "uri", "label": "Vehicle calendar", "uri": f"{base_url}/calendar"},
                    },
                    {
                        "type": "text",
                        "text": "Please accept within 1 hour",
                        "size": "xs",
                        "color": "#777777",
                        "align": "center",
                        "margin": "md",
                    },
                ],
            },
        },
    }


def accept_success_message(booking: Booking, *, base_url: str) -> dict:
    return {
        "type": "flex",
        "altText": "Job accepted",
        "contents": {
            "type": "bubble",
            "body": {
                "type": "box",
                "layout": "vertical",
                "spacing": "md",
                "contents": [
                    {"type": "text", "text": "Job accepted!", "weight": "bold", "size": "xl", "color": "#16A34A"},
                    {"type": "text", "text": f"Job: {booking.request_code}", "size": "md"},
                    {
                        "type": "text",
                        "text": "Record the start mileage before you leave.",
                        "size": "sm",
                        "wrap": True,
                        "color": "#555555",
                    },
                ],
            },
            "footer": {
                "type": "box",
                "layout": "vertical",
                "contents": [
                    {
                        "type": "button",
                        "style": "primary",
                        "action": {
                            "type": "uri",
                            "label": "Record start mileage",
                            "uri": f"{base_url}/driver/start-mileage?booking={booking.id}",
                        },
                    }
                ],
            },
        },
    }


def already_accepted_message() -> dict:
    return text_message("You have already accepted this job. Please carry on.")


def not_assigned_message(booking: Booking) -> dict:
    return text_message(f"Job {booking.request_code} has been reassigned to another driver.")


def not_acceptable_message(booking: Booking) -> dict:
    return text_message(f"Job {booking.request_code} can no longer be accepted (status {booking.status}).")


def reminder_message(bookings: list[Booking], *, base_url: str) -> dict:
    items = [
        {
            "type": "box",
            "layout": "vertical",
            "margin": "md",
            "paddingAll": "10px",
            "backgroundColor": "#F8FAFC",
            "cornerRadius": "8px",
            "contents": [
                {"type": "text", "text": b.request_code, "weight": "bold", "size": "sm", "color": "#1E3A8A"},
                {"type": "text", "text": f"Purpose: {b.purpose or '-'}", "size": "xs", "wrap": True},
                {
                    "type": "button",
                    "style": "primary",
                    "height": "sm",
                    "color": "#EF4444",
                    "margin": "sm",
                    "action": {
                        "type": "uri",
                        "label": "Record mileage",
                        "uri": f"{base_url}/driver/start-mileage?booking={b.id}",
                    },
                },
            ],
        }
        for b in bookings
    ]
    return {
        "type": "flex",
        "altText": "Reminder: you have unfinished jobs",
        "contents": {
            "type": "bubble",
            "header": {
                "type": "box",
                "layout": "vertical",
                "paddingAll": "20px",
                "backgroundColor": "#EF4444",
                "contents": [
                    {"type": "text", "text": "Pending jobs", "weight": "bold", "size": "xl", "color": "#FFFFFF"},
                ],
            },
            "body": {
                "type": "box",
                "layout": "vertical",
                "paddingAll": "18px",
                "contents": [
                    {
                        "type": "text",
                        "text": "These jobs still have no closing mileage recorded.",
                        "size": "sm",
                        "wrap": True,
                    },
                    {"type": "separator", "margin": "lg"},
                    *items,
                ],
            },
        },
    }
