"""
Availability projection for recurring sessions.

A template recurs on weekdays (Sunday = 0, matching how the schedule is
stored). The projector walks forward from "today" in the studio's time zone
and yields the next K occurrences. Today counts only while the session has
not started yet.

Ledger rows are created lazily: the first time a date becomes visible here
its slot is materialized with full capacity. Materialization is idempotent,
so two overlapping requests that both see a missing slot are harmless.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wellness_booking.models.session_template import SessionTemplate
from wellness_booking.services import ledger_service

# Weekly rotation for templates with rotating_topic set
ROTATING_TOPICS = (
    "Stress Management",
    "Diabetes & Hypertension",
    "Weight Loss",
    "PCOS/Women's Health",
)
ROTATION_REFERENCE_SUNDAY = date(2024, 1, 7)


@dataclass(frozen=True)
class SlotAvailability:
    date_key: str
    remaining: int
    capacity: int
    topic: Optional[str] = None


def schedule_weekday(day: date) -> int:
    """Weekday with Sunday = 0 (Python's date.weekday() has Monday = 0)."""
    return (day.weekday() + 1) % 7


def to_date_key(day: date) -> str:
    return day.isoformat()


def parse_date_key(date_key: str) -> date:
    return date.fromisoformat(date_key)


def upcoming_dates(
    recurring_days: Iterable[int],
    start_time: time,
    now: datetime,
    count: int,
    tz: ZoneInfo,
) -> Iterator[date]:
    """
    Yield up to `count` future occurrence dates, earliest first.

    `now` must be timezone-aware; it is converted to the studio zone before
    deciding what "today" is.
    """
    days = {int(d) for d in recurring_days if 0 <= int(d) <= 6}
    if not days or count <= 0:
        return

    local_now = now.astimezone(tz)
    today = local_now.date()
    produced = 0
    offset = 0
    while produced < count:
        candidate = today + timedelta(days=offset)
        offset += 1
        if schedule_weekday(candidate) not in days:
            continue
        if candidate == today and local_now.time() >= start_time:
            continue
        produced += 1
        yield candidate


def bookable_date_keys(
    template: SessionTemplate,
    now: datetime,
    count: int,
    tz: ZoneInfo,
) -> list[str]:
    return [
        to_date_key(d)
        for d in upcoming_dates(template.recurring_days or [], template.start_time, now, count, tz)
    ]


def topic_for_date(template: SessionTemplate, day: date) -> Optional[str]:
    """Specialized topic for one occurrence; rotating templates cycle weekly."""
    if not template.rotating_topic:
        return template.specialized_topic
    weeks = (day - ROTATION_REFERENCE_SUNDAY).days // 7
    return ROTATING_TOPICS[weeks % len(ROTATING_TOPICS)]


def occurrence_start(snapshot: dict, date_key: str, tz: ZoneInfo) -> datetime:
    """Aware start datetime of a booked occurrence, from the reservation snapshot."""
    start = time.fromisoformat(snapshot["start_time"])
    return datetime.combine(parse_date_key(date_key), start, tzinfo=tz)


async def project_availability(
    session_factory: async_sessionmaker[AsyncSession],
    template: SessionTemplate,
    now: datetime,
    count: int,
    tz: ZoneInfo,
) -> list[SlotAvailability]:
    """
    Bookable dates with remaining seats. Missing ledger rows are materialized
    with full capacity before their counts are reported.
    """
    results = []
    for day in upcoming_dates(template.recurring_days or [], template.start_time, now, count, tz):
        date_key = to_date_key(day)
        slot = await ledger_service.ensure_slot(session_factory, template, date_key)
        results.append(
            SlotAvailability(
                date_key=date_key,
                remaining=slot.remaining_capacity,
                capacity=slot.capacity,
                topic=topic_for_date(template, day),
            )
        )
    return results
