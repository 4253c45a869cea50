"""
Contention tests: many sessions racing on one lesson or one booking, each in
its own thread like concurrent requests in the server's threadpool.
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from yogabook.core.clock import utcnow
from yogabook.core.exceptions import BookingDomainError, BookingNotFound, LessonFull, NoValidMembership
from yogabook.models import Booking, BookingStatusEnum, MembershipCardUsage, UsageTypeEnum
from yogabook.services.booking_engine import BookingEngine


def _race(session_factory, calls):
    """Run each call(session) on its own thread and session; return results or raised domain errors."""

    def attempt(call):
        with session_factory() as session:
            try:
                return call(session)
            except BookingDomainError as e:
                return e

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(attempt, calls))


@pytest.mark.parametrize("capacity,bookers", [(1, 6), (3, 8)])
def test_lesson_never_overbooks(session_factory, factory, count_rows, capacity, bookers):
    lesson_id = factory.lesson(max_students=capacity)
    card_ids = []
    for i in range(bookers):
        card_ids.append(factory.card(factory.user(f"user-{i}"), remaining=5))

    results = _race(session_factory, [
        (lambda s, open_id=f"user-{i}": BookingEngine(s).book(lesson_id, open_id))
        for i in range(bookers)
    ])

    winners = [r for r in results if not isinstance(r, BookingDomainError)]
    losers = [r for r in results if isinstance(r, BookingDomainError)]
    assert len(winners) == capacity
    assert all(isinstance(r, LessonFull) for r in losers)
    assert count_rows(Booking, lesson_id=lesson_id, status=BookingStatusEnum.CONFIRMED) == capacity
    assert count_rows(MembershipCardUsage, usage_type=UsageTypeEnum.CONSUME) == capacity


def test_same_user_double_submit_charges_once(session_factory, factory, remaining):
    card_id = factory.card(factory.user("alice"), remaining=5)
    lesson_id = factory.lesson()

    results = _race(session_factory, [
        lambda s: BookingEngine(s).book(lesson_id, "alice") for _ in range(4)
    ])

    assert len({r.booking_id for r in results}) == 1
    assert sum(1 for r in results if not r.already_booked) == 1
    assert remaining(card_id) == 4


def test_last_class_goes_to_one_lesson(session_factory, factory, remaining):
    card_id = factory.card(factory.user("alice"), remaining=1)
    lessons = [factory.lesson(title=f"Flow {i}") for i in range(3)]

    results = _race(session_factory, [
        (lambda s, lesson_id=lesson_id: BookingEngine(s).book(lesson_id, "alice"))
        for lesson_id in lessons
    ])

    assert sum(1 for r in results if not isinstance(r, BookingDomainError)) == 1
    assert remaining(card_id) == 0


def test_daily_cap_holds_across_different_lessons(session_factory, factory, remaining, count_rows):
    card_id = factory.card(factory.user("alice"), remaining=10, max_bookings_per_day=1)
    day = (utcnow() + timedelta(days=3)).replace(hour=7, minute=0, second=0, microsecond=0)
    lessons = [factory.lesson(start=day + timedelta(hours=2 * i), title=f"Flow {i}") for i in range(4)]

    results = _race(session_factory, [
        (lambda s, lesson_id=lesson_id: BookingEngine(s).book(lesson_id, "alice"))
        for lesson_id in lessons
    ])

    losers = [r for r in results if isinstance(r, BookingDomainError)]
    assert len(results) - len(losers) == 1
    assert all(isinstance(r, NoValidMembership) for r in losers)
    assert remaining(card_id) == 9
    assert count_rows(MembershipCardUsage, user_card_id=card_id, usage_type=UsageTypeEnum.CONSUME) == 1


def test_concurrent_cancels_refund_once(session_factory, factory, run, remaining, count_rows):
    card_id = factory.card(factory.user("alice"), remaining=3)
    lesson_id = factory.lesson()
    booking_id = run(lambda s: BookingEngine(s).book(lesson_id, "alice")).booking_id

    results = _race(session_factory, [
        lambda s: BookingEngine(s).cancel(booking_id, "alice") for _ in range(5)
    ])

    successes = [r for r in results if not isinstance(r, BookingDomainError)]
    assert len(successes) == 1
    assert successes[0].classes_refunded == 1
    assert all(isinstance(r, BookingNotFound) for r in results if r not in successes)
    assert remaining(card_id) == 3
    assert count_rows(MembershipCardUsage, booking_id=booking_id, usage_type=UsageTypeEnum.REFUND) == 1
