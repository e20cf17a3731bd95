from __future__ import annotations

import math
from datetime import datetime, timedelta

import pytest

from conftest import NOW, make_reminder
from reachout.models import StatusKind
from reachout.services.status import StatusClassifier


@pytest.fixture
def classifier(clock):
    return StatusClassifier(clock=clock)


@pytest.mark.parametrize(
    "due",
    [None, NOW - timedelta(days=3), NOW, NOW + timedelta(minutes=5), NOW + timedelta(days=9)],
)
def test_done_always_wins(classifier, due):
    reminder = make_reminder(due=due, is_done=True)
    status = classifier.classify(reminder, NOW)
    assert status.status == StatusKind.DONE
    assert not (status.is_overdue or status.is_due_soon or status.is_due_today)
    assert not (status.is_due_within_1_hour or status.is_active)
    assert status.days_until_due == 0
    assert status.hours_until_due == 0


def test_no_due_date_is_upcoming_forever(classifier):
    status = classifier.classify(make_reminder(due=None), NOW)
    assert status.status == StatusKind.UPCOMING
    assert math.isinf(status.days_until_due)
    assert math.isinf(status.hours_until_due)
    assert not status.is_active


def test_follow_up_not_required_is_upcoming(classifier):
    reminder = make_reminder(due=NOW - timedelta(days=1))
    reminder.follow_up_required = False
    status = classifier.classify(reminder, NOW)
    assert status.status == StatusKind.UPCOMING
    assert not status.is_overdue


def test_long_past_due_is_overdue_and_clamped(classifier):
    reminder = make_reminder(due=datetime(2020, 1, 1))
    status = classifier.classify(reminder, NOW)
    assert status.status == StatusKind.OVERDUE
    assert status.is_overdue
    assert status.is_active
    assert status.days_until_due == 0
    assert status.hours_until_due == 0
    assert status.seconds_until_due < 0


def test_due_exactly_now_is_overdue(classifier):
    status = classifier.classify(make_reminder(due=NOW), NOW)
    assert status.status == StatusKind.OVERDUE


def test_due_in_thirty_minutes(classifier):
    status = classifier.classify(make_reminder(due=NOW + timedelta(minutes=30)), NOW)
    assert status.status == StatusKind.DUE_SOON
    assert status.is_due_soon
    assert status.is_due_within_1_hour
    assert status.is_due_today
    assert status.hours_until_due == pytest.approx(0.5)
    assert status.days_until_due == 1


def test_later_today_is_due_today(classifier):
    status = classifier.classify(make_reminder(due=NOW + timedelta(hours=5)), NOW)
    assert status.status == StatusKind.DUE_TODAY
    assert status.is_due_soon
    assert status.is_due_today
    assert not status.is_due_within_1_hour


def test_tomorrow_within_a_day_is_due_soon(classifier):
    status = classifier.classify(make_reminder(due=NOW + timedelta(hours=20)), NOW)
    assert status.status == StatusKind.DUE_SOON
    assert not status.is_due_today


def test_beyond_threshold_is_upcoming(classifier):
    status = classifier.classify(make_reminder(due=NOW + timedelta(days=3, hours=1)), NOW)
    assert status.status == StatusKind.UPCOMING
    assert status.is_active
    assert status.days_until_due == 4


def test_cache_reused_within_ttl(classifier):
    reminder = make_reminder(due=NOW + timedelta(seconds=30))
    first = classifier.classify(reminder, NOW)
    # 45s later the reminder is really overdue, but the cached entry is still fresh
    assert classifier.classify(reminder, NOW + timedelta(seconds=45)) is first
    assert classifier.cache_size == 1


def test_cache_recomputed_when_stale(classifier):
    reminder = make_reminder(due=NOW + timedelta(seconds=30))
    classifier.classify(reminder, NOW)
    status = classifier.classify(reminder, NOW + timedelta(seconds=61))
    assert status.status == StatusKind.OVERDUE


def test_cache_recomputed_when_input_changes(classifier):
    reminder = make_reminder(due=NOW - timedelta(hours=1))
    assert classifier.classify(reminder, NOW).status == StatusKind.OVERDUE
    reminder.is_done = True
    assert classifier.classify(reminder, NOW).status == StatusKind.DONE
    reminder.is_done = False
    reminder.follow_up_due_date = NOW + timedelta(days=5)
    assert classifier.classify(reminder, NOW).status == StatusKind.UPCOMING


def test_cache_notices_follow_up_required_toggle(classifier):
    reminder = make_reminder(due=NOW - timedelta(hours=1))
    assert classifier.classify(reminder, NOW).is_overdue
    reminder.follow_up_required = False
    assert not classifier.classify(reminder, NOW).is_active


def test_cache_holds_one_entry_per_interaction(classifier):
    reminder = make_reminder(due=NOW)
    for n in range(1000):
        reminder.follow_up_due_date = NOW + timedelta(minutes=n)
        classifier.classify(reminder, NOW + timedelta(seconds=120 * n))
    assert classifier.cache_size == 1


def test_categorize_prunes_departed_interactions(classifier, clock):
    classifier.categorize([make_reminder(i, due=NOW) for i in range(1, 51)])
    assert classifier.cache_size == 50
    for _ in range(5):
        clock.advance(60)
        classifier.categorize([make_reminder(1, due=NOW)])
    assert classifier.cache_size == 1


def test_clear_and_prune(classifier, clock):
    classifier.classify(make_reminder(1, due=NOW), NOW)
    classifier.classify(make_reminder(2, due=NOW), NOW)
    clock.advance(120)
    classifier.classify(make_reminder(3, due=NOW), clock.now())
    assert classifier.prune() == 2
    assert classifier.cache_size == 1
    classifier.clear()
    assert classifier.cache_size == 0


def test_defaults_to_clock_time(classifier, clock):
    reminder = make_reminder(due=NOW + timedelta(minutes=10))
    assert classifier.classify(reminder).status == StatusKind.DUE_SOON
    clock.advance(3600)
    assert classifier.classify(reminder).status == StatusKind.OVERDUE


def test_categorize_and_stats(classifier):
    reminders = [
        make_reminder(1, due=NOW - timedelta(days=1)),
        make_reminder(2, due=NOW + timedelta(minutes=20)),
        make_reminder(3, due=NOW + timedelta(hours=6)),
        make_reminder(4, due=NOW + timedelta(days=10)),
        make_reminder(5, due=NOW - timedelta(days=1), is_done=True),
        make_reminder(6, due=None),
    ]
    groups = classifier.categorize(reminders, NOW)
    assert [i.id for i in groups.overdue] == [1]
    assert [i.id for i in groups.due_soon] == [2]
    assert [i.id for i in groups.due_today] == [3]
    assert [i.id for i in groups.upcoming] == [4, 6]
    assert [i.id for i in groups.done] == [5]

    stats = classifier.stats(reminders, NOW)
    assert stats.total == 5
    assert stats.overdue == 1
    assert stats.done == 1


def test_categorize_isolates_bad_records(classifier):
    broken = make_reminder(1, due="not a date")
    good = make_reminder(2, due=NOW - timedelta(hours=2))
    groups = classifier.categorize([broken, good], NOW)
    assert [i.id for i in groups.overdue] == [2]


def test_newly_overdue():
    assert StatusClassifier.newly_overdue([1, 2, 3], [2]) == [1, 3]
    assert StatusClassifier.newly_overdue([], [1]) == []
