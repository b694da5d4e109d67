from __future__ import annotations

from datetime import UTC, datetime

from meeting_minutes_agent.domain.enums import TaskPriority
from meeting_minutes_agent.processing.action_items import (
    infer_priority,
    match_assignee,
    parse_deadline_hint,
    resolve_deadline,
)

NOW = datetime(2030, 1, 1, 10, 0, tzinfo=UTC)


def _finder(users: dict[str, int]):
    def _find(hint: str) -> int | None:
        for name, user_id in sorted(users.items(), key=lambda kv: kv[1]):
            if hint.lower() in name.lower():
                return user_id
        return None

    return _find


def test_tbd_goes_to_organizer():
    match = match_assignee("TBD", organizer_id=7, find_user_id=_finder({"Jane": 2}))
    assert match.user_id == 7
    assert match.matched is False


def test_empty_hint_goes_to_organizer():
    match = match_assignee("  ", organizer_id=7, find_user_id=_finder({"Jane": 2}))
    assert match.user_id == 7


def test_hint_matches_substring_case_insensitive():
    match = match_assignee("jane", organizer_id=7, find_user_id=_finder({"Jane Doe": 2}))
    assert match.user_id == 2
    assert match.matched is True


def test_unknown_hint_falls_back_to_organizer():
    match = match_assignee("Bob", organizer_id=7, find_user_id=_finder({"Jane": 2}))
    assert match.user_id == 7
    assert match.matched is False


def test_deadline_defaults_to_seven_days():
    assert resolve_deadline(None, now=NOW) == datetime(2030, 1, 8, 10, 0)
    assert resolve_deadline("next friday", now=NOW) == datetime(2030, 1, 8, 10, 0)


def test_deadline_iso_hint_is_used():
    assert resolve_deadline("2020-01-01", now=NOW) == datetime(2020, 1, 1)
    assert parse_deadline_hint("2031-05-02T12:30:00Z") == datetime(2031, 5, 2, 12, 30)


def test_priority_keywords():
    assert infer_priority("Urgent: fix budget", None) == TaskPriority.high
    assert infer_priority("Review", "do it ASAP") == TaskPriority.high
    assert infer_priority("Tidy docs", "low priority") == TaskPriority.low
    assert infer_priority("Prepare slides", None) == TaskPriority.medium
