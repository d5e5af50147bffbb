"""
Unit tests for session aggregation rules (src/domain/aggregation.py)

Covers:
- Ascending sort by parsed start time
- Dedupe by start_time string
- Batch trigger: fires once per completed block of six
- Template selection per block
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.domain.aggregation import (
    BATCH_SIZE,
    CONFIRMATION_TEMPLATE,
    WELCOME_TEMPLATE,
    block_number,
    last_six,
    merge_session,
    should_notify,
    sort_sessions,
    template_for_block,
)
from src.domain.booking import SessionEntry


BOOKED_AT = "2024-05-01T00:00:00.000Z"


def weekly_entries(count, start=datetime(2024, 6, 1, 10, tzinfo=timezone.utc)):
    return [
        SessionEntry(
            start_time=(start + timedelta(weeks=i)).strftime("%Y-%m-%dT%H:%M:%SZ"),
            booked_at=BOOKED_AT,
        )
        for i in range(count)
    ]


class TestSortSessions:
    def test_sorts_ascending_by_parsed_time(self):
        entries = [
            SessionEntry("2024-06-15T10:00:00Z", BOOKED_AT),
            SessionEntry("2024-06-01T10:00:00Z", BOOKED_AT),
            SessionEntry("2024-06-08T10:00:00Z", BOOKED_AT),
        ]

        result = sort_sessions(entries)

        assert [e.start_time for e in result] == [
            "2024-06-01T10:00:00Z",
            "2024-06-08T10:00:00Z",
            "2024-06-15T10:00:00Z",
        ]

    def test_compares_instants_not_strings(self):
        """An offset timestamp sorts by its UTC instant."""
        entries = [
            SessionEntry("2024-06-01T12:00:00Z", BOOKED_AT),
            SessionEntry("2024-06-01T07:00:00-04:00", BOOKED_AT),  # 11:00Z
        ]

        result = sort_sessions(entries)

        assert result[0].start_time == "2024-06-01T07:00:00-04:00"


class TestMergeSession:
    def test_merge_into_empty_list(self):
        entry = SessionEntry("2024-06-01T10:00:00Z", BOOKED_AT)

        merged, added = merge_session([], entry)

        assert added is True
        assert merged == [entry]

    def test_merge_keeps_list_sorted(self):
        existing = weekly_entries(3)
        earlier = SessionEntry("2024-05-25T10:00:00Z", BOOKED_AT)

        merged, added = merge_session(existing, earlier)

        assert added is True
        assert merged[0] == earlier
        times = [e.start_datetime for e in merged]
        assert times == sorted(times)

    def test_duplicate_start_time_is_not_added(self):
        existing = weekly_entries(6)
        duplicate = SessionEntry(existing[2].start_time, "2024-07-01T00:00:00.000Z")

        merged, added = merge_session(existing, duplicate)

        assert added is False
        assert len(merged) == 6
        assert merged[2].booked_at == BOOKED_AT

    def test_equivalent_instant_with_different_text_is_added(self):
        """Dedupe compares the raw string, not the parsed instant."""
        existing = [SessionEntry("2024-06-01T10:00:00Z", BOOKED_AT)]
        same_instant = SessionEntry("2024-06-01T10:00:00.000Z", BOOKED_AT)

        merged, added = merge_session(existing, same_instant)

        assert added is True
        assert len(merged) == 2

    def test_merge_does_not_mutate_input(self):
        existing = weekly_entries(2)
        snapshot = list(existing)

        merge_session(existing, SessionEntry("2024-08-01T10:00:00Z", BOOKED_AT))

        assert existing == snapshot


class TestShouldNotify:
    def test_fires_exactly_at_sixth_and_twelfth_booking(self):
        entries = []
        fired_at = []

        for index, entry in enumerate(weekly_entries(12), start=1):
            entries, added = merge_session(entries, entry)
            if should_notify(entries, entry, added):
                fired_at.append(index)

        assert fired_at == [6, 12]

    def test_does_not_fire_when_entry_was_deduped(self):
        entries = weekly_entries(6)
        duplicate = SessionEntry(entries[-1].start_time, BOOKED_AT)

        merged, added = merge_session(entries, duplicate)

        assert len(merged) % BATCH_SIZE == 0
        assert should_notify(merged, duplicate, added) is False

    def test_does_not_fire_when_new_entry_is_not_latest(self):
        entries = weekly_entries(5, start=datetime(2024, 6, 8, 10, tzinfo=timezone.utc))
        earlier = SessionEntry("2024-06-01T10:00:00Z", BOOKED_AT)

        merged, added = merge_session(entries, earlier)

        assert len(merged) == 6
        assert should_notify(merged, earlier, added) is False

    def test_does_not_fire_on_partial_block(self):
        entries = weekly_entries(7)
        new_entry = entries[-1]

        assert should_notify(entries, new_entry, True) is False

    def test_empty_list_never_fires(self):
        assert should_notify([], SessionEntry("2024-06-01T10:00:00Z", BOOKED_AT), True) is False


class TestBlocksAndTemplates:
    def test_last_six_takes_latest_entries(self):
        entries = weekly_entries(9)

        result = last_six(entries)

        assert result == entries[3:]

    def test_last_six_of_short_list(self):
        entries = weekly_entries(2)

        assert last_six(entries) == entries

    @pytest.mark.parametrize("count,block", [(6, 1), (11, 1), (12, 2), (18, 3)])
    def test_block_number(self, count, block):
        assert block_number(count) == block

    def test_first_block_uses_welcome_template(self):
        assert template_for_block(1) == WELCOME_TEMPLATE

    @pytest.mark.parametrize("block", [2, 3, 10])
    def test_later_blocks_use_confirmation_template(self, block):
        assert template_for_block(block) == CONFIRMATION_TEMPLATE
