"""Tests for QuotaTracker over a rolling hourly window."""

import json

import pytest

from fleet.adapters.storage.json_store import JsonStorage
from fleet.infrastructure.quota import HISTORY_KEY, QuotaIOError, QuotaTracker

NOW = 1_700_000_000.0
MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS
NOW_MS = int(NOW * 1000)


@pytest.fixture
def storage(tmp_path):
    return JsonStorage(str(tmp_path))


@pytest.fixture
def tracker(storage):
    return QuotaTracker(storage=storage, clock=lambda: NOW)


def _seed(storage, account_id, action_type, timestamps_ms):
    data = storage.load(HISTORY_KEY)
    data.setdefault(account_id, {})[action_type] = list(timestamps_ms)
    storage.save(HISTORY_KEY, data)


class TestCanAct:
    def test_empty_history_is_available(self, tracker):
        assert tracker.can_act("a1", "likes", 10) is True
        assert tracker.time_until_available("a1", "likes", 10) == 0

    def test_hourly_scenario_blocks_and_waits_five_minutes(self, tracker, storage):
        """10 likes at 5-minute spacing, oldest 55 minutes ago."""
        stamps = [NOW_MS - m * MINUTE_MS for m in range(55, 5, -5)]
        assert len(stamps) == 10
        _seed(storage, "a1", "likes", stamps)

        assert tracker.can_act("a1", "likes", 10) is False
        assert tracker.time_until_available("a1", "likes", 10) == pytest.approx(300.0)

    def test_false_iff_window_count_reaches_limit(self, tracker, storage):
        _seed(storage, "a1", "likes", [NOW_MS - m * MINUTE_MS for m in (1, 2, 3, 4)])
        for limit in range(1, 8):
            assert tracker.can_act("a1", "likes", limit) is (4 < limit)

    def test_record_exactly_one_hour_old_is_outside_window(self, tracker, storage):
        _seed(storage, "a1", "likes", [NOW_MS - HOUR_MS])
        assert tracker.recent_count("a1", "likes") == 0
        assert tracker.can_act("a1", "likes", 1) is True

    def test_record_at_now_is_inside_window(self, tracker, storage):
        _seed(storage, "a1", "likes", [NOW_MS])
        assert tracker.recent_count("a1", "likes") == 1
        assert tracker.can_act("a1", "likes", 1) is False

    def test_future_records_are_ignored(self, tracker, storage):
        _seed(storage, "a1", "likes", [NOW_MS + MINUTE_MS])
        assert tracker.can_act("a1", "likes", 1) is True

    def test_types_and_accounts_are_independent(self, tracker, storage):
        _seed(storage, "a1", "likes", [NOW_MS - MINUTE_MS])
        assert tracker.can_act("a1", "likes", 1) is False
        assert tracker.can_act("a1", "comments", 1) is True
        assert tracker.can_act("a2", "likes", 1) is True

    def test_zero_limit_is_never_available(self, tracker):
        assert tracker.can_act("a1", "likes", 0) is False
        assert tracker.time_until_available("a1", "likes", 0) == tracker.window_seconds


class TestTimeUntilAvailable:
    def test_zero_whenever_can_act(self, tracker, storage):
        _seed(storage, "a1", "likes", [NOW_MS - 10 * MINUTE_MS])
        assert tracker.can_act("a1", "likes", 2) is True
        assert tracker.time_until_available("a1", "likes", 2) == 0

    def test_uses_oldest_in_window_record(self, tracker, storage):
        # Unsorted on disk; the 40-minute-old record vacates first
        _seed(storage, "a1", "likes", [
            NOW_MS - 5 * MINUTE_MS,
            NOW_MS - 40 * MINUTE_MS,
            NOW_MS - 90 * MINUTE_MS,
        ])
        assert tracker.time_until_available("a1", "likes", 2) == pytest.approx(20 * 60)

    def test_deterministic_for_fixed_clock(self, tracker, storage):
        _seed(storage, "a1", "likes", [NOW_MS - 30 * MINUTE_MS])
        first = tracker.time_until_available("a1", "likes", 1)
        second = tracker.time_until_available("a1", "likes", 1)
        assert first == second == pytest.approx(30 * 60)

    def test_explicit_now_overrides_clock(self, tracker, storage):
        _seed(storage, "a1", "likes", [NOW_MS - 30 * MINUTE_MS])
        later = NOW + 29 * 60
        assert tracker.time_until_available("a1", "likes", 1, now=later) == pytest.approx(60)


class TestRecord:
    def test_record_blocks_after_limit(self, tracker):
        for _ in range(3):
            assert tracker.can_act("a1", "likes", 3) is True
            tracker.record("a1", "likes")
        assert tracker.can_act("a1", "likes", 3) is False

    def test_record_returns_action_record(self, tracker):
        rec = tracker.record("a1", "comments")
        assert rec.account_id == "a1"
        assert rec.action_type == "comments"
        assert rec.timestamp_ms == NOW_MS

    def test_record_does_not_change_earlier_answers(self, tracker, storage):
        _seed(storage, "a1", "likes", [NOW_MS - 20 * MINUTE_MS])
        before = NOW - 1
        answer = tracker.can_act("a1", "likes", 2, now=before)
        wait = tracker.time_until_available("a1", "likes", 2, now=before)

        tracker.record("a1", "likes")

        assert tracker.can_act("a1", "likes", 2, now=before) == answer
        assert tracker.time_until_available("a1", "likes", 2, now=before) == wait
        assert tracker.can_act("a1", "likes", 2) is False

    def test_prunes_entries_older_than_a_day(self, tracker, storage):
        old = NOW_MS - 25 * HOUR_MS
        _seed(storage, "a1", "likes", [old, NOW_MS - MINUTE_MS])
        _seed(storage, "a2", "likes", [old])

        tracker.record("a1", "comments")

        data = storage.load(HISTORY_KEY)
        assert data["a1"]["likes"] == [NOW_MS - MINUTE_MS]
        assert data["a1"]["comments"] == [NOW_MS]
        # Other accounts are left alone
        assert data["a2"]["likes"] == [old]

    def test_history_layout_on_disk(self, tracker, storage):
        tracker.record("a1", "likes")
        raw = json.loads(storage.path_for(HISTORY_KEY).read_text(encoding="utf-8"))
        assert raw == {"a1": {"likes": [NOW_MS]}}


class TestRecordWithinLimit:
    def test_records_while_under_limit(self, tracker, storage):
        _seed(storage, "a1", "likes", [NOW_MS - m * MINUTE_MS for m in range(50, 5, -5)])

        rec = tracker.record_within_limit("a1", "likes", 10)

        assert rec is not None
        assert rec.timestamp_ms == NOW_MS
        assert tracker.recent_count("a1", "likes") == 10

    def test_refuses_when_window_is_full(self, tracker, storage):
        _seed(storage, "a1", "likes", [NOW_MS - m * MINUTE_MS for m in range(50, 0, -5)])

        assert tracker.record_within_limit("a1", "likes", 10) is None
        assert tracker.recent_count("a1", "likes") == 10

    def test_never_exceeds_limit_under_repeated_calls(self, tracker):
        results = [tracker.record_within_limit("a1", "likes", 3) for _ in range(6)]
        assert sum(1 for r in results if r is not None) == 3
        assert tracker.recent_count("a1", "likes") == 3

    def test_zero_limit_records_nothing(self, tracker):
        assert tracker.record_within_limit("a1", "likes", 0) is None
        assert tracker.recent_count("a1", "likes") == 0


class TestReloadBeforeUse:
    def test_writes_from_another_instance_are_seen(self, storage):
        reader = QuotaTracker(storage=storage, clock=lambda: NOW)
        writer = QuotaTracker(storage=storage, clock=lambda: NOW)

        assert reader.can_act("a1", "likes", 1) is True
        writer.record("a1", "likes")
        assert reader.can_act("a1", "likes", 1) is False

    def test_persists_across_instances(self, tmp_path):
        first = QuotaTracker(storage=JsonStorage(str(tmp_path)), clock=lambda: NOW)
        first.record("a1", "likes")
        first.record("a1", "likes")

        second = QuotaTracker(storage=JsonStorage(str(tmp_path)), clock=lambda: NOW)
        assert second.recent_count("a1", "likes") == 2


class _BrokenStorage:
    def __init__(self, fail_load=False, fail_save=False):
        self.fail_load = fail_load
        self.fail_save = fail_save
        self.saved = []

    def load(self, key):
        if self.fail_load:
            raise OSError("disk unreadable")
        return {}

    def save(self, key, data):
        if self.fail_save:
            raise OSError("disk full")
        self.saved.append(data)


class TestFailurePolicy:
    def test_corrupt_history_fails_open(self, tracker, storage):
        storage.path_for(HISTORY_KEY).write_text("{not json", encoding="utf-8")
        assert tracker.can_act("a1", "likes", 1) is True
        assert tracker.time_until_available("a1", "likes", 1) == 0

    def test_unreadable_storage_fails_open(self):
        tracker = QuotaTracker(storage=_BrokenStorage(fail_load=True), clock=lambda: NOW)
        assert tracker.can_act("a1", "likes", 1) is True

    def test_write_failure_does_not_raise(self):
        tracker = QuotaTracker(storage=_BrokenStorage(fail_save=True), clock=lambda: NOW)
        rec = tracker.record("a1", "likes")
        assert rec.timestamp_ms == NOW_MS

    def test_read_raises_quota_io_error_internally(self):
        tracker = QuotaTracker(storage=_BrokenStorage(fail_load=True), clock=lambda: NOW)
        with pytest.raises(QuotaIOError, match="unreadable"):
            tracker._read()

    def test_non_numeric_entries_are_ignored(self, tracker, storage):
        storage.save(HISTORY_KEY, {"a1": {"likes": ["x", None, True, NOW_MS - MINUTE_MS]}})
        assert tracker.recent_count("a1", "likes") == 1


class TestStatus:
    def test_status_shape(self, tracker, storage):
        _seed(storage, "a1", "likes", [NOW_MS - 10 * MINUTE_MS])
        status = tracker.status("a1", {"likes": 1, "comments": 5})
        assert status["likes"] == {
            "count": 1,
            "limit": 1,
            "available": False,
            "wait_seconds": pytest.approx(50 * 60),
        }
        assert status["comments"]["available"] is True
        assert status["comments"]["wait_seconds"] == 0
