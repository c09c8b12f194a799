"""Unit tests for the readiness waiter."""

from __future__ import annotations

import pytest

from logical_fanout.errors import ConfigError, ReadinessTimeoutError
from logical_fanout.replication.readiness import wait_for_tables

from fakes import FakeAdmin, FakeDatabase, RecordingSleep


class _AppearsAfter(FakeAdmin):
    """Tables become visible only after a number of polls."""

    def __init__(self, db: FakeDatabase, polls_before: int, tables: set[str]) -> None:
        super().__init__(db, label="slow")
        self._polls_before = polls_before
        self._tables = tables

    def list_tables(self) -> set[str]:
        if self.db.polls >= self._polls_before:
            self.db.tables |= self._tables
        return super().list_tables()


class TestWaitForTables:
    def test_succeeds_on_first_poll(self):
        db = FakeDatabase(tables={"users"})
        sleep = RecordingSleep()
        ready = wait_for_tables(
            FakeAdmin(db), ["users", "posts"], 5, 2, label="source", sleep=sleep
        )
        assert ready.attempts == 1
        assert ready.found == ("users",)
        assert db.polls == 1
        assert sleep.calls == []

    def test_any_single_table_is_enough(self):
        db = FakeDatabase(tables={"posts"})
        ready = wait_for_tables(
            FakeAdmin(db), ["users", "posts"], 3, 1, sleep=RecordingSleep()
        )
        assert ready.found == ("posts",)

    def test_schema_qualified_names_match(self):
        db = FakeDatabase(tables={"users"})
        ready = wait_for_tables(
            FakeAdmin(db), ["public.users"], 3, 1, sleep=RecordingSleep()
        )
        assert ready.found == ("public.users",)

    def test_times_out_after_exactly_max_attempts(self):
        db = FakeDatabase(tables={"unrelated"})
        sleep = RecordingSleep()
        with pytest.raises(ReadinessTimeoutError) as exc_info:
            wait_for_tables(
                FakeAdmin(db),
                ["users"],
                4,
                3,
                label="target database (t1)",
                sleep=sleep,
            )
        assert db.polls == 4
        assert sleep.calls == [3, 3, 3]
        assert exc_info.value.attempts == 4
        assert exc_info.value.label == "target database (t1)"
        assert "target database (t1)" in str(exc_info.value)

    def test_timeout_is_a_builtin_timeout_error(self):
        with pytest.raises(TimeoutError):
            wait_for_tables(
                FakeAdmin(FakeDatabase()), ["users"], 1, 1, sleep=RecordingSleep()
            )

    def test_succeeds_when_tables_appear_later(self):
        db = FakeDatabase()
        sleep = RecordingSleep()
        admin = _AppearsAfter(db, polls_before=2, tables={"users"})
        ready = wait_for_tables(admin, ["users"], 5, 2, sleep=sleep)
        assert ready.attempts == 3
        assert sleep.calls == [2, 2]

    def test_connection_failures_count_as_not_ready(self):
        db = FakeDatabase(tables={"users"}, unavailable_polls=2)
        sleep = RecordingSleep()
        ready = wait_for_tables(FakeAdmin(db), ["users"], 5, 1, sleep=sleep)
        assert ready.attempts == 3
        assert len(sleep.calls) == 2

    def test_label_defaults_to_admin_label(self):
        with pytest.raises(ReadinessTimeoutError, match="slow"):
            wait_for_tables(
                FakeAdmin(FakeDatabase(), label="slow"),
                ["x"],
                1,
                1,
                sleep=RecordingSleep(),
            )

    def test_empty_expected_set_is_rejected_before_polling(self):
        db = FakeDatabase(tables={"users"})
        with pytest.raises(ConfigError, match="No tables to wait for in source"):
            wait_for_tables(
                FakeAdmin(db), [], 3, 1, label="source", sleep=RecordingSleep()
            )
        assert db.polls == 0
