"""Tests for the transaction guard and event log."""

from decimal import Decimal

import msgspec
import pytest

from traderpool.core.errors import ReentrancyError
from traderpool.core.events import EventLog, Invested
from traderpool.core.guard import Snapshottable, TransactionGuard, TransactionScope, atomic


class Counter(Snapshottable):
    _snapshot_exclude = frozenset({"guard", "events"})

    def __init__(self, scope: TransactionScope | None = None) -> None:
        self.value = 0
        self.history: list[int] = []
        self.events = EventLog()
        self.guard = TransactionGuard("counter", scope=scope)
        self.guard.register(self, self.events)

    @atomic
    def bump(self, fail: bool = False) -> int:
        self.value += 1
        self.history.append(self.value)
        self.events.emit(
            Invested(pool="counter", actor="a", timestamp=0, amounts={}, value=Decimal(1), shares=Decimal(1))
        )
        if fail:
            raise ValueError("boom")
        return self.value

    @atomic
    def bump_twice(self) -> None:
        self.value += 1
        self.bump()

    @atomic
    def bump_other(self, other: "Counter", fail: bool = False) -> None:
        self.value += 1
        other.bump()
        if fail:
            raise ValueError("boom")


class TestTransactionGuard:
    def test_commits_on_success(self) -> None:
        """Test that a successful call keeps its effects."""
        counter = Counter()
        assert counter.bump() == 1
        assert counter.history == [1]
        assert len(counter.events) == 1

    def test_rolls_back_on_failure(self) -> None:
        """Test that a failed call leaves no trace, events included."""
        counter = Counter()
        counter.bump()

        with pytest.raises(ValueError, match="boom"):
            counter.bump(fail=True)

        assert counter.value == 1
        assert counter.history == [1]
        assert len(counter.events) == 1

    def test_nested_call_is_reentrant(self) -> None:
        """Test that a guarded call inside another raises and rolls back."""
        counter = Counter()

        with pytest.raises(ReentrancyError, match="reentrant call"):
            counter.bump_twice()

        assert counter.value == 0
        assert not counter.guard.locked

    def test_guard_released_after_failure(self) -> None:
        """Test that the lock is released even when the call raises."""
        counter = Counter()
        with pytest.raises(ValueError):
            counter.bump(fail=True)
        assert counter.bump() == 1

    def test_register_is_idempotent(self) -> None:
        guard = TransactionGuard("g")
        log = EventLog()
        guard.register(log, log)
        guard.register(log)
        assert len(guard._participants) == 1


class TestTransactionScope:
    def test_nested_call_commits_with_outer(self) -> None:
        scope = TransactionScope()
        outer, inner = Counter(scope), Counter(scope)

        outer.bump_other(inner)

        assert (outer.value, inner.value) == (1, 1)
        assert scope.depth == 0

    def test_outer_failure_undoes_nested_call(self) -> None:
        """Test that a nested call on another guard is rolled back with its caller."""
        scope = TransactionScope()
        outer, inner = Counter(scope), Counter(scope)

        with pytest.raises(ValueError, match="boom"):
            outer.bump_other(inner, fail=True)

        assert outer.value == 0
        assert inner.value == 0
        assert inner.history == []
        assert len(inner.events) == 0
        assert not inner.guard.locked
        assert inner.bump() == 1

    def test_separate_scopes_commit_independently(self) -> None:
        outer, inner = Counter(), Counter()

        with pytest.raises(ValueError):
            outer.bump_other(inner, fail=True)

        assert outer.value == 0
        assert inner.value == 1


class TestEventLog:
    def test_of_type_and_last(self) -> None:
        log = EventLog()
        event = Invested(
            pool="p", actor="a", timestamp=3, amounts={"WETH": Decimal(1)}, value=Decimal(1), shares=Decimal(1)
        )
        log.emit(event)
        assert log.of_type(Invested) == [event]
        assert log.last() is event

    def test_json_is_tagged(self) -> None:
        """Test that encoded events carry their type tag."""
        log = EventLog()
        log.emit(
            Invested(
                pool="p", actor="a", timestamp=3, amounts={"WETH": Decimal(2)}, value=Decimal(2), shares=Decimal(2)
            )
        )

        decoded = msgspec.json.decode(log.to_json())

        assert decoded[0]["type"] == "Invested"
        assert Decimal(decoded[0]["amounts"]["WETH"]) == Decimal(2)
