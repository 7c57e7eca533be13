"""Reentrancy lock and all-or-nothing transactions.

A pool and its sub-proposal pool share one :class:`TransactionGuard`. Entering
any guarded operation while the guard is held raises
:class:`~traderpool.core.errors.ReentrancyError`. On entry the guard
snapshots every registered participant; if the operation raises, every
participant is restored before the exception propagates, so a failed call
leaves no partial effect behind.

Guards over one asset ledger share a :class:`TransactionScope`; a call that
reaches another pool from inside a transaction is committed or rolled back
with the outermost call.
"""

import copy
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from decimal import localcontext
from functools import wraps
from typing import Any, ClassVar, Concatenate, ParamSpec, Protocol, TypeVar

import structlog

from traderpool.core.errors import ReentrancyError
from traderpool.core.fixed import ENGINE_CONTEXT

log = structlog.get_logger()

P = ParamSpec("P")
T = TypeVar("T")


class Transactional(Protocol):
    """State holder that can be captured and rolled back."""

    def snapshot(self) -> Any: ...

    def restore(self, state: Any) -> None: ...


class Snapshottable:
    """Mixin capturing instance state with ``copy.deepcopy``.

    Attributes listed in ``_snapshot_exclude`` (collaborator handles, the
    guard itself) are left untouched on restore.
    """

    _snapshot_exclude: ClassVar[frozenset[str]] = frozenset()

    def snapshot(self) -> dict[str, Any]:
        return {
            name: copy.deepcopy(value)
            for name, value in vars(self).items()
            if name not in self._snapshot_exclude
        }

    def restore(self, state: dict[str, Any]) -> None:
        vars(self).update(state)


class TransactionScope:
    """Transaction depth shared by every guard over one asset ledger.

    A token hook running inside one pool's call may enter another pool whose
    guard is free. That nested call joins the outer transaction: only the
    outermost call commits, and if it fails every participant touched since
    it began is restored, nested calls that already returned included.
    """

    def __init__(self) -> None:
        self._depth = 0
        self._touched: list[tuple[Transactional, Any]] = []

    @property
    def depth(self) -> int:
        return self._depth

    @contextmanager
    def enter(self, snapshots: list[tuple[Transactional, Any]]) -> Iterator[None]:
        outermost = self._depth == 0
        for participant, state in snapshots:
            # The earliest capture wins; later ones already carry this transaction's changes.
            if not any(participant is known for known, _ in self._touched):
                self._touched.append((participant, state))

        self._depth += 1
        try:
            yield
        except Exception:
            if outermost:
                for participant, state in reversed(self._touched):
                    participant.restore(state)
            raise
        finally:
            self._depth -= 1
            if outermost:
                self._touched = []


class TransactionGuard:
    """Mutual-exclusion guard scoped to one mutating call.

    Guards built over the same asset ledger pass its ``transactions`` scope,
    so a call nested across pools is rolled back with the call around it.

    Example:
        >>> guard = TransactionGuard("pool-1", scope=ledger.transactions)
        >>> guard.register(ledger, pool)
        >>> with guard.transaction():
        ...     pool.apply_changes()
    """

    def __init__(self, name: str, scope: TransactionScope | None = None) -> None:
        self.name = name
        self.scope = scope if scope is not None else TransactionScope()
        self._entered = False
        self._participants: list[Transactional] = []

    def register(self, *participants: Transactional) -> None:
        for participant in participants:
            if not any(participant is known for known in self._participants):
                self._participants.append(participant)

    @property
    def locked(self) -> bool:
        return self._entered

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._entered:
            log.warning("guard.reentrant_call", guard=self.name)
            raise ReentrancyError("reentrant call")

        self._entered = True
        snapshots = [(p, p.snapshot()) for p in self._participants]
        try:
            with self.scope.enter(snapshots):
                yield
        except Exception as e:
            for participant, state in reversed(snapshots):
                participant.restore(state)
            log.info("guard.rolled_back", guard=self.name, depth=self.scope.depth, error=str(e))
            raise
        finally:
            self._entered = False


class Guarded(Protocol):
    guard: TransactionGuard


G = TypeVar("G", bound=Guarded)


def atomic(func: Callable[Concatenate[G, P], T]) -> Callable[Concatenate[G, P], T]:
    """Run a mutating method inside its owner's transaction guard and the engine decimal context."""

    @wraps(func)
    def wrapper(self: G, /, *args: P.args, **kwargs: P.kwargs) -> T:
        with self.guard.transaction(), localcontext(ENGINE_CONTEXT):
            return func(self, *args, **kwargs)

    return wrapper
