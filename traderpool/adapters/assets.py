"""In-memory token balances shared by pools, proposals and wallets."""

from collections import defaultdict
from collections.abc import Callable
from decimal import Decimal
from typing import Any

import structlog

from traderpool.core.errors import InsufficientBalanceError, ValidationError
from traderpool.core.fixed import ZERO, exact
from traderpool.core.guard import Snapshottable, TransactionScope
from traderpool.core.types import Address, Token

log = structlog.get_logger()

type TransferHook = Callable[[Token, Address, Address, Decimal], None]


class AssetLedger(Snapshottable):
    """Token balances keyed by (token, holder).

    Transfer hooks model tokens that call arbitrary code on every transfer.
    A hook runs after the balances move and may call back into the engine.

    Example:
        >>> assets = AssetLedger()
        >>> assets.mint("USDC", "alice", Decimal("100"))
        >>> assets.transfer("USDC", "alice", "bob", Decimal("40"))
        >>> assets.balance_of("USDC", "bob")
        Decimal('40')
    """

    _snapshot_exclude = frozenset({"_hooks", "transactions"})

    def __init__(self) -> None:
        self._balances: dict[Token, defaultdict[Address, Decimal]] = {}
        self._hooks: dict[Token, TransferHook] = {}
        self.transactions = TransactionScope()

    def _book(self, token: Token) -> defaultdict[Address, Decimal]:
        book = self._balances.get(token)
        if book is None:
            book = defaultdict(Decimal)
            self._balances[token] = book
        return book

    def balance_of(self, token: Token, holder: Address) -> Decimal:
        book = self._balances.get(token)
        if book is None:
            return ZERO
        return book.get(holder, ZERO)

    @exact
    def total_supply(self, token: Token) -> Decimal:
        book = self._balances.get(token)
        return sum(book.values(), ZERO) if book else ZERO

    @exact
    def mint(self, token: Token, to: Address, amount: Decimal) -> None:
        if amount < ZERO:
            raise ValidationError("negative amount")
        self._book(token)[to] += amount

    @exact
    def burn(self, token: Token, holder: Address, amount: Decimal) -> None:
        book = self._book(token)
        if book[holder] < amount:
            raise InsufficientBalanceError("burn amount exceeds balance")
        book[holder] -= amount

    @exact
    def transfer(self, token: Token, sender: Address, recipient: Address, amount: Decimal) -> None:
        if amount < ZERO:
            raise ValidationError("negative amount")

        book = self._book(token)
        if book[sender] < amount:
            log.debug(
                "assets.transfer_rejected",
                token=token,
                sender=sender,
                balance=book[sender],
                amount=amount,
            )
            raise InsufficientBalanceError("transfer amount exceeds balance")

        book[sender] -= amount
        book[recipient] += amount

        hook = self._hooks.get(token)
        if hook is not None:
            hook(token, sender, recipient, amount)

    def set_transfer_hook(self, token: Token, hook: TransferHook | None) -> None:
        if hook is None:
            self._hooks.pop(token, None)
        else:
            self._hooks[token] = hook

    def snapshot(self) -> dict[str, Any]:
        # Balances are plain Decimals; copying each book is enough.
        return {
            "_balances": {token: defaultdict(Decimal, book) for token, book in self._balances.items()}
        }
