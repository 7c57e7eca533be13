"""Structured events emitted by every mutating entry point.

Events are immutable msgspec structs tagged with their class name so the
whole log can be encoded as one JSON array for off-chain reconciliation.
"""

from decimal import Decimal
from typing import Any

import msgspec
import structlog

from traderpool.core.guard import Snapshottable
from traderpool.core.types import Address, ProposalId, Timestamp, Token

log = structlog.get_logger()


class Event(msgspec.Struct, frozen=True, kw_only=True, tag=True):
    """Common event header.

    Attributes:
        pool: Address of the emitting pool (parent or proposal pool)
        actor: Account that triggered the operation
        timestamp: Clock time of the transaction
    """

    pool: Address
    actor: Address
    timestamp: Timestamp


# Pool ledger


class Invested(Event, frozen=True, kw_only=True):
    amounts: dict[Token, Decimal]
    value: Decimal
    shares: Decimal


class Divested(Event, frozen=True, kw_only=True):
    shares: Decimal
    amounts: dict[Token, Decimal]
    commission_shares: Decimal


class Exchanged(Event, frozen=True, kw_only=True):
    from_token: Token
    to_token: Token
    amount_in: Decimal
    amount_out: Decimal


class SharesTransferred(Event, frozen=True, kw_only=True):
    recipient: Address
    shares: Decimal


class CommissionClosed(Event, frozen=True, kw_only=True):
    """Epoch close: fee shares minted to trader and treasury."""

    epoch: int
    nav: Decimal
    gains: Decimal
    commission_value: Decimal
    trader_shares: Decimal
    dao_shares: Decimal
    treasury: Address


class CommissionRealized(Event, frozen=True, kw_only=True):
    """Commission taken from a divesting slice before the epoch close."""

    investor: Address
    commission_value: Decimal
    trader_shares: Decimal
    dao_shares: Decimal
    treasury: Address


class AdminsModified(Event, frozen=True, kw_only=True):
    accounts: list[Address]
    added: bool


class PrivateInvestorsModified(Event, frozen=True, kw_only=True):
    accounts: list[Address]
    added: bool


class PoolParametersChanged(Event, frozen=True, kw_only=True):
    description: str
    private_pool: bool
    minimal_investment: Decimal
    total_lp_emission: Decimal


# Sub-proposals


class ProposalCreated(Event, frozen=True, kw_only=True):
    proposal_id: ProposalId
    token: Token | None
    lp_investment: Decimal
    base_investment: Decimal
    timestamp_limit: Timestamp
    invest_lp_limit: Decimal


class ProposalInvested(Event, frozen=True, kw_only=True):
    proposal_id: ProposalId
    investor: Address
    lp_investment: Decimal
    base_investment: Decimal
    lp2: Decimal


class ProposalDivested(Event, frozen=True, kw_only=True):
    proposal_id: ProposalId
    investor: Address
    lp2: Decimal
    lp_released: Decimal
    base_out: Decimal
    shares_minted: Decimal


class ProposalExchanged(Event, frozen=True, kw_only=True):
    proposal_id: ProposalId
    from_token: Token
    to_token: Token
    amount_in: Decimal
    amount_out: Decimal


class ProposalRestrictionsChanged(Event, frozen=True, kw_only=True):
    proposal_id: ProposalId
    timestamp_limit: Timestamp
    invest_lp_limit: Decimal
    max_token_price_limit: Decimal | None = None


class ProposalSharesTransferred(Event, frozen=True, kw_only=True):
    proposal_id: ProposalId
    recipient: Address
    lp2: Decimal


class ProposalWithdrawn(Event, frozen=True, kw_only=True):
    proposal_id: ProposalId
    amount: Decimal


class ProposalSupplied(Event, frozen=True, kw_only=True):
    proposal_id: ProposalId
    amounts: dict[Token, Decimal]


class ProposalConvertedToDividends(Event, frozen=True, kw_only=True):
    proposal_id: ProposalId
    amount: Decimal


class ProposalClaimed(Event, frozen=True, kw_only=True):
    proposal_id: ProposalId
    investor: Address
    amounts: dict[Token, Decimal]
    shares_minted: Decimal


class EventLog(Snapshottable):
    """Append-only list of emitted events, rolled back with the transaction."""

    def __init__(self) -> None:
        self.records: list[Event] = []

    def emit(self, event: Event) -> None:
        self.records.append(event)
        log.debug("event.emitted", kind=type(event).__name__, pool=event.pool)

    def of_type[E: Event](self, kind: type[E]) -> list[E]:
        return [record for record in self.records if isinstance(record, kind)]

    def last(self) -> Event | None:
        return self.records[-1] if self.records else None

    def to_json(self) -> bytes:
        return msgspec.json.encode(self.records)

    def snapshot(self) -> dict[str, Any]:
        # Events are frozen; a shallow copy of the list is enough.
        return {"records": list(self.records)}

    def __len__(self) -> int:
        return len(self.records)
