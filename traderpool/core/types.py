"""Shared type definitions using Python 3.12+ modern syntax."""

from collections.abc import Mapping
from decimal import Decimal

# Type aliases using PEP 695 syntax
type Address = str
type Token = str
type Amount = Decimal
type Timestamp = int  # seconds since epoch
type ProposalId = int
type TokenAmounts = Mapping[Token, Amount]
