"""Sub-proposal funds carved out of a parent pool."""

from traderpool.proposals.base import ActiveInvestment, ProposalLimits, ProposalPool
from traderpool.proposals.invest import InvestProposalInfo, InvestProposalPool, RewardBasket, Rewards
from traderpool.proposals.risky import RiskyProposalInfo, RiskyProposalLimits, RiskyProposalPool

__all__ = [
    # Shared
    "ActiveInvestment",
    "ProposalLimits",
    "ProposalPool",
    # Invest rounds
    "InvestProposalInfo",
    "InvestProposalPool",
    "RewardBasket",
    "Rewards",
    # Risky bets
    "RiskyProposalInfo",
    "RiskyProposalLimits",
    "RiskyProposalPool",
]
