"""
Data Models and Core Components

Pydantic models for accounts, relationships, invitations, rankings and
referrals. The ledger, graph, propagation, referral chain and payment split
components live in their own modules and are imported from there.
"""

from trustnet.models.entities import (
    Account,
    AccountTier,
    TrustAccount,
    RelationshipEdge,
    RelationshipStatus,
    Invitation,
    InvitationStatus,
    ComputedTrustScore,
    TrustComputationLog,
    RankingSnapshot,
    JobForward,
    Referral,
    ReferralStatus,
    PaymentSplit,
)

__all__ = [
    "Account",
    "AccountTier",
    "TrustAccount",
    "RelationshipEdge",
    "RelationshipStatus",
    "Invitation",
    "InvitationStatus",
    "ComputedTrustScore",
    "TrustComputationLog",
    "RankingSnapshot",
    "JobForward",
    "Referral",
    "ReferralStatus",
    "PaymentSplit",
]
