"""
Core Data Models

Pydantic models for accounts, trust budgets, relationships, invitations,
computed rankings and referrals.
"""

import hashlib
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Upper bound of Invitation.trust_score, in 0-10 invitation units
MAX_INVITATION_SCORE = 10


def new_id() -> str:
    """Random record identifier."""
    return uuid.uuid4().hex[:16]


def account_id_for_email(email: str) -> str:
    """Deterministic account ID derived from an email address."""
    return hashlib.sha256(email.strip().lower().encode()).hexdigest()[:16]


def pair_key(account_a: str, account_b: str) -> tuple[str, str]:
    """Canonical key for an unordered account pair."""
    return (account_a, account_b) if account_a <= account_b else (account_b, account_a)


class AccountTier(str, Enum):
    """Membership tier, decides the initial trust endowment."""
    CONNECTOR = "connector"
    TALENT_SCOUT = "talent_scout"
    NETWORK_HUB = "network_hub"


class RelationshipStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class ReferralStatus(str, Enum):
    """Referral pipeline stages, in forward order."""
    PENDING = "pending"
    SCREENING = "screening"
    INTERVIEWING = "interviewing"
    HIRED = "hired"
    REJECTED = "rejected"


class ComputationTrigger(str, Enum):
    """Known sources of a propagation run."""
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    RELATIONSHIP_CHANGE = "relationship-change"


class Account(BaseModel):
    """A network member as seen by the account directory."""
    id: str = Field(default="", description="Derived from email when not given")
    email: str
    first_name: str = ""
    last_name: str = ""
    tier: AccountTier = AccountTier.CONNECTOR
    referred_by: Optional[str] = Field(
        default=None,
        description="Account that brought this member into the network",
    )
    created_at: datetime = Field(default_factory=datetime.now)

    def model_post_init(self, __context) -> None:
        """Derive ID from email if not provided."""
        if not self.id:
            self.id = account_id_for_email(self.email)

    @property
    def display_name(self) -> str:
        """Human-readable name for display."""
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.email


class TrustAccount(BaseModel):
    """Per-account trust budget.

    available_trust + allocated_trust == total_granted at all times.
    """
    account_id: str
    available_trust: int = Field(default=0, ge=0)
    allocated_trust: int = Field(default=0, ge=0)
    total_granted: int = Field(default=0, ge=0)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_balanced(self) -> bool:
        return (
            self.available_trust >= 0
            and self.allocated_trust >= 0
            and self.available_trust + self.allocated_trust == self.total_granted
        )


class RelationshipEdge(BaseModel):
    """A vouching relationship between two accounts.

    The pair is unordered; `initiated_by` records which endpoint sent the
    invitation and `trust_allocated` the trust that endpoint committed.
    """
    id: str = Field(default_factory=new_id)
    account_a: str
    account_b: str
    initiated_by: str
    trust_allocated: int = Field(default=0, ge=0)
    status: RelationshipStatus = RelationshipStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.now)
    confirmed_at: Optional[datetime] = None

    @property
    def pair(self) -> tuple[str, str]:
        return pair_key(self.account_a, self.account_b)

    def other(self, account_id: str) -> str:
        """Return the endpoint opposite `account_id`."""
        return self.account_b if account_id == self.account_a else self.account_a

    def involves(self, account_id: str) -> bool:
        return account_id in (self.account_a, self.account_b)


class Invitation(BaseModel):
    """Directed invitation from a sender to an email or existing account."""
    id: str = Field(default_factory=new_id)
    sender_id: str
    recipient_email: str
    recipient_id: Optional[str] = None
    trust_score: float = Field(
        ge=0.0,
        le=MAX_INVITATION_SCORE,
        description="Committed trust in the 0-10 unit (x10 = ledger points)",
    )
    trust_points: int = Field(ge=0, description="Ledger points reserved on send")
    status: InvitationStatus = InvitationStatus.PENDING
    edge_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    responded_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status == InvitationStatus.PENDING


class ComputedTrustScore(BaseModel):
    """One account's position in a published ranking."""
    model_config = ConfigDict(frozen=True)

    account_id: str
    rank: int = Field(ge=1)
    trust_score: float = Field(ge=0.0)
    display_score: int = Field(ge=0, le=100)
    percentile: int = Field(ge=0, le=100)


class TrustComputationLog(BaseModel):
    """Audit record of one propagation run."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    triggered_by: str
    iterations: int
    converged: bool
    num_accounts: int = 0
    num_edges: int = 0
    final_delta: float = 0.0
    damping: float = 0.85
    duration_ms: float = 0.0
    created_at: datetime = Field(default_factory=datetime.now)


class RankingSnapshot(BaseModel):
    """Immutable, versioned ranking published by one propagation run."""
    model_config = ConfigDict(frozen=True)

    version: int = Field(ge=1)
    log: TrustComputationLog
    scores: tuple[ComputedTrustScore, ...] = ()

    def get_score(self, account_id: str) -> Optional[ComputedTrustScore]:
        """Get an account's computed score."""
        for score in self.scores:
            if score.account_id == account_id:
                return score
        return None

    def top(self, n: int = 10) -> list[ComputedTrustScore]:
        """Get the N best-ranked accounts."""
        return sorted(self.scores, key=lambda s: s.rank)[:n]


class JobForward(BaseModel):
    """A job opportunity passed from one account to another."""
    id: str = Field(default_factory=new_id)
    job_id: str
    from_account: str
    to_account: str
    message: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class Referral(BaseModel):
    """A candidate introduced to a job through the network."""
    id: str = Field(default_factory=new_id)
    job_id: str
    candidate_email: str
    candidate_id: Optional[str] = None
    referrer_node: str = Field(description="Account that directly introduced the candidate")
    chain_path: list[str] = Field(
        default_factory=list,
        description="Root referrer first, direct referrer last",
    )
    chain_depth: int = 0
    status: ReferralStatus = ReferralStatus.PENDING
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def model_post_init(self, __context) -> None:
        """Keep depth in step with the path."""
        self.chain_depth = len(self.chain_path)


class PaymentSplit(BaseModel):
    """One participant's share of a hiring payout."""
    model_config = ConfigDict(frozen=True)

    account_id: str
    amount: int = Field(ge=0)
    weight: float = Field(ge=0.0, description="Normalized share before rounding")
    distance_from_hire: int = Field(ge=1, description="1 for the direct referrer")
