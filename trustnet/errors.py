"""
Error Taxonomy

Exceptions raised by the trust ledger, relationship graph, propagation engine
and referral components.

ValidationError subclasses are caller mistakes and safe to show to users.
IntegrityError subclasses mean the stored data is corrupt; callers should log
them and answer with an internal error.
"""

from typing import Optional


class TrustNetError(Exception):
    """Base class for all trust network errors."""


class ValidationError(TrustNetError):
    """A request that cannot be honoured as given."""


class IntegrityError(TrustNetError):
    """Stored data violates an invariant."""


class InsufficientTrust(ValidationError):
    """Account does not have enough available trust for a reservation."""

    def __init__(self, account_id: str, available: int, requested: int):
        self.account_id = account_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient trust points for {account_id}. "
            f"Available: {available}, Requested: {requested}"
        )


class InvalidAmount(ValidationError):
    """Amount is not a positive whole number of units."""

    def __init__(self, amount, reason: str = "amount must be a positive integer"):
        self.amount = amount
        super().__init__(f"Invalid amount {amount!r}: {reason}")


class EmptyChain(ValidationError):
    """A payment split was requested over a chain with no participants."""

    def __init__(self):
        super().__init__("Referral chain has no participants")


class ChainTooDeep(ValidationError):
    """Referral parentage is longer than the configured bound."""

    def __init__(self, account_id: str, max_depth: int):
        self.account_id = account_id
        self.max_depth = max_depth
        super().__init__(
            f"Referral chain for {account_id} exceeds maximum depth of {max_depth}"
        )


class NotFoundError(ValidationError):
    """A referenced record does not exist."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class InvalidTransition(ValidationError):
    """A status change not allowed by the record's lifecycle."""

    def __init__(self, kind: str, key: str, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"{kind} {key} cannot move from {current} to {requested}")


class InvalidRelationship(ValidationError):
    """Relationship or referral between an account and itself, or already present."""


class DuplicateAccount(ValidationError):
    """An account with this email already exists."""


class DuplicateInvitation(ValidationError):
    """Sender already has a pending invitation to this recipient."""


class DuplicateReferral(ValidationError):
    """Candidate was already referred to this job."""


class InvariantViolation(IntegrityError):
    """Ledger conservation broken. Aborts the enclosing transaction."""

    def __init__(self, message: str, account_id: Optional[str] = None):
        self.account_id = account_id
        super().__init__(message)


class CyclicChain(IntegrityError):
    """Referral parentage loops back on itself."""

    def __init__(self, path: list[str], repeated: str):
        self.path = path
        self.repeated = repeated
        super().__init__(
            f"Cyclic referral parentage: {' -> '.join(path)} -> {repeated}"
        )


class ComputationAborted(IntegrityError):
    """Propagation run stopped on a data-integrity fault."""


class ComputationCancelled(TrustNetError):
    """Propagation run cancelled by an administrator or timed out."""


class DuplicateRelationship(TrustNetError):
    """More than one edge stored for the same unordered account pair.

    Raised by strict pair lookups and repaired by the graph; never surfaced
    to users.
    """

    def __init__(self, pair: tuple[str, str], edge_ids: list[str]):
        self.pair = pair
        self.edge_ids = edge_ids
        super().__init__(
            f"{len(edge_ids)} relationship edges stored for pair {pair[0]}/{pair[1]}: "
            f"{', '.join(edge_ids)}"
        )
