"""
Invitation Ledger

Invitation lifecycle: trust is reserved on send, kept on acceptance and
returned on expiry.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from trustnet.errors import (
    DuplicateInvitation,
    InvalidAmount,
    InvalidRelationship,
    InvalidTransition,
    InvariantViolation,
    NotFoundError,
)
from trustnet.models.entities import (
    MAX_INVITATION_SCORE,
    Account,
    AccountTier,
    Invitation,
    InvitationStatus,
    RelationshipEdge,
    RelationshipStatus,
)
from trustnet.models.graph import RelationshipGraph
from trustnet.models.ledger import TrustLedger, validate_amount
from trustnet.utils.store import InMemoryStore

logger = logging.getLogger(__name__)


class InvitationLedger:
    """Sends, accepts and expires invitations.

    Reservation policy: the sender's trust moves from available to allocated
    when the invitation is sent. Acceptance performs no ledger mutation;
    expiry or rejection releases the reservation. Each invitation therefore
    touches the ledger at most twice: one reserve, and one release only if
    it never reaches ACCEPTED.
    """

    def __init__(
        self,
        store: InMemoryStore,
        ledger: TrustLedger,
        graph: RelationshipGraph,
        trust_unit_scale: int = 10,
        max_invitation_trust: int = 100,
        default_tier: AccountTier = AccountTier.CONNECTOR,
        on_relationship_change: Optional[Callable[[RelationshipEdge], None]] = None,
    ):
        """Initialize invitation ledger.

        Args:
            store: Backing store
            ledger: Trust ledger used for reservations
            graph: Relationship graph for pending/confirmed edges
            trust_unit_scale: Ledger points per invitation trust-score unit
            max_invitation_trust: Largest reservation a single invitation may make
            default_tier: Tier for accounts created on acceptance
            on_relationship_change: Called after an edge is confirmed or re-weighted
        """
        if trust_unit_scale < 1:
            raise ValueError(f"trust_unit_scale must be at least 1, got {trust_unit_scale}")
        if max_invitation_trust > MAX_INVITATION_SCORE * trust_unit_scale:
            raise ValueError(
                f"max_invitation_trust {max_invitation_trust} does not fit in "
                f"{MAX_INVITATION_SCORE} units of {trust_unit_scale} points"
            )
        self.store = store
        self.ledger = ledger
        self.graph = graph
        self.trust_unit_scale = trust_unit_scale
        self.max_invitation_trust = max_invitation_trust
        self.default_tier = default_tier
        self.on_relationship_change = on_relationship_change

    def get_invitation(self, invitation_id: str) -> Invitation:
        invitation = self.store.invitations.get(invitation_id)
        if invitation is None:
            raise NotFoundError("Invitation", invitation_id)
        return invitation

    def _pending_between(self, sender_id: str, recipient_email: str) -> Optional[Invitation]:
        """The sender's pending invitation to an email address, if any."""
        recipient_email = recipient_email.lower()
        for invitation in self.store.invitations.values():
            if (
                invitation.is_pending
                and invitation.sender_id == sender_id
                and invitation.recipient_email.lower() == recipient_email
            ):
                return invitation
        return None

    def _withdraw_counter_invitation(
        self, invitation: Invitation, edge: RelationshipEdge
    ) -> None:
        """Expire the recipient's own pending invitation to the sender.

        Its pending edge is dropped with it, so the pair's edge is rebuilt
        from the invitation being accepted and carries that reservation.
        """
        if edge.status != RelationshipStatus.PENDING:
            raise InvalidRelationship(
                f"Relationship already exists between {edge.account_a} and {edge.account_b}"
            )

        counter = next(
            (inv for inv in self.store.invitations.values()
             if inv.is_pending and inv.edge_id == edge.id),
            None,
        )
        if counter is None:
            raise InvariantViolation(
                f"Pending relationship {edge.id} has no pending invitation reserving it"
            )

        logger.warning(
            f"Invitation {counter.id} from {counter.sender_id} crosses invitation "
            f"{invitation.id}; expiring it"
        )
        self.expire_invitation(counter.id)

    def _notify(self, edge: RelationshipEdge) -> None:
        if self.on_relationship_change is not None:
            self.on_relationship_change(edge)

    def send_invitation(
        self,
        sender_id: str,
        recipient: str,
        trust_amount: int,
        created_at: Optional[datetime] = None,
    ) -> Invitation:
        """Invite an email address or existing account, reserving trust.

        Args:
            sender_id: Inviting account
            recipient: Recipient account ID or email address
            trust_amount: Ledger points to commit

        Returns:
            The PENDING invitation

        Raises:
            InvalidAmount: If trust_amount is not in 1..max_invitation_trust
            InsufficientTrust: If the sender cannot cover the reservation
            InvalidRelationship: On self-invitation or an existing relationship
            DuplicateInvitation: If a pending invitation to this recipient exists
        """
        trust_amount = validate_amount(trust_amount)
        if trust_amount > self.max_invitation_trust:
            raise InvalidAmount(
                trust_amount, f"at most {self.max_invitation_trust} points per invitation"
            )

        created_at = created_at or datetime.now()

        with self.store.transaction():
            sender = self.store.get_account(sender_id)
            if sender is None:
                raise NotFoundError("Account", sender_id)

            recipient_account = self.store.resolve_account(recipient)
            if recipient_account is not None:
                recipient_email = recipient_account.email
            elif "@" in recipient:
                recipient_email = recipient.strip().lower()
            else:
                raise NotFoundError("Account", recipient)

            if recipient_account is not None and recipient_account.id == sender_id:
                raise InvalidRelationship("Cannot invite yourself")

            existing = self._pending_between(sender_id, recipient_email)
            if existing is not None:
                raise DuplicateInvitation(
                    f"Invitation already sent to {recipient_email} ({existing.id})"
                )

            if recipient_account is not None:
                if self.graph.get_edge(sender_id, recipient_account.id) is not None:
                    raise InvalidRelationship(
                        f"Relationship already exists between {sender_id} and {recipient_account.id}"
                    )
                counter = self._pending_between(recipient_account.id, sender.email)
                if counter is not None:
                    raise DuplicateInvitation(
                        f"{recipient_account.id} already invited {sender.email} "
                        f"({counter.id}); accept that invitation instead"
                    )

            self.ledger.reserve(sender_id, trust_amount)

            edge = None
            if recipient_account is not None:
                edge = self.graph.upsert_pending(
                    sender_id, recipient_account.id, trust_amount, created_at=created_at
                )

            invitation = Invitation(
                sender_id=sender_id,
                recipient_email=recipient_email,
                recipient_id=recipient_account.id if recipient_account else None,
                trust_score=trust_amount / self.trust_unit_scale,
                trust_points=trust_amount,
                edge_id=edge.id if edge else None,
                created_at=created_at,
            )
            self.store.invitations[invitation.id] = invitation

        logger.info(
            f"Invitation {invitation.id} sent by {sender_id} to {recipient_email} "
            f"({trust_amount} points reserved)"
        )
        return invitation

    def accept_invitation(
        self,
        invitation_id: str,
        account_id: Optional[str] = None,
        first_name: str = "",
        last_name: str = "",
    ) -> tuple[Invitation, RelationshipEdge]:
        """Accept a pending invitation.

        Creates the recipient's account if it does not exist yet (bound to
        the sender through `referred_by`), confirms the relationship edge and
        stamps the invitation ACCEPTED.

        Args:
            invitation_id: Invitation to accept
            account_id: Existing account accepting it (default: resolve by email)
            first_name: Name for a newly created account
            last_name: Name for a newly created account

        Returns:
            Tuple of (accepted invitation, confirmed edge)
        """
        with self.store.transaction():
            invitation = self.get_invitation(invitation_id)
            if not invitation.is_pending:
                raise InvalidTransition(
                    "Invitation", invitation_id, invitation.status.value,
                    InvitationStatus.ACCEPTED.value,
                )

            recipient = None
            if account_id is not None:
                if invitation.recipient_id is not None and invitation.recipient_id != account_id:
                    raise InvalidRelationship(
                        f"Invitation {invitation_id} is addressed to {invitation.recipient_id}, "
                        f"not {account_id}"
                    )
                recipient = self.store.get_account(account_id)
                if recipient is None:
                    raise NotFoundError("Account", account_id)
            elif invitation.recipient_id is not None:
                recipient = self.store.get_account(invitation.recipient_id)
            if recipient is None:
                recipient = self.store.find_account_by_email(invitation.recipient_email)

            if recipient is None:
                recipient = self.store.add_account(Account(
                    email=invitation.recipient_email,
                    first_name=first_name,
                    last_name=last_name,
                    tier=self.default_tier,
                    referred_by=invitation.sender_id,
                ))
                self.ledger.open_account(recipient.id, recipient.tier)
                logger.info(f"Created account {recipient.id} for {recipient.email}")

            if recipient.id == invitation.sender_id:
                raise InvalidRelationship("Cannot accept your own invitation")

            existing = self.graph.get_edge(invitation.sender_id, recipient.id)
            if existing is not None and existing.initiated_by != invitation.sender_id:
                self._withdraw_counter_invitation(invitation, existing)

            edge = self.graph.upsert_pending(
                invitation.sender_id, recipient.id, invitation.trust_points
            )
            edge = self.graph.confirm(invitation.sender_id, recipient.id)

            invitation.status = InvitationStatus.ACCEPTED
            invitation.recipient_id = recipient.id
            invitation.edge_id = edge.id
            invitation.responded_at = datetime.now()

        logger.info(f"Invitation {invitation_id} accepted by {recipient.id}")
        self._notify(edge)
        return invitation, edge

    def expire_invitation(self, invitation_id: str) -> Invitation:
        """Expire (or reject) a pending invitation and return its trust.

        The pending edge is removed so it never counts toward propagation.
        """
        with self.store.transaction():
            invitation = self.get_invitation(invitation_id)
            if not invitation.is_pending:
                raise InvalidTransition(
                    "Invitation", invitation_id, invitation.status.value,
                    InvitationStatus.EXPIRED.value,
                )

            self.ledger.release(invitation.sender_id, invitation.trust_points)

            if invitation.edge_id is not None:
                edge = self.store.edges.get(invitation.edge_id)
                if edge is not None and edge.status == RelationshipStatus.PENDING:
                    self.graph.remove(edge.id)

            invitation.status = InvitationStatus.EXPIRED
            invitation.responded_at = datetime.now()

        logger.info(
            f"Invitation {invitation_id} expired, {invitation.trust_points} points "
            f"returned to {invitation.sender_id}"
        )
        return invitation

    reject_invitation = expire_invitation

    def expire_stale_invitations(
        self,
        max_age_days: int,
        now: Optional[datetime] = None,
    ) -> list[Invitation]:
        """Expire every pending invitation older than `max_age_days`."""
        now = now or datetime.now()
        cutoff = now - timedelta(days=max_age_days)

        stale = [
            inv.id for inv in self.store.invitations.values()
            if inv.is_pending and inv.created_at < cutoff
        ]
        expired = [self.expire_invitation(invitation_id) for invitation_id in stale]

        if expired:
            logger.info(f"Expired {len(expired)} stale invitations older than {max_age_days} days")
        return expired

    def adjust_allocation(
        self,
        edge_id: str,
        account_id: str,
        new_amount: int,
    ) -> RelationshipEdge:
        """Change the trust an initiator commits to a confirmed relationship.

        An increase is reserved, a decrease released, through the ledger.

        Raises:
            InvalidRelationship: If account_id did not initiate the edge
            InvalidTransition: If the edge is not confirmed
            InsufficientTrust: If an increase cannot be covered
        """
        if isinstance(new_amount, bool) or not isinstance(new_amount, int) or new_amount < 0:
            raise InvalidAmount(new_amount, "allocation must be a non-negative integer")
        if new_amount > self.max_invitation_trust:
            raise InvalidAmount(
                new_amount, f"at most {self.max_invitation_trust} points per relationship"
            )

        with self.store.transaction():
            edge = self.graph.get_edge_by_id(edge_id)
            if edge.initiated_by != account_id:
                raise InvalidRelationship(
                    f"Only {edge.initiated_by} may adjust trust on relationship {edge_id}"
                )
            if edge.status != RelationshipStatus.CONFIRMED:
                raise InvalidTransition(
                    "Relationship", edge_id, edge.status.value, "re-weighted"
                )

            delta = new_amount - edge.trust_allocated
            if delta > 0:
                self.ledger.reserve(account_id, delta)
            elif delta < 0:
                self.ledger.release(account_id, -delta)
            edge.trust_allocated = new_amount

        logger.info(f"Relationship {edge_id} trust set to {new_amount} by {account_id}")
        if delta:
            self._notify(edge)
        return edge

    def pending_for_sender(self, sender_id: str) -> list[Invitation]:
        """Pending invitations sent by an account, oldest first."""
        return sorted(
            (inv for inv in self.store.invitations.values()
             if inv.is_pending and inv.sender_id == sender_id),
            key=lambda inv: inv.created_at,
        )
