"""
Referral Network

Host-facing surface: wires the ledger, graph, invitations, propagation
engine, chain builder and split calculator to one store.

Usage:
    from trustnet.network import ReferralNetwork

    network = ReferralNetwork()
    alice = network.create_account("alice@example.com")
    invitation = network.send_invitation(alice.id, "bob@example.com", 30)
    network.accept_invitation(invitation.id)
    snapshot = network.recompute_trust_scores("manual")
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Optional

from trustnet.errors import DuplicateAccount, InvalidTransition, NotFoundError
from trustnet.models.entities import (
    Account,
    AccountTier,
    ComputationTrigger,
    ComputedTrustScore,
    Invitation,
    JobForward,
    PaymentSplit,
    RankingSnapshot,
    Referral,
    ReferralStatus,
    RelationshipEdge,
    TrustComputationLog,
)
from trustnet.models.graph import RelationshipGraph
from trustnet.models.invitations import InvitationLedger
from trustnet.models.ledger import TrustLedger
from trustnet.models.payment_split import PaymentSplitCalculator
from trustnet.models.propagation import TrustPropagationEngine
from trustnet.models.referral_chain import ReferralChainBuilder
from trustnet.utils.config import Config
from trustnet.utils.store import InMemoryStore

logger = logging.getLogger(__name__)


class RecomputeHandle:
    """A propagation run scheduled on the background worker."""

    def __init__(self, future: Future, cancel_event: threading.Event, triggered_by: str):
        self.future = future
        self.cancel_event = cancel_event
        self.triggered_by = triggered_by

    def cancel(self) -> None:
        """Ask the run to stop at its next iteration."""
        self.cancel_event.set()
        self.future.cancel()

    def result(self, timeout: Optional[float] = None) -> RankingSnapshot:
        return self.future.result(timeout=timeout)

    @property
    def done(self) -> bool:
        return self.future.done()


class ReferralNetwork:
    """Synchronous function-call surface over the trust and referral core."""

    def __init__(
        self,
        store: Optional[InMemoryStore] = None,
        config: Optional[Config] = None,
    ):
        self.store = store or InMemoryStore()
        self.config = config or Config()

        ledger_cfg = self.config.ledger
        propagation_cfg = self.config.propagation

        self.ledger = TrustLedger(self.store, tier_grants=ledger_cfg.tier_grants)
        self.graph = RelationshipGraph(self.store)
        self.invitations = InvitationLedger(
            self.store,
            self.ledger,
            self.graph,
            trust_unit_scale=ledger_cfg.trust_unit_scale,
            max_invitation_trust=ledger_cfg.max_invitation_trust,
            default_tier=AccountTier(ledger_cfg.default_tier),
            on_relationship_change=(
                self._on_relationship_change if propagation_cfg.recompute_on_change else None
            ),
        )
        self.engine = TrustPropagationEngine(
            self.store,
            damping=propagation_cfg.damping,
            tolerance=propagation_cfg.tolerance,
            max_iterations=propagation_cfg.max_iterations,
            norm=propagation_cfg.norm,
            edge_weighting=propagation_cfg.edge_weighting,
            timeout_seconds=propagation_cfg.timeout_seconds,
        )
        self.chains = ReferralChainBuilder(
            self.store, max_depth=self.config.referrals.max_chain_depth
        )
        self.splits = PaymentSplitCalculator(
            decay_factor=self.config.payments.decay_factor,
            policy=self.config.payments.policy,
        )

        self._executor: Optional[ThreadPoolExecutor] = None

    # Account directory

    def create_account(
        self,
        email: str,
        tier: AccountTier | str = AccountTier.CONNECTOR,
        referred_by: Optional[str] = None,
        first_name: str = "",
        last_name: str = "",
        created_at: Optional[datetime] = None,
    ) -> Account:
        """Register an account and open its trust budget."""
        with self.store.transaction():
            if self.store.find_account_by_email(email) is not None:
                raise DuplicateAccount(f"Account already exists for {email}")
            if referred_by is not None and self.store.get_account(referred_by) is None:
                raise NotFoundError("Account", referred_by)

            account = Account(
                email=email.strip().lower(),
                first_name=first_name,
                last_name=last_name,
                tier=AccountTier(tier),
                referred_by=referred_by,
                created_at=created_at or datetime.now(),
            )
            self.store.add_account(account)
            self.ledger.open_account(account.id, account.tier)

        logger.info(f"Account {account.id} created for {account.email} ({account.tier.value})")
        return account

    def get_account(self, key: str) -> Account:
        """Get an account by ID or email."""
        account = self.store.resolve_account(key)
        if account is None:
            raise NotFoundError("Account", key)
        return account

    # Ledger and invitations

    def grant_trust(self, account_id: str, amount: int):
        return self.ledger.grant(account_id, amount)

    def send_invitation(self, sender_id: str, recipient: str, trust_amount: int) -> Invitation:
        return self.invitations.send_invitation(sender_id, recipient, trust_amount)

    def accept_invitation(
        self,
        invitation_id: str,
        account_id: Optional[str] = None,
        first_name: str = "",
        last_name: str = "",
    ) -> tuple[Invitation, RelationshipEdge]:
        return self.invitations.accept_invitation(
            invitation_id, account_id=account_id, first_name=first_name, last_name=last_name
        )

    def expire_invitation(self, invitation_id: str) -> Invitation:
        return self.invitations.expire_invitation(invitation_id)

    def expire_stale_invitations(self, now: Optional[datetime] = None) -> list[Invitation]:
        return self.invitations.expire_stale_invitations(
            self.config.ledger.invitation_expiry_days, now=now
        )

    def adjust_allocation(self, edge_id: str, account_id: str, new_amount: int) -> RelationshipEdge:
        return self.invitations.adjust_allocation(edge_id, account_id, new_amount)

    def reconcile_relationships(self) -> list[RelationshipEdge]:
        return self.graph.reconcile_duplicates()

    # Propagation

    def recompute_trust_scores(
        self,
        triggered_by: str = ComputationTrigger.MANUAL.value,
        cancel_event: Optional[threading.Event] = None,
    ) -> RankingSnapshot:
        """Run propagation now on the calling thread and publish the result."""
        return self.engine.run(triggered_by=triggered_by, cancel_event=cancel_event)

    def schedule_recompute(
        self,
        triggered_by: str = ComputationTrigger.SCHEDULED.value,
    ) -> RecomputeHandle:
        """Queue a propagation run on the single background worker."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="trust-propagation")

        cancel_event = threading.Event()
        future = self._executor.submit(self.engine.run, triggered_by, cancel_event)
        future.add_done_callback(self._log_background_failure)
        logger.debug(f"Scheduled trust recomputation ({triggered_by})")
        return RecomputeHandle(future, cancel_event, triggered_by)

    @staticmethod
    def _log_background_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Background trust recomputation failed: {error}")

    def _on_relationship_change(self, edge: RelationshipEdge) -> None:
        self.schedule_recompute(ComputationTrigger.RELATIONSHIP_CHANGE.value)

    def get_latest_ranking(self) -> list[ComputedTrustScore]:
        """Scores of the latest published run, best rank first."""
        snapshot = self.store.latest_snapshot
        if snapshot is None:
            return []
        return sorted(snapshot.scores, key=lambda s: s.rank)

    def get_latest_snapshot(self) -> Optional[RankingSnapshot]:
        return self.store.latest_snapshot

    def get_computation_history(self) -> list[TrustComputationLog]:
        """Run logs, newest first."""
        return self.store.computation_history()

    # Referrals and payouts

    def forward_job(
        self,
        job_id: str,
        from_account: str,
        to_account: str,
        message: Optional[str] = None,
    ) -> JobForward:
        return self.chains.forward_job(job_id, from_account, to_account, message=message)

    def forwards_by_node(self, account_id: str) -> list[JobForward]:
        return self.chains.forwards_by_node(account_id)

    def submit_referral(
        self,
        job_id: str,
        candidate_email: str,
        referrer_id: str,
        candidate_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Referral:
        return self.chains.create_referral(
            job_id, candidate_email, referrer_id, candidate_id=candidate_id, notes=notes
        )

    def update_referral_status(self, referral_id: str, status: ReferralStatus | str) -> Referral:
        return self.chains.update_status(referral_id, status)

    def compute_splits(self, referral_id: str, total_amount: int) -> list[PaymentSplit]:
        """Split a payout over a hired referral's chain.

        Raises:
            InvalidTransition: If the referral has not reached HIRED
        """
        referral = self.chains.get_referral(referral_id)
        if referral.status != ReferralStatus.HIRED:
            raise InvalidTransition(
                "Referral", referral_id, referral.status.value, "paid out"
            )
        return self.splits.calculate(total_amount, referral.chain_path)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the background worker."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
