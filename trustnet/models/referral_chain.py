"""
Referral Chain Builder

Materializes the chain of referrers behind a referral, following forwards of
the job where the referrer received one and referral parentage otherwise, and
tracks the referral status lifecycle.
"""

import logging
from datetime import datetime
from typing import Optional

from trustnet.errors import (
    ChainTooDeep,
    CyclicChain,
    DuplicateReferral,
    InvalidRelationship,
    InvalidTransition,
    NotFoundError,
)
from trustnet.models.entities import Account, JobForward, Referral, ReferralStatus
from trustnet.utils.store import InMemoryStore

logger = logging.getLogger(__name__)


# Forward order of the pipeline; REJECTED sits outside it.
STATUS_ORDER = {
    ReferralStatus.PENDING: 0,
    ReferralStatus.SCREENING: 1,
    ReferralStatus.INTERVIEWING: 2,
    ReferralStatus.HIRED: 3,
}

TERMINAL_STATUSES = {ReferralStatus.HIRED, ReferralStatus.REJECTED}


def can_transition(current: ReferralStatus, new: ReferralStatus) -> bool:
    """Whether a referral may move from `current` to `new`."""
    if current in TERMINAL_STATUSES:
        return False
    if new == ReferralStatus.REJECTED:
        return True
    return STATUS_ORDER[new] > STATUS_ORDER[current]


class ReferralChainBuilder:
    """Builds root-first chain paths and records referrals."""

    def __init__(self, store: InMemoryStore, max_depth: int = 10):
        """Initialize builder.

        Args:
            store: Backing store (account directory and referrals)
            max_depth: Longest chain accepted, in accounts
        """
        if max_depth < 1:
            raise ValueError(f"max_depth must be at least 1, got {max_depth}")
        self.store = store
        self.max_depth = max_depth

    def forward_job(
        self,
        job_id: str,
        from_account: str,
        to_account: str,
        message: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> JobForward:
        """Record that one account passed a job on to another.

        Forwarding the same job between the same two accounts again returns
        the existing record unchanged.

        Raises:
            InvalidRelationship: If an account forwards to itself
            NotFoundError: If either account does not exist
        """
        if from_account == to_account:
            raise InvalidRelationship("Cannot forward a job to yourself")

        with self.store.transaction():
            for account_id in (from_account, to_account):
                if self.store.get_account(account_id) is None:
                    raise NotFoundError("Account", account_id)

            for existing in self.store.forwards.values():
                if (
                    existing.job_id == job_id
                    and existing.from_account == from_account
                    and existing.to_account == to_account
                ):
                    logger.debug(f"Job {job_id} already forwarded {from_account} -> {to_account}")
                    return existing

            forward = JobForward(
                job_id=job_id,
                from_account=from_account,
                to_account=to_account,
                message=message,
                created_at=created_at or datetime.now(),
            )
            self.store.forwards[forward.id] = forward

        logger.info(f"Job {job_id} forwarded by {from_account} to {to_account}")
        return forward

    def forwards_by_node(self, account_id: str) -> list[JobForward]:
        """Forwards sent by an account, newest first."""
        return sorted(
            (f for f in self.store.forwards.values() if f.from_account == account_id),
            key=lambda f: (f.created_at, f.id),
            reverse=True,
        )

    def _forwards_into(
        self,
        job_id: str,
        account_id: str,
        before: Optional[datetime] = None,
    ) -> list[JobForward]:
        """Forwards of a job received by an account, earliest first."""
        return sorted(
            (
                f for f in self.store.forwards.values()
                if f.job_id == job_id
                and f.to_account == account_id
                and (before is None or f.created_at < before)
            ),
            key=lambda f: (f.created_at, f.id),
        )

    def build_chain(self, referrer_id: str, job_id: Optional[str] = None) -> list[str]:
        """Chain of accounts behind a direct referrer, root first.

        When `job_id` is given and the referrer received that job as a
        forward, the chain follows forwards of the job. Otherwise it follows
        `referred_by` parentage.

        Args:
            referrer_id: Account that directly introduced the candidate
            job_id: Job whose forwards to follow

        Returns:
            Account IDs from the root referrer to `referrer_id`

        Raises:
            NotFoundError: If the referrer does not exist
            CyclicChain: If parentage loops
            ChainTooDeep: If the chain is longer than max_depth
        """
        account = self.store.get_account(referrer_id)
        if account is None:
            raise NotFoundError("Account", referrer_id)

        if job_id is not None and self._forwards_into(job_id, referrer_id):
            return self._build_forward_chain(job_id, referrer_id)
        return self._build_parent_chain(account)

    def _build_forward_chain(self, job_id: str, referrer_id: str) -> list[str]:
        """Walk the earliest forward into each account back to the job's origin.

        Each step only considers forwards older than the one just followed,
        so the walk moves strictly back in time. Reaching an account already
        on the path means the job came back to an account that held it first;
        that account becomes the root.
        """
        path = [referrer_id]
        current = referrer_id
        before = None

        while True:
            incoming = self._forwards_into(job_id, current, before)
            if not incoming:
                break
            forward = incoming[0]
            parent_id = forward.from_account

            if parent_id in path:
                path = path[:path.index(parent_id) + 1]
                logger.warning(
                    f"Job {job_id} was forwarded back to {parent_id}; "
                    f"treating {parent_id} as chain root"
                )
                break

            if self.store.get_account(parent_id) is None:
                logger.warning(
                    f"Forward {forward.id} of job {job_id} comes from missing account "
                    f"{parent_id}; treating {current} as chain root"
                )
                break

            if len(path) >= self.max_depth:
                raise ChainTooDeep(referrer_id, self.max_depth)

            path.append(parent_id)
            current = parent_id
            before = forward.created_at

        path.reverse()
        return path

    def _build_parent_chain(self, account: Account) -> list[str]:
        """Walk `referred_by` links upward from the direct referrer."""
        referrer_id = account.id
        path = [referrer_id]
        visited = {referrer_id}

        while account.referred_by is not None:
            parent_id = account.referred_by

            if parent_id in visited:
                root_first = list(reversed(path))
                logger.error(
                    f"Cyclic referral parentage starting at {referrer_id}: "
                    f"{' -> '.join(root_first)} loops back to {parent_id}"
                )
                raise CyclicChain(root_first, parent_id)

            parent = self.store.get_account(parent_id)
            if parent is None:
                logger.warning(
                    f"Account {account.id} refers to missing parent {parent_id}; "
                    f"treating {account.id} as chain root"
                )
                break

            if len(path) >= self.max_depth:
                raise ChainTooDeep(referrer_id, self.max_depth)

            path.append(parent_id)
            visited.add(parent_id)
            account = parent

        path.reverse()
        return path

    def create_referral(
        self,
        job_id: str,
        candidate_email: str,
        referrer_id: str,
        candidate_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Referral:
        """Record a referral with its chain fixed at creation time.

        Raises:
            InvalidRelationship: If the referrer refers themselves
            DuplicateReferral: If the candidate is already referred to the job
        """
        candidate_email = candidate_email.strip().lower()

        with self.store.transaction():
            referrer = self.store.get_account(referrer_id)
            if referrer is None:
                raise NotFoundError("Account", referrer_id)
            if candidate_id == referrer_id or candidate_email == referrer.email.lower():
                raise InvalidRelationship("Cannot refer yourself")

            for existing in self.store.referrals.values():
                if existing.job_id == job_id and existing.candidate_email == candidate_email:
                    raise DuplicateReferral(
                        f"{candidate_email} already referred to job {job_id} ({existing.id})"
                    )

            chain_path = self.build_chain(referrer_id, job_id=job_id)
            referral = Referral(
                job_id=job_id,
                candidate_email=candidate_email,
                candidate_id=candidate_id,
                referrer_node=referrer_id,
                chain_path=chain_path,
                notes=notes,
            )
            self.store.referrals[referral.id] = referral

        logger.info(
            f"Referral {referral.id} for job {job_id} via {referrer_id} "
            f"(chain depth {referral.chain_depth})"
        )
        return referral

    def get_referral(self, referral_id: str) -> Referral:
        referral = self.store.referrals.get(referral_id)
        if referral is None:
            raise NotFoundError("Referral", referral_id)
        return referral

    def update_status(self, referral_id: str, new_status: ReferralStatus | str) -> Referral:
        """Move a referral forward in its pipeline.

        Setting the current status again is a no-op.

        Raises:
            InvalidTransition: On a backward move or from a terminal status
        """
        new_status = ReferralStatus(new_status)

        with self.store.transaction():
            referral = self.get_referral(referral_id)
            if referral.status == new_status:
                return referral
            if not can_transition(referral.status, new_status):
                raise InvalidTransition(
                    "Referral", referral_id, referral.status.value, new_status.value
                )
            referral.status = new_status
            referral.updated_at = datetime.now()

        logger.info(f"Referral {referral_id} moved to {new_status.value}")
        return referral

    def chain_with_details(self, referral_id: str) -> list[Optional[Account]]:
        """Accounts along a referral's chain, root first. Deleted accounts are None."""
        referral = self.get_referral(referral_id)
        return [self.store.get_account(account_id) for account_id in referral.chain_path]

    def referrals_for_job(self, job_id: str) -> list[Referral]:
        """All referrals for a job, newest first."""
        return sorted(
            (r for r in self.store.referrals.values() if r.job_id == job_id),
            key=lambda r: r.created_at,
            reverse=True,
        )
