"""
Trust Ledger

Conserved per-account trust budget split into available and allocated points.
"""

import logging
from datetime import datetime
from typing import Optional

from trustnet.errors import InsufficientTrust, InvalidAmount, InvariantViolation, NotFoundError
from trustnet.models.entities import AccountTier, TrustAccount
from trustnet.utils.store import InMemoryStore

logger = logging.getLogger(__name__)


def validate_amount(amount) -> int:
    """Return `amount` if it is a positive integer, else raise InvalidAmount."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        if isinstance(amount, float) and amount.is_integer():
            amount = int(amount)
        else:
            raise InvalidAmount(amount)
    if amount <= 0:
        raise InvalidAmount(amount)
    return amount


class TrustLedger:
    """Moves trust between the available and allocated halves of a budget.

    Points are only created by `open_account` (tier endowment) and `grant`
    (administrative top-up). `reserve` and `release` move points between the
    two halves and never change the total. Every operation runs inside a
    store transaction, so the balance check and the update are one step.
    """

    DEFAULT_TIER_GRANTS = {
        AccountTier.CONNECTOR: 100,
        AccountTier.TALENT_SCOUT: 150,
        AccountTier.NETWORK_HUB: 200,
    }

    def __init__(
        self,
        store: InMemoryStore,
        tier_grants: Optional[dict[str, int]] = None,
    ):
        """Initialize ledger.

        Args:
            store: Backing store
            tier_grants: Initial endowment per tier name
        """
        self.store = store

        self.tier_grants = self.DEFAULT_TIER_GRANTS.copy()
        if tier_grants:
            for key, value in tier_grants.items():
                if isinstance(key, str):
                    try:
                        self.tier_grants[AccountTier(key)] = value
                    except ValueError:
                        logger.warning(f"Unknown account tier: {key}")
                else:
                    self.tier_grants[key] = value

    def get_account(self, account_id: str) -> TrustAccount:
        """Get a trust account, raising NotFoundError if missing."""
        account = self.store.trust_accounts.get(account_id)
        if account is None:
            raise NotFoundError("Trust account", account_id)
        return account

    def _check(self, account: TrustAccount, operation: str) -> None:
        if not account.is_balanced:
            logger.error(
                f"Ledger invariant broken by {operation} on {account.account_id}: "
                f"available={account.available_trust} allocated={account.allocated_trust} "
                f"granted={account.total_granted}"
            )
            raise InvariantViolation(
                f"Trust not conserved for {account.account_id} after {operation}",
                account_id=account.account_id,
            )

    def open_account(
        self,
        account_id: str,
        tier: AccountTier = AccountTier.CONNECTOR,
    ) -> TrustAccount:
        """Create a trust account holding the tier's initial endowment.

        Opening an existing account returns it unchanged.
        """
        with self.store.transaction():
            existing = self.store.trust_accounts.get(account_id)
            if existing is not None:
                return existing

            endowment = self.tier_grants.get(tier, 0)
            account = TrustAccount(
                account_id=account_id,
                available_trust=endowment,
                allocated_trust=0,
                total_granted=endowment,
            )
            self.store.trust_accounts[account_id] = account

        logger.debug(f"Opened trust account {account_id} ({tier.value}) with {endowment} points")
        return account

    def grant(self, account_id: str, amount: int) -> TrustAccount:
        """Administrative top-up of an account's endowment.

        Raises:
            InvalidAmount: If amount <= 0
        """
        amount = validate_amount(amount)

        with self.store.transaction():
            account = self.get_account(account_id)
            account.available_trust += amount
            account.total_granted += amount
            account.updated_at = datetime.now()
            self._check(account, "grant")

        logger.info(f"Granted {amount} trust points to {account_id}")
        return account

    def reserve(self, account_id: str, amount: int) -> TrustAccount:
        """Move `amount` from available to allocated.

        Raises:
            InvalidAmount: If amount <= 0
            InsufficientTrust: If available trust is below amount
        """
        amount = validate_amount(amount)

        with self.store.transaction():
            account = self.get_account(account_id)
            if account.available_trust < amount:
                raise InsufficientTrust(account_id, account.available_trust, amount)

            account.available_trust -= amount
            account.allocated_trust += amount
            account.updated_at = datetime.now()
            self._check(account, "reserve")

        logger.debug(f"Reserved {amount} trust points on {account_id}")
        return account

    def release(self, account_id: str, amount: int) -> TrustAccount:
        """Move `amount` back from allocated to available.

        Raises:
            InvalidAmount: If amount <= 0
            InvariantViolation: If allocated trust would go negative
        """
        amount = validate_amount(amount)

        with self.store.transaction():
            account = self.get_account(account_id)
            if account.allocated_trust < amount:
                logger.error(
                    f"Release of {amount} on {account_id} exceeds allocated "
                    f"trust {account.allocated_trust}"
                )
                raise InvariantViolation(
                    f"Release of {amount} would drive allocated trust of "
                    f"{account_id} negative",
                    account_id=account_id,
                )

            account.allocated_trust -= amount
            account.available_trust += amount
            account.updated_at = datetime.now()
            self._check(account, "release")

        logger.debug(f"Released {amount} trust points on {account_id}")
        return account

    def audit(self) -> list[str]:
        """Return IDs of accounts whose budgets do not balance."""
        with self.store.transaction():
            broken = [
                account.account_id
                for account in self.store.trust_accounts.values()
                if not account.is_balanced
            ]
        for account_id in broken:
            logger.error(f"Trust account {account_id} fails conservation audit")
        return broken

    def get_summary(self) -> dict:
        """Get summary statistics across all trust accounts."""
        accounts = list(self.store.trust_accounts.values())
        if not accounts:
            return {
                "total_accounts": 0,
                "total_granted": 0,
                "total_available": 0,
                "total_allocated": 0,
                "avg_allocated_fraction": 0,
            }

        total_granted = sum(a.total_granted for a in accounts)
        fractions = [
            a.allocated_trust / a.total_granted for a in accounts if a.total_granted > 0
        ]

        return {
            "total_accounts": len(accounts),
            "total_granted": total_granted,
            "total_available": sum(a.available_trust for a in accounts),
            "total_allocated": sum(a.allocated_trust for a in accounts),
            "avg_allocated_fraction": sum(fractions) / len(fractions) if fractions else 0,
        }
