"""
Reference Store

In-memory persistent-store collaborator with single-writer transactions,
atomic ranking publication and JSON save/load.
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from pydantic import BaseModel, Field

from trustnet.models.entities import (
    Account,
    Invitation,
    JobForward,
    RankingSnapshot,
    Referral,
    RelationshipEdge,
    RelationshipStatus,
    TrustAccount,
    TrustComputationLog,
)

logger = logging.getLogger(__name__)


class StoreState(BaseModel):
    """Mutable records guarded by transactions."""
    accounts: dict[str, Account] = Field(default_factory=dict)
    trust_accounts: dict[str, TrustAccount] = Field(default_factory=dict)
    edges: dict[str, RelationshipEdge] = Field(default_factory=dict)
    invitations: dict[str, Invitation] = Field(default_factory=dict)
    referrals: dict[str, Referral] = Field(default_factory=dict)
    forwards: dict[str, JobForward] = Field(default_factory=dict)


class PersistedStore(BaseModel):
    """On-disk layout of a saved store."""
    state: StoreState = Field(default_factory=StoreState)
    latest_snapshot: Optional[RankingSnapshot] = None
    computation_history: list[TrustComputationLog] = Field(default_factory=list)


class NetworkView(BaseModel):
    """Consistent read-only copy of the inputs to a propagation run."""
    accounts: list[Account] = Field(default_factory=list)
    trust_accounts: dict[str, TrustAccount] = Field(default_factory=dict)
    confirmed_edges: list[RelationshipEdge] = Field(default_factory=list)


class InMemoryStore:
    """Transactional in-memory store.

    All writers go through `transaction()`, which holds a re-entrant lock for
    the whole unit of work and restores the prior state if it raises. The
    latest ranking is an immutable snapshot replaced in a single assignment.
    """

    def __init__(
        self,
        state: Optional[StoreState] = None,
        latest_snapshot: Optional[RankingSnapshot] = None,
        computation_history: Optional[list[TrustComputationLog]] = None,
    ):
        self._state = state or StoreState()
        self._latest_snapshot = latest_snapshot
        self._history: list[TrustComputationLog] = list(computation_history or [])
        self._lock = threading.RLock()
        self._depth = 0

    # Record collections, always read through the current state so a
    # rollback is visible immediately.

    @property
    def accounts(self) -> dict[str, Account]:
        return self._state.accounts

    @property
    def trust_accounts(self) -> dict[str, TrustAccount]:
        return self._state.trust_accounts

    @property
    def edges(self) -> dict[str, RelationshipEdge]:
        return self._state.edges

    @property
    def invitations(self) -> dict[str, Invitation]:
        return self._state.invitations

    @property
    def referrals(self) -> dict[str, Referral]:
        return self._state.referrals

    @property
    def forwards(self) -> dict[str, JobForward]:
        return self._state.forwards

    @contextmanager
    def transaction(self) -> Iterator["InMemoryStore"]:
        """Run a unit of work atomically.

        Nested calls join the outermost transaction.
        """
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            backup = self._state.model_copy(deep=True)
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._state = backup
                logger.debug("Transaction rolled back")
                raise
            finally:
                self._depth = 0

    # Account directory

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get an account by ID."""
        return self._state.accounts.get(account_id)

    def find_account_by_email(self, email: str) -> Optional[Account]:
        """Get an account by email (case-insensitive)."""
        needle = email.strip().lower()
        for account in self._state.accounts.values():
            if account.email.lower() == needle:
                return account
        return None

    def resolve_account(self, key: str) -> Optional[Account]:
        """Look up an account by ID, falling back to email."""
        return self.get_account(key) or self.find_account_by_email(key)

    def add_account(self, account: Account) -> Account:
        """Insert an account into the directory."""
        with self.transaction():
            self._state.accounts[account.id] = account
        return account

    # Propagation input / output

    def read_view(self) -> NetworkView:
        """Copy accounts, budgets and confirmed edges under the lock."""
        with self._lock:
            return NetworkView(
                accounts=[a.model_copy() for a in self._state.accounts.values()],
                trust_accounts={
                    k: v.model_copy() for k, v in self._state.trust_accounts.items()
                },
                confirmed_edges=[
                    e.model_copy()
                    for e in self._state.edges.values()
                    if e.status == RelationshipStatus.CONFIRMED
                ],
            )

    def publish_snapshot(self, snapshot: RankingSnapshot) -> RankingSnapshot:
        """Replace the latest ranking and append its log in one step.

        The snapshot is re-versioned under the lock so concurrent runs never
        publish the same version twice.
        """
        with self._lock:
            version = (self._latest_snapshot.version + 1) if self._latest_snapshot else 1
            if snapshot.version != version:
                snapshot = snapshot.model_copy(update={"version": version})
            self._latest_snapshot = snapshot
            self._history.append(snapshot.log)
        return snapshot

    @property
    def latest_snapshot(self) -> Optional[RankingSnapshot]:
        return self._latest_snapshot

    @property
    def next_snapshot_version(self) -> int:
        with self._lock:
            return (self._latest_snapshot.version + 1) if self._latest_snapshot else 1

    def computation_history(self) -> list[TrustComputationLog]:
        """All run logs, newest first."""
        with self._lock:
            return list(reversed(self._history))

    # Persistence

    def save(self, path: str | Path) -> Path:
        """Write the whole store to a JSON file."""
        path = Path(path)
        with self._lock:
            payload = PersistedStore(
                state=self._state,
                latest_snapshot=self._latest_snapshot,
                computation_history=self._history,
            ).model_dump_json(indent=2)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(payload, encoding="utf-8")
        logger.debug(f"Store saved to {path}")
        return path

    @classmethod
    def load(cls, path: str | Path) -> "InMemoryStore":
        """Read a store written by `save`. Missing file gives an empty store."""
        path = Path(path)
        if not path.exists():
            logger.info(f"No state file at {path}, starting empty")
            return cls()

        persisted = PersistedStore.model_validate_json(path.read_text(encoding="utf-8"))
        logger.debug(f"Store loaded from {path}")
        return cls(
            state=persisted.state,
            latest_snapshot=persisted.latest_snapshot,
            computation_history=persisted.computation_history,
        )

    def stats(self) -> dict[str, Any]:
        """Record counts per collection."""
        with self._lock:
            return {
                "accounts": len(self._state.accounts),
                "trust_accounts": len(self._state.trust_accounts),
                "edges": len(self._state.edges),
                "invitations": len(self._state.invitations),
                "referrals": len(self._state.referrals),
                "forwards": len(self._state.forwards),
                "computations": len(self._history),
                "snapshot_version": self._latest_snapshot.version if self._latest_snapshot else None,
            }
