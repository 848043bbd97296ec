"""
Relationship Graph

Vouching edges between accounts, stored as an edge list keyed by account ID.
"""

import logging
from datetime import datetime
from typing import Optional

from trustnet.errors import DuplicateRelationship, InvalidRelationship, NotFoundError
from trustnet.models.entities import RelationshipEdge, RelationshipStatus, pair_key
from trustnet.utils.store import InMemoryStore

logger = logging.getLogger(__name__)


class RelationshipGraph:
    """At most one edge per unordered account pair.

    Lookups that find more than one edge for a pair repair the data by
    keeping the most recent edge and log a warning.
    """

    def __init__(self, store: InMemoryStore):
        self.store = store

    def edges_for_pair(self, account_a: str, account_b: str) -> list[RelationshipEdge]:
        """All stored edges for a pair, oldest first."""
        key = pair_key(account_a, account_b)
        edges = [e for e in self.store.edges.values() if e.pair == key]
        return sorted(edges, key=lambda e: (e.created_at, e.id))

    def _find_edge(self, account_a: str, account_b: str) -> Optional[RelationshipEdge]:
        """Strict lookup.

        Raises:
            DuplicateRelationship: If more than one edge exists for the pair
        """
        edges = self.edges_for_pair(account_a, account_b)
        if len(edges) > 1:
            raise DuplicateRelationship(pair_key(account_a, account_b), [e.id for e in edges])
        return edges[0] if edges else None

    def get_edge(self, account_a: str, account_b: str) -> Optional[RelationshipEdge]:
        """Get the edge for a pair, repairing duplicates if found."""
        with self.store.transaction():
            try:
                return self._find_edge(account_a, account_b)
            except DuplicateRelationship as e:
                logger.warning(f"Duplicate relationship detected, repairing: {e}")
                return self._reconcile_pair(e.pair)

    def get_edge_by_id(self, edge_id: str) -> RelationshipEdge:
        edge = self.store.edges.get(edge_id)
        if edge is None:
            raise NotFoundError("Relationship", edge_id)
        return edge

    def upsert_pending(
        self,
        sender_id: str,
        recipient_id: str,
        trust_allocated: int,
        created_at: Optional[datetime] = None,
    ) -> RelationshipEdge:
        """Create a PENDING edge, or return the pair's existing edge.

        Raises:
            InvalidRelationship: If sender and recipient are the same account
        """
        if sender_id == recipient_id:
            raise InvalidRelationship(f"Account {sender_id} cannot vouch for itself")

        with self.store.transaction():
            existing = self.get_edge(sender_id, recipient_id)
            if existing is not None:
                return existing

            edge = RelationshipEdge(
                account_a=sender_id,
                account_b=recipient_id,
                initiated_by=sender_id,
                trust_allocated=trust_allocated,
                status=RelationshipStatus.PENDING,
                created_at=created_at or datetime.now(),
            )
            self.store.edges[edge.id] = edge

        logger.debug(f"Pending relationship {edge.id} between {sender_id} and {recipient_id}")
        return edge

    def confirm(self, account_a: str, account_b: str) -> RelationshipEdge:
        """Mark the pair's edge CONFIRMED. No-op if already confirmed."""
        with self.store.transaction():
            edge = self.get_edge(account_a, account_b)
            if edge is None:
                raise NotFoundError("Relationship", f"{account_a}/{account_b}")

            if edge.status != RelationshipStatus.CONFIRMED:
                edge.status = RelationshipStatus.CONFIRMED
                edge.confirmed_at = datetime.now()
                logger.debug(f"Relationship {edge.id} confirmed")

        return edge

    def remove(self, edge_id: str) -> Optional[RelationshipEdge]:
        """Delete an edge by ID."""
        with self.store.transaction():
            return self.store.edges.pop(edge_id, None)

    def confirmed_edges(self) -> list[RelationshipEdge]:
        return [e for e in self.store.edges.values() if e.status == RelationshipStatus.CONFIRMED]

    def neighbors(
        self,
        account_id: str,
        status: Optional[RelationshipStatus] = RelationshipStatus.CONFIRMED,
    ) -> list[str]:
        """IDs of accounts sharing an edge with `account_id`."""
        return sorted(
            e.other(account_id)
            for e in self.store.edges.values()
            if e.involves(account_id) and (status is None or e.status == status)
        )

    def adjacency(self) -> dict[str, list[tuple[str, int]]]:
        """Confirmed adjacency list: account -> [(neighbor, weight)]."""
        adjacency: dict[str, list[tuple[str, int]]] = {}
        for edge in self.confirmed_edges():
            adjacency.setdefault(edge.account_a, []).append((edge.account_b, edge.trust_allocated))
            adjacency.setdefault(edge.account_b, []).append((edge.account_a, edge.trust_allocated))
        return adjacency

    def find_duplicates(self) -> dict[tuple[str, str], list[RelationshipEdge]]:
        """Group edges by pair, keeping only pairs stored more than once."""
        groups: dict[tuple[str, str], list[RelationshipEdge]] = {}
        for edge in self.store.edges.values():
            groups.setdefault(edge.pair, []).append(edge)
        return {pair: edges for pair, edges in groups.items() if len(edges) > 1}

    def _reconcile_pair(self, pair: tuple[str, str]) -> RelationshipEdge:
        """Keep the newest edge of a pair and delete the rest."""
        edges = self.edges_for_pair(*pair)
        keep = edges[-1]
        for edge in edges[:-1]:
            del self.store.edges[edge.id]
            logger.warning(
                f"Removed duplicate relationship {edge.id} ({edge.status.value}, "
                f"created {edge.created_at.isoformat()}) for pair {pair[0]}/{pair[1]}; "
                f"kept {keep.id}"
            )
        return keep

    def reconcile_duplicates(self) -> list[RelationshipEdge]:
        """Repair every pair with more than one stored edge.

        Should find nothing in normal operation.

        Returns:
            The edges that survived, one per repaired pair
        """
        with self.store.transaction():
            duplicates = self.find_duplicates()
            kept = [self._reconcile_pair(pair) for pair in duplicates]

        if kept:
            logger.warning(f"Reconciled {len(kept)} duplicated relationship pairs")
        return kept
