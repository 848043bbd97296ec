"""
Trust Propagation Engine

Damped power iteration over the confirmed relationship graph.

Formula:
    score(u) = (1 - d) / N + d * (sum_{v ~ u} w(u, v) / W(v) * score(v) + dangling / N)
    W(v)     = total weight of v's confirmed edges
    dangling = score mass held by accounts with no weighted edges

Edge weight convention: the trust the edge's initiator committed to it
(`trust_allocated`, in ledger points), or 1 for every edge in uniform mode.
"""

import logging
import math
import threading
import time
from enum import Enum
from typing import Optional

import numpy as np
from pydantic import BaseModel, Field

from trustnet.errors import ComputationAborted, ComputationCancelled
from trustnet.models.entities import (
    Account,
    ComputedTrustScore,
    RankingSnapshot,
    RelationshipEdge,
    TrustComputationLog,
)
from trustnet.utils.store import InMemoryStore, NetworkView

logger = logging.getLogger(__name__)


class EdgeWeighting(str, Enum):
    """How a confirmed edge is weighted."""
    ALLOCATION = "allocation"
    UNIFORM = "uniform"


class ConvergenceNorm(str, Enum):
    L1 = "l1"
    LINF = "linf"


class PropagationResult(BaseModel):
    """Raw output of the iteration, before ranking."""
    scores: dict[str, float] = Field(default_factory=dict)
    iterations: int = 0
    converged: bool = False
    final_delta: float = 0.0
    num_edges: int = 0


class TrustPropagationEngine:
    """Computes a normalized influence score and rank for every account.

    Runs as a batch job: it copies a consistent view of the store, iterates
    without holding any lock, and publishes a new immutable snapshot only
    when the whole run succeeds.
    """

    def __init__(
        self,
        store: InMemoryStore,
        damping: float = 0.85,
        tolerance: float = 1e-9,
        max_iterations: int = 100,
        norm: ConvergenceNorm | str = ConvergenceNorm.L1,
        edge_weighting: EdgeWeighting | str = EdgeWeighting.ALLOCATION,
        timeout_seconds: Optional[float] = None,
    ):
        """Initialize engine with configuration.

        Args:
            store: Store to read the graph from and publish rankings to
            damping: Damping factor d, strictly between 0 and 1
            tolerance: Convergence threshold on the change between iterations
            max_iterations: Iteration cap
            norm: Distance used for the convergence test
            edge_weighting: Edge weight convention
            timeout_seconds: Abort a run that takes longer than this
        """
        if not 0.0 < damping < 1.0:
            raise ValueError(f"damping must be in (0, 1), got {damping}")
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")

        self.store = store
        self.damping = damping
        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self.norm = ConvergenceNorm(norm)
        self.edge_weighting = EdgeWeighting(edge_weighting)
        self.timeout_seconds = timeout_seconds

    def _edge_weight(self, edge: RelationshipEdge) -> float:
        if self.edge_weighting == EdgeWeighting.UNIFORM:
            return 1.0
        return float(edge.trust_allocated)

    def _build_edge_list(
        self,
        index: dict[str, int],
        edges: list[RelationshipEdge],
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Index-based edge arrays (a, b, weight) for weighted edges.

        Raises:
            ComputationAborted: On negative or non-finite weights, self-loops
                or edges that reference unknown accounts
        """
        src: list[int] = []
        dst: list[int] = []
        weights: list[float] = []

        for edge in edges:
            weight = self._edge_weight(edge)
            if not math.isfinite(weight) or weight < 0:
                raise ComputationAborted(f"Relationship {edge.id} has invalid weight {weight}")
            if edge.account_a not in index or edge.account_b not in index:
                raise ComputationAborted(
                    f"Relationship {edge.id} references unknown account "
                    f"({edge.account_a}, {edge.account_b})"
                )
            if edge.account_a == edge.account_b:
                raise ComputationAborted(f"Relationship {edge.id} is a self-loop")
            if weight == 0:
                continue

            src.append(index[edge.account_a])
            dst.append(index[edge.account_b])
            weights.append(weight)

        return (
            np.asarray(src, dtype=np.int64),
            np.asarray(dst, dtype=np.int64),
            np.asarray(weights, dtype=np.float64),
        )

    def _check_cancel(
        self,
        cancel_event: Optional[threading.Event],
        deadline: Optional[float],
        iteration: int,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ComputationCancelled(f"Propagation cancelled at iteration {iteration}")
        if deadline is not None and time.monotonic() > deadline:
            raise ComputationCancelled(
                f"Propagation exceeded {self.timeout_seconds}s timeout at iteration {iteration}"
            )

    def propagate(
        self,
        account_ids: list[str],
        edges: list[RelationshipEdge],
        cancel_event: Optional[threading.Event] = None,
    ) -> PropagationResult:
        """Run the fixed-point iteration.

        Each iteration computes the whole new vector from the previous one in
        a single vectorized step, so no account reads a partially updated
        vector.

        Args:
            account_ids: Every account, isolated ones included
            edges: Confirmed edges
            cancel_event: Set from another thread to stop the run

        Returns:
            PropagationResult with scores summing to 1
        """
        n = len(account_ids)
        if n == 0:
            return PropagationResult(converged=True)

        deadline = (
            time.monotonic() + self.timeout_seconds if self.timeout_seconds else None
        )
        index = {account_id: i for i, account_id in enumerate(account_ids)}
        src, dst, weights = self._build_edge_list(index, edges)

        # Undirected: every edge carries score both ways.
        to_idx = np.concatenate([src, dst])
        from_idx = np.concatenate([dst, src])
        both_weights = np.concatenate([weights, weights])

        total_weight = np.bincount(from_idx, weights=both_weights, minlength=n)
        dangling = total_weight == 0
        coefficients = both_weights / total_weight[from_idx] if len(from_idx) else both_weights

        d = self.damping
        teleport = (1.0 - d) / n
        scores = np.full(n, 1.0 / n)
        delta = float("inf")
        converged = False
        iterations = 0

        for iterations in range(1, self.max_iterations + 1):
            self._check_cancel(cancel_event, deadline, iterations)

            spread = np.bincount(to_idx, weights=coefficients * scores[from_idx], minlength=n)
            dangling_mass = scores[dangling].sum()
            new_scores = teleport + d * (spread + dangling_mass / n)

            diff = np.abs(new_scores - scores)
            delta = float(diff.sum() if self.norm == ConvergenceNorm.L1 else diff.max())
            scores = new_scores

            if not np.all(np.isfinite(scores)):
                raise ComputationAborted(f"Non-finite scores at iteration {iterations}")

            if delta < self.tolerance:
                converged = True
                break

        scores = scores / scores.sum()

        return PropagationResult(
            scores={account_id: float(scores[i]) for account_id, i in index.items()},
            iterations=iterations,
            converged=converged,
            final_delta=delta,
            num_edges=len(weights),
        )

    def rank(
        self,
        scores: dict[str, float],
        accounts: list[Account],
    ) -> list[ComputedTrustScore]:
        """Assign ranks 1..N by descending score.

        Ties (equal to 12 decimal places) go to the earlier-created account,
        then to the lower account ID.
        """
        created = {a.id: a.created_at for a in accounts}
        ordered = sorted(
            scores.items(),
            key=lambda item: (-round(item[1], 12), created[item[0]], item[0]),
        )

        n = len(ordered)
        top_score = ordered[0][1] if ordered else 0.0
        ranked = []
        for rank, (account_id, score) in enumerate(ordered, 1):
            display = round(100 * score / top_score) if top_score > 0 else 0
            percentile = round(100 * (n - rank) / (n - 1)) if n > 1 else 100
            ranked.append(ComputedTrustScore(
                account_id=account_id,
                rank=rank,
                trust_score=score,
                display_score=min(display, 100),
                percentile=percentile,
            ))
        return ranked

    def compute(
        self,
        view: NetworkView,
        triggered_by: str = "manual",
        cancel_event: Optional[threading.Event] = None,
    ) -> RankingSnapshot:
        """Build (but do not publish) a snapshot from a network view."""
        started = time.perf_counter()

        account_ids = [
            a.id for a in sorted(view.accounts, key=lambda a: (a.created_at, a.id))
        ]
        result = self.propagate(account_ids, view.confirmed_edges, cancel_event=cancel_event)
        ranked = self.rank(result.scores, view.accounts)

        log = TrustComputationLog(
            triggered_by=triggered_by,
            iterations=result.iterations,
            converged=result.converged,
            num_accounts=len(account_ids),
            num_edges=result.num_edges,
            final_delta=result.final_delta if math.isfinite(result.final_delta) else 0.0,
            damping=self.damping,
            duration_ms=(time.perf_counter() - started) * 1000,
        )

        return RankingSnapshot(
            version=self.store.next_snapshot_version,
            log=log,
            scores=tuple(ranked),
        )

    def run(
        self,
        triggered_by: str = "manual",
        cancel_event: Optional[threading.Event] = None,
    ) -> RankingSnapshot:
        """Recompute and publish the ranking.

        Non-convergence is recorded on the log and the best-effort scores are
        still published. Aborted or cancelled runs publish nothing and leave
        the previous snapshot in place.
        """
        view = self.store.read_view()
        logger.info(
            f"Trust propagation started ({triggered_by}): "
            f"{len(view.accounts)} accounts, {len(view.confirmed_edges)} confirmed edges"
        )

        try:
            snapshot = self.compute(view, triggered_by=triggered_by, cancel_event=cancel_event)
        except ComputationAborted as e:
            logger.error(f"Trust propagation aborted ({triggered_by}): {e}")
            raise
        except ComputationCancelled as e:
            logger.warning(f"Trust propagation cancelled ({triggered_by}): {e}")
            raise

        snapshot = self.store.publish_snapshot(snapshot)

        if snapshot.log.converged:
            logger.info(
                f"Trust propagation v{snapshot.version} converged after "
                f"{snapshot.log.iterations} iterations ({snapshot.log.duration_ms:.1f}ms)"
            )
        else:
            logger.warning(
                f"Trust propagation v{snapshot.version} did not converge after "
                f"{snapshot.log.iterations} iterations (delta {snapshot.log.final_delta:.3e}); "
                f"publishing best-effort scores"
            )
        return snapshot
