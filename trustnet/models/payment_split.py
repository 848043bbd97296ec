"""
Payment Split Calculator

Divides a hiring payout across a referral chain, with the largest share
going to the direct referrer.
"""

import logging
import math
from enum import Enum
from fractions import Fraction
from typing import Optional

from trustnet.errors import CyclicChain, EmptyChain, InvalidAmount
from trustnet.models.entities import PaymentSplit
from trustnet.models.ledger import validate_amount

logger = logging.getLogger(__name__)


class SplitPolicy(str, Enum):
    """Weight given to a participant at distance k from the hire (k=1 direct)."""
    GEOMETRIC = "geometric"            # decay ** (k - 1)
    INVERSE_SQUARE = "inverse_square"  # 1 / k**2


class PaymentSplitCalculator:
    """Weighted split of an integer payout over a root-first chain path.

    Rounding: every participant except the direct referrer gets their exact
    share rounded half-up; the direct referrer takes the remainder, so the
    shares always sum to the payout. If that remainder would leave the
    direct referrer below someone further up the chain (only possible for
    tiny payouts), the others are rounded down instead.
    """

    def __init__(
        self,
        decay_factor: float = 0.5,
        policy: SplitPolicy | str = SplitPolicy.GEOMETRIC,
    ):
        """Initialize calculator.

        Args:
            decay_factor: Ratio between a hop's weight and the hop below it,
                in (0, 1]; only used by the geometric policy
            policy: Weighting policy
        """
        if not 0.0 < decay_factor <= 1.0:
            raise ValueError(f"decay_factor must be in (0, 1], got {decay_factor}")
        self.decay_factor = decay_factor
        self.policy = SplitPolicy(policy)

    def _weight(self, distance: int) -> Fraction:
        if self.policy == SplitPolicy.INVERSE_SQUARE:
            return Fraction(1, distance * distance)
        return Fraction(str(self.decay_factor)) ** (distance - 1)

    def weights(self, chain_length: int) -> list[Fraction]:
        """Normalized weights, root first, summing to exactly 1."""
        raw = [self._weight(chain_length - i) for i in range(chain_length)]
        total = sum(raw)
        return [w / total for w in raw]

    def calculate(self, total_amount: int, chain_path: list[str]) -> list[PaymentSplit]:
        """Split `total_amount` over `chain_path`.

        Args:
            total_amount: Payout in whole currency units
            chain_path: Participant IDs, root referrer first, direct referrer last

        Returns:
            One PaymentSplit per participant, in chain order

        Raises:
            InvalidAmount: If total_amount <= 0
            EmptyChain: If chain_path is empty
            CyclicChain: If a participant appears twice
        """
        total_amount = validate_amount(total_amount)
        if not chain_path:
            raise EmptyChain()

        seen: set[str] = set()
        for account_id in chain_path:
            if account_id in seen:
                raise CyclicChain(list(chain_path), account_id)
            seen.add(account_id)

        n = len(chain_path)
        weights = self.weights(n)
        exact = [total_amount * w for w in weights]

        upstream = [math.floor(e + Fraction(1, 2)) for e in exact[:-1]]
        direct = total_amount - sum(upstream)
        if upstream and direct < max(upstream):
            upstream = [math.floor(e) for e in exact[:-1]]
            direct = total_amount - sum(upstream)

        amounts = upstream + [direct]

        splits = [
            PaymentSplit(
                account_id=account_id,
                amount=amount,
                weight=float(weight),
                distance_from_hire=n - i,
            )
            for i, (account_id, amount, weight) in enumerate(zip(chain_path, amounts, weights))
        ]

        logger.debug(
            f"Split {total_amount} over {n} participants ({self.policy.value}): "
            f"{[s.amount for s in splits]}"
        )
        return splits

    def as_mapping(self, total_amount: int, chain_path: list[str]) -> dict[str, int]:
        """Split as {account_id: amount}."""
        return {s.account_id: s.amount for s in self.calculate(total_amount, chain_path)}

    def get_summary(
        self,
        splits: list[PaymentSplit],
        total_amount: Optional[int] = None,
    ) -> dict:
        """Summary statistics for a computed split."""
        if not splits:
            return {"participants": 0, "total": 0, "direct_share": 0, "root_share": 0}

        total = sum(s.amount for s in splits)
        return {
            "participants": len(splits),
            "total": total,
            "requested_total": total_amount if total_amount is not None else total,
            "direct_share": splits[-1].amount,
            "root_share": splits[0].amount,
            "policy": self.policy.value,
        }
