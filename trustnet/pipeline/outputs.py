"""
Output Generation

Generates CSV, Markdown, and JSON reports for rankings, computation history
and payment splits.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from trustnet.models.entities import (
    Account,
    PaymentSplit,
    RankingSnapshot,
    Referral,
    TrustComputationLog,
)

logger = logging.getLogger(__name__)


class OutputGenerator:
    """Generates various output formats from network data."""

    def __init__(
        self,
        output_dir: str | Path = "./outputs",
        formats: Optional[list[str]] = None,
        timestamp_filenames: bool = True,
        max_items_per_section: int = 20,
        include_methodology: bool = True,
    ):
        """Initialize output generator.

        Args:
            output_dir: Directory for output files
            formats: List of formats to generate (csv, markdown, json)
            timestamp_filenames: Whether to include timestamp in filenames
            max_items_per_section: Maximum rows per markdown table
            include_methodology: Whether to include methodology in reports
        """
        self.output_dir = Path(output_dir)
        self.formats = formats or ["csv", "markdown", "json"]
        self.timestamp_filenames = timestamp_filenames
        self.max_items_per_section = max_items_per_section
        self.include_methodology = include_methodology

        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _get_filename(self, base_name: str, extension: str) -> Path:
        """Generate output filename."""
        if self.timestamp_filenames:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"{base_name}_{timestamp}.{extension}"
        else:
            filename = f"{base_name}.{extension}"
        return self.output_dir / filename

    def _ranking_to_csv(
        self,
        snapshot: RankingSnapshot,
        accounts: dict[str, Account],
    ) -> str:
        """Convert a ranking to CSV format."""
        lines = ["rank,account_id,email,name,trust_score,display_score,percentile"]

        for score in snapshot.top(len(snapshot.scores)):
            account = accounts.get(score.account_id)
            lines.append(
                f"{score.rank},"
                f"{score.account_id},"
                f'"{account.email if account else ""}",'
                f'"{account.display_name if account else ""}",'
                f"{score.trust_score:.10f},"
                f"{score.display_score},"
                f"{score.percentile}"
            )

        return "\n".join(lines)

    def _generate_ranking_md(
        self,
        snapshot: RankingSnapshot,
        accounts: dict[str, Account],
    ) -> str:
        """Generate trust ranking markdown report."""
        log = snapshot.log
        lines = ["# Trust Ranking\n"]

        if self.include_methodology:
            lines.extend([
                "## Methodology\n",
                "Scores come from damped propagation over confirmed relationships:\n",
                f"- **Damping**: {log.damping} of each score flows to neighbours",
                "- **Edge weight**: trust committed by the relationship's initiator",
                "- **Normalization**: scores sum to 1 across all accounts",
                "- **Ties**: the earlier account ranks higher\n",
            ])

        status = "converged" if log.converged else "did not converge"
        lines.extend([
            f"*Snapshot v{snapshot.version}, triggered by {log.triggered_by}*\n",
            f"*{log.num_accounts} accounts, {log.num_edges} weighted edges, "
            f"{log.iterations} iterations ({status})*\n",
            "\n## Top Accounts\n",
            "| Rank | Name | Score | Display | Percentile |",
            "|------|------|-------|---------|------------|",
        ])

        for score in snapshot.top(self.max_items_per_section):
            account = accounts.get(score.account_id)
            name = account.display_name if account else score.account_id
            lines.append(
                f"| {score.rank} | {name} | {score.trust_score:.4f} | "
                f"{score.display_score} | {score.percentile} |"
            )

        return "\n".join(lines)

    def _history_to_csv(self, logs: list[TrustComputationLog]) -> str:
        """Convert computation logs to CSV format."""
        lines = [
            "id,created_at,triggered_by,iterations,converged,num_accounts,"
            "num_edges,final_delta,duration_ms"
        ]

        for log in logs:
            lines.append(
                f"{log.id},"
                f"{log.created_at.isoformat()},"
                f'"{log.triggered_by}",'
                f"{log.iterations},"
                f"{log.converged},"
                f"{log.num_accounts},"
                f"{log.num_edges},"
                f"{log.final_delta:.3e},"
                f"{log.duration_ms:.1f}"
            )

        return "\n".join(lines)

    def _generate_splits_md(
        self,
        referral: Referral,
        splits: list[PaymentSplit],
        accounts: dict[str, Account],
        total_amount: int,
    ) -> str:
        """Generate payment split markdown report."""
        lines = [
            "# Payment Splits\n",
            f"*Referral {referral.id} for job {referral.job_id}*\n",
            f"*Candidate: {referral.candidate_email}, chain depth {referral.chain_depth}*\n",
            f"*Total payout: {total_amount}*\n",
            "\n| Position | Name | Distance | Weight | Amount |",
            "|----------|------|----------|--------|--------|",
        ]

        for i, split in enumerate(splits, 1):
            account = accounts.get(split.account_id)
            name = account.display_name if account else split.account_id
            lines.append(
                f"| {i} | {name} | {split.distance_from_hire} | "
                f"{split.weight:.4f} | {split.amount} |"
            )

        return "\n".join(lines)

    def generate_trust_ranking(
        self,
        snapshot: RankingSnapshot,
        accounts: dict[str, Account],
    ) -> dict[str, Path]:
        """Generate trust ranking reports."""
        generated = {}

        if "csv" in self.formats:
            filepath = self._get_filename("trust_ranking", "csv")
            filepath.write_text(self._ranking_to_csv(snapshot, accounts))
            generated["csv"] = filepath

        if "markdown" in self.formats:
            filepath = self._get_filename("trust_ranking", "md")
            filepath.write_text(self._generate_ranking_md(snapshot, accounts))
            generated["markdown"] = filepath

        if "json" in self.formats:
            filepath = self._get_filename("trust_ranking", "json")
            filepath.write_text(snapshot.model_dump_json(indent=2))
            generated["json"] = filepath

        logger.info(f"Generated trust ranking reports: {list(generated.keys())}")
        return generated

    def generate_computation_history(
        self,
        logs: list[TrustComputationLog],
    ) -> dict[str, Path]:
        """Generate computation history reports."""
        generated = {}

        if "csv" in self.formats:
            filepath = self._get_filename("computation_history", "csv")
            filepath.write_text(self._history_to_csv(logs))
            generated["csv"] = filepath

        if "json" in self.formats:
            filepath = self._get_filename("computation_history", "json")
            filepath.write_text(json.dumps(
                [log.model_dump() for log in logs], indent=2, default=str
            ))
            generated["json"] = filepath

        logger.info(f"Generated computation history reports: {list(generated.keys())}")
        return generated

    def generate_payment_splits(
        self,
        referral: Referral,
        splits: list[PaymentSplit],
        accounts: dict[str, Account],
        total_amount: int,
    ) -> dict[str, Path]:
        """Generate payment split reports for one referral."""
        generated = {}
        base_name = f"payment_splits_{referral.id}"

        if "markdown" in self.formats:
            filepath = self._get_filename(base_name, "md")
            filepath.write_text(self._generate_splits_md(referral, splits, accounts, total_amount))
            generated["markdown"] = filepath

        if "json" in self.formats:
            json_data = {
                "referral_id": referral.id,
                "job_id": referral.job_id,
                "candidate_email": referral.candidate_email,
                "chain_depth": referral.chain_depth,
                "total_amount": total_amount,
                "splits": [s.model_dump() for s in splits],
            }
            filepath = self._get_filename(base_name, "json")
            filepath.write_text(json.dumps(json_data, indent=2, default=str))
            generated["json"] = filepath

        logger.info(f"Generated payment split reports for {referral.id}: {list(generated.keys())}")
        return generated


def generate_outputs(
    snapshot: RankingSnapshot,
    accounts: dict[str, Account],
    history: Optional[list[TrustComputationLog]] = None,
    output_dir: str | Path = "./outputs",
    formats: Optional[list[str]] = None,
    timestamp_filenames: bool = True,
) -> dict[str, dict[str, Path]]:
    """Convenience function to generate ranking and history reports.

    Returns:
        Dictionary of report_type -> format -> filepath
    """
    generator = OutputGenerator(
        output_dir=output_dir,
        formats=formats or ["csv", "markdown", "json"],
        timestamp_filenames=timestamp_filenames,
    )

    results = {"trust_ranking": generator.generate_trust_ranking(snapshot, accounts)}

    if history:
        results["computation_history"] = generator.generate_computation_history(history)

    return results
