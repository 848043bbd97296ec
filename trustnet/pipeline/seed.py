"""
Network Seeding

Replays an imported export through the ledger and invitation lifecycle so
that seeded data satisfies the same invariants as live data.
"""

import logging

from pydantic import BaseModel, Field

from trustnet.errors import TrustNetError
from trustnet.models.entities import AccountTier, ReferralStatus
from trustnet.network import ReferralNetwork
from trustnet.pipeline.ingest import NetworkExport

logger = logging.getLogger(__name__)


# Forward path walked to reach each referral status.
_STATUS_PATH = {
    ReferralStatus.PENDING: [],
    ReferralStatus.SCREENING: [ReferralStatus.SCREENING],
    ReferralStatus.INTERVIEWING: [ReferralStatus.SCREENING, ReferralStatus.INTERVIEWING],
    ReferralStatus.HIRED: [
        ReferralStatus.SCREENING, ReferralStatus.INTERVIEWING, ReferralStatus.HIRED,
    ],
    ReferralStatus.REJECTED: [ReferralStatus.REJECTED],
}


class SeedReport(BaseModel):
    """Counts of what was applied and what was skipped."""
    accounts_created: int = 0
    relationships_confirmed: int = 0
    relationships_pending: int = 0
    referrals_created: int = 0
    errors: list[str] = Field(default_factory=list)


def seed_network(export: NetworkExport, network: ReferralNetwork) -> SeedReport:
    """Apply an export to a network.

    Accounts are created first (oldest first) and `referred_by` links bound
    once every account exists. Relationships go through send/accept so the
    sender's trust is reserved. Rows that violate a rule are skipped and
    reported.
    """
    report = SeedReport()

    accounts = sorted(
        export.accounts,
        key=lambda r: (r.created_at is None, r.created_at or 0, r.email),
    )
    for record in accounts:
        try:
            network.create_account(
                record.email,
                tier=AccountTier(record.tier),
                first_name=record.first_name,
                last_name=record.last_name,
                created_at=record.created_at,
            )
            report.accounts_created += 1
        except (TrustNetError, ValueError) as e:
            report.errors.append(f"account {record.email}: {e}")
            logger.warning(f"Skipping account {record.email}: {e}")

    with network.store.transaction():
        for record in export.accounts:
            if not record.referred_by:
                continue
            account = network.store.find_account_by_email(record.email)
            parent = network.store.resolve_account(record.referred_by)
            if account is None or parent is None:
                report.errors.append(f"referred_by {record.referred_by} for {record.email} not found")
                continue
            account.referred_by = parent.id

    for record in export.relationships:
        try:
            sender = network.get_account(record.sender)
            invitation = network.invitations.send_invitation(
                sender.id, record.recipient, record.trust, created_at=record.created_at
            )
            if record.status == "confirmed":
                network.invitations.accept_invitation(invitation.id)
                report.relationships_confirmed += 1
            else:
                report.relationships_pending += 1
        except TrustNetError as e:
            report.errors.append(f"relationship {record.sender}->{record.recipient}: {e}")
            logger.warning(f"Skipping relationship {record.sender}->{record.recipient}: {e}")

    for record in export.referrals:
        try:
            referrer = network.get_account(record.referrer)
            referral = network.submit_referral(
                record.job_id, record.candidate_email, referrer.id, notes=record.notes
            )
            for status in _STATUS_PATH[ReferralStatus(record.status)]:
                network.update_referral_status(referral.id, status)
            report.referrals_created += 1
        except (TrustNetError, ValueError) as e:
            report.errors.append(f"referral {record.candidate_email}/{record.job_id}: {e}")
            logger.warning(f"Skipping referral {record.candidate_email}/{record.job_id}: {e}")

    logger.info(
        f"Seeded {report.accounts_created} accounts, "
        f"{report.relationships_confirmed} confirmed and "
        f"{report.relationships_pending} pending relationships, "
        f"{report.referrals_created} referrals ({len(report.errors)} skipped)"
    )
    return report
