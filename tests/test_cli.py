"""
Tests for the Command-Line Interface
"""

import pytest
from click.testing import CliRunner

from trustnet import __version__
from trustnet.main import cli
from trustnet.models.entities import ReferralStatus
from trustnet.utils.store import InMemoryStore


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    """Config pointing state and reports into the temp directory."""
    path = tmp_path / "config.yaml"
    path.write_text(
        f"state_file: {tmp_path / 'state.json'}\n"
        "output:\n"
        f"  directory: {tmp_path / 'reports'}\n"
        "  timestamp_filenames: false\n"
    )
    return path


@pytest.fixture
def invoke(runner, config_file):
    """Run a CLI command against the temp config."""
    def _invoke(*args):
        return runner.invoke(cli, ["--config", str(config_file), *args], obj={})
    return _invoke


@pytest.fixture
def imported(invoke, export_dir, tmp_path):
    """Import the sample export and return the state file path."""
    result = invoke("import", "--input", str(export_dir))
    assert result.exit_code == 0, result.output
    return tmp_path / "state.json"


class TestCli:
    """Tests for CLI commands."""

    def test_version(self, invoke):
        """Test version output."""
        result = invoke("version")
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_import_writes_state(self, imported):
        """Test that import seeds and saves the network."""
        store = InMemoryStore.load(imported)
        assert store.stats()["accounts"] == 4
        assert store.stats()["referrals"] == 2

    def test_import_missing_accounts(self, invoke, tmp_path):
        """Test import from a directory without accounts.csv."""
        empty = tmp_path / "empty"
        empty.mkdir()

        result = invoke("import", "--input", str(empty))

        assert result.exit_code == 1
        assert "Failed to load data" in result.output

    def test_recompute_and_history(self, invoke, imported):
        """Test a manual run followed by the history listing."""
        result = invoke("recompute")
        assert result.exit_code == 0, result.output
        assert "Ranking v1" in result.output

        store = InMemoryStore.load(imported)
        assert store.latest_snapshot.version == 1
        assert len(store.latest_snapshot.scores) == 4

        result = invoke("history")
        assert result.exit_code == 0
        assert "manual" in result.output

    def test_recompute_with_report(self, invoke, imported, tmp_path):
        """Test writing ranking reports."""
        result = invoke("recompute", "--report")

        assert result.exit_code == 0, result.output
        assert (tmp_path / "reports" / "trust_ranking.csv").exists()
        assert (tmp_path / "reports" / "computation_history.json").exists()

    def test_ranking_before_recompute(self, invoke, imported):
        """Test the hint shown when nothing is published."""
        result = invoke("ranking")
        assert result.exit_code == 0
        assert "No ranking published" in result.output

    def test_invite_and_accept(self, invoke, imported):
        """Test the invitation lifecycle from the command line."""
        result = invoke("invite", "dave@example.com", "newbie@example.com", "--trust", "25")
        assert result.exit_code == 0, result.output

        store = InMemoryStore.load(imported)
        invitation = next(
            inv for inv in store.invitations.values()
            if inv.recipient_email == "newbie@example.com"
        )

        result = invoke("accept", invitation.id, "--first-name", "New")
        assert result.exit_code == 0, result.output

        store = InMemoryStore.load(imported)
        newbie = store.find_account_by_email("newbie@example.com")
        assert newbie is not None
        assert newbie.first_name == "New"
        assert store.accounts[newbie.referred_by].email == "dave@example.com"

    def test_invite_insufficient_trust(self, invoke, imported):
        """Test that ledger errors exit non-zero without saving."""
        invoke("invite", "dave@example.com", "x@example.com", "--trust", "100")

        result = invoke("invite", "dave@example.com", "y@example.com", "--trust", "1")

        assert result.exit_code == 1
        assert "Insufficient trust" in result.output

    def test_expire(self, invoke, imported):
        """Test expiring an invitation by ID."""
        store = InMemoryStore.load(imported)
        pending = next(inv for inv in store.invitations.values() if inv.is_pending)

        result = invoke("expire", pending.id)

        assert result.exit_code == 0, result.output
        assert not InMemoryStore.load(imported).invitations[pending.id].is_pending

    def test_expire_requires_target(self, invoke, imported):
        """Test that expire needs an ID or --stale."""
        result = invoke("expire")
        assert result.exit_code == 1

    def test_refer_and_advance(self, invoke, imported):
        """Test submitting and advancing a referral."""
        result = invoke("refer", "job-7", "gina@example.com", "carol@example.com")
        assert result.exit_code == 0, result.output

        store = InMemoryStore.load(imported)
        referral = next(r for r in store.referrals.values() if r.job_id == "job-7")
        assert referral.chain_depth == 3

        result = invoke("advance", referral.id, "screening")
        assert result.exit_code == 0, result.output
        assert InMemoryStore.load(imported).referrals[referral.id].status == ReferralStatus.SCREENING

        result = invoke("advance", referral.id, "screening")
        assert result.exit_code == 0

    def test_forward_then_refer(self, invoke, imported):
        """Test that a referral after a forward credits the forwarding account."""
        result = invoke("forward", "job-9", "alice@example.com", "dave@example.com", "-m", "fits you")
        assert result.exit_code == 0, result.output

        result = invoke("refer", "job-9", "hana@example.com", "dave@example.com")
        assert result.exit_code == 0, result.output

        store = InMemoryStore.load(imported)
        referral = next(r for r in store.referrals.values() if r.job_id == "job-9")
        alice = store.find_account_by_email("alice@example.com")
        dave = store.find_account_by_email("dave@example.com")
        assert referral.chain_path == [alice.id, dave.id]

    def test_forward_to_self(self, invoke, imported):
        """Test that self-forwarding exits non-zero."""
        result = invoke("forward", "job-9", "dave@example.com", "dave@example.com")
        assert result.exit_code == 1

    def test_splits_for_hired_referral(self, invoke, imported):
        """Test the payout preview."""
        store = InMemoryStore.load(imported)
        hired = next(r for r in store.referrals.values() if r.status == ReferralStatus.HIRED)

        result = invoke("splits", hired.id, "--amount", "10000")

        assert result.exit_code == 0, result.output
        assert "Total: 10000" in result.output
        assert "5714" in result.output

    def test_splits_for_unhired_referral(self, invoke, imported):
        """Test that unhired referrals cannot be paid out."""
        store = InMemoryStore.load(imported)
        open_referral = next(
            r for r in store.referrals.values() if r.status == ReferralStatus.SCREENING
        )

        result = invoke("splits", open_referral.id, "--amount", "10000")

        assert result.exit_code == 1

    def test_status_audit_reconcile(self, invoke, imported):
        """Test the read-only maintenance commands."""
        result = invoke("status")
        assert result.exit_code == 0
        assert "Ledger" in result.output

        result = invoke("audit")
        assert result.exit_code == 0
        assert "balance" in result.output

        result = invoke("reconcile")
        assert result.exit_code == 0
        assert "No duplicate" in result.output
