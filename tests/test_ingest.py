"""
Tests for Network Export Ingestion and Seeding
"""

from datetime import datetime

import pytest

from trustnet.models.entities import AccountTier, ReferralStatus, RelationshipStatus
from trustnet.pipeline.ingest import _parse_date, load_network_export
from trustnet.pipeline.seed import seed_network


class TestParseDate:
    """Tests for date parsing."""

    def test_iso_date(self):
        """Test parsing ISO date format."""
        assert _parse_date("2024-03-15") == datetime(2024, 3, 15)

    def test_datetime_with_time(self):
        """Test parsing a timestamp."""
        assert _parse_date("2024-03-15 10:30:00") == datetime(2024, 3, 15, 10, 30)

    def test_day_month_name(self):
        """Test parsing '15 Mar 2024' format."""
        assert _parse_date("15 Mar 2024") == datetime(2024, 3, 15)

    def test_none_and_garbage(self):
        """Test that missing or unparseable values become None."""
        assert _parse_date(None) is None
        assert _parse_date("not a date") is None


class TestLoadNetworkExport:
    """Tests for reading the CSV files."""

    def test_loads_all_files(self, export_dir):
        """Test that valid rows load and malformed rows are reported."""
        export = load_network_export(export_dir)

        assert len(export.accounts) == 4
        assert len(export.relationships) == 3
        assert len(export.referrals) == 2
        assert len(export.errors) == 2
        assert set(export.loaded_files) == {"accounts.csv", "relationships.csv", "referrals.csv"}

    def test_normalizes_columns_and_values(self, export_dir):
        """Test header normalisation and blank handling."""
        export = load_network_export(export_dir)

        bob = next(a for a in export.accounts if a.email == "bob@example.com")
        assert bob.first_name == "Bob"
        assert bob.tier == "connector"
        assert bob.referred_by == "alice@example.com"
        assert bob.created_at == datetime(2024, 1, 2)

        alice = next(a for a in export.accounts if a.email == "alice@example.com")
        assert alice.referred_by is None

        frank = next(r for r in export.referrals if r.candidate_email == "frank@example.com")
        assert frank.notes is None

    def test_optional_files_missing(self, tmp_path):
        """Test that only accounts.csv is required."""
        (tmp_path / "accounts.csv").write_text("email\nsolo@example.com\n")

        export = load_network_export(tmp_path)

        assert len(export.accounts) == 1
        assert export.relationships == []
        assert set(export.skipped_files) == {"relationships.csv", "referrals.csv"}

    def test_missing_directory(self, tmp_path):
        """Test that a missing directory raises."""
        with pytest.raises(FileNotFoundError):
            load_network_export(tmp_path / "nope")

    def test_missing_accounts_file(self, tmp_path):
        """Test that accounts.csv is required."""
        (tmp_path / "relationships.csv").write_text("sender,recipient,trust\n")
        with pytest.raises(FileNotFoundError):
            load_network_export(tmp_path)


class TestSeedNetwork:
    """Tests for replaying an export through the network."""

    @pytest.fixture
    def seeded(self, network, export_dir):
        export = load_network_export(export_dir)
        report = seed_network(export, network)
        return network, report

    def test_report_counts(self, seeded):
        """Test that every valid record is applied."""
        _, report = seeded

        assert report.accounts_created == 4
        assert report.relationships_confirmed == 2
        assert report.relationships_pending == 1
        assert report.referrals_created == 2
        assert report.errors == []

    def test_accounts_and_parentage(self, seeded):
        """Test tiers and referred_by links."""
        network, _ = seeded
        alice = network.get_account("alice@example.com")
        bob = network.get_account("bob@example.com")
        carol = network.get_account("carol@example.com")

        assert alice.tier == AccountTier.NETWORK_HUB
        assert bob.referred_by == alice.id
        assert carol.referred_by == bob.id

    def test_ledger_reflects_relationships(self, seeded):
        """Test that seeded reservations conserve trust."""
        network, _ = seeded
        alice = network.get_account("alice@example.com")
        carol = network.get_account("carol@example.com")

        alice_account = network.ledger.get_account(alice.id)
        assert alice_account.allocated_trust == 40
        assert alice_account.available_trust == 160
        assert network.ledger.get_account(carol.id).allocated_trust == 20
        assert network.ledger.audit() == []

    def test_relationship_statuses(self, seeded):
        """Test confirmed and pending edges."""
        network, _ = seeded
        alice, bob, carol, dave = (
            network.get_account(f"{n}@example.com") for n in ["alice", "bob", "carol", "dave"]
        )

        assert network.graph.get_edge(alice.id, bob.id).status == RelationshipStatus.CONFIRMED
        assert network.graph.get_edge(carol.id, dave.id).status == RelationshipStatus.PENDING

    def test_referrals_reach_status(self, seeded):
        """Test that referrals are walked to their exported status."""
        network, _ = seeded
        alice = network.get_account("alice@example.com")
        bob = network.get_account("bob@example.com")
        carol = network.get_account("carol@example.com")

        hired = network.chains.referrals_for_job("job-1")[0]
        assert hired.status == ReferralStatus.HIRED
        assert hired.chain_path == [alice.id, bob.id, carol.id]
        assert network.chains.referrals_for_job("job-2")[0].status == ReferralStatus.SCREENING

    def test_seeding_twice_reports_duplicates(self, seeded, export_dir):
        """Test that a repeated import skips existing records."""
        network, _ = seeded

        report = seed_network(load_network_export(export_dir), network)

        assert report.accounts_created == 0
        assert report.errors
        assert network.ledger.audit() == []
