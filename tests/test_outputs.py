"""
Tests for Output Generation
"""

import json

import pytest

from trustnet.pipeline.outputs import OutputGenerator, generate_outputs


@pytest.fixture
def ranked_network(network, three_members):
    """A network with one confirmed relationship and a published ranking."""
    alice, bob, _ = three_members
    invitation = network.send_invitation(alice.id, bob.id, 30)
    network.accept_invitation(invitation.id)
    network.recompute_trust_scores()
    return network


class TestOutputGenerator:
    """Tests for OutputGenerator class."""

    @pytest.fixture
    def generator(self, tmp_path):
        return OutputGenerator(output_dir=tmp_path, timestamp_filenames=False)

    def test_filename_without_timestamp(self, generator, tmp_path):
        """Test plain filenames."""
        assert generator._get_filename("report", "csv") == tmp_path / "report.csv"

    def test_filename_with_timestamp(self, tmp_path):
        """Test timestamped filenames."""
        generator = OutputGenerator(output_dir=tmp_path)
        name = generator._get_filename("report", "csv").name
        assert name.startswith("report_") and name.endswith(".csv")

    def test_trust_ranking_reports(self, generator, ranked_network):
        """Test CSV, markdown and JSON ranking reports."""
        snapshot = ranked_network.get_latest_snapshot()

        files = generator.generate_trust_ranking(snapshot, dict(ranked_network.store.accounts))

        assert set(files) == {"csv", "markdown", "json"}
        csv_lines = files["csv"].read_text().splitlines()
        assert csv_lines[0].startswith("rank,account_id,email")
        assert len(csv_lines) == 4
        assert "# Trust Ranking" in files["markdown"].read_text()
        assert "Alice Tester" in files["markdown"].read_text()
        data = json.loads(files["json"].read_text())
        assert data["version"] == 1
        assert len(data["scores"]) == 3

    def test_computation_history_reports(self, generator, ranked_network):
        """Test run history reports."""
        files = generator.generate_computation_history(ranked_network.get_computation_history())

        assert set(files) == {"csv", "json"}
        assert len(files["csv"].read_text().splitlines()) == 2
        assert json.loads(files["json"].read_text())[0]["triggered_by"] == "manual"

    def test_payment_split_reports(self, generator, network, referral_line):
        """Test payout reports for a hired referral."""
        referral = network.submit_referral("job-9", "cand@example.com", referral_line[2].id)
        for status in ["screening", "interviewing", "hired"]:
            network.update_referral_status(referral.id, status)
        splits = network.compute_splits(referral.id, 10000)

        files = generator.generate_payment_splits(
            referral, splits, dict(network.store.accounts), 10000
        )

        data = json.loads(files["json"].read_text())
        assert [s["amount"] for s in data["splits"]] == [1429, 2857, 5714]
        assert "job-9" in files["markdown"].read_text()

    def test_formats_filter(self, tmp_path, ranked_network):
        """Test that only requested formats are written."""
        generator = OutputGenerator(output_dir=tmp_path, formats=["json"], timestamp_filenames=False)

        files = generator.generate_trust_ranking(
            ranked_network.get_latest_snapshot(), dict(ranked_network.store.accounts)
        )

        assert set(files) == {"json"}


def test_generate_outputs(tmp_path, ranked_network):
    """Test the convenience wrapper."""
    results = generate_outputs(
        ranked_network.get_latest_snapshot(),
        dict(ranked_network.store.accounts),
        history=ranked_network.get_computation_history(),
        output_dir=tmp_path / "reports",
        timestamp_filenames=False,
    )

    assert set(results) == {"trust_ranking", "computation_history"}
    assert (tmp_path / "reports" / "trust_ranking.md").exists()
