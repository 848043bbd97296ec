"""
Tests for the Referral Network surface and the reference store
"""

import pytest
from pydantic import ValidationError

from trustnet.errors import DuplicateAccount, InsufficientTrust, NotFoundError
from trustnet.models.entities import account_id_for_email
from trustnet.network import ReferralNetwork
from trustnet.utils.config import Config
from trustnet.utils.store import InMemoryStore


class TestAccountDirectory:
    """Tests for account creation and lookup."""

    def test_create_account_opens_budget(self, network):
        """Test that a new account gets its tier endowment."""
        account = network.create_account("Scout@Example.com", tier="talent_scout")

        assert account.email == "scout@example.com"
        assert account.id == account_id_for_email("scout@example.com")
        assert network.ledger.get_account(account.id).available_trust == 150

    def test_duplicate_email_rejected(self, network):
        """Test that an email maps to one account."""
        network.create_account("a@example.com")
        with pytest.raises(DuplicateAccount):
            network.create_account("A@example.com")

    def test_unknown_referrer_rejected(self, network):
        """Test that referred_by must exist."""
        with pytest.raises(NotFoundError):
            network.create_account("a@example.com", referred_by="ghost")
        assert network.store.accounts == {}

    def test_lookup_by_id_or_email(self, network):
        """Test resolving an account both ways."""
        account = network.create_account("a@example.com")

        assert network.get_account(account.id) is account
        assert network.get_account("A@EXAMPLE.COM") is account
        with pytest.raises(NotFoundError):
            network.get_account("missing@example.com")

    def test_display_name(self, network):
        """Test that display name falls back to email."""
        named = network.create_account("n@example.com", first_name="Nia", last_name="Obi")
        unnamed = network.create_account("u@example.com")

        assert named.display_name == "Nia Obi"
        assert unnamed.display_name == "u@example.com"

    def test_grant_trust(self, network):
        """Test administrative top-up through the surface."""
        account = network.create_account("a@example.com")
        network.grant_trust(account.id, 50)
        assert network.ledger.get_account(account.id).total_granted == 150


class TestConfiguredNetwork:
    """Tests for configuration flowing into components."""

    def test_config_values_are_applied(self):
        """Test that config sections reach each component."""
        config = Config(
            ledger={"tier_grants": {"connector": 20}, "max_invitation_trust": 15},
            propagation={"damping": 0.5, "norm": "linf"},
            referrals={"max_chain_depth": 4},
            payments={"decay_factor": 0.25, "policy": "inverse_square"},
        )
        network = ReferralNetwork(config=config)

        assert network.engine.damping == 0.5
        assert network.engine.norm.value == "linf"
        assert network.chains.max_depth == 4
        assert network.splits.policy.value == "inverse_square"
        assert network.invitations.max_invitation_trust == 15

        account = network.create_account("a@example.com")
        assert network.ledger.get_account(account.id).available_trust == 20
        network.send_invitation(account.id, "b@example.com", 15)
        with pytest.raises(InsufficientTrust):
            network.send_invitation(account.id, "c@example.com", 15)

    def test_recompute_on_change(self, base_time):
        """Test that confirming a relationship schedules a run when enabled."""
        network = ReferralNetwork(config=Config(propagation={"recompute_on_change": True}))
        try:
            alice = network.create_account("alice@example.com", created_at=base_time)
            invitation = network.send_invitation(alice.id, "bob@example.com", 10)
            network.accept_invitation(invitation.id)
            network.shutdown(wait=True)

            snapshot = network.get_latest_snapshot()
            assert snapshot is not None
            assert snapshot.log.triggered_by == "relationship-change"
            assert snapshot.log.num_edges == 1
        finally:
            network.shutdown()


class TestStore:
    """Tests for the reference store."""

    def test_transaction_rolls_back(self, store, network):
        """Test that a failing unit of work leaves no trace."""
        network.create_account("a@example.com")

        with pytest.raises(RuntimeError):
            with store.transaction():
                store.trust_accounts[account_id_for_email("a@example.com")].available_trust = 0
                raise RuntimeError("boom")

        assert network.ledger.get_account(account_id_for_email("a@example.com")).available_trust == 100

    def test_nested_transactions_join_outer(self, store, network):
        """Test that an inner failure rolls back the whole outer transaction."""
        with pytest.raises(InsufficientTrust):
            with store.transaction():
                account = network.create_account("a@example.com")
                network.ledger.reserve(account.id, 500)

        assert store.accounts == {}
        assert store.trust_accounts == {}

    def test_save_and_load(self, tmp_path, network, three_members):
        """Test that state and rankings survive a round trip to disk."""
        alice, bob, _ = three_members
        invitation = network.send_invitation(alice.id, bob.id, 30)
        network.accept_invitation(invitation.id)
        referral = network.submit_referral("job-1", "cand@example.com", bob.id)
        snapshot = network.recompute_trust_scores()

        path = network.store.save(tmp_path / "state.json")
        loaded = ReferralNetwork(store=InMemoryStore.load(path))

        assert loaded.get_account(alice.email).id == alice.id
        assert loaded.ledger.get_account(alice.id).allocated_trust == 30
        assert loaded.graph.get_edge(alice.id, bob.id).trust_allocated == 30
        assert loaded.chains.get_referral(referral.id).chain_path == [bob.id]
        assert loaded.get_latest_snapshot().version == snapshot.version
        assert len(loaded.get_computation_history()) == 1
        assert loaded.recompute_trust_scores().version == snapshot.version + 1

    def test_load_missing_file(self, tmp_path):
        """Test that a missing state file starts empty."""
        store = InMemoryStore.load(tmp_path / "absent.json")
        assert store.stats()["accounts"] == 0
        assert store.latest_snapshot is None

    def test_stats(self, network, three_members):
        """Test record counts."""
        network.send_invitation(three_members[0].id, three_members[1].id, 10)

        stats = network.store.stats()

        assert stats["accounts"] == 3
        assert stats["trust_accounts"] == 3
        assert stats["edges"] == 1
        assert stats["invitations"] == 1
        assert stats["snapshot_version"] is None

    def test_snapshot_is_immutable(self, network, three_members):
        """Test that published rankings cannot be edited in place."""
        snapshot = network.recompute_trust_scores()

        with pytest.raises(ValidationError):
            snapshot.scores[0].rank = 99
