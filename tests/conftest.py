"""
Pytest Configuration and Shared Fixtures
"""

import pytest
from datetime import datetime, timedelta
from pathlib import Path

from trustnet.models.entities import AccountTier
from trustnet.network import ReferralNetwork
from trustnet.utils.config import Config
from trustnet.utils.store import InMemoryStore


@pytest.fixture
def store() -> InMemoryStore:
    """Create an empty store."""
    return InMemoryStore()


@pytest.fixture
def network(store) -> ReferralNetwork:
    """Create a network with default configuration."""
    net = ReferralNetwork(store=store, config=Config())
    yield net
    net.shutdown()


@pytest.fixture
def base_time() -> datetime:
    """Fixed creation time so tie-breaks are predictable."""
    return datetime(2024, 1, 1, 9, 0)


@pytest.fixture
def three_members(network, base_time):
    """Three connector accounts created a minute apart."""
    return [
        network.create_account(
            f"{name.lower()}@example.com",
            first_name=name,
            last_name="Tester",
            created_at=base_time + timedelta(minutes=i),
        )
        for i, name in enumerate(["Alice", "Bob", "Carol"])
    ]


@pytest.fixture
def referral_line(network, base_time):
    """Root -> mid -> direct parentage, each bringing in the next."""
    root = network.create_account("root@example.com", created_at=base_time)
    mid = network.create_account(
        "mid@example.com", referred_by=root.id, created_at=base_time + timedelta(minutes=1)
    )
    direct = network.create_account(
        "direct@example.com",
        tier=AccountTier.NETWORK_HUB,
        referred_by=mid.id,
        created_at=base_time + timedelta(minutes=2),
    )
    return root, mid, direct


@pytest.fixture
def export_dir(tmp_path) -> Path:
    """Write a small CSV network export."""
    (tmp_path / "accounts.csv").write_text(
        "Email,First Name,Last Name,Tier,Referred By,Created At\n"
        "alice@example.com,Alice,Anders,network_hub,,2024-01-01\n"
        "bob@example.com,Bob,Brown,connector,alice@example.com,2024-01-02\n"
        "carol@example.com,Carol,Chen,talent_scout,bob@example.com,2024-01-03\n"
        "dave@example.com,Dave,Diaz,connector,,2024-01-04\n"
        ",Nobody,Noemail,connector,,2024-01-05\n"
    )
    (tmp_path / "relationships.csv").write_text(
        "sender,recipient,trust,status,created_at\n"
        "alice@example.com,bob@example.com,40,confirmed,2024-02-01\n"
        "bob@example.com,carol@example.com,30,confirmed,2024-02-02\n"
        "carol@example.com,dave@example.com,20,pending,2024-02-03\n"
        "dave@example.com,alice@example.com,0,confirmed,2024-02-04\n"
    )
    (tmp_path / "referrals.csv").write_text(
        "job_id,candidate_email,referrer,status,notes\n"
        "job-1,erin@example.com,carol@example.com,hired,strong backend\n"
        "job-2,frank@example.com,bob@example.com,screening,\n"
    )
    return tmp_path
