"""
Tests for Configuration Loading
"""

import pytest
from pydantic import ValidationError

from trustnet.utils.config import Config, _deep_merge, _resolve_env_vars, load_config


class TestLoadConfig:
    """Tests for YAML configuration loading."""

    def test_defaults_without_files(self, tmp_path):
        """Test that missing files give default values."""
        config = load_config(tmp_path / "config.yaml")

        assert config.ledger.tier_grants["network_hub"] == 200
        assert config.propagation.damping == 0.85
        assert config.propagation.max_iterations == 100
        assert config.referrals.max_chain_depth == 10
        assert config.payments.decay_factor == 0.5

    def test_yaml_values(self, tmp_path):
        """Test reading values from config.yaml."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "propagation:\n"
            "  damping: 0.9\n"
            "  norm: linf\n"
            "payments:\n"
            "  policy: inverse_square\n"
        )

        config = load_config(path)

        assert config.propagation.damping == 0.9
        assert config.propagation.norm == "linf"
        assert config.propagation.tolerance == 1e-9
        assert config.payments.policy == "inverse_square"

    def test_local_overrides_merge(self, tmp_path):
        """Test that config.local.yaml overrides individual keys."""
        (tmp_path / "config.yaml").write_text(
            "ledger:\n"
            "  max_invitation_trust: 50\n"
            "  invitation_expiry_days: 14\n"
        )
        (tmp_path / "config.local.yaml").write_text(
            "ledger:\n"
            "  invitation_expiry_days: 7\n"
        )

        config = load_config(tmp_path / "config.yaml")

        assert config.ledger.max_invitation_trust == 50
        assert config.ledger.invitation_expiry_days == 7

    def test_env_var_resolution(self, tmp_path, monkeypatch):
        """Test ${VAR} and ${VAR:-default} references."""
        monkeypatch.setenv("TRUSTNET_TEST_STATE", "/tmp/state.json")
        (tmp_path / "config.yaml").write_text(
            "state_file: ${TRUSTNET_TEST_STATE}\n"
            "logging:\n"
            "  level: ${TRUSTNET_TEST_UNSET_LEVEL:-DEBUG}\n"
        )

        config = load_config(tmp_path / "config.yaml")

        assert config.state_file == "/tmp/state.json"
        assert config.logging.level == "DEBUG"

    def test_invitation_cap_beyond_score_range(self, tmp_path):
        """Test that max_invitation_trust must fit in 10 trust-score units."""
        (tmp_path / "config.yaml").write_text(
            "ledger:\n"
            "  trust_unit_scale: 10\n"
            "  max_invitation_trust: 150\n"
        )

        with pytest.raises(ValidationError):
            load_config(tmp_path / "config.yaml")

    def test_invitation_cap_with_larger_scale(self, tmp_path):
        """Test that a larger unit scale admits a larger cap."""
        (tmp_path / "config.yaml").write_text(
            "ledger:\n"
            "  trust_unit_scale: 20\n"
            "  max_invitation_trust: 150\n"
        )

        config = load_config(tmp_path / "config.yaml")

        assert config.ledger.max_invitation_trust == 150

    def test_invalid_damping(self, tmp_path):
        """Test that damping outside (0, 1) is rejected."""
        (tmp_path / "config.yaml").write_text("propagation:\n  damping: 1.0\n")

        with pytest.raises(ValidationError):
            load_config(tmp_path / "config.yaml")


class TestHelpers:
    """Tests for merge and env helpers."""

    def test_deep_merge(self):
        """Test nested merge with override precedence."""
        base = {"a": {"x": 1, "y": 2}, "b": 1}
        override = {"a": {"y": 3}, "c": 4}

        assert _deep_merge(base, override) == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}

    def test_unresolved_env_kept(self):
        """Test that an unset variable without default is left as written."""
        assert _resolve_env_vars("${TRUSTNET_TEST_NEVER_SET}") == "${TRUSTNET_TEST_NEVER_SET}"

    def test_root_config_defaults(self):
        """Test the defaults on the root model."""
        config = Config()
        assert config.state_file.endswith("trustnet_state.json")
        assert config.output.formats == ["csv", "markdown", "json"]
