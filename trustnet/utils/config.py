"""
Configuration Management

Loads configuration from YAML files with environment variable resolution.
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from trustnet.models.entities import MAX_INVITATION_SCORE


class LedgerConfig(BaseModel):
    """Trust budget configuration."""
    tier_grants: dict[str, int] = Field(default_factory=lambda: {
        "connector": 100,
        "talent_scout": 150,
        "network_hub": 200,
    })
    default_tier: str = "connector"
    trust_unit_scale: int = 10
    max_invitation_trust: int = 100
    invitation_expiry_days: int = 30

    @model_validator(mode="after")
    def _invitation_cap_fits_scale(self) -> "LedgerConfig":
        if self.trust_unit_scale < 1:
            raise ValueError("trust_unit_scale must be at least 1")
        if self.max_invitation_trust > MAX_INVITATION_SCORE * self.trust_unit_scale:
            raise ValueError(
                f"max_invitation_trust {self.max_invitation_trust} exceeds "
                f"{MAX_INVITATION_SCORE} x trust_unit_scale ({self.trust_unit_scale})"
            )
        return self


class PropagationConfig(BaseModel):
    """Trust propagation configuration."""
    damping: float = 0.85
    tolerance: float = 1e-9
    max_iterations: int = 100
    norm: str = "l1"
    edge_weighting: str = "allocation"
    timeout_seconds: Optional[float] = None
    recompute_on_change: bool = False

    @field_validator("damping")
    @classmethod
    def _damping_in_range(cls, value: float) -> float:
        if not 0.0 < value < 1.0:
            raise ValueError("damping must be strictly between 0 and 1")
        return value


class ReferralConfig(BaseModel):
    """Referral chain configuration."""
    max_chain_depth: int = 10


class PaymentConfig(BaseModel):
    """Payment split configuration."""
    decay_factor: float = 0.5
    policy: str = "geometric"


class OutputConfig(BaseModel):
    """Output generation configuration."""
    directory: str = "./outputs"
    formats: list[str] = Field(default_factory=lambda: ["csv", "markdown", "json"])
    timestamp_filenames: bool = True
    markdown: dict[str, Any] = Field(default_factory=lambda: {
        "include_methodology": True,
        "max_items_per_section": 20,
    })


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None


class Config(BaseModel):
    """Root configuration object."""
    state_file: str = "./trustnet_state.json"
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    propagation: PropagationConfig = Field(default_factory=PropagationConfig)
    referrals: ReferralConfig = Field(default_factory=ReferralConfig)
    payments: PaymentConfig = Field(default_factory=PaymentConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _resolve_env_vars(data: Any) -> Any:
    """Recursively resolve environment variables in config values.

    Supports ${VAR_NAME} and ${VAR_NAME:-default} syntax.
    """
    if isinstance(data, str):
        if data.startswith("${") and data.endswith("}"):
            var_expr = data[2:-1]
            if ":-" in var_expr:
                var_name, default = var_expr.split(":-", 1)
                return os.environ.get(var_name, default)
            return os.environ.get(var_expr, data)
        return data
    elif isinstance(data, dict):
        return {k: _resolve_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars(item) for item in data]
    return data


def load_config(
    config_path: Optional[Path] = None,
    local_config_path: Optional[Path] = None,
) -> Config:
    """Load configuration from YAML files.

    Args:
        config_path: Path to main config file (default: config.yaml)
        local_config_path: Path to local overrides (default: config.local.yaml)

    Returns:
        Merged and validated Config object
    """
    project_root = Path(__file__).parent.parent.parent

    if config_path is None:
        config_path = project_root / "config.yaml"
    if local_config_path is None:
        local_config_path = Path(config_path).parent / "config.local.yaml"

    config_path = Path(config_path)
    local_config_path = Path(local_config_path)
    config_data: dict[str, Any] = {}

    if config_path.exists():
        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

    if local_config_path.exists():
        with open(local_config_path) as f:
            local_data = yaml.safe_load(f) or {}
            config_data = _deep_merge(config_data, local_data)

    config_data = _resolve_env_vars(config_data)

    return Config(**config_data)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
