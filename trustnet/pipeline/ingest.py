"""
Network Export Ingestion

Loads and validates account, relationship and referral CSV files.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class AccountRecord(BaseModel):
    """Raw account row from accounts.csv."""
    email: str
    first_name: str = ""
    last_name: str = ""
    tier: str = "connector"
    referred_by: Optional[str] = Field(default=None, description="Email of the referring member")
    created_at: Optional[datetime] = None


class RelationshipRecord(BaseModel):
    """Raw relationship row from relationships.csv."""
    sender: str
    recipient: str
    trust: int = Field(gt=0)
    status: str = "confirmed"
    created_at: Optional[datetime] = None


class ReferralRecord(BaseModel):
    """Raw referral row from referrals.csv."""
    job_id: str
    candidate_email: str
    referrer: str
    status: str = "pending"
    notes: Optional[str] = None


class NetworkExport(BaseModel):
    """Container for all loaded export data."""
    accounts: list[AccountRecord] = Field(default_factory=list)
    relationships: list[RelationshipRecord] = Field(default_factory=list)
    referrals: list[ReferralRecord] = Field(default_factory=list)

    # Metadata
    source_directory: Optional[str] = None
    loaded_files: list[str] = Field(default_factory=list)
    skipped_files: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def has_accounts(self) -> bool:
        return len(self.accounts) > 0


def _parse_date(date_str: Optional[str], formats: list[str] = None) -> Optional[datetime]:
    """Parse date string with multiple format support."""
    if date_str is None or pd.isna(date_str):
        return None

    formats = formats or [
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%d",
        "%d %b %Y",
        "%m/%d/%Y",
    ]

    date_str = str(date_str).strip()

    for fmt in formats:
        try:
            return datetime.strptime(date_str, fmt)
        except ValueError:
            continue

    logger.warning(f"Could not parse date: {date_str}")
    return None


def _clean(value) -> Optional[str]:
    """Strip a cell value, mapping blanks and NaN to None."""
    if value is None or pd.isna(value):
        return None
    value = str(value).strip()
    return value or None


def _read_csv(filepath: Path) -> pd.DataFrame:
    df = pd.read_csv(filepath, dtype=str)
    df.columns = [col.strip().lower().replace(" ", "_") for col in df.columns]
    return df


def _load_accounts(filepath: Path, export: NetworkExport) -> list[AccountRecord]:
    """Load accounts.csv file."""
    records = []
    df = _read_csv(filepath)

    for i, row in df.iterrows():
        try:
            record = AccountRecord(
                email=_clean(row.get("email")),
                first_name=_clean(row.get("first_name")) or "",
                last_name=_clean(row.get("last_name")) or "",
                tier=(_clean(row.get("tier")) or "connector").lower(),
                referred_by=_clean(row.get("referred_by")),
                created_at=_parse_date(row.get("created_at")),
            )
            records.append(record)
        except Exception as e:
            export.errors.append(f"{filepath.name} row {i + 2}: {e}")
            logger.warning(f"Skipping malformed account row: {e}")

    logger.info(f"Loaded {len(records)} accounts from {filepath.name}")
    return records


def _load_relationships(filepath: Path, export: NetworkExport) -> list[RelationshipRecord]:
    """Load relationships.csv file."""
    records = []
    df = _read_csv(filepath)

    for i, row in df.iterrows():
        try:
            trust = _clean(row.get("trust") or row.get("trust_allocated"))
            record = RelationshipRecord(
                sender=_clean(row.get("sender")),
                recipient=_clean(row.get("recipient")),
                trust=int(float(trust)) if trust is not None else 0,
                status=(_clean(row.get("status")) or "confirmed").lower(),
                created_at=_parse_date(row.get("created_at")),
            )
            records.append(record)
        except Exception as e:
            export.errors.append(f"{filepath.name} row {i + 2}: {e}")
            logger.warning(f"Skipping malformed relationship row: {e}")

    logger.info(f"Loaded {len(records)} relationships from {filepath.name}")
    return records


def _load_referrals(filepath: Path, export: NetworkExport) -> list[ReferralRecord]:
    """Load referrals.csv file."""
    records = []
    df = _read_csv(filepath)

    for i, row in df.iterrows():
        try:
            record = ReferralRecord(
                job_id=_clean(row.get("job_id")),
                candidate_email=_clean(row.get("candidate_email")),
                referrer=_clean(row.get("referrer")),
                status=(_clean(row.get("status")) or "pending").lower(),
                notes=_clean(row.get("notes")),
            )
            records.append(record)
        except Exception as e:
            export.errors.append(f"{filepath.name} row {i + 2}: {e}")
            logger.warning(f"Skipping malformed referral row: {e}")

    logger.info(f"Loaded {len(records)} referrals from {filepath.name}")
    return records


def _find_file(directory: Path, patterns: list[str]) -> Optional[Path]:
    """Find a file matching one of the patterns (case-insensitive)."""
    for pattern in patterns:
        exact_path = directory / pattern
        if exact_path.exists():
            return exact_path

        for f in directory.iterdir():
            if f.name.lower() == pattern.lower():
                return f

    return None


def load_network_export(directory: str | Path) -> NetworkExport:
    """Load a network export from a directory.

    accounts.csv is required; relationships.csv and referrals.csv are optional.

    Raises:
        FileNotFoundError: If the directory or accounts.csv is missing
        ValueError: If no accounts can be loaded
    """
    directory = Path(directory)

    if not directory.exists():
        raise FileNotFoundError(f"Directory not found: {directory}")

    export = NetworkExport(source_directory=str(directory))

    accounts_file = _find_file(directory, ["accounts.csv"])
    if accounts_file is None:
        raise FileNotFoundError(f"accounts.csv not found in {directory}")
    export.accounts = _load_accounts(accounts_file, export)
    export.loaded_files.append(accounts_file.name)

    if not export.has_accounts:
        raise ValueError("No accounts loaded from accounts.csv")

    relationships_file = _find_file(directory, ["relationships.csv"])
    if relationships_file:
        export.relationships = _load_relationships(relationships_file, export)
        export.loaded_files.append(relationships_file.name)
    else:
        export.skipped_files.append("relationships.csv")

    referrals_file = _find_file(directory, ["referrals.csv"])
    if referrals_file:
        export.referrals = _load_referrals(referrals_file, export)
        export.loaded_files.append(referrals_file.name)
    else:
        export.skipped_files.append("referrals.csv")

    logger.info(
        f"Network export loaded: {len(export.accounts)} accounts, "
        f"{len(export.relationships)} relationships, "
        f"{len(export.referrals)} referrals"
    )

    return export
