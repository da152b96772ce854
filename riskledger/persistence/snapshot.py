"""
Backup snapshot schema and helpers
==================================

Snapshot (JSON, camelCase keys as persisted):
  { version, timestamp, riskSettings: {...}, trades: [{id, result, timestamp}, ...] }

Export files are a superset with an extra ``metadata`` object. Structural
validation is done by the pydantic models below; semantic validation of the
settings happens when they are turned into a ``RiskProfile``.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as SchemaError

from riskledger.ledger.models import Trade, parse_timestamp
from riskledger.risk.profile import RiskProfile
from riskledger.utils.exceptions import ValidationError
from riskledger.utils.logger import get_logger

logger = get_logger(__name__)

MINIMAL_BACKUP_VERSION = "1.0.0-minimal"


class SettingsRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    accountBalance: float
    maxDrawdown: float
    lossPerTradePercentage: float
    currentBalance: Optional[float] = None
    isDynamicMaxDrawdown: bool = False
    currentDrawdownThreshold: Optional[float] = None


class TradeRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    result: float
    timestamp: datetime


class BackupSnapshot(BaseModel):
    model_config = ConfigDict(extra="allow")

    version: str
    timestamp: datetime
    riskSettings: SettingsRecord
    trades: list[TradeRecord]
    metadata: Optional[dict[str, Any]] = None


def build_snapshot(profile: RiskProfile, trades: Sequence[Trade], version: str = "1.0.0") -> dict[str, Any]:
    return {
        "version": version,
        "timestamp": datetime.now().isoformat(),
        "riskSettings": profile.to_dict(),
        "trades": [t.to_dict() for t in trades],
    }


def create_minimal_backup(profile: RiskProfile) -> dict[str, Any]:
    """Settings-only snapshot for when the full one will not fit."""
    return {
        "version": MINIMAL_BACKUP_VERSION,
        "timestamp": datetime.now().isoformat(),
        "riskSettings": profile.to_dict(),
        "trades": [],
    }


def is_minimal_snapshot(data: Any) -> bool:
    return isinstance(data, dict) and data.get("version") == MINIMAL_BACKUP_VERSION


def snapshot_from_settings(settings: dict[str, Any], version: str = "1.0.0") -> dict[str, Any]:
    """Wrap a bare settings record so recovery can treat it like any snapshot."""
    return {
        "version": version,
        "timestamp": datetime.now().isoformat(),
        "riskSettings": dict(settings),
        "trades": [],
    }


def validate_backup_data(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    try:
        BackupSnapshot.model_validate(data)
    except SchemaError:
        return False
    return True


def schema_errors(data: Any) -> list[str]:
    """Human-readable reasons a document is not a valid snapshot."""
    if not isinstance(data, dict):
        return ["Backup data must be a JSON object"]
    try:
        BackupSnapshot.model_validate(data)
    except SchemaError as e:
        return [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
    return []


def parse_backup_data(data: Any) -> tuple[RiskProfile, list[Trade]]:
    """Turn a snapshot into a profile and trades; raises ValidationError if unusable."""
    errors = schema_errors(data)
    if errors:
        raise ValidationError(f"Invalid backup data: {'; '.join(errors)}", code="INVALID_BACKUP")
    profile = RiskProfile.from_dict(data["riskSettings"])
    try:
        trades = [Trade.from_dict({**t, "id": t.get("id") or 0}) for t in data["trades"]]
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid trade in backup data: {e}", code="INVALID_BACKUP") from e
    return profile, trades


def is_usable_snapshot(data: Any) -> bool:
    try:
        parse_backup_data(data)
    except ValidationError:
        return False
    return True


def _snapshot_time(data: dict[str, Any]) -> datetime:
    return parse_timestamp(data["timestamp"])


def _trade_key(trade: dict[str, Any]) -> str:
    return f"{parse_timestamp(trade['timestamp']).isoformat()}_{float(trade['result'])}"


def merge_backup_data(sources: Sequence[Any]) -> Optional[dict[str, Any]]:
    """
    Merge snapshots from several tiers.
    Newest snapshot supplies the settings; trades are the union on (timestamp, result).
    """
    valid = [s for s in sources if validate_backup_data(s)]
    if not valid:
        return None

    ordered = sorted(valid, key=_snapshot_time, reverse=True)
    base = ordered[0]

    seen: set[str] = set()
    merged_trades: list[dict[str, Any]] = []
    for snapshot in ordered:
        for trade in snapshot["trades"]:
            key = _trade_key(trade)
            if key in seen:
                continue
            seen.add(key)
            merged_trades.append(dict(trade))

    merged_trades.sort(key=lambda t: parse_timestamp(t["timestamp"]))

    merged = dict(base)
    merged["trades"] = merged_trades
    merged["metadata"] = {
        **(base.get("metadata") or {}),
        "mergedFrom": len(valid),
        "mergedAt": datetime.now().isoformat(),
    }
    logger.info("backups_merged", sources=len(valid), trade_count=len(merged_trades))
    return merged


def estimate_storage_size(data: Any) -> int:
    """Size in bytes of the JSON encoding."""
    return len(json.dumps(data, default=str).encode("utf-8"))


def format_storage_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"
