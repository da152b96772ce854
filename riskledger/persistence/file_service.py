"""
Export / import of backup files
===============================

An export file is a backup snapshot plus a ``metadata`` object:

  { version, timestamp, riskSettings, trades, metadata: {platform, tradeCount, exportedAt} }

Files are written as indented JSON named ``risk_management_backup_<date>.json``.
"""

from __future__ import annotations

import asyncio
import json
import os
import platform as host_platform
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from riskledger.persistence.snapshot import (
    estimate_storage_size,
    format_storage_size,
    parse_backup_data,
    schema_errors,
)
from riskledger.utils.exceptions import StorageError, ValidationError
from riskledger.utils.logger import get_logger

logger = get_logger(__name__)

EXPORT_FILE_PREFIX = "risk_management_backup_"


@dataclass
class ImportPreview:
    valid: bool
    errors: List[str] = field(default_factory=list)
    version: str = ""
    exported_at: str = ""
    trade_count: int = 0
    account_balance: float = 0.0
    max_drawdown: float = 0.0
    loss_per_trade_percentage: float = 0.0
    total_pnl: float = 0.0
    size: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": self.errors,
            "version": self.version,
            "exported_at": self.exported_at,
            "trade_count": self.trade_count,
            "account_balance": self.account_balance,
            "max_drawdown": self.max_drawdown,
            "loss_per_trade_percentage": self.loss_per_trade_percentage,
            "total_pnl": self.total_pnl,
            "size": self.size,
        }


def export_file_name(when: Optional[datetime] = None) -> str:
    when = when or datetime.now()
    return f"{EXPORT_FILE_PREFIX}{when.strftime('%Y-%m-%d')}.json"


def with_export_metadata(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(snapshot)
    data["metadata"] = {
        **(snapshot.get("metadata") or {}),
        "platform": host_platform.system().lower() or "unknown",
        "tradeCount": len(snapshot.get("trades", [])),
        "exportedAt": datetime.now().isoformat(),
    }
    return data


def validate_import_data(data: Any) -> List[str]:
    """Every reason the document cannot be imported; empty when it can."""
    errors = schema_errors(data)
    if errors:
        return errors
    try:
        parse_backup_data(data)
    except ValidationError as e:
        return [e.message]
    return []


def preview_import_data(data: Any) -> ImportPreview:
    errors = validate_import_data(data)
    if errors:
        return ImportPreview(valid=False, errors=errors)
    profile, trades = parse_backup_data(data)
    return ImportPreview(
        valid=True,
        version=str(data["version"]),
        exported_at=str(data["timestamp"]),
        trade_count=len(trades),
        account_balance=profile.account_balance,
        max_drawdown=profile.max_drawdown,
        loss_per_trade_percentage=profile.loss_per_trade_percentage,
        total_pnl=sum(t.result for t in trades),
        size=format_storage_size(estimate_storage_size(data)),
    )


class FileService:
    def __init__(self, export_dir: str = "data/exports"):
        self._export_dir = export_dir

    def _write(self, path: str, data: Dict[str, Any]) -> None:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)

    def _read(self, path: str) -> Any:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    async def export_to_file(self, snapshot: Dict[str, Any], path: Optional[str] = None) -> str:
        path = path or os.path.join(self._export_dir, export_file_name())
        data = with_export_metadata(snapshot)
        try:
            await asyncio.get_running_loop().run_in_executor(None, self._write, path, data)
        except OSError as e:
            logger.error("export_failed", path=path, error=str(e))
            raise StorageError(f"Could not write export file {path}", original_error=e) from e
        logger.info("data_exported", path=path, trade_count=data["metadata"]["tradeCount"])
        return path

    async def read_import_file(self, path: str) -> Dict[str, Any]:
        """Load and validate an export file; raises ValidationError if it cannot be imported."""
        try:
            data = await asyncio.get_running_loop().run_in_executor(None, self._read, path)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Import file is not valid JSON: {e}", code="INVALID_JSON") from e
        except OSError as e:
            raise StorageError(f"Could not read import file {path}", original_error=e) from e

        errors = validate_import_data(data)
        if errors:
            logger.warning("import_file_invalid", path=path, errors=errors)
            raise ValidationError(f"Invalid backup file: {'; '.join(errors)}", code="INVALID_BACKUP")
        return data

    async def preview_file(self, path: str) -> ImportPreview:
        try:
            data = await asyncio.get_running_loop().run_in_executor(None, self._read, path)
        except json.JSONDecodeError as e:
            return ImportPreview(valid=False, errors=[f"Not valid JSON: {e}"])
        except OSError as e:
            return ImportPreview(valid=False, errors=[f"Could not read file: {e}"])
        return preview_import_data(data)
