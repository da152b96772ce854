"""
Export/import backup files.
"""

import json
import os
from datetime import datetime

import pytest

from riskledger.persistence.file_service import (
    FileService,
    export_file_name,
    preview_import_data,
    validate_import_data,
)
from riskledger.persistence.snapshot import build_snapshot
from riskledger.utils.exceptions import ValidationError
from tests.factories import make_trades


class TestExportFile:

    def test_file_name(self):
        assert export_file_name(datetime(2024, 7, 9)) == "risk_management_backup_2024-07-09.json"

    @pytest.mark.asyncio
    async def test_export_adds_metadata(self, tmp_path, profile):
        service = FileService(str(tmp_path / "exports"))
        path = await service.export_to_file(build_snapshot(profile, make_trades([1, 2, 3])))

        assert os.path.basename(path).startswith("risk_management_backup_")
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        assert data["metadata"]["tradeCount"] == 3
        assert data["metadata"]["platform"]
        assert data["riskSettings"] == profile.to_dict()


class TestImportFile:

    @pytest.mark.asyncio
    async def test_read_valid_file(self, tmp_path, profile):
        service = FileService(str(tmp_path))
        path = await service.export_to_file(build_snapshot(profile, make_trades([5])), str(tmp_path / "b.json"))
        data = await service.read_import_file(path)
        assert len(data["trades"]) == 1

    @pytest.mark.asyncio
    async def test_not_json(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValidationError) as exc:
            await FileService(str(tmp_path)).read_import_file(str(bad))
        assert exc.value.code == "INVALID_JSON"

    @pytest.mark.asyncio
    async def test_missing_trade_field(self, tmp_path, profile):
        data = build_snapshot(profile, make_trades([1, 2]))
        del data["trades"][0]["timestamp"]
        path = tmp_path / "partial.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        with pytest.raises(ValidationError):
            await FileService(str(tmp_path)).read_import_file(str(path))

    def test_validate_reports_reasons(self, profile):
        data = build_snapshot(profile, [])
        del data["riskSettings"]["maxDrawdown"]
        errors = validate_import_data(data)
        assert any("maxDrawdown" in e for e in errors)

    def test_preview(self, profile):
        preview = preview_import_data(build_snapshot(profile, make_trades([-100, 300])))
        assert preview.valid
        assert preview.trade_count == 2
        assert preview.total_pnl == 200
        assert preview.account_balance == 10000
        assert preview.size.endswith("B")

    def test_preview_invalid(self):
        preview = preview_import_data({"version": "1.0.0"})
        assert not preview.valid
        assert preview.errors


    @pytest.mark.asyncio
    async def test_preview_file(self, tmp_path, profile):
        service = FileService(str(tmp_path))
        path = await service.export_to_file(build_snapshot(profile, make_trades([-100, 300])), str(tmp_path / "p.json"))
        preview = await service.preview_file(path)
        assert preview.valid
        assert preview.trade_count == 2

    @pytest.mark.asyncio
    async def test_preview_unreadable_file(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        service = FileService(str(tmp_path))
        assert not (await service.preview_file(str(bad))).valid
        missing = await service.preview_file(str(tmp_path / "missing.json"))
        assert not missing.valid
        assert missing.errors

class TestCoordinatorExportImport:

    @pytest.mark.asyncio
    async def test_round_trip(self, configured, tmp_path):
        await configured.add_trade(40)
        await configured.add_trade(-20)
        exported = await configured.export_data(str(tmp_path / "out.json"))
        assert exported.success

        await configured.clear_all_trades()
        await configured.update_loss_per_trade(50)

        outcome = await configured.import_data(exported.value)
        assert outcome.success
        assert [t.result for t in configured.trades] == [40, -20]
        assert configured.profile.loss_per_trade_percentage == 5
        assert configured.profile.current_balance == 10020

    @pytest.mark.asyncio
    async def test_invalid_import_mutates_nothing(self, configured, tmp_path):
        await configured.add_trade(40)
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"version": "1.0.0", "trades": []}), encoding="utf-8")
        outcome = await configured.import_data(str(bad))
        assert not outcome.success
        assert [t.result for t in configured.trades] == [40]

    @pytest.mark.asyncio
    async def test_preview_import_reads_only(self, configured, tmp_path):
        await configured.add_trade(40)
        exported = await configured.export_data(str(tmp_path / "out.json"))
        preview = await configured.preview_import(exported.value)
        assert preview.valid
        assert preview.trade_count == 1
        assert [t.result for t in configured.trades] == [40]
