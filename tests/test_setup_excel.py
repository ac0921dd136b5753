"""Tests for the workbook bootstrap script."""

from __future__ import annotations

import openpyxl
import pytest

from jeongsim_erp import data_manager, setup_excel


def test_create_master_workbook_writes_every_sheet(tmp_path):
    destination = setup_excel.create_master_workbook(tmp_path / "data" / "jeongsim_data.xlsx")

    workbook = openpyxl.load_workbook(destination)
    assert workbook.sheetnames == list(data_manager.SHEET_COLUMNS)
    for name, columns in data_manager.SHEET_COLUMNS.items():
        header = [cell.value for cell in workbook[name][1]]
        assert header == list(columns)
        assert workbook[name][1][0].font.bold


def test_create_master_workbook_refuses_to_overwrite(master_workbook_path):
    with pytest.raises(FileExistsError):
        setup_excel.create_master_workbook(master_workbook_path)


def test_main_creates_workbook_from_config(tmp_path, capsys):
    config_path = tmp_path / "config.ini"
    config_path.write_text("[System]\nDataFile = out.xlsx\nSchemaVersion = 1.0.0\n", encoding="utf-8")

    assert setup_excel.main(["--config", str(config_path)]) == 0
    assert (tmp_path / "out.xlsx").exists()
    assert setup_excel.main(["--config", str(config_path)]) == 1
    assert "--force" in capsys.readouterr().out
    assert setup_excel.main(["--config", str(config_path), "--force"]) == 0


def test_main_reports_missing_config(tmp_path):
    assert setup_excel.main(["--config", str(tmp_path / "absent.ini")]) == 1
