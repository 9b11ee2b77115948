# -*- coding: utf-8 -*-
"""
Excel 导入测试
"""

import openpyxl
import pytest

from statement_model.core import ModelError, ModelMeta
from statement_model.io import import_workbook, read_statement_values
from statement_model.models import StatementModel


def _model():
    return StatementModel(ModelMeta(historical_years=["2023A", "2024A"],
                                    projection_years=["2025E"]))


@pytest.fixture
def workbook_path(tmp_path):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Income Statement"
    ws.append(["Item", "2023A", 2024])
    ws.append(["rev", 900, 1000])
    ws.append(["Cost of Goods Sold (COGS)", 500, 550])
    ws.append(["gross_profit", 1, 1])
    ws.append(["Unknown line", 3, 4])
    ws.append([None, 1, 2])

    notes = wb.create_sheet("Notes")
    notes.append(["anything"])

    path = tmp_path / "financials.xlsx"
    wb.save(path)
    return path


class TestImport:
    """工作簿导入"""

    def test_read_statement_values(self, workbook_path):
        """读取并匹配输入行"""
        model = _model()
        values = read_statement_values(str(workbook_path), "IS", model.statement("IS"))
        assert values == {
            "rev": {"2023A": 900.0, "2024A": 1000.0},
            "cogs": {"2023A": 500.0, "2024A": 550.0},
        }

    def test_import_workbook(self, workbook_path):
        """导入后重算"""
        model = _model()
        counts = import_workbook(model, str(workbook_path))

        assert counts == {"income_statement": 4}
        assert model.value("IS", "gross_profit", "2024A") == 450
        assert model.value("IS", "gross_profit", "2023A") == 400

    def test_named_sheet_missing(self, workbook_path):
        """指定工作表不存在"""
        model = _model()
        with pytest.raises(ModelError) as exc:
            read_statement_values(str(workbook_path), "IS", model.statement("IS"),
                                  sheet_name="Missing")
        assert exc.value.code == "SHEET_NOT_FOUND"

    def test_statement_sheet_missing(self, workbook_path):
        """找不到报表工作表"""
        model = _model()
        with pytest.raises(ModelError) as exc:
            read_statement_values(str(workbook_path), "BS", model.statement("BS"))
        assert exc.value.code == "SHEET_NOT_FOUND"

    def test_missing_workbook(self, tmp_path):
        """文件不存在"""
        model = _model()
        with pytest.raises(ModelError) as exc:
            import_workbook(model, str(tmp_path / "missing.xlsx"))
        assert exc.value.code == "WORKBOOK_INVALID"
