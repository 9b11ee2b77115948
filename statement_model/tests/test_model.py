# -*- coding: utf-8 -*-
"""
结构编辑入口测试
"""

import json
import logging

import pytest

from statement_model.core import CfsLink, ModelError, ModelMeta, Row
from statement_model.core.tree import index_of, iter_rows
from statement_model.models import RevenueProjectionConfig, StatementModel
from statement_model.models.categories import CURRENT_ASSETS
from statement_model.models.templates import STATEMENTS, protected_ids
from statement_model.tools.matcher import MatchResult


def _model(historical=("2023A", "2024A"), projection=("2025E",)):
    return StatementModel(ModelMeta(company_name="Demo",
                                    historical_years=list(historical),
                                    projection_years=list(projection)))


def _ids(rows):
    return [row.id for row in iter_rows(rows)]


class TestAddChild:
    """添加子行与类型切换"""

    def test_kind_flip_and_revert(self):
        """类型切换与恢复"""
        model = _model()
        model.update_row_value("IS", "cogs", "2024A", 300)
        assert model.find("IS", "rev").kind == "input"

        result = model.add_child_row("IS", "rev", "  Product A ")
        assert result.applied is True
        child = model.find("IS", result.row_id)
        assert child.label == "Product A"
        assert result.row_id.startswith("rev_")
        assert model.find("IS", "rev").kind == "calc"

        model.update_row_value("IS", result.row_id, "2024A", 1000)
        assert model.value("IS", "rev", "2024A") == 1000
        assert model.value("IS", "gross_profit", "2024A") == 700

        model.remove_row("IS", result.row_id)
        assert model.find("IS", "rev").kind == "input"
        assert model.value("IS", "cogs", "2024A") == 300

    def test_blank_label_rejected(self):
        """空名称拒绝"""
        model = _model()
        before = model.statement("IS")
        result = model.add_child_row("IS", "rev", "   ")
        assert result.applied is False
        assert result.message
        assert model.statement("IS") is before

    def test_missing_parent_is_noop(self):
        """父行不存在"""
        model = _model()
        before = model.statement("IS")
        result = model.add_child_row("IS", "nope", "Orphan")
        assert result.applied is False
        assert model.statement("IS") is before


class TestRemove:
    """删除与骨架保护"""

    @pytest.mark.parametrize("statement", STATEMENTS)
    def test_protected_rows_unchanged(self, statement, caplog):
        """骨架行不可删除"""
        model = _model()
        before = _ids(model.statement(statement))
        with caplog.at_level(logging.WARNING, logger="statement_model.models.model"):
            for row_id in protected_ids(statement):
                assert model.remove_row(statement, row_id).applied is False
        assert _ids(model.statement(statement)) == before
        assert "拒绝删除骨架行" in caplog.text

    def test_remove_custom_row(self):
        """删除自定义行"""
        model = _model()
        row_id = model.add_child_row("IS", "sga", "Marketing").row_id
        assert model.remove_row("IS", row_id).applied is True
        assert model.find("IS", row_id) is None
        assert model.remove_row("IS", row_id).applied is False


class TestMove:
    """移动"""

    def test_swap_siblings(self):
        """兄弟行交换"""
        model = _model()
        first = model.add_child_row("IS", "sga", "Sales").row_id
        second = model.add_child_row("IS", "sga", "Admin").row_id

        assert model.move_row("IS", second, "up").applied is True
        assert [c.id for c in model.find("IS", "sga").children] == [second, first]
        assert model.move_row("IS", second, "up").applied is False

    def test_refuse_aggregate_and_protected(self):
        """合计行与骨架行不可移动"""
        model = _model()
        assert model.move_row("BS", "total_assets", "up").applied is False
        assert model.move_row("IS", "rev", "down").applied is False

    def test_refuse_crossing_subtotal(self):
        """不能越过小计行"""
        model = _model()
        row_id = model.add_category_row(CURRENT_ASSETS, "Deposits").row_id
        rows = model.statement("BS")
        assert index_of(rows, row_id) == index_of(rows, "total_current_assets") - 1

        assert model.move_row("BS", row_id, "down").applied is False
        assert model.move_row("BS", row_id, "up").applied is True

    def test_refuse_crossing_formula_row(self):
        """不能越过按位置取区间的公式行"""
        model = _model()
        model.update_row_value("IS", "rev", "2024A", 1000)
        model.insert_row("IS", index_of(model.statement("IS"), "ebit"),
                         Row(id="is_rnd", label="R&D", values={"2024A": 200.0}))
        assert model.value("IS", "net_income", "2024A") == 800

        assert model.move_row("IS", "is_rnd", "down").applied is False
        assert model.value("IS", "net_income", "2024A") == 800

        assert model.move_row("IS", "is_rnd", "up").applied is True
        assert model.move_row("IS", "is_rnd", "up").applied is False
        assert model.value("IS", "net_income", "2024A") == 800

    def test_refuse_crossing_section_total(self):
        """现金流区间合计行是边界"""
        model = _model()
        match = MatchResult(should_allow=True, suggested_label="Acquisitions",
                            cfs_link=CfsLink(section="investing", cfs_item_id=""))
        row_id = model.add_suggested_row("CFS", "acquisitions", match).row_id
        assert model.move_row("CFS", row_id, "down").applied is False

    def test_invalid_direction(self):
        """无效方向"""
        model = _model()
        with pytest.raises(ModelError) as exc:
            model.move_row("IS", "rev", "left")
        assert exc.value.code == "INVALID_DIRECTION"


class TestValues:
    """数值更新"""

    def test_invalid_value(self):
        """非数值"""
        model = _model()
        with pytest.raises(ModelError) as exc:
            model.update_row_value("IS", "rev", "2024A", "abc")
        assert exc.value.code == "INVALID_VALUE"

    def test_numeric_string_accepted(self):
        """数字字符串"""
        model = _model()
        model.update_row_value("IS", "rev", "2024A", "12.5")
        assert model.value("IS", "rev", "2024A") == 12.5

    def test_balance_sheet_edit_updates_cash_flow(self):
        """资产负债表变动影响现金流"""
        model = _model()
        model.update_row_value("BS", "ar", "2024A", 50)
        model.update_row_value("BS", "ar", "2025E", 80)
        assert model.value("CFS", "wc_change", "2025E") == -30

    def test_category_row_counted_in_working_capital(self):
        """分类科目计入营运资本"""
        model = _model()
        row_id = model.add_category_row(CURRENT_ASSETS, "Deposits").row_id
        model.update_row_value("BS", row_id, "2024A", 10)
        model.update_row_value("BS", row_id, "2025E", 25)
        assert model.value("BS", "total_current_assets", "2025E") == 25
        assert model.value("CFS", "wc_change", "2025E") == -15

    def test_attribution_tables(self):
        """SBC与D&A归属"""
        model = _model()
        model.update_sbc_value("sga", "2024A", 12)
        model.update_dana_value("cogs", "2024A", 8)
        model.update_row_value("IS", "danda", "2024A", 20)
        assert model.value("CFS", "sbc", "2024A") == 12
        assert model.value("CFS", "danda", "2024A") == 28

    def test_import_values(self):
        """批量导入"""
        model = _model()
        result = model.import_values("IS", {
            "rev": {"2024A": 100, "1999A": 5},
            "cogs": {"2024A": 40},
            "missing": {"2024A": 1},
        })
        assert result.applied is True
        assert model.value("IS", "gross_profit", "2024A") == 60
        assert model.value("IS", "rev", "1999A") is None


class TestYears:
    """时间轴调整"""

    def test_update_years_scenario(self):
        """调整时间轴"""
        model = _model(("2023A", "2024A"), ("2025E", "2026E", "2027E", "2028E", "2029E"))
        model.update_row_value("IS", "rev", "2023A", 500)
        model.update_sbc_value("sga", "2023A", 3)

        model.update_years(["2024A"], ["2025E", "2026E", "2027E", "2028E", "2029E", "2030E"])

        for statement in STATEMENTS:
            for row in iter_rows(model.statement(statement)):
                assert "2023A" not in row.values
                assert "2030E" in row.values
        assert model.value("IS", "rev", "2030E") == 0
        assert model.value("IS", "gross_profit", "2030E") == 0
        assert model.sbc_table == {"sga": {}}

        model.update_row_value("IS", "rev", "2030E", 80)
        model.update_row_value("IS", "cogs", "2030E", 30)
        assert model.value("IS", "gross_profit", "2030E") == 50


class TestSuggestions:
    """按匹配建议添加"""

    def test_strict_rejects_unmatched(self):
        """严格模式拒绝"""
        model = _model()
        before = model.statement("IS")
        result = model.add_suggested_row("IS", "zzz", MatchResult(should_allow=False), strict=True)
        assert result.applied is False
        assert model.statement("IS") is before

    def test_advisory_adds_with_label(self):
        """提示模式按建议名称添加"""
        model = _model()
        match = MatchResult(matched_concept="Research & development", confidence=0.8,
                            should_allow=True, suggested_label="Research & development")
        result = model.add_suggested_row("IS", "R and D", match)
        rows = model.statement("IS")
        assert model.find("IS", result.row_id).label == "Research & development"
        assert index_of(rows, result.row_id) == index_of(rows, "ebit") - 1

    def test_cash_flow_section_from_match(self):
        """按匹配区间插入现金流行"""
        model = _model()
        match = MatchResult(should_allow=True, suggested_label="Acquisitions",
                            cfs_link=CfsLink(section="investing", cfs_item_id=""))
        result = model.add_suggested_row("CFS", "acquisitions", match)
        rows = model.statement("CFS")
        assert index_of(rows, result.row_id) == index_of(rows, "investing_cf") - 1

        model.update_row_value("CFS", result.row_id, "2024A", -40)
        assert model.value("CFS", "investing_cf", "2024A") == -40


class TestRevenueConfig:
    """收入预测配置"""

    def test_projection_written_to_income_statement(self):
        """预测写入利润表"""
        model = _model()
        model.update_row_value("IS", "rev", "2024A", 1000)
        config = RevenueProjectionConfig.from_dict({
            "items": {"rev": {"method": "growth_rate", "inputs": {"rate_percent": 10}}}
        })
        assert model.set_revenue_config(config).applied is True
        assert model.value("IS", "rev", "2025E") == pytest.approx(1100)
        assert model.revenue_projections()["rev"]["2025E"] == pytest.approx(1100)

    def test_cyclic_config_rejected(self):
        """循环引用配置拒绝"""
        model = _model()
        config = RevenueProjectionConfig.from_dict({
            "items": {"a": {"method": "pct_of_total",
                            "inputs": {"reference_id": "a", "pct_of_total": 10}}}
        })
        result = model.set_revenue_config(config)
        assert result.applied is False
        assert "a" not in model.revenue_config.items


class TestExport:
    """导出"""

    def test_to_json(self):
        """导出JSON"""
        model = _model()
        data = json.loads(model.to_json())
        assert data["_meta"]["company_name"] == "Demo"
        assert set(data["statements"]) == set(STATEMENTS)
        assert "revenue_config" in data

    def test_check_balance_years(self):
        """逐年配平"""
        model = _model()
        assert [r["year"] for r in model.check_balance()] == ["2023A", "2024A", "2025E"]

    def test_sync_working_capital(self):
        """营运资本明细同步"""
        model = _model()
        assert model.sync_working_capital().applied is True
        children = [c.id for c in model.find("CFS", "wc_change").children]
        assert children == ["wc_ar", "wc_inventory", "wc_other_ca", "wc_ap", "wc_other_cl"]
        assert model.sync_working_capital().applied is False


class TestAttributionTables:
    """归属表写时复制"""

    def test_caller_table_not_mutated(self):
        """构造时传入的表不被修改"""
        table = {"sga": {"2024A": 5.0}}
        model = StatementModel(ModelMeta(historical_years=["2024A"], projection_years=[]),
                               sbc_table=table)
        model.update_sbc_value("sga", "2024A", 9)
        model.update_sbc_value("cogs", "2024A", 1)
        assert table == {"sga": {"2024A": 5.0}}
        assert model.sbc_table == {"sga": {"2024A": 9.0}, "cogs": {"2024A": 1.0}}

    def test_held_reference_unchanged_after_update(self):
        """更新后旧引用保持原样"""
        model = _model()
        model.update_dana_value("cogs", "2024A", 4)
        before = model.dana_table
        model.update_dana_value("cogs", "2024A", 6)
        assert before == {"cogs": {"2024A": 4.0}}
        assert model.dana_table["cogs"]["2024A"] == 6

        row_id = model.add_child_row("IS", "sga", "Admin").row_id
        model.update_dana_value(row_id, "2024A", 2)
        held = model.dana_table
        model.remove_row("IS", row_id)
        assert row_id in held
        assert row_id not in model.dana_table

    def test_to_dict_returns_copies(self):
        """导出结果与模型内部状态隔离"""
        model = _model()
        model.update_sbc_value("sga", "2024A", 3)
        data = model.to_dict()
        data["sbc_table"]["sga"]["2024A"] = 100
        data["dana_table"]["cogs"] = {"2024A": 1}
        assert model.sbc_table == {"sga": {"2024A": 3.0}}
        assert model.dana_table == {}
