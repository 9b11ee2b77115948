# -*- coding: utf-8 -*-
"""
跨报表推导测试
"""

import pytest

from statement_model.core import Row
from statement_model.core.tree import find_row, insert_child, remove_subtree, set_row_value
from statement_model.models.derivations import (
    balance_sheet_delta,
    check_balance,
    expected_wc_children,
    retained_earnings_rollforward,
    sync_working_capital,
    total_attributed_for_year,
    working_capital_change,
)
from statement_model.models.calculations import recompute_all
from statement_model.core import ModelMeta
from statement_model.models.templates import BALANCE_SHEET, CASH_FLOW, create_template, create_all_templates


def _balance_sheet(values):
    rows = create_template(BALANCE_SHEET)
    for row_id, by_year in values.items():
        for year, value in by_year.items():
            rows = set_row_value(rows, row_id, year, value)
    return rows


def _simple_balance_sheet():
    """流动资产只有 现金 / 应收 / 存货，流动负债只有 应付"""
    rows = create_template(BALANCE_SHEET)
    for row_id in ("other_ca", "st_debt", "other_cl"):
        rows = remove_subtree(rows, row_id)
    return rows


class TestWorkingCapitalSync:
    """营运资本明细同步"""

    def test_expected_children(self):
        """按资产负债表生成明细"""
        children = expected_wc_children(_simple_balance_sheet())
        assert [c.id for c in children] == ["wc_ar", "wc_inventory", "wc_ap"]
        assert children[0].label == "Change in Accounts Receivable"
        assert children[0].cfs_link.impact == "negative"
        assert children[2].cfs_link.impact == "positive"
        assert all(c.cfs_link.cfs_item_id == "wc_change" for c in children)

    def test_sync_adds_missing_and_keeps_values(self):
        """同步补齐并保留数值"""
        cash_flow = create_template(CASH_FLOW)
        cash_flow = insert_child(cash_flow, "wc_change",
                                 Row(id="wc_ar", label="Change in AR", values={"2024A": 7.0}))
        cash_flow = insert_child(cash_flow, "wc_change",
                                 Row(id="wc_deferred", label="Change in Deferred Revenue"))

        result = sync_working_capital(cash_flow, _simple_balance_sheet())
        wc = find_row(result, "wc_change")
        assert [c.id for c in wc.children] == ["wc_ar", "wc_inventory", "wc_ap"]
        assert find_row(result, "wc_ar").values == {"2024A": 7.0}
        assert find_row(result, "wc_ar").label == "Change in AR"

    def test_sync_is_idempotent(self):
        """重复同步不变"""
        bs = _simple_balance_sheet()
        once = sync_working_capital(create_template(CASH_FLOW), bs)
        assert sync_working_capital(once, bs) is once

    def test_sync_follows_new_category_rows(self):
        """新增分类科目"""
        bs = _simple_balance_sheet()
        once = sync_working_capital(create_template(CASH_FLOW), bs)
        bs.insert(3, Row(id="ca_prepaid", label="Prepaid"))

        result = sync_working_capital(once, bs)
        ids = [c.id for c in find_row(result, "wc_change").children]
        assert ids == ["wc_ar", "wc_inventory", "wc_ca_prepaid", "wc_ap"]


class TestWorkingCapitalChange:
    """营运资本变动"""

    def test_signs(self):
        """资产增加占用现金"""
        bs = _balance_sheet({
            "cash": {"2024A": 10, "2025E": 500},
            "ar": {"2024A": 50, "2025E": 70},
            "inventory": {"2024A": 40, "2025E": 30},
            "ap": {"2024A": 30, "2025E": 45},
            "st_debt": {"2024A": 0, "2025E": 100},
        })
        # -20 (应收增加) + 10 (存货减少) + 15 (应付增加)，现金与短期借款不计
        assert working_capital_change(bs, "2025E", "2024A") == 5

    def test_first_year_is_zero(self):
        """首年变动为0"""
        bs = _balance_sheet({"ar": {"2024A": 50}})
        assert working_capital_change(bs, "2024A", None) == 0
        assert balance_sheet_delta(bs, "ar", "2024A", None) == 0

    def test_projection_children_follow_balance_sheet(self):
        """预测年明细跟随资产负债表"""
        meta = ModelMeta(historical_years=["2024A"], projection_years=["2025E"])
        statements = create_all_templates()
        statements[BALANCE_SHEET] = _balance_sheet({
            "ar": {"2024A": 50, "2025E": 70},
            "ap": {"2024A": 30, "2025E": 45},
        })
        statements[CASH_FLOW] = sync_working_capital(statements[CASH_FLOW],
                                                     statements[BALANCE_SHEET])
        statements[CASH_FLOW] = set_row_value(statements[CASH_FLOW], "wc_ar", "2024A", -3.0)

        result = recompute_all(statements, meta)
        cash_flow = result[CASH_FLOW]
        assert find_row(cash_flow, "wc_ar").values["2025E"] == -20
        assert find_row(cash_flow, "wc_ap").values["2025E"] == 15
        assert find_row(cash_flow, "wc_change").values["2025E"] == -5
        # 历史年沿用录入值
        assert find_row(cash_flow, "wc_ar").values["2024A"] == -3
        assert find_row(cash_flow, "wc_change").values["2024A"] == -3


class TestAttribution:
    """SBC / D&A 归属"""

    def test_parent_annotation_without_children(self):
        """无子行时取父行标注"""
        income = create_template("IS")
        table = {"cogs": {"2024A": 10.0}, "sga": {"2024A": 5.0}}
        assert total_attributed_for_year(income, table, "2024A") == 15
        assert total_attributed_for_year(income, table, "2025E") == 0

    def test_children_replace_parent_annotation(self):
        """有子行时只取子行"""
        income = insert_child(create_template("IS"), "sga", Row(id="sga_a", label="Sales"))
        table = {"sga": {"2024A": 100.0}, "sga_a": {"2024A": 6.0}}
        assert total_attributed_for_year(income, table, "2024A") == 6


class TestBalanceCheck:
    """配平检查"""

    def test_balanced_scenario(self):
        """配平"""
        meta = ModelMeta(historical_years=["2024A"], projection_years=[])
        statements = create_all_templates()
        statements[BALANCE_SHEET] = _balance_sheet({
            "cash": {"2024A": 100},
            "ar": {"2024A": 50},
            "ap": {"2024A": 30},
            "common_stock": {"2024A": 80},
            "retained_earnings": {"2024A": 40},
        })
        result = recompute_all(statements, meta)
        bs = result[BALANCE_SHEET]

        assert find_row(bs, "total_current_assets").values["2024A"] == 150
        assert find_row(bs, "total_liabilities").values["2024A"] == 30
        assert find_row(bs, "total_equity").values["2024A"] == 120

        report = check_balance(bs, ["2024A"])[0]
        assert report["balanced"] is True
        assert report["difference"] == 0
        assert report["total_assets"] == 150
        assert report["total_liab_and_equity"] == 150

    def test_unbalanced(self):
        """未配平"""
        meta = ModelMeta(historical_years=["2024A"], projection_years=[])
        statements = create_all_templates()
        statements[BALANCE_SHEET] = _balance_sheet({"cash": {"2024A": 100}})
        bs = recompute_all(statements, meta)[BALANCE_SHEET]

        report = check_balance(bs, ["2024A"])[0]
        assert report["balanced"] is False
        assert report["difference"] == pytest.approx(100)


def test_retained_earnings_rollforward():
    """留存收益滚动"""
    assert retained_earnings_rollforward(40, 200, -50) == 190
