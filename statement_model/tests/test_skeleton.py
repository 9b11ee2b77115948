# -*- coding: utf-8 -*-
"""
骨架修复测试
"""

import pytest

from statement_model.core import ModelError, Row
from statement_model.core.tree import index_of
from statement_model.models.skeleton import ensure_bs_subtotals, reconcile
from statement_model.models.templates import (
    BALANCE_SHEET,
    CASH_FLOW,
    INCOME_STATEMENT,
    STATEMENTS,
    create_template,
    normalize_statement,
    protected_ids,
)


def _ids(rows):
    return [row.id for row in rows]


class TestReconcile:
    """缺失行补齐与幂等"""

    @pytest.mark.parametrize("statement", STATEMENTS)
    def test_empty_tree_becomes_template(self, statement):
        """空表补齐为模板"""
        rows = reconcile([], statement)
        assert _ids(rows) == _ids(create_template(statement))

    @pytest.mark.parametrize("statement", STATEMENTS)
    def test_idempotent(self, statement):
        """幂等"""
        once = reconcile([Row(id="custom", label="Custom")], statement)
        twice = reconcile(once, statement)
        assert twice is once
        assert _ids(twice) == _ids(once)

    def test_complete_template_unchanged(self):
        """完整模板不变"""
        rows = create_template(INCOME_STATEMENT)
        assert reconcile(rows, INCOME_STATEMENT) is rows

    def test_missing_row_inserted_after_anchor(self):
        """缺失行插到锚点之后"""
        rows = [r for r in create_template(INCOME_STATEMENT) if r.id != "tax"]
        result = reconcile(rows, INCOME_STATEMENT)
        assert index_of(result, "tax") == index_of(result, "ebt") + 1

    def test_existing_rows_preserved(self):
        """已有行保留"""
        rows = create_template(INCOME_STATEMENT)
        rows[0] = Row(id="rev", label="Sales", values={"2024A": 10.0})
        rows = [r for r in rows if r.id != "interest_income"]

        result = reconcile(rows, INCOME_STATEMENT)
        assert result[0] is rows[0]
        assert result[0].label == "Sales"
        assert result[0].values == {"2024A": 10.0}

    def test_relocate_misplaced_danda(self):
        """调整D&A位置"""
        rows = create_template(INCOME_STATEMENT)
        danda = rows.pop(index_of(rows, "danda"))
        rows.insert(1, danda)

        result = reconcile(rows, INCOME_STATEMENT)
        assert index_of(result, "danda") == index_of(result, "ebit_margin") + 1
        assert result[index_of(result, "danda")] is danda

    def test_relocate_misplaced_sbc(self):
        """调整SBC位置"""
        rows = create_template(CASH_FLOW)
        sbc = rows.pop(index_of(rows, "sbc"))
        rows.insert(0, sbc)

        result = reconcile(rows, CASH_FLOW)
        assert index_of(result, "sbc") == index_of(result, "danda") + 1

    def test_convertible_kind_derived(self):
        """可转换行类型推导"""
        rows = create_template(INCOME_STATEMENT)
        rows[0] = rows[0].with_children([Row(id="rev_a", label="A")])
        result = reconcile(rows, INCOME_STATEMENT)
        assert result[0].kind == "calc"


class TestBalanceSheetSubtotals:
    """资产负债表小计行"""

    def test_subtotal_after_last_category_item(self):
        """小计行插在分类末尾"""
        rows = [r for r in create_template(BALANCE_SHEET) if r.id != "total_current_assets"]
        rows.insert(index_of(rows, "other_ca") + 1, Row(id="ca_deposits", label="Deposits"))

        result = ensure_bs_subtotals(rows)
        assert index_of(result, "total_current_assets") == index_of(result, "ca_deposits") + 1

    def test_reconcile_restores_all_subtotals(self):
        """补齐全部小计行"""
        rows = [r for r in create_template(BALANCE_SHEET) if not r.id.startswith("total_")]
        result = reconcile(rows, BALANCE_SHEET)
        assert _ids(result) == _ids(create_template(BALANCE_SHEET))


class TestTemplates:
    """模板与名称"""

    def test_statement_aliases(self):
        """报表别名"""
        assert normalize_statement("IS") == INCOME_STATEMENT
        assert normalize_statement("balanceSheet") == BALANCE_SHEET
        assert normalize_statement("cashFlowStatement") == CASH_FLOW

    def test_unknown_statement(self):
        """未知报表"""
        with pytest.raises(ModelError) as exc:
            normalize_statement("equity_statement")
        assert exc.value.code == "UNKNOWN_STATEMENT"

    def test_protected_ids_are_skeleton(self):
        """骨架行受保护"""
        assert "rev" in protected_ids("IS")
        assert "total_assets" in protected_ids("BS")
        assert "wc_change" in protected_ids("CFS")
