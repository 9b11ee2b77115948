# -*- coding: utf-8 -*-
"""
计算引擎

一行的取值只走以下一条路径:
1. 子行合计（calc / subtotal / total 行有子行时，优先于公式和推导）
2. 跨报表推导（derivations）
3. 命名公式（FORMULAS，依赖关系固定为有向无环图）
4. 子行合计（input 行有子行时，即明细拆分）
5. 存储的输入值（缺失按 0）

单年重算分两步:
- 先按树的后序算出所有非公式行（叶子、明细合计、跨报表推导）
- 再按公式依赖的拓扑顺序计算公式行，公式只读取本轮已存储的值

全量重算: 骨架修复 -> 营运资本明细同步 -> 历史年（升序）-> 收入预测写入 -> 预测年（升序），
每一年内按 利润表 -> 资产负债表 -> 现金流量表 的顺序。

百分比行直接存百分数（75.5 表示 75.5%），分母为 0 时存 None（无值）。
"""

import logging
from typing import Callable, Dict, List, Optional, Tuple

from ..core.errors import ModelError
from ..core.meta import ModelMeta
from ..core.row import Row, KIND_INPUT
from ..core.tree import find_row, index_of
from .categories import (
    CURRENT_ASSETS,
    EQUITY,
    FIXED_ASSETS,
    CURRENT_LIABILITIES,
    NON_CURRENT_LIABILITIES,
    rows_for_category,
)
from .context import AttributionTable, CalcContext
from .derivations import derive, has_derivation, sync_working_capital
from .revenue_projection import apply_revenue_projections, compute_revenue_projections
from .skeleton import reconcile_all
from .templates import BALANCE_SHEET, CASH_FLOW, INCOME_STATEMENT, STATEMENTS

logger = logging.getLogger(__name__)

FormulaFn = Callable[[List[Row], str, CalcContext], Optional[float]]

# 营业费用区间（毛利率 ~ EBIT）与营业外区间（EBIT 利润率 ~ EBT）中的固定科目
_OPEX_FIXED = ("sga", "danda")
_NON_OPERATING_FIXED = ("danda", "interest_expense", "interest_income", "other_income")


def _v(rows: List[Row], row_id: str, year: str) -> float:
    """读取已存储的值，行不存在按 0"""
    row = find_row(rows, row_id)
    return row.value(year) if row else 0.0


def _pct(numerator: float, denominator: float) -> Optional[float]:
    if denominator == 0:
        return None
    return numerator / denominator * 100


def _between(rows: List[Row], start_id: str, end_id: str) -> List[Row]:
    """两个顶层行之间的行（不含两端）；任一端缺失返回空"""
    start = index_of(rows, start_id)
    end = index_of(rows, end_id)
    if start < 0 or end < 0 or end <= start:
        return []
    return rows[start + 1:end]


# ============================================================
# 利润表公式
# ============================================================

def _gross_profit(rows, year, ctx):
    return _v(rows, "rev", year) - _v(rows, "cogs", year)


def _gross_margin(rows, year, ctx):
    return _pct(_v(rows, "gross_profit", year), _v(rows, "rev", year))


def _ebit(rows, year, ctx):
    """EBIT = 毛利 - 销管费用 - D&A - 其他自定义营业费用"""
    custom = sum(r.value(year) for r in _between(rows, "gross_margin", "ebit")
                 if r.id not in _OPEX_FIXED)
    return (_v(rows, "gross_profit", year) - _v(rows, "sga", year)
            - _v(rows, "danda", year) - custom)


def _ebit_margin(rows, year, ctx):
    return _pct(_v(rows, "ebit", year), _v(rows, "rev", year))


def _ebt(rows, year, ctx):
    """EBT = EBIT - 利息支出 + 利息收入 + 其他收益 + 自定义营业外项目（带符号）"""
    custom = sum(r.value(year) for r in _between(rows, "ebit_margin", "ebt")
                 if r.id not in _NON_OPERATING_FIXED)
    return (_v(rows, "ebit", year) - _v(rows, "interest_expense", year)
            + _v(rows, "interest_income", year) + _v(rows, "other_income", year) + custom)


def _net_income(rows, year, ctx):
    return _v(rows, "ebt", year) - _v(rows, "tax", year)


def _net_income_margin(rows, year, ctx):
    return _pct(_v(rows, "net_income", year), _v(rows, "rev", year))


# ============================================================
# 资产负债表公式
# ============================================================

def _category_sum(category: str) -> FormulaFn:
    def _sum(rows, year, ctx):
        return sum(r.value(year) for r in rows_for_category(rows, category))
    _sum.__doc__ = f"{category} 科目合计"
    return _sum


def _total_assets(rows, year, ctx):
    return _v(rows, "total_current_assets", year) + _v(rows, "total_fixed_assets", year)


def _total_liabilities(rows, year, ctx):
    return (_v(rows, "total_current_liabilities", year)
            + _v(rows, "total_non_current_liabilities", year))


def _total_liab_and_equity(rows, year, ctx):
    return _v(rows, "total_liabilities", year) + _v(rows, "total_equity", year)


# ============================================================
# 现金流量表公式
# ============================================================

def _is_investing(row: Row) -> bool:
    return row.cfs_link is not None and row.cfs_link.section == "investing"


def _operating_cf(rows, year, ctx):
    """经营活动: net_income 到 operating_cf 之间的顶层行（含 net_income）"""
    start = index_of(rows, "net_income")
    end = index_of(rows, "operating_cf")
    block = rows[start:end] if 0 <= start < end else rows[:max(end, 0)]
    return sum(r.value(year) for r in block if not _is_investing(r))


def _investing_cf(rows, year, ctx):
    """投资活动: operating_cf 与 investing_cf 之间的行，加上区间外标记为 investing 的行"""
    block = _between(rows, "operating_cf", "investing_cf")
    block_ids = {r.id for r in block}
    total = sum(r.value(year) for r in block)
    for row in rows:
        if row.id in block_ids or row.id == "investing_cf":
            continue
        if _is_investing(row):
            total += row.value(year)
    return total


def _financing_cf(rows, year, ctx):
    """筹资活动: investing_cf 与 financing_cf 之间的行（按存储符号相加）"""
    return sum(r.value(year) for r in _between(rows, "investing_cf", "financing_cf")
               if not _is_investing(r))


def _net_change_cash(rows, year, ctx):
    return (_v(rows, "operating_cf", year) + _v(rows, "investing_cf", year)
            + _v(rows, "financing_cf", year))


# 公式行 -> (依赖的行, 计算函数)
# 依赖只在同一张报表内；跨报表的值由 derivations 在对应报表的非公式阶段写入。
# "*" 表示按位置取的区间行（非公式行，先于所有公式计算）。
FORMULAS: Dict[Tuple[str, str], Tuple[Tuple[str, ...], FormulaFn]] = {
    (INCOME_STATEMENT, "gross_profit"): (("rev", "cogs"), _gross_profit),
    (INCOME_STATEMENT, "gross_margin"): (("gross_profit", "rev"), _gross_margin),
    (INCOME_STATEMENT, "ebit"): (("gross_profit", "sga", "danda", "*"), _ebit),
    (INCOME_STATEMENT, "ebit_margin"): (("ebit", "rev"), _ebit_margin),
    (INCOME_STATEMENT, "ebt"): (("ebit", "interest_expense", "interest_income",
                                 "other_income", "*"), _ebt),
    (INCOME_STATEMENT, "net_income"): (("ebt", "tax"), _net_income),
    (INCOME_STATEMENT, "net_income_margin"): (("net_income", "rev"), _net_income_margin),

    (BALANCE_SHEET, "total_current_assets"): (("*",), _category_sum(CURRENT_ASSETS)),
    (BALANCE_SHEET, "total_fixed_assets"): (("*",), _category_sum(FIXED_ASSETS)),
    (BALANCE_SHEET, "total_assets"): (("total_current_assets", "total_fixed_assets"),
                                      _total_assets),
    (BALANCE_SHEET, "total_current_liabilities"): (("*",), _category_sum(CURRENT_LIABILITIES)),
    (BALANCE_SHEET, "total_non_current_liabilities"): (("*",),
                                                       _category_sum(NON_CURRENT_LIABILITIES)),
    (BALANCE_SHEET, "total_liabilities"): (("total_current_liabilities",
                                            "total_non_current_liabilities"),
                                           _total_liabilities),
    (BALANCE_SHEET, "total_equity"): (("*",), _category_sum(EQUITY)),
    (BALANCE_SHEET, "total_liab_and_equity"): (("total_liabilities", "total_equity"),
                                               _total_liab_and_equity),

    (CASH_FLOW, "operating_cf"): (("*",), _operating_cf),
    (CASH_FLOW, "investing_cf"): (("*",), _investing_cf),
    (CASH_FLOW, "financing_cf"): (("*",), _financing_cf),
    (CASH_FLOW, "net_change_cash"): (("operating_cf", "investing_cf", "financing_cf"),
                                     _net_change_cash),
}

_formula_order_cache: Dict[str, List[str]] = {}


def formula_order(statement: str) -> List[str]:
    """
    公式行的拓扑顺序

    依赖表有环属于编程错误，直接抛 ModelError。
    """
    if statement in _formula_order_cache:
        return _formula_order_cache[statement]

    formula_ids = [row_id for (stmt, row_id) in FORMULAS if stmt == statement]
    order: List[str] = []
    state: Dict[str, str] = {}

    def _visit(row_id: str, path: List[str]):
        if state.get(row_id) == "done":
            return
        if state.get(row_id) == "visiting":
            raise ModelError("FORMULA_CYCLE", "公式依赖存在循环",
                             {"statement": statement, "path": path + [row_id]})
        state[row_id] = "visiting"
        for dep in FORMULAS[(statement, row_id)][0]:
            if (statement, dep) in FORMULAS:
                _visit(dep, path + [row_id])
        state[row_id] = "done"
        order.append(row_id)

    for row_id in formula_ids:
        _visit(row_id, [])
    _formula_order_cache[statement] = order
    return order


def is_formula_row(statement: str, row_id: str) -> bool:
    return (statement, row_id) in FORMULAS


def sums_children(row: Row) -> bool:
    """calc / subtotal / total 行有子行时取子行合计"""
    return bool(row.children) and row.kind != KIND_INPUT


def _children_total(row: Row, year: str, statement: str, ctx: CalcContext) -> float:
    total = 0.0
    for child in row.children:
        value = compute_row_value(child, year, statement, ctx)
        total += value if value is not None else 0.0
    return total


def compute_row_value(row: Row, year: str, statement: str,
                      ctx: CalcContext) -> Optional[float]:
    """
    计算一行在某年的值

    Args:
        row: 目标行
        year: 年份
        statement: 所在报表
        ctx: 计算上下文（公式和推导读取其中已存储的值）

    Returns:
        数值；百分比行分母为 0 时返回 None
    """
    if sums_children(row):
        return _children_total(row, year, statement, ctx)
    if has_derivation(statement, row, year, ctx):
        return derive(statement, row, year, ctx)
    if is_formula_row(statement, row.id) and index_of(ctx.rows(statement), row.id) >= 0:
        _, fn = FORMULAS[(statement, row.id)]
        return fn(ctx.rows(statement), year, ctx)
    if row.children:
        return _children_total(row, year, statement, ctx)
    stored = row.values.get(year)
    if row.kind == KIND_INPUT and stored is None:
        return 0.0
    return stored


def _is_plain_input(row: Row, statement: str, year: str, ctx: CalcContext) -> bool:
    return (row.kind == KIND_INPUT and not row.children
            and not has_derivation(statement, row, year, ctx))


def _compute_non_formula(rows: List[Row], statement: str, year: str,
                         ctx: CalcContext, top_level: bool) -> List[Row]:
    result = []
    for row in rows:
        if row.children:
            children = _compute_non_formula(row.children, statement, year, ctx, False)
            if children is not row.children:
                row = row.with_children(children)
        if top_level and is_formula_row(statement, row.id) and not sums_children(row):
            result.append(row)
            continue
        if not _is_plain_input(row, statement, year, ctx):
            value = compute_row_value(row, year, statement, ctx)
            if year not in row.values or row.values[year] != value:
                row = row.with_value(year, value)
        result.append(row)
    if len(result) == len(rows) and all(a is b for a, b in zip(result, rows)):
        return rows
    return result


def recompute_statement_year(statement: str, year: str, ctx: CalcContext) -> List[Row]:
    """
    重算一张报表某一年的所有派生行，结果写回 ctx.statements

    Returns:
        新的报表行列表
    """
    rows = _compute_non_formula(ctx.rows(statement), statement, year, ctx, True)
    ctx.statements[statement] = rows
    for row_id in formula_order(statement):
        idx = index_of(rows, row_id)
        if idx < 0 or sums_children(rows[idx]):
            continue
        _, fn = FORMULAS[(statement, row_id)]
        value = fn(rows, year, ctx)
        row = rows[idx]
        if year not in row.values or row.values[year] != value:
            rows = list(rows)
            rows[idx] = row.with_value(year, value)
    ctx.statements[statement] = rows
    return rows


def recompute_year(year: str, ctx: CalcContext):
    """按 利润表 -> 资产负债表 -> 现金流量表 重算一年"""
    for statement in STATEMENTS:
        recompute_statement_year(statement, year, ctx)


def recompute_all(statements: Dict[str, List[Row]], meta: ModelMeta,
                  sbc_table: Optional[AttributionTable] = None,
                  dana_table: Optional[AttributionTable] = None,
                  revenue_config=None) -> Dict[str, List[Row]]:
    """
    全量重算三张报表

    Args:
        statements: {income_statement, balance_sheet, cash_flow}
        meta: 时间轴
        sbc_table: SBC 归属表
        dana_table: D&A 归属表
        revenue_config: 收入预测配置（RevenueProjectionConfig，可选）

    Returns:
        新的三张报表
    """
    statements = reconcile_all({name: statements.get(name, []) for name in STATEMENTS})
    wc_row = find_row(statements[CASH_FLOW], "wc_change")
    if wc_row is not None and wc_row.children:
        statements[CASH_FLOW] = sync_working_capital(statements[CASH_FLOW],
                                                     statements[BALANCE_SHEET])

    ctx = CalcContext(meta=meta, statements=dict(statements),
                      sbc_table=sbc_table or {}, dana_table=dana_table or {})
    for year in meta.historical_years:
        recompute_year(year, ctx)

    if revenue_config is not None and meta.projection_years:
        projections = compute_revenue_projections(ctx.rows(INCOME_STATEMENT), revenue_config, meta)
        ctx.statements[INCOME_STATEMENT] = apply_revenue_projections(
            ctx.rows(INCOME_STATEMENT), projections, revenue_config, meta.projection_years)

    for year in meta.projection_years:
        recompute_year(year, ctx)
    return ctx.statements
