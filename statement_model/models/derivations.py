# -*- coding: utf-8 -*-
"""
跨报表推导规则

工具清单:
- leaf_total: 行的叶子输入合计
- total_attributed_for_year: SBC / D&A 归属合计（不重复计算）
- working_capital_change: 营运资本变动（预测年由资产负债表差额推导）
- expected_wc_children / sync_working_capital: 营运资本明细行与资产负债表同步
- balance_sheet_delta: 资产负债表科目的年度变动
- retained_earnings_rollforward: 留存收益滚动
- has_derivation / derive: 计算引擎的跨报表规则入口
- check_balance: 资产负债表配平检查（只读诊断）

符号约定:
- 资产增加占用现金 -> 现金流为 -Δ
- 负债增加提供现金 -> 现金流为 +Δ
"""

import logging
from typing import Any, Dict, List, Optional

from ..core.row import CfsLink, Row, KIND_INPUT
from ..core.tree import find_row, index_of
from .categories import CURRENT_ASSETS, working_capital_items
from .context import AttributionTable, CalcContext
from .templates import BALANCE_SHEET, CASH_FLOW, INCOME_STATEMENT

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = 0.01

# SBC / D&A 可归属的费用科目
ATTRIBUTION_PARENTS = ("cogs", "sga")

WC_PREFIX = "wc_"
CFO_PREFIX = "cfo_"


def leaf_total(row: Row, year: str) -> float:
    """叶子行取存储值，有子行取子行合计"""
    if not row.children:
        return row.value(year)
    return sum(leaf_total(child, year) for child in row.children)


def _leaf_ids(row: Row) -> List[str]:
    if not row.children:
        return [row.id]
    ids = []
    for child in row.children:
        ids.extend(_leaf_ids(child))
    return ids


def total_attributed_for_year(income_statement: List[Row], table: AttributionTable,
                              year: str) -> float:
    """
    归属表合计

    费用科目有明细时只加明细（叶子）上的标注，否则取科目本身的标注，
    避免父子重复计算。

    Args:
        income_statement: 利润表
        table: 科目 id -> 年份 -> 金额
        year: 年份

    Returns:
        该年合计
    """
    total = 0.0
    for parent_id in ATTRIBUTION_PARENTS:
        parent = find_row(income_statement, parent_id)
        ids = _leaf_ids(parent) if parent is not None else [parent_id]
        for row_id in ids:
            total += float((table.get(row_id) or {}).get(year) or 0.0)
    return total


def balance_sheet_delta(balance_sheet: List[Row], row_id: str, year: str,
                        prior_year: Optional[str]) -> float:
    """科目当年值 - 上年值；没有上一年时为 0"""
    if prior_year is None:
        return 0.0
    row = find_row(balance_sheet, row_id)
    if row is None:
        return 0.0
    return row.value(year) - row.value(prior_year)


def working_capital_change(balance_sheet: List[Row], year: str,
                           prior_year: Optional[str]) -> float:
    """
    营运资本变动（现金流口径）

    公式: Σ -Δ(流动资产，不含现金) + Σ +Δ(流动负债，不含短期借款)
    """
    if prior_year is None:
        return 0.0
    total = 0.0
    for row, category in working_capital_items(balance_sheet):
        delta = row.value(year) - row.value(prior_year)
        total += -delta if category == CURRENT_ASSETS else delta
    return total


def wc_child_id(bs_row_id: str) -> str:
    return f"{WC_PREFIX}{bs_row_id}"


def expected_wc_children(balance_sheet: List[Row]) -> List[Row]:
    """按资产负债表顺序生成营运资本明细行（空值）"""
    children = []
    for row, category in working_capital_items(balance_sheet):
        is_asset = category == CURRENT_ASSETS
        children.append(Row(
            id=wc_child_id(row.id),
            label=f"Change in {row.label}",
            kind=KIND_INPUT,
            value_type="currency",
            cfs_link=CfsLink(
                section="operating",
                cfs_item_id="wc_change",
                impact="negative" if is_asset else "positive",
                description=("Increase in asset uses cash" if is_asset
                             else "Increase in liability provides cash"),
            ),
        ))
    return children


def sync_working_capital(cash_flow: List[Row], balance_sheet: List[Row]) -> List[Row]:
    """
    同步营运资本明细

    - 每个非合计的流动资产 / 流动负债科目（不含现金、短期借款）对应一个 wc_<id> 子行
    - 已存在的子行原样保留（含已录入数值）
    - 资产负债表中已不存在的科目对应的子行删除

    Returns:
        新的现金流量表；wc_change 不存在或无需变化时返回原表
    """
    wc_row = find_row(cash_flow, "wc_change")
    if wc_row is None:
        return cash_flow
    existing = {child.id: child for child in wc_row.children}
    children = [existing.get(child.id, child) for child in expected_wc_children(balance_sheet)]
    if [c.id for c in children] == [c.id for c in wc_row.children]:
        return cash_flow
    removed = [cid for cid in existing if cid not in {c.id for c in children}]
    if removed:
        logger.info("移除无对应资产负债表科目的营运资本明细: %s", removed)
    result = []
    for row in cash_flow:
        result.append(row.with_children(children) if row.id == "wc_change" else row)
    return result


def retained_earnings_rollforward(prior_balance: float, net_income: float,
                                  dividends: float) -> float:
    """
    留存收益滚动

    公式: 期末 = 期初 + 净利润 + 股利（股利按现金流口径存为负数）
    """
    return prior_balance + net_income + dividends


def _linked_bs_id(row: Row) -> Optional[str]:
    """wc_<id> / cfo_<id> 行对应的资产负债表科目"""
    if row.cfs_link is None:
        return None
    if row.id.startswith(CFO_PREFIX):
        return row.id[len(CFO_PREFIX):]
    if row.id.startswith(WC_PREFIX) and row.cfs_link.cfs_item_id == "wc_change":
        return row.id[len(WC_PREFIX):]
    return None


def _signed_delta(row: Row, bs_id: str, year: str, ctx: CalcContext) -> float:
    delta = balance_sheet_delta(ctx.rows(BALANCE_SHEET), bs_id, year, ctx.prior_year(year))
    return -delta if row.cfs_link.impact == "negative" else delta


def _is_top_level(ctx: CalcContext, statement: str, row: Row) -> bool:
    return index_of(ctx.rows(statement), row.id) >= 0


def has_derivation(statement: str, row: Row, year: str, ctx: CalcContext) -> bool:
    """该行该年是否由跨报表规则推导"""
    if statement == CASH_FLOW:
        if row.id in ("net_income", "danda", "sbc") and _is_top_level(ctx, statement, row):
            return True
        if row.id == "wc_change":
            return ctx.is_projection(year)
        bs_id = _linked_bs_id(row)
        if bs_id is None:
            return False
        if row.id.startswith(CFO_PREFIX):
            return True
        return ctx.is_projection(year)
    if statement == BALANCE_SHEET:
        return (row.is_link is not None
                and row.is_link.is_item_id == "net_income"
                and ctx.is_projection(year)
                and ctx.prior_year(year) is not None)
    return False


def derive(statement: str, row: Row, year: str, ctx: CalcContext) -> float:
    """
    跨报表推导

    调用前用 has_derivation 判断；读取的都是本轮已经算好的利润表 / 资产负债表数值。
    """
    if statement == CASH_FLOW:
        if row.id == "net_income":
            return ctx.stored(INCOME_STATEMENT, "net_income", year)
        if row.id == "danda":
            embedded = total_attributed_for_year(ctx.rows(INCOME_STATEMENT), ctx.dana_table, year)
            return ctx.stored(INCOME_STATEMENT, "danda", year) + embedded
        if row.id == "sbc":
            return total_attributed_for_year(ctx.rows(INCOME_STATEMENT), ctx.sbc_table, year)
        if row.id == "wc_change":
            return working_capital_change(ctx.rows(BALANCE_SHEET), year, ctx.prior_year(year))
        bs_id = _linked_bs_id(row)
        if bs_id is not None:
            return _signed_delta(row, bs_id, year, ctx)
    if statement == BALANCE_SHEET:
        prior = ctx.prior_year(year)
        dividends_row = ctx.find(CASH_FLOW, "dividends")
        dividends = leaf_total(dividends_row, year) if dividends_row else 0.0
        return retained_earnings_rollforward(
            row.value(prior),
            ctx.stored(INCOME_STATEMENT, "net_income", year),
            dividends,
        )
    logger.debug("无推导规则: %s.%s", statement, row.id)
    return 0.0


def check_balance(balance_sheet: List[Row], years: List[str]) -> List[Dict[str, Any]]:
    """
    资产负债表配平检查

    公式: 差额 = 资产合计 - (负债合计 + 所有者权益合计)，|差额| < 0.01 视为配平

    Args:
        balance_sheet: 已重算的资产负债表
        years: 检查的年份

    Returns:
        每年一条 {year, balanced, total_assets, total_liabilities, total_equity,
                  total_liab_and_equity, difference}
    """
    def _value(row_id: str, year: str) -> float:
        row = find_row(balance_sheet, row_id)
        return row.value(year) if row else 0.0

    results = []
    for year in years:
        total_assets = _value("total_assets", year)
        total_liabilities = _value("total_liabilities", year)
        total_equity = _value("total_equity", year)
        liab_and_equity = total_liabilities + total_equity
        difference = total_assets - liab_and_equity
        results.append({
            "year": year,
            "balanced": abs(difference) < BALANCE_TOLERANCE,
            "total_assets": total_assets,
            "total_liabilities": total_liabilities,
            "total_equity": total_equity,
            "total_liab_and_equity": liab_and_equity,
            "difference": difference,
        })
    return results
