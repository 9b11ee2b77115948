# -*- coding: utf-8 -*-
"""
骨架修复

每次全量重算之前、以及读取持久化状态之后都要运行:
旧版本保存的报表可能缺少后来加入的骨架行，或者个别行位置不对。

修复规则:
1. 缺失的骨架行插入到 after 行的下一个位置（after 为空插到最前，after 不存在插到最后）
2. 标记 relocate 的行如果排在 after 行之前，挪到 after 行之后
3. 已存在的行对象原样保留（数值、子行都不动）
4. 收入 / 成本 / 销管费用的类型按是否有子行重新推导

多次运行结果相同。
"""

import logging
from typing import Dict, List, Optional

from ..core.row import Row, apply_derived_kind
from ..core.tree import index_of
from .categories import CATEGORIES, SUBTOTAL_FOR_CATEGORY, matches_category
from .templates import (
    BALANCE_SHEET,
    build_row,
    normalize_statement,
    template_definitions,
)

logger = logging.getLogger(__name__)

# 资产负债表合计行的规范顺序
BS_TOTAL_ORDER = (
    "total_current_assets",
    "total_fixed_assets",
    "total_assets",
    "total_current_liabilities",
    "total_non_current_liabilities",
    "total_liabilities",
    "total_equity",
    "total_liab_and_equity",
)


def _insertion_index(rows: List[Row], after: Optional[str]) -> int:
    if after is None:
        return 0
    anchor = index_of(rows, after)
    return anchor + 1 if anchor >= 0 else len(rows)


def _next_known_total(rows: List[Row], total_id: str) -> int:
    """规范顺序中位于 total_id 之后、且已存在的第一个合计行位置"""
    position = BS_TOTAL_ORDER.index(total_id)
    for later in BS_TOTAL_ORDER[position + 1:]:
        idx = index_of(rows, later)
        if idx >= 0:
            return idx
    return len(rows)


def ensure_bs_subtotals(rows: List[Row]) -> List[Row]:
    """
    保证资产负债表分类小计行存在且位置正确

    从下一个已知合计行往回扫描，找到该分类最后一个科目，小计行插在它后面。
    一个科目都找不到时交给通用修复（按 after 插入）。
    """
    definitions = {d["id"]: d for d in template_definitions(BALANCE_SHEET)}
    result = list(rows)
    for category in CATEGORIES:
        subtotal_id = SUBTOTAL_FOR_CATEGORY[category]
        if index_of(result, subtotal_id) >= 0:
            continue
        boundary = _next_known_total(result, subtotal_id)
        for idx in range(boundary - 1, -1, -1):
            if matches_category(result[idx].id, category):
                result.insert(idx + 1, build_row(definitions[subtotal_id]))
                logger.info("补齐资产负债表小计行 %s（位于 %s 之后）", subtotal_id, result[idx].id)
                break
    return result if len(result) != len(rows) else rows


def reconcile(rows: List[Row], statement: str) -> List[Row]:
    """
    按骨架定义修复一张报表

    Args:
        rows: 报表顶层行
        statement: 报表名称

    Returns:
        修复后的行列表；无需修复时返回原列表
    """
    statement = normalize_statement(statement)
    result = list(rows)
    if statement == BALANCE_SHEET:
        result = list(ensure_bs_subtotals(result))

    for definition in template_definitions(statement):
        row_id = definition["id"]
        after = definition.get("after")
        idx = index_of(result, row_id)
        if idx < 0:
            result.insert(_insertion_index(result, after), build_row(definition))
            logger.info("补齐骨架行 %s.%s", statement, row_id)
        elif definition.get("relocate") and after:
            anchor = index_of(result, after)
            if 0 <= idx < anchor:
                row = result.pop(idx)
                result.insert(index_of(result, after) + 1, row)
                logger.info("调整骨架行位置 %s.%s -> %s 之后", statement, row_id, after)

    result = [apply_derived_kind(row) for row in result]
    if len(result) == len(rows) and all(a is b for a, b in zip(result, rows)):
        return rows
    return result


def reconcile_all(statements: Dict[str, List[Row]]) -> Dict[str, List[Row]]:
    """修复三张报表"""
    return {name: reconcile(rows, name) for name, rows in statements.items()}
