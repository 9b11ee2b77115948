# -*- coding: utf-8 -*-
"""
资产负债表科目分类

分类由行在报表中的位置决定（夹在两个合计行之间），
合计行缺失时回退到标准科目 id 和 id 前缀。
"""

from typing import Dict, List, Optional, Tuple

from ..core.errors import ModelError
from ..core.row import Row
from ..core.tree import index_of

CURRENT_ASSETS = "current_assets"
FIXED_ASSETS = "fixed_assets"
CURRENT_LIABILITIES = "current_liabilities"
NON_CURRENT_LIABILITIES = "non_current_liabilities"
EQUITY = "equity"

CATEGORIES = (CURRENT_ASSETS, FIXED_ASSETS, CURRENT_LIABILITIES,
              NON_CURRENT_LIABILITIES, EQUITY)

# 分类 -> (起始边界行, 小计行)
_BOUNDARIES: Dict[str, Tuple[Optional[str], str]] = {
    CURRENT_ASSETS: (None, "total_current_assets"),
    FIXED_ASSETS: ("total_current_assets", "total_fixed_assets"),
    CURRENT_LIABILITIES: ("total_assets", "total_current_liabilities"),
    NON_CURRENT_LIABILITIES: ("total_current_liabilities", "total_non_current_liabilities"),
    EQUITY: ("total_liabilities", "total_equity"),
}

CATEGORY_ITEM_IDS: Dict[str, Tuple[str, ...]] = {
    CURRENT_ASSETS: ("cash", "ar", "inventory", "other_ca", "prepaid_expenses",
                     "marketable_securities"),
    FIXED_ASSETS: ("ppe", "intangible_assets", "goodwill", "other_assets"),
    CURRENT_LIABILITIES: ("ap", "st_debt", "other_cl", "accrued_liabilities",
                          "deferred_revenue"),
    NON_CURRENT_LIABILITIES: ("lt_debt", "other_liab"),
    EQUITY: ("preferred_stock", "common_stock", "apic", "treasury_stock", "aoci",
             "retained_earnings", "other_equity"),
}

CATEGORY_PREFIXES: Dict[str, str] = {
    CURRENT_ASSETS: "ca_",
    FIXED_ASSETS: "fa_",
    CURRENT_LIABILITIES: "cl_",
    NON_CURRENT_LIABILITIES: "ncl_",
    EQUITY: "equity_",
}

SUBTOTAL_FOR_CATEGORY: Dict[str, str] = {
    category: bounds[1] for category, bounds in _BOUNDARIES.items()
}

# 营运资本只看流动资产 / 流动负债，剔除现金与短期借款
WC_EXCLUDED_IDS = ("cash", "st_debt")


def _check_category(category: str):
    if category not in CATEGORIES:
        raise ModelError("UNKNOWN_CATEGORY", f"未知资产负债表分类: {category}",
                         {"supported": list(CATEGORIES)})


def is_category_item(row: Row) -> bool:
    """非合计行"""
    return not row.is_aggregate and not row.id.startswith("total_")


def matches_category(row_id: str, category: str) -> bool:
    """按标准 id 或前缀判断"""
    return row_id in CATEGORY_ITEM_IDS[category] or row_id.startswith(CATEGORY_PREFIXES[category])


def category_of(row_id: str) -> Optional[str]:
    for category in CATEGORIES:
        if matches_category(row_id, category):
            return category
    return None


def rows_for_category(rows: List[Row], category: str) -> List[Row]:
    """
    某分类下的科目行（顶层，不含合计行）

    优先按位置: 起始边界行之后、小计行之前；
    小计行缺失时按标准 id / 前缀匹配。
    """
    _check_category(category)
    start_id, end_id = _BOUNDARIES[category]
    end = index_of(rows, end_id)
    if end < 0:
        return [row for row in rows if is_category_item(row) and matches_category(row.id, category)]
    start = index_of(rows, start_id) if start_id else -1
    if start_id and start < 0:
        # 起始边界缺失: 从小计行往前找，遇到其他分类的合计行为止
        start = end - 1
        while start >= 0 and not rows[start].is_aggregate:
            start -= 1
    block = rows[start + 1:end] if start < end else []
    return [row for row in block if is_category_item(row)]


def insertion_index_for_category(rows: List[Row], category: str) -> int:
    """新科目在该分类中的插入位置（分类末尾、小计行之前）"""
    _check_category(category)
    _, end_id = _BOUNDARIES[category]
    end = index_of(rows, end_id)
    if end >= 0:
        return end
    members = rows_for_category(rows, category)
    if members:
        return index_of(rows, members[-1].id) + 1
    return len(rows)


def working_capital_items(rows: List[Row]) -> List[Tuple[Row, str]]:
    """
    参与营运资本计算的科目

    Returns:
        [(行, 分类)]，按资产负债表顺序；剔除现金与短期借款
    """
    items = []
    for category in (CURRENT_ASSETS, CURRENT_LIABILITIES):
        for row in rows_for_category(rows, category):
            if row.id in WC_EXCLUDED_IDS:
                continue
            items.append((row, category))
    return items
