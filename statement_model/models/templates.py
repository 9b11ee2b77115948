# -*- coding: utf-8 -*-
"""
报表模板（骨架行定义）

骨架定义放在 data/templates.json，每条记录:
    {id, label, kind, value_type, after, relocate?, is_link?, cfs_link?}

after 指向该行必须紧随其后的骨架行（null 表示第一行）。
"""

import json
from pathlib import Path
from typing import Any, Dict, FrozenSet, List

from ..core.errors import ModelError
from ..core.row import CfsLink, IsLink, Row

INCOME_STATEMENT = "income_statement"
BALANCE_SHEET = "balance_sheet"
CASH_FLOW = "cash_flow"

STATEMENTS = (INCOME_STATEMENT, BALANCE_SHEET, CASH_FLOW)

_STATEMENT_ALIASES = {
    "is": INCOME_STATEMENT,
    "income": INCOME_STATEMENT,
    "incomestatement": INCOME_STATEMENT,
    "income_statement": INCOME_STATEMENT,
    "bs": BALANCE_SHEET,
    "balance": BALANCE_SHEET,
    "balancesheet": BALANCE_SHEET,
    "balance_sheet": BALANCE_SHEET,
    "cfs": CASH_FLOW,
    "cf": CASH_FLOW,
    "cashflow": CASH_FLOW,
    "cash_flow": CASH_FLOW,
    "cash_flow_statement": CASH_FLOW,
    "cashflowstatement": CASH_FLOW,
}

_REQUIRED_FIELDS = ("id", "label", "kind", "value_type")

_templates_cache: Dict[str, List[Dict[str, Any]]] = {}


def normalize_statement(name: str) -> str:
    """
    统一报表名称

    支持 IS / BS / CFS、camelCase（incomeStatement）与 snake_case。
    """
    key = (name or "").strip().lower()
    if key in _STATEMENT_ALIASES:
        return _STATEMENT_ALIASES[key]
    raise ModelError("UNKNOWN_STATEMENT", f"未知报表: {name}",
                     {"supported": list(STATEMENTS)})


def _load_templates() -> Dict[str, List[Dict[str, Any]]]:
    template_path = Path(__file__).resolve().parents[1] / "data" / "templates.json"
    if not template_path.exists():
        raise ModelError("TEMPLATE_NOT_FOUND", "缺少报表模板配置")
    try:
        data = json.loads(template_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ModelError("TEMPLATE_INVALID", f"报表模板JSON错误: {exc}") from exc
    if not isinstance(data, dict):
        raise ModelError("TEMPLATE_INVALID", "报表模板必须为对象")
    for statement in STATEMENTS:
        definitions = data.get(statement)
        if not isinstance(definitions, list) or not definitions:
            raise ModelError("TEMPLATE_INVALID", f"报表模板缺少 {statement}")
        for definition in definitions:
            missing = [key for key in _REQUIRED_FIELDS if key not in definition]
            if missing:
                raise ModelError("TEMPLATE_INVALID", "骨架行缺少字段",
                                 {"statement": statement, "row": definition, "missing": missing})
    return data


def template_definitions(statement: str) -> List[Dict[str, Any]]:
    """某张报表的骨架定义（按规范顺序）"""
    if not _templates_cache:
        _templates_cache.update(_load_templates())
    return _templates_cache[normalize_statement(statement)]


def build_row(definition: Dict[str, Any]) -> Row:
    """由骨架定义创建空行"""
    cfs_link = definition.get("cfs_link")
    is_link = definition.get("is_link")
    return Row(
        id=definition["id"],
        label=definition["label"],
        kind=definition["kind"],
        value_type=definition["value_type"],
        cfs_link=CfsLink.from_dict(cfs_link) if cfs_link else None,
        is_link=IsLink.from_dict(is_link) if is_link else None,
    )


def create_template(statement: str) -> List[Row]:
    """创建一张空白报表"""
    return [build_row(definition) for definition in template_definitions(statement)]


def create_all_templates() -> Dict[str, List[Row]]:
    return {statement: create_template(statement) for statement in STATEMENTS}


def protected_ids(statement: str) -> FrozenSet[str]:
    """受保护（不可删除 / 不可移动）的骨架行 id"""
    return frozenset(d["id"] for d in template_definitions(statement))


def skeleton_label(statement: str, row_id: str) -> str:
    for definition in template_definitions(statement):
        if definition["id"] == row_id:
            return definition["label"]
    return row_id
