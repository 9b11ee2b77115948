# -*- coding: utf-8 -*-
"""
报表模型 - 结构编辑与重算入口

提供:
- 三张报表的行树（写时复制，外部拿到的列表不会被就地修改）
- 结构操作: 添加子行 / 插入行 / 分类插入 / 移动 / 删除
- 数值操作: 单元格更新、批量导入、SBC / D&A 归属表
- 时间轴调整
- 收入预测配置
- 资产负债表配平检查

每个操作完成后都立即做一次全量重算。结构操作不会抛异常，
拒绝时返回 applied=False 的 MutationResult。
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.errors import ModelError, MutationResult, ValidationResult
from ..core.meta import ModelMeta
from ..core.row import CfsLink, IsLink, Row, apply_derived_kind
from ..core.tree import (
    find_parent,
    find_row,
    index_of,
    insert_at,
    insert_child,
    map_subtree,
    remove_subtree,
    set_row_value,
)
from .calculations import is_formula_row, recompute_all
from .categories import CATEGORY_PREFIXES, insertion_index_for_category
from .context import AttributionTable
from .derivations import check_balance, sync_working_capital
from .revenue_projection import (
    RevenueProjectionConfig,
    compute_revenue_projections,
    find_reference_cycles,
    validate_projection_config,
)
from .skeleton import reconcile_all
from .templates import (
    BALANCE_SHEET,
    CASH_FLOW,
    INCOME_STATEMENT,
    STATEMENTS,
    create_all_templates,
    normalize_statement,
    protected_ids,
)

logger = logging.getLogger(__name__)

# 现金流量表各区间的合计行
_SECTION_TOTALS = {
    "operating": "operating_cf",
    "investing": "investing_cf",
    "financing": "financing_cf",
}


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


def _to_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ModelError("INVALID_VALUE", f"无效数值: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ModelError("INVALID_VALUE", f"无效数值: {value!r}") from exc


def _reseed_years(rows: List[Row], years: List[str]) -> List[Row]:
    """每行的 values 只保留新时间轴上的年份，新增年份填 0"""
    result = []
    for row in rows:
        values = {year: row.values.get(year, 0.0) for year in years}
        children = _reseed_years(row.children, years) if row.children else row.children
        result.append(Row(
            id=row.id,
            label=row.label,
            kind=row.kind,
            value_type=row.value_type,
            values=values,
            children=children,
            cfs_link=row.cfs_link,
            is_link=row.is_link,
        ))
    return result


def _copy_table(table: Optional[AttributionTable]) -> AttributionTable:
    return {row_id: dict(by_year) for row_id, by_year in (table or {}).items()}


def _with_entry(table: AttributionTable, row_id: str, year: str,
                value: float) -> AttributionTable:
    """返回写入一个单元格后的新表，原表不变"""
    updated = _copy_table(table)
    updated.setdefault(row_id, {})[year] = value
    return updated


def _prune_table(table: AttributionTable, years: List[str]) -> AttributionTable:
    return {
        row_id: {year: v for year, v in by_year.items() if year in years}
        for row_id, by_year in table.items()
    }


class StatementModel:
    """
    三表模型

    使用示例:
        model = StatementModel(ModelMeta(company_name="Demo"))
        model.update_row_value("IS", "rev", "2024A", 1000)
        result = model.add_child_row("IS", "rev", "Product A")
        model.check_balance()
    """

    def __init__(self, meta: Optional[ModelMeta] = None,
                 statements: Optional[Dict[str, List[Row]]] = None,
                 sbc_table: Optional[AttributionTable] = None,
                 dana_table: Optional[AttributionTable] = None,
                 revenue_config: Optional[RevenueProjectionConfig] = None):
        self.meta = meta or ModelMeta()
        self.statements: Dict[str, List[Row]] = statements or create_all_templates()
        self.sbc_table: AttributionTable = _copy_table(sbc_table)
        self.dana_table: AttributionTable = _copy_table(dana_table)
        self.revenue_config = revenue_config or RevenueProjectionConfig()
        self.created_at = datetime.now()
        self.recalculate_all()

    # ------------------------------------------------------------
    # 读取
    # ------------------------------------------------------------

    def statement(self, name: str) -> List[Row]:
        return self.statements[normalize_statement(name)]

    def find(self, name: str, row_id: str) -> Optional[Row]:
        return find_row(self.statement(name), row_id)

    def value(self, name: str, row_id: str, year: str) -> Optional[float]:
        """某行某年的值；行不存在返回 None"""
        row = self.find(name, row_id)
        return row.values.get(year) if row else None

    # ------------------------------------------------------------
    # 重算
    # ------------------------------------------------------------

    def recalculate_all(self):
        """骨架修复 + 全量重算"""
        self.statements = recompute_all(
            self.statements, self.meta,
            sbc_table=self.sbc_table,
            dana_table=self.dana_table,
            revenue_config=self.revenue_config,
        )

    def _commit(self, statement: str, rows: List[Row]):
        self.statements = dict(self.statements)
        self.statements[statement] = rows
        self.recalculate_all()

    # ------------------------------------------------------------
    # 结构操作
    # ------------------------------------------------------------

    def add_child_row(self, name: str, parent_id: str, label: str,
                      value_type: str = "currency",
                      cfs_link: Optional[CfsLink] = None,
                      is_link: Optional[IsLink] = None) -> MutationResult:
        """
        在父行下添加子行

        父行是收入 / 成本 / 销管费用时，添加第一个子行后父行变为 calc（子行合计）。

        Args:
            name: 报表名称
            parent_id: 父行 id
            label: 行名称（去除首尾空格后不能为空）
            value_type: 数值类型
            cfs_link: 现金流关联（可选）
            is_link: 利润表关联（可选）

        Returns:
            MutationResult，applied=True 时 row_id 为新行 id
        """
        statement = normalize_statement(name)
        label = (label or "").strip()
        if not label:
            return MutationResult(False, "行名称不能为空")
        rows = self.statements[statement]
        if find_row(rows, parent_id) is None:
            logger.debug("父行不存在，忽略添加: %s.%s", statement, parent_id)
            return MutationResult(False, f"父行不存在: {parent_id}")

        child = Row(id=_new_id(parent_id), label=label, value_type=value_type,
                    cfs_link=cfs_link, is_link=is_link)
        rows = insert_child(rows, parent_id, child)
        rows = map_subtree(rows, parent_id, apply_derived_kind)
        self._commit(statement, rows)
        return MutationResult(True, row_id=child.id)

    def insert_row(self, name: str, index: int, row: Row) -> MutationResult:
        """在顶层指定位置插入行（越界截断到两端）"""
        statement = normalize_statement(name)
        rows = self.statements[statement]
        if find_row(rows, row.id) is not None:
            return MutationResult(False, f"行已存在: {row.id}")
        self._commit(statement, insert_at(rows, index, row))
        return MutationResult(True, row_id=row.id)

    def add_category_row(self, category: str, label: str,
                         value_type: str = "currency") -> MutationResult:
        """在资产负债表某个分类末尾（小计行之前）添加科目"""
        label = (label or "").strip()
        if not label:
            return MutationResult(False, "行名称不能为空")
        rows = self.statements[BALANCE_SHEET]
        index = insertion_index_for_category(rows, category)
        row = Row(id=_new_id(CATEGORY_PREFIXES[category].rstrip("_")), label=label,
                  value_type=value_type)
        return self.insert_row(BALANCE_SHEET, index, row)

    def add_suggested_row(self, name: str, label: str, match,
                          parent_id: Optional[str] = None,
                          category: Optional[str] = None,
                          strict: bool = False) -> MutationResult:
        """
        按匹配建议添加自定义行

        匹配结果只影响行名称与现金流关联；strict=True 时匹配不通过直接拒绝，
        否则只作为提示。

        位置:
        - 指定 parent_id: 作为子行
        - 指定 category: 资产负债表分类末尾
        - 现金流量表: 按 cfs_link 的区间插到区间合计行之前
        - 利润表: 插到 EBIT 之前（计入营业费用）
        - 其他: 追加到末尾
        """
        statement = normalize_statement(name)
        if strict and not match.should_allow:
            return MutationResult(False, f"未通过概念匹配: {label}")
        if not match.should_allow:
            logger.info("概念匹配置信度较低，仍按输入添加: %s", label)
        final_label = match.suggested_label or label
        cfs_link = match.cfs_link if statement == CASH_FLOW else None

        if parent_id:
            return self.add_child_row(statement, parent_id, final_label, cfs_link=cfs_link)
        if category and statement == BALANCE_SHEET:
            return self.add_category_row(category, final_label)

        final_label = (final_label or "").strip()
        if not final_label:
            return MutationResult(False, "行名称不能为空")
        rows = self.statements[statement]
        if statement == CASH_FLOW:
            section = cfs_link.section if cfs_link else "operating"
            index = index_of(rows, _SECTION_TOTALS[section])
            prefix = "cfs"
        elif statement == INCOME_STATEMENT:
            index = index_of(rows, "ebit")
            prefix = "is"
        else:
            index = -1
            prefix = "bs"
        if index < 0:
            index = len(rows)
        row = Row(id=_new_id(prefix), label=final_label, cfs_link=cfs_link)
        return self.insert_row(statement, index, row)

    def move_row(self, name: str, row_id: str, direction: str) -> MutationResult:
        """
        与相邻兄弟行交换位置

        拒绝: 合计 / 小计行本身、骨架行、越过合计 / 小计行或公式行
        （公式按位置取区间行，越过后该行会脱离所属区间）。
        """
        statement = normalize_statement(name)
        if direction not in ("up", "down"):
            raise ModelError("INVALID_DIRECTION", f"无效方向: {direction}",
                             {"supported": ["up", "down"]})
        rows = self.statements[statement]
        row = find_row(rows, row_id)
        if row is None:
            return MutationResult(False, f"行不存在: {row_id}")
        if row.is_aggregate:
            return MutationResult(False, "合计行不能移动")
        if row_id in protected_ids(statement):
            logger.warning("拒绝移动骨架行: %s.%s", statement, row_id)
            return MutationResult(False, "骨架行不能移动")

        parent = find_parent(rows, row_id)
        siblings = parent.children if parent is not None else rows
        idx = next(i for i, r in enumerate(siblings) if r.id == row_id)
        target = idx - 1 if direction == "up" else idx + 1
        if target < 0 or target >= len(siblings):
            return MutationResult(False, "已在边界")
        neighbour = siblings[target]
        if neighbour.is_aggregate or (parent is None and is_formula_row(statement, neighbour.id)):
            return MutationResult(False, "不能越过合计行或公式行")

        swapped = list(siblings)
        swapped[idx], swapped[target] = swapped[target], swapped[idx]
        if parent is None:
            rows = swapped
        else:
            rows = map_subtree(rows, parent.id, lambda p: p.with_children(swapped))
        self._commit(statement, rows)
        return MutationResult(True, row_id=row_id)

    def remove_row(self, name: str, row_id: str) -> MutationResult:
        """删除行及其子树；骨架行拒绝删除"""
        statement = normalize_statement(name)
        if row_id in protected_ids(statement):
            logger.warning("拒绝删除骨架行: %s.%s", statement, row_id)
            return MutationResult(False, "骨架行不能删除")
        rows = self.statements[statement]
        parent = find_parent(rows, row_id)
        updated = remove_subtree(rows, row_id)
        if updated is rows:
            return MutationResult(False, f"行不存在: {row_id}")
        if parent is not None:
            updated = map_subtree(updated, parent.id, apply_derived_kind)
        self.sbc_table = {k: v for k, v in self.sbc_table.items() if k != row_id}
        self.dana_table = {k: v for k, v in self.dana_table.items() if k != row_id}
        self._commit(statement, updated)
        return MutationResult(True, row_id=row_id)

    # ------------------------------------------------------------
    # 数值操作
    # ------------------------------------------------------------

    def update_row_value(self, name: str, row_id: str, year: str, value: Any) -> MutationResult:
        """
        更新单元格并全量重算

        派生行（公式 / 子行合计 / 跨表推导）的输入会在重算时被覆盖。

        Raises:
            ModelError: INVALID_VALUE 非数值
        """
        statement = normalize_statement(name)
        number = _to_number(value)
        rows = self.statements[statement]
        updated = set_row_value(rows, row_id, year, number)
        if updated is rows:
            return MutationResult(False, f"行不存在: {row_id}")
        self._commit(statement, updated)
        return MutationResult(True, row_id=row_id)

    def import_values(self, name: str, values: Dict[str, Dict[str, Any]]) -> MutationResult:
        """
        批量导入 {row_id: {year: value}}，只写存在的行与时间轴上的年份

        Returns:
            MutationResult，message 为写入的单元格数
        """
        statement = normalize_statement(name)
        rows = self.statements[statement]
        years = set(self.meta.all_years)
        count = 0
        for row_id, by_year in values.items():
            for year, value in by_year.items():
                if year not in years:
                    continue
                updated = set_row_value(rows, row_id, year, _to_number(value))
                if updated is not rows:
                    rows = updated
                    count += 1
        if count == 0:
            return MutationResult(False, "没有可导入的数值")
        self._commit(statement, rows)
        return MutationResult(True, f"已导入 {count} 个数值")

    def update_sbc_value(self, row_id: str, year: str, value: Any) -> MutationResult:
        """标注某费用科目中包含的股权激励金额"""
        self.sbc_table = _with_entry(self.sbc_table, row_id, year, _to_number(value) or 0.0)
        self.recalculate_all()
        return MutationResult(True, row_id=row_id)

    def update_dana_value(self, row_id: str, year: str, value: Any) -> MutationResult:
        """标注某费用科目中包含的折旧摊销金额"""
        self.dana_table = _with_entry(self.dana_table, row_id, year, _to_number(value) or 0.0)
        self.recalculate_all()
        return MutationResult(True, row_id=row_id)

    def update_years(self, historical: List[str], projection: List[str]) -> MutationResult:
        """调整时间轴: 新增年份填 0，删除的年份连同数值一并去掉"""
        self.meta.historical_years = list(historical)
        self.meta.projection_years = list(projection)
        years = self.meta.all_years
        self.statements = {
            name: _reseed_years(rows, years) for name, rows in self.statements.items()
        }
        self.sbc_table = _prune_table(self.sbc_table, years)
        self.dana_table = _prune_table(self.dana_table, years)
        self.recalculate_all()
        return MutationResult(True, f"时间轴: {', '.join(years)}")

    def sync_working_capital(self) -> MutationResult:
        """按资产负债表生成 / 清理营运资本明细行"""
        rows = self.statements[CASH_FLOW]
        updated = sync_working_capital(rows, self.statements[BALANCE_SHEET])
        if updated is rows:
            return MutationResult(False, "营运资本明细已同步")
        self._commit(CASH_FLOW, updated)
        return MutationResult(True, row_id="wc_change")

    # ------------------------------------------------------------
    # 收入预测
    # ------------------------------------------------------------

    def set_revenue_config(self, config: RevenueProjectionConfig) -> MutationResult:
        """设置收入预测配置；存在百分比引用环时拒绝"""
        cycles = find_reference_cycles(config)
        if cycles:
            logger.warning("收入预测配置存在循环引用: %s", cycles)
            return MutationResult(False, "百分比引用形成循环: "
                                  + "; ".join(" -> ".join(c) for c in cycles))
        self.revenue_config = config
        self.recalculate_all()
        return MutationResult(True)

    def validate_revenue_config(self) -> ValidationResult:
        return validate_projection_config(self.revenue_config)

    def revenue_projections(self) -> Dict[str, Dict[str, float]]:
        """当前配置下各收入项的预测值（含 parent::line 子项）"""
        return compute_revenue_projections(self.statements[INCOME_STATEMENT],
                                           self.revenue_config, self.meta)

    # ------------------------------------------------------------
    # 诊断与导出
    # ------------------------------------------------------------

    def check_balance(self) -> List[Dict[str, Any]]:
        return check_balance(self.statements[BALANCE_SHEET], self.meta.all_years)

    def reconcile(self):
        """只做骨架修复（不重算）"""
        self.statements = reconcile_all(self.statements)

    def to_dict(self) -> Dict[str, Any]:
        """导出为字典"""
        return {
            "_meta": {
                **self.meta.to_dict(),
                "created_at": self.created_at.isoformat(),
            },
            "statements": {
                name: [row.to_dict() for row in self.statements[name]]
                for name in STATEMENTS
            },
            "sbc_table": _copy_table(self.sbc_table),
            "dana_table": _copy_table(self.dana_table),
            "revenue_config": self.revenue_config.to_dict(),
        }

    def to_json(self, indent: int = 2) -> str:
        """导出为JSON字符串"""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def summary(self) -> str:
        """生成模型摘要"""
        balance = self.check_balance()
        unbalanced = [r["year"] for r in balance if not r["balanced"]]
        lines = [
            f"公司: {self.meta.company_name or '-'}",
            f"历史年: {', '.join(self.meta.historical_years)}",
            f"预测年: {', '.join(self.meta.projection_years)}",
            "",
            f"利润表: {len(self.statements[INCOME_STATEMENT])} 行",
            f"资产负债表: {len(self.statements[BALANCE_SHEET])} 行",
            f"现金流量表: {len(self.statements[CASH_FLOW])} 行",
            f"未配平年份: {', '.join(unbalanced) if unbalanced else '无'}",
        ]
        return "\n".join(lines)
