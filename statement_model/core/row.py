# -*- coding: utf-8 -*-
"""
报表行 - 三张报表的最小单元

每张报表是一棵行树:
- input 行存用户输入
- calc / subtotal / total 行每次由子行或公式推导

行对象在交给调用方之后不再原地修改，所有变更都通过 replace() 生成新对象。
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from .errors import ModelError

KIND_INPUT = "input"
KIND_CALC = "calc"
KIND_SUBTOTAL = "subtotal"
KIND_TOTAL = "total"

VALID_KINDS = (KIND_INPUT, KIND_CALC, KIND_SUBTOTAL, KIND_TOTAL)
AGGREGATE_KINDS = (KIND_SUBTOTAL, KIND_TOTAL)
VALID_VALUE_TYPES = ("currency", "percent", "number", "text")

# 有子行时变为 calc，没有子行时回到 input
CONVERTIBLE_IDS = ("rev", "cogs", "sga")

_VALID_SECTIONS = ("operating", "investing", "financing")
_VALID_IMPACTS = ("positive", "negative", "neutral", "calculated")


@dataclass
class CfsLink:
    """行在现金流量表中的处理方式"""
    section: str
    cfs_item_id: str
    impact: str = "neutral"
    description: str = ""

    def __post_init__(self):
        if self.section not in _VALID_SECTIONS:
            raise ModelError("INVALID_CFS_SECTION", f"无效的现金流分类: {self.section}")
        if self.impact not in _VALID_IMPACTS:
            raise ModelError("INVALID_CFS_IMPACT", f"无效的现金流影响方向: {self.impact}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "section": self.section,
            "cfs_item_id": self.cfs_item_id,
            "impact": self.impact,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CfsLink":
        return cls(
            section=data["section"],
            cfs_item_id=data.get("cfs_item_id", data.get("cfsItemId", "")),
            impact=data.get("impact", "neutral"),
            description=data.get("description", ""),
        )


@dataclass
class IsLink:
    """行与利润表科目的关联"""
    is_item_id: str
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"is_item_id": self.is_item_id, "description": self.description}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IsLink":
        return cls(
            is_item_id=data.get("is_item_id", data.get("isItemId", "")),
            description=data.get("description", ""),
        )


@dataclass
class Row:
    """
    报表行

    values: 年份标签 -> 数值。None 表示"无值"（例如收入为0时的毛利率）。
    """
    id: str
    label: str
    kind: str = KIND_INPUT
    value_type: str = "currency"
    values: Dict[str, Optional[float]] = field(default_factory=dict)
    children: List["Row"] = field(default_factory=list)
    cfs_link: Optional[CfsLink] = None
    is_link: Optional[IsLink] = None

    def __post_init__(self):
        if self.kind not in VALID_KINDS:
            raise ModelError("INVALID_KIND", f"无效的行类型: {self.kind}", {"row_id": self.id})
        if self.value_type not in VALID_VALUE_TYPES:
            raise ModelError("INVALID_VALUE_TYPE", f"无效的数值类型: {self.value_type}",
                             {"row_id": self.id})

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def is_aggregate(self) -> bool:
        """subtotal / total 行"""
        return self.kind in AGGREGATE_KINDS

    def value(self, year: str) -> float:
        """读取某年数值，缺失或无值按 0 处理"""
        v = self.values.get(year)
        return float(v) if v is not None else 0.0

    def with_value(self, year: str, value: Optional[float]) -> "Row":
        values = dict(self.values)
        values[year] = value
        return replace(self, values=values)

    def with_children(self, children: List["Row"]) -> "Row":
        return replace(self, children=children)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典（用于JSON序列化）"""
        result: Dict[str, Any] = {
            "id": self.id,
            "label": self.label,
            "kind": self.kind,
            "value_type": self.value_type,
            "values": dict(self.values),
            "children": [child.to_dict() for child in self.children],
        }
        if self.cfs_link:
            result["cfs_link"] = self.cfs_link.to_dict()
        if self.is_link:
            result["is_link"] = self.is_link.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Row":
        """从字典创建，兼容 camelCase 键（valueType / cfsLink / isLink）"""
        cfs_link = data.get("cfs_link", data.get("cfsLink"))
        is_link = data.get("is_link", data.get("isLink"))
        values = {}
        for year, value in (data.get("values") or {}).items():
            values[str(year)] = float(value) if value is not None else None
        return cls(
            id=data["id"],
            label=data.get("label", data["id"]),
            kind=data.get("kind", KIND_INPUT),
            value_type=data.get("value_type", data.get("valueType", "currency")),
            values=values,
            children=[cls.from_dict(child) for child in data.get("children") or []],
            cfs_link=CfsLink.from_dict(cfs_link) if cfs_link else None,
            is_link=IsLink.from_dict(is_link) if is_link else None,
        )


def derive_kind(row: Row) -> str:
    """
    推导行类型

    收入 / 成本 / 销管费用: 有子行 -> calc，无子行 -> input；
    其余行保持模板定义的类型。
    """
    if row.id in CONVERTIBLE_IDS:
        return KIND_CALC if row.children else KIND_INPUT
    return row.kind


def apply_derived_kind(row: Row) -> Row:
    kind = derive_kind(row)
    if kind == row.kind:
        return row
    return replace(row, kind=kind)
