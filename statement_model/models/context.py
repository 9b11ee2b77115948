# -*- coding: utf-8 -*-
"""
计算上下文

一次重算过程中共享的快照: 三张报表、时间轴、SBC / D&A 归属表。
重算按 利润表 -> 资产负债表 -> 现金流量表 的顺序逐张替换 statements 中的报表，
后面的报表读取的都是本年已经算好的值。
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..core.meta import ModelMeta
from ..core.row import Row
from ..core.tree import find_row

# 归属表: 科目 id -> 年份 -> 金额
AttributionTable = Dict[str, Dict[str, float]]


@dataclass
class CalcContext:
    meta: ModelMeta
    statements: Dict[str, List[Row]]
    sbc_table: AttributionTable = field(default_factory=dict)
    dana_table: AttributionTable = field(default_factory=dict)

    def rows(self, statement: str) -> List[Row]:
        return self.statements.get(statement, [])

    def find(self, statement: str, row_id: str) -> Optional[Row]:
        return find_row(self.rows(statement), row_id)

    def stored(self, statement: str, row_id: str, year: Optional[str]) -> float:
        """已存储的数值；行或年份不存在按 0"""
        if year is None:
            return 0.0
        row = self.find(statement, row_id)
        return row.value(year) if row else 0.0

    def prior_year(self, year: str) -> Optional[str]:
        return self.meta.prior_year(year)

    def is_projection(self, year: str) -> bool:
        return self.meta.is_projection(year)
