# -*- coding: utf-8 -*-
"""
收入预测引擎

工具清单:
- project_growth_rate: 增长率法（固定 / 逐年）
- project_price_volume: 价格 × 销量
- project_customers_arpu: 客户数 × ARPU
- project_pct_of_total: 占总额百分比（在解析阶段计算）
- project_product_line: 产品线 / 渠道拆分
- compute_revenue_projections: 计算所有收入项的预测值
- apply_revenue_projections: 把预测值写入利润表收入行
- validate_projection_config: 配置校验（建议性）
- find_reference_cycles: 百分比引用环检测
- compute_yoy_growth: 同比增长（展示口径）

所有方法遵循统一接口:
    project(inputs, base, years) -> {year: value}
新增方法只需实现一个函数并登记到 PROJECTION_METHODS。

计算顺序:
1. 无明细的收入流按自身方法预测（基数 = 最后一个历史年，或 base_amount）
2. 有明细的收入流: 每个明细的基数 = 收入流历史值 × 分配比例（或 base_amount）
3. 逐年解析: 占本收入流百分比的明细、驱动型明细的差额项、占其他项百分比的项目
4. 总收入 = Σ 收入流；占总收入百分比的项目按线性方程求解
5. 产品线子项按最终总额等比缩放
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from ..core.errors import ValidationResult
from ..core.meta import ModelMeta
from ..core.row import Row
from ..core.tree import find_row, map_subtree
from .derivations import leaf_total

logger = logging.getLogger(__name__)

TOTAL_REVENUE_ID = "rev"

GROWTH_METHODS = ("growth_rate", "product_line", "channel")
DRIVER_METHODS = ("price_volume", "customers_arpu")
PCT_OF_TOTAL = "pct_of_total"
LINE_METHODS = ("product_line", "channel")

ALLOCATION_TOLERANCE = 0.01
_EPS = 1e-9

YearValues = Dict[str, float]
ProjectionResult = Dict[str, YearValues]


def _get(data: Dict[str, Any], snake: str, camel: str, default=None):
    if snake in data:
        return data[snake]
    return data.get(camel, default)


def _opt_float(value) -> Optional[float]:
    return float(value) if value is not None else None


# ============================================================
# 方法输入
# ============================================================

@dataclass
class GrowthRateInputs:
    """增长率法"""
    growth_type: str = "constant"
    rate_percent: float = 0.0
    rates_by_year: Dict[str, float] = field(default_factory=dict)
    base_amount: Optional[float] = None

    def rate_for(self, year: str) -> float:
        if self.growth_type == "custom_per_year":
            return float(self.rates_by_year.get(year, self.rate_percent))
        return self.rate_percent

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GrowthRateInputs":
        rates = _get(data, "rates_by_year", "ratesByYear", {}) or {}
        return cls(
            growth_type=_get(data, "growth_type", "growthType", "constant"),
            rate_percent=float(_get(data, "rate_percent", "ratePercent", 0.0) or 0.0),
            rates_by_year={str(k): float(v) for k, v in rates.items()},
            base_amount=_opt_float(_get(data, "base_amount", "baseAmount")),
        )


@dataclass
class PriceVolumeInputs:
    """价格 × 销量，可选按月价格年化（×12）"""
    price: float = 0.0
    volume: float = 0.0
    price_growth_percent: float = 0.0
    volume_growth_percent: float = 0.0
    annualize_from_monthly: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriceVolumeInputs":
        return cls(
            price=float(data.get("price") or 0.0),
            volume=float(data.get("volume") or 0.0),
            price_growth_percent=float(_get(data, "price_growth_percent", "priceGrowthPercent", 0.0) or 0.0),
            volume_growth_percent=float(_get(data, "volume_growth_percent", "volumeGrowthPercent", 0.0) or 0.0),
            annualize_from_monthly=bool(_get(data, "annualize_from_monthly", "annualizeFromMonthly", False)),
        )


@dataclass
class CustomersArpuInputs:
    """客户数 × ARPU"""
    customers: float = 0.0
    arpu: float = 0.0
    customer_growth_percent: float = 0.0
    arpu_growth_percent: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomersArpuInputs":
        return cls(
            customers=float(data.get("customers") or 0.0),
            arpu=float(data.get("arpu") or 0.0),
            customer_growth_percent=float(_get(data, "customer_growth_percent", "customerGrowthPercent", 0.0) or 0.0),
            arpu_growth_percent=float(_get(data, "arpu_growth_percent", "arpuGrowthPercent", 0.0) or 0.0),
        )


@dataclass
class PctOfTotalInputs:
    """占参考项（总收入或某个收入流）的百分比"""
    reference_id: str = TOTAL_REVENUE_ID
    pct_of_total: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PctOfTotalInputs":
        return cls(
            reference_id=_get(data, "reference_id", "referenceId", TOTAL_REVENUE_ID) or TOTAL_REVENUE_ID,
            pct_of_total=float(_get(data, "pct_of_total", "pctOfTotal", 0.0) or 0.0),
        )


@dataclass
class ProductLine:
    id: str = ""
    label: str = ""
    share_percent: Optional[float] = None
    growth_percent: float = 0.0
    base_amount: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductLine":
        return cls(
            id=str(data.get("id") or ""),
            label=str(data.get("label") or ""),
            share_percent=_opt_float(_get(data, "share_percent", "sharePercent")),
            growth_percent=float(_get(data, "growth_percent", "growthPercent", 0.0) or 0.0),
            base_amount=_opt_float(_get(data, "base_amount", "baseAmount")),
        )


@dataclass
class ProductLineInputs:
    """产品线 / 渠道: 各线按基期占比拆分，各自按增长率复利"""
    items: List[ProductLine] = field(default_factory=list)
    base_amount: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductLineInputs":
        return cls(
            items=[ProductLine.from_dict(item) for item in data.get("items") or []],
            base_amount=_opt_float(_get(data, "base_amount", "baseAmount")),
        )


_INPUT_TYPES: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    "growth_rate": GrowthRateInputs.from_dict,
    "price_volume": PriceVolumeInputs.from_dict,
    "customers_arpu": CustomersArpuInputs.from_dict,
    "pct_of_total": PctOfTotalInputs.from_dict,
    "product_line": ProductLineInputs.from_dict,
    "channel": ProductLineInputs.from_dict,
}


def _inputs_to_dict(inputs: Any) -> Any:
    if isinstance(inputs, dict):
        return dict(inputs)
    result = {}
    for key, value in vars(inputs).items():
        if isinstance(value, list):
            value = [vars(item).copy() if hasattr(item, "__dataclass_fields__") else item
                     for item in value]
        elif isinstance(value, dict):
            value = dict(value)
        result[key] = value
    return result


@dataclass
class ItemProjectionConfig:
    """单个收入项的预测方法"""
    method: str
    inputs: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"method": self.method, "inputs": _inputs_to_dict(self.inputs or {})}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ItemProjectionConfig":
        method = data.get("method", "")
        raw = data.get("inputs") or {}
        parser = _INPUT_TYPES.get(method)
        return cls(method=method, inputs=parser(raw) if parser else dict(raw))


@dataclass
class BreakdownItem:
    """收入流下的预测明细"""
    id: str
    label: str = ""


@dataclass
class RevenueProjectionConfig:
    """
    收入预测配置

    items: 收入项 id -> 方法
    breakdowns: 收入流 id -> 明细列表
    projection_allocations: 收入流 id -> {明细 id: 占比%}（预测期基数分配）
    """
    items: Dict[str, ItemProjectionConfig] = field(default_factory=dict)
    breakdowns: Dict[str, List[BreakdownItem]] = field(default_factory=dict)
    projection_allocations: Dict[str, Dict[str, float]] = field(default_factory=dict)

    def is_configured(self, item_id: str) -> bool:
        return item_id in self.items or bool(self.breakdowns.get(item_id))

    def parent_of(self) -> Dict[str, str]:
        parents = {}
        for stream_id, items in self.breakdowns.items():
            for item in items:
                parents[item.id] = stream_id
        return parents

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": {k: v.to_dict() for k, v in self.items.items()},
            "breakdowns": {
                k: [{"id": b.id, "label": b.label} for b in v]
                for k, v in self.breakdowns.items()
            },
            "projection_allocations": {
                k: dict(v) for k, v in self.projection_allocations.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RevenueProjectionConfig":
        data = data or {}
        allocations = {}
        for stream_id, alloc in (_get(data, "projection_allocations", "projectionAllocations", {}) or {}).items():
            # 兼容 {percentages: {...}} 结构
            percentages = alloc.get("percentages", alloc) if isinstance(alloc, dict) else {}
            allocations[stream_id] = {k: float(v) for k, v in percentages.items()}
        return cls(
            items={k: ItemProjectionConfig.from_dict(v) for k, v in (data.get("items") or {}).items()},
            breakdowns={
                k: [BreakdownItem(id=b["id"], label=b.get("label", "")) for b in v]
                for k, v in (data.get("breakdowns") or {}).items()
            },
            projection_allocations=allocations,
        )


# ============================================================
# 预测方法
# ============================================================

def project_growth_rate(inputs: GrowthRateInputs, base: float, years: List[str]) -> YearValues:
    """
    增长率法

    公式: value(y) = value(y-1) × (1 + g(y)/100)，起点为 base_amount（若设置）否则 base
    """
    value = inputs.base_amount if inputs.base_amount is not None else base
    out = {}
    for year in years:
        value = value * (1 + inputs.rate_for(year) / 100)
        out[year] = value
    return out


def project_price_volume(inputs: PriceVolumeInputs, base: float, years: List[str]) -> YearValues:
    """
    价格 × 销量

    公式: price × (1+gp)^n × volume × (1+gv)^n （× 12 若按月年化），n 从 1 开始
    """
    multiplier = 12 if inputs.annualize_from_monthly else 1
    out = {}
    for n, year in enumerate(years, start=1):
        price = inputs.price * (1 + inputs.price_growth_percent / 100) ** n
        volume = inputs.volume * (1 + inputs.volume_growth_percent / 100) ** n
        out[year] = price * volume * multiplier
    return out


def project_customers_arpu(inputs: CustomersArpuInputs, base: float, years: List[str]) -> YearValues:
    """公式: customers × (1+gc)^n × ARPU × (1+ga)^n"""
    out = {}
    for n, year in enumerate(years, start=1):
        customers = inputs.customers * (1 + inputs.customer_growth_percent / 100) ** n
        arpu = inputs.arpu * (1 + inputs.arpu_growth_percent / 100) ** n
        out[year] = customers * arpu
    return out


def project_pct_of_total(inputs: PctOfTotalInputs, base: float, years: List[str]) -> YearValues:
    """参考项的值要等其他项算完才知道，这里不产生数值"""
    return {}


def line_key(line: ProductLine, idx: int) -> str:
    raw = line.id or line.label
    return raw if raw.strip() else f"line-{idx}"


def _line_share(line: ProductLine, count: int) -> float:
    if line.share_percent is not None:
        return line.share_percent
    return 100.0 / count if count else 0.0


def project_lines(inputs: ProductLineInputs, base: float, years: List[str]) -> Dict[str, YearValues]:
    """各产品线的预测值: 线基数 = 总基数 × 占比（或线 base_amount），按自身增长率复利"""
    total_base = inputs.base_amount if inputs.base_amount is not None else base
    count = len(inputs.items)
    lines = {}
    for idx, line in enumerate(inputs.items):
        if line.base_amount is not None:
            line_base = line.base_amount
        else:
            line_base = total_base * _line_share(line, count) / 100
        growth = 1 + line.growth_percent / 100
        lines[line_key(line, idx)] = {
            year: line_base * growth ** n for n, year in enumerate(years, start=1)
        }
    return lines


def project_product_line(inputs: ProductLineInputs, base: float, years: List[str]) -> YearValues:
    """公式: Σ 各产品线；没有产品线时保持基数不变"""
    if not inputs.items:
        total_base = inputs.base_amount if inputs.base_amount is not None else base
        return {year: total_base for year in years}
    lines = project_lines(inputs, base, years)
    return {year: sum(values[year] for values in lines.values()) for year in years}


PROJECTION_METHODS: Dict[str, Callable[[Any, float, List[str]], YearValues]] = {
    "growth_rate": project_growth_rate,
    "price_volume": project_price_volume,
    "customers_arpu": project_customers_arpu,
    "pct_of_total": project_pct_of_total,
    "product_line": project_product_line,
    "channel": project_product_line,
}


def project_item(config: Optional[ItemProjectionConfig], base: float,
                 years: List[str]) -> YearValues:
    """按方法分派；未知方法不产生数值"""
    if config is None:
        return {}
    fn = PROJECTION_METHODS.get(config.method)
    if fn is None or isinstance(config.inputs, dict):
        logger.debug("未知的收入预测方法: %s", config.method)
        return {}
    return fn(config.inputs, base, years)


# ============================================================
# 明细分类
# ============================================================

def breakdown_projection_type(config: Optional[ItemProjectionConfig],
                              parent_stream_id: str) -> Optional[str]:
    """
    明细的预测类型

    Returns:
        "growth" / "dollar" / "pct_of_stream"；占其他项百分比的明细不计入
    """
    if config is None:
        return None
    if config.method in GROWTH_METHODS:
        return "growth"
    if config.method in DRIVER_METHODS:
        return "dollar"
    if config.method == PCT_OF_TOTAL and isinstance(config.inputs, PctOfTotalInputs):
        return "pct_of_stream" if config.inputs.reference_id == parent_stream_id else None
    return None


def has_invalid_breakdown_mix(config: RevenueProjectionConfig, stream_id: str) -> bool:
    """同一收入流下 增长型 / 金额型 / 占本流百分比 三类同时出现即为无效组合"""
    types = {
        breakdown_projection_type(config.items.get(b.id), stream_id)
        for b in config.breakdowns.get(stream_id) or []
    }
    return {"growth", "dollar", "pct_of_stream"} <= types


def _pct_inputs(config: RevenueProjectionConfig, item_id: str) -> Optional[PctOfTotalInputs]:
    item = config.items.get(item_id)
    if item is not None and item.method == PCT_OF_TOTAL and isinstance(item.inputs, PctOfTotalInputs):
        return item.inputs
    return None


def _has_base_amount(config: RevenueProjectionConfig, item_id: str) -> bool:
    item = config.items.get(item_id)
    if item is None or item.method not in GROWTH_METHODS:
        return False
    return getattr(item.inputs, "base_amount", None) is not None


def find_reference_cycles(config: RevenueProjectionConfig) -> List[List[str]]:
    """
    百分比引用环检测

    依赖边:
    - 收入流 -> 其明细
    - 百分比项 -> 参考项（参考总收入或自己所属收入流的除外，这两种按方程求解）

    Returns:
        每个环的 id 路径
    """
    parents = config.parent_of()
    edges: Dict[str, List[str]] = {}
    for stream_id, items in config.breakdowns.items():
        edges.setdefault(stream_id, []).extend(b.id for b in items)
    for item_id in config.items:
        pct = _pct_inputs(config, item_id)
        if pct is None:
            continue
        ref = pct.reference_id
        if ref == TOTAL_REVENUE_ID or ref == parents.get(item_id):
            continue
        edges.setdefault(item_id, []).append(ref)

    cycles = []
    state: Dict[str, str] = {}

    def _visit(node: str, path: List[str]):
        state[node] = "visiting"
        for nxt in edges.get(node, []):
            if state.get(nxt) == "visiting":
                cycles.append(path[path.index(nxt):] + [nxt] if nxt in path else [node, nxt])
            elif nxt not in state:
                _visit(nxt, path + [nxt])
        state[node] = "done"

    for node in list(edges):
        if node not in state:
            _visit(node, [node])
    return cycles


def validate_projection_config(config: RevenueProjectionConfig) -> ValidationResult:
    """
    配置校验（建议性）

    errors: 未知方法、负数驱动值、百分比引用环
    warnings: 无效明细组合、分配比例合计不为 100%、产品线占比合计不为 100%
    """
    result = ValidationResult()
    for item_id, item in config.items.items():
        if item.method not in PROJECTION_METHODS:
            result.add_error(f"{item_id}: 未知的预测方法 {item.method}")
            continue
        inputs = item.inputs
        if isinstance(inputs, PriceVolumeInputs) and (inputs.price < 0 or inputs.volume < 0):
            result.add_error(f"{item_id}: 价格和销量不能为负")
        if isinstance(inputs, CustomersArpuInputs) and (inputs.customers < 0 or inputs.arpu < 0):
            result.add_error(f"{item_id}: 客户数和ARPU不能为负")
        if isinstance(inputs, ProductLineInputs) and inputs.items:
            shares = sum(_line_share(line, len(inputs.items)) for line in inputs.items)
            if abs(shares - 100) > ALLOCATION_TOLERANCE:
                result.add_warning(f"{item_id}: 产品线占比合计 {shares:.2f}% ≠ 100%")

    for stream_id, items in config.breakdowns.items():
        if has_invalid_breakdown_mix(config, stream_id):
            result.add_warning(f"{stream_id}: 明细同时使用增长型、金额型和占本流百分比三类方法")
        allocation = config.projection_allocations.get(stream_id)
        if items and allocation:
            total = sum(allocation.get(b.id, 0.0) for b in items)
            if abs(total - 100) > ALLOCATION_TOLERANCE:
                result.add_warning(f"{stream_id}: 预测分配比例合计 {total:.2f}% ≠ 100%")

    for cycle in find_reference_cycles(config):
        result.add_error("百分比引用形成循环: " + " -> ".join(cycle))
    return result


# ============================================================
# 计算
# ============================================================

class _ProjectionPlan:
    """一次预测计算的静态部分: 收入流结构与各项的基础预测值"""

    def __init__(self, revenue_row: Row, config: RevenueProjectionConfig,
                 years: List[str], last_historical: Optional[str]):
        self.config = config
        self.years = years
        self.stream_ids = [child.id for child in revenue_row.children]
        self.parents = {
            item_id: stream_id for item_id, stream_id in config.parent_of().items()
            if stream_id in self.stream_ids
        }
        self.streams_with_breakdowns = {
            sid for sid in self.stream_ids if config.breakdowns.get(sid)
        }
        self.base_values: ProjectionResult = {}
        self.line_values: Dict[str, Dict[str, YearValues]] = {}
        self.cycles: Set[str] = set()

        def _historic(row: Row) -> float:
            return row.value(last_historical) if last_historical else 0.0

        for stream in revenue_row.children:
            breakdowns = config.breakdowns.get(stream.id) or []
            if breakdowns:
                parent_base = _historic(stream)
                allocation = config.projection_allocations.get(stream.id) or {}
                for item in breakdowns:
                    self._project(item.id, parent_base * allocation.get(item.id, 0.0) / 100)
            elif stream.id in config.items:
                self._project(stream.id, _historic(stream))
            else:
                # 未配置的收入流沿用用户输入
                self.base_values[stream.id] = {year: leaf_total(stream, year) for year in years}

    def _project(self, item_id: str, base: float):
        item = self.config.items.get(item_id)
        if item is None or item.method == PCT_OF_TOTAL:
            return
        self.base_values[item_id] = project_item(item, base, self.years)
        if item.method in LINE_METHODS and isinstance(item.inputs, ProductLineInputs):
            self.line_values[item_id] = project_lines(item.inputs, base, self.years)


class _YearResolver:
    """
    单年解析

    total_revenue 固定为给定值（占总收入百分比的项目读取它），
    求出的各收入流合计是 total_revenue 的仿射函数。
    """

    def __init__(self, plan: _ProjectionPlan, year: str, total_revenue: float):
        self.plan = plan
        self.config = plan.config
        self.year = year
        self.total_revenue = total_revenue
        self.values: Dict[str, float] = {}
        self._visiting: Set[str] = set()

    def total(self) -> float:
        return sum(self.value(sid) for sid in self.plan.stream_ids)

    def value(self, item_id: str) -> float:
        if item_id == TOTAL_REVENUE_ID:
            return self.total_revenue
        if item_id in self.values:
            return self.values[item_id]
        parent = self.plan.parents.get(item_id)
        if parent is not None and parent in self._visiting:
            # 同一收入流内兄弟项之间的引用
            return self._own_value(item_id)
        if item_id in self._visiting:
            self.plan.cycles.add(item_id)
            return 0.0
        self._visiting.add(item_id)
        try:
            if item_id in self.plan.streams_with_breakdowns:
                result = self._solve_stream(item_id)
            elif parent is not None:
                self.value(parent)
                result = self.values.get(item_id, 0.0)
            else:
                result = self._own_value(item_id)
        finally:
            self._visiting.discard(item_id)
        self.values[item_id] = result
        return result

    def _own_value(self, item_id: str) -> float:
        pct = _pct_inputs(self.config, item_id)
        if pct is not None:
            return self.value(pct.reference_id) * pct.pct_of_total / 100
        return self.plan.base_values.get(item_id, {}).get(self.year, 0.0)

    def _solve_stream(self, stream_id: str) -> float:
        """
        收入流 = Σ 明细，处理两种循环:

        - 有"占本流百分比"明细: T = Σ 其他明细 / (1 - Σ 百分比)
        - 有金额型驱动且设置了驱动分配比例: T = 驱动金额 / 驱动占比，
          其余没有 base_amount 的明细作为差额项
        """
        ids = [b.id for b in self.config.breakdowns.get(stream_id) or []]
        pct_parent = [i for i in ids if self._is_pct_of(i, stream_id)]
        drivers = [i for i in ids if self._method(i) in DRIVER_METHODS]
        residuals = [i for i in ids if i not in drivers and i not in pct_parent]
        allocation = self.config.projection_allocations.get(stream_id) or {}

        values = {i: self._own_value(i) for i in ids if i not in pct_parent}
        pct_sum = sum(_pct_inputs(self.config, i).pct_of_total for i in pct_parent) / 100
        driver_alloc = sum(allocation.get(i, 0.0) for i in drivers)
        invalid_mix = bool(drivers and pct_parent and residuals)

        if pct_parent and pct_sum < 1:
            total = sum(values.values()) / (1 - pct_sum)
            for i in pct_parent:
                values[i] = total * _pct_inputs(self.config, i).pct_of_total / 100
        elif drivers and driver_alloc >= 1e-6 and not invalid_mix:
            self._solve_plugs(values, drivers, residuals, pct_parent, pct_sum,
                              driver_alloc, allocation)
        else:
            for i in pct_parent:
                values[i] = 0.0

        self.values.update(values)
        return sum(values.values())

    def _solve_plugs(self, values: Dict[str, float], drivers: List[str],
                     residuals: List[str], pct_parent: List[str], pct_sum: float,
                     driver_alloc: float, allocation: Dict[str, float]):
        driver_total = sum(values[i] for i in drivers)
        keep = [i for i in residuals if _has_base_amount(self.config, i)]
        keep_total = sum(values[i] for i in keep)
        plugs = [i for i in residuals if i not in keep]
        plug_alloc = sum(allocation.get(i, 0.0) for i in plugs) / 100

        if not plugs:
            total = driver_total + keep_total
        elif plug_alloc >= 1 - 1e-6:
            total = driver_total / (driver_alloc / 100)
        else:
            total = (driver_total + keep_total) / (1 - plug_alloc)

        for i in pct_parent:
            values[i] = total * _pct_inputs(self.config, i).pct_of_total / 100
        remainder = total - driver_total - keep_total - total * pct_sum
        if len(plugs) == 1:
            values[plugs[0]] = remainder
        elif plugs:
            for i in plugs:
                if plug_alloc > 1e-6:
                    values[i] = remainder * (allocation.get(i, 0.0) / 100) / plug_alloc
                else:
                    values[i] = remainder / len(plugs)

    def _method(self, item_id: str) -> Optional[str]:
        item = self.config.items.get(item_id)
        return item.method if item else None

    def _is_pct_of(self, item_id: str, stream_id: str) -> bool:
        pct = _pct_inputs(self.config, item_id)
        return pct is not None and pct.reference_id == stream_id


def _scale_lines(result: ProjectionResult, plan: _ProjectionPlan):
    """产品线子项 parent::line 按最终总额等比缩放"""
    for item_id, lines in plan.line_values.items():
        for year in plan.years:
            weight = sum(values[year] for values in lines.values())
            total = result.get(item_id, {}).get(year, 0.0)
            for key, values in lines.items():
                sub = f"{item_id}::{key}"
                if abs(weight) < _EPS:
                    scaled = values[year]
                else:
                    scaled = total * values[year] / weight
                result.setdefault(sub, {})[year] = scaled


def compute_revenue_projections(income_statement: List[Row], config: RevenueProjectionConfig,
                                meta: ModelMeta) -> ProjectionResult:
    """
    计算收入预测

    Args:
        income_statement: 历史年已经重算过的利润表
        config: 收入预测配置
        meta: 时间轴

    Returns:
        收入项 id（含 rev、收入流、明细、parent::line 子项）-> 年份 -> 预测值
    """
    years = list(meta.projection_years)
    revenue_row = find_row(income_statement, TOTAL_REVENUE_ID)
    if revenue_row is None or not years:
        return {}
    plan = _ProjectionPlan(revenue_row, config, years, meta.last_historical_year)
    result: ProjectionResult = {}

    if not plan.stream_ids:
        own = config.items.get(TOTAL_REVENUE_ID)
        if own is not None and own.method != PCT_OF_TOTAL:
            base = revenue_row.value(meta.last_historical_year) if meta.last_historical_year else 0.0
            result[TOTAL_REVENUE_ID] = project_item(own, base, years)
            if own.method in LINE_METHODS and isinstance(own.inputs, ProductLineInputs):
                plan.line_values[TOTAL_REVENUE_ID] = project_lines(own.inputs, base, years)
            _scale_lines(result, plan)
        return result

    for year in years:
        # 流合计是总收入 R 的仿射函数 f(R)，解 R = f(R)
        f0 = _YearResolver(plan, year, 0.0).total()
        f1 = _YearResolver(plan, year, 1.0).total()
        slope = f1 - f0
        if abs(1 - slope) < _EPS:
            logger.warning("%s: 占总收入百分比合计为 100%%，无法求解总收入", year)
            total_revenue = f0
        else:
            total_revenue = f0 / (1 - slope)
        resolver = _YearResolver(plan, year, total_revenue)
        result.setdefault(TOTAL_REVENUE_ID, {})[year] = resolver.total()
        for item_id, value in resolver.values.items():
            result.setdefault(item_id, {})[year] = value

    if plan.cycles:
        logger.warning("收入预测存在循环引用，相关项目按 0 处理: %s", sorted(plan.cycles))
    _scale_lines(result, plan)
    return result


def apply_revenue_projections(income_statement: List[Row], projections: ProjectionResult,
                              config: RevenueProjectionConfig, years: List[str]) -> List[Row]:
    """
    把预测值写入利润表

    只写已配置的叶子收入流（没有收入流时写 rev 本身）；未配置的收入流保留用户输入。
    """
    revenue_row = find_row(income_statement, TOTAL_REVENUE_ID)
    if revenue_row is None:
        return income_statement
    if revenue_row.children:
        targets = [child.id for child in revenue_row.children
                   if not child.children and config.is_configured(child.id)]
    else:
        targets = [TOTAL_REVENUE_ID] if config.is_configured(TOTAL_REVENUE_ID) else []

    rows = income_statement
    for item_id in targets:
        values = projections.get(item_id)
        if not values:
            continue

        def _write(row: Row, values=values) -> Row:
            for year in years:
                if year in values:
                    row = row.with_value(year, values[year])
            return row

        rows = map_subtree(rows, item_id, _write)
    return rows


def compute_yoy_growth(projections: ProjectionResult, config: RevenueProjectionConfig,
                       item_id: str, years: List[str],
                       base_value: Optional[float] = None) -> Dict[str, Optional[float]]:
    """
    同比增长（展示口径）

    - 产品线子项（parent::line）: 直接取配置的增长率
    - 产品线 / 渠道父项: 由子项合计推导，保证与拆分一致
    - 其他: 由预测值推导

    Args:
        projections: compute_revenue_projections 的结果
        config: 收入预测配置
        item_id: 收入项 id
        years: 预测年份
        base_value: 第一个预测年的上年值（最后一个历史年）

    Returns:
        年份 -> 增长率%（上年为 0 或缺失时为 None）
    """
    if "::" in item_id:
        parent_id, key = item_id.split("::", 1)
        parent = config.items.get(parent_id)
        if parent is not None and isinstance(parent.inputs, ProductLineInputs):
            for idx, line in enumerate(parent.inputs.items):
                if line_key(line, idx) == key:
                    return {year: line.growth_percent for year in years}
        return {year: None for year in years}

    item = config.items.get(item_id)
    if item is not None and item.method in LINE_METHODS and isinstance(item.inputs, ProductLineInputs) \
            and item.inputs.items:
        keys = [f"{item_id}::{line_key(line, idx)}" for idx, line in enumerate(item.inputs.items)]
        series = {
            year: sum((projections.get(k) or {}).get(year, 0.0) for k in keys) for year in years
        }
    else:
        series = projections.get(item_id) or {}

    growth: Dict[str, Optional[float]] = {}
    prior = base_value
    for year in years:
        current = series.get(year)
        if prior in (None, 0) or current is None:
            growth[year] = None
        else:
            growth[year] = (current / prior - 1) * 100
        prior = current
    return growth
