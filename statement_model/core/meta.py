# -*- coding: utf-8 -*-
"""
模型元信息与时间轴

年份标签按时间先后排列: 历史年份在前（如 2024A），预测年份在后（如 2025E）。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def default_historical_years() -> List[str]:
    return ["2023A", "2024A"]


def default_projection_years() -> List[str]:
    return ["2025E", "2026E", "2027E", "2028E", "2029E"]


def build_years(start: int, historical: int, projection: int) -> Dict[str, List[str]]:
    """
    生成年份标签

    Args:
        start: 第一个历史年份
        historical: 历史年数
        projection: 预测年数

    Returns:
        {"historical": [...A], "projection": [...E]}
    """
    hist = [f"{start + i}A" for i in range(historical)]
    proj = [f"{start + historical + i}E" for i in range(projection)]
    return {"historical": hist, "projection": proj}


@dataclass
class ModelMeta:
    """模型元信息"""
    company_name: str = ""
    company_type: str = "public"
    currency: str = "USD"
    currency_unit: str = "millions"
    model_type: str = "three_statement"
    historical_years: List[str] = field(default_factory=default_historical_years)
    projection_years: List[str] = field(default_factory=default_projection_years)

    @property
    def all_years(self) -> List[str]:
        return list(self.historical_years) + list(self.projection_years)

    @property
    def last_historical_year(self) -> Optional[str]:
        return self.historical_years[-1] if self.historical_years else None

    def is_projection(self, year: str) -> bool:
        if year in self.projection_years:
            return True
        if year in self.historical_years:
            return False
        return year.upper().endswith("E")

    def prior_year(self, year: str) -> Optional[str]:
        """时间轴上的上一年，第一年或未知年份返回 None"""
        years = self.all_years
        if year not in years:
            return None
        idx = years.index(year)
        return years[idx - 1] if idx > 0 else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "company_name": self.company_name,
            "company_type": self.company_type,
            "currency": self.currency,
            "currency_unit": self.currency_unit,
            "model_type": self.model_type,
            "years": {
                "historical": list(self.historical_years),
                "projection": list(self.projection_years),
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelMeta":
        years = data.get("years") or {}
        return cls(
            company_name=data.get("company_name", data.get("companyName", "")),
            company_type=data.get("company_type", data.get("companyType", "public")),
            currency=data.get("currency", "USD"),
            currency_unit=data.get("currency_unit", data.get("currencyUnit", "millions")),
            model_type=data.get("model_type", data.get("modelType", "three_statement")),
            historical_years=list(years.get("historical", default_historical_years())),
            projection_years=list(years.get("projection", default_projection_years())),
        )
