# -*- coding: utf-8 -*-
"""
科目概念匹配

用户添加自定义行时，用词表给出标准名称、说明和现金流区间建议。
匹配结果只是建议，是否采纳由调用方决定。

评分:
- 完全相同: 1.0
- 包含关系: 0.8
- 词重叠: 重叠词数 / 较长词数，最高 0.7
- 逐字符相同比例 × 0.5

≥ 0.6 视为匹配，0.3 ~ 0.6 为部分匹配（仍允许，需用户确认），< 0.3 不允许。
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.errors import ModelError
from ..core.row import CfsLink
from ..models.templates import BALANCE_SHEET, CASH_FLOW, INCOME_STATEMENT, normalize_statement

GOOD_MATCH = 0.6
PARTIAL_MATCH = 0.3

_STATEMENT_CODES = {
    INCOME_STATEMENT: "IS",
    BALANCE_SHEET: "BS",
    CASH_FLOW: "CFS",
}

_SECTION_FOR_CODE = {
    "CFO": "operating",
    "CFI": "investing",
    "CFF": "financing",
}

_glossary_cache: List[Dict[str, Any]] = []


def _load_glossary() -> List[Dict[str, Any]]:
    glossary_path = Path(__file__).resolve().parents[1] / "data" / "glossary.json"
    if not glossary_path.exists():
        raise ModelError("GLOSSARY_NOT_FOUND", "缺少科目词表")
    try:
        data = json.loads(glossary_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ModelError("GLOSSARY_INVALID", f"科目词表JSON错误: {exc}") from exc
    items = data.get("items") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise ModelError("GLOSSARY_INVALID", "科目词表缺少 items")
    return items


def glossary() -> List[Dict[str, Any]]:
    if not _glossary_cache:
        _glossary_cache.extend(_load_glossary())
    return _glossary_cache


def similarity(a: str, b: str) -> float:
    """两个名称的相似度（0 ~ 1）"""
    s1 = a.lower().strip()
    s2 = b.lower().strip()
    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return 1.0
    if s1 in s2 or s2 in s1:
        return 0.8
    words1 = s1.split()
    words2 = s2.split()
    common = [w for w in words1 if w in words2]
    if common:
        return min(0.7, len(common) / max(len(words1), len(words2)))
    same = sum(1 for c1, c2 in zip(s1, s2) if c1 == c2)
    return same / max(len(s1), len(s2)) * 0.5


def _names(item: Dict[str, Any]) -> List[str]:
    return ([item["concept"]] + list(item.get("alternative_names") or [])
            + list(item.get("typical_presentation") or []))


def _score(label: str, item: Dict[str, Any]) -> float:
    return max(similarity(label, name) for name in _names(item))


def _cfs_link(item: Dict[str, Any]) -> Optional[CfsLink]:
    section = _SECTION_FOR_CODE.get(item.get("cfs_section") or "")
    if section is None or item.get("statement") != "CFS":
        return None
    return CfsLink(section=section, cfs_item_id="", impact="neutral",
                   description=item.get("description", ""))


@dataclass
class MatchResult:
    """匹配结果"""
    matched_concept: Optional[str] = None
    confidence: float = 0.0
    suggestions: List[str] = field(default_factory=list)
    description: str = ""
    should_allow: bool = False
    suggested_label: Optional[str] = None
    cfs_link: Optional[CfsLink] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched_concept": self.matched_concept,
            "confidence": round(self.confidence, 4),
            "suggestions": self.suggestions,
            "description": self.description,
            "should_allow": self.should_allow,
            "suggested_label": self.suggested_label,
            "cfs_link": self.cfs_link.to_dict() if self.cfs_link else None,
        }


def suggest_best_match(label: str, statement: str) -> MatchResult:
    """
    在词表中查找最接近的科目

    Args:
        label: 用户输入的行名称
        statement: 报表名称（IS / BS / CFS 或全称）

    Returns:
        MatchResult；低于 0.3 时 should_allow=False，suggestions 仍给出候选
    """
    code = _STATEMENT_CODES[normalize_statement(statement)]
    candidates = [item for item in glossary() if item.get("statement") == code]
    scored = sorted(((_score(label, item), item) for item in candidates),
                    key=lambda pair: pair[0], reverse=True)
    if not scored:
        return MatchResult()

    best_score, best = scored[0]
    if best_score >= PARTIAL_MATCH:
        return MatchResult(
            matched_concept=best["concept"],
            confidence=best_score,
            suggestions=[item["concept"] for _, item in scored[1:4]],
            description=best.get("description", ""),
            should_allow=True,
            suggested_label=best["concept"],
            cfs_link=_cfs_link(best),
        )
    return MatchResult(
        confidence=0.0,
        suggestions=[item["concept"] for _, item in scored[:5]],
    )


def validate_concept_for_statement(label: str, statement: str) -> Dict[str, Any]:
    """
    检查名称是否适合放在该报表

    Returns:
        {"is_valid": bool, "reason": str?}
    """
    match = suggest_best_match(label, statement)
    if match.confidence >= GOOD_MATCH:
        return {"is_valid": True}
    if match.confidence >= PARTIAL_MATCH:
        return {"is_valid": True, "reason": "部分匹配，请确认科目是否正确"}

    code = _STATEMENT_CODES[normalize_statement(statement)]
    for item in glossary():
        if item.get("statement") != code and _score(label, item) >= GOOD_MATCH:
            return {
                "is_valid": False,
                "reason": f"该科目通常属于 {item['statement']}，是否要添加到那里？",
            }
    return {"is_valid": False, "reason": "无法识别的科目名称，请使用标准财务术语"}
