# -*- coding: utf-8 -*-
"""
科目概念匹配测试
"""

from statement_model.tools.matcher import (
    GOOD_MATCH,
    similarity,
    suggest_best_match,
    validate_concept_for_statement,
)


def test_similarity_scores():
    """相似度分档"""
    assert similarity("Revenue", " revenue ") == 1.0
    assert similarity("Net sales", "sales") == 0.8
    assert similarity("interest paid", "interest expense") == 0.5
    assert similarity("", "revenue") == 0.0


def test_exact_match():
    """完全匹配"""
    match = suggest_best_match("Revenue", "IS")
    assert match.matched_concept == "Revenue"
    assert match.confidence == 1.0
    assert match.should_allow is True
    assert match.suggested_label == "Revenue"
    assert match.cfs_link is None


def test_alias_match_carries_cash_flow_section():
    """别名匹配带现金流区间"""
    match = suggest_best_match("Capex", "CFS")
    assert match.matched_concept == "Capital expenditures"
    assert match.cfs_link is not None
    assert match.cfs_link.section == "investing"
    assert match.to_dict()["cfs_link"]["section"] == "investing"


def test_presentation_name_contained():
    """包含标准名称"""
    match = suggest_best_match("Research and development expenses", "income_statement")
    assert match.matched_concept == "Research & development"
    assert match.confidence >= GOOD_MATCH


def test_unknown_label():
    """无法识别"""
    match = suggest_best_match("zzzz", "IS")
    assert match.should_allow is False
    assert match.matched_concept is None
    assert len(match.suggestions) == 5


def test_validate_wrong_statement():
    """科目属于其他报表"""
    result = validate_concept_for_statement("Accounts payable", "IS")
    assert result["is_valid"] is False
    assert "BS" in result["reason"]


def test_validate_good_match():
    """匹配通过"""
    assert validate_concept_for_statement("Dividends paid", "CFS") == {"is_valid": True}
