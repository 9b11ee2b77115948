# -*- coding: utf-8 -*-
"""辅助工具: 科目概念匹配"""

from .matcher import MatchResult, suggest_best_match, validate_concept_for_statement

__all__ = [
    'MatchResult',
    'suggest_best_match',
    'validate_concept_for_statement',
]
