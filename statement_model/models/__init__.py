# -*- coding: utf-8 -*-
"""
报表模型

提供:
- 报表模板与骨架修复
- 计算引擎（公式 + 跨报表推导）
- 收入预测引擎
- 结构编辑入口 StatementModel
"""

from .templates import (
    INCOME_STATEMENT,
    BALANCE_SHEET,
    CASH_FLOW,
    STATEMENTS,
    create_template,
    create_all_templates,
    normalize_statement,
    protected_ids,
)
from .skeleton import reconcile, reconcile_all
from .calculations import recompute_all, compute_row_value
from .derivations import check_balance, sync_working_capital
from .revenue_projection import (
    RevenueProjectionConfig,
    ItemProjectionConfig,
    BreakdownItem,
    PROJECTION_METHODS,
    compute_revenue_projections,
    validate_projection_config,
    compute_yoy_growth,
)
from .model import StatementModel

__all__ = [
    'INCOME_STATEMENT',
    'BALANCE_SHEET',
    'CASH_FLOW',
    'STATEMENTS',
    'create_template',
    'create_all_templates',
    'normalize_statement',
    'protected_ids',
    'reconcile',
    'reconcile_all',
    'recompute_all',
    'compute_row_value',
    'check_balance',
    'sync_working_capital',
    'RevenueProjectionConfig',
    'ItemProjectionConfig',
    'BreakdownItem',
    'PROJECTION_METHODS',
    'compute_revenue_projections',
    'validate_projection_config',
    'compute_yoy_growth',
    'StatementModel',
]
