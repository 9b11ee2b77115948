# -*- coding: utf-8 -*-
"""
三表模型引擎

提供:
- 报表行树 (Row) 与时间轴 (ModelMeta)
- 骨架修复与全量重算
- 收入预测 (增长率 / 价格×销量 / 客户×ARPU / 占比 / 产品线)
- 跨报表推导 (净利润、D&A、SBC、营运资本、留存收益)
- 结构编辑入口 (StatementModel)

使用示例:
    from statement_model import StatementModel, ModelMeta

    model = StatementModel(ModelMeta(company_name="Demo"))
    model.update_row_value("IS", "rev", "2024A", 1000)
    model.update_row_value("IS", "cogs", "2024A", 600)
    print(model.value("IS", "gross_profit", "2024A"))   # 400.0

    # 收入预测
    config = RevenueProjectionConfig.from_dict({
        "items": {"rev": {"method": "growth_rate", "inputs": {"ratePercent": 10}}}
    })
    model.set_revenue_config(config)
"""

from .core import ModelError, MutationResult, ValidationResult, Row, CfsLink, IsLink, ModelMeta
from .models import StatementModel, RevenueProjectionConfig
from .io import load_model, save_model

__version__ = "0.1.0"
__all__ = [
    'ModelError',
    'MutationResult',
    'ValidationResult',
    'Row',
    'CfsLink',
    'IsLink',
    'ModelMeta',
    'StatementModel',
    'RevenueProjectionConfig',
    'load_model',
    'save_model',
]
