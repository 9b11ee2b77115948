# -*- coding: utf-8 -*-
"""
模型状态持久化

文件格式为 StatementModel.to_dict() 的 JSON:
    {_meta, statements: {income_statement, balance_sheet, cash_flow},
     sbc_table, dana_table, revenue_config}

读取时兼容 camelCase 报表名（incomeStatement / balanceSheet / cashFlowStatement），
并且先做骨架修复与全量重算再返回。
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from ..core.errors import ModelError
from ..core.meta import ModelMeta
from ..core.row import Row
from ..models.model import StatementModel
from ..models.revenue_projection import RevenueProjectionConfig
from ..models.templates import STATEMENTS, normalize_statement

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def model_to_dict(model: StatementModel) -> Dict[str, Any]:
    return model.to_dict()


def _table(data: Any) -> Dict[str, Dict[str, float]]:
    if not isinstance(data, dict):
        return {}
    return {
        str(row_id): {str(year): float(v) for year, v in (by_year or {}).items() if v is not None}
        for row_id, by_year in data.items()
    }


def model_from_dict(data: Dict[str, Any]) -> StatementModel:
    """
    从字典恢复模型

    Raises:
        ModelError: STATE_INVALID 结构错误
    """
    if not isinstance(data, dict):
        raise ModelError("STATE_INVALID", "模型状态必须为对象")
    raw_statements = data.get("statements", data)
    statements = {}
    try:
        for name, rows in raw_statements.items():
            try:
                statement = normalize_statement(name)
            except ModelError:
                continue
            statements[statement] = [Row.from_dict(row) for row in rows or []]
        meta = ModelMeta.from_dict(data.get("_meta") or data.get("meta") or {})
        revenue_config = RevenueProjectionConfig.from_dict(
            data.get("revenue_config", data.get("revenueConfig")))
    except ModelError as exc:
        raise ModelError("STATE_INVALID", f"模型状态错误: {exc.message}", exc.details) from exc
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ModelError("STATE_INVALID", f"模型状态错误: {exc}") from exc

    missing = [s for s in STATEMENTS if s not in statements]
    if missing:
        logger.info("状态缺少报表，按模板创建: %s", missing)
    return StatementModel(
        meta=meta,
        statements={s: statements.get(s, []) for s in STATEMENTS},
        sbc_table=_table(data.get("sbc_table", data.get("sbcTable"))),
        dana_table=_table(data.get("dana_table", data.get("danaTable"))),
        revenue_config=revenue_config,
    )


def save_model(model: StatementModel, path: PathLike) -> Path:
    """保存为 JSON 文件，返回写入路径"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(model.to_json(indent=2), encoding="utf-8")
    logger.info("模型已保存: %s", path)
    return path


def load_model(path: PathLike) -> StatementModel:
    """
    读取 JSON 文件

    Raises:
        ModelError: STATE_NOT_FOUND 文件不存在；STATE_INVALID JSON 或结构错误
    """
    path = Path(path)
    if not path.exists():
        raise ModelError("STATE_NOT_FOUND", f"模型文件不存在: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ModelError("STATE_INVALID", f"模型文件JSON错误: {exc}") from exc
    return model_from_dict(data)
