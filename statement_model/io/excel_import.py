# -*- coding: utf-8 -*-
"""
Excel 导入 - 从工作簿读取历史数据

工作簿格式:
- 第一行: 第一列为表头（任意），其余列为年份标签（2023A / 2024A ...，纯数字年份按历史年补 A）
- 之后每行: 第一列为行 id 或行名称，其余列为对应年份的数值

只读取输入行（叶子、非公式），公式行与合计行由模型重算。
"""

import logging
from typing import Any, Dict, List, Optional
from zipfile import BadZipFile

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from ..core.errors import ModelError
from ..core.row import KIND_INPUT, Row
from ..core.tree import iter_rows
from ..models.templates import BALANCE_SHEET, CASH_FLOW, INCOME_STATEMENT, normalize_statement

logger = logging.getLogger(__name__)

# 工作表名称关键字 -> 报表
SHEET_KEYWORDS = {
    INCOME_STATEMENT: ("income", "利润", "损益", "is"),
    BALANCE_SHEET: ("balance", "资产负债", "bs"),
    CASH_FLOW: ("cash", "现金流", "cf"),
}


def _year_label(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{int(value)}A"
    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        return f"{text}A"
    return text


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def find_sheet(workbook, statement: str):
    """按名称关键字找报表对应的工作表，找不到返回 None"""
    statement = normalize_statement(statement)
    for name in workbook.sheetnames:
        lowered = name.lower().strip()
        for keyword in SHEET_KEYWORDS[statement]:
            if lowered == keyword or (len(keyword) > 2 and keyword in lowered):
                return workbook[name]
    return None


def read_sheet(sheet) -> Dict[str, Dict[str, float]]:
    """
    读取一张工作表

    Returns:
        首列文本 -> {年份: 数值}（空单元格和非数值跳过）
    """
    rows = sheet.iter_rows(values_only=True)
    header = next(rows, None)
    if not header:
        return {}
    years = [_year_label(cell) for cell in header[1:]]
    result = {}
    for record in rows:
        if not record or record[0] is None:
            continue
        key = str(record[0]).strip()
        values = {}
        for year, cell in zip(years, record[1:]):
            number = _to_float(cell)
            if year and number is not None:
                values[year] = number
        if values:
            result[key] = values
    return result


def _input_rows(rows: List[Row]) -> List[Row]:
    return [row for row in iter_rows(rows) if row.kind == KIND_INPUT and not row.children]


def match_values(raw: Dict[str, Dict[str, float]],
                 rows: List[Row]) -> Dict[str, Dict[str, float]]:
    """按行 id（优先）或行名称（不区分大小写）把读取结果对应到输入行"""
    by_id = {row.id: row for row in _input_rows(rows)}
    by_label = {row.label.lower().strip(): row for row in by_id.values()}
    matched = {}
    for key, values in raw.items():
        row = by_id.get(key) or by_label.get(key.lower())
        if row is None:
            logger.debug("未匹配的工作表行: %s", key)
            continue
        matched[row.id] = values
    return matched


def read_statement_values(filepath: str, statement: str, rows: List[Row],
                          sheet_name: Optional[str] = None) -> Dict[str, Dict[str, float]]:
    """
    从工作簿读取一张报表的输入值

    Args:
        filepath: xlsx 文件路径
        statement: 报表名称
        rows: 当前报表的行（用于 id / 名称匹配）
        sheet_name: 指定工作表，不指定时按名称关键字查找

    Returns:
        行 id -> {年份: 数值}

    Raises:
        ModelError: WORKBOOK_INVALID 文件无法读取；SHEET_NOT_FOUND 找不到工作表
    """
    try:
        workbook = openpyxl.load_workbook(filepath, data_only=True, read_only=True)
    except (OSError, ValueError, KeyError, BadZipFile, InvalidFileException) as exc:
        raise ModelError("WORKBOOK_INVALID", f"无法读取工作簿: {exc}",
                         {"path": str(filepath)}) from exc
    try:
        if sheet_name:
            if sheet_name not in workbook.sheetnames:
                raise ModelError("SHEET_NOT_FOUND", f"工作表不存在: {sheet_name}",
                                 {"sheets": workbook.sheetnames})
            sheet = workbook[sheet_name]
        else:
            sheet = find_sheet(workbook, statement)
            if sheet is None:
                raise ModelError("SHEET_NOT_FOUND", f"未找到 {statement} 对应的工作表",
                                 {"sheets": workbook.sheetnames})
        return match_values(read_sheet(sheet), rows)
    finally:
        workbook.close()


def import_workbook(model, filepath: str) -> Dict[str, int]:
    """
    把工作簿中能找到的报表全部导入模型

    Returns:
        报表 -> 导入的单元格数
    """
    counts = {}
    for statement in (INCOME_STATEMENT, BALANCE_SHEET, CASH_FLOW):
        try:
            values = read_statement_values(filepath, statement, model.statement(statement))
        except ModelError as exc:
            if exc.code != "SHEET_NOT_FOUND":
                raise
            logger.info("跳过 %s: %s", statement, exc.message)
            continue
        years = set(model.meta.all_years)
        if values:
            model.import_values(statement, values)
        counts[statement] = sum(1 for by_year in values.values() for year in by_year if year in years)
    return counts
