# -*- coding: utf-8 -*-
"""输入输出: 模型状态 JSON、Excel 导入"""

from .state_io import load_model, model_from_dict, model_to_dict, save_model
from .excel_import import import_workbook, read_statement_values

__all__ = [
    'load_model',
    'save_model',
    'model_to_dict',
    'model_from_dict',
    'import_workbook',
    'read_statement_values',
]
