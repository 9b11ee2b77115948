# -*- coding: utf-8 -*-
"""核心数据结构: 报表行、行树操作、时间轴、错误类型"""

from .errors import ModelError, MutationResult, ValidationResult
from .row import (
    Row,
    CfsLink,
    IsLink,
    derive_kind,
    KIND_INPUT,
    KIND_CALC,
    KIND_SUBTOTAL,
    KIND_TOTAL,
    CONVERTIBLE_IDS,
)
from .meta import ModelMeta, build_years
from .tree import (
    iter_rows,
    find_row,
    find_parent,
    map_subtree,
    remove_subtree,
    insert_child,
    insert_at,
    set_row_value,
)

__all__ = [
    'ModelError',
    'MutationResult',
    'ValidationResult',
    'Row',
    'CfsLink',
    'IsLink',
    'derive_kind',
    'KIND_INPUT',
    'KIND_CALC',
    'KIND_SUBTOTAL',
    'KIND_TOTAL',
    'CONVERTIBLE_IDS',
    'ModelMeta',
    'build_years',
    'iter_rows',
    'find_row',
    'find_parent',
    'map_subtree',
    'remove_subtree',
    'insert_child',
    'insert_at',
    'set_row_value',
]
