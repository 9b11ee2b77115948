# -*- coding: utf-8 -*-
"""
行树操作 - 纯函数

工具清单:
- iter_rows: 先序遍历
- find_row: 深度优先查找
- find_parent: 查找父行
- map_subtree: 变换指定行（写时复制）
- remove_subtree: 删除指定行及其子树
- insert_child: 在父行下插入子行
- insert_at: 在顶层指定位置插入
- set_row_value: 设置某年数值

约定: 目标 id 不存在时原样返回输入列表，不抛异常。
调用方通过 `result is rows` 判断是否发生了变化。
"""

from typing import Callable, Iterator, List, Optional

from .row import Row


def iter_rows(rows: List[Row]) -> Iterator[Row]:
    """先序遍历所有行（含子行）"""
    for row in rows:
        yield row
        if row.children:
            yield from iter_rows(row.children)


def find_row(rows: List[Row], row_id: str) -> Optional[Row]:
    """深度优先查找行，未找到返回 None"""
    for row in iter_rows(rows):
        if row.id == row_id:
            return row
    return None


def contains(rows: List[Row], row_id: str) -> bool:
    return find_row(rows, row_id) is not None


def find_parent(rows: List[Row], row_id: str) -> Optional[Row]:
    """查找父行，顶层行或不存在时返回 None"""
    for row in iter_rows(rows):
        if any(child.id == row_id for child in row.children):
            return row
    return None


def index_of(rows: List[Row], row_id: str) -> int:
    """顶层位置，不存在返回 -1"""
    for idx, row in enumerate(rows):
        if row.id == row_id:
            return idx
    return -1


def map_subtree(rows: List[Row], row_id: str, fn: Callable[[Row], Row]) -> List[Row]:
    """
    变换指定行

    只复制从根到目标行路径上的节点，其余子树原样共享。

    Args:
        rows: 行列表
        row_id: 目标行 id
        fn: 变换函数，接收旧行返回新行

    Returns:
        新的行列表；未找到目标时返回原列表
    """
    changed = False
    result = []
    for row in rows:
        if row.id == row_id:
            row = fn(row)
            changed = True
        elif row.children:
            children = map_subtree(row.children, row_id, fn)
            if children is not row.children:
                row = row.with_children(children)
                changed = True
        result.append(row)
    return result if changed else rows


def remove_subtree(rows: List[Row], row_id: str) -> List[Row]:
    """删除所有匹配的行（连同子行），兄弟行顺序不变"""
    changed = False
    result = []
    for row in rows:
        if row.id == row_id:
            changed = True
            continue
        if row.children:
            children = remove_subtree(row.children, row_id)
            if children is not row.children:
                row = row.with_children(children)
                changed = True
        result.append(row)
    return result if changed else rows


def _clamp(index: int, length: int) -> int:
    return max(0, min(index, length))


def insert_child(rows: List[Row], parent_id: str, child: Row,
                 at_index: Optional[int] = None) -> List[Row]:
    """在父行的子行中插入，默认追加到末尾"""
    def _insert(parent: Row) -> Row:
        children = list(parent.children)
        if at_index is None:
            children.append(child)
        else:
            children.insert(_clamp(at_index, len(children)), child)
        return parent.with_children(children)

    return map_subtree(rows, parent_id, _insert)


def insert_at(rows: List[Row], index: int, row: Row) -> List[Row]:
    """在顶层指定位置插入（越界时截断到两端）"""
    result = list(rows)
    result.insert(_clamp(index, len(result)), row)
    return result


def set_row_value(rows: List[Row], row_id: str, year: str,
                  value: Optional[float]) -> List[Row]:
    return map_subtree(rows, row_id, lambda row: row.with_value(year, value))
