#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
sfm - Statement Model CLI

三表模型命令行工具: 读取模型状态 JSON，重算 / 配平检查 / 收入预测 / Excel 导入。

用法:
    sfm <command> [options] < state.json

命令:
    new      创建空白模型
    recalc   全量重算
    check    资产负债表配平检查
    project  收入预测
    import   从 Excel 导入历史数据
    suggest  科目概念匹配
"""

import sys
import json
import logging
import argparse
from typing import Dict, List, Optional


# ============================================================
# 输出格式化
# ============================================================

def format_number(value: Optional[float], style: str = "auto") -> str:
    """格式化数字"""
    if value is None:
        return "N/A"

    abs_val = abs(value)

    if style == "percent":
        return f"{value:.2f}%"
    elif style == "currency" or (style == "auto" and abs_val >= 1000):
        if abs_val >= 1e9:
            return f"{value/1e9:,.2f}B"
        elif abs_val >= 1e6:
            return f"{value/1e6:,.2f}M"
        elif abs_val >= 1e3:
            return f"{value/1e3:,.2f}K"
        else:
            return f"{value:,.2f}"
    else:
        return f"{value:,.2f}"


def print_json(data: Dict, compact: bool = False):
    """输出JSON"""
    if compact:
        print(json.dumps(data, ensure_ascii=False))
    else:
        print(json.dumps(data, indent=2, ensure_ascii=False))


def print_table(headers: List[str], rows: List[List[str]], title: str = None):
    """输出表格"""
    if title:
        print(f"\n{title}")
        print("─" * 60)

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(str(cell)))

    header_line = "│ " + " │ ".join(h.ljust(widths[i]) for i, h in enumerate(headers)) + " │"
    separator = "├─" + "─┼─".join("─" * w for w in widths) + "─┤"
    top_border = "┌─" + "─┬─".join("─" * w for w in widths) + "─┐"
    bottom_border = "└─" + "─┴─".join("─" * w for w in widths) + "─┘"

    print(top_border)
    print(header_line)
    print(separator)
    for row in rows:
        print("│ " + " │ ".join(str(cell).ljust(widths[i]) for i, cell in enumerate(row)) + " │")
    print(bottom_border)


def read_json_input() -> Dict:
    """从stdin读取JSON"""
    try:
        return json.load(sys.stdin)
    except json.JSONDecodeError as e:
        print(f"错误: 无效的JSON输入 - {e}", file=sys.stderr)
        sys.exit(1)


def load_state(args):
    """从 --state 文件或 stdin 读取模型"""
    from statement_model.io import load_model, model_from_dict

    if getattr(args, "state", None):
        return load_model(args.state)
    return model_from_dict(read_json_input())


def print_statement(model, name: str):
    """按报表打印表格（子行缩进）"""
    years = model.meta.all_years
    rows = []

    def _walk(items, depth):
        for row in items:
            style = "percent" if row.value_type == "percent" else "auto"
            rows.append(["  " * depth + row.label]
                        + [format_number(row.values.get(y), style) for y in years])
            _walk(row.children, depth + 1)

    _walk(model.statement(name), 0)
    print_table(["科目"] + years, rows, title=name)


# ============================================================
# 命令
# ============================================================

def cmd_new(args):
    """创建空白模型"""
    from statement_model import ModelMeta, StatementModel
    from statement_model.core import build_years

    years = build_years(args.start, args.historical, args.projection)
    meta = ModelMeta(
        company_name=args.company or "",
        currency=args.currency,
        historical_years=years["historical"],
        projection_years=years["projection"],
    )
    model = StatementModel(meta)
    print_json(model.to_dict(), args.compact)


def cmd_recalc(args):
    """全量重算"""
    model = load_state(args)
    if args.table:
        names = [args.statement] if args.statement else ["IS", "BS", "CFS"]
        for name in names:
            print_statement(model, name)
        return
    if args.statement:
        print_json({"rows": [r.to_dict() for r in model.statement(args.statement)]}, args.compact)
        return
    print_json(model.to_dict(), args.compact)


def cmd_check(args):
    """配平检查"""
    model = load_state(args)
    results = model.check_balance()

    if args.table:
        rows = [
            [r["year"], format_number(r["total_assets"]),
             format_number(r["total_liab_and_equity"]),
             format_number(r["difference"]), "✓" if r["balanced"] else "✗"]
            for r in results
        ]
        print_table(["年份", "资产合计", "负债和权益合计", "差额", "配平"], rows, title="配平检查")
        return

    print_json({
        "balanced": all(r["balanced"] for r in results),
        "years": results,
    }, args.compact)


def cmd_project(args):
    """收入预测"""
    from statement_model.models import compute_yoy_growth

    model = load_state(args)
    validation = model.validate_revenue_config()
    projections = model.revenue_projections()

    last_hist = model.meta.last_historical_year
    growth = {}
    for item_id in projections:
        if "::" in item_id:
            base = None
        else:
            row = model.find("IS", item_id)
            base = row.values.get(last_hist) if row and last_hist else None
        growth[item_id] = compute_yoy_growth(projections, model.revenue_config, item_id,
                                             model.meta.projection_years, base_value=base)

    print_json({
        "validation": validation.to_dict(),
        "projections": projections,
        "yoy_growth": growth,
    }, args.compact)


def cmd_import(args):
    """从 Excel 导入"""
    from statement_model import StatementModel
    from statement_model.io import import_workbook, load_model

    model = load_model(args.state) if args.state else StatementModel()
    counts = import_workbook(model, args.workbook)

    if args.output:
        from statement_model.io import save_model
        save_model(model, args.output)
        print_json({"imported": counts, "output": args.output}, args.compact)
        return
    print_json({"imported": counts, "model": model.to_dict()}, args.compact)


def cmd_suggest(args):
    """科目概念匹配"""
    from statement_model.tools import suggest_best_match, validate_concept_for_statement

    match = suggest_best_match(args.label, args.statement)
    result = match.to_dict()
    result["validation"] = validate_concept_for_statement(args.label, args.statement)
    print_json(result, args.compact)


# ============================================================
# 主程序
# ============================================================

def main():
    parser = argparse.ArgumentParser(
        prog="sfm",
        description="Statement Model CLI - 三表模型命令行工具",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  sfm new --company Demo --start 2022 --historical 3 --projection 5 > state.json
  sfm recalc < state.json
  sfm recalc --statement IS --table < state.json
  sfm check < state.json
  sfm project < state.json
  sfm import 财务报表.xlsx --state state.json --output state.json
  sfm suggest "Research and development" --statement IS

更多帮助:
  sfm <command> --help
        """
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="输出计算日志")

    subparsers = parser.add_subparsers(dest="command", help="子命令")

    # new
    new_parser = subparsers.add_parser("new", help="创建空白模型")
    new_parser.add_argument("--company", help="公司名称")
    new_parser.add_argument("--currency", default="USD", help="币种")
    new_parser.add_argument("--start", type=int, default=2023, help="第一个历史年份")
    new_parser.add_argument("--historical", type=int, default=2, help="历史年数")
    new_parser.add_argument("--projection", type=int, default=5, help="预测年数")
    new_parser.add_argument("--compact", action="store_true", help="紧凑输出")
    new_parser.set_defaults(func=cmd_new)

    # recalc
    recalc_parser = subparsers.add_parser("recalc", help="全量重算")
    recalc_parser.add_argument("--state", help="模型文件（默认从stdin读取）")
    recalc_parser.add_argument("--statement", help="只输出某张报表 (IS/BS/CFS)")
    recalc_parser.add_argument("--table", action="store_true", help="表格输出")
    recalc_parser.add_argument("--compact", action="store_true", help="紧凑输出")
    recalc_parser.set_defaults(func=cmd_recalc)

    # check
    check_parser = subparsers.add_parser("check", help="配平检查")
    check_parser.add_argument("--state", help="模型文件（默认从stdin读取）")
    check_parser.add_argument("--table", action="store_true", help="表格输出")
    check_parser.add_argument("--compact", action="store_true", help="紧凑输出")
    check_parser.set_defaults(func=cmd_check)

    # project
    project_parser = subparsers.add_parser("project", help="收入预测")
    project_parser.add_argument("--state", help="模型文件（默认从stdin读取）")
    project_parser.add_argument("--compact", action="store_true", help="紧凑输出")
    project_parser.set_defaults(func=cmd_project)

    # import
    import_parser = subparsers.add_parser("import", help="从Excel导入")
    import_parser.add_argument("workbook", help="xlsx 文件")
    import_parser.add_argument("--state", help="已有模型文件（默认新建）")
    import_parser.add_argument("--output", "-o", help="保存到模型文件")
    import_parser.add_argument("--compact", action="store_true", help="紧凑输出")
    import_parser.set_defaults(func=cmd_import)

    # suggest
    suggest_parser = subparsers.add_parser("suggest", help="科目概念匹配")
    suggest_parser.add_argument("label", help="科目名称")
    suggest_parser.add_argument("--statement", default="IS", help="报表 (IS/BS/CFS)")
    suggest_parser.add_argument("--compact", action="store_true", help="紧凑输出")
    suggest_parser.set_defaults(func=cmd_suggest)

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.INFO, stream=sys.stderr,
                            format="%(levelname)s %(name)s: %(message)s")

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    from statement_model.core import ModelError

    try:
        args.func(args)
    except ModelError as e:
        print_json(e.to_dict())
        sys.exit(1)


if __name__ == "__main__":
    main()
