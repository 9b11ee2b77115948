# -*- coding: utf-8 -*-
"""
模型状态读写测试
"""

import json

import pytest

from statement_model.core import ModelError, ModelMeta
from statement_model.core.tree import index_of
from statement_model.io import load_model, model_from_dict, save_model
from statement_model.models import RevenueProjectionConfig, StatementModel


def _model():
    model = StatementModel(ModelMeta(company_name="Demo",
                                     historical_years=["2023A", "2024A"],
                                     projection_years=["2025E", "2026E"]))
    model.update_row_value("IS", "rev", "2024A", 1000)
    model.update_row_value("IS", "cogs", "2024A", 400)
    model.update_sbc_value("sga", "2024A", 7)
    model.add_child_row("IS", "sga", "Marketing")
    model.set_revenue_config(RevenueProjectionConfig.from_dict({
        "items": {"rev": {"method": "growth_rate", "inputs": {"rate_percent": 5}}}
    }))
    return model


def test_save_and_load(tmp_path):
    """保存与读取"""
    model = _model()
    path = save_model(model, tmp_path / "nested" / "state.json")
    assert path.exists()

    loaded = load_model(path)
    assert loaded.meta.company_name == "Demo"
    assert loaded.meta.projection_years == ["2025E", "2026E"]
    assert loaded.to_dict()["statements"] == model.to_dict()["statements"]
    assert loaded.sbc_table == {"sga": {"2024A": 7.0}}
    assert loaded.revenue_config.items["rev"].method == "growth_rate"
    assert loaded.value("IS", "rev", "2025E") == pytest.approx(1050)


def test_missing_file(tmp_path):
    """文件不存在"""
    with pytest.raises(ModelError) as exc:
        load_model(tmp_path / "missing.json")
    assert exc.value.code == "STATE_NOT_FOUND"


def test_bad_json(tmp_path):
    """JSON错误"""
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ModelError) as exc:
        load_model(path)
    assert exc.value.code == "STATE_INVALID"


def test_bad_structure():
    """结构错误"""
    with pytest.raises(ModelError) as exc:
        model_from_dict({"statements": {"IS": [{"label": "no id"}]}})
    assert exc.value.code == "STATE_INVALID"

    with pytest.raises(ModelError) as exc:
        model_from_dict([1, 2, 3])
    assert exc.value.code == "STATE_INVALID"


def test_legacy_state_reconciled():
    """旧版状态: 现金流量表缺少 sbc，D&A 位于利润表前部"""
    data = {
        "_meta": {"years": {"historical": ["2024A"], "projection": ["2025E"]}},
        "statements": {
            "IS": [
                {"id": "rev", "label": "Revenue", "values": {"2024A": 100}},
                {"id": "danda", "label": "D&A", "values": {"2024A": 10}},
                {"id": "cogs", "label": "COGS", "values": {"2024A": 40}},
            ],
            "CFS": [
                {"id": "net_income", "label": "Net Income", "kind": "calc"},
                {"id": "danda", "label": "D&A", "kind": "calc"},
                {"id": "wc_change", "label": "Change in WC"},
            ],
        },
    }
    model = model_from_dict(data)

    income = model.statement("IS")
    assert index_of(income, "danda") == index_of(income, "ebit_margin") + 1
    cash_flow = model.statement("CFS")
    assert index_of(cash_flow, "sbc") == index_of(cash_flow, "danda") + 1
    assert model.find("BS", "total_assets") is not None
    assert model.value("IS", "gross_profit", "2024A") == 60
    assert model.value("CFS", "danda", "2024A") == 10


def test_camel_case_keys():
    """camelCase键"""
    data = {
        "meta": {"companyName": "Camel", "years": {"historical": ["2024A"], "projection": ["2025E"]}},
        "incomeStatement": [{"id": "rev", "label": "Revenue", "valueType": "currency",
                             "values": {"2024A": 200}}],
        "sbcTable": {"sga": {"2024A": 3}},
        "revenueConfig": {"items": {"rev": {"method": "growth_rate",
                                            "inputs": {"ratePercent": 10}}}},
    }
    model = model_from_dict(data)
    assert model.meta.company_name == "Camel"
    assert model.value("IS", "rev", "2025E") == pytest.approx(220)
    assert model.value("CFS", "sbc", "2024A") == 3


def test_round_trip_through_json():
    """JSON往返"""
    model = _model()
    restored = model_from_dict(json.loads(model.to_json()))
    assert restored.check_balance() == model.check_balance()
