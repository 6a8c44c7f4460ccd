import math

import pytest

from restaurant_model import InputParameters
from scenarios import (
    BASELINE_CONFIG, SCENARIO_PRESETS, apply_scenario_overrides, get_config, inputs_from_config,
    list_scenarios, parse_manual_counts, read_assumptions, run_config, run_scenario,
    scenario_comparison_table, sensitivity_exit_payout, sensitivity_grid,
)


def test_baseline_config_builds_inputs(baseline_cfg):
    p = inputs_from_config(baseline_cfg)
    assert isinstance(p, InputParameters)
    assert p.subs_mode == "mechanistic"
    assert p.capacity_cap is None
    assert len(p.seasonality) == 12


def test_get_config_is_a_copy():
    c = get_config(); c["seasonality"][0] = 99
    assert BASELINE_CONFIG["seasonality"][0] != 99


def test_non_finite_entries_coerced_to_zero(baseline_cfg):
    baseline_cfg.update({"growth": math.nan, "min_cash": "abc", "payout_ratio": math.inf,
                         "seasonality": [1.0] * 11 + [math.nan]})
    p = inputs_from_config(baseline_cfg)
    assert p.growth == 0 and p.min_cash == 0 and p.payout_ratio == 0
    assert p.seasonality[-1] == 0


def test_mode_and_manual_counts_from_text(baseline_cfg):
    baseline_cfg.update({"subs_mode": " Manual ", "manual_subs_counts": "10, 12\n14 x 15", "capacity_cap": ""})
    p = inputs_from_config(baseline_cfg)
    assert p.subs_mode == "manual"
    assert p.manual_subs_counts == (10.0, 12.0, 14.0, 15.0)
    assert p.capacity_cap is None


def test_boundary_rejects_bad_mode_and_negative_magnitude(baseline_cfg):
    with pytest.raises(ValueError, match="subs_mode"):
        inputs_from_config({**baseline_cfg, "subs_mode": "annual"})
    with pytest.raises(ValueError, match="project_magnitude"):
        inputs_from_config({**baseline_cfg, "project_magnitude": -1})


def test_unknown_keys_ignored(baseline_cfg):
    p = inputs_from_config({**baseline_cfg, "chef_name": "Ada"})
    assert p == inputs_from_config(baseline_cfg)


def test_parse_manual_counts():
    assert parse_manual_counts("") == []
    assert parse_manual_counts(None) == []
    assert parse_manual_counts("10,12 ,\t14\r\n\n15") == [10, 12, 14, 15]
    assert parse_manual_counts("1, two, 3, nan, inf") == [1, 3]
    with pytest.raises(ValueError, match="two"):
        parse_manual_counts("1, two, 3", strict=True)


def test_apply_overrides_leaves_base_untouched(baseline_cfg):
    c = apply_scenario_overrides(baseline_cfg, SCENARIO_PRESETS["bear"])
    assert "label" not in c or c["label"] == baseline_cfg.get("label")
    assert c["core_revenue_y1"] == SCENARIO_PRESETS["bear"]["core_revenue_y1"]
    assert baseline_cfg["core_revenue_y1"] == BASELINE_CONFIG["core_revenue_y1"]


def test_scenarios_order_exit_values(baseline_cfg):
    ev = {s: run_scenario(baseline_cfg, s).exit_value for s in ("bear", "base", "bull")}
    assert ev["bear"] < ev["base"] < ev["bull"]
    assert run_scenario(baseline_cfg, "base").exit_value == run_config(baseline_cfg).exit_value


def test_custom_overrides_apply_after_preset(baseline_cfg):
    res = run_scenario(baseline_cfg, "bull", {"exit_multiple": 0})
    assert res.exit_value == 0


def test_scenario_comparison_table(baseline_cfg):
    t = scenario_comparison_table(baseline_cfg)
    assert list(t["scenario"]) == ["Bear (Downside)", "Base Case", "Bull (Upside)"]
    assert {"irr_f", "exit_value", "min_cash"} <= set(t.columns)
    assert [s["id"] for s in list_scenarios()] == ["bear", "base", "bull"]


def test_sensitivity_grid_shape(baseline_cfg):
    g = sensitivity_exit_payout(baseline_cfg)
    assert g.shape == (5, 4)
    assert list(g.index) == [2.0, 2.5, 3.0, 3.5, 4.0]
    ev = sensitivity_grid(baseline_cfg, "exit_multiple", [2, 4], "payout_ratio", [0.5], metric="exit_value")
    assert ev.loc[4, 0.5] == pytest.approx(2 * ev.loc[2, 0.5])


def test_read_assumptions(tmp_path):
    path = tmp_path / "assumptions.csv"
    path.write_text(
        "name,value\n"
        "# timing,\n"
        "term_years,3\n"
        "subs_mode,manual  # switch\n"
        "manual_subs_counts,\"10 20 30\"\n"
    )
    ov = read_assumptions(path)
    assert ov == {"term_years": 3.0, "subs_mode": "manual", "manual_subs_counts": "10 20 30"}
    p = inputs_from_config({**get_config(), **ov})
    assert p.manual_subs_counts == (10.0, 20.0, 30.0)


def test_read_assumptions_requires_columns(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("key,val\nterm_years,3\n")
    with pytest.raises(ValueError, match="missing required columns"):
        read_assumptions(path)
