"""
Restaurant Deal Model - assumptions, scenario presets and sensitivities.
Plain dict configs are merged with presets and coerced into the engine's
immutable InputParameters at this boundary.
"""
import math, re, logging
from copy import deepcopy
from dataclasses import fields
from typing import Dict, List

import pandas as pd

from restaurant_model import InputParameters, ProjectionResult, SUBS_MODES, compute_model

logger = logging.getLogger(__name__)

# ── Default Config (Baseline) ───────────────────────────────

BASELINE_CONFIG = {
    "name": "Baseline",
    # timing
    "term_years": 5,
    "ramp_months": 6,
    "seasonality": [0.90, 0.90, 0.95, 1.00, 1.05, 1.10, 1.10, 1.10, 1.00, 1.00, 0.95, 0.95],
    # core & events
    "core_revenue_y1": 1_800_000.0,
    "growth": 0.03,
    "events_annual": 120_000.0,
    "events_ramp_months": 6,
    "capacity_cap": None,
    # subscriptions
    "subs_mode": "mechanistic",
    "subs_init": 50,
    "subs_spend_m": 1_500.0,
    "cac": 60.0,
    "churn_m": 0.05,
    "pause_rate": 0.10,
    "manual_subs_counts": [],
    "subs_price": 25.0,
    "periods_per_month": 4.33,
    # cost stack
    "cogs_pct": 0.28,
    "packaging_pct": 0.03,
    "waste_pct": 0.02,
    "var_labor_pct": 0.12,
    "proc_fees_pct": 0.029,
    "card_mix_pct": 0.85,
    "fixed_salaries_annual": 240_000.0,
    # overhead
    "insurance_m": 1_500.0,
    "licenses_m": 400.0,
    "utilities_m": 4_500.0,
    "linen_m": 600.0,
    "repairs_m": 1_200.0,
    # occupancy
    "base_rent_m": 12_000.0,
    "nnn_m": 3_000.0,
    "rent_escalation": 0.03,
    "rent_free_months": 3,
    # loan
    "loan_amount": 400_000.0,
    "rate_apr": 0.085,
    "loan_term_months": 84,
    "io_months": 6,
    "dscr_gate": 1.25,
    # tax & working capital
    "sales_tax_rate": 0.0725,
    "entity_tax_rate": 0.21,
    "ar_days": 2,
    "ap_days": 21,
    "inv_days": 7,
    # cash policy
    "starting_cash": 150_000.0,
    "min_cash": 75_000.0,
    "payout_ratio": 0.5,
    # deal & exit
    "assets_f": 350_000.0,
    "project_magnitude": 1_200_000.0,
    "exit_multiple": 3.0,
    "ebitda_multiple": 4.5,
}

_META_KEYS = {"name", "label"}
_FIELDS = {f.name for f in fields(InputParameters)}

def get_config(): return deepcopy(BASELINE_CONFIG)

# ── Input Coercion ──────────────────────────────────────────

def _num(v):
    try:
        v = float(v)
    except (TypeError, ValueError):
        return 0.0
    return v if math.isfinite(v) else 0.0


def parse_manual_counts(raw, strict=False) -> List[float]:
    """
    Split free text on any run of commas/whitespace and keep finite numbers.
    Non-numeric tokens are dropped, or raise ValueError when strict.
    """
    if raw is None or not str(raw).strip():
        return []
    out = []; dropped = []
    for tok in re.split(r"[,\s]+", str(raw).strip()):
        if not tok:
            continue
        try:
            v = float(tok)
        except ValueError:
            v = math.nan
        if math.isfinite(v):
            out.append(v)
        else:
            dropped.append(tok)
    if dropped:
        if strict:
            raise ValueError(f"manual subscriber counts contain non-numeric tokens: {dropped[:5]}")
        logger.debug("dropped %d non-numeric manual count tokens", len(dropped))
    return out


def _finite_values(seq):
    out = []
    for x in seq:
        try:
            x = float(x)
        except (TypeError, ValueError):
            continue
        if math.isfinite(x):
            out.append(x)
    return out


def _sequence(v):
    if v is None:
        return ()
    if isinstance(v, str):
        return tuple(parse_manual_counts(v))
    return tuple(v)


def inputs_from_config(cfg: Dict) -> InputParameters:
    """Coerce a config dict into InputParameters; non-finite numerics become 0."""
    kw = {}
    for k, v in cfg.items():
        if k in _META_KEYS:
            continue
        if k not in _FIELDS:
            logger.debug("ignoring unknown config key %r", k)
            continue
        if k == "subs_mode":
            mode = str(v).strip().lower()
            if mode not in SUBS_MODES:
                raise ValueError(f"subs_mode must be one of {SUBS_MODES}, got {v!r}")
            kw[k] = mode
        elif k == "seasonality":
            kw[k] = tuple(_num(x) for x in _sequence(v))
        elif k == "manual_subs_counts":
            kw[k] = tuple(_finite_values(_sequence(v)))
        elif k == "capacity_cap":
            kw[k] = None if v is None or (isinstance(v, str) and not v.strip()) else _num(v)
        else:
            kw[k] = _num(v)
    if kw.get("project_magnitude", 0.0) < 0:
        raise ValueError(f"project_magnitude must be non-negative, got {kw['project_magnitude']}")
    return InputParameters(**kw)


def run_config(cfg=None, manual_counts=None) -> ProjectionResult:
    if cfg is None: cfg = get_config()
    return compute_model(inputs_from_config(cfg), manual_counts)

# ── Assumptions CSV ─────────────────────────────────────────

def read_assumptions(path) -> Dict[str, object]:
    """Read a name,value CSV into config overrides. Rows starting with # are skipped."""
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    missing = {"name", "value"} - set(df.columns)
    if missing:
        raise ValueError(f"assumptions CSV missing required columns: {sorted(missing)}")
    df["name"] = df["name"].astype(str).str.strip()
    df = df[(df["name"] != "") & ~df["name"].str.startswith("#")]
    out = {}
    for _, row in df.iterrows():
        raw = str(row["value"]).split("#", 1)[0].strip()
        try: out[row["name"]] = float(raw)
        except ValueError: out[row["name"]] = raw
    return out

# ── Scenarios ───────────────────────────────────────────────

SCENARIO_PRESETS = {
    "bear": {"label": "Bear (Downside)",
        "core_revenue_y1": 1_500_000.0, "growth": 0.01, "ramp_months": 9,
        "churn_m": 0.08, "cogs_pct": 0.31, "exit_multiple": 2.5, "ebitda_multiple": 3.5},
    "base": {"label": "Base Case"},
    "bull": {"label": "Bull (Upside)",
        "core_revenue_y1": 2_100_000.0, "growth": 0.05, "ramp_months": 4,
        "churn_m": 0.04, "cogs_pct": 0.26, "exit_multiple": 3.5, "ebitda_multiple": 5.5},
}

def list_scenarios(): return [{"id": k, "label": v.get("label", k)} for k, v in SCENARIO_PRESETS.items()]


def apply_scenario_overrides(cfg, overrides):
    c = deepcopy(cfg)
    for k, v in overrides.items():
        if k == "label": continue
        if isinstance(v, dict) and k in c and isinstance(c[k], dict): c[k].update(v)
        else: c[k] = deepcopy(v)
    return c


def run_scenario(cfg=None, scenario="base", custom_overrides=None, manual_counts=None):
    if cfg is None: cfg = get_config()
    c = apply_scenario_overrides(cfg, SCENARIO_PRESETS.get(scenario, {}))
    if custom_overrides: c = apply_scenario_overrides(c, custom_overrides)
    return run_config(c, manual_counts)


def scenario_comparison_table(cfg=None, scenarios=None):
    if cfg is None: cfg = get_config()
    if scenarios is None: scenarios = ["bear", "base", "bull"]
    rows = []
    for s in scenarios:
        res = run_scenario(cfg, s); y = res.years
        rows.append({"scenario": SCENARIO_PRESETS.get(s, {}).get("label", s.capitalize()),
            "y1_revenue": y[0].revenue, "final_revenue": y[-1].revenue,
            "y1_ebitda": y[0].ebitda, "final_ebitda": y[-1].ebitda,
            "exit_value": res.exit_value, "value_ebitda": res.value_ebitda,
            "eq_f": res.eq_f, "irr_f": res.irr_annual, "moic_f": res.moic_f,
            "payback_month_f": res.payback_month_f,
            "min_cash": min(r.cash for r in res.months),
            "ending_cash": res.months[-1].cash})
    return pd.DataFrame(rows)

# ── Sensitivity ─────────────────────────────────────────────

def sensitivity_grid(cfg, row_key, row_values, col_key, col_values, metric="irr_annual"):
    """Pivot of a ProjectionResult metric over two config keys."""
    res = []
    for rv in row_values:
        for cv in col_values:
            c = deepcopy(cfg); c[row_key] = rv; c[col_key] = cv
            res.append({row_key: rv, col_key: cv, metric: getattr(run_config(c), metric)})
    return pd.DataFrame(res).pivot(index=row_key, columns=col_key, values=metric)


def sensitivity_exit_payout(cfg=None, exit_multiples=None, payouts=None):
    if cfg is None: cfg = get_config()
    if not exit_multiples: exit_multiples = [2.0, 2.5, 3.0, 3.5, 4.0]
    if not payouts: payouts = [0.25, 0.5, 0.75, 1.0]
    return sensitivity_grid(cfg, "exit_multiple", exit_multiples, "payout_ratio", payouts)


def sensitivity_revenue_cogs(cfg=None, revenues=None, cogs=None, metric="value_ebitda"):
    if cfg is None: cfg = get_config()
    if not revenues:
        b = cfg["core_revenue_y1"]; revenues = [round(b * m, 2) for m in [0.8, 0.9, 1.0, 1.1, 1.2]]
    if not cogs: cogs = [0.24, 0.28, 0.32]
    return sensitivity_grid(cfg, "core_revenue_y1", revenues, "cogs_pct", cogs, metric)
