"""
Restaurant Deal Model - tabular views, covenant summary and CSV/ZIP export.
"""
import io, math, zipfile, logging
from dataclasses import asdict

import numpy as np
import pandas as pd

from restaurant_model import InputParameters, ProjectionResult
from scenarios import get_config, inputs_from_config, run_config, scenario_comparison_table

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    ("Month", "month"), ("Core", "core"), ("Events", "events"), ("Subs", "subs"),
    ("Revenue", "revenue"), ("COGS", "cogs"), ("VarLabor", "var_labor"), ("ProcFees", "proc_fees"),
    ("Contribution", "contribution"), ("EBITDA", "ebitda"), ("Interest", "interest"),
    ("Principal", "principal"), ("PreTax", "pre_tax"), ("IncomeTax", "income_tax"),
    ("SalesTax", "sales_tax"), ("DeltaNWC", "delta_nwc"), ("DistTotal", "dist_total"),
    ("Cash", "cash"),
]
INFINITY = "∞"


def fmt_money(x):
    if x is None or (isinstance(x, float) and not math.isfinite(x)): return "n/a"
    return f"${x:,.0f}"

def fmt_pct(x):
    if x is None or (isinstance(x, float) and not math.isfinite(x)): return "n/a"
    return f"{x*100:.1f}%"

# -- Frames --

def monthly_frame(result: ProjectionResult) -> pd.DataFrame:
    rows = []
    for r in result.months:
        d = asdict(r)
        d["dscr"] = np.nan if r.dscr.is_undefined else r.dscr.ratio
        d["dscr_defined"] = not r.dscr.is_undefined
        rows.append(d)
    return pd.DataFrame(rows)


def yearly_frame(result: ProjectionResult) -> pd.DataFrame:
    return pd.DataFrame([asdict(y) for y in result.years])

# -- Summaries --

def summary_metrics(result: ProjectionResult):
    return {"eq_f": result.eq_f, "eq_k": result.eq_k, "in_kind_f": result.in_kind_f,
            "exit_value": result.exit_value, "exit_f": result.exit_f, "exit_k": result.exit_k,
            "value_ebitda": result.value_ebitda, "ttm_pre_tax": result.ttm_pre_tax,
            "ttm_ebitda": result.ttm_ebitda, "irr_annual": result.irr_annual,
            "moic_f": result.moic_f, "payback_month_f": result.payback_month_f,
            "total_distributions": sum(r.dist_total for r in result.months),
            "ending_cash": result.months[-1].cash if result.months else 0.0}


def covenant_summary(result: ProjectionResult, p: InputParameters):
    """DSCR and minimum-cash covenant statistics over the projection."""
    finite = [r.dscr.ratio for r in result.months if not r.dscr.is_undefined]
    below_gate = [r.month for r in result.months if not r.dscr.passes(p.dscr_gate)]
    below_cash = [r.month for r in result.months if r.cash < p.min_cash]
    low = min(result.months, key=lambda r: r.cash) if result.months else None
    return {"min_dscr": min(finite) if finite else None,
            "months_with_debt_service": len(finite),
            "months_below_gate": len(below_gate),
            "first_month_below_gate": below_gate[0] if below_gate else None,
            "months_below_min_cash": len(below_cash),
            "first_month_below_min_cash": below_cash[0] if below_cash else None,
            "months_without_distribution": sum(1 for r in result.months if r.dist_total == 0),
            "lowest_cash": low.cash if low else None,
            "lowest_cash_month": low.month if low else None}

# -- CSV/ZIP Export --

def export_frame(result: ProjectionResult) -> pd.DataFrame:
    """Monthly rows in export column order; undefined DSCR is written as ∞."""
    data = {label: [getattr(r, attr) for r in result.months] for label, attr in EXPORT_COLUMNS}
    data["DSCR"] = [INFINITY if r.dscr.is_undefined else r.dscr.ratio for r in result.months]
    return pd.DataFrame(data, columns=[c for c, _ in EXPORT_COLUMNS] + ["DSCR"])


def export_monthly_csv(result: ProjectionResult) -> str:
    return export_frame(result).to_csv(index=False)


def export_results_csv(result: ProjectionResult, prefix="restaurant"):
    exports = {f"{prefix}_monthly.csv": export_monthly_csv(result),
               f"{prefix}_yearly.csv": yearly_frame(result).to_csv(index=False)}
    sm = summary_metrics(result)
    exports[f"{prefix}_summary.csv"] = pd.DataFrame(
        [{"metric": k, "value": v} for k, v in sm.items()]).to_csv(index=False)
    return exports


def export_all_to_zip(result: ProjectionResult, cfg=None, prefix="restaurant"):
    csvs = export_results_csv(result, prefix)
    if cfg is not None:
        csvs["scenario_comparison.csv"] = scenario_comparison_table(cfg).to_csv(index=False)
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in csvs.items(): zf.writestr(name, content)
    logger.info("packed %d CSV files", len(csvs))
    return buf.getvalue()

# -- Entry Point --

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    cfg = get_config(); result = run_config(cfg)
    print(f"Scenario: {cfg['name']}")
    print(yearly_frame(result)[["year", "revenue", "ebitda", "pre_tax", "distributions", "cash"]].to_string(index=False))
    print(f"F equity: {fmt_pct(result.eq_f)}  K equity: {fmt_pct(result.eq_k)}  In-kind (F): {fmt_money(result.in_kind_f)}")
    print(f"Exit value: {fmt_money(result.exit_value)}  EBITDA-multiple value: {fmt_money(result.value_ebitda)}")
    print(f"IRR (F): {fmt_pct(result.irr_annual)}")
    cov = covenant_summary(result, inputs_from_config(cfg))
    print(f"Min DSCR: {cov['min_dscr'] if cov['min_dscr'] is not None else INFINITY}  Months below gate: {cov['months_below_gate']}")
    print("Done.")
