"""
Restaurant Deal Model - Monthly Pro-Forma Engine
Revenue composition (core, events, subscriptions), cost stack, debt
amortisation, tax and working capital, DSCR-gated distributions,
F/K equity split, trailing-twelve-month exit and F's IRR.
"""
import math
import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

MONTHS_IN_YEAR = 12
DAYS_PER_MONTH = 30

MECHANISTIC = "mechanistic"
MANUAL = "manual"
SUBS_MODES = (MECHANISTIC, MANUAL)


def _round_half_up(x):
    return int(math.floor(x + 0.5))


def _clamp(x, lo, hi):
    return min(max(x, lo), hi)


# ── Data Model ──────────────────────────────────────────────

@dataclass(frozen=True)
class InputParameters:
    """One run's assumptions. Build from a config dict via scenarios.inputs_from_config."""
    # timing
    term_years: float = 5.0
    ramp_months: float = 6.0
    seasonality: Tuple[float, ...] = (1.0,) * MONTHS_IN_YEAR
    # core & events
    core_revenue_y1: float = 0.0
    growth: float = 0.0
    events_annual: float = 0.0
    events_ramp_months: float = 1.0
    capacity_cap: Optional[float] = None
    # subscriptions
    subs_mode: str = MECHANISTIC
    subs_init: float = 0.0
    subs_spend_m: float = 0.0
    cac: float = 0.0
    churn_m: float = 0.0
    pause_rate: float = 0.0
    manual_subs_counts: Tuple[float, ...] = ()
    subs_price: float = 0.0
    periods_per_month: float = 4.33
    # cost stack
    cogs_pct: float = 0.0
    packaging_pct: float = 0.0
    waste_pct: float = 0.0
    var_labor_pct: float = 0.0
    proc_fees_pct: float = 0.0
    card_mix_pct: float = 0.0
    fixed_salaries_annual: float = 0.0
    # overhead (monthly)
    insurance_m: float = 0.0
    licenses_m: float = 0.0
    utilities_m: float = 0.0
    linen_m: float = 0.0
    repairs_m: float = 0.0
    # occupancy
    base_rent_m: float = 0.0
    nnn_m: float = 0.0
    rent_escalation: float = 0.0
    rent_free_months: float = 0.0
    # loan
    loan_amount: float = 0.0
    rate_apr: float = 0.0
    loan_term_months: float = 0.0
    io_months: float = 0.0
    dscr_gate: float = 1.25
    # tax & working capital
    sales_tax_rate: float = 0.0
    entity_tax_rate: float = 0.0
    ar_days: float = 0.0
    ap_days: float = 0.0
    inv_days: float = 0.0
    # cash policy
    starting_cash: float = 0.0
    min_cash: float = 0.0
    payout_ratio: float = 0.0
    # deal & exit
    assets_f: float = 0.0
    project_magnitude: float = 0.0
    exit_multiple: float = 0.0
    ebitda_multiple: float = 0.0

    @property
    def overhead_m(self):
        return self.insurance_m + self.licenses_m + self.utilities_m + self.linen_m + self.repairs_m

    @property
    def occupancy_m(self):
        return self.base_rent_m + self.nnn_m


@dataclass(frozen=True)
class Dscr:
    """Debt-service coverage. ratio=None means no debt service was due."""
    ratio: Optional[float] = None

    @property
    def is_undefined(self):
        return self.ratio is None

    def passes(self, gate):
        return self.ratio is None or self.ratio >= gate

    def __str__(self):
        return "∞" if self.ratio is None else repr(self.ratio)


@dataclass(frozen=True)
class AmortRow:
    month: int
    interest: float
    principal: float
    payment: float
    balance: float


@dataclass(frozen=True)
class RevenueStreams:
    core: Tuple[float, ...]
    events: Tuple[float, ...]
    subs: Tuple[float, ...]

    def __len__(self):
        return len(self.core)


@dataclass(frozen=True)
class SimState:
    cash: float
    prior_nwc: Optional[float] = None


@dataclass(frozen=True)
class MonthlyRecord:
    month: int
    core: float
    events: float
    subs: float
    revenue: float
    cogs: float
    var_labor: float
    proc_fees: float
    gross_profit: float
    contribution: float
    fixed_labor: float
    overhead: float
    occupancy: float
    ebitda: float
    interest: float
    principal: float
    debt_service: float
    pre_tax: float
    income_tax: float
    sales_tax: float
    nwc: float
    delta_nwc: float
    ocf: float
    cash_before_dist: float
    dscr: Dscr
    dist_total: float
    cash: float
    dist_f: float = 0.0
    dist_k: float = 0.0
    exit_proceeds: float = 0.0


@dataclass(frozen=True)
class YearlyRecord:
    year: int
    months: int
    revenue: float
    ebitda: float
    pre_tax: float
    distributions: float
    cash: float


@dataclass(frozen=True)
class ProjectionResult:
    eq_f: float
    eq_k: float
    in_kind_f: float
    months: Tuple[MonthlyRecord, ...]
    years: Tuple[YearlyRecord, ...]
    exit_value: float
    exit_f: float
    exit_k: float
    irr_monthly: Optional[float]
    irr_annual: Optional[float]
    value_exit: float
    value_ebitda: float
    ttm_pre_tax: float = 0.0
    ttm_ebitda: float = 0.0
    moic_f: Optional[float] = None
    payback_month_f: Optional[int] = None
    cashflows_f: Tuple[float, ...] = field(default=(), repr=False)


# ── B1: Seasonality ─────────────────────────────────────────

def _finite_or_none(v):
    try:
        v = float(v)
    except (TypeError, ValueError):
        return None
    return v if math.isfinite(v) else None


def normalize_seasonality(weights):
    """Rescale a 12-slot weighting vector to unit mean; anything malformed is neutral."""
    neutral = np.ones(MONTHS_IN_YEAR)
    if weights is None or isinstance(weights, (str, bytes)):
        return neutral
    try:
        raw = [_finite_or_none(v) for v in weights]
    except TypeError:
        return neutral
    if len(raw) != MONTHS_IN_YEAR:
        logger.warning("seasonality has %d slots, expected %d; using neutral weights", len(raw), MONTHS_IN_YEAR)
        return neutral
    bad = [i + 1 for i, v in enumerate(raw) if v is None]
    if bad:
        logger.warning("seasonality months %s are not finite numbers; weighted as 1", bad)
    vals = [1.0 if v is None else v for v in raw]
    arr = np.asarray(vals, dtype=float)
    mean = arr.mean()
    if mean == 0:
        return neutral
    return arr / mean


# ── B2: Debt Schedule ───────────────────────────────────────

def amort_payment(principal, rate_apr, n_months):
    """Level annuity payment; straight-line when the periodic rate is ~0."""
    if n_months <= 0:
        return 0.0
    r = rate_apr / MONTHS_IN_YEAR
    if abs(r) < 1e-9:
        return principal / n_months
    factor = (1 + r) ** n_months
    return principal * r * factor / (factor - 1)


def amort_schedule(principal, rate_apr, term_months, io_months=0) -> List[AmortRow]:
    if principal <= 0 or term_months <= 0:
        return []
    term_months = int(term_months)
    r = rate_apr / MONTHS_IN_YEAR
    io = int(_clamp(math.floor(io_months), 0, term_months))
    amort_months = term_months - io
    pmt = amort_payment(principal, rate_apr, amort_months)
    rows = []; bal = principal
    for m in range(1, term_months + 1):
        interest = bal * r
        if m <= io:
            prin = 0.0
        elif amort_months == 0:
            prin = bal
        elif abs(r) < 1e-9:
            prin = min(bal, pmt)
        else:
            prin = min(bal, pmt - interest)
        bal = max(0.0, bal - prin)
        rows.append(AmortRow(month=m, interest=interest, principal=prin, payment=interest + prin, balance=bal))
    return rows


def debt_service_by_month(schedule, months):
    """(interest, principal) per simulated month; zero past the loan term."""
    out = [(0.0, 0.0)] * months
    for i, row in enumerate(schedule[:months]):
        out[i] = (row.interest, row.principal)
    return out


# ── B3: IRR Solver ──────────────────────────────────────────

def npv(cashflows, rate):
    cf = np.asarray(cashflows, dtype=float)
    with np.errstate(divide="ignore", over="ignore", invalid="ignore", under="ignore"):
        disc = np.power(1.0 + rate, np.arange(len(cf)))
        return float(np.sum(cf / disc))


def irr_bisection(cashflows, low=-0.9, high=3.0, tol=1e-6, max_iter=200):
    """
    Periodic IRR by bisection over [low, high]. Returns None when the
    endpoint NPVs do not straddle zero or either one is non-finite.
    """
    if len(cashflows) == 0:
        return None
    lo, hi = low, high
    npv_lo, npv_hi = npv(cashflows, lo), npv(cashflows, hi)
    if not (math.isfinite(npv_lo) and math.isfinite(npv_hi)):
        logger.debug("irr: non-finite NPV at bracket ends (%s, %s)", npv_lo, npv_hi)
        return None
    if npv_lo == 0 and npv_hi == 0:
        return None
    if npv_lo == 0: return lo
    if npv_hi == 0: return hi
    if (npv_lo > 0) == (npv_hi > 0):
        logger.debug("irr: no sign change over [%s, %s]", lo, hi)
        return None
    for _ in range(max_iter):
        mid = (lo + hi) / 2
        npv_mid = npv(cashflows, mid)
        if abs(npv_mid) < tol:
            return mid
        if (npv_mid > 0) != (npv_lo > 0):
            hi, npv_hi = mid, npv_mid
        else:
            lo, npv_lo = mid, npv_mid
    return (lo + hi) / 2


def annualize(rate_monthly):
    return None if rate_monthly is None else (1 + rate_monthly) ** MONTHS_IN_YEAR - 1


# ── B4: Revenue ─────────────────────────────────────────────

def horizon_months(term_years):
    return max(1, _round_half_up(term_years * MONTHS_IN_YEAR))


def ramp_factor(i, ramp):
    """Linear ramp from 50% in month 1 to 100% at the end of the window (i is 0-based)."""
    if i >= ramp:
        return 1.0
    return 0.5 + 0.5 * ((i + 1) / ramp)


def core_revenue(p: InputParameters, months):
    season = normalize_seasonality(p.seasonality)
    ramp = max(1, _round_half_up(p.ramp_months))
    cap = math.inf if p.capacity_cap is None else p.capacity_cap
    out = []
    for m in range(months):
        annual = p.core_revenue_y1 * (1 + p.growth) ** (m // MONTHS_IN_YEAR)
        base = annual / MONTHS_IN_YEAR * season[m % MONTHS_IN_YEAR]
        out.append(float(min(base * ramp_factor(m, ramp), cap)))
    return out


def events_revenue(p: InputParameters, months):
    ramp = max(1, _round_half_up(p.events_ramp_months))
    base = p.events_annual / MONTHS_IN_YEAR
    return [base * ramp_factor(m, ramp) for m in range(months)]


def subscriber_step(p: InputParameters, active):
    """One month of the mechanistic model: returns (active, billable)."""
    acquisitions = p.subs_spend_m / p.cac if p.cac > 0 else 0.0
    active = active * (1 - p.churn_m) + acquisitions
    return active, active * (1 - p.pause_rate)


def subscription_revenue(p: InputParameters, months, manual_counts=None):
    per_sub = p.subs_price * p.periods_per_month
    if p.subs_mode == MANUAL:
        counts = list(p.manual_subs_counts if manual_counts is None else manual_counts)
        return [(counts[m] if m < len(counts) else 0.0) * per_sub for m in range(months)]
    out = []; active = p.subs_init
    for _ in range(months):
        active, billable = subscriber_step(p, active)
        out.append(billable * per_sub)
    return out


def compose_revenue(p: InputParameters, months, manual_counts=None) -> RevenueStreams:
    return RevenueStreams(
        core=tuple(core_revenue(p, months)),
        events=tuple(events_revenue(p, months)),
        subs=tuple(subscription_revenue(p, months, manual_counts)),
    )


# ── B5: Monthly Simulation ──────────────────────────────────

def occupancy_cost(p: InputParameters, m):
    if m < p.rent_free_months:
        return 0.0
    return p.occupancy_m * (1 + p.rent_escalation) ** (m // MONTHS_IN_YEAR)


def simulate_month(p: InputParameters, state: SimState, m, revenue, debt):
    """
    One month-step. m is 0-based, revenue is (core, events, subs), debt is
    (interest, principal). Returns the month's record and the next state.
    """
    core, events, subs = revenue
    interest, principal = debt
    rev = core + events + subs
    cogs = rev * (p.cogs_pct + p.packaging_pct + p.waste_pct)
    var_labor = rev * p.var_labor_pct
    proc_fees = rev * p.proc_fees_pct * p.card_mix_pct
    gross = rev - cogs
    contribution = gross - var_labor - proc_fees

    fixed_labor = p.fixed_salaries_annual / MONTHS_IN_YEAR
    overhead = p.overhead_m
    occ = occupancy_cost(p, m)
    ebitda = contribution - fixed_labor - overhead - occ

    debt_service = interest + principal
    pre_tax = ebitda - interest
    income_tax = pre_tax * p.entity_tax_rate if pre_tax > 0 else 0.0
    sales_tax = rev * p.sales_tax_rate

    nwc = rev * p.ar_days / DAYS_PER_MONTH + cogs * p.inv_days / DAYS_PER_MONTH - cogs * p.ap_days / DAYS_PER_MONTH
    delta_nwc = nwc if state.prior_nwc is None else nwc - state.prior_nwc
    ocf = ebitda - income_tax - delta_nwc

    cash_before = state.cash + ocf - interest - principal - sales_tax
    dscr = Dscr(ebitda / debt_service) if debt_service > 0 else Dscr()
    if dscr.passes(p.dscr_gate) and cash_before > p.min_cash:
        dist = max(0.0, p.payout_ratio * max(0.0, cash_before - p.min_cash))
    else:
        dist = 0.0
        if not dscr.passes(p.dscr_gate):
            logger.debug("month %d: DSCR %s below gate %s, distribution blocked", m + 1, dscr, p.dscr_gate)
    cash_end = cash_before - dist

    rec = MonthlyRecord(
        month=m + 1, core=core, events=events, subs=subs, revenue=rev,
        cogs=cogs, var_labor=var_labor, proc_fees=proc_fees,
        gross_profit=gross, contribution=contribution,
        fixed_labor=fixed_labor, overhead=overhead, occupancy=occ, ebitda=ebitda,
        interest=interest, principal=principal, debt_service=debt_service,
        pre_tax=pre_tax, income_tax=income_tax, sales_tax=sales_tax,
        nwc=nwc, delta_nwc=delta_nwc, ocf=ocf, cash_before_dist=cash_before,
        dscr=dscr, dist_total=dist, cash=cash_end,
    )
    return rec, SimState(cash=cash_end, prior_nwc=nwc)


def initial_state(p: InputParameters):
    return SimState(cash=p.starting_cash + p.loan_amount)


def simulate(p: InputParameters, streams: RevenueStreams, debt) -> Tuple[MonthlyRecord, ...]:
    state = initial_state(p); rows = []
    for m in range(len(streams)):
        rec, state = simulate_month(p, state, m, (streams.core[m], streams.events[m], streams.subs[m]), debt[m])
        rows.append(rec)
    return tuple(rows)


# ── B6: Equity & Exit ───────────────────────────────────────

def in_kind_value(p: InputParameters):
    """F's contribution: assets plus the rent abatement valued at base rent + NNN."""
    return p.assets_f + p.rent_free_months * p.occupancy_m


def equity_fractions(p: InputParameters):
    in_kind = in_kind_value(p)
    if p.project_magnitude < 0:
        logger.warning("project magnitude %s is negative; F fraction clamped to 0", p.project_magnitude)
        eq_f = 0.0
    elif p.project_magnitude == 0:
        eq_f = 0.0
    else:
        eq_f = _clamp(in_kind / p.project_magnitude, 0.0, 1.0)
    return eq_f, 1.0 - eq_f


def trailing_values(records, window=MONTHS_IN_YEAR):
    """(TTM pre-tax, TTM EBITDA) over the last `window` months."""
    tail = records[-min(window, len(records)):] if records else ()
    return sum(r.pre_tax for r in tail), sum(r.ebitda for r in tail)


def allocate_equity(records, eq_f, exit_value=0.0) -> Tuple[MonthlyRecord, ...]:
    """Split distributions F/K and add the exit to the final month. Returns new records."""
    eq_k = 1.0 - eq_f; out = []
    last = len(records) - 1
    for i, r in enumerate(records):
        exit_add = exit_value if i == last else 0.0
        total = r.dist_total + exit_add
        out.append(replace(r, dist_total=total, dist_f=total * eq_f, dist_k=total * eq_k, exit_proceeds=exit_add))
    return tuple(out)


def payback_month(cashflows):
    """First month where cumulative inflows recover the time-0 outflow."""
    if not cashflows or cashflows[0] >= 0:
        return None
    cum = cashflows[0]
    for i, cf in enumerate(cashflows[1:], start=1):
        cum += cf
        if cum >= 0:
            return i
    return None


# ── B7: Yearly Roll-up ──────────────────────────────────────

def aggregate_years(records) -> Tuple[YearlyRecord, ...]:
    years = []
    for y, start in enumerate(range(0, len(records), MONTHS_IN_YEAR)):
        chunk = records[start:start + MONTHS_IN_YEAR]
        years.append(YearlyRecord(
            year=y + 1, months=len(chunk),
            revenue=sum(r.revenue for r in chunk),
            ebitda=sum(r.ebitda for r in chunk),
            pre_tax=sum(r.pre_tax for r in chunk),
            distributions=sum(r.dist_total for r in chunk),
            cash=chunk[-1].cash,
        ))
    return tuple(years)


# ── Master: Compute Model ───────────────────────────────────

def compute_model(p: InputParameters, manual_counts: Optional[Sequence[float]] = None) -> ProjectionResult:
    months = horizon_months(p.term_years)
    schedule = amort_schedule(p.loan_amount, p.rate_apr, max(0, math.floor(p.loan_term_months)), max(0, math.floor(p.io_months)))
    logger.debug("horizon %d months, loan schedule %d months", months, len(schedule))

    streams = compose_revenue(p, months, manual_counts)
    raw = simulate(p, streams, debt_service_by_month(schedule, months))

    in_kind = in_kind_value(p)
    eq_f, eq_k = equity_fractions(p)
    ttm_pre_tax, ttm_ebitda = trailing_values(raw)
    exit_value = max(0.0, ttm_pre_tax) * p.exit_multiple
    rows = allocate_equity(raw, eq_f, exit_value)

    cashflows_f = (-in_kind,) + tuple(r.dist_f for r in rows)
    irr_m = irr_bisection(cashflows_f)
    dist_f_total = sum(r.dist_f for r in rows)

    return ProjectionResult(
        eq_f=eq_f, eq_k=eq_k, in_kind_f=in_kind,
        months=rows, years=aggregate_years(rows),
        exit_value=exit_value, exit_f=exit_value * eq_f, exit_k=exit_value * eq_k,
        irr_monthly=irr_m, irr_annual=annualize(irr_m),
        value_exit=exit_value,
        value_ebitda=max(0.0, ttm_ebitda) * p.ebitda_multiple,
        ttm_pre_tax=ttm_pre_tax, ttm_ebitda=ttm_ebitda,
        moic_f=dist_f_total / in_kind if in_kind > 0 else None,
        payback_month_f=payback_month(cashflows_f),
        cashflows_f=cashflows_f,
    )
