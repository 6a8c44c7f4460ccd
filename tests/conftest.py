import pytest

from restaurant_model import InputParameters
from scenarios import get_config, inputs_from_config


@pytest.fixture
def baseline_cfg():
    return get_config()


@pytest.fixture
def baseline(baseline_cfg):
    return inputs_from_config(baseline_cfg)


@pytest.fixture
def flat_inputs():
    """Two flat years, no costs, no debt: every month earns 100,000 pre-tax."""
    return InputParameters(
        term_years=2, ramp_months=1, seasonality=(1.0,) * 12,
        core_revenue_y1=1_200_000.0, growth=0.0,
        events_annual=0.0, events_ramp_months=1,
        subs_mode="mechanistic", cac=1.0, subs_price=0.0, periods_per_month=4,
        dscr_gate=1.0, project_magnitude=1.0,
        exit_multiple=3.0, ebitda_multiple=4.0,
    )
