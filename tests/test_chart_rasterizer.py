"""Chart rasterization: tiers, determinism and series contracts."""
import io

import pytest
from PIL import Image

from chart_rasterizer import ChartSpec, rasterize, tier_for, validate_spec
from report_errors import ChartContractViolation

PIE = ChartSpec(kind="pie", series=({"name": "Completed", "value": 5}, {"name": "Pending", "value": 3}),
                title="Status Distribution")
BAR = ChartSpec(kind="bar", series=({"category": "Jan", "count": 1, "amount": 5000},
                                    {"category": "Feb", "count": 3, "amount": 12000}), title="Monthly")
LINE = ChartSpec(kind="line", series=({"date": "2025-02-10", "value": 170000},
                                      {"date": "2025-01-15", "value": 50000}), title="Cumulative")
DUAL = ChartSpec(kind="dualBar", series=({"category": "Carpenter", "average": 4.5, "total": 9},), title="Manpower")


def _size(png):
    with Image.open(io.BytesIO(png)) as img:
        return img.size


@pytest.mark.parametrize("spec", [PIE, BAR, LINE, DUAL], ids=lambda s: s.kind)
def test_renders_png_at_tier(spec):
    png = rasterize(spec)
    assert png.startswith(b"\x89PNG")
    assert _size(png) == tier_for(spec.kind)


def test_tiers_square_and_wide():
    assert tier_for("pie") == (600, 600)
    assert tier_for("bar") == tier_for("line") == tier_for("dualBar") == (700, 400)


def test_pixel_size_override():
    assert _size(rasterize(BAR, pixel_size=(350, 200))) == (350, 200)


def test_identical_specs_give_identical_bytes():
    assert rasterize(PIE) == rasterize(PIE)
    assert rasterize(LINE) == rasterize(LINE)


@pytest.mark.parametrize("spec", [
    ChartSpec(kind="pie", series=()),
    ChartSpec(kind="pie", series=({"label": "A", "value": 0},)),
    ChartSpec(kind="pie", series=({"category": "A", "count": 1},)),
    ChartSpec(kind="bar", series=({"category": "Jan", "value": 3},)),
    ChartSpec(kind="bar", series=({"category": "Jan", "count": "many", "amount": 1},)),
    ChartSpec(kind="line", series=({"date": "not a date", "value": 3},)),
    ChartSpec(kind="dualBar", series=({"category": "A", "average": -1, "total": 2},)),
    ChartSpec(kind="radar", series=({"label": "A", "value": 1},)),
    ChartSpec(kind="pie", series=("A",)),
])
def test_contract_violations_fail_fast(spec):
    with pytest.raises(ChartContractViolation):
        validate_spec(spec)
    with pytest.raises(ChartContractViolation):
        rasterize(spec)


def test_violation_payload():
    with pytest.raises(ChartContractViolation) as info:
        rasterize(ChartSpec(kind="bar", series=({"category": "Jan"},), title="Monthly"))
    body = info.value.to_dict()
    assert body["error_code"] == "CHART_CONTRACT_VIOLATION"
    assert body["details"]["kind"] == "bar"
    assert body["details"]["title"] == "Monthly"


def test_null_metric_counts_as_zero():
    bar = ChartSpec(kind="bar", series=({"category": "Jan", "count": 1, "amount": 5000},
                                        {"category": "Feb", "count": None, "amount": None}))
    validate_spec(bar)
    assert _size(rasterize(bar)) == tier_for("bar")
    pie = ChartSpec(kind="pie", series=({"name": "Sunny", "value": 2}, {"name": "Rainy", "value": None}))
    validate_spec(pie)


def test_null_metrics_do_not_hide_a_missing_key():
    with pytest.raises(ChartContractViolation):
        validate_spec(ChartSpec(kind="bar", series=({"category": "Jan", "count": None},)))
    with pytest.raises(ChartContractViolation):
        validate_spec(ChartSpec(kind="pie", series=({"name": "Sunny", "value": None},)))
