"""Per-domain tables, chart specs and chartMetadata overrides."""
import pytest

from report_domains import SectionRule, get_domain


def test_pie_metadata_overrides_title_and_colors(quantity_data):
    quantity_data["chartMetadata"] = {
        "statusChart": {"title": "Completion Status", "type": "pie",
                        "colors": {"Completed": "#111111", "Not Started": "#222222"}},
    }
    spec = get_domain("quantity").build_chart_spec("status_chart", quantity_data)
    assert spec.title == "Completion Status"
    assert spec.color_map["Completed"] == "#111111"
    assert spec.color_map["Not Started"] == "#222222"
    assert spec.color_map["In Progress"] == "#f59e0b"


def test_bar_metadata_overrides_dataset_labels(claims_data):
    claims_data["chartMetadata"] = {
        "monthlyTrend": {
            "title": "Monthly Trend",
            "datasets": [
                {"key": "count", "label": "Number of Claims", "color": "#3b82f6"},
                {"key": "amount", "label": "Total Amount (RM)", "color": "#10b981"},
            ],
        },
    }
    spec = get_domain("claims").build_chart_spec("monthly_trend", claims_data)
    assert spec.kind == "bar"
    assert spec.title == "Monthly Trend"
    assert spec.metric_labels == {"count": "Number of Claims", "amount": "Total Amount (RM)"}
    assert spec.color_map == {"count": "#3b82f6", "amount": "#10b981"}


def test_line_metadata_maps_cumulative_key(financial_data):
    financial_data["chartMetadata"] = {
        "cumulativeChart": {"datasets": [{"key": "cumulative", "label": "Running Total", "color": "#000000"}]},
    }
    spec = get_domain("financial").build_chart_spec("cumulative", financial_data)
    assert spec.title == "Cumulative Claim Amount"
    assert spec.metric_labels["value"] == "Running Total"
    assert spec.color_map["value"] == "#000000"


def test_dual_bar_metadata_maps_worker_keys(diary_data):
    diary_data["chartMetadata"] = {
        "manpowerChart": {
            "title": "Workers per Trade",
            "datasets": [
                {"key": "avgWorkers", "label": "Average Workers", "color": "#8b5cf6"},
                {"key": "totalWorkers", "label": "Total Workers"},
            ],
        },
    }
    spec = get_domain("diary").build_chart_spec("manpower", diary_data)
    assert spec.kind == "dualBar"
    assert spec.title == "Workers per Trade"
    assert spec.metric_labels == {"average": "Average Workers", "total": "Total Workers"}
    assert spec.color_map == {"average": "#8b5cf6"}


def test_malformed_metadata_keeps_defaults(diary_data):
    diary_data["chartMetadata"] = {"weatherChart": "nope", "manpowerChart": {"datasets": ["x", {"label": "no key"}]}}
    domain = get_domain("diary")
    assert domain.build_chart_spec("weather", diary_data).title == "Weather Distribution"
    assert domain.build_chart_spec("manpower", diary_data).metric_labels["average"] == "Avg Workers / Day"


def test_section_rule_rejects_bad_orientation():
    with pytest.raises(ValueError):
        SectionRule("summary", None, "summary", "sideways", lambda d: True)
    with pytest.raises(ValueError):
        SectionRule("summary", None, "graph", "portrait", lambda d: True)


def test_currency_cells_in_payment_timeline(financial_data):
    table = get_domain("financial").build_table("payment_timeline", financial_data)
    assert table.rows[0][2:5] == ("50,000.00", "48,000.00", "2,400.00")
    assert table.rows[0][5] == "PAID"
