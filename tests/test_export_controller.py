"""End-to-end export orchestration."""
import re
from pathlib import Path

import pytest

import export_controller
from export_controller import ContractMeta, ReportRequest, build_report, export_report, report_filename, save_artifact
from report_errors import (
    ChartContractViolation,
    EmptyDataset,
    ExportCancelled,
    NoSectionsSelected,
    ReportExportError,
    SaveFailure,
    UnknownReportType,
)
from report_format import format_currency
from report_domains import get_domain
from report_settings import REPORT_TYPES, content_keys, create_default, toggle

CONTRACT = ContractMeta(number="C-001", project_name="Jalan Baru")


def _all_off(report_type):
    s = create_default(report_type)
    for key in content_keys(s):
        s = toggle(s, key)
    return s


def test_filename_format(today):
    assert report_filename("claims", "C-001", today) == "CLAIMS_C-001_2025-03-14.pdf"
    assert report_filename("diary", None, today) == "DIARY_CONTRACT_2025-03-14.pdf"
    assert report_filename("quantity", "  ", today) == "QUANTITY_CONTRACT_2025-03-14.pdf"
    assert report_filename("financial", "KL/2025/07", today) == "FINANCIAL_KL-2025-07_2025-03-14.pdf"


@pytest.mark.parametrize("report_type", REPORT_TYPES)
def test_filename_pattern(report_type, today):
    name = report_filename(report_type, "X9", today)
    assert re.fullmatch(r"[A-Z]+_X9_\d{4}-\d{2}-\d{2}\.pdf", name)


@pytest.mark.parametrize("report_type", REPORT_TYPES)
def test_export_writes_one_pdf(report_type, bundles, tmp_path, today, fake_rasterizer, events):
    req = ReportRequest(report_type, bundles[report_type], CONTRACT, create_default(report_type))
    result = export_report(req, tmp_path, observer=events, today=today, rasterizer=fake_rasterizer)
    assert result.path.exists()
    assert result.path.read_bytes().startswith(b"%PDF")
    assert [p.name for p in tmp_path.iterdir()] == [result.filename]
    assert result.filename == f"{report_type.upper()}_C-001_2025-03-14.pdf"
    names = [e.name for e in events.events]
    assert names[0] == "export.started"
    assert names[-1] == "export.saved"
    assert names.count("chart.rasterized") == len(fake_rasterizer.calls) >= 1
    assert result.page_count == len(result.plan)


@pytest.mark.parametrize("report_type", REPORT_TYPES)
def test_no_sections_selected_never_rasterizes(report_type, bundles, tmp_path, fake_rasterizer):
    req = ReportRequest(report_type, bundles[report_type], CONTRACT, _all_off(report_type))
    with pytest.raises(NoSectionsSelected):
        export_report(req, tmp_path, rasterizer=fake_rasterizer)
    assert fake_rasterizer.calls == []
    assert list(tmp_path.iterdir()) == []


def test_scenario_b_zero_claims_is_blocked(tmp_path, fake_rasterizer, events):
    req = ReportRequest("claims", {"totalClaims": 0, "summary": {}, "items": [], "allClaims": []},
                        CONTRACT, create_default("claims"))
    with pytest.raises(EmptyDataset):
        export_report(req, tmp_path, observer=events, rasterizer=fake_rasterizer)
    assert fake_rasterizer.calls == []
    assert list(tmp_path.iterdir()) == []
    assert events.events[-1].name == "export.failed"
    assert events.events[-1].details["error_code"] == "EMPTY_DATASET"


def test_scenario_c_currency_cells(claims_data):
    assert format_currency(1234.5) == "1,234.50"
    table = get_domain("claims").build_table("items", claims_data)
    assert table.rows[0][2] == "1,234.50"
    assert get_domain("quantity").build_table("items", {"items": [{"quantity": 1234.5}]}).rows[0][2] == "1,234.50"


def test_unknown_report_type(tmp_path):
    with pytest.raises(UnknownReportType):
        export_report(ReportRequest("invoices", {}, CONTRACT, {}), tmp_path)


def test_chart_violation_aborts_export(financial_data, tmp_path):
    financial_data["cumulativeData"] = [{"date": "someday", "cumulative": 10}]
    req = ReportRequest("financial", financial_data, CONTRACT, create_default("financial"))
    with pytest.raises(ChartContractViolation):
        export_report(req, tmp_path)
    assert list(tmp_path.iterdir()) == []


def test_charts_are_rasterized_in_plan_order(financial_data, fake_rasterizer, today):
    built = build_report(ReportRequest("financial", financial_data, CONTRACT, create_default("financial")),
                         today=today, rasterizer=fake_rasterizer)
    assert [c.kind for c in fake_rasterizer.calls] == ["line", "bar"]
    assert built.page_count == 4
    assert [p.section for p in built.plan] == ["summary", "cumulative", "monthly_breakdown", "payment_timeline"]


def test_empty_chart_image_is_skipped_at_assembly(financial_data, today, small_png, events):
    images = iter([b"", small_png])
    built = build_report(ReportRequest("financial", financial_data, CONTRACT, create_default("financial")),
                         observer=events, today=today, rasterizer=lambda spec: next(images))
    assert built.skipped == ("cumulative",)
    assert built.page_count == 3
    skipped = [e.details["section"] for e in events.events if e.name == "section.skipped"]
    assert skipped == ["cumulative"]


def test_empty_section_is_reported_not_raised(quantity_data, today, fake_rasterizer, events):
    quantity_data["statusData"] = []
    built = build_report(ReportRequest("quantity", quantity_data, CONTRACT, create_default("quantity")),
                         observer=events, today=today, rasterizer=fake_rasterizer)
    assert "status_chart" not in [p.section for p in built.plan]
    assert any(e.name == "section.skipped" and e.details["section"] == "status_chart" for e in events.events)


def test_cancellation_between_pages(diary_data, tmp_path, fake_rasterizer):
    checks = iter([False, False, True])
    req = ReportRequest("diary", diary_data, CONTRACT, create_default("diary"))
    with pytest.raises(ExportCancelled) as info:
        export_report(req, tmp_path, should_cancel=lambda: next(checks), rasterizer=fake_rasterizer)
    assert info.value.details["completed_pages"] == 2
    assert len(fake_rasterizer.calls) == 1
    assert list(tmp_path.iterdir()) == []


def test_save_failure_leaves_nothing_behind(quantity_data, tmp_path, fake_rasterizer, monkeypatch):
    def broken_move(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(export_controller.shutil, "move", broken_move)
    req = ReportRequest("quantity", quantity_data, CONTRACT, create_default("quantity"))
    with pytest.raises(SaveFailure) as info:
        export_report(req, tmp_path, rasterizer=fake_rasterizer)
    assert list(tmp_path.iterdir()) == []
    assert info.value.to_dict()["original_error"]["message"] == "disk full"


def test_save_artifact_creates_directory(tmp_path):
    path = save_artifact(b"%PDF-1.4", tmp_path / "nested" / "out", "X.pdf")
    assert path == (tmp_path / "nested" / "out" / "X.pdf").resolve()
    assert path.read_bytes() == b"%PDF-1.4"


def test_unexpected_errors_are_wrapped(quantity_data, tmp_path, events):
    def explode(spec):
        raise RuntimeError("renderer crashed")

    req = ReportRequest("quantity", quantity_data, CONTRACT, create_default("quantity"))
    with pytest.raises(ReportExportError) as info:
        export_report(req, tmp_path, observer=events, rasterizer=explode)
    assert type(info.value) is ReportExportError
    assert isinstance(info.value.original_error, RuntimeError)
    assert events.events[-1].name == "export.failed"


def test_request_is_not_mutated(claims_data, tmp_path, today, fake_rasterizer):
    import copy
    settings = create_default("claims")
    data_before, settings_before = copy.deepcopy(claims_data), copy.deepcopy(settings)
    export_report(ReportRequest("claims", claims_data, CONTRACT, settings), tmp_path,
                  today=today, rasterizer=fake_rasterizer)
    assert claims_data == data_before
    assert settings == settings_before


def test_default_observer_logs(quantity_data, tmp_path, today, fake_rasterizer, caplog):
    caplog.set_level("INFO", logger="export_controller")
    export_report(ReportRequest("quantity", quantity_data, ContractMeta(), create_default("quantity")),
                  tmp_path, today=today, rasterizer=fake_rasterizer)
    assert "export.saved" in caplog.text
    assert Path(tmp_path / "QUANTITY_CONTRACT_2025-03-14.pdf").exists()


def test_null_monthly_amount_still_exports(financial_data, tmp_path, today):
    financial_data["monthlyBreakdown"][1]["amount"] = None
    req = ReportRequest("financial", financial_data, CONTRACT, create_default("financial"))
    result = export_report(req, tmp_path, today=today)
    assert result.page_count == 4
    assert result.path.read_bytes().startswith(b"%PDF")
