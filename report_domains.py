# report_domains.py
"""
Per-domain report strategies.

Each report type registers one ReportDomain carrying:
  * its ordered section table (flag, kind, orientation, data-presence predicate)
  * a label map (page titles and preview content items)
  * table builders (summary key/value tables and fixed-column detail tables)
  * chart spec builders (series shaped for chart_rasterizer)
  * an emptiness predicate for the whole bundle

The plan builder, the export controller and the assembler only talk to this
registry, so adding a domain means registering a new ReportDomain.

Bundle shapes (produced upstream by the aggregation layer):
    quantity   {summary, statusData, sections, items}
    claims     {claim, summary, items, allClaims, totalClaims?, avgProcessingTime?,
                statusData?, monthlyTrend?}
    financial  {statistics, cumulativeData, monthlyBreakdown, paymentTimeline}
    diary      {statistics{..., weatherDistribution}, manpowerSummary, diaries}
Any bundle may also carry chartMetadata {<chartKey>: {title, colors, datasets}},
which overrides chart titles, category colors and dataset labels and colors.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from chart_rasterizer import ChartSpec
from report_errors import UnknownReportType
from report_format import (
    format_count,
    format_currency,
    format_date,
    format_number,
    format_percent,
    status_label,
    text_cell,
)
from report_settings import SettingKey

Bundle = Mapping[str, Any]

ORIENTATIONS: Tuple[str, ...] = ("portrait", "landscape")
SECTION_KINDS: Tuple[str, ...] = ("summary", "chart", "table")

SUMMARY_HEADERS = ("Metric", "Value")
SUMMARY_WIDTHS = (0.6, 0.4)
SUMMARY_ALIGN = ("left", "right")

STATUS_COLORS: Dict[str, str] = {
    "Completed": "#10b981",
    "In Progress": "#f59e0b",
    "Not Started": "#6b7280",
    "Approved": "#10b981",
    "Certified": "#10b981",
    "Paid": "#3b82f6",
    "Submitted": "#f59e0b",
    "Draft": "#6b7280",
    "Rejected": "#ef4444",
}

WEATHER_COLORS: Dict[str, str] = {
    "Sunny": "#f59e0b",
    "Cloudy": "#6b7280",
    "Rainy": "#3b82f6",
    "Stormy": "#8b5cf6",
}


@dataclass(frozen=True)
class TableContent:
    headers: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...]
    widths: Tuple[float, ...]
    align: Tuple[str, ...]

    @property
    def is_empty(self) -> bool:
        return not self.rows


@dataclass(frozen=True)
class SectionRule:
    key: str
    flag: Optional[str]  # None: detail list that follows any selected section
    kind: str            # "summary" | "chart" | "table"
    orientation: str
    present: Callable[[Bundle], bool]

    def __post_init__(self) -> None:
        if self.orientation not in ORIENTATIONS:
            raise ValueError(f"section {self.key!r}: bad orientation {self.orientation!r}")
        if self.kind not in SECTION_KINDS:
            raise ValueError(f"section {self.key!r}: bad kind {self.kind!r}")

    @property
    def has_chart(self) -> bool:
        return self.kind == "chart"


@dataclass(frozen=True)
class ReportDomain:
    report_type: str
    document_title: str
    sections: Tuple[SectionRule, ...]
    labels: Mapping[str, Tuple[str, Tuple[str, ...]]]
    tables: Mapping[str, Callable[[Bundle], TableContent]] = field(default_factory=dict)
    charts: Mapping[str, Callable[[Bundle], ChartSpec]] = field(default_factory=dict)
    is_empty: Callable[[Bundle], bool] = lambda data: not data

    def label_for(self, section: str) -> Tuple[str, Tuple[str, ...]]:
        return self.labels[section]

    def build_table(self, section: str, data: Bundle) -> TableContent:
        return self.tables[section](data or {})

    def build_chart_spec(self, section: str, data: Bundle) -> ChartSpec:
        return self.charts[section](data or {})


# ------------------------------ bundle helpers ------------------------------

def _dict(data: Bundle, key: str) -> Mapping[str, Any]:
    v = (data or {}).get(key)
    return v if isinstance(v, Mapping) else {}


def _list(data: Bundle, key: str) -> List[Any]:
    v = (data or {}).get(key)
    return list(v) if isinstance(v, (list, tuple)) else []


def _num(value: Any) -> float:
    v = pd.to_numeric(value, errors="coerce")
    return 0.0 if v is None or pd.isna(v) else float(v)


def _has_positive(rows: Sequence[Any], key: str) -> bool:
    return any(isinstance(r, Mapping) and _num(r.get(key)) > 0 for r in rows)


def _pick(row: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if row.get(k) not in (None, ""):
            return row.get(k)
    return None


def _summary(rows: Sequence[Tuple[str, str]]) -> TableContent:
    return TableContent(SUMMARY_HEADERS, tuple(tuple(r) for r in rows), SUMMARY_WIDTHS, SUMMARY_ALIGN)


def _detail(headers: Sequence[str], widths: Sequence[float], align: Sequence[str],
            rows: Sequence[Sequence[str]]) -> TableContent:
    return TableContent(tuple(headers), tuple(tuple(r) for r in rows), tuple(widths), tuple(align))


def _distribution(entries: Any) -> List[Dict[str, Any]]:
    """Pie series from either [{name|label, value}] or {name: value}."""
    if isinstance(entries, Mapping):
        return [{"label": str(k), "value": v} for k, v in entries.items()]
    out = []
    for e in entries or []:
        if isinstance(e, Mapping):
            out.append({"label": _pick(e, "label", "name"), "value": e.get("value")})
        else:
            out.append(e)  # left for the rasterizer to reject
    return out


def _monthly_series(rows: Sequence[Any]) -> List[Dict[str, Any]]:
    out = []
    for r in rows:
        if isinstance(r, Mapping):
            out.append({"category": _pick(r, "month", "category"), "count": r.get("count"), "amount": r.get("amount")})
        else:
            out.append(r)
    return out


# chartMetadata dataset keys that differ from the ChartSpec metric names
_METRIC_KEYS: Dict[str, str] = {
    "cumulative": "value",
    "avgWorkers": "average",
    "totalWorkers": "total",
}


def _with_metadata(spec: ChartSpec, data: Bundle, chart_key: str) -> ChartSpec:
    """
    Layer the bundle's chartMetadata[chart_key] over a default spec.

    Uses `title`, the `colors` category map and each dataset's `label` and
    `color`. Anything missing keeps the default.
    """
    meta = _dict(_dict(data, "chartMetadata"), chart_key)
    if not meta:
        return spec
    color_map = dict(spec.color_map)
    metric_labels = dict(spec.metric_labels)
    colors = meta.get("colors")
    if isinstance(colors, Mapping):
        color_map.update({str(k): str(v) for k, v in colors.items() if v})
    for ds in meta.get("datasets") or []:
        if not isinstance(ds, Mapping) or not ds.get("key"):
            continue
        metric = _METRIC_KEYS.get(ds["key"], ds["key"])
        if ds.get("label"):
            metric_labels[metric] = str(ds["label"])
        if ds.get("color"):
            color_map[metric] = str(ds["color"])
    return replace(spec, title=str(meta.get("title") or spec.title),
                   color_map=color_map, metric_labels=metric_labels)


# --------------------------------- quantity ---------------------------------

def _quantity_empty(data: Bundle) -> bool:
    summary = _dict(data, "summary")
    return (_num(summary.get("total")) == 0
            and not _list(data, "items")
            and not _list(data, "sections")
            and not _has_positive(_list(data, "statusData"), "value"))


def _quantity_summary(data: Bundle) -> TableContent:
    s = _dict(data, "summary")
    return _summary([
        ("Total Items", format_count(s.get("total"))),
        ("Completed", format_count(s.get("completed"))),
        ("In Progress", format_count(s.get("inProgress"))),
        ("Not Started", format_count(s.get("notStarted"))),
        ("Progress", format_percent(s.get("completionPercentage"))),
    ])


def _quantity_sections(data: Bundle) -> TableContent:
    rows = []
    for sec in _list(data, "sections"):
        if not isinstance(sec, Mapping):
            continue
        label = " - ".join(p for p in (text_cell(sec.get("number"), ""), text_cell(sec.get("title"), "")) if p)
        rows.append((
            label or "-",
            format_count(sec.get("totalItems")),
            format_count(sec.get("completedItems")),
            format_percent(sec.get("progress")),
        ))
    return _detail(("Section", "Total", "Done", "Progress"), (0.55, 0.15, 0.15, 0.15),
                   ("left", "right", "right", "right"), rows)


def _quantity_items(data: Bundle) -> TableContent:
    rows = []
    for it in _list(data, "items"):
        if not isinstance(it, Mapping):
            continue
        rows.append((
            text_cell(it.get("number")),
            text_cell(it.get("description")),
            format_number(it.get("quantity"), 2),
            format_number(it.get("quantityDone"), 2),
            text_cell(it.get("unit")),
            format_percent(it.get("percentageComplete")),
        ))
    return _detail(("Item", "Description", "Qty", "Done", "Unit", "%"),
                   (0.10, 0.42, 0.14, 0.14, 0.08, 0.12),
                   ("left", "left", "right", "right", "center", "right"), rows)


def _quantity_status_chart(data: Bundle) -> ChartSpec:
    spec = ChartSpec(kind="pie", series=tuple(_distribution(_list(data, "statusData"))),
                     title="Status Distribution", color_map=STATUS_COLORS)
    return _with_metadata(spec, data, "statusChart")


QUANTITY = ReportDomain(
    report_type="quantity",
    document_title="BOQ PROGRESS REPORT",
    sections=(
        SectionRule("summary", SettingKey.INCLUDE_SUMMARY.value, "summary", "portrait",
                    lambda d: bool(_dict(d, "summary"))),
        SectionRule("status_chart", SettingKey.INCLUDE_STATUS_CHART.value, "chart", "landscape",
                    lambda d: _has_positive(_distribution(_list(d, "statusData")), "value")),
        SectionRule("section_progress", SettingKey.INCLUDE_SECTION_PROGRESS.value, "table", "portrait",
                    lambda d: bool(_list(d, "sections"))),
        SectionRule("items", SettingKey.INCLUDE_ITEMS.value, "table", "portrait",
                    lambda d: bool(_list(d, "items"))),
    ),
    labels={
        "summary": ("BOQ Summary", ("Total items", "Completed items", "In progress items",
                                    "Not started items", "Completion percentage")),
        "status_chart": ("Status Distribution", ("Pie chart showing completion status",
                                                 "Color-coded by progress", "Legend with percentages")),
        "section_progress": ("Section Progress", ("Section number and title", "Total items per section",
                                                  "Completed items", "Progress percentage")),
        "items": ("Item Details", ("Item number", "Description", "Quantity", "Quantity done",
                                   "Unit", "Progress percentage")),
    },
    tables={
        "summary": _quantity_summary,
        "section_progress": _quantity_sections,
        "items": _quantity_items,
    },
    charts={"status_chart": _quantity_status_chart},
    is_empty=_quantity_empty,
)


# ---------------------------------- claims ----------------------------------

def _claims_count(data: Bundle) -> float:
    if data.get("totalClaims") is not None:
        return _num(data.get("totalClaims"))
    return float(len(_list(data, "allClaims")))


def _claims_empty(data: Bundle) -> bool:
    return (_claims_count(data) == 0
            and not _list(data, "allClaims")
            and not _list(data, "items")
            and not _has_positive(_distribution(_list(data, "statusData")), "value"))


def _claims_summary(data: Bundle) -> TableContent:
    s = _dict(data, "summary")
    rows = [
        ("Total Claims", format_count(_claims_count(data))),
        ("Total Claimed (RM)", format_currency(s.get("totalClaimed"))),
        ("Total Certified (RM)", format_currency(s.get("totalCertified"))),
        ("Balance (RM)", format_currency(s.get("balance"))),
    ]
    if data.get("avgProcessingTime") is not None:
        rows.append(("Avg Processing Time", f"{format_number(data.get('avgProcessingTime'), 1)} days"))
    status = [e for e in _distribution(_list(data, "statusData")) if isinstance(e, Mapping)]
    if status:
        rows.append(("Status Breakdown", ""))
        rows.extend((f"   {text_cell(e.get('label'))}", format_count(e.get("value"))) for e in status)
    return _summary(rows)


def _claims_status_chart(data: Bundle) -> ChartSpec:
    spec = ChartSpec(kind="pie", series=tuple(_distribution(_list(data, "statusData"))),
                     title="Claims by Status", color_map=STATUS_COLORS)
    return _with_metadata(spec, data, "statusChart")


def _claims_monthly_chart(data: Bundle) -> ChartSpec:
    spec = ChartSpec(kind="bar", series=tuple(_monthly_series(_list(data, "monthlyTrend"))),
                     title="Monthly Claims Trend",
                     metric_labels={"count": "Claims", "amount": "Claim Amount (RM)"})
    return _with_metadata(spec, data, "monthlyTrend")


def _claims_items(data: Bundle) -> TableContent:
    rows = []
    for it in _list(data, "items"):
        if not isinstance(it, Mapping):
            continue
        rows.append((
            text_cell(it.get("number")),
            text_cell(it.get("description")),
            format_currency(it.get("claimedAmount")),
            format_currency(it.get("certifiedAmount")),
            status_label(it.get("status")),
        ))
    return _detail(("Item", "Description", "Claimed (RM)", "Certified (RM)", "Status"),
                   (0.10, 0.40, 0.18, 0.18, 0.14),
                   ("left", "left", "right", "right", "center"), rows)


def _claims_list(data: Bundle) -> TableContent:
    rows = []
    for c in _list(data, "allClaims"):
        if not isinstance(c, Mapping):
            continue
        rows.append((
            text_cell(_pick(c, "claimNumber", "number")),
            text_cell(_pick(c, "title", "claimTitle")),
            format_date(_pick(c, "submissionDate", "date")),
            format_currency(_pick(c, "claimAmount", "amount")),
            status_label(c.get("status"), default="draft"),
        ))
    return _detail(("No.", "Title", "Date", "Amount (RM)", "Status"),
                   (0.12, 0.40, 0.14, 0.19, 0.15),
                   ("left", "left", "center", "right", "center"), rows)


CLAIMS = ReportDomain(
    report_type="claims",
    document_title="CLAIMS SUMMARY REPORT",
    sections=(
        SectionRule("summary", SettingKey.INCLUDE_SUMMARY.value, "summary", "portrait",
                    lambda d: bool(_dict(d, "summary")) or d.get("totalClaims") is not None
                    or bool(_list(d, "statusData"))),
        SectionRule("status_chart", SettingKey.INCLUDE_STATUS_CHART.value, "chart", "landscape",
                    lambda d: _has_positive(_distribution(_list(d, "statusData")), "value")),
        SectionRule("monthly_trend", SettingKey.INCLUDE_SECTION_PROGRESS.value, "chart", "landscape",
                    lambda d: bool(_list(d, "monthlyTrend"))),
        SectionRule("items", SettingKey.INCLUDE_ITEMS.value, "table", "portrait",
                    lambda d: bool(_list(d, "items"))),
        SectionRule("claims_list", None, "table", "portrait",
                    lambda d: bool(_list(d, "allClaims"))),
    ),
    labels={
        "summary": ("Claims Overview", ("Total claims", "Total claimed, certified and balance",
                                        "Average processing time", "Status breakdown")),
        "status_chart": ("Claims by Status", ("Pie chart showing claims by status",
                                              "Draft, Submitted, Approved counts", "Legend with percentages")),
        "monthly_trend": ("Monthly Claims Trend", ("Bar chart showing monthly claims",
                                                   "Claims count and amount per month", "Trend analysis")),
        "items": ("Claim Items", ("Item number", "Description", "Claimed amount",
                                  "Certified amount", "Status")),
        "claims_list": ("Claims List", ("Claim number", "Claim title", "Submission date",
                                        "Claim amount", "Status")),
    },
    tables={
        "summary": _claims_summary,
        "items": _claims_items,
        "claims_list": _claims_list,
    },
    charts={
        "status_chart": _claims_status_chart,
        "monthly_trend": _claims_monthly_chart,
    },
    is_empty=_claims_empty,
)


# --------------------------------- financial --------------------------------

def _financial_empty(data: Bundle) -> bool:
    stats = _dict(data, "statistics")
    return (_num(stats.get("totalClaims")) == 0
            and not _list(data, "paymentTimeline")
            and not _list(data, "cumulativeData")
            and not _list(data, "monthlyBreakdown"))


def _financial_summary(data: Bundle) -> TableContent:
    s = _dict(data, "statistics")
    return _summary([
        ("Total Claims", format_count(s.get("totalClaims"))),
        ("Total Claimed (RM)", format_currency(s.get("totalClaimAmount"))),
        ("Total Paid (RM)", format_currency(s.get("totalPaid"))),
        ("Retention Held (RM)", format_currency(s.get("totalRetention"))),
        ("Contract Value (RM)", format_currency(s.get("contractValue"))),
        ("Progress", format_percent(s.get("progressPercentage"))),
    ])


def _financial_cumulative_chart(data: Bundle) -> ChartSpec:
    series = []
    for r in _list(data, "cumulativeData"):
        if isinstance(r, Mapping):
            series.append({"date": r.get("date"), "value": _pick(r, "cumulative", "value")})
        else:
            series.append(r)
    spec = ChartSpec(kind="line", series=tuple(series), title="Cumulative Claim Amount",
                     metric_labels={"value": "Cumulative Amount (RM)"})
    return _with_metadata(spec, data, "cumulativeChart")


def _financial_monthly_chart(data: Bundle) -> ChartSpec:
    spec = ChartSpec(kind="bar", series=tuple(_monthly_series(_list(data, "monthlyBreakdown"))),
                     title="Monthly Claims Breakdown",
                     metric_labels={"count": "Claims", "amount": "Claim Amount (RM)"})
    return _with_metadata(spec, data, "monthlyBreakdown")


def _payment_timeline(data: Bundle) -> TableContent:
    rows = []
    for p in _list(data, "paymentTimeline"):
        if not isinstance(p, Mapping):
            continue
        rows.append((
            text_cell(p.get("claimNumber")),
            format_date(p.get("claimDate")),
            format_currency(p.get("amount")),
            format_currency(p.get("certified")),
            format_currency(p.get("retention")),
            status_label(p.get("status")),
        ))
    return _detail(("Claim No.", "Date", "Amount (RM)", "Certified (RM)", "Retention (RM)", "Status"),
                   (0.13, 0.14, 0.19, 0.19, 0.19, 0.16),
                   ("left", "center", "right", "right", "right", "center"), rows)


FINANCIAL = ReportDomain(
    report_type="financial",
    document_title="FINANCIAL REPORT",
    sections=(
        SectionRule("summary", SettingKey.INCLUDE_SUMMARY.value, "summary", "portrait",
                    lambda d: bool(_dict(d, "statistics"))),
        SectionRule("cumulative", SettingKey.INCLUDE_STATUS_CHART.value, "chart", "landscape",
                    lambda d: bool(_list(d, "cumulativeData"))),
        SectionRule("monthly_breakdown", SettingKey.INCLUDE_SECTION_PROGRESS.value, "chart", "landscape",
                    lambda d: bool(_list(d, "monthlyBreakdown"))),
        SectionRule("payment_timeline", None, "table", "portrait",
                    lambda d: bool(_list(d, "paymentTimeline"))),
    ),
    labels={
        "summary": ("Financial Overview", ("Total claims", "Total claimed amount", "Total paid",
                                           "Retention held", "Contract value", "Progress percentage")),
        "cumulative": ("Cumulative Claim Amount", ("Line chart showing cumulative progress",
                                                   "Total claimed over time", "Trend visualization")),
        "monthly_breakdown": ("Monthly Claims Breakdown", ("Bar chart showing monthly breakdown",
                                                           "Claims count and amount", "Monthly comparison")),
        "payment_timeline": ("Payment Timeline", ("Claim number", "Date", "Amount", "Certified",
                                                  "Retention", "Status")),
    },
    tables={
        "summary": _financial_summary,
        "payment_timeline": _payment_timeline,
    },
    charts={
        "cumulative": _financial_cumulative_chart,
        "monthly_breakdown": _financial_monthly_chart,
    },
    is_empty=_financial_empty,
)


# ----------------------------------- diary ----------------------------------

def _weather(data: Bundle) -> List[Dict[str, Any]]:
    return _distribution(_dict(data, "statistics").get("weatherDistribution") or {})


def _manpower(data: Bundle) -> List[Dict[str, Any]]:
    out = []
    for category, info in _dict(data, "manpowerSummary").items():
        info = info if isinstance(info, Mapping) else {}
        out.append({"category": str(category), "average": info.get("avgWorkers"), "total": info.get("totalWorkers")})
    return out


def _diary_empty(data: Bundle) -> bool:
    return _num(_dict(data, "statistics").get("totalDiaries")) == 0 and not _list(data, "diaries")


def _diary_summary(data: Bundle) -> TableContent:
    s = _dict(data, "statistics")
    return _summary([
        ("Total Diaries", format_count(s.get("totalDiaries"))),
        ("Total Photos", format_count(s.get("totalPhotos"))),
        ("Issues Reported", format_count(s.get("issuesCount"))),
    ])


def _diary_weather_chart(data: Bundle) -> ChartSpec:
    spec = ChartSpec(kind="pie", series=tuple(_weather(data)), title="Weather Distribution",
                     color_map=WEATHER_COLORS)
    return _with_metadata(spec, data, "weatherChart")


def _diary_manpower_chart(data: Bundle) -> ChartSpec:
    spec = ChartSpec(kind="dualBar", series=tuple(_manpower(data)), title="Manpower by Trade",
                     metric_labels={"average": "Avg Workers / Day", "total": "Total Workers"})
    return _with_metadata(spec, data, "manpowerChart")


def _diary_list(data: Bundle) -> TableContent:
    rows = []
    for d in _list(data, "diaries"):
        if not isinstance(d, Mapping):
            continue
        temp = d.get("temperature")
        rows.append((
            format_date(d.get("date")),
            text_cell(d.get("weather")),
            f"{text_cell(temp)}°C" if temp not in (None, "") else "-",
            format_count(d.get("manpower")),
            format_count(d.get("photoCount")),
            status_label(d.get("status"), default="draft"),
        ))
    return _detail(("Date", "Weather", "Temp.", "Manpower", "Photos", "Status"),
                   (0.17, 0.19, 0.13, 0.16, 0.13, 0.22),
                   ("center", "left", "center", "right", "right", "center"), rows)


DIARY = ReportDomain(
    report_type="diary",
    document_title="DIARY SUMMARY REPORT",
    sections=(
        SectionRule("summary", SettingKey.INCLUDE_SUMMARY.value, "summary", "portrait",
                    lambda d: bool(_dict(d, "statistics"))),
        SectionRule("weather", SettingKey.INCLUDE_STATUS_CHART.value, "chart", "landscape",
                    lambda d: _has_positive(_weather(d), "value")),
        SectionRule("manpower", SettingKey.INCLUDE_SECTION_PROGRESS.value, "chart", "landscape",
                    lambda d: bool(_dict(d, "manpowerSummary"))),
        SectionRule("diaries", None, "table", "portrait",
                    lambda d: bool(_list(d, "diaries"))),
    ),
    labels={
        "summary": ("Diary Overview", ("Total diaries", "Total photos uploaded", "Issues/delays reported")),
        "weather": ("Weather Distribution", ("Pie chart showing weather conditions",
                                             "Sunny, Cloudy, Rainy days", "Legend with percentages")),
        "manpower": ("Manpower by Trade", ("Bar chart showing manpower distribution",
                                           "Average and total workers per trade", "Resource analysis")),
        "diaries": ("All Diaries", ("Date", "Weather", "Temperature", "Manpower", "Photos", "Status")),
    },
    tables={
        "summary": _diary_summary,
        "diaries": _diary_list,
    },
    charts={
        "weather": _diary_weather_chart,
        "manpower": _diary_manpower_chart,
    },
    is_empty=_diary_empty,
)


# --------------------------------- registry ---------------------------------

DOMAINS: Dict[str, ReportDomain] = {}


def register_domain(domain: ReportDomain) -> ReportDomain:
    DOMAINS[domain.report_type] = domain
    return domain


def get_domain(report_type: str) -> ReportDomain:
    try:
        return DOMAINS[report_type]
    except (KeyError, TypeError):
        raise UnknownReportType(report_type) from None


for _domain in (QUANTITY, CLAIMS, FINANCIAL, DIARY):
    register_domain(_domain)
