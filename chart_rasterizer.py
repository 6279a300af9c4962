# chart_rasterizer.py
"""
Deterministic chart rasterization for report pages.

Each call renders one ChartSpec onto a freshly allocated matplotlib Figure
(Agg canvas, never pyplot), draws it exactly once and returns PNG bytes. No
figure, axes or canvas survives the call, so nothing leaks between charts.

Supported kinds and the series shape each one requires:
    pie      [{label|name, value}]           share of total
    bar      [{category, count, amount}]     count vs. currency, two y scales
    line     [{date, value}]                 cumulative value over ordered dates
    dualBar  [{category, average, total}]    grouped bars per category

A series that does not match its kind raises ChartContractViolation; there is
no blank or partial fallback image. A metric key that is present but null
counts as zero.

API
    from chart_rasterizer import ChartSpec, rasterize
    png = rasterize(ChartSpec(kind="pie", series=[{"label": "Done", "value": 3}], title="Status"))
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from PIL import Image

# Matplotlib (Agg, no GUI)
import matplotlib
matplotlib.use("Agg")
import matplotlib.dates as mdates  # noqa: E402
from matplotlib.backends.backend_agg import FigureCanvasAgg  # noqa: E402
from matplotlib.figure import Figure  # noqa: E402
from matplotlib.ticker import FuncFormatter  # noqa: E402

from report_errors import ChartContractViolation

logger = logging.getLogger(__name__)

CHART_KINDS: Tuple[str, ...] = ("pie", "bar", "line", "dualBar")

DEFAULTS: Dict[str, object] = {
    "dpi": 100,
    # resolution tiers: square for distributions, wide for trends
    "figsize_pie": (6, 6),
    "figsize_bar": (7, 4),
    "figsize_line": (7, 4),
    "figsize_dualBar": (7, 4),
    "palette": ["#10b981", "#f59e0b", "#6b7280", "#3b82f6", "#8b5cf6", "#ef4444"],
    "primary_color": "#3b82f6",
    "secondary_color": "#10b981",
    "title_size": 14,
    "label_size": 10,
    "tick_size": 9,
    "legend_size": 9,
    "font_family": "DejaVu Sans",
}

_REQUIRED: Dict[str, Tuple[str, ...]] = {
    "pie": ("label", "value"),
    "bar": ("category", "count", "amount"),
    "line": ("date", "value"),
    "dualBar": ("category", "average", "total"),
}

_DEFAULT_METRIC_LABELS: Dict[str, Dict[str, str]] = {
    "bar": {"count": "Count", "amount": "Amount (RM)"},
    "line": {"value": "Cumulative Amount (RM)"},
    "dualBar": {"average": "Average", "total": "Total"},
    "pie": {},
}


@dataclass(frozen=True)
class ChartSpec:
    kind: str
    series: Sequence[Mapping[str, Any]]
    title: str = ""
    color_map: Mapping[str, str] = field(default_factory=dict)
    metric_labels: Mapping[str, str] = field(default_factory=dict)


# --------------------------- Validation ---------------------------

def _series_frame(spec: ChartSpec) -> pd.DataFrame:
    """Validate `spec` and return its series as a normalized DataFrame."""
    kind = spec.kind
    if kind not in _REQUIRED:
        raise ChartContractViolation(str(kind), f"unsupported chart kind (expected one of {', '.join(CHART_KINDS)})", spec.title)
    rows = list(spec.series or [])
    if not rows:
        raise ChartContractViolation(kind, "series is empty", spec.title)
    if not all(isinstance(r, Mapping) for r in rows):
        raise ChartContractViolation(kind, "series entries must be mappings", spec.title)

    df = pd.DataFrame([dict(r) for r in rows])
    if kind == "pie" and "label" not in df.columns and "name" in df.columns:
        df = df.rename(columns={"name": "label"})
    elif kind == "pie" and "label" in df.columns and "name" in df.columns:
        df["label"] = df["label"].fillna(df["name"])

    required = _REQUIRED[kind]
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ChartContractViolation(kind, f"missing keys {missing}", spec.title)

    text_col = required[0]
    if df[text_col].isna().any():
        raise ChartContractViolation(kind, f"'{text_col}' must be set on every entry", spec.title)

    for col in required[1:]:
        # a null metric on a well-shaped row counts as zero
        vals = pd.to_numeric(df[col].where(df[col].notna(), 0), errors="coerce")
        if vals.isna().any():
            raise ChartContractViolation(kind, f"'{col}' must be numeric", spec.title)
        if (vals < 0).any():
            raise ChartContractViolation(kind, f"'{col}' must not be negative", spec.title)
        df[col] = vals.astype(float)

    if kind == "line":
        dates = pd.to_datetime(df["date"], errors="coerce")
        if dates.isna().any():
            raise ChartContractViolation(kind, "'date' must be a parseable date", spec.title)
        df["date"] = dates
        df = df.sort_values("date", kind="mergesort").reset_index(drop=True)
    else:
        df[text_col] = df[text_col].astype(str)

    if kind == "pie" and float(df["value"].sum()) <= 0:
        raise ChartContractViolation(kind, "values sum to zero", spec.title)

    return df[list(required)]


def validate_spec(spec: ChartSpec) -> None:
    """Raise ChartContractViolation if `spec` cannot be rendered as its kind."""
    _series_frame(spec)


# --------------------------- Drawing ---------------------------

def _cfg(config: Optional[Mapping[str, object]]) -> Dict[str, object]:
    cfg = dict(DEFAULTS)
    if config:
        cfg.update({k: v for k, v in config.items() if k in cfg})
    return cfg


def _colors_for_categories(categories: List[str], color_map: Mapping[str, str], palette: Sequence[str]) -> List[str]:
    return [color_map.get(c) or palette[i % len(palette)] for i, c in enumerate(categories)]


def _money_axis(ax) -> None:
    ax.yaxis.set_major_formatter(FuncFormatter(lambda v, _pos: f"{v:,.0f}"))


def _labels(spec: ChartSpec) -> Dict[str, str]:
    out = dict(_DEFAULT_METRIC_LABELS.get(spec.kind, {}))
    out.update(spec.metric_labels or {})
    return out


def _draw_pie(fig: Figure, df: pd.DataFrame, spec: ChartSpec, cfg: Dict[str, object]) -> None:
    ax = fig.add_subplot(111)
    labels = df["label"].tolist()
    values = df["value"].to_numpy()
    colors = _colors_for_categories(labels, spec.color_map, cfg["palette"])  # type: ignore[arg-type]
    wedges, _texts, _autotexts = ax.pie(
        values, colors=colors, startangle=90, counterclock=False,
        autopct=lambda p: f"{p:.1f}%" if p >= 3 else "",
        wedgeprops={"edgecolor": "white", "linewidth": 2},
        textprops={"fontsize": cfg["tick_size"]},
    )
    total = float(values.sum())
    legend = [f"{lbl} ({v / total * 100:.1f}%)" for lbl, v in zip(labels, values)]
    ax.legend(wedges, legend, loc="upper center", bbox_to_anchor=(0.5, -0.02),
              ncol=2 if len(labels) > 3 else 1, frameon=False, fontsize=cfg["legend_size"])
    ax.axis("equal")


def _draw_bar(fig: Figure, df: pd.DataFrame, spec: ChartSpec, cfg: Dict[str, object]) -> None:
    labels = _labels(spec)
    ax = fig.add_subplot(111)
    x = np.arange(len(df))
    w = 0.38
    c1 = spec.color_map.get("count") or cfg["primary_color"]
    c2 = spec.color_map.get("amount") or cfg["secondary_color"]
    b1 = ax.bar(x - w / 2, df["count"].to_numpy(), w, color=c1, label=labels["count"])
    ax.set_ylabel(labels["count"], fontsize=cfg["label_size"])
    # second, independent scale for the currency metric
    ax2 = ax.twinx()
    b2 = ax2.bar(x + w / 2, df["amount"].to_numpy(), w, color=c2, label=labels["amount"])
    ax2.set_ylabel(labels["amount"], fontsize=cfg["label_size"])
    _money_axis(ax2)
    ax.set_ylim(bottom=0)
    ax2.set_ylim(bottom=0)
    ax.set_xticks(x)
    ax.set_xticklabels(df["category"].tolist(), rotation=30, ha="right", fontsize=cfg["tick_size"])
    ax.grid(True, axis="y", linestyle="--", alpha=0.3)
    ax.legend([b1, b2], [labels["count"], labels["amount"]], loc="upper left", fontsize=cfg["legend_size"])


def _draw_line(fig: Figure, df: pd.DataFrame, spec: ChartSpec, cfg: Dict[str, object]) -> None:
    labels = _labels(spec)
    color = spec.color_map.get("value") or cfg["primary_color"]
    ax = fig.add_subplot(111)
    dates = df["date"].to_numpy()
    values = df["value"].to_numpy()
    ax.plot(dates, values, color=color, marker="o", markersize=3, linewidth=2, label=labels["value"])
    ax.fill_between(dates, values, color=color, alpha=0.12)
    ax.set_ylim(bottom=0)
    ax.set_ylabel(labels["value"], fontsize=cfg["label_size"])
    _money_axis(ax)
    ax.xaxis.set_major_locator(mdates.AutoDateLocator())
    ax.xaxis.set_major_formatter(mdates.DateFormatter("%d/%m/%Y"))
    for tick in ax.get_xticklabels():
        tick.set_rotation(30)
        tick.set_horizontalalignment("right")
    ax.grid(True, axis="y", linestyle="--", alpha=0.3)
    ax.legend(loc="upper left", fontsize=cfg["legend_size"])


def _draw_dual_bar(fig: Figure, df: pd.DataFrame, spec: ChartSpec, cfg: Dict[str, object]) -> None:
    labels = _labels(spec)
    ax = fig.add_subplot(111)
    x = np.arange(len(df))
    w = 0.38
    ax.bar(x - w / 2, df["average"].to_numpy(), w,
           color=spec.color_map.get("average") or cfg["primary_color"], label=labels["average"])
    ax.bar(x + w / 2, df["total"].to_numpy(), w,
           color=spec.color_map.get("total") or cfg["secondary_color"], label=labels["total"])
    ax.set_xticks(x)
    ax.set_xticklabels(df["category"].tolist(), rotation=30, ha="right", fontsize=cfg["tick_size"])
    ax.set_ylim(bottom=0)
    ax.grid(True, axis="y", linestyle="--", alpha=0.3)
    ax.legend(loc="upper right", fontsize=cfg["legend_size"])


_DRAWERS = {
    "pie": _draw_pie,
    "bar": _draw_bar,
    "line": _draw_line,
    "dualBar": _draw_dual_bar,
}


def _figure_to_rgb_image(fig: Figure, canvas_agg: FigureCanvasAgg) -> Image.Image:
    """Draw once and flatten RGBA onto a white background."""
    canvas_agg.draw()
    buf = np.asarray(canvas_agg.buffer_rgba())
    alpha = buf[:, :, 3:4] / 255.0
    rgb = (buf[:, :, :3] * alpha + 255 * (1 - alpha)).astype(np.uint8)
    return Image.fromarray(rgb)


def tier_for(kind: str, config: Optional[Mapping[str, object]] = None) -> Tuple[int, int]:
    """Pixel size a chart kind is rendered at by default."""
    cfg = _cfg(config)
    w_in, h_in = cfg.get(f"figsize_{kind}", cfg["figsize_bar"])  # type: ignore[misc]
    dpi = int(cfg["dpi"])  # type: ignore[arg-type]
    return int(w_in * dpi), int(h_in * dpi)


def rasterize(spec: ChartSpec, pixel_size: Optional[Tuple[int, int]] = None,
              config: Optional[Mapping[str, object]] = None) -> bytes:
    """
    Render `spec` to PNG bytes at `pixel_size` (default: the kind's tier).
    Raises ChartContractViolation before any drawing if the series is invalid.
    """
    df = _series_frame(spec)
    cfg = _cfg(config)
    dpi = int(cfg["dpi"])  # type: ignore[arg-type]
    width_px, height_px = pixel_size or tier_for(spec.kind, cfg)
    if width_px <= 0 or height_px <= 0:
        raise ValueError(f"pixel_size must be positive, got {(width_px, height_px)}")

    with matplotlib.rc_context({"font.family": cfg["font_family"]}):
        fig = Figure(figsize=(width_px / dpi, height_px / dpi), dpi=dpi, facecolor="white")
        canvas_agg = FigureCanvasAgg(fig)
        _DRAWERS[spec.kind](fig, df, spec, cfg)
        if spec.title:
            fig.suptitle(spec.title, fontsize=cfg["title_size"], fontweight="bold")
        fig.tight_layout()
        img = _figure_to_rgb_image(fig, canvas_agg)

    if img.size != (width_px, height_px):
        # Agg may round the figure size by a pixel; pin the tier exactly
        img = img.resize((width_px, height_px), Image.LANCZOS)

    out = io.BytesIO()
    img.save(out, format="PNG", optimize=False)
    logger.debug("rasterized %s chart %r at %dx%d", spec.kind, spec.title, width_px, height_px)
    return out.getvalue()
