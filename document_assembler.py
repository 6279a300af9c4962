# document_assembler.py
"""
Document assembly for report exports and previews.

Two phases, both pure until the final draw:

  1. layout_pages() / layout_preview()
       turn page content into immutable LaidOutPage values: long tables are
       split across continuation pages (header row repeated), pages whose
       content vanished since planning are dropped. The page count N is
       known once this phase returns.
  2. stamp_footers()
       a pure fold that attaches "Generated: dd/mm/yyyy" and "Page X of N"
       to every laid-out page.

render_pdf() then draws the stamped pages onto a reportlab canvas (A4,
orientation per page, header band, body, footer band) and returns the PDF
bytes. Nothing is written to disk here; saving belongs to the export
controller.

API
    from document_assembler import ReportHeader, PageContent, assemble_document
    doc = assemble_document(header, contents, settings, generated_on=date.today())
    doc.pdf, doc.page_count
"""

from __future__ import annotations

import datetime as dt
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from PIL import Image
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from page_plan import PageDescriptor
from report_domains import TableContent
from report_errors import EmptyDataset
from report_settings import SettingKey, get_flag

logger = logging.getLogger(__name__)


# ----------------------------- layout constants -------------------------------
LAYOUT: Dict[str, Any] = {
    "margin_l": 36,
    "margin_r": 36,
    "margin_t": 72,   # header band
    "margin_b": 48,   # footer band
    "title_gap": 26,  # page title above the body
    "row_h": 16,
    "header_row_h": 18,
    "cell_pad": 4,
    "font": "Helvetica",
    "font_bold": "Helvetica-Bold",
    "doc_title_size": 14,
    "meta_size": 9,
    "page_title_size": 12,
    "cell_size": 8,
    "footer_size": 8,
    "bullet_size": 10,
    "table_header_color": "#3b82f6",
    "stripe_color": "#f3f4f6",
    "grid_color": "#d1d5db",
    "band_color": "#1f2937",
}

CONTINUED_SUFFIX = " (cont.)"


def _cfg(config: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    cfg = dict(LAYOUT)
    if config:
        cfg.update({k: v for k, v in config.items() if k in cfg})
    return cfg


def page_size(orientation: str) -> Tuple[float, float]:
    return landscape(A4) if orientation == "landscape" else A4


def content_box(orientation: str, config: Optional[Mapping[str, Any]] = None) -> Tuple[float, float, float, float]:
    """(x, y, w, h) of the body area below the page title, in points."""
    cfg = _cfg(config)
    pw, ph = page_size(orientation)
    x = cfg["margin_l"]
    y = cfg["margin_b"]
    w = pw - cfg["margin_l"] - cfg["margin_r"]
    h = ph - cfg["margin_t"] - cfg["margin_b"] - cfg["title_gap"]
    return x, y, w, h


def rows_per_page(orientation: str, config: Optional[Mapping[str, Any]] = None) -> int:
    cfg = _cfg(config)
    _x, _y, _w, h = content_box(orientation, cfg)
    return max(1, int((h - cfg["header_row_h"]) // cfg["row_h"]))


def _fit_into(w: float, h: float, box_w: float, box_h: float) -> Tuple[float, float]:
    """Scale (w,h) to fit inside (box_w,box_h) keeping aspect, return new (w,h)."""
    if w <= 0 or h <= 0:
        return 0, 0
    s = min(box_w / w, box_h / h)
    return w * s, h * s


# --------------------------------- values -------------------------------------
@dataclass(frozen=True)
class ReportHeader:
    report_type: str
    title: str
    contract_number: Optional[str] = None
    project_name: Optional[str] = None
    show_contract_info: bool = True

    def meta_line(self) -> str:
        if not self.show_contract_info:
            return ""
        parts = []
        if self.contract_number:
            parts.append(f"Contract: {self.contract_number}")
        if self.project_name:
            parts.append(f"Project: {self.project_name}")
        return "   |   ".join(parts)


@dataclass(frozen=True)
class PageContent:
    descriptor: PageDescriptor
    table: Optional[TableContent] = None
    image: Optional[bytes] = None

    @property
    def is_empty(self) -> bool:
        if self.descriptor.has_chart:
            return not self.image
        return self.table is None or self.table.is_empty


@dataclass(frozen=True)
class TableBlock:
    headers: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...]
    widths: Tuple[float, ...]
    align: Tuple[str, ...]


@dataclass(frozen=True)
class ImageBlock:
    png: bytes
    width_px: int
    height_px: int

    @property
    def is_square(self) -> bool:
        return self.width_px == self.height_px


@dataclass(frozen=True)
class BulletBlock:
    items: Tuple[str, ...]


@dataclass(frozen=True)
class PlaceholderBlock:
    label: str


Block = Union[TableBlock, ImageBlock, BulletBlock, PlaceholderBlock]


@dataclass(frozen=True)
class LaidOutPage:
    section: str
    title: str
    orientation: str
    blocks: Tuple[Block, ...]
    footer_text: str = ""


@dataclass(frozen=True)
class StampedPage:
    page: LaidOutPage
    number: int
    total: int
    generated_text: str = ""
    page_text: str = ""


@dataclass(frozen=True)
class AssembledDocument:
    pdf: bytes
    page_count: int
    skipped: Tuple[str, ...] = field(default_factory=tuple)


# --------------------------- phase 1: layout ----------------------------------
def _image_block(png: bytes) -> ImageBlock:
    with Image.open(io.BytesIO(png)) as img:
        w, h = img.size
    return ImageBlock(png=png, width_px=w, height_px=h)


def _split_table(table: TableContent, per_page: int) -> List[TableBlock]:
    chunks = [table.rows[i:i + per_page] for i in range(0, len(table.rows), per_page)]
    return [TableBlock(table.headers, tuple(chunk), table.widths, table.align) for chunk in chunks]


def layout_pages(contents: Sequence[PageContent], config: Optional[Mapping[str, Any]] = None
                 ) -> Tuple[List[LaidOutPage], List[str]]:
    """
    Lay out populated page content.

    Returns (pages, skipped_sections). A section whose table has no rows or
    whose chart has no image is skipped here even if the plan listed it.
    """
    pages: List[LaidOutPage] = []
    skipped: List[str] = []
    for content in contents:
        d = content.descriptor
        if content.is_empty:
            logger.info("skipping %s: no content at assembly time", d.section)
            skipped.append(d.section)
            continue
        if d.has_chart:
            pages.append(LaidOutPage(d.section, d.title, d.orientation,
                                     (_image_block(content.image),), d.footer_text))
            continue
        for i, block in enumerate(_split_table(content.table, rows_per_page(d.orientation, config))):
            title = d.title if i == 0 else d.title + CONTINUED_SUFFIX
            pages.append(LaidOutPage(d.section, title, d.orientation, (block,), d.footer_text))
    return pages, skipped


def layout_preview(plan: Sequence[PageDescriptor]) -> List[LaidOutPage]:
    """Placeholder pages mirroring the plan: content bullets plus a Chart/Table box."""
    pages = []
    for d in plan:
        blocks: List[Block] = [BulletBlock(tuple(d.content_items))]
        if d.has_chart:
            blocks.append(PlaceholderBlock("Chart"))
        if d.has_table:
            blocks.append(PlaceholderBlock("Table"))
        pages.append(LaidOutPage(d.section, d.title, d.orientation, tuple(blocks), d.footer_text))
    return pages


# --------------------------- phase 2: footers ---------------------------------
def stamp_footers(pages: Sequence[LaidOutPage], settings: Mapping[str, Any],
                  generated_on: dt.date) -> List[StampedPage]:
    """Attach footer text now that the final page count is known."""
    total = len(pages)
    show_date = get_flag(settings, SettingKey.SHOW_GENERATED_DATE)
    show_numbers = get_flag(settings, SettingKey.SHOW_PAGE_NUMBERS)
    generated = f"Generated: {generated_on.strftime('%d/%m/%Y')}" if show_date else ""
    return [
        StampedPage(
            page=page,
            number=n,
            total=total,
            generated_text=generated,
            page_text=f"Page {n} of {total}" if show_numbers else "",
        )
        for n, page in enumerate(pages, 1)
    ]


# --------------------------------- drawing ------------------------------------
def _clip(text: str, font: str, size: float, width: float) -> str:
    """Trim `text` with an ellipsis until it fits `width` points."""
    text = str(text)
    if width <= 0:
        return ""
    if stringWidth(text, font, size) <= width:
        return text
    # longest prefix that still fits next to the ellipsis
    lo, hi = 0, len(text)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if stringWidth(text[:mid] + "...", font, size) <= width:
            lo = mid
        else:
            hi = mid - 1
    return text[:lo] + "..." if lo else ""


def _draw_header(c: canvas.Canvas, header: ReportHeader, page: LaidOutPage, cfg: Dict[str, Any]) -> None:
    pw, ph = page_size(page.orientation)
    x0 = cfg["margin_l"]
    usable = pw - cfg["margin_l"] - cfg["margin_r"]
    top = ph - cfg["margin_t"]

    c.setFillColor(colors.HexColor(cfg["band_color"]))
    c.setFont(cfg["font_bold"], cfg["doc_title_size"])
    c.drawString(x0, top + 34, _clip(header.title, cfg["font_bold"], cfg["doc_title_size"], usable))

    meta = header.meta_line()
    if meta:
        c.setFont(cfg["font"], cfg["meta_size"])
        c.setFillColor(colors.grey)
        c.drawString(x0, top + 20, _clip(meta, cfg["font"], cfg["meta_size"], usable))

    c.setStrokeColor(colors.lightgrey)
    c.setLineWidth(0.5)
    c.line(x0, top + 10, pw - cfg["margin_r"], top + 10)

    c.setFillColor(colors.black)
    c.setFont(cfg["font_bold"], cfg["page_title_size"])
    c.drawString(x0, top - 14, _clip(page.title, cfg["font_bold"], cfg["page_title_size"], usable))


def _draw_footer(c: canvas.Canvas, stamped: StampedPage, cfg: Dict[str, Any]) -> None:
    pw, _ph = page_size(stamped.page.orientation)
    y = cfg["margin_b"] - 24
    c.setStrokeColor(colors.lightgrey)
    c.setLineWidth(0.5)
    c.line(cfg["margin_l"], cfg["margin_b"] - 10, pw - cfg["margin_r"], cfg["margin_b"] - 10)

    c.setFont(cfg["font"], cfg["footer_size"])
    c.setFillColor(colors.grey)
    if stamped.generated_text:
        c.drawString(cfg["margin_l"], y, stamped.generated_text)
    if stamped.page.footer_text:
        c.drawCentredString(pw / 2, y, stamped.page.footer_text[:80])
    c.setFillColor(colors.black)
    if stamped.page_text:
        c.drawRightString(pw - cfg["margin_r"], y, stamped.page_text)


def _cell_x(align: str, left: float, width: float, text_w: float, pad: float) -> float:
    if align == "right":
        return left + width - pad - text_w
    if align == "center":
        return left + (width - text_w) / 2
    return left + pad


def _draw_table(c: canvas.Canvas, block: TableBlock, box: Tuple[float, float, float, float], cfg: Dict[str, Any]) -> None:
    x, _y, w, h = box
    top = _y + h
    total = sum(block.widths) or 1.0
    col_w = [w * f / total for f in block.widths]
    pad = cfg["cell_pad"]

    def draw_row(cells: Sequence[str], y_top: float, row_h: float, font: str, fill: Optional[str], text_color) -> None:
        if fill:
            c.setFillColor(colors.HexColor(fill))
            c.rect(x, y_top - row_h, w, row_h, stroke=0, fill=1)
        c.setStrokeColor(colors.HexColor(cfg["grid_color"]))
        c.setLineWidth(0.4)
        c.rect(x, y_top - row_h, w, row_h, stroke=1, fill=0)
        c.setFont(font, cfg["cell_size"])
        c.setFillColor(text_color)
        left = x
        for i, cw in enumerate(col_w):
            text = _clip(cells[i] if i < len(cells) else "", font, cfg["cell_size"], cw - 2 * pad)
            tw = stringWidth(text, font, cfg["cell_size"])
            align = block.align[i] if i < len(block.align) else "left"
            c.drawString(_cell_x(align, left, cw, tw, pad), y_top - row_h + (row_h - cfg["cell_size"]) / 2 + 1, text)
            left += cw

    hdr_h = cfg["header_row_h"]
    draw_row(block.headers, top, hdr_h, cfg["font_bold"], cfg["table_header_color"], colors.white)
    y_top = top - hdr_h
    for n, row in enumerate(block.rows):
        draw_row(row, y_top, cfg["row_h"], cfg["font"], cfg["stripe_color"] if n % 2 else None, colors.black)
        y_top -= cfg["row_h"]


def _draw_image(c: canvas.Canvas, block: ImageBlock, box: Tuple[float, float, float, float]) -> None:
    x, y, w, h = box
    tw, th = _fit_into(block.width_px, block.height_px, w, h)
    if tw <= 0 or th <= 0:
        return
    left = x + (w - tw) / 2
    # square charts sit in the middle of the box, wide ones hang from the top
    bottom = y + (h - th) / 2 if block.is_square else y + h - th
    c.drawImage(ImageReader(io.BytesIO(block.png)), left, bottom, tw, th, mask="auto")


def _draw_bullets(c: canvas.Canvas, block: BulletBlock, box: Tuple[float, float, float, float], cfg: Dict[str, Any]) -> float:
    x, y, w, h = box
    top = y + h
    c.setFont(cfg["font"], cfg["bullet_size"])
    c.setFillColor(colors.black)
    for item in block.items:
        top -= cfg["bullet_size"] + 5
        c.drawString(x + 12, top, _clip(f"• {item}", cfg["font"], cfg["bullet_size"], w - 12))
    return top - 12


def _draw_placeholder(c: canvas.Canvas, block: PlaceholderBlock, x: float, y_top: float, w: float, h: float, cfg: Dict[str, Any]) -> None:
    c.setStrokeColor(colors.HexColor(cfg["grid_color"]))
    c.setFillColor(colors.HexColor(cfg["stripe_color"]))
    c.setDash(4, 3)
    c.rect(x, y_top - h, w, h, stroke=1, fill=1)
    c.setDash()
    c.setFillColor(colors.grey)
    c.setFont(cfg["font_bold"], cfg["page_title_size"])
    c.drawCentredString(x + w / 2, y_top - h / 2 - 4, block.label)


def _draw_body(c: canvas.Canvas, page: LaidOutPage, cfg: Dict[str, Any]) -> None:
    box = content_box(page.orientation, cfg)
    x, y, w, h = box
    cursor = y + h
    for block in page.blocks:
        if isinstance(block, TableBlock):
            _draw_table(c, block, box, cfg)
        elif isinstance(block, ImageBlock):
            _draw_image(c, block, box)
        elif isinstance(block, BulletBlock):
            cursor = _draw_bullets(c, block, (x, y, w, cursor - y), cfg)
        elif isinstance(block, PlaceholderBlock):
            ph = min(160.0, max(40.0, cursor - y - 12))
            _draw_placeholder(c, block, x, cursor, w, ph, cfg)
            cursor -= ph + 12


def render_pdf(header: ReportHeader, pages: Sequence[StampedPage], config: Optional[Mapping[str, Any]] = None) -> bytes:
    """Draw stamped pages and return the PDF bytes (byte-stable for equal input)."""
    cfg = _cfg(config)
    bio = io.BytesIO()
    c = canvas.Canvas(bio, pagesize=A4, invariant=1)
    c.setTitle(header.title)
    c.setSubject(header.report_type)
    for stamped in pages:
        c.setPageSize(page_size(stamped.page.orientation))
        _draw_header(c, header, stamped.page, cfg)
        _draw_body(c, stamped.page, cfg)
        _draw_footer(c, stamped, cfg)
        c.showPage()
    c.save()
    return bio.getvalue()


# ------------------------------- entry points ---------------------------------
def assemble_document(header: ReportHeader, contents: Sequence[PageContent], settings: Mapping[str, Any],
                      generated_on: dt.date, config: Optional[Mapping[str, Any]] = None) -> AssembledDocument:
    """
    Export path: real tables and chart images.
    Raises EmptyDataset when nothing survives re-validation.
    """
    laid_out, skipped = layout_pages(contents, config)
    if not laid_out:
        raise EmptyDataset(header.report_type)
    stamped = stamp_footers(laid_out, settings, generated_on)
    pdf = render_pdf(header, stamped, config)
    logger.debug("assembled %s: %d pages, skipped %s", header.report_type, len(stamped), skipped)
    return AssembledDocument(pdf=pdf, page_count=len(stamped), skipped=tuple(skipped))


def assemble_preview(header: ReportHeader, plan: Sequence[PageDescriptor], settings: Mapping[str, Any],
                     generated_on: dt.date, config: Optional[Mapping[str, Any]] = None) -> AssembledDocument:
    """Preview path: one placeholder page per planned page, no charts drawn."""
    stamped = stamp_footers(layout_preview(plan), settings, generated_on)
    return AssembledDocument(pdf=render_pdf(header, stamped, config), page_count=len(stamped))

