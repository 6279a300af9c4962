# export_controller.py
"""
Export orchestration: validate -> plan -> rasterize -> assemble -> name -> save.

This is the only module with side effects (the final file write). Everything
up to the bytes of the document is done by build_report(), which the HTTP
download also uses directly.

Failure policy:
  * unknown report type            -> UnknownReportType
  * bundle without any content     -> EmptyDataset (before any chart is drawn)
  * every content section disabled -> NoSectionsSelected (rasterizer never called)
  * chart series of the wrong shape -> ChartContractViolation aborts the export
  * write failure                  -> SaveFailure, no partial file left behind
  * anything unexpected is wrapped into ReportExportError
Each export is self-contained; nothing is cached between invocations.

Pipeline progress is reported as ExportEvent values to an injectable
observer (default: log_event, which writes them to the module logger).

API
    from export_controller import ContractMeta, ReportRequest, export_report
    req = ReportRequest("claims", data, ContractMeta("C-001", "Jalan Baru"), settings)
    result = export_report(req, out_dir="exports")
    result.path, result.filename, result.page_count
"""

from __future__ import annotations

import datetime as dt
import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from chart_rasterizer import ChartSpec, rasterize
from document_assembler import (
    AssembledDocument,
    PageContent,
    ReportHeader,
    assemble_document,
)
from page_plan import PageDescriptor, build_plan, skipped_sections
from report_domains import get_domain
from report_errors import (
    EmptyDataset,
    ExportCancelled,
    NoSectionsSelected,
    ReportExportError,
    SaveFailure,
)
from report_settings import SettingKey, get_flag

logger = logging.getLogger(__name__)


# --------------------------------- values -------------------------------------
@dataclass(frozen=True)
class ContractMeta:
    number: Optional[str] = None
    project_name: Optional[str] = None


@dataclass(frozen=True)
class ReportRequest:
    report_type: str
    domain_data: Mapping[str, Any]
    contract: ContractMeta = field(default_factory=ContractMeta)
    settings: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExportEvent:
    name: str
    report_type: str
    details: Dict[str, Any] = field(default_factory=dict)


Observer = Callable[[ExportEvent], None]
Rasterizer = Callable[[ChartSpec], bytes]


def log_event(event: ExportEvent) -> None:
    level = logging.ERROR if event.name == "export.failed" else logging.INFO
    logger.log(level, "%s [%s] %s", event.name, event.report_type, event.details)


@dataclass(frozen=True)
class BuiltReport:
    filename: str
    pdf: bytes
    plan: Tuple[PageDescriptor, ...]
    page_count: int
    skipped: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ExportResult:
    path: Path
    filename: str
    page_count: int
    plan: Tuple[PageDescriptor, ...]
    skipped: Tuple[str, ...] = ()


# -------------------------------- naming --------------------------------------
_UNSAFE = re.compile(r"[\\/:*?\"<>|\s]+")


def report_filename(report_type: str, contract_number: Optional[str], on: dt.date, ext: str = "pdf") -> str:
    """{TYPE_UPPER}_{contractNumber|CONTRACT}_{yyyy-mm-dd}.{ext}"""
    number = _UNSAFE.sub("-", (contract_number or "").strip()).strip("-") or "CONTRACT"
    return f"{report_type.upper()}_{number}_{on.isoformat()}.{ext}"


# -------------------------------- building ------------------------------------
def _page_contents(request: ReportRequest, plan: List[PageDescriptor], emit: Observer,
                   rasterizer: Rasterizer, should_cancel: Optional[Callable[[], bool]]) -> List[PageContent]:
    domain = get_domain(request.report_type)
    data = request.domain_data or {}
    contents: List[PageContent] = []
    for descriptor in plan:
        if should_cancel is not None and should_cancel():
            raise ExportCancelled(request.report_type, len(contents))
        if descriptor.has_chart:
            spec = domain.build_chart_spec(descriptor.section, data)
            # one chart at a time; each call owns its own figure
            png = rasterizer(spec)
            emit(ExportEvent("chart.rasterized", request.report_type,
                             {"section": descriptor.section, "kind": spec.kind, "bytes": len(png)}))
            contents.append(PageContent(descriptor, image=png))
        else:
            contents.append(PageContent(descriptor, table=domain.build_table(descriptor.section, data)))
    return contents


def build_report(request: ReportRequest, observer: Optional[Observer] = None, today: Optional[dt.date] = None,
                 should_cancel: Optional[Callable[[], bool]] = None,
                 rasterizer: Rasterizer = rasterize) -> BuiltReport:
    """Produce the document bytes and filename without touching the filesystem."""
    emit = observer or log_event
    on = today or dt.date.today()
    domain = get_domain(request.report_type)
    data = request.domain_data or {}

    emit(ExportEvent("export.started", request.report_type, {"contract": request.contract.number}))
    if domain.is_empty(data):
        raise EmptyDataset(request.report_type)

    plan = build_plan(request.report_type, request.settings, data, request.contract.number)
    if not plan:
        raise NoSectionsSelected(request.report_type)
    emit(ExportEvent("plan.built", request.report_type, {"sections": [p.section for p in plan]}))
    for section in skipped_sections(request.report_type, request.settings, data):
        emit(ExportEvent("section.skipped", request.report_type, {"section": section, "reason": "empty"}))

    contents = _page_contents(request, plan, emit, rasterizer, should_cancel)

    header = ReportHeader(
        report_type=request.report_type,
        title=domain.document_title,
        contract_number=request.contract.number,
        project_name=request.contract.project_name,
        show_contract_info=get_flag(request.settings, SettingKey.SHOW_CONTRACT_INFO),
    )
    doc: AssembledDocument = assemble_document(header, contents, request.settings, generated_on=on)
    for section in doc.skipped:
        emit(ExportEvent("section.skipped", request.report_type, {"section": section, "reason": "empty at assembly"}))
    emit(ExportEvent("document.assembled", request.report_type, {"pages": doc.page_count, "bytes": len(doc.pdf)}))

    return BuiltReport(
        filename=report_filename(request.report_type, request.contract.number, on),
        pdf=doc.pdf,
        plan=tuple(plan),
        page_count=doc.page_count,
        skipped=doc.skipped,
    )


# --------------------------------- saving -------------------------------------
def save_artifact(payload: bytes, out_dir: Path, filename: str) -> Path:
    """Atomic write: temp file next to the target, then move into place."""
    out = (Path(out_dir) / filename).resolve()
    tmp_path = out.with_suffix(out.suffix + ".tmp")
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_bytes(payload)
        shutil.move(str(tmp_path), str(out))
    except OSError as e:
        raise SaveFailure(str(out), original_error=e) from e
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
    return out


def export_report(request: ReportRequest, out_dir: Path, observer: Optional[Observer] = None,
                  today: Optional[dt.date] = None, should_cancel: Optional[Callable[[], bool]] = None,
                  rasterizer: Rasterizer = rasterize) -> ExportResult:
    """
    Run one full export and write exactly one PDF into `out_dir`.
    Every failure is raised as a ReportExportError subclass.
    """
    emit = observer or log_event
    try:
        built = build_report(request, observer=emit, today=today, should_cancel=should_cancel,
                             rasterizer=rasterizer)
        path = save_artifact(built.pdf, Path(out_dir), built.filename)
    except ReportExportError as e:
        emit(ExportEvent("export.failed", request.report_type, e.to_dict()))
        raise
    except Exception as e:
        err = ReportExportError(f"Export failed: {e}", {"report_type": request.report_type}, original_error=e)
        emit(ExportEvent("export.failed", request.report_type, err.to_dict()))
        raise err from e

    emit(ExportEvent("export.saved", request.report_type, {"path": str(path), "pages": built.page_count}))
    return ExportResult(path=path, filename=built.filename, page_count=built.page_count,
                        plan=built.plan, skipped=built.skipped)
