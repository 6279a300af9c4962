# server.py — FastAPI bridge for report previews and PDF downloads
import datetime as dt
import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import quote

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from document_assembler import ReportHeader, assemble_preview
from export_controller import ContractMeta, ReportRequest, build_report
from page_plan import build_plan, plan_summary
from report_domains import get_domain
from report_errors import (
    ChartContractViolation,
    EmptyDataset,
    ExportCancelled,
    NoSectionsSelected,
    ReportExportError,
    UnknownReportType,
)
from report_settings import REPORT_TYPES, SettingKey, create_default, get_flag, settings_from_mapping, toggle

logger = logging.getLogger(__name__)

app = FastAPI(title="Contract Report Export", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten later if needed
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATUS = {
    UnknownReportType: 404,
    EmptyDataset: 422,
    NoSectionsSelected: 422,
    ChartContractViolation: 422,
    ExportCancelled: 409,
}


# ---------- Bodies ----------
class ContractBody(BaseModel):
    number: Optional[str] = None
    projectName: Optional[str] = None


class ToggleBody(BaseModel):
    settings: Dict[str, Any] = Field(default_factory=dict)
    path: str


class ReportBody(BaseModel):
    domainData: Dict[str, Any] = Field(default_factory=dict)
    contract: ContractBody = Field(default_factory=ContractBody)
    settings: Dict[str, Any] = Field(default_factory=dict)


def _request(report_type: str, body: ReportBody) -> ReportRequest:
    return ReportRequest(
        report_type=report_type,
        domain_data=body.domainData,
        contract=ContractMeta(body.contract.number, body.contract.projectName),
        settings=settings_from_mapping(report_type, body.settings),
    )


# ---------- Errors ----------
@app.exception_handler(ReportExportError)
def _report_error(_request: Request, exc: ReportExportError) -> Response:
    status = _STATUS.get(type(exc), 500)
    if status >= 500:
        logger.error("export error: %s", exc.message)
    return JSONResponse(exc.to_dict(), status_code=status)


@app.exception_handler(Exception)
def _unexpected_error(_request: Request, exc: Exception) -> Response:
    logger.exception("unhandled error")
    err = ReportExportError(f"Export failed: {exc}", original_error=exc)
    return JSONResponse(err.to_dict(), status_code=500)


def _content_disposition(filename: str) -> str:
    # headers are latin-1; keep an ASCII name for old clients plus the RFC 5987 form
    fallback = re.sub(r"[^\x20-\x7e]|\"", "_", filename)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


# ---------- API ----------
@app.get("/api/ping", response_model=None)
def ping() -> Response:
    return JSONResponse({"ok": True, "reportTypes": list(REPORT_TYPES)})


@app.get("/api/reports/{report_type}/settings", response_model=None)
def default_settings(report_type: str) -> Response:
    return JSONResponse(create_default(report_type))


@app.post("/api/reports/{report_type}/settings/toggle", response_model=None)
def toggle_setting(report_type: str, body: ToggleBody) -> Response:
    current = settings_from_mapping(report_type, body.settings)
    return JSONResponse(toggle(current, body.path))


@app.post("/api/reports/{report_type}/preview", response_model=None)
def preview(report_type: str, body: ReportBody) -> Response:
    req = _request(report_type, body)
    plan = build_plan(report_type, req.settings, req.domain_data, req.contract.number)
    return JSONResponse({
        "reportType": report_type,
        "title": get_domain(report_type).document_title,
        "pages": [p.to_dict() for p in plan],
        "summary": plan_summary(plan),
    })


@app.post("/api/reports/{report_type}/preview.pdf", response_model=None)
def preview_pdf(report_type: str, body: ReportBody) -> Response:
    req = _request(report_type, body)
    plan = build_plan(report_type, req.settings, req.domain_data, req.contract.number)
    if not plan:
        raise NoSectionsSelected(report_type)
    header = ReportHeader(
        report_type=report_type,
        title=get_domain(report_type).document_title,
        contract_number=req.contract.number,
        project_name=req.contract.project_name,
        show_contract_info=get_flag(req.settings, SettingKey.SHOW_CONTRACT_INFO),
    )
    doc = assemble_preview(header, plan, req.settings, generated_on=dt.date.today())
    return Response(content=doc.pdf, media_type="application/pdf")


@app.post("/api/reports/{report_type}/export", response_model=None)
def export(report_type: str, body: ReportBody) -> Response:
    built = build_report(_request(report_type, body))
    return Response(
        content=built.pdf,
        media_type="application/pdf",
        headers={
            "Content-Disposition": _content_disposition(built.filename),
            "X-Page-Count": str(built.page_count),
        },
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=True)
