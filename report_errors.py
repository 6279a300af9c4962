# report_errors.py
"""
Error taxonomy for report export.

Every failure raised by the export pipeline derives from ReportExportError and
carries a stable code, a human-readable message and a details dict, so the
HTTP layer and the event observer can report it the same way.

An empty section is NOT an error: the plan builder simply skips it.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ReportExportError(Exception):
    """Base class for every user-visible export failure."""

    code = "REPORT_EXPORT_FAILED"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 original_error: Optional[BaseException] = None):
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "error_code": self.code,
            "message": self.message,
            "details": self.details,
        }
        if self.original_error is not None:
            out["original_error"] = {
                "type": type(self.original_error).__name__,
                "message": str(self.original_error),
            }
        return out


class UnknownReportType(ReportExportError):
    code = "UNKNOWN_REPORT_TYPE"

    def __init__(self, report_type: Any):
        super().__init__(f"Unknown report type: {report_type!r}",
                         {"report_type": report_type})


class EmptyDataset(ReportExportError):
    """The whole bundle has nothing to export for its domain."""

    code = "EMPTY_DATASET"

    def __init__(self, report_type: str):
        super().__init__(f"Nothing to export: no {report_type} data available",
                         {"report_type": report_type})


class NoSectionsSelected(ReportExportError):
    code = "NO_SECTIONS_SELECTED"

    def __init__(self, report_type: str):
        super().__init__("No sections selected: enable at least one content section",
                         {"report_type": report_type})


class ChartContractViolation(ReportExportError):
    """A chart series does not match the shape its kind requires."""

    code = "CHART_CONTRACT_VIOLATION"

    def __init__(self, kind: str, reason: str, title: str = ""):
        super().__init__(f"Invalid {kind} chart series{f' for {title!r}' if title else ''}: {reason}",
                         {"kind": kind, "reason": reason, "title": title})


class SaveFailure(ReportExportError):
    code = "SAVE_FAILED"

    def __init__(self, path: str, original_error: Optional[BaseException] = None):
        super().__init__(f"Could not write report to {path}", {"path": path},
                         original_error=original_error)


class ExportCancelled(ReportExportError):
    code = "EXPORT_CANCELLED"

    def __init__(self, report_type: str, completed_pages: int):
        super().__init__("Export cancelled",
                         {"report_type": report_type, "completed_pages": completed_pages})
